"""
Storage contract for allocation rows, media line references and plan settings.
"""

from typing import List, Optional, Protocol, Sequence

from budget_hierarchy.core.models import (
    AllocationNode,
    AllocationNodeDraft,
    MediaLineRef,
    MediaPlanRecord,
)


class BudgetDistributionRepository(Protocol):
    def list_distributions(self, plan_id: str) -> List[AllocationNode]: ...

    def delete_distributions(self, plan_id: str) -> int: ...

    def insert_distributions(
        self, plan_id: str, drafts: Sequence[AllocationNodeDraft]
    ) -> List[str]: ...

    def list_media_lines(self, plan_id: str) -> List[MediaLineRef]: ...

    def replace_media_lines(self, plan_id: str, lines: Sequence[MediaLineRef]) -> None: ...

    def delete_media_lines(self, plan_id: str, line_ids: Sequence[str]) -> int: ...

    def get_plan(self, plan_id: str) -> Optional[MediaPlanRecord]: ...

    def save_plan(self, plan: MediaPlanRecord) -> None: ...
