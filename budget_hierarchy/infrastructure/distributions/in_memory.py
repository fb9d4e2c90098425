from copy import deepcopy
from threading import Lock
from typing import List, Optional, Sequence

from budget_hierarchy.core.allocation.store import BudgetDistributionRepository
from budget_hierarchy.core.models import (
    AllocationNode,
    AllocationNodeDraft,
    MediaLineRef,
    MediaPlanRecord,
)
from budget_hierarchy.infrastructure.distributions.rows import new_distribution_id


class InMemoryBudgetDistributionRepository(BudgetDistributionRepository):
    def __init__(self) -> None:
        self._lock = Lock()
        self._plans: dict[str, MediaPlanRecord] = {}
        self._distributions: dict[str, list[AllocationNode]] = {}
        self._lines: dict[str, list[MediaLineRef]] = {}

    def list_distributions(self, plan_id: str) -> List[AllocationNode]:
        with self._lock:
            return deepcopy(self._distributions.get(plan_id, []))

    def delete_distributions(self, plan_id: str) -> int:
        with self._lock:
            return len(self._distributions.pop(plan_id, []))

    def insert_distributions(
        self, plan_id: str, drafts: Sequence[AllocationNodeDraft]
    ) -> List[str]:
        rows = [
            AllocationNode(
                id=new_distribution_id(),
                media_plan_id=plan_id,
                **draft.model_dump(),
            )
            for draft in drafts
        ]
        with self._lock:
            self._distributions.setdefault(plan_id, []).extend(rows)
        return [row.id for row in rows]

    def list_media_lines(self, plan_id: str) -> List[MediaLineRef]:
        with self._lock:
            return deepcopy(self._lines.get(plan_id, []))

    def replace_media_lines(self, plan_id: str, lines: Sequence[MediaLineRef]) -> None:
        with self._lock:
            self._lines[plan_id] = deepcopy(list(lines))

    def delete_media_lines(self, plan_id: str, line_ids: Sequence[str]) -> int:
        targets = set(line_ids)
        with self._lock:
            existing = self._lines.get(plan_id, [])
            kept = [line for line in existing if line.id not in targets]
            self._lines[plan_id] = kept
            return len(existing) - len(kept)

    def get_plan(self, plan_id: str) -> Optional[MediaPlanRecord]:
        with self._lock:
            plan = self._plans.get(plan_id)
            return deepcopy(plan) if plan is not None else None

    def save_plan(self, plan: MediaPlanRecord) -> None:
        with self._lock:
            self._plans[plan.plan_id] = deepcopy(plan)
