from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from budget_hierarchy.core.allocation.levels import validate_hierarchy_order
from budget_hierarchy.core.models import (
    BudgetAllocation,
    HierarchyLevel,
    HierarchyRow,
    HierarchyTreeNode,
    InvariantViolation,
    LevelAllocations,
    MediaLineRef,
    OrphanReport,
    PartialFailure,
)


class MediaPlanUpsertRequest(BaseModel):
    total_budget: Decimal = Field(ge=0, description="Plan-level budget.", examples=["3000"])
    currency: Optional[str] = Field(
        default=None, description="ISO currency code; defaults to the service currency."
    )
    hierarchy_order: List[HierarchyLevel] = Field(
        default_factory=list, examples=[["subdivision", "moment"]]
    )
    dimension_names: Dict[str, Dict[str, str]] = Field(default_factory=dict)

    @field_validator("hierarchy_order", mode="before")
    @classmethod
    def _check_order(cls, value):
        return validate_hierarchy_order(value)


class HierarchyOrderRequest(BaseModel):
    hierarchy_order: List[HierarchyLevel] = Field(default_factory=list)

    @field_validator("hierarchy_order", mode="before")
    @classmethod
    def _check_order(cls, value):
        return validate_hierarchy_order(value)


class MediaLinesReplaceRequest(BaseModel):
    lines: List[MediaLineRef] = Field(default_factory=list)


class GenerateDistributionsRequest(BaseModel):
    clear_existing: bool = Field(
        default=True, description="Delete existing rows before generating."
    )


class WizardAllocationsPayload(BaseModel):
    total_budget: Decimal = Field(ge=0, examples=["3000"])
    currency: Optional[str] = None
    hierarchy_order: List[HierarchyLevel] = Field(default_factory=list)
    allocations: List[LevelAllocations] = Field(default_factory=list)

    @field_validator("hierarchy_order", mode="before")
    @classmethod
    def _check_order(cls, value):
        return validate_hierarchy_order(value)


class SaveWizardAllocationsRequest(WizardAllocationsPayload):
    confirm_orphan_removal: bool = Field(
        default=False, description="Delete media lines orphaned by this edit."
    )


class PercentageValidationRequest(BaseModel):
    items: List[BudgetAllocation] = Field(default_factory=list)


class PercentageValidationResponse(BaseModel):
    valid: bool
    total: Decimal


class HierarchyView(BaseModel):
    plan_id: str
    hierarchy_order: List[HierarchyLevel] = Field(default_factory=list)
    tree: List[HierarchyTreeNode] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    violations: List[InvariantViolation] = Field(default_factory=list)
    generated: bool = Field(description="True when stored rows exist for the plan.")
    regeneration_recommended: bool = Field(
        default=False,
        description="Stored rows are stale or inconsistent; offer Generate Hierarchy.",
    )
    budget_mismatch: bool = Field(
        default=False,
        description=(
            "Media lines do not add up to the plan budget, so first-level percentages "
            "do not sum to 100. Regenerating does not change this."
        ),
    )
    tree_fingerprint: str = Field(description="Hash of the tree content, ignoring row ids.")


class HierarchyRowsView(BaseModel):
    plan_id: str
    headers: List[str] = Field(default_factory=list)
    rows: List[HierarchyRow] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class WizardSaveResult(BaseModel):
    plan_id: str
    count: int = 0
    expected_count: int = 0
    complete: bool = True
    failures: List[PartialFailure] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    removed_orphan_lines: int = 0


class OrphanPreviewResponse(OrphanReport):
    plan_id: str


class MediaLinesResponse(BaseModel):
    plan_id: str
    lines: List[MediaLineRef] = Field(default_factory=list)
