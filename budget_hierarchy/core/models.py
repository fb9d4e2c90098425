"""
FILE: budget_hierarchy/core/models.py
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Literal, Optional, Set, Tuple

from pydantic import BaseModel, Field


class HierarchyLevel(str, Enum):
    SUBDIVISION = "subdivision"
    MOMENT = "moment"
    FUNNEL_STAGE = "funnel_stage"


class PathSegment(BaseModel):
    model_config = {"frozen": True}

    level: HierarchyLevel = Field(description="Hierarchy level of this path step.")
    reference_id: Optional[str] = Field(
        default=None,
        description="Dimension reference at this level; null is the General bucket.",
        examples=["sub_north"],
    )


AllocationPath = Tuple[PathSegment, ...]


class AllocationNodeDraft(BaseModel):
    distribution_type: HierarchyLevel = Field(
        description="Hierarchy level this row allocates.", examples=["subdivision"]
    )
    reference_id: Optional[str] = Field(
        default=None,
        description="Dimension reference id; null denotes the General bucket.",
        examples=["sub_north"],
    )
    percentage: Decimal = Field(
        description="Share of the parent amount, in percent.", examples=["50"]
    )
    amount: Decimal = Field(description="Allocated amount.", examples=["1500.00"])
    parent_distribution_id: Optional[str] = Field(
        default=None,
        description="Parent row id; null for rows at the first hierarchy level.",
    )
    start_date: Optional[date] = Field(default=None, description="Optional period start.")
    end_date: Optional[date] = Field(default=None, description="Optional period end.")


class AllocationNode(AllocationNodeDraft):
    id: str = Field(description="Row identifier.", examples=["bd_3f2a9c1d0e4b"])
    media_plan_id: str = Field(description="Owning plan identifier.", examples=["plan_1"])


class MediaLineRef(BaseModel):
    id: str = Field(description="Media line identifier.", examples=["line_1"])
    budget: Optional[Decimal] = Field(
        default=None, description="Line budget; null counts as zero.", examples=["750.00"]
    )
    subdivision_id: Optional[str] = Field(default=None, examples=["sub_north"])
    moment_id: Optional[str] = Field(default=None, examples=["mom_launch"])
    funnel_stage_id: Optional[str] = Field(default=None, examples=["fun_awareness"])
    start_date: Optional[date] = Field(default=None)
    end_date: Optional[date] = Field(default=None)
    line_code: Optional[str] = Field(default=None, examples=["L-001"])
    platform: Optional[str] = Field(default=None, examples=["Meta"])


class MediaPlanRecord(BaseModel):
    plan_id: str
    total_budget: Decimal
    currency: str = "BRL"
    hierarchy_order: List[HierarchyLevel] = Field(default_factory=list)
    dimension_names: Dict[str, Dict[str, str]] = Field(
        default_factory=dict,
        description="Display names keyed by level and reference id.",
        examples=[{"subdivision": {"sub_north": "Norte"}}],
    )
    updated_at: datetime


class HierarchyTreeNode(BaseModel):
    level: Optional[HierarchyLevel] = Field(
        description="Hierarchy level; null only for the whole-plan root of an undivided plan."
    )
    reference_id: Optional[str] = Field(default=None)
    distribution_id: Optional[str] = Field(
        default=None, description="Backing row id; null for nodes filled in at read time."
    )
    name: str
    amount: Decimal = Field(description="Planned amount from the allocation tree.")
    allocated_amount: Decimal = Field(
        default=Decimal("0"), description="Sum of budgets of the lines under this node."
    )
    percentage: Decimal
    children: List["HierarchyTreeNode"] = Field(default_factory=list)
    line_ids: List[str] = Field(default_factory=list)
    synthesized: bool = False


class HierarchyTreeResult(BaseModel):
    nodes: List[HierarchyTreeNode] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class HierarchyCell(BaseModel):
    level: HierarchyLevel
    reference_id: Optional[str] = None
    distribution_id: Optional[str] = None
    name: str
    amount: Decimal
    allocated_amount: Decimal = Decimal("0")
    percentage: Decimal
    synthesized: bool = False


class HierarchyRow(BaseModel):
    cells: List[HierarchyCell] = Field(
        default_factory=list, description="One cell per hierarchy level, root first."
    )
    line_ids: List[str] = Field(default_factory=list)


class BudgetAllocation(BaseModel):
    model_config = {"frozen": True}

    id: str = Field(
        description="Dimension reference id, or 'geral' for the General bucket.",
        examples=["sub_north"],
    )
    name: str = Field(default="", examples=["Norte"])
    percentage: Decimal = Field(examples=["50"])
    amount: Optional[Decimal] = Field(
        default=None, description="Informational; recomputed from the parent amount on save."
    )
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class LevelAllocations(BaseModel):
    model_config = {"frozen": True}

    parent_path: AllocationPath = Field(
        default=(), description="Path of the parent allocation; empty for the first level."
    )
    items: Tuple[BudgetAllocation, ...] = Field(default=())


class PlannedDistribution(BaseModel):
    model_config = {"frozen": True}

    path: AllocationPath
    level: HierarchyLevel
    reference_id: Optional[str] = None
    percentage: Decimal
    amount: Decimal
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @property
    def parent_path(self) -> AllocationPath:
        return self.path[:-1]

    @property
    def depth(self) -> int:
        return len(self.path) - 1


class DistributionPlan(BaseModel):
    hierarchy_order: List[HierarchyLevel] = Field(default_factory=list)
    items: List[PlannedDistribution] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class PartialFailure(BaseModel):
    path: AllocationPath
    level: HierarchyLevel
    reference_id: Optional[str] = None
    reason: Literal["INSERT_FAILED", "MISSING_PARENT"]
    detail: Optional[str] = None


class DistributionWriteResult(BaseModel):
    count: int = 0
    expected_count: int = 0
    failures: List[PartialFailure] = Field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.failures and self.count == self.expected_count


class GenerationResult(BaseModel):
    success: bool
    count: int = 0
    expected_count: int = 0
    error: Optional[str] = None
    failures: List[PartialFailure] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class AllocationReferenceIds(BaseModel):
    subdivision: Optional[Set[str]] = Field(
        default=None, description="Subdivision ids in the tree; null when the level is unused."
    )
    moment: Optional[Set[str]] = None
    funnel_stage: Optional[Set[str]] = None

    def for_level(self, level: HierarchyLevel) -> Optional[Set[str]]:
        return getattr(self, level.value)


class OrphanLine(BaseModel):
    id: str
    reason: str = Field(examples=["subdivisão, momento"])
    levels: List[HierarchyLevel] = Field(default_factory=list)
    line_code: Optional[str] = None
    platform: Optional[str] = None


class OrphanReport(BaseModel):
    count: int = 0
    lines: List[OrphanLine] = Field(default_factory=list)


InvariantCode = Literal[
    "SIBLING_PERCENTAGE_SUM",
    "AMOUNT_MISMATCH",
    "STALE_HIERARCHY_LEVEL",
    "MISSING_PARENT",
    "DUPLICATE_SIBLING",
]


class InvariantViolation(BaseModel):
    code: InvariantCode
    distribution_id: Optional[str] = None
    parent_distribution_id: Optional[str] = None
    detail: str
