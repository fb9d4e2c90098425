import json
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from budget_hierarchy.core.models import (
    AllocationNode,
    AllocationNodeDraft,
    HierarchyLevel,
    MediaLineRef,
    MediaPlanRecord,
)


def new_distribution_id() -> str:
    return f"bd_{uuid.uuid4().hex[:12]}"


def distribution_params(plan_id: str, distribution_id: str, draft: AllocationNodeDraft) -> tuple:
    return (
        distribution_id,
        plan_id,
        draft.distribution_type.value,
        draft.reference_id,
        str(draft.percentage),
        str(draft.amount),
        draft.parent_distribution_id,
        _optional_iso(draft.start_date),
        _optional_iso(draft.end_date),
    )


def media_line_params(plan_id: str, line: MediaLineRef) -> tuple:
    return (
        plan_id,
        line.id,
        _optional_text(line.budget),
        line.subdivision_id,
        line.moment_id,
        line.funnel_stage_id,
        _optional_iso(line.start_date),
        _optional_iso(line.end_date),
        line.line_code,
        line.platform,
    )


def plan_params(plan: MediaPlanRecord) -> tuple:
    return (
        plan.plan_id,
        str(plan.total_budget),
        plan.currency,
        _json_dump([level.value for level in plan.hierarchy_order]),
        _json_dump(plan.dimension_names),
        plan.updated_at.isoformat(),
    )


def to_distribution(row: Any) -> AllocationNode:
    return AllocationNode(
        id=row["distribution_id"],
        media_plan_id=row["media_plan_id"],
        distribution_type=HierarchyLevel(row["distribution_type"]),
        reference_id=row["reference_id"],
        percentage=Decimal(row["percentage"]),
        amount=Decimal(row["amount"]),
        parent_distribution_id=row["parent_distribution_id"],
        start_date=_optional_date(row["start_date"]),
        end_date=_optional_date(row["end_date"]),
    )


def to_media_line(row: Any) -> MediaLineRef:
    return MediaLineRef(
        id=row["line_id"],
        budget=_optional_decimal(row["budget"]),
        subdivision_id=row["subdivision_id"],
        moment_id=row["moment_id"],
        funnel_stage_id=row["funnel_stage_id"],
        start_date=_optional_date(row["start_date"]),
        end_date=_optional_date(row["end_date"]),
        line_code=row["line_code"],
        platform=row["platform"],
    )


def to_plan(row: Any) -> Optional[MediaPlanRecord]:
    if row is None:
        return None
    return MediaPlanRecord(
        plan_id=row["plan_id"],
        total_budget=Decimal(row["total_budget"]),
        currency=row["currency"],
        hierarchy_order=[
            HierarchyLevel(level) for level in json.loads(row["hierarchy_order_json"])
        ],
        dimension_names=json.loads(row["dimension_names_json"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _json_dump(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def _optional_text(value: Optional[Decimal]) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _optional_decimal(value: Optional[str]) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(value)


def _optional_iso(value: Optional[date]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def _optional_date(value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    return date.fromisoformat(value)
