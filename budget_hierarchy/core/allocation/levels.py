"""
Hierarchy levels, level labels and typed allocation paths.
"""

from typing import Iterable, List, Optional, Sequence, Union

from budget_hierarchy.core.common.canonical import canonical_json
from budget_hierarchy.core.models import (
    AllocationPath,
    HierarchyLevel,
    MediaLineRef,
    PathSegment,
)

MAX_HIERARCHY_DEPTH = 3
GENERAL_LABEL = "General"
GENERAL_ALLOCATION_ID = "geral"
FULL_PLAN_LABEL = "Plano Completo"

LEVEL_LABELS = {
    HierarchyLevel.SUBDIVISION: ("Subdivisão", "Subdivisões"),
    HierarchyLevel.MOMENT: ("Momento", "Momentos"),
    HierarchyLevel.FUNNEL_STAGE: ("Fase do Funil", "Fases do Funil"),
}

ORPHAN_REASON_NAMES = {
    HierarchyLevel.SUBDIVISION: "subdivisão",
    HierarchyLevel.MOMENT: "momento",
    HierarchyLevel.FUNNEL_STAGE: "fase do funil",
}


def validate_hierarchy_order(
    order: Optional[Iterable[Union[HierarchyLevel, str]]],
) -> List[HierarchyLevel]:
    """Coerce and check a hierarchy order.

    An empty order is valid (undivided plan). More than three entries, repeated
    levels or unknown level names raise ``ValueError``.
    """
    levels: List[HierarchyLevel] = []
    for value in order or ():
        try:
            levels.append(HierarchyLevel(value))
        except ValueError as exc:
            raise ValueError(f"HIERARCHY_LEVEL_UNKNOWN:{value}") from exc
    if len(levels) > MAX_HIERARCHY_DEPTH:
        raise ValueError("HIERARCHY_ORDER_TOO_LONG")
    if len(set(levels)) != len(levels):
        raise ValueError("HIERARCHY_ORDER_DUPLICATE_LEVEL")
    return levels


def get_level_label(level: HierarchyLevel) -> str:
    return LEVEL_LABELS[level][0]


def get_level_label_plural(level: HierarchyLevel) -> str:
    return LEVEL_LABELS[level][1]


def line_reference_for_level(line: MediaLineRef, level: HierarchyLevel) -> Optional[str]:
    value = getattr(line, f"{level.value}_id")
    return value or None


def line_path_references(
    line: MediaLineRef, order: Sequence[HierarchyLevel]
) -> tuple[Optional[str], ...]:
    return tuple(line_reference_for_level(line, level) for level in order)


def allocation_reference_id(item_id: str) -> Optional[str]:
    if not item_id or item_id == GENERAL_ALLOCATION_ID:
        return None
    return item_id


def child_path(
    parent_path: AllocationPath, level: HierarchyLevel, reference_id: Optional[str]
) -> AllocationPath:
    return (*parent_path, PathSegment(level=level, reference_id=reference_id))


def path_fits_order(path: AllocationPath, order: Sequence[HierarchyLevel]) -> bool:
    """True when ``path`` can be the parent of an allocation list under ``order``."""
    if len(path) >= len(order):
        return False
    return all(segment.level == order[index] for index, segment in enumerate(path))


def path_key(path: AllocationPath) -> str:
    if not path:
        return "root"
    return canonical_json([[segment.level.value, segment.reference_id] for segment in path])
