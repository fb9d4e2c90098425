"""
Detect media lines that a proposed allocation tree no longer covers.
"""

import logging
from typing import Iterable, List, Set

from budget_hierarchy.core.allocation.errors import OrphanConfirmationRequiredError
from budget_hierarchy.core.allocation.levels import (
    ORPHAN_REASON_NAMES,
    allocation_reference_id,
    child_path,
    path_key,
    validate_hierarchy_order,
)
from budget_hierarchy.core.allocation.store import BudgetDistributionRepository
from budget_hierarchy.core.allocation.tree_builder import build_hierarchy_tree
from budget_hierarchy.core.allocation.wizard import WizardState
from budget_hierarchy.core.models import (
    AllocationNode,
    AllocationPath,
    AllocationReferenceIds,
    DistributionPlan,
    HierarchyLevel,
    HierarchyTreeNode,
    MediaLineRef,
    OrphanLine,
    OrphanReport,
)

logger = logging.getLogger(__name__)


def find_orphan_lines(
    lines: Iterable[MediaLineRef], reference_ids: AllocationReferenceIds
) -> OrphanReport:
    """A line is orphaned when a non-null reference is missing from its level's set.

    Levels whose set is ``None`` are outside the proposed order and are not checked.
    """
    orphans: List[OrphanLine] = []
    for line in lines:
        levels: List[HierarchyLevel] = []
        for level in HierarchyLevel:
            known = reference_ids.for_level(level)
            if known is None:
                continue
            reference = getattr(line, f"{level.value}_id")
            if reference and reference not in known:
                levels.append(level)
        if levels:
            orphans.append(
                OrphanLine(
                    id=line.id,
                    reason=", ".join(ORPHAN_REASON_NAMES[level] for level in levels),
                    levels=levels,
                    line_code=line.line_code,
                    platform=line.platform,
                )
            )
    return OrphanReport(count=len(orphans), lines=orphans)


def reference_ids_from_wizard_state(state: WizardState) -> AllocationReferenceIds:
    """Collect references from the lists reachable from the root, as saving would.

    Lists under parents that no allocation leads to are ignored. A parent without
    a list continues through its implicit General child.
    """
    sets = _empty_sets(state.hierarchy_order)
    index = {path_key(entry.parent_path): entry.items for entry in state.allocations}
    frontier: List[AllocationPath] = [()]
    for level in state.hierarchy_order:
        next_frontier: List[AllocationPath] = []
        for parent_path in frontier:
            items = index.get(path_key(parent_path))
            references = [allocation_reference_id(item.id) for item in items] if items else [None]
            for reference_id in references:
                if reference_id is not None:
                    sets[level].add(reference_id)
                next_frontier.append(child_path(parent_path, level, reference_id))
        frontier = next_frontier
    return AllocationReferenceIds(**{level.value: ids for level, ids in sets.items()})


def reference_ids_from_plan(plan: DistributionPlan) -> AllocationReferenceIds:
    sets = _empty_sets(plan.hierarchy_order)
    for item in plan.items:
        if item.reference_id is not None and item.level in sets:
            sets[item.level].add(item.reference_id)
    return AllocationReferenceIds(**{level.value: ids for level, ids in sets.items()})


def reference_ids_from_nodes(
    nodes: Iterable[AllocationNode], order: Iterable[HierarchyLevel]
) -> AllocationReferenceIds:
    """Collect references from stored rows, ignoring rows that do not fit ``order``."""
    levels = validate_hierarchy_order(order)
    sets = _empty_sets(levels)
    if levels:
        _collect_tree_references(build_hierarchy_tree(nodes, [], levels).nodes, sets)
    return AllocationReferenceIds(**{level.value: ids for level, ids in sets.items()})


def remove_orphan_lines(
    repository: BudgetDistributionRepository,
    plan_id: str,
    report: OrphanReport,
    confirmed: bool,
) -> int:
    if not report.lines:
        return 0
    if not confirmed:
        raise OrphanConfirmationRequiredError(report)
    removed = repository.delete_media_lines(plan_id, [line.id for line in report.lines])
    logger.info(
        "Orphan media lines removed",
        extra={"extra_fields": {"plan_id": plan_id, "removed": removed}},
    )
    return removed


def _empty_sets(order: Iterable[HierarchyLevel]) -> dict:
    return {HierarchyLevel(level): set() for level in order}


def _collect_tree_references(
    nodes: List[HierarchyTreeNode], sets: dict[HierarchyLevel, Set[str]]
) -> None:
    for node in nodes:
        if node.level is not None and node.reference_id is not None:
            sets[node.level].add(node.reference_id)
        _collect_tree_references(node.children, sets)
