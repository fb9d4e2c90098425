"""
Rebuild the nested allocation tree from flat stored rows.

Reads are tolerant: rows that no longer fit the plan's hierarchy order are
dropped from the result and reported in ``warnings`` instead of failing the
read. The caller decides whether to prompt for regeneration.
"""

import logging
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from budget_hierarchy.core.allocation.levels import (
    FULL_PLAN_LABEL,
    GENERAL_LABEL,
    line_path_references,
    line_reference_for_level,
    validate_hierarchy_order,
)
from budget_hierarchy.core.common.money import HUNDRED, ZERO, sum_decimals
from budget_hierarchy.core.models import (
    AllocationNode,
    HierarchyLevel,
    HierarchyTreeNode,
    HierarchyTreeResult,
    MediaLineRef,
)

logger = logging.getLogger(__name__)

NameResolver = Callable[[HierarchyLevel, Optional[str]], Optional[str]]

_DROP_CYCLE = "DISTRIBUTION_CYCLE"
_DROP_PARENT_MISSING = "DISTRIBUTION_PARENT_MISSING"
_DROP_TOO_DEEP = "DISTRIBUTION_TOO_DEEP"
_DROP_STALE_LEVEL = "STALE_HIERARCHY_LEVEL"
_DROP_ANCESTOR = "DISTRIBUTION_ANCESTOR_DROPPED"


def build_hierarchy_tree(
    nodes: Iterable[AllocationNode],
    lines: Iterable[MediaLineRef],
    order: Sequence[Union[HierarchyLevel, str]],
    name_resolver: Optional[NameResolver] = None,
    *,
    total_budget: Optional[Decimal] = None,
) -> HierarchyTreeResult:
    levels = validate_hierarchy_order(order)
    rows = list(nodes)
    line_list = list(lines)

    if not levels:
        return HierarchyTreeResult(nodes=[_whole_plan_root(line_list, total_budget)])

    warnings: List[str] = []
    by_id = {row.id: row for row in rows}
    drop_reasons = _classify_rows(rows, by_id, levels)
    for row_id, reason in drop_reasons.items():
        warnings.append(f"{reason}:{row_id}")
        logger.warning(
            "Dropping distribution row from hierarchy tree",
            extra={
                "extra_fields": {
                    "distribution_id": row_id,
                    "media_plan_id": by_id[row_id].media_plan_id,
                    "reason": reason,
                }
            },
        )

    children_of: Dict[Optional[str], List[AllocationNode]] = {}
    for row in rows:
        if row.id in drop_reasons:
            continue
        children_of.setdefault(row.parent_distribution_id, []).append(row)

    roots = children_of.get(None, [])
    if not roots:
        return HierarchyTreeResult(nodes=[], warnings=warnings)

    builder = _TreeAssembler(
        levels=levels,
        children_of=children_of,
        lines=line_list,
        name_resolver=name_resolver,
        warnings=warnings,
    )
    tree = builder.build_level(roots, depth=0, path_refs=())

    matched = builder.assign_lines(tree)
    unmatched = [line.id for line in line_list if line.id not in matched]
    if unmatched:
        warnings.append(f"UNMATCHED_LINES:{len(unmatched)}")
        logger.info(
            "Media lines without a matching leaf",
            extra={"extra_fields": {"line_ids": unmatched}},
        )
    return HierarchyTreeResult(nodes=tree, warnings=warnings)


def _whole_plan_root(
    lines: List[MediaLineRef], total_budget: Optional[Decimal]
) -> HierarchyTreeNode:
    allocated = sum_decimals(line.budget or ZERO for line in lines)
    return HierarchyTreeNode(
        level=None,
        name=FULL_PLAN_LABEL,
        amount=Decimal(total_budget) if total_budget is not None else allocated,
        allocated_amount=allocated,
        percentage=HUNDRED,
        line_ids=[line.id for line in lines],
        synthesized=True,
    )


def _classify_rows(
    rows: List[AllocationNode],
    by_id: Dict[str, AllocationNode],
    levels: List[HierarchyLevel],
) -> Dict[str, str]:
    """Return ``{row_id: reason}`` for every row that cannot be placed in the tree."""
    reasons: Dict[str, str] = {}
    for row in rows:
        chain: List[str] = []
        seen = {row.id}
        current = row
        while current.parent_distribution_id is not None:
            parent_id = current.parent_distribution_id
            if parent_id in seen:
                reasons[row.id] = _DROP_CYCLE
                break
            parent = by_id.get(parent_id)
            if parent is None:
                reasons[row.id] = _DROP_PARENT_MISSING
                break
            chain.append(parent_id)
            seen.add(parent_id)
            current = parent
        if row.id in reasons:
            continue
        depth = len(chain)
        if depth >= len(levels):
            reasons[row.id] = _DROP_TOO_DEEP
        elif row.distribution_type != levels[depth]:
            reasons[row.id] = _DROP_STALE_LEVEL

    for row in rows:
        if row.id in reasons:
            continue
        parent_id = row.parent_distribution_id
        seen = {row.id}
        while parent_id is not None and parent_id not in seen:
            if parent_id in reasons:
                reasons[row.id] = _DROP_ANCESTOR
                break
            seen.add(parent_id)
            parent_id = by_id[parent_id].parent_distribution_id
    return reasons


class _TreeAssembler:
    def __init__(
        self,
        *,
        levels: List[HierarchyLevel],
        children_of: Dict[Optional[str], List[AllocationNode]],
        lines: List[MediaLineRef],
        name_resolver: Optional[NameResolver],
        warnings: List[str],
    ) -> None:
        self._levels = levels
        self._children_of = children_of
        self._lines = lines
        self._name_resolver = name_resolver
        self._warnings = warnings

    def build_level(
        self,
        rows: List[AllocationNode],
        *,
        depth: int,
        path_refs: Tuple[Optional[str], ...],
    ) -> List[HierarchyTreeNode]:
        level = self._levels[depth]
        groups: Dict[Optional[str], List[AllocationNode]] = {}
        for row in rows:
            groups.setdefault(row.reference_id, []).append(row)

        built: List[HierarchyTreeNode] = []
        for reference_id, group in groups.items():
            if len(group) > 1:
                self._warnings.append(
                    f"DUPLICATE_SIBLING_MERGED:{level.value}:{reference_id or GENERAL_LABEL}"
                )
            child_rows: List[AllocationNode] = []
            for row in group:
                child_rows.extend(self._children_of.get(row.id, []))
            refs = (*path_refs, reference_id)
            amount = sum_decimals(row.amount for row in group)
            node = HierarchyTreeNode(
                level=level,
                reference_id=reference_id,
                distribution_id=group[0].id,
                name=self._resolve_name(level, reference_id),
                amount=amount,
                allocated_amount=self._allocated_for(refs),
                percentage=sum_decimals(row.percentage for row in group),
            )
            if child_rows and depth + 1 < len(self._levels):
                node.children = self.build_level(child_rows, depth=depth + 1, path_refs=refs)
            elif depth + 1 < len(self._levels):
                node.children = self._general_chain(amount, depth=depth + 1, path_refs=refs)
            built.append(node)
        return built

    def assign_lines(self, tree: List[HierarchyTreeNode]) -> set[str]:
        leaves: Dict[Tuple[Optional[str], ...], HierarchyTreeNode] = {}
        self._collect_leaves(tree, (), leaves)
        matched: set[str] = set()
        for line in self._lines:
            refs = line_path_references(line, self._levels)
            leaf = leaves.get(refs)
            if leaf is not None:
                leaf.line_ids.append(line.id)
                matched.add(line.id)
        return matched

    def _collect_leaves(
        self,
        nodes: List[HierarchyTreeNode],
        refs: Tuple[Optional[str], ...],
        leaves: Dict[Tuple[Optional[str], ...], HierarchyTreeNode],
    ) -> None:
        for node in nodes:
            node_refs = (*refs, node.reference_id)
            if node.children:
                self._collect_leaves(node.children, node_refs, leaves)
            elif len(node_refs) == len(self._levels):
                leaves[node_refs] = node

    def _general_chain(
        self,
        parent_amount: Decimal,
        *,
        depth: int,
        path_refs: Tuple[Optional[str], ...],
    ) -> List[HierarchyTreeNode]:
        refs = (*path_refs, None)
        node = HierarchyTreeNode(
            level=self._levels[depth],
            name=GENERAL_LABEL,
            amount=parent_amount,
            allocated_amount=self._allocated_for(refs),
            percentage=HUNDRED,
            synthesized=True,
        )
        if depth + 1 < len(self._levels):
            node.children = self._general_chain(parent_amount, depth=depth + 1, path_refs=refs)
        return [node]

    def _allocated_for(self, refs: Tuple[Optional[str], ...]) -> Decimal:
        total = ZERO
        for line in self._lines:
            if all(
                line_reference_for_level(line, self._levels[index]) == reference_id
                for index, reference_id in enumerate(refs)
            ):
                total += line.budget or ZERO
        return total

    def _resolve_name(self, level: HierarchyLevel, reference_id: Optional[str]) -> str:
        if reference_id is None:
            return GENERAL_LABEL
        if self._name_resolver is not None:
            resolved = self._name_resolver(level, reference_id)
            if resolved:
                return resolved
        return reference_id
