from typing import List, Sequence

from budget_hierarchy.core.allocation.levels import (
    GENERAL_LABEL,
    get_level_label,
    validate_hierarchy_order,
)
from budget_hierarchy.core.common.money import HUNDRED
from budget_hierarchy.core.models import (
    HierarchyCell,
    HierarchyLevel,
    HierarchyRow,
    HierarchyTreeNode,
)


def flatten_hierarchy_tree(
    tree: Sequence[HierarchyTreeNode], order: Sequence[HierarchyLevel]
) -> List[HierarchyRow]:
    """One row per root-to-leaf path, padded with General cells up to the order depth.

    The whole-plan root of an undivided plan has no level and yields no rows.
    """
    levels = validate_hierarchy_order(order)
    rows: List[HierarchyRow] = []

    def traverse(node: HierarchyTreeNode, path: List[HierarchyCell]) -> None:
        if node.level is None:
            return
        current = [*path, _cell(node)]
        if node.children:
            for child in node.children:
                traverse(child, current)
            return
        while len(current) < len(levels):
            current.append(
                HierarchyCell(
                    level=levels[len(current)],
                    name=GENERAL_LABEL,
                    amount=node.amount,
                    allocated_amount=node.allocated_amount,
                    percentage=HUNDRED,
                    synthesized=True,
                )
            )
        rows.append(HierarchyRow(cells=current, line_ids=list(node.line_ids)))

    for root in tree:
        traverse(root, [])
    return rows


def count_descendant_rows(node: HierarchyTreeNode) -> int:
    if not node.children:
        return 1
    return sum(count_descendant_rows(child) for child in node.children)


def hierarchy_column_headers(order: Sequence[HierarchyLevel]) -> List[str]:
    return [get_level_label(level) for level in validate_hierarchy_order(order)]


def _cell(node: HierarchyTreeNode) -> HierarchyCell:
    return HierarchyCell(
        level=node.level,
        reference_id=node.reference_id,
        distribution_id=node.distribution_id,
        name=node.name,
        amount=node.amount,
        allocated_amount=node.allocated_amount,
        percentage=node.percentage,
        synthesized=node.synthesized,
    )
