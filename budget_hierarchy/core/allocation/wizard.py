"""
Immutable wizard state and its transitions.

Every transition returns a new ``WizardState``; callers never mutate one in
place. Allocation lists are keyed by the typed path of their parent.
"""

from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, Field, field_validator

from budget_hierarchy.core.allocation.levels import (
    GENERAL_ALLOCATION_ID,
    allocation_reference_id,
    child_path,
    path_fits_order,
    validate_hierarchy_order,
)
from budget_hierarchy.core.allocation.tree_builder import NameResolver, build_hierarchy_tree
from budget_hierarchy.core.common.money import DEFAULT_CURRENCY, within_percent_tolerance
from budget_hierarchy.core.models import (
    AllocationNode,
    AllocationPath,
    BudgetAllocation,
    HierarchyLevel,
    HierarchyTreeNode,
    LevelAllocations,
)


class WizardState(BaseModel):
    model_config = {"frozen": True}

    plan_id: str = Field(description="Plan being edited.", examples=["plan_1"])
    total_budget: Decimal = Field(description="Plan-level budget.", examples=["3000"])
    currency: str = Field(default=DEFAULT_CURRENCY, examples=["BRL"])
    hierarchy_order: Tuple[HierarchyLevel, ...] = Field(
        default=(), examples=[["subdivision", "moment"]]
    )
    allocations: Tuple[LevelAllocations, ...] = Field(default=())

    @field_validator("hierarchy_order", mode="before")
    @classmethod
    def _check_order(cls, value):
        return tuple(validate_hierarchy_order(value))


def allocations_for(
    state: WizardState, parent_path: AllocationPath
) -> Tuple[BudgetAllocation, ...]:
    for entry in state.allocations:
        if entry.parent_path == tuple(parent_path):
            return entry.items
    return ()


def set_total_budget(state: WizardState, total_budget: Decimal) -> WizardState:
    if Decimal(total_budget) < 0:
        raise ValueError("TOTAL_BUDGET_NEGATIVE")
    return state.model_copy(update={"total_budget": Decimal(total_budget)})


def set_hierarchy_order(
    state: WizardState, order: Sequence[Union[HierarchyLevel, str]]
) -> WizardState:
    levels = validate_hierarchy_order(order)
    kept = tuple(entry for entry in state.allocations if path_fits_order(entry.parent_path, levels))
    return state.model_copy(update={"hierarchy_order": tuple(levels), "allocations": kept})


def apply_allocation(
    state: WizardState, parent_path: AllocationPath, items: Iterable[BudgetAllocation]
) -> WizardState:
    """Replace the allocation list under ``parent_path``.

    Lists below items that are no longer present are pruned. An empty list
    leaves the level implicit, which the flattener treats as General at 100%.
    """
    parent_path = tuple(parent_path)
    if not path_fits_order(parent_path, state.hierarchy_order):
        raise ValueError("ALLOCATION_PATH_OUTSIDE_HIERARCHY")
    new_items = tuple(items)
    surviving_refs = {allocation_reference_id(item.id) for item in new_items} or {None}
    depth = len(parent_path)

    kept: List[LevelAllocations] = []
    for entry in state.allocations:
        if entry.parent_path == parent_path:
            continue
        if len(entry.parent_path) > depth and entry.parent_path[:depth] == parent_path:
            if entry.parent_path[depth].reference_id not in surviving_refs:
                continue
        kept.append(entry)
    if new_items:
        kept.append(LevelAllocations(parent_path=parent_path, items=new_items))
    return state.model_copy(update={"allocations": tuple(kept)})


def update_allocation_percentage(
    state: WizardState, parent_path: AllocationPath, item_id: str, percentage: Decimal
) -> WizardState:
    items = allocations_for(state, parent_path)
    if not any(item.id == item_id for item in items):
        raise ValueError(f"ALLOCATION_ITEM_NOT_FOUND:{item_id}")
    updated = tuple(
        item.model_copy(update={"percentage": Decimal(percentage)}) if item.id == item_id else item
        for item in items
    )
    return apply_allocation(state, parent_path, updated)


def remove_allocation_item(
    state: WizardState, parent_path: AllocationPath, item_id: str
) -> WizardState:
    items = allocations_for(state, parent_path)
    return apply_allocation(
        state, parent_path, tuple(item for item in items if item.id != item_id)
    )


def wizard_state_from_distributions(
    nodes: Iterable[AllocationNode],
    order: Sequence[Union[HierarchyLevel, str]],
    *,
    plan_id: str,
    total_budget: Decimal,
    currency: str = DEFAULT_CURRENCY,
    name_resolver: Optional[NameResolver] = None,
) -> WizardState:
    """Rebuild the wizard state an edit session starts from.

    Rows that do not fit ``order`` are ignored, as in the tree read. A list made
    of a single General item at 100% stays implicit.
    """
    rows = list(nodes)
    levels = validate_hierarchy_order(order)
    dates = {row.id: (row.start_date, row.end_date) for row in rows}
    tree = build_hierarchy_tree(rows, [], levels, name_resolver).nodes if levels else []

    entries: List[LevelAllocations] = []

    def collect(siblings: List[HierarchyTreeNode], parent_path: AllocationPath) -> None:
        stored = [node for node in siblings if not node.synthesized]
        if not stored:
            return
        items = tuple(
            BudgetAllocation(
                id=node.reference_id or GENERAL_ALLOCATION_ID,
                name=node.name,
                percentage=node.percentage,
                amount=node.amount,
                start_date=dates.get(node.distribution_id, (None, None))[0],
                end_date=dates.get(node.distribution_id, (None, None))[1],
            )
            for node in stored
        )
        sole_general = (
            len(items) == 1
            and items[0].id == GENERAL_ALLOCATION_ID
            and within_percent_tolerance(items[0].percentage)
        )
        if not sole_general:
            entries.append(LevelAllocations(parent_path=parent_path, items=items))
        for node in stored:
            collect(node.children, child_path(parent_path, node.level, node.reference_id))

    collect(tree, ())
    return WizardState(
        plan_id=plan_id,
        total_budget=Decimal(total_budget),
        currency=currency,
        hierarchy_order=tuple(levels),
        allocations=tuple(entries),
    )
