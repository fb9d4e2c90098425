"""
Turn wizard allocations into an ordered list of planned rows.

Amounts are derived top-down: each level takes the parent's rounded amount and
applies its own percentage. Lists that do not add up to 100% are rejected, not
corrected.
"""

import logging
from collections import Counter
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from budget_hierarchy.core.allocation.errors import AllocationValidationError
from budget_hierarchy.core.allocation.levels import (
    GENERAL_ALLOCATION_ID,
    GENERAL_LABEL,
    allocation_reference_id,
    child_path,
    path_key,
)
from budget_hierarchy.core.allocation.wizard import WizardState
from budget_hierarchy.core.common.money import (
    HUNDRED,
    amount_for_percentage,
    quantize_amount_for_currency,
    sum_decimals,
    within_percent_tolerance,
)
from budget_hierarchy.core.models import (
    AllocationPath,
    BudgetAllocation,
    DistributionPlan,
    PlannedDistribution,
)

logger = logging.getLogger(__name__)

_IMPLICIT_GENERAL = (
    BudgetAllocation(id=GENERAL_ALLOCATION_ID, name=GENERAL_LABEL, percentage=HUNDRED),
)


def validate_percentages(items: Iterable[BudgetAllocation]) -> bool:
    items = list(items)
    if not items:
        return False
    return within_percent_tolerance(sum_decimals(item.percentage for item in items))


def plan_wizard_distributions(state: WizardState) -> DistributionPlan:
    levels = list(state.hierarchy_order)
    if not levels:
        return DistributionPlan()

    problems: List[str] = []
    index: Dict[str, Tuple[BudgetAllocation, ...]] = {}
    for entry in state.allocations:
        key = path_key(entry.parent_path)
        if key in index:
            problems.append(f"{key}:DUPLICATE_ALLOCATION_LIST")
        index[key] = entry.items

    planned: List[PlannedDistribution] = []
    visited = set()
    frontier: List[Tuple[AllocationPath, Decimal]] = [
        ((), quantize_amount_for_currency(state.total_budget, state.currency))
    ]
    for level in levels:
        next_frontier: List[Tuple[AllocationPath, Decimal]] = []
        for parent_path, parent_amount in frontier:
            key = path_key(parent_path)
            visited.add(key)
            items = index.get(key) or _IMPLICIT_GENERAL
            problems.extend(_list_problems(key, items))
            for item in items:
                reference_id = allocation_reference_id(item.id)
                path = child_path(parent_path, level, reference_id)
                amount = amount_for_percentage(parent_amount, item.percentage, state.currency)
                planned.append(
                    PlannedDistribution(
                        path=path,
                        level=level,
                        reference_id=reference_id,
                        percentage=Decimal(item.percentage),
                        amount=amount,
                        start_date=item.start_date,
                        end_date=item.end_date,
                    )
                )
                next_frontier.append((path, amount))
        frontier = next_frontier

    if problems:
        raise AllocationValidationError("ALLOCATION_PERCENTAGES_INVALID", problems=problems)

    warnings = [
        f"UNREACHED_ALLOCATIONS:{key}"
        for key, items in index.items()
        if items and key not in visited
    ]
    if warnings:
        logger.warning(
            "Wizard allocations outside the hierarchy were ignored",
            extra={"extra_fields": {"plan_id": state.plan_id, "paths": warnings}},
        )
    return DistributionPlan(hierarchy_order=levels, items=planned, warnings=warnings)


def _list_problems(key: str, items: Tuple[BudgetAllocation, ...]) -> List[str]:
    problems: List[str] = []
    total = sum_decimals(item.percentage for item in items)
    if not within_percent_tolerance(total):
        problems.append(f"{key}:PERCENTAGE_SUM:{total}")
    references = Counter(allocation_reference_id(item.id) for item in items)
    for reference_id, count in references.items():
        if count > 1:
            problems.append(f"{key}:DUPLICATE_ITEM:{reference_id or GENERAL_ALLOCATION_ID}")
    return problems
