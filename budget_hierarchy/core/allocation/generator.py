"""
Bootstrap a distribution tree from existing media lines.

Lines are grouped by their reference at each hierarchy level. A group's amount
is the sum of its line budgets and its percentage is that amount's share of the
parent group (the plan budget at the first level).
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Union

from budget_hierarchy.core.allocation.levels import (
    child_path,
    line_reference_for_level,
    validate_hierarchy_order,
)
from budget_hierarchy.core.allocation.store import BudgetDistributionRepository
from budget_hierarchy.core.allocation.writer import write_distribution_plan
from budget_hierarchy.core.common.money import (
    DEFAULT_CURRENCY,
    HUNDRED,
    ZERO,
    even_percentages,
    percentage_of,
    quantize_amount_for_currency,
    sum_decimals,
)
from budget_hierarchy.core.models import (
    AllocationPath,
    DistributionPlan,
    GenerationResult,
    HierarchyLevel,
    MediaLineRef,
    PlannedDistribution,
)

logger = logging.getLogger(__name__)


class _LineGroup:
    def __init__(self) -> None:
        self.lines: List[MediaLineRef] = []
        self.amount = ZERO
        self.start_date: Optional[date] = None
        self.end_date: Optional[date] = None

    def add(self, line: MediaLineRef) -> None:
        self.lines.append(line)
        self.amount += line.budget or ZERO
        if line.start_date and (self.start_date is None or line.start_date < self.start_date):
            self.start_date = line.start_date
        if line.end_date and (self.end_date is None or line.end_date > self.end_date):
            self.end_date = line.end_date


def plan_distributions_from_lines(
    order: Sequence[Union[HierarchyLevel, str]],
    lines: Sequence[MediaLineRef],
    total_budget: Decimal,
    currency: str = DEFAULT_CURRENCY,
) -> DistributionPlan:
    levels = validate_hierarchy_order(order)
    if not levels:
        return DistributionPlan()

    warnings: List[str] = []
    budget = quantize_amount_for_currency(Decimal(total_budget), currency)
    lines_total = sum_decimals(line.budget or ZERO for line in lines)
    if lines and lines_total != budget:
        warnings.append(f"LINES_TOTAL_DIFFERS_FROM_PLAN_BUDGET:{lines_total}:{budget}")

    items: List[PlannedDistribution] = []
    if not lines:
        parent_path: AllocationPath = ()
        for level in levels:
            parent_path = child_path(parent_path, level, None)
            items.append(
                PlannedDistribution(
                    path=parent_path,
                    level=level,
                    percentage=HUNDRED,
                    amount=budget,
                )
            )
        return DistributionPlan(hierarchy_order=levels, items=items, warnings=warnings)

    frontier = [((), budget, list(lines))]
    for level in levels:
        next_frontier = []
        for parent_path, parent_amount, group_lines in frontier:
            groups: Dict[Optional[str], _LineGroup] = {}
            for line in group_lines:
                groups.setdefault(line_reference_for_level(line, level), _LineGroup()).add(line)
            percentages = _group_percentages(list(groups.values()), parent_amount)
            for (reference_id, group), percentage in zip(groups.items(), percentages):
                path = child_path(parent_path, level, reference_id)
                carries_dates = level == HierarchyLevel.MOMENT
                items.append(
                    PlannedDistribution(
                        path=path,
                        level=level,
                        reference_id=reference_id,
                        percentage=percentage,
                        amount=group.amount,
                        start_date=group.start_date if carries_dates else None,
                        end_date=group.end_date if carries_dates else None,
                    )
                )
                next_frontier.append((path, group.amount, group.lines))
        frontier = next_frontier
    return DistributionPlan(hierarchy_order=levels, items=items, warnings=warnings)


def _group_percentages(groups: List[_LineGroup], parent_amount: Decimal) -> List[Decimal]:
    if parent_amount == ZERO:
        return even_percentages(len(groups))
    return [percentage_of(group.amount, parent_amount) for group in groups]


def generate_budget_distributions_from_lines(
    *,
    repository: BudgetDistributionRepository,
    plan_id: str,
    hierarchy_order: Sequence[Union[HierarchyLevel, str]],
    lines: Sequence[MediaLineRef],
    total_budget: Decimal,
    clear_existing: bool = True,
    currency: str = DEFAULT_CURRENCY,
) -> GenerationResult:
    try:
        plan = plan_distributions_from_lines(hierarchy_order, lines, total_budget, currency)
    except ValueError as exc:
        return GenerationResult(success=False, error=str(exc))
    if not plan.hierarchy_order:
        return GenerationResult(success=True, count=0)

    if clear_existing:
        try:
            repository.delete_distributions(plan_id)
        except Exception as exc:
            logger.error(
                "Clearing distributions failed",
                extra={"extra_fields": {"plan_id": plan_id, "error": str(exc)}},
            )
            return GenerationResult(
                success=False,
                error="DISTRIBUTIONS_CLEAR_FAILED",
                expected_count=len(plan.items),
                warnings=plan.warnings,
            )
    elif repository.list_distributions(plan_id):
        return GenerationResult(
            success=False,
            error="DISTRIBUTIONS_ALREADY_EXIST",
            expected_count=len(plan.items),
            warnings=plan.warnings,
        )

    written = write_distribution_plan(repository=repository, plan_id=plan_id, plan=plan)
    logger.info(
        "Distributions generated from media lines",
        extra={
            "extra_fields": {
                "plan_id": plan_id,
                "count": written.count,
                "expected_count": written.expected_count,
                "lines": len(lines),
            }
        },
    )
    return GenerationResult(
        success=True,
        count=written.count,
        expected_count=written.expected_count,
        failures=written.failures,
        warnings=plan.warnings,
    )
