"""
Consistency checks over stored distribution rows.

Violations are reported, never repaired. Amounts are compared against the
parent's stored amount (the plan budget for first-level rows), allowing one
minor unit of rounding per level.
"""

from collections import Counter
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Union

from budget_hierarchy.core.allocation.levels import validate_hierarchy_order
from budget_hierarchy.core.common.money import (
    DEFAULT_CURRENCY,
    amount_for_percentage,
    quantize_amount_for_currency,
    sum_decimals,
    within_percent_tolerance,
)
from budget_hierarchy.core.models import AllocationNode, HierarchyLevel, InvariantViolation


def check_distribution_invariants(
    nodes: Iterable[AllocationNode],
    order: Sequence[Union[HierarchyLevel, str]],
    total_budget: Optional[Decimal] = None,
    currency: str = DEFAULT_CURRENCY,
) -> List[InvariantViolation]:
    levels = validate_hierarchy_order(order)
    rows = list(nodes)
    by_id = {row.id: row for row in rows}
    violations: List[InvariantViolation] = []

    siblings: Dict[Optional[str], List[AllocationNode]] = {}
    for row in rows:
        if row.parent_distribution_id is not None and row.parent_distribution_id not in by_id:
            violations.append(
                InvariantViolation(
                    code="MISSING_PARENT",
                    distribution_id=row.id,
                    parent_distribution_id=row.parent_distribution_id,
                    detail="parent row does not exist",
                )
            )
            continue
        siblings.setdefault(row.parent_distribution_id, []).append(row)

    for row in rows:
        depth = _depth(row, by_id)
        if depth is None:
            continue
        expected = levels[depth] if depth < len(levels) else None
        if row.distribution_type != expected:
            violations.append(
                InvariantViolation(
                    code="STALE_HIERARCHY_LEVEL",
                    distribution_id=row.id,
                    parent_distribution_id=row.parent_distribution_id,
                    detail=(
                        f"depth {depth} holds {row.distribution_type.value}, "
                        f"order expects {expected.value if expected else 'nothing'}"
                    ),
                )
            )

    tolerance = _minor_unit(currency)
    for parent_id, group in siblings.items():
        total = sum_decimals(row.percentage for row in group)
        if not within_percent_tolerance(total):
            violations.append(
                InvariantViolation(
                    code="SIBLING_PERCENTAGE_SUM",
                    parent_distribution_id=parent_id,
                    detail=f"sibling percentages sum to {total}",
                )
            )
        counts = Counter(row.reference_id for row in group)
        duplicates = [reference_id for reference_id, count in counts.items() if count > 1]
        for reference_id in duplicates:
            violations.append(
                InvariantViolation(
                    code="DUPLICATE_SIBLING",
                    parent_distribution_id=parent_id,
                    detail=f"reference {reference_id} appears more than once",
                )
            )
        if parent_id is None:
            parent_amount = total_budget
        else:
            parent_amount = by_id[parent_id].amount
        if parent_amount is None:
            continue
        for row in group:
            expected_amount = amount_for_percentage(parent_amount, row.percentage, currency)
            if abs(expected_amount - row.amount) > tolerance:
                violations.append(
                    InvariantViolation(
                        code="AMOUNT_MISMATCH",
                        distribution_id=row.id,
                        parent_distribution_id=parent_id,
                        detail=f"amount {row.amount} differs from expected {expected_amount}",
                    )
                )
    return violations


def _minor_unit(currency: str) -> Decimal:
    quantum = quantize_amount_for_currency(Decimal("0"), currency)
    return Decimal(1).scaleb(quantum.as_tuple().exponent)


def _depth(row: AllocationNode, by_id: Dict[str, AllocationNode]) -> Optional[int]:
    depth = 0
    seen = {row.id}
    parent_id = row.parent_distribution_id
    while parent_id is not None:
        parent = by_id.get(parent_id)
        if parent is None or parent_id in seen:
            return None
        seen.add(parent_id)
        depth += 1
        parent_id = parent.parent_distribution_id
    return depth
