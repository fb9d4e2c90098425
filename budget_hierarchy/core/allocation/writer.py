"""
Insert a planned distribution tree level by level, parents first.

A failed row never leaves dangling children behind: its descendants are skipped
and reported as ``MISSING_PARENT``. Writes are best effort, so the caller learns
about partial trees from ``count < expected_count``.
"""

import logging
from typing import Dict, List, Tuple

from budget_hierarchy.core.allocation.levels import path_key
from budget_hierarchy.core.allocation.store import BudgetDistributionRepository
from budget_hierarchy.core.models import (
    AllocationNodeDraft,
    DistributionPlan,
    DistributionWriteResult,
    PartialFailure,
    PlannedDistribution,
)

logger = logging.getLogger(__name__)


def write_distribution_plan(
    *,
    repository: BudgetDistributionRepository,
    plan_id: str,
    plan: DistributionPlan,
) -> DistributionWriteResult:
    result = DistributionWriteResult(expected_count=len(plan.items))
    ids_by_path: Dict[str, str] = {}

    by_depth: Dict[int, List[PlannedDistribution]] = {}
    for item in plan.items:
        by_depth.setdefault(item.depth, []).append(item)

    for depth in sorted(by_depth):
        ready: List[Tuple[PlannedDistribution, AllocationNodeDraft]] = []
        for item in by_depth[depth]:
            parent_id = None
            if item.parent_path:
                parent_id = ids_by_path.get(path_key(item.parent_path))
                if parent_id is None:
                    result.failures.append(
                        PartialFailure(
                            path=item.path,
                            level=item.level,
                            reference_id=item.reference_id,
                            reason="MISSING_PARENT",
                        )
                    )
                    continue
            ready.append((item, _draft(item, parent_id)))
        if not ready:
            continue
        _insert_level(repository, plan_id, depth, ready, ids_by_path, result)

    result.count = len(ids_by_path)
    if result.failures:
        logger.warning(
            "Distribution tree written partially",
            extra={
                "extra_fields": {
                    "plan_id": plan_id,
                    "count": result.count,
                    "expected_count": result.expected_count,
                    "failures": len(result.failures),
                }
            },
        )
    return result


def _insert_level(
    repository: BudgetDistributionRepository,
    plan_id: str,
    depth: int,
    ready: List[Tuple[PlannedDistribution, AllocationNodeDraft]],
    ids_by_path: Dict[str, str],
    result: DistributionWriteResult,
) -> None:
    try:
        ids = repository.insert_distributions(plan_id, [draft for _, draft in ready])
        if len(ids) != len(ready):
            raise RuntimeError("DISTRIBUTION_INSERT_ID_COUNT_MISMATCH")
    except Exception as exc:
        logger.warning(
            "Batch insert failed; retrying rows one by one",
            extra={"extra_fields": {"plan_id": plan_id, "depth": depth, "error": str(exc)}},
        )
    else:
        for (item, _), row_id in zip(ready, ids):
            ids_by_path[path_key(item.path)] = row_id
        return

    for item, draft in ready:
        try:
            row_ids = repository.insert_distributions(plan_id, [draft])
            if len(row_ids) != 1:
                raise RuntimeError("DISTRIBUTION_INSERT_ID_COUNT_MISMATCH")
        except Exception as exc:
            logger.error(
                "Distribution row insert failed",
                extra={
                    "extra_fields": {
                        "plan_id": plan_id,
                        "level": item.level.value,
                        "reference_id": item.reference_id,
                        "depth": depth,
                        "error": str(exc),
                    }
                },
            )
            result.failures.append(
                PartialFailure(
                    path=item.path,
                    level=item.level,
                    reference_id=item.reference_id,
                    reason="INSERT_FAILED",
                    detail=str(exc),
                )
            )
            continue
        ids_by_path[path_key(item.path)] = row_ids[0]


def _draft(item: PlannedDistribution, parent_id) -> AllocationNodeDraft:
    return AllocationNodeDraft(
        distribution_type=item.level,
        reference_id=item.reference_id,
        percentage=item.percentage,
        amount=item.amount,
        parent_distribution_id=parent_id,
        start_date=item.start_date,
        end_date=item.end_date,
    )
