import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence, Union

from budget_hierarchy.core.allocation.errors import (
    DistributionsAlreadyExistError,
    PlanNotFoundError,
)
from budget_hierarchy.core.allocation.flattener import plan_wizard_distributions
from budget_hierarchy.core.allocation.generator import generate_budget_distributions_from_lines
from budget_hierarchy.core.allocation.invariants import check_distribution_invariants
from budget_hierarchy.core.allocation.levels import validate_hierarchy_order
from budget_hierarchy.core.allocation.reconciler import (
    find_orphan_lines,
    reference_ids_from_plan,
    reference_ids_from_wizard_state,
    remove_orphan_lines,
)
from budget_hierarchy.core.allocation.store import BudgetDistributionRepository
from budget_hierarchy.core.allocation.tree_builder import NameResolver, build_hierarchy_tree
from budget_hierarchy.core.allocation.tree_rows import (
    flatten_hierarchy_tree,
    hierarchy_column_headers,
)
from budget_hierarchy.core.allocation.wizard import WizardState, wizard_state_from_distributions
from budget_hierarchy.core.allocation.writer import write_distribution_plan
from budget_hierarchy.core.common.canonical import content_fingerprint
from budget_hierarchy.core.common.money import (
    DEFAULT_CURRENCY,
    PERCENT_TOLERANCE,
    ZERO,
    percentage_of,
    sum_decimals,
)
from budget_hierarchy.core.distributions.models import (
    HierarchyRowsView,
    HierarchyView,
    MediaPlanUpsertRequest,
    SaveWizardAllocationsRequest,
    WizardAllocationsPayload,
    WizardSaveResult,
)
from budget_hierarchy.core.models import (
    AllocationNode,
    GenerationResult,
    HierarchyLevel,
    InvariantViolation,
    MediaLineRef,
    MediaPlanRecord,
    OrphanReport,
)

logger = logging.getLogger(__name__)

_DROPPED_ROW_PREFIXES = (
    "STALE_HIERARCHY_LEVEL",
    "DISTRIBUTION_CYCLE",
    "DISTRIBUTION_PARENT_MISSING",
    "DISTRIBUTION_TOO_DEEP",
    "DISTRIBUTION_ANCESTOR_DROPPED",
)


class BudgetDistributionService:
    def __init__(
        self,
        *,
        repository: BudgetDistributionRepository,
        default_currency: str = DEFAULT_CURRENCY,
    ) -> None:
        self._repository = repository
        self._default_currency = default_currency

    def upsert_plan(self, *, plan_id: str, payload: MediaPlanUpsertRequest) -> MediaPlanRecord:
        existing = self._repository.get_plan(plan_id)
        currency = payload.currency or (
            existing.currency if existing is not None else self._default_currency
        )
        plan = MediaPlanRecord(
            plan_id=plan_id,
            total_budget=payload.total_budget,
            currency=currency.upper(),
            hierarchy_order=list(payload.hierarchy_order),
            dimension_names=payload.dimension_names,
            updated_at=_utc_now(),
        )
        self._repository.save_plan(plan)
        return plan

    def get_plan(self, *, plan_id: str) -> MediaPlanRecord:
        plan = self._repository.get_plan(plan_id)
        if plan is None:
            raise PlanNotFoundError("PLAN_NOT_FOUND")
        return plan

    def replace_media_lines(
        self, *, plan_id: str, lines: Sequence[MediaLineRef]
    ) -> List[MediaLineRef]:
        self.get_plan(plan_id=plan_id)
        self._repository.replace_media_lines(plan_id, list(lines))
        return self._repository.list_media_lines(plan_id)

    def list_media_lines(self, *, plan_id: str) -> List[MediaLineRef]:
        self.get_plan(plan_id=plan_id)
        return self._repository.list_media_lines(plan_id)

    def get_hierarchy(self, *, plan_id: str) -> HierarchyView:
        plan = self.get_plan(plan_id=plan_id)
        nodes = self._repository.list_distributions(plan_id)
        lines = self._repository.list_media_lines(plan_id)
        result = build_hierarchy_tree(
            nodes,
            lines,
            plan.hierarchy_order,
            _name_resolver(plan),
            total_budget=plan.total_budget,
        )
        violations = []
        if plan.hierarchy_order:
            violations = check_distribution_invariants(
                nodes, plan.hierarchy_order, plan.total_budget, plan.currency
            )
        budget_mismatch = _lines_total_explains_root_sum(nodes, lines, plan.total_budget)
        warnings = list(result.warnings)
        repairable = violations
        if budget_mismatch:
            lines_total = sum_decimals(line.budget or ZERO for line in lines)
            warnings.append(
                f"LINES_TOTAL_DIFFERS_FROM_PLAN_BUDGET:{lines_total}:{plan.total_budget}"
            )
            repairable = [
                violation for violation in violations if not _is_root_percentage_sum(violation)
            ]
        dropped = any(warning.startswith(_DROPPED_ROW_PREFIXES) for warning in result.warnings)
        ungenerated = not nodes and bool(lines)
        return HierarchyView(
            plan_id=plan_id,
            hierarchy_order=plan.hierarchy_order,
            tree=result.nodes,
            warnings=warnings,
            violations=violations,
            generated=bool(nodes),
            regeneration_recommended=bool(plan.hierarchy_order)
            and (dropped or bool(repairable) or ungenerated),
            budget_mismatch=budget_mismatch,
            tree_fingerprint=content_fingerprint(result.nodes, exclude={"distribution_id"}),
        )

    def get_hierarchy_rows(self, *, plan_id: str) -> HierarchyRowsView:
        view = self.get_hierarchy(plan_id=plan_id)
        return HierarchyRowsView(
            plan_id=plan_id,
            headers=hierarchy_column_headers(view.hierarchy_order),
            rows=flatten_hierarchy_tree(view.tree, view.hierarchy_order),
            warnings=view.warnings,
        )

    def get_wizard_state(self, *, plan_id: str) -> WizardState:
        plan = self.get_plan(plan_id=plan_id)
        return wizard_state_from_distributions(
            self._repository.list_distributions(plan_id),
            plan.hierarchy_order,
            plan_id=plan_id,
            total_budget=plan.total_budget,
            currency=plan.currency,
            name_resolver=_name_resolver(plan),
        )

    def preview_orphans(self, *, plan_id: str, payload: WizardAllocationsPayload) -> OrphanReport:
        plan = self.get_plan(plan_id=plan_id)
        state = self._wizard_state(plan, payload)
        return find_orphan_lines(
            self._repository.list_media_lines(plan_id),
            reference_ids_from_wizard_state(state),
        )

    def save_wizard_allocations(
        self, *, plan_id: str, payload: SaveWizardAllocationsRequest
    ) -> WizardSaveResult:
        """Replace the plan's distribution tree with the wizard's allocations.

        Media lines the new tree no longer covers are only deleted when
        ``confirm_orphan_removal`` is set; otherwise nothing is written.
        """
        plan = self.get_plan(plan_id=plan_id)
        state = self._wizard_state(plan, payload)
        distribution_plan = plan_wizard_distributions(state)

        lines = self._repository.list_media_lines(plan_id)
        report = find_orphan_lines(lines, reference_ids_from_plan(distribution_plan))
        removed = remove_orphan_lines(
            self._repository, plan_id, report, confirmed=payload.confirm_orphan_removal
        )
        self._clear_removed_level_references(
            plan_id, previous=plan.hierarchy_order, current=list(state.hierarchy_order)
        )

        self._repository.delete_distributions(plan_id)
        written = write_distribution_plan(
            repository=self._repository, plan_id=plan_id, plan=distribution_plan
        )
        self._repository.save_plan(
            plan.model_copy(
                update={
                    "total_budget": state.total_budget,
                    "currency": state.currency,
                    "hierarchy_order": list(state.hierarchy_order),
                    "updated_at": _utc_now(),
                }
            )
        )
        logger.info(
            "Wizard allocations saved",
            extra={
                "extra_fields": {
                    "plan_id": plan_id,
                    "count": written.count,
                    "expected_count": written.expected_count,
                    "removed_orphan_lines": removed,
                }
            },
        )
        return WizardSaveResult(
            plan_id=plan_id,
            count=written.count,
            expected_count=written.expected_count,
            complete=written.is_complete,
            failures=written.failures,
            warnings=distribution_plan.warnings,
            removed_orphan_lines=removed,
        )

    def generate_from_lines(self, *, plan_id: str, clear_existing: bool = True) -> GenerationResult:
        plan = self.get_plan(plan_id=plan_id)
        result = generate_budget_distributions_from_lines(
            repository=self._repository,
            plan_id=plan_id,
            hierarchy_order=plan.hierarchy_order,
            lines=self._repository.list_media_lines(plan_id),
            total_budget=plan.total_budget,
            clear_existing=clear_existing,
            currency=plan.currency,
        )
        if result.error == "DISTRIBUTIONS_ALREADY_EXIST":
            raise DistributionsAlreadyExistError("DISTRIBUTIONS_ALREADY_EXIST")
        return result

    def change_hierarchy_order(
        self, *, plan_id: str, hierarchy_order: Sequence[Union[HierarchyLevel, str]]
    ) -> HierarchyView:
        plan = self.get_plan(plan_id=plan_id)
        levels = validate_hierarchy_order(hierarchy_order)
        self._clear_removed_level_references(
            plan_id, previous=plan.hierarchy_order, current=levels
        )
        self._repository.save_plan(
            plan.model_copy(update={"hierarchy_order": levels, "updated_at": _utc_now()})
        )
        return self.get_hierarchy(plan_id=plan_id)

    def _wizard_state(
        self, plan: MediaPlanRecord, payload: WizardAllocationsPayload
    ) -> WizardState:
        return WizardState(
            plan_id=plan.plan_id,
            total_budget=payload.total_budget,
            currency=(payload.currency or plan.currency).upper(),
            hierarchy_order=tuple(payload.hierarchy_order),
            allocations=tuple(payload.allocations),
        )

    def _clear_removed_level_references(
        self,
        plan_id: str,
        *,
        previous: Sequence[HierarchyLevel],
        current: Sequence[HierarchyLevel],
    ) -> None:
        removed = [level for level in previous if level not in current]
        if not removed:
            return
        lines = self._repository.list_media_lines(plan_id)
        cleared = [
            line.model_copy(update={f"{level.value}_id": None for level in removed})
            for line in lines
        ]
        self._repository.replace_media_lines(plan_id, cleared)
        logger.info(
            "Line references cleared for removed hierarchy levels",
            extra={
                "extra_fields": {
                    "plan_id": plan_id,
                    "levels": [level.value for level in removed],
                    "lines": len(cleared),
                }
            },
        )


def _name_resolver(plan: MediaPlanRecord) -> NameResolver:
    def resolve(level: HierarchyLevel, reference_id: Optional[str]) -> Optional[str]:
        return plan.dimension_names.get(level.value, {}).get(reference_id or "")

    return resolve


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _is_root_percentage_sum(violation: InvariantViolation) -> bool:
    return violation.code == "SIBLING_PERCENTAGE_SUM" and violation.parent_distribution_id is None


def _lines_total_explains_root_sum(
    nodes: Sequence[AllocationNode],
    lines: Sequence[MediaLineRef],
    total_budget: Decimal,
) -> bool:
    """True when first-level rows cover the lines' share of the budget instead of 100%.

    This is what generating from lines produces when the lines do not add up to
    the plan budget, and generating again would produce it too.
    """
    roots = [node for node in nodes if node.parent_distribution_id is None]
    if not roots or not lines or total_budget == ZERO:
        return False
    lines_total = sum_decimals(line.budget or ZERO for line in lines)
    if lines_total == total_budget:
        return False
    root_sum = sum_decimals(node.percentage for node in roots)
    return abs(root_sum - percentage_of(lines_total, total_budget)) <= PERCENT_TOLERANCE
