from budget_hierarchy.core.allocation.errors import (
    AllocationValidationError,
    BudgetDistributionError,
    DistributionsAlreadyExistError,
    OrphanConfirmationRequiredError,
    PlanNotFoundError,
)
from budget_hierarchy.core.allocation.flattener import (
    plan_wizard_distributions,
    validate_percentages,
)
from budget_hierarchy.core.allocation.generator import (
    generate_budget_distributions_from_lines,
    plan_distributions_from_lines,
)
from budget_hierarchy.core.allocation.invariants import check_distribution_invariants
from budget_hierarchy.core.allocation.reconciler import (
    find_orphan_lines,
    reference_ids_from_nodes,
    reference_ids_from_plan,
    reference_ids_from_wizard_state,
    remove_orphan_lines,
)
from budget_hierarchy.core.allocation.store import BudgetDistributionRepository
from budget_hierarchy.core.allocation.tree_builder import NameResolver, build_hierarchy_tree
from budget_hierarchy.core.allocation.tree_rows import (
    count_descendant_rows,
    flatten_hierarchy_tree,
    hierarchy_column_headers,
)
from budget_hierarchy.core.allocation.wizard import (
    WizardState,
    allocations_for,
    apply_allocation,
    remove_allocation_item,
    set_hierarchy_order,
    set_total_budget,
    update_allocation_percentage,
    wizard_state_from_distributions,
)
from budget_hierarchy.core.allocation.writer import write_distribution_plan

__all__ = [
    "AllocationValidationError",
    "BudgetDistributionError",
    "BudgetDistributionRepository",
    "DistributionsAlreadyExistError",
    "NameResolver",
    "OrphanConfirmationRequiredError",
    "PlanNotFoundError",
    "WizardState",
    "allocations_for",
    "apply_allocation",
    "build_hierarchy_tree",
    "check_distribution_invariants",
    "count_descendant_rows",
    "find_orphan_lines",
    "flatten_hierarchy_tree",
    "generate_budget_distributions_from_lines",
    "hierarchy_column_headers",
    "plan_distributions_from_lines",
    "plan_wizard_distributions",
    "reference_ids_from_nodes",
    "reference_ids_from_plan",
    "reference_ids_from_wizard_state",
    "remove_allocation_item",
    "remove_orphan_lines",
    "set_hierarchy_order",
    "set_total_budget",
    "update_allocation_percentage",
    "validate_percentages",
    "wizard_state_from_distributions",
    "write_distribution_plan",
]
