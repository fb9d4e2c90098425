from budget_hierarchy.infrastructure.distributions.in_memory import (
    InMemoryBudgetDistributionRepository,
)
from budget_hierarchy.infrastructure.distributions.postgres import (
    PostgresBudgetDistributionRepository,
)
from budget_hierarchy.infrastructure.distributions.sqlite import (
    SqliteBudgetDistributionRepository,
)

__all__ = [
    "InMemoryBudgetDistributionRepository",
    "PostgresBudgetDistributionRepository",
    "SqliteBudgetDistributionRepository",
]
