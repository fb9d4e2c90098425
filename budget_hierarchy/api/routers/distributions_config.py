import os
from typing import cast

from budget_hierarchy.core.allocation.store import BudgetDistributionRepository
from budget_hierarchy.core.common.money import DEFAULT_CURRENCY
from budget_hierarchy.infrastructure.distributions import (
    InMemoryBudgetDistributionRepository,
    PostgresBudgetDistributionRepository,
    SqliteBudgetDistributionRepository,
)


def distribution_store_backend_name() -> str:
    backend = os.getenv("DISTRIBUTION_STORE_BACKEND", "IN_MEMORY").strip().upper()
    if backend == "POSTGRES":
        return "POSTGRES"
    return "SQL" if backend in {"SQL", "SQLITE"} else "IN_MEMORY"


def distribution_sqlite_path() -> str:
    return os.getenv("DISTRIBUTION_SQLITE_PATH", ".data/budget_distributions.db")


def distribution_postgres_dsn() -> str:
    return os.getenv("DISTRIBUTION_POSTGRES_DSN", "").strip()


def default_currency() -> str:
    return os.getenv("DISTRIBUTION_DEFAULT_CURRENCY", DEFAULT_CURRENCY).strip().upper() or (
        DEFAULT_CURRENCY
    )


def _postgres_connection_exception_types() -> tuple[type[BaseException], ...]:
    types: list[type[BaseException]] = [ConnectionError, OSError, TimeoutError, ValueError]
    try:
        import psycopg
    except ImportError:
        pass
    else:
        types.append(psycopg.Error)
    return tuple(types)


def build_repository() -> BudgetDistributionRepository:
    backend = distribution_store_backend_name()
    if backend == "SQL":
        return cast(
            BudgetDistributionRepository,
            SqliteBudgetDistributionRepository(database_path=distribution_sqlite_path()),
        )
    if backend == "POSTGRES":
        dsn = distribution_postgres_dsn()
        if not dsn:
            raise RuntimeError("DISTRIBUTION_POSTGRES_DSN_REQUIRED")
        try:
            return cast(BudgetDistributionRepository, PostgresBudgetDistributionRepository(dsn=dsn))
        except RuntimeError:
            raise
        except _postgres_connection_exception_types() as exc:
            raise RuntimeError("DISTRIBUTION_POSTGRES_CONNECTION_FAILED") from exc
    return cast(BudgetDistributionRepository, InMemoryBudgetDistributionRepository())
