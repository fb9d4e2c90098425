import os

from budget_hierarchy.api.routers.distributions_config import (
    distribution_postgres_dsn,
    distribution_store_backend_name,
)

_PRODUCTION_PROFILE = "PRODUCTION"
_LOCAL_PROFILE = "LOCAL"


def app_persistence_profile_name() -> str:
    profile = os.getenv("APP_PERSISTENCE_PROFILE", _LOCAL_PROFILE).strip().upper()
    return _PRODUCTION_PROFILE if profile == _PRODUCTION_PROFILE else _LOCAL_PROFILE


def validate_persistence_profile_guardrails() -> None:
    """Fail startup when the production profile is not backed by PostgreSQL."""
    if app_persistence_profile_name() != _PRODUCTION_PROFILE:
        return
    if distribution_store_backend_name() != "POSTGRES":
        raise RuntimeError("PERSISTENCE_PROFILE_REQUIRES_DISTRIBUTION_POSTGRES")
    if not distribution_postgres_dsn():
        raise RuntimeError("PERSISTENCE_PROFILE_REQUIRES_DISTRIBUTION_POSTGRES_DSN")
