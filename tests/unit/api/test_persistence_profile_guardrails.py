import pytest
from fastapi.testclient import TestClient

import budget_hierarchy.api.persistence_profile as persistence_profile
from budget_hierarchy.api.main import app
from budget_hierarchy.api.persistence_profile import (
    app_persistence_profile_name,
    validate_persistence_profile_guardrails,
)
from budget_hierarchy.api.routers.distributions_config import (
    build_repository,
    default_currency,
    distribution_store_backend_name,
)
from budget_hierarchy.infrastructure.distributions import (
    InMemoryBudgetDistributionRepository,
    SqliteBudgetDistributionRepository,
)


def test_persistence_profile_defaults_to_local(monkeypatch):
    monkeypatch.delenv("APP_PERSISTENCE_PROFILE", raising=False)
    assert app_persistence_profile_name() == "LOCAL"


def test_persistence_profile_unknown_value_falls_back_to_local(monkeypatch):
    monkeypatch.setenv("APP_PERSISTENCE_PROFILE", "staging")
    assert app_persistence_profile_name() == "LOCAL"


def test_production_profile_requires_distribution_postgres(monkeypatch):
    monkeypatch.setenv("APP_PERSISTENCE_PROFILE", "PRODUCTION")
    monkeypatch.setenv("DISTRIBUTION_STORE_BACKEND", "SQLITE")

    with pytest.raises(RuntimeError) as exc:
        validate_persistence_profile_guardrails()
    assert str(exc.value) == "PERSISTENCE_PROFILE_REQUIRES_DISTRIBUTION_POSTGRES"


def test_production_profile_requires_distribution_postgres_dsn(monkeypatch):
    monkeypatch.setenv("APP_PERSISTENCE_PROFILE", "PRODUCTION")
    monkeypatch.setenv("DISTRIBUTION_STORE_BACKEND", "POSTGRES")

    with pytest.raises(RuntimeError) as exc:
        validate_persistence_profile_guardrails()
    assert str(exc.value) == "PERSISTENCE_PROFILE_REQUIRES_DISTRIBUTION_POSTGRES_DSN"


def test_production_profile_allows_postgres_backend(monkeypatch):
    monkeypatch.setenv("APP_PERSISTENCE_PROFILE", "PRODUCTION")
    monkeypatch.setattr(persistence_profile, "distribution_store_backend_name", lambda: "POSTGRES")
    monkeypatch.setattr(
        persistence_profile,
        "distribution_postgres_dsn",
        lambda: "postgresql://u:p@localhost:5432/db",
    )

    validate_persistence_profile_guardrails()


def test_startup_fails_fast_in_production_without_postgres(monkeypatch):
    monkeypatch.setenv("APP_PERSISTENCE_PROFILE", "PRODUCTION")

    with pytest.raises(RuntimeError) as exc:
        with TestClient(app):
            pass
    assert str(exc.value) == "PERSISTENCE_PROFILE_REQUIRES_DISTRIBUTION_POSTGRES"


def test_backend_name_normalization(monkeypatch):
    monkeypatch.setenv("DISTRIBUTION_STORE_BACKEND", " sqlite ")
    assert distribution_store_backend_name() == "SQL"
    monkeypatch.setenv("DISTRIBUTION_STORE_BACKEND", "unknown")
    assert distribution_store_backend_name() == "IN_MEMORY"


def test_build_repository_selects_backend(monkeypatch, tmp_path):
    assert isinstance(build_repository(), InMemoryBudgetDistributionRepository)

    monkeypatch.setenv("DISTRIBUTION_STORE_BACKEND", "SQL")
    monkeypatch.setenv("DISTRIBUTION_SQLITE_PATH", str(tmp_path / "distributions.db"))
    assert isinstance(build_repository(), SqliteBudgetDistributionRepository)


def test_postgres_backend_requires_dsn(monkeypatch):
    monkeypatch.setenv("DISTRIBUTION_STORE_BACKEND", "POSTGRES")
    with pytest.raises(RuntimeError, match="DISTRIBUTION_POSTGRES_DSN_REQUIRED"):
        build_repository()


def test_default_currency_from_environment(monkeypatch):
    assert default_currency() == "BRL"
    monkeypatch.setenv("DISTRIBUTION_DEFAULT_CURRENCY", "usd")
    assert default_currency() == "USD"
