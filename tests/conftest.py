"""
FILE: tests/conftest.py
Shared fixtures for engine, service and API tests.
"""

from pathlib import Path

import pytest

from budget_hierarchy.infrastructure.distributions import InMemoryBudgetDistributionRepository


def _has_marker(item: pytest.Item, name: str) -> bool:
    return item.get_closest_marker(name) is not None


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        if (
            _has_marker(item, "unit")
            or _has_marker(item, "integration")
            or _has_marker(item, "e2e")
        ):
            continue

        path = Path(str(item.fspath)).as_posix().lower()
        if "/tests/integration/" in path or "_integration.py" in path:
            item.add_marker(pytest.mark.integration)
            continue
        if "/tests/e2e/" in path:
            item.add_marker(pytest.mark.e2e)
            continue
        item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def local_persistence_environment(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DISTRIBUTION_STORE_BACKEND", "IN_MEMORY")
    monkeypatch.setenv("APP_PERSISTENCE_PROFILE", "LOCAL")
    monkeypatch.delenv("DISTRIBUTION_POSTGRES_DSN", raising=False)
    monkeypatch.delenv("DISTRIBUTION_DEFAULT_CURRENCY", raising=False)


@pytest.fixture
def repository():
    return InMemoryBudgetDistributionRepository()
