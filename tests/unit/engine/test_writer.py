from decimal import Decimal

from budget_hierarchy.core.allocation import plan_wizard_distributions, write_distribution_plan
from budget_hierarchy.infrastructure.distributions import InMemoryBudgetDistributionRepository
from tests.factories import MOM, SUB, example_wizard_state


class _RejectingRepository(InMemoryBudgetDistributionRepository):
    def __init__(self, rejected_refs):
        super().__init__()
        self.rejected_refs = set(rejected_refs)
        self.insert_calls = 0

    def insert_distributions(self, plan_id, drafts):
        self.insert_calls += 1
        if any(draft.reference_id in self.rejected_refs for draft in drafts):
            raise RuntimeError("insert rejected")
        return super().insert_distributions(plan_id, drafts)


class _ShortIdRepository(InMemoryBudgetDistributionRepository):
    def insert_distributions(self, plan_id, drafts):
        ids = super().insert_distributions(plan_id, drafts)
        return ids if len(drafts) == 1 else ids[:-1]


def _example_plan():
    return plan_wizard_distributions(example_wizard_state())


def test_full_tree_is_written_with_parent_links(repository):
    result = write_distribution_plan(repository=repository, plan_id="plan_1", plan=_example_plan())

    assert result.count == 6
    assert result.expected_count == 6
    assert result.is_complete
    rows = repository.list_distributions("plan_1")
    by_id = {row.id: row for row in rows}
    roots = [row for row in rows if row.parent_distribution_id is None]
    assert sorted(row.reference_id for row in roots) == ["sub_a", "sub_b"]
    for row in rows:
        if row.distribution_type == MOM:
            assert by_id[row.parent_distribution_id].distribution_type == SUB
            assert row.amount == Decimal("750.00")


def test_failed_row_is_reported_and_its_children_skipped():
    repository = _RejectingRepository({"sub_b"})
    result = write_distribution_plan(repository=repository, plan_id="plan_1", plan=_example_plan())

    assert result.expected_count == 6
    assert result.count == 3
    assert not result.is_complete
    reasons = [(failure.reason, failure.reference_id) for failure in result.failures]
    assert ("INSERT_FAILED", "sub_b") in reasons
    assert reasons.count(("MISSING_PARENT", "mom_1")) == 1
    assert reasons.count(("MISSING_PARENT", "mom_2")) == 1
    insert_failure = next(
        failure for failure in result.failures if failure.reason == "INSERT_FAILED"
    )
    assert insert_failure.detail == "insert rejected"
    stored = repository.list_distributions("plan_1")
    assert {row.reference_id for row in stored} == {"sub_a", "mom_1", "mom_2"}
    assert all(
        row.parent_distribution_id is not None for row in stored if row.distribution_type == MOM
    )


def test_id_count_mismatch_falls_back_to_row_inserts():
    repository = _ShortIdRepository()
    result = write_distribution_plan(repository=repository, plan_id="plan_1", plan=_example_plan())
    assert result.count == 6
    assert result.failures == []


def test_empty_plan_writes_nothing(repository):
    result = write_distribution_plan(
        repository=repository,
        plan_id="plan_1",
        plan=plan_wizard_distributions(
            example_wizard_state().model_copy(update={"hierarchy_order": ()})
        ),
    )
    assert result.count == 0
    assert result.expected_count == 0
    assert result.is_complete
