from datetime import date
from decimal import Decimal

import pytest

from budget_hierarchy.core.allocation import (
    allocations_for,
    build_hierarchy_tree,
    check_distribution_invariants,
    plan_wizard_distributions,
    wizard_state_from_distributions,
    write_distribution_plan,
)
from budget_hierarchy.core.common.money import even_percentages
from budget_hierarchy.core.models import BudgetAllocation
from tests.factories import (
    FUN,
    MOM,
    SUB,
    alloc,
    example_wizard_state,
    level_allocations,
    seg,
    wizard_state,
)


def _save(repository, state):
    write_distribution_plan(
        repository=repository, plan_id="plan_1", plan=plan_wizard_distributions(state)
    )
    return repository.list_distributions("plan_1")


def _reload(rows, state):
    return wizard_state_from_distributions(
        rows,
        state.hierarchy_order,
        plan_id=state.plan_id,
        total_budget=state.total_budget,
        currency=state.currency,
    )


def _shape(state):
    return sorted(
        (
            tuple(segment.reference_id for segment in entry.parent_path),
            tuple((item.id, item.percentage) for item in entry.items),
        )
        for entry in state.allocations
    )


def test_saved_tree_reloads_into_the_same_allocations(repository):
    saved_state = example_wizard_state()
    reloaded = _reload(_save(repository, saved_state), saved_state)

    assert _shape(reloaded) == _shape(saved_state)
    assert [item.amount for item in allocations_for(reloaded, ())] == [
        Decimal("1500.00"),
        Decimal("1500.00"),
    ]


def test_reloaded_state_plans_the_same_rows(repository):
    saved_state = example_wizard_state()
    rows = _save(repository, saved_state)
    replanned = plan_wizard_distributions(_reload(rows, saved_state))
    assert [(item.path, item.amount) for item in replanned.items] == [
        (item.path, item.amount) for item in plan_wizard_distributions(saved_state).items
    ]


def test_implicit_general_level_stays_implicit(repository):
    saved_state = wizard_state(
        total_budget="800",
        allocations=[level_allocations((), alloc("sub_a", "25"), alloc("sub_b", "75"))],
    )
    rows = _save(repository, saved_state)
    assert len(rows) == 4

    reloaded = _reload(rows, saved_state)
    assert _shape(reloaded) == _shape(saved_state)


def test_dates_survive_the_round_trip(repository):
    moment = BudgetAllocation(
        id="mom_1",
        name="Lançamento",
        percentage=Decimal("100"),
        start_date=date(2026, 5, 1),
        end_date=date(2026, 5, 31),
    )
    saved_state = wizard_state(
        total_budget="100",
        allocations=[
            level_allocations((), alloc("sub_a", "100")),
            level_allocations([seg(SUB, "sub_a")], moment),
        ],
    )
    reloaded = _reload(_save(repository, saved_state), saved_state)
    item = allocations_for(reloaded, (seg(SUB, "sub_a"),))[0]
    assert (item.start_date, item.end_date) == (date(2026, 5, 1), date(2026, 5, 31))


def test_sum_of_leaves_matches_budget_after_save(repository):
    rows = _save(repository, example_wizard_state())
    tree = build_hierarchy_tree(rows, [], [SUB, MOM])
    leaves = [leaf for root in tree.nodes for leaf in root.children]
    assert sum(leaf.amount for leaf in leaves) == Decimal("3000")


def _fanned_out_state(fan_outs):
    levels = [SUB, MOM, FUN][: len(fan_outs)]
    allocations = []
    parents = [()]
    for level, fan_out in zip(levels, fan_outs):
        shares = even_percentages(fan_out)
        children = []
        for parent in parents:
            items = [
                alloc(f"{level.value}_{index}", str(share)) for index, share in enumerate(shares)
            ]
            allocations.append(level_allocations(parent, *items))
            children.extend((*parent, seg(level, item.id)) for item in items)
        parents = children
    return wizard_state(total_budget="1234567.89", order=levels, allocations=allocations)


@pytest.mark.parametrize(
    "fan_outs, expected_rows",
    [
        ((1,), 1),
        ((12,), 12),
        ((3, 1), 6),
        ((1, 12), 13),
        ((1, 1, 1), 3),
        ((2, 12, 1), 50),
        ((12, 7, 3), 348),
    ],
)
def test_wide_and_deep_trees_round_trip(repository, fan_outs, expected_rows):
    saved_state = _fanned_out_state(fan_outs)
    rows = _save(repository, saved_state)
    reloaded = _reload(rows, saved_state)
    replanned = plan_wizard_distributions(reloaded)

    assert len(rows) == expected_rows
    assert _shape(reloaded) == _shape(saved_state)
    assert [(item.path, item.amount) for item in replanned.items] == [
        (item.path, item.amount) for item in plan_wizard_distributions(saved_state).items
    ]
    assert (
        check_distribution_invariants(
            rows, saved_state.hierarchy_order, saved_state.total_budget, saved_state.currency
        )
        == []
    )
