from decimal import Decimal

import pytest
from pydantic import ValidationError

from budget_hierarchy.core.allocation import (
    allocations_for,
    apply_allocation,
    remove_allocation_item,
    set_hierarchy_order,
    set_total_budget,
    update_allocation_percentage,
)
from tests.factories import (
    FUN,
    MOM,
    SUB,
    alloc,
    example_wizard_state,
    seg,
    wizard_state,
)


def _parent_paths(state):
    return [entry.parent_path for entry in state.allocations]


def test_state_is_immutable():
    state = example_wizard_state()
    with pytest.raises(ValidationError):
        state.total_budget = Decimal("1")


def test_invalid_order_is_rejected_on_construction():
    with pytest.raises(ValueError):
        wizard_state(order=[SUB, SUB])


def test_transitions_return_new_states():
    state = example_wizard_state()
    updated = set_total_budget(state, Decimal("5000"))
    assert updated.total_budget == Decimal("5000")
    assert state.total_budget == Decimal("3000")
    assert updated.allocations == state.allocations


def test_negative_budget_is_rejected():
    with pytest.raises(ValueError, match="TOTAL_BUDGET_NEGATIVE"):
        set_total_budget(example_wizard_state(), Decimal("-1"))


def test_replacing_a_list_prunes_lists_under_removed_items():
    state = apply_allocation(example_wizard_state(), (), [alloc("sub_a", "100")])

    assert allocations_for(state, ()) == (alloc("sub_a", "100"),)
    assert _parent_paths(state) == [(seg(SUB, "sub_a"),), ()]
    assert allocations_for(state, (seg(SUB, "sub_b"),)) == ()


def test_empty_list_makes_the_level_implicit():
    state = apply_allocation(example_wizard_state(), (), [])
    assert state.allocations == ()


def test_nested_list_is_added_under_its_parent():
    state = wizard_state(order=[SUB, MOM, FUN])
    state = apply_allocation(state, (), [alloc("sub_a", "100")])
    state = apply_allocation(state, (seg(SUB, "sub_a"),), [alloc("mom_1", "100")])
    state = apply_allocation(
        state,
        (seg(SUB, "sub_a"), seg(MOM, "mom_1")),
        [alloc("fun_1", "70"), alloc("fun_2", "30")],
    )
    assert len(state.allocations) == 3

    state = apply_allocation(state, (seg(SUB, "sub_a"),), [alloc("mom_2", "100")])
    assert len(state.allocations) == 2
    assert allocations_for(state, (seg(SUB, "sub_a"), seg(MOM, "mom_1"))) == ()


def test_paths_outside_the_order_are_rejected():
    state = example_wizard_state()
    with pytest.raises(ValueError, match="ALLOCATION_PATH_OUTSIDE_HIERARCHY"):
        apply_allocation(state, (seg(MOM, "mom_1"),), [alloc("x", "100")])
    with pytest.raises(ValueError, match="ALLOCATION_PATH_OUTSIDE_HIERARCHY"):
        apply_allocation(state, (seg(SUB, "sub_a"), seg(MOM, "mom_1")), [alloc("x", "100")])


def test_changing_order_drops_lists_that_no_longer_fit():
    state = example_wizard_state()

    swapped = set_hierarchy_order(state, [MOM, SUB])
    assert swapped.hierarchy_order == (MOM, SUB)
    assert _parent_paths(swapped) == [()]

    shortened = set_hierarchy_order(state, ["subdivision"])
    assert _parent_paths(shortened) == [()]

    cleared = set_hierarchy_order(state, [])
    assert cleared.allocations == ()


def test_update_percentage_of_one_item():
    state = update_allocation_percentage(example_wizard_state(), (), "sub_a", Decimal("70"))
    percentages = [item.percentage for item in allocations_for(state, ())]
    assert percentages == [Decimal("70"), Decimal("50")]
    assert len(state.allocations) == 3


def test_update_unknown_item_fails():
    with pytest.raises(ValueError, match="ALLOCATION_ITEM_NOT_FOUND:sub_z"):
        update_allocation_percentage(example_wizard_state(), (), "sub_z", Decimal("10"))


def test_remove_item_prunes_its_subtree():
    state = remove_allocation_item(example_wizard_state(), (), "sub_b")
    assert [item.id for item in allocations_for(state, ())] == ["sub_a"]
    assert allocations_for(state, (seg(SUB, "sub_b"),)) == ()
    assert len(allocations_for(state, (seg(SUB, "sub_a"),))) == 2
