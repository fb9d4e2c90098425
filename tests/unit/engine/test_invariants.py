from decimal import Decimal

from budget_hierarchy.core.allocation import check_distribution_invariants
from tests.factories import MOM, SUB, node


def _codes(violations):
    return sorted(violation.code for violation in violations)


def test_consistent_tree_has_no_violations():
    nodes = [
        node("d_a", SUB, "sub_a", "50", "1500"),
        node("d_b", SUB, "sub_b", "50", "1500"),
        node("d_a1", MOM, "mom_1", "100", "1500", "d_a"),
    ]
    assert check_distribution_invariants(nodes, [SUB, MOM], Decimal("3000")) == []


def test_sibling_percentages_must_sum_to_100():
    nodes = [
        node("d_a", SUB, "sub_a", "50", "500"),
        node("d_b", SUB, "sub_b", "40", "400"),
    ]
    violations = check_distribution_invariants(nodes, [SUB], Decimal("1000"))
    assert _codes(violations) == ["SIBLING_PERCENTAGE_SUM"]
    assert violations[0].parent_distribution_id is None


def test_amounts_allow_one_minor_unit_of_rounding():
    nodes = [
        node("d_a", SUB, "sub_a", "33.33", "333.31"),
        node("d_b", SUB, "sub_b", "33.33", "333.30"),
        node("d_c", SUB, "sub_c", "33.34", "333.50"),
    ]
    violations = check_distribution_invariants(nodes, [SUB], Decimal("1000"))
    assert [violation.distribution_id for violation in violations] == ["d_c"]
    assert violations[0].code == "AMOUNT_MISMATCH"


def test_first_level_amounts_are_not_checked_without_budget():
    nodes = [node("d_a", SUB, "sub_a", "100", "12345")]
    assert check_distribution_invariants(nodes, [SUB]) == []


def test_missing_parent_stale_level_and_duplicates():
    nodes = [
        node("d_a", SUB, "sub_a", "50", "50"),
        node("d_a_dup", SUB, "sub_a", "50", "50"),
        node("d_m", MOM, "mom_1", "100", "50", "ghost"),
        node("d_s", SUB, "sub_z", "100", "50", "d_a"),
    ]
    violations = check_distribution_invariants(nodes, [SUB, MOM], Decimal("100"))
    assert _codes(violations) == ["DUPLICATE_SIBLING", "MISSING_PARENT", "STALE_HIERARCHY_LEVEL"]
    stale = next(violation for violation in violations if violation.code == "STALE_HIERARCHY_LEVEL")
    assert stale.distribution_id == "d_s"
