from decimal import Decimal

from budget_hierarchy.core.allocation import build_hierarchy_tree
from tests.factories import FUN, MOM, SUB, line, node


def _names(nodes):
    return [item.name for item in nodes]


def _example_nodes():
    return [
        node("d_a", SUB, "sub_a", "50", "1500"),
        node("d_b", SUB, "sub_b", "50", "1500"),
        node("d_a1", MOM, "mom_1", "50", "750", "d_a"),
        node("d_a2", MOM, "mom_2", "50", "750", "d_a"),
        node("d_b1", MOM, "mom_1", "50", "750", "d_b"),
        node("d_b2", MOM, "mom_2", "50", "750", "d_b"),
    ]


def test_builds_nested_tree_in_stored_order_with_leaf_lines():
    lines = [
        line("l1", "700", subdivision="sub_a", moment="mom_1"),
        line("l2", "50", subdivision="sub_a", moment="mom_1"),
        line("l3", "300", subdivision="sub_b", moment="mom_2"),
    ]
    result = build_hierarchy_tree(_example_nodes(), lines, [SUB, MOM])

    assert result.warnings == []
    assert [item.reference_id for item in result.nodes] == ["sub_a", "sub_b"]
    sub_a, sub_b = result.nodes
    assert [child.reference_id for child in sub_a.children] == ["mom_1", "mom_2"]
    assert all(leaf.amount == Decimal("750") for root in result.nodes for leaf in root.children)
    assert sub_a.children[0].line_ids == ["l1", "l2"]
    assert sub_a.children[0].allocated_amount == Decimal("750")
    assert sub_a.allocated_amount == Decimal("750")
    assert sub_b.children[1].line_ids == ["l3"]
    assert sub_a.children[1].line_ids == []


def test_names_come_from_resolver_and_null_reference_is_general():
    nodes = [
        node("d_a", SUB, "sub_a", "60", "600"),
        node("d_g", SUB, None, "40", "400"),
    ]
    result = build_hierarchy_tree(
        nodes, [], [SUB], lambda level, reference_id: {"sub_a": "Norte"}.get(reference_id)
    )
    assert _names(result.nodes) == ["Norte", "General"]


def test_unresolved_name_falls_back_to_reference_id():
    result = build_hierarchy_tree([node("d_a", SUB, "sub_a", "100", "10")], [], [SUB])
    assert result.nodes[0].name == "sub_a"


def test_empty_order_returns_whole_plan_root_with_every_line():
    lines = [line("l1", "100"), line("l2", None, subdivision="sub_a")]
    result = build_hierarchy_tree([], lines, [], total_budget=Decimal("500"))

    assert len(result.nodes) == 1
    root = result.nodes[0]
    assert root.level is None
    assert root.name == "Plano Completo"
    assert root.amount == Decimal("500")
    assert root.allocated_amount == Decimal("100")
    assert root.percentage == Decimal("100")
    assert root.line_ids == ["l1", "l2"]


def test_empty_order_without_budget_uses_line_total():
    result = build_hierarchy_tree([], [line("l1", "40"), line("l2", "60")], [])
    assert result.nodes[0].amount == Decimal("100")


def test_no_rows_means_empty_tree():
    result = build_hierarchy_tree([], [line("l1", "10", subdivision="sub_a")], [SUB])
    assert result.nodes == []
    assert result.warnings == []


def test_childless_node_above_last_level_gets_general_chain():
    nodes = [node("d_a", SUB, "sub_a", "100", "900")]
    lines = [line("l1", "900", subdivision="sub_a")]
    result = build_hierarchy_tree(nodes, lines, [SUB, MOM, FUN])

    sub_a = result.nodes[0]
    general_moment = sub_a.children[0]
    general_stage = general_moment.children[0]
    assert general_moment.level == MOM
    assert general_moment.name == "General"
    assert general_moment.synthesized is True
    assert general_moment.amount == Decimal("900")
    assert general_moment.percentage == Decimal("100")
    assert general_stage.level == FUN
    assert general_stage.line_ids == ["l1"]
    assert general_stage.allocated_amount == Decimal("900")
    assert result.warnings == []


def test_rows_with_stale_level_are_dropped_with_warning():
    nodes = [
        node("d_a", SUB, "sub_a", "100", "1000"),
        node("d_x", FUN, "fun_1", "100", "1000", "d_a"),
        node("d_y", MOM, "mom_1", "100", "1000", "d_x"),
    ]
    result = build_hierarchy_tree(nodes, [], [SUB, MOM])

    assert "STALE_HIERARCHY_LEVEL:d_x" in result.warnings
    assert "DISTRIBUTION_TOO_DEEP:d_y" in result.warnings
    sub_a = result.nodes[0]
    assert len(sub_a.children) == 1
    assert sub_a.children[0].synthesized is True


def test_whole_tree_stale_after_order_change():
    result = build_hierarchy_tree(_example_nodes(), [], [MOM, SUB])
    assert result.nodes == []
    assert "STALE_HIERARCHY_LEVEL:d_a" in result.warnings
    assert "STALE_HIERARCHY_LEVEL:d_a1" in result.warnings


def test_rows_under_a_dropped_row_are_dropped_too():
    nodes = [
        node("d_x", FUN, "fun_1", "100", "1000"),
        node("d_m", MOM, "mom_1", "100", "1000", "d_x"),
    ]
    result = build_hierarchy_tree(nodes, [], [SUB, MOM])
    assert result.nodes == []
    assert result.warnings == [
        "STALE_HIERARCHY_LEVEL:d_x",
        "DISTRIBUTION_ANCESTOR_DROPPED:d_m",
    ]


def test_dangling_parent_and_cycles_are_dropped():
    nodes = [
        node("d_a", SUB, "sub_a", "100", "1000"),
        node("d_orphan", MOM, "mom_1", "100", "1000", "missing"),
        node("d_c1", MOM, "mom_2", "100", "1000", "d_c2"),
        node("d_c2", MOM, "mom_3", "100", "1000", "d_c1"),
    ]
    result = build_hierarchy_tree(nodes, [], [SUB, MOM])

    assert "DISTRIBUTION_PARENT_MISSING:d_orphan" in result.warnings
    assert "DISTRIBUTION_CYCLE:d_c1" in result.warnings
    assert "DISTRIBUTION_CYCLE:d_c2" in result.warnings
    assert [item.reference_id for item in result.nodes] == ["sub_a"]


def test_duplicate_siblings_are_merged_with_warning():
    nodes = [
        node("d_a", SUB, "sub_a", "30", "300"),
        node("d_a_dup", SUB, "sub_a", "20", "200"),
        node("d_b", SUB, "sub_b", "50", "500"),
        node("d_a1", MOM, "mom_1", "100", "300", "d_a"),
        node("d_a2", MOM, "mom_2", "100", "200", "d_a_dup"),
    ]
    result = build_hierarchy_tree(nodes, [], [SUB, MOM])

    assert "DUPLICATE_SIBLING_MERGED:subdivision:sub_a" in result.warnings
    merged = result.nodes[0]
    assert merged.distribution_id == "d_a"
    assert merged.amount == Decimal("500")
    assert merged.percentage == Decimal("50")
    assert [child.reference_id for child in merged.children] == ["mom_1", "mom_2"]


def test_lines_without_matching_leaf_are_reported():
    nodes = [node("d_a", SUB, "sub_a", "100", "100")]
    lines = [
        line("l1", "60", subdivision="sub_a"),
        line("l2", "40", subdivision="sub_gone"),
    ]
    result = build_hierarchy_tree(nodes, lines, [SUB])
    assert result.nodes[0].line_ids == ["l1"]
    assert result.warnings == ["UNMATCHED_LINES:1"]


def test_lines_without_reference_match_general_leaf():
    nodes = [
        node("d_a", SUB, "sub_a", "50", "50"),
        node("d_g", SUB, None, "50", "50"),
    ]
    lines = [line("l1", "5", subdivision=""), line("l2", "7")]
    result = build_hierarchy_tree(nodes, lines, [SUB])
    assert result.nodes[1].line_ids == ["l1", "l2"]
    assert result.nodes[1].allocated_amount == Decimal("12")
