"""Tests for src.drivertree.builder -- hierarchy sheets to DriverTree."""

from src.drivertree.builder import (
    DriverTreeBuilder,
    build_driver_tree,
    build_from_indented_column,
    find_level_columns,
)


LEVEL_ROWS = [
    ["Level 1", "Level 2", "Level 3"],
    ["Margin", "Revenue", "Fees"],
    ["Margin", "Revenue", "Custody"],
    ["Margin", "Expense", None],
    [None, None, None],
    ["Volume", "AUM", None],
]


class TestFindLevelColumns:

    def test_sorted_by_level(self):
        assert find_level_columns(["Level 2", "Name", "Level 1"]) == [(2, 1), (0, 2)]

    def test_bare_level_headers_get_next_level(self):
        assert find_level_columns(["level", "level"]) == [(0, 1), (1, 2)]

    def test_zero_based_levels(self):
        assert find_level_columns(["Level 0", "Level 1"]) == [(0, 0), (1, 1)]

    def test_non_string_headers_ignored(self):
        assert find_level_columns([None, 3, "Level 1"]) == [(2, 1)]


class TestLevelColumnLayout:

    def test_paths_are_deduplicated(self):
        tree = build_driver_tree(LEVEL_ROWS)
        assert [r.name for r in tree.roots] == ["Margin", "Volume"]
        margin = tree.roots[0]
        assert [c.name for c in margin.children] == ["Revenue", "Expense"]
        assert [c.name for c in margin.children[0].children] == ["Fees", "Custody"]
        assert len(tree) == 7

    def test_ids_and_parents(self):
        tree = build_driver_tree(LEVEL_ROWS)
        margin = tree.roots[0]
        revenue = margin.children[0]
        assert margin.id == "node-0"
        assert margin.parent_id is None
        assert revenue.parent_id == margin.id
        assert revenue.children[0].parent_id == revenue.id
        assert len({n.id for n in tree.iter_nodes()}) == len(tree)

    def test_levels_come_from_headers(self):
        tree = build_driver_tree(LEVEL_ROWS)
        margin = tree.roots[0]
        assert margin.level == 1
        assert margin.children[0].level == 2
        assert margin.children[0].children[0].level == 3
        assert tree.max_level == 3

    def test_blank_cell_stops_the_path(self):
        tree = build_driver_tree([
            ["Level 1", "Level 2", "Level 3"],
            ["Margin", None, "Orphan"],
        ])
        assert len(tree) == 1
        assert tree.roots[0].is_leaf

    def test_same_name_under_different_parents_is_distinct(self):
        tree = build_driver_tree([
            ["Level 1", "Level 2"],
            ["A", "Other"],
            ["B", "Other"],
        ])
        assert len(tree.find_by_name("other")) == 2

    def test_leaves(self):
        tree = build_driver_tree(LEVEL_ROWS)
        assert [n.name for n in tree.leaves()] == ["Fees", "Custody", "Expense", "AUM"]

    def test_empty_rows(self):
        assert len(build_driver_tree([])) == 0


class TestIndentedLayout:

    def test_depth_from_prefix(self):
        tree = build_driver_tree([
            ["Margin"],
            ["  Revenue"],
            ["    Fees"],
            ["  Expense"],
            ["- Comp"],
        ])
        assert len(tree.roots) == 1
        margin = tree.roots[0]
        assert margin.level == 1
        assert [c.name for c in margin.children] == ["Revenue", "Expense", "Comp"]
        assert margin.children[0].children[0].name == "Fees"
        assert margin.children[0].children[0].level == 3

    def test_no_deduplication(self):
        tree = build_from_indented_column([["A"], ["  B"], ["  B"]])
        assert [c.name for c in tree.roots[0].children] == ["B", "B"]

    def test_shallower_node_pops_back(self):
        tree = build_from_indented_column([["A"], ["  B"], ["    C"], ["D"]])
        assert [r.name for r in tree.roots] == ["A", "D"]

    def test_blank_rows_skipped(self):
        tree = build_from_indented_column([["A"], [None], [""], ["  B"]])
        assert len(tree) == 2


class TestDriverTreeBuilder:

    def test_get_or_create_reuses(self):
        builder = DriverTreeBuilder()
        root = builder.get_or_create("Root", 1, None)
        again = builder.get_or_create("Root", 1, None)
        assert root is again
        child = builder.get_or_create("Child", 2, root)
        assert root.children == [child]
        assert len(builder.build()) == 2
