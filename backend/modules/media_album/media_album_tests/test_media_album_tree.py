"""
目录树工具测试
"""

from types import SimpleNamespace

from modules.media_album.media_album_tree import (
    ROOT_ID, ROOT_LABEL, INDENT, USED_MARK,
    build_tree, flatten_tree, get_term_ancestors, get_ancestor_chain,
    build_term_path, build_path_from_leaf, build_hierarchical_options,
    build_used_directory_options, recalculate_weights,
)


def term(tid, name, parent_id=0, weight=0):
    return SimpleNamespace(id=tid, name=name, parent_id=parent_id, weight=weight)


def sample_terms():
    # 旅行(1) -> 2024(2) -> 海边(3)；家庭(4) -> 生日(5)；工作(6)
    return [
        term(1, "旅行", 0, 1),
        term(2, "2024", 1, 0),
        term(3, "海边", 2, 0),
        term(4, "家庭", 0, 0),
        term(5, "生日", 4, 0),
        term(6, "工作", 0, 2),
    ]


def by_id(terms):
    return {t.id: t for t in terms}


class TestBuildTree:

    def test_flattened_ids_equal_input(self):
        terms = sample_terms()
        ids = flatten_tree(build_tree(terms))
        assert sorted(ids) == sorted(t.id for t in terms)
        assert len(ids) == len(set(ids))

    def test_children_sorted_by_weight(self):
        tree = build_tree(sample_terms())
        assert [n["text"] for n in tree] == ["家庭", "旅行", "工作"]
        assert tree[1]["children"][0]["id"] == 2
        assert tree[1]["children"][0]["children"][0]["id"] == 3

    def test_ties_sorted_by_name_then_id(self):
        terms = [term(3, "b"), term(2, "a"), term(1, "a")]
        assert [n["id"] for n in build_tree(terms)] == [1, 2, 3]

    def test_node_shape_and_selected(self):
        tree = build_tree([term(1, "旅行", weight=3)], selected_id=1)
        node = tree[0]
        assert node["data"] == {"term_id": 1, "weight": 3}
        assert node["state"]["selected"] is True
        assert node["children"] == []

    def test_unreachable_terms_are_dropped(self):
        # 7 和 8 互为父目录，无法从根到达
        terms = sample_terms() + [term(7, "环A", 8), term(8, "环B", 7)]
        ids = flatten_tree(build_tree(terms))
        assert 7 not in ids and 8 not in ids

    def test_subtree_from_parent(self):
        tree = build_tree(sample_terms(), parent_id=1)
        assert flatten_tree(tree) == [2, 3]

    def test_empty(self):
        assert build_tree([]) == []


class TestAncestors:

    def test_leaf_ancestors_parent_to_root(self):
        assert get_term_ancestors(3, by_id(sample_terms())) == [2, 1]

    def test_top_level_has_no_ancestors(self):
        assert get_term_ancestors(1, by_id(sample_terms())) == []

    def test_unknown_term(self):
        assert get_term_ancestors(99, by_id(sample_terms())) == []

    def test_cycle_terminates(self):
        terms = {7: term(7, "A", 8), 8: term(8, "B", 7)}
        assert get_term_ancestors(7, terms) == [8]

    def test_chain_root_to_leaf(self):
        terms = by_id(sample_terms())
        assert get_ancestor_chain(3, terms) == [ROOT_ID, 1, 2, 3]
        assert get_ancestor_chain(ROOT_ID, terms) == [ROOT_ID]


class TestPaths:

    def test_term_path(self):
        terms = by_id(sample_terms())
        assert build_term_path(3, terms) == "旅行/2024/海边"
        assert build_term_path(3, terms, sep=" > ") == "旅行 > 2024 > 海边"
        assert build_term_path(99, terms) == ""

    def test_path_from_leaf(self):
        tree = build_path_from_leaf(3, by_id(sample_terms()))
        assert tree["tid"] == 1
        assert tree["path"] == "旅行"
        child = tree["children"][0]
        assert child["tid"] == 2
        leaf = child["children"][0]
        assert leaf == {"tid": 3, "name": "海边", "path": "旅行/2024/海边", "children": []}

    def test_path_from_unknown_leaf(self):
        assert build_path_from_leaf(42, by_id(sample_terms())) == {}


class TestOptions:

    def test_hierarchical_options_indent(self):
        options = build_hierarchical_options(sample_terms())
        assert list(options.keys()) == [4, 5, 1, 2, 3, 6]
        assert options[3] == f"{INDENT * 2}海边"

    def test_used_directories_mark_and_dedupe(self):
        result = build_used_directory_options(sample_terms(), [3, 2, 3])
        used = result["used"]
        # 链 [0, 1, 2, 3] 与 [0, 1, 2] 共享祖先，只出现一次
        assert list(used.keys()) == [ROOT_ID, 1, 2, 3]
        assert used[3] == f"{INDENT * 3}{USED_MARK}海边"
        assert used[2] == f"{INDENT * 2}{USED_MARK}2024"
        assert used[1] == f"{INDENT}旅行"
        assert used[ROOT_ID] == ROOT_LABEL
        assert result["root"] is None
        assert set(result["other"].keys()) == {4, 5, 6}

    def test_root_used_directly(self):
        result = build_used_directory_options(sample_terms(), [0])
        assert result["used"] == {ROOT_ID: f"{USED_MARK}{ROOT_LABEL}"}
        assert result["root"] is None

    def test_nothing_used(self):
        result = build_used_directory_options(sample_terms(), [])
        assert result["used"] == {}
        assert result["root"] == f"{INDENT}{ROOT_LABEL}"
        assert len(result["other"]) == 6

    def test_unknown_used_id_skipped(self):
        result = build_used_directory_options(sample_terms(), [99])
        assert result["used"] == {}


class TestWeights:

    def test_dense_weights(self):
        assert recalculate_weights([6, 1, 4]) == {6: 0, 1: 1, 4: 2}
        assert recalculate_weights([]) == {}
