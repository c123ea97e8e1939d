"""
目录树工具
纯函数实现：树构建、祖先链、路径与下拉选项

term 只需具备 id、name、parent_id（0 为根）、weight 属性
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional

ROOT_ID = 0
ROOT_LABEL = "根目录（无目录）"
INDENT = "– "
USED_MARK = "★ "


def _parent_of(term: Any) -> int:
    return int(term.parent_id or 0)


def _sort_key(term: Any):
    return (term.weight or 0, term.name or "", term.id)


def _children_of(terms: Iterable[Any], parent_id: int) -> List[Any]:
    """筛选父ID等于 parent_id 的目录，按 (权重, 名称, ID) 排序"""
    return sorted((t for t in terms if _parent_of(t) == parent_id), key=_sort_key)


def build_tree(terms: Iterable[Any], parent_id: int = ROOT_ID, selected_id: Optional[int] = None) -> List[dict]:
    """
    自顶向下构建目录树（jstree 节点格式）

    无法从根节点到达的目录不会出现在结果中
    """
    terms = list(terms)
    return _build_tree(terms, parent_id, selected_id, set())


def _build_tree(terms: List[Any], parent_id: int, selected_id: Optional[int], visited: set) -> List[dict]:
    nodes = []
    for term in _children_of(terms, parent_id):
        if term.id in visited:
            continue
        visited.add(term.id)
        nodes.append({
            "id": term.id,
            "text": term.name,
            "data": {
                "term_id": term.id,
                "weight": term.weight or 0,
            },
            "children": _build_tree(terms, term.id, selected_id, visited),
            "state": {
                "selected": selected_id is not None and selected_id == term.id,
            },
        })
    return nodes


def flatten_tree(tree: List[dict]) -> List[int]:
    """深度优先展开树节点ID"""
    ids = []
    for node in tree:
        ids.append(node["id"])
        ids.extend(flatten_tree(node.get("children", [])))
    return ids


def get_term_ancestors(term_id: int, terms_by_id: Mapping[int, Any]) -> List[int]:
    """
    获取目录的祖先ID

    顺序为直接父目录 -> 根，不包含自身；到达父ID 0、未知ID或出现环时停止
    """
    ancestors = []
    visited = {term_id}
    current = terms_by_id.get(term_id)

    while current is not None:
        parent_id = _parent_of(current)
        if parent_id == ROOT_ID or parent_id in visited:
            break
        ancestors.append(parent_id)
        visited.add(parent_id)
        current = terms_by_id.get(parent_id)

    return ancestors


def get_ancestor_chain(term_id: int, terms_by_id: Mapping[int, Any]) -> List[int]:
    """从根到目录自身的完整链 [0, ..., term_id]"""
    if term_id == ROOT_ID:
        return [ROOT_ID]
    ancestors = get_term_ancestors(term_id, terms_by_id)
    return [ROOT_ID] + list(reversed(ancestors)) + [term_id]


def build_term_path(term_id: int, terms_by_id: Mapping[int, Any], sep: str = "/") -> str:
    """按 根 -> 目录 的顺序拼接目录名称"""
    if term_id not in terms_by_id:
        return ""
    chain = get_ancestor_chain(term_id, terms_by_id)[1:]
    return sep.join(terms_by_id[tid].name for tid in chain if tid in terms_by_id)


def build_path_from_leaf(term_id: int, terms_by_id: Mapping[int, Any]) -> dict:
    """
    从叶子目录回溯，构建根 -> 叶子的线性嵌套树（每层只有一个子节点）

    未知目录返回空字典
    """
    if term_id not in terms_by_id:
        return {}

    chain = [tid for tid in get_ancestor_chain(term_id, terms_by_id)[1:] if tid in terms_by_id]
    tree: dict = {}
    for tid in reversed(chain):
        node = {
            "tid": tid,
            "name": terms_by_id[tid].name,
            "path": build_term_path(tid, terms_by_id),
            "children": [tree] if tree else [],
        }
        tree = node
    return tree


def build_hierarchical_options(terms: Iterable[Any], parent_id: int = ROOT_ID, depth: int = 0) -> Dict[int, str]:
    """带缩进的层级下拉选项（保持树的先序顺序）"""
    terms = list(terms)
    return _build_options(terms, parent_id, depth, set())


def _build_options(terms: List[Any], parent_id: int, depth: int, visited: set) -> Dict[int, str]:
    options: Dict[int, str] = {}
    indent = INDENT * depth
    for term in _children_of(terms, parent_id):
        if term.id in visited:
            continue
        visited.add(term.id)
        options[term.id] = f"{indent}{term.name}"
        options.update(_build_options(terms, term.id, depth + 1, visited))
    return options


def build_used_directory_options(terms: Iterable[Any], used_ids: Iterable[int]) -> dict:
    """
    构建“当前使用中的目录”选择器选项

    - 每个使用中的目录展开为从根开始的链，链上ID在多个目录间去重
    - 直接包含媒体的目录加 ★ 标记，祖先目录只缩进
    - other 为不在任何链上的其余目录
    - 根目录出现在链中时不再单独提供根选项
    """
    terms = list(terms)
    terms_by_id = {t.id: t for t in terms}
    used_direct = []
    for used_id in used_ids:
        used_id = int(used_id or 0)
        if used_id not in used_direct:
            used_direct.append(used_id)

    chains = []
    for used_id in used_direct:
        if used_id == ROOT_ID:
            chains.append([ROOT_ID])
        elif used_id in terms_by_id:
            chains.append(get_ancestor_chain(used_id, terms_by_id))

    used_options: Dict[int, str] = {}
    for chain in chains:
        for depth, tid in enumerate(chain):
            if tid in used_options or (tid != ROOT_ID and tid not in terms_by_id):
                continue
            label = ROOT_LABEL if tid == ROOT_ID else terms_by_id[tid].name
            mark = USED_MARK if tid in used_direct else ""
            used_options[tid] = f"{INDENT * depth}{mark}{label}"

    other_options = {
        tid: label
        for tid, label in build_hierarchical_options(terms).items()
        if tid not in used_options
    }

    return {
        "root": None if ROOT_ID in used_options else f"{INDENT}{ROOT_LABEL}",
        "used": used_options,
        "other": other_options,
    }


def recalculate_weights(sibling_ids: Iterable[int]) -> Dict[int, int]:
    """按给定顺序重新计算同级权重（连续的 0..n-1）"""
    return {int(tid): index for index, tid in enumerate(sibling_ids)}
