"""
收藏夹树构建
把扁平的收藏夹列表还原成层级结构，纯函数，不访问数据库

- 父收藏夹不在列表中（已删除或属于其他用户）的节点作为根节点
- 异常数据中的循环引用会被断开：环上排序最靠前的节点成为根节点
- 同级节点按名称排序（不区分大小写、兼容全角/组合字符），名称相同按 id
"""

import unicodedata
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel

from .brain_schemas import CollectionTreeNode, ParentOption

# 父收藏夹下拉框中子级的缩进（不换行空格，避免被浏览器折叠）
OPTION_INDENT = "\u00a0" * 3
OPTION_PREFIX = "↳ "


def sort_key(node: CollectionTreeNode) -> Tuple[str, str, int]:
    """同级排序键：规范化名称 → 原始名称 → id，保证输入顺序不影响结果"""
    folded = unicodedata.normalize("NFKD", node.name).casefold()
    return folded, node.name, node.id


def _to_node(item: Any) -> CollectionTreeNode:
    # 复制一份，不修改调用方传入的节点
    if isinstance(item, BaseModel):
        item = item.model_dump(exclude={"children", "depth"})
    node = CollectionTreeNode.model_validate(item)
    node.children = []
    node.depth = 0
    return node


def _resolve_parents(nodes: Dict[int, CollectionTreeNode]) -> Dict[int, Optional[int]]:
    """确定每个节点的有效父节点，并断开循环引用"""
    parent_of: Dict[int, Optional[int]] = {
        node_id: node.parent_id if node.parent_id in nodes else None
        for node_id, node in nodes.items()
    }

    done = set()
    for start in nodes:
        path: List[int] = []
        on_path = set()
        current = start
        while current is not None and current not in done:
            if current in on_path:
                # 环上的节点集合与遍历起点无关，选排序最小者作为根
                cycle = path[path.index(current):]
                breaker = min(cycle, key=lambda i: sort_key(nodes[i]))
                parent_of[breaker] = None
                break
            path.append(current)
            on_path.add(current)
            current = parent_of[current]
        done.update(path)

    return parent_of


def build_collection_tree(collections: Iterable[Any]) -> List[CollectionTreeNode]:
    """
    从扁平列表构建收藏夹树

    Args:
        collections: 收藏夹（ORM 对象、CollectionInfo 或字典，需包含 id/name/parent_id）

    Returns:
        根节点列表；每个输入节点恰好出现一次，depth 从 0 开始
    """
    nodes: Dict[int, CollectionTreeNode] = {}
    for item in collections:
        node = _to_node(item)
        nodes.setdefault(node.id, node)

    parent_of = _resolve_parents(nodes)

    roots: List[CollectionTreeNode] = []
    for node_id, node in nodes.items():
        parent_id = parent_of[node_id]
        if parent_id is None:
            roots.append(node)
        else:
            nodes[parent_id].children.append(node)

    # 迭代方式排序并计算深度，避免深层级时递归过深
    roots.sort(key=sort_key)
    stack = [(root, 0) for root in roots]
    while stack:
        node, depth = stack.pop()
        node.depth = depth
        node.children.sort(key=sort_key)
        stack.extend((child, depth + 1) for child in node.children)

    return roots


def flatten_collection_tree(tree: List[CollectionTreeNode]) -> List[CollectionTreeNode]:
    """深度优先展开：父节点之后紧跟其整棵子树"""
    result: List[CollectionTreeNode] = []
    stack = list(reversed(tree))
    while stack:
        node = stack.pop()
        result.append(node)
        stack.extend(reversed(node.children))
    return result


def build_descendant_map(tree: List[CollectionTreeNode]) -> Dict[int, List[int]]:
    """每个收藏夹 id → 全部后代 id（深度优先顺序）"""
    descendant_map: Dict[int, List[int]] = {}
    # 逆先序遍历保证子节点先于父节点计算
    for node in reversed(flatten_collection_tree(tree)):
        descendants: List[int] = []
        for child in node.children:
            descendants.append(child.id)
            descendants.extend(descendant_map[child.id])
        descendant_map[node.id] = descendants
    return descendant_map


def build_parent_options(
    tree: List[CollectionTreeNode],
    exclude_id: Optional[int] = None
) -> List[ParentOption]:
    """
    生成父收藏夹下拉选项

    子级名称前加缩进和 ↳ 前缀；指定 exclude_id 时排除该收藏夹及其后代
    """
    excluded = set()
    if exclude_id is not None:
        descendants = build_descendant_map(tree)
        if exclude_id in descendants:
            excluded = {exclude_id, *descendants[exclude_id]}

    options = []
    for node in flatten_collection_tree(tree):
        if node.id in excluded:
            continue
        label = node.name if node.depth == 0 else f"{OPTION_INDENT * node.depth}{OPTION_PREFIX}{node.name}"
        options.append(ParentOption(id=node.id, name=node.name, depth=node.depth, label=label))
    return options
