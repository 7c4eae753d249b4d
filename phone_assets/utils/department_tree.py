"""
Department hierarchy as an immutable tree.

Selections made against the tree (campaign scopes, directory filters) are
resolved here without touching the database: the caller loads the rows once,
builds a DepartmentTree and asks it questions. Results are memoized per tree.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Hashable, Iterable, Mapping

NodeId = Hashable


@dataclass(frozen=True)
class Selection:
    """Resolved checkbox state of a tree selection."""

    effective: frozenset
    indeterminate: frozenset


@dataclass(frozen=True)
class DepartmentTree:
    parents: Mapping[NodeId, NodeId | None]
    children: Mapping[NodeId, tuple[NodeId, ...]]
    _descendants: dict = field(default_factory=dict, compare=False, repr=False)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.parents

    @property
    def roots(self) -> tuple[NodeId, ...]:
        return tuple(
            node_id
            for node_id, parent in self.parents.items()
            if parent is None or parent not in self.parents
        )


def build_tree(rows: Iterable[tuple[NodeId, NodeId | None]]) -> DepartmentTree:
    """Build a tree from (id, parent_id) pairs. Parents missing from rows make a node a root."""
    parents: dict[NodeId, NodeId | None] = {}
    for node_id, parent_id in rows:
        parents[node_id] = parent_id

    children: dict[NodeId, list[NodeId]] = {node_id: [] for node_id in parents}
    for node_id, parent_id in parents.items():
        if parent_id is not None and parent_id in children and parent_id != node_id:
            children[parent_id].append(node_id)

    return DepartmentTree(
        parents=MappingProxyType(parents),
        children=MappingProxyType({k: tuple(v) for k, v in children.items()}),
    )


def descendants(tree: DepartmentTree, node_id: NodeId) -> frozenset:
    """The node plus every node below it. Unknown ids resolve to just themselves."""
    cached = tree._descendants.get(node_id)
    if cached is not None:
        return cached

    found: set[NodeId] = set()
    stack = [node_id]
    while stack:
        current = stack.pop()
        if current in found:
            continue  # cycle in bad data
        found.add(current)
        stack.extend(tree.children.get(current, ()))

    result = frozenset(found)
    tree._descendants[node_id] = result
    return result


def expand_selection(tree: DepartmentTree, selected: Iterable[NodeId]) -> frozenset:
    """Downward propagation: every selected node and its whole subtree."""
    expanded: set[NodeId] = set()
    for node_id in selected:
        expanded |= descendants(tree, node_id)
    return frozenset(expanded)


def resolve_selection(tree: DepartmentTree, selected: Iterable[NodeId]) -> Selection:
    """
    Resolve a checkbox selection to its effective and indeterminate sets.

    Selecting a node selects its subtree; a parent whose children are all
    effective becomes effective itself (checked upward until a parent has an
    unselected child). A node that is not effective but has an effective
    descendant is indeterminate.
    """
    effective = set(expand_selection(tree, selected))

    changed = True
    while changed:
        changed = False
        for node_id, kids in tree.children.items():
            if node_id in effective or not kids:
                continue
            if all(kid in effective for kid in kids):
                effective.add(node_id)
                changed = True

    indeterminate: set[NodeId] = set()
    for node_id in effective:
        parent = tree.parents.get(node_id)
        seen: set[NodeId] = set()
        while parent is not None and parent in tree and parent not in seen:
            seen.add(parent)
            if parent not in effective:
                indeterminate.add(parent)
            parent = tree.parents.get(parent)

    return Selection(effective=frozenset(effective), indeterminate=frozenset(indeterminate))
