"""
In-memory asset hierarchy keyed by natural key.

Built once per reconciliation pass from the store, so cascades are a plain
graph walk instead of one lookup per parent/child pair.
"""

import logging
from collections import defaultdict, deque
from typing import Dict, Iterator, List, Optional, Set

from ..core.asset_store import AssetStore
from ..core.models import (
    CASCADE_ROLES,
    EXPORT_ORDER,
    GLOBAL_TYPES,
    PARENT_ROLE_TYPES,
    AssetRecord,
    AssetType,
    NaturalKey,
)


logger = logging.getLogger(__name__)


def _child_types() -> Dict[AssetType, Set[AssetType]]:
    children: Dict[AssetType, Set[AssetType]] = defaultdict(set)
    for child_type, roles in CASCADE_ROLES.items():
        for role in roles:
            children[PARENT_ROLE_TYPES[role]].add(child_type)
    return children


CHILD_TYPES = _child_types()


def subtree_types(root_type: AssetType) -> List[AssetType]:
    """
    Asset types reachable from ``root_type`` along cascade edges.

    Returns:
        The root type and its transitive dependents, in export order
    """
    reachable = {root_type}
    pending = [root_type]
    while pending:
        for child in CHILD_TYPES.get(pending.pop(), ()):
            if child not in reachable:
                reachable.add(child)
                pending.append(child)
    return [t for t in EXPORT_ORDER if t in reachable]


class AssetGraph:
    """
    Records and their ownership edges.

    Each record hangs off at most one cascade parent: the first role in
    CASCADE_ROLES whose parent is present in the graph.
    """

    def __init__(self):
        self.nodes: Dict[NaturalKey, AssetRecord] = {}
        self._children: Dict[NaturalKey, List[NaturalKey]] = defaultdict(list)

    @classmethod
    def build(cls, store: AssetStore, root_type: AssetType, scope: str) -> "AssetGraph":
        """
        Load the subtree below ``root_type`` for one scope.

        Tombstones are loaded too, so a walk can pass through an already
        deleted record to dependents that are still alive.

        Args:
            store: Asset store to read from
            root_type: Type whose deletions will be cascaded
            scope: Scope of the pass; ignored when the root is a global type
        """
        graph = cls()
        for asset_type in subtree_types(root_type):
            if root_type in GLOBAL_TYPES or asset_type in GLOBAL_TYPES:
                records = store.get_all(asset_type)
            else:
                records = store.get_all(asset_type, scope)
            for record in records:
                graph.add(record)
        graph.link()
        logger.debug(f"Built asset graph below {root_type.value} with {len(graph)} records")
        return graph

    def add(self, record: AssetRecord) -> None:
        self.nodes[record.natural_key] = record

    def link(self) -> None:
        """(Re)compute parent -> child edges from the loaded records."""
        self._children = defaultdict(list)
        for key, record in self.nodes.items():
            parent = self.cascade_parent(record)
            if parent is not None:
                self._children[parent].append(key)

    def cascade_parent(self, record: AssetRecord) -> Optional[NaturalKey]:
        for role in CASCADE_ROLES[record.asset_type]:
            parent_key = record.parent_key(role)
            if parent_key is not None and parent_key in self.nodes and parent_key != record.natural_key:
                return parent_key
        return None

    def get(self, key: NaturalKey) -> Optional[AssetRecord]:
        return self.nodes.get(key)

    def children(self, key: NaturalKey) -> List[AssetRecord]:
        return [self.nodes[k] for k in self._children.get(key, [])]

    def descendants(self, key: NaturalKey) -> Iterator[AssetRecord]:
        """Breadth-first walk below ``key``, each record visited once."""
        visited = {key}
        queue = deque(self._children.get(key, []))
        while queue:
            child_key = queue.popleft()
            if child_key in visited:
                continue
            visited.add(child_key)
            yield self.nodes[child_key]
            queue.extend(self._children.get(child_key, []))

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, key: NaturalKey) -> bool:
        return key in self.nodes
