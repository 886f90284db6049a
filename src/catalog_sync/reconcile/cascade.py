"""
Soft-delete cascade over the asset hierarchy.
"""

import logging
from typing import List, Optional

from ..core.asset_store import AssetStore
from ..core.models import AssetRecord, LifecycleState
from ..detection.fingerprint import derive_propagation_state
from .hierarchy import AssetGraph


logger = logging.getLogger(__name__)


class CascadeEngine:
    """
    Marks a record DELETED together with everything that depends on it.

    Dependents are found by walking an AssetGraph, so a child is marked in
    the same pass as its parent no matter when its own type is reconciled.
    """

    def __init__(self, store: AssetStore):
        self.store = store

    def soft_delete(self, record: AssetRecord, graph: Optional[AssetGraph] = None) -> List[AssetRecord]:
        """
        Soft-delete a record and cascade to its dependents.

        Args:
            record: Record that disappeared from the source
            graph: Hierarchy for the current pass (built on demand if omitted)

        Returns:
            Records transitioned to DELETED, the root first
        """
        key = record.natural_key
        if graph is None:
            graph = AssetGraph.build(self.store, record.asset_type, record.scope_id)

        root = graph.get(key) or record
        marked: List[AssetRecord] = []

        if not root.is_deleted:
            self._mark(root)
            marked.append(root)
            logger.info(f"Soft deleted {record.asset_type.value}: {root.name} ({key})")

        for dependent in graph.descendants(key):
            if dependent.is_deleted:
                continue
            self._mark(dependent)
            marked.append(dependent)
            logger.debug(f"Cascaded deletion to {dependent.asset_type.value}: {dependent.name}")

        if len(marked) > 1:
            logger.info(f"Cascade from {key} marked {len(marked) - 1} dependents")
        return marked

    def _mark(self, record: AssetRecord) -> None:
        record.propagation_state = derive_propagation_state(
            LifecycleState.DELETED, record.propagation_state
        )
        record.lifecycle_state = LifecycleState.DELETED
        self.store.upsert(record)
