"""
Reconciliation of one asset type and scope against the local store.
"""

import logging
from typing import Optional, Set

from ..core.asset_store import AssetStore
from ..core.connector import SourceConnector
from ..core.exceptions import CatalogSyncError, RecordMappingError
from ..core.models import (
    AssetRecord,
    AssetType,
    LifecycleState,
    NaturalKey,
    NormalizedRecord,
    PropagationState,
    ReconciliationResult,
    scope_for,
)
from ..detection.fingerprint import (
    classify_change,
    derive_propagation_state,
    fingerprint_record,
)
from .cascade import CascadeEngine
from .hierarchy import AssetGraph


logger = logging.getLogger(__name__)


class Reconciler:
    """
    Mirrors the source listing of one asset type into the store.

    Workflow per pass:
    1. Fetch the complete listing from the source adapter
    2. Classify each record against its stored counterpart and upsert it
    3. Soft-delete (with cascade) every active record that was not seen
    """

    def __init__(
        self,
        store: AssetStore,
        source: SourceConnector,
        cascade: Optional[CascadeEngine] = None,
    ):
        """
        Initialize the reconciler.

        Args:
            store: Local asset store
            source: Source catalog adapter
            cascade: Cascade engine (defaults to one over the same store)
        """
        self.store = store
        self.source = source
        self.cascade = cascade or CascadeEngine(store)

    def reconcile(self, asset_type: AssetType, scope: str) -> ReconciliationResult:
        """
        Run one reconciliation pass.

        Args:
            asset_type: Type to reconcile
            scope: Site id (servers and sites are reconciled globally)

        Returns:
            ReconciliationResult with per-state counts
        """
        asset_type = AssetType(asset_type)
        result = ReconciliationResult(asset_type=asset_type, scope=scope)
        logger.info(f"Reconciling {asset_type.value} records for scope {scope}")

        try:
            fetched = self.source.fetch(asset_type, scope)
        except CatalogSyncError as e:
            logger.error(f"Fetch of {asset_type.value} failed, store left untouched: {e}")
            result.success = False
            result.error = str(e)
            return result

        # Nodes the adapter could not normalize never reach _apply_all
        for message in self.source.skipped_records():
            result.failed += 1
            result.errors.append(message)

        try:
            seen = self._apply_all(fetched, asset_type, scope, result)
            self._delete_unseen(asset_type, scope, seen, result)
        except CatalogSyncError as e:
            logger.exception(f"Reconciliation of {asset_type.value} aborted: {e}")
            result.success = False
            result.error = str(e)

        logger.info(
            f"Reconciled {asset_type.value}: total={result.total} new={result.new} "
            f"updated={result.updated} unchanged={result.unchanged} "
            f"deleted={result.deleted} cascaded={result.cascaded} failed={result.failed}"
        )
        return result

    def _apply_all(
        self,
        fetched,
        asset_type: AssetType,
        scope: str,
        result: ReconciliationResult,
    ) -> Set[NaturalKey]:
        seen: Set[NaturalKey] = set()

        for normalized in fetched:
            try:
                if normalized.asset_type != asset_type:
                    raise RecordMappingError(
                        f"Expected {asset_type.value}, got {normalized.asset_type.value} "
                        f"record {normalized.asset_id}",
                        asset_type=asset_type.value,
                        asset_id=normalized.asset_id,
                    )

                key = normalized.natural_key(scope)
                if key in seen:
                    logger.debug(f"Skipping duplicate {key} in fetch")
                    continue
                seen.add(key)

                state = self._apply(normalized, key, scope)
                if state == LifecycleState.NEW:
                    result.new += 1
                elif state == LifecycleState.UPDATED:
                    result.updated += 1
                else:
                    result.unchanged += 1

            except RecordMappingError as e:
                result.failed += 1
                result.errors.append(str(e))
                logger.warning(f"Skipping unmappable {asset_type.value} record: {e}")

        return seen

    def _apply(self, normalized: NormalizedRecord, key: NaturalKey, scope: str) -> LifecycleState:
        """Classify and upsert one record, returning its new lifecycle state."""
        fingerprint = fingerprint_record(normalized, scope)
        existing = self.store.get_by_natural_key(key)

        if existing is None:
            record = AssetRecord(
                asset_type=normalized.asset_type,
                asset_id=normalized.asset_id,
                scope_id=key.scope_id,
                name=normalized.name,
                worksheet_id=key.worksheet_id,
                fields=dict(normalized.fields),
                parents=dict(normalized.parents),
                content_fingerprint=fingerprint,
                lifecycle_state=LifecycleState.NEW,
                propagation_state=PropagationState.NOT_SYNCED,
            )
            self.store.upsert(record)
            logger.debug(f"New {key}")
            return LifecycleState.NEW

        state = classify_change(existing.content_fingerprint, fingerprint, existing.lifecycle_state)
        if state == existing.lifecycle_state and fingerprint == existing.content_fingerprint:
            return state

        if existing.is_deleted:
            logger.info(f"Reviving {key} after it reappeared in the source")

        existing.name = normalized.name
        existing.fields = {**existing.fields, **normalized.fields}
        existing.parents = dict(normalized.parents)
        existing.content_fingerprint = fingerprint
        existing.propagation_state = derive_propagation_state(state, existing.propagation_state)
        existing.lifecycle_state = state
        self.store.upsert(existing)
        return state

    def _delete_unseen(
        self,
        asset_type: AssetType,
        scope: str,
        seen: Set[NaturalKey],
        result: ReconciliationResult,
    ) -> None:
        graph: Optional[AssetGraph] = None

        for existing in self.store.get_all_active(asset_type, scope_for(asset_type, scope)):
            key = existing.natural_key
            if key in seen:
                continue

            if graph is None:
                graph = AssetGraph.build(self.store, asset_type, scope)

            node = graph.get(key)
            if node is not None and node.is_deleted:
                # Already reached by an earlier cascade in this pass
                continue

            marked = self.cascade.soft_delete(existing, graph)
            result.deleted += 1
            result.cascaded += max(len(marked) - 1, 0)
