"""
Propagation of reconciled local state to the downstream catalog.

Two phases per run:
1. Upsert, type by type in dependency order, every record whose lifecycle
   event has not been communicated yet. Deletions are only collected.
2. After every type's upsert phase, resolve and delete the collected
   identifiers, leaves first.

A renamed record is exported under a new identifier, so the identifier
built from its previously exported name is collected for deletion as well.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..core.asset_store import AssetStore
from ..core.connector import TargetConnector
from ..core.exceptions import CatalogSyncError
from ..core.models import (
    EXPORT_ORDER,
    AssetRecord,
    AssetType,
    LifecycleState,
    MappedAsset,
    NaturalKey,
    PropagationResult,
    PropagationState,
    TypePropagationResult,
    utc_now,
)
from .mapper import ExportMapper


logger = logging.getLogger(__name__)


@dataclass
class DeferredDeletion:
    """
    A downstream deletion collected during the upsert phase.

    ``retires_name`` marks the identifier a renamed record was exported
    under before; the record itself stays downstream under its new name.
    """
    record: AssetRecord
    identifier: str
    domain: str
    community: str
    retires_name: bool = False


def partition(records: List[AssetRecord]) -> Tuple[List[AssetRecord], List[AssetRecord], List[AssetRecord]]:
    """
    Split records into (to_upsert, to_delete, skipped).

    A record is pending while its propagation state is anything but SYNCED.
    Pending DELETED records are deleted downstream, other pending records
    are upserted, and everything already SYNCED is skipped.
    """
    to_upsert, to_delete, skipped = [], [], []
    for record in records:
        if record.propagation_state == PropagationState.SYNCED:
            skipped.append(record)
        elif record.lifecycle_state == LifecycleState.DELETED:
            to_delete.append(record)
        else:
            to_upsert.append(record)
    return to_upsert, to_delete, skipped


def order_for_submission(asset_type: AssetType, records: List[AssetRecord]) -> List[AssetRecord]:
    """
    Best-effort ordering within one type.

    Projects go parents first (roots, then each nesting level, then orphans
    whose parent is not in the batch or that sit in a cycle). Report
    attributes go plain fields first, calculated fields last.
    """
    if asset_type == AssetType.REPORT_ATTRIBUTE:
        return sorted(records, key=lambda r: bool(r.fields.get("is_calculated")))

    if asset_type != AssetType.PROJECT:
        return list(records)

    by_id = {r.asset_id: r for r in records}
    ordered: List[AssetRecord] = []
    placed = set()

    level = [r for r in records if r.parents.get("parent_project") is None]
    while level:
        ordered.extend(level)
        placed.update(r.asset_id for r in level)
        level = [
            r for r in records
            if r.asset_id not in placed and r.parents.get("parent_project") in placed
        ]

    # Parent outside this batch (already synced, or never ingested) or a cycle
    ordered.extend(r for r in records if r.asset_id not in placed)
    return ordered


class PropagationPipeline:
    """
    Drives the export of local records to a downstream catalog.
    """

    def __init__(
        self,
        store: AssetStore,
        target: TargetConnector,
        mapper: Optional[ExportMapper] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            store: Local asset store
            target: Downstream catalog adapter
            mapper: Export mapper (defaults to default export settings)
        """
        self.store = store
        self.target = target
        self.mapper = mapper or ExportMapper()
        self._parent_cache: Dict[NaturalKey, Optional[AssetRecord]] = {}

    def propagate(
        self,
        scope: Optional[str] = None,
        asset_types: Optional[Iterable[AssetType]] = None,
        key: Optional[NaturalKey] = None,
    ) -> PropagationResult:
        """
        Export one scope, or everything when ``scope`` is None.

        Args:
            scope: Site id to restrict the run to
            asset_types: Only export these types (still in dependency order)
            key: Only export the record with this natural key

        Returns:
            PropagationResult with per-type outcomes

        Raises:
            CatalogSyncError: If ``key`` names no local record
        """
        result = PropagationResult(scope=scope)
        logger.info(f"Starting propagation for {key or scope or 'all scopes'}")

        records_by_type = self._load_records(scope, asset_types, key)
        self._parent_cache = {
            record.natural_key: record
            for records in records_by_type.values()
            for record in records
        }
        renaming = {
            record.natural_key
            for records in records_by_type.values()
            for record in records
            if record.is_renamed and not record.is_deleted
            and record.propagation_state != PropagationState.SYNCED
        }

        deferred: Dict[AssetType, List[DeferredDeletion]] = {}

        for asset_type in EXPORT_ORDER:
            if asset_type not in records_by_type:
                continue
            type_result = result.for_type(asset_type)
            to_upsert, to_delete, skipped = partition(records_by_type[asset_type])

            # Synced dependents still relate to the identifier a renamed parent is leaving
            refresh = [r for r in skipped if not r.is_deleted and self._relates_to(r, renaming)]
            if refresh:
                to_upsert.extend(refresh)
                skipped = [r for r in skipped if r not in refresh]
            type_result.skipped = len(skipped)

            logger.info(
                f"{asset_type.value}: {len(to_upsert)} to upsert, "
                f"{len(to_delete)} to delete, {len(skipped)} skipped"
            )

            try:
                self._upsert_type(asset_type, to_upsert, type_result)
            except CatalogSyncError as e:
                logger.exception(f"Upsert phase for {asset_type.value} failed: {e}")
                type_result.upsert_success = False
                type_result.errors.append(str(e))

            deferred[asset_type] = [
                DeferredDeletion(record, *self.mapper.locate(record, record.exported_name))
                for record in to_delete
            ]
            deferred[asset_type].extend(
                DeferredDeletion(record, *self.mapper.locate(record, record.exported_name), retires_name=True)
                for record in to_upsert + skipped
                if record.is_renamed and not record.is_deleted
                and record.propagation_state == PropagationState.SYNCED
            )

        for asset_type in reversed(EXPORT_ORDER):
            if deferred.get(asset_type):
                self._delete_type(deferred[asset_type], result.for_type(asset_type))

        result.completed_at = utc_now()
        logger.info(result.summary())
        return result

    def _load_records(
        self,
        scope: Optional[str],
        asset_types: Optional[Iterable[AssetType]],
        key: Optional[NaturalKey],
    ) -> Dict[AssetType, List[AssetRecord]]:
        if key is not None:
            record = self.store.get_by_natural_key(key)
            if record is None:
                raise CatalogSyncError(f"No local record for {key}")
            return {key.asset_type: [record]}

        selected = set(asset_types) if asset_types else set(EXPORT_ORDER)
        return {
            asset_type: self._load(asset_type, scope)
            for asset_type in EXPORT_ORDER if asset_type in selected
        }

    def _load(self, asset_type: AssetType, scope: Optional[str]) -> List[AssetRecord]:
        if scope is None:
            return self.store.get_all(asset_type)
        if asset_type == AssetType.SERVER:
            # The scoped site relates to its server, so the server goes out with it
            server_ids = {site.parents.get("server") for site in self._load(AssetType.SITE, scope)}
            return [r for r in self.store.get_all(AssetType.SERVER) if r.asset_id in server_ids]
        if asset_type == AssetType.SITE:
            return [r for r in self.store.get_all(AssetType.SITE) if r.asset_id == scope]
        return self.store.get_all(asset_type, scope)

    def _parents(self, record: AssetRecord) -> Dict[str, Optional[AssetRecord]]:
        parents = {}
        for role in record.parents:
            key = record.parent_key(role)
            if key not in self._parent_cache:
                self._parent_cache[key] = self.store.get_by_natural_key(key)
            parents[role] = self._parent_cache[key]
        return parents

    @staticmethod
    def _relates_to(record: AssetRecord, keys: Set[NaturalKey]) -> bool:
        return any(record.parent_key(role) in keys for role in record.parents)

    def _requeue(self, record: AssetRecord) -> None:
        """Put a synced record whose re-upsert failed back in line for the next run."""
        if record.propagation_state == PropagationState.SYNCED:
            record.propagation_state = PropagationState.PENDING_UPDATE
            self.store.upsert(record)

    def _upsert_type(
        self,
        asset_type: AssetType,
        to_upsert: List[AssetRecord],
        type_result: TypePropagationResult,
    ) -> None:
        if not to_upsert:
            return

        mapped: List[MappedAsset] = []
        records_by_identifier: Dict[str, AssetRecord] = {}

        for record in order_for_submission(asset_type, to_upsert):
            try:
                asset = self.mapper.map(record, self._parents(record))
            except Exception as e:
                logger.exception(f"Failed to map {record.natural_key}: {e}")
                type_result.failed += 1
                type_result.upsert_success = False
                type_result.errors.append(f"{record.natural_key}: {e}")
                self._requeue(record)
                continue
            mapped.append(asset)
            records_by_identifier[asset.identifier] = record

        if not mapped:
            return

        try:
            batch = self.target.upsert_batch(mapped)
        except CatalogSyncError as e:
            logger.error(f"Batch upsert of {len(mapped)} {asset_type.value} assets failed: {e}")
            type_result.failed += len(mapped)
            type_result.upsert_success = False
            type_result.errors.append(str(e))
            for record in records_by_identifier.values():
                self._requeue(record)
            return

        if not batch.success:
            type_result.upsert_success = False
            type_result.errors.append(batch.message or f"{asset_type.value} batch upsert failed")

        for identifier, record in records_by_identifier.items():
            if batch.succeeded(identifier):
                record.propagation_state = PropagationState.SYNCED
                if not record.is_renamed:
                    record.exported_name = record.name
                self.store.upsert(record)
                type_result.upserted += 1
            else:
                type_result.failed += 1
                type_result.upsert_success = False
                self._requeue(record)

        logger.info(
            f"Upserted {type_result.upserted}/{len(mapped)} {asset_type.value} assets"
        )

    def _delete_type(
        self,
        deletions: List[DeferredDeletion],
        type_result: TypePropagationResult,
    ) -> None:
        for deletion in deletions:
            record = deletion.record
            try:
                internal_id = self.target.resolve_identifier(
                    deletion.identifier, deletion.domain, deletion.community
                )
                if internal_id is None:
                    logger.info(f"{deletion.identifier} already absent downstream")
                    if not deletion.retires_name:
                        type_result.already_absent += 1
                elif self.target.delete(internal_id):
                    logger.info(f"Deleted {deletion.identifier} downstream ({internal_id})")
                    if not deletion.retires_name:
                        type_result.deleted += 1
                else:
                    logger.warning(f"Downstream delete of {deletion.identifier} was rejected")
                    type_result.failed += 1
                    type_result.delete_success = False
                    type_result.errors.append(f"Delete rejected: {deletion.identifier}")
                    continue
            except CatalogSyncError as e:
                logger.error(f"Failed to delete {deletion.identifier}: {e}")
                type_result.failed += 1
                type_result.delete_success = False
                type_result.errors.append(f"{deletion.identifier}: {e}")
                continue

            if deletion.retires_name:
                record.exported_name = record.name
                type_result.renamed += 1
            else:
                record.propagation_state = PropagationState.SYNCED
                record.exported_name = None
            self.store.upsert(record)
