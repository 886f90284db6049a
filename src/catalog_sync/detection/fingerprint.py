"""
Content fingerprinting and change classification.

A fingerprint is the SHA-256 of a canonical JSON array over a fixed,
type-specific list of fields. The JSON encoding keeps values unambiguous
regardless of what characters they contain. Volatile fields (fetch and
modification timestamps, counters) are never part of the input.
"""

import hashlib
import json
import unicodedata
from typing import Any, Dict, List, Optional, Tuple

from ..core.models import (
    AssetType,
    LifecycleState,
    NormalizedRecord,
    PropagationState,
)


# Metadata fields that make up the fingerprint, in order
FINGERPRINT_FIELDS: Dict[AssetType, Tuple[str, ...]] = {
    AssetType.SERVER: ("url", "version", "build"),
    AssetType.SITE: ("content_url",),
    AssetType.PROJECT: ("description", "owner"),
    AssetType.WORKBOOK: ("description", "project_name", "owner", "content_url"),
    AssetType.WORKSHEET: (),
    AssetType.DATA_SOURCE: (
        "description",
        "is_certified",
        "owner",
        "connection_type",
        "table_name",
        "schema_name",
        "database_name",
        "server_name",
        "upstream_tables",
        "source_type",
        "query",
    ),
    AssetType.REPORT_ATTRIBUTE: (
        "field_role",
        "is_calculated",
        "calculation_logic",
        "data_type",
        "lineage",
    ),
}

# Parent references that make up the fingerprint, in order
FINGERPRINT_PARENTS: Dict[AssetType, Tuple[str, ...]] = {
    AssetType.SERVER: (),
    AssetType.SITE: ("server",),
    AssetType.PROJECT: ("parent_project",),
    AssetType.WORKBOOK: ("project",),
    AssetType.WORKSHEET: ("workbook",),
    AssetType.DATA_SOURCE: ("workbook",),
    AssetType.REPORT_ATTRIBUTE: ("worksheet", "data_source"),
}


def _normalize(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return unicodedata.normalize("NFC", value)
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    return unicodedata.normalize("NFC", str(value))


def fingerprint_values(record: NormalizedRecord, scope: str) -> List[Any]:
    """
    Build the ordered fingerprint input for a normalized record.

    Args:
        record: The normalized record
        scope: Scope the record was fetched in

    Returns:
        Ordered list of field values
    """
    key = record.natural_key(scope)
    values: List[Any] = [record.asset_id, record.name]
    values.extend(record.fields.get(name) for name in FINGERPRINT_FIELDS[record.asset_type])
    values.extend(record.parents.get(role) for role in FINGERPRINT_PARENTS[record.asset_type])
    values.append(key.scope_id)
    if key.worksheet_id:
        values.append(key.worksheet_id)
    return values


def compute_fingerprint(values: List[Any]) -> str:
    """
    Digest an ordered list of values.

    Returns:
        Hex-encoded SHA-256 digest
    """
    canonical = json.dumps(
        _normalize(list(values)),
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def fingerprint_record(record: NormalizedRecord, scope: str) -> str:
    """Fingerprint a normalized record fetched in ``scope``."""
    return compute_fingerprint(fingerprint_values(record, scope))


def classify_change(
    stored_fingerprint: Optional[str],
    new_fingerprint: str,
    current_state: Optional[LifecycleState],
) -> LifecycleState:
    """
    Classify a fetched record against its stored counterpart.

    No stored fingerprint means NEW. A differing fingerprint means UPDATED.
    An equal fingerprint settles NEW/UPDATED to ACTIVE and leaves ACTIVE as
    is. A DELETED record seen again is revived as UPDATED so that it is
    exported once more.
    """
    if stored_fingerprint is None or current_state is None:
        return LifecycleState.NEW

    if current_state == LifecycleState.DELETED:
        return LifecycleState.UPDATED

    if stored_fingerprint != new_fingerprint:
        return LifecycleState.UPDATED

    if current_state in (LifecycleState.NEW, LifecycleState.UPDATED):
        return LifecycleState.ACTIVE

    return current_state


def derive_propagation_state(
    lifecycle_state: LifecycleState,
    current: Optional[PropagationState],
) -> PropagationState:
    """
    Derive the propagation state that follows a lifecycle transition.

    Args:
        lifecycle_state: New lifecycle state
        current: Current propagation state (None for a brand new record)

    Returns:
        New propagation state
    """
    if lifecycle_state == LifecycleState.NEW or current is None:
        return PropagationState.NOT_SYNCED

    if lifecycle_state == LifecycleState.UPDATED:
        if current == PropagationState.SYNCED:
            return PropagationState.PENDING_UPDATE
        return current

    if lifecycle_state == LifecycleState.DELETED:
        if current in (PropagationState.SYNCED, PropagationState.PENDING_UPDATE):
            return PropagationState.PENDING_DELETE
        return current

    return current
