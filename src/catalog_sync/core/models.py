"""
Core data models for catalog synchronisation.

Covers the asset hierarchy, the records kept in the local store, the
representation sent to the downstream catalog, and the structured results
returned by reconciliation and propagation passes.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import RecordMappingError


GLOBAL_SCOPE = "global"


class AssetType(str, Enum):
    """Concrete asset types mirrored from the source catalog."""
    SERVER = "server"
    SITE = "site"
    PROJECT = "project"
    WORKBOOK = "workbook"
    WORKSHEET = "worksheet"
    DATA_SOURCE = "data_source"
    REPORT_ATTRIBUTE = "report_attribute"


class LifecycleState(str, Enum):
    """Change-tracking state of a local record."""
    NEW = "NEW"
    UPDATED = "UPDATED"
    ACTIVE = "ACTIVE"
    DELETED = "DELETED"


class PropagationState(str, Enum):
    """Whether a record's lifecycle state has reached the downstream catalog."""
    NOT_SYNCED = "NOT_SYNCED"
    PENDING_SYNC = "PENDING_SYNC"
    SYNCED = "SYNCED"
    PENDING_UPDATE = "PENDING_UPDATE"
    PENDING_DELETE = "PENDING_DELETE"


class DataSourceKind(str, Enum):
    """Origin of a data source record."""
    PUBLISHED = "published"
    EMBEDDED = "embedded"
    CUSTOM_SQL = "custom_sql"


# Dependency order, parents first. Reconciliation walks it top-down and
# propagation upserts in this order.
EXPORT_ORDER: Tuple[AssetType, ...] = (
    AssetType.SERVER,
    AssetType.SITE,
    AssetType.PROJECT,
    AssetType.WORKBOOK,
    AssetType.WORKSHEET,
    AssetType.DATA_SOURCE,
    AssetType.REPORT_ATTRIBUTE,
)

# Types whose natural key is not scoped to a site
GLOBAL_TYPES = frozenset({AssetType.SERVER, AssetType.SITE})

# Parent role -> asset type of the referenced parent
PARENT_ROLE_TYPES: Dict[str, AssetType] = {
    "server": AssetType.SERVER,
    "site": AssetType.SITE,
    "parent_project": AssetType.PROJECT,
    "project": AssetType.PROJECT,
    "workbook": AssetType.WORKBOOK,
    "worksheet": AssetType.WORKSHEET,
    "data_source": AssetType.DATA_SOURCE,
}

# Ownership edges a deletion cascades along, in priority order. The first
# role whose parent is known wins, so a nested project hangs off its parent
# project and a root (or orphaned) project hangs off its site.
CASCADE_ROLES: Dict[AssetType, Tuple[str, ...]] = {
    AssetType.SERVER: (),
    AssetType.SITE: ("server",),
    AssetType.PROJECT: ("parent_project", "site"),
    AssetType.WORKBOOK: ("project",),
    AssetType.WORKSHEET: ("workbook",),
    AssetType.DATA_SOURCE: ("workbook", "site"),
    AssetType.REPORT_ATTRIBUTE: ("worksheet",),
}


def scope_for(asset_type: AssetType, scope: str) -> str:
    """Return the scope id a record of ``asset_type`` is keyed under."""
    return GLOBAL_SCOPE if asset_type in GLOBAL_TYPES else scope


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class NaturalKey:
    """
    Identity of a record within its scope.

    ``worksheet_id`` is only set for report attributes, which are scoped to
    the worksheet they appear on.
    """
    asset_type: AssetType
    asset_id: str
    scope_id: str
    worksheet_id: Optional[str] = None

    def __str__(self) -> str:
        parts = [self.asset_type.value, self.scope_id]
        if self.worksheet_id:
            parts.append(self.worksheet_id)
        parts.append(self.asset_id)
        return "/".join(parts)


@dataclass
class NormalizedRecord:
    """
    Typed record handed over by a source adapter.

    Attributes:
        asset_type: Type of the asset
        asset_id: Source identifier, unique within the scope
        name: Display name (defaults to the id when blank)
        fields: Type-specific metadata fields
        parents: Parent role -> parent asset id
        worksheet_id: Worksheet a report attribute appears on
    """
    asset_type: AssetType
    asset_id: str
    name: str = ""
    fields: Dict[str, Any] = field(default_factory=dict)
    parents: Dict[str, str] = field(default_factory=dict)
    worksheet_id: Optional[str] = None

    def __post_init__(self):
        try:
            self.asset_type = AssetType(self.asset_type)
        except ValueError:
            raise RecordMappingError(f"Unknown asset type: {self.asset_type}")

        if isinstance(self.asset_id, str):
            self.asset_id = self.asset_id.strip()
        if not self.asset_id:
            raise RecordMappingError(
                f"{self.asset_type.value} record without an id", asset_type=self.asset_type.value
            )
        self.asset_id = str(self.asset_id)
        self.name = (self.name or "").strip() or self.asset_id

        unknown_roles = set(self.parents) - set(PARENT_ROLE_TYPES)
        if unknown_roles:
            raise RecordMappingError(
                f"Unknown parent roles for {self.asset_id}: {sorted(unknown_roles)}",
                asset_type=self.asset_type.value,
                asset_id=self.asset_id,
            )
        self.parents = {role: str(pid) for role, pid in self.parents.items() if pid}

        if self.asset_type == AssetType.REPORT_ATTRIBUTE:
            self.worksheet_id = self.worksheet_id or self.parents.get("worksheet")
            if not self.worksheet_id:
                raise RecordMappingError(
                    f"Report attribute {self.asset_id} has no worksheet",
                    asset_type=self.asset_type.value,
                    asset_id=self.asset_id,
                )
            self.parents.setdefault("worksheet", self.worksheet_id)
        else:
            self.worksheet_id = None

    def natural_key(self, scope: str) -> NaturalKey:
        return NaturalKey(
            asset_type=self.asset_type,
            asset_id=self.asset_id,
            scope_id=scope_for(self.asset_type, scope),
            worksheet_id=self.worksheet_id,
        )


@dataclass
class AssetRecord:
    """
    A mirrored asset as kept in the local store.

    Records are never physically removed; DELETED is a tombstone.
    ``exported_name`` is the name the record was last exported under, so a
    rename can retire the identifier built from the old name.
    """
    asset_type: AssetType
    asset_id: str
    scope_id: str
    name: str
    worksheet_id: Optional[str] = None
    fields: Dict[str, Any] = field(default_factory=dict)
    parents: Dict[str, str] = field(default_factory=dict)
    content_fingerprint: Optional[str] = None
    lifecycle_state: LifecycleState = LifecycleState.NEW
    propagation_state: PropagationState = PropagationState.NOT_SYNCED
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    exported_name: Optional[str] = None

    @property
    def natural_key(self) -> NaturalKey:
        return NaturalKey(self.asset_type, self.asset_id, self.scope_id, self.worksheet_id)

    @property
    def is_deleted(self) -> bool:
        return self.lifecycle_state == LifecycleState.DELETED

    def parent_key(self, role: str) -> Optional[NaturalKey]:
        """Natural key of the parent referenced under ``role``, if any."""
        parent_id = self.parents.get(role)
        if not parent_id:
            return None
        parent_type = PARENT_ROLE_TYPES[role]
        return NaturalKey(parent_type, parent_id, scope_for(parent_type, self.scope_id))

    @property
    def is_renamed(self) -> bool:
        """Exported before under a name that is no longer current."""
        return bool(self.exported_name) and self.exported_name != self.name

    def site_id(self) -> Optional[str]:
        """Site this record belongs to (None for servers)."""
        if self.asset_type == AssetType.SERVER:
            return None
        if self.asset_type == AssetType.SITE:
            return self.asset_id
        return self.scope_id


@dataclass
class RelationTarget:
    """A typed relation from a mapped asset to another asset's identifier."""
    relation_type: str
    identifier: str
    domain: str
    community: str


@dataclass
class MappedAsset:
    """Downstream-catalog representation of one local record."""
    asset_type: AssetType
    identifier: str
    display_name: str
    type_name: str
    domain: str
    community: str
    attributes: Dict[str, str] = field(default_factory=dict)
    relations: List[RelationTarget] = field(default_factory=list)


@dataclass
class BatchResult:
    """
    Outcome of one batch upsert against the downstream catalog.

    Attributes:
        success: Whether the batch as a whole was accepted
        outcomes: Identifier -> per-asset success
        message: Error or status message
        job_ids: Downstream job ids, one per submitted chunk
    """
    success: bool
    outcomes: Dict[str, bool] = field(default_factory=dict)
    message: Optional[str] = None
    job_ids: List[str] = field(default_factory=list)

    def succeeded(self, identifier: str) -> bool:
        return self.outcomes.get(identifier, self.success)


@dataclass
class ReconciliationResult:
    """Counts and status of one reconciliation pass for a type and scope."""
    asset_type: AssetType
    scope: str
    success: bool = True
    new: int = 0
    updated: int = 0
    unchanged: int = 0
    deleted: int = 0
    cascaded: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def total(self) -> int:
        return self.new + self.updated + self.unchanged

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset_type": self.asset_type.value,
            "scope": self.scope,
            "success": self.success,
            "total": self.total,
            "new": self.new,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "deleted": self.deleted,
            "cascaded": self.cascaded,
            "failed": self.failed,
            "errors": self.errors,
            "error": self.error,
        }


@dataclass
class TypePropagationResult:
    """Propagation outcome for one asset type."""
    asset_type: AssetType
    upserted: int = 0
    deleted: int = 0
    already_absent: int = 0
    skipped: int = 0
    renamed: int = 0
    failed: int = 0
    upsert_success: bool = True
    delete_success: bool = True
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.upsert_success and self.delete_success

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset_type": self.asset_type.value,
            "upserted": self.upserted,
            "deleted": self.deleted,
            "already_absent": self.already_absent,
            "skipped": self.skipped,
            "renamed": self.renamed,
            "failed": self.failed,
            "success": self.success,
            "errors": self.errors,
        }


@dataclass
class PropagationResult:
    """Aggregate result of one propagation run."""
    scope: Optional[str]
    started_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    per_type: Dict[AssetType, TypePropagationResult] = field(default_factory=dict)

    def for_type(self, asset_type: AssetType) -> TypePropagationResult:
        if asset_type not in self.per_type:
            self.per_type[asset_type] = TypePropagationResult(asset_type=asset_type)
        return self.per_type[asset_type]

    @property
    def success(self) -> bool:
        return all(r.success for r in self.per_type.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scope": self.scope,
            "success": self.success,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "per_type": {t.value: r.to_dict() for t, r in self.per_type.items()},
        }

    def summary(self) -> str:
        """Generate human-readable summary."""
        lines = [
            f"Propagation ({self.scope or 'all scopes'})",
            f"  Status: {'OK' if self.success else 'FAILED'}",
        ]
        for asset_type, r in self.per_type.items():
            lines.append(
                f"  {asset_type.value}: upserted={r.upserted} deleted={r.deleted} "
                f"absent={r.already_absent} skipped={r.skipped} "
                f"renamed={r.renamed} failed={r.failed}"
            )
        return "\n".join(lines)
