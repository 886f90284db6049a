"""
Core models and interfaces for catalog synchronisation.
"""

from .models import (
    AssetType,
    LifecycleState,
    PropagationState,
    NaturalKey,
    NormalizedRecord,
    AssetRecord,
    MappedAsset,
    RelationTarget,
    BatchResult,
    ReconciliationResult,
    PropagationResult,
    TypePropagationResult,
    EXPORT_ORDER,
    GLOBAL_SCOPE,
)
from .connector import SourceConnector, TargetConnector
from .asset_store import AssetStore
from .exceptions import (
    CatalogSyncError,
    ConfigError,
    SourceFetchError,
    RecordMappingError,
    TargetCatalogError,
    StoreError,
)

__all__ = [
    "AssetType",
    "LifecycleState",
    "PropagationState",
    "NaturalKey",
    "NormalizedRecord",
    "AssetRecord",
    "MappedAsset",
    "RelationTarget",
    "BatchResult",
    "ReconciliationResult",
    "PropagationResult",
    "TypePropagationResult",
    "EXPORT_ORDER",
    "GLOBAL_SCOPE",
    "SourceConnector",
    "TargetConnector",
    "AssetStore",
    "CatalogSyncError",
    "ConfigError",
    "SourceFetchError",
    "RecordMappingError",
    "TargetCatalogError",
    "StoreError",
]
