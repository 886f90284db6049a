"""
In-memory source and target connectors.

Deterministic stand-ins for the real catalogs, with no network access.
Used for dry runs and throughout the tests: the source serves whatever
records were loaded into it, and the target keeps assets in a dict and
records every call made against it.
"""

import logging
from typing import Dict, List, Optional, Set, Tuple

from ..core.connector import SourceConnector, TargetConnector
from ..core.exceptions import SourceFetchError, TargetCatalogError
from ..core.models import AssetType, BatchResult, MappedAsset, NormalizedRecord


logger = logging.getLogger(__name__)


class InMemorySourceConnector(SourceConnector):
    """
    Source connector serving preloaded records.

    Features:
    - Records keyed by (asset type, scope); servers and sites ignore scope
    - Fetch failures simulated per (asset type, scope)
    - Malformed source records simulated per (asset type, scope)
    - Fetch history for assertions
    """

    def __init__(self, name: str = "memory_source"):
        self.name = name
        self._records: Dict[Tuple[AssetType, Optional[str]], List[NormalizedRecord]] = {}
        self._failures: Set[Tuple[AssetType, Optional[str]]] = set()
        self._malformed: Dict[Tuple[AssetType, Optional[str]], List[str]] = {}
        self._last_skipped: List[str] = []
        self.fetch_history: List[Tuple[AssetType, str]] = []

    def _key(self, asset_type: AssetType, scope: Optional[str]) -> Tuple[AssetType, Optional[str]]:
        asset_type = AssetType(asset_type)
        if asset_type in (AssetType.SERVER, AssetType.SITE):
            return asset_type, None
        return asset_type, scope

    def set_records(
        self,
        asset_type: AssetType,
        records: List[NormalizedRecord],
        scope: Optional[str] = None,
    ) -> None:
        """Replace the listing returned for a type and scope."""
        self._records[self._key(asset_type, scope)] = list(records)

    def fail_on(self, asset_type: AssetType, scope: Optional[str] = None) -> None:
        """Make fetches of a type and scope raise SourceFetchError."""
        self._failures.add(self._key(asset_type, scope))

    def add_malformed(self, asset_type: AssetType, message: str, scope: Optional[str] = None) -> None:
        """Report a source record of a type and scope as dropped during fetch."""
        self._malformed.setdefault(self._key(asset_type, scope), []).append(message)

    def clear_failures(self) -> None:
        self._failures.clear()

    def fetch(self, asset_type: AssetType, scope: str) -> List[NormalizedRecord]:
        key = self._key(asset_type, scope)
        self.fetch_history.append((key[0], scope))
        self._last_skipped = []
        if key in self._failures:
            raise SourceFetchError(
                f"Simulated fetch failure for {key[0].value} in {scope}",
                asset_type=key[0].value,
            )
        self._last_skipped = list(self._malformed.get(key, []))
        return list(self._records.get(key, []))

    def skipped_records(self) -> List[str]:
        return list(self._last_skipped)

    def get_name(self) -> str:
        return self.name


class InMemoryTargetConnector(TargetConnector):
    """
    Target connector holding assets in a dict keyed by (community, domain, identifier).

    Failures are simulated per identifier for upserts and deletes, or for
    whole batches.
    """

    def __init__(self, name: str = "memory_target"):
        self.name = name
        self.assets: Dict[Tuple[str, str, str], MappedAsset] = {}
        self._ids: Dict[Tuple[str, str, str], str] = {}
        self._next_id = 1

        self.fail_batches = False
        self.rejected_identifiers: Set[str] = set()
        self.undeletable_ids: Set[str] = set()

        self.upsert_calls: List[List[MappedAsset]] = []
        self.resolve_calls: List[Tuple[str, str, str]] = []
        self.delete_calls: List[str] = []

    @staticmethod
    def _key(asset: MappedAsset) -> Tuple[str, str, str]:
        return asset.community, asset.domain, asset.identifier

    def upsert_batch(self, assets: List[MappedAsset]) -> BatchResult:
        self.upsert_calls.append(list(assets))
        if self.fail_batches:
            raise TargetCatalogError("Simulated import failure", status_code=500)

        result = BatchResult(success=True, job_ids=[f"job-{len(self.upsert_calls)}"])
        for asset in assets:
            if asset.identifier in self.rejected_identifiers:
                result.outcomes[asset.identifier] = False
                result.success = False
                result.message = f"Rejected {asset.identifier}"
                continue
            key = self._key(asset)
            if key not in self._ids:
                self._ids[key] = f"asset-{self._next_id}"
                self._next_id += 1
            self.assets[key] = asset
            result.outcomes[asset.identifier] = True
        return result

    def resolve_identifier(self, name: str, domain: str, community: str) -> Optional[str]:
        self.resolve_calls.append((name, domain, community))
        key = (community, domain, name)
        return self._ids.get(key) if key in self.assets else None

    def delete(self, internal_id: str) -> bool:
        self.delete_calls.append(internal_id)
        if internal_id in self.undeletable_ids:
            return False
        for key, asset_id in list(self._ids.items()):
            if asset_id == internal_id:
                self.assets.pop(key, None)
                del self._ids[key]
        return True

    def get(self, identifier: str) -> Optional[MappedAsset]:
        """Find a stored asset by identifier in any domain."""
        for (_, _, stored_identifier), asset in self.assets.items():
            if stored_identifier == identifier:
                return asset
        return None

    def reset_calls(self) -> None:
        self.upsert_calls.clear()
        self.resolve_calls.clear()
        self.delete_calls.clear()

    def get_name(self) -> str:
        return self.name
