"""
Connector interfaces for the source catalog and the downstream catalog.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from .models import AssetType, BatchResult, MappedAsset, NormalizedRecord


class SourceConnector(ABC):
    """
    Abstract base class for source catalog adapters.

    Adapters hide authentication, pagination and retries, and hand back
    fully fetched, typed records for one asset type at a time.
    """

    @abstractmethod
    def fetch(self, asset_type: AssetType, scope: str) -> List[NormalizedRecord]:
        """
        Fetch every asset of a type within a scope.

        Args:
            asset_type: Type of asset to fetch
            scope: Site id (ignored for server and site listings)

        Returns:
            Complete list of normalized records

        Raises:
            SourceFetchError: If the listing could not be fetched
        """
        pass

    def skipped_records(self) -> List[str]:
        """
        Describe the source records the last ``fetch`` dropped as malformed.

        Adapters that normalize leniently report what they skipped here so
        reconciliation can count it as failed. Optional.
        """
        return []

    @abstractmethod
    def get_name(self) -> str:
        """Return the connector name/identifier."""
        pass

    def close(self) -> None:
        """Close any open resources. Optional."""
        pass


class TargetConnector(ABC):
    """
    Abstract base class for downstream catalog adapters.
    """

    @abstractmethod
    def upsert_batch(self, assets: List[MappedAsset]) -> BatchResult:
        """
        Create or update a batch of assets with their attributes and relations.

        Args:
            assets: Mapped assets to submit

        Returns:
            BatchResult with per-asset outcomes
        """
        pass

    @abstractmethod
    def resolve_identifier(self, name: str, domain: str, community: str) -> Optional[str]:
        """
        Resolve an asset identifier to the catalog's internal id.

        Returns:
            Internal id, or None if no such asset exists
        """
        pass

    @abstractmethod
    def delete(self, internal_id: str) -> bool:
        """
        Delete an asset by internal id.

        Returns:
            True if the asset was deleted (or was already gone)
        """
        pass

    @abstractmethod
    def get_name(self) -> str:
        """Return the connector name/identifier."""
        pass

    def close(self) -> None:
        """Close any open resources. Optional."""
        pass
