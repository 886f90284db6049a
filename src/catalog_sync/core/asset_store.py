"""
Asset store interface for persisting mirrored records.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .models import AssetRecord, AssetType, NaturalKey


class AssetStore(ABC):
    """
    Abstract base class for asset stores.

    Stores persist records keyed by natural key. They hold no change-detection
    logic of their own; classification happens before records reach them.
    """

    @abstractmethod
    def get_by_natural_key(self, key: NaturalKey) -> Optional[AssetRecord]:
        """
        Get a record by natural key.

        Args:
            key: Natural key of the record

        Returns:
            AssetRecord if found, None otherwise
        """
        pass

    @abstractmethod
    def get_all(self, asset_type: AssetType, scope_id: Optional[str] = None) -> List[AssetRecord]:
        """
        Get all records of a type, including DELETED tombstones.

        Args:
            asset_type: Type of record
            scope_id: Restrict to one scope (None = every scope)

        Returns:
            List of records
        """
        pass

    @abstractmethod
    def get_all_active(self, asset_type: AssetType, scope_id: Optional[str] = None) -> List[AssetRecord]:
        """
        Get all records of a type that are not DELETED.

        Args:
            asset_type: Type of record
            scope_id: Restrict to one scope (None = every scope)

        Returns:
            List of records
        """
        pass

    @abstractmethod
    def upsert(self, record: AssetRecord) -> None:
        """
        Insert or replace a record by natural key.

        Args:
            record: The record to persist
        """
        pass

    @abstractmethod
    def get_stats(self) -> Dict[str, Dict[str, int]]:
        """
        Get record counts.

        Returns:
            Dictionary of asset type -> lifecycle state -> count
        """
        pass

    def close(self) -> None:
        """Close any open resources. Optional."""
        pass
