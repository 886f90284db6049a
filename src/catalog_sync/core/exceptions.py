"""
Custom exceptions for catalog synchronisation.
"""


class CatalogSyncError(Exception):
    """Base exception for all catalog sync errors."""
    pass


class ConfigError(CatalogSyncError):
    """
    Error in sync configuration.

    Raised when:
    - Configuration file is missing or invalid
    - Required connection settings are not set
    """
    pass


class SourceFetchError(CatalogSyncError):
    """
    Error fetching assets from the source catalog.

    Raised when:
    - Source API is unreachable after retries
    - Authentication fails
    - API returns an error response or GraphQL errors
    """

    def __init__(self, message: str, asset_type: str = None, status_code: int = None):
        super().__init__(message)
        self.asset_type = asset_type
        self.status_code = status_code


class RecordMappingError(CatalogSyncError):
    """
    A single source record could not be turned into a local record.

    Scoped to one record; reconciliation skips it and continues.
    """

    def __init__(self, message: str, asset_type: str = None, asset_id: str = None):
        super().__init__(message)
        self.asset_type = asset_type
        self.asset_id = asset_id


class TargetCatalogError(CatalogSyncError):
    """
    Error communicating with the downstream catalog.

    Raised when:
    - Catalog is unreachable after retries
    - Import job or delete request is rejected
    """

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class StoreError(CatalogSyncError):
    """Error persisting or reading local asset records."""
    pass
