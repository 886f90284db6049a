"""
Construction of connectors, store and mapper from a SyncConfig.
"""

import logging

from ..core.asset_store import AssetStore
from ..core.exceptions import ConfigError
from ..export.mapper import ExportMapper, ExportSettings
from ..utils.retry import RetryConfig
from .config_loader import SyncConfig


logger = logging.getLogger(__name__)


def build_source(config: SyncConfig):
    """Build the Tableau source connector."""
    from ..connectors.tableau import TableauConnector

    tableau = config.get_tableau_config()
    return TableauConnector(
        server_url=config.require("tableau.server_url"),
        pat_name=tableau.get("pat_name"),
        pat_secret=tableau.get("pat_secret"),
        username=tableau.get("username"),
        password=tableau.get("password"),
        api_version=str(tableau.get("api_version", "3.19")),
        default_site=tableau.get("default_site") or "",
        page_size=int(tableau.get("page_size", 100)),
        timeout=int(tableau.get("timeout", 30)),
        verify_ssl=bool(tableau.get("verify_ssl", True)),
        rest_retry=RetryConfig.from_dict(tableau.get("rest_retry")),
        graphql_retry=RetryConfig.from_dict(tableau.get("graphql_retry")),
    )


def build_target(config: SyncConfig):
    """Build the Collibra target connector."""
    from ..connectors.collibra import CollibraConnector

    collibra = config.get_collibra_config()
    return CollibraConnector(
        base_url=config.require("collibra.base_url"),
        username=config.require("collibra.username"),
        password=config.require("collibra.password"),
        batch_size=int(collibra.get("batch_size", 500)),
        timeout=int(collibra.get("timeout", 60)),
        verify_ssl=bool(collibra.get("verify_ssl", True)),
        retry_config=RetryConfig.from_dict(collibra.get("retry")),
    )


def build_store(config: SyncConfig) -> AssetStore:
    """Build the configured asset store backend."""
    from ..state import create_asset_store

    store = config.get_store_config()
    backend = store.get("backend", "sqlite")
    sqlite = store.get("sqlite") or {}
    sqlserver = store.get("sqlserver") or {}

    try:
        return create_asset_store(
            backend=backend,
            db_path=sqlite.get("db_path"),
            connection_string=sqlserver.get("connection_string"),
            host=sqlserver.get("host", "localhost"),
            port=int(sqlserver.get("port", 1433)),
            database=sqlserver.get("database", "CatalogSync"),
            username=sqlserver.get("username", "sa"),
            password=sqlserver.get("password"),
            schema=sqlserver.get("schema", "catalog"),
        )
    except ValueError as e:
        raise ConfigError(str(e))


def build_mapper(config: SyncConfig) -> ExportMapper:
    """Build the export mapper from the collibra section."""
    try:
        return ExportMapper(ExportSettings.from_dict(config.get_collibra_config()))
    except ValueError as e:
        raise ConfigError(f"Invalid collibra export settings: {e}")
