"""
Asset store implementations.

Two backends are available:
    - sqlite (default): single-file local store
    - sqlserver: shared store, requires pyodbc

To select a backend, set the CATALOG_SYNC_DB_BACKEND environment variable
or pass ``backend`` to ``create_asset_store``.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Union

from ..core.asset_store import AssetStore


logger = logging.getLogger(__name__)


# Lazy imports to avoid import errors when dependencies are missing
def _get_sqlite_store():
    from .sqlite_store import SqliteAssetStore
    return SqliteAssetStore


def _get_sqlserver_store():
    from .sqlserver_store import SqlServerAssetStore
    return SqlServerAssetStore


def create_asset_store(
    backend: Optional[str] = None,
    # SQLite options
    db_path: Optional[Union[str, Path]] = None,
    # SQL Server options
    connection_string: Optional[str] = None,
    host: str = "localhost",
    port: int = 1433,
    database: str = "CatalogSync",
    username: str = "sa",
    password: Optional[str] = None,
    driver: str = "ODBC Driver 18 for SQL Server",
    schema: str = "catalog",
    auto_init: bool = True,
) -> AssetStore:
    """
    Factory function to create the configured asset store.

    Args:
        backend: 'sqlite' or 'sqlserver'. Defaults to CATALOG_SYNC_DB_BACKEND or 'sqlite'.

        SQLite options:
            db_path: Path to SQLite database file

        SQL Server options:
            connection_string: Full ODBC connection string
            host: SQL Server host
            port: SQL Server port
            database: Database name
            username: Database username
            password: Database password
            driver: ODBC driver name
            schema: Schema name for tables
            auto_init: Auto-create schema/tables

    Returns:
        AssetStore instance

    Raises:
        ValueError: If backend is not recognized
        ImportError: If required dependencies are missing
    """
    if backend is None:
        backend = os.environ.get("CATALOG_SYNC_DB_BACKEND", "sqlite")
    backend = backend.lower()

    if backend == "sqlite":
        SqliteAssetStore = _get_sqlite_store()

        if db_path is None:
            db_path = os.environ.get("CATALOG_SYNC_SQLITE_PATH", "local/state/catalog_sync.db")

        logger.info(f"Using SQLite asset store: {db_path}")
        return SqliteAssetStore(db_path=db_path, auto_init=auto_init)

    elif backend == "sqlserver":
        SqlServerAssetStore = _get_sqlserver_store()

        if password is None:
            password = os.environ.get("CATALOG_SYNC_SQLSERVER_PASSWORD")
        if connection_string is None:
            connection_string = os.environ.get("CATALOG_SYNC_SQLSERVER_CONN_STR")

        logger.info(f"Using SQL Server asset store (schema: {schema})")
        return SqlServerAssetStore(
            connection_string=connection_string,
            host=host,
            port=port,
            database=database,
            username=username,
            password=password,
            driver=driver,
            schema=schema,
            auto_init=auto_init,
        )

    else:
        raise ValueError(
            f"Unknown backend: {backend}. "
            "Supported backends: 'sqlite' (default), 'sqlserver'"
        )


from .sqlite_store import SqliteAssetStore

__all__ = ["SqliteAssetStore", "create_asset_store"]
