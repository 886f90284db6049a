"""
Shared test fixtures and configuration for pytest.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from catalog_sync.core.models import AssetType, NormalizedRecord


logger = logging.getLogger(__name__)


SERVER_ID = "tableau.example.com"
SITE_ID = "site-1"


# ============================================================================
# Environment detection
# ============================================================================

def is_sqlserver_available() -> bool:
    """Check if SQL Server is available for testing."""
    password = os.environ.get("CATALOG_SYNC_SQLSERVER_PASSWORD") or os.environ.get("MSSQL_SA_PASSWORD")
    if not password:
        return False

    try:
        import pyodbc

        host = os.environ.get("CATALOG_SYNC_SQLSERVER_HOST", "localhost")
        port = int(os.environ.get("CATALOG_SYNC_SQLSERVER_PORT", "1433"))
        database = os.environ.get("CATALOG_SYNC_SQLSERVER_DATABASE",
                                  os.environ.get("MSSQL_DATABASE", "CatalogSync"))
        username = os.environ.get("CATALOG_SYNC_SQLSERVER_USER", "sa")
        driver = os.environ.get("CATALOG_SYNC_SQLSERVER_DRIVER", "ODBC Driver 18 for SQL Server")

        conn_str = (
            f"Driver={{{driver}}};"
            f"Server={host},{port};"
            f"Database={database};"
            f"UID={username};"
            f"PWD={password};"
            f"TrustServerCertificate=yes"
        )

        conn = pyodbc.connect(conn_str, timeout=5)
        conn.close()
        return True

    except Exception as e:
        logger.debug(f"SQL Server not available: {e}")
        return False


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (requires SQL Server)")


def pytest_collection_modifyitems(config, items):
    """Automatically skip integration tests if SQL Server is not available."""
    if not any("integration" in item.keywords for item in items):
        return
    if is_sqlserver_available():
        return

    skip_sqlserver = pytest.mark.skip(
        reason="SQL Server not available (set MSSQL_SA_PASSWORD and ensure SQL Server is running)"
    )

    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_sqlserver)


# ============================================================================
# Record builders
# ============================================================================

def make_record(
    asset_type: AssetType,
    asset_id: str,
    name: Optional[str] = None,
    fields: Optional[dict] = None,
    worksheet_id: Optional[str] = None,
    **parents: str,
) -> NormalizedRecord:
    """Build a NormalizedRecord with parents given as keyword arguments."""
    return NormalizedRecord(
        asset_type=asset_type,
        asset_id=asset_id,
        name=name or asset_id,
        fields=fields or {},
        parents=parents,
        worksheet_id=worksheet_id,
    )


def sample_tree(site_id: str = SITE_ID) -> Dict[AssetType, List[NormalizedRecord]]:
    """
    A small site:

        server > site > Sales (p1) > Child (p2) > wb1 > ws1 > ra1
                                                      > ds-emb
                      > ds-pub (published)
    """
    return {
        AssetType.SERVER: [
            make_record(AssetType.SERVER, SERVER_ID, fields={"url": f"https://{SERVER_ID}", "version": "2023.1"}),
        ],
        AssetType.SITE: [
            make_record(AssetType.SITE, site_id, "Finance", {"content_url": "finance"}, server=SERVER_ID),
        ],
        AssetType.PROJECT: [
            make_record(AssetType.PROJECT, "p1", "Sales", {"owner": "alice"}, site=site_id),
            make_record(AssetType.PROJECT, "p2", "Child", site=site_id, parent_project="p1"),
        ],
        AssetType.WORKBOOK: [
            make_record(AssetType.WORKBOOK, "wb1", "Revenue", {"owner": "bob"}, site=site_id, project="p2"),
        ],
        AssetType.WORKSHEET: [
            make_record(AssetType.WORKSHEET, "ws1", "Overview", site=site_id, workbook="wb1"),
        ],
        AssetType.DATA_SOURCE: [
            make_record(
                AssetType.DATA_SOURCE, "ds-emb", "Orders",
                {"source_type": "embedded", "is_published": False},
                site=site_id, workbook="wb1",
            ),
            make_record(
                AssetType.DATA_SOURCE, "ds-pub", "Customers",
                {"source_type": "published", "is_published": True},
                site=site_id,
            ),
        ],
        AssetType.REPORT_ATTRIBUTE: [
            make_record(
                AssetType.REPORT_ATTRIBUTE, "ra1", "Amount",
                {"field_role": "MEASURE", "data_type": "REAL", "is_calculated": False},
                site=site_id, worksheet="ws1", data_source="ds-emb",
            ),
        ],
    }


def load_tree(source, tree: Dict[AssetType, List[NormalizedRecord]], scope: str = SITE_ID) -> None:
    """Load every listing of ``tree`` into an in-memory source."""
    for asset_type, records in tree.items():
        source.set_records(asset_type, records, scope=scope)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def store(tmp_path):
    """SQLite asset store in a temporary directory."""
    from catalog_sync.state import SqliteAssetStore

    store = SqliteAssetStore(db_path=tmp_path / "state" / "catalog_sync.db")
    yield store
    store.close()


@pytest.fixture
def source():
    from catalog_sync.connectors import InMemorySourceConnector
    return InMemorySourceConnector()


@pytest.fixture
def target():
    from catalog_sync.connectors import InMemoryTargetConnector
    return InMemoryTargetConnector()


@pytest.fixture
def tree():
    return sample_tree()


@pytest.fixture
def seeded_source(source, tree):
    """In-memory source serving the sample site."""
    load_tree(source, tree)
    return source


@pytest.fixture(scope="session")
def sqlserver_config() -> dict:
    """Session-scoped fixture providing SQL Server connection configuration."""
    return {
        "host": os.environ.get("CATALOG_SYNC_SQLSERVER_HOST", "localhost"),
        "port": int(os.environ.get("CATALOG_SYNC_SQLSERVER_PORT", "1433")),
        "database": os.environ.get("CATALOG_SYNC_SQLSERVER_DATABASE",
                                   os.environ.get("MSSQL_DATABASE", "CatalogSync")),
        "username": os.environ.get("CATALOG_SYNC_SQLSERVER_USER", "sa"),
        "password": os.environ.get("CATALOG_SYNC_SQLSERVER_PASSWORD",
                                   os.environ.get("MSSQL_SA_PASSWORD")),
        "driver": os.environ.get("CATALOG_SYNC_SQLSERVER_DRIVER", "ODBC Driver 18 for SQL Server"),
        "schema": os.environ.get("CATALOG_SYNC_SQLSERVER_SCHEMA", "test_catalog"),
    }
