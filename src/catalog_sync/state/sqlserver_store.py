"""
SQL Server-based asset store.

Production backend for shared deployments.
"""

import json
import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional

try:
    import pyodbc
except ImportError:
    pyodbc = None

from ..core.asset_store import AssetStore
from ..core.exceptions import StoreError
from ..core.models import (
    AssetRecord,
    AssetType,
    LifecycleState,
    NaturalKey,
    PropagationState,
)


logger = logging.getLogger(__name__)


class SqlServerAssetStore(AssetStore):
    """
    SQL Server-based implementation of the asset store.

    Same layout as the SQLite store: one table keyed by the composite
    natural key, upserts via MERGE.
    """

    def __init__(
        self,
        connection_string: Optional[str] = None,
        host: str = "localhost",
        port: int = 1433,
        database: str = "CatalogSync",
        username: str = "sa",
        password: Optional[str] = None,
        driver: str = "ODBC Driver 18 for SQL Server",
        schema: str = "catalog",
        auto_init: bool = True,
        trust_server_certificate: bool = True,
    ):
        """
        Initialize the SQL Server asset store.

        Args:
            connection_string: Full ODBC connection string (if provided, other params ignored)
            host: SQL Server host
            port: SQL Server port
            database: Database name
            username: Database username
            password: Database password
            driver: ODBC driver name
            schema: Schema name for tables (default: 'catalog')
            auto_init: Whether to create schema and tables automatically
            trust_server_certificate: Whether to trust self-signed certificates
        """
        if pyodbc is None:
            raise ImportError(
                "pyodbc is required for SqlServerAssetStore. "
                "Install with: pip install pyodbc"
            )

        if not self._is_valid_identifier(schema):
            raise ValueError(f"Invalid schema name: {schema}")

        self.schema = schema

        if connection_string:
            self.connection_string = connection_string
        else:
            trust_cert = "yes" if trust_server_certificate else "no"
            self.connection_string = (
                f"Driver={{{driver}}};"
                f"Server={host},{port};"
                f"Database={database};"
                f"UID={username};"
                f"PWD={password};"
                f"TrustServerCertificate={trust_cert}"
            )

        self.conn = None
        self._connect()

        if auto_init:
            self._init_schema()

    @staticmethod
    def _is_valid_identifier(name: str) -> bool:
        """Whitelist check for identifiers interpolated into SQL."""
        if not name or len(name) > 128:
            return False
        return re.match(r'^[a-zA-Z_][a-zA-Z0-9_]*$', name) is not None

    def _connect(self) -> None:
        """Establish database connection."""
        try:
            self.conn = pyodbc.connect(self.connection_string)
            logger.debug(f"Connected to SQL Server asset store (schema: {self.schema})")
        except pyodbc.Error as e:
            logger.error(f"Failed to connect to SQL Server: {e}")
            raise StoreError(f"Failed to connect to SQL Server: {e}") from e

    def _init_schema(self) -> None:
        """Initialize database schema and tables."""
        cursor = self.conn.cursor()

        try:
            # Schema name is whitelisted in __init__; CREATE SCHEMA cannot be parameterised
            cursor.execute(f"""
                IF NOT EXISTS (SELECT * FROM sys.schemas WHERE name = ?)
                BEGIN
                    EXEC('CREATE SCHEMA [{self.schema}]')
                END
            """, (self.schema,))

            cursor.execute(f"""
                IF NOT EXISTS (SELECT * FROM sys.tables t
                               JOIN sys.schemas s ON t.schema_id = s.schema_id
                               WHERE t.name = 'asset_records' AND s.name = ?)
                BEGIN
                    CREATE TABLE [{self.schema}].[asset_records] (
                        record_seq BIGINT IDENTITY(1,1) NOT NULL,
                        asset_type NVARCHAR(50) NOT NULL,
                        scope_id NVARCHAR(200) NOT NULL,
                        worksheet_id NVARCHAR(200) NOT NULL DEFAULT '',
                        asset_id NVARCHAR(400) NOT NULL,
                        name NVARCHAR(1000) NOT NULL,
                        fields NVARCHAR(MAX),
                        parents NVARCHAR(MAX),
                        content_fingerprint NVARCHAR(64),
                        lifecycle_state NVARCHAR(20) NOT NULL,
                        propagation_state NVARCHAR(20) NOT NULL,
                        created_at DATETIME2 NOT NULL,
                        updated_at DATETIME2 NOT NULL,
                        exported_name NVARCHAR(1000) NULL,
                        CONSTRAINT PK_asset_records
                            PRIMARY KEY (asset_type, scope_id, worksheet_id, asset_id)
                    )
                    CREATE INDEX ix_asset_records_scope
                        ON [{self.schema}].[asset_records] (asset_type, scope_id, lifecycle_state)
                END
            """, (self.schema,))

            # Stores created before rename tracking lack the column
            cursor.execute(f"""
                IF COL_LENGTH('{self.schema}.asset_records', 'exported_name') IS NULL
                BEGIN
                    ALTER TABLE [{self.schema}].[asset_records] ADD exported_name NVARCHAR(1000) NULL
                END
            """)

            self.conn.commit()
            logger.debug("Initialized asset store schema")

        except pyodbc.Error as e:
            logger.error(f"Failed to initialize schema: {e}")
            self.conn.rollback()
            raise StoreError(f"Failed to initialize schema: {e}") from e

    def get_by_natural_key(self, key: NaturalKey) -> Optional[AssetRecord]:
        try:
            cursor = self.conn.cursor()
            cursor.execute(f"""
                SELECT * FROM [{self.schema}].[asset_records]
                WHERE asset_type = ? AND scope_id = ? AND worksheet_id = ? AND asset_id = ?
            """, (key.asset_type.value, key.scope_id, key.worksheet_id or "", key.asset_id))

            columns = [column[0] for column in cursor.description]
            row = cursor.fetchone()
            if row:
                return self._row_to_record(dict(zip(columns, row)))
            return None

        except pyodbc.Error as e:
            logger.error(f"Failed to get record {key}: {e}")
            raise StoreError(f"Failed to get record {key}: {e}") from e

    def get_all(self, asset_type: AssetType, scope_id: Optional[str] = None) -> List[AssetRecord]:
        return self._select(asset_type, scope_id, include_deleted=True)

    def get_all_active(self, asset_type: AssetType, scope_id: Optional[str] = None) -> List[AssetRecord]:
        return self._select(asset_type, scope_id, include_deleted=False)

    def _select(
        self,
        asset_type: AssetType,
        scope_id: Optional[str],
        include_deleted: bool,
    ) -> List[AssetRecord]:
        query = f"SELECT * FROM [{self.schema}].[asset_records] WHERE asset_type = ?"
        params: list = [asset_type.value]

        if scope_id is not None:
            query += " AND scope_id = ?"
            params.append(scope_id)
        if not include_deleted:
            query += " AND lifecycle_state <> ?"
            params.append(LifecycleState.DELETED.value)
        query += " ORDER BY record_seq"

        try:
            cursor = self.conn.cursor()
            cursor.execute(query, params)
            columns = [column[0] for column in cursor.description]
            return [self._row_to_record(dict(zip(columns, row))) for row in cursor.fetchall()]
        except pyodbc.Error as e:
            logger.error(f"Failed to list {asset_type.value} records: {e}")
            raise StoreError(f"Failed to list {asset_type.value} records: {e}") from e

    def upsert(self, record: AssetRecord) -> None:
        record.updated_at = datetime.now(timezone.utc)
        fields_json = json.dumps(record.fields, default=str)
        parents_json = json.dumps(record.parents)

        try:
            cursor = self.conn.cursor()
            cursor.execute(f"""
                MERGE [{self.schema}].[asset_records] AS target
                USING (SELECT ? AS asset_type, ? AS scope_id, ? AS worksheet_id, ? AS asset_id) AS source
                ON target.asset_type = source.asset_type
                   AND target.scope_id = source.scope_id
                   AND target.worksheet_id = source.worksheet_id
                   AND target.asset_id = source.asset_id
                WHEN MATCHED THEN
                    UPDATE SET
                        name = ?,
                        fields = ?,
                        parents = ?,
                        content_fingerprint = ?,
                        lifecycle_state = ?,
                        propagation_state = ?,
                        updated_at = ?,
                        exported_name = ?
                WHEN NOT MATCHED THEN
                    INSERT (asset_type, scope_id, worksheet_id, asset_id, name, fields, parents,
                            content_fingerprint, lifecycle_state, propagation_state,
                            created_at, updated_at, exported_name)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """, (
                record.asset_type.value,
                record.scope_id,
                record.worksheet_id or "",
                record.asset_id,
                record.name,
                fields_json,
                parents_json,
                record.content_fingerprint,
                record.lifecycle_state.value,
                record.propagation_state.value,
                record.updated_at,
                record.exported_name,
                record.asset_type.value,
                record.scope_id,
                record.worksheet_id or "",
                record.asset_id,
                record.name,
                fields_json,
                parents_json,
                record.content_fingerprint,
                record.lifecycle_state.value,
                record.propagation_state.value,
                record.created_at,
                record.updated_at,
                record.exported_name,
            ))
            self.conn.commit()

        except pyodbc.Error as e:
            logger.error(f"Failed to upsert record {record.natural_key}: {e}")
            self.conn.rollback()
            raise StoreError(f"Failed to upsert record {record.natural_key}: {e}") from e

    def get_stats(self) -> Dict[str, Dict[str, int]]:
        try:
            cursor = self.conn.cursor()
            cursor.execute(f"""
                SELECT asset_type, lifecycle_state, COUNT(*) AS count
                FROM [{self.schema}].[asset_records]
                GROUP BY asset_type, lifecycle_state
            """)
            stats: Dict[str, Dict[str, int]] = {}
            for row in cursor.fetchall():
                stats.setdefault(row[0], {})[row[1]] = row[2]
            return stats
        except pyodbc.Error as e:
            logger.error(f"Failed to get stats: {e}")
            raise StoreError(f"Failed to get stats: {e}") from e

    def _row_to_record(self, row: dict) -> AssetRecord:
        """Convert a database row to an AssetRecord."""
        return AssetRecord(
            asset_type=AssetType(row["asset_type"]),
            asset_id=row["asset_id"],
            scope_id=row["scope_id"],
            name=row["name"],
            worksheet_id=row["worksheet_id"] or None,
            fields=json.loads(row["fields"]) if row["fields"] else {},
            parents=json.loads(row["parents"]) if row["parents"] else {},
            content_fingerprint=row["content_fingerprint"],
            lifecycle_state=LifecycleState(row["lifecycle_state"]),
            propagation_state=PropagationState(row["propagation_state"]),
            created_at=self._parse_datetime(row["created_at"]),
            updated_at=self._parse_datetime(row["updated_at"]),
            exported_name=row.get("exported_name"),
        )

    def _parse_datetime(self, value) -> datetime:
        """Parse datetime from database value (naive values are UTC)."""
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    def close(self) -> None:
        """Close the database connection."""
        if self.conn:
            try:
                self.conn.close()
            except pyodbc.Error as e:
                logger.warning(f"Error closing SQL Server connection: {e}")
            self.conn = None
            logger.debug("Closed SQL Server asset store connection")
