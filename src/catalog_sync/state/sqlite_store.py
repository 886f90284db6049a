"""
SQLite-based asset store.

Default backend for local runs and tests.
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

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


class SqliteAssetStore(AssetStore):
    """
    SQLite-based implementation of the asset store.

    One table holds every asset type; the natural key is the composite
    primary key. Report attributes use their worksheet id as part of the key,
    other types store an empty string there.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:", auto_init: bool = True):
        """
        Initialize the SQLite asset store.

        Args:
            db_path: Path to the SQLite database file (":memory:" for a transient store)
            auto_init: Whether to create tables automatically
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self.conn = None
        self._connect()

        if auto_init:
            self._init_schema()

    def _connect(self) -> None:
        """Establish database connection."""
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        logger.debug(f"Connected to SQLite asset store: {self.db_path}")

    def _init_schema(self) -> None:
        """Initialize database schema."""
        cursor = self.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS asset_records (
                asset_type TEXT NOT NULL,
                scope_id TEXT NOT NULL,
                worksheet_id TEXT NOT NULL DEFAULT '',
                asset_id TEXT NOT NULL,
                name TEXT NOT NULL,
                fields TEXT,
                parents TEXT,
                content_fingerprint TEXT,
                lifecycle_state TEXT NOT NULL,
                propagation_state TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                exported_name TEXT,
                PRIMARY KEY (asset_type, scope_id, worksheet_id, asset_id)
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS ix_asset_records_scope
            ON asset_records (asset_type, scope_id, lifecycle_state)
        """)

        # Stores created before rename tracking lack the column
        columns = {row["name"] for row in cursor.execute("PRAGMA table_info(asset_records)")}
        if "exported_name" not in columns:
            cursor.execute("ALTER TABLE asset_records ADD COLUMN exported_name TEXT")

        self.conn.commit()
        logger.debug("Initialized asset store schema")

    def get_by_natural_key(self, key: NaturalKey) -> Optional[AssetRecord]:
        try:
            cursor = self.conn.cursor()
            cursor.execute("""
                SELECT * FROM asset_records
                WHERE asset_type = ? AND scope_id = ? AND worksheet_id = ? AND asset_id = ?
            """, (key.asset_type.value, key.scope_id, key.worksheet_id or "", key.asset_id))
            row = cursor.fetchone()
            return self._row_to_record(row) if row else None
        except sqlite3.Error as e:
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
        query = "SELECT * FROM asset_records WHERE asset_type = ?"
        params: list = [asset_type.value]

        if scope_id is not None:
            query += " AND scope_id = ?"
            params.append(scope_id)
        if not include_deleted:
            query += " AND lifecycle_state != ?"
            params.append(LifecycleState.DELETED.value)
        query += " ORDER BY rowid"

        try:
            cursor = self.conn.cursor()
            cursor.execute(query, params)
            return [self._row_to_record(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            logger.error(f"Failed to list {asset_type.value} records: {e}")
            raise StoreError(f"Failed to list {asset_type.value} records: {e}") from e

    def upsert(self, record: AssetRecord) -> None:
        record.updated_at = datetime.now(timezone.utc)
        try:
            cursor = self.conn.cursor()
            cursor.execute("""
                INSERT INTO asset_records (
                    asset_type, scope_id, worksheet_id, asset_id, name, fields, parents,
                    content_fingerprint, lifecycle_state, propagation_state,
                    created_at, updated_at, exported_name
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (asset_type, scope_id, worksheet_id, asset_id) DO UPDATE SET
                    name = excluded.name,
                    fields = excluded.fields,
                    parents = excluded.parents,
                    content_fingerprint = excluded.content_fingerprint,
                    lifecycle_state = excluded.lifecycle_state,
                    propagation_state = excluded.propagation_state,
                    updated_at = excluded.updated_at,
                    exported_name = excluded.exported_name
            """, (
                record.asset_type.value,
                record.scope_id,
                record.worksheet_id or "",
                record.asset_id,
                record.name,
                json.dumps(record.fields, default=str),
                json.dumps(record.parents),
                record.content_fingerprint,
                record.lifecycle_state.value,
                record.propagation_state.value,
                record.created_at.isoformat(),
                record.updated_at.isoformat(),
                record.exported_name,
            ))
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"Failed to upsert record {record.natural_key}: {e}")
            raise StoreError(f"Failed to upsert record {record.natural_key}: {e}") from e

    def get_stats(self) -> Dict[str, Dict[str, int]]:
        try:
            cursor = self.conn.cursor()
            cursor.execute("""
                SELECT asset_type, lifecycle_state, COUNT(*) AS count
                FROM asset_records
                GROUP BY asset_type, lifecycle_state
            """)
            stats: Dict[str, Dict[str, int]] = {}
            for row in cursor.fetchall():
                stats.setdefault(row["asset_type"], {})[row["lifecycle_state"]] = row["count"]
            return stats
        except sqlite3.Error as e:
            logger.error(f"Failed to get stats: {e}")
            raise StoreError(f"Failed to get stats: {e}") from e

    def _row_to_record(self, row: sqlite3.Row) -> AssetRecord:
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
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            exported_name=row["exported_name"],
        )

    def close(self) -> None:
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.debug("Closed SQLite asset store")
