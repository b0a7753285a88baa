"""Database models for the sync outbox and local sync bookkeeping.

- sync_queue: append-only outbox of pending remote mutations (FIFO)
- offline_progress_batch: progress payloads kept after sync until purged
- app_metadata: key/value flags (schema version, last sync, offline mode)
"""

from datetime import datetime
from enum import Enum
from typing import Any

from offline_learning.core.timestamps import from_iso


class SyncOperation(str, Enum):
    """Kind of mutation replayed against the remote service."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class MetadataKey(str, Enum):
    """Well-known app_metadata keys."""

    SCHEMA_VERSION = "schema_version"
    LAST_FULL_SYNC = "last_full_sync"
    IS_OFFLINE_MODE = "is_offline_mode"


# ==============================================================================
# SQL Table Definitions
# ==============================================================================

SYNC_QUEUE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS sync_queue (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    operation_type TEXT NOT NULL
        CHECK(operation_type IN ('create', 'update', 'delete')),
    table_name TEXT NOT NULL,
    record_id TEXT NOT NULL,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL,
    retry_count INTEGER NOT NULL DEFAULT 0,
    last_retry_at TEXT,
    error_message TEXT
)
"""

SYNC_QUEUE_ORDER_INDEX_SQL = """
CREATE INDEX IF NOT EXISTS idx_sync_queue_created
ON sync_queue (created_at, id)
"""

OFFLINE_PROGRESS_BATCH_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS offline_progress_batch (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT,
    course_id TEXT NOT NULL,
    batch_data TEXT NOT NULL,
    created_at TEXT NOT NULL,
    synced BOOLEAN NOT NULL DEFAULT 0,
    synced_at TEXT
)
"""

APP_METADATA_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS app_metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
)
"""

SYNC_TABLES_SQL = [
    SYNC_QUEUE_TABLE_SQL,
    SYNC_QUEUE_ORDER_INDEX_SQL,
    OFFLINE_PROGRESS_BATCH_TABLE_SQL,
    APP_METADATA_TABLE_SQL,
]

# Initial metadata rows, never overwritten once present
SYNC_SEED_SQL = [
    "INSERT OR IGNORE INTO app_metadata (key, value) VALUES ('schema_version', :schema_version)",
    "INSERT OR IGNORE INTO app_metadata (key, value) VALUES ('last_full_sync', '')",
    "INSERT OR IGNORE INTO app_metadata (key, value) VALUES ('is_offline_mode', 'false')",
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class SyncQueueItem:
    """A pending mutation in the outbox.

    Attributes:
        id: Autoincrement id (tie-breaker for equal timestamps)
        operation_type: create, update or delete
        table_name: Logical table of the mutated record
        record_id: Id of the mutated record
        payload: Opaque serialized body owned by the remote service
        created_at: Enqueue timestamp
        retry_count: Failed delivery attempts
        last_retry_at: Timestamp of the last failure
        error_message: Last failure message
    """

    def __init__(
        self,
        id: int,
        operation_type: str,
        table_name: str,
        record_id: str,
        payload: str,
        created_at: datetime,
        retry_count: int = 0,
        last_retry_at: datetime | None = None,
        error_message: str | None = None,
    ):
        self.id = id
        self.operation_type = operation_type
        self.table_name = table_name
        self.record_id = record_id
        self.payload = payload
        self.created_at = created_at
        self.retry_count = retry_count
        self.last_retry_at = last_retry_at
        self.error_message = error_message

    @classmethod
    def from_row(cls, row: Any) -> "SyncQueueItem":
        """Create SyncQueueItem instance from a database row."""
        return cls(
            id=row.id,
            operation_type=row.operation_type,
            table_name=row.table_name,
            record_id=row.record_id,
            payload=row.payload,
            created_at=from_iso(row.created_at),
            retry_count=row.retry_count or 0,
            last_retry_at=from_iso(row.last_retry_at),
            error_message=row.error_message,
        )

    def __repr__(self) -> str:
        return (
            f"<SyncQueueItem {self.id} {self.operation_type} "
            f"{self.table_name}/{self.record_id} retries={self.retry_count}>"
        )


class ProgressBatch:
    """Progress payload captured during an offline session."""

    def __init__(
        self,
        id: int,
        course_id: str,
        batch_data: str,
        created_at: datetime,
        session_id: str | None = None,
        synced: bool = False,
        synced_at: datetime | None = None,
    ):
        self.id = id
        self.session_id = session_id
        self.course_id = course_id
        self.batch_data = batch_data
        self.created_at = created_at
        self.synced = synced
        self.synced_at = synced_at

    @classmethod
    def from_row(cls, row: Any) -> "ProgressBatch":
        """Create ProgressBatch instance from a database row."""
        return cls(
            id=row.id,
            session_id=row.session_id,
            course_id=row.course_id,
            batch_data=row.batch_data,
            created_at=from_iso(row.created_at),
            synced=bool(row.synced),
            synced_at=from_iso(row.synced_at),
        )

    def __repr__(self) -> str:
        return f"<ProgressBatch {self.id} course={self.course_id} synced={self.synced}>"
