"""Sync outbox, progress batches and app metadata."""

from .models import (
    SYNC_SEED_SQL,
    SYNC_TABLES_SQL,
    MetadataKey,
    ProgressBatch,
    SyncOperation,
    SyncQueueItem,
)


__all__ = [
    "SYNC_SEED_SQL",
    "SYNC_TABLES_SQL",
    "MetadataKey",
    "ProgressBatch",
    "SyncOperation",
    "SyncQueueItem",
]
