"""Sync outbox and progress batch services.

The outbox is append-only and delivers at least once: the same logical change
may be enqueued more than once and every copy is replayed, so consumers must
be idempotent. Items leave the queue only through ``ack``; failed deliveries
are recorded with ``nack`` and stay in place for the next batch. No backoff is
computed here; ``retry_count`` and ``last_retry_at`` are state for the
caller's retry policy.
"""

import json
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError
from sqlalchemy import bindparam, text

from offline_learning.core.errors import InvalidInputError, NotFoundError
from offline_learning.core.logging import get_logger
from offline_learning.core.timestamps import Clock, to_iso, utc_now

from .models import ProgressBatch, SyncOperation, SyncQueueItem
from .schemas import (
    EnqueueRequest,
    ProgressBatchResponse,
    SaveProgressBatchRequest,
    SyncQueueItemResponse,
)


if TYPE_CHECKING:
    from sqlalchemy.engine import Connection

    from offline_learning.core.database import Database


logger = get_logger(__name__)


def _check_limit(limit: int) -> int:
    if limit < 1:
        raise InvalidInputError("limit must be at least 1")
    return limit


def operation_for(response: Any) -> SyncOperation:
    """Create for a row written for the first time, update otherwise."""
    if response.created_at is not None and response.created_at == response.updated_at:
        return SyncOperation.CREATE
    return SyncOperation.UPDATE


# ==============================================================================
# Sync Outbox
# ==============================================================================


class SyncOutbox:
    """FIFO queue of mutations awaiting delivery to the remote service."""

    def __init__(
        self,
        database: "Database",
        batch_size: int = 100,
        clock: Clock = utc_now,
    ):
        self.database = database
        self.batch_size = batch_size
        self.clock = clock
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Build SQL statements once."""
        self._insert_item = text("""
            INSERT INTO sync_queue
            (operation_type, table_name, record_id, payload, created_at,
             retry_count, last_retry_at, error_message)
            VALUES (:operation_type, :table_name, :record_id, :payload, :now,
                    0, NULL, NULL)
        """)

        self._get_item = text("SELECT * FROM sync_queue WHERE id = :item_id")

        # id breaks ties between items enqueued within the same microsecond
        self._oldest_items = text("""
            SELECT * FROM sync_queue
            ORDER BY created_at ASC, id ASC
            LIMIT :limit
        """)

        self._items_by_table = text("""
            SELECT * FROM sync_queue
            WHERE table_name = :table_name
            ORDER BY created_at ASC, id ASC
        """)

        self._delete_item = text("DELETE FROM sync_queue WHERE id = :item_id")

        self._delete_items = text(
            "DELETE FROM sync_queue WHERE id IN :item_ids"
        ).bindparams(bindparam("item_ids", expanding=True))

        self._record_failure = text("""
            UPDATE sync_queue
            SET retry_count = retry_count + 1,
                last_retry_at = :now,
                error_message = :error_message
            WHERE id = :item_id
        """)

        self._count_items = text("SELECT COUNT(*) FROM sync_queue")

        self._clear_items = text("DELETE FROM sync_queue")

    def enqueue(
        self,
        operation_type: SyncOperation | str,
        table_name: str,
        record_id: str,
        payload: str | dict[str, Any] | list[Any],
        conn: "Connection | None" = None,
    ) -> SyncQueueItemResponse:
        """Append a mutation. Duplicates are kept.

        Pass ``conn`` to write the item inside the caller's transaction, so it
        commits or rolls back together with the change it describes.

        Raises:
            InvalidInputError: On an unknown operation or empty identifiers.
        """
        try:
            request = EnqueueRequest(
                operation_type=operation_type,
                table_name=table_name,
                record_id=record_id,
                payload=payload,
            )
        except ValidationError as e:
            raise InvalidInputError(str(e)) from e

        if conn is not None:
            item = self._insert(conn, request)
        else:
            with self.database.transaction() as conn:
                item = self._insert(conn, request)

        logger.debug(
            "sync_item_enqueued",
            item_id=item.id,
            operation_type=request.operation_type.value,
            table_name=request.table_name,
            record_id=request.record_id,
        )
        return SyncQueueItemResponse.from_entity(item)

    def _insert(self, conn: "Connection", request: EnqueueRequest) -> SyncQueueItem:
        result = conn.execute(
            self._insert_item,
            {
                "operation_type": request.operation_type.value,
                "table_name": request.table_name,
                "record_id": request.record_id,
                "payload": request.serialized_payload(),
                "now": to_iso(self.clock()),
            },
        )
        row = conn.execute(self._get_item, {"item_id": result.lastrowid}).one()
        return SyncQueueItem.from_row(row)

    def dequeue_batch(self, limit: int | None = None) -> list[SyncQueueItemResponse]:
        """Return the oldest items without removing them."""
        limit = _check_limit(limit if limit is not None else self.batch_size)
        with self.database.connect() as conn:
            rows = conn.execute(self._oldest_items, {"limit": limit}).all()
        return [SyncQueueItemResponse.from_entity(SyncQueueItem.from_row(r)) for r in rows]

    def ack(self, item_id: int) -> None:
        """Remove an item after the remote service confirmed it.

        Raises:
            NotFoundError: If the item is not queued.
        """
        with self.database.transaction() as conn:
            result = conn.execute(self._delete_item, {"item_id": item_id})
            if result.rowcount == 0:
                raise NotFoundError(f"Sync item {item_id} not found")
        logger.debug("sync_item_acked", item_id=item_id)

    def ack_many(self, item_ids: list[int]) -> int:
        """Remove several confirmed items. Unknown ids are skipped.

        Returns:
            Number of items removed
        """
        if not item_ids:
            return 0
        with self.database.transaction() as conn:
            removed = conn.execute(
                self._delete_items, {"item_ids": list(item_ids)}
            ).rowcount
        logger.debug("sync_items_acked", count=removed, requested=len(item_ids))
        return removed

    def nack(self, item_id: int, error_message: str) -> SyncQueueItemResponse:
        """Record a failed delivery and keep the item queued in place.

        Raises:
            NotFoundError: If the item is not queued.
        """
        with self.database.transaction() as conn:
            result = conn.execute(
                self._record_failure,
                {
                    "item_id": item_id,
                    "error_message": error_message,
                    "now": to_iso(self.clock()),
                },
            )
            if result.rowcount == 0:
                raise NotFoundError(f"Sync item {item_id} not found")
            row = conn.execute(self._get_item, {"item_id": item_id}).one()

        item = SyncQueueItem.from_row(row)
        logger.warning(
            "sync_item_nacked",
            item_id=item_id,
            retry_count=item.retry_count,
            error=error_message,
        )
        return SyncQueueItemResponse.from_entity(item)

    def count(self) -> int:
        """Number of queued items."""
        with self.database.connect() as conn:
            return conn.execute(self._count_items).scalar_one()

    def list_by_table(self, table_name: str) -> list[SyncQueueItemResponse]:
        """Queued items for one table, oldest first."""
        with self.database.connect() as conn:
            rows = conn.execute(self._items_by_table, {"table_name": table_name}).all()
        return [SyncQueueItemResponse.from_entity(SyncQueueItem.from_row(r)) for r in rows]

    def clear(self) -> int:
        """Drop every queued item.

        Returns:
            Number of items removed
        """
        with self.database.transaction() as conn:
            removed = conn.execute(self._clear_items).rowcount
        logger.warning("sync_queue_cleared", count=removed)
        return removed


# ==============================================================================
# Progress Batches
# ==============================================================================


class ProgressBatchStore:
    """Progress payloads recorded offline, kept after sync until purged."""

    def __init__(
        self,
        database: "Database",
        batch_size: int = 50,
        clock: Clock = utc_now,
    ):
        self.database = database
        self.batch_size = batch_size
        self.clock = clock
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Build SQL statements once."""
        self._insert_batch = text("""
            INSERT INTO offline_progress_batch
            (session_id, course_id, batch_data, created_at, synced, synced_at)
            VALUES (:session_id, :course_id, :batch_data, :now, 0, NULL)
        """)

        self._get_batch = text(
            "SELECT * FROM offline_progress_batch WHERE id = :batch_id"
        )

        self._unsynced_batches = text("""
            SELECT * FROM offline_progress_batch
            WHERE synced = 0
            ORDER BY created_at ASC, id ASC
            LIMIT :limit
        """)

        self._mark_synced = text("""
            UPDATE offline_progress_batch
            SET synced = 1, synced_at = :now
            WHERE id = :batch_id
        """)

        self._purge_synced = text("""
            DELETE FROM offline_progress_batch
            WHERE synced = 1 AND synced_at < :cutoff
        """)

        self._count_unsynced = text(
            "SELECT COUNT(*) FROM offline_progress_batch WHERE synced = 0"
        )

    def save(self, request: SaveProgressBatchRequest) -> ProgressBatchResponse:
        """Store a progress batch as unsynced."""
        with self.database.transaction() as conn:
            result = conn.execute(
                self._insert_batch,
                {
                    "session_id": request.session_id,
                    "course_id": request.course_id,
                    "batch_data": json.dumps(request.batch_data, default=str),
                    "now": to_iso(self.clock()),
                },
            )
            row = conn.execute(self._get_batch, {"batch_id": result.lastrowid}).one()

        batch = ProgressBatch.from_row(row)
        logger.debug(
            "progress_batch_saved",
            batch_id=batch.id,
            session_id=batch.session_id,
            course_id=batch.course_id,
        )
        return ProgressBatchResponse.from_entity(batch)

    def get_unsynced(self, limit: int | None = None) -> list[ProgressBatchResponse]:
        """Oldest unsynced batches first."""
        limit = _check_limit(limit if limit is not None else self.batch_size)
        with self.database.connect() as conn:
            rows = conn.execute(self._unsynced_batches, {"limit": limit}).all()
        return [ProgressBatchResponse.from_entity(ProgressBatch.from_row(r)) for r in rows]

    def mark_synced(self, batch_id: int) -> ProgressBatchResponse:
        """Flag a batch as delivered.

        Raises:
            NotFoundError: If the batch does not exist.
        """
        with self.database.transaction() as conn:
            result = conn.execute(
                self._mark_synced,
                {"batch_id": batch_id, "now": to_iso(self.clock())},
            )
            if result.rowcount == 0:
                raise NotFoundError(f"Progress batch {batch_id} not found")
            row = conn.execute(self._get_batch, {"batch_id": batch_id}).one()

        logger.debug("progress_batch_synced", batch_id=batch_id)
        return ProgressBatchResponse.from_entity(ProgressBatch.from_row(row))

    def purge_synced(self, older_than_days: int) -> int:
        """Delete batches synced more than ``older_than_days`` days ago.

        Returns:
            Number of batches removed
        """
        if older_than_days < 0:
            raise InvalidInputError("older_than_days must not be negative")
        cutoff = self.clock() - timedelta(days=older_than_days)
        with self.database.transaction() as conn:
            removed = conn.execute(
                self._purge_synced, {"cutoff": to_iso(cutoff)}
            ).rowcount
        logger.info(
            "progress_batches_purged",
            count=removed,
            older_than_days=older_than_days,
        )
        return removed

    def count_unsynced(self) -> int:
        """Number of batches waiting for sync."""
        with self.database.connect() as conn:
            return conn.execute(self._count_unsynced).scalar_one()
