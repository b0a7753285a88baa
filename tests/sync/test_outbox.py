"""Tests for the sync outbox."""

import json

import pytest

from offline_learning.core.errors import InvalidInputError, NotFoundError
from offline_learning.sync.models import SyncOperation
from offline_learning.store import LearningStore


class TestEnqueue:
    """Tests for appending to the outbox."""

    def test_enqueue_serializes_payload(self, store: LearningStore, clock) -> None:
        item = store.outbox.enqueue(
            SyncOperation.UPDATE, "module_progress", "mp-1", {"status": "completed"}
        )

        assert item.operation_type == SyncOperation.UPDATE
        assert json.loads(item.payload) == {"status": "completed"}
        assert item.created_at == clock()
        assert item.retry_count == 0

    def test_string_payload_is_stored_verbatim(self, store: LearningStore) -> None:
        item = store.outbox.enqueue("create", "quiz_answers", "a-1", '{"x": 1}')

        assert item.payload == '{"x": 1}'

    def test_duplicates_are_kept(self, store: LearningStore) -> None:
        for _ in range(2):
            store.outbox.enqueue("update", "enrollments", "enr-1", {})

        assert store.outbox.count() == 2

    def test_unknown_operation(self, store: LearningStore) -> None:
        with pytest.raises(InvalidInputError):
            store.outbox.enqueue("upsert", "enrollments", "enr-1", {})

    def test_empty_table_name(self, store: LearningStore) -> None:
        with pytest.raises(InvalidInputError):
            store.outbox.enqueue("update", "", "enr-1", {})


class TestDequeue:
    """Tests for FIFO reads and acknowledgements."""

    def test_fifo_order(self, store: LearningStore) -> None:
        """Items come back oldest first, even within the same instant."""
        for record_id in ("A", "B", "C"):
            store.outbox.enqueue("create", "content_progress", record_id, {})

        batch = store.outbox.dequeue_batch(limit=2)

        assert [item.record_id for item in batch] == ["A", "B"]

    def test_dequeue_does_not_remove(self, store: LearningStore) -> None:
        store.outbox.enqueue("create", "content_progress", "A", {})

        store.outbox.dequeue_batch()

        assert store.outbox.count() == 1

    def test_ack(self, store: LearningStore) -> None:
        first = store.outbox.enqueue("create", "content_progress", "A", {})
        store.outbox.enqueue("create", "content_progress", "B", {})

        store.outbox.ack(first.id)

        assert [i.record_id for i in store.outbox.dequeue_batch()] == ["B"]

    def test_ack_missing(self, store: LearningStore) -> None:
        with pytest.raises(NotFoundError):
            store.outbox.ack(12345)

    def test_ack_many_skips_unknown(self, store: LearningStore) -> None:
        ids = [
            store.outbox.enqueue("create", "content_progress", r, {}).id
            for r in ("A", "B", "C")
        ]

        assert store.outbox.ack_many([ids[0], ids[2], 999]) == 2
        assert store.outbox.ack_many([]) == 0
        assert [i.record_id for i in store.outbox.dequeue_batch()] == ["B"]

    def test_nack_keeps_position(self, store: LearningStore, clock) -> None:
        """A failed item stays at the head of the queue with its error."""
        first = store.outbox.enqueue("create", "content_progress", "A", {})
        store.outbox.enqueue("create", "content_progress", "B", {})
        clock.advance(seconds=30)

        store.outbox.nack(first.id, "timeout")
        item = store.outbox.nack(first.id, "server error")

        assert item.retry_count == 2
        assert item.error_message == "server error"
        assert item.last_retry_at == clock()
        assert store.outbox.dequeue_batch(limit=1)[0].id == first.id

    def test_nack_missing(self, store: LearningStore) -> None:
        with pytest.raises(NotFoundError):
            store.outbox.nack(12345, "boom")

    def test_invalid_limit(self, store: LearningStore) -> None:
        with pytest.raises(InvalidInputError):
            store.outbox.dequeue_batch(limit=0)


class TestMaintenance:
    """Tests for listing and clearing."""

    def test_list_by_table(self, store: LearningStore) -> None:
        store.outbox.enqueue("create", "content_progress", "A", {})
        store.outbox.enqueue("update", "enrollments", "enr-1", {})

        items = store.outbox.list_by_table("enrollments")

        assert [i.record_id for i in items] == ["enr-1"]

    def test_clear(self, store: LearningStore) -> None:
        store.outbox.enqueue("create", "content_progress", "A", {})
        store.outbox.enqueue("create", "content_progress", "B", {})

        assert store.outbox.clear() == 2
        assert store.outbox.count() == 0
