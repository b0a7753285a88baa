"""Tests for offline progress batches and app metadata."""

from datetime import UTC, datetime

import pytest

from offline_learning.core.errors import InvalidInputError, NotFoundError
from offline_learning.store import LearningStore
from offline_learning.sync.schemas import SaveProgressBatchRequest


def _save(store: LearningStore, course_id: str = "course-1", **data):
    return store.batches.save(
        SaveProgressBatchRequest(
            session_id="session-1",
            course_id=course_id,
            batch_data=data or {"content_id": "block-1"},
        )
    )


class TestProgressBatches:
    """Tests for ProgressBatchStore."""

    def test_save_decodes_payload(self, store: LearningStore, clock) -> None:
        batch = _save(store, completed=["block-1", "block-2"])

        assert batch.batch_data == {"completed": ["block-1", "block-2"]}
        assert batch.synced is False
        assert batch.created_at == clock()

    def test_unsynced_oldest_first(self, store: LearningStore, clock) -> None:
        first = _save(store)
        clock.advance(seconds=1)
        second = _save(store)
        clock.advance(seconds=1)
        _save(store)

        batches = store.batches.get_unsynced(limit=2)

        assert [b.id for b in batches] == [first.id, second.id]
        assert store.batches.count_unsynced() == 3

    def test_mark_synced(self, store: LearningStore, clock) -> None:
        batch = _save(store)

        synced = store.batches.mark_synced(batch.id)

        assert synced.synced is True
        assert synced.synced_at == clock()
        assert store.batches.get_unsynced() == []

    def test_mark_missing(self, store: LearningStore) -> None:
        with pytest.raises(NotFoundError):
            store.batches.mark_synced(999)

    def test_purge_synced(self, store: LearningStore, clock) -> None:
        """Only batches synced before the window should be removed."""
        old = _save(store)
        store.batches.mark_synced(old.id)
        clock.advance(days=10)
        recent = _save(store)
        store.batches.mark_synced(recent.id)
        _save(store)

        assert store.batches.purge_synced(older_than_days=5) == 1
        assert store.batches.count_unsynced() == 1

    def test_purge_negative_days(self, store: LearningStore) -> None:
        with pytest.raises(InvalidInputError):
            store.batches.purge_synced(-1)

    def test_facade_rejects_missing_course(self, store: LearningStore) -> None:
        with pytest.raises(InvalidInputError):
            store.save_progress_batch({"batch_data": {}})


class TestAppMetadata:
    """Tests for AppMetadataStore."""

    def test_defaults(self, store: LearningStore) -> None:
        assert store.metadata.get("schema_version") == "1"
        assert store.metadata.get_last_sync_time() is None
        assert store.metadata.is_offline_mode() is False

    def test_unset_key(self, store: LearningStore) -> None:
        assert store.metadata.get("missing") is None

    def test_set_overwrites(self, store: LearningStore) -> None:
        store.metadata.set("device_id", "abc")
        store.metadata.set("device_id", "def")

        assert store.metadata.get("device_id") == "def"
        assert store.metadata.all()["device_id"] == "def"

    def test_last_sync_time(self, store: LearningStore, clock) -> None:
        assert store.metadata.set_last_sync_time() == clock()
        assert store.metadata.get_last_sync_time() == clock()

        explicit = datetime(2025, 1, 1, tzinfo=UTC)
        store.metadata.set_last_sync_time(explicit)
        assert store.metadata.get_last_sync_time() == explicit

    def test_offline_mode(self, store: LearningStore) -> None:
        store.metadata.set_offline_mode(True)
        assert store.metadata.is_offline_mode() is True

        store.metadata.set_offline_mode(False)
        assert store.metadata.is_offline_mode() is False
