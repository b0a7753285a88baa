"""Tests for the media download cache."""

import pytest

from offline_learning.core.errors import InvalidInputError, NotFoundError
from offline_learning.media.schemas import UpsertMediaCacheRequest
from offline_learning.store import LearningStore


def _cache(store: LearningStore, media_id: str = "media-1", **overrides):
    data = {
        "media_id": media_id,
        "course_id": "course-1",
        "filename": f"{media_id}.mp4",
        "media_type": "video",
        "size_bytes": 1000,
        **overrides,
    }
    return store.media.upsert(UpsertMediaCacheRequest(**data))


class TestUpsert:
    """Tests for inserting and updating entries."""

    def test_insert(self, store: LearningStore) -> None:
        entry = _cache(store, download_progress=10)

        assert entry.download_progress == 10
        assert entry.is_downloaded is False
        assert entry.downloaded_at is None

    def test_progress_never_regresses(self, store: LearningStore) -> None:
        """A later upsert with lower progress should keep the higher value."""
        _cache(store, download_progress=60)
        entry = _cache(store, download_progress=20, local_file_path="/tmp/media-1")

        assert entry.download_progress == 60
        assert entry.local_file_path == "/tmp/media-1"

    def test_downloaded_pins_progress(self, store: LearningStore, clock) -> None:
        entry = _cache(store, is_downloaded=True, download_progress=0)

        assert entry.download_progress == 100
        assert entry.downloaded_at == clock()

        again = _cache(store, is_downloaded=False, download_progress=5)
        assert again.is_downloaded is True
        assert again.download_progress == 100

    def test_progress_out_of_range(self) -> None:
        with pytest.raises(ValueError):
            UpsertMediaCacheRequest(
                media_id="media-1", course_id="course-1", download_progress=101
            )


class TestUpdateProgress:
    """Tests for update_progress."""

    def test_monotonic(self, store: LearningStore) -> None:
        _cache(store)

        store.media.update_progress("media-1", 70)
        entry = store.media.update_progress("media-1", 40)

        assert entry.download_progress == 70

    def test_mark_downloaded(self, store: LearningStore, clock) -> None:
        _cache(store)

        entry = store.media.update_progress("media-1", 90, is_downloaded=True)

        assert entry.is_downloaded is True
        assert entry.download_progress == 100
        assert entry.downloaded_at == clock()

    @pytest.mark.parametrize("progress", [-1, 101])
    def test_rejects_out_of_range(self, store: LearningStore, progress: int) -> None:
        _cache(store)
        with pytest.raises(InvalidInputError):
            store.media.update_progress("media-1", progress)

    def test_missing_media(self, store: LearningStore) -> None:
        with pytest.raises(NotFoundError):
            store.media.update_progress("missing", 10)


class TestCourseQueries:
    """Tests for per-course listing, summary and cleanup."""

    def test_summary(self, store: LearningStore) -> None:
        _cache(store, "a", download_progress=50)
        _cache(store, "b", is_downloaded=True)
        _cache(store, "c", course_id="course-2")

        summary = store.media.course_summary("course-1")

        assert summary.total_media == 2
        assert summary.downloaded_media == 1
        assert summary.total_size_bytes == 2000
        assert summary.average_progress == 75.0
        assert summary.is_complete is False

    def test_empty_course_is_not_complete(self, store: LearningStore) -> None:
        summary = store.media.course_summary("course-1")

        assert summary.total_media == 0
        assert summary.is_complete is False

    def test_delete_by_course(self, store: LearningStore) -> None:
        _cache(store, "a")
        _cache(store, "b")
        _cache(store, "c", course_id="course-2")

        assert store.media.delete_by_course("course-1") == 2
        assert store.media.list_by_course("course-1") == []
        assert store.media.get_by_media("c").course_id == "course-2"

    def test_get_missing(self, store: LearningStore) -> None:
        with pytest.raises(NotFoundError):
            store.media.get_by_media("missing")
