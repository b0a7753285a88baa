"""Tests for the store facade and its outbox feed."""

import json

import pytest

from offline_learning import LearningStore
from offline_learning.config import Settings
from offline_learning.core.errors import (
    InvalidInputError,
    NotFoundError,
    StorageUnavailableError,
)
from offline_learning.sync.models import SyncOperation


def _queued(store: LearningStore) -> list[tuple[str, str, SyncOperation]]:
    return [
        (item.table_name, item.record_id, item.operation_type)
        for item in store.outbox.dequeue_batch()
    ]


class TestLifecycle:
    """Tests for opening and closing the store."""

    def test_context_manager(self, tmp_path) -> None:
        settings = Settings(database_path=str(tmp_path / "ctx.db"), _env_file=None)

        with LearningStore(settings) as store:
            assert store.outbox.count() == 0

        assert (tmp_path / "ctx.db").exists()

    def test_reopen_keeps_data(self, settings: Settings, store: LearningStore) -> None:
        store.metadata.set("device_id", "abc")
        store.close()

        with LearningStore(settings) as reopened:
            assert reopened.metadata.get("device_id") == "abc"


class TestOutboxFeed:
    """Tests for outbox entries written by facade mutations."""

    def test_complete_content_queues_cascade(
        self, store: LearningStore, enrollment_id: str
    ) -> None:
        """Content, module and enrollment rows should all be queued."""
        store.complete_content(enrollment_id, "block-1")

        assert _queued(store) == [
            ("content_progress", f"cp_{enrollment_id}_block-1", SyncOperation.CREATE),
            ("module_progress", f"mp_{enrollment_id}_mod-plain", SyncOperation.CREATE),
            ("enrollments", enrollment_id, SyncOperation.UPDATE),
        ]

    def test_repeat_is_update(self, store: LearningStore, enrollment_id: str, clock) -> None:
        store.view_content(enrollment_id, "block-1")
        clock.advance(seconds=5)
        store.view_content(enrollment_id, "block-1")

        operations = [op for _, _, op in _queued(store)]

        assert operations == [SyncOperation.CREATE, SyncOperation.UPDATE]

    def test_payload_is_row_snapshot(
        self, store: LearningStore, enrollment_id: str
    ) -> None:
        store.complete_content(enrollment_id, "block-1")
        store.complete_content(enrollment_id, "block-2")

        items = store.outbox.list_by_table("module_progress")
        payload = json.loads(items[-1].payload)

        assert payload["status"] == "completed"
        assert payload["auto_completed"] is True
        assert payload["content_completion_percentage"] == 100

    def test_quiz_attempt_queues_module(
        self, store: LearningStore, enrollment_id: str
    ) -> None:
        result = store.record_quiz_attempt(
            {
                "student_id": "student-1",
                "quiz_id": "quiz-1",
                "status": "completed",
                "score": 90,
                "passed": True,
            }
        )

        tables = [table for table, _, _ in _queued(store)]

        assert result.attempt.attempt_number == 1
        assert tables == ["quiz_attempts", "module_progress", "enrollments"]

    def test_abandon_queues_attempt_only(
        self, store: LearningStore, enrollment_id: str, clock
    ) -> None:
        result = store.record_quiz_attempt({"student_id": "student-1", "quiz_id": "quiz-1"})
        store.outbox.clear()
        clock.advance(minutes=1)

        store.abandon_quiz_attempt(result.attempt.id)

        assert _queued(store) == [
            ("quiz_attempts", result.attempt.id, SyncOperation.UPDATE)
        ]

    def test_answer_is_queued(self, store: LearningStore, enrollment_id: str) -> None:
        attempt = store.record_quiz_attempt(
            {"student_id": "student-1", "quiz_id": "quiz-1"}
        ).attempt

        answer = store.record_quiz_answer(
            {"attempt_id": attempt.id, "question_id": "question-1", "is_correct": True}
        )

        assert ("quiz_answers", answer.id, SyncOperation.CREATE) in _queued(store)

    def test_failed_write_queues_nothing(
        self, store: LearningStore, enrollment_id: str
    ) -> None:
        with pytest.raises(InvalidInputError):
            store.complete_content(enrollment_id, "block-other")

        assert store.outbox.count() == 0

    def test_outbox_failure_rolls_back_progress(
        self, store: LearningStore, enrollment_id: str, clock, monkeypatch
    ) -> None:
        """Progress must not commit when its outbox entries cannot be written."""
        clock.advance(minutes=1)

        def fail_insert(*args, **kwargs):
            raise StorageUnavailableError("disk full")

        monkeypatch.setattr(store.outbox, "_insert", fail_insert)

        with pytest.raises(StorageUnavailableError):
            store.complete_content(enrollment_id, "block-1")

        assert store.progress.list_content_progress(enrollment_id) == []
        with pytest.raises(NotFoundError):
            store.progress.get_module_progress(enrollment_id, "mod-plain")
        with store.database.connect() as conn:
            enrollment = store.enrollments.get(conn, enrollment_id)
        assert enrollment.updated_at == enrollment.created_at

    def test_late_failure_discards_queued_rows(
        self, store: LearningStore, enrollment_id: str, monkeypatch
    ) -> None:
        """Entries queued before a later failure roll back with the change."""
        real_enqueue = store.outbox.enqueue

        def fail_on_enrollment(operation_type, table_name, *args, **kwargs):
            if table_name == "enrollments":
                raise StorageUnavailableError("disk full")
            return real_enqueue(operation_type, table_name, *args, **kwargs)

        monkeypatch.setattr(store.outbox, "enqueue", fail_on_enrollment)

        with pytest.raises(StorageUnavailableError):
            store.complete_content(enrollment_id, "block-1")

        assert store.outbox.count() == 0
        assert store.progress.list_content_progress(enrollment_id) == []

    def test_set_module_status(self, store: LearningStore, enrollment_id: str) -> None:
        module = store.set_module_status(enrollment_id, "mod-plain", "in_progress")

        assert module.status == "in_progress"
        assert [t for t, _, _ in _queued(store)] == ["module_progress", "enrollments"]

    def test_set_module_status_unknown(
        self, store: LearningStore, enrollment_id: str
    ) -> None:
        with pytest.raises(InvalidInputError):
            store.set_module_status(enrollment_id, "mod-plain", "finished")


class TestRequestParsing:
    """Tests for dict input validation."""

    def test_invalid_quiz_attempt(self, store: LearningStore, enrollment_id: str) -> None:
        with pytest.raises(InvalidInputError):
            store.record_quiz_attempt({"student_id": "student-1", "quiz_id": "quiz-1", "score": -5})

    def test_invalid_media(self, store: LearningStore) -> None:
        with pytest.raises(InvalidInputError):
            store.cache_media({"media_id": "m1", "course_id": "c1", "download_progress": 150})

    def test_valid_media(self, store: LearningStore) -> None:
        entry = store.cache_media({"media_id": "m1", "course_id": "c1"})

        assert entry.download_progress == 0
