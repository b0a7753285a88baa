"""Tests for the completion cascade from content and quizzes into modules."""

import pytest

from offline_learning.core.errors import (
    InvalidInputError,
    NotFoundError,
    StorageUnavailableError,
)
from offline_learning.progress.cascade import completion_percentage
from offline_learning.progress.models import ModuleProgressStatus, QuizAttemptStatus
from offline_learning.progress.schemas import RecordQuizAttemptRequest
from offline_learning.store import LearningStore


def _enrollment(store: LearningStore, enrollment_id: str):
    with store.database.connect() as conn:
        return store.enrollments.get(conn, enrollment_id)


def _attempt(passed: bool, score: float, quiz_id: str = "quiz-1") -> RecordQuizAttemptRequest:
    return RecordQuizAttemptRequest(
        student_id="student-1",
        quiz_id=quiz_id,
        status=QuizAttemptStatus.COMPLETED,
        score=score,
        passed=passed,
    )


class TestCompletionPercentage:
    """Tests for percentage rounding."""

    @pytest.mark.parametrize(
        "completed,total,expected",
        [
            (0, 4, 0),
            (1, 2, 50),
            (1, 3, 33),
            (2, 3, 67),
            (1, 8, 13),
            (3, 3, 100),
            (0, 0, 0),
        ],
    )
    def test_rounds_half_up(self, completed: int, total: int, expected: int) -> None:
        assert completion_percentage(completed, total) == expected


class TestContentCascade:
    """Tests for the cascade triggered by content completion."""

    def test_two_block_module(
        self, store: LearningStore, enrollment_id: str, clock
    ) -> None:
        """First block half-completes the module, second auto-completes it."""
        first = store.progress.record_content_completed(enrollment_id, "block-1")

        assert first.module.content_completion_percentage == 50
        assert first.module.status == ModuleProgressStatus.IN_PROGRESS
        assert first.module.started_at == clock()
        assert first.module_auto_completed is False

        clock.advance(minutes=3)
        second = store.progress.record_content_completed(enrollment_id, "block-2")

        assert second.module.content_completion_percentage == 100
        assert second.module.status == ModuleProgressStatus.COMPLETED
        assert second.module.auto_completed is True
        assert second.module.completed_at == clock()
        assert second.module.completed_content_count == 2
        assert second.module.total_content_count == 2
        assert second.module_auto_completed is True

    def test_auto_completes_exactly_once(
        self, store: LearningStore, enrollment_id: str, clock
    ) -> None:
        """Repeating a completion on a finished module should not re-complete it."""
        store.progress.record_content_completed(enrollment_id, "block-1")
        done = store.progress.record_content_completed(enrollment_id, "block-2")
        clock.advance(hours=1)

        again = store.progress.record_content_completed(enrollment_id, "block-2")

        assert again.module_auto_completed is False
        assert again.module.status == ModuleProgressStatus.COMPLETED
        assert again.module.completed_at == done.module.completed_at

    def test_enrollment_activity_is_refreshed(
        self, store: LearningStore, enrollment_id: str, clock
    ) -> None:
        """Each cascade should bump the enrollment's updated_at."""
        clock.advance(days=1)
        store.progress.record_content_completed(enrollment_id, "block-1")

        assert _enrollment(store, enrollment_id).updated_at == clock()

    def test_quiz_gates_completion(
        self, store: LearningStore, enrollment_id: str
    ) -> None:
        """All content done is not enough when the module has a quiz."""
        store.progress.record_content_completed(enrollment_id, "block-3")
        result = store.progress.record_content_completed(enrollment_id, "block-4")

        assert result.module.content_completion_percentage == 100
        assert result.module.status == ModuleProgressStatus.IN_PROGRESS
        assert result.module_auto_completed is False

    def test_failure_after_content_write_rolls_back(
        self, store: LearningStore, enrollment_id: str, clock, monkeypatch
    ) -> None:
        """A failing enrollment bump should undo the content and module writes."""
        store.progress.record_content_completed(enrollment_id, "block-1")
        before = store.progress.get_module_progress(enrollment_id, "mod-plain")
        clock.advance(minutes=1)

        def fail_touch(*args, **kwargs):
            raise StorageUnavailableError("disk full")

        monkeypatch.setattr(store.enrollments, "touch", fail_touch)

        with pytest.raises(StorageUnavailableError):
            store.progress.record_content_completed(enrollment_id, "block-2")

        with pytest.raises(NotFoundError):
            store.progress.get_content_progress(enrollment_id, "block-2")
        after = store.progress.get_module_progress(enrollment_id, "mod-plain")
        assert after == before
        assert after.completed_content_count == 1
        assert after.status == ModuleProgressStatus.IN_PROGRESS

    def test_failure_before_first_module_row(
        self, store: LearningStore, enrollment_id: str, monkeypatch
    ) -> None:
        """A rolled back first completion should leave no rows at all."""

        def fail_touch(*args, **kwargs):
            raise StorageUnavailableError("disk full")

        monkeypatch.setattr(store.enrollments, "touch", fail_touch)

        with pytest.raises(StorageUnavailableError):
            store.progress.record_content_completed(enrollment_id, "block-1")

        assert store.progress.list_content_progress(enrollment_id) == []
        with pytest.raises(NotFoundError):
            store.progress.get_module_progress(enrollment_id, "mod-plain")


class TestQuizCascade:
    """Tests for the cascade triggered by quiz attempts."""

    def test_failed_then_passed_attempt(
        self, store: LearningStore, enrollment_id: str
    ) -> None:
        """Only a passed attempt should complete a quiz-gated module."""
        store.progress.record_content_completed(enrollment_id, "block-3")
        store.progress.record_content_completed(enrollment_id, "block-4")

        failed = store.progress.record_quiz_attempt(_attempt(passed=False, score=40.0))
        assert failed.module is not None
        assert failed.module.status == ModuleProgressStatus.IN_PROGRESS
        assert failed.module_auto_completed is False

        passed = store.progress.record_quiz_attempt(_attempt(passed=True, score=90.0))
        assert passed.module.status == ModuleProgressStatus.COMPLETED
        assert passed.module.auto_completed is True
        assert passed.module_auto_completed is True

    def test_passed_quiz_before_content(
        self, store: LearningStore, enrollment_id: str
    ) -> None:
        """A passed quiz should count once the content catches up."""
        quiz = store.progress.record_quiz_attempt(_attempt(passed=True, score=95.0))
        assert quiz.module.status == ModuleProgressStatus.NOT_STARTED

        store.progress.record_content_completed(enrollment_id, "block-3")
        result = store.progress.record_content_completed(enrollment_id, "block-4")

        assert result.module_auto_completed is True

    def test_any_module_quiz_counts(
        self, store: LearningStore, enrollment_id: str, clock
    ) -> None:
        """Passing a second quiz of the module should complete it too."""
        clock.advance(minutes=1)
        store.catalog.save_quiz("quiz-2", "Interactions retake", 70.0, module_id="mod-quiz")
        store.progress.record_content_completed(enrollment_id, "block-3")
        store.progress.record_content_completed(enrollment_id, "block-4")

        result = store.progress.record_quiz_attempt(
            _attempt(passed=True, score=80.0, quiz_id="quiz-2")
        )

        assert result.module.status == ModuleProgressStatus.COMPLETED
        assert result.module_auto_completed is True

    def test_passed_final_exam_does_not_gate_module(
        self, store: LearningStore, enrollment_id: str
    ) -> None:
        """Only module quizzes count towards completing a module."""
        store.progress.record_quiz_attempt(
            _attempt(passed=True, score=100.0, quiz_id="final-1")
        )
        store.progress.record_content_completed(enrollment_id, "block-3")
        result = store.progress.record_content_completed(enrollment_id, "block-4")

        assert result.module.status == ModuleProgressStatus.IN_PROGRESS

    def test_in_progress_attempt_skips_cascade(
        self, store: LearningStore, enrollment_id: str
    ) -> None:
        """Only completed attempts should re-evaluate the module."""
        result = store.progress.record_quiz_attempt(
            RecordQuizAttemptRequest(student_id="student-1", quiz_id="quiz-1")
        )

        assert result.module is None
        with pytest.raises(NotFoundError):
            store.progress.get_module_progress(enrollment_id, "mod-quiz")

    def test_final_exam_does_not_cascade(
        self, store: LearningStore, enrollment_id: str
    ) -> None:
        """Final exams are not tied to a module."""
        result = store.progress.record_quiz_attempt(
            _attempt(passed=True, score=100.0, quiz_id="final-1")
        )

        assert result.attempt.passed is True
        assert result.module is None
        assert store.progress.list_module_progress(enrollment_id) == []

    def test_flagged_quiz_missing_locally(
        self, store: LearningStore, enrollment_id: str
    ) -> None:
        """A module flagged as quizzed without a local quiz stays incomplete."""
        module = store.progress.record_module_status(
            enrollment_id, "mod-empty-quiz", ModuleProgressStatus.IN_PROGRESS
        )
        assert module.total_content_count == 0

        with store.database.transaction() as conn:
            result = store.progress.cascade.evaluate(
                conn, enrollment_id, "mod-empty-quiz", store.clock()
            )

        assert result.module_has_quiz is True
        assert result.quiz_passed is False
        assert result.auto_completed is False
        assert result.progress.status == ModuleProgressStatus.IN_PROGRESS.value

    def test_attempt_without_enrollment(self, store: LearningStore, catalog) -> None:
        """A completed module quiz needs an enrollment to cascade into."""
        with pytest.raises(NotFoundError):
            store.progress.record_quiz_attempt(
                RecordQuizAttemptRequest(
                    student_id="stranger",
                    quiz_id="quiz-1",
                    status=QuizAttemptStatus.COMPLETED,
                    passed=True,
                )
            )


class TestModuleStatus:
    """Tests for explicit module status changes."""

    def test_forward_move(self, store: LearningStore, enrollment_id: str, clock) -> None:
        """Manually completing a module should not be flagged as automatic."""
        module = store.progress.record_module_status(
            enrollment_id, "mod-plain", ModuleProgressStatus.COMPLETED
        )

        assert module.status == ModuleProgressStatus.COMPLETED
        assert module.auto_completed is False
        assert module.started_at == clock()
        assert module.completed_at == clock()

    def test_regression_rejected(self, store: LearningStore, enrollment_id: str) -> None:
        """Moving backwards without the override should fail."""
        store.progress.record_module_status(
            enrollment_id, "mod-plain", ModuleProgressStatus.COMPLETED
        )

        with pytest.raises(InvalidInputError):
            store.progress.record_module_status(
                enrollment_id, "mod-plain", ModuleProgressStatus.IN_PROGRESS
            )

        module = store.progress.get_module_progress(enrollment_id, "mod-plain")
        assert module.status == ModuleProgressStatus.COMPLETED

    def test_regression_with_override(
        self, store: LearningStore, enrollment_id: str
    ) -> None:
        """The override should reset completion fields."""
        store.progress.record_content_completed(enrollment_id, "block-1")
        store.progress.record_content_completed(enrollment_id, "block-2")

        module = store.progress.record_module_status(
            enrollment_id,
            "mod-plain",
            ModuleProgressStatus.IN_PROGRESS,
            allow_regression=True,
        )

        assert module.status == ModuleProgressStatus.IN_PROGRESS
        assert module.completed_at is None
        assert module.auto_completed is False
        assert module.completed_content_count == 2

    def test_module_from_other_course(
        self, store: LearningStore, enrollment_id: str
    ) -> None:
        with pytest.raises(InvalidInputError):
            store.progress.record_module_status(
                enrollment_id, "mod-other", ModuleProgressStatus.IN_PROGRESS
            )


class TestProgressReads:
    """Tests for module listings and course summaries."""

    def test_list_in_module_order(
        self, store: LearningStore, enrollment_id: str
    ) -> None:
        store.progress.record_content_completed(enrollment_id, "block-3")
        store.progress.record_content_completed(enrollment_id, "block-1")

        modules = store.progress.list_module_progress(enrollment_id)

        assert [m.module_id for m in modules] == ["mod-plain", "mod-quiz"]

    def test_course_summary(self, store: LearningStore, enrollment_id: str) -> None:
        """Summary should count modules per status."""
        store.progress.record_content_completed(enrollment_id, "block-1")
        store.progress.record_content_completed(enrollment_id, "block-2")
        store.progress.record_content_completed(enrollment_id, "block-3")

        summary = store.progress.get_course_progress_summary(enrollment_id)

        assert summary.total_modules == 2
        assert summary.completed_modules == 1
        assert summary.in_progress_modules == 1
        assert summary.completion_percentage == 50.0

    def test_summary_for_missing_enrollment(self, store: LearningStore, catalog) -> None:
        with pytest.raises(NotFoundError):
            store.progress.get_course_progress_summary("enr-missing")
