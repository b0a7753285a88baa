"""Tests for quiz attempts, answers and scoring."""

import pytest

from offline_learning.core.errors import (
    ConstraintViolationError,
    InvalidInputError,
    NotFoundError,
)
from offline_learning.progress.models import QuizAttemptStatus
from offline_learning.progress.schemas import (
    RecordQuizAnswerRequest,
    RecordQuizAttemptRequest,
)
from offline_learning.store import LearningStore


def _start(store: LearningStore, **overrides) -> str:
    data = {"student_id": "student-1", "quiz_id": "quiz-1", **overrides}
    result = store.progress.record_quiz_attempt(RecordQuizAttemptRequest(**data))
    return result.attempt.id


class TestAttemptNumbering:
    """Tests for attempt number assignment."""

    def test_numbers_increase(self, store: LearningStore, enrollment_id: str) -> None:
        """Omitted numbers should continue from the highest existing one."""
        first = store.progress.get_quiz_attempt(_start(store))
        second = store.progress.get_quiz_attempt(_start(store))

        assert first.attempt_number == 1
        assert second.attempt_number == 2

    def test_explicit_number_must_increase(
        self, store: LearningStore, enrollment_id: str
    ) -> None:
        _start(store, attempt_number=3)

        with pytest.raises(InvalidInputError):
            _start(store, attempt_number=2)

        assert store.progress.get_quiz_attempt(_start(store)).attempt_number == 4

    def test_number_is_per_student(self, store: LearningStore, enrollment_id: str) -> None:
        _start(store)
        other = store.progress.get_quiz_attempt(_start(store, student_id="student-2"))

        assert other.attempt_number == 1

    def test_unknown_quiz(self, store: LearningStore, enrollment_id: str) -> None:
        with pytest.raises(NotFoundError):
            _start(store, quiz_id="quiz-missing")

    def test_attempt_cannot_move_between_students(
        self, store: LearningStore, enrollment_id: str
    ) -> None:
        attempt_id = _start(store, id="attempt-1")

        with pytest.raises(InvalidInputError):
            _start(store, id=attempt_id, student_id="student-2")


class TestAttemptLifecycle:
    """Tests for completing and abandoning attempts."""

    def test_complete_attempt(self, store: LearningStore, enrollment_id: str, clock) -> None:
        """Completing should record the result and keep the number and start."""
        attempt_id = _start(store)
        started = store.progress.get_quiz_attempt(attempt_id)
        clock.advance(minutes=12)

        result = store.progress.complete_quiz_attempt(attempt_id, 80.0, True)

        assert result.attempt.status == QuizAttemptStatus.COMPLETED
        assert result.attempt.score == 80.0
        assert result.attempt.passed is True
        assert result.attempt.attempt_number == started.attempt_number
        assert result.attempt.started_at == started.started_at
        assert result.attempt.completed_at == clock()
        assert result.module is not None

    def test_abandon_attempt(self, store: LearningStore, enrollment_id: str) -> None:
        attempt_id = _start(store)

        result = store.progress.update_quiz_attempt_status(
            attempt_id, QuizAttemptStatus.ABANDONED
        )

        assert result.attempt.status == QuizAttemptStatus.ABANDONED
        assert result.attempt.completed_at is None
        assert result.module is None

    def test_complete_missing_attempt(self, store: LearningStore, enrollment_id: str) -> None:
        with pytest.raises(NotFoundError):
            store.progress.complete_quiz_attempt("attempt-missing", 50.0, False)

    def test_best_score_and_listing(
        self, store: LearningStore, enrollment_id: str
    ) -> None:
        """Best score should ignore unfinished attempts."""
        store.progress.complete_quiz_attempt(_start(store), 55.0, False)
        store.progress.complete_quiz_attempt(_start(store), 85.0, True)
        _start(store, score=99.0)

        attempts = store.progress.list_quiz_attempts("quiz-1", "student-1")

        assert store.progress.get_best_quiz_score("quiz-1", "student-1") == 85.0
        assert [a.attempt_number for a in attempts] == [3, 2, 1]

    def test_best_score_without_attempts(self, store: LearningStore, catalog) -> None:
        assert store.progress.get_best_quiz_score("quiz-1", "student-1") is None


class TestQuizAnswers:
    """Tests for answers and attempt scoring."""

    def test_score_from_answers(self, store: LearningStore, enrollment_id: str) -> None:
        """Points should be weighed against every question of the quiz."""
        attempt_id = _start(store)
        store.progress.record_quiz_answer(
            RecordQuizAnswerRequest(
                attempt_id=attempt_id,
                question_id="question-1",
                is_correct=True,
                points_earned=2.0,
            )
        )
        store.progress.record_quiz_answer(
            RecordQuizAnswerRequest(
                attempt_id=attempt_id, question_id="question-2", is_correct=False
            )
        )

        score = store.progress.calculate_attempt_score(attempt_id)

        assert score.total_questions == 2
        assert score.correct_answers == 1
        assert score.points_earned == 2.0
        assert score.points_possible == 3.0
        assert score.percentage == 66.67

    def test_answer_is_replaced(self, store: LearningStore, enrollment_id: str) -> None:
        """Answering the same question again should update the answer."""
        attempt_id = _start(store)
        for option, correct in (("a", False), ("b", True)):
            store.progress.record_quiz_answer(
                RecordQuizAnswerRequest(
                    attempt_id=attempt_id,
                    question_id="question-1",
                    selected_option_id=option,
                    is_correct=correct,
                    points_earned=2.0 if correct else 0.0,
                )
            )

        answers = store.progress.list_attempt_answers(attempt_id)

        assert len(answers) == 1
        assert answers[0].selected_option_id == "b"
        assert answers[0].is_correct is True

    def test_answers_in_question_order(
        self, store: LearningStore, enrollment_id: str
    ) -> None:
        attempt_id = _start(store)
        for question_id in ("question-2", "question-1"):
            store.progress.record_quiz_answer(
                RecordQuizAnswerRequest(attempt_id=attempt_id, question_id=question_id)
            )

        answers = store.progress.list_attempt_answers(attempt_id)

        assert [a.question_id for a in answers] == ["question-1", "question-2"]

    def test_answer_for_missing_attempt(self, store: LearningStore, catalog) -> None:
        with pytest.raises(NotFoundError):
            store.progress.record_quiz_answer(
                RecordQuizAnswerRequest(attempt_id="missing", question_id="question-1")
            )

    def test_answer_for_missing_question(
        self, store: LearningStore, enrollment_id: str
    ) -> None:
        attempt_id = _start(store)

        with pytest.raises(ConstraintViolationError):
            store.progress.record_quiz_answer(
                RecordQuizAnswerRequest(attempt_id=attempt_id, question_id="missing")
            )
