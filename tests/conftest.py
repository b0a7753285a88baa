"""Shared fixtures: a temporary database, a controllable clock and a seeded catalog."""

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from offline_learning.catalog.models import QuizType
from offline_learning.config import Settings
from offline_learning.store import LearningStore


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    """Clock frozen at a fixed instant."""
    return FrozenClock(datetime(2025, 3, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a fresh database file."""
    return Settings(
        environment="testing",
        database_path=str(tmp_path / "learning.db"),
        log_level="DEBUG",
        _env_file=None,
    )


@pytest.fixture
def store(settings: Settings, clock: FrozenClock):
    """Open store on the temporary database."""
    learning_store = LearningStore(settings, clock=clock)
    yield learning_store
    learning_store.close()


@pytest.fixture
def database(store: LearningStore):
    """Database behind the store."""
    return store.database


@pytest.fixture
def catalog(store: LearningStore) -> dict[str, str]:
    """Seed one course with three modules.

    - mod-plain: two content blocks, no quiz
    - mod-quiz: two content blocks and a module quiz (pass mark 70)
    - mod-empty-quiz: no content, flagged as quizzed but quiz not downloaded
    Also a final exam for the course.
    """
    cat = store.catalog
    cat.save_course("course-1", "Pharmacology Basics", module_count=3)

    cat.save_module("mod-plain", "course-1", "Introduction", order_index=0)
    cat.save_content_block("block-1", "mod-plain", "Welcome", order_index=0)
    cat.save_content_block("block-2", "mod-plain", "Dosage", order_index=1)

    cat.save_module("mod-quiz", "course-1", "Interactions", order_index=1)
    cat.save_content_block("block-3", "mod-quiz", "Enzymes", order_index=0)
    cat.save_content_block("block-4", "mod-quiz", "Inhibitors", order_index=1)
    cat.save_quiz("quiz-1", "Interactions quiz", 70.0, module_id="mod-quiz")
    cat.save_question("question-1", "quiz-1", "Which enzyme?", points=2.0, order_index=0)
    cat.save_question("question-2", "quiz-1", "Which inhibitor?", points=1.0, order_index=1)

    cat.save_module(
        "mod-empty-quiz", "course-1", "Assessment", order_index=2, has_quiz=True
    )

    cat.save_quiz(
        "final-1",
        "Final exam",
        60.0,
        course_id="course-1",
        quiz_type=QuizType.FINAL_EXAM,
    )

    cat.save_course("course-2", "Other Course")
    cat.save_module("mod-other", "course-2", "Elsewhere")
    cat.save_content_block("block-other", "mod-other", "Elsewhere")

    return {"course_id": "course-1"}


@pytest.fixture
def enrollment_id(store: LearningStore, catalog: dict[str, str]) -> str:
    """Enrollment of student-1 in course-1."""
    enrollment = store.enrollments.enroll("student-1", "course-1", enrollment_id="enr-1")
    return enrollment.id
