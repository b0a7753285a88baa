"""Catalog tables and entities read by the progress core.

The catalog (courses, modules, content blocks, quizzes, questions) is owned
by an external collaborator. Only the columns the cascade and quiz scoring
need are modeled here.
"""

from enum import Enum
from typing import Any


class QuizType(str, Enum):
    """Where a quiz sits in the course."""

    MODULE_QUIZ = "module_quiz"
    FINAL_EXAM = "final_exam"


# ==============================================================================
# SQL Table Definitions
# ==============================================================================

COURSES_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS courses (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT,
    module_count INTEGER DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""

MODULES_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS modules (
    id TEXT PRIMARY KEY,
    course_id TEXT NOT NULL,
    title TEXT NOT NULL,
    order_index INTEGER DEFAULT 0,
    content_count INTEGER DEFAULT 0,
    has_quiz BOOLEAN DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (course_id) REFERENCES courses(id) ON DELETE CASCADE
)
"""

CONTENT_BLOCKS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS content_blocks (
    id TEXT PRIMARY KEY,
    module_id TEXT NOT NULL,
    title TEXT,
    content_data TEXT NOT NULL DEFAULT '{}',
    order_index INTEGER DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (module_id) REFERENCES modules(id) ON DELETE CASCADE
)
"""

QUIZZES_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS quizzes (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    quiz_type TEXT CHECK(quiz_type IN ('module_quiz', 'final_exam')),
    module_id TEXT,
    course_id TEXT,
    pass_mark_percentage REAL NOT NULL,
    max_attempts INTEGER,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (module_id) REFERENCES modules(id) ON DELETE CASCADE,
    FOREIGN KEY (course_id) REFERENCES courses(id) ON DELETE CASCADE
)
"""

QUESTIONS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS questions (
    id TEXT PRIMARY KEY,
    quiz_id TEXT NOT NULL,
    question_text TEXT NOT NULL,
    order_index INTEGER DEFAULT 0,
    points REAL DEFAULT 1.0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (quiz_id) REFERENCES quizzes(id) ON DELETE CASCADE
)
"""

CONTENT_BLOCKS_BY_MODULE_INDEX_SQL = """
CREATE INDEX IF NOT EXISTS idx_content_blocks_module
ON content_blocks (module_id)
"""

CATALOG_TABLES_SQL = [
    COURSES_TABLE_SQL,
    MODULES_TABLE_SQL,
    CONTENT_BLOCKS_TABLE_SQL,
    QUIZZES_TABLE_SQL,
    QUESTIONS_TABLE_SQL,
    CONTENT_BLOCKS_BY_MODULE_INDEX_SQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Module:
    """Catalog module as seen by the progress core."""

    def __init__(
        self,
        id: str,
        course_id: str,
        title: str,
        order_index: int = 0,
        content_count: int = 0,
        has_quiz: bool = False,
    ):
        self.id = id
        self.course_id = course_id
        self.title = title
        self.order_index = order_index
        self.content_count = content_count
        self.has_quiz = has_quiz

    @classmethod
    def from_row(cls, row: Any) -> "Module":
        """Create Module instance from a database row."""
        return cls(
            id=row.id,
            course_id=row.course_id,
            title=row.title,
            order_index=row.order_index or 0,
            content_count=row.content_count or 0,
            has_quiz=bool(row.has_quiz),
        )

    def __repr__(self) -> str:
        return f"<Module {self.id} course={self.course_id}>"


class ContentBlock:
    """A viewable/completable piece of module content."""

    def __init__(
        self,
        id: str,
        module_id: str,
        title: str | None = None,
        order_index: int = 0,
    ):
        self.id = id
        self.module_id = module_id
        self.title = title
        self.order_index = order_index

    @classmethod
    def from_row(cls, row: Any) -> "ContentBlock":
        """Create ContentBlock instance from a database row."""
        return cls(
            id=row.id,
            module_id=row.module_id,
            title=row.title,
            order_index=row.order_index or 0,
        )

    def __repr__(self) -> str:
        return f"<ContentBlock {self.id} module={self.module_id}>"


class Quiz:
    """Quiz definition (module quiz or course final exam)."""

    def __init__(
        self,
        id: str,
        title: str,
        quiz_type: str = QuizType.MODULE_QUIZ.value,
        module_id: str | None = None,
        course_id: str | None = None,
        pass_mark_percentage: float = 0.0,
        max_attempts: int | None = None,
    ):
        self.id = id
        self.title = title
        self.quiz_type = quiz_type
        self.module_id = module_id
        self.course_id = course_id
        self.pass_mark_percentage = pass_mark_percentage
        self.max_attempts = max_attempts

    @property
    def is_module_quiz(self) -> bool:
        """Check if passing this quiz gates a module."""
        return self.quiz_type == QuizType.MODULE_QUIZ.value and self.module_id is not None

    @classmethod
    def from_row(cls, row: Any) -> "Quiz":
        """Create Quiz instance from a database row."""
        return cls(
            id=row.id,
            title=row.title,
            quiz_type=row.quiz_type or QuizType.MODULE_QUIZ.value,
            module_id=row.module_id,
            course_id=row.course_id,
            pass_mark_percentage=row.pass_mark_percentage or 0.0,
            max_attempts=row.max_attempts,
        )

    def __repr__(self) -> str:
        return f"<Quiz {self.id} {self.quiz_type} module={self.module_id}>"
