"""Catalog Store collaborator.

The progress core only consumes the read side defined by ``CatalogStore``.
``SqlCatalogStore`` answers those reads from the catalog tables that share the
embedded database; its ``save_*`` helpers exist so a host application (or a
test) can populate the catalog without a separate CRUD layer.
"""

import json
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy import text

from offline_learning.core.logging import get_logger
from offline_learning.core.timestamps import Clock, to_iso, utc_now

from .models import ContentBlock, Module, Quiz, QuizType


if TYPE_CHECKING:
    from sqlalchemy.engine import Connection

    from offline_learning.core.database import Database


logger = get_logger(__name__)


class CatalogStore(Protocol):
    """Read interface the cascade engine needs from the catalog."""

    def get_module(self, conn: "Connection", module_id: str) -> Module | None: ...

    def get_content_block(
        self, conn: "Connection", content_id: str
    ) -> ContentBlock | None: ...

    def get_quiz(self, conn: "Connection", quiz_id: str) -> Quiz | None: ...

    def module_has_quiz(self, conn: "Connection", module_id: str) -> bool: ...

    def content_count_for_module(self, conn: "Connection", module_id: str) -> int: ...

    def quiz_for_module(self, conn: "Connection", module_id: str) -> str | None: ...


class SqlCatalogStore:
    """Catalog reads backed by the local catalog tables."""

    def __init__(self, database: "Database", clock: Clock = utc_now):
        self.database = database
        self.clock = clock
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Build SQL statements once."""
        self._get_module = text("SELECT * FROM modules WHERE id = :module_id")

        self._get_content_block = text(
            "SELECT * FROM content_blocks WHERE id = :content_id"
        )

        self._get_quiz = text("SELECT * FROM quizzes WHERE id = :quiz_id")

        self._count_module_content = text(
            "SELECT COUNT(*) FROM content_blocks WHERE module_id = :module_id"
        )

        self._get_module_quiz = text("""
            SELECT id FROM quizzes
            WHERE module_id = :module_id AND quiz_type = :quiz_type
            ORDER BY created_at ASC
            LIMIT 1
        """)

        self._upsert_course = text("""
            INSERT INTO courses
            (id, title, description, module_count, created_at, updated_at)
            VALUES (:id, :title, :description, :module_count, :now, :now)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                description = excluded.description,
                module_count = excluded.module_count,
                updated_at = excluded.updated_at
        """)

        self._upsert_module = text("""
            INSERT INTO modules
            (id, course_id, title, order_index, content_count, has_quiz,
             created_at, updated_at)
            VALUES (:id, :course_id, :title, :order_index, :content_count,
                    :has_quiz, :now, :now)
            ON CONFLICT(id) DO UPDATE SET
                course_id = excluded.course_id,
                title = excluded.title,
                order_index = excluded.order_index,
                has_quiz = excluded.has_quiz,
                updated_at = excluded.updated_at
        """)

        self._upsert_content_block = text("""
            INSERT INTO content_blocks
            (id, module_id, title, content_data, order_index, created_at, updated_at)
            VALUES (:id, :module_id, :title, :content_data, :order_index, :now, :now)
            ON CONFLICT(id) DO UPDATE SET
                module_id = excluded.module_id,
                title = excluded.title,
                content_data = excluded.content_data,
                order_index = excluded.order_index,
                updated_at = excluded.updated_at
        """)

        self._refresh_module_content_count = text("""
            UPDATE modules
            SET content_count = (
                SELECT COUNT(*) FROM content_blocks WHERE module_id = :module_id
            ), updated_at = :now
            WHERE id = :module_id
        """)

        self._upsert_quiz = text("""
            INSERT INTO quizzes
            (id, title, quiz_type, module_id, course_id, pass_mark_percentage,
             max_attempts, created_at, updated_at)
            VALUES (:id, :title, :quiz_type, :module_id, :course_id,
                    :pass_mark_percentage, :max_attempts, :now, :now)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                quiz_type = excluded.quiz_type,
                module_id = excluded.module_id,
                course_id = excluded.course_id,
                pass_mark_percentage = excluded.pass_mark_percentage,
                max_attempts = excluded.max_attempts,
                updated_at = excluded.updated_at
        """)

        self._flag_module_quiz = text(
            "UPDATE modules SET has_quiz = 1, updated_at = :now WHERE id = :module_id"
        )

        self._upsert_question = text("""
            INSERT INTO questions
            (id, quiz_id, question_text, order_index, points, created_at, updated_at)
            VALUES (:id, :quiz_id, :question_text, :order_index, :points, :now, :now)
            ON CONFLICT(id) DO UPDATE SET
                quiz_id = excluded.quiz_id,
                question_text = excluded.question_text,
                order_index = excluded.order_index,
                points = excluded.points,
                updated_at = excluded.updated_at
        """)

    # ==========================================================================
    # Reads consumed by the progress core
    # ==========================================================================

    def get_module(self, conn: "Connection", module_id: str) -> Module | None:
        """Get module by id."""
        row = conn.execute(self._get_module, {"module_id": module_id}).one_or_none()
        return Module.from_row(row) if row else None

    def get_content_block(
        self, conn: "Connection", content_id: str
    ) -> ContentBlock | None:
        """Get content block by id."""
        row = conn.execute(
            self._get_content_block, {"content_id": content_id}
        ).one_or_none()
        return ContentBlock.from_row(row) if row else None

    def get_quiz(self, conn: "Connection", quiz_id: str) -> Quiz | None:
        """Get quiz by id."""
        row = conn.execute(self._get_quiz, {"quiz_id": quiz_id}).one_or_none()
        return Quiz.from_row(row) if row else None

    def content_count_for_module(self, conn: "Connection", module_id: str) -> int:
        """Number of content blocks stored for the module."""
        return conn.execute(
            self._count_module_content, {"module_id": module_id}
        ).scalar_one()

    def quiz_for_module(self, conn: "Connection", module_id: str) -> str | None:
        """Id of the module's quiz, if it has been downloaded."""
        return conn.execute(
            self._get_module_quiz,
            {"module_id": module_id, "quiz_type": QuizType.MODULE_QUIZ.value},
        ).scalar_one_or_none()

    def module_has_quiz(self, conn: "Connection", module_id: str) -> bool:
        """Check if the module is gated by a quiz.

        The module flag counts even when the quiz itself is not stored
        locally; such a module cannot auto-complete offline.
        """
        module = self.get_module(conn, module_id)
        if module is not None and module.has_quiz:
            return True
        return self.quiz_for_module(conn, module_id) is not None

    # ==========================================================================
    # Seeding
    # ==========================================================================

    def save_course(
        self,
        course_id: str,
        title: str,
        description: str | None = None,
        module_count: int = 0,
    ) -> None:
        """Insert or update a course row."""
        with self.database.transaction() as conn:
            conn.execute(
                self._upsert_course,
                {
                    "id": course_id,
                    "title": title,
                    "description": description,
                    "module_count": module_count,
                    "now": to_iso(self.clock()),
                },
            )

    def save_module(
        self,
        module_id: str,
        course_id: str,
        title: str,
        order_index: int = 0,
        has_quiz: bool = False,
    ) -> None:
        """Insert or update a module row."""
        with self.database.transaction() as conn:
            conn.execute(
                self._upsert_module,
                {
                    "id": module_id,
                    "course_id": course_id,
                    "title": title,
                    "order_index": order_index,
                    "content_count": 0,
                    "has_quiz": has_quiz,
                    "now": to_iso(self.clock()),
                },
            )
            conn.execute(
                self._refresh_module_content_count,
                {"module_id": module_id, "now": to_iso(self.clock())},
            )

    def save_content_block(
        self,
        content_id: str,
        module_id: str,
        title: str | None = None,
        order_index: int = 0,
        content_data: dict[str, Any] | None = None,
    ) -> None:
        """Insert or update a content block and refresh the module count."""
        now = to_iso(self.clock())
        with self.database.transaction() as conn:
            conn.execute(
                self._upsert_content_block,
                {
                    "id": content_id,
                    "module_id": module_id,
                    "title": title,
                    "content_data": json.dumps(content_data or {}),
                    "order_index": order_index,
                    "now": now,
                },
            )
            conn.execute(
                self._refresh_module_content_count,
                {"module_id": module_id, "now": now},
            )

    def save_quiz(
        self,
        quiz_id: str,
        title: str,
        pass_mark_percentage: float,
        module_id: str | None = None,
        course_id: str | None = None,
        quiz_type: QuizType = QuizType.MODULE_QUIZ,
        max_attempts: int | None = None,
    ) -> None:
        """Insert or update a quiz; module quizzes flag their module."""
        now = to_iso(self.clock())
        with self.database.transaction() as conn:
            conn.execute(
                self._upsert_quiz,
                {
                    "id": quiz_id,
                    "title": title,
                    "quiz_type": quiz_type.value,
                    "module_id": module_id,
                    "course_id": course_id,
                    "pass_mark_percentage": pass_mark_percentage,
                    "max_attempts": max_attempts,
                    "now": now,
                },
            )
            if module_id is not None and quiz_type == QuizType.MODULE_QUIZ:
                conn.execute(
                    self._flag_module_quiz, {"module_id": module_id, "now": now}
                )

        logger.debug("quiz_saved", quiz_id=quiz_id, module_id=module_id)

    def save_question(
        self,
        question_id: str,
        quiz_id: str,
        question_text: str,
        points: float = 1.0,
        order_index: int = 0,
    ) -> None:
        """Insert or update a quiz question."""
        with self.database.transaction() as conn:
            conn.execute(
                self._upsert_question,
                {
                    "id": question_id,
                    "quiz_id": quiz_id,
                    "question_text": question_text,
                    "order_index": order_index,
                    "points": points,
                    "now": to_iso(self.clock()),
                },
            )
