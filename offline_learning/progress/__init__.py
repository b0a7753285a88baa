"""Learner progress tracking and the completion cascade."""

from .models import (
    PROGRESS_TABLES_SQL,
    ContentProgress,
    ModuleProgress,
    ModuleProgressStatus,
    QuizAnswer,
    QuizAttempt,
    QuizAttemptStatus,
)


__all__ = [
    "PROGRESS_TABLES_SQL",
    "ContentProgress",
    "ModuleProgress",
    "ModuleProgressStatus",
    "QuizAnswer",
    "QuizAttempt",
    "QuizAttemptStatus",
]
