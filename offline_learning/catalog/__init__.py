"""Catalog Store collaborator (courses, modules, content, quizzes)."""

from .models import CATALOG_TABLES_SQL, ContentBlock, Module, Quiz, QuizType


__all__ = [
    "CATALOG_TABLES_SQL",
    "ContentBlock",
    "Module",
    "Quiz",
    "QuizType",
]
