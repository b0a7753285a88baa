"""Local data core of an offline-capable learning application."""

from offline_learning.store import LearningStore, parse_request


__all__ = ["LearningStore", "parse_request"]
