"""Offline session lifecycle."""

from .models import OFFLINE_TABLES_SQL, OfflineSession


__all__ = [
    "OFFLINE_TABLES_SQL",
    "OfflineSession",
]
