"""Media download bookkeeping."""

from .models import MEDIA_TABLES_SQL, MediaCacheEntry


__all__ = [
    "MEDIA_TABLES_SQL",
    "MediaCacheEntry",
]
