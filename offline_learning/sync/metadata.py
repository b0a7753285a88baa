"""Key/value application flags stored next to the data."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import text

from offline_learning.core.logging import get_logger
from offline_learning.core.timestamps import Clock, from_iso, to_iso, utc_now

from .models import MetadataKey


if TYPE_CHECKING:
    from offline_learning.core.database import Database


logger = get_logger(__name__)


class AppMetadataStore:
    """Typed access to the app_metadata table."""

    def __init__(self, database: "Database", clock: Clock = utc_now):
        self.database = database
        self.clock = clock
        self._set_value = text("""
            INSERT INTO app_metadata (key, value, updated_at)
            VALUES (:key, :value, :now)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
        """)
        self._get_value = text("SELECT value FROM app_metadata WHERE key = :key")
        self._all_values = text("SELECT key, value FROM app_metadata ORDER BY key")

    def set(self, key: str, value: str) -> None:
        """Insert or overwrite a value."""
        with self.database.transaction() as conn:
            conn.execute(
                self._set_value,
                {"key": key, "value": value, "now": to_iso(self.clock())},
            )
        logger.debug("app_metadata_set", key=key)

    def get(self, key: str) -> str | None:
        """Value for ``key``, None when unset."""
        with self.database.connect() as conn:
            return conn.execute(self._get_value, {"key": key}).scalar_one_or_none()

    def all(self) -> dict[str, str]:
        """Every stored key/value pair."""
        with self.database.connect() as conn:
            rows = conn.execute(self._all_values).all()
        return {row.key: row.value for row in rows}

    def set_last_sync_time(self, when: datetime | None = None) -> datetime:
        """Record a completed full sync (now by default)."""
        when = when or self.clock()
        self.set(MetadataKey.LAST_FULL_SYNC.value, to_iso(when))
        return when

    def get_last_sync_time(self) -> datetime | None:
        """Last full sync, None if the app never synced."""
        return from_iso(self.get(MetadataKey.LAST_FULL_SYNC.value))

    def set_offline_mode(self, enabled: bool) -> None:
        self.set(MetadataKey.IS_OFFLINE_MODE.value, "true" if enabled else "false")
        logger.info("offline_mode_changed", enabled=enabled)

    def is_offline_mode(self) -> bool:
        return self.get(MetadataKey.IS_OFFLINE_MODE.value) == "true"
