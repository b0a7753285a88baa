"""Embedded SQLite database management.

Provides:
- Engine creation with per-connection pragmas
- Write transactions that take the SQLite write lock up front
- Mapping of driver errors onto the store error taxonomy
- Schema initialization for every component
"""

import threading
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager, nullcontext
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.pool import StaticPool

from offline_learning.catalog.models import CATALOG_TABLES_SQL
from offline_learning.core.errors import (
    ConstraintViolationError,
    StorageUnavailableError,
)
from offline_learning.core.logging import get_logger
from offline_learning.enrollments.models import ENROLLMENT_TABLES_SQL
from offline_learning.media.models import MEDIA_TABLES_SQL
from offline_learning.offline.models import OFFLINE_TABLES_SQL
from offline_learning.progress.models import PROGRESS_TABLES_SQL
from offline_learning.sync.models import SYNC_SEED_SQL, SYNC_TABLES_SQL


if TYPE_CHECKING:
    from offline_learning.config.settings import Settings


logger = get_logger(__name__)

SCHEMA_VERSION = "1"

# Table groups in dependency order (foreign keys point backwards)
SCHEMA_GROUPS: list[tuple[str, list[str]]] = [
    ("catalog", CATALOG_TABLES_SQL),
    ("enrollments", ENROLLMENT_TABLES_SQL),
    ("progress", PROGRESS_TABLES_SQL),
    ("offline", OFFLINE_TABLES_SQL),
    ("media", MEDIA_TABLES_SQL),
    ("sync", SYNC_TABLES_SQL),
]


class Database:
    """SQLite database wrapper.

    Every write goes through ``transaction()``, which runs ``BEGIN IMMEDIATE``
    so the write lock is held for the whole unit of work. Reads go through
    ``connect()`` and use a deferred transaction.
    With an in-memory database every caller shares one connection, so
    ``transaction()`` and ``connect()`` are serialized process-wide.
    """

    def __init__(self, settings: "Settings"):
        """Create the engine for the configured database file."""
        self.settings = settings
        engine_kwargs: dict[str, Any] = {
            "echo": settings.database_echo,
            "connect_args": {
                "check_same_thread": False,
                "timeout": settings.database_busy_timeout_seconds,
            },
        }
        if settings.is_memory_database:
            # One shared connection, otherwise every checkout sees an empty db
            engine_kwargs["poolclass"] = StaticPool

        # The shared in-memory connection can only carry one transaction at a time
        self._memory_lock = threading.RLock() if settings.is_memory_database else None

        self.engine: Engine = create_engine(settings.database_url, **engine_kwargs)
        self._install_listeners(self.engine)
        self._read_engine = self.engine.execution_options(read_only=True)

    @staticmethod
    def _install_listeners(engine: Engine) -> None:
        """Take over transaction control from the sqlite3 driver."""

        @event.listens_for(engine, "connect")
        def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
            # Let SQLAlchemy emit BEGIN itself
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys = ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _on_begin(conn: Connection) -> None:
            if conn.get_execution_options().get("read_only"):
                conn.exec_driver_sql("BEGIN")
            else:
                conn.exec_driver_sql("BEGIN IMMEDIATE")

    def _exclusive(self) -> AbstractContextManager:
        return self._memory_lock if self._memory_lock is not None else nullcontext()

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Run a unit of work atomically.

        Commits when the block exits normally and rolls back on any
        exception, so a failure never leaves a partial write behind.

        Raises:
            ConstraintViolationError: On uniqueness or foreign-key failures.
            StorageUnavailableError: When the database cannot be opened or locked.
        """
        with self._exclusive():
            try:
                with self.engine.begin() as conn:
                    yield conn
            except IntegrityError as e:
                logger.warning("constraint_violation", error=str(e.orig))
                raise ConstraintViolationError(str(e.orig)) from e
            except OperationalError as e:
                logger.error("storage_unavailable", error=str(e.orig))
                raise StorageUnavailableError(str(e.orig)) from e

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        """Open a read connection."""
        with self._exclusive():
            try:
                with self._read_engine.connect() as conn:
                    yield conn
            except OperationalError as e:
                logger.error("storage_unavailable", error=str(e.orig))
                raise StorageUnavailableError(str(e.orig)) from e

    def init_schema(self) -> None:
        """Create all tables if they don't exist and seed metadata rows."""
        with self.transaction() as conn:
            for group, statements in SCHEMA_GROUPS:
                for ddl in statements:
                    conn.execute(text(ddl))
                logger.debug("tables_created", group=group)

            for seed in SYNC_SEED_SQL:
                conn.execute(text(seed), {"schema_version": SCHEMA_VERSION})

        logger.info("database_initialized", database=self.settings.database_path)

    def dispose(self) -> None:
        """Close pooled connections."""
        self.engine.dispose()
        logger.info("database_closed", database=self.settings.database_path)


def init_database(settings: "Settings") -> Database:
    """Open the database and make sure the schema exists.

    Raises:
        StorageUnavailableError: If the file cannot be opened.
    """
    database = Database(settings)
    database.init_schema()
    return database


def shutdown_database(database: Database) -> None:
    """Shutdown the database connection pool."""
    database.dispose()
