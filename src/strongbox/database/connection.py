"""SQLite connection and initialization utilities."""

import logging
import sqlite3
import threading
from pathlib import Path

from .schema import get_init_schema
from ..core.exceptions import ConstraintViolationError, PersistenceError

logger = logging.getLogger(__name__)


def _translate(error):
    """Map a sqlite3 error onto the package's persistence errors."""
    if isinstance(error, sqlite3.IntegrityError):
        return ConstraintViolationError(str(error))
    return PersistenceError(str(error))


class DatabaseConnection:
    """Manage SQLite connections and schema init.

    Each thread gets its own connection; every statement runs in autocommit
    mode, so each call is its own transaction.
    """

    __slots__ = ("db_path", "_local", "_lock", "_initialized")

    def __init__(self, db_path="./strongbox.db"):
        """Initialize connection state."""
        self.db_path = Path(db_path)
        self._local = threading.local()
        self._lock = threading.Lock()
        self._initialized = False

    def initialize(self):
        """Initialize schema if not already initialized."""
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return

            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = self._get_connection()
                for statement in get_init_schema():
                    conn.execute(statement)
                conn.commit()
                self._initialized = True
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to initialize database: {e}") from e
            except OSError as e:
                raise PersistenceError(f"Failed to create database directory: {e}") from e

            logger.debug("Database ready at %s", self.db_path)

    def _get_connection(self):
        """Get or create a thread-local SQLite connection."""
        if getattr(self._local, "connection", None) is None:
            try:
                conn = sqlite3.connect(
                    str(self.db_path), check_same_thread=False, isolation_level=None
                )
            except sqlite3.Error as e:
                raise PersistenceError(f"Cannot open database {self.db_path}: {e}") from e
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            self._local.connection = conn

        return self._local.connection

    def get_cursor_context(self):
        """Return a context manager for a SQLite cursor."""
        return CursorContext(self._get_connection())

    def execute(self, query, params=()):
        """Execute a single SQL statement; returns the number of affected rows."""
        with self.get_cursor_context() as cursor:
            try:
                cursor.execute(query, params)
            except sqlite3.Error as e:
                raise _translate(e) from e
            return cursor.rowcount

    def fetch_one(self, query, params=()):
        """Fetch a single row as a dict or None."""
        with self.get_cursor_context() as cursor:
            try:
                cursor.execute(query, params)
                row = cursor.fetchone()
            except sqlite3.Error as e:
                raise _translate(e) from e
            return dict(row) if row else None

    def fetch_all(self, query, params=()):
        """Fetch all rows as a list of dicts."""
        with self.get_cursor_context() as cursor:
            try:
                cursor.execute(query, params)
                rows = cursor.fetchall()
            except sqlite3.Error as e:
                raise _translate(e) from e
            return [dict(row) for row in rows]

    def get_version(self):
        """Return current schema version number."""
        try:
            result = self.fetch_one("SELECT MAX(version) as version FROM schema_version")
        except PersistenceError:
            return 0
        return result["version"] if result and result["version"] else 0

    def close(self):
        """Close the thread-local connection if open."""
        conn = getattr(self._local, "connection", None)
        if conn is not None:
            conn.close()
            self._local.connection = None


class CursorContext:
    """Context manager for SQLite cursor."""

    __slots__ = ("connection", "cursor")

    def __init__(self, connection):
        self.connection = connection
        self.cursor = None

    def __enter__(self):
        self.cursor = self.connection.cursor()
        return self.cursor

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.cursor:
            self.cursor.close()

