"""SQLite-backed relational store for the registry.

This module owns the schema and the transaction boundary. Every write
goes through ``RegistryStore.transaction()``, which is also the single
place where database failures are classified into the registry error
taxonomy.
"""

import contextlib
import logging
import sqlite3
from collections.abc import Iterator
from pathlib import Path
from typing import Any, Optional

from package_registry.errors import (
    ConflictError,
    InternalError,
    RegistryError,
    ValidationError,
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS packages (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS collaborators (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_collaborators_identity
ON collaborators(name, IFNULL(email, ''));

CREATE TABLE IF NOT EXISTS package_versions (
    id INTEGER PRIMARY KEY,
    package_id INTEGER NOT NULL REFERENCES packages(id),
    package_name TEXT NOT NULL,
    version TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    license TEXT NOT NULL,
    maintainer_id INTEGER NOT NULL REFERENCES collaborators(id),
    release_date TEXT NOT NULL,
    url TEXT NOT NULL DEFAULT '[]',
    copyright TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (package_name, version)
);

CREATE INDEX IF NOT EXISTS idx_package_versions_package
ON package_versions(package_id, release_date);

CREATE TABLE IF NOT EXISTS version_authors (
    version_id INTEGER NOT NULL REFERENCES package_versions(id),
    collaborator_id INTEGER NOT NULL REFERENCES collaborators(id),
    position INTEGER NOT NULL,
    PRIMARY KEY (version_id, position)
);

CREATE TABLE IF NOT EXISTS version_dependencies (
    version_id INTEGER NOT NULL REFERENCES package_versions(id),
    package_id INTEGER NOT NULL REFERENCES packages(id),
    kind TEXT NOT NULL
        CHECK (kind IN ('depends', 'imports', 'suggests', 'enhances')),
    version_constraint TEXT,
    position INTEGER NOT NULL,
    PRIMARY KEY (version_id, kind, position)
);

CREATE TABLE IF NOT EXISTS topics (
    id INTEGER PRIMARY KEY,
    package_version_id INTEGER NOT NULL REFERENCES package_versions(id),
    name TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    usage TEXT,
    details TEXT,
    value TEXT,
    examples TEXT,
    note TEXT,
    author TEXT,
    references_text TEXT,
    seealso TEXT,
    aliases TEXT NOT NULL DEFAULT '[]',
    keywords TEXT NOT NULL DEFAULT '[]',
    arguments TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (package_version_id, name)
);

CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY,
    username TEXT NOT NULL UNIQUE,
    email TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS reviews (
    id INTEGER PRIMARY KEY,
    user_id INTEGER REFERENCES users(id),
    reviewable TEXT NOT NULL,
    reviewable_id INTEGER NOT NULL,
    rating REAL NOT NULL,
    text TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_reviews_reviewable
ON reviews(reviewable, reviewable_id);
"""

TABLES = (
    "packages",
    "collaborators",
    "package_versions",
    "version_authors",
    "version_dependencies",
    "topics",
    "users",
    "reviews",
)


def is_unique_violation(exc: sqlite3.IntegrityError) -> bool:
    """Tell unique/primary key violations apart from other integrity errors."""
    error_name = getattr(exc, "sqlite_errorname", None)
    if error_name:
        return error_name in ("SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY")
    return "UNIQUE constraint failed" in str(exc)


class RegistryStore:
    """SQLite store holding packages, versions and their relations.

    Connections are opened per operation unless the store is used as a
    context manager, in which case a single connection is kept open. A
    connection must not be shared between threads, so concurrent callers
    use their own store instance or rely on per-operation connections.

    Attributes:
        db_path: Path to the SQLite database file.
        timeout: Seconds to wait for a competing writer's lock.
    """

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        db_path: Optional[Path] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """Initialize the store and create the schema if needed.

        Args:
            db_path: Path to the SQLite database. If None, uses
                ~/.local/share/package_registry/registry.db.
            timeout: Seconds to wait for a locked database.
        """
        if db_path is None:
            data_dir = Path.home() / ".local" / "share" / "package_registry"
            data_dir.mkdir(parents=True, exist_ok=True)
            db_path = data_dir / "registry.db"

        self.db_path = db_path
        self.timeout = timeout
        self._conn: Optional[sqlite3.Connection] = None
        self._init_database()

    def __enter__(self) -> "RegistryStore":
        """Enter context manager, keeping connection open."""
        self._conn = self._open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager, closing connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _open(self) -> sqlite3.Connection:
        # Autocommit mode: transactions are opened explicitly.
        conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextlib.contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection for reads.

        Reuses the open connection when the store is used as a context
        manager. Otherwise, creates a new one and closes it after use.

        Raises:
            InternalError: If the database cannot be opened or queried.
        """
        try:
            if self._conn:
                yield self._conn
            else:
                conn = self._open()
                try:
                    yield conn
                finally:
                    conn.close()
        except sqlite3.Error as e:
            logger.error("Store read failed: %s", e)
            raise InternalError() from e

    @contextlib.contextmanager
    def transaction(
        self, identity: Optional[dict[str, Any]] = None
    ) -> Iterator[sqlite3.Connection]:
        """Run a block inside a write transaction.

        The transaction takes the write lock up front (``BEGIN IMMEDIATE``)
        so concurrent writers serialise instead of deadlocking on a lock
        upgrade. The block is committed if it completes and rolled back on
        any exception, including cancellation.

        Args:
            identity: Natural identity of the record being written, attached
                to the ConflictError raised on a unique violation.

        Yields:
            Connection with an open transaction.

        Raises:
            ConflictError: If a unique constraint was violated.
            ValidationError: If another integrity constraint was violated.
            InternalError: On any other database failure.
        """
        with self.connect() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                logger.error("Could not open transaction: %s", e)
                raise InternalError() from e

            try:
                yield conn
                conn.execute("COMMIT")
            except BaseException as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                if isinstance(e, sqlite3.Error):
                    raise self._classify(e, identity) from e
                raise

    @staticmethod
    def _classify(exc: sqlite3.Error, identity: Optional[dict[str, Any]]) -> RegistryError:
        if isinstance(exc, sqlite3.IntegrityError):
            if is_unique_violation(exc):
                logger.warning("Unique constraint violated for %s: %s", identity, exc)
                return ConflictError("Resource already exists", identity=identity)
            logger.warning("Integrity constraint violated: %s", exc)
            return ValidationError(
                "Constraint violated", errors=[{"field": "record", "message": str(exc)}]
            )
        logger.error("Store failure: %s", exc)
        return InternalError()

    def _init_database(self) -> None:
        """Initialize the database schema if it doesn't exist."""
        with self.connect() as conn:
            conn.executescript(SCHEMA)

    def info(self) -> dict:
        """Get store statistics.

        Returns:
            Dictionary with store information:
                - path: Path to the database file
                - counts: Row count per table
                - size_bytes: Database file size in bytes
        """
        counts = {}
        with self.connect() as conn:
            for table in TABLES:
                counts[table] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

        size_bytes = self.db_path.stat().st_size if self.db_path.exists() else 0

        return {
            "path": str(self.db_path),
            "counts": counts,
            "size_bytes": size_bytes,
        }
