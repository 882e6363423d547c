"""SQLite storage for the vitalog data bank.

Owns the single connection, the on-disk file permissions and the ordered
list of schema migrations. Observations live in ``metrics`` (one row per
logged value or medication dose), alongside ``medications``, ``goals`` and
the PHI-free ``audit_log``.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

IN_MEMORY = ":memory:"

_TRACKER_TABLES = """
-- Observations: metric entries and dose-taken events share one table
CREATE TABLE IF NOT EXISTS metrics (
    id         TEXT PRIMARY KEY,
    timestamp  TEXT NOT NULL,
    category   TEXT NOT NULL,
    type       TEXT NOT NULL,
    value      REAL NOT NULL,
    unit       TEXT NOT NULL,
    note_enc   TEXT,
    tags       TEXT,
    source     TEXT NOT NULL DEFAULT 'manual'
);

-- Goals are soft-retired: active = 0 keeps the history
CREATE TABLE IF NOT EXISTS goals (
    id           TEXT PRIMARY KEY,
    metric_type  TEXT NOT NULL,
    target_value REAL NOT NULL,
    direction    TEXT NOT NULL,
    timeframe    TEXT NOT NULL,
    active       INTEGER NOT NULL DEFAULT 1,
    created_at   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS medications (
    id              TEXT PRIMARY KEY,
    name            TEXT NOT NULL,
    dose            TEXT,
    dose_value      REAL,
    dose_unit       TEXT,
    route           TEXT NOT NULL DEFAULT 'oral',
    frequency       TEXT NOT NULL,
    active          INTEGER NOT NULL DEFAULT 1,
    started_at      TEXT NOT NULL,
    stopped_at      TEXT,
    stop_reason_enc TEXT,
    note_enc        TEXT,
    created_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_metrics_type_ts ON metrics(type, timestamp);
CREATE INDEX IF NOT EXISTS idx_metrics_ts      ON metrics(timestamp);
CREATE INDEX IF NOT EXISTS idx_goals_type      ON goals(metric_type, active);
CREATE INDEX IF NOT EXISTS idx_medications_active ON medications(active);

-- At most one active medication per name
CREATE UNIQUE INDEX IF NOT EXISTS idx_medications_name_active
    ON medications(name) WHERE active = 1;
"""

_AUDIT_TABLE = """
CREATE TABLE IF NOT EXISTS audit_log (
    id              TEXT PRIMARY KEY,
    timestamp       TEXT NOT NULL DEFAULT (datetime('now')),
    action          TEXT NOT NULL,
    tool_name       TEXT,
    tool_input_hash TEXT,
    duration_ms     REAL,
    status          TEXT NOT NULL DEFAULT 'success',
    error_type      TEXT,
    metadata_json   TEXT
);

CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_action    ON audit_log(action);
CREATE INDEX IF NOT EXISTS idx_audit_tool      ON audit_log(tool_name);
"""

_DOSE_INDEX = """
-- Adherence reads dose events by (source, type) over a date window
CREATE INDEX IF NOT EXISTS idx_metrics_source_type_ts
    ON metrics(source, type, timestamp);
"""

# (version, description, ddl), applied in order
MIGRATIONS: tuple[tuple[int, str, str], ...] = (
    (1, "tracker tables", _TRACKER_TABLES),
    (2, "audit_log table", _AUDIT_TABLE),
    (3, "dose-taken index", _DOSE_INDEX),
)

SCHEMA_VERSION = MIGRATIONS[-1][0]


class DatabaseError(Exception):
    """Raised when database operations fail."""


def _secure_file(db_file: Path) -> None:
    """Create the database file and its directory readable by the owner only."""
    db_file.parent.mkdir(parents=True, exist_ok=True)
    os.chmod(db_file.parent, 0o700)
    if not db_file.exists():
        db_file.touch(mode=0o600)
    os.chmod(db_file, 0o600)


class HealthDatabase:
    """Connection owner for the vitalog data bank.

    ``":memory:"`` gives a throwaway database for tests; any other path is
    expanded, created with private permissions and migrated on first use.

    Usage::

        with HealthDatabase("~/.vitalog/health.db") as db:
            with db.transaction() as conn:
                conn.execute("DELETE FROM goals")
    """

    def __init__(self, db_path: str = IN_MEMORY) -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        """The open connection.

        Raises:
            DatabaseError: If ``initialize()`` has not been called.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    @property
    def is_in_memory(self) -> bool:
        return self._db_path == IN_MEMORY

    def initialize(self) -> None:
        """Open the connection and migrate the schema. Safe to call twice."""
        if self._conn is not None:
            return

        if self.is_in_memory:
            self._conn = sqlite3.connect(IN_MEMORY)
        else:
            db_file = Path(self._db_path).expanduser()
            _secure_file(db_file)
            self._conn = sqlite3.connect(str(db_file))

        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.execute(
            """CREATE TABLE IF NOT EXISTS schema_version (
                   version    INTEGER NOT NULL,
                   applied_at TEXT NOT NULL DEFAULT (datetime('now'))
               )"""
        )

        self._migrate()
        logger.info("Health database initialized: %s", self._db_path)

    def _migrate(self) -> None:
        current = self.get_schema_version()
        pending = [m for m in MIGRATIONS if m[0] > current]
        for version, description, ddl in pending:
            self.connection.executescript(ddl)
            self.connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            self.connection.commit()
            logger.info("Applied schema migration V%d: %s", version, description)
        if pending:
            logger.info("Schema updated from version %d to %d", current, SCHEMA_VERSION)

    def get_schema_version(self) -> int:
        row = self.connection.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] if row[0] is not None else 0

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit every statement in the block together, or none of them."""
        conn = self.connection
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        else:
            conn.commit()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Health database closed")

    def __enter__(self) -> HealthDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()
