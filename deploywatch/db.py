"""SQLite storage shared by the deployment, health and notification stores.

Every write path goes through ``transaction()``, which takes the database
write lock up front (``BEGIN IMMEDIATE``) so read-modify-write sequences on a
deployment are serialized across threads and processes.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from deploywatch.config import settings

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent.parent / "data"
DB_PATH = DATA_DIR / "deploywatch.db"

SCHEMA = """
    CREATE TABLE IF NOT EXISTS deployments (
        id                TEXT PRIMARY KEY,
        client_id         TEXT NOT NULL,
        agent_id          TEXT NOT NULL,
        deployment_type   TEXT NOT NULL DEFAULT 'your_instance',
        n8n_instance_url  TEXT,
        workflow_id       TEXT NOT NULL,
        workflow_name     TEXT NOT NULL,
        workflow_url      TEXT,
        status            TEXT NOT NULL DEFAULT 'deploying',
        deployment_error  TEXT,
        credentials       TEXT NOT NULL DEFAULT '[]',
        health            TEXT NOT NULL,
        deployed_at       INTEGER NOT NULL,
        updated_at        INTEGER NOT NULL,
        archived_at       INTEGER
    );

    CREATE INDEX IF NOT EXISTS idx_deployments_status
        ON deployments (status);

    CREATE TABLE IF NOT EXISTS health_checks (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        deployment_id   TEXT NOT NULL,
        timestamp       INTEGER NOT NULL,
        overall_status  TEXT NOT NULL,
        checks          TEXT NOT NULL,
        details         TEXT,
        execution_data  TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_health_checks_deployment
        ON health_checks (deployment_id, timestamp DESC);

    CREATE TABLE IF NOT EXISTS notifications (
        id                   TEXT PRIMARY KEY,
        type                 TEXT NOT NULL,
        title                TEXT NOT NULL,
        message              TEXT NOT NULL,
        severity             TEXT NOT NULL,
        related_entity_type  TEXT,
        related_entity_id    TEXT,
        read                 INTEGER NOT NULL DEFAULT 0,
        dismissed            INTEGER NOT NULL DEFAULT 0,
        created_at           INTEGER NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_notifications_created
        ON notifications (created_at DESC);

    CREATE TABLE IF NOT EXISTS credential_secrets (
        deployment_id   TEXT NOT NULL,
        key             TEXT NOT NULL,
        ciphertext      TEXT NOT NULL,
        updated_at      INTEGER NOT NULL,
        PRIMARY KEY (deployment_id, key)
    );
"""


class Database:
    """Owns the SQLite file and hands out short-lived connections."""

    def __init__(self, db_path: Path | str | None = None) -> None:
        self._db_path = Path(db_path or settings.db_path or DB_PATH)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @property
    def path(self) -> Path:
        return self._db_path

    def connect(self) -> sqlite3.Connection:
        # isolation_level=None: transactions are opened explicitly below
        conn = sqlite3.connect(str(self._db_path), timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_db(self) -> None:
        conn = self.connect()
        try:
            conn.executescript(SCHEMA)
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """All-or-nothing unit of work holding the write lock."""
        conn = self.connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    @contextmanager
    def reader(self) -> Iterator[sqlite3.Connection]:
        conn = self.connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def use(self, conn: sqlite3.Connection | None = None) -> Iterator[sqlite3.Connection]:
        """Join the caller's transaction, or open a new one."""
        if conn is not None:
            yield conn
            return
        with self.transaction() as own:
            yield own
