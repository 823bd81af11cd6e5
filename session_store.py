"""
Relational store access for the session builder.

This module wraps a sqlite3 connection behind parameterized query execution
and owns the schema of the tables the builder writes: relationship edges,
voice sessions, the audit ledger and the run log. The question corpus table
belongs to the host application and is only read.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

from session_config import RuntimeConfig, get_config


logger = logging.getLogger(__name__)


BOT_TABLES_SQL = """
    CREATE TABLE IF NOT EXISTS bot_ledger (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        bot_name TEXT NOT NULL,
        action TEXT NOT NULL,
        item_type TEXT NOT NULL,
        item_id TEXT NOT NULL,
        before_state TEXT,
        after_state TEXT,
        reason TEXT,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS bot_runs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        bot_name TEXT NOT NULL,
        started_at TEXT NOT NULL,
        completed_at TEXT,
        status TEXT DEFAULT 'running',
        items_processed INTEGER DEFAULT 0,
        items_created INTEGER DEFAULT 0,
        items_updated INTEGER DEFAULT 0,
        items_deleted INTEGER DEFAULT 0,
        summary TEXT
    );

    CREATE TABLE IF NOT EXISTS question_relationships (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        source_question_id TEXT NOT NULL,
        target_question_id TEXT NOT NULL,
        relationship_type TEXT NOT NULL,
        strength INTEGER DEFAULT 50,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS voice_sessions (
        id TEXT PRIMARY KEY,
        topic TEXT NOT NULL,
        description TEXT,
        channel TEXT NOT NULL,
        difficulty TEXT NOT NULL,
        question_ids TEXT NOT NULL,
        total_questions INTEGER NOT NULL,
        estimated_minutes INTEGER DEFAULT 5,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        last_updated TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_relationships_source ON question_relationships(source_question_id);
    CREATE INDEX IF NOT EXISTS idx_relationships_target ON question_relationships(target_question_id);
    CREATE INDEX IF NOT EXISTS idx_voice_sessions_channel ON voice_sessions(channel);
"""

BOT_TABLES = ("bot_ledger", "bot_runs", "question_relationships", "voice_sessions")


class SessionStore:
    """Parameterized query execution over a sqlite3 connection.

    The connection runs in autocommit mode; `transaction()` opens an explicit
    transaction for callers that need all-or-nothing writes.
    """

    def __init__(
        self,
        db_path: Optional[Union[str, Path]] = None,
        config: Optional[RuntimeConfig] = None,
        connection: Optional[sqlite3.Connection] = None
    ):
        self.config = config or get_config()
        self.db_path = str(db_path) if db_path is not None else str(self.config.store.path)
        self._conn = connection
        self._in_transaction = False

    @property
    def connection(self) -> sqlite3.Connection:
        """Open the connection on first use."""
        if self._conn is None:
            logger.info(f"Opening store at {self.db_path}")
            self._conn = sqlite3.connect(
                self.db_path,
                timeout=self.config.store.timeout,
                isolation_level=None,
            )
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        """Execute one parameterized statement."""
        return self.connection.execute(sql, tuple(params))

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        return self.execute(sql, params).fetchall()

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        return self.execute(sql, params).fetchone()

    @contextmanager
    def transaction(self) -> Iterator["SessionStore"]:
        """Run the enclosed statements in a single transaction."""
        if self._in_transaction:
            yield self
            return

        self.connection.execute("BEGIN")
        self._in_transaction = True
        try:
            yield self
        except BaseException:
            self.connection.execute("ROLLBACK")
            logger.warning("Transaction rolled back")
            raise
        else:
            self.connection.execute("COMMIT")
        finally:
            self._in_transaction = False

    def init_tables(self):
        """Create the builder tables if they do not exist, keeping data."""
        self.connection.executescript(BOT_TABLES_SQL)
        logger.info("Bot tables initialized")

    def reset_tables(self):
        """Drop and recreate the builder tables. All generated data is lost."""
        logger.warning("Resetting bot tables (all data will be lost)")
        for table in BOT_TABLES:
            self.connection.execute(f"DROP TABLE IF EXISTS {table}")
        self.init_tables()

    def table_exists(self, table: str) -> bool:
        row = self.fetch_one(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table,)
        )
        return row is not None

    def table_counts(self) -> Dict[str, Optional[int]]:
        """Row count per builder table, None for tables that do not exist."""
        counts: Dict[str, Optional[int]] = {}
        for table in ("questions",) + BOT_TABLES:
            if self.table_exists(table):
                counts[table] = self.fetch_one(f"SELECT COUNT(*) AS n FROM {table}")["n"]
            else:
                counts[table] = None
        return counts

    def close(self):
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
