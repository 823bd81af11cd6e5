"""
Tests for the store wrapper and the database initialization script.
"""

import importlib.util
import sqlite3
import pytest
from pathlib import Path

from session_store import BOT_TABLES, SessionStore
from conftest import question_row


SCRIPT_PATH = Path(__file__).parent.parent / "scripts" / "init_database.py"


@pytest.fixture(scope="module")
def init_script():
    """Load scripts/init_database.py as a module."""
    spec = importlib.util.spec_from_file_location("init_database", SCRIPT_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestSessionStore:
    """Test SessionStore class."""

    def test_init_tables_is_idempotent(self, bare_store):
        bare_store.init_tables()
        bare_store.execute(
            "INSERT INTO voice_sessions (id, topic, channel, difficulty, question_ids, total_questions) "
            "VALUES ('vs-1', 'T', 'js', 'beginner', '[]', 0)"
        )

        bare_store.init_tables()

        assert all(bare_store.table_exists(table) for table in BOT_TABLES)
        assert bare_store.table_counts()["voice_sessions"] == 1

    def test_reset_tables(self, store):
        store.execute(
            "INSERT INTO bot_runs (bot_name, started_at) VALUES ('session-builder', '2024-01-01')"
        )

        store.reset_tables()

        counts = store.table_counts()
        assert counts["bot_runs"] == 0
        assert counts["questions"] == 0

    def test_table_counts_reports_missing(self, bare_store):
        counts = bare_store.table_counts()
        assert counts == {table: None for table in ("questions",) + BOT_TABLES}

    def test_transaction_commit(self, store):
        with store.transaction():
            store.execute("INSERT INTO bot_runs (bot_name, started_at) VALUES ('a', 'now')")
        assert store.table_counts()["bot_runs"] == 1

    def test_transaction_rollback(self, store):
        with pytest.raises(sqlite3.IntegrityError):
            with store.transaction():
                store.execute("INSERT INTO bot_runs (bot_name, started_at) VALUES ('a', 'now')")
                store.execute("INSERT INTO bot_runs (bot_name, started_at) VALUES (NULL, 'now')")

        assert store.table_counts()["bot_runs"] == 0

    def test_nested_transaction_joins_outer(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction():
                with store.transaction():
                    store.execute("INSERT INTO bot_runs (bot_name, started_at) VALUES ('a', 'now')")
                raise RuntimeError("abort")

        assert store.table_counts()["bot_runs"] == 0

    def test_close_and_reopen(self, temp_dir, runtime_config):
        with SessionStore(temp_dir / "reopen.db", config=runtime_config) as store:
            store.init_tables()
        assert store._conn is None

        reopened = SessionStore(temp_dir / "reopen.db", config=runtime_config)
        assert reopened.table_exists("bot_ledger")
        reopened.close()


class TestInitDatabaseScript:
    """Test scripts/init_database.py commands."""

    def test_init_and_status(self, init_script, temp_dir, capsys):
        db = str(temp_dir / "cli.db")

        assert init_script.main(["--db", db, "status"]) == 1
        assert init_script.main(["--db", db, "init"]) == 0
        assert init_script.main(["--db", db, "status"]) == 0
        assert "voice_sessions: 0" in capsys.readouterr().out

    def test_reset_requires_confirm(self, init_script, store, seed_questions):
        seed_questions([question_row("q-1")])
        store.execute("INSERT INTO bot_runs (bot_name, started_at) VALUES ('a', 'now')")

        assert init_script.main(["--db", store.db_path, "reset"]) == 1
        assert store.table_counts()["bot_runs"] == 1

        assert init_script.main(["--db", store.db_path, "reset", "--confirm"]) == 0
        counts = store.table_counts()
        assert counts["bot_runs"] == 0
        assert counts["questions"] == 1

    def test_no_command(self, init_script):
        assert init_script.main([]) == 1
