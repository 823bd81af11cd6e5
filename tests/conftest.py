"""
Shared fixtures for the session builder tests.
"""

import json
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from session_config import PipelineConfig, RuntimeConfig
from session_entities import Question
from session_store import SessionStore


QUESTIONS_DDL = """
    CREATE TABLE IF NOT EXISTS questions (
        id TEXT PRIMARY KEY,
        question TEXT NOT NULL,
        answer TEXT,
        explanation TEXT,
        channel TEXT NOT NULL,
        sub_channel TEXT,
        difficulty TEXT,
        tags TEXT,
        voice_keywords TEXT,
        voice_suitable INTEGER DEFAULT 0,
        status TEXT DEFAULT 'active'
    )
"""


def question_row(
    question_id: str,
    channel: str = "javascript",
    sub_channel: Optional[str] = None,
    difficulty: str = "intermediate",
    **overrides: Any
) -> Dict[str, Any]:
    """A questions-table row that the corpus loader accepts."""
    row = {
        "id": question_id,
        "question": f"Explain the concept behind {question_id}",
        "answer": f"Answer for {question_id}",
        "explanation": None,
        "channel": channel,
        "sub_channel": sub_channel,
        "difficulty": difficulty,
        "tags": json.dumps([channel]),
        "voice_keywords": json.dumps(["concept", question_id]),
        "voice_suitable": 1,
        "status": "active",
    }
    row.update(overrides)
    return row


class ScriptedClient:
    """Inference stub that replays queued responses.

    A queued exception is raised and a queued callable is called with the
    prompt. Once the queue is empty `default` is used the same way.
    """

    def __init__(self, responses: Optional[List[Any]] = None, default: Any = "[]"):
        self.responses = list(responses or [])
        self.default = default
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(prompt)
        return response


@pytest.fixture
def temp_dir():
    """Create temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def runtime_config():
    return RuntimeConfig()


@pytest.fixture
def pipeline_config():
    """Pipeline constants with the default thresholds and no pause."""
    return PipelineConfig(batch_pause_seconds=0)


@pytest.fixture
def bare_store(temp_dir, runtime_config):
    """Store over an empty database."""
    store = SessionStore(temp_dir / "bare.db", config=runtime_config)
    yield store
    store.close()


@pytest.fixture
def store(temp_dir, runtime_config):
    """Store with the questions table and the builder tables."""
    store = SessionStore(temp_dir / "sessions.db", config=runtime_config)
    store.execute(QUESTIONS_DDL)
    store.init_tables()
    yield store
    store.close()


@pytest.fixture
def seed_questions(store) -> Callable[[List[Dict[str, Any]]], None]:
    """Insert question rows into the store."""
    def _seed(rows: List[Dict[str, Any]]):
        for row in rows:
            columns = ", ".join(row)
            placeholders = ", ".join("?" for _ in row)
            store.execute(
                f"INSERT INTO questions ({columns}) VALUES ({placeholders})",
                list(row.values())
            )
    return _seed


@pytest.fixture
def make_question() -> Callable[..., Question]:
    """Build a Question without going through the store."""
    def _make(
        question_id: str,
        channel: str = "javascript",
        sub_channel: Optional[str] = None,
        difficulty: str = "intermediate",
        **overrides: Any
    ) -> Question:
        return Question.from_row(question_row(question_id, channel, sub_channel, difficulty, **overrides))
    return _make
