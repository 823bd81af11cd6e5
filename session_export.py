"""
Exports persisted voice sessions to the JSON file read by the client.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

import logfire
from pydantic import BaseModel, Field

from session_entities import VoiceSession
from session_store import SessionStore


logger = logging.getLogger(__name__)


class ExportResult(BaseModel):
    path: Path
    total: int = Field(default=0, ge=0)
    by_channel: Dict[str, int] = Field(default_factory=dict)


def to_client_format(session: VoiceSession) -> Dict[str, Any]:
    """camelCase record as consumed by the client."""
    return {
        'id': session.id,
        'topic': session.topic,
        'description': session.description,
        'channel': session.channel,
        'difficulty': session.difficulty.value,
        'questionIds': session.question_ids,
        'totalQuestions': session.total_questions,
        'estimatedMinutes': session.estimated_minutes,
    }


def load_sessions(store: SessionStore) -> List[VoiceSession]:
    rows = store.fetch_all(
        """
        SELECT id, topic, description, channel, difficulty, question_ids,
               total_questions, estimated_minutes
        FROM voice_sessions
        ORDER BY channel, topic
        """
    )
    return [VoiceSession.from_row(row) for row in rows]


def export_sessions(store: SessionStore, output_path: Union[str, Path]) -> ExportResult:
    """Write `{"sessions": [...]}`; an empty list when no sessions table exists."""
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with logfire.span('session_export.export') as span:
        if store.table_exists('voice_sessions'):
            sessions = load_sessions(store)
        else:
            logger.warning("No voice_sessions table found, writing an empty file")
            sessions = []

        by_channel: Dict[str, int] = {}
        for session in sessions:
            by_channel[session.channel] = by_channel.get(session.channel, 0) + 1

        path.write_text(
            json.dumps({'sessions': [to_client_format(s) for s in sessions]}, indent=2),
            encoding='utf-8'
        )
        span.set_attribute('sessions', len(sessions))
        logfire.info('Sessions exported', path=str(path), sessions=len(sessions))
        return ExportResult(path=path, total=len(sessions), by_channel=by_channel)
