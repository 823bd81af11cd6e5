"""
Full-rebuild persistence of edges and sessions.

The previous generation is deleted, then every edge and session is inserted on
its own. By default a failed insert is logged and skipped, so the stored
output can be a subset of what was computed. With `transactional_rebuild`
the whole rebuild is one transaction and the first failure rolls it back.
"""

import logging
import sqlite3
from typing import List, Optional

import logfire
from pydantic import BaseModel, Field

from session_config import PipelineConfig, get_config
from session_entities import VoiceSession
from session_errors import ErrorLog, ErrorTier
from session_ledger import AuditLedger
from session_relationships import RelationshipEdge
from session_store import SessionStore


logger = logging.getLogger(__name__)


SESSION_REASON = "Generated voice session from related questions"


class PersistResult(BaseModel):
    """Counts of rows written by one rebuild."""

    saved_relationships: int = Field(default=0, ge=0)
    saved_sessions: int = Field(default=0, ge=0)
    failed_relationships: int = Field(default=0, ge=0)
    failed_sessions: int = Field(default=0, ge=0)
    deleted_relationships: int = Field(default=0, ge=0)
    deleted_sessions: int = Field(default=0, ge=0)


class RebuildPersister:
    """Clears the previous generation and writes the new one."""

    def __init__(
        self,
        store: SessionStore,
        ledger: AuditLedger,
        config: Optional[PipelineConfig] = None,
        error_log: Optional[ErrorLog] = None
    ):
        self.store = store
        self.ledger = ledger
        self.config = config or get_config().pipeline
        self.error_log = error_log if error_log is not None else ErrorLog()

    def clear_previous(self, result: PersistResult):
        result.deleted_relationships = self.store.execute("DELETE FROM question_relationships").rowcount
        result.deleted_sessions = self.store.execute("DELETE FROM voice_sessions").rowcount
        logger.info(
            f"Cleared {result.deleted_relationships} relationships "
            f"and {result.deleted_sessions} sessions"
        )

    def _save_edge(self, edge: RelationshipEdge, result: PersistResult, strict: bool):
        try:
            self.store.execute(
                """
                INSERT INTO question_relationships
                (source_question_id, target_question_id, relationship_type, strength)
                VALUES (?, ?, ?, ?)
                """,
                edge.to_row()
            )
            result.saved_relationships += 1
        except sqlite3.Error as e:
            result.failed_relationships += 1
            self.error_log.record(
                e, ErrorTier.PER_ROW,
                stage='persist', item='relationship',
                source=edge.source_id, target=edge.target_id,
            )
            if strict:
                raise

    def _save_session(self, session: VoiceSession, result: PersistResult, strict: bool):
        try:
            self.store.execute(
                """
                INSERT INTO voice_sessions
                (id, topic, description, channel, difficulty, question_ids,
                 total_questions, estimated_minutes, last_updated)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                session.to_row()
            )
        except sqlite3.Error as e:
            result.failed_sessions += 1
            self.error_log.record(
                e, ErrorTier.PER_ROW,
                stage='persist', item='voice_session', session_id=session.id,
            )
            if strict:
                raise
            return

        result.saved_sessions += 1
        try:
            self.ledger.log_action(
                action='create',
                item_type='voice_session',
                item_id=session.id,
                after_state=session,
                reason=SESSION_REASON,
            )
        except sqlite3.Error as e:
            self.error_log.record(
                e, ErrorTier.PER_ROW,
                stage='persist', item='audit_entry', session_id=session.id,
            )
            if strict:
                raise

    def _write(self, edges: List[RelationshipEdge], sessions: List[VoiceSession], strict: bool) -> PersistResult:
        result = PersistResult()
        self.clear_previous(result)
        for edge in edges:
            self._save_edge(edge, result, strict)
        for session in sessions:
            self._save_session(session, result, strict)
        return result

    def persist(self, edges: List[RelationshipEdge], sessions: List[VoiceSession]) -> PersistResult:
        """Replace the stored generation with `edges` and `sessions`."""
        with logfire.span('rebuild_persister.persist') as span:
            span.set_attribute('edges', len(edges))
            span.set_attribute('sessions', len(sessions))
            span.set_attribute('transactional', self.config.transactional_rebuild)

            if self.config.transactional_rebuild:
                with self.store.transaction():
                    result = self._write(edges, sessions, strict=True)
            else:
                result = self._write(edges, sessions, strict=False)

            span.set_attribute('saved_relationships', result.saved_relationships)
            span.set_attribute('saved_sessions', result.saved_sessions)
            logfire.info(
                'Rebuild persisted',
                saved_relationships=result.saved_relationships,
                saved_sessions=result.saved_sessions,
                failed_relationships=result.failed_relationships,
                failed_sessions=result.failed_sessions,
            )
            return result
