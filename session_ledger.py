"""
Audit ledger and run log for the session builder.

Every session the builder creates is recorded as an append-only ledger entry,
and every pipeline run is tracked from start to completion or failure.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from session_store import SessionStore


logger = logging.getLogger(__name__)


def _to_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    return json.dumps(value, default=str)


class AuditEntry(BaseModel):
    """One append-only record of a state change caused by the builder."""

    bot_name: str
    action: str
    item_type: str
    item_id: str
    before_state: Optional[str] = None
    after_state: Optional[str] = None
    reason: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class AuditLedger:
    """Writes audit entries to the bot_ledger table."""

    def __init__(self, store: SessionStore, bot_name: str):
        self.store = store
        self.bot_name = bot_name

    def log_action(
        self,
        action: str,
        item_type: str,
        item_id: str,
        after_state: Any = None,
        before_state: Any = None,
        reason: Optional[str] = None
    ) -> AuditEntry:
        """Append one entry. Store errors propagate to the caller."""
        entry = AuditEntry(
            bot_name=self.bot_name,
            action=action,
            item_type=item_type,
            item_id=item_id,
            before_state=_to_json(before_state),
            after_state=_to_json(after_state),
            reason=reason,
        )
        self.store.execute(
            """
            INSERT INTO bot_ledger
            (bot_name, action, item_type, item_id, before_state, after_state, reason, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.bot_name,
                entry.action,
                entry.item_type,
                entry.item_id,
                entry.before_state,
                entry.after_state,
                entry.reason,
                entry.created_at.isoformat(),
            )
        )
        return entry

    def entries(self, item_type: Optional[str] = None) -> List[AuditEntry]:
        sql = "SELECT * FROM bot_ledger WHERE bot_name = ?"
        params: List[Any] = [self.bot_name]
        if item_type:
            sql += " AND item_type = ?"
            params.append(item_type)
        rows = self.store.fetch_all(sql + " ORDER BY id", params)
        return [
            AuditEntry(**{k: row[k] for k in AuditEntry.model_fields})
            for row in rows
        ]


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RunStats(BaseModel):
    """Counters reported for a run."""

    processed: int = Field(default=0, ge=0)
    created: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)
    deleted: int = Field(default=0, ge=0)


class RunRecord(BaseModel):
    id: int
    bot_name: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    status: RunStatus = RunStatus.RUNNING
    items_processed: int = 0
    items_created: int = 0
    items_updated: int = 0
    items_deleted: int = 0
    summary: Optional[Dict[str, Any]] = None


class RunTracker:
    """Tracks pipeline runs in the bot_runs table."""

    def __init__(self, store: SessionStore, bot_name: str):
        self.store = store
        self.bot_name = bot_name

    def start_run(self) -> RunRecord:
        started_at = datetime.now()
        cursor = self.store.execute(
            "INSERT INTO bot_runs (bot_name, started_at, status) VALUES (?, ?, ?)",
            (self.bot_name, started_at.isoformat(), RunStatus.RUNNING.value)
        )
        logger.info(f"Started run {cursor.lastrowid} for {self.bot_name}")
        return RunRecord(id=cursor.lastrowid, bot_name=self.bot_name, started_at=started_at)

    def update_stats(self, run_id: int, stats: RunStats):
        self.store.execute(
            """
            UPDATE bot_runs
            SET items_processed = ?, items_created = ?, items_updated = ?, items_deleted = ?
            WHERE id = ?
            """,
            (stats.processed, stats.created, stats.updated, stats.deleted, run_id)
        )

    def complete_run(self, run_id: int, stats: RunStats, summary: Optional[Dict[str, Any]] = None):
        self._finish(run_id, RunStatus.COMPLETED, stats, summary)
        logger.info(f"Run {run_id} completed")

    def fail_run(self, run_id: int, error: BaseException, stats: Optional[RunStats] = None):
        summary = {'error': str(error), 'error_type': type(error).__name__}
        self._finish(run_id, RunStatus.FAILED, stats or RunStats(), summary)
        logger.error(f"Run {run_id} failed: {error}")

    def _finish(
        self,
        run_id: int,
        status: RunStatus,
        stats: RunStats,
        summary: Optional[Dict[str, Any]]
    ):
        self.store.execute(
            """
            UPDATE bot_runs
            SET completed_at = ?, status = ?, items_processed = ?, items_created = ?,
                items_updated = ?, items_deleted = ?, summary = ?
            WHERE id = ?
            """,
            (
                datetime.now().isoformat(),
                status.value,
                stats.processed,
                stats.created,
                stats.updated,
                stats.deleted,
                _to_json(summary),
                run_id,
            )
        )

    def get_run(self, run_id: int) -> Optional[RunRecord]:
        row = self.store.fetch_one("SELECT * FROM bot_runs WHERE id = ?", (run_id,))
        if row is None:
            return None
        data = dict(row)
        data["summary"] = json.loads(data["summary"]) if data["summary"] else None
        return RunRecord(**data)
