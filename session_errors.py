"""
Error types and error tracking for the session builder.

Failures are split by blast radius: fatal errors abort the run, per-unit
errors drop one inference batch or synthesis call, per-row errors drop one
store write. Recoverable errors are recorded here so a run can report them.
"""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import logfire
from pydantic import BaseModel, Field, ValidationError


class SessionBuilderError(Exception):
    """Base class for session builder failures."""


class CorpusUnavailableError(SessionBuilderError):
    """The question corpus could not be read. Always fatal."""


class InferenceError(SessionBuilderError):
    """The inference capability failed to produce a response."""


class UnparsableResponseError(SessionBuilderError):
    """The inference response did not match the expected schema."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class PipelineErrorType(str, Enum):
    """Types of errors that can occur during a run."""

    INFERENCE_ERROR = "inference_error"
    PARSING_ERROR = "parsing_error"
    TIMEOUT_ERROR = "timeout_error"
    STORE_ERROR = "store_error"
    VALIDATION_ERROR = "validation_error"
    UNKNOWN_ERROR = "unknown_error"


class ErrorTier(str, Enum):
    """Blast radius of an error."""

    FATAL = "fatal"
    PER_UNIT = "per_unit"
    PER_ROW = "per_row"


def classify_error(error: BaseException) -> PipelineErrorType:
    """Map an exception to its error type."""
    if isinstance(error, UnparsableResponseError):
        return PipelineErrorType.PARSING_ERROR
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return PipelineErrorType.TIMEOUT_ERROR
    if isinstance(error, InferenceError):
        return PipelineErrorType.INFERENCE_ERROR
    if isinstance(error, (sqlite3.Error, CorpusUnavailableError)):
        return PipelineErrorType.STORE_ERROR
    if isinstance(error, (ValidationError, ValueError)):
        return PipelineErrorType.VALIDATION_ERROR
    return PipelineErrorType.UNKNOWN_ERROR


class PipelineError(BaseModel):
    """Structured error information for a recoverable failure."""

    error_type: PipelineErrorType
    tier: ErrorTier
    message: str
    context: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.now)

    def to_log_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            'error_type': self.error_type.value,
            'tier': self.tier.value,
            'message': self.message,
            'context': self.context,
            'timestamp': self.timestamp.isoformat(),
        }


class ErrorLog:
    """Collects recoverable errors raised during one run."""

    def __init__(self):
        self.errors: List[PipelineError] = []

    def record(
        self,
        error: BaseException,
        tier: ErrorTier,
        **context: Any
    ) -> PipelineError:
        """Record and log an error, returning its structured form."""
        pipeline_error = PipelineError(
            error_type=classify_error(error),
            tier=tier,
            message=str(error),
            context=context,
        )
        logfire.error("Recoverable pipeline error", **pipeline_error.to_log_dict())
        self.errors.append(pipeline_error)
        return pipeline_error

    def by_tier(self, tier: ErrorTier) -> List[PipelineError]:
        return [e for e in self.errors if e.tier == tier]

    def get_error_summary(self) -> Dict[str, Any]:
        """Get summary of errors encountered."""
        error_types: Dict[str, int] = {}
        tiers: Dict[str, int] = {}
        for error in self.errors:
            error_types[error.error_type.value] = error_types.get(error.error_type.value, 0) + 1
            tiers[error.tier.value] = tiers.get(error.tier.value, 0) + 1

        return {
            'total_errors': len(self.errors),
            'error_types': error_types,
            'tiers': tiers,
            'last_error': self.errors[-1].to_log_dict() if self.errors else None,
        }

    def clear(self):
        self.errors.clear()

    def __len__(self) -> int:
        return len(self.errors)
