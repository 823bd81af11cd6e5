"""
Pydantic entity models for the voice-session builder.

These models represent the question corpus read from the store, the transient
clusters built from it and the sessions that are persisted for practice.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


logger = logging.getLogger(__name__)


class Difficulty(str, Enum):
    """Question difficulty levels, ordered from easiest to hardest."""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"

    @property
    def rank(self) -> int:
        """Position of the level in the beginner → advanced progression."""
        return _DIFFICULTY_ORDER.index(self)

    @classmethod
    def parse(cls, value: Any) -> Difficulty:
        """Read a stored difficulty, defaulting unknown values to intermediate."""
        if isinstance(value, Difficulty):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            logger.warning(f"Unknown difficulty {value!r}, using intermediate")
            return cls.INTERMEDIATE

    @classmethod
    def hardest(cls, levels: List[Difficulty]) -> Difficulty:
        """Return the most advanced level present."""
        if not levels:
            return cls.BEGINNER
        return max(levels, key=lambda level: level.rank)


_DIFFICULTY_ORDER = [Difficulty.BEGINNER, Difficulty.INTERMEDIATE, Difficulty.ADVANCED]


def _parse_string_list(value: Any) -> List[str]:
    """Accept a JSON-encoded list column, a list, or nothing."""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        value = json.loads(value)
    if not isinstance(value, list):
        raise ValueError("Expected a list of strings")
    return [str(item).strip() for item in value if str(item).strip()]


class Question(BaseModel):
    """A practice question from the corpus. Never mutated by the builder."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Question identifier")
    question: str = Field(..., description="The question text")
    answer: str = Field(default="", description="The reference answer")
    explanation: Optional[str] = Field(default=None, description="Optional explanation")
    channel: str = Field(..., min_length=1, description="Channel the question belongs to")
    sub_channel: Optional[str] = Field(default=None, description="Finer-grained sub-topic")
    difficulty: Difficulty = Field(default=Difficulty.INTERMEDIATE)
    tags: List[str] = Field(default_factory=list)
    voice_keywords: List[str] = Field(default_factory=list)

    @field_validator("difficulty", mode="before")
    @classmethod
    def parse_difficulty(cls, v: Any) -> Difficulty:
        return Difficulty.parse(v)

    @field_validator("tags", "voice_keywords", mode="before")
    @classmethod
    def parse_lists(cls, v: Any) -> List[str]:
        """Decode JSON text columns into string lists."""
        return _parse_string_list(v)

    @field_validator("answer", "question", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> str:
        return "" if v is None else v

    @field_validator("sub_channel")
    @classmethod
    def blank_sub_channel(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> Question:
        """Build a question from a store row with snake_case columns."""
        return cls(**{key: row[key] for key in row.keys() if key in cls.model_fields})


class ClusterOrigin(str, Enum):
    """How a cluster was formed."""
    GRAPH = "graph"
    SUB_CHANNEL = "sub_channel"


@dataclass
class Cluster:
    """A bounded group of questions destined to become one session."""

    channel: str
    questions: List[Question] = field(default_factory=list)
    origin: ClusterOrigin = ClusterOrigin.GRAPH

    @property
    def question_ids(self) -> List[str]:
        return [q.id for q in self.questions]

    def __len__(self) -> int:
        return len(self.questions)


class SessionTopic(BaseModel):
    """Topic label and description produced by the inference capability."""

    model_config = ConfigDict(extra="ignore")

    topic: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)

    @field_validator("topic", "description")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Text cannot be empty or whitespace only")
        return v


class VoiceSession(BaseModel):
    """A curated, ordered set of questions intended to be practiced together."""

    id: str = Field(..., min_length=1)
    topic: str = Field(..., min_length=1)
    description: str = Field(default="")
    channel: str = Field(..., min_length=1)
    difficulty: Difficulty
    question_ids: List[str] = Field(..., min_length=1)
    total_questions: int = Field(..., ge=1)
    estimated_minutes: int = Field(..., ge=0)

    @model_validator(mode="after")
    def validate_counts(self) -> VoiceSession:
        """Ensure the question count matches the id list."""
        if self.total_questions != len(self.question_ids):
            raise ValueError(
                f"total_questions ({self.total_questions}) does not match "
                f"{len(self.question_ids)} question ids"
            )
        return self

    def to_row(self, last_updated: Optional[datetime] = None) -> tuple:
        """Parameters for the voice_sessions insert."""
        return (
            self.id,
            self.topic,
            self.description,
            self.channel,
            self.difficulty.value,
            json.dumps(self.question_ids),
            self.total_questions,
            self.estimated_minutes,
            (last_updated or datetime.now()).isoformat(),
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> VoiceSession:
        data = dict(row)
        data["question_ids"] = json.loads(data["question_ids"])
        data["description"] = data.get("description") or ""
        return cls.model_validate(data)


class Corpus(BaseModel):
    """Eligible questions grouped by channel, in store order."""

    questions: List[Question] = Field(default_factory=list)
    by_channel: Dict[str, List[Question]] = Field(default_factory=dict)
    skipped_rows: int = Field(default=0, ge=0)

    @classmethod
    def from_questions(cls, questions: List[Question], skipped_rows: int = 0) -> Corpus:
        by_channel: Dict[str, List[Question]] = {}
        for q in questions:
            by_channel.setdefault(q.channel, []).append(q)
        return cls(questions=questions, by_channel=by_channel, skipped_rows=skipped_rows)

    @property
    def channels(self) -> List[str]:
        return list(self.by_channel)
