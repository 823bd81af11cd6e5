"""
Pydantic relationship models for the question graph.

These models represent the typed, scored edges between questions: the raw
candidates proposed by the inference capability and the validated edges that
are accepted into the graph and persisted.
"""

from __future__ import annotations

from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator


class RelationshipType(str, Enum):
    """Types of relationships between questions."""
    PREREQUISITE = "prerequisite"
    FOLLOW_UP = "follow_up"
    RELATED = "related"
    DEEPER_DIVE = "deeper_dive"


MIN_STRENGTH = 0
MAX_STRENGTH = 100


def bound_strength(value: float) -> float:
    """Clamp a raw score into [0, 100] without rounding."""
    return min(MAX_STRENGTH, max(MIN_STRENGTH, value))


def clamp_strength(value: float) -> int:
    """Clamp a raw score into [0, 100] and round it to an integer."""
    return int(round(bound_strength(value)))


class CandidateEdge(BaseModel):
    """A relationship as proposed by the inference capability.

    Every field is required; a response missing any of them is unparsable.
    Strength is accepted as any number here and clamped on acceptance.
    """

    model_config = ConfigDict(extra="ignore")

    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    type: RelationshipType
    strength: float

    @field_validator("source", "target")
    @classmethod
    def strip_ids(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Question ID cannot be empty")
        return v


candidate_edges_adapter = TypeAdapter(List[CandidateEdge])


class RelationshipEdge(BaseModel):
    """An accepted relationship between two questions of one channel.

    Edges are directed as produced but the graph treats them as undirected.
    """

    model_config = ConfigDict(frozen=True)

    source_id: str = Field(..., min_length=1)
    target_id: str = Field(..., min_length=1)
    relationship_type: RelationshipType = Field(default=RelationshipType.RELATED)
    strength: int = Field(..., ge=MIN_STRENGTH, le=MAX_STRENGTH)

    @model_validator(mode="after")
    def validate_distinct_endpoints(self) -> RelationshipEdge:
        if self.source_id == self.target_id:
            raise ValueError("A question cannot be related to itself")
        return self

    @classmethod
    def from_candidate(cls, candidate: CandidateEdge) -> RelationshipEdge:
        return cls(
            source_id=candidate.source,
            target_id=candidate.target,
            relationship_type=candidate.type,
            strength=clamp_strength(candidate.strength),
        )

    def to_row(self) -> tuple:
        """Parameters for the question_relationships insert."""
        return (self.source_id, self.target_id, self.relationship_type.value, self.strength)
