"""
Tests for the relationship models.
"""

import pytest
from pydantic import ValidationError

from session_relationships import (
    RelationshipType,
    CandidateEdge,
    RelationshipEdge,
    candidate_edges_adapter,
    bound_strength,
    clamp_strength,
)


class TestClampStrength:
    """Test strength normalisation."""

    def test_clamps_and_rounds(self):
        assert clamp_strength(150) == 100
        assert clamp_strength(-5) == 0
        assert clamp_strength(72.6) == 73
        assert clamp_strength(60) == 60

    def test_bound_keeps_fraction(self):
        assert bound_strength(59.5) == 59.5
        assert bound_strength(130.2) == 100
        assert bound_strength(-0.5) == 0


class TestCandidateEdge:
    """Test CandidateEdge model."""

    def test_valid_candidate(self):
        candidate = CandidateEdge(source=" q-1 ", target="q-2", type="deeper_dive", strength=88)
        assert candidate.source == "q-1"
        assert candidate.type == RelationshipType.DEEPER_DIVE

    def test_all_fields_required(self):
        with pytest.raises(ValidationError):
            CandidateEdge(source="q-1", target="q-2", type="related")
        with pytest.raises(ValidationError):
            CandidateEdge(source="q-1", target="q-2", strength=70)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            CandidateEdge(source="q-1", target="q-2", type="cousin", strength=70)

    def test_list_adapter(self):
        edges = candidate_edges_adapter.validate_json(
            '[{"source": "a", "target": "b", "type": "related", "strength": 70, "note": "x"}]'
        )
        assert len(edges) == 1
        assert edges[0].target == "b"


class TestRelationshipEdge:
    """Test RelationshipEdge model."""

    def test_self_loop_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            RelationshipEdge(source_id="q-1", target_id="q-1", strength=80)
        assert "cannot be related to itself" in str(exc_info.value)

    def test_strength_bounds(self):
        with pytest.raises(ValidationError):
            RelationshipEdge(source_id="q-1", target_id="q-2", strength=101)

    def test_from_candidate_clamps(self):
        candidate = CandidateEdge(source="q-1", target="q-2", type="prerequisite", strength=130.2)
        edge = RelationshipEdge.from_candidate(candidate)

        assert edge.strength == 100
        assert edge.relationship_type == RelationshipType.PREREQUISITE
        assert edge.to_row() == ("q-1", "q-2", "prerequisite", 100)

