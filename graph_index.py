"""
In-memory undirected adjacency index over accepted relationship edges.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List

from session_relationships import RelationshipEdge, RelationshipType


@dataclass(frozen=True)
class Neighbor:
    """One side of an edge as seen from the other endpoint."""

    id: str
    strength: int
    relationship_type: RelationshipType


class GraphIndex:
    """Adjacency lists keyed by question id.

    Each edge is registered against both endpoints. An index without edges is
    a valid graph of isolated nodes.
    """

    def __init__(self):
        self._adjacency: Dict[str, List[Neighbor]] = {}
        self.edge_count = 0

    @classmethod
    def from_edges(cls, edges: Iterable[RelationshipEdge]) -> GraphIndex:
        index = cls()
        for edge in edges:
            index.add_edge(edge)
        return index

    def add_edge(self, edge: RelationshipEdge):
        self._adjacency.setdefault(edge.source_id, []).append(
            Neighbor(edge.target_id, edge.strength, edge.relationship_type)
        )
        self._adjacency.setdefault(edge.target_id, []).append(
            Neighbor(edge.source_id, edge.strength, edge.relationship_type)
        )
        self.edge_count += 1

    def neighbors(self, question_id: str) -> List[Neighbor]:
        """All adjacency entries for a node, duplicates included."""
        return list(self._adjacency.get(question_id, []))

    def degree(self, question_id: str) -> int:
        """Number of distinct neighbours."""
        return len({n.id for n in self._adjacency.get(question_id, [])})

    def ranked_neighbors(self, question_id: str) -> List[Neighbor]:
        """Distinct neighbours by strength descending, then id.

        When two edges link the same pair, the stronger one represents it.
        """
        best: Dict[str, Neighbor] = {}
        for neighbor in self._adjacency.get(question_id, []):
            current = best.get(neighbor.id)
            if current is None or neighbor.strength > current.strength:
                best[neighbor.id] = neighbor
        return sorted(best.values(), key=lambda n: (-n.strength, n.id))

    def __contains__(self, question_id: str) -> bool:
        return question_id in self._adjacency

    def __len__(self) -> int:
        return len(self._adjacency)
