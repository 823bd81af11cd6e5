"""
Partitions a channel's questions into bounded clusters.

Graph clusters come from a greedy, degree-ordered breadth-first traversal with
a fan-out cap; questions the traversal never reaches are grouped by
sub-channel. The heuristic is not an optimal partition, and its tie-break
rules are part of its behaviour:

- seeds are taken by degree descending, then id
- each expansion enqueues at most `max_neighbors` unvisited neighbours,
  strongest first (ties by id)
- a cluster stops growing at `max_cluster_size` members
- a question claimed by a kept cluster never seeds or joins another one in
  the same run; members of a discarded cluster stay available, so the
  sub-channel fallback can still pick up questions without relationships
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Dict, List, Optional, Set

import logfire

from graph_index import GraphIndex
from session_config import PipelineConfig, get_config
from session_entities import Cluster, ClusterOrigin, Question


logger = logging.getLogger(__name__)


def sort_by_difficulty(questions: List[Question]) -> List[Question]:
    """Stable sort, beginner first."""
    return sorted(questions, key=lambda q: q.difficulty.rank)


class ClusterExtractor:
    """Builds graph-derived and sub-channel fallback clusters per channel."""

    def __init__(self, config: Optional[PipelineConfig] = None):
        self.config = config or get_config().pipeline

    def seed_order(self, questions: List[Question], graph: GraphIndex) -> List[str]:
        return sorted((q.id for q in questions), key=lambda qid: (-graph.degree(qid), qid))

    def _grow_cluster(
        self,
        seed: str,
        lookup: Dict[str, Question],
        graph: GraphIndex,
        visited: Set[str]
    ) -> List[Question]:
        cluster: List[Question] = []
        cluster_visited: Set[str] = set()
        queue = deque([seed])

        while queue and len(cluster) < self.config.max_cluster_size:
            current = queue.popleft()
            if current in cluster_visited or current in visited:
                continue

            cluster_visited.add(current)
            cluster.append(lookup[current])

            candidates = [
                n for n in graph.ranked_neighbors(current)
                if n.id in lookup and n.id not in cluster_visited and n.id not in visited
            ]
            for neighbor in candidates[:self.config.max_neighbors]:
                queue.append(neighbor.id)

        return cluster

    def graph_clusters(
        self,
        channel: str,
        questions: List[Question],
        graph: GraphIndex,
        visited: Set[str]
    ) -> List[Cluster]:
        lookup = {q.id: q for q in questions}
        clusters = []

        for seed in self.seed_order(questions, graph):
            if seed in visited:
                continue
            members = self._grow_cluster(seed, lookup, graph, visited)
            if len(members) >= self.config.min_cluster_size:
                visited.update(q.id for q in members)
                clusters.append(Cluster(channel=channel, questions=members, origin=ClusterOrigin.GRAPH))
            else:
                logger.debug(f"Discarding cluster of {len(members)} seeded at {seed}")

        return clusters

    def fallback_clusters(
        self,
        channel: str,
        questions: List[Question],
        visited: Set[str]
    ) -> List[Cluster]:
        """Group questions no kept graph cluster claimed, by sub-channel."""
        by_sub_channel: Dict[Optional[str], List[Question]] = {}
        for q in questions:
            if q.id in visited:
                continue
            by_sub_channel.setdefault(q.sub_channel, []).append(q)

        clusters = []
        for sub_questions in by_sub_channel.values():
            if len(sub_questions) < self.config.min_cluster_size:
                continue
            ordered = sort_by_difficulty(sub_questions)[:self.config.fallback_cluster_size]
            clusters.append(Cluster(channel=channel, questions=ordered, origin=ClusterOrigin.SUB_CHANNEL))
        return clusters

    def extract(self, channel: str, questions: List[Question], graph: GraphIndex) -> List[Cluster]:
        """Clusters for one channel: graph-derived first, then fallback."""
        if len(questions) < self.config.min_cluster_size:
            return []

        with logfire.span('cluster_extractor.extract') as span:
            span.set_attribute('channel', channel)
            visited: Set[str] = set()
            clusters = self.graph_clusters(channel, questions, graph, visited)
            fallback = self.fallback_clusters(channel, questions, visited)

            span.set_attribute('graph_clusters', len(clusters))
            span.set_attribute('fallback_clusters', len(fallback))
            return clusters + fallback

    def extract_all(self, by_channel: Dict[str, List[Question]], graph: GraphIndex) -> List[Cluster]:
        clusters: List[Cluster] = []
        for channel, questions in by_channel.items():
            clusters.extend(self.extract(channel, questions, graph))
        logfire.info('Clusters extracted', clusters=len(clusters))
        return clusters
