"""
Tests for cluster extraction.
"""

import itertools
import pytest

from cluster_extractor import ClusterExtractor, sort_by_difficulty
from graph_index import GraphIndex
from session_config import PipelineConfig
from session_entities import ClusterOrigin
from session_relationships import RelationshipEdge


def complete_graph(ids, strength=80):
    return GraphIndex.from_edges(
        RelationshipEdge(source_id=a, target_id=b, strength=strength)
        for a, b in itertools.combinations(ids, 2)
    )


@pytest.fixture
def extractor(pipeline_config):
    return ClusterExtractor(pipeline_config)


class TestSortByDifficulty:
    """Test difficulty ordering."""

    def test_stable_sort(self, make_question):
        questions = [
            make_question("a", difficulty="advanced"),
            make_question("b", difficulty="beginner"),
            make_question("c", difficulty="intermediate"),
            make_question("d", difficulty="beginner"),
        ]
        assert [q.id for q in sort_by_difficulty(questions)] == ["b", "d", "c", "a"]


class TestGraphClusters:
    """Test graph-derived clusters."""

    def test_complete_graph_of_ten(self, extractor, make_question):
        questions = [make_question(f"q-{i:02d}") for i in range(10)]
        graph = complete_graph([q.id for q in questions])

        clusters = extractor.extract("javascript", questions, graph)

        assert len(clusters) == 1
        assert clusters[0].origin == ClusterOrigin.GRAPH
        assert len(clusters[0]) == 8
        assert set(clusters[0].question_ids) == {f"q-{i:02d}" for i in range(8)}

    def test_disjoint_components_are_exclusive(self, extractor, make_question):
        questions = [make_question(f"a-{i}") for i in range(5)] + [make_question(f"b-{i}") for i in range(5)]
        graph = GraphIndex()
        for edge_graph_ids in ([f"a-{i}" for i in range(5)], [f"b-{i}" for i in range(5)]):
            for a, b in itertools.combinations(edge_graph_ids, 2):
                graph.add_edge(RelationshipEdge(source_id=a, target_id=b, strength=75))

        clusters = extractor.extract("javascript", questions, graph)

        assert len(clusters) == 2
        first, second = (set(c.question_ids) for c in clusters)
        assert first == {f"a-{i}" for i in range(5)}
        assert second == {f"b-{i}" for i in range(5)}
        assert not first & second

    def test_fan_out_is_capped(self, extractor, make_question):
        leaves = ["l-1", "l-2", "l-3", "l-4", "l-5", "l-6"]
        strengths = [95, 90, 85, 80, 75, 70]
        questions = [make_question("center")] + [make_question(leaf) for leaf in leaves]
        graph = GraphIndex.from_edges(
            RelationshipEdge(source_id="center", target_id=leaf, strength=strength)
            for leaf, strength in zip(leaves, strengths)
        )

        clusters = extractor.extract("javascript", questions, graph)

        assert len(clusters) == 1
        assert clusters[0].question_ids == ["center", "l-1", "l-2", "l-3"]

    def test_seed_order(self, extractor, make_question):
        questions = [make_question(qid) for qid in ("z", "b", "a", "c")]
        graph = GraphIndex.from_edges([
            RelationshipEdge(source_id="z", target_id="a", strength=80),
            RelationshipEdge(source_id="z", target_id="b", strength=80),
        ])

        assert extractor.seed_order(questions, graph) == ["z", "a", "b", "c"]

    def test_ignores_neighbors_outside_channel(self, extractor, make_question):
        questions = [make_question(f"q-{i}") for i in range(4)]
        graph = complete_graph([q.id for q in questions] + ["other-channel"], strength=90)

        clusters = extractor.extract("javascript", questions, graph)

        assert len(clusters) == 1
        assert "other-channel" not in clusters[0].question_ids

    def test_cluster_size_bounds(self, extractor, make_question):
        questions = [make_question(f"q-{i:02d}") for i in range(30)]
        graph = complete_graph([q.id for q in questions])

        clusters = extractor.extract("javascript", questions, graph)

        assert [len(c) for c in clusters] == [8, 8, 8, 6]
        assert all(4 <= len(c) <= 8 for c in clusters)
        claimed = [qid for c in clusters for qid in c.question_ids]
        assert len(claimed) == len(set(claimed))


class TestFallbackClusters:
    """Test sub-channel fallback clusters."""

    def test_no_edges_four_questions(self, extractor, make_question):
        questions = [
            make_question("q-1", sub_channel="closures", difficulty="advanced"),
            make_question("q-2", sub_channel="closures", difficulty="beginner"),
            make_question("q-3", sub_channel="closures", difficulty="intermediate"),
            make_question("q-4", sub_channel="closures", difficulty="beginner"),
        ]

        clusters = extractor.extract("javascript", questions, GraphIndex())

        assert len(clusters) == 1
        assert clusters[0].origin == ClusterOrigin.SUB_CHANNEL
        assert clusters[0].question_ids == ["q-2", "q-4", "q-3", "q-1"]

    def test_fallback_is_capped(self, extractor, make_question):
        questions = [make_question(f"q-{i}", sub_channel="hooks") for i in range(9)]

        clusters = extractor.extract("react", questions, GraphIndex())

        assert len(clusters) == 1
        assert len(clusters[0]) == 6

    def test_small_sub_channels_dropped(self, extractor, make_question):
        questions = (
            [make_question(f"a-{i}", sub_channel="a") for i in range(3)]
            + [make_question(f"b-{i}", sub_channel="b") for i in range(4)]
        )

        clusters = extractor.extract("javascript", questions, GraphIndex())

        assert [c.question_ids for c in clusters] == [["b-0", "b-1", "b-2", "b-3"]]

    def test_discarded_graph_members_reach_fallback(self, extractor, make_question):
        questions = [make_question(qid, sub_channel="scope") for qid in ("a", "b", "c", "d")]
        graph = GraphIndex.from_edges([
            RelationshipEdge(source_id="a", target_id="b", strength=80),
            RelationshipEdge(source_id="b", target_id="c", strength=80),
        ])

        clusters = extractor.extract("javascript", questions, graph)

        assert len(clusters) == 1
        assert clusters[0].origin == ClusterOrigin.SUB_CHANNEL
        assert set(clusters[0].question_ids) == {"a", "b", "c", "d"}

    def test_claimed_questions_excluded(self, extractor, make_question):
        graph_ids = [f"g-{i}" for i in range(4)]
        questions = (
            [make_question(qid, sub_channel="events") for qid in graph_ids]
            + [make_question(f"f-{i}", sub_channel="events") for i in range(4)]
        )

        clusters = extractor.extract("javascript", questions, complete_graph(graph_ids))

        assert [c.origin for c in clusters] == [ClusterOrigin.GRAPH, ClusterOrigin.SUB_CHANNEL]
        assert set(clusters[1].question_ids) == {f"f-{i}" for i in range(4)}


class TestExtract:
    """Test channel-level extraction."""

    def test_small_channel_yields_nothing(self, extractor, make_question):
        questions = [make_question(f"q-{i}", sub_channel="x") for i in range(3)]
        graph = complete_graph([q.id for q in questions])

        assert extractor.extract("javascript", questions, graph) == []

    def test_extract_all(self, extractor, make_question):
        by_channel = {
            "javascript": [make_question(f"js-{i}") for i in range(4)],
            "react": [make_question(f"r-{i}", channel="react", sub_channel="hooks") for i in range(4)],
            "css": [make_question(f"c-{i}", channel="css") for i in range(2)],
        }
        graph = complete_graph([q.id for q in by_channel["javascript"]])

        clusters = extractor.extract_all(by_channel, graph)

        assert [(c.channel, c.origin) for c in clusters] == [
            ("javascript", ClusterOrigin.GRAPH),
            ("react", ClusterOrigin.SUB_CHANNEL),
        ]

    def test_custom_bounds(self, make_question):
        extractor = ClusterExtractor(PipelineConfig(min_cluster_size=2, max_cluster_size=3))
        questions = [make_question(f"q-{i}") for i in range(6)]
        graph = complete_graph([q.id for q in questions])

        clusters = extractor.extract("javascript", questions, graph)

        assert [len(c) for c in clusters] == [3, 3]
