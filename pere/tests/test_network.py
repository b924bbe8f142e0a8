"""
Tests for BayesianNetwork structure, CPTs and construction from evidence.

These tests verify:
- The DAG invariant survives any sequence of accepted edits
- Rejected edits leave the network unchanged
- CPT rows are distributions and missing rows fall back to the prior
- Heuristic construction creates topic/source nodes and co-occurrence edges
"""

import itertools

import pytest

from pere.errors import CyclicEdgeError, InvalidEdge, UnknownNodeError
from pere.network import (
    BayesianNetwork,
    BayesianNode,
    ConditionalProbabilityTable,
    HeuristicExtractor,
    extract_candidates,
)
from pere.types import Evidence


# =============================================================================
# NODES
# =============================================================================

class TestBayesianNode:

    def test_default_prior_is_uniform(self):
        node = BayesianNode(id="x", states=["a", "b", "c", "d"])
        assert node.probabilities == {"a": 0.25, "b": 0.25, "c": 0.25, "d": 0.25}
        assert node.name == "x"
        assert node.cardinality == 4

    def test_prior_is_normalized(self):
        node = BayesianNode(id="x", states=["a", "b"], probabilities={"a": 2, "b": 6})
        assert node.probabilities["a"] == pytest.approx(0.25)
        assert node.probabilities["b"] == pytest.approx(0.75)

    def test_needs_states(self):
        with pytest.raises(ValueError):
            BayesianNode(id="x", states=[])

    def test_rejects_duplicate_states(self):
        with pytest.raises(ValueError):
            BayesianNode(id="x", states=["a", "a"])

    def test_rejects_unknown_state_probability(self):
        with pytest.raises(ValueError):
            BayesianNode(id="x", states=["a", "b"], probabilities={"c": 1.0})


# =============================================================================
# STRUCTURE
# =============================================================================

class TestStructure:

    def test_edge_to_missing_node_is_invalid(self):
        network = BayesianNetwork()
        network.add_node(BayesianNode(id="a", states=["t", "f"]))

        with pytest.raises(InvalidEdge):
            network.add_edge("a", "missing")
        with pytest.raises(InvalidEdge):
            network.add_edge("missing", "a")
        assert network.edge_count == 0

    def test_self_loop_is_invalid(self):
        network = BayesianNetwork()
        network.add_node(BayesianNode(id="a", states=["t", "f"]))
        with pytest.raises(InvalidEdge):
            network.add_edge("a", "a")

    def test_cycle_is_rejected_and_network_unchanged(self):
        network = BayesianNetwork()
        for name in "abc":
            network.add_node(BayesianNode(id=name, states=["t", "f"]))
        network.add_edge("a", "b")
        network.add_edge("b", "c")
        revision = network.revision
        order = network.topological_order

        with pytest.raises(CyclicEdgeError):
            network.add_edge("c", "a")

        assert not network.has_edge("c", "a")
        assert network.children("c") == []
        assert network.parents("a") == []
        assert network.revision == revision
        assert network.topological_order == order
        assert not network.has_cycles()

    def test_cyclic_edge_error_is_invalid_edge(self):
        assert issubclass(CyclicEdgeError, InvalidEdge)

    def test_duplicate_edge_returns_false(self):
        network = BayesianNetwork()
        network.add_node(BayesianNode(id="a", states=["t", "f"]))
        network.add_node(BayesianNode(id="b", states=["t", "f"]))
        assert network.add_edge("a", "b") is True
        assert network.add_edge("a", "b") is False
        assert network.edge_count == 1

    def test_never_cyclic_after_accepted_edits(self):
        """Try every ordered pair; whatever is accepted keeps the graph acyclic."""
        network = BayesianNetwork()
        names = ["n0", "n1", "n2", "n3", "n4"]
        for name in names:
            network.add_node(BayesianNode(id=name, states=["t", "f"]))

        pairs = list(itertools.permutations(names, 2))
        pairs = pairs[::2] + pairs[1::2]
        for parent, child in pairs:
            try:
                network.add_edge(parent, child)
            except CyclicEdgeError:
                pass
            assert not network.has_cycles()

        assert network.edge_count > 0
        position = {n: i for i, n in enumerate(network.topological_order)}
        for parent in names:
            for child in network.children(parent):
                assert position[parent] < position[child]

    def test_topological_order_parents_first(self, sprinkler_network):
        order = sprinkler_network.topological_order
        assert order[0] == "cloudy"
        assert order[-1] == "wet"
        assert set(order) == {"cloudy", "sprinkler", "rain", "wet"}

    def test_markov_blanket(self, sprinkler_network):
        assert sprinkler_network.markov_blanket("sprinkler") == {"cloudy", "wet", "rain"}
        assert sprinkler_network.markov_blanket("cloudy") == {"sprinkler", "rain"}

    def test_ancestors(self, sprinkler_network):
        assert sprinkler_network.ancestors(["rain"]) == {"rain", "cloudy"}
        assert sprinkler_network.ancestors(["wet"]) == {"wet", "rain", "sprinkler", "cloudy"}

    def test_statistics(self, sprinkler_network):
        stats = sprinkler_network.get_statistics()
        assert stats["node_count"] == 4
        assert stats["edge_count"] == 4
        assert stats["max_depth"] == 3
        assert stats["cpt_count"] == 3
        assert stats["avg_connectivity"] == pytest.approx(2.0)

    def test_replacing_node_keeps_edges(self, rain_network):
        rain_network.add_node(BayesianNode(id="rain", states=["yes", "no"],
                                           probabilities={"yes": 0.5, "no": 0.5}))
        assert rain_network.children("rain") == ["wet"]
        assert rain_network.get_node("rain").probabilities["yes"] == pytest.approx(0.5)

    def test_copy_is_independent(self, rain_network):
        clone = rain_network.copy()
        clone.add_node(BayesianNode(id="extra", states=["t", "f"]))
        clone.set_evidence("wet", "yes")

        assert "extra" not in rain_network
        assert rain_network.evidence == {}
        assert clone.evidence == {"wet": "yes"}


# =============================================================================
# CPTs AND EVIDENCE
# =============================================================================

class TestConditionalProbabilities:

    def test_rows_sum_to_one_for_every_assignment(self, sprinkler_network):
        for node_id in sprinkler_network.topological_order:
            if sprinkler_network.get_cpt(node_id) is None:
                continue
            parents = sprinkler_network.parents(node_id)
            parent_states = [sprinkler_network.node(p).states for p in parents]
            for combo in itertools.product(*parent_states):
                assignment = dict(zip(parents, combo))
                total = sum(
                    sprinkler_network.get_conditional_probability(node_id, s, assignment)
                    for s in sprinkler_network.node(node_id).states
                )
                assert total == pytest.approx(1.0)

    def test_rows_are_normalized_on_set(self):
        network = BayesianNetwork()
        network.add_node(BayesianNode(id="a", states=["t", "f"]))
        network.add_node(BayesianNode(id="b", states=["t", "f"]))
        network.add_edge("a", "b")
        network.set_cpt("b", ConditionalProbabilityTable.from_rows("b", [
            ({"a": "t"}, {"t": 3, "f": 1}),
        ]))
        assert network.get_conditional_probability("b", "t", {"a": "t"}) == pytest.approx(0.75)

    def test_missing_row_falls_back_to_prior(self):
        network = BayesianNetwork()
        network.add_node(BayesianNode(id="a", states=["t", "f"]))
        network.add_node(BayesianNode(id="b", states=["t", "f"], probabilities={"t": 0.3, "f": 0.7}))
        network.add_edge("a", "b")
        network.set_cpt("b", ConditionalProbabilityTable.from_rows("b", [
            ({"a": "t"}, {"t": 0.9, "f": 0.1}),
        ]))
        assert network.get_conditional_probability("b", "t", {"a": "t"}) == pytest.approx(0.9)
        assert network.get_conditional_probability("b", "t", {"a": "f"}) == pytest.approx(0.3)

    def test_condition_key_is_order_independent(self):
        key1 = ConditionalProbabilityTable.condition_key({"b": "x", "a": "y"})
        key2 = ConditionalProbabilityTable.condition_key({"a": "y", "b": "x"})
        assert key1 == key2 == "a:y|b:x"

    def test_cpt_for_unknown_node(self):
        network = BayesianNetwork()
        with pytest.raises(UnknownNodeError):
            network.set_cpt("ghost", ConditionalProbabilityTable(node_id="ghost"))

    def test_cpt_with_unknown_state(self, rain_network):
        with pytest.raises(ValueError):
            rain_network.set_cpt("wet", ConditionalProbabilityTable.from_rows("wet", [
                ({"rain": "yes"}, {"maybe": 1.0}),
            ]))

    def test_set_cpt_bumps_revision(self, rain_network):
        before = rain_network.revision
        rain_network.set_cpt("wet", rain_network.get_cpt("wet"))
        assert rain_network.revision > before

    def test_evidence_validation(self, rain_network):
        rain_network.set_evidence("wet", "yes")
        assert rain_network.evidence == {"wet": "yes"}

        with pytest.raises(ValueError):
            rain_network.set_evidence("wet", "soaked")
        with pytest.raises(UnknownNodeError):
            rain_network.set_evidence("ghost", "yes")

        rain_network.clear_evidence()
        assert rain_network.evidence == {}


# =============================================================================
# CONSTRUCTION FROM EVIDENCE
# =============================================================================

class TestConstructFromEvidence:

    def test_topic_and_source_nodes(self):
        network = BayesianNetwork()
        summary = network.construct_from_evidence([
            Evidence(content="x", source="s1", confidence=0.8, topic="alpha"),
            Evidence(content="y", source="s1", confidence=0.6, topic="beta"),
        ])

        assert set(network.nodes) == {"alpha", "beta", "s1"}
        assert network.node("alpha").states == ["true", "false"]
        assert network.node("s1").states == ["reliable", "unreliable"]
        assert network.node("s1").probabilities["reliable"] == pytest.approx(0.7)
        assert network.has_edge("alpha", "beta")
        assert summary == {"nodes_added": 3, "edges_added": 1, "edges_skipped": 0}

    def test_topics_from_different_sources_are_not_linked(self):
        network = BayesianNetwork()
        network.construct_from_evidence([
            Evidence(content="x", source="s1", confidence=0.8, topic="alpha"),
            Evidence(content="y", source="s2", confidence=0.6, topic="beta"),
        ])
        assert network.edge_count == 0

    def test_construction_never_creates_cycles(self, market_evidence):
        network = BayesianNetwork()
        network.construct_from_evidence(market_evidence)
        network.construct_from_evidence(list(reversed(market_evidence)))
        assert not network.has_cycles()
        assert "market" in network

    def test_existing_edges_are_respected(self):
        network = BayesianNetwork()
        network.add_node(BayesianNode(id="alpha", states=["true", "false"]))
        network.add_node(BayesianNode(id="beta", states=["true", "false"]))
        network.add_edge("beta", "alpha")

        summary = network.construct_from_evidence([
            Evidence(content="x", source="s1", confidence=0.8, topic="alpha"),
            Evidence(content="y", source="s1", confidence=0.6, topic="beta"),
        ])
        assert summary["edges_skipped"] == 1
        assert not network.has_edge("alpha", "beta")
        assert not network.has_cycles()

    def test_custom_extractor(self):
        class FixedExtractor:
            def extract_candidates(self, text):
                return ["fixed_entity"]

        network = BayesianNetwork(extractor=FixedExtractor())
        network.construct_from_evidence([
            Evidence(content="anything at all", source="s1", confidence=0.5),
        ])
        assert set(network.nodes) == {"fixed_entity", "s1"}


class TestExtraction:

    def test_capitalized_and_quoted(self):
        candidates = extract_candidates('The "quantum leap" by Tesla shows promise')
        assert "tesla" in candidates
        assert "quantum leap" in candidates
        assert "the" not in candidates

    def test_frequent_and_long_words(self):
        candidates = extract_candidates("earnings beat earnings forecasts; semiconductor demand")
        assert "earnings" in candidates
        assert "semiconductor" in candidates

    def test_short_candidates_are_dropped(self):
        assert extract_candidates("ab cd") == []

    def test_topic_candidates_split(self):
        extractor = HeuristicExtractor()
        assert extractor.topic_candidates("interest_rates") == ["interest_rates", "interest", "rates"]
        assert extractor.topic_candidates(None) == []
