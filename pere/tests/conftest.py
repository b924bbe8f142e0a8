"""
Pytest configuration and shared fixtures for PERE tests.
"""

from datetime import timedelta

import pytest

from pere.network import BayesianNetwork, BayesianNode, ConditionalProbabilityTable
from pere.parameters import Parameters
from pere.types import BeliefState, Evidence, utcnow


@pytest.fixture
def params():
    """Parameters with small sampling budgets so tests stay fast."""
    p = Parameters()
    p.gibbs_iterations = 4000
    p.bootstrap_samples = 200
    p.sobol_samples = 512
    return p


@pytest.fixture
def rain_network():
    """rain -> wet with P(rain=yes)=0.2, P(wet=yes|yes)=0.9, P(wet=yes|no)=0.2."""
    network = BayesianNetwork()
    network.add_node(BayesianNode(id="rain", states=["yes", "no"],
                                  probabilities={"yes": 0.2, "no": 0.8}))
    network.add_node(BayesianNode(id="wet", states=["yes", "no"]))
    network.add_edge("rain", "wet")
    network.set_cpt("wet", ConditionalProbabilityTable.from_rows("wet", [
        ({"rain": "yes"}, {"yes": 0.9, "no": 0.1}),
        ({"rain": "no"}, {"yes": 0.2, "no": 0.8}),
    ]))
    return network


@pytest.fixture
def sprinkler_network():
    """Classic cloudy/sprinkler/rain/wet diamond."""
    network = BayesianNetwork()
    network.add_node(BayesianNode(id="cloudy", states=["t", "f"], probabilities={"t": 0.5, "f": 0.5}))
    for name in ("sprinkler", "rain", "wet"):
        network.add_node(BayesianNode(id=name, states=["t", "f"]))
    network.add_edge("cloudy", "sprinkler")
    network.add_edge("cloudy", "rain")
    network.add_edge("sprinkler", "wet")
    network.add_edge("rain", "wet")
    network.set_cpt("sprinkler", ConditionalProbabilityTable.from_rows("sprinkler", [
        ({"cloudy": "t"}, {"t": 0.1, "f": 0.9}),
        ({"cloudy": "f"}, {"t": 0.5, "f": 0.5}),
    ]))
    network.set_cpt("rain", ConditionalProbabilityTable.from_rows("rain", [
        ({"cloudy": "t"}, {"t": 0.8, "f": 0.2}),
        ({"cloudy": "f"}, {"t": 0.2, "f": 0.8}),
    ]))
    network.set_cpt("wet", ConditionalProbabilityTable.from_rows("wet", [
        ({"sprinkler": "t", "rain": "t"}, {"t": 0.99, "f": 0.01}),
        ({"sprinkler": "t", "rain": "f"}, {"t": 0.9, "f": 0.1}),
        ({"sprinkler": "f", "rain": "t"}, {"t": 0.9, "f": 0.1}),
        ({"sprinkler": "f", "rain": "f"}, {"t": 0.0, "f": 1.0}),
    ]))
    return network


@pytest.fixture
def market_evidence():
    """Mostly agreeing evidence about one topic from several sources."""
    now = utcnow()
    return [
        Evidence(content="Market outlook is positive after strong earnings report",
                 source="reuters_official", confidence=0.85, topic="market",
                 timestamp=now - timedelta(hours=3)),
        Evidence(content="Analysts expect continued growth in the market this quarter",
                 source="expert_analysis", confidence=0.75, topic="market",
                 timestamp=now - timedelta(hours=2)),
        Evidence(content="Retail investors remain optimistic about market momentum",
                 source="blog", confidence=0.7, topic="market",
                 timestamp=now - timedelta(hours=1)),
        Evidence(content="Trading volume rose steadily across major market indices",
                 source="wire", confidence=0.8, topic="market",
                 timestamp=now),
    ]


@pytest.fixture
def market_belief(market_evidence):
    mean = sum(e.confidence for e in market_evidence) / len(market_evidence)
    return BeliefState(belief=mean, uncertainty=0.2, evidence=tuple(market_evidence),
                       posterior={"true": mean, "false": 1 - mean})
