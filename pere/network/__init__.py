"""
Bayesian network structure and heuristic construction from evidence.
"""

from .bayesian_network import (
    BayesianNode,
    BayesianNetwork,
    ConditionalProbabilityTable,
    SOURCE_STATES,
    TOPIC_STATES,
)
from .extraction import (
    CandidateExtractor,
    HeuristicExtractor,
    extract_candidates,
)

__all__ = [
    'BayesianNode',
    'BayesianNetwork',
    'ConditionalProbabilityTable',
    'SOURCE_STATES',
    'TOPIC_STATES',
    'CandidateExtractor',
    'HeuristicExtractor',
    'extract_candidates',
]
