"""
Multi-source evidence aggregation and Dempster-Shafer combination.
"""

from .aggregator import (
    EvidenceAggregator,
    EvidenceSource,
    SourceLevel,
    blend_belief_states,
    combine_belief_states,
    has_opposite_claims,
)
from .dempster_shafer import (
    MassFunction,
    averaging_belief,
    combine_evidence,
    dempster_shafer_belief,
    max_confidence_belief,
)

__all__ = [
    'EvidenceAggregator',
    'EvidenceSource',
    'SourceLevel',
    'blend_belief_states',
    'combine_belief_states',
    'has_opposite_claims',
    'MassFunction',
    'averaging_belief',
    'combine_evidence',
    'dempster_shafer_belief',
    'max_confidence_belief',
]
