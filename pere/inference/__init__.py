"""
Posterior inference over Bayesian networks.
"""

from .engine import InferenceEngine, posterior_confidence
from .factors import Factor, eliminate, elimination_order, multiply_all

__all__ = [
    'InferenceEngine',
    'posterior_confidence',
    'Factor',
    'eliminate',
    'elimination_order',
    'multiply_all',
]
