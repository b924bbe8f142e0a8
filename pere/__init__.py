"""
Probabilistic Evidence Reasoning Engine (PERE)
==============================================

Ingests statements from many sources, builds a Bayesian network over the
topics they concern and reports calibrated beliefs.

ARCHITECTURE:
    Evidence[] → BayesianNetwork.construct_from_evidence → InferenceEngine
               → EvidenceAggregator (weighted | hierarchical | pooling)
               → ConflictResolver (argumentation | negotiation | voting | hierarchical)
               → UncertaintyMetrics / EpistemicUncertainty
               → ConfidenceIntervals / SensitivityAnalysis

PUBLIC API:
- Evidence, BeliefState, AggregatedEvidence, InferenceResult: Core data types
- BayesianNetwork, InferenceEngine: Graph and posterior queries
- EvidenceAggregator, ConflictResolver, BeliefUpdater: Fusion and revision
- UncertaintyMetrics, EpistemicUncertainty, ConfidenceIntervals,
  SensitivityAnalysis: Uncertainty suite
- AggregationOptions, InferenceQuery, ResolutionStrategy, UpdatePolicy:
  Option structs
- Parameters: Named thresholds and weights
"""

# =============================================================================
# PUBLIC API
# =============================================================================

# Core types
from .types import (
    AggregatedEvidence,
    AggregationMethod,
    BeliefState,
    BeliefUpdate,
    ConfidenceInterval,
    ConflictMetrics,
    ConflictResolution,
    ConflictResolutionMethod,
    ConflictType,
    Evidence,
    InferenceMethod,
    InferenceResult,
    ResolutionMethod,
    UncertaintyMeasures,
)

# Configuration
from .options import AggregationOptions, InferenceQuery, ResolutionStrategy, UpdatePolicy
from .parameters import DEFAULT_PARAMETERS, ParameterChange, Parameters

# Errors
from .errors import (
    CyclicEdgeError,
    InsufficientSourcesError,
    InvalidEdge,
    InvalidQuery,
    PereError,
    UnknownNodeError,
    UnknownSourceError,
)

# Graph and inference
from .network import BayesianNetwork, BayesianNode, ConditionalProbabilityTable, extract_candidates
from .inference import InferenceEngine

# Fusion and revision
from .aggregation import EvidenceAggregator, EvidenceSource
from .conflict import ConflictDetector, ConflictResolver
from .updating import BeliefUpdater

# Uncertainty
from .uncertainty import (
    ConfidenceIntervals,
    EpistemicUncertainty,
    SensitivityAnalysis,
    UncertaintyMetrics,
)

__version__ = "0.1.0"

__all__ = [
    # Types
    'AggregatedEvidence',
    'AggregationMethod',
    'BeliefState',
    'BeliefUpdate',
    'ConfidenceInterval',
    'ConflictMetrics',
    'ConflictResolution',
    'ConflictResolutionMethod',
    'ConflictType',
    'Evidence',
    'InferenceMethod',
    'InferenceResult',
    'ResolutionMethod',
    'UncertaintyMeasures',
    # Configuration
    'AggregationOptions',
    'InferenceQuery',
    'ResolutionStrategy',
    'UpdatePolicy',
    'DEFAULT_PARAMETERS',
    'ParameterChange',
    'Parameters',
    # Errors
    'CyclicEdgeError',
    'InsufficientSourcesError',
    'InvalidEdge',
    'InvalidQuery',
    'PereError',
    'UnknownNodeError',
    'UnknownSourceError',
    # Graph and inference
    'BayesianNetwork',
    'BayesianNode',
    'ConditionalProbabilityTable',
    'extract_candidates',
    'InferenceEngine',
    # Fusion and revision
    'EvidenceAggregator',
    'EvidenceSource',
    'ConflictDetector',
    'ConflictResolver',
    'BeliefUpdater',
    # Uncertainty
    'ConfidenceIntervals',
    'EpistemicUncertainty',
    'SensitivityAnalysis',
    'UncertaintyMetrics',
]
