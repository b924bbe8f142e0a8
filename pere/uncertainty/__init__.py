"""
Uncertainty quantification: measures, epistemic decomposition, intervals
and sensitivity.
"""

from .epistemic import (
    DeepUncertainty,
    EpistemicComponents,
    EpistemicDecomposition,
    EpistemicUncertainty,
    InformationMeasures,
    KnowledgeGaps,
    ModelUncertainty,
    PropagatedUncertainty,
    ReducibleUncertainty,
    Scenario,
    UncertaintyBounds,
)
from .intervals import (
    BandPoint,
    ConfidenceIntervals,
    PredictionInterval,
    ToleranceInterval,
    beta_quantile,
    z_score,
)
from .metrics import (
    UncertaintyDecomposition,
    UncertaintyMetrics,
    belief_entropy,
    binary_entropy,
    shannon_entropy,
)
from .sensitivity import (
    EvidenceSensitivity,
    GlobalSensitivity,
    MorrisEffects,
    NodeSensitivity,
    RobustnessAnalysis,
    SensitivityAnalysis,
    SensitivityResult,
)

__all__ = [
    # Epistemic
    'DeepUncertainty',
    'EpistemicComponents',
    'EpistemicDecomposition',
    'EpistemicUncertainty',
    'InformationMeasures',
    'KnowledgeGaps',
    'ModelUncertainty',
    'PropagatedUncertainty',
    'ReducibleUncertainty',
    'Scenario',
    'UncertaintyBounds',
    # Intervals
    'BandPoint',
    'ConfidenceIntervals',
    'PredictionInterval',
    'ToleranceInterval',
    'beta_quantile',
    'z_score',
    # Metrics
    'UncertaintyDecomposition',
    'UncertaintyMetrics',
    'belief_entropy',
    'binary_entropy',
    'shannon_entropy',
    # Sensitivity
    'EvidenceSensitivity',
    'GlobalSensitivity',
    'MorrisEffects',
    'NodeSensitivity',
    'RobustnessAnalysis',
    'SensitivityAnalysis',
    'SensitivityResult',
]
