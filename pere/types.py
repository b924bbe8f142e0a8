"""
Core Types for Evidence Reasoning
=================================

This module contains pure data structures with no algorithms.
All computation is in separate modules.

Flow:
  Evidence          Immutable statement from a source
  BeliefState       Snapshot of belief about one topic
  ConflictMetrics   Detected disagreement between sources
  AggregatedEvidence  Per-topic beliefs for a batch of evidence
  InferenceResult   Posterior over one network node
"""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


def age_days(timestamp: Optional[datetime], now: Optional[datetime] = None) -> float:
    """Age of a timestamp in days. Naive timestamps are taken as UTC."""
    if timestamp is None:
        return 0.0
    now = now or utcnow()
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return max(0.0, (now - timestamp).total_seconds() / 86400.0)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp into [low, high]; NaN maps to the midpoint."""
    if value != value:
        return (low + high) / 2
    return max(low, min(high, value))


def normalize(distribution: Mapping[str, float]) -> Dict[str, float]:
    """
    Renormalize a distribution, clamping negatives to zero.

    Falls back to uniform when the total mass is zero.
    """
    cleaned = {k: max(0.0, float(v)) if v == v else 0.0 for k, v in distribution.items()}
    total = sum(cleaned.values())
    if not cleaned:
        return {}
    if total <= 0 or math.isinf(total):
        uniform = 1.0 / len(cleaned)
        return {k: uniform for k in cleaned}
    return {k: v / total for k, v in cleaned.items()}


# =============================================================================
# ENUMS
# =============================================================================

class ConflictType(Enum):
    """Kinds of disagreement between evidence items."""
    CONTRADICTION = "contradiction"     # Directly opposing claims
    INCONSISTENCY = "inconsistency"     # Logically incompatible propositions
    UNCERTAINTY = "uncertainty"         # Weak or divergent confidence
    AMBIGUITY = "ambiguity"             # Vague or underspecified content


class InferenceMethod(Enum):
    EXACT = "exact"
    SAMPLING = "sampling"
    VARIATIONAL = "variational"


class AggregationMethod(Enum):
    WEIGHTED = "weighted"
    HIERARCHICAL = "hierarchical"
    POOLING = "pooling"


class ConflictResolutionMethod(Enum):
    """How the aggregator re-resolves conflicting subsets."""
    DEMPSTER_SHAFER = "dempster-shafer"
    AVERAGING = "averaging"
    MAX_CONFIDENCE = "max-confidence"


class ResolutionMethod(Enum):
    """Strategies available to the conflict resolver."""
    ARGUMENTATION = "argumentation"
    NEGOTIATION = "negotiation"
    VOTING = "voting"
    HIERARCHICAL = "hierarchical"


class SourceTier(Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    TERTIARY = "tertiary"


# =============================================================================
# L0: EVIDENCE
# =============================================================================

@dataclass(frozen=True, eq=False)
class Evidence:
    """
    Immutable statement from a source.

    Evidence is compared by identity: two records with the same content from
    the same source are still distinct observations. Use with_confidence() to
    probe a hypothetical confidence without touching the original.
    """
    content: str
    source: str
    confidence: float
    topic: Optional[str] = None
    timestamp: Optional[datetime] = None
    sentiment: Optional[float] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be in [0, 1], got {self.confidence}")
        if self.sentiment is not None and not -1.0 <= self.sentiment <= 1.0:
            raise ValueError(f"sentiment must be in [-1, 1], got {self.sentiment}")
        # Naive timestamps are taken as UTC so mixed inputs stay comparable
        if self.timestamp is not None and self.timestamp.tzinfo is None:
            object.__setattr__(self, 'timestamp', self.timestamp.replace(tzinfo=timezone.utc))

    def with_confidence(self, confidence: float) -> "Evidence":
        """Perturbed copy with a different confidence (clamped)."""
        return replace(self, confidence=clamp(confidence))


# =============================================================================
# BELIEFS
# =============================================================================

@dataclass(frozen=True)
class BeliefState:
    """
    Belief about one topic at a point in time.

    Snapshots are immutable; updates produce a new BeliefState. The evidence
    tuple is shared with whoever produced it, not owned.
    """
    belief: float
    uncertainty: float
    evidence: Tuple[Evidence, ...] = ()
    posterior: Optional[Dict[str, float]] = None
    last_updated: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        object.__setattr__(self, 'belief', clamp(self.belief))
        object.__setattr__(self, 'uncertainty', max(0.0, self.uncertainty))
        if not isinstance(self.evidence, tuple):
            object.__setattr__(self, 'evidence', tuple(self.evidence))

    @classmethod
    def neutral(cls, evidence: Tuple[Evidence, ...] = ()) -> "BeliefState":
        """Maximally uncertain belief used when there is nothing to go on."""
        return cls(belief=0.5, uncertainty=1.0, evidence=evidence,
                   posterior={'true': 0.5, 'false': 0.5})

    @property
    def evidence_count(self) -> int:
        return len(self.evidence)


# =============================================================================
# CONFLICTS
# =============================================================================

@dataclass
class ConflictResolution:
    """Outcome of resolving one conflict."""
    method: str
    confidence: float
    explanation: str
    resolved_evidence: Optional[Evidence] = None
    supporting_evidence: List[Evidence] = field(default_factory=list)
    compromise: Optional[float] = None
    votes: Optional[Dict[str, float]] = None
    hierarchy: Optional[Dict[str, List[str]]] = None


@dataclass
class ConflictMetrics:
    """
    A detected conflict between two or more evidence items.

    `resolution` stays None until the conflict is resolved.
    """
    severity: float
    type: ConflictType
    sources: List[str]
    evidence: List[Evidence] = field(default_factory=list)
    description: str = ""
    resolution: Optional[ConflictResolution] = None

    @property
    def resolved(self) -> bool:
        return self.resolution is not None


# =============================================================================
# AGGREGATION
# =============================================================================

@dataclass
class AggregatedEvidence:
    """Per-topic beliefs produced by one aggregation run."""
    belief_states: Dict[str, BeliefState]
    confidence: float
    method: str
    uncertainty: Optional[Dict[str, float]] = None
    conflicts: Optional[Dict[str, List[Evidence]]] = None
    hierarchy: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=utcnow)
    processing_time_ms: float = 0.0
    source_count: int = 0

    @property
    def topics(self) -> List[str]:
        return list(self.belief_states.keys())


# =============================================================================
# INFERENCE
# =============================================================================

@dataclass(frozen=True)
class InferenceResult:
    """Posterior distribution over one node's states."""
    node_id: str
    posterior: Mapping[str, float]
    confidence: float
    method: str
    samples: Optional[int] = None
    converged: Optional[bool] = None
    iterations: Optional[int] = None

    def __post_init__(self):
        # results are cached and shared, so the posterior is a read-only view
        object.__setattr__(self, 'posterior', MappingProxyType(dict(self.posterior)))

    def most_likely(self) -> str:
        return max(self.posterior.items(), key=lambda kv: kv[1])[0]


# =============================================================================
# UNCERTAINTY
# =============================================================================

@dataclass
class UncertaintyMeasures:
    """Component uncertainties plus their weighted combination."""
    total: float
    aleatoric: float
    epistemic: float
    entropy: float
    variance: float
    credibility: float
    conflict: float

    def to_dict(self) -> Dict[str, float]:
        return {
            'total': self.total,
            'aleatoric': self.aleatoric,
            'epistemic': self.epistemic,
            'entropy': self.entropy,
            'variance': self.variance,
            'credibility': self.credibility,
            'conflict': self.conflict,
        }


@dataclass(frozen=True)
class ConfidenceInterval:
    """Interval estimate with its nominal coverage."""
    lower: float
    upper: float
    confidence: float
    method: str
    point: Optional[float] = None

    @property
    def width(self) -> float:
        return self.upper - self.lower

    def contains(self, value: float) -> bool:
        return self.lower <= value <= self.upper


# =============================================================================
# BELIEF UPDATES
# =============================================================================

@dataclass(frozen=True)
class BeliefUpdate:
    """Record of one belief revision."""
    topic: str
    prior: BeliefState
    posterior: BeliefState
    evidence: Evidence
    policy: str
    change: float
    confidence: float = 0.0
    timestamp: datetime = field(default_factory=utcnow)
