"""
Uncertainty Metrics
===================

Six component uncertainties for a belief and its evidence, plus their
weighted combination:

    aleatoric    irreducible spread: multimodality, noise, temporal churn
    epistemic    reducible gaps: sparsity, coverage, posterior spread
    entropy      normalized Shannon entropy of the posterior (or belief)
    variance     std of confidences, quality-weighted
    credibility  1 - mean per-source trust
    conflict     mean pairwise disagreement

All components are in [0, 1]; the total is clamped to [0, 1].
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np
from scipy.signal import find_peaks

from ..parameters import Parameters
from ..types import BeliefState, Evidence, UncertaintyMeasures, age_days, clamp


logger = logging.getLogger(__name__)

EPSILON = 1e-10

TRUSTED_SOURCE_MARKERS = ('official', 'verified', 'expert', 'primary')
UNTRUSTED_SOURCE_MARKERS = ('anonymous', 'unverified', 'rumor')


@dataclass
class UncertaintyDecomposition:
    """Data / model / prediction split with the scores behind each part."""
    data: float
    model: float
    prediction: float
    components: Dict[str, float] = field(default_factory=dict)


# =============================================================================
# SHARED HELPERS
# =============================================================================

def shannon_entropy(distribution: Dict[str, float], normalized: bool = True) -> float:
    probs = [p for p in distribution.values() if p > EPSILON]
    entropy = -sum(p * math.log2(p) for p in probs)
    if not normalized:
        return entropy
    max_entropy = math.log2(len(distribution)) if len(distribution) > 1 else 0.0
    return entropy / max_entropy if max_entropy > 0 else 0.0


def binary_entropy(p: float) -> float:
    if p <= 0 or p >= 1:
        return 0.0
    return -p * math.log2(p) - (1 - p) * math.log2(1 - p)


def belief_entropy(belief: BeliefState, normalized: bool = True) -> float:
    """Entropy of the posterior, or the binary entropy of the point belief."""
    if belief.posterior:
        return shannon_entropy(belief.posterior, normalized)
    return binary_entropy(belief.belief)


def coefficient_of_variation(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    mean = float(np.mean(values))
    return float(np.std(values)) / mean if mean > 0 else 0.0


def evidence_quality(evidence: Evidence) -> float:
    """
    Confidence adjusted by metadata and age.

    `verified` scales by 1.2 (or 0.8 when false); `sample_size` by up to
    1.5; age decays over a year.
    """
    quality = evidence.confidence
    metadata = evidence.metadata or {}
    if 'verified' in metadata:
        quality *= 1.2 if metadata['verified'] else 0.8
    sample_size = metadata.get('sample_size')
    if sample_size is not None and sample_size > 0:
        quality *= min(1.5, 1 + math.log10(sample_size) / 10)
    if evidence.timestamp is not None:
        quality *= math.exp(-age_days(evidence.timestamp) / 365)
    return min(1.0, quality)


def source_credibility(evidence: Evidence) -> float:
    credibility = evidence.confidence
    source = evidence.source.lower()
    for marker in TRUSTED_SOURCE_MARKERS:
        if marker in source:
            credibility *= 1.2
    for marker in UNTRUSTED_SOURCE_MARKERS:
        if marker in source:
            credibility *= 0.7
    return clamp(credibility)


def pairwise_conflict(a: Evidence, b: Evidence) -> float:
    """Confidence gap, sentiment gap and topic mismatch, blended."""
    confidence_gap = abs(a.confidence - b.confidence)
    sentiment_gap = 0.0
    if a.sentiment is not None and b.sentiment is not None:
        sentiment_gap = abs(a.sentiment - b.sentiment) / 2
    topic_mismatch = 0.3 if a.topic and b.topic and a.topic != b.topic else 0.0
    return min(1.0, confidence_gap * 0.5 + sentiment_gap * 0.3 + topic_mismatch * 0.2)


def autocorrelation(values: Sequence[float], lag: int = 1) -> float:
    x = np.asarray(values, dtype=float)
    if len(x) <= lag:
        return 0.0
    centered = x - x.mean()
    denominator = float(np.sum(centered ** 2))
    if denominator <= 0:
        return 0.0
    return float(np.sum(centered[:-lag] * centered[lag:])) / denominator


# =============================================================================
# METRICS
# =============================================================================

class UncertaintyMetrics:
    """
    Component uncertainties for a belief.

    `evidence` defaults to the evidence carried by the belief.
    """

    def __init__(self, params: Parameters = None):
        self.params = params or Parameters()

    def compute_uncertainty(
        self,
        belief: BeliefState,
        evidence: Optional[Sequence[Evidence]] = None,
    ) -> UncertaintyMeasures:
        items = list(evidence) if evidence is not None else list(belief.evidence)

        aleatoric = self.aleatoric(items)
        epistemic = self.epistemic(belief, items)
        entropy = belief_entropy(belief)
        variance = self.variance(belief, items)
        credibility = self.credibility(items)
        conflict = self.conflict(items)

        total = self.combine(aleatoric, epistemic, entropy, variance, credibility, conflict)
        logger.debug("Uncertainty over %d evidence: total=%.3f aleatoric=%.3f epistemic=%.3f",
                     len(items), total, aleatoric, epistemic)
        return UncertaintyMeasures(
            total=total,
            aleatoric=aleatoric,
            epistemic=epistemic,
            entropy=entropy,
            variance=variance,
            credibility=credibility,
            conflict=conflict,
        )

    def combine(
        self,
        aleatoric: float,
        epistemic: float,
        entropy: float,
        variance: float,
        credibility: float,
        conflict: float,
    ) -> float:
        """Fixed-weight sum plus two interaction bonuses, clamped to [0, 1]."""
        p = self.params
        components = (aleatoric, epistemic, entropy, variance, credibility, conflict)
        total = sum(w * c for w, c in zip(p.uncertainty_weights, components))
        # unreliable sources that also disagree
        if conflict > p.conflict_bonus_threshold and credibility > p.conflict_bonus_threshold:
            total += p.conflict_credibility_bonus
        if epistemic > p.epistemic_aleatoric_threshold and aleatoric > p.epistemic_aleatoric_threshold:
            total += p.epistemic_aleatoric_bonus
        return clamp(total)

    # -------------------------------------------------------------------------
    # Components
    # -------------------------------------------------------------------------

    def aleatoric(self, evidence: Sequence[Evidence]) -> float:
        if not evidence:
            return 0.5
        confidences = [e.confidence for e in evidence]
        value = 0.0
        modes = self.count_modes(confidences)
        if modes > 1:
            value += 0.3 * (modes - 1) / modes
        value += self.noise(confidences) * 0.5
        if all(e.timestamp is not None for e in evidence):
            value += self.temporal_variability(evidence) * 0.2
        return min(1.0, value)

    def epistemic(self, belief: BeliefState, evidence: Sequence[Evidence]) -> float:
        value = self.sparsity(len(evidence)) * 0.4
        value += (1 - self.coverage(evidence)) * 0.3
        if belief.posterior:
            value += self.posterior_spread(belief.posterior) * 0.3
        return min(1.0, value)

    def variance(self, belief: BeliefState, evidence: Sequence[Evidence]) -> float:
        if len(evidence) < 2:
            return min(1.0, belief.uncertainty)
        confidences = np.array([e.confidence for e in evidence])
        weights = np.array([evidence_quality(e) for e in evidence])
        plain = float(confidences.var())
        weighted = 0.0
        if weights.sum() > 0:
            mean = float(np.average(confidences, weights=weights))
            weighted = float(np.average((confidences - mean) ** 2, weights=weights))
        return math.sqrt(max(plain, weighted))

    def credibility(self, evidence: Sequence[Evidence]) -> float:
        if not evidence:
            return 1.0
        per_source: Dict[str, List[float]] = {}
        for e in evidence:
            per_source.setdefault(e.source, []).append(source_credibility(e))
        average = sum(sum(v) / len(v) for v in per_source.values()) / len(per_source)
        return 1 - average

    def conflict(self, evidence: Sequence[Evidence]) -> float:
        if len(evidence) < 2:
            return 0.0
        scores = [
            pairwise_conflict(evidence[i], evidence[j])
            for i in range(len(evidence))
            for j in range(i + 1, len(evidence))
        ]
        return sum(scores) / len(scores)

    # -------------------------------------------------------------------------
    # Building blocks
    # -------------------------------------------------------------------------

    @staticmethod
    def sparsity(count: int) -> float:
        """exp(-n / 10): 1 with no evidence, decaying as evidence accumulates."""
        return math.exp(-count / 10)

    def count_modes(self, values: Sequence[float]) -> int:
        """Peaks of a Gaussian KDE evaluated on a grid around [0, 1]."""
        if len(values) < 3:
            return 1
        bandwidth = self.params.kde_bandwidth
        grid = np.linspace(-0.5, 1.5, 401)
        x = np.asarray(values, dtype=float)
        density = np.exp(-((grid[:, None] - x[None, :]) ** 2) / (2 * bandwidth ** 2)).sum(axis=1)
        peaks, _ = find_peaks(density)
        return max(1, len(peaks))

    @staticmethod
    def noise(values: Sequence[float]) -> float:
        """MAD of successive differences, scaled to a std estimate."""
        if len(values) < 3:
            return 0.1
        diffs = np.abs(np.diff(np.asarray(values, dtype=float)))
        mad = float(np.median(np.abs(diffs - np.median(diffs))))
        return min(1.0, mad * 1.4826)

    @staticmethod
    def temporal_variability(evidence: Sequence[Evidence]) -> float:
        """1 - |lag-1 autocorrelation| of confidences in time order."""
        timed = sorted((e for e in evidence if e.timestamp is not None), key=lambda e: e.timestamp)
        if len(timed) < 2:
            return 0.0
        return 1 - abs(autocorrelation([e.confidence for e in timed], 1))

    @staticmethod
    def coverage(evidence: Sequence[Evidence]) -> float:
        """Mean of topic coverage (10 topics), source diversity (5 sources), temporal coverage."""
        if not evidence:
            return 0.0
        topics = {e.topic or 'unknown' for e in evidence}
        sources = {e.source for e in evidence}
        topic_coverage = min(1.0, len(topics) / 10)
        source_diversity = min(1.0, len(sources) / 5)

        temporal = 0.0
        if all(e.timestamp is not None for e in evidence) and len(evidence) >= 2:
            stamps = sorted(e.timestamp.timestamp() for e in evidence)
            gaps = np.diff(stamps)
            mean_interval = (stamps[-1] - stamps[0]) / (len(stamps) - 1)
            long_gaps = int(np.sum(gaps > mean_interval * 2))
            temporal = 1.0 / (1 + long_gaps)
        return (topic_coverage + source_diversity + temporal) / 3

    @staticmethod
    def posterior_spread(posterior: Dict[str, float]) -> float:
        """1 - Gini coefficient of the posterior: 1 when flat, 0 when concentrated."""
        values = np.sort(np.asarray(list(posterior.values()), dtype=float))
        n = len(values)
        total = float(values.sum())
        if n == 0 or total <= 0:
            return 1.0
        ranks = 2 * np.arange(1, n + 1) - n - 1
        gini = float(np.sum(ranks * values)) / (n * total)
        return 1 - abs(gini)

    # =========================================================================
    # Decomposition
    # =========================================================================

    def decompose_uncertainty(
        self,
        belief: BeliefState,
        evidence: Sequence[Evidence],
    ) -> UncertaintyDecomposition:
        """
        Split into data, model and prediction uncertainty.

        The components map reports the underlying scores (quality,
        completeness, consistency, fit, stability are "higher is better").
        """
        items = list(evidence)
        quality = sum(evidence_quality(e) for e in items) / len(items) if items else 0.0
        completeness = self._completeness(items)
        consistency = math.exp(-coefficient_of_variation([e.confidence for e in items])) \
            if len(items) >= 2 else 1.0
        data = ((1 - quality) + (1 - completeness) + (1 - consistency)) / 3

        model_confidence = 1 - belief.uncertainty
        complexity = math.log2(len(belief.posterior)) / 10 if belief.posterior else 0.0
        fit = self._model_fit(belief)
        model = clamp(((1 - model_confidence) + complexity + (1 - fit)) / 3)

        spread = self.variance(belief, items)
        bias = abs(float(np.mean([e.confidence for e in items])) - belief.belief) if items else 0.0
        stability = self._stability(items)
        prediction = (spread + bias + (1 - stability)) / 3

        return UncertaintyDecomposition(
            data=data,
            model=model,
            prediction=prediction,
            components={
                'data_quality': quality,
                'data_completeness': completeness,
                'data_consistency': consistency,
                'model_confidence': model_confidence,
                'model_complexity': complexity,
                'model_fit': fit,
                'prediction_variance': spread,
                'prediction_bias': bias,
                'prediction_stability': stability,
            },
        )

    @staticmethod
    def _completeness(evidence: Sequence[Evidence]) -> float:
        if not evidence:
            return 0.0
        scores = []
        for e in evidence:
            present = sum((bool(e.content), bool(e.source), True,
                           e.timestamp is not None, bool(e.topic)))
            scores.append(present / 5)
        return sum(scores) / len(scores)

    @staticmethod
    def _model_fit(belief: BeliefState) -> float:
        if not belief.evidence:
            return 0.5
        mean = sum(e.confidence for e in belief.evidence) / len(belief.evidence)
        return 1 - abs(belief.belief - mean)

    @staticmethod
    def _stability(evidence: Sequence[Evidence]) -> float:
        """exp(-volatility) of log-returns of confidence in time order."""
        if len(evidence) < 3:
            return 0.5
        ordered = sorted(evidence, key=lambda e: (e.timestamp is None, e.timestamp.timestamp() if e.timestamp else 0))
        values = np.maximum([e.confidence for e in ordered], 1e-6)
        returns = np.diff(np.log(values))
        return math.exp(-float(np.std(returns)))
