"""
Confidence Intervals
====================

Interval estimates for a belief backed by evidence. The evidence count is
the sample size; a belief without evidence counts as one observation.

Methods:
- normal: p +/- z sqrt(p(1-p)/n)
- wilson: Wilson score interval, always contains p
- bootstrap: percentile interval of resampled mean confidence
- bayesian: Beta(successes + 1, failures + 1) quantiles by Newton-Raphson,
  or the highest density set of an explicit posterior

Plus prediction, simultaneous (Bonferroni), tolerance and
profile-likelihood intervals, confidence bands over a belief series and a
leave-one-out coverage estimate.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy import stats
from scipy.special import betainc, gammaln

from ..parameters import Parameters
from ..types import BeliefState, ConfidenceInterval, Evidence


logger = logging.getLogger(__name__)

METHODS = ('normal', 'wilson', 'bootstrap', 'bayesian')

STATE_VALUES = {
    'true': 1.0, 'yes': 1.0, 'positive': 1.0,
    'false': 0.0, 'no': 0.0, 'negative': 0.0,
}


@dataclass
class PredictionInterval:
    lower: float
    upper: float
    confidence: float
    coverage: float


@dataclass
class ToleranceInterval:
    lower: float
    upper: float
    coverage: float
    confidence: float


@dataclass
class BandPoint:
    timestamp: datetime
    lower: float
    upper: float
    prediction: float


def z_score(confidence: float) -> float:
    """Two-sided standard normal critical value."""
    return float(stats.norm.ppf((1 + confidence) / 2))


def state_value(label: str) -> float:
    """Numeric position of a posterior state label."""
    try:
        return float(label)
    except ValueError:
        return STATE_VALUES.get(label.lower(), 0.5)


def sample_belief(evidence: Sequence[Evidence]) -> float:
    if not evidence:
        return 0.5
    return sum(e.confidence for e in evidence) / len(evidence)


def beta_quantile(q: float, a: float, b: float, tolerance: float = 1e-8, max_iter: int = 50) -> float:
    """
    Quantile of Beta(a, b) by Newton-Raphson on the regularized incomplete
    beta function. Steps that leave the current bracket fall back to
    bisection.
    """
    if q <= 0:
        return 0.0
    if q >= 1:
        return 1.0
    log_norm = gammaln(a + b) - gammaln(a) - gammaln(b)
    low, high = 0.0, 1.0
    x = a / (a + b)
    for _ in range(max_iter):
        error = float(betainc(a, b, x)) - q
        if abs(error) < tolerance:
            break
        if error > 0:
            high = x
        else:
            low = x
        pdf = math.exp(log_norm + (a - 1) * math.log(x) + (b - 1) * math.log1p(-x))
        step = x - error / pdf if pdf > 0 else (low + high) / 2
        x = step if low < step < high else (low + high) / 2
    return x


def bisect(f: Callable[[float], float], a: float, b: float, tolerance: float = 1e-4) -> float:
    """Root of f on [a, b] given f(a) and f(b) of opposite sign."""
    fa = f(a)
    while b - a > tolerance:
        mid = (a + b) / 2
        fm = f(mid)
        if (fm > 0) == (fa > 0):
            a, fa = mid, fm
        else:
            b = mid
    return (a + b) / 2


class ConfidenceIntervals:
    """
    Interval estimation for beliefs.

    Usage:
        intervals = ConfidenceIntervals(seed=1)
        ci = intervals.compute_confidence_interval(belief, 0.95, "wilson")
        ci.lower <= belief.belief <= ci.upper
    """

    def __init__(self, params: Parameters = None, seed: Optional[int] = None):
        self.params = params or Parameters()
        self._rng = np.random.default_rng(seed)

    def compute_confidence_interval(
        self,
        belief: BeliefState,
        confidence: float = 0.95,
        method: str = 'wilson',
    ) -> ConfidenceInterval:
        if method == 'normal':
            return self.normal(belief, confidence)
        if method == 'wilson':
            return self.wilson(belief, confidence)
        if method == 'bootstrap':
            return self.bootstrap(belief, confidence)
        if method == 'bayesian':
            return self.bayesian(belief, confidence)
        raise ValueError(f"unknown interval method {method!r}; expected one of {METHODS}")

    # =========================================================================
    # Point intervals
    # =========================================================================

    def normal(self, belief: BeliefState, confidence: float = 0.95) -> ConfidenceInterval:
        n = belief.evidence_count or 1
        p = belief.belief
        margin = z_score(confidence) * math.sqrt(p * (1 - p) / n)
        return ConfidenceInterval(lower=max(0.0, p - margin), upper=min(1.0, p + margin),
                                  confidence=confidence, method='normal', point=p)

    def wilson(self, belief: BeliefState, confidence: float = 0.95) -> ConfidenceInterval:
        n = belief.evidence_count or 1
        p = belief.belief
        z = z_score(confidence)
        z2 = z * z
        denominator = 1 + z2 / n
        center = (p + z2 / (2 * n)) / denominator
        margin = z * math.sqrt(p * (1 - p) / n + z2 / (4 * n * n)) / denominator
        # the score interval contains p; guard the endpoints against rounding
        lower = min(max(0.0, center - margin), p)
        upper = max(min(1.0, center + margin), p)
        return ConfidenceInterval(lower=lower, upper=upper, confidence=confidence,
                                  method='wilson', point=p)

    def bootstrap(
        self,
        belief: BeliefState,
        confidence: float = 0.95,
        iterations: Optional[int] = None,
    ) -> ConfidenceInterval:
        """Percentile interval of the mean confidence over resamples; [0, 1] without evidence."""
        if not belief.evidence:
            logger.warning("Bootstrap interval requested without evidence; returning [0, 1]")
            return ConfidenceInterval(lower=0.0, upper=1.0, confidence=confidence,
                                      method='bootstrap', point=belief.belief)
        iterations = iterations or self.params.bootstrap_samples
        values = np.array([e.confidence for e in belief.evidence])
        indices = self._rng.integers(0, len(values), size=(iterations, len(values)))
        means = values[indices].mean(axis=1)
        alpha = 1 - confidence
        return ConfidenceInterval(
            lower=float(np.quantile(means, alpha / 2)),
            upper=float(np.quantile(means, 1 - alpha / 2)),
            confidence=confidence,
            method='bootstrap',
            point=belief.belief,
        )

    def bayesian(self, belief: BeliefState, credibility: float = 0.95) -> ConfidenceInterval:
        if belief.posterior:
            lower, upper = self.highest_density_interval(belief.posterior, credibility)
            return ConfidenceInterval(lower=lower, upper=upper, confidence=credibility,
                                      method='bayesian', point=belief.belief)
        return self.beta_credible(belief, credibility)

    def beta_credible(self, belief: BeliefState, credibility: float = 0.95) -> ConfidenceInterval:
        """Beta(1, 1) prior updated with evidence above 0.5 as successes."""
        successes = sum(1 for e in belief.evidence if e.confidence > 0.5)
        failures = belief.evidence_count - successes
        a, b = successes + 1, failures + 1
        tail = (1 - credibility) / 2
        return ConfidenceInterval(
            lower=beta_quantile(tail, a, b),
            upper=beta_quantile(1 - tail, a, b),
            confidence=credibility,
            method='bayesian-beta',
            point=belief.belief,
        )

    @staticmethod
    def highest_density_interval(posterior: Dict[str, float], credibility: float = 0.95) -> Tuple[float, float]:
        """
        Span of the most probable states needed to reach `credibility` mass.
        State labels are mapped to numbers (true/yes/positive = 1, numeric
        labels as themselves, anything else 0.5).
        """
        lower, upper = math.inf, -math.inf
        mass = 0.0
        for label, p in sorted(posterior.items(), key=lambda kv: kv[1], reverse=True):
            value = state_value(label)
            lower, upper = min(lower, value), max(upper, value)
            mass += p
            if mass >= credibility:
                break
        if lower > upper:
            return 0.0, 1.0
        return lower, upper

    # =========================================================================
    # Derived intervals
    # =========================================================================

    def prediction_interval(
        self,
        belief: BeliefState,
        future_evidence: int = 1,
        confidence: float = 0.95,
    ) -> PredictionInterval:
        """Parameter variance (uncertainty squared) plus future variability."""
        if belief.evidence_count < 2:
            future_variance = 0.25
        else:
            future_variance = float(np.var([e.confidence for e in belief.evidence])) / math.sqrt(future_evidence)
        margin = z_score(confidence) * math.sqrt(belief.uncertainty ** 2 + future_variance)
        return PredictionInterval(
            lower=max(0.0, belief.belief - margin),
            upper=min(1.0, belief.belief + margin),
            confidence=confidence,
            coverage=self.coverage_probability(belief, confidence),
        )

    def simultaneous(
        self,
        beliefs: Sequence[BeliefState],
        family_confidence: float = 0.95,
        method: str = 'wilson',
    ) -> List[ConfidenceInterval]:
        """Bonferroni: each interval at 1 - (1 - family) / k."""
        if not beliefs:
            return []
        individual = 1 - (1 - family_confidence) / len(beliefs)
        return [self.compute_confidence_interval(b, individual, method) for b in beliefs]

    def tolerance_interval(
        self,
        belief: BeliefState,
        coverage: float = 0.95,
        confidence: float = 0.95,
    ) -> ToleranceInterval:
        """
        Order-statistic interval expected to hold `coverage` of future
        confidences. Fewer than two observations give [0, 1].
        """
        values = sorted(e.confidence for e in belief.evidence)
        n = len(values)
        if n < 2:
            return ToleranceInterval(lower=0.0, upper=1.0, coverage=coverage, confidence=confidence)

        chi2 = float(stats.chi2.ppf(coverage, n - 1))
        k = n * (1 - coverage) / 2 + z_score(confidence) * math.sqrt(
            n * coverage * (1 - coverage) * chi2 / (n - 1))
        low_index = min(n - 1, max(0, math.floor(k) - 1))
        high_index = min(n - 1, max(0, math.ceil(n - k) - 1))
        if low_index > high_index:
            low_index, high_index = 0, n - 1
        return ToleranceInterval(lower=values[low_index], upper=values[high_index],
                                 coverage=coverage, confidence=confidence)

    def profile_likelihood(self, belief: BeliefState, confidence: float = 0.95) -> ConfidenceInterval:
        """
        Values of p whose Bernoulli log-likelihood (evidence confidences as
        fractional successes) is within chi2(confidence, 1) / 2 of the maximum.
        """
        if not belief.evidence:
            return ConfidenceInterval(lower=0.0, upper=1.0, confidence=confidence,
                                      method='profile-likelihood', point=belief.belief)
        eps = 1e-6
        successes = sum(e.confidence for e in belief.evidence)
        failures = belief.evidence_count - successes

        def log_likelihood(p: float) -> float:
            return successes * math.log(p) + failures * math.log(1 - p)

        mle = min(max(successes / belief.evidence_count, eps), 1 - eps)
        threshold = log_likelihood(mle) - float(stats.chi2.ppf(confidence, 1)) / 2

        def drop(p: float) -> float:
            return log_likelihood(p) - threshold

        lower = bisect(drop, eps, mle) if drop(eps) < 0 else 0.0
        upper = bisect(drop, mle, 1 - eps) if drop(1 - eps) < 0 else 1.0
        return ConfidenceInterval(lower=lower, upper=upper, confidence=confidence,
                                  method='profile-likelihood', point=mle)

    # =========================================================================
    # Series and calibration
    # =========================================================================

    def confidence_band(
        self,
        history: Sequence[Tuple[datetime, BeliefState]],
        confidence: float = 0.95,
        smoothing: float = 0.3,
    ) -> List[BandPoint]:
        """Per-point Wilson intervals in time order, exponentially smoothed."""
        band: List[BandPoint] = []
        for timestamp, belief in sorted(history, key=lambda item: item[0]):
            ci = self.wilson(belief, confidence)
            lower, upper = ci.lower, ci.upper
            if band:
                lower = lower * (1 - smoothing) + band[-1].lower * smoothing
                upper = upper * (1 - smoothing) + band[-1].upper * smoothing
            band.append(BandPoint(timestamp=timestamp, lower=lower, upper=upper,
                                  prediction=belief.belief))
        return band

    def coverage_probability(self, belief: BeliefState, nominal: float = 0.95) -> float:
        """
        Leave-one-out share of held-out confidences inside the interval
        built from the rest. Below ten observations the nominal level is
        returned.
        """
        evidence = list(belief.evidence)
        if len(evidence) < 10:
            return nominal
        covered = 0
        for i, held_out in enumerate(evidence):
            rest = evidence[:i] + evidence[i + 1:]
            subset = BeliefState(belief=sample_belief(rest), uncertainty=belief.uncertainty,
                                 evidence=tuple(rest))
            if self.wilson(subset, nominal).contains(held_out.confidence):
                covered += 1
        return covered / len(evidence)
