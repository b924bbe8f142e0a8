"""
Epistemic Uncertainty
=====================

Separates what more evidence could fix (epistemic) from what it could not
(aleatoric), and breaks the epistemic part into

    model          normalized posterior entropy
    parameter      coefficient of variation of evidence confidences
    structural     missing topic/source connections
    approximation  finite-sample and discretization effects

combined as a Euclidean norm. Also: bootstrap bounds on the estimates,
projected reduction from more samples, knowledge-gap identification,
ensemble disagreement, Monte Carlo propagation through a function,
information measures and info-gap robustness over scenarios.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from ..parameters import Parameters
from ..types import BeliefState, Evidence
from .metrics import UncertaintyMetrics, belief_entropy, coefficient_of_variation, shannon_entropy


logger = logging.getLogger(__name__)


@dataclass
class EpistemicComponents:
    model: float
    parameter: float
    structural: float
    approximation: float
    total: float


@dataclass
class EpistemicDecomposition:
    epistemic: EpistemicComponents
    aleatoric: float
    ratio: float        # epistemic share of epistemic + aleatoric


@dataclass
class KnowledgeGaps:
    missing_domains: List[str] = field(default_factory=list)
    weak_evidence: List[str] = field(default_factory=list)
    conflicting_theories: List[str] = field(default_factory=list)
    unknown_unknowns: float = 0.0


@dataclass
class UncertaintyBounds:
    epistemic_lower: float
    epistemic_upper: float
    aleatoric_lower: float
    aleatoric_upper: float
    total_lower: float
    total_upper: float


@dataclass
class ReducibleUncertainty:
    current: float
    projected: float
    reduction_potential: float
    samples_needed: int


@dataclass
class ModelUncertainty:
    variance: float
    bias: float
    ensemble: float


@dataclass
class PropagatedUncertainty:
    value: float
    uncertainty: float
    epistemic_contribution: float
    aleatoric_contribution: float


@dataclass
class InformationMeasures:
    entropy: float
    mutual_information: float
    expected_info_gain: float
    value_of_information: float
    kl_to_uniform: float


@dataclass
class Scenario:
    """A possible outcome; probability is None when it cannot be assigned."""
    name: str
    impact: float
    probability: Optional[float] = None


@dataclass
class DeepUncertainty:
    ambiguity: float
    scenario_spread: float
    robustness: float
    info_gap_radius: float


class EpistemicUncertainty:
    """
    Epistemic analysis of a belief and its evidence.

    Resampling and Monte Carlo use the instance's own generator, so results
    are reproducible for a given seed.
    """

    def __init__(self, params: Parameters = None, seed: Optional[int] = None):
        self.params = params or Parameters()
        self.metrics = UncertaintyMetrics(self.params)
        self._rng = np.random.default_rng(seed)

    # =========================================================================
    # Decomposition
    # =========================================================================

    def decompose_uncertainty(
        self,
        belief: BeliefState,
        evidence: Sequence[Evidence],
    ) -> EpistemicDecomposition:
        items = list(evidence)
        aleatoric = self.metrics.aleatoric(items)
        components = self.epistemic_components(belief, items)
        combined = components.total + aleatoric
        ratio = components.total / combined if combined > 0 else 0.0
        return EpistemicDecomposition(epistemic=components, aleatoric=aleatoric, ratio=ratio)

    def epistemic_components(self, belief: BeliefState, evidence: Sequence[Evidence]) -> EpistemicComponents:
        model = shannon_entropy(belief.posterior) if belief.posterior else 0.3
        parameter = min(1.0, coefficient_of_variation([e.confidence for e in evidence])) \
            if len(evidence) >= 2 else 0.5
        structural = self.structural_uncertainty(evidence)
        approximation = self.approximation_uncertainty(belief, len(evidence))
        total = math.sqrt(model ** 2 + parameter ** 2 + structural ** 2 + approximation ** 2)
        return EpistemicComponents(
            model=model,
            parameter=parameter,
            structural=structural,
            approximation=approximation,
            total=total,
        )

    @staticmethod
    def structural_uncertainty(evidence: Sequence[Evidence]) -> float:
        """
        Missing connections between topics and sources.

        Up to min(topics x sources, 20) topic/source links are expected; more
        evidence than that counts as fully connected.
        """
        if not evidence:
            return 1.0
        topics = {e.topic or 'unknown' for e in evidence}
        sources = {e.source for e in evidence}
        topic_diversity = min(1.0, len(topics) / 10)
        source_diversity = min(1.0, len(sources) / 5)
        expected = min(len(topics) * len(sources), 20)
        connection_ratio = min(1.0, len(evidence) / expected)
        return (1 - connection_ratio) * 0.5 + (1 - topic_diversity) * 0.25 + (1 - source_diversity) * 0.25

    @staticmethod
    def approximation_uncertainty(belief: BeliefState, count: int) -> float:
        """Finite-sample term (vanishes at 30 items), discretization term, and a precision floor."""
        value = 0.01
        if count < 30:
            value += 0.1 * (1 - count / 30)
        if belief.posterior and len(belief.posterior) < 10:
            value += 0.05 * (1 - len(belief.posterior) / 10)
        return min(0.2, value)

    # =========================================================================
    # Bounds and projection
    # =========================================================================

    def bootstrap_bounds(
        self,
        belief: BeliefState,
        evidence: Sequence[Evidence],
        confidence: float = 0.95,
        samples: Optional[int] = None,
    ) -> UncertaintyBounds:
        """Percentile bounds on epistemic, aleatoric and their sum over bootstrap resamples."""
        items = list(evidence)
        samples = samples or self.params.bootstrap_samples
        if not items:
            d = self.decompose_uncertainty(belief, items)
            total = d.epistemic.total + d.aleatoric
            return UncertaintyBounds(d.epistemic.total, d.epistemic.total,
                                     d.aleatoric, d.aleatoric, total, total)

        epistemic = np.empty(samples)
        aleatoric = np.empty(samples)
        n = len(items)
        logger.debug("Bootstrapping %d resamples of %d evidence", samples, n)
        for i in range(samples):
            resample = [items[j] for j in self._rng.integers(0, n, size=n)]
            d = self.decompose_uncertainty(belief, resample)
            epistemic[i] = d.epistemic.total
            aleatoric[i] = d.aleatoric

        alpha = (1 - confidence) / 2
        total = epistemic + aleatoric
        return UncertaintyBounds(
            epistemic_lower=float(np.quantile(epistemic, alpha)),
            epistemic_upper=float(np.quantile(epistemic, 1 - alpha)),
            aleatoric_lower=float(np.quantile(aleatoric, alpha)),
            aleatoric_upper=float(np.quantile(aleatoric, 1 - alpha)),
            total_lower=float(np.quantile(total, alpha)),
            total_upper=float(np.quantile(total, 1 - alpha)),
        )

    def project_reducible_uncertainty(
        self,
        belief: BeliefState,
        evidence: Sequence[Evidence],
        extra_samples: int = 10,
    ) -> ReducibleUncertainty:
        """
        Epistemic uncertainty shrinks as sqrt(n / (n + extra)). Halving it
        takes 3n more samples.
        """
        n = len(evidence)
        current = self.decompose_uncertainty(belief, evidence).epistemic.total
        projected = current * math.sqrt(n / (n + extra_samples)) if n + extra_samples > 0 else current
        samples_needed = math.ceil(n * ((1 / 0.5) ** 2 - 1)) if current > 0 else 0
        return ReducibleUncertainty(
            current=current,
            projected=projected,
            reduction_potential=current - projected,
            samples_needed=samples_needed,
        )

    # =========================================================================
    # Knowledge gaps
    # =========================================================================

    def identify_knowledge_gaps(
        self,
        belief: BeliefState,
        evidence: Sequence[Evidence],
        ontology: Optional[Dict[str, List[str]]] = None,
    ) -> KnowledgeGaps:
        """
        Domains of `ontology` with under 30% topic coverage, sources of weak or
        untopiced evidence, topics whose confidences disagree (std > 0.3), and
        an unknown-unknowns estimate exp(-n / 20) x belief uncertainty.
        """
        covered = {e.topic or 'unknown' for e in evidence}
        missing = []
        for domain, topics in (ontology or {}).items():
            if not topics or sum(1 for t in topics if t in covered) / len(topics) < 0.3:
                missing.append(domain)

        weak = list(dict.fromkeys(e.source for e in evidence if e.confidence < 0.3 or not e.topic))

        by_topic: Dict[str, List[float]] = {}
        for e in evidence:
            by_topic.setdefault(e.topic or 'unknown', []).append(e.confidence)
        conflicting = [t for t, c in by_topic.items() if len(c) >= 2 and float(np.std(c)) > 0.3]

        return KnowledgeGaps(
            missing_domains=missing,
            weak_evidence=weak,
            conflicting_theories=conflicting,
            unknown_unknowns=math.exp(-len(evidence) / 20) * belief.uncertainty,
        )

    # =========================================================================
    # Models, propagation, information
    # =========================================================================

    @staticmethod
    def analyze_model_uncertainty(
        belief: BeliefState,
        models: Optional[Sequence[Callable[[BeliefState], float]]] = None,
    ) -> ModelUncertainty:
        """Disagreement of alternative models about the belief."""
        if not models:
            return ModelUncertainty(variance=0.0, bias=0.0, ensemble=belief.uncertainty)
        predictions = np.array([model(belief) for model in models], dtype=float)
        variance = float(predictions.var())
        bias = abs(float(predictions.mean()) - belief.belief)
        return ModelUncertainty(
            variance=variance,
            bias=bias,
            ensemble=math.sqrt(variance + bias ** 2 + belief.uncertainty ** 2),
        )

    def propagate_uncertainty(
        self,
        beliefs: Sequence[BeliefState],
        transformation: Callable[[List[float]], float],
        samples: int = 10000,
    ) -> PropagatedUncertainty:
        """
        Monte Carlo propagation through `transformation`.

        Epistemic perturbations are normal with std 0.5 x uncertainty,
        aleatoric ones uniform on +/- uncertainty; the combined input is their
        average.
        """
        centers = np.array([b.belief for b in beliefs], dtype=float)
        scales = np.array([b.uncertainty for b in beliefs], dtype=float)

        results = np.empty(samples)
        epistemic = np.empty(samples)
        aleatoric = np.empty(samples)
        for i in range(samples):
            e_sample = centers + self._rng.standard_normal(len(centers)) * 0.5 * scales
            a_sample = centers + self._rng.uniform(-1.0, 1.0, len(centers)) * scales
            results[i] = transformation(list((e_sample + a_sample) / 2))
            epistemic[i] = transformation(list(e_sample))
            aleatoric[i] = transformation(list(a_sample))

        return PropagatedUncertainty(
            value=float(results.mean()),
            uncertainty=float(results.std()),
            epistemic_contribution=float(epistemic.std()),
            aleatoric_contribution=float(aleatoric.std()),
        )

    @staticmethod
    def information_measures(belief: BeliefState, max_information: float = 1.0) -> InformationMeasures:
        entropy = belief_entropy(belief, normalized=False)
        if belief.posterior and belief.evidence:
            mutual = max(0.0, entropy - entropy * (1 - belief.belief))
        else:
            mutual = 0.0
        expected_gain = entropy - entropy * math.exp(-len(belief.evidence) / 10)
        value = min(max_information, entropy * (1 - belief.belief) * belief.uncertainty)

        distribution = belief.posterior or {'true': belief.belief, 'false': 1 - belief.belief}
        k = len(distribution)
        kl = sum(p * math.log2(p * k) for p in distribution.values() if p > 0) if k > 1 else 0.0
        return InformationMeasures(
            entropy=entropy,
            mutual_information=mutual,
            expected_info_gain=expected_gain,
            value_of_information=value,
            kl_to_uniform=kl,
        )

    @staticmethod
    def info_gap_robustness(
        belief: BeliefState,
        scenarios: Optional[Sequence[Scenario]] = None,
    ) -> DeepUncertainty:
        """
        Deep (Knightian) uncertainty over scenarios that may lack
        probabilities. Unassigned probability mass counts as ambiguity, and
        the info-gap radius widens with the share of unassigned scenarios.
        """
        if not scenarios:
            return DeepUncertainty(ambiguity=belief.uncertainty, scenario_spread=0.0,
                                   robustness=0.5, info_gap_radius=belief.uncertainty)

        assigned = sum(s.probability for s in scenarios if s.probability is not None)
        ambiguity = max(belief.uncertainty, 1 - assigned)
        impacts = [s.impact for s in scenarios]
        worst = min(impacts)
        unassigned = sum(1 for s in scenarios if s.probability is None)
        if unassigned == 0:
            radius = belief.uncertainty * 0.5
        else:
            radius = min(1.0, belief.uncertainty * (1 + unassigned / len(scenarios)))
        return DeepUncertainty(
            ambiguity=ambiguity,
            scenario_spread=max(impacts) - worst,
            robustness=1 - abs(worst) / (1 + abs(worst)),
            info_gap_radius=radius,
        )
