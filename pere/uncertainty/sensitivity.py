"""
Sensitivity Analysis
====================

How much a belief-derived response moves when its inputs move.

The response defaults to belief * (1 - uncertainty), a confidence-discounted
belief; callers can supply any function of a BeliefState. Parameters are
addressed by name:

- belief: the point estimate
- uncertainty: the scalar uncertainty
- evidence_confidence: every evidence confidence, set or shifted together

Evidence is never mutated. What-if probes work on copies made with
Evidence.with_confidence() and dataclasses.replace().
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
from scipy import stats
from scipy.stats import qmc

from ..aggregation.dempster_shafer import averaging_belief
from ..inference.engine import InferenceEngine
from ..network.bayesian_network import BayesianNetwork
from ..parameters import Parameters
from ..types import BeliefState, Evidence, normalize
from .intervals import bisect


logger = logging.getLogger(__name__)

PARAMETERS = ('belief', 'uncertainty', 'evidence_confidence')

Response = Callable[[BeliefState], float]


def discounted_belief(belief: BeliefState) -> float:
    return belief.belief * (1 - min(1.0, belief.uncertainty))


def kl_divergence(p: Dict[str, float], q: Dict[str, float]) -> float:
    return sum(pv * math.log(pv / max(q.get(state, 0.0), 1e-10))
               for state, pv in p.items() if pv > 0)


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class SensitivityResult:
    parameter: str
    baseline: float
    sensitivity: float
    elasticity: float
    robustness: float
    critical_value: Optional[float] = None


@dataclass
class GlobalSensitivity:
    """Sobol indices; interactions hold total minus first order where it matters."""
    first_order: Dict[str, float]
    total_effect: Dict[str, float]
    interactions: Dict[str, float]
    variance: float
    samples: int

    @property
    def main_effects(self) -> Dict[str, float]:
        return {p: s * self.variance for p, s in self.first_order.items()}


@dataclass
class MorrisEffects:
    mu: float
    mu_star: float
    sigma: float

    @property
    def importance(self) -> float:
        return math.hypot(self.mu_star, self.sigma)


@dataclass
class RobustnessAnalysis:
    stable_min: float
    stable_max: float
    worst_case: float
    best_case: float
    breakpoints: List[float] = field(default_factory=list)


@dataclass
class EvidenceSensitivity:
    influence: float
    removal_impact: float
    critical_confidence: Optional[float] = None


@dataclass
class NodeSensitivity:
    structural: float
    parametric: float


# =============================================================================
# ANALYSIS
# =============================================================================

class SensitivityAnalysis:
    """
    Local, global and structural sensitivity of beliefs.

    Usage:
        analysis = SensitivityAnalysis(seed=7)
        local = analysis.local_sensitivity(belief, "belief")
        sobol = analysis.global_sensitivity(belief, ["belief", "uncertainty"])
    """

    def __init__(
        self,
        response: Optional[Response] = None,
        params: Parameters = None,
        seed: Optional[int] = None,
    ):
        self.response = response or discounted_belief
        self.params = params or Parameters()
        self.seed = seed
        self._rng = np.random.default_rng(seed)

    # -------------------------------------------------------------------------
    # Parameter access
    # -------------------------------------------------------------------------

    @staticmethod
    def parameter_value(belief: BeliefState, parameter: str) -> float:
        if parameter == 'belief':
            return belief.belief
        if parameter == 'uncertainty':
            return belief.uncertainty
        if parameter == 'evidence_confidence':
            if not belief.evidence:
                return 0.0
            return sum(e.confidence for e in belief.evidence) / belief.evidence_count
        raise ValueError(f"unknown parameter {parameter!r}; expected one of {PARAMETERS}")

    @staticmethod
    def with_parameter(belief: BeliefState, parameter: str, value: float) -> BeliefState:
        """Copy of the belief with one parameter set (clamped to [0, 1])."""
        value = min(1.0, max(0.0, value))
        if parameter == 'belief':
            return replace(belief, belief=value)
        if parameter == 'uncertainty':
            return replace(belief, uncertainty=value)
        if parameter == 'evidence_confidence':
            return replace(belief, evidence=tuple(e.with_confidence(value) for e in belief.evidence))
        raise ValueError(f"unknown parameter {parameter!r}; expected one of {PARAMETERS}")

    @classmethod
    def perturbed(cls, belief: BeliefState, parameter: str, delta: float) -> BeliefState:
        if parameter == 'evidence_confidence':
            return replace(belief, evidence=tuple(
                e.with_confidence(e.confidence + delta) for e in belief.evidence))
        return cls.with_parameter(belief, parameter, cls.parameter_value(belief, parameter) + delta)

    def evaluate(self, belief: BeliefState, parameters: Sequence[str], point: Sequence[float]) -> float:
        for parameter, value in zip(parameters, point):
            belief = self.with_parameter(belief, parameter, value)
        return self.response(belief)

    # -------------------------------------------------------------------------
    # Local
    # -------------------------------------------------------------------------

    def local_sensitivity(
        self,
        belief: BeliefState,
        parameter: str,
        perturbation: Optional[float] = None,
    ) -> SensitivityResult:
        """Central difference derivative, elasticity and decision-flip value."""
        h = perturbation or self.params.local_perturbation
        baseline = self.parameter_value(belief, parameter)
        baseline_response = self.response(belief)

        sensitivity = (self.response(self.perturbed(belief, parameter, h))
                       - self.response(self.perturbed(belief, parameter, -h))) / (2 * h)
        if baseline and baseline_response:
            elasticity = sensitivity * baseline / baseline_response
        else:
            elasticity = 0.0

        return SensitivityResult(
            parameter=parameter,
            baseline=baseline,
            sensitivity=sensitivity,
            elasticity=elasticity,
            robustness=1 / (1 + abs(sensitivity)),
            critical_value=self.critical_value(belief, parameter),
        )

    def critical_value(self, belief: BeliefState, parameter: str) -> Optional[float]:
        """
        Parameter value in [0, 1] where the response crosses the decision
        threshold, found by bisection. None when the response stays on one
        side over the whole range.
        """
        threshold = self.params.decision_threshold

        def margin(value: float) -> float:
            return self.response(self.with_parameter(belief, parameter, value)) - threshold

        low, high = margin(0.0), margin(1.0)
        if low == 0:
            return 0.0
        if (low > 0) == (high > 0):
            return None
        return bisect(margin, 0.0, 1.0, tolerance=1e-3)

    # -------------------------------------------------------------------------
    # Global
    # -------------------------------------------------------------------------

    def global_sensitivity(
        self,
        belief: BeliefState,
        parameters: Sequence[str],
        samples: Optional[int] = None,
    ) -> GlobalSensitivity:
        """
        Sobol indices from two scrambled Sobol' matrices A and B and the k
        matrices AB_i (A with column i taken from B). First order uses the
        Saltelli estimator, total effect the Jansen estimator.
        """
        parameters = list(parameters)
        k = len(parameters)
        if k == 0:
            return GlobalSensitivity(first_order={}, total_effect={}, interactions={},
                                     variance=0.0, samples=0)

        m = max(1, math.ceil(math.log2(samples or self.params.sobol_samples)))
        sampler = qmc.Sobol(d=2 * k, scramble=True, seed=self.seed)
        matrix = sampler.random_base2(m)
        a, b = matrix[:, :k], matrix[:, k:]
        n = len(a)

        y_a = np.array([self.evaluate(belief, parameters, row) for row in a])
        y_b = np.array([self.evaluate(belief, parameters, row) for row in b])
        variance = float(np.var(np.concatenate([y_a, y_b])))

        first_order: Dict[str, float] = {}
        total_effect: Dict[str, float] = {}
        for i, parameter in enumerate(parameters):
            ab = a.copy()
            ab[:, i] = b[:, i]
            y_ab = np.array([self.evaluate(belief, parameters, row) for row in ab])
            if variance > 0:
                first_order[parameter] = float(np.mean(y_b * (y_ab - y_a))) / variance
                total_effect[parameter] = float(np.mean((y_a - y_ab) ** 2)) / (2 * variance)
            else:
                first_order[parameter] = 0.0
                total_effect[parameter] = 0.0

        interactions = {
            p: total_effect[p] - first_order[p]
            for p in parameters
            if total_effect[p] - first_order[p] > 0.01
        }
        logger.debug("Sobol analysis over %d parameters with %d samples", k, n)
        return GlobalSensitivity(first_order=first_order, total_effect=total_effect,
                                 interactions=interactions, variance=variance, samples=n)

    def morris_screening(
        self,
        belief: BeliefState,
        parameters: Sequence[str],
        trajectories: Optional[int] = None,
        levels: Optional[int] = None,
    ) -> Dict[str, MorrisEffects]:
        """Elementary effects along random one-factor-at-a-time trajectories on a grid."""
        parameters = list(parameters)
        trajectories = trajectories or self.params.morris_trajectories
        levels = max(2, levels or self.params.morris_levels)
        delta = 1 / (levels - 1)
        effects: Dict[str, List[float]] = {p: [] for p in parameters}

        for _ in range(trajectories):
            point = self._rng.integers(0, levels, size=len(parameters)) / (levels - 1)
            y = self.evaluate(belief, parameters, point)
            for i in self._rng.permutation(len(parameters)):
                step = delta if point[i] < 0.5 else -delta
                moved = point.copy()
                moved[i] = point[i] + step
                y_moved = self.evaluate(belief, parameters, moved)
                effects[parameters[i]].append((y_moved - y) / step)
                point, y = moved, y_moved

        return {
            p: MorrisEffects(
                mu=float(np.mean(values)),
                mu_star=float(np.mean(np.abs(values))),
                sigma=float(np.std(values)),
            )
            for p, values in effects.items()
        }

    def one_at_a_time(
        self,
        belief: BeliefState,
        parameters: Sequence[str],
        spread: Optional[float] = None,
    ) -> Dict[str, SensitivityResult]:
        """
        Sweep each parameter over baseline * [1 - spread, 1 + spread] and fit
        a line. A parameter whose sweep fails is logged and left out.
        """
        spread = spread or self.params.oat_range
        baseline_response = self.response(belief)
        results: Dict[str, SensitivityResult] = {}

        for parameter in parameters:
            try:
                baseline = self.parameter_value(belief, parameter)
                values = baseline * np.linspace(1 - spread, 1 + spread, 21)
                responses = [self.response(self.with_parameter(belief, parameter, v)) for v in values]
                if np.ptp(values) > 0:
                    slope = float(stats.linregress(values, responses).slope)
                else:
                    slope = 0.0
            except Exception:
                logger.exception("One-at-a-time sweep failed for %s", parameter)
                continue
            results[parameter] = SensitivityResult(
                parameter=parameter,
                baseline=baseline,
                sensitivity=slope,
                elasticity=slope * baseline / baseline_response if baseline_response else 0.0,
                robustness=1 / (1 + abs(slope)),
            )
        return results

    # -------------------------------------------------------------------------
    # Robustness
    # -------------------------------------------------------------------------

    def robustness_analysis(
        self,
        belief: BeliefState,
        parameter: str,
        low: float = 0.0,
        high: float = 1.0,
        steps: Optional[int] = None,
    ) -> RobustnessAnalysis:
        """Stable region (minimum-variance window), jumps and extremes of the response."""
        steps = steps or self.params.robustness_steps
        values = np.linspace(low, high, steps + 1)
        responses = np.array([self.response(self.with_parameter(belief, parameter, v)) for v in values])

        jumps = np.abs(np.diff(responses)) > self.params.breakpoint_jump
        breakpoints = [float(v) for v in values[1:][jumps]]

        window = max(2, int(len(values) * self.params.stable_window_fraction))
        best_start, best_variance = 0, math.inf
        for start in range(len(values) - window + 1):
            variance = float(np.var(responses[start:start + window]))
            if variance < best_variance:
                best_start, best_variance = start, variance

        return RobustnessAnalysis(
            stable_min=float(values[best_start]),
            stable_max=float(values[best_start + window - 1]),
            worst_case=float(responses.min()),
            best_case=float(responses.max()),
            breakpoints=breakpoints,
        )

    # -------------------------------------------------------------------------
    # Evidence and network
    # -------------------------------------------------------------------------

    def evidence_sensitivity(self, belief: BeliefState, target: Evidence) -> EvidenceSensitivity:
        """
        Effect of one evidence item on the response of the belief re-estimated
        from the evidence (mean confidence, spread as uncertainty).

        removal_impact is the response change when the item is dropped;
        critical_confidence is the first confidence on a 0.01 grid at which
        the decision flips, probed on copies.
        """
        evidence = list(belief.evidence)
        threshold = self.params.decision_threshold
        baseline = self.response(averaging_belief(evidence))

        without = [e for e in evidence if e is not target]
        removal_impact = abs(baseline - self.response(averaging_belief(without)))

        critical = None
        for confidence in np.linspace(0.0, 1.0, 101):
            probe = target.with_confidence(float(confidence))
            probed = [probe if e is target else e for e in evidence]
            response = self.response(averaging_belief(probed))
            if (response >= threshold) != (baseline >= threshold):
                critical = float(confidence)
                break

        return EvidenceSensitivity(
            influence=removal_impact / len(evidence) if evidence else 0.0,
            removal_impact=removal_impact,
            critical_confidence=critical,
        )

    def network_sensitivity(self, belief: BeliefState) -> Dict[str, NodeSensitivity]:
        """
        Per-node sensitivity of the network built from the belief's evidence.

        structural is the node degree over (nodes - 1); parametric is the
        mean KL divergence between the node marginal and the marginal with
        one state bumped and renormalized.
        """
        network = BayesianNetwork(params=self.params)
        network.construct_from_evidence(belief.evidence)
        engine = InferenceEngine(network, params=self.params, seed=self.seed)
        size = len(network)
        bump = self.params.marginal_perturbation

        results: Dict[str, NodeSensitivity] = {}
        for node_id in network.topological_order:
            degree = len(network.parents(node_id)) + len(network.children(node_id))
            structural = degree / (size - 1) if size > 1 else 0.0
            try:
                marginal = engine.get_marginal(node_id)
            except Exception:
                logger.exception("Marginal failed for node %s", node_id)
                continue
            impacts = []
            for state, p in marginal.items():
                bumped = dict(marginal)
                bumped[state] = min(1.0, p + bump)
                impacts.append(kl_divergence(marginal, normalize(bumped)))
            results[node_id] = NodeSensitivity(
                structural=structural,
                parametric=sum(impacts) / len(impacts) if impacts else 0.0,
            )
        return results
