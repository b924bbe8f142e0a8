"""
Inference Engine
================

Posterior queries over a BayesianNetwork.

Methods:
- exact: direct Bayes rule for two-node chains, otherwise variable
  elimination with a min-degree ordering
- sampling: Gibbs sampling over Markov blankets with a burn-in prefix
- variational: mean-field fixed-point iteration

Only the ancestral closure of the target and the evidence is touched; every
other node is barren for the query and sums out to 1.

Results are cached per engine instance by (target, evidence, method). The
cache is dropped by clear_cache() and automatically whenever the network's
revision changes.
"""

import logging
import math
import threading
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.special import softmax

from ..errors import InvalidQuery
from ..network import BayesianNetwork
from ..options import InferenceQuery
from ..parameters import Parameters
from ..types import InferenceMethod, InferenceResult, normalize
from .factors import Factor, eliminate, elimination_order, multiply_all, table_from_distribution


logger = logging.getLogger(__name__)

LOG_FLOOR = 1e-12


def posterior_confidence(posterior: Dict[str, float]) -> float:
    """1 - H(posterior) / log2(#states). A single-state posterior is certain."""
    k = len(posterior)
    if k <= 1:
        return 1.0
    entropy = -sum(p * math.log2(p) for p in posterior.values() if p > 0)
    return max(0.0, min(1.0, 1.0 - entropy / math.log2(k)))


class InferenceEngine:
    """
    Answers posterior queries against one network.

    The cache is an owned field guarded by a per-instance lock, so a single
    engine may be shared between threads. The network itself must not be
    mutated while queries run.
    """

    def __init__(
        self,
        network: BayesianNetwork,
        params: Parameters = None,
        seed: Optional[int] = None,
    ):
        self.network = network
        self.params = params or Parameters()
        self._rng = np.random.default_rng(seed)
        self._cache: Dict[str, InferenceResult] = {}
        self._cache_revision = network.revision
        self._lock = threading.RLock()

    # =========================================================================
    # Public API
    # =========================================================================

    def infer(self, query: InferenceQuery) -> InferenceResult:
        """
        Posterior over query.target given query.evidence.

        Raises:
            InvalidQuery: unknown target, unknown evidence node, or an
                observed state that is not one of the node's states
        """
        with self._lock:
            self._invalidate_if_stale()
            key = query.cache_key()
            cached = self._cache.get(key)
            if cached is not None:
                logger.debug("Cache hit for %s", key)
                return cached

            self._validate(query)
            result = self._run(query)
            self._cache[key] = result
            return result

    def get_marginal(self, node_id: str) -> Dict[str, float]:
        """Unconditional distribution of one node (exact)."""
        return dict(self.infer(InferenceQuery(target=node_id)).posterior)

    def compute_joint(
        self,
        node_ids: Sequence[str],
        evidence: Optional[Dict[str, str]] = None,
    ) -> Dict[Tuple[str, ...], float]:
        """
        Exact joint distribution over several nodes.

        Keys are state tuples in the order of node_ids.
        """
        evidence = dict(evidence or {})
        for node_id in node_ids:
            if node_id not in self.network:
                raise InvalidQuery(f"unknown node {node_id!r}")
        self._validate_evidence(evidence)

        with self._lock:
            factor = self._posterior_factor(list(node_ids), evidence)
        states = [self.network.node(n).states for n in node_ids]
        joint = {}
        for index in np.ndindex(*factor.values.shape):
            joint[tuple(s[i] for s, i in zip(states, index))] = float(factor.values[index])
        return joint

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
            self._cache_revision = self.network.revision

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    # =========================================================================
    # Dispatch
    # =========================================================================

    def _invalidate_if_stale(self) -> None:
        if self._cache_revision != self.network.revision:
            if self._cache:
                logger.debug("Network revision changed; dropping %d cached results", len(self._cache))
            self._cache.clear()
            self._cache_revision = self.network.revision

    def _validate(self, query: InferenceQuery) -> None:
        if query.target not in self.network:
            raise InvalidQuery(f"target {query.target!r} not found in network")
        self._validate_evidence(query.evidence)

    def _validate_evidence(self, evidence: Dict[str, str]) -> None:
        for node_id, state in evidence.items():
            node = self.network.get_node(node_id)
            if node is None:
                raise InvalidQuery(f"evidence node {node_id!r} not found in network")
            if state not in node.states:
                raise InvalidQuery(f"{state!r} is not a state of {node_id!r}")

    def _run(self, query: InferenceQuery) -> InferenceResult:
        network = self.network
        previous = network.evidence
        network.clear_evidence()
        for node_id, state in query.evidence.items():
            network.set_evidence(node_id, state)

        try:
            evidence = network.evidence
            samples = None
            converged = None
            iterations = None
            if query.method == InferenceMethod.SAMPLING:
                posterior, samples = self._gibbs(query.target, evidence)
            elif query.method == InferenceMethod.VARIATIONAL:
                posterior, converged, iterations = self._variational(query.target, evidence)
            else:
                posterior = self._exact(query.target, evidence)
        finally:
            network.clear_evidence()
            for node_id, state in previous.items():
                network.set_evidence(node_id, state)

        posterior = normalize(posterior)
        return InferenceResult(
            node_id=query.target,
            posterior=posterior,
            confidence=posterior_confidence(posterior),
            method=query.method.value,
            samples=samples,
            converged=converged,
            iterations=iterations,
        )

    def _relevant(self, targets: Sequence[str], evidence: Dict[str, str]) -> List[str]:
        """Ancestral closure of targets and evidence, in topological order."""
        closure = self.network.ancestors(list(targets) + list(evidence))
        return [n for n in self.network.topological_order if n in closure]

    # =========================================================================
    # Exact inference
    # =========================================================================

    def _exact(self, target: str, evidence: Dict[str, str]) -> Dict[str, float]:
        shortcut = self._bayes_shortcut(target, evidence)
        if shortcut is not None:
            return shortcut
        factor = self._posterior_factor([target], evidence)
        states = self.network.node(target).states
        return {s: float(factor.values[i]) for i, s in enumerate(states)}

    def _bayes_shortcut(self, target: str, evidence: Dict[str, str]) -> Optional[Dict[str, float]]:
        """
        Bayes rule on a two-node chain.

        Applies when the single observed node is the target's only parent, or
        the target is a root and the sole parent of the observed node.
        """
        if len(evidence) != 1:
            return None
        (observed, observed_state), = evidence.items()
        if observed == target:
            return None

        network = self.network
        node = network.node(target)
        if network.parents(observed) == [target] and not network.parents(target):
            unnormalized = {
                s: network.get_conditional_probability(observed, observed_state, {target: s})
                * network.get_conditional_probability(target, s, {})
                for s in node.states
            }
        elif network.parents(target) == [observed]:
            unnormalized = network.distribution_given(target, {observed: observed_state})
        else:
            return None

        if sum(unnormalized.values()) <= 0:
            logger.warning("Evidence %s=%s has zero probability; returning uniform posterior",
                           observed, observed_state)
        logger.debug("Bayes shortcut for %s given %s=%s", target, observed, observed_state)
        return normalize(unnormalized)

    def _build_factors(self, nodes: Sequence[str], evidence: Dict[str, str]) -> List[Factor]:
        """
        One factor per node from its CPT or prior, with evidence zeroed.

        A node without a CPT does not depend on its parents, so its factor
        covers only the node itself.
        """
        network = self.network
        factors = []
        for node_id in nodes:
            parents = network.parents(node_id) if network.get_cpt(node_id) else []
            variables = [node_id] + parents
            states = {v: network.node(v).states for v in variables}
            values = table_from_distribution(
                variables,
                states,
                lambda a, n=node_id: network.get_conditional_probability(n, a[n], a),
            )
            factor = Factor(tuple(variables), values)
            for observed, state in evidence.items():
                if observed in factor:
                    factor = factor.reduce(observed, network.node(observed).states.index(state))
            factors.append(factor)
        return factors

    def _posterior_factor(self, targets: List[str], evidence: Dict[str, str]) -> Factor:
        nodes = self._relevant(targets, evidence)
        factors = self._build_factors(nodes, evidence)
        hidden = [n for n in nodes if n not in targets and n not in evidence]
        order = elimination_order(factors, hidden)
        logger.debug("Eliminating %d variables for %s: %s", len(order), targets, order)
        remaining = eliminate(factors, order)
        result = multiply_all(remaining).marginal(targets)
        if float(result.values.sum()) <= 0:
            logger.warning("Evidence %s has zero probability; returning uniform posterior", evidence)
        return result.normalized()

    # =========================================================================
    # Gibbs sampling
    # =========================================================================

    def _gibbs(self, target: str, evidence: Dict[str, str]) -> Tuple[Dict[str, float], int]:
        network = self.network
        nodes = self._relevant([target], evidence)
        relevant = set(nodes)
        states = {n: network.node(n).states for n in nodes}
        children = {n: [c for c in network.children(n) if c in relevant] for n in nodes}
        free = [n for n in nodes if n not in evidence]

        current = {
            n: evidence[n] if n in evidence else states[n][self._rng.integers(len(states[n]))]
            for n in nodes
        }

        iterations = max(1, int(self.params.gibbs_iterations))
        burn_in = int(iterations * self.params.gibbs_burn_in_fraction)
        counts = {s: 0 for s in states[target]}

        for step in range(iterations):
            for n in free:
                weights = []
                for s in states[n]:
                    current[n] = s
                    w = network.get_conditional_probability(n, s, current)
                    for c in children[n]:
                        w *= network.get_conditional_probability(c, current[c], current)
                    weights.append(w)
                current[n] = self._sample(states[n], weights)
            if step >= burn_in:
                counts[current[target]] += 1

        samples = iterations - burn_in
        logger.debug("Gibbs: %d sweeps over %d free nodes, %d samples kept",
                     iterations, len(free), samples)
        return {s: c / samples for s, c in counts.items()}, samples

    def _sample(self, states: List[str], weights: List[float]) -> str:
        total = sum(weights)
        if total <= 0:
            return states[self._rng.integers(len(states))]
        threshold = self._rng.random() * total
        cumulative = 0.0
        for state, w in zip(states, weights):
            cumulative += w
            if threshold < cumulative:
                return state
        return states[-1]

    # =========================================================================
    # Mean-field variational inference
    # =========================================================================

    def _variational(
        self,
        target: str,
        evidence: Dict[str, str],
    ) -> Tuple[Dict[str, float], bool, int]:
        network = self.network
        nodes = self._relevant([target], evidence)
        relevant = set(nodes)
        states = {n: network.node(n).states for n in nodes}
        children = {n: [c for c in network.children(n) if c in relevant] for n in nodes}
        free = [n for n in nodes if n not in evidence]

        q: Dict[str, np.ndarray] = {}
        for n in nodes:
            if n in evidence:
                q[n] = np.zeros(len(states[n]))
                q[n][states[n].index(evidence[n])] = 1.0
            else:
                q[n] = np.full(len(states[n]), 1.0 / len(states[n]))

        def point(node_id: str) -> str:
            return states[node_id][int(np.argmax(q[node_id]))]

        tolerance = self.params.variational_tolerance
        max_iterations = self.params.variational_max_iterations
        converged = False
        iteration = 0

        for iteration in range(1, max_iterations + 1):
            max_change = 0.0
            for n in free:
                context = {p: point(p) for p in network.parents(n)}
                log_p = np.zeros(len(states[n]))
                for i, s in enumerate(states[n]):
                    log_p[i] = math.log(max(network.get_conditional_probability(n, s, context),
                                            LOG_FLOOR))
                    for c in children[n]:
                        child_context = {p: point(p) for p in network.parents(c)}
                        child_context[n] = s
                        log_p[i] += sum(
                            q[c][j] * math.log(max(
                                network.get_conditional_probability(c, cs, child_context),
                                LOG_FLOOR))
                            for j, cs in enumerate(states[c])
                        )
                updated = softmax(log_p)
                max_change = max(max_change, float(np.max(np.abs(updated - q[n]))))
                q[n] = updated
            if max_change <= tolerance:
                converged = True
                break

        if not converged:
            logger.debug("Variational inference hit %d iterations without converging", max_iterations)
        posterior = {s: float(q[target][i]) for i, s in enumerate(states[target])}
        return posterior, converged, iteration
