"""
Belief Updater
==============

Maintains one BeliefState per topic and revises it as evidence arrives.

Policies:
- bayesian: Bayes rule with likelihoods (c, 1 - c), scaled by the
  estimated reliability of the evidence source
- jeffrey: Jeffrey conditioning over a supports/opposes(/uncertain)
  partition of the evidence
- pearl: the evidence becomes an observed child of the topic node in the
  updater's own network and the topic posterior is computed exactly
- minimal-change: a damped step toward the evidence confidence

Every proposal then passes through the policy's learning dynamics
(learning rate, momentum, adaptive rate). Belief snapshots are immutable;
the updater keeps the latest per topic and a bounded history.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from ..inference import InferenceEngine
from ..network import BayesianNetwork, BayesianNode, ConditionalProbabilityTable
from ..options import InferenceQuery, UpdatePolicy
from ..parameters import Parameters
from ..text import jaccard
from ..types import BeliefState, BeliefUpdate, Evidence, clamp, utcnow


logger = logging.getLogger(__name__)

OBSERVED = 'observed'
NOT_OBSERVED = 'not_observed'


@dataclass
class BeliefRecord:
    """One entry of a topic's belief history."""
    belief: float
    uncertainty: float
    update_type: str
    evidence: Optional[Evidence] = None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class BatchUpdateResult:
    """Updates that succeeded plus (topic, error) for those that failed."""
    updates: List[BeliefUpdate] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.updates)


def jeffrey_partition(confidence: float) -> Dict[str, float]:
    """
    Probability of each evidence state. Mid-range confidence reserves 0.2
    for an explicit 'uncertain' state.
    """
    if 0.3 < confidence < 0.7:
        return {
            'supports': confidence * 0.8,
            'opposes': (1 - confidence) * 0.8,
            'uncertain': 0.2,
        }
    return {'supports': confidence, 'opposes': 1 - confidence}


def normalized_entropy(distribution: Dict[str, float]) -> float:
    if len(distribution) <= 1:
        return 0.0
    entropy = -sum(p * math.log2(p) for p in distribution.values() if p > 0)
    return entropy / math.log2(len(distribution))


class BeliefUpdater:
    """
    Per-topic belief revision.

    Usage:
        updater = BeliefUpdater(UpdatePolicy(method="bayesian", learning_rate=0.8))
        update = updater.update_belief("market", evidence)
        updater.get_belief("market").belief
    """

    def __init__(self, policy: UpdatePolicy = None, params: Parameters = None):
        self.policy = policy or UpdatePolicy()
        self.params = params or Parameters()
        self.beliefs: Dict[str, BeliefState] = {}
        self.history: Dict[str, List[BeliefRecord]] = {}
        self.network = BayesianNetwork(self.params)

    # =========================================================================
    # Public API
    # =========================================================================

    def update_belief(
        self,
        topic: str,
        evidence: Evidence,
        policy: Optional[UpdatePolicy] = None,
    ) -> BeliefUpdate:
        policy = policy or self.policy
        current = self.beliefs.get(topic) or self.initial_belief()

        if policy.method == 'jeffrey':
            proposed = self._jeffrey(current, evidence)
        elif policy.method == 'pearl':
            proposed = self._pearl(topic, current, evidence)
        elif policy.method == 'minimal-change':
            proposed = self._minimal_change(current, evidence)
        else:
            proposed = self._bayesian(current, evidence)

        updated = self._apply_learning_dynamics(topic, current, proposed, policy)
        self.beliefs[topic] = updated
        self._record(topic, updated, evidence, policy.method)

        logger.debug("Updated %s by %s: %.3f -> %.3f", topic, policy.method,
                     current.belief, updated.belief)
        return BeliefUpdate(
            topic=topic,
            prior=current,
            posterior=updated,
            evidence=evidence,
            policy=policy.method,
            change=updated.belief - current.belief,
            confidence=self._update_confidence(topic, updated),
        )

    def batch_update(
        self,
        updates: Sequence[Tuple[str, Evidence]],
        policy: Optional[UpdatePolicy] = None,
    ) -> BatchUpdateResult:
        """
        Apply (topic, evidence) updates in order, then propagate the changes
        to related topics. A failing item is logged and skipped.
        """
        self.network.construct_from_evidence([e for _, e in updates])
        result = BatchUpdateResult()
        for topic, evidence in updates:
            try:
                result.updates.append(self.update_belief(topic, evidence, policy))
            except Exception as e:
                logger.exception("Belief update for %s failed", topic)
                result.failures.append((topic, str(e)))

        self.propagate_changes([u.topic for u in result.updates])
        return result

    def get_belief(self, topic: str) -> Optional[BeliefState]:
        return self.beliefs.get(topic)

    def get_history(self, topic: str) -> List[BeliefRecord]:
        return list(self.history.get(topic, []))

    def get_all_beliefs(self) -> Dict[str, BeliefState]:
        return dict(self.beliefs)

    def clear_belief(self, topic: str) -> None:
        self.beliefs.pop(topic, None)
        self.history.pop(topic, None)

    def reset(self) -> None:
        self.beliefs.clear()
        self.history.clear()
        self.network = BayesianNetwork(self.params)

    def get_statistics(self) -> Dict[str, float]:
        count = len(self.beliefs)
        return {
            'total_beliefs': count,
            'avg_belief': sum(b.belief for b in self.beliefs.values()) / count if count else 0.0,
            'avg_uncertainty': sum(b.uncertainty for b in self.beliefs.values()) / count if count else 0.0,
            'total_updates': sum(len(h) for h in self.history.values()),
        }

    def initial_belief(self) -> BeliefState:
        """Uninformative starting point for a new topic."""
        return BeliefState(belief=0.5, uncertainty=0.5)

    # =========================================================================
    # Policies
    # =========================================================================

    def _bayesian(self, current: BeliefState, evidence: Evidence) -> BeliefState:
        prior = current.belief
        likelihood_true = evidence.confidence
        likelihood_false = 1 - evidence.confidence
        marginal = likelihood_true * prior + likelihood_false * (1 - prior)
        posterior = likelihood_true * prior / marginal if marginal > 0 else prior

        reliability = self.estimate_source_reliability(evidence.source)
        adjusted = clamp(prior + (posterior - prior) * reliability)
        return BeliefState(
            belief=adjusted,
            uncertainty=self._reduce_uncertainty(current.uncertainty, evidence.confidence, reliability),
            evidence=current.evidence + (evidence,),
            posterior={'true': adjusted, 'false': 1 - adjusted},
        )

    def _jeffrey(self, current: BeliefState, evidence: Evidence) -> BeliefState:
        partition = jeffrey_partition(evidence.confidence)
        conditional = {
            'supports': min(1.0, current.belief * 1.5),
            'opposes': max(0.0, current.belief * 0.5),
            'uncertain': current.belief,
        }
        belief = sum(p * conditional[state] for state, p in partition.items())
        evidence_uncertainty = normalized_entropy(partition)
        return BeliefState(
            belief=belief,
            uncertainty=min(1.0, math.sqrt(current.uncertainty ** 2 + evidence_uncertainty ** 2)),
            evidence=current.evidence + (evidence,),
        )

    def _pearl(self, topic: str, current: BeliefState, evidence: Evidence) -> BeliefState:
        """
        Attach the evidence as an observed child of the topic node, with
        P(observed | true) = c and P(observed | false) = 1 - c, and read the
        topic posterior back. The topic prior is the current belief.

        Each update runs on its own two-node network, so the shared topic
        network does not accumulate evidence nodes.
        """
        node_id = f"{topic}_evidence"
        network = BayesianNetwork(self.params)
        network.add_node(BayesianNode(
            id=topic,
            states=['true', 'false'],
            probabilities={'true': current.belief, 'false': 1 - current.belief},
        ))
        network.add_node(BayesianNode(
            id=node_id,
            name=evidence.source,
            states=[OBSERVED, NOT_OBSERVED],
            probabilities={OBSERVED: evidence.confidence, NOT_OBSERVED: 1 - evidence.confidence},
        ))
        network.add_edge(topic, node_id)
        c = evidence.confidence
        network.set_cpt(node_id, ConditionalProbabilityTable.from_rows(node_id, [
            ({topic: 'true'}, {OBSERVED: c, NOT_OBSERVED: 1 - c}),
            ({topic: 'false'}, {OBSERVED: 1 - c, NOT_OBSERVED: c}),
        ]))

        engine = InferenceEngine(network, self.params)
        result = engine.infer(InferenceQuery(target=topic, evidence={node_id: OBSERVED}))
        return BeliefState(
            belief=result.posterior.get('true', current.belief),
            uncertainty=1 - result.confidence,
            evidence=current.evidence + (evidence,),
            posterior=dict(result.posterior),
        )

    def _minimal_change(self, current: BeliefState, evidence: Evidence) -> BeliefState:
        diff = evidence.confidence - current.belief
        # tanh-shaped step, halved
        alpha = (2 / (1 + math.exp(-2 * diff)) - 1) * 0.5
        return BeliefState(
            belief=current.belief + alpha * diff,
            uncertainty=min(1.0, current.uncertainty + abs(alpha) * 0.1),
            evidence=current.evidence + (evidence,),
        )

    # =========================================================================
    # Dynamics
    # =========================================================================

    def _reduce_uncertainty(self, uncertainty: float, confidence: float, reliability: float) -> float:
        reduced = uncertainty * (1 - confidence * reliability * self.params.uncertainty_reduction_rate)
        return max(self.params.min_uncertainty, reduced)

    def _apply_learning_dynamics(
        self,
        topic: str,
        current: BeliefState,
        proposed: BeliefState,
        policy: UpdatePolicy,
    ) -> BeliefState:
        rate = self.adaptive_rate(current, proposed, policy) if policy.adaptive_learning \
            else policy.learning_rate

        momentum = 0.0
        recent = self.history.get(topic, [])[-2:]
        if len(recent) == 2:
            momentum = (recent[1].belief - recent[0].belief) * policy.momentum

        belief = current.belief + rate * (proposed.belief - current.belief) + momentum
        return BeliefState(
            belief=clamp(belief),
            uncertainty=proposed.uncertainty,
            evidence=proposed.evidence,
            posterior=proposed.posterior,
        )

    @staticmethod
    def adaptive_rate(current: BeliefState, proposed: BeliefState, policy: UpdatePolicy) -> float:
        """Smaller steps for large jumps, larger steps when uncertainty collapses."""
        rate = policy.learning_rate
        if abs(proposed.belief - current.belief) > 0.5:
            rate *= 0.5
        if proposed.uncertainty / (current.uncertainty + 0.01) < 0.5:
            rate *= 1.5
        return clamp(rate, 0.01, 1.0)

    def estimate_source_reliability(self, source: str) -> float:
        """
        Share of a source's past updates whose resulting belief landed on the
        same side of 0.5 as its evidence.
        """
        correct = 0
        total = 0
        for records in self.history.values():
            for record in records:
                if record.evidence is None or record.evidence.source != source:
                    continue
                total += 1
                c = record.evidence.confidence
                if (record.belief > 0.5 and c > 0.5) or (record.belief < 0.5 and c < 0.5):
                    correct += 1
        if total == 0:
            return self.params.updater_default_reliability
        return correct / total

    def _record(self, topic: str, belief: BeliefState, evidence: Evidence, update_type: str) -> None:
        records = self.history.setdefault(topic, [])
        records.append(BeliefRecord(
            belief=belief.belief,
            uncertainty=belief.uncertainty,
            update_type=update_type,
            evidence=evidence,
        ))
        limit = self.params.history_limit
        if len(records) > limit:
            del records[:len(records) - limit]

    def _update_confidence(self, topic: str, belief: BeliefState) -> float:
        """Certainty of the new belief times the convergence/stability of recent history."""
        convergence = 1.0
        stability = 1.0
        records = self.history.get(topic, [])
        if len(records) > 5:
            recent = [r.belief for r in records[-5:]]
            mean = sum(recent) / len(recent)
            variance = sum((b - mean) ** 2 for b in recent) / len(recent)
            convergence = 1 / (1 + variance)
            oscillations = sum(
                1 for i in range(1, len(recent) - 1)
                if (recent[i] - recent[i - 1]) * (recent[i + 1] - recent[i]) < 0
            )
            stability = 1 - oscillations / (len(recent) - 2)
        return clamp((1 - belief.uncertainty) * (convergence + stability) / 2)

    # =========================================================================
    # Propagation
    # =========================================================================

    def related_topics(self, topic: str) -> List[str]:
        related: List[str] = []
        if topic in self.network:
            related.extend(self.network.children(topic))
            related.extend(self.network.parents(topic))
        for other in self.beliefs:
            if other != topic and jaccard(topic, other) > 0.7:
                related.append(other)
        return list(dict.fromkeys(related))

    def influence(self, source: str, target: str) -> float:
        if source in self.network and target in self.network:
            if target in self.network.children(source):
                return 0.8
            if target in self.network.parents(source):
                return 0.6
        return jaccard(source, target) * 0.5

    def propagate_changes(self, topics: Sequence[str]) -> List[str]:
        """
        Breadth-first spread of belief changes to related topics. Returns the
        topics whose beliefs were moved.
        """
        visited = set()
        moved: List[str] = []
        queue = list(topics)
        while queue:
            topic = queue.pop(0)
            if topic in visited:
                continue
            visited.add(topic)
            for related in self.related_topics(topic):
                if related in visited:
                    continue
                strength = self.influence(topic, related)
                if strength <= self.params.propagation_threshold:
                    continue
                source, target = self.beliefs.get(topic), self.beliefs.get(related)
                if source is None or target is None:
                    continue
                delta = (source.belief - target.belief) * strength * self.params.propagation_rate
                self.beliefs[related] = BeliefState(
                    belief=clamp(target.belief + delta),
                    uncertainty=target.uncertainty + abs(delta) * 0.1,
                    evidence=target.evidence,
                    posterior=target.posterior,
                )
                moved.append(related)
                queue.append(related)
        return moved
