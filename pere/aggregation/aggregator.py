"""
Evidence Aggregator
===================

Combines evidence from several named sources into per-topic belief states.

Methods:
- weighted: reliability x expertise x recency weights; conflicting subsets
  are re-resolved with Dempster-Shafer, averaging or max-confidence
- hierarchical: reliability tiers aggregated separately, then folded
  together tier by tier
- pooling: linear opinion pool, blended with a logarithmic pool when the
  linear result is extreme

Every aggregate() call builds a fresh network from the current evidence, so
repeated calls never accumulate stale nodes.
"""

import logging
import math
import time
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence

from ..errors import InsufficientSourcesError, UnknownSourceError
from ..inference import InferenceEngine
from ..network import BayesianNetwork
from ..options import AggregationOptions, InferenceQuery
from ..parameters import Parameters
from ..text import NEGATION_MARKERS, OPPOSITION_ANTONYMS, aggregation_topic, contains_any, has_pair
from ..types import (
    AggregatedEvidence, AggregationMethod, BeliefState, ConflictResolutionMethod,
    Evidence, age_days, clamp, utcnow,
)
from .dempster_shafer import averaging_belief, dempster_shafer_belief, max_confidence_belief


logger = logging.getLogger(__name__)

LOG_POOL_FLOOR = 1e-6


@dataclass
class EvidenceSource:
    """A named source with its reliability and the evidence it supplied."""
    id: str
    reliability: float
    evidence: List[Evidence] = field(default_factory=list)
    bias: Dict[str, float] = field(default_factory=dict)
    expertise: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.reliability = clamp(self.reliability)


@dataclass
class SourceLevel:
    """One reliability tier used by hierarchical aggregation."""
    level: int
    sources: List[str]
    weight: float

    def to_dict(self) -> Dict[str, object]:
        return {'level': self.level, 'sources': list(self.sources), 'weight': self.weight}


class EvidenceAggregator:
    """
    Multi-source evidence aggregation.

    Usage:
        aggregator = EvidenceAggregator()
        aggregator.add_source(EvidenceSource("reuters", 0.9, evidence=[...]))
        result = aggregator.aggregate(AggregationOptions(method="pooling"))
    """

    def __init__(self, params: Parameters = None):
        self.params = params or Parameters()
        self.sources: Dict[str, EvidenceSource] = {}
        self.network = BayesianNetwork(self.params)
        self.engine = InferenceEngine(self.network, self.params)
        self.history: List[AggregatedEvidence] = []

    # =========================================================================
    # Sources
    # =========================================================================

    def add_source(self, source: EvidenceSource) -> None:
        if source.id in self.sources:
            logger.debug("Replacing source %s", source.id)
        self.sources[source.id] = source

    def add_evidence(self, evidence: Evidence) -> None:
        """Attach evidence to its source, registering unknown sources at default reliability."""
        source = self.sources.get(evidence.source)
        if source is None:
            source = EvidenceSource(evidence.source, self.params.default_source_reliability)
            self.sources[source.id] = source
        source.evidence.append(evidence)

    def update_source_reliability(self, source_id: str, accuracy: float) -> float:
        """Move reliability toward an observed accuracy with momentum."""
        source = self._source(source_id)
        momentum = self.params.reliability_momentum
        updated = source.reliability * momentum + clamp(accuracy) * (1 - momentum)
        source.reliability = clamp(updated, self.params.min_source_reliability, 1.0)
        return source.reliability

    def merge_sources(self, source_ids: Sequence[str], merged_id: str) -> EvidenceSource:
        """
        Replace several sources with one.

        The merged reliability is the evidence-count weighted mean of the
        originals; the evidence is re-attributed to merged_id.

        Raises:
            InsufficientSourcesError: fewer than two distinct sources
            UnknownSourceError: a source id is not registered
        """
        ids = list(dict.fromkeys(source_ids))
        if len(ids) < 2:
            raise InsufficientSourcesError("merge_sources", len(ids))
        originals = [self._source(i) for i in ids]

        counts = [len(s.evidence) for s in originals]
        if sum(counts) > 0:
            reliability = sum(s.reliability * n for s, n in zip(originals, counts)) / sum(counts)
        else:
            reliability = sum(s.reliability for s in originals) / len(originals)

        bias: Dict[str, List[float]] = {}
        expertise: List[str] = []
        evidence: List[Evidence] = []
        for s in originals:
            for key, value in s.bias.items():
                bias.setdefault(key, []).append(value)
            expertise.extend(x for x in s.expertise if x not in expertise)
            evidence.extend(replace(e, source=merged_id) for e in s.evidence)

        for i in ids:
            del self.sources[i]
        merged = EvidenceSource(
            id=merged_id,
            reliability=reliability,
            evidence=evidence,
            bias={k: sum(v) / len(v) for k, v in bias.items()},
            expertise=expertise,
        )
        self.sources[merged_id] = merged
        logger.info("Merged %d sources into %s (reliability %.3f)", len(ids), merged_id, reliability)
        return merged

    def _source(self, source_id: str) -> EvidenceSource:
        try:
            return self.sources[source_id]
        except KeyError:
            raise UnknownSourceError(f"unknown source {source_id!r}") from None

    def collect_evidence(self) -> List[Evidence]:
        return [e for source in self.sources.values() for e in source.evidence]

    # =========================================================================
    # Aggregation
    # =========================================================================

    def aggregate(self, options: Optional[AggregationOptions] = None) -> AggregatedEvidence:
        options = options or AggregationOptions()
        started = time.perf_counter()

        evidence = self.collect_evidence()
        self.network = BayesianNetwork(self.params)
        self.network.construct_from_evidence(evidence)
        self.engine = InferenceEngine(self.network, self.params)

        if options.method == AggregationMethod.HIERARCHICAL:
            result = self._hierarchical(evidence, options)
        elif options.method == AggregationMethod.POOLING:
            result = self._pooling(evidence, options)
        else:
            result = self._weighted(evidence, options)

        result.timestamp = utcnow()
        result.processing_time_ms = (time.perf_counter() - started) * 1000.0
        result.source_count = len(self.sources)

        self.history.append(result)
        if len(self.history) > self.params.history_limit:
            del self.history[0]

        logger.info(
            "Aggregated %d evidence from %d sources into %d topics (%s, confidence %.3f)",
            len(evidence), len(self.sources), len(result.belief_states),
            result.method, result.confidence,
        )
        return result

    def _weighted(self, evidence: List[Evidence], options: AggregationOptions) -> AggregatedEvidence:
        beliefs: Dict[str, BeliefState] = {}
        conflicts: Dict[str, List[Evidence]] = {}

        for topic, items in self.group_by_topic(evidence).items():
            conflicting = self.detect_conflicts(items)
            if conflicting:
                conflicts[topic] = conflicting
            beliefs[topic] = self.weighted_belief(topic, items)

        for topic, conflicting in conflicts.items():
            beliefs[topic] = self.resolve_conflict(conflicting, options.conflict_resolution)

        return AggregatedEvidence(
            belief_states=beliefs,
            confidence=self.overall_confidence(beliefs),
            method=AggregationMethod.WEIGHTED.value,
            uncertainty=self.propagate_uncertainty(beliefs) if options.uncertainty_propagation else None,
            conflicts=conflicts,
        )

    def _hierarchical(self, evidence: List[Evidence], options: AggregationOptions) -> AggregatedEvidence:
        beliefs: Dict[str, BeliefState] = {}
        levels = self.build_source_hierarchy()

        for level in levels:
            members = set(level.sources)
            level_evidence = [e for e in evidence if e.source in members]
            for topic, items in self.group_by_topic(level_evidence).items():
                belief = self.weighted_belief(topic, items)
                if topic in beliefs:
                    beliefs[topic] = combine_belief_states(beliefs[topic], belief, level.weight)
                else:
                    beliefs[topic] = belief

        return AggregatedEvidence(
            belief_states=beliefs,
            confidence=self.overall_confidence(beliefs),
            method=AggregationMethod.HIERARCHICAL.value,
            uncertainty=self.propagate_uncertainty(beliefs) if options.uncertainty_propagation else None,
            hierarchy={'levels': [level.to_dict() for level in levels]},
        )

    def _pooling(self, evidence: List[Evidence], options: AggregationOptions) -> AggregatedEvidence:
        beliefs: Dict[str, BeliefState] = {}
        low, high = self.params.pooling_extreme_bounds

        for topic, items in self.group_by_topic(evidence).items():
            pooled = self.linear_pool(items)
            if pooled.belief < low or pooled.belief > high:
                pooled = blend_belief_states(pooled, self.logarithmic_pool(items),
                                             self.params.pooling_linear_weight)
            beliefs[topic] = pooled

        return AggregatedEvidence(
            belief_states=beliefs,
            confidence=self.overall_confidence(beliefs),
            method=AggregationMethod.POOLING.value,
            uncertainty=self.propagate_uncertainty(beliefs) if options.uncertainty_propagation else None,
        )

    # =========================================================================
    # Weights and beliefs
    # =========================================================================

    @staticmethod
    def group_by_topic(evidence: Sequence[Evidence]) -> Dict[str, List[Evidence]]:
        grouped: Dict[str, List[Evidence]] = {}
        for e in evidence:
            grouped.setdefault(aggregation_topic(e), []).append(e)
        return grouped

    def evidence_weight(self, evidence: Evidence) -> float:
        """reliability x expertise boost x exp(-age / decay), capped at 1."""
        source = self.sources.get(evidence.source)
        weight = source.reliability if source else self.params.default_source_reliability
        if source and source.expertise and evidence.topic:
            topic = evidence.topic.lower()
            if any(x.lower() in topic for x in source.expertise):
                weight *= self.params.expertise_boost
        if evidence.timestamp is not None:
            weight *= math.exp(-age_days(evidence.timestamp) / self.params.recency_decay_days)
        return min(weight, 1.0)

    def weighted_belief(self, topic: str, evidence: Sequence[Evidence]) -> BeliefState:
        weights = [self.evidence_weight(e) for e in evidence]
        total = sum(weights)
        if total > 0:
            mean = sum(w * e.confidence for w, e in zip(weights, evidence)) / total
            variance = sum(w * (e.confidence - mean) ** 2 for w, e in zip(weights, evidence)) / total
        else:
            mean, variance = 0.5, 0.0
        return BeliefState(
            belief=mean,
            uncertainty=math.sqrt(variance),
            evidence=tuple(evidence),
            posterior=self._posterior(topic, mean),
        )

    def _posterior(self, topic: str, mean: float) -> Dict[str, float]:
        if topic in self.network:
            return dict(self.engine.infer(InferenceQuery(target=topic)).posterior)
        # no node for derived topics; report a coarse band instead
        return {
            'high': 0.8 if mean > 0.7 else 0.2,
            'medium': 0.6 if 0.3 < mean <= 0.7 else 0.2,
            'low': 0.8 if mean <= 0.3 else 0.2,
        }

    def linear_pool(self, evidence: Sequence[Evidence]) -> BeliefState:
        weights = [self.evidence_weight(e) for e in evidence]
        total = sum(weights)
        belief = sum(w * e.confidence for w, e in zip(weights, evidence)) / total if total > 0 else 0.5
        return BeliefState(belief=belief, uncertainty=pooling_uncertainty(evidence, belief),
                           evidence=tuple(evidence))

    def logarithmic_pool(self, evidence: Sequence[Evidence]) -> BeliefState:
        """Weighted geometric mean of confidences."""
        weights = [self.evidence_weight(e) for e in evidence]
        total = sum(weights)
        if total > 0:
            log_sum = sum(w * math.log(max(e.confidence, LOG_POOL_FLOOR))
                          for w, e in zip(weights, evidence))
            belief = math.exp(log_sum / total)
        else:
            belief = 0.5
        return BeliefState(belief=belief, uncertainty=pooling_uncertainty(evidence, belief),
                           evidence=tuple(evidence))

    # =========================================================================
    # Conflicts
    # =========================================================================

    def conflict_score(self, a: Evidence, b: Evidence) -> float:
        """Pairwise conflict in [0, 1] from sentiment, opposing claims, or confidence gap."""
        if a.sentiment is not None and b.sentiment is not None:
            gap = abs(a.sentiment - b.sentiment)
            if gap > 1.5:
                return gap / 2

        if has_opposite_claims(a, b):
            return 0.8 + 0.2 * min(a.confidence, b.confidence)

        gap = abs(a.confidence - b.confidence)
        if gap > 0.4 and aggregation_topic(a) == aggregation_topic(b):
            if max(a.confidence, b.confidence) > 0.7 and min(a.confidence, b.confidence) < 0.3:
                return 0.7
            return gap * 0.6
        return 0.0

    def detect_conflicts(self, evidence: Sequence[Evidence]) -> List[Evidence]:
        """Every item that takes part in at least one conflicting pair, in input order."""
        threshold = self.params.aggregation_conflict_threshold
        flagged = [False] * len(evidence)
        for i in range(len(evidence)):
            for j in range(i + 1, len(evidence)):
                if self.conflict_score(evidence[i], evidence[j]) > threshold:
                    flagged[i] = flagged[j] = True
        return [e for e, hit in zip(evidence, flagged) if hit]

    def resolve_conflict(
        self,
        evidence: Sequence[Evidence],
        method: ConflictResolutionMethod,
    ) -> BeliefState:
        if method == ConflictResolutionMethod.DEMPSTER_SHAFER:
            reliabilities = {sid: s.reliability for sid, s in self.sources.items()}
            return dempster_shafer_belief(evidence, reliabilities)
        if method == ConflictResolutionMethod.MAX_CONFIDENCE:
            return max_confidence_belief(evidence, self.params)
        return averaging_belief(evidence)

    # =========================================================================
    # Hierarchy, confidence, propagation
    # =========================================================================

    def build_source_hierarchy(self) -> List[SourceLevel]:
        upper, lower = self.params.reliability_tier_bounds
        high_w, mid_w, low_w = self.params.reliability_tier_weights
        tiers = [
            [sid for sid, s in self.sources.items() if s.reliability > upper],
            [sid for sid, s in self.sources.items() if lower < s.reliability <= upper],
            [sid for sid, s in self.sources.items() if s.reliability <= lower],
        ]
        return [
            SourceLevel(level=i + 1, sources=members, weight=weight)
            for i, (members, weight) in enumerate(zip(tiers, (high_w, mid_w, low_w)))
            if members
        ]

    @staticmethod
    def overall_confidence(beliefs: Dict[str, BeliefState]) -> float:
        """Mean of belief x (1 - uncertainty) over topics; 0 with no topics."""
        if not beliefs:
            return 0.0
        return sum(b.belief * (1 - b.uncertainty) for b in beliefs.values()) / len(beliefs)

    def propagate_uncertainty(self, beliefs: Dict[str, BeliefState]) -> Dict[str, float]:
        """
        Each topic keeps its own uncertainty; its network children receive at
        least the parent's uncertainty decayed by propagation_decay.
        """
        propagated = {topic: b.uncertainty for topic, b in beliefs.items()}
        decay = self.params.propagation_decay
        for topic, belief in beliefs.items():
            if topic not in self.network:
                continue
            for child in self.network.children(topic):
                propagated[child] = max(propagated.get(child, 0.0), belief.uncertainty * decay)
        return propagated

    def get_statistics(self) -> Dict[str, float]:
        evidence = self.collect_evidence()
        conflicting = self.detect_conflicts(evidence)
        total_reliability = sum(s.reliability for s in self.sources.values())
        return {
            'total_sources': len(self.sources),
            'total_evidence': len(evidence),
            'avg_reliability': total_reliability / len(self.sources) if self.sources else 0.0,
            'conflict_rate': len(conflicting) / len(evidence) if evidence else 0.0,
        }


# =============================================================================
# HELPERS
# =============================================================================

def has_opposite_claims(a: Evidence, b: Evidence) -> bool:
    """Opposing antonyms across the pair, or a negation on exactly one side."""
    if has_pair(a.content, b.content, OPPOSITION_ANTONYMS):
        return True
    return contains_any(a.content, NEGATION_MARKERS) != contains_any(b.content, NEGATION_MARKERS)


def pooling_uncertainty(evidence: Sequence[Evidence], pooled: float) -> float:
    if not evidence:
        return 0.0
    return math.sqrt(sum((e.confidence - pooled) ** 2 for e in evidence) / len(evidence))


def combine_belief_states(first: BeliefState, second: BeliefState, weight: float) -> BeliefState:
    """Fold `second` into `first` with weight w: prev(1-w) + new w."""
    posterior = None
    if first.posterior and second.posterior:
        keys = list(dict.fromkeys(list(first.posterior) + list(second.posterior)))
        posterior = {
            k: first.posterior.get(k, 0.0) * (1 - weight) + second.posterior.get(k, 0.0) * weight
            for k in keys
        }
    return BeliefState(
        belief=first.belief * (1 - weight) + second.belief * weight,
        uncertainty=math.sqrt(first.uncertainty ** 2 * (1 - weight) + second.uncertainty ** 2 * weight),
        evidence=first.evidence + second.evidence,
        posterior=posterior,
    )


def blend_belief_states(first: BeliefState, second: BeliefState, alpha: float) -> BeliefState:
    """alpha of `first`, 1 - alpha of `second`; evidence is taken from `first`."""
    return BeliefState(
        belief=first.belief * alpha + second.belief * (1 - alpha),
        uncertainty=math.sqrt(first.uncertainty ** 2 * alpha + second.uncertainty ** 2 * (1 - alpha)),
        evidence=first.evidence,
    )
