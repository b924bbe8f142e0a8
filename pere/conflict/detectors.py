"""
Conflict Detection
==================

Pairwise and multi-way disagreement between evidence items.

Four pairwise detectors run in priority order:
  1. contradiction  - negation patterns, antonym pairs, opposed confidence
  2. inconsistency  - negated propositions about the same subject, or a
                      rapid confidence swing between close timestamps
  3. uncertainty    - two weak sources that disagree, or one confident and
                      one weak source on the same topic
  4. ambiguity      - vague language or very short content

The first detector whose score clears its cutoff classifies the pair.
Otherwise the highest remaining score decides, and the pair is reported
only if that score exceeds the conflict threshold.
"""

import logging
from itertools import combinations
from typing import Dict, List, Optional, Sequence, Tuple

from ..parameters import Parameters
from ..text import (
    CONFLICT_ANTONYMS, CONTRADICTION_PATTERNS, VAGUE_TERMS,
    conflict_topic, contains_any, first_word, has_pair, jaccard,
    negation_mismatch, propositions, same_declared_topic, topic_similarity,
)
from ..types import ConflictMetrics, ConflictType, Evidence


logger = logging.getLogger(__name__)

SHORT_CONTENT_LENGTH = 50


class ConflictDetector:
    """
    Scores evidence pairs and groups for conflict.

    Detectors are plain methods so resolvers can reuse individual scores
    (argumentation uses contradiction and inconsistency as attack strength).
    """

    def __init__(self, params: Parameters = None):
        self.params = params or Parameters()

    # =========================================================================
    # Pairwise detectors
    # =========================================================================

    def contradiction(self, a: Evidence, b: Evidence) -> float:
        for positive, negative in CONTRADICTION_PATTERNS:
            if has_pair(a.content, b.content, [(positive, negative)]):
                if topic_similarity(a, b) > self.params.topic_similarity_threshold \
                        or same_declared_topic(a, b):
                    return 0.95
                return 0.85

        if has_pair(a.content, b.content, CONFLICT_ANTONYMS):
            return 0.8

        gap = abs(a.confidence - b.confidence)
        if gap > 0.6 and topic_similarity(a, b) > self.params.topic_similarity_threshold:
            return 0.7

        if same_declared_topic(a, b) and jaccard(a.content, b.content) < 0.2 and gap < 0.1:
            return 0.6

        return 0.0

    def inconsistency(self, a: Evidence, b: Evidence) -> float:
        for p in propositions(a.content):
            for q in propositions(b.content):
                if (negation_mismatch(p, q) or negation_mismatch(q, p)) \
                        and first_word(p) == first_word(q):
                    return 0.8

        if a.timestamp is not None and b.timestamp is not None:
            seconds = abs((a.timestamp - b.timestamp).total_seconds())
            if seconds < self.params.rapid_divergence_seconds \
                    and abs(a.confidence - b.confidence) > 0.5:
                return 0.6

        return 0.0

    def uncertainty_conflict(self, a: Evidence, b: Evidence) -> float:
        if a.confidence < 0.5 and b.confidence < 0.5 and jaccard(a.content, b.content) < 0.3:
            return 0.7

        gap = abs(a.confidence - b.confidence)
        if gap > 0.6 and topic_similarity(a, b) > 0.8:
            return gap * 0.8

        return 0.0

    def ambiguity(self, a: Evidence, b: Evidence) -> float:
        if contains_any(a.content, VAGUE_TERMS) and contains_any(b.content, VAGUE_TERMS):
            return 0.6
        if len(a.content) < SHORT_CONTENT_LENGTH or len(b.content) < SHORT_CONTENT_LENGTH:
            return 0.4
        return 0.0

    def attack_strength(self, attacker: Evidence, target: Evidence) -> float:
        return max(
            self.contradiction(attacker, target),
            self.inconsistency(attacker, target) * self.params.inconsistency_attack_weight,
        )

    # =========================================================================
    # Classification
    # =========================================================================

    def classify_pair(self, a: Evidence, b: Evidence) -> Tuple[ConflictType, float]:
        """Conflict type and severity for one pair (severity may be 0)."""
        p = self.params
        detectors = (
            (ConflictType.CONTRADICTION, self.contradiction, p.contradiction_cutoff),
            (ConflictType.INCONSISTENCY, self.inconsistency, p.inconsistency_cutoff),
            (ConflictType.UNCERTAINTY, self.uncertainty_conflict, p.uncertainty_cutoff),
            (ConflictType.AMBIGUITY, self.ambiguity, 0.0),
        )
        scores: List[Tuple[ConflictType, float]] = []
        for conflict_type, detector, cutoff in detectors:
            score = detector(a, b)
            if score > cutoff:
                return conflict_type, score
            scores.append((conflict_type, score))

        # Nothing cleared its cutoff; keep the strongest signal (earlier wins ties)
        best_type, best_score = scores[0]
        for conflict_type, score in scores[1:]:
            if score > best_score:
                best_type, best_score = conflict_type, score
        return best_type, best_score

    def analyze_pair(self, a: Evidence, b: Evidence) -> Optional[ConflictMetrics]:
        conflict_type, severity = self.classify_pair(a, b)
        if severity <= self.params.conflict_threshold:
            return None
        return ConflictMetrics(
            severity=severity,
            type=conflict_type,
            sources=[a.source, b.source],
            evidence=[a, b],
            description=f"{conflict_type.value} between {a.source} and {b.source}",
        )

    # =========================================================================
    # Multi-way
    # =========================================================================

    @staticmethod
    def group_by_topic(evidence: Sequence[Evidence]) -> Dict[str, List[Evidence]]:
        groups: Dict[str, List[Evidence]] = {}
        for e in evidence:
            groups.setdefault(conflict_topic(e), []).append(e)
        return groups

    @staticmethod
    def consensus(group: Sequence[Evidence]) -> float:
        """Mean pairwise confidence agreement (1 - |c_i - c_j|)."""
        pairs = list(combinations(group, 2))
        if not pairs:
            return 1.0
        return sum(1.0 - abs(a.confidence - b.confidence) for a, b in pairs) / len(pairs)

    def detect_multiway(self, evidence: Sequence[Evidence]) -> List[ConflictMetrics]:
        conflicts = []
        for topic, group in self.group_by_topic(evidence).items():
            if len(group) < self.params.multiway_min_group:
                continue
            agreement = self.consensus(group)
            if agreement < self.params.multiway_agreement_threshold:
                conflicts.append(ConflictMetrics(
                    severity=1.0 - agreement,
                    type=ConflictType.INCONSISTENCY,
                    sources=[e.source for e in group],
                    evidence=list(group),
                    description=f"consensus breakdown on {topic!r} across {len(group)} items",
                ))
        return conflicts

    def detect(self, evidence: Sequence[Evidence]) -> List[ConflictMetrics]:
        """All pairwise and multi-way conflicts, most severe first."""
        conflicts = []
        for a, b in combinations(evidence, 2):
            found = self.analyze_pair(a, b)
            if found is not None:
                logger.debug("Conflict %s (%.2f): %r vs %r",
                             found.type.value, found.severity, a.content, b.content)
                conflicts.append(found)
        conflicts.extend(self.detect_multiway(evidence))
        conflicts.sort(key=lambda c: c.severity, reverse=True)
        return conflicts
