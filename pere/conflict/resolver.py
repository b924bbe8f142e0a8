"""
Conflict Resolver
=================

Detects conflicts among evidence and resolves them with one of four
strategies:

- argumentation: grounded extension over an attack graph, strongest member wins
- negotiation: positions concede toward the mean until their variance is small
- voting: plurality, Borda or approval over simulated ballots
- hierarchical: source tiers by id heuristics, highest tier_weight x confidence

Each resolution is recorded in the resolver's own history. Input evidence is
never mutated; resolved evidence is always a new record.
"""

import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..options import ResolutionStrategy
from ..parameters import Parameters
from ..types import (
    ConflictMetrics, ConflictResolution, Evidence, ResolutionMethod, SourceTier, utcnow,
)
from .argumentation import ArgumentationFramework, select_winner
from .detectors import ConflictDetector
from .voting import VOTING_RULES, collect_ballots, summarize


logger = logging.getLogger(__name__)

# Source-id substrings that place a source in a tier
TIER_MARKERS = {
    SourceTier.PRIMARY: ('official', 'primary'),
    SourceTier.SECONDARY: ('expert', 'analysis'),
}


def classify_source(source: str) -> SourceTier:
    lowered = source.lower()
    for tier, markers in TIER_MARKERS.items():
        if any(m in lowered for m in markers):
            return tier
    return SourceTier.TERTIARY


class ConflictResolver:
    """
    Conflict detection plus strategy-based resolution.

    Usage:
        resolver = ConflictResolver(seed=7)
        conflicts = resolver.detect_conflicts(evidence)
        resolutions = resolver.resolve_conflicts(
            evidence, conflicts, ResolutionStrategy(method="argumentation"))
    """

    def __init__(self, params: Parameters = None, seed: Optional[int] = None):
        self.params = params or Parameters()
        self.detector = ConflictDetector(self.params)
        self._rng = np.random.default_rng(seed)
        self.history: List[ConflictMetrics] = []

    # =========================================================================
    # Detection
    # =========================================================================

    def detect_conflicts(self, evidence: Sequence[Evidence]) -> List[ConflictMetrics]:
        conflicts = self.detector.detect(evidence)
        logger.debug("Detected %d conflicts among %d evidence", len(conflicts), len(evidence))
        return conflicts

    # =========================================================================
    # Resolution
    # =========================================================================

    def resolve_conflicts(
        self,
        evidence: Sequence[Evidence],
        conflicts: Sequence[ConflictMetrics],
        strategy: Optional[ResolutionStrategy] = None,
    ) -> List[ConflictResolution]:
        """
        Resolve each conflict over its own evidence (or all evidence when the
        conflict does not carry any). A missing strategy falls back to the
        default weighted average.
        """
        resolutions = []
        for conflict in conflicts:
            involved = list(conflict.evidence) or list(evidence)
            resolution = self._dispatch(involved, strategy)
            resolutions.append(resolution)
            self.history.append(replace(conflict, resolution=resolution))
        return resolutions

    def _dispatch(
        self,
        evidence: List[Evidence],
        strategy: Optional[ResolutionStrategy],
    ) -> ConflictResolution:
        if not evidence:
            return ConflictResolution(method='none', confidence=0.0,
                                      explanation='No evidence to resolve')
        if strategy is None:
            return self.default_resolution(evidence)
        if strategy.method == ResolutionMethod.ARGUMENTATION:
            return self.argumentation(evidence)
        if strategy.method == ResolutionMethod.NEGOTIATION:
            return self.negotiation(evidence, max_rounds=strategy.parameters.get(
                'max_rounds', self.params.negotiation_max_rounds))
        if strategy.method == ResolutionMethod.VOTING:
            return self.voting(evidence, strategy.voting_method)
        if strategy.method == ResolutionMethod.HIERARCHICAL:
            return self.hierarchical(evidence, strategy.parameters.get('hierarchy'))
        return self.default_resolution(evidence)

    def argumentation(self, evidence: Sequence[Evidence]) -> ConflictResolution:
        framework = ArgumentationFramework.build(
            evidence, self.detector.attack_strength, self.params.attack_threshold,
        )
        extension = framework.grounded_extension()
        winner = select_winner(extension)
        if winner is None:
            return ConflictResolution(
                method='argumentation',
                confidence=0.0,
                explanation='No acceptable argument found',
            )
        return ConflictResolution(
            method='argumentation',
            confidence=winner.strength,
            explanation=(f"Argument {winner.id} prevails under grounded semantics "
                         f"({len(extension)} accepted, {framework.attack_count} attacks)"),
            resolved_evidence=winner.evidence,
            supporting_evidence=[a.evidence for a in extension],
        )

    def negotiation(self, evidence: Sequence[Evidence], max_rounds: int = None) -> ConflictResolution:
        """
        Every round each position moves a fixed fraction toward the mean.
        Agreement is reached once the positions' variance drops below the
        agreement threshold.
        """
        max_rounds = max_rounds or self.params.negotiation_max_rounds
        positions = np.array([e.confidence for e in evidence], dtype=float)
        concession = self.params.negotiation_concession

        for round_number in range(1, max_rounds + 1):
            positions = positions + (positions.mean() - positions) * concession
            variance = float(positions.var())
            if variance < self.params.negotiation_agreement_variance:
                compromise = float(positions.mean())
                return ConflictResolution(
                    method='negotiation',
                    confidence=1.0 - variance,
                    explanation=f"Agreement reached after {round_number} rounds",
                    resolved_evidence=Evidence(
                        content='Negotiated consensus',
                        source='negotiation',
                        confidence=min(1.0, max(0.0, compromise)),
                        timestamp=utcnow(),
                    ),
                    supporting_evidence=list(evidence),
                    compromise=compromise,
                )

        logger.warning("Negotiation among %d positions did not converge in %d rounds",
                       len(evidence), max_rounds)
        return ConflictResolution(
            method='negotiation',
            confidence=0.0,
            explanation=f"No agreement reached in {max_rounds} rounds",
        )

    def voting(self, evidence: Sequence[Evidence], method: str = 'plurality') -> ConflictResolution:
        rule = VOTING_RULES[method]
        ballots = collect_ballots(evidence, self._rng)
        winner, confidence = rule(ballots)
        if winner is None:
            return ConflictResolution(method='voting', confidence=0.0,
                                      explanation='No clear winner in voting')
        return ConflictResolution(
            method='voting',
            confidence=confidence,
            explanation=f"Selected by {method} voting",
            resolved_evidence=ballots[winner].evidence,
            votes=summarize(ballots),
        )

    def hierarchical(
        self,
        evidence: Sequence[Evidence],
        hierarchy: Optional[Dict[str, List[str]]] = None,
    ) -> ConflictResolution:
        """
        Highest tier_weight x confidence wins.

        `hierarchy` optionally maps tier names to source ids; sources it does
        not list get the unclassified weight. Without it, sources are tiered
        by substrings of their ids.
        """
        if hierarchy is None:
            hierarchy = self.build_hierarchy(evidence)
        weights = dict(zip(
            (SourceTier.PRIMARY.value, SourceTier.SECONDARY.value, SourceTier.TERTIARY.value),
            self.params.authority_weights,
        ))

        best: Optional[Evidence] = None
        best_authority = 0.0
        for e in evidence:
            authority = self._authority(e, hierarchy, weights)
            if authority > best_authority:
                best, best_authority = e, authority

        if best is None:
            return ConflictResolution(method='hierarchical', confidence=0.0,
                                      explanation='No clear hierarchical winner',
                                      hierarchy=hierarchy)
        return ConflictResolution(
            method='hierarchical',
            confidence=best_authority,
            explanation=f"Selected by hierarchical authority ({best_authority:.2f})",
            resolved_evidence=best,
            hierarchy=hierarchy,
        )

    @staticmethod
    def build_hierarchy(evidence: Sequence[Evidence]) -> Dict[str, List[str]]:
        hierarchy: Dict[str, List[str]] = {tier.value: [] for tier in SourceTier}
        for e in evidence:
            tier = classify_source(e.source).value
            if e.source not in hierarchy[tier]:
                hierarchy[tier].append(e.source)
        return hierarchy

    def _authority(
        self,
        evidence: Evidence,
        hierarchy: Dict[str, List[str]],
        weights: Dict[str, float],
    ) -> float:
        for tier, sources in hierarchy.items():
            if evidence.source in sources and tier in weights:
                return weights[tier] * evidence.confidence
        return self.params.unclassified_authority_weight * evidence.confidence

    def default_resolution(self, evidence: Sequence[Evidence]) -> ConflictResolution:
        """Confidence-weighted average of the conflicting evidence."""
        total = sum(e.confidence for e in evidence)
        if total <= 0:
            return ConflictResolution(method='none', confidence=0.0,
                                      explanation='Unable to resolve conflict')
        consensus = sum(e.confidence * e.confidence for e in evidence) / total
        content = 'Weighted consensus: ' + '; '.join(
            f"{e.content} ({e.confidence:.2f})" for e in evidence
        )
        return ConflictResolution(
            method='weighted_average',
            confidence=self.params.default_resolution_confidence,
            explanation='Resolved using weighted average',
            resolved_evidence=Evidence(
                content=content,
                source='conflict_resolver',
                confidence=min(1.0, consensus),
                timestamp=utcnow(),
            ),
            supporting_evidence=list(evidence),
            compromise=consensus,
        )

    # =========================================================================
    # History
    # =========================================================================

    def get_statistics(self) -> Dict[str, object]:
        total = len(self.history)
        by_type: Dict[str, int] = {}
        resolved = 0
        severity = 0.0
        for metric in self.history:
            by_type[metric.type.value] = by_type.get(metric.type.value, 0) + 1
            severity += metric.severity
            if metric.resolution is not None and metric.resolution.confidence > 0:
                resolved += 1
        return {
            'total_conflicts': total,
            'resolution_rate': resolved / total if total else 0.0,
            'avg_severity': severity / total if total else 0.0,
            'conflict_types': by_type,
        }

    def clear_history(self) -> None:
        self.history.clear()
