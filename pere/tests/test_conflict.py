"""
Tests for conflict detection and resolution.

These tests verify:
- Each pairwise detector classifies its characteristic pair
- Opposing claims are contradictions of severity >= 0.7
- Argumentation defeat respects argument strength
- Negotiation, voting and hierarchical strategies pick sensible winners
- Input evidence is never mutated
"""

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest
from pydantic import ValidationError

from pere.conflict import (
    ArgumentationFramework,
    ConflictDetector,
    ConflictResolver,
    approval,
    borda,
    classify_source,
    collect_ballots,
    plurality,
)
from pere.options import ResolutionStrategy
from pere.parameters import Parameters
from pere.types import ConflictType, Evidence, SourceTier, utcnow


@pytest.fixture
def opposing():
    return [
        Evidence(content="Market sentiment is positive", source="analyst_a",
                 confidence=0.9, topic="market"),
        Evidence(content="Market sentiment is negative", source="analyst_b",
                 confidence=0.1, topic="market"),
    ]


# =============================================================================
# DETECTION
# =============================================================================

class TestDetection:

    def test_antonym_contradiction(self, opposing):
        conflicts = ConflictResolver().detect_conflicts(opposing)

        assert len(conflicts) == 1
        assert conflicts[0].type == ConflictType.CONTRADICTION
        assert conflicts[0].severity >= 0.7
        assert conflicts[0].sources == ["analyst_a", "analyst_b"]

    def test_negated_proposition_is_inconsistency(self):
        detector = ConflictDetector()
        a = Evidence(content="Server not running since morning.", source="ops", confidence=0.6)
        b = Evidence(content="Server running fine since morning.", source="monitor", confidence=0.6)

        conflict_type, severity = detector.classify_pair(a, b)
        assert conflict_type == ConflictType.INCONSISTENCY
        assert severity == pytest.approx(0.8)

    def test_rapid_divergence_is_inconsistency(self):
        now = utcnow()
        a = Evidence(content="Quarterly revenue numbers look solid overall", source="s1",
                     confidence=0.9, timestamp=now)
        b = Evidence(content="Shipping delays reported across several ports today", source="s2",
                     confidence=0.2, timestamp=now + timedelta(seconds=10))

        conflict_type, severity = ConflictDetector().classify_pair(a, b)
        assert conflict_type == ConflictType.INCONSISTENCY
        assert severity == pytest.approx(0.6)

    def test_mixed_naive_and_aware_timestamps(self):
        a = Evidence(content="Quarterly revenue numbers look solid overall", source="s1",
                     confidence=0.9, timestamp=datetime(2024, 3, 1, 12, 0, 0))
        b = Evidence(content="Shipping delays reported across several ports today", source="s2",
                     confidence=0.2, timestamp=datetime(2024, 3, 1, 12, 0, 10, tzinfo=timezone.utc))

        assert a.timestamp.tzinfo is timezone.utc
        conflicts = ConflictResolver().detect_conflicts([a, b])
        assert [c.type for c in conflicts] == [ConflictType.INCONSISTENCY]
        assert conflicts[0].severity == pytest.approx(0.6)

    def test_weak_disagreeing_sources_are_uncertainty(self):
        a = Evidence(content="Quarterly revenue numbers look solid overall", source="s1", confidence=0.3)
        b = Evidence(content="Shipping delays reported across several ports today", source="s2",
                     confidence=0.4)

        conflict_type, severity = ConflictDetector().classify_pair(a, b)
        assert conflict_type == ConflictType.UNCERTAINTY
        assert severity == pytest.approx(0.7)

    def test_vague_language_is_ambiguity(self):
        a = Evidence(content="Maybe prices rise", source="s1", confidence=0.6)
        b = Evidence(content="Perhaps prices could fall", source="s2", confidence=0.6)

        conflict_type, severity = ConflictDetector().classify_pair(a, b)
        assert conflict_type == ConflictType.AMBIGUITY
        assert severity == pytest.approx(0.6)

    def test_agreeing_evidence_has_no_conflict(self):
        text = "The quarterly report shows revenue growth across all regions"
        evidence = [
            Evidence(content=text, source="s1", confidence=0.8),
            Evidence(content=text, source="s2", confidence=0.8),
        ]
        assert ConflictResolver().detect_conflicts(evidence) == []

    def test_word_boundaries(self):
        """'agree' must not fire inside 'disagree'."""
        detector = ConflictDetector()
        a = Evidence(content="Committee members disagree on the new budget proposal today",
                     source="s1", confidence=0.6)
        b = Evidence(content="Committee members disagree on the new budget proposal again",
                     source="s2", confidence=0.6)
        assert detector.contradiction(a, b) == 0.0

    def test_multiway_breakdown(self):
        params = Parameters()
        params.multiway_agreement_threshold = 0.5
        detector = ConflictDetector(params)
        group = [
            Evidence(content="Rates will rise", source="a", confidence=1.0, topic="rates"),
            Evidence(content="Rates will hold", source="b", confidence=0.0, topic="rates"),
            Evidence(content="Rates will drop", source="c", confidence=0.0, topic="rates"),
        ]

        conflicts = detector.detect_multiway(group)
        assert len(conflicts) == 1
        assert conflicts[0].severity == pytest.approx(2 / 3)
        assert conflicts[0].sources == ["a", "b", "c"]

    def test_small_groups_are_not_multiway(self, opposing):
        assert ConflictDetector().detect_multiway(opposing) == []

    def test_detect_sorts_by_severity(self, opposing):
        extra = Evidence(content="Maybe", source="s3", confidence=0.5, topic="other")
        conflicts = ConflictDetector().detect(opposing + [extra])
        severities = [c.severity for c in conflicts]
        assert severities == sorted(severities, reverse=True)


# =============================================================================
# RESOLUTION
# =============================================================================

class TestArgumentation:

    def test_mutual_attack_admits_nothing(self, opposing):
        resolver = ConflictResolver()
        conflicts = resolver.detect_conflicts(opposing)
        resolutions = resolver.resolve_conflicts(
            opposing, conflicts, ResolutionStrategy(method="argumentation"))

        assert len(resolutions) == 1
        assert resolutions[0].method == "argumentation"
        assert resolutions[0].resolved_evidence is None
        assert resolutions[0].confidence == 0.0
        assert resolutions[0].explanation == "No acceptable argument found"

    def test_attacks_ignore_strength(self, opposing):
        detector = ConflictDetector()
        framework = ArgumentationFramework.build(opposing, detector.attack_strength, 0.5)

        assert framework.attack_count == 2
        assert framework.defeaters(0) == [1]
        assert framework.defeaters(1) == [0]
        assert framework.grounded_extension() == []

    def test_unattacked_argument_prevails(self, opposing):
        volume = Evidence(content="Trading volume rose steadily across major indices",
                          source="exchange_feed", confidence=0.7)
        evidence = opposing + [volume]

        framework = ArgumentationFramework.build(evidence, ConflictDetector().attack_strength, 0.5)
        assert [a.id for a in framework.grounded_extension()] == ["arg_2"]

        resolution = ConflictResolver().argumentation(evidence)
        assert resolution.resolved_evidence is volume
        assert resolution.confidence == pytest.approx(0.7)
        assert resolution.supporting_evidence == [volume]

    def test_equal_rivals_defeat_each_other(self):
        evidence = [
            Evidence(content="Outlook is positive", source="a", confidence=0.6, topic="t"),
            Evidence(content="Outlook is negative", source="b", confidence=0.6, topic="t"),
        ]
        resolution = ConflictResolver().argumentation(evidence)
        assert resolution.confidence == 0.0
        assert resolution.resolved_evidence is None


class TestNegotiation:

    def test_no_agreement_within_default_rounds(self, opposing):
        resolution = ConflictResolver().negotiation(opposing)
        assert resolution.confidence == 0.0
        assert "No agreement" in resolution.explanation

    def test_agreement_with_more_rounds(self, opposing):
        resolver = ConflictResolver()
        conflicts = resolver.detect_conflicts(opposing)
        strategy = ResolutionStrategy(method="negotiation", parameters={"max_rounds": 20})
        resolution = resolver.resolve_conflicts(opposing, conflicts, strategy)[0]

        assert resolution.compromise == pytest.approx(0.5)
        assert resolution.confidence > 0.99
        assert "14 rounds" in resolution.explanation
        assert resolution.resolved_evidence.confidence == pytest.approx(0.5)

    def test_inputs_untouched(self, opposing):
        ConflictResolver().negotiation(opposing, max_rounds=20)
        assert [e.confidence for e in opposing] == [0.9, 0.1]


class TestVoting:

    def test_plurality_follows_confidence(self, opposing):
        resolution = ConflictResolver(seed=1).voting(opposing, "plurality")
        assert resolution.resolved_evidence is opposing[0]
        assert resolution.confidence == pytest.approx(0.9)
        assert resolution.votes == pytest.approx({"analyst_a#0": 0.9, "analyst_b#1": 0.1})

    @pytest.mark.parametrize("method", ["borda", "approval"])
    def test_ranked_methods_return_a_winner(self, opposing, method):
        resolution = ConflictResolver(seed=3).voting(opposing, method)
        assert resolution.resolved_evidence in opposing
        assert 0.0 <= resolution.confidence <= 1.0

    def test_borda_with_fixed_preferences(self, opposing):
        ballots = collect_ballots(opposing, np.random.default_rng(0))
        ballots[0].preferences = [0, 1]
        ballots[1].preferences = [1, 0]
        winner, confidence = borda(ballots)
        assert winner == 0
        assert confidence == pytest.approx(0.9)

    def test_approval_top_half(self, opposing):
        ballots = collect_ballots(opposing, np.random.default_rng(0))
        ballots[0].preferences = [1, 0]
        ballots[1].preferences = [1, 0]
        winner, confidence = approval(ballots)
        assert winner == 1
        assert confidence == pytest.approx(1.0)

    def test_empty_ballots(self):
        assert plurality([]) == (None, 0.0)

    def test_invalid_voting_method(self):
        with pytest.raises(ValidationError):
            ResolutionStrategy(method="voting", parameters={"voting_method": "dictator"})

    def test_invalid_rounds(self):
        with pytest.raises(ValidationError):
            ResolutionStrategy(method="negotiation", parameters={"max_rounds": 0})


class TestHierarchical:

    def test_authority_beats_confidence(self):
        evidence = [
            Evidence(content="Figures are final", source="official_stats", confidence=0.6),
            Evidence(content="Figures are wrong", source="random_blog", confidence=0.9),
        ]
        resolution = ConflictResolver().hierarchical(evidence)

        assert resolution.resolved_evidence is evidence[0]
        assert resolution.confidence == pytest.approx(0.6)
        assert resolution.hierarchy == {
            "primary": ["official_stats"],
            "secondary": [],
            "tertiary": ["random_blog"],
        }

    def test_explicit_hierarchy(self):
        evidence = [
            Evidence(content="A", source="alpha", confidence=0.5),
            Evidence(content="B", source="beta", confidence=0.5),
        ]
        hierarchy = {"primary": ["beta"], "secondary": [], "tertiary": []}
        resolution = ConflictResolver().hierarchical(evidence, hierarchy)
        assert resolution.resolved_evidence is evidence[1]

    def test_classify_source(self):
        assert classify_source("Official_Gov") == SourceTier.PRIMARY
        assert classify_source("expert_panel") == SourceTier.SECONDARY
        assert classify_source("forum") == SourceTier.TERTIARY


class TestResolverBookkeeping:

    def test_default_is_weighted_average(self, opposing):
        resolver = ConflictResolver()
        conflicts = resolver.detect_conflicts(opposing)
        resolution = resolver.resolve_conflicts(opposing, conflicts)[0]

        assert resolution.method == "weighted_average"
        assert resolution.compromise == pytest.approx(0.82)
        assert resolution.confidence == pytest.approx(0.5)

    def test_history_and_statistics(self, opposing):
        resolver = ConflictResolver()
        conflicts = resolver.detect_conflicts(opposing)
        resolver.resolve_conflicts(opposing, conflicts)

        assert len(resolver.history) == 1
        assert resolver.history[0].resolved
        assert conflicts[0].resolution is None

        stats = resolver.get_statistics()
        assert stats["total_conflicts"] == 1
        assert stats["resolution_rate"] == 1.0
        assert stats["conflict_types"] == {"contradiction": 1}

        resolver.clear_history()
        assert resolver.get_statistics()["total_conflicts"] == 0

    def test_empty_conflict_list(self, opposing):
        assert ConflictResolver().resolve_conflicts(opposing, []) == []
