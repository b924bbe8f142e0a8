"""
Tests for the BeliefUpdater.

These tests verify:
- Each update policy moves belief in the direction of the evidence
- Learning rate, momentum and adaptive rate shape the applied step
- Batch updates report failures without aborting the batch
- Belief changes spread to network neighbours
"""

import math

import pytest
from pydantic import ValidationError

from pere.network import BayesianNode
from pere.options import UpdatePolicy
from pere.parameters import Parameters
from pere.types import BeliefState, Evidence
from pere.updating import BeliefUpdater, jeffrey_partition


def ev(confidence, source="s", content="Demand is recovering", topic="demand"):
    return Evidence(content=content, source=source, confidence=confidence, topic=topic)


# =============================================================================
# POLICIES
# =============================================================================

class TestBayesianPolicy:

    def test_first_update(self):
        updater = BeliefUpdater()
        update = updater.update_belief("demand", ev(0.8))

        # posterior 0.8, moved 70% of the way at default reliability
        assert update.posterior.belief == pytest.approx(0.71)
        assert update.posterior.uncertainty == pytest.approx(0.5 * (1 - 0.8 * 0.7 * 0.3))
        assert update.prior.belief == 0.5
        assert update.change == pytest.approx(0.21)
        assert update.policy == "bayesian"
        assert update.confidence == pytest.approx(1 - update.posterior.uncertainty)

    def test_opposing_evidence_lowers_belief(self):
        updater = BeliefUpdater()
        update = updater.update_belief("demand", ev(0.2))
        assert update.posterior.belief < 0.5

    def test_learning_rate_scales_step(self):
        updater = BeliefUpdater(UpdatePolicy(learning_rate=0.5))
        update = updater.update_belief("demand", ev(0.8))
        assert update.posterior.belief == pytest.approx(0.605)

    def test_uncertainty_floor(self):
        updater = BeliefUpdater()
        for _ in range(40):
            updater.update_belief("demand", ev(0.9))
        assert updater.get_belief("demand").uncertainty == pytest.approx(0.05)

    def test_evidence_accumulates(self):
        updater = BeliefUpdater()
        first, second = ev(0.7), ev(0.6)
        updater.update_belief("demand", first)
        updater.update_belief("demand", second)
        assert updater.get_belief("demand").evidence == (first, second)


class TestJeffreyPolicy:

    def test_confident_evidence(self):
        updater = BeliefUpdater(UpdatePolicy(method="jeffrey"))
        update = updater.update_belief("demand", ev(0.9))
        assert update.posterior.belief == pytest.approx(0.9 * 0.75 + 0.1 * 0.25)

    def test_mid_range_keeps_belief_and_caps_uncertainty(self):
        updater = BeliefUpdater(UpdatePolicy(method="jeffrey"))
        update = updater.update_belief("demand", ev(0.5))
        assert update.posterior.belief == pytest.approx(0.5)
        assert update.posterior.uncertainty == 1.0

    def test_partition(self):
        assert jeffrey_partition(0.9) == {"supports": 0.9, "opposes": pytest.approx(0.1)}
        mid = jeffrey_partition(0.5)
        assert mid["uncertain"] == 0.2
        assert sum(mid.values()) == pytest.approx(1.0)


class TestPearlPolicy:

    def test_moves_toward_evidence(self):
        updater = BeliefUpdater(UpdatePolicy(method="pearl"))
        up = updater.update_belief("demand", ev(0.8))
        assert up.posterior.belief == pytest.approx(0.8)

        down = BeliefUpdater(UpdatePolicy(method="pearl")).update_belief("demand", ev(0.2))
        assert down.posterior.belief == pytest.approx(0.2)

    def test_successive_evidence_compounds(self):
        updater = BeliefUpdater(UpdatePolicy(method="pearl"))
        updater.update_belief("demand", ev(0.8))
        update = updater.update_belief("demand", ev(0.8, source="t"))

        assert update.posterior.belief == pytest.approx(0.64 / 0.68)
        assert len(updater.network) == 0

    def test_long_stream_keeps_network_bounded(self):
        updater = BeliefUpdater(UpdatePolicy(method="pearl"), params=Parameters(history_limit=50))
        for i in range(200):
            updater.update_belief("demand", ev(0.6 if i % 2 else 0.4, source=f"s{i}"))

        assert len(updater.network) == 0
        assert len(updater.get_history("demand")) == 50
        assert 0.0 < updater.get_belief("demand").belief < 1.0

    def test_uncertainty_from_posterior(self):
        updater = BeliefUpdater(UpdatePolicy(method="pearl"))
        update = updater.update_belief("demand", ev(0.8))
        assert 0.0 < update.posterior.uncertainty < 1.0
        assert update.posterior.posterior["true"] == pytest.approx(0.8)


class TestMinimalChangePolicy:

    def test_damped_step(self):
        updater = BeliefUpdater(UpdatePolicy(method="minimal-change"))
        update = updater.update_belief("demand", ev(0.9))

        alpha = math.tanh(0.4) * 0.5
        assert update.posterior.belief == pytest.approx(0.5 + alpha * 0.4)
        assert update.posterior.uncertainty == pytest.approx(0.5 + alpha * 0.1)

    def test_per_call_policy_override(self):
        updater = BeliefUpdater()
        update = updater.update_belief("demand", ev(0.9), UpdatePolicy(method="minimal-change"))
        assert update.policy == "minimal-change"
        assert updater.get_history("demand")[0].update_type == "minimal-change"


class TestPolicyValidation:

    def test_unknown_method(self):
        with pytest.raises(ValidationError):
            UpdatePolicy(method="gut-feeling")

    def test_learning_rate_bounds(self):
        with pytest.raises(ValidationError):
            UpdatePolicy(learning_rate=0.0)
        with pytest.raises(ValidationError):
            UpdatePolicy(learning_rate=1.5)

    def test_momentum_bounds(self):
        with pytest.raises(ValidationError):
            UpdatePolicy(momentum=1.0)


# =============================================================================
# DYNAMICS
# =============================================================================

class TestLearningDynamics:

    def test_momentum_follows_recent_trend(self):
        plain = BeliefUpdater()
        pushed = BeliefUpdater(UpdatePolicy(momentum=0.5))
        for _ in range(3):
            plain.update_belief("demand", ev(0.6))
            pushed.update_belief("demand", ev(0.6))

        history = pushed.get_history("demand")
        expected = (history[1].belief - history[0].belief) * 0.5
        assert history[0].belief == pytest.approx(plain.get_history("demand")[0].belief)
        assert pushed.get_belief("demand").belief - plain.get_belief("demand").belief == \
            pytest.approx(expected)

    def test_adaptive_rate_halves_large_jumps(self):
        policy = UpdatePolicy(learning_rate=0.8, adaptive_learning=True)
        current = BeliefState(belief=0.1, uncertainty=0.3)
        proposed = BeliefState(belief=0.9, uncertainty=0.3)
        assert BeliefUpdater.adaptive_rate(current, proposed, policy) == pytest.approx(0.4)

    def test_adaptive_rate_grows_when_uncertainty_collapses(self):
        policy = UpdatePolicy(learning_rate=0.8, adaptive_learning=True)
        current = BeliefState(belief=0.5, uncertainty=0.5)
        proposed = BeliefState(belief=0.6, uncertainty=0.1)
        assert BeliefUpdater.adaptive_rate(current, proposed, policy) == 1.0

    def test_source_reliability_from_history(self):
        updater = BeliefUpdater()
        assert updater.estimate_source_reliability("s") == pytest.approx(0.7)

        updater.update_belief("demand", ev(0.8))
        assert updater.estimate_source_reliability("s") == 1.0

        updater.update_belief("demand", ev(0.3, source="contrarian"))
        assert updater.estimate_source_reliability("contrarian") == 0.0


# =============================================================================
# BATCHES, HISTORY AND PROPAGATION
# =============================================================================

class TestBatchUpdate:

    def test_batch_applies_in_order(self):
        updater = BeliefUpdater()
        result = updater.batch_update([
            ("demand", ev(0.8)),
            ("supply", ev(0.3, content="Supply is tight", topic="supply")),
        ])

        assert result.succeeded == 2
        assert result.failures == []
        assert set(updater.get_all_beliefs()) == {"demand", "supply"}

    def test_failures_are_collected(self, monkeypatch):
        updater = BeliefUpdater()
        original = updater._bayesian

        def flaky(current, evidence):
            if evidence.content == "corrupt":
                raise ValueError("unreadable evidence")
            return original(current, evidence)

        monkeypatch.setattr(updater, "_bayesian", flaky)
        result = updater.batch_update([
            ("demand", ev(0.8)),
            ("demand", ev(0.8, content="corrupt")),
            ("demand", ev(0.7)),
        ])

        assert result.succeeded == 2
        assert result.failures == [("demand", "unreadable evidence")]
        assert len(updater.get_history("demand")) == 2


class TestHistory:

    def test_history_is_bounded(self):
        params = Parameters()
        params.history_limit = 3
        updater = BeliefUpdater(params=params)
        for c in (0.6, 0.7, 0.8, 0.9, 0.95):
            updater.update_belief("demand", ev(c))

        history = updater.get_history("demand")
        assert len(history) == 3
        assert history[-1].evidence.confidence == 0.95

    def test_history_is_a_copy(self):
        updater = BeliefUpdater()
        updater.update_belief("demand", ev(0.8))
        updater.get_history("demand").clear()
        assert len(updater.get_history("demand")) == 1

    def test_confidence_penalizes_oscillation(self):
        updater = BeliefUpdater()
        for c in (0.9, 0.1) * 4:
            update = updater.update_belief("demand", ev(c))
        assert update.confidence < 1 - update.posterior.uncertainty

    def test_clear_and_reset(self):
        updater = BeliefUpdater()
        updater.update_belief("demand", ev(0.8))
        updater.update_belief("supply", ev(0.4, topic="supply"))

        updater.clear_belief("demand")
        assert updater.get_belief("demand") is None
        assert updater.get_history("demand") == []

        updater.reset()
        assert updater.get_all_beliefs() == {}
        assert len(updater.network) == 0

    def test_statistics(self):
        updater = BeliefUpdater()
        assert updater.get_statistics()["total_beliefs"] == 0

        updater.update_belief("demand", ev(0.8))
        updater.update_belief("demand", ev(0.8))
        stats = updater.get_statistics()
        assert stats["total_beliefs"] == 1
        assert stats["total_updates"] == 2
        assert stats["avg_belief"] == pytest.approx(updater.get_belief("demand").belief)


class TestPropagation:

    def test_change_spreads_to_child(self):
        updater = BeliefUpdater()
        for name in ("alpha", "beta"):
            updater.network.add_node(BayesianNode(id=name, states=["true", "false"]))
        updater.network.add_edge("alpha", "beta")
        updater.beliefs["alpha"] = BeliefState(belief=0.9, uncertainty=0.2)
        updater.beliefs["beta"] = BeliefState(belief=0.5, uncertainty=0.2)

        moved = updater.propagate_changes(["alpha"])

        delta = 0.4 * 0.8 * 0.3
        assert moved == ["beta"]
        assert updater.get_belief("beta").belief == pytest.approx(0.5 + delta)
        assert updater.get_belief("beta").uncertainty == pytest.approx(0.2 + delta * 0.1)
        assert updater.get_belief("alpha").belief == 0.9

    def test_unrelated_topics_untouched(self):
        updater = BeliefUpdater()
        updater.beliefs["alpha"] = BeliefState(belief=0.9, uncertainty=0.2)
        updater.beliefs["omega"] = BeliefState(belief=0.1, uncertainty=0.2)
        assert updater.propagate_changes(["alpha"]) == []

    def test_influence(self):
        updater = BeliefUpdater()
        for name in ("alpha", "beta"):
            updater.network.add_node(BayesianNode(id=name, states=["true", "false"]))
        updater.network.add_edge("alpha", "beta")

        assert updater.influence("alpha", "beta") == 0.8
        assert updater.influence("beta", "alpha") == 0.6
        assert updater.influence("gamma", "gamma") == 0.5
