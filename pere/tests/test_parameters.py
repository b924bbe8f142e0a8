"""
Tests for versioned Parameters and the public package surface.

These tests verify:
- Parameter updates are versioned and attributed
- Each change names the components that read the parameter
- Components honour overridden parameters
"""

import pytest

import pere
from pere.conflict import ConflictDetector
from pere.parameters import DEFAULT_PARAMETERS, Parameters
from pere.types import Evidence


class TestParameterUpdates:

    def test_update_records_change(self):
        params = Parameters()
        change = params.update("conflict_threshold", 0.4, actor="analyst",
                               rationale="too many ambiguity flags")

        assert params.conflict_threshold == 0.4
        assert params.version == 2
        assert change.old_value == 0.3
        assert change.new_value == 0.4
        assert change.version == "v1"
        assert change.actor == "analyst"
        assert params.changes == [change]

    @pytest.mark.parametrize("parameter,component", [
        ("gibbs_iterations", "inference"),
        ("topic_prior", "network"),
        ("negotiation_concession", "conflict"),
        ("contradiction_cutoff", "conflict"),
        ("uncertainty_weights", "uncertainty"),
        ("sobol_samples", "uncertainty"),
        ("propagation_rate", "updating"),
        ("expertise_boost", "aggregation"),
    ])
    def test_affected_components(self, parameter, component):
        params = Parameters()
        change = params.update(parameter, getattr(params, parameter))
        assert component in change.affects

    def test_unknown_parameter(self):
        params = Parameters()
        with pytest.raises(AttributeError):
            params.update("gravity", 9.8)
        with pytest.raises(AttributeError):
            params.update("version", 7)
        assert params.version == 1

    def test_snapshot_excludes_history(self):
        params = Parameters()
        params.update("kde_bandwidth", 0.2)
        snapshot = params.snapshot()

        assert snapshot["kde_bandwidth"] == 0.2
        assert snapshot["version"] == 2
        assert "changes" not in snapshot

    def test_defaults_are_not_shared(self):
        params = Parameters()
        params.update("attack_threshold", 0.9)
        assert DEFAULT_PARAMETERS.attack_threshold == 0.5
        assert Parameters().changes == []


class TestParametersReachComponents:

    def test_detector_uses_overridden_cutoff(self):
        a = Evidence(content="Maybe prices rise", source="s1", confidence=0.6)
        b = Evidence(content="Perhaps prices could fall", source="s2", confidence=0.6)

        strict = Parameters()
        strict.update("conflict_threshold", 0.65)
        assert ConflictDetector().detect([a, b]) != []
        assert ConflictDetector(strict).detect([a, b]) == []


class TestPublicApi:

    def test_exports(self):
        for name in pere.__all__:
            assert hasattr(pere, name), name

    def test_error_hierarchy(self):
        assert issubclass(pere.InvalidEdge, pere.PereError)
        assert issubclass(pere.InvalidQuery, ValueError)
        assert issubclass(pere.UnknownNodeError, KeyError)
        assert str(pere.UnknownNodeError("node 'x' not found")) == "node 'x' not found"
