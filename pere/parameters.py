"""
Tunable Parameters
==================

Every threshold and weight the engine uses lives here as a named field.
The values were chosen empirically; they are not derived from first
principles, so they are exposed for override rather than hardcoded.

Parameters are versioned and changes are attributed, so a result can be
traced back to the parameter set that produced it:

    params = Parameters()
    params.update("conflict_threshold", 0.4, actor="analyst",
                  rationale="too many ambiguity flags on short posts")
    resolver = ConflictResolver(params=params)
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .types import utcnow


# =============================================================================
# PARAMETER VERSIONING
# =============================================================================

@dataclass
class ParameterChange:
    """
    Attributed change to one parameter.

    Parameter changes alter derived beliefs without any new evidence, so
    they are recorded with who changed what and why.
    """
    parameter: str
    old_value: Any
    new_value: Any
    actor: str = "system"
    trigger: Optional[str] = None
    rationale: str = ""
    version: str = "v1"
    affects: List[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class Parameters:
    """
    Versioned parameter set for evidence reasoning.

    All derived state is deterministic given (evidence, params@version, seed).
    """
    version: int = 1

    # Network construction
    topic_prior: float = 0.5
    source_prior_reliable: float = 0.7
    min_candidate_length: int = 3
    frequent_word_min_length: int = 4
    long_word_min_length: int = 8

    # Inference
    gibbs_iterations: int = 10000
    gibbs_burn_in_fraction: float = 0.1
    variational_tolerance: float = 0.001
    variational_max_iterations: int = 100

    # Conflict detection (pairwise classification cutoffs)
    conflict_threshold: float = 0.3
    contradiction_cutoff: float = 0.7
    inconsistency_cutoff: float = 0.5
    uncertainty_cutoff: float = 0.4
    topic_similarity_threshold: float = 0.7
    rapid_divergence_seconds: float = 60.0
    multiway_min_group: int = 3
    multiway_agreement_threshold: float = 0.3

    # Conflict resolution
    attack_threshold: float = 0.5
    inconsistency_attack_weight: float = 0.8
    negotiation_concession: float = 0.1
    negotiation_max_rounds: int = 10
    negotiation_agreement_variance: float = 0.01
    authority_weights: Tuple[float, float, float] = (1.0, 0.7, 0.4)
    unclassified_authority_weight: float = 0.5
    default_resolution_confidence: float = 0.5

    # Aggregation
    default_source_reliability: float = 0.5
    expertise_boost: float = 1.2
    recency_decay_days: float = 30.0
    aggregation_conflict_threshold: float = 0.5
    reliability_tier_bounds: Tuple[float, float] = (0.8, 0.5)
    reliability_tier_weights: Tuple[float, float, float] = (1.0, 0.7, 0.4)
    pooling_extreme_bounds: Tuple[float, float] = (0.1, 0.9)
    pooling_linear_weight: float = 0.7
    propagation_decay: float = 0.8
    reliability_momentum: float = 0.9
    min_source_reliability: float = 0.1
    max_confidence_base_uncertainty: float = 0.2
    max_confidence_uncertainty_slope: float = 0.3

    # Uncertainty combination
    # aleatoric, epistemic, entropy, variance, credibility, conflict
    uncertainty_weights: Tuple[float, ...] = (0.25, 0.25, 0.20, 0.15, 0.10, 0.05)
    conflict_credibility_bonus: float = 0.1
    conflict_bonus_threshold: float = 0.5
    epistemic_aleatoric_bonus: float = 0.05
    epistemic_aleatoric_threshold: float = 0.7
    kde_bandwidth: float = 0.1

    # Belief updating
    updater_default_reliability: float = 0.7
    uncertainty_reduction_rate: float = 0.3
    min_uncertainty: float = 0.05
    history_limit: int = 1000
    propagation_threshold: float = 0.3
    propagation_rate: float = 0.3

    # Sensitivity
    bootstrap_samples: int = 1000
    breakpoint_jump: float = 0.3
    decision_threshold: float = 0.5
    local_perturbation: float = 0.01
    robustness_steps: int = 100
    stable_window_fraction: float = 0.25
    sobol_samples: int = 1024
    morris_trajectories: int = 10
    morris_levels: int = 4
    oat_range: float = 0.2
    marginal_perturbation: float = 0.1

    # History
    changes: List[ParameterChange] = field(default_factory=list)

    def update(
        self,
        parameter: str,
        new_value: Any,
        actor: str = "system",
        trigger: Optional[str] = None,
        rationale: str = ""
    ) -> ParameterChange:
        """Update a parameter with full provenance tracking."""
        if parameter in ("version", "changes") or parameter not in self._names():
            raise AttributeError(f"Unknown parameter: {parameter}")
        old_value = getattr(self, parameter)

        change = ParameterChange(
            parameter=parameter,
            old_value=old_value,
            new_value=new_value,
            actor=actor,
            trigger=trigger,
            rationale=rationale,
            version=f"v{self.version}",
            affects=self._affected_components(parameter)
        )

        setattr(self, parameter, new_value)
        self.version += 1
        self.changes.append(change)

        return change

    def snapshot(self) -> Dict[str, Any]:
        """Current values, without the change log."""
        return {
            name: getattr(self, name)
            for name in self._names()
            if name != "changes"
        }

    @classmethod
    def _names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def _affected_components(self, parameter: str) -> List[str]:
        """Determine which components read a parameter."""
        if parameter.startswith(("gibbs", "variational")):
            return ["inference"]
        if parameter.startswith(("topic_prior", "source_prior", "min_candidate",
                                 "frequent_word", "long_word")):
            return ["network", "inference"]
        if parameter.startswith(("negotiation", "attack", "authority",
                                 "inconsistency_attack", "default_resolution")):
            return ["conflict"]
        if parameter.endswith("_cutoff") or parameter.startswith(("conflict_threshold",
                                                                   "multiway", "rapid",
                                                                   "topic_similarity")):
            return ["conflict", "aggregation"]
        if parameter.startswith(("uncertainty_weights", "conflict_", "epistemic_",
                                 "kde", "bootstrap", "breakpoint", "decision",
                                 "local_perturbation", "robustness", "stable_window",
                                 "sobol", "morris", "oat", "marginal")):
            return ["uncertainty"]
        if parameter.startswith(("updater", "uncertainty_reduction", "min_uncertainty",
                                 "history", "propagation_threshold",
                                 "propagation_rate")):
            return ["updating"]
        return ["aggregation"]


# Reference values; components build their own Parameters() when none is given
DEFAULT_PARAMETERS = Parameters()
