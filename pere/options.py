"""
Option structs passed explicitly at each call site.

The engine reads no environment variables or files. Callers describe what
they want with these validated models; thresholds and weights live in
pere.parameters.
"""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .types import (
    AggregationMethod, ConflictResolutionMethod, InferenceMethod, ResolutionMethod,
)


VOTING_METHODS = ("plurality", "borda", "approval")
UPDATE_METHODS = ("bayesian", "jeffrey", "pearl", "minimal-change")


class AggregationOptions(BaseModel):
    """How EvidenceAggregator.aggregate combines a batch."""
    model_config = ConfigDict(frozen=True)

    method: AggregationMethod = AggregationMethod.WEIGHTED
    conflict_resolution: ConflictResolutionMethod = ConflictResolutionMethod.DEMPSTER_SHAFER
    uncertainty_propagation: bool = False


class InferenceQuery(BaseModel):
    """Posterior query against a BayesianNetwork."""
    model_config = ConfigDict(frozen=True)

    target: str = Field(..., min_length=1)
    evidence: Dict[str, str] = Field(default_factory=dict)
    method: InferenceMethod = InferenceMethod.EXACT

    def cache_key(self) -> str:
        """Canonical key: target|sorted evidence|method."""
        observed = ",".join(f"{node}={state}" for node, state in sorted(self.evidence.items()))
        return f"{self.target}|{observed}|{self.method.value}"


class ResolutionStrategy(BaseModel):
    """
    Conflict resolution strategy.

    Recognized parameters:
      negotiation: max_rounds (int, default 10)
      voting: voting_method ("plurality" | "borda" | "approval")
    """
    model_config = ConfigDict(frozen=True)

    method: ResolutionMethod
    parameters: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('parameters')
    @classmethod
    def validate_parameters(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        if 'max_rounds' in v:
            rounds = v['max_rounds']
            if not isinstance(rounds, int) or isinstance(rounds, bool) or rounds < 1:
                raise ValueError('max_rounds must be a positive integer')
        if 'voting_method' in v and v['voting_method'] not in VOTING_METHODS:
            raise ValueError(f"voting_method must be one of {', '.join(VOTING_METHODS)}")
        return v

    @property
    def max_rounds(self) -> int:
        return self.parameters.get('max_rounds', 10)

    @property
    def voting_method(self) -> str:
        return self.parameters.get('voting_method', 'plurality')


class UpdatePolicy(BaseModel):
    """Belief revision policy for BeliefUpdater."""
    model_config = ConfigDict(frozen=True)

    method: str = 'bayesian'
    learning_rate: float = Field(default=1.0, gt=0.0, le=1.0)
    momentum: float = Field(default=0.0, ge=0.0, lt=1.0)
    adaptive_learning: bool = False

    @field_validator('method')
    @classmethod
    def validate_method(cls, v: str) -> str:
        if v not in UPDATE_METHODS:
            raise ValueError(f"method must be one of {', '.join(UPDATE_METHODS)}")
        return v

    @model_validator(mode='after')
    def validate_dynamics(self) -> 'UpdatePolicy':
        if self.adaptive_learning and self.learning_rate < 0.01:
            raise ValueError('adaptive learning needs learning_rate >= 0.01')
        return self
