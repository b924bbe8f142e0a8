"""
Dempster-Shafer Combination
===========================

Each evidence item becomes a mass function over the frame {true, false}:

    m({true})        = c * r
    m({false})       = (1 - c) * r
    m({true, false}) = 1 - r

where c is the evidence confidence and r the source reliability (Shafer
discounting; r = 1 leaves no mass on the whole frame). Mass functions are
combined pairwise with the conjunctive rule, renormalizing away the mass that
lands on the empty set.

The renormalized masses alone hide disagreement: two fully reliable sources
at 0.9 and 0.1 renormalize to an even split with no ignorance left. The
combination therefore also tracks the conflict mass it discarded and reports

    uncertainty = K + (1 - K) * m({true, false})
    belief      = BetP(true)  (pignistic probability)

so strong disagreement surfaces as uncertainty rather than false precision.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Sequence

from ..parameters import Parameters
from ..types import BeliefState, Evidence, clamp


logger = logging.getLogger(__name__)

TRUE = frozenset({'true'})
FALSE = frozenset({'false'})
FRAME = frozenset({'true', 'false'})


@dataclass
class MassFunction:
    """
    Mass assignment over subsets of {true, false}.

    `conflict` is the accumulated empty-set mass discarded while combining,
    1 - prod(1 - K_i) over all pairwise combinations.
    """
    masses: Dict[FrozenSet[str], float] = field(default_factory=lambda: {FRAME: 1.0})
    conflict: float = 0.0

    @classmethod
    def from_confidence(cls, confidence: float, reliability: float = 1.0) -> "MassFunction":
        c = clamp(confidence)
        r = clamp(reliability)
        return cls(masses={TRUE: c * r, FALSE: (1.0 - c) * r, FRAME: 1.0 - r})

    @classmethod
    def vacuous(cls, conflict: float = 0.0) -> "MassFunction":
        """Total ignorance."""
        return cls(masses={FRAME: 1.0}, conflict=conflict)

    def mass(self, hypothesis: FrozenSet[str]) -> float:
        return self.masses.get(hypothesis, 0.0)

    def belief(self, hypothesis: FrozenSet[str] = TRUE) -> float:
        """Bel(A): mass committed to subsets of A."""
        return sum(m for h, m in self.masses.items() if h and h <= hypothesis)

    def plausibility(self, hypothesis: FrozenSet[str] = TRUE) -> float:
        """Pl(A): mass not contradicting A."""
        return sum(m for h, m in self.masses.items() if h & hypothesis)

    def pignistic(self, element: str = 'true') -> float:
        """BetP: mass on each focal set shared equally among its members."""
        return sum(m / len(h) for h, m in self.masses.items() if element in h)

    def combine(self, other: "MassFunction") -> "MassFunction":
        """Dempster's rule of combination."""
        combined: Dict[FrozenSet[str], float] = {}
        empty = 0.0
        for h1, m1 in self.masses.items():
            for h2, m2 in other.masses.items():
                product = m1 * m2
                intersection = h1 & h2
                if intersection:
                    combined[intersection] = combined.get(intersection, 0.0) + product
                else:
                    empty += product

        conflict = 1.0 - (1.0 - self.conflict) * (1.0 - other.conflict) * (1.0 - empty)
        if empty >= 1.0 - 1e-12:
            logger.warning("Total conflict between mass functions; falling back to ignorance")
            return MassFunction.vacuous(conflict=1.0)

        scale = 1.0 / (1.0 - empty)
        return MassFunction(
            masses={h: m * scale for h, m in combined.items()},
            conflict=conflict,
        )

    @property
    def uncertainty(self) -> float:
        return self.conflict + (1.0 - self.conflict) * self.mass(FRAME)


def combine_evidence(
    evidence: Sequence[Evidence],
    reliabilities: Optional[Dict[str, float]] = None,
) -> MassFunction:
    """Fold the mass functions of all evidence items; empty input is vacuous."""
    reliabilities = reliabilities or {}
    combined = None
    for e in evidence:
        m = MassFunction.from_confidence(e.confidence, reliabilities.get(e.source, 1.0))
        combined = m if combined is None else combined.combine(m)
    return combined if combined is not None else MassFunction.vacuous()


# =============================================================================
# CONFLICT RESOLUTION VARIANTS
# =============================================================================

def dempster_shafer_belief(
    evidence: Sequence[Evidence],
    reliabilities: Optional[Dict[str, float]] = None,
) -> BeliefState:
    combined = combine_evidence(evidence, reliabilities)
    return BeliefState(
        belief=combined.pignistic('true'),
        uncertainty=clamp(combined.uncertainty),
        evidence=tuple(evidence),
        posterior={
            'true': combined.mass(TRUE),
            'false': combined.mass(FALSE),
            'unknown': combined.mass(FRAME),
        },
    )


def averaging_belief(evidence: Sequence[Evidence]) -> BeliefState:
    """Mean confidence with the population standard deviation as uncertainty."""
    if not evidence:
        return BeliefState.neutral()
    confidences = [e.confidence for e in evidence]
    mean = sum(confidences) / len(confidences)
    variance = sum((c - mean) ** 2 for c in confidences) / len(confidences)
    return BeliefState(belief=mean, uncertainty=variance ** 0.5, evidence=tuple(evidence))


def max_confidence_belief(
    evidence: Sequence[Evidence],
    params: Parameters = None,
) -> BeliefState:
    """Trust the most confident item, inflating uncertainty with the number in conflict."""
    if not evidence:
        return BeliefState.neutral()
    params = params or Parameters()
    best = max(evidence, key=lambda e: e.confidence)
    uncertainty = (params.max_confidence_base_uncertainty
                   + params.max_confidence_uncertainty_slope * len(evidence) / 10)
    return BeliefState(belief=best.confidence, uncertainty=uncertainty, evidence=(best,))
