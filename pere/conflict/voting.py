"""
Simulated voting over evidence-as-candidates.

Every evidence item is both a candidate and a voter. A voter's weight is
floor(confidence * 100) simulated votes; its preference ranking over the
candidates is a random permutation drawn from the caller's generator.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..types import Evidence


@dataclass
class Ballot:
    candidate: int
    evidence: Evidence
    votes: int
    preferences: List[int]


def collect_ballots(evidence: Sequence[Evidence], rng: np.random.Generator) -> List[Ballot]:
    n = len(evidence)
    return [
        Ballot(
            candidate=i,
            evidence=e,
            votes=int(math.floor(e.confidence * 100)),
            preferences=[int(c) for c in rng.permutation(n)],
        )
        for i, e in enumerate(evidence)
    ]


def _weights(ballots: Sequence[Ballot]) -> List[float]:
    weights = [float(b.votes) for b in ballots]
    if sum(weights) <= 0:
        # nobody holds votes; count every ballot once
        return [1.0] * len(ballots)
    return weights


def _argmax(scores: Sequence[float]) -> int:
    best = 0
    for i, s in enumerate(scores):
        if s > scores[best]:
            best = i
    return best


def plurality(ballots: Sequence[Ballot]) -> Tuple[Optional[int], float]:
    """Candidate holding the most votes, with its share of all votes."""
    if not ballots:
        return None, 0.0
    votes = [b.votes for b in ballots]
    winner = _argmax(votes)
    total = sum(votes)
    return winner, (votes[winner] / total) if total > 0 else 0.0


def borda(ballots: Sequence[Ballot]) -> Tuple[Optional[int], float]:
    """
    Weighted Borda count.

    Rank r of n earns n - r - 1 points times the voter's weight. Confidence is
    the winner's score over the maximum attainable score.
    """
    n = len(ballots)
    if n == 0:
        return None, 0.0
    if n == 1:
        return 0, 1.0
    weights = _weights(ballots)
    scores = [0.0] * n
    for ballot, w in zip(ballots, weights):
        for rank, candidate in enumerate(ballot.preferences):
            scores[candidate] += w * (n - rank - 1)
    winner = _argmax(scores)
    return winner, scores[winner] / (sum(weights) * (n - 1))


def approval(ballots: Sequence[Ballot]) -> Tuple[Optional[int], float]:
    """Each voter approves the top half of its ranking (rounded up)."""
    n = len(ballots)
    if n == 0:
        return None, 0.0
    approved = math.ceil(n / 2)
    weights = _weights(ballots)
    scores = [0.0] * n
    for ballot, w in zip(ballots, weights):
        for candidate in ballot.preferences[:approved]:
            scores[candidate] += w
    winner = _argmax(scores)
    return winner, scores[winner] / sum(weights)


VOTING_RULES = {
    'plurality': plurality,
    'borda': borda,
    'approval': approval,
}


def summarize(ballots: Sequence[Ballot]) -> Dict[str, float]:
    """Vote share per candidate, keyed `source#index`."""
    total = sum(b.votes for b in ballots)
    return {
        f"{b.evidence.source}#{b.candidate}": (b.votes / total) if total > 0 else 0.0
        for b in ballots
    }
