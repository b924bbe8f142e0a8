"""
Conflict detection and resolution among evidence.
"""

from .argumentation import Argument, ArgumentationFramework, select_winner
from .detectors import ConflictDetector
from .resolver import ConflictResolver, classify_source
from .voting import Ballot, approval, borda, collect_ballots, plurality

__all__ = [
    'Argument',
    'ArgumentationFramework',
    'select_winner',
    'ConflictDetector',
    'ConflictResolver',
    'classify_source',
    'Ballot',
    'approval',
    'borda',
    'collect_ballots',
    'plurality',
]
