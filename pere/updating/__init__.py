"""
Dynamic belief revision.
"""

from .belief_updater import BatchUpdateResult, BeliefRecord, BeliefUpdater, jeffrey_partition

__all__ = [
    'BatchUpdateResult',
    'BeliefRecord',
    'BeliefUpdater',
    'jeffrey_partition',
]
