"""
Error Taxonomy
==============

Every error raised by the engine derives from PereError. Structural errors
(bad edges, unknown nodes, unanswerable queries) are fatal to the call that
raised them and leave the network unchanged. Numerically degenerate input is
never an error: components fall back to a maximally uncertain answer instead.

Usage:
    from pere.errors import InvalidEdge, InvalidQuery

    try:
        network.add_edge("rain", "wet")
    except InvalidEdge as e:
        logger.warning("edge rejected: %s", e)
"""


# =============================================================================
# Exceptions
# =============================================================================

class PereError(Exception):
    """Base class for all engine errors."""
    pass


class InvalidEdge(PereError, ValueError):
    """Raised when an edge references a missing node or loops onto itself."""
    pass


class CyclicEdgeError(InvalidEdge):
    """Raised when an edge would introduce a directed cycle."""
    pass


class UnknownNodeError(PereError, KeyError):
    """Raised when a CPT or evidence assignment names a node that does not exist."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable
        return Exception.__str__(self)


class InvalidQuery(PereError, ValueError):
    """Raised when an inference query cannot be answered against the network."""
    pass


class InsufficientSourcesError(PereError, ValueError):
    """Raised when a merge-type operation receives fewer than two sources."""

    def __init__(self, operation: str, count: int):
        self.operation = operation
        self.count = count
        super().__init__(
            f"{operation} requires at least 2 sources, got {count}"
        )


class UnknownSourceError(PereError, KeyError):
    """Raised when an aggregator operation names a source it does not hold."""

    def __str__(self) -> str:
        return Exception.__str__(self)
