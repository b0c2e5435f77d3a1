"""Layer status state machine."""

from enum import Enum
from typing import Iterable


class LayerStatus(str, Enum):
    """Lifecycle status of a configuration node.

    Statuses advance along NOT_LOADED < LOADING < PROCESSED < LOADED. ERROR is
    absorbing and reachable from every status.
    """

    NOT_LOADED = "notLoaded"
    LOADING = "loading"
    PROCESSED = "processed"
    LOADED = "loaded"
    ERROR = "error"

    @property
    def rank(self) -> int:
        """Position in the success order (ERROR ranks outside of it)."""
        return _RANKS[self]

    @property
    def is_terminal(self) -> bool:
        return self in (LayerStatus.LOADED, LayerStatus.ERROR)

    def is_at_least(self, status: "LayerStatus") -> bool:
        """
        Ordinal comparison used to wait for "good enough" readiness.

        ERROR only satisfies ERROR, and no status but ERROR satisfies it.
        """
        if status is LayerStatus.ERROR or self is LayerStatus.ERROR:
            return self is status
        return self.rank >= status.rank


_RANKS = {
    LayerStatus.NOT_LOADED: 0,
    LayerStatus.LOADING: 1,
    LayerStatus.PROCESSED: 2,
    LayerStatus.LOADED: 3,
    LayerStatus.ERROR: -1,
}


def all_at_least(status: LayerStatus, nodes: Iterable) -> bool:
    """
    Check that every node has reached a status.

    Args:
        status: Threshold status
        nodes: Configuration nodes (anything with ``is_at_least``)

    Returns:
        True if every node satisfies ``is_at_least(status)``
    """
    return all(node.is_at_least(status) for node in nodes)
