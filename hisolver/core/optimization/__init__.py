"""Priority levels and decomposition buffers."""

from .priority import PriorityLevel, RankRevealingDecomposition

__all__ = [
    "PriorityLevel",
    "RankRevealingDecomposition",
]
