"""Half-Space Trees for streaming anomaly detection.

This package provides an ensemble of randomized axis-aligned partition trees
whose per-node masses are exponentially decayed to follow concept drift:
- tree: HalfSpaceTree and its nodes
- forest: HalfSpaceForest, averaging scores across trees
"""

import logging

from .bounds import Bounds
from .errors import (
    ConfigurationError,
    DimensionMismatchError,
    HalfSpaceTreesError,
    OutOfRangeError,
)
from .forest import HalfSpaceForest
from .tree import HalfSpaceTree, HalfSpaceTreeNode, RandomSource

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "Bounds",
    "HalfSpaceTree",
    "HalfSpaceTreeNode",
    "HalfSpaceForest",
    "RandomSource",
    "HalfSpaceTreesError",
    "ConfigurationError",
    "DimensionMismatchError",
    "OutOfRangeError",
]
