"""
This module contains the exceptions raised by the half-space trees package.
"""

from __future__ import annotations


class HalfSpaceTreesError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(HalfSpaceTreesError, ValueError):
    """
    Raised when a tree or forest cannot be constructed from the given
    parameters (empty or inverted bounds, no trees, negative depth, ...).
    """


class DimensionMismatchError(HalfSpaceTreesError, ValueError):
    """
    Raised when a feature vector does not have one value per bounds dimension.
    Attributes:
        expected: Number of dimensions of the bounds.
        actual: Number of values in the offending feature vector.
    """

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"feature vector has {actual} values, expected {expected}"
        )
        self.expected = expected
        self.actual = actual


class OutOfRangeError(HalfSpaceTreesError, ValueError):
    """
    Raised when a decay factor lies outside (0, 1].
    Attributes:
        value: The rejected decay factor.
    """

    def __init__(self, value: float) -> None:
        super().__init__(f"decay factor must be in (0, 1], got {value!r}")
        self.value = value
