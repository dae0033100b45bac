"""
This module contains the Bounds class describing the feature-space envelope
partitioned by half-space trees, and the input checks shared by trees and
forests.
"""

from __future__ import annotations

import math
from typing import Any, Iterable, Iterator, Sequence

import numpy as np
import numpy.typing as npt

from .errors import ConfigurationError, DimensionMismatchError, OutOfRangeError


class Bounds:
    """
    Immutable per-dimension (low, high) ranges.
    Every tree of a forest partitions the hyper-rectangle described by the
    same Bounds instance.
    Attributes:
        limits: Tuple of (low, high) float pairs, one per feature dimension.
    """

    __slots__ = ("limits",)

    def __init__(self, limits: Iterable[Sequence[float]]) -> None:
        """
        Args:
            limits: Per-dimension ranges [(min1, max1), (min2, max2), ...].
        Raises:
            ConfigurationError: If there are no dimensions, a pair is not a
                (low, high) pair, a limit is not finite or low >= high.
        """
        checked: list[tuple[float, float]] = []
        for idx_feature, pair in enumerate(limits):
            if len(pair) != 2:
                raise ConfigurationError(
                    f"bounds[{idx_feature}] must be a (low, high) pair, got {pair!r}"
                )
            low, high = float(pair[0]), float(pair[1])
            if not (math.isfinite(low) and math.isfinite(high)):
                raise ConfigurationError(
                    f"bounds[{idx_feature}] must be finite, got ({low}, {high})"
                )
            if low >= high:
                raise ConfigurationError(
                    f"bounds[{idx_feature}] requires low < high, got ({low}, {high})"
                )
            checked.append((low, high))

        if not checked:
            raise ConfigurationError("bounds must have at least one dimension")

        object.__setattr__(self, "limits", tuple(checked))

    @classmethod
    def coerce(cls, bounds: Bounds | Iterable[Sequence[float]]) -> Bounds:
        """Return `bounds` unchanged if it already is a Bounds, else build one."""
        if isinstance(bounds, Bounds):
            return bounds
        return cls(bounds)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("Bounds is immutable")

    def __reduce__(self) -> tuple[type[Bounds], tuple[tuple[tuple[float, float], ...]]]:
        return (Bounds, (self.limits,))

    @property
    def n_dims(self) -> int:
        return len(self.limits)

    def __len__(self) -> int:
        return len(self.limits)

    def __iter__(self) -> Iterator[tuple[float, float]]:
        return iter(self.limits)

    def __getitem__(self, idx_feature: int) -> tuple[float, float]:
        return self.limits[idx_feature]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Bounds):
            return NotImplemented
        return self.limits == other.limits

    def __hash__(self) -> int:
        return hash(self.limits)

    def __repr__(self) -> str:
        return f"Bounds({list(self.limits)!r})"

    def as_array(self) -> npt.NDArray[np.floating[Any]]:
        """
        Returns:
            Array of shape (n_dims, 2) holding [low, high] per row.
        """
        return np.array(self.limits, dtype=np.float64)


def validate_feature_vector(x: Sequence[float] | npt.ArrayLike, n_dims: int) -> list[float]:
    """
    Args:
        x: Feature vector, a sequence or 1-D array of numbers.
        n_dims: Number of dimensions of the bounds.
    Returns:
        The vector as a list of Python floats.
    Raises:
        DimensionMismatchError: If `x` is not 1-D or has the wrong length.
    """
    arr = np.asarray(x, dtype=np.float64)
    if arr.ndim != 1:
        raise DimensionMismatchError(n_dims, int(arr.size))
    if arr.shape[0] != n_dims:
        raise DimensionMismatchError(n_dims, int(arr.shape[0]))
    return arr.tolist()


def validate_feature_matrix(
    Xs: npt.ArrayLike, n_dims: int,
) -> npt.NDArray[np.floating[Any]]:
    """
    Args:
        Xs: Samples of shape (n_samples, n_features).
        n_dims: Number of dimensions of the bounds.
    Returns:
        The samples as a float64 array.
    Raises:
        DimensionMismatchError: If `Xs` is not 2-D, has rows of different
            lengths or n_features != n_dims.
    """
    try:
        arr = np.asarray(Xs, dtype=np.float64)
    except ValueError:
        # ragged rows
        lengths = [len(row) for row in Xs]  # type: ignore[union-attr, arg-type]
        bad_lengths = [length for length in lengths if length != n_dims]
        if not bad_lengths:
            raise
        raise DimensionMismatchError(n_dims, bad_lengths[0]) from None
    if arr.ndim != 2:
        raise DimensionMismatchError(n_dims, int(arr.shape[-1]) if arr.ndim else 0)
    if arr.shape[1] != n_dims:
        raise DimensionMismatchError(n_dims, int(arr.shape[1]))
    return arr


def validate_alpha(alpha: float) -> float:
    """
    Raises:
        OutOfRangeError: If `alpha` is not in (0, 1] (NaN included).
    """
    value = float(alpha)
    if not 0.0 < value <= 1.0:
        raise OutOfRangeError(alpha)
    return value
