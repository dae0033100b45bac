"""
This module contains the HalfSpaceTreeNode and HalfSpaceTree classes that
implement a randomized axis-aligned partition of a bounded feature space with
exponentially decayed visit counts (mass) per node.
"""

from __future__ import annotations

import logging
import math
from numbers import Integral
from typing import Any, Iterable, Protocol, Sequence

import matplotlib.pyplot as plt
import numpy as np
import numpy.typing as npt
from matplotlib.patches import Rectangle

from .bounds import Bounds, validate_alpha, validate_feature_vector
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class RandomSource(Protocol):
    """
    Uniform random values used to draw splits.
    `numpy.random.Generator` satisfies this protocol.
    """

    def integers(self, low: int, high: int) -> Any:
        """Uniform integer in [low, high)."""
        ...

    def uniform(self, low: float, high: float) -> Any:
        """Uniform float in [low, high)."""
        ...


def validate_max_depth(max_depth: int) -> int:
    if isinstance(max_depth, bool) or not isinstance(max_depth, Integral):
        raise ConfigurationError(f"max_depth must be an integer, got {max_depth!r}")
    if max_depth < 0:
        raise ConfigurationError(f"max_depth must be >= 0, got {max_depth}")
    return int(max_depth)


class HalfSpaceTreeNode:
    """
    Node in a Half-Space Tree.
    Internal nodes split their subspace in two along one feature; leaf nodes
    have no children. Every node counts (with decay) the samples routed
    through it.
    Attributes:
        depth: current depth of the node in the tree (root is 0).
        feature_limits: (min, max) boundaries of the subspace covered by this node.
        idx_feature: Index of the feature used for splitting (None for leaf nodes).
        split_threshold: Threshold value for the split (None for leaf nodes).
        children: [lower, upper] child nodes (empty for leaf nodes).
        mass: Exponentially decayed number of samples that reached this node.
    """

    __slots__ = (
        "depth", "feature_limits", "idx_feature", "split_threshold", "children", "mass",
    )

    def __init__(
        self,
        depth: int,
        feature_limits: tuple[tuple[float, float], ...],
    ) -> None:
        """
        Initialize a HalfSpaceTreeNode.
        Args:
            depth: Depth of this node in the tree.
            feature_limits: Boundaries for each feature dimension ((min1, max1), (min2, max2), ...).
        """
        self.depth = depth
        self.feature_limits = feature_limits

        self.idx_feature: int | None = None
        self.split_threshold: float | None = None

        self.children: list[HalfSpaceTreeNode] = []
        self.mass = 0.0

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def partition_space(
        self,
        rng: RandomSource,
        MAX_DEPTH: int,
        nodes: list[HalfSpaceTreeNode],
    ) -> None:
        """
        Recursively partition the subspace of this node using random splits,
        down to MAX_DEPTH. Every created node (this one included) is appended
        to `nodes`.
        Args:
            rng: Source of the uniform draws for features and thresholds.
            MAX_DEPTH: Depth at which leaves are created.
            nodes: Flat list collecting the nodes of the tree.
        """
        nodes.append(self)
        if self.depth >= MAX_DEPTH:
            return

        self.idx_feature = int(rng.integers(0, len(self.feature_limits)))
        low, high = self.feature_limits[self.idx_feature]

        split_threshold = float(rng.uniform(low, high))
        # keep the threshold strictly inside (low, high)
        if split_threshold <= low:
            split_threshold = float(np.nextafter(low, high))
        elif split_threshold >= high:
            split_threshold = float(np.nextafter(high, low))
        self.split_threshold = split_threshold

        feature_limits_lower = list(self.feature_limits)
        feature_limits_lower[self.idx_feature] = (low, split_threshold)

        feature_limits_upper = list(self.feature_limits)
        feature_limits_upper[self.idx_feature] = (split_threshold, high)

        child_lower = HalfSpaceTreeNode(
            depth=self.depth + 1,
            feature_limits=tuple(feature_limits_lower),
        )

        child_upper = HalfSpaceTreeNode(
            depth=self.depth + 1,
            feature_limits=tuple(feature_limits_upper),
        )

        self.children = [child_lower, child_upper]
        self.children[0].partition_space(rng, MAX_DEPTH, nodes)
        self.children[1].partition_space(rng, MAX_DEPTH, nodes)

    def insert(self, x: Sequence[float]) -> int:
        """
        Add one unit of mass to every node on the path of `x`, this node and
        the reached leaf included.
        Returns:
            Depth of the reached leaf.
        """
        node = self
        while True:
            node.mass += 1.0
            if not node.children:
                return node.depth
            if x[node.idx_feature] < node.split_threshold:  # type: ignore[index, operator]
                node = node.children[0]
            else:
                node = node.children[1]

    def get_leaf(self, x: Sequence[float]) -> HalfSpaceTreeNode:
        node = self
        while node.children:
            if x[node.idx_feature] < node.split_threshold:  # type: ignore[index, operator]
                node = node.children[0]
            else:
                node = node.children[1]
        return node

    def get_path(self, x: Sequence[float]) -> list[tuple[int, float]]:
        """
        Returns:
            (depth, mass) of every node visited by `x`, from this node to the leaf.
        """
        path = [(self.depth, self.mass)]
        node = self
        while node.children:
            if x[node.idx_feature] < node.split_threshold:  # type: ignore[index, operator]
                node = node.children[0]
            else:
                node = node.children[1]
            path.append((node.depth, node.mass))
        return path

    def get_score(self, x: Sequence[float]) -> float:
        """
        Anomaly score of `x`: depth of the reached leaf minus log(1 + leaf mass).
        """
        leaf = self.get_leaf(x)
        return leaf.depth - math.log1p(leaf.mass)

    def get_scores_batch(self, Xs: npt.NDArray[np.floating[Any]]) -> npt.NDArray[np.floating[Any]]:
        """
        Args:
            Xs: Data samples of shape (n_samples, n_features).
        Returns:
            Anomaly scores for each sample of shape (n_samples,).
        """
        n_samples = Xs.shape[0]

        if not self.children:
            return np.full(n_samples, self.depth - math.log1p(self.mass), dtype=np.float64)

        scores_arr = np.zeros(n_samples, dtype=np.float64)
        mask_lower = Xs[:, self.idx_feature] < self.split_threshold

        if np.any(mask_lower):
            scores_arr[mask_lower] = self.children[0].get_scores_batch(Xs[mask_lower])

        if np.any(~mask_lower):
            scores_arr[~mask_lower] = self.children[1].get_scores_batch(Xs[~mask_lower])

        return scores_arr

    def plot_partition_space_2D(self, max_mass: float) -> None:
        """
        Plots vertical/horizontal lines for each split and shades leaves by mass.
        Only works for 2-dimensional data.
        """
        if not self.children:
            if self.mass > 0.0 and max_mass > 0.0:
                (x_min, x_max), (y_min, y_max) = self.feature_limits
                plt.gca().add_patch(Rectangle(
                    (x_min, y_min), x_max - x_min, y_max - y_min,
                    color="tab:blue", alpha=min(1.0, self.mass / max_mass), lw=0,
                ))
            return

        if self.idx_feature == 0:
            plt.plot([self.split_threshold, self.split_threshold],
                     [self.feature_limits[1][0], self.feature_limits[1][1]], c="gray", lw=0.5)
        else:
            plt.plot([self.feature_limits[0][0], self.feature_limits[0][1]],
                     [self.split_threshold, self.split_threshold], c="gray", lw=0.5)

        for child in self.children:
            child.plot_partition_space_2D(max_mass)


class HalfSpaceTree:
    """
    Single Half-Space Tree for streaming anomaly detection.
    The topology is a full binary tree drawn at construction time; only the
    node masses change afterwards.
    Attributes:
        bounds: Feature-space envelope partitioned by the tree.
        max_depth: Depth of every leaf.
        root: Root node of the tree.
        nodes: Every node of the tree, root first (pre-order).
    """

    def __init__(
        self,
        max_depth: int,
        bounds: Bounds | Iterable[Sequence[float]],
        rng: RandomSource | None = None,
    ) -> None:
        """
        Build the tree by recursively splitting `bounds` with random
        axis-aligned cuts.
        Args:
            max_depth: Depth of the leaves (0 builds a single leaf).
            bounds: Per-dimension (min, max) ranges, or a Bounds instance.
            rng: Source of uniform draws. A fresh numpy Generator if None.
        Raises:
            ConfigurationError: If the bounds or max_depth are invalid.
        """
        self.bounds = Bounds.coerce(bounds)
        self.max_depth = validate_max_depth(max_depth)
        if rng is None:
            rng = np.random.default_rng()

        self.root = HalfSpaceTreeNode(depth=0, feature_limits=self.bounds.limits)
        self.nodes: list[HalfSpaceTreeNode] = []
        self.root.partition_space(rng, self.max_depth, self.nodes)

        logger.debug(
            "built half-space tree: depth=%d dims=%d nodes=%d",
            self.max_depth, self.bounds.n_dims, len(self.nodes),
        )

    @property
    def n_dims(self) -> int:
        return self.bounds.n_dims

    def insert(self, x: Sequence[float] | npt.ArrayLike) -> int:
        """
        Args:
            x: Feature vector with one value per bounds dimension.
        Returns:
            Depth of the leaf that received the sample.
        Raises:
            DimensionMismatchError: If `x` has the wrong length (nothing is updated).
        """
        return self._insert(validate_feature_vector(x, self.n_dims))

    def decay(self, alpha: float) -> None:
        """
        Multiply the mass of every node by `alpha`.
        Raises:
            OutOfRangeError: If `alpha` is not in (0, 1] (nothing is updated).
        """
        self._decay(validate_alpha(alpha))

    def score(self, x: Sequence[float] | npt.ArrayLike) -> float:
        """
        Higher scores indicate `x` falls in a sparsely visited region.
        Raises:
            DimensionMismatchError: If `x` has the wrong length.
        """
        return self._score(validate_feature_vector(x, self.n_dims))

    # The methods below skip input checks; callers pass validated values.

    def _insert(self, x: Sequence[float]) -> int:
        return self.root.insert(x)

    def _insert_many(self, rows: Iterable[Sequence[float]]) -> None:
        for x in rows:
            self.root.insert(x)

    def _decay(self, alpha: float) -> None:
        for node in self.nodes:
            node.mass *= alpha

    def _score(self, x: Sequence[float]) -> float:
        return self.root.get_score(x)

    def _scores(self, Xs: npt.NDArray[np.floating[Any]]) -> npt.NDArray[np.floating[Any]]:
        return self.root.get_scores_batch(Xs)

    def path(self, x: Sequence[float] | npt.ArrayLike) -> list[tuple[int, float]]:
        """
        Returns:
            (depth, mass) of every node visited by `x`, root first.
        """
        return self.root.get_path(validate_feature_vector(x, self.n_dims))

    def leaves(self) -> list[HalfSpaceTreeNode]:
        return [node for node in self.nodes if node.is_leaf]

    def get_depth(self) -> int:
        return max(node.depth for node in self.nodes)

    def total_mass(self) -> float:
        return self.root.mass

    def plot_partition_space_2D(self, show: bool = True) -> None:
        """
        Visualize the 2D space partitioning created by this tree, with leaves
        shaded by their mass.
        Only works for 2D bounds.
        """
        if self.n_dims != 2:
            raise ConfigurationError(
                f"partition plots need 2-dimensional bounds, got {self.n_dims}"
            )

        (x_min, x_max), (y_min, y_max) = self.bounds.limits

        plt.title("Space Partition Half-Space Tree")
        plt.xlabel("X")
        plt.ylabel("Y")

        plt.plot([x_min, x_max], [y_min, y_min], c="gray")
        plt.plot([x_min, x_max], [y_max, y_max], c="gray")
        plt.plot([x_min, x_min], [y_min, y_max], c="gray")
        plt.plot([x_max, x_max], [y_min, y_max], c="gray")

        max_mass = max(leaf.mass for leaf in self.leaves())
        self.root.plot_partition_space_2D(max_mass)
        if show:
            plt.show()
