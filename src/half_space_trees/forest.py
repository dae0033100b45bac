"""
This module contains the HalfSpaceForest class that implements an ensemble
of half-space trees for streaming anomaly detection.
"""

from __future__ import annotations

import logging
from numbers import Integral
from typing import Any, Iterable, Sequence

import numpy as np
import numpy.typing as npt
from joblib import Parallel, delayed

from .bounds import (
    Bounds,
    validate_alpha,
    validate_feature_matrix,
    validate_feature_vector,
)
from .errors import ConfigurationError
from .tree import HalfSpaceTree, RandomSource, validate_max_depth

logger = logging.getLogger(__name__)


def _build_single_tree(seed: int, max_depth: int, bounds: Bounds) -> HalfSpaceTree:
    """
    Worker function to build a half-space tree with a given seed.
    This function is designed to be called in parallel using joblib.
    Each worker receives an integer seed to ensure reproducibility.

    Args:
        seed: Random seed for this tree (integer).
        max_depth: Depth of the leaves.
        bounds: Feature-space envelope shared by the forest.
    Returns:
        Newly built HalfSpaceTree instance.
    """
    return HalfSpaceTree(max_depth, bounds, np.random.default_rng(seed))


def _insert_single_tree(tree: HalfSpaceTree, x: list[float]) -> int:
    return tree._insert(x)


def _insert_many_single_tree(tree: HalfSpaceTree, rows: list[list[float]]) -> None:
    tree._insert_many(rows)


def _decay_single_tree(tree: HalfSpaceTree, alpha: float) -> None:
    tree._decay(alpha)


def _score_single_tree(tree: HalfSpaceTree, x: list[float]) -> float:
    return tree._score(x)


def _score_single_tree_batch(
    tree: HalfSpaceTree,
    Xs: npt.NDArray[np.floating[Any]],
) -> npt.NDArray[np.floating[Any]]:
    """
    Worker function to score samples on a single tree.
    Args:
        tree: HalfSpaceTree instance.
        Xs: Data samples of shape (n_samples, n_features).
    Returns:
        Anomaly scores for each sample of shape (n_samples,).
    """
    return tree._scores(Xs)


class HalfSpaceForest:
    """
    Ensemble of Half-Space Trees for streaming anomaly detection.

    Every tree partitions the same bounds with its own random splits. Samples
    are inserted into every tree, masses are decayed periodically by the
    caller, and scores are averaged across all trees.

    Attributes:
        n_trees: Number of trees in the ensemble.
        max_depth: Depth of the leaves of every tree.
        bounds: Feature-space envelope shared by all trees.
        n_jobs: Number of parallel jobs to run. -1 means using all processors.
        trees: List of HalfSpaceTree instances.
    """

    def __init__(
        self,
        n_trees: int,
        max_depth: int,
        bounds: Bounds | Iterable[Sequence[float]],
        rng: RandomSource | int | None = None,
        n_jobs: int = 1,
    ) -> None:
        """
        Initialize a HalfSpaceForest and build its trees.
        Args:
            n_trees: Number of half-space trees to create in the ensemble.
            max_depth: Depth of the leaves (0 builds single-leaf trees).
            bounds: Per-dimension (min, max) ranges, or a Bounds instance.
            rng: Random source for the splits. A numpy Generator, an integer
                seed, None, or any RandomSource; one seed per tree is drawn
                from it. The same seed produces identical forests in both
                sequential (n_jobs=1) and parallel (n_jobs=-1) modes.
            n_jobs: Number of parallel jobs used to dispatch per-tree work.
                - If 1 (default): sequential execution (no parallelization)
                - If -1: use all available processors
                - If > 1: use specified number of processors
        Raises:
            ConfigurationError: If any parameter is invalid. No forest is built.
        """
        if isinstance(n_trees, bool) or not isinstance(n_trees, Integral) or n_trees < 1:
            raise ConfigurationError(f"n_trees must be a positive integer, got {n_trees!r}")
        if isinstance(n_jobs, bool) or not isinstance(n_jobs, Integral) or n_jobs == 0:
            raise ConfigurationError(f"n_jobs must be a non-zero integer, got {n_jobs!r}")

        self.n_trees = int(n_trees)
        self.max_depth = validate_max_depth(max_depth)
        self.bounds = Bounds.coerce(bounds)
        self.n_jobs = int(n_jobs)

        MAX_INT = np.iinfo(np.int32).max
        if rng is None or isinstance(rng, (Integral, np.random.Generator, np.random.SeedSequence)):
            generator = np.random.default_rng(rng)
            seeds = generator.integers(MAX_INT, size=self.n_trees)
        else:
            # any other RandomSource: one draw per tree
            seeds = [rng.integers(0, MAX_INT) for _ in range(self.n_trees)]

        # Build trees in parallel or sequentially
        if self.n_jobs == 1:
            self.trees: list[HalfSpaceTree] = [
                _build_single_tree(int(seed), self.max_depth, self.bounds) for seed in seeds
            ]
        else:
            trees_list = Parallel(n_jobs=self.n_jobs, backend="loky")(
                delayed(_build_single_tree)(int(seed), self.max_depth, self.bounds)
                for seed in seeds
            )
            self.trees = list(trees_list)  # type: ignore[arg-type]
            # workers return unpickled copies of the bounds
            for tree in self.trees:
                tree.bounds = self.bounds

        logger.info(
            "built half-space forest: trees=%d depth=%d dims=%d n_jobs=%d",
            self.n_trees, self.max_depth, self.bounds.n_dims, self.n_jobs,
        )

    @property
    def n_dims(self) -> int:
        return self.bounds.n_dims

    def _dispatch(self, func: Any, arg: Any) -> list[Any]:
        """
        Run `func(tree, arg)` for every tree, in order.
        Per-tree work mutates or reads the trees in place, so parallel runs
        use joblib's threading backend.
        """
        if self.n_jobs == 1:
            return [func(tree, arg) for tree in self.trees]
        return list(Parallel(n_jobs=self.n_jobs, backend="threading")(
            delayed(func)(tree, arg) for tree in self.trees
        ))

    def insert(self, x: Sequence[float] | npt.ArrayLike) -> None:
        """
        Insert a sample with unit weight into every tree.
        Args:
            x: Feature vector with one value per bounds dimension.
        Raises:
            DimensionMismatchError: If `x` has the wrong length. No tree is updated.
        """
        self._dispatch(_insert_single_tree, validate_feature_vector(x, self.n_dims))

    def insert_many(self, Xs: npt.ArrayLike) -> None:
        """
        Insert every row of `Xs`, in order.
        Args:
            Xs: Samples of shape (n_samples, n_features).
        Raises:
            DimensionMismatchError: If `Xs` has the wrong shape. No tree is updated.
        """
        rows = validate_feature_matrix(Xs, self.n_dims).tolist()
        self._dispatch(_insert_many_single_tree, rows)

    def decay(self, alpha: float) -> None:
        """
        Multiply all node masses of all trees by `alpha`.
        Raises:
            OutOfRangeError: If `alpha` is not in (0, 1]. No tree is updated.
        """
        alpha = validate_alpha(alpha)
        self._dispatch(_decay_single_tree, alpha)
        logger.debug("decayed %d trees by %g", self.n_trees, alpha)

    def tree_scores(self, x: Sequence[float] | npt.ArrayLike) -> npt.NDArray[np.floating[Any]]:
        """
        Returns:
            Score of `x` in each tree, of shape (n_trees,).
        """
        x = validate_feature_vector(x, self.n_dims)
        return np.array(self._dispatch(_score_single_tree, x), dtype=np.float64)

    def score(self, x: Sequence[float] | npt.ArrayLike) -> float:
        """
        Average score of `x` across trees; higher scores indicate anomalies.
        Raises:
            DimensionMismatchError: If `x` has the wrong length.
        """
        return float(np.mean(self.tree_scores(x)))

    def scores(self, Xs: npt.ArrayLike) -> npt.NDArray[np.floating[Any]]:
        """
        Args:
            Xs: Data samples of shape (n_samples, n_features).
        Returns:
            Anomaly scores for each sample of shape (n_samples,).
        """
        Xs = validate_feature_matrix(Xs, self.n_dims)
        score_results = self._dispatch(_score_single_tree_batch, Xs)
        score_matrix = np.column_stack(score_results)
        return np.mean(score_matrix, axis=1)

    def plot_partition_space_2D(self, tree_idx: int = 0, show: bool = True) -> None:
        """
        Visualize the partition and leaf masses of one tree of the forest.
        Only works for 2D bounds.
        """
        self.trees[tree_idx].plot_partition_space_2D(show=show)
