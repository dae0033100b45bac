import math

import numpy as np
import pytest

from conftest import SequenceRandomSource, collect_tree_signature
from half_space_trees import (
    ConfigurationError,
    DimensionMismatchError,
    HalfSpaceTree,
    OutOfRangeError,
)


@pytest.mark.parametrize("max_depth", [0, 1, 3, 6])
def test_tree_is_full_binary_tree_of_max_depth(max_depth, unit_bounds_4d, rng):
    tree = HalfSpaceTree(max_depth, unit_bounds_4d, rng)

    leaves = tree.leaves()
    assert len(leaves) == 2 ** max_depth
    assert all(leaf.depth == max_depth for leaf in leaves)
    assert len(tree.nodes) == 2 ** (max_depth + 1) - 1
    assert tree.get_depth() == max_depth
    assert all(node.mass == 0.0 for node in tree.nodes)


def test_split_thresholds_lie_inside_node_ranges(rng):
    tree = HalfSpaceTree(8, [(0.0, 1.0), (-5.0, 5.0), (10.0, 20.0)], rng)

    for node in tree.nodes:
        if node.is_leaf:
            assert node.idx_feature is None
            assert node.split_threshold is None
            continue
        low, high = node.feature_limits[node.idx_feature]
        assert low < node.split_threshold < high

        lower, upper = node.children
        assert lower.feature_limits[node.idx_feature] == (low, node.split_threshold)
        assert upper.feature_limits[node.idx_feature] == (node.split_threshold, high)
        for idx_feature in range(3):
            if idx_feature != node.idx_feature:
                assert lower.feature_limits[idx_feature] == node.feature_limits[idx_feature]
                assert upper.feature_limits[idx_feature] == node.feature_limits[idx_feature]


def test_injected_random_source_drives_splits():
    source = SequenceRandomSource(features=[0], fractions=[0.5])
    tree = HalfSpaceTree(2, [(0.0, 4.0), (0.0, 1.0)], source)

    root = tree.root
    assert root.idx_feature == 0
    assert root.split_threshold == 2.0
    assert root.children[0].split_threshold == 1.0
    assert root.children[1].split_threshold == 3.0
    assert source.n_integer_draws == 3
    assert source.n_uniform_draws == 3


def test_threshold_drawn_at_lower_limit_is_moved_inside():
    source = SequenceRandomSource(features=[1], fractions=[0.0])
    tree = HalfSpaceTree(1, [(0.0, 1.0), (2.0, 3.0)], source)

    assert tree.root.idx_feature == 1
    assert 2.0 < tree.root.split_threshold < 3.0


def test_threshold_drawn_at_upper_limit_is_moved_inside():
    source = SequenceRandomSource(features=[0], fractions=[1.0])
    tree = HalfSpaceTree(1, [(0.0, 1.0)], source)

    assert 0.0 < tree.root.split_threshold < 1.0
    low, high = tree.root.children[1].feature_limits[0]
    assert low < high


@pytest.mark.parametrize("max_depth", [-1, 2.5, True, "3"])
def test_invalid_max_depth_raises(max_depth, unit_bounds_4d):
    with pytest.raises(ConfigurationError):
        HalfSpaceTree(max_depth, unit_bounds_4d)


def test_empty_bounds_raise():
    with pytest.raises(ConfigurationError):
        HalfSpaceTree(3, [])


def test_insert_increments_every_node_on_path():
    source = SequenceRandomSource(features=[0], fractions=[0.5])
    tree = HalfSpaceTree(2, [(0.0, 4.0)], source)

    assert tree.insert([2.5]) == 2

    root = tree.root
    upper = root.children[1]
    assert root.mass == 1.0
    assert upper.mass == 1.0
    assert upper.children[0].mass == 1.0
    assert sum(node.mass for node in tree.nodes) == 3.0


def test_insert_goes_right_on_equal_threshold():
    source = SequenceRandomSource(features=[0], fractions=[0.5])
    tree = HalfSpaceTree(1, [(0.0, 4.0)], source)

    tree.insert([2.0])

    assert tree.root.children[0].mass == 0.0
    assert tree.root.children[1].mass == 1.0


def test_path_records_depth_and_mass():
    source = SequenceRandomSource(features=[0], fractions=[0.5])
    tree = HalfSpaceTree(2, [(0.0, 4.0)], source)
    tree.insert([0.5])
    tree.insert([0.6])
    tree.insert([1.5])

    assert tree.path([0.7]) == [(0, 3.0), (1, 3.0), (2, 2.0)]
    assert tree.total_mass() == 3.0


def test_score_is_depth_minus_log_leaf_mass(rng):
    tree = HalfSpaceTree(5, [(0.0, 1.0), (0.0, 1.0)], rng)
    x = [0.3, 0.7]

    assert tree.score(x) == pytest.approx(5.0)

    for _ in range(4):
        tree.insert(x)
    assert tree.score(x) == pytest.approx(5.0 - math.log(5.0))

    tree.decay(0.5)
    assert tree.score(x) == pytest.approx(5.0 - math.log(3.0))


def test_score_does_not_mutate(rng):
    tree = HalfSpaceTree(4, [(0.0, 1.0)] * 3, rng)
    tree.insert([0.1, 0.2, 0.3])
    before = [node.mass for node in tree.nodes]

    tree.score([0.1, 0.2, 0.3])
    tree.score([0.9, 0.9, 0.9])

    assert [node.mass for node in tree.nodes] == before


def test_decay_scales_every_node(rng):
    tree = HalfSpaceTree(3, [(0.0, 1.0)] * 2, rng)
    for x in rng.uniform(size=(50, 2)):
        tree.insert(x)
    before = np.array([node.mass for node in tree.nodes])

    tree.decay(0.25)

    after = np.array([node.mass for node in tree.nodes])
    np.testing.assert_allclose(after, before * 0.25)
    assert np.all(after >= 0.0)


def test_two_decays_equal_one_decay_of_the_product():
    points = np.random.default_rng(3).uniform(size=(200, 3))
    tree_a = HalfSpaceTree(6, [(0.0, 1.0)] * 3, np.random.default_rng(11))
    tree_b = HalfSpaceTree(6, [(0.0, 1.0)] * 3, np.random.default_rng(11))
    for x in points:
        tree_a.insert(x)
        tree_b.insert(x)

    tree_a.decay(0.9)
    tree_a.decay(0.7)
    tree_b.decay(0.9 * 0.7)

    np.testing.assert_allclose(
        [node.mass for node in tree_a.nodes],
        [node.mass for node in tree_b.nodes],
        rtol=1e-12,
    )


@pytest.mark.parametrize("alpha", [0.0, -1.0, 1.5, float("nan")])
def test_invalid_decay_leaves_masses_unchanged(alpha, rng):
    tree = HalfSpaceTree(3, [(0.0, 1.0)], rng)
    tree.insert([0.5])
    before = [node.mass for node in tree.nodes]

    with pytest.raises(OutOfRangeError):
        tree.decay(alpha)

    assert [node.mass for node in tree.nodes] == before


def test_dimension_mismatch_leaves_masses_unchanged(unit_bounds_4d, rng):
    tree = HalfSpaceTree(4, unit_bounds_4d, rng)
    tree.insert([0.1, 0.2, 0.3, 0.4])
    before = [node.mass for node in tree.nodes]

    with pytest.raises(DimensionMismatchError):
        tree.insert([0.1, 0.2, 0.3])
    with pytest.raises(DimensionMismatchError):
        tree.score([0.1, 0.2, 0.3, 0.4, 0.5])

    assert [node.mass for node in tree.nodes] == before


def test_depth_zero_tree_scores_on_root_mass_only(rng):
    tree = HalfSpaceTree(0, [(0.0, 1.0)] * 2, rng)

    assert tree.root.is_leaf
    assert tree.insert([0.9, 0.1]) == 0
    assert tree.insert([0.1, 0.9]) == 0
    assert tree.score([0.5, 0.5]) == pytest.approx(-math.log(3.0))
    assert tree.score([0.0, 1.0]) == tree.score([0.7, 0.2])


def test_batch_scores_match_single_scores(rng):
    tree = HalfSpaceTree(6, [(0.0, 1.0)] * 3, rng)
    for x in rng.uniform(size=(300, 3)):
        tree.insert(x)
    Xs = rng.uniform(size=(40, 3))

    np.testing.assert_allclose(
        tree.root.get_scores_batch(Xs), [tree.score(x) for x in Xs]
    )


def test_same_seed_builds_same_tree(unit_bounds_4d):
    tree_a = HalfSpaceTree(5, unit_bounds_4d, np.random.default_rng(123))
    tree_b = HalfSpaceTree(5, unit_bounds_4d, np.random.default_rng(123))

    assert collect_tree_signature(tree_a.root) == collect_tree_signature(tree_b.root)
