import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest


class SequenceRandomSource:
    """Deterministic stand-in for a numpy Generator.

    `integers` cycles through `features`; `uniform` returns
    low + fraction * (high - low), cycling through `fractions`.
    """

    def __init__(self, features, fractions):
        self.features = list(features)
        self.fractions = list(fractions)
        self.n_integer_draws = 0
        self.n_uniform_draws = 0

    def integers(self, low, high):
        value = self.features[self.n_integer_draws % len(self.features)]
        self.n_integer_draws += 1
        assert low <= value < high
        return value

    def uniform(self, low, high):
        fraction = self.fractions[self.n_uniform_draws % len(self.fractions)]
        self.n_uniform_draws += 1
        return low + fraction * (high - low)


@pytest.fixture
def unit_bounds_4d():
    return [(0.0, 1.0)] * 4


@pytest.fixture
def rng():
    return np.random.default_rng(7)


def collect_tree_signature(node):
    if node.is_leaf:
        return [("L", node.depth)]

    signature = [("S", node.depth, node.idx_feature, node.split_threshold)]
    signature.extend(collect_tree_signature(node.children[0]))
    signature.extend(collect_tree_signature(node.children[1]))
    return signature


def collect_masses(forest):
    return [[node.mass for node in tree.nodes] for tree in forest.trees]
