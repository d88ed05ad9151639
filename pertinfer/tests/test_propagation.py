import numpy as np
import pandas as pd
import pytest

from pertinfer.algorithms.propagation import propagate
from pertinfer.utils import DimensionMismatch, NetworkModel


def test_chain_propagates_downstream():
    net = NetworkModel.from_edges(["1", "2"], [("1", "2")])
    gamma = pd.DataFrame([[1.0, 0.0], [0.0, 1.0]], index=["1", "2"], columns=["s1", "s2"])
    omega = propagate(net, gamma)
    assert omega["s1"].tolist() == [1.0, 1.0]
    assert omega["s2"].tolist() == [0.0, 1.0]
    assert list(omega.columns) == ["s1", "s2"]


def test_rows_matched_by_identifier():
    net = NetworkModel.from_edges(["A", "B", "C"], [("A", "B"), ("B", "C")])
    gamma = pd.DataFrame([[0.0], [1.0], [0.0]], index=["C", "A", "B"])
    omega = propagate(net, gamma)
    assert list(omega.index) == ["C", "A", "B"]
    assert omega[0].tolist() == [1.0, 1.0, 1.0]


def test_propagation_is_linear():
    rng = np.random.default_rng(0)
    nodes = ["A", "B", "C", "D"]
    net = NetworkModel.random(nodes, rng, 0.5)
    g1 = pd.DataFrame(rng.dirichlet(np.ones(4), size=5).T, index=nodes)
    g2 = pd.DataFrame(rng.dirichlet(np.ones(4), size=5).T, index=nodes)
    lhs = propagate(net, 0.3 * g1 + 0.7 * g2)
    rhs = 0.3 * propagate(net, g1) + 0.7 * propagate(net, g2)
    np.testing.assert_allclose(lhs.to_numpy(), rhs.to_numpy())
    # a node always reaches itself
    assert (propagate(net, g1).to_numpy() >= g1.to_numpy() - 1e-12).all()


def test_no_network_returns_copy():
    gamma = pd.DataFrame([[0.5], [0.5]], index=["A", "B"])
    out = propagate(None, gamma)
    pd.testing.assert_frame_equal(out, gamma)
    out.iloc[0, 0] = 9.0
    assert gamma.iloc[0, 0] == 0.5


def test_row_mismatch():
    net = NetworkModel.from_edges(["A", "B"], [("A", "B")])
    gamma = pd.DataFrame([[1.0], [0.0]], index=["A", "X"])
    with pytest.raises(DimensionMismatch):
        propagate(net, gamma)
