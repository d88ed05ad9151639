import numpy as np

from pertinfer.utils import NetworkModel
from pertinfer.utils.loaders import simulate_dataset


def test_simulated_shapes_and_truth():
    sim = simulate_dataset(n_pgenes=4, egenes_per_pgene=3, n_samples=20, seed=0)
    assert sim.data.shape == (12, 20)
    assert list(sim.gamma.index) == ["P1", "P2", "P3", "P4"]
    assert (sim.gamma.sum(axis=0) == 1).all()
    # samples are spread evenly over the P-genes
    assert sim.gamma.sum(axis=1).tolist() == [5, 5, 5, 5]
    assert list(sim.data.columns) == [sim.gamma.index[k] for k in sim.gamma.to_numpy().argmax(axis=0)]
    np.testing.assert_allclose(sim.omega.to_numpy(), sim.network.closure().T @ sim.gamma.to_numpy())
    assert sim.attachment.value_counts().tolist() == [3, 3, 3, 3]


def test_effect_signs_follow_network():
    chain = NetworkModel.from_edges(["A", "B"], [("A", "B")])
    sim = simulate_dataset(network=chain, egenes_per_pgene=2, n_samples=4, noise_sd=0.0, effect=2.0)
    for s, label in enumerate(sim.data.columns):
        expected = [2.0, 2.0, 2.0, 2.0] if label == "A" else [-2.0, -2.0, 2.0, 2.0]
        assert sim.data.iloc[:, s].tolist() == expected


def test_unlabeled_fraction_and_reproducibility():
    a = simulate_dataset(n_pgenes=3, n_samples=30, unlabeled_fraction=0.5, seed=9)
    b = simulate_dataset(n_pgenes=3, n_samples=30, unlabeled_fraction=0.5, seed=9)
    assert sum(1 for c in a.data.columns if c == "") == 15
    assert a.network == b.network
    np.testing.assert_array_equal(a.data.to_numpy(), b.data.to_numpy())
    # the truth keeps every sample's perturbation
    assert (a.gamma.sum(axis=0) == 1).all()
