import numpy as np
import pandas as pd
import pytest

from pertinfer.algorithms import nempi
from pertinfer.metrics.metrics import assignment_fit
from pertinfer.utils import DimensionMismatch, InferenceConfig, NetworkModel, NoiseModel, NonConvergence, load_config
from pertinfer.utils.loaders import simulate_dataset


def _chain_data():
    return pd.DataFrame(
        [[1.5, -1.5, 1.5, -1.5], [1.5, 1.5, 1.5, 1.5]],
        index=["E1", "E2"],
        columns=["1", "2", "1", "2"],
    )


def test_recovers_labeled_chain():
    graph, meta = nempi.run(_chain_data(), max_iterations=5)
    assert list(graph.edges()) == [("1", "2")]
    assert meta["n_cycles"] <= 5
    assert meta["converged"]
    gamma = meta["assignment"]
    assert gamma.iloc[0, 0] >= 0.9 and gamma.iloc[1, 1] >= 0.9
    assert gamma.iloc[0, 2] >= 0.9 and gamma.iloc[1, 3] >= 0.9
    assert meta["attachment"].tolist() == ["1", "2"]
    # E2 reads an effect in every sample
    np.testing.assert_allclose(meta["propagation"].loc["2"].to_numpy(), 1.0)


def _mislabeled_chain_data():
    # column 0 shows the "1" pattern but is labeled "2"
    return pd.DataFrame(
        [[3.0, -3.0, 3.0, -3.0], [1.5, 1.5, 1.5, 1.5]],
        index=["E1", "E2"],
        columns=["2", "2", "1", "2"],
    )


def test_soft_labels_relabel_wrong_sample():
    data = _mislabeled_chain_data()
    _, hard = nempi.run(data, max_iterations=5)
    graph, soft = nempi.run(data, max_iterations=5, keep_labels=False)

    assert hard["assignment"].iloc[:, 0].tolist() == [0.0, 1.0]
    assert list(graph.edges()) == [("1", "2")]
    gamma = soft["assignment"].to_numpy()
    assert gamma[0, 0] > 0.9
    assert gamma.argmax(axis=0).tolist() == [0, 1, 0, 1]
    np.testing.assert_allclose(gamma.sum(axis=0), 1.0)


def test_full_label_confidence_matches_hard_labels():
    data = _mislabeled_chain_data()
    _, hard = nempi.run(data, max_iterations=5)
    _, soft = nempi.run(data, max_iterations=5, keep_labels=False, label_confidence=1.0)
    np.testing.assert_allclose(soft["assignment"].to_numpy(), hard["assignment"].to_numpy())
    with pytest.raises(ValueError):
        InferenceConfig(label_confidence=0.0)


@pytest.mark.parametrize("seed", range(8))
def test_loop_score_trace_non_decreasing(seed):
    sim = simulate_dataset(
        n_pgenes=4, egenes_per_pgene=6, n_samples=40, edge_prob=0.4,
        noise_sd=1.0, unlabeled_fraction=0.8, seed=seed,
    )
    p_genes = list(sim.network.nodes)
    _, meta = nempi.run(sim.data, p_genes=p_genes, max_iterations=10, seed=seed)
    assert np.all(np.diff(meta["score_trace"]) >= -1e-9)
    assert 1 <= meta["n_cycles"] <= 10
    assert len(meta["score_trace"]) == meta["n_cycles"]


@pytest.mark.parametrize("seed", range(5))
def test_random_starts_recover_chain(seed):
    graph, meta = nempi.run(
        _chain_data(), max_iterations=5, init_network="random", edge_prob=1.0, seed=seed
    )
    assert list(graph.edges()) == [("1", "2")]


def test_unlabeled_with_uniform_prior():
    chain = NetworkModel.from_edges(["P1", "P2"], [("P1", "P2")])
    sim = simulate_dataset(
        network=chain, egenes_per_pgene=12, n_samples=20, noise_sd=0.5, unlabeled_fraction=1.0, seed=7
    )
    prior = pd.DataFrame(0.5, index=["P1", "P2"], columns=sim.data.columns)
    graph, meta = nempi.run(sim.data, prior=prior)

    gamma = meta["assignment"]
    np.testing.assert_allclose(gamma.sum(axis=0).to_numpy(), 1.0)
    fit = assignment_fit(gamma, sim.gamma)
    assert fit.auc > 0.6
    accuracy = np.mean(gamma.to_numpy().argmax(axis=0) == sim.gamma.to_numpy().argmax(axis=0))
    assert accuracy > 0.5


def test_propagation_output_matches_closure():
    sim = simulate_dataset(n_pgenes=4, egenes_per_pgene=5, n_samples=24, edge_prob=0.5, noise_sd=0.5, seed=2)
    _, meta = nempi.run(sim.data, max_iterations=10)
    T = meta["network"].closure()
    expected = T.T @ meta["assignment"].to_numpy()
    np.testing.assert_allclose(meta["propagation"].to_numpy(), expected)
    assert len(meta["score_trace"]) == meta["n_cycles"]


def test_nonconvergence_warns():
    with pytest.warns(NonConvergence):
        _, meta = nempi.run(_chain_data(), max_iterations=1, convergence_tolerance=0.0)
    assert not meta["converged"]
    assert meta["n_cycles"] == 1


def test_prior_rows_must_cover_labels():
    data = pd.DataFrame(np.ones((2, 2)), columns=["A", "B"])
    prior = pd.DataFrame(0.5, index=["X", "Y"], columns=["A", "B"])
    with pytest.raises(DimensionMismatch):
        nempi.run(data, prior=prior)


def test_prior_sample_count_mismatch():
    data = _chain_data()
    prior = pd.DataFrame(0.5, index=["1", "2"], columns=range(3))
    with pytest.raises(DimensionMismatch):
        nempi.run(data, prior=prior)


def test_unlabeled_data_needs_vocabulary():
    data = pd.DataFrame(np.ones((2, 2)), columns=["", ""])
    with pytest.raises(DimensionMismatch):
        nempi.run(data)
    _, meta = nempi.run(data, p_genes=["A", "B"], max_iterations=3)
    assert list(meta["assignment"].index) == ["A", "B"]


def test_zero_prior_column_excludes_sample():
    data = _chain_data()
    data.columns = ["", "2", "1", "2"]
    prior = pd.DataFrame(0.5, index=["1", "2"], columns=data.columns)
    prior.iloc[:, 0] = 0.0
    _, meta = nempi.run(data, prior=prior, max_iterations=5)
    np.testing.assert_array_equal(meta["assignment"].iloc[:, 0].to_numpy(), [0.0, 0.0])
    np.testing.assert_array_equal(meta["propagation"].iloc[:, 0].to_numpy(), [0.0, 0.0])


def test_noise_reestimation_runs():
    sim = simulate_dataset(n_pgenes=3, egenes_per_pgene=8, n_samples=30, noise_sd=0.5, seed=3)
    _, meta = nempi.run(sim.data, max_iterations=5, estimate_noise=True)
    assert isinstance(meta["noise"], NoiseModel)
    assert meta["noise"].sigma > 0


def test_config_from_mapping_and_yaml(tmp_path):
    cfg = InferenceConfig.from_dict({"max_iterations": 7, "noise_model_params": {"sigma": 2.0}})
    assert cfg.max_iterations == 7 and cfg.noise.sigma == 2.0
    assert cfg.replace(seed=3).seed == 3 and cfg.seed == 0

    with pytest.raises(ValueError):
        InferenceConfig.from_dict({"iterations": 7})
    with pytest.raises(ValueError):
        InferenceConfig(prior_blend="average")

    path = tmp_path / "config.yaml"
    path.write_text("inference:\n  max_iterations: 4\n  prior_blend: replace\n")
    loaded = load_config(path)
    assert loaded.max_iterations == 4 and loaded.prior_blend == "replace"

    graph, meta = nempi.run(_chain_data(), config={"max_iterations": 4})
    assert meta["n_cycles"] <= 4
