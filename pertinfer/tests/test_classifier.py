import numpy as np
import pandas as pd
import pytest

from pertinfer.algorithms import classifier
from pertinfer.metrics.metrics import assignment_fit
from pertinfer.utils import ClassifierFailure, NetworkModel
from pertinfer.utils.loaders import simulate_dataset


@pytest.fixture(scope="module")
def screen():
    return simulate_dataset(n_pgenes=3, egenes_per_pgene=10, n_samples=60, edge_prob=0.4,
                            noise_sd=0.5, unlabeled_fraction=0.3, seed=11)


@pytest.mark.parametrize("method", ["svm", "random_forest", "logistic"])
def test_backends_recover_assignment(screen, method):
    params = {"n_estimators": 50} if method == "random_forest" else {}
    gamma, meta = classifier.run(screen.data, method=method, **params)
    np.testing.assert_allclose(gamma.sum(axis=0).to_numpy(), 1.0, atol=1e-6)
    fit = assignment_fit(gamma, screen.gamma)
    assert fit.auc > 0.8
    assert meta["n_train"] == 42
    assert not meta["propagated"]


def test_labeled_columns_keep_labels(screen):
    gamma, meta = classifier.run(screen.data, method="logistic")
    labeled = [i for i, c in enumerate(screen.data.columns) if c]
    for s in labeled:
        assert gamma.iloc[:, s].to_dict() == screen.gamma.iloc[:, s].to_dict()
    assert meta["predicted"].shape == gamma.shape


def test_propagation_with_network(screen):
    gamma, _ = classifier.run(screen.data, method="logistic")
    omega, meta = classifier.run(screen.data, method="logistic", propagate=True, network=screen.network)
    assert meta["propagated"]
    expected = screen.network.closure().T @ gamma.loc[list(screen.network.nodes)].to_numpy()
    np.testing.assert_allclose(omega.loc[list(screen.network.nodes)].to_numpy(), expected)


def test_propagation_without_network_is_skipped(screen):
    out, meta = classifier.run(screen.data, method="logistic", propagate=True)
    assert not meta["propagated"]
    pd.testing.assert_frame_equal(out, meta["assignment"])


def test_no_labels_fails():
    data = pd.DataFrame(np.random.default_rng(0).normal(size=(4, 3)), columns=["", "", ""])
    with pytest.raises(ClassifierFailure):
        classifier.run(data, p_genes=["A", "B"])


def test_backend_error_is_wrapped():
    # SVC cannot fit a single class
    data = pd.DataFrame(np.random.default_rng(0).normal(size=(4, 3)), columns=["A", "A", ""])
    with pytest.raises(ClassifierFailure):
        classifier.run(data, method="svm")


@pytest.mark.parametrize("method", ["svm", "random_forest"])
def test_bad_backend_option_is_wrapped(screen, method):
    with pytest.raises(ClassifierFailure) as ctx:
        classifier.run(screen.data, method=method, bogus=1)
    assert isinstance(ctx.value.__cause__, TypeError)


def test_unknown_backend():
    with pytest.raises(ValueError):
        classifier.make_backend("boosting")


def test_custom_backend(monkeypatch):
    class Constant:
        def fit(self, X, y):
            self.classes_ = np.unique(y)
            return self

        def predict_proba(self, X):
            return np.full((X.shape[0], len(self.classes_)), 1.0 / len(self.classes_))

    monkeypatch.setitem(classifier.BACKENDS, "constant", lambda seed, **params: Constant())
    data = pd.DataFrame(np.ones((2, 3)), columns=["A", "B", ""])
    gamma, meta = classifier.run(data, method="constant")
    assert gamma.iloc[:, 2].tolist() == [0.5, 0.5]
    assert gamma.iloc[:, 0].tolist() == [1.0, 0.0]


def test_multi_label_samples_train_each_label():
    net = NetworkModel.empty(["A", "B"])
    data = pd.DataFrame(np.eye(2).repeat(2, axis=1), columns=["A", "A_B", "B", ""])
    _, meta = classifier.run(data, method="logistic", network=net)
    assert meta["n_train"] == 4
