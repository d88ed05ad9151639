"""Assign perturbations with a supervised classifier instead of a network.

Samples (columns of the data matrix) are feature vectors; labeled samples
train the classifier and every sample receives a predicted distribution
over P-genes. The classifier family is picked by name from ``BACKENDS``;
any object with ``fit``, ``predict_proba`` and ``classes_`` works.
"""

from __future__ import annotations

__all__ = ["ClassifierBackend", "BACKENDS", "make_backend", "run"]

import time
from typing import Callable, Dict, Optional, Protocol, Sequence, Tuple, runtime_checkable

import logging
import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.neural_network import MLPClassifier
from sklearn.svm import SVC

from pertinfer.algorithms.propagation import propagate as propagate_assignment
from pertinfer.utils.errors import ClassifierFailure
from pertinfer.utils.labels import labels_to_gamma, validate_inputs
from pertinfer.utils.network import NetworkModel


@runtime_checkable
class ClassifierBackend(Protocol):
    classes_: np.ndarray

    def fit(self, X: np.ndarray, y: np.ndarray) -> "ClassifierBackend":
        ...

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        ...


def _svm(seed: int, **params) -> ClassifierBackend:
    params.setdefault("kernel", "rbf")
    return SVC(probability=True, random_state=seed, **params)


def _random_forest(seed: int, **params) -> ClassifierBackend:
    params.setdefault("n_estimators", 200)
    return RandomForestClassifier(random_state=seed, **params)


def _neural_net(seed: int, **params) -> ClassifierBackend:
    params.setdefault("hidden_layer_sizes", (32,))
    params.setdefault("max_iter", 2000)
    return MLPClassifier(random_state=seed, **params)


def _logistic(seed: int, **params) -> ClassifierBackend:
    params.setdefault("max_iter", 1000)
    return LogisticRegression(random_state=seed, **params)


BACKENDS: Dict[str, Callable[..., ClassifierBackend]] = {
    "svm": _svm,
    "random_forest": _random_forest,
    "nn": _neural_net,
    "logistic": _logistic,
}


def make_backend(name: str, seed: int = 0, **params) -> ClassifierBackend:
    try:
        factory = BACKENDS[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown classifier backend '{name}'. Choose from {sorted(BACKENDS)}") from None
    return factory(seed, **params)


def run(
    data: pd.DataFrame,
    method: str = "svm",
    propagate: bool = False,
    network: Optional[NetworkModel] = None,
    p_genes: Optional[Sequence[str]] = None,
    seed: int = 0,
    delimiter: str = "_",
    **params,
) -> Tuple[pd.DataFrame, Dict[str, object]]:
    """Predict the perturbation assignment of every sample.

    Parameters
    ----------
    data : pd.DataFrame
        E-genes x samples, columns named by perturbation labels.
    method : str
        Backend name in ``BACKENDS``.
    propagate : bool
        Propagate the assignment through ``network`` afterwards. Without a
        network the assignment is returned unpropagated.
    network : NetworkModel, optional
        Previously learned or known network over the P-genes.
    **params
        Passed to the backend constructor.

    Returns
    -------
    pd.DataFrame
        P-genes x samples assignment (propagated if requested). Labeled
        samples keep their observed labels.
    Dict[str, object]
        ``predicted`` (raw classifier output for every sample),
        ``propagated``, ``n_train`` and ``runtime_s``.

    Raises
    ------
    ClassifierFailure
        If there is nothing to train on, the backend rejects ``params`` or
        the backend raises.
    """
    logger = logging.getLogger("pertinfer")
    p_genes, labels = validate_inputs(data, None, p_genes, delimiter)
    try:
        model = make_backend(method, seed, **params)
    except TypeError as e:
        logger.error("Classifier %s rejected its options %s: %s", method, sorted(params), e)
        raise ClassifierFailure(f"invalid options for {method} backend: {e}") from e

    X = data.to_numpy(dtype=float).T
    train_idx, train_y = [], []
    for s, lab in enumerate(labels):
        for p in sorted(lab):
            train_idx.append(s)
            train_y.append(p)
    if not train_idx:
        raise ClassifierFailure("no labeled samples to train on")

    logger.info(
        "Classifier start: method=%s samples=%d features=%d train_rows=%d",
        method, X.shape[0], X.shape[1], len(train_idx),
    )
    start = time.perf_counter()
    try:
        model.fit(X[train_idx], np.asarray(train_y))
        proba = model.predict_proba(X)
    except Exception as e:
        logger.error("Classifier %s failed: %s", method, e)
        raise ClassifierFailure(f"{method} backend failed: {e}") from e
    runtime = time.perf_counter() - start

    index = {p: i for i, p in enumerate(p_genes)}
    predicted = np.zeros((len(p_genes), X.shape[0]))
    for ci, cls in enumerate(model.classes_):
        predicted[index[str(cls)]] = proba[:, ci]

    label_gamma = labels_to_gamma(labels, p_genes)
    labeled = label_gamma.sum(axis=0) > 0
    gamma = predicted.copy()
    gamma[:, labeled] = label_gamma[:, labeled]
    gamma_df = pd.DataFrame(gamma, index=p_genes, columns=data.columns)

    propagated = False
    out = gamma_df
    if propagate:
        if network is None:
            logger.warning("Propagation requested without a network; returning the assignment")
        else:
            out = propagate_assignment(network, gamma_df)
            propagated = True

    logger.info("Classifier end: method=%s propagated=%s runtime_s=%.3f", method, propagated, runtime)
    return out, {
        "predicted": pd.DataFrame(predicted, index=p_genes, columns=data.columns),
        "assignment": gamma_df,
        "method": method,
        "propagated": propagated,
        "n_train": len(train_idx),
        "runtime_s": runtime,
    }
