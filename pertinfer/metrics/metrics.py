from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Sequence, Set, Tuple

import logging
import networkx as nx
import numpy as np
import pandas as pd
from sklearn.metrics import auc, precision_recall_curve, roc_auc_score

from pertinfer.utils.errors import DimensionMismatch
from pertinfer.utils.network import NetworkModel


@dataclass
class FitRecord:
    """Precision-recall curve of an inferred assignment against the truth."""

    precision: np.ndarray
    recall: np.ndarray
    thresholds: np.ndarray
    auc: float
    roc_auc: float


def truth_from_labels(labels: Sequence[FrozenSet[str]], p_genes: Sequence[str]) -> pd.DataFrame:
    """Binary P-genes x samples matrix of the perturbations each sample received."""
    truth = np.zeros((len(p_genes), len(labels)))
    index = {p: i for i, p in enumerate(p_genes)}
    for s, lab in enumerate(labels):
        for p in lab:
            truth[index[p], s] = 1.0
    return pd.DataFrame(truth, index=list(p_genes))


def assignment_fit(inferred: pd.DataFrame, truth: pd.DataFrame) -> FitRecord:
    """Score an assignment (or its propagation) against a ground-truth matrix.

    Rows are matched by P-gene identifier and columns by position; every
    entry is one prediction.
    """
    if inferred.shape != truth.shape or set(inferred.index) != set(truth.index):
        raise DimensionMismatch(
            f"inferred {inferred.shape} and truth {truth.shape} cover different P-genes or samples"
        )
    rows = list(truth.index)
    y_score = inferred.loc[rows].to_numpy(dtype=float).ravel()
    y_true = (truth.to_numpy(dtype=float).ravel() > 0).astype(int)

    precision, recall, thresholds = precision_recall_curve(y_true, y_score)
    pr_auc = float(auc(recall, precision))
    roc = float(roc_auc_score(y_true, y_score)) if 0 < y_true.sum() < y_true.size else float("nan")
    logging.getLogger("pertinfer").info(
        "Assignment fit: entries=%d positives=%d pr_auc=%.3f roc_auc=%.3f",
        y_true.size, int(y_true.sum()), pr_auc, roc,
    )
    return FitRecord(precision=precision, recall=recall, thresholds=thresholds, auc=pr_auc, roc_auc=roc)


def _as_graph(network: NetworkModel | nx.DiGraph) -> nx.DiGraph:
    return network.to_networkx() if isinstance(network, NetworkModel) else network


def _adjacencies(pred, true) -> Tuple[np.ndarray, np.ndarray]:
    pred, true = _as_graph(pred), _as_graph(true)
    nodes = list(true.nodes())
    return (
        nx.to_numpy_array(pred, nodelist=nodes, weight=None),
        nx.to_numpy_array(true, nodelist=nodes, weight=None),
    )


def shd(pred_network, true_network, directed: bool = False) -> int:
    """Structural Hamming distance between two P-gene networks.

    By default a reversed edge counts once (skeleton difference plus
    orientation mismatches); ``directed=True`` counts every differing
    adjacency entry, so a reversal counts twice.
    """
    adj_pred, adj_true = _adjacencies(pred_network, true_network)
    if directed:
        return int((adj_pred != adj_true).sum())
    pred_ug = (adj_pred + adj_pred.T) > 0
    true_ug = (adj_true + adj_true.T) > 0
    skeleton_diff = int((pred_ug != true_ug).sum() // 2)
    shared = np.triu(pred_ug & true_ug, k=1)
    orient_mism = int((shared & (adj_pred != adj_true)).sum())
    return skeleton_diff + orient_mism


def precision_recall_f1(pred_network, true_network, undirected_ok: bool = True) -> Dict[str, float]:
    adj_pred, adj_true = _adjacencies(pred_network, true_network)
    if undirected_ok:
        adj_pred = ((adj_pred + adj_pred.T) > 0).astype(int)
        adj_true = ((adj_true + adj_true.T) > 0).astype(int)
    tp = np.sum((adj_pred == 1) & (adj_true == 1))
    fp = np.sum((adj_pred == 1) & (adj_true == 0))
    fn = np.sum((adj_pred == 0) & (adj_true == 1))
    precision = tp / (tp + fp) if tp + fp > 0 else 0.0
    recall = tp / (tp + fn) if tp + fn > 0 else 0.0
    f1 = 2 * precision * recall / (precision + recall) if precision + recall > 0 else 0.0
    return {"precision": float(precision), "recall": float(recall), "f1": float(f1)}


def directed_precision_recall_f1(pred_network, true_network) -> Dict[str, float]:
    """Precision/recall/F1 considering edge orientation."""
    base = precision_recall_f1(pred_network, true_network, undirected_ok=False)
    return {f"directed_{k}": v for k, v in base.items()}


def edge_differences(pred_network, true_network) -> Tuple[Set[tuple], Set[tuple], Set[tuple]]:
    """Return ``(extra, missing, reversed)`` edges of ``pred`` relative to ``true``."""
    pred_edges = set(_as_graph(pred_network).edges())
    true_edges = set(_as_graph(true_network).edges())
    pred_pairs = {frozenset(e) for e in pred_edges}
    true_pairs = {frozenset(e) for e in true_edges}

    extra = {e for e in pred_edges if frozenset(e) not in true_pairs}
    missing = {e for e in true_edges if frozenset(e) not in pred_pairs}
    reversed_edges = {(u, v) for (u, v) in pred_edges if (v, u) in true_edges}
    return extra, missing, reversed_edges
