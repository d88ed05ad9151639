"""Sample labels and the initial perturbation assignment.

Columns of the data matrix are named by the P-genes perturbed in each
sample, joined by a delimiter (``"A_B"`` for a double perturbation). An
empty name marks an unlabeled sample.
"""

from __future__ import annotations

from typing import FrozenSet, Iterable, List, Sequence, Tuple

import logging
import numpy as np
import pandas as pd

from .errors import DimensionMismatch


def parse_labels(columns: Iterable, delimiter: str = "_") -> List[FrozenSet[str]]:
    labels = []
    for col in columns:
        if col is None or (isinstance(col, float) and np.isnan(col)):
            labels.append(frozenset())
            continue
        parts = [p.strip() for p in str(col).split(delimiter)] if delimiter else [str(col).strip()]
        labels.append(frozenset(p for p in parts if p))
    return labels


def label_vocabulary(labels: Iterable[FrozenSet[str]]) -> List[str]:
    vocab = set()
    for lab in labels:
        vocab |= lab
    return sorted(vocab)


def labels_to_gamma(labels: Sequence[FrozenSet[str]], p_genes: Sequence[str]) -> np.ndarray:
    """Uniform distribution over each sample's label set; unlabeled columns stay zero."""
    index = {p: i for i, p in enumerate(p_genes)}
    gamma = np.zeros((len(p_genes), len(labels)))
    for s, lab in enumerate(labels):
        for p in lab:
            gamma[index[p], s] = 1.0 / len(lab)
    return gamma


def normalize_columns(gamma: np.ndarray) -> np.ndarray:
    """Scale columns to sum to one; all-zero columns stay zero."""
    gamma = np.asarray(gamma, dtype=float)
    sums = gamma.sum(axis=0, keepdims=True)
    out = np.zeros_like(gamma)
    np.divide(gamma, sums, out=out, where=sums > 0)
    return out


def validate_inputs(
    data: pd.DataFrame,
    prior: pd.DataFrame | None = None,
    p_genes: Sequence[str] | None = None,
    delimiter: str = "_",
) -> Tuple[List[str], List[FrozenSet[str]]]:
    """Check D, labels and prior against each other.

    Returns the P-gene vocabulary and the parsed labels. Raises
    ``DimensionMismatch`` when the inputs disagree and ``ValueError`` for
    non-finite data.
    """
    logger = logging.getLogger("pertinfer")
    if data.shape[0] == 0 or data.shape[1] == 0:
        raise ValueError("data must contain at least one E-gene and one sample")
    values = data.to_numpy(dtype=float)
    if not np.isfinite(values).all():
        raise ValueError("data contains missing or infinite values")

    labels = parse_labels(data.columns, delimiter)
    vocab = label_vocabulary(labels)

    if p_genes is not None:
        p_genes = [str(p) for p in p_genes]
        if len(set(p_genes)) != len(p_genes):
            raise DimensionMismatch("P-gene identifiers must be unique")

    if prior is not None:
        if prior.shape[1] != data.shape[1]:
            raise DimensionMismatch(
                f"prior has {prior.shape[1]} samples but data has {data.shape[1]}"
            )
        prior_genes = [str(p) for p in prior.index]
        if p_genes is not None and set(p_genes) != set(prior_genes):
            raise DimensionMismatch("explicit P-genes do not match the prior's rows")
        p_genes = prior_genes
        pvals = prior.to_numpy(dtype=float)
        if not np.isfinite(pvals).all() or (pvals < 0).any():
            raise ValueError("prior must contain finite non-negative values")

    if p_genes is None:
        p_genes = vocab
    if not p_genes:
        raise DimensionMismatch("no P-gene vocabulary: label the data or supply a prior")

    unknown = set(vocab) - set(p_genes)
    if unknown:
        raise DimensionMismatch(
            f"labels {sorted(unknown)} are not among the P-genes {list(p_genes)}"
        )
    logger.info(
        "Inputs validated: egenes=%d samples=%d pgenes=%d labeled=%d",
        data.shape[0], data.shape[1], len(p_genes), sum(1 for lab in labels if lab),
    )
    return list(p_genes), labels
