"""Re-estimate the per-sample perturbation assignment from a fitted network."""

from __future__ import annotations

__all__ = ["Reassignment", "AssignmentReestimator", "column_softmax"]

import warnings
from dataclasses import dataclass, field
from typing import List, Tuple

import logging
import numpy as np
from scipy.special import logsumexp

from pertinfer.utils.errors import DegenerateLikelihood
from pertinfer.utils.network import NetworkModel
from pertinfer.utils.scoring import Attachment, AttachmentScorer


@dataclass
class Reassignment:
    gamma: np.ndarray
    log_likelihood: np.ndarray
    degenerate: List[int] = field(default_factory=list)


def column_softmax(log_values: np.ndarray) -> Tuple[np.ndarray, List[int]]:
    """Normalized exponential per column.

    NaN counts as ``-inf``. Columns without a finite maximum fall back to
    uniform (or to uniform over their ``+inf`` entries) and are reported
    as degenerate.
    """
    logv = np.where(np.isnan(log_values), -np.inf, np.asarray(log_values, dtype=float))
    n_rows, n_cols = logv.shape
    out = np.empty_like(logv)
    degenerate = []
    for s in range(n_cols):
        col = logv[:, s]
        if np.isposinf(col).any():
            top = np.isposinf(col)
            out[:, s] = top / top.sum()
            degenerate.append(s)
        elif not np.isfinite(col).any():
            out[:, s] = 1.0 / n_rows
            degenerate.append(s)
        else:
            out[:, s] = np.exp(col - logsumexp(col))
    return out, degenerate


class AssignmentReestimator:
    """Posterior over the perturbed P-gene of every sample.

    Under the hypothesis "sample ``s`` perturbs ``k``", E-gene ``e`` shows
    an effect iff ``k`` reaches the P-gene ``e`` is attached to. With the
    per-entry log-ratios ``R`` of the scorer this gives

        ll[k, s] = sum_e T[k, theta(e)] * R[e, s]

    up to a per-sample constant. Unattached E-genes only add that constant.
    """

    def __init__(self, scorer: AttachmentScorer):
        self.scorer = scorer

    def log_likelihoods(self, network: NetworkModel, attachment: Attachment) -> np.ndarray:
        M = attachment.membership(len(network))
        return network.closure() @ (M @ self.scorer.log_ratio)

    def update(
        self,
        network: NetworkModel,
        attachment: Attachment,
        gamma: np.ndarray,
        fixed: np.ndarray | None = None,
        prior: np.ndarray | None = None,
        blend: str = "multiply",
        excluded: np.ndarray | None = None,
    ) -> Reassignment:
        """Return a new assignment; ``gamma`` itself is never modified.

        Parameters
        ----------
        fixed:
            Boolean mask of samples whose column is copied from ``gamma``
            (hard labels).
        prior:
            Prior assignment blended into the posterior when ``blend`` is
            ``"multiply"``. Ignored for ``"replace"``.
        excluded:
            Boolean mask of samples kept at an all-zero column.
        """
        logger = logging.getLogger("pertinfer")
        n_samples = gamma.shape[1]
        fixed = np.zeros(n_samples, dtype=bool) if fixed is None else np.asarray(fixed, dtype=bool)
        excluded = np.zeros(n_samples, dtype=bool) if excluded is None else np.asarray(excluded, dtype=bool)

        ll = self.log_likelihoods(network, attachment)
        log_post = ll
        if prior is not None and blend == "multiply":
            with np.errstate(divide="ignore"):
                log_post = ll + np.log(prior)
        elif blend not in ("multiply", "replace"):
            raise ValueError(f"Unknown prior blend: {blend}")

        free = ~(fixed | excluded)
        new_gamma = np.array(gamma, dtype=float, copy=True)
        new_gamma[:, excluded] = 0.0
        degenerate: List[int] = []
        if free.any():
            free_idx = np.flatnonzero(free)
            post, bad = column_softmax(log_post[:, free_idx])
            new_gamma[:, free_idx] = post
            degenerate = [int(free_idx[b]) for b in bad]

        if degenerate:
            msg = f"{len(degenerate)} sample(s) had no usable likelihood; using uniform assignment"
            logger.warning("%s: samples=%s", msg, degenerate[:20])
            warnings.warn(msg, DegenerateLikelihood, stacklevel=2)

        return Reassignment(gamma=new_gamma, log_likelihood=ll, degenerate=degenerate)
