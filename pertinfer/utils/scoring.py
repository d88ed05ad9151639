"""Attachment of E-genes to P-genes under a two-component Gaussian model.

Every observed entry is either an "effect" drawn from
``N(effect_mean, sigma)`` or a "no-effect" drawn from ``N(null_mean, sigma)``.
Given the reflexive closure ``T`` of a network and a perturbation
assignment ``Gamma`` (P-genes x samples), the probability that a P-gene
``k`` shows its effect in sample ``s`` is ``F[k, s] = (T.T @ Gamma)[k, s]``.
The log-likelihood of an E-gene row attached to ``k`` is then

    sum_s log N(x_s; null) + F[k, s] * R[e, s]

with ``R`` the per-entry log-likelihood ratio effect vs. no-effect. The
first term does not depend on the network, so candidate networks are
compared through ``S = (R @ Gamma.T) @ T`` only.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Dict, Sequence

import logging
import numpy as np
import pandas as pd
from scipy.stats import norm

from .network import NetworkModel


@dataclass(frozen=True)
class NoiseModel:
    effect_mean: float = 1.0
    null_mean: float = -1.0
    sigma: float = 1.0

    def __post_init__(self):
        if not self.sigma > 0:
            raise ValueError("sigma must be positive")
        if not self.effect_mean > self.null_mean:
            raise ValueError("effect_mean must be larger than null_mean")

    def log_ratio(self, data: np.ndarray) -> np.ndarray:
        """Per-entry ``log N(x; effect) - log N(x; null)``."""
        return norm.logpdf(data, self.effect_mean, self.sigma) - norm.logpdf(
            data, self.null_mean, self.sigma
        )

    def baseline(self, data: np.ndarray) -> np.ndarray:
        """Row sums of the no-effect log density."""
        return norm.logpdf(data, self.null_mean, self.sigma).sum(axis=1)

    def estimate(self, data: np.ndarray, expected: np.ndarray) -> "NoiseModel":
        """Weighted re-estimate of both means and the shared sigma.

        ``expected`` holds the probability that each entry is an effect;
        rows of unattached E-genes should be masked out by the caller.
        Returns ``self`` unchanged when the estimate is degenerate.
        """
        logger = logging.getLogger("pertinfer")
        w1 = np.clip(expected, 0.0, 1.0)
        w0 = 1.0 - w1
        if w1.sum() <= 0 or w0.sum() <= 0:
            logger.warning("Noise estimate skipped: only one component observed")
            return self
        mu1 = float((w1 * data).sum() / w1.sum())
        mu0 = float((w0 * data).sum() / w0.sum())
        var = float(((w1 * (data - mu1) ** 2) + (w0 * (data - mu0) ** 2)).sum() / data.size)
        if not (mu1 > mu0 and var > 1e-12):
            logger.warning(
                "Noise estimate degenerate (effect=%.3f null=%.3f var=%.3g); keeping %s",
                mu1, mu0, var, self,
            )
            return self
        return NoiseModel(effect_mean=mu1, null_mean=mu0, sigma=float(np.sqrt(var)))

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class Attachment:
    """Best P-gene per E-gene; ``-1`` marks an unattached E-gene."""

    targets: np.ndarray
    gene_scores: np.ndarray
    score: float

    def to_series(self, e_genes: Sequence, p_genes: Sequence) -> pd.Series:
        names = [p_genes[t] if t >= 0 else None for t in self.targets]
        return pd.Series(names, index=list(e_genes), name="attachment", dtype=object)

    def membership(self, n_pgenes: int) -> np.ndarray:
        """``M[j, e] == 1`` iff E-gene ``e`` is attached to P-gene ``j``."""
        M = np.zeros((n_pgenes, len(self.targets)))
        attached = self.targets >= 0
        M[self.targets[attached], np.flatnonzero(attached)] = 1.0
        return M


class AttachmentScorer:
    """Score networks by attaching every E-gene to its best P-gene.

    Parameters
    ----------
    data:
        E-genes x samples matrix.
    noise:
        Emission model shared with the re-estimation step.
    null_attachment:
        If True an E-gene may stay unattached when no P-gene explains its
        row better than the no-effect hypothesis. P-genes win ties.
    """

    def __init__(self, data: np.ndarray, noise: NoiseModel | None = None, null_attachment: bool = False):
        data = np.asarray(data, dtype=float)
        if data.ndim != 2:
            raise ValueError("data must be a 2-D matrix")
        self.data = data
        self.null_attachment = null_attachment
        self.set_noise(noise or NoiseModel())

    def set_noise(self, noise: NoiseModel) -> None:
        self.noise = noise
        self.log_ratio = noise.log_ratio(self.data)
        self.log_ratio.setflags(write=False)
        self.baseline = float(noise.baseline(self.data).sum())

    def project(self, gamma: np.ndarray) -> np.ndarray:
        """``R @ Gamma.T``: evidence of each E-gene for each directly perturbed P-gene."""
        gamma = np.asarray(gamma, dtype=float)
        if gamma.shape[1] != self.data.shape[1]:
            raise ValueError("gamma and data disagree on the number of samples")
        return self.log_ratio @ gamma.T

    def score_matrix(self, closure: np.ndarray, projected: np.ndarray) -> np.ndarray:
        """E-genes x P-genes log-likelihood ratios (plus a null column if enabled)."""
        S = projected @ closure
        if self.null_attachment:
            S = np.hstack([S, np.zeros((S.shape[0], 1))])
        return S

    def attach_projected(self, network: NetworkModel, projected: np.ndarray) -> Attachment:
        S = self.score_matrix(network.closure(), projected)
        # argmax returns the first maximum, i.e. the lowest P-gene index
        targets = np.argmax(S, axis=1)
        gene_scores = S[np.arange(S.shape[0]), targets]
        if self.null_attachment:
            targets = np.where(targets == len(network), -1, targets)
        return Attachment(
            targets=targets.astype(int),
            gene_scores=gene_scores,
            score=float(gene_scores.sum()) + self.baseline,
        )

    def attach(self, network: NetworkModel, gamma: np.ndarray) -> Attachment:
        return self.attach_projected(network, self.project(gamma))

    def total_score(self, network: NetworkModel, projected: np.ndarray) -> float:
        S = self.score_matrix(network.closure(), projected)
        return float(S.max(axis=1).sum()) + self.baseline

    def expected_effects(self, network: NetworkModel, attachment: Attachment, gamma: np.ndarray) -> np.ndarray:
        """Probability that each entry is an effect; NaN rows for unattached E-genes."""
        F = network.closure().T @ np.asarray(gamma, dtype=float)
        W = np.full(self.data.shape, np.nan)
        attached = attachment.targets >= 0
        W[attached] = F[attachment.targets[attached]]
        return W
