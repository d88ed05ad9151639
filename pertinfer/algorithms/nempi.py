"""Perturbation inference by alternating network search and re-assignment.

Each cycle learns a network over P-genes and an attachment of E-genes for
the current (soft, possibly partial) perturbation assignment, then
re-estimates the assignment from the fitted model. The loop stops when the
assignment moves less than ``convergence_tolerance`` (max absolute change)
or after ``max_iterations`` cycles. The final assignment is propagated
downstream through the network's transitive closure.
"""

from __future__ import annotations

__all__ = ["LoopState", "InferenceLoop", "run"]

import time
import warnings
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import logging
import networkx as nx
import numpy as np
import pandas as pd

from pertinfer.algorithms.propagation import propagate
from pertinfer.algorithms.reestimate import AssignmentReestimator
from pertinfer.algorithms.structure_search import structure_search
from pertinfer.utils.config import InferenceConfig, resolve_config
from pertinfer.utils.errors import NonConvergence
from pertinfer.utils.labels import labels_to_gamma, normalize_columns, validate_inputs
from pertinfer.utils.network import NetworkModel
from pertinfer.utils.scoring import AttachmentScorer


class LoopState(Enum):
    INIT = "init"
    SEARCHING = "searching"
    REASSIGNING = "reassigning"
    CONVERGED = "converged"


class InferenceLoop:
    """Sequential state machine ``Init -> (Searching -> Reassigning)* -> Converged``.

    Construction validates the inputs and builds the starting network and
    assignment; :meth:`run` iterates. Every cycle hands a fresh network and
    a fresh assignment matrix to the next one, nothing is updated in place.
    """

    def __init__(
        self,
        data: pd.DataFrame,
        prior: pd.DataFrame | None = None,
        p_genes: Sequence[str] | None = None,
        config: InferenceConfig | None = None,
    ):
        self.config = config or InferenceConfig()
        cfg = self.config
        self.state = LoopState.INIT
        self.p_genes, self.labels = validate_inputs(data, prior, p_genes, cfg.label_delimiter)
        self.data = data
        self.e_genes = list(data.index)
        self.rng = np.random.default_rng(cfg.seed)

        self.scorer = AttachmentScorer(data.to_numpy(dtype=float), cfg.noise, cfg.null_attachment)
        self.reestimator = AssignmentReestimator(self.scorer)

        self._init_assignment(prior)
        if cfg.init_network == "random":
            self.network = NetworkModel.random(self.p_genes, self.rng, cfg.edge_prob)
        else:
            self.network = NetworkModel.empty(self.p_genes)

        self.score_trace: list[float] = []
        self.gamma_deltas: list[float] = []
        self.degenerate_samples: set[int] = set()
        self.converged = False
        self.n_cycles = 0

    def _init_assignment(self, prior: pd.DataFrame | None) -> None:
        cfg = self.config
        n_p, n_s = len(self.p_genes), len(self.labels)
        label_gamma = labels_to_gamma(self.labels, self.p_genes)
        labeled = label_gamma.sum(axis=0) > 0

        prior_mat = None
        if prior is not None:
            prior = prior.copy()
            prior.index = [str(p) for p in prior.index]
            prior_mat = normalize_columns(prior.loc[self.p_genes].to_numpy(dtype=float))

        gamma = np.zeros((n_p, n_s))
        unlabeled = ~labeled
        excluded = np.zeros(n_s, dtype=bool)
        if prior_mat is not None:
            gamma[:, unlabeled] = prior_mat[:, unlabeled]
            excluded = unlabeled & (prior_mat.sum(axis=0) == 0)
        elif cfg.unlabeled_init == "random":
            gamma[:, unlabeled] = self.rng.dirichlet(np.ones(n_p), size=int(unlabeled.sum())).T
        else:
            gamma[:, unlabeled] = 1.0 / n_p
        gamma[:, labeled] = label_gamma[:, labeled]

        if cfg.keep_labels:
            fixed = labeled
            blend_prior = prior_mat
        else:
            fixed = np.zeros(n_s, dtype=bool)
            blend_prior = np.full((n_p, n_s), 1.0 / n_p) if prior_mat is None else prior_mat.copy()
            # smoothed so every P-gene keeps non-zero prior mass
            conf = cfg.label_confidence
            blend_prior[:, labeled] = conf * label_gamma[:, labeled] + (1.0 - conf) / n_p

        self.gamma = gamma
        self.labeled = labeled
        self.fixed = fixed
        self.excluded = excluded
        self.blend_prior = blend_prior
        logging.getLogger("pertinfer").info(
            "Initial assignment: labeled=%d unlabeled=%d excluded=%d prior=%s",
            int(labeled.sum()), int(unlabeled.sum()), int(excluded.sum()), prior is not None,
        )

    def _update_noise(self, attachment) -> None:
        W = self.scorer.expected_effects(self.network, attachment, self.gamma)
        rows = ~np.isnan(W).any(axis=1)
        cols = ~self.excluded
        if not rows.any() or not cols.any():
            return
        noise = self.scorer.noise.estimate(
            self.scorer.data[np.ix_(rows, cols)], W[np.ix_(rows, cols)]
        )
        if noise != self.scorer.noise:
            logging.getLogger("pertinfer").info("Noise model re-estimated: %s", noise)
            self.scorer.set_noise(noise)

    def step(self) -> float:
        """Run one search + re-assignment cycle and return the assignment change."""
        cfg = self.config
        logger = logging.getLogger("pertinfer")

        self.state = LoopState.SEARCHING
        search = structure_search(
            self.scorer, self.gamma, self.network, cfg.max_search_steps, cfg.n_jobs
        )
        self.network = search.network
        attachment = self.scorer.attach(self.network, self.gamma)

        self.state = LoopState.REASSIGNING
        res = self.reestimator.update(
            self.network,
            attachment,
            self.gamma,
            fixed=self.fixed,
            prior=self.blend_prior,
            blend=cfg.prior_blend,
            excluded=self.excluded,
        )
        delta = float(np.abs(res.gamma - self.gamma).max())
        if cfg.estimate_noise:
            self._update_noise(attachment)
        self.gamma = res.gamma
        self.degenerate_samples.update(res.degenerate)
        self.score_trace.append(search.score)
        self.gamma_deltas.append(delta)
        self.n_cycles += 1
        logger.info(
            "Cycle %d: score=%.4f edges=%d gamma_delta=%.3g",
            self.n_cycles, search.score, self.network.number_of_edges(), delta,
        )
        return delta

    def run(self) -> Tuple[nx.DiGraph, Dict[str, object]]:
        cfg = self.config
        logger = logging.getLogger("pertinfer")
        logger.info(
            "Inference start: egenes=%d samples=%d pgenes=%d max_iterations=%d tol=%.3g",
            len(self.e_genes), len(self.labels), len(self.p_genes),
            cfg.max_iterations, cfg.convergence_tolerance,
        )
        start = time.perf_counter()

        while self.n_cycles < cfg.max_iterations:
            delta = self.step()
            if delta < cfg.convergence_tolerance:
                self.converged = True
                break
        self.state = LoopState.CONVERGED

        if not self.converged:
            msg = (
                f"assignment did not converge within {cfg.max_iterations} cycles "
                f"(last change {self.gamma_deltas[-1]:.3g})"
            )
            logger.warning(msg)
            warnings.warn(msg, NonConvergence, stacklevel=2)

        attachment = self.scorer.attach(self.network, self.gamma)
        gamma_df = pd.DataFrame(self.gamma, index=self.p_genes, columns=self.data.columns)
        omega_df = propagate(self.network, gamma_df)
        runtime = time.perf_counter() - start

        meta: Dict[str, object] = {
            "network": self.network,
            "attachment": attachment.to_series(self.e_genes, self.p_genes),
            "assignment": gamma_df,
            "propagation": omega_df,
            "score": attachment.score,
            "score_trace": list(self.score_trace),
            "gamma_deltas": list(self.gamma_deltas),
            "converged": self.converged,
            "n_cycles": self.n_cycles,
            "noise": self.scorer.noise,
            "degenerate_samples": sorted(self.degenerate_samples),
            "runtime_s": runtime,
        }
        logger.info(
            "Inference end: cycles=%d converged=%s edges=%d score=%.4f runtime_s=%.3f",
            self.n_cycles, self.converged, self.network.number_of_edges(), attachment.score, runtime,
        )
        return self.network.to_networkx(), meta


def run(
    data: pd.DataFrame,
    prior: Optional[pd.DataFrame] = None,
    p_genes: Optional[Sequence[str]] = None,
    config: InferenceConfig | Mapping[str, Any] | None = None,
    **overrides,
) -> Tuple[nx.DiGraph, Dict[str, object]]:
    """Infer perturbations and the P-gene network from a data matrix.

    Parameters
    ----------
    data : pd.DataFrame
        E-genes x samples. Column names carry the observed perturbations
        (``""`` for unlabeled, ``"A_B"`` for a double perturbation).
    prior : pd.DataFrame, optional
        P-genes x samples prior assignment with columns summing to one
        (or zero to exclude a sample). Matched to ``data`` by position.
    p_genes : sequence of str, optional
        P-gene vocabulary; required when ``data`` is fully unlabeled and
        no prior is given.
    config : InferenceConfig or dict, optional
        Engine settings; keyword ``overrides`` are applied on top.

    Returns
    -------
    nx.DiGraph
        Learned network over P-genes.
    Dict[str, object]
        ``network`` (NetworkModel), ``attachment`` (E-gene -> P-gene or
        None), ``assignment`` (Gamma), ``propagation`` (Omega),
        ``score_trace`` (search score per cycle), ``converged``,
        ``n_cycles`` and diagnostics.

    Raises
    ------
    DimensionMismatch
        If labels, prior and P-genes disagree. Raised before any cycle runs.
    """
    cfg = resolve_config(config, **overrides)
    loop = InferenceLoop(data, prior=prior, p_genes=p_genes, config=cfg)
    return loop.run()
