from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import logging
import numpy as np
import pandas as pd

from .network import NetworkModel


@dataclass
class SimulatedData:
    """Synthetic data matrix together with the truth it was drawn from."""

    data: pd.DataFrame
    network: NetworkModel
    gamma: pd.DataFrame
    omega: pd.DataFrame
    attachment: pd.Series


def simulate_dataset(
    n_pgenes: int = 5,
    egenes_per_pgene: int = 10,
    n_samples: int = 100,
    edge_prob: float = 0.3,
    effect: float = 1.5,
    noise_sd: float = 1.0,
    unlabeled_fraction: float = 0.0,
    network: Optional[NetworkModel] = None,
    seed: int = 0,
) -> SimulatedData:
    """Draw a perturbation screen from a random (or given) P-gene network.

    Samples are spread evenly over the P-genes, one perturbation each. An
    E-gene reads ``+effect`` when its P-gene is reachable from the
    perturbed one and ``-effect`` otherwise, plus Gaussian noise. Columns
    are named by the perturbed P-gene, or ``""`` for the randomly chosen
    ``unlabeled_fraction`` of samples.
    """
    logger = logging.getLogger("pertinfer")
    rng = np.random.default_rng(seed)
    if network is None:
        p_genes = [f"P{i + 1}" for i in range(n_pgenes)]
        network = NetworkModel.random(p_genes, rng, edge_prob)
    else:
        p_genes = [str(p) for p in network.nodes]
        n_pgenes = len(p_genes)

    targets = np.repeat(np.arange(n_pgenes), egenes_per_pgene)
    e_genes = [f"E{i + 1}" for i in range(len(targets))]
    perturbed = rng.permutation(np.arange(n_samples) % n_pgenes)

    T = network.closure()
    affected = T[perturbed][:, targets].T > 0
    values = np.where(affected, effect, -effect) + rng.normal(0.0, noise_sd, size=affected.shape)

    names = np.array([p_genes[k] for k in perturbed], dtype=object)
    n_unlabeled = int(round(unlabeled_fraction * n_samples))
    if n_unlabeled:
        names[rng.choice(n_samples, size=n_unlabeled, replace=False)] = ""

    gamma = np.zeros((n_pgenes, n_samples))
    gamma[perturbed, np.arange(n_samples)] = 1.0
    data = pd.DataFrame(values, index=e_genes, columns=list(names))
    gamma_df = pd.DataFrame(gamma, index=p_genes, columns=data.columns)
    omega_df = pd.DataFrame(T.T @ gamma, index=p_genes, columns=data.columns)
    attachment = pd.Series([p_genes[t] for t in targets], index=e_genes, name="attachment")

    logger.info(
        "Simulated dataset: pgenes=%d egenes=%d samples=%d edges=%d unlabeled=%d seed=%d",
        n_pgenes, len(e_genes), n_samples, network.number_of_edges(), n_unlabeled, seed,
    )
    return SimulatedData(data=data, network=network, gamma=gamma_df, omega=omega_df, attachment=attachment)
