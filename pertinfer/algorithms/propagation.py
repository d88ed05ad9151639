"""Propagate a perturbation assignment downstream through a network."""

from __future__ import annotations

__all__ = ["propagate"]

import logging
import pandas as pd

from pertinfer.utils.errors import DimensionMismatch
from pertinfer.utils.network import NetworkModel


def propagate(network: NetworkModel | None, gamma: pd.DataFrame) -> pd.DataFrame:
    """Return ``Omega = T(network).T @ Gamma``.

    Rows of ``gamma`` are matched to the network nodes by identifier. With
    ``network=None`` nothing is propagated and a copy of ``gamma`` is
    returned.

    Examples
    --------
    >>> net = NetworkModel.from_edges(['A', 'B'], [('A', 'B')])
    >>> g = pd.DataFrame([[1.0], [0.0]], index=['A', 'B'])
    >>> propagate(net, g)[0].tolist()
    [1.0, 1.0]
    """
    if network is None:
        return gamma.copy()
    nodes = list(network.nodes)
    if set(gamma.index) != set(nodes):
        raise DimensionMismatch(
            f"assignment rows {list(gamma.index)} do not match network nodes {nodes}"
        )
    G = gamma.loc[nodes].to_numpy(dtype=float)
    omega = network.closure().T @ G
    logging.getLogger("pertinfer").info(
        "Propagated assignment: pgenes=%d samples=%d edges=%d",
        len(nodes), G.shape[1], network.number_of_edges(),
    )
    out = pd.DataFrame(omega, index=nodes, columns=gamma.columns)
    return out.loc[list(gamma.index)]
