from typing import Callable, Dict, Tuple

import logging
import networkx as nx
import numpy as np
import pandas as pd
from joblib import Parallel, delayed


def bootstrap_edge_stability(
    learn_fn: Callable[[pd.DataFrame], Tuple[nx.DiGraph, dict]],
    data: pd.DataFrame,
    b: int = 100,
    seed: int = 0,
    n_jobs: int = -1,
) -> Dict[Tuple[str, str], float]:
    """Frequency of each learned network edge over bootstrap resamples.

    Samples (columns) of ``data`` are drawn with replacement, so every
    resample keeps the E-genes and carries the labels of the drawn samples.
    """
    rng = np.random.default_rng(seed)
    max_seed = np.iinfo(np.int32).max
    if b > max_seed:
        raise ValueError(f"Number of bootstrap samples {b} exceeds available unique seeds")
    seeds = rng.choice(max_seed, size=b, replace=False)
    n_samples = data.shape[1]

    def single_run(seed_value):
        cols = np.random.default_rng(int(seed_value)).integers(0, n_samples, size=n_samples)
        g, _ = learn_fn(data.iloc[:, cols])
        return set(g.edges())

    results = Parallel(n_jobs=n_jobs)(delayed(single_run)(rs) for rs in seeds)
    counts: Dict[Tuple[str, str], int] = {}
    for edges in results:
        for e in edges:
            counts[e] = counts.get(e, 0) + 1
    logging.getLogger("pertinfer").info(
        "Bootstrap edge stability: runs=%d distinct_edges=%d", b, len(counts)
    )
    return {e: c / b for e, c in counts.items()}
