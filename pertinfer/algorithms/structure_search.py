"""Greedy hill climbing over DAGs for a fixed perturbation assignment."""

from __future__ import annotations

__all__ = ["Move", "SearchResult", "candidate_moves", "structure_search"]

import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import logging
import numpy as np
from joblib import Parallel, delayed

from pertinfer.utils.errors import CycleRejected
from pertinfer.utils.network import NetworkModel
from pertinfer.utils.scoring import AttachmentScorer


@dataclass(frozen=True)
class Move:
    kind: str
    source: object
    target: object

    def apply(self, network: NetworkModel) -> NetworkModel:
        if self.kind == "add":
            return network.add_edge(self.source, self.target)
        if self.kind == "remove":
            return network.remove_edge(self.source, self.target)
        if self.kind == "reverse":
            return network.reverse_edge(self.source, self.target)
        raise ValueError(f"Unknown move kind: {self.kind}")


@dataclass
class SearchResult:
    network: NetworkModel
    score: float
    trace: List[float] = field(default_factory=list)
    moves: List[Move] = field(default_factory=list)
    n_evaluated: int = 0
    n_rejected: int = 0
    hit_step_cap: bool = False


def candidate_moves(network: NetworkModel) -> List[Move]:
    """All single-edge moves in a fixed row-major order over node pairs.

    An existing edge ``u -> v`` yields a removal then a reversal; an absent
    pair (in both directions) yields an addition.
    """
    moves = []
    nodes = network.nodes
    for u in nodes:
        for v in nodes:
            if u == v:
                continue
            if network.has_edge(u, v):
                moves.append(Move("remove", u, v))
                moves.append(Move("reverse", u, v))
            elif not network.has_edge(v, u):
                moves.append(Move("add", u, v))
    return moves


def _evaluate(
    move: Move, network: NetworkModel, scorer: AttachmentScorer, projected: np.ndarray
) -> Tuple[Optional[NetworkModel], float]:
    try:
        candidate = move.apply(network)
    except CycleRejected:
        return None, -np.inf
    return candidate, scorer.total_score(candidate, projected)


def structure_search(
    scorer: AttachmentScorer,
    gamma: np.ndarray,
    start: NetworkModel,
    max_steps: int = 100,
    n_jobs: int = 1,
    min_improvement: float = 1e-10,
) -> SearchResult:
    """Hill-climb from ``start`` until no single-edge move improves the score.

    Parameters
    ----------
    scorer:
        Attachment scorer bound to the data matrix.
    gamma:
        P-genes x samples assignment; treated as read-only.
    start:
        Initial network (warm start from the previous cycle).
    max_steps:
        Maximum number of accepted moves.
    n_jobs:
        joblib workers used to score candidate moves. Every worker sees the
        same network / assignment snapshot; the best candidate is chosen
        after all of them return.
    min_improvement:
        A move must beat the current score by more than this to be accepted.

    Returns
    -------
    SearchResult
        Best network found, its score, the score after each accepted move
        (``trace[0]`` is the score of ``start``) and evaluation counters.
    """
    logger = logging.getLogger("pertinfer")
    start_t = time.perf_counter()

    projected = scorer.project(gamma)
    projected.setflags(write=False)

    network = start
    score = scorer.total_score(network, projected)
    result = SearchResult(network=network, score=score, trace=[score])

    logger.info(
        "Structure search start: pgenes=%d edges=%d score=%.4f max_steps=%d n_jobs=%d",
        len(network), network.number_of_edges(), score, max_steps, n_jobs,
    )

    for step in range(max_steps):
        moves = candidate_moves(network)
        if not moves:
            break
        if n_jobs == 1:
            evaluated = [_evaluate(m, network, scorer, projected) for m in moves]
        else:
            evaluated = Parallel(n_jobs=n_jobs, prefer="threads")(
                delayed(_evaluate)(m, network, scorer, projected) for m in moves
            )
        result.n_evaluated += len(moves)

        best_idx = None
        best_score = score + min_improvement
        for idx, (candidate, cand_score) in enumerate(evaluated):
            if candidate is None:
                result.n_rejected += 1
                continue
            if cand_score > best_score:
                best_idx, best_score = idx, cand_score

        if best_idx is None:
            break

        network = evaluated[best_idx][0]
        score = best_score
        result.moves.append(moves[best_idx])
        result.trace.append(score)
        logger.debug("Accepted %s: score=%.4f", moves[best_idx], score)
    else:
        result.hit_step_cap = True

    result.network = network
    result.score = score
    runtime = time.perf_counter() - start_t
    logger.info(
        "Structure search end: edges=%d score=%.4f accepted=%d evaluated=%d rejected=%d runtime_s=%.3f",
        network.number_of_edges(), score, len(result.moves), result.n_evaluated,
        result.n_rejected, runtime,
    )
    return result
