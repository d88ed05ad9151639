"""Error kinds raised (or warned) by the inference engine."""

from __future__ import annotations


class PertinferError(Exception):
    """Base class for errors raised by ``pertinfer``."""


class CycleRejected(PertinferError, ValueError):
    """A proposed edge move would make the network cyclic."""

    def __init__(self, source, target, move: str = "add"):
        self.edge = (source, target)
        self.move = move
        super().__init__(f"{move} of edge ({source}, {target}) would create a cycle")


class DimensionMismatch(PertinferError, ValueError):
    """Data, labels and prior disagree on P-gene or sample identifiers."""


class ClassifierFailure(PertinferError, RuntimeError):
    """A classifier backend failed to train or predict."""


class DegenerateLikelihood(RuntimeWarning):
    """All candidate log-likelihoods of a sample were unusable."""


class NonConvergence(RuntimeWarning):
    """The iteration cap was reached before the tolerance was met."""
