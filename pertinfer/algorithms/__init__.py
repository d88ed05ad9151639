"""Convenience imports for algorithm modules."""

from . import propagation
from . import structure_search
from . import reestimate
from . import nempi
from . import classifier

__all__ = ["propagation", "structure_search", "reestimate", "nempi", "classifier"]
