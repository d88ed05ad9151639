"""Perturbation inference from secondary-effect readouts with a causal P-gene network."""

__version__ = "0.1.0"
