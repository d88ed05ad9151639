from .errors import (
    ClassifierFailure,
    CycleRejected,
    DegenerateLikelihood,
    DimensionMismatch,
    NonConvergence,
    PertinferError,
)
from .network import NetworkModel
from .scoring import AttachmentScorer, NoiseModel
from .config import InferenceConfig, load_config

__all__ = [
    'ClassifierFailure',
    'CycleRejected',
    'DegenerateLikelihood',
    'DimensionMismatch',
    'NonConvergence',
    'PertinferError',
    'NetworkModel',
    'AttachmentScorer',
    'NoiseModel',
    'InferenceConfig',
    'load_config',
]
