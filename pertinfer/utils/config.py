from __future__ import annotations

from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from .scoring import NoiseModel

PRIOR_BLENDS = ("multiply", "replace")
NETWORK_INITS = ("empty", "random")
UNLABELED_INITS = ("uniform", "random")


@dataclass
class InferenceConfig:
    """Settings of the alternating network / assignment inference.

    ``prior_blend`` controls how a supplied prior is combined with the
    posterior computed each cycle: ``"multiply"`` multiplies and
    renormalizes, ``"replace"`` only uses the prior to initialize and lets
    each fresh posterior overwrite it.

    With ``keep_labels=False`` observed labels become a prior that puts
    ``label_confidence`` of the mass on the labeled P-genes and spreads the
    rest uniformly, so a mislabeled sample can be reassigned.
    """

    max_iterations: int = 100
    convergence_tolerance: float = 1e-4
    noise: NoiseModel = field(default_factory=NoiseModel)
    estimate_noise: bool = False
    null_attachment: bool = False
    prior_blend: str = "multiply"
    keep_labels: bool = True
    label_confidence: float = 0.9
    init_network: str = "empty"
    edge_prob: float = 0.3
    unlabeled_init: str = "uniform"
    max_search_steps: int = 100
    n_jobs: int = 1
    seed: int = 0
    label_delimiter: str = "_"

    def __post_init__(self):
        if isinstance(self.noise, Mapping):
            self.noise = NoiseModel(**self.noise)
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if self.convergence_tolerance < 0:
            raise ValueError("convergence_tolerance must be non-negative")
        if self.prior_blend not in PRIOR_BLENDS:
            raise ValueError(f"prior_blend must be one of {PRIOR_BLENDS}")
        if self.init_network not in NETWORK_INITS:
            raise ValueError(f"init_network must be one of {NETWORK_INITS}")
        if self.unlabeled_init not in UNLABELED_INITS:
            raise ValueError(f"unlabeled_init must be one of {UNLABELED_INITS}")
        if not 0 <= self.edge_prob <= 1:
            raise ValueError("edge_prob must lie in [0, 1]")
        if not 0 < self.label_confidence <= 1:
            raise ValueError("label_confidence must lie in (0, 1]")

    @classmethod
    def from_dict(cls, cfg: Mapping[str, Any] | None) -> "InferenceConfig":
        cfg = dict(cfg or {})
        # accept the ``noise_model_params`` spelling used in engine configs
        if "noise_model_params" in cfg:
            cfg["noise"] = cfg.pop("noise_model_params")
        known = {f.name for f in fields(cls)}
        unknown = set(cfg) - known
        if unknown:
            raise ValueError(f"Unknown inference options: {sorted(unknown)}")
        return cls(**cfg)

    def replace(self, **overrides) -> "InferenceConfig":
        merged = self.to_dict()
        merged.update(overrides)
        return InferenceConfig.from_dict(merged)

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["noise"] = self.noise.to_dict()
        return out


def load_config(path: str | Path) -> InferenceConfig:
    """Read an ``InferenceConfig`` from YAML, optionally nested under ``inference``."""
    with open(path) as f:
        cfg = yaml.safe_load(f) or {}
    if "inference" in cfg:
        cfg = cfg["inference"] or {}
    return InferenceConfig.from_dict(cfg)


def resolve_config(config: InferenceConfig | Mapping[str, Any] | None = None, **overrides) -> InferenceConfig:
    if config is None:
        config = InferenceConfig()
    elif not isinstance(config, InferenceConfig):
        config = InferenceConfig.from_dict(config)
    return config.replace(**overrides) if overrides else config
