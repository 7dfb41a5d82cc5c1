"""
Runtime configuration for vignette pipelines.

Defaults live on the dataclass; ``from_env`` overlays ``XAIV_*`` environment
variables (a local ``.env`` file is loaded first when present).
"""

from dataclasses import dataclass, field, fields, replace, asdict
from typing import Any, Dict, Optional
import os

ENV_PREFIX = "XAIV_"


@dataclass
class VignetteConfig:
    """Settings shared by the AutoML and benchmark vignettes."""

    output_dir: str = "reports"
    random_state: int = 42

    # AutoML budgets
    max_runtime_secs: Optional[float] = 60.0
    max_models: Optional[int] = 20
    nfolds: int = 5
    ensemble_top_k: int = 0

    # Benchmark resampling
    resampling: str = "cv"
    folds: int = 5
    repeats: int = 1

    # Explanation queries
    permutation_rounds: int = 10
    sample_size: Optional[int] = 1000
    grid_points: int = 51
    observation_index: int = 0

    # Experiment tracking
    use_mlflow: bool = False
    mlflow_tracking_uri: Optional[str] = None
    mlflow_experiment_name: str = "xaiv-automl"

    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(cls, dotenv: bool = True, **overrides: Any) -> "VignetteConfig":
        """
        Build a config from ``XAIV_*`` environment variables.

        Args:
            dotenv: Load a ``.env`` file before reading the environment
            **overrides: Values that win over both defaults and environment

        Returns:
            Populated configuration
        """
        if dotenv:
            from dotenv import load_dotenv
            load_dotenv()

        values: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name == "extra":
                continue
            raw = os.getenv(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is not None:
                values[f.name] = _coerce(f.name, raw, getattr(cls, f.name, None))

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def with_overrides(self, **overrides: Any) -> "VignetteConfig":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _coerce(name: str, raw: str, default: Any) -> Any:
    """Convert an environment string to the type of the field default."""
    if raw.strip().lower() in ("", "none", "null"):
        return None
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if name in ("max_models", "sample_size"):
        return int(raw)
    if name == "max_runtime_secs":
        return float(raw)
    return raw
