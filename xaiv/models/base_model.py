"""
Model interface shared by every learner.

AutoML, the benchmark runner and the explainer adapter only rely on what
``BaseModel`` declares: ``fit``/``predict`` on raw frames, persistence
beside a JSON metadata file, and an ``estimator`` to hand to dalex.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union
from pathlib import Path
import pandas as pd
import numpy as np
import json
from datetime import datetime

from ..utils.logging import LoggingMixin

# Attributes persisted next to the serialized estimator
METADATA_FIELDS = (
    'random_state',
    'model_params',
    'feature_names',
    'training_info',
    'training_metrics',
    'is_fitted',
)


def metadata_path(filepath: Union[str, Path]) -> Path:
    return Path(filepath).with_suffix('.metadata.json')


class BaseModel(ABC, LoggingMixin):
    """
    Abstract regression learner.

    Subclasses implement fitting, prediction and serialization; input
    checks, feature-name tracking and metadata handling live here.
    """

    def __init__(self, random_state: int = 42, **kwargs: Any) -> None:
        """
        Args:
            random_state: Random seed for reproducibility
            **kwargs: Hyperparameters of the wrapped estimator
        """
        self.random_state = random_state
        self.model_params: Dict[str, Any] = kwargs
        self.is_fitted = False
        self.feature_names: Optional[List[str]] = None
        self.training_info: Dict[str, Any] = {}
        self.training_metrics: Dict[str, float] = {}

    @abstractmethod
    def fit(self, X: pd.DataFrame, y: pd.Series, **kwargs: Any) -> 'BaseModel':
        """Fit on features ``X`` and numeric target ``y``; returns self."""

    @abstractmethod
    def predict(self, X: pd.DataFrame) -> np.ndarray:
        """Predictions of shape (n_samples,)."""

    @abstractmethod
    def save(self, filepath: Union[str, Path]) -> None:
        pass

    @abstractmethod
    def load(self, filepath: Union[str, Path]) -> 'BaseModel':
        pass

    @property
    def estimator(self) -> Any:
        """
        The fitted object an explainer should call ``predict`` on.

        Subclasses wrapping a third-party estimator return it here.
        """
        return self

    def validate_inputs(self, X: pd.DataFrame, y: Optional[pd.Series] = None) -> None:
        """
        Check a feature frame (and optionally a target) before fit/predict.

        The first frame seen fixes the expected column order; later frames
        must match it exactly.

        Raises:
            ValueError: On wrong types, empty or mismatched inputs, or a
                non-numeric / incomplete target
        """
        if not isinstance(X, pd.DataFrame):
            raise ValueError("X must be a pandas DataFrame")
        if X.empty:
            raise ValueError("X cannot be empty")

        if y is not None:
            self._check_target(X, y)

        n_missing = int(X.isnull().sum().sum())
        if n_missing:
            self.log_warning(f"{n_missing} missing feature values will be imputed")

        columns = list(X.columns)
        if self.feature_names is None:
            self.feature_names = columns
        elif columns != self.feature_names:
            raise ValueError(
                f"Feature names mismatch. Expected: {self.feature_names}, got: {columns}"
            )

    @staticmethod
    def _check_target(X: pd.DataFrame, y: pd.Series) -> None:
        if not isinstance(y, pd.Series):
            raise ValueError("y must be a pandas Series")
        if len(y) != len(X):
            raise ValueError(f"X and y must have same length: {len(X)} vs {len(y)}")
        if pd.api.types.is_bool_dtype(y) or not pd.api.types.is_numeric_dtype(y):
            raise ValueError(f"y must be numeric for regression, got dtype {y.dtype}")
        if y.isnull().any():
            raise ValueError("y cannot contain missing values")

    def _save_metadata(self, filepath: Path) -> None:
        """Write ``<filepath>.metadata.json`` describing this model."""
        payload = {name: getattr(self, name) for name in METADATA_FIELDS}
        payload['model_class'] = self.__class__.__name__
        payload['saved_at'] = datetime.now().isoformat()

        path = metadata_path(filepath)
        path.write_text(json.dumps(payload, indent=2, default=str))
        self.log_debug(f"Wrote metadata {path}")

    def _load_metadata(self, filepath: Path) -> Dict[str, Any]:
        """
        Restore attributes from ``<filepath>.metadata.json``.

        Returns:
            The metadata dict, or an empty dict when the file is absent
        """
        path = metadata_path(filepath)
        if not path.exists():
            self.log_warning(f"No metadata beside model file: {path}")
            return {}

        payload = json.loads(path.read_text())
        for name in METADATA_FIELDS:
            if name in payload:
                setattr(self, name, payload[name])

        self.log_debug(f"Read metadata {path}")
        return payload

    def get_training_summary(self) -> Dict[str, Any]:
        summary = {name: getattr(self, name) for name in METADATA_FIELDS}
        summary['model_class'] = self.__class__.__name__
        summary['feature_count'] = len(self.feature_names or [])
        return summary

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(fitted={self.is_fitted}, "
            f"features={len(self.feature_names or [])}, random_state={self.random_state})"
        )


class ModelEvaluator:
    """
    Regression metrics shared by AutoML, benchmarking and reports.
    """

    ERROR_MEASURES = ('mse', 'rmse', 'mae', 'mad')

    @staticmethod
    def evaluate_regression(
        y_true: Union[np.ndarray, pd.Series],
        y_pred: np.ndarray
    ) -> Dict[str, float]:
        """
        Score predictions against observed values.

        Returns:
            mse, rmse, mae, r2 (NaN for a single observation) and mad, the
            median absolute residual
        """
        from sklearn.metrics import mean_squared_error, mean_absolute_error, r2_score

        y_true = np.asarray(y_true, dtype=float)
        y_pred = np.asarray(y_pred, dtype=float)

        mse = float(mean_squared_error(y_true, y_pred))
        return {
            'mse': mse,
            'rmse': float(np.sqrt(mse)),
            'mae': float(mean_absolute_error(y_true, y_pred)),
            'r2': float(r2_score(y_true, y_pred)) if len(y_true) > 1 else float('nan'),
            'mad': float(np.median(np.abs(y_true - y_pred))),
        }

    @staticmethod
    def is_error_measure(measure: str) -> bool:
        """Lower is better for error measures, higher for r2."""
        return measure in ModelEvaluator.ERROR_MEASURES
