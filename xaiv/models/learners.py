"""
Scikit-learn learners for the vignettes.

Each learner is a ``Pipeline`` of column preprocessing and a regressor,
so models take the raw tabular frame (numeric and categorical columns)
and explainers can perturb it directly. The registry also carries the
optuna search space used by AutoML.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union
from pathlib import Path
import pandas as pd
import numpy as np
import joblib

try:
    import lightgbm as lgb
except ImportError:
    raise ImportError("lightgbm is required but not installed. Run: pip install lightgbm")

from sklearn.base import clone
from sklearn.compose import ColumnTransformer, make_column_selector
from sklearn.ensemble import (
    ExtraTreesRegressor,
    GradientBoostingRegressor,
    RandomForestRegressor,
)
from sklearn.impute import SimpleImputer
from sklearn.linear_model import ElasticNet
from sklearn.neighbors import KNeighborsRegressor
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder, StandardScaler

from .base_model import BaseModel, ModelEvaluator


@dataclass(frozen=True)
class LearnerSpec:
    """Description of a registered learner family."""

    name: str
    algorithm: str
    factory: Callable[..., Any]
    defaults: Dict[str, Any] = field(default_factory=dict)
    param_space: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    scale_numeric: bool = False
    seeded: bool = True


LEARNERS: Dict[str, LearnerSpec] = {
    'lgbm': LearnerSpec(
        name='lgbm',
        algorithm='LightGBM',
        factory=lgb.LGBMRegressor,
        defaults={'n_estimators': 200, 'learning_rate': 0.05, 'num_leaves': 31,
                  'subsample_freq': 1, 'verbose': -1},
        param_space={
            'n_estimators': {'type': 'int', 'low': 50, 'high': 500, 'step': 50},
            'learning_rate': {'type': 'float', 'low': 0.01, 'high': 0.3, 'log': True},
            'num_leaves': {'type': 'int', 'low': 8, 'high': 128},
            'min_child_samples': {'type': 'int', 'low': 5, 'high': 50},
            'subsample': {'type': 'float', 'low': 0.6, 'high': 1.0, 'step': 0.1},
            'colsample_bytree': {'type': 'float', 'low': 0.6, 'high': 1.0, 'step': 0.1},
            'reg_lambda': {'type': 'float', 'low': 0.0, 'high': 10.0},
        },
    ),
    'random_forest': LearnerSpec(
        name='random_forest',
        algorithm='DRF',
        factory=RandomForestRegressor,
        defaults={'n_estimators': 200, 'n_jobs': -1},
        param_space={
            'n_estimators': {'type': 'int', 'low': 50, 'high': 400, 'step': 50},
            'max_depth': {'type': 'int', 'low': 3, 'high': 20},
            'min_samples_leaf': {'type': 'int', 'low': 1, 'high': 20},
            'max_features': {'type': 'categorical', 'choices': [0.33, 0.5, 0.8, 1.0]},
        },
    ),
    'extra_trees': LearnerSpec(
        name='extra_trees',
        algorithm='XRT',
        factory=ExtraTreesRegressor,
        defaults={'n_estimators': 200, 'n_jobs': -1},
        param_space={
            'n_estimators': {'type': 'int', 'low': 50, 'high': 400, 'step': 50},
            'max_depth': {'type': 'int', 'low': 3, 'high': 20},
            'min_samples_leaf': {'type': 'int', 'low': 1, 'high': 20},
            'max_features': {'type': 'categorical', 'choices': [0.33, 0.5, 0.8, 1.0]},
        },
    ),
    'gbm': LearnerSpec(
        name='gbm',
        algorithm='GBM',
        factory=GradientBoostingRegressor,
        defaults={'n_estimators': 200, 'learning_rate': 0.05, 'max_depth': 3},
        param_space={
            'n_estimators': {'type': 'int', 'low': 50, 'high': 400, 'step': 50},
            'learning_rate': {'type': 'float', 'low': 0.01, 'high': 0.3, 'log': True},
            'max_depth': {'type': 'int', 'low': 2, 'high': 8},
            'subsample': {'type': 'float', 'low': 0.6, 'high': 1.0, 'step': 0.1},
        },
    ),
    'glm': LearnerSpec(
        name='glm',
        algorithm='GLM',
        factory=ElasticNet,
        defaults={'alpha': 0.1, 'l1_ratio': 0.5, 'max_iter': 5000},
        param_space={
            'alpha': {'type': 'float', 'low': 1e-4, 'high': 10.0, 'log': True},
            'l1_ratio': {'type': 'float', 'low': 0.0, 'high': 1.0},
        },
        scale_numeric=True,
    ),
    'knn': LearnerSpec(
        name='knn',
        algorithm='KNN',
        factory=KNeighborsRegressor,
        defaults={'n_neighbors': 10},
        param_space={
            'n_neighbors': {'type': 'int', 'low': 3, 'high': 50},
            'weights': {'type': 'categorical', 'choices': ['uniform', 'distance']},
        },
        scale_numeric=True,
        seeded=False,
    ),
}


def available_learners() -> List[str]:
    return list(LEARNERS)


def get_learner_spec(name: str) -> LearnerSpec:
    """
    Look up a registered learner.

    Raises:
        ValueError: If the learner is unknown
    """
    if name not in LEARNERS:
        raise ValueError(
            f"Unknown learner '{name}'. Available: {', '.join(available_learners())}"
        )
    return LEARNERS[name]


def build_preprocessor(scale_numeric: bool = False) -> ColumnTransformer:
    """
    Column preprocessing shared by all learners.

    Numeric columns are median-imputed (and optionally standardised);
    everything else is mode-imputed and one-hot encoded.
    """
    numeric_steps = [('impute', SimpleImputer(strategy='median'))]
    if scale_numeric:
        numeric_steps.append(('scale', StandardScaler()))

    categorical = Pipeline([
        ('impute', SimpleImputer(strategy='most_frequent')),
        ('onehot', OneHotEncoder(handle_unknown='ignore', sparse_output=False)),
    ])

    return ColumnTransformer(
        transformers=[
            ('num', Pipeline(numeric_steps), make_column_selector(dtype_include=np.number)),
            ('cat', categorical, make_column_selector(dtype_exclude=np.number)),
        ],
        remainder='drop',
    )


class SklearnModel(BaseModel):
    """
    Regression learner backed by a scikit-learn pipeline.

    Wraps preprocessing plus one registered regressor (or a prebuilt
    pipeline) with the BaseModel interface for training, prediction,
    and persistence.
    """

    def __init__(
        self,
        learner: str = 'lgbm',
        random_state: int = 42,
        pipeline: Optional[Pipeline] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize a learner.

        Args:
            learner: Registered learner name, or a free label when ``pipeline`` is given
            random_state: Random seed for reproducibility
            pipeline: Prebuilt unfitted pipeline used as-is (e.g. a stacked ensemble)
            **kwargs: Hyperparameters overriding the learner defaults
        """
        self.learner = learner
        self._template = pipeline

        if pipeline is None:
            spec = get_learner_spec(learner)
            model_params = {**spec.defaults, **kwargs}
        else:
            model_params = dict(kwargs)

        super().__init__(random_state=random_state, **model_params)

        self.model: Optional[Pipeline] = None
        self._create_model()

    @property
    def algorithm(self) -> str:
        if self.learner in LEARNERS:
            return LEARNERS[self.learner].algorithm
        return self.learner

    def build_pipeline(self) -> Pipeline:
        """Return a fresh, unfitted pipeline with the current parameters."""
        if self._template is not None:
            return clone(self._template)

        spec = get_learner_spec(self.learner)
        params = self.model_params.copy()
        if spec.seeded:
            params['random_state'] = self.random_state

        return Pipeline([
            ('preprocess', build_preprocessor(spec.scale_numeric)),
            ('model', spec.factory(**params)),
        ])

    def _create_model(self) -> None:
        self.model = self.build_pipeline()
        self.log_debug(f"Created new {self.algorithm} pipeline")

    @property
    def estimator(self) -> Pipeline:
        if not self.is_fitted or self.model is None:
            raise ValueError("Model must be fitted before it can be explained")
        return self.model

    def fit(self, X: pd.DataFrame, y: pd.Series, **kwargs: Any) -> 'SklearnModel':
        """
        Train the pipeline on the provided data.

        Args:
            X: Training features (raw frame, categoricals allowed)
            y: Numeric training target
            **kwargs: Passed to ``Pipeline.fit``

        Returns:
            Self for method chaining
        """
        self.log_info(f"Training {self.algorithm} on {len(X)} samples")

        self.feature_names = None
        self.validate_inputs(X, y)

        try:
            self.model.fit(X, y, **kwargs)
            self.is_fitted = True

            self.training_info = {
                'learner': self.learner,
                'algorithm': self.algorithm,
                'n_samples': len(X),
                'n_features': len(X.columns),
                'feature_names': list(X.columns),
                'target_mean': float(y.mean()),
            }

            self.training_metrics = ModelEvaluator.evaluate_regression(y, self.predict(X))

            self.log_info(
                f"Training completed. Training RMSE: {self.training_metrics['rmse']:.4f}"
            )

        except Exception as e:
            self.log_error(f"Training failed: {e}")
            raise

        return self

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        if not self.is_fitted or self.model is None:
            raise ValueError("Model must be fitted before prediction")

        self.validate_inputs(X)
        return np.asarray(self.model.predict(X), dtype=float)

    def save(self, filepath: Union[str, Path]) -> None:
        """
        Save the fitted pipeline to disk.

        Args:
            filepath: Path to save the model (without extension)
        """
        if not self.is_fitted:
            raise ValueError("Cannot save unfitted model")

        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        model_path = filepath.with_suffix('.pkl')
        joblib.dump(self.model, model_path)
        self._save_metadata(filepath)

        self.log_info(f"Model saved to {model_path}")

    def load(self, filepath: Union[str, Path]) -> 'SklearnModel':
        """
        Load a fitted pipeline from disk.

        Args:
            filepath: Path to load the model from (without extension)

        Returns:
            Self for method chaining
        """
        filepath = Path(filepath)
        model_path = filepath.with_suffix('.pkl')

        if not model_path.exists():
            raise FileNotFoundError(f"Model file not found: {model_path}")

        self.model = joblib.load(model_path)
        metadata = self._load_metadata(filepath)
        self.learner = self.training_info.get('learner', self.learner)
        if not metadata:
            self.is_fitted = True

        self.log_info(f"Model loaded from {model_path}")
        return self

    @classmethod
    def from_file(cls, filepath: Union[str, Path]) -> 'SklearnModel':
        """Load a saved model without knowing its learner upfront."""
        model = cls.__new__(cls)
        BaseModel.__init__(model)
        model.learner = 'unknown'
        model._template = None
        model.model = None
        return model.load(filepath)

    def get_feature_importance(self) -> Optional[pd.Series]:
        """
        Native importance of the fitted regressor, keyed by encoded column.

        Returns:
            Series sorted descending, or None if the regressor has none
        """
        if not self.is_fitted or self.model is None:
            self.log_warning("Model not fitted, cannot get feature importance")
            return None

        if 'model' not in self.model.named_steps:
            return None

        regressor = self.model.named_steps['model']
        if hasattr(regressor, 'feature_importances_'):
            values = np.asarray(regressor.feature_importances_, dtype=float)
        elif hasattr(regressor, 'coef_'):
            values = np.abs(np.ravel(regressor.coef_))
        else:
            return None

        names = self.model.named_steps['preprocess'].get_feature_names_out()
        return pd.Series(values, index=names, name='importance').sort_values(ascending=False)

    def get_model_params(self) -> Dict[str, Any]:
        return self.model_params.copy()

    def set_model_params(self, **params: Any) -> 'SklearnModel':
        """
        Set model parameters and recreate the pipeline.

        Returns:
            Self for method chaining
        """
        self.model_params.update(params)
        self._create_model()

        self.is_fitted = False
        self.training_metrics.clear()

        self.log_info(f"Updated model parameters: {params}")
        return self


def make_learner(name: str, random_state: int = 42, **params: Any) -> SklearnModel:
    """
    Create an unfitted learner from the registry.

    Args:
        name: Registered learner name
        random_state: Random seed
        **params: Hyperparameter overrides

    Returns:
        Unfitted SklearnModel
    """
    return SklearnModel(learner=name, random_state=random_state, **params)
