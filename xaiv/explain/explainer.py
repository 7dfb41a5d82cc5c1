"""
Model-agnostic explanations with dalex.

``explain`` binds a fitted model, validation features, the target vector and
a label into a ``dalex.Explainer``. ``ExplanationSuite`` then runs the fixed
sequence of queries used by every vignette: model performance, permutation
variable importance, partial-dependence / accumulated-local-effects profiles
and a break-down of one observation.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union
import pandas as pd
import numpy as np
import dalex as dx

from ..models.base_model import BaseModel
from ..utils.logging import LoggingMixin, get_logger

logger = get_logger("explain")

PROFILE_KINDS = ('partial', 'accumulated')


def _predict(model: Any, data: pd.DataFrame) -> np.ndarray:
    return np.asarray(model.predict(data), dtype=float)


def explain(
    model: Union[BaseModel, Any],
    data: pd.DataFrame,
    y: Union[pd.Series, np.ndarray],
    label: Optional[str] = None,
    verbose: bool = False
) -> dx.Explainer:
    """
    Create an explainer for a fitted regression model.

    Args:
        model: Fitted ``BaseModel`` or any fitted estimator with ``predict``
        data: Validation features (no target column)
        y: Validation target
        label: Name shown in plots (defaults to the model's algorithm/class)
        verbose: Let dalex print its construction report

    Returns:
        dalex Explainer
    """
    if isinstance(model, BaseModel):
        if not model.is_fitted:
            raise ValueError("Model must be fitted before it can be explained")
        default_label = getattr(model, 'algorithm', model.__class__.__name__)
        estimator = model.estimator
    else:
        if not hasattr(model, 'predict'):
            raise ValueError(f"Model of type {type(model).__name__} has no predict method")
        default_label = model.__class__.__name__
        estimator = model

    if not isinstance(data, pd.DataFrame):
        raise ValueError("data must be a pandas DataFrame")
    if len(data) != len(y):
        raise ValueError(f"data and y must have same length: {len(data)} vs {len(y)}")

    label = label or default_label
    logger.info(f"Creating explainer '{label}' on {len(data)} observations")

    return dx.Explainer(
        estimator,
        data=data,
        y=np.asarray(y, dtype=float),
        predict_function=_predict,
        label=label,
        model_type='regression',
        verbose=verbose,
    )


@dataclass
class ExplanationResults:
    """Outputs of one explainer's query sequence."""

    label: str
    performance: Any
    importance: Any
    profiles: Dict[str, Any] = field(default_factory=dict)
    break_down: Any = None
    observation: Optional[pd.DataFrame] = None

    def tables(self) -> Dict[str, pd.DataFrame]:
        """Result frames of every query, keyed by query name."""
        tables = {
            'performance': self.performance.result,
            'importance': self.importance.result,
        }
        for kind, profile in self.profiles.items():
            tables[f"profile_{kind}"] = profile.result
        if self.break_down is not None:
            tables['break_down'] = self.break_down.result
        return tables

    def figures(self) -> Dict[str, Any]:
        """Plotly figures of every query, keyed by query name."""
        figures = {
            'performance': self.performance.plot(show=False),
            'importance': self.importance.plot(show=False),
        }
        for kind, profile in self.profiles.items():
            figures[f"profile_{kind}"] = profile.plot(show=False)
        if self.break_down is not None:
            figures['break_down'] = self.break_down.plot(show=False)
        return figures


class ExplanationSuite(LoggingMixin):
    """
    Runs the standard explanation queries against one explainer.
    """

    def __init__(
        self,
        explainer: dx.Explainer,
        random_state: int = 42,
        permutation_rounds: int = 10,
        sample_size: Optional[int] = 1000,
        grid_points: int = 51
    ) -> None:
        """
        Args:
            explainer: dalex Explainer to query
            random_state: Seed for permutations and sampling
            permutation_rounds: Permutation rounds for variable importance
            sample_size: Rows sampled for importance and profiles (None for all)
            grid_points: Grid points per profiled variable
        """
        if permutation_rounds < 1:
            raise ValueError(f"permutation_rounds must be at least 1, got {permutation_rounds}")
        if grid_points < 2:
            raise ValueError(f"grid_points must be at least 2, got {grid_points}")

        self.explainer = explainer
        self.random_state = random_state
        self.permutation_rounds = permutation_rounds
        self.sample_size = sample_size
        self.grid_points = grid_points

    @property
    def label(self) -> str:
        return self.explainer.label

    @property
    def numeric_variables(self) -> List[str]:
        data = self.explainer.data
        return [
            c for c in data.columns
            if pd.api.types.is_numeric_dtype(data[c]) and not pd.api.types.is_bool_dtype(data[c])
        ]

    def _n_rows(self) -> Optional[int]:
        if self.sample_size is None:
            return None
        return min(self.sample_size, len(self.explainer.data))

    def performance(self):
        """Regression performance (mse, rmse, r2, mae, mad) on the validation data."""
        self.log_info(f"[{self.label}] model performance")
        return self.explainer.model_performance(model_type='regression')

    def variable_importance(self, loss_function: str = 'rmse', variables: Optional[Sequence[str]] = None):
        """
        Permutation-based variable importance.

        Args:
            loss_function: Loss measured after permuting each variable
            variables: Restrict to these variables (default: all)
        """
        self.log_info(f"[{self.label}] permutation importance ({self.permutation_rounds} rounds)")
        return self.explainer.model_parts(
            loss_function=loss_function,
            type='variable_importance',
            N=self._n_rows(),
            B=self.permutation_rounds,
            variables=list(variables) if variables else None,
            random_state=self.random_state,
        )

    def profile(self, kind: str = 'partial', variables: Optional[Sequence[str]] = None):
        """
        Partial-dependence or accumulated-local-effects profiles.

        Args:
            kind: 'partial' or 'accumulated'
            variables: Numeric variables to profile (default: all numeric)
        """
        if kind not in PROFILE_KINDS:
            raise ValueError(f"kind must be one of {PROFILE_KINDS}, got '{kind}'")

        variables = list(variables) if variables else self.numeric_variables
        unknown = [v for v in variables if v not in self.explainer.data.columns]
        if unknown:
            raise ValueError(f"Unknown variables: {unknown}")
        if not variables:
            raise ValueError("No numeric variables to profile")

        self.log_info(f"[{self.label}] {kind} profiles for {len(variables)} variables")
        return self.explainer.model_profile(
            type=kind,
            N=self._n_rows(),
            variables=variables,
            variable_type='numerical',
            grid_points=self.grid_points,
            random_state=self.random_state,
            verbose=False,
        )

    def resolve_observation(self, observation: Union[int, pd.DataFrame, pd.Series]) -> pd.DataFrame:
        """Turn a row position, Series or one-row frame into a one-row frame."""
        data = self.explainer.data
        if isinstance(observation, (int, np.integer)):
            if not -len(data) <= observation < len(data):
                raise ValueError(
                    f"Observation index {observation} out of range for {len(data)} rows"
                )
            return data.iloc[[int(observation)]]
        if isinstance(observation, pd.Series):
            observation = observation.to_frame().T
        if not isinstance(observation, pd.DataFrame) or len(observation) != 1:
            raise ValueError("observation must be a row index or a single-row DataFrame")

        missing = [c for c in data.columns if c not in observation.columns]
        if missing:
            raise ValueError(f"Observation is missing columns: {missing}")
        return observation[list(data.columns)].astype(data.dtypes.to_dict())

    def break_down(self, observation: Union[int, pd.DataFrame, pd.Series] = 0,
                   order: Optional[Sequence[str]] = None):
        """
        Additive break-down of one prediction into variable contributions.

        Args:
            observation: Row position in the explainer data, or a one-row frame
            order: Fixed variable order (default: dalex's importance ordering)
        """
        new_observation = self.resolve_observation(observation)
        self.log_info(f"[{self.label}] break-down attribution")
        return self.explainer.predict_parts(
            new_observation,
            type='break_down',
            order=list(order) if order else None,
            random_state=self.random_state,
        )

    def run(
        self,
        observation: Union[int, pd.DataFrame, pd.Series] = 0,
        profile_kinds: Sequence[str] = PROFILE_KINDS,
        variables: Optional[Sequence[str]] = None
    ) -> ExplanationResults:
        """
        Run performance, importance, profiles and break-down in sequence.

        Args:
            observation: Observation for the break-down
            profile_kinds: Profile types to compute
            variables: Variables to profile (default: all numeric)

        Returns:
            ExplanationResults
        """
        new_observation = self.resolve_observation(observation)
        return ExplanationResults(
            label=self.label,
            performance=self.performance(),
            importance=self.variable_importance(),
            profiles={kind: self.profile(kind, variables) for kind in profile_kinds},
            break_down=self.break_down(new_observation),
            observation=new_observation,
        )


def compare(results: Sequence[ExplanationResults]) -> Dict[str, Any]:
    """
    Overlay several explainers' results, one plotly figure per query.

    Args:
        results: Results from explainers of different models on the same data

    Returns:
        Figures keyed by query name
    """
    if not results:
        raise ValueError("At least one result is required")

    first, others = results[0], list(results[1:])
    figures = {
        'performance': first.performance.plot([r.performance for r in others], show=False),
        'importance': first.importance.plot([r.importance for r in others], show=False),
    }
    for kind, profile in first.profiles.items():
        other_profiles = [r.profiles[kind] for r in others if kind in r.profiles]
        figures[f"profile_{kind}"] = profile.plot(other_profiles, show=False)
    if first.break_down is not None:
        figures['break_down'] = first.break_down.plot(
            [r.break_down for r in others if r.break_down is not None], show=False
        )
    return figures
