"""
Automated model selection with Optuna.

Searches jointly over learner families and their hyperparameters under a
wall-clock and model-count budget, ranks every finished candidate by
cross-validated RMSE on a leaderboard, and refits the leader on the full
training frame.
"""

from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence
import warnings
import pandas as pd
import numpy as np
import optuna
from optuna.samplers import TPESampler
from optuna.pruners import MedianPruner
from sklearn.base import clone
from sklearn.ensemble import StackingRegressor
from sklearn.linear_model import RidgeCV
from sklearn.model_selection import KFold
from sklearn.pipeline import Pipeline

from ..data.datasets import validate_frame
from ..models.base_model import ModelEvaluator
from ..models.learners import SklearnModel, available_learners, get_learner_spec, make_learner
from ..utils.logging import LoggingMixin, log_duration

LEADERBOARD_COLUMNS = ['model_id', 'algorithm', 'learner', 'rmse', 'mse', 'mae', 'r2', 'mad']


@dataclass
class AutoMLResult:
    """Outcome of an AutoML run."""

    leaderboard: pd.DataFrame
    leader: SklearnModel
    study: optuna.Study
    target: str
    features: List[str]
    candidates: Dict[str, Callable[[], SklearnModel]] = field(repr=False, default_factory=dict)
    training_frame: Optional[pd.DataFrame] = field(repr=False, default=None)

    @property
    def leader_id(self) -> str:
        return str(self.leaderboard.iloc[0]['model_id'])

    def get_model(self, model_id: str) -> SklearnModel:
        """
        Return a fitted model for any leaderboard entry.

        The leader is returned as-is; other entries are refitted on the
        training frame.
        """
        if model_id == self.leader_id:
            return self.leader

        if model_id not in self.candidates:
            raise ValueError(f"Unknown model_id '{model_id}'")

        if self.training_frame is None:
            raise ValueError("Training frame not available to refit models")

        model = self.candidates[model_id]()
        return model.fit(self.training_frame[self.features], self.training_frame[self.target])

    def plot_history(self):
        """Optuna optimization history as a plotly figure."""
        import optuna.visualization as vis

        return vis.plot_optimization_history(self.study, target_name='CV RMSE')

    def summary(self) -> Dict[str, Any]:
        states = [t.state for t in self.study.trials]
        return {
            'leader': self.leader_id,
            'leader_rmse': float(self.leaderboard.iloc[0]['rmse']),
            'n_models': len(self.leaderboard),
            'n_trials': len(self.study.trials),
            'n_failed': sum(s == optuna.trial.TrialState.FAIL for s in states),
            'n_pruned': sum(s == optuna.trial.TrialState.PRUNED for s in states),
        }


class AutoMLSelector(LoggingMixin):
    """
    Optuna-based automated model selection.

    Features:
    - Joint search over learner families and hyperparameters (TPE sampler)
    - Wall-clock (``max_runtime_secs``) and model-count (``max_models``) budgets
    - K-fold cross-validation with median pruning
    - Optional stacked ensemble of the top models
    - Optional MLflow tracking
    """

    def __init__(
        self,
        max_runtime_secs: Optional[float] = 60.0,
        max_models: Optional[int] = 20,
        nfolds: int = 5,
        include_algos: Optional[Sequence[str]] = None,
        exclude_algos: Optional[Sequence[str]] = None,
        ensemble_top_k: int = 0,
        random_state: int = 42,
        pruner_patience: int = 2,
        use_mlflow: bool = False,
        mlflow_tracking_uri: Optional[str] = None,
        mlflow_experiment_name: str = "xaiv-automl"
    ) -> None:
        """
        Initialize the selector.

        Args:
            max_runtime_secs: Wall-clock budget for the search (None for no limit)
            max_models: Maximum number of candidate models (None for no limit)
            nfolds: Cross-validation folds per candidate
            include_algos: Learner names to search (default: all registered)
            exclude_algos: Learner names to leave out
            ensemble_top_k: Stack the top-k candidates when > 1
            random_state: Random seed for reproducibility
            pruner_patience: Folds to run before a trial may be pruned
            use_mlflow: Log trials and the leaderboard to MLflow
            mlflow_tracking_uri: MLflow tracking URI (None for local)
            mlflow_experiment_name: MLflow experiment name
        """
        if max_runtime_secs is None and max_models is None:
            raise ValueError("At least one of max_runtime_secs or max_models must be set")
        if max_runtime_secs is not None and max_runtime_secs <= 0:
            raise ValueError(f"max_runtime_secs must be positive, got {max_runtime_secs}")
        if max_models is not None and max_models < 1:
            raise ValueError(f"max_models must be at least 1, got {max_models}")
        if nfolds < 2:
            raise ValueError(f"nfolds must be at least 2, got {nfolds}")

        candidates = list(include_algos) if include_algos else available_learners()
        for name in candidates + list(exclude_algos or []):
            get_learner_spec(name)
        self.learners = [name for name in candidates if name not in set(exclude_algos or [])]
        if not self.learners:
            raise ValueError("No learners left to search after include/exclude filtering")

        self.max_runtime_secs = max_runtime_secs
        self.max_models = max_models
        self.nfolds = nfolds
        self.ensemble_top_k = ensemble_top_k
        self.random_state = random_state
        self.pruner_patience = pruner_patience
        self.use_mlflow = use_mlflow
        self.mlflow_tracking_uri = mlflow_tracking_uri
        self.mlflow_experiment_name = mlflow_experiment_name

        self.study: Optional[optuna.Study] = None
        self.X: Optional[pd.DataFrame] = None
        self.y: Optional[pd.Series] = None

        self.log_info(
            f"Initialized AutoMLSelector: learners={self.learners}, "
            f"max_models={max_models}, max_runtime_secs={max_runtime_secs}"
        )

    def run(
        self,
        y: str,
        training_frame: pd.DataFrame,
        x: Optional[List[str]] = None
    ) -> AutoMLResult:
        """
        Run automated model selection.

        Args:
            y: Target column name
            training_frame: Frame with features and target
            x: Feature columns (default: every column except the target)

        Returns:
            AutoMLResult with leaderboard and fitted leader
        """
        validate_frame(training_frame, y)
        features = list(x) if x else [c for c in training_frame.columns if c != y]
        missing = [c for c in features if c not in training_frame.columns]
        if missing:
            raise ValueError(f"Missing feature columns: {missing}")
        if y in features:
            raise ValueError(f"Target column '{y}' cannot also be a feature")

        frame = training_frame[features + [y]].reset_index(drop=True)
        self.X = frame[features]
        self.y = frame[y]

        self.log_info(
            f"Starting AutoML on {len(frame)} rows, {len(features)} features, target='{y}'"
        )

        sampler = TPESampler(seed=self.random_state)
        pruner = MedianPruner(n_startup_trials=5, n_warmup_steps=self.pruner_patience)
        self.study = optuna.create_study(
            direction='minimize',
            sampler=sampler,
            pruner=pruner,
            study_name=f"automl_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
        )

        with self._mlflow_run("automl"):
            with warnings.catch_warnings(), log_duration(self.logger, "AutoML search"):
                warnings.simplefilter("ignore")
                self.study.optimize(
                    self._objective,
                    n_trials=self.max_models,
                    timeout=self.max_runtime_secs,
                    catch=(Exception,),
                    show_progress_bar=False
                )

            leaderboard, candidates = self._build_leaderboard()

            if self.ensemble_top_k > 1 and len(leaderboard) > 1:
                leaderboard, candidates = self._add_ensemble(leaderboard, candidates)

            leader_id = leaderboard.iloc[0]['model_id']
            self.log_info(f"Refitting leader {leader_id} on the full training frame")
            leader = candidates[leader_id]().fit(self.X, self.y)

            self._log_leaderboard(leaderboard)

        result = AutoMLResult(
            leaderboard=leaderboard,
            leader=leader,
            study=self.study,
            target=y,
            features=features,
            candidates=candidates,
            training_frame=frame,
        )

        self.log_info(
            f"AutoML completed: {len(leaderboard)} models, "
            f"leader={leader_id} (CV RMSE {leaderboard.iloc[0]['rmse']:.4f})"
        )
        return result

    def _objective(self, trial: optuna.Trial) -> float:
        """
        Objective function for Optuna optimization.

        Args:
            trial: Optuna trial object

        Returns:
            Mean cross-validated RMSE
        """
        learner = trial.suggest_categorical('learner', self.learners)
        params = self._sample_parameters(trial, learner)

        with self._mlflow_run(f"trial_{trial.number}", nested=True):
            try:
                model = make_learner(learner, random_state=self.random_state, **params)
                metrics = self._cross_validate(model.build_pipeline(), trial)

            except optuna.TrialPruned:
                self.log_debug(f"Trial {trial.number} ({learner}) pruned")
                raise
            except Exception as e:
                self.log_error(f"Trial {trial.number} ({learner}) failed: {e}")
                raise

            trial.set_user_attr('learner', learner)
            trial.set_user_attr('params', params)
            for name, value in metrics.items():
                trial.set_user_attr(name, value)

            if self.use_mlflow:
                import mlflow
                mlflow.log_param('learner', learner)
                mlflow.log_params(params)
                mlflow.log_metrics({f"cv_{k}": v for k, v in metrics.items()})

        self.log_info(f"Trial {trial.number}: {learner} CV RMSE={metrics['rmse']:.4f}")
        return metrics['rmse']

    def _sample_parameters(self, trial: optuna.Trial, learner: str) -> Dict[str, Any]:
        """
        Sample hyperparameters for one learner family.

        Parameter names are prefixed with the learner name inside the study so
        that families sharing a parameter name keep separate distributions.
        """
        params = {}

        for param_name, param_config in get_learner_spec(learner).param_space.items():
            key = f"{learner}__{param_name}"
            param_type = param_config['type']

            if param_type == 'int':
                params[param_name] = trial.suggest_int(
                    key,
                    param_config['low'],
                    param_config['high'],
                    step=param_config.get('step', 1)
                )
            elif param_type == 'float':
                if param_config.get('log', False):
                    params[param_name] = trial.suggest_float(
                        key, param_config['low'], param_config['high'], log=True
                    )
                else:
                    params[param_name] = trial.suggest_float(
                        key,
                        param_config['low'],
                        param_config['high'],
                        step=param_config.get('step')
                    )
            elif param_type == 'categorical':
                params[param_name] = trial.suggest_categorical(key, param_config['choices'])

        return params

    def _cross_validate(
        self,
        pipeline: Any,
        trial: Optional[optuna.Trial] = None
    ) -> Dict[str, float]:
        """
        K-fold cross-validation of an unfitted pipeline.

        Args:
            pipeline: Unfitted estimator
            trial: Optuna trial for pruning (None to disable)

        Returns:
            Mean fold metrics
        """
        kfold = KFold(n_splits=self.nfolds, shuffle=True, random_state=self.random_state)
        fold_metrics: List[Dict[str, float]] = []

        for fold, (train_idx, val_idx) in enumerate(kfold.split(self.X)):
            fold_model = clone(pipeline)
            fold_model.fit(self.X.iloc[train_idx], self.y.iloc[train_idx])
            y_pred = fold_model.predict(self.X.iloc[val_idx])

            fold_metrics.append(
                ModelEvaluator.evaluate_regression(self.y.iloc[val_idx], y_pred)
            )

            if trial is not None:
                trial.report(float(np.mean([m['rmse'] for m in fold_metrics])), fold)
                if trial.should_prune():
                    raise optuna.TrialPruned()

        return {
            name: float(np.mean([m[name] for m in fold_metrics]))
            for name in fold_metrics[0]
        }

    def _build_leaderboard(self):
        """Rank completed trials by CV RMSE."""
        rows = []
        candidates: Dict[str, Callable[[], SklearnModel]] = {}

        for trial in self.study.trials:
            if trial.state != optuna.trial.TrialState.COMPLETE:
                continue

            learner = trial.user_attrs['learner']
            params = trial.user_attrs['params']
            model_id = f"{learner}_{trial.number}"

            rows.append({
                'model_id': model_id,
                'algorithm': get_learner_spec(learner).algorithm,
                'learner': learner,
                **{name: trial.user_attrs.get(name) for name in ('rmse', 'mse', 'mae', 'r2', 'mad')},
            })
            candidates[model_id] = self._factory(learner, params)

        if not rows:
            raise RuntimeError(
                f"AutoML produced no models: {len(self.study.trials)} trials, none completed"
            )

        leaderboard = (
            pd.DataFrame(rows, columns=LEADERBOARD_COLUMNS)
            .sort_values('rmse', kind='mergesort')
            .reset_index(drop=True)
        )
        return leaderboard, candidates

    def _factory(self, learner: str, params: Dict[str, Any]) -> Callable[[], SklearnModel]:
        random_state = self.random_state
        return lambda: make_learner(learner, random_state=random_state, **params)

    def _add_ensemble(self, leaderboard: pd.DataFrame, candidates):
        """Cross-validate a stacked ensemble of the top-k models and rank it."""
        top = leaderboard.head(self.ensemble_top_k)
        model_id = f"StackedEnsemble_top{len(top)}"

        estimators = [
            (row.model_id, candidates[row.model_id]().build_pipeline())
            for row in top.itertuples()
        ]
        stack = Pipeline([
            ('model', StackingRegressor(
                estimators=estimators,
                final_estimator=RidgeCV(),
                cv=min(self.nfolds, 5),
            )),
        ])

        self.log_info(f"Cross-validating {model_id}")
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            metrics = self._cross_validate(stack)

        row = {'model_id': model_id, 'algorithm': 'StackedEnsemble',
               'learner': 'stacked_ensemble', **metrics}
        leaderboard = (
            pd.concat([leaderboard, pd.DataFrame([row], columns=LEADERBOARD_COLUMNS)],
                      ignore_index=True)
            .sort_values('rmse', kind='mergesort')
            .reset_index(drop=True)
        )

        random_state = self.random_state
        candidates = dict(candidates)
        candidates[model_id] = lambda: SklearnModel(
            learner='stacked_ensemble', random_state=random_state, pipeline=stack
        )
        return leaderboard, candidates

    def _mlflow_run(self, run_name: str, nested: bool = False):
        """Context for an MLflow run, or a no-op when tracking is off."""
        if not self.use_mlflow:
            return nullcontext()

        import mlflow

        if not nested:
            if self.mlflow_tracking_uri:
                mlflow.set_tracking_uri(self.mlflow_tracking_uri)
            mlflow.set_experiment(self.mlflow_experiment_name)
            self.log_info(f"Tracking AutoML in MLflow experiment '{self.mlflow_experiment_name}'")

        return mlflow.start_run(run_name=run_name, nested=nested)

    def _log_leaderboard(self, leaderboard: pd.DataFrame) -> None:
        if not self.use_mlflow:
            return

        import mlflow

        best = leaderboard.iloc[0]
        mlflow.log_param('leader', best['model_id'])
        mlflow.log_metric('leader_rmse', float(best['rmse']))
        mlflow.log_metric('n_models', len(leaderboard))
        mlflow.log_dict(leaderboard.to_dict(orient='records'), 'leaderboard.json')

    def get_optimization_history(self) -> pd.DataFrame:
        """
        Get optimization history as DataFrame.

        Returns:
            DataFrame with one row per trial
        """
        if self.study is None:
            return pd.DataFrame()

        trials_data = []
        for trial in self.study.trials:
            trials_data.append({
                'trial_number': trial.number,
                'learner': trial.params.get('learner'),
                'value': trial.value,
                'state': trial.state.name,
                'datetime_start': trial.datetime_start,
                'datetime_complete': trial.datetime_complete,
            })

        return pd.DataFrame(trials_data)


def automl(
    y: str,
    training_frame: pd.DataFrame,
    max_runtime_secs: Optional[float] = 60.0,
    max_models: Optional[int] = 20,
    nfolds: int = 5,
    random_state: int = 42,
    **kwargs: Any
) -> AutoMLResult:
    """
    Convenience function for a one-shot AutoML run.

    Args:
        y: Target column name
        training_frame: Frame with features and target
        max_runtime_secs: Wall-clock budget
        max_models: Model-count budget
        nfolds: Cross-validation folds
        random_state: Random seed
        **kwargs: Further AutoMLSelector options

    Returns:
        AutoMLResult
    """
    selector = AutoMLSelector(
        max_runtime_secs=max_runtime_secs,
        max_models=max_models,
        nfolds=nfolds,
        random_state=random_state,
        **kwargs
    )
    return selector.run(y=y, training_frame=training_frame)
