"""
Benchmarking of several learners on several tasks.

Every learner is trained and scored on every resampling iteration of every
task; results come back as a long performance table that can be aggregated,
ranked, plotted and persisted.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union
import pandas as pd
import numpy as np
from sklearn.model_selection import KFold, RepeatedKFold, ShuffleSplit
from tqdm import tqdm

from ..data.datasets import validate_frame
from ..models.base_model import BaseModel, ModelEvaluator
from ..models.learners import make_learner
from ..utils.logging import LoggingMixin

MEASURES = ('rmse', 'mse', 'mae', 'r2', 'mad')
RESAMPLING_METHODS = ('cv', 'repeated_cv', 'holdout')

LearnerFactory = Callable[[], BaseModel]


@dataclass
class Task:
    """A regression task: a frame and the name of its target column."""

    task_id: str
    data: pd.DataFrame
    target: str

    def __post_init__(self) -> None:
        validate_frame(self.data, self.target)
        self.data = self.data.reset_index(drop=True)

    @property
    def features(self) -> List[str]:
        return [c for c in self.data.columns if c != self.target]

    @property
    def X(self) -> pd.DataFrame:
        return self.data[self.features]

    @property
    def y(self) -> pd.Series:
        return self.data[self.target]


@dataclass
class Resampling:
    """
    Resampling scheme used to score learners.

    Args:
        method: 'cv', 'repeated_cv' or 'holdout'
        folds: Number of folds for cross-validation
        repeats: Repetitions for 'repeated_cv'
        ratio: Share of rows used for training with 'holdout'
        random_state: Random seed
    """

    method: str = 'cv'
    folds: int = 5
    repeats: int = 1
    ratio: float = 2 / 3
    random_state: int = 42

    def __post_init__(self) -> None:
        if self.method not in RESAMPLING_METHODS:
            raise ValueError(
                f"Unknown resampling method '{self.method}'. "
                f"Available: {', '.join(RESAMPLING_METHODS)}"
            )
        if self.method in ('cv', 'repeated_cv') and self.folds < 2:
            raise ValueError(f"folds must be at least 2, got {self.folds}")
        if self.method == 'repeated_cv' and self.repeats < 1:
            raise ValueError(f"repeats must be at least 1, got {self.repeats}")
        if self.method == 'holdout' and not 0 < self.ratio < 1:
            raise ValueError(f"ratio must be in (0, 1), got {self.ratio}")

    @property
    def iterations(self) -> int:
        if self.method == 'cv':
            return self.folds
        if self.method == 'repeated_cv':
            return self.folds * self.repeats
        return 1

    def splits(self, data: pd.DataFrame) -> Iterator[Tuple[np.ndarray, np.ndarray]]:
        """Yield (train_idx, test_idx) pairs for ``data``."""
        if self.method == 'cv':
            splitter = KFold(n_splits=self.folds, shuffle=True, random_state=self.random_state)
        elif self.method == 'repeated_cv':
            splitter = RepeatedKFold(
                n_splits=self.folds, n_repeats=self.repeats, random_state=self.random_state
            )
        else:
            splitter = ShuffleSplit(
                n_splits=1, train_size=self.ratio, random_state=self.random_state
            )
        yield from splitter.split(data)


@dataclass
class BenchmarkResult:
    """Performance of every learner on every task and resampling iteration."""

    performances: pd.DataFrame
    tasks: Dict[str, Task]
    learners: Dict[str, LearnerFactory] = field(repr=False)
    resampling: Resampling
    measures: Tuple[str, ...]
    models: Dict[Tuple[str, str], List[BaseModel]] = field(default_factory=dict, repr=False)

    def aggregate(self) -> pd.DataFrame:
        """
        Mean and standard deviation of every measure per task and learner.

        Columns are ``<measure>_mean`` and ``<measure>_std``.
        """
        grouped = self.performances.groupby(['task_id', 'learner_id'], sort=False)
        means = grouped[list(self.measures)].mean().add_suffix('_mean')
        stds = grouped[list(self.measures)].std(ddof=0).add_suffix('_std')
        return pd.concat([means, stds], axis=1).reset_index()

    def best_learner(self, task_id: str, measure: str = 'rmse') -> str:
        """
        Learner with the best mean score on a task.

        Lowest wins for error measures, highest for r2.
        """
        if task_id not in self.tasks:
            raise ValueError(f"Unknown task '{task_id}'")
        if measure not in self.measures:
            raise ValueError(f"Measure '{measure}' was not recorded; have {self.measures}")

        table = self.aggregate()
        table = table[table['task_id'] == task_id]
        column = f"{measure}_mean"
        if ModelEvaluator.is_error_measure(measure):
            best = table.loc[table[column].idxmin()]
        else:
            best = table.loc[table[column].idxmax()]
        return str(best['learner_id'])

    def train_final(self, task_id: str, learner_id: str) -> BaseModel:
        """Fit a learner on all rows of a task."""
        if task_id not in self.tasks:
            raise ValueError(f"Unknown task '{task_id}'")
        if learner_id not in self.learners:
            raise ValueError(f"Unknown learner '{learner_id}'")

        task = self.tasks[task_id]
        return self.learners[learner_id]().fit(task.X, task.y)

    def plot(self, measure: str = 'rmse', task_id: Optional[str] = None):
        """
        Box plot of per-iteration scores for each learner.

        Returns:
            matplotlib Figure
        """
        import matplotlib.pyplot as plt

        if measure not in self.measures:
            raise ValueError(f"Measure '{measure}' was not recorded; have {self.measures}")

        task_ids = [task_id] if task_id else list(self.tasks)
        fig, axes = plt.subplots(1, len(task_ids), figsize=(6 * len(task_ids), 4), squeeze=False)

        for ax, tid in zip(axes[0], task_ids):
            subset = self.performances[self.performances['task_id'] == tid]
            learner_ids = list(dict.fromkeys(subset['learner_id']))
            values = [subset.loc[subset['learner_id'] == lid, measure].values for lid in learner_ids]
            ax.boxplot(values)
            ax.set_xticks(range(1, len(learner_ids) + 1))
            ax.set_xticklabels(learner_ids, rotation=30)
            ax.set_title(f"{tid}: {measure} per iteration")
            ax.set_ylabel(measure)

        fig.tight_layout()
        return fig

    def save(self, filepath: Union[str, Path]) -> None:
        """Persist the performance table and configuration with joblib."""
        import joblib

        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        joblib.dump({
            'performances': self.performances,
            'measures': self.measures,
            'resampling': self.resampling,
            'task_ids': list(self.tasks),
            'learner_ids': list(self.learners),
        }, filepath)


class BenchmarkRunner(LoggingMixin):
    """
    Runs learners across tasks under one resampling scheme.
    """

    def __init__(
        self,
        resampling: Optional[Resampling] = None,
        measures: Sequence[str] = ('rmse', 'mae', 'r2'),
        keep_models: bool = False,
        show_progress: bool = False
    ) -> None:
        unknown = [m for m in measures if m not in MEASURES]
        if unknown:
            raise ValueError(f"Unknown measures {unknown}. Available: {', '.join(MEASURES)}")
        if not measures:
            raise ValueError("At least one measure is required")

        self.resampling = resampling or Resampling()
        self.measures = tuple(measures)
        self.keep_models = keep_models
        self.show_progress = show_progress

    def run(
        self,
        tasks: Union[Task, Sequence[Task]],
        learners: Union[Mapping[str, LearnerFactory], Sequence[str]],
        random_state: int = 42
    ) -> BenchmarkResult:
        """
        Score every learner on every task.

        Args:
            tasks: One task or a list of tasks
            learners: Mapping of learner id to a factory returning an unfitted
                model, or a list of registered learner names
            random_state: Seed for learners built from registry names

        Returns:
            BenchmarkResult
        """
        if isinstance(tasks, Task):
            tasks = [tasks]
        if not tasks:
            raise ValueError("At least one task is required")

        task_map = {}
        for task in tasks:
            if task.task_id in task_map:
                raise ValueError(f"Duplicate task id '{task.task_id}'")
            task_map[task.task_id] = task

        learner_map = self._resolve_learners(learners, random_state)

        rows: List[Dict[str, Any]] = []
        models: Dict[Tuple[str, str], List[BaseModel]] = {}
        combos = [(t, lid) for t in task_map.values() for lid in learner_map]

        self.log_info(
            f"Benchmarking {len(learner_map)} learners on {len(task_map)} tasks "
            f"with {self.resampling.method} ({self.resampling.iterations} iterations)"
        )

        for task, learner_id in tqdm(combos, desc="benchmark", disable=not self.show_progress):
            factory = learner_map[learner_id]
            for iteration, (train_idx, test_idx) in enumerate(self.resampling.splits(task.data)):
                model = factory()
                model.fit(task.X.iloc[train_idx], task.y.iloc[train_idx])
                y_pred = model.predict(task.X.iloc[test_idx])
                metrics = ModelEvaluator.evaluate_regression(task.y.iloc[test_idx], y_pred)

                rows.append({
                    'task_id': task.task_id,
                    'learner_id': learner_id,
                    'iteration': iteration,
                    'n_train': len(train_idx),
                    'n_test': len(test_idx),
                    **{m: metrics[m] for m in self.measures},
                })

                if self.keep_models:
                    models.setdefault((task.task_id, learner_id), []).append(model)

            scores = [r['rmse'] for r in rows if r['task_id'] == task.task_id
                      and r['learner_id'] == learner_id and 'rmse' in r]
            if scores:
                self.log_info(f"{task.task_id}/{learner_id}: mean RMSE {np.mean(scores):.4f}")

        return BenchmarkResult(
            performances=pd.DataFrame(rows),
            tasks=task_map,
            learners=learner_map,
            resampling=self.resampling,
            measures=self.measures,
            models=models,
        )

    def _resolve_learners(self, learners, random_state: int) -> Dict[str, LearnerFactory]:
        if isinstance(learners, str):
            learners = [learners]
        if isinstance(learners, Mapping):
            learner_map = dict(learners)
        else:
            learner_map = {
                name: (lambda name=name: make_learner(name, random_state=random_state))
                for name in learners
            }
            # Fail fast on unknown registry names
            for factory in learner_map.values():
                factory()

        if not learner_map:
            raise ValueError("At least one learner is required")
        return learner_map


def benchmark(
    tasks: Union[Task, Sequence[Task]],
    learners: Union[Mapping[str, LearnerFactory], Sequence[str]],
    resampling: Optional[Resampling] = None,
    measures: Sequence[str] = ('rmse', 'mae', 'r2'),
    keep_models: bool = False,
    random_state: int = 42
) -> BenchmarkResult:
    """
    Convenience function for a benchmark run.

    Args:
        tasks: One task or a list of tasks
        learners: Learner factories by id, or registered learner names
        resampling: Resampling scheme (default 5-fold CV)
        measures: Measures to record
        keep_models: Keep the model fitted on every iteration
        random_state: Seed for learners built from registry names

    Returns:
        BenchmarkResult
    """
    runner = BenchmarkRunner(resampling=resampling, measures=measures, keep_models=keep_models)
    return runner.run(tasks, learners, random_state=random_state)
