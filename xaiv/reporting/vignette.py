"""
Narrative vignettes.

Each vignette is a linear script: load a dataset, select or benchmark
models, wrap the chosen model(s) in dalex explainers, run the standard
explanation queries and collect everything into a ``VignetteReport``.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union
import pandas as pd

from ..data.datasets import Dataset, load_dataset
from ..evaluation.benchmark import BenchmarkResult, BenchmarkRunner, Resampling, Task
from ..explain.explainer import ExplanationResults, ExplanationSuite, compare, explain
from ..tuning.automl import AutoMLResult, AutoMLSelector
from ..utils.config import VignetteConfig
from ..utils.logging import LoggingMixin, log_duration
from .report import VignetteReport, slugify, write_site_index

QUERY_TEXT = {
    'performance': (
        "Model performance on the held-out data. The residual distribution "
        "shows how far predictions fall from the observed target."
    ),
    'importance': (
        "Permutation variable importance: each variable is shuffled in turn and "
        "the increase in RMSE is recorded. Longer bars mean the model relies more "
        "on that variable."
    ),
    'profile_partial': (
        "Partial-dependence profiles: the average prediction as one variable moves "
        "across its range while the others keep their observed values."
    ),
    'profile_accumulated': (
        "Accumulated-local-effects profiles: like partial dependence, but built from "
        "local changes so correlated variables do not produce unrealistic combinations."
    ),
    'break_down': (
        "Break-down of a single prediction: starting from the mean prediction, each "
        "variable's contribution is added until the model's prediction for this "
        "observation is reached."
    ),
}

QUERY_TITLES = {
    'performance': "Model performance",
    'importance': "Variable importance",
    'profile_partial': "Partial dependence",
    'profile_accumulated': "Accumulated local effects",
    'break_down': "Break-down for one observation",
}


class Vignette(ABC, LoggingMixin):
    """Shared plumbing for vignettes."""

    title = "Vignette"
    default_dataset = ""

    def __init__(
        self,
        dataset: Union[str, Dataset, None] = None,
        config: Optional[VignetteConfig] = None
    ) -> None:
        self.config = config or VignetteConfig()
        self._dataset_arg = dataset if dataset is not None else self.default_dataset
        self.dataset: Optional[Dataset] = None
        self.report: Optional[VignetteReport] = None

    @property
    def slug(self) -> str:
        name = self._dataset_arg if isinstance(self._dataset_arg, str) else self._dataset_arg.name
        return slugify(f"{self.__class__.__name__.replace('Vignette', '')}-{name}")

    def load(self) -> Dataset:
        if isinstance(self._dataset_arg, Dataset):
            self.dataset = self._dataset_arg
        else:
            self.dataset = load_dataset(self._dataset_arg)
        return self.dataset

    def _suite(self, explainer) -> ExplanationSuite:
        return ExplanationSuite(
            explainer,
            random_state=self.config.random_state,
            permutation_rounds=self.config.permutation_rounds,
            sample_size=self.config.sample_size,
            grid_points=self.config.grid_points,
        )

    def _data_section(self, report: VignetteReport) -> None:
        dataset = self.dataset
        info = dataset.summary()
        text = (
            f"{dataset.description}\n\n"
            f"The training table has {info['n_train']} rows and the validation table "
            f"{len(dataset.validation_frame())} rows. The target is '{dataset.target}'; "
            f"numeric features: {', '.join(info['numeric_features']) or 'none'}; "
            f"categorical features: {', '.join(info['categorical_features']) or 'none'}."
        )
        report.add_section(
            "Data",
            text=text,
            tables={"First rows": dataset.train.head(10)},
        )

    @abstractmethod
    def run(self) -> VignetteReport:
        """Build the report; sets and returns ``self.report``."""

    def render(self, output_dir: Union[str, Path, None] = None) -> Path:
        """Run the vignette if needed and write it to ``output_dir``."""
        if self.report is None:
            with log_duration(self.logger, f"{self.__class__.__name__} ({self.slug})"):
                self.run()
        target = Path(output_dir) if output_dir else Path(self.config.output_dir) / self.slug
        return self.report.render(target)

    def summary(self) -> str:
        return ""


class AutoMLVignette(Vignette):
    """
    AutoML on one dataset, then explanations of the leading model.
    """

    title = "Explaining an AutoML leader"
    default_dataset = "dragons"

    def __init__(
        self,
        dataset: Union[str, Dataset, None] = None,
        config: Optional[VignetteConfig] = None,
        include_algos: Optional[Sequence[str]] = None
    ) -> None:
        super().__init__(dataset, config)
        self.include_algos = include_algos
        self.automl_result: Optional[AutoMLResult] = None
        self.explanations: Optional[ExplanationResults] = None

    def run(self) -> VignetteReport:
        cfg = self.config
        dataset = self.load()
        self.log_info(f"Running AutoML vignette on '{dataset.name}'")

        report = VignetteReport(
            title=f"{self.title}: {dataset.name}",
            intro=(
                "This vignette hands a table and the name of its target column to an "
                "automated model search, picks the best model from the leaderboard and "
                "explains it with model-agnostic tools.\n\n"
                "Every explanation is computed on the validation rows, which the search "
                "never saw."
            ),
        )
        self._data_section(report)

        selector = AutoMLSelector(
            max_runtime_secs=cfg.max_runtime_secs,
            max_models=cfg.max_models,
            nfolds=cfg.nfolds,
            include_algos=self.include_algos,
            ensemble_top_k=cfg.ensemble_top_k,
            random_state=cfg.random_state,
            use_mlflow=cfg.use_mlflow,
            mlflow_tracking_uri=cfg.mlflow_tracking_uri,
            mlflow_experiment_name=cfg.mlflow_experiment_name,
        )
        result = selector.run(y=dataset.target, training_frame=dataset.training_frame())
        self.automl_result = result

        summary = result.summary()
        budget = []
        if cfg.max_models is not None:
            budget.append(f"at most {cfg.max_models} models")
        if cfg.max_runtime_secs is not None:
            budget.append(f"at most {cfg.max_runtime_secs:g} seconds")
        report.add_section(
            "Model selection",
            text=(
                f"The search was limited to {' and '.join(budget)}, scoring each candidate "
                f"with {cfg.nfolds}-fold cross-validated RMSE. It finished "
                f"{summary['n_models']} models out of {summary['n_trials']} trials. "
                f"The leader is {summary['leader']} with CV RMSE "
                f"{summary['leader_rmse']:.4f}."
            ),
            tables={"Leaderboard": result.leaderboard},
            figures={"Search history": result.plot_history()},
        )

        validation = dataset.validation_frame()
        explainer = explain(
            result.leader,
            validation[dataset.features],
            validation[dataset.target],
            label=f"AutoML {result.leader.algorithm}",
        )
        self.explanations = self._suite(explainer).run(observation=cfg.observation_index)

        self._explanation_sections(report, self.explanations)
        self.report = report
        return report

    def _explanation_sections(self, report: VignetteReport, results: ExplanationResults) -> None:
        tables = results.tables()
        figures = results.figures()

        for key in ('performance', 'importance', 'profile_partial', 'profile_accumulated', 'break_down'):
            if key not in figures:
                continue
            text = QUERY_TEXT[key]
            if key == 'break_down' and results.observation is not None:
                text += "\n\nObservation explained:\n" + results.observation.to_string()

            embed = key in ('performance', 'importance', 'break_down')
            report.add_section(
                QUERY_TITLES[key],
                text=text,
                tables={QUERY_TITLES[key]: tables[key]} if embed else None,
                downloads=None if embed else {QUERY_TITLES[key]: tables[key]},
                figures={QUERY_TITLES[key]: figures[key]},
            )

    def summary(self) -> str:
        if self.automl_result is None:
            return "AutoML model selection and explanation."
        s = self.automl_result.summary()
        return f"AutoML leader {s['leader']} (CV RMSE {s['leader_rmse']:.4f})"


class BenchmarkVignette(Vignette):
    """
    Benchmark several learners, then explain and compare all of them.
    """

    title = "Explaining benchmarked learners"
    default_dataset = "apartments"

    def __init__(
        self,
        dataset: Union[str, Dataset, None] = None,
        config: Optional[VignetteConfig] = None,
        learners: Sequence[str] = ('lgbm', 'random_forest', 'glm')
    ) -> None:
        super().__init__(dataset, config)
        if not learners:
            raise ValueError("At least one learner is required")
        self.learners = list(learners)
        self.benchmark_result: Optional[BenchmarkResult] = None
        self.explanations: List[ExplanationResults] = []

    def run(self) -> VignetteReport:
        cfg = self.config
        dataset = self.load()
        self.log_info(f"Running benchmark vignette on '{dataset.name}' with {self.learners}")

        report = VignetteReport(
            title=f"{self.title}: {dataset.name}",
            intro=(
                "This vignette benchmarks several learners on the same task with a shared "
                "resampling scheme, then trains each one on the full training table and "
                "compares their explanations side by side.\n\n"
                "Models that score alike can still rely on different variables, which "
                "the importance and profile plots make visible."
            ),
        )
        self._data_section(report)

        task = Task(task_id=dataset.name, data=dataset.training_frame(), target=dataset.target)
        resampling = Resampling(
            method=cfg.resampling,
            folds=cfg.folds,
            repeats=cfg.repeats,
            random_state=cfg.random_state,
        )
        runner = BenchmarkRunner(resampling=resampling, measures=('rmse', 'mae', 'r2'))
        result = runner.run(task, self.learners, random_state=cfg.random_state)
        self.benchmark_result = result

        best = result.best_learner(task.task_id, 'rmse')
        report.add_section(
            "Benchmark",
            text=(
                f"Each learner was scored with {resampling.method} resampling "
                f"({resampling.iterations} iterations). {best} has the lowest mean RMSE."
            ),
            tables={"Aggregated performance": result.aggregate()},
            figures={"RMSE per iteration": result.plot('rmse')},
            downloads={"Per-iteration performance": result.performances},
        )

        validation = dataset.validation_frame()
        X_val = validation[dataset.features]
        y_val = validation[dataset.target]

        self.explanations = []
        for learner_id in self.learners:
            model = result.train_final(task.task_id, learner_id)
            explainer = explain(model, X_val, y_val, label=learner_id)
            self.explanations.append(self._suite(explainer).run(observation=cfg.observation_index))

        figures = compare(self.explanations)
        for key in ('performance', 'importance', 'profile_partial', 'profile_accumulated', 'break_down'):
            if key not in figures:
                continue
            combined = pd.concat(
                [r.tables()[key] for r in self.explanations], ignore_index=True
            )
            embed = key == 'performance'
            report.add_section(
                QUERY_TITLES[key],
                text=QUERY_TEXT[key],
                tables={QUERY_TITLES[key]: combined} if embed else None,
                downloads=None if embed else {QUERY_TITLES[key]: combined},
                figures={QUERY_TITLES[key]: figures[key]},
            )

        self.report = report
        return report

    def summary(self) -> str:
        if self.benchmark_result is None:
            return f"Benchmark of {', '.join(self.learners)} with explanations."
        task_id = next(iter(self.benchmark_result.tasks))
        return f"Best learner by RMSE: {self.benchmark_result.best_learner(task_id)}"


def default_vignettes(config: Optional[VignetteConfig] = None) -> List[Vignette]:
    """The vignettes published on the documentation site."""
    return [
        AutoMLVignette("dragons", config=config),
        BenchmarkVignette("apartments", config=config),
    ]


def build_site(
    vignettes: Optional[Sequence[Vignette]] = None,
    output_dir: Union[str, Path] = "docs",
    config: Optional[VignetteConfig] = None
) -> Path:
    """
    Render every vignette into its own directory plus a linking index page.

    Args:
        vignettes: Vignettes to render (default: ``default_vignettes``)
        output_dir: Site root
        config: Config for the default vignettes

    Returns:
        Path to the site index.html
    """
    out = Path(output_dir)
    vignettes = list(vignettes) if vignettes is not None else default_vignettes(config)

    entries: List[Dict[str, str]] = []
    for vignette in vignettes:
        index = vignette.render(out / vignette.slug)
        entries.append({
            'title': vignette.report.title,
            'href': f"{vignette.slug}/{index.name}",
            'summary': vignette.summary(),
        })

    return write_site_index(entries, out)
