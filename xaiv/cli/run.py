"""
CLI commands that run and render vignettes.

Provides the AutoML vignette, the benchmark vignette, explanation of a
saved model on a CSV file, and the documentation site build.
"""

import typer
from typing import List, Optional
from pathlib import Path

from ..data.datasets import load_csv
from ..explain.explainer import ExplanationSuite, explain
from ..models.learners import SklearnModel
from ..reporting.report import VignetteReport
from ..reporting.vignette import AutoMLVignette, BenchmarkVignette, build_site, default_vignettes
from ..utils.config import VignetteConfig

app = typer.Typer(help="XAI Vignettes - run and render vignettes")


def _split_names(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    return [name.strip() for name in value.split(",") if name.strip()]


@app.command("automl")
def run_automl(
    dataset: str = typer.Option("dragons", help="Registered dataset name"),
    max_runtime_secs: Optional[float] = typer.Option(None, help="AutoML wall-clock budget in seconds"),
    max_models: Optional[int] = typer.Option(None, help="Maximum number of candidate models"),
    nfolds: Optional[int] = typer.Option(None, help="Cross-validation folds"),
    include_algos: Optional[str] = typer.Option(None, help="Comma-separated learners to search"),
    ensemble_top_k: Optional[int] = typer.Option(None, help="Stack the top-k models (0 disables)"),
    output_dir: Optional[str] = typer.Option(None, help="Directory for the rendered report"),
    random_state: Optional[int] = typer.Option(None, help="Random state for reproducibility")
):
    """Select a model with AutoML and explain the leader."""
    try:
        config = VignetteConfig.from_env(
            max_runtime_secs=max_runtime_secs,
            max_models=max_models,
            nfolds=nfolds,
            ensemble_top_k=ensemble_top_k,
            output_dir=output_dir,
            random_state=random_state,
        )
        vignette = AutoMLVignette(dataset, config=config, include_algos=_split_names(include_algos))
        index = vignette.render(Path(config.output_dir) / vignette.slug)

        typer.echo(f"✅ {vignette.summary()}")
        typer.echo(f"Report written to: {index}")

    except Exception as e:
        typer.echo(f"❌ AutoML vignette failed: {e}", err=True)
        raise typer.Exit(1)


@app.command("benchmark")
def run_benchmark(
    dataset: str = typer.Option("apartments", help="Registered dataset name"),
    learners: str = typer.Option("lgbm,random_forest,glm", help="Comma-separated learners"),
    resampling: Optional[str] = typer.Option(None, help="cv, repeated_cv or holdout"),
    folds: Optional[int] = typer.Option(None, help="Cross-validation folds"),
    repeats: Optional[int] = typer.Option(None, help="Repetitions for repeated_cv"),
    output_dir: Optional[str] = typer.Option(None, help="Directory for the rendered report"),
    random_state: Optional[int] = typer.Option(None, help="Random state for reproducibility")
):
    """Benchmark learners and compare their explanations."""
    try:
        config = VignetteConfig.from_env(
            resampling=resampling,
            folds=folds,
            repeats=repeats,
            output_dir=output_dir,
            random_state=random_state,
        )
        names = _split_names(learners)
        if not names:
            raise ValueError("At least one learner is required")

        vignette = BenchmarkVignette(dataset, config=config, learners=names)
        index = vignette.render(Path(config.output_dir) / vignette.slug)

        typer.echo(f"✅ {vignette.summary()}")
        typer.echo(f"Report written to: {index}")

    except Exception as e:
        typer.echo(f"❌ Benchmark vignette failed: {e}", err=True)
        raise typer.Exit(1)


@app.command("explain")
def explain_saved_model(
    model_path: str = typer.Argument(..., help="Saved model path (without .pkl extension)"),
    data_file: str = typer.Argument(..., help="CSV with validation rows"),
    target: str = typer.Argument(..., help="Target column name"),
    label: Optional[str] = typer.Option(None, help="Label shown in plots"),
    observation: int = typer.Option(0, help="Row to break down"),
    output_dir: str = typer.Option("reports/explain", help="Directory for the rendered report")
):
    """Explain a saved model on a CSV file."""
    try:
        config = VignetteConfig.from_env()
        model = SklearnModel.from_file(model_path)
        dataset = load_csv(data_file, target=target)

        explainer = explain(model, dataset.X(), dataset.y(), label=label)
        suite = ExplanationSuite(
            explainer,
            random_state=config.random_state,
            permutation_rounds=config.permutation_rounds,
            sample_size=config.sample_size,
            grid_points=config.grid_points,
        )
        results = suite.run(observation=observation)

        report = VignetteReport(title=f"Explaining {explainer.label} on {dataset.name}")
        tables = results.tables()
        for name, figure in results.figures().items():
            report.add_section(name.replace('_', ' ').capitalize(),
                               downloads={name: tables[name]}, figures={name: figure})
        index = report.render(output_dir)

        typer.echo(f"✅ Explanation written to: {index}")

    except Exception as e:
        typer.echo(f"❌ Explanation failed: {e}", err=True)
        raise typer.Exit(1)


@app.command("build-docs")
def build_docs(
    output_dir: str = typer.Option("docs", help="Site root directory"),
    max_runtime_secs: Optional[float] = typer.Option(None, help="AutoML wall-clock budget in seconds"),
    max_models: Optional[int] = typer.Option(None, help="Maximum number of AutoML models")
):
    """Render every vignette and the site index page."""
    try:
        config = VignetteConfig.from_env(
            max_runtime_secs=max_runtime_secs,
            max_models=max_models,
        )
        vignettes = default_vignettes(config)
        index = build_site(vignettes, output_dir=output_dir)

        for vignette in vignettes:
            typer.echo(f"✅ {vignette.report.title}: {vignette.summary()}")
        typer.echo(f"Site index: {index}")

    except Exception as e:
        typer.echo(f"❌ Documentation build failed: {e}", err=True)
        raise typer.Exit(1)
