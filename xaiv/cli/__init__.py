"""
Main CLI entry point for XAI vignettes.

Combines all command modules into a single CLI interface.
"""

import matplotlib
import typer
from typing import Optional

from ..utils.logging import setup_logging, verbosity_level

app = typer.Typer(
    name="xaiv",
    help="XAI Vignettes - AutoML, benchmarking and model explanations",
    add_completion=False
)

from .run import (
    run_automl,
    run_benchmark,
    explain_saved_model,
    build_docs
)

app.command("automl")(run_automl)
app.command("benchmark")(run_benchmark)
app.command("explain")(explain_saved_model)
app.command("build-docs")(build_docs)


@app.command()
def version():
    """Show version information."""
    from .. import __version__
    typer.echo(f"XAI Vignettes v{__version__}")


@app.command()
def datasets():
    """List the registered example datasets."""
    from ..data.datasets import available_datasets, load_dataset

    for name in available_datasets():
        try:
            info = load_dataset(name).summary()
        except Exception as e:
            typer.echo(f"✗ {name}: {e}")
            continue
        typer.echo(
            f"✓ {name}: target={info['target']}, "
            f"train={info['n_train']}, test={info['n_test']}"
        )


@app.command()
def info():
    """Show system information and configuration."""
    from ..models.learners import LEARNERS
    from ..utils.config import VignetteConfig

    typer.echo("XAI Vignettes")
    typer.echo("=" * 40)
    typer.echo("Components:")
    typer.echo("  - Example datasets (dragons, apartments)")
    typer.echo("  - AutoML model selection (Optuna)")
    typer.echo("  - Learner benchmarking (scikit-learn resampling)")
    typer.echo("  - Model explanations (dalex)")
    typer.echo("  - HTML vignette reports")
    typer.echo()
    typer.echo("Learners:")
    for name, spec in LEARNERS.items():
        typer.echo(f"  - {name} ({spec.algorithm})")
    typer.echo()
    typer.echo("Configuration:")
    for key, value in VignetteConfig.from_env().to_dict().items():
        if key != "extra":
            typer.echo(f"  {key} = {value}")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Log to file")
):
    """
    XAI Vignettes

    Narrative reports that select or benchmark models on tabular data and
    explain them with model-agnostic tools.
    """
    # Figures only go to files
    matplotlib.use("Agg")

    setup_logging(log_level=verbosity_level(verbose, debug), log_file=log_file)


if __name__ == "__main__":
    app()
