"""
Tests for the xaiv command line interface.
"""

import pytest
from unittest.mock import patch
from typer.testing import CliRunner

from xaiv import __version__
from xaiv.cli import app
from xaiv.data.datasets import Dataset
from xaiv.models.learners import make_learner

from conftest import make_apartments, make_dragons

runner = CliRunner()


@pytest.fixture
def toy_datasets():
    registry = {
        'toy_apartments': lambda: Dataset(
            name='toy_apartments',
            train=make_apartments(150, seed=1),
            test=make_apartments(50, seed=2),
            target='m2_price',
        ),
        'toy_dragons': lambda: Dataset(
            name='toy_dragons',
            train=make_dragons(150, seed=3),
            target='life_length',
        ),
    }
    with patch.dict('xaiv.data.datasets.DATASETS', registry, clear=True):
        yield registry


@pytest.fixture
def fast_env(monkeypatch):
    monkeypatch.setenv('XAIV_PERMUTATION_ROUNDS', '2')
    monkeypatch.setenv('XAIV_GRID_POINTS', '11')
    monkeypatch.setenv('XAIV_SAMPLE_SIZE', '50')
    monkeypatch.setenv('XAIV_MAX_MODELS', '2')
    monkeypatch.setenv('XAIV_NFOLDS', '3')


class TestInfoCommands:
    """Test informational commands."""

    def test_version(self):
        result = runner.invoke(app, ['version'])
        assert result.exit_code == 0
        assert f"v{__version__}" in result.stdout

    def test_info(self):
        result = runner.invoke(app, ['info'])
        assert result.exit_code == 0
        assert 'Learners:' in result.stdout
        assert 'lgbm (LightGBM)' in result.stdout
        assert 'max_runtime_secs' in result.stdout

    def test_datasets(self, toy_datasets):
        result = runner.invoke(app, ['datasets'])
        assert result.exit_code == 0
        assert 'toy_apartments: target=m2_price, train=150, test=50' in result.stdout
        assert 'toy_dragons: target=life_length, train=150, test=0' in result.stdout


class TestRunCommands:
    """Test commands that run vignettes."""

    def test_automl_unknown_dataset(self, toy_datasets):
        result = runner.invoke(app, ['automl', '--dataset', 'unicorns'])
        assert result.exit_code == 1

    def test_automl(self, toy_datasets, fast_env, tmp_path):
        result = runner.invoke(app, [
            'automl',
            '--dataset', 'toy_dragons',
            '--include-algos', 'glm',
            '--output-dir', str(tmp_path),
        ])

        assert result.exit_code == 0, result.output
        assert 'AutoML leader glm_' in result.stdout
        assert (tmp_path / 'automl-toy-dragons' / 'index.html').exists()

    def test_benchmark(self, toy_datasets, fast_env, tmp_path):
        result = runner.invoke(app, [
            'benchmark',
            '--dataset', 'toy_apartments',
            '--learners', 'glm,knn',
            '--folds', '3',
            '--output-dir', str(tmp_path),
        ])

        assert result.exit_code == 0, result.output
        assert 'Best learner by RMSE' in result.stdout
        assert (tmp_path / 'benchmark-toy-apartments' / 'index.html').exists()

    def test_benchmark_repeated_cv(self, toy_datasets, fast_env, tmp_path):
        result = runner.invoke(app, [
            'benchmark',
            '--dataset', 'toy_apartments',
            '--learners', 'glm',
            '--resampling', 'repeated_cv',
            '--folds', '2',
            '--repeats', '3',
            '--output-dir', str(tmp_path),
        ])

        assert result.exit_code == 0, result.output
        readme = (tmp_path / 'benchmark-toy-apartments' / 'README.md').read_text(encoding='utf-8')
        assert 'repeated_cv resampling (6 iterations)' in readme

    def test_benchmark_unknown_learner(self, toy_datasets, fast_env, tmp_path):
        result = runner.invoke(app, [
            'benchmark',
            '--dataset', 'toy_apartments',
            '--learners', 'glm,svm',
            '--output-dir', str(tmp_path),
        ])
        assert result.exit_code == 1

    def test_explain(self, fast_env, tmp_path):
        train = make_apartments(150, seed=5)
        model = make_learner('glm').fit(train.drop(columns=['m2_price']), train['m2_price'])
        model_path = tmp_path / 'glm_model'
        model.save(model_path)

        data_file = tmp_path / 'valid.csv'
        make_apartments(60, seed=6).to_csv(data_file, index=False)

        out_dir = tmp_path / 'explain'
        result = runner.invoke(app, [
            'explain', str(model_path), str(data_file), 'm2_price',
            '--label', 'saved glm',
            '--observation', '4',
            '--output-dir', str(out_dir),
        ])

        assert result.exit_code == 0, result.output
        page = (out_dir / 'index.html').read_text(encoding='utf-8')
        assert 'Explaining saved glm on valid' in page

    def test_explain_missing_model(self, tmp_path):
        data_file = tmp_path / 'valid.csv'
        make_apartments(20).to_csv(data_file, index=False)

        result = runner.invoke(app, ['explain', str(tmp_path / 'nope'), str(data_file), 'm2_price'])
        assert result.exit_code == 1
