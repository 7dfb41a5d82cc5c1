"""
Tests for xaiv.data - dataset container, validation, registry and CSV loading.
"""

import pytest
import pandas as pd
import numpy as np
from pathlib import Path
from unittest.mock import patch

from xaiv.data import datasets as datasets_module
from xaiv.data.datasets import (
    Dataset,
    available_datasets,
    load_csv,
    load_dataset,
    validate_frame,
)
from xaiv.utils.config import VignetteConfig
from xaiv.utils.logging import get_logger, log_duration, setup_logging, verbosity_level

from conftest import make_apartments


class TestValidateFrame:
    """Test tabular well-formedness checks."""

    def test_valid_frame_passes(self, apartments_frame):
        validate_frame(apartments_frame, 'm2_price')  # Should not raise

    def test_rejects_non_dataframe(self):
        with pytest.raises(ValueError, match="DataFrame"):
            validate_frame([[1, 2]], 'y')

    def test_rejects_empty_frame(self):
        with pytest.raises(ValueError, match="empty"):
            validate_frame(pd.DataFrame(columns=['x', 'y']), 'y')

    def test_rejects_missing_target(self, apartments_frame):
        with pytest.raises(ValueError, match="not found"):
            validate_frame(apartments_frame, 'price')

    def test_rejects_target_only_frame(self):
        with pytest.raises(ValueError, match="feature column"):
            validate_frame(pd.DataFrame({'y': [1.0, 2.0]}), 'y')

    def test_rejects_non_numeric_target(self):
        frame = pd.DataFrame({'x': [1, 2], 'y': ['a', 'b']})
        with pytest.raises(ValueError, match="numeric"):
            validate_frame(frame, 'y')

    def test_rejects_missing_target_values(self):
        frame = pd.DataFrame({'x': [1, 2, 3], 'y': [1.0, np.nan, 3.0]})
        with pytest.raises(ValueError, match="missing"):
            validate_frame(frame, 'y')

    def test_missing_features_only_warn(self, caplog):
        frame = pd.DataFrame({'x': [1.0, np.nan, 3.0], 'y': [1.0, 2.0, 3.0]})
        validate_frame(frame, 'y')
        assert any("missing values" in r.message for r in caplog.records)


class TestDataset:
    """Test the Dataset container."""

    def test_feature_partition(self, apartments_dataset):
        ds = apartments_dataset
        assert ds.features == ['construction_year', 'surface', 'floor', 'no_rooms', 'district']
        assert ds.categorical_features == ['district']
        assert set(ds.numeric_features) == {'construction_year', 'surface', 'floor', 'no_rooms'}

    def test_x_and_y_accessors(self, apartments_dataset):
        ds = apartments_dataset
        X = ds.X('train')
        y = ds.y('train')

        assert 'm2_price' not in X.columns
        assert len(X) == len(y) == 240
        assert len(ds.X('test')) == 80

    def test_accessors_return_copies(self, apartments_dataset):
        ds = apartments_dataset
        X = ds.X()
        X['surface'] = 0.0
        assert (ds.train['surface'] != 0.0).any()

    def test_unknown_split_raises(self, apartments_dataset):
        with pytest.raises(ValueError, match="split"):
            apartments_dataset.frame('validation')

    def test_test_split_reordered_to_train_columns(self):
        train = make_apartments(50, seed=1)
        test = make_apartments(20, seed=2)[list(reversed(train.columns))]

        ds = Dataset(name='a', train=train, test=test, target='m2_price')
        assert list(ds.test.columns) == list(train.columns)

    def test_test_split_missing_columns_raises(self):
        train = make_apartments(50, seed=1)
        test = make_apartments(20, seed=2).drop(columns=['floor'])

        with pytest.raises(ValueError, match="missing columns"):
            Dataset(name='a', train=train, test=test, target='m2_price')

    def test_holdout_without_test_split(self):
        train = make_apartments(100, seed=1)
        ds = Dataset(name='a', train=train, target='m2_price', random_state=0)

        holdout = ds.validation_frame()
        fit_part = ds.training_frame()

        assert len(holdout) == 25
        assert len(fit_part) == 75
        assert set(holdout.index).isdisjoint(fit_part.index)
        # Deterministic across calls
        pd.testing.assert_frame_equal(holdout, ds.validation_frame())

    def test_holdout_size(self):
        train = make_apartments(100, seed=1)
        ds = Dataset(name='a', train=train, target='m2_price', holdout_size=0.5)

        assert len(ds.validation_frame()) == 50
        assert len(ds.training_frame()) == 50

        with pytest.raises(ValueError, match="holdout_size"):
            Dataset(name='a', train=train, target='m2_price', holdout_size=1.0)

    def test_training_frame_is_train_when_test_present(self, apartments_dataset):
        pd.testing.assert_frame_equal(
            apartments_dataset.training_frame(), apartments_dataset.train
        )

    def test_summary(self, dragons_dataset):
        info = dragons_dataset.summary()
        assert info['target'] == 'life_length'
        assert info['n_train'] == 240
        assert info['n_test'] == 80
        assert info['categorical_features'] == ['colour']


class TestRegistry:
    """Test the dataset registry and loaders."""

    def test_available_datasets(self):
        assert available_datasets() == ['apartments', 'dragons']

    def test_unknown_dataset_raises(self):
        with pytest.raises(ValueError, match="Available: apartments, dragons"):
            load_dataset('titanic')

    def test_lookup_is_case_insensitive(self, apartments_dataset):
        with patch.dict(datasets_module.DATASETS, {'toy': lambda: apartments_dataset}):
            assert load_dataset(' TOY ') is apartments_dataset

    @pytest.mark.parametrize("name,target", [("apartments", "m2_price"), ("dragons", "life_length")])
    def test_builtin_datasets(self, name, target):
        ds = load_dataset(name)

        assert ds.name == name
        assert ds.target == target
        assert ds.test is not None
        assert len(ds.train) > 0 and len(ds.test) > 0
        assert len(ds.categorical_features) >= 1

    def test_load_csv(self, tmp_path):
        train_path = tmp_path / 'train.csv'
        test_path = tmp_path / 'test.csv'
        make_apartments(60, seed=1).to_csv(train_path, index=False)
        make_apartments(20, seed=2).to_csv(test_path, index=False)

        ds = load_csv(train_path, target='m2_price', test_path=test_path)

        assert ds.name == 'train'
        assert len(ds.train) == 60
        assert len(ds.test) == 20
        assert ds.categorical_features == ['district']

    def test_load_csv_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_csv(tmp_path / 'nope.csv', target='y')


class TestConfig:
    """Test VignetteConfig environment handling."""

    def test_defaults(self):
        config = VignetteConfig()
        assert config.random_state == 42
        assert config.use_mlflow is False

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv('XAIV_MAX_MODELS', '5')
        monkeypatch.setenv('XAIV_MAX_RUNTIME_SECS', 'none')
        monkeypatch.setenv('XAIV_USE_MLFLOW', 'true')
        monkeypatch.setenv('XAIV_GRID_POINTS', '21')
        monkeypatch.setenv('XAIV_OUTPUT_DIR', 'out')

        config = VignetteConfig.from_env(dotenv=False)

        assert config.max_models == 5
        assert config.max_runtime_secs is None
        assert config.use_mlflow is True
        assert config.grid_points == 21
        assert config.output_dir == 'out'

    def test_overrides_win_over_env(self, monkeypatch):
        monkeypatch.setenv('XAIV_NFOLDS', '10')
        config = VignetteConfig.from_env(dotenv=False, nfolds=3, max_models=None)

        assert config.nfolds == 3
        assert config.max_models == 20

    def test_repeats_from_env(self, monkeypatch):
        assert VignetteConfig().repeats == 1

        monkeypatch.setenv('XAIV_REPEATS', '3')
        assert VignetteConfig.from_env(dotenv=False).repeats == 3

    def test_with_overrides_skips_none(self):
        config = VignetteConfig().with_overrides(folds=7, output_dir=None)
        assert config.folds == 7
        assert config.output_dir == 'reports'


class TestLogging:
    """Test logging helpers."""

    def test_verbosity_level(self):
        assert verbosity_level() == "WARNING"
        assert verbosity_level(verbose=True) == "INFO"
        assert verbosity_level(verbose=True, debug=True) == "DEBUG"

    def test_setup_logging_with_file(self, tmp_path):
        log_file = tmp_path / "logs" / "xaiv.log"
        logger = setup_logging("INFO", log_file=str(log_file))

        get_logger("tests").info("hello from tests")
        for handler in logger.handlers:
            handler.flush()

        assert logger.name == "xaiv"
        assert len(logger.handlers) == 2
        assert "hello from tests" in log_file.read_text()

        setup_logging("WARNING")

    def test_log_duration(self, caplog):
        logger = get_logger("timing")
        with caplog.at_level("INFO", logger="xaiv"):
            with log_duration(logger, "unit of work"):
                pass

        assert "unit of work finished in" in caplog.text
