"""
Example datasets for the vignettes.

Wraps the ``dragons`` and ``apartments`` tables shipped with dalex behind a
small ``Dataset`` container, and offers CSV loading for user data. Every
dataset is a flat table of numeric/categorical feature columns plus one
numeric target column.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union
import pandas as pd

from ..utils.logging import get_logger

logger = get_logger("data.datasets")

SPLITS = ("train", "test")


def validate_frame(frame: pd.DataFrame, target: str) -> None:
    """
    Check that a frame is a well-formed regression table.

    Args:
        frame: Table with features and target
        target: Name of the target column

    Raises:
        ValueError: If the frame is malformed
    """
    if not isinstance(frame, pd.DataFrame):
        raise ValueError("data must be a pandas DataFrame")

    if frame.empty:
        raise ValueError("data cannot be empty")

    if target not in frame.columns:
        raise ValueError(f"Target column '{target}' not found in data")

    if frame.shape[1] < 2:
        raise ValueError("data must contain at least one feature column besides the target")

    if not pd.api.types.is_numeric_dtype(frame[target]):
        raise ValueError(
            f"Target column '{target}' must be numeric, got dtype {frame[target].dtype}"
        )

    if frame[target].isnull().any():
        raise ValueError(f"Target column '{target}' contains missing values")

    features = frame.drop(columns=[target])
    if features.isnull().any().any():
        n_missing = int(features.isnull().sum().sum())
        logger.warning(f"Found {n_missing} missing values in feature columns")


@dataclass
class Dataset:
    """
    A named tabular dataset with a train split and an optional test split.
    """

    name: str
    train: pd.DataFrame
    target: str
    test: Optional[pd.DataFrame] = None
    description: str = ""
    random_state: int = 42
    holdout_size: float = 0.25
    _holdout: Optional[Tuple[pd.DataFrame, pd.DataFrame]] = field(
        default=None, init=False, repr=False
    )

    def __post_init__(self) -> None:
        validate_frame(self.train, self.target)
        if not 0 < self.holdout_size < 1:
            raise ValueError(f"holdout_size must be in (0, 1), got {self.holdout_size}")
        if self.test is not None:
            validate_frame(self.test, self.target)
            missing = set(self.train.columns) - set(self.test.columns)
            if missing:
                raise ValueError(f"Test split is missing columns: {sorted(missing)}")
            self.test = self.test[list(self.train.columns)]

    @property
    def features(self) -> List[str]:
        return [c for c in self.train.columns if c != self.target]

    @property
    def numeric_features(self) -> List[str]:
        return [
            c for c in self.features
            if pd.api.types.is_numeric_dtype(self.train[c])
            and not pd.api.types.is_bool_dtype(self.train[c])
        ]

    @property
    def categorical_features(self) -> List[str]:
        numeric = set(self.numeric_features)
        return [c for c in self.features if c not in numeric]

    def frame(self, split: str = "train") -> pd.DataFrame:
        """Return a copy of the requested split including the target."""
        if split not in SPLITS:
            raise ValueError(f"split must be one of {SPLITS}, got '{split}'")
        if split == "train":
            return self.train.copy()
        return self.validation_frame()

    def X(self, split: str = "train") -> pd.DataFrame:
        return self.frame(split).drop(columns=[self.target])

    def y(self, split: str = "train") -> pd.Series:
        return self.frame(split)[self.target]

    def validation_frame(self) -> pd.DataFrame:
        """
        Frame used to build explainers.

        The shipped test split when there is one, otherwise a seeded hold-out
        of ``holdout_size`` drawn from the train split.
        """
        if self.test is not None:
            return self.test.copy()

        if self._holdout is None:
            from sklearn.model_selection import train_test_split

            fit_part, holdout = train_test_split(
                self.train, test_size=self.holdout_size, random_state=self.random_state
            )
            self._holdout = (fit_part, holdout)
            logger.info(
                f"No test split for '{self.name}', using a hold-out of {len(holdout)} rows"
            )
        return self._holdout[1].copy()

    def training_frame(self) -> pd.DataFrame:
        """Rows available for model fitting, excluding any carved hold-out."""
        if self.test is not None:
            return self.train.copy()
        self.validation_frame()
        return self._holdout[0].copy()

    def summary(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "target": self.target,
            "n_train": len(self.train),
            "n_test": len(self.test) if self.test is not None else 0,
            "numeric_features": self.numeric_features,
            "categorical_features": self.categorical_features,
            "description": self.description,
        }


def _load_dragons() -> Dataset:
    import dalex as dx

    return Dataset(
        name="dragons",
        train=dx.datasets.load_dragons(),
        test=dx.datasets.load_dragons_test(),
        target="life_length",
        description=(
            "Synthetic records of dragons: physical traits, colour and discovery "
            "year, with life length as the target."
        ),
    )


def _load_apartments() -> Dataset:
    import dalex as dx

    return Dataset(
        name="apartments",
        train=dx.datasets.load_apartments(),
        test=dx.datasets.load_apartments_test(),
        target="m2_price",
        description=(
            "Artificial Warsaw apartments: construction year, surface, floor, "
            "number of rooms and district, with price per square meter as the target."
        ),
    )


DATASETS: Dict[str, Callable[[], Dataset]] = {
    "dragons": _load_dragons,
    "apartments": _load_apartments,
}


def available_datasets() -> List[str]:
    return sorted(DATASETS)


def load_dataset(name: str) -> Dataset:
    """
    Load one of the registered example datasets.

    Args:
        name: Dataset name (see ``available_datasets()``)

    Returns:
        Loaded dataset

    Raises:
        ValueError: If the name is not registered
    """
    key = name.lower().strip()
    if key not in DATASETS:
        raise ValueError(
            f"Unknown dataset '{name}'. Available: {', '.join(available_datasets())}"
        )

    dataset = DATASETS[key]()
    logger.info(
        f"Loaded dataset '{dataset.name}': {len(dataset.train)} train rows, "
        f"{len(dataset.features)} features, target='{dataset.target}'"
    )
    return dataset


def load_csv(
    path: Union[str, Path],
    target: str,
    name: Optional[str] = None,
    test_path: Optional[Union[str, Path]] = None,
    **read_kwargs
) -> Dataset:
    """
    Build a dataset from CSV files.

    Args:
        path: CSV file with the training rows
        target: Target column name
        name: Dataset name (defaults to the file stem)
        test_path: Optional CSV with test rows
        **read_kwargs: Passed to ``pandas.read_csv``

    Returns:
        Loaded dataset
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {path}")

    train = pd.read_csv(path, **read_kwargs)
    test = None
    if test_path is not None:
        test_path = Path(test_path)
        if not test_path.exists():
            raise FileNotFoundError(f"Test file not found: {test_path}")
        test = pd.read_csv(test_path, **read_kwargs)

    dataset = Dataset(name=name or path.stem, train=train, test=test, target=target)
    logger.info(f"Loaded {len(train)} rows from {path}")
    return dataset
