"""
Shared fixtures: small synthetic tables shaped like the example datasets.
"""

import pytest
import pandas as pd
import numpy as np
import matplotlib

matplotlib.use("Agg")

from xaiv.data.datasets import Dataset
from xaiv.utils.config import VignetteConfig


def make_apartments(n_samples: int = 240, seed: int = 42) -> pd.DataFrame:
    """Apartments-like table: numeric features, one categorical, m2_price target."""
    rng = np.random.RandomState(seed)
    districts = np.array(['Srodmiescie', 'Mokotow', 'Wola', 'Ursus'])
    district = districts[rng.randint(0, len(districts), n_samples)]
    surface = rng.uniform(20, 150, n_samples)
    construction_year = rng.randint(1920, 2011, n_samples)
    floor = rng.randint(1, 11, n_samples)
    no_rooms = np.clip((surface / 30).astype(int) + rng.randint(0, 2, n_samples), 1, 6)

    district_effect = pd.Series(district).map(
        {'Srodmiescie': 1500.0, 'Mokotow': 600.0, 'Wola': 300.0, 'Ursus': 0.0}
    ).values
    m2_price = (
        5000
        + district_effect
        - 10 * surface
        - 100 * floor
        + 5 * np.abs(construction_year - 1965)
        + rng.normal(0, 100, n_samples)
    )

    return pd.DataFrame({
        'm2_price': m2_price,
        'construction_year': construction_year,
        'surface': surface,
        'floor': floor,
        'no_rooms': no_rooms,
        'district': district,
    })


def make_dragons(n_samples: int = 240, seed: int = 7) -> pd.DataFrame:
    """Dragons-like table with a life_length target."""
    rng = np.random.RandomState(seed)
    colours = np.array(['red', 'black', 'blue', 'green'])
    height = rng.uniform(50, 120, n_samples)
    weight = height * rng.uniform(0.8, 1.2, n_samples)
    scars = rng.randint(0, 30, n_samples)
    lost_teeth = rng.randint(0, 40, n_samples)
    colour = colours[rng.randint(0, len(colours), n_samples)]

    life_length = (
        1000
        + 8 * height
        - 20 * scars
        - 5 * lost_teeth
        + np.where(colour == 'black', 300.0, 0.0)
        + rng.normal(0, 40, n_samples)
    )

    return pd.DataFrame({
        'year_of_birth': rng.randint(-2000, 1800, n_samples),
        'height': height,
        'weight': weight,
        'scars': scars,
        'colour': colour,
        'year_of_discovery': rng.randint(1700, 1900, n_samples),
        'number_of_lost_teeth': lost_teeth,
        'life_length': life_length,
    })


@pytest.fixture
def apartments_frame():
    return make_apartments()


@pytest.fixture
def dragons_frame():
    return make_dragons()


@pytest.fixture
def apartments_dataset():
    return Dataset(
        name='apartments',
        train=make_apartments(240, seed=1),
        test=make_apartments(80, seed=2),
        target='m2_price',
        description='Synthetic apartments.',
    )


@pytest.fixture
def dragons_dataset():
    return Dataset(
        name='dragons',
        train=make_dragons(240, seed=3),
        test=make_dragons(80, seed=4),
        target='life_length',
        description='Synthetic dragons.',
    )


@pytest.fixture
def fast_config(tmp_path):
    """Tiny budgets so vignettes run in seconds."""
    return VignetteConfig(
        output_dir=str(tmp_path / 'reports'),
        max_runtime_secs=60.0,
        max_models=3,
        nfolds=3,
        folds=3,
        permutation_rounds=2,
        sample_size=60,
        grid_points=11,
    )
