"""
Dataset loading for the vignettes.

Includes:
- datasets: dragons / apartments example tables and CSV loading
"""

from .datasets import Dataset, available_datasets, load_csv, load_dataset, validate_frame

__all__ = [
    "Dataset",
    "available_datasets",
    "load_csv",
    "load_dataset",
    "validate_frame",
]
