"""Dataset and constraint file loading for HDBSCAN* runs."""

from .loaders import DatasetFormatError, load_constraints, load_dataset

__all__ = [
    "DatasetFormatError",
    "load_constraints",
    "load_dataset",
]
