"""Distance functions used to build the input distance matrix."""

from __future__ import annotations

from typing import Callable, Literal, Mapping

import numpy as np
import pandas as pd

from .errors import PreconditionViolationError


DistanceMetric = Literal["euclidean", "manhattan", "supremum", "cosine", "pearson"]
DistanceFunction = Callable[[np.ndarray, int], np.ndarray]


def _euclidean(data: np.ndarray, point_index: int) -> np.ndarray:
    return np.linalg.norm(data - data[point_index], axis=1)


def _manhattan(data: np.ndarray, point_index: int) -> np.ndarray:
    return np.abs(data - data[point_index]).sum(axis=1)


def _supremum(data: np.ndarray, point_index: int) -> np.ndarray:
    return np.abs(data - data[point_index]).max(axis=1)


def _cosine(data: np.ndarray, point_index: int) -> np.ndarray:
    reference = data[point_index]
    norms = np.linalg.norm(data, axis=1) * np.linalg.norm(reference)
    dots = data @ reference
    with np.errstate(invalid="ignore", divide="ignore"):
        similarity = np.where(norms > 0, dots / norms, 0.0)
    return 1.0 - similarity


def _pearson(data: np.ndarray, point_index: int) -> np.ndarray:
    centred = data - data.mean(axis=1, keepdims=True)
    return _cosine(centred, point_index)


DISTANCE_FUNCTIONS: Mapping[str, DistanceFunction] = {
    "euclidean": _euclidean,
    "manhattan": _manhattan,
    "supremum": _supremum,
    "cosine": _cosine,
    "pearson": _pearson,
}


def calculate_distance_matrix(
    data: np.ndarray | pd.DataFrame,
    metric: DistanceMetric | str = "euclidean",
) -> np.ndarray:
    """Return the symmetric pairwise distance matrix of ``data`` (one row per point)."""

    distance_function = DISTANCE_FUNCTIONS.get(metric)
    if distance_function is None:
        raise PreconditionViolationError(
            f"Unsupported distance metric '{metric}'; expected one of: "
            + ", ".join(sorted(DISTANCE_FUNCTIONS))
        )

    if isinstance(data, pd.DataFrame):
        values = data.to_numpy(dtype=float, copy=True)
    else:
        values = np.asarray(data, dtype=float)

    if values.ndim != 2:
        raise PreconditionViolationError(
            f"Data must be a two-dimensional array of points; received {values.ndim} dimensions"
        )
    if np.isnan(values).any():
        raise PreconditionViolationError("Data contains missing values")

    num_points = values.shape[0]
    distances = np.zeros((num_points, num_points), dtype=float)
    for point_index in range(num_points):
        distances[point_index] = distance_function(values, point_index)

    # Row-wise evaluation can leave rounding asymmetries.
    distances = np.maximum(distances, distances.T)
    np.fill_diagonal(distances, 0.0)
    return np.clip(distances, 0.0, None)


__all__ = [
    "DISTANCE_FUNCTIONS",
    "DistanceMetric",
    "calculate_distance_matrix",
]
