from __future__ import annotations

import numpy as np
import pytest


def line_distances(positions: list[float]) -> np.ndarray:
    coords = np.asarray(positions, dtype=float)
    return np.abs(coords[:, None] - coords[None, :])


@pytest.fixture
def two_groups() -> np.ndarray:
    """Six points on a line forming two groups of three."""

    return line_distances([0, 1, 2, 10, 11, 12])


@pytest.fixture
def two_groups_with_outliers() -> np.ndarray:
    """The two groups plus outliers at 40 and 80."""

    return line_distances([0, 1, 2, 10, 11, 12, 40, 80])


@pytest.fixture
def two_grids() -> np.ndarray:
    """Two 3x3 unit grids, far apart (points 0-8 and 9-17)."""

    grid = np.array([(x, y) for x in range(3) for y in range(3)], dtype=float)
    return np.vstack([grid, grid + 100.0])
