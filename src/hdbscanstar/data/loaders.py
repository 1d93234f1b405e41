"""Utilities for loading datasets and constraint files."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd

from ..constraints import ConstraintType, HdbscanConstraint

__all__ = [
    "DatasetFormatError",
    "load_constraints",
    "load_dataset",
]

CONSTRAINT_COLUMNS = ("point_a", "point_b", "type")


class DatasetFormatError(ValueError):
    """Raised when a dataset or constraint file cannot be interpreted."""

    def __init__(self, path: Path, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path


def load_dataset(path: str | Path) -> np.ndarray:
    """Load numeric points (one row per point) from CSV or JSON.

    CSV files may omit the header row; every column must be numeric.
    """

    path = Path(path)
    frame = _read_structured_file(path)
    if frame.empty:
        raise DatasetFormatError(path, "dataset contains no points")

    try:
        values = frame.apply(pd.to_numeric, errors="raise").to_numpy(dtype=float)
    except (TypeError, ValueError) as exc:
        raise DatasetFormatError(path, f"dataset contains non-numeric values ({exc})") from exc

    if np.isnan(values).any():
        raise DatasetFormatError(path, "dataset contains missing values or ragged rows")
    return values


def load_constraints(path: str | Path) -> list[HdbscanConstraint]:
    """Load ``point_a,point_b,type`` constraint rows (``type`` is ``ml`` or ``cl``)."""

    path = Path(path)
    frame = _read_structured_file(path, header_token=CONSTRAINT_COLUMNS[0])
    if frame.empty:
        return []
    if frame.shape[1] != len(CONSTRAINT_COLUMNS):
        raise DatasetFormatError(
            path,
            f"constraint rows must have {len(CONSTRAINT_COLUMNS)} fields "
            f"({', '.join(CONSTRAINT_COLUMNS)}); found {frame.shape[1]}",
        )
    if set(map(str, frame.columns)) == set(CONSTRAINT_COLUMNS):
        frame = frame[list(CONSTRAINT_COLUMNS)]
    frame.columns = list(CONSTRAINT_COLUMNS)

    constraints: list[HdbscanConstraint] = []
    for index, row in enumerate(frame.itertuples(index=False)):
        try:
            point_a = _as_point_index(row.point_a)
            point_b = _as_point_index(row.point_b)
            constraint_type = ConstraintType.parse(row.type)
        except ValueError as exc:
            raise DatasetFormatError(path, f"invalid constraint at row {index}: {exc}") from exc
        constraints.append(HdbscanConstraint(point_a, point_b, constraint_type))
    return constraints


def _as_point_index(value: object) -> int:
    number = float(str(value).strip())
    if not number.is_integer():
        raise ValueError(f"point index '{value}' is not an integer")
    return int(number)


def _read_structured_file(path: Path, *, header_token: str | None = None) -> pd.DataFrame:
    suffix = path.suffix.lower()
    if suffix in {".csv", ".txt", ""}:
        return _read_csv(path, header_token=header_token)
    if suffix in {".json", ".jsonl", ".ndjson"}:
        return _read_json(path)
    raise DatasetFormatError(path, f"unsupported file type '{suffix}'")


def _read_csv(path: Path, *, header_token: str | None) -> pd.DataFrame:
    raw = path.read_text(encoding="utf-8").strip()
    if not raw:
        return pd.DataFrame()
    first_field = raw.splitlines()[0].split(",")[0].strip()
    if header_token is not None:
        has_header = first_field.lower() == header_token
    else:
        has_header = not _looks_numeric(first_field)
    return pd.read_csv(path, header=0 if has_header else None, dtype=str, skipinitialspace=True)


def _looks_numeric(token: str) -> bool:
    try:
        float(token)
    except ValueError:
        return False
    return True


def _read_json(path: Path) -> pd.DataFrame:
    raw = path.read_text(encoding="utf-8").strip()
    if not raw:
        return pd.DataFrame()
    if raw[0] == "{":
        return pd.read_json(path, lines=True)
    return pd.read_json(path)
