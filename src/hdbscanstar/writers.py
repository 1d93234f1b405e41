"""Output writers for HDBSCAN* result tables."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal, Mapping, Union

import pandas as pd

from .runner import HdbscanResult


PathLike = Union[str, Path]
"""Supported path-like inputs accepted by the writers."""

TableFormat = Literal["csv", "jsonl", "parquet"]

TABLE_SUFFIXES: Mapping[str, str] = {
    "csv": ".csv",
    "jsonl": ".jsonl",
    "parquet": ".parquet",
}

RESULT_TABLES = ("hierarchy", "tree", "partition", "outlier_scores")
"""Tables written for every run, in write order."""


def result_path(output_dir: PathLike, basename: str, table: str, fmt: TableFormat = "csv") -> Path:
    """Return the path of ``table`` for a run named ``basename``."""

    suffix = TABLE_SUFFIXES.get(fmt)
    if suffix is None:
        raise ValueError(
            f"Unsupported table format '{fmt}'; expected one of: {', '.join(TABLE_SUFFIXES)}"
        )
    return Path(output_dir) / f"{basename}_{table}{suffix}"


def write_table(frame: pd.DataFrame, target: PathLike) -> Path:
    """Persist ``frame`` as CSV, JSON lines or Parquet depending on the suffix."""

    path = Path(target).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)

    suffix = path.suffix.lower()
    if suffix in {".json", ".jsonl", ".ndjson"}:
        frame.to_json(path, orient="records", lines=True)
    elif suffix == ".parquet":
        frame.to_parquet(path, index=False)
    else:
        frame.to_csv(path, index=False)
    return path


def write_json(payload: Mapping[str, Any], target: PathLike) -> Path:
    """Serialize ``payload`` to an indented JSON file."""

    path = Path(target).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, sort_keys=True)
        handle.write("\n")
    return path


def result_frames(result: HdbscanResult) -> dict[str, pd.DataFrame]:
    return {
        "hierarchy": result.hierarchy_frame(),
        "tree": result.tree_frame(),
        "partition": result.partition_frame(),
        "outlier_scores": result.outlier_frame(),
    }


def write_results(
    result: HdbscanResult,
    output_dir: PathLike,
    *,
    basename: str = "hdbscan",
    fmt: TableFormat = "csv",
    frames: Mapping[str, pd.DataFrame] | None = None,
) -> dict[str, Path]:
    """Write every result table plus a ``<basename>_summary.json`` metrics file.

    Returns the written paths keyed by table name (``summary`` for the
    metrics file).
    """

    frames = dict(frames) if frames is not None else result_frames(result)
    written: dict[str, Path] = {}
    for table in RESULT_TABLES:
        written[table] = write_table(frames[table], result_path(output_dir, basename, table, fmt))

    written["summary"] = write_json(
        result.metrics, Path(output_dir) / f"{basename}_summary.json"
    )
    return written


__all__ = [
    "PathLike",
    "RESULT_TABLES",
    "TABLE_SUFFIXES",
    "TableFormat",
    "result_frames",
    "result_path",
    "write_json",
    "write_results",
    "write_table",
]
