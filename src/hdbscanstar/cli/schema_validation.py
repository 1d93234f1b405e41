"""Utilities for validating HDBSCAN* result tables against JSON schemas."""

from __future__ import annotations

import json
import math
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Mapping, MutableMapping

import numpy as np
import pandas as pd
import jsonschema


SCHEMA_VERSION = "v1"
_SCHEMA_FILENAMES: Mapping[str, str] = {
    "tree": "tree.schema.json",
    "outlier_scores": "outlier_score.schema.json",
    "partition": "partition.schema.json",
}


class SchemaValidationError(RuntimeError):
    """Raised when a record fails validation against a JSON schema."""

    def __init__(self, schema: str, index: int, message: str) -> None:
        detail = f"{schema} record {index} failed validation: {message}"
        super().__init__(detail)
        self.schema = schema
        self.index = index
        self.message = message


class SchemaValidator:
    """Validate result tables using the bundled JSON schemas."""

    def __init__(self, *, schema_version: str = SCHEMA_VERSION) -> None:
        self.schema_version = schema_version

    def validate_frame(self, schema: str, frame: pd.DataFrame | None) -> None:
        if frame is None or frame.empty:
            return
        self.validate_records(schema, _normalise_frame(frame))

    def validate_records(
        self,
        schema: str,
        records: Iterable[Mapping[str, object]],
    ) -> None:
        validator = _load_validator(schema, schema_version=self.schema_version)
        for index, record in enumerate(records):
            try:
                validator.validate(record)
            except jsonschema.ValidationError as exc:
                message = exc.message
                if exc.path:
                    path = ".".join(str(part) for part in exc.path)
                    message = f"{message} (path: {path})"
                raise SchemaValidationError(schema, index, message) from exc


@lru_cache(maxsize=None)
def _load_validator(schema: str, *, schema_version: str) -> jsonschema.Validator:
    filename = _SCHEMA_FILENAMES.get(schema)
    if filename is None:
        raise ValueError(f"Unknown schema type '{schema}'")

    schema_path = _schema_directory(schema_version) / filename
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema file '{schema_path}' was not found")

    with schema_path.open(encoding="utf-8") as handle:
        payload = json.load(handle)

    return jsonschema.Draft202012Validator(payload)


@lru_cache(maxsize=None)
def _schema_directory(schema_version: str) -> Path:
    current = Path(__file__).resolve()
    for parent in current.parents:
        candidate = parent / "schemas" / schema_version
        if candidate.exists():
            return candidate
    raise FileNotFoundError(
        f"Could not locate schema directory for version '{schema_version}' starting from '{current}'"
    )


def _normalise_frame(frame: pd.DataFrame) -> list[MutableMapping[str, object]]:
    records = frame.astype(object).where(frame.notna(), None).to_dict(orient="records")
    return [{str(key): _coerce_value(value) for key, value in record.items()} for record in records]


def _coerce_value(value: object) -> object:
    if isinstance(value, np.generic):
        value = value.item()

    if value is None:
        return None

    if isinstance(value, float) and math.isnan(value):
        return None

    return value


__all__ = [
    "SCHEMA_VERSION",
    "SchemaValidationError",
    "SchemaValidator",
]
