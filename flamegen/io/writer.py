"""Output helper utilities.

Thin wrappers around :mod:`pandas`, :mod:`pyarrow` and :mod:`ruamel.yaml`
used to persist run artefacts: Parquet for tables, JSON for summaries and
YAML for the copy of the resolved input.  All functions create destination
directories when necessary.
"""
from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Mapping

import numpy as np
import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq
from ruamel.yaml import YAML


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_parquet(df: pd.DataFrame, path: Path, *, compression: str = "snappy") -> None:
    """Write a DataFrame to a Parquet file using ``pyarrow``."""

    _ensure_parent(path)
    table = pa.Table.from_pandas(df, preserve_index=False)
    pq.write_table(table, path, compression=compression)


def write_table(table: pa.Table, path: Path, *, metadata: Mapping[str, Any] | None = None) -> None:
    """Write an Arrow table, attaching string metadata to its schema."""

    _ensure_parent(path)
    if metadata:
        merged = dict(table.schema.metadata or {})
        merged.update({str(key).encode(): str(value).encode() for key, value in metadata.items()})
        table = table.replace_schema_metadata(merged)
    pq.write_table(table, path)


def _json_default(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, Path):
        return str(value)
    if hasattr(value, "value"):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serialisable")


def _sanitize(value: Any) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, Mapping):
        return {key: _sanitize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize(item) for item in value]
    return value


def write_summary(summary: Mapping[str, Any], path: Path) -> None:
    """Write a JSON summary; non-finite floats become ``null``."""

    _ensure_parent(path)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(_sanitize(summary), fh, indent=2, sort_keys=True, default=_json_default)


def write_yaml(payload: Mapping[str, Any], path: Path) -> None:
    """Dump a configuration mapping as YAML."""

    _ensure_parent(path)
    yaml = YAML()
    yaml.default_flow_style = False
    with path.open("w", encoding="utf-8") as fh:
        yaml.dump(_plain(payload), fh)


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    if isinstance(value, Path):
        return str(value)
    return value


__all__ = ["write_parquet", "write_table", "write_summary", "write_yaml"]
