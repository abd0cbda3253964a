"""Checkpoint records and the per-ladder flame serializer.

Each stage is written to ``flames/flame_<k>.parquet`` with one column per
registered component field; the stage index, nominal time and scale travel in
the Parquet schema metadata.  ``flames/flames.json`` indexes all stages of the
run.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

import numpy as np
import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from .. import constants
from ..environment import SERIAL, ProcessGroup
from . import writer

logger = logging.getLogger(__name__)


class SerializableComponent(Protocol):
    serialize_id: str

    def columns(self) -> Dict[str, np.ndarray]: ...


@dataclass(frozen=True, eq=False)
class FlameRecord:
    """Immutable checkpoint unit of one ladder stage."""

    stage_index: int
    time: float
    solution: np.ndarray
    scale: float = 1.0
    status: str = ""
    steps: int = 0

    @classmethod
    def create(
        cls,
        stage_index: int,
        solution: np.ndarray,
        *,
        scale: float = 1.0,
        status: str = "",
        steps: int = 0,
    ) -> "FlameRecord":
        """Copy ``solution`` into a read-only snapshot; time equals the stage index."""

        snapshot = np.array(solution, dtype=float, copy=True)
        snapshot.setflags(write=False)
        return cls(
            stage_index=int(stage_index),
            time=float(stage_index),
            solution=snapshot,
            scale=float(scale),
            status=str(status),
            steps=int(steps),
        )

    def metadata(self) -> Dict[str, Any]:
        return {
            "stage": self.stage_index,
            "time": self.time,
            "scale": self.scale,
            "status": self.status,
            "steps": self.steps,
        }


def flame_filename(stage_index: int) -> str:
    return f"{constants.FLAME_PREFIX}{stage_index}.parquet"


class FlameSerializer:
    """Write one checkpoint per stage into a shared directory.

    Components are registered per stage; :meth:`reset` must be called before a
    new stage registers its own so nothing carries over between stages.
    """

    def __init__(self, directory: Path, group: ProcessGroup = SERIAL) -> None:
        self.directory = Path(directory)
        self.group = group
        self._components: List[SerializableComponent] = []
        self._index: List[Dict[str, Any]] = []

    @property
    def components(self) -> Tuple[SerializableComponent, ...]:
        return tuple(self._components)

    @property
    def index(self) -> List[Dict[str, Any]]:
        return [dict(entry) for entry in self._index]

    def reset(self) -> None:
        self._components.clear()

    def register(self, component: SerializableComponent) -> None:
        if any(existing.serialize_id == component.serialize_id for existing in self._components):
            raise ValueError(f"component '{component.serialize_id}' is already registered")
        self._components.append(component)

    def _columns(self, record: FlameRecord) -> Dict[str, np.ndarray]:
        columns: Dict[str, np.ndarray] = {}
        for component in self._components:
            for name, values in component.columns().items():
                key = name if name not in columns else f"{component.serialize_id}.{name}"
                columns[key] = np.asarray(values)
        if not columns:
            columns["solution"] = np.asarray(record.solution)
        return columns

    def serialize(self, record: FlameRecord) -> Path:
        """Write ``record`` and update the checkpoint index."""

        path = self.directory / flame_filename(record.stage_index)
        columns = self._columns(record)
        entry = dict(record.metadata())
        entry["file"] = path.name
        entry["components"] = [component.serialize_id for component in self._components]
        if self.group.is_root:
            table = pa.Table.from_pydict(columns)
            writer.write_table(table, path, metadata=record.metadata())
            self._index = [item for item in self._index if item["stage"] != record.stage_index]
            self._index.append(entry)
            self._index.sort(key=lambda item: item["stage"])
            writer.write_summary({"flames": self._index}, self.directory / constants.CHECKPOINT_INDEX)
            logger.debug("checkpoint written: %s (%d columns)", path, len(columns))
        self.group.barrier()
        return path


def read_flame(path: Path) -> Tuple[pd.DataFrame, Dict[str, str]]:
    """Load a checkpoint table and its metadata."""

    table = pq.read_table(Path(path))
    raw = table.schema.metadata or {}
    metadata = {
        key.decode(): value.decode()
        for key, value in raw.items()
        if not key.startswith(b"pandas") and not key.startswith(b"ARROW")
    }
    return table.to_pandas(), metadata


def load_index(directory: Path) -> List[Dict[str, Any]]:
    """Return the checkpoint index entries, or an empty list when absent."""

    path = Path(directory) / constants.CHECKPOINT_INDEX
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8") as fh:
        payload = json.load(fh)
    return list(payload.get("flames", []))


def find_latest_flame(directory: Path) -> Optional[Path]:
    """Return the checkpoint with the highest stage index, if any."""

    entries = load_index(directory)
    if not entries:
        return None
    latest = max(entries, key=lambda item: item["stage"])
    return Path(directory) / latest["file"]


__all__ = [
    "SerializableComponent",
    "FlameRecord",
    "FlameSerializer",
    "flame_filename",
    "read_flame",
    "load_index",
    "find_latest_flame",
]
