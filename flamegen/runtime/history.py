"""Column-oriented histories recorded while a stage is stepped."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd
import pyarrow as pa


class ColumnarBuffer:
    """Append rows, keep columns.

    Columns are created on first sight and back-filled with ``None`` so every
    column always holds ``len(self)`` values.
    """

    def __init__(self, columns: Optional[Iterable[str]] = None) -> None:
        self._data: Dict[str, List[Any]] = {name: [] for name in columns or ()}
        self._size = 0

    @property
    def row_count(self) -> int:
        return self._size

    def __len__(self) -> int:
        return self._size

    def columns(self) -> List[str]:
        return list(self._data)

    def append_row(self, record: Mapping[str, Any]) -> None:
        for name in record:
            self._data.setdefault(name, [None] * self._size)
        for name, values in self._data.items():
            values.append(record.get(name))
        self._size += 1

    def column(self, name: str) -> List[Any]:
        return list(self._data.get(name, ()))

    def last(self) -> Optional[Dict[str, Any]]:
        if not self._size:
            return None
        return {name: values[-1] for name, values in self._data.items()}

    def clear(self) -> None:
        self._data = {name: [] for name in self._data}
        self._size = 0

    def to_table(self) -> pa.Table:
        return pa.Table.from_pydict({name: list(values) for name, values in self._data.items()})

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({name: list(values) for name, values in self._data.items()}, columns=list(self._data))


CONVERGENCE_COLUMNS = ("pass", "step", "ceiling", "residual_rms", "converged", "exhausted")


class ConvergenceHistory(ColumnarBuffer):
    """One row per burst-and-check pass of a stepper."""

    def __init__(self) -> None:
        super().__init__(CONVERGENCE_COLUMNS)

    def record(
        self,
        *,
        step: int,
        ceiling: int,
        residual_rms: float,
        converged: bool,
        exhausted: bool,
    ) -> None:
        self.append_row(
            {
                "pass": self.row_count + 1,
                "step": int(step),
                "ceiling": int(ceiling),
                "residual_rms": float(residual_rms),
                "converged": bool(converged),
                "exhausted": bool(exhausted),
            }
        )


__all__ = ["ColumnarBuffer", "ConvergenceHistory", "CONVERGENCE_COLUMNS"]
