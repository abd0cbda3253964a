"""Run environment: worker group, output directories and per-stage contexts.

Every stage receives an explicit :class:`StageContext` rather than reading a
process-wide environment, so the output location of a stage is a value that
can be passed to the builder and the writers.
"""
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from . import constants
from .errors import ConfigurationError
from .schema import EnvironmentSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessGroup:
    """Bulk-synchronous worker group.

    ``comm`` is an optional mpi4py-style communicator (``Get_rank``,
    ``Get_size``, ``allgather``, ``bcast``, ``barrier``).  Without one the run
    is serial and this process is the root.
    """

    comm: Any = None

    @property
    def rank(self) -> int:
        return 0 if self.comm is None else int(self.comm.Get_rank())

    @property
    def size(self) -> int:
        return 1 if self.comm is None else int(self.comm.Get_size())

    @property
    def is_root(self) -> bool:
        return self.rank == 0

    def all_agree(self, flag: bool) -> bool:
        """Reduce a control decision so every process takes the same branch."""

        if self.comm is None or self.size == 1:
            return bool(flag)
        return all(self.comm.allgather(bool(flag)))

    def broadcast(self, value: Any) -> Any:
        if self.comm is None or self.size == 1:
            return value
        return self.comm.bcast(value, root=0)

    def barrier(self) -> None:
        if self.comm is not None and self.size > 1:
            self.comm.barrier()


SERIAL = ProcessGroup()


def _timestamp(now: Optional[dt.datetime] = None) -> str:
    stamp = now or dt.datetime.now()
    return stamp.strftime("%Y-%m-%dT%H-%M-%S")


@dataclass(frozen=True)
class StageContext:
    """Output location and identity of one ladder stage."""

    stage_index: int
    title: str
    output_directory: Path
    group: ProcessGroup = field(default=SERIAL)

    def prepare(self) -> Path:
        if self.group.is_root:
            self.output_directory.mkdir(parents=True, exist_ok=True)
        self.group.barrier()
        return self.output_directory


@dataclass(frozen=True)
class RunEnvironment:
    """Base output directory shared by all stages of a run."""

    title: str
    output_directory: Path
    group: ProcessGroup = field(default=SERIAL)

    @classmethod
    def setup(
        cls,
        settings: EnvironmentSettings,
        input_path: Optional[Path] = None,
        group: ProcessGroup = SERIAL,
        *,
        now: Optional[dt.datetime] = None,
    ) -> "RunEnvironment":
        """Resolve the base output directory from the ``environment`` section."""

        title = settings.title or (Path(input_path).stem if input_path is not None else "flame")
        base = Path(settings.output_directory) if settings.output_directory is not None else Path.cwd() / f"_{title}"
        base = base.resolve()
        if settings.tag_directory:
            if not base.name:
                raise ConfigurationError(f"environment.outputDirectory {base} cannot be tagged; set tagDirectory: false")
            stamp = group.broadcast(_timestamp(now) if group.is_root else None)
            base = base.with_name(f"{base.name}_{stamp}")
        return cls(title=title, output_directory=base, group=group)

    @property
    def flames_directory(self) -> Path:
        return self.output_directory / constants.FLAMES_DIRECTORY

    def prepare(self) -> None:
        """Create the base and checkpoint directories on the root process."""

        if self.group.is_root:
            self.output_directory.mkdir(parents=True, exist_ok=True)
            self.flames_directory.mkdir(parents=True, exist_ok=True)
            logger.info("Output directory: %s", self.output_directory)
        self.group.barrier()

    def for_stage(self, stage_index: int) -> StageContext:
        title = f"{constants.FLAME_PREFIX}{stage_index}"
        return StageContext(
            stage_index=stage_index,
            title=title,
            output_directory=self.output_directory / title,
            group=self.group,
        )


__all__ = ["ProcessGroup", "SERIAL", "StageContext", "RunEnvironment"]
