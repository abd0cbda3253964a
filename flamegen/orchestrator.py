"""Continuation driver for flame ladders.

The driver solves a ladder of ``maxNumberFlames`` stages.  Stage *k* is built
from the base configuration with the scale key multiplied by
``scaleFactor**k`` (kept as a running product), starts from the solution of
stage *k-1*, is marched to steady state and checkpointed before stage *k+1*
is constructed.

Per-stage flow
--------------
```
payload(k) -> builder -> stepper.initialize()
           -> copy previous solution (layouts must match)
           -> stepper.solve()  (CONVERGED or EXHAUSTED)
           -> serializer.reset(); register components; serialize(FlameRecord)
           -> flame_<k>/summary.json, flame_<k>/series/convergence.parquet
           -> close stepper, keep solution for stage k+1
```
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd
from pydantic import ValidationError

from . import constants
from .builder import BuildErrorKind, BuildResult, Err, build_from_payload
from .config_utils import get_dotted, set_dotted
from .environment import RunEnvironment, StageContext
from .errors import ConfigurationError, FlameGenError, SolutionLayoutError, WrongTypeError
from .io import writer
from .io.checkpoint import FlameRecord, FlameSerializer, flame_filename
from .runtime import ProgressReporter, format_exception_short, log_stage
from .schema import Config, FlameGeneratorSettings
from .stepper import SteadyStateStepper

logger = logging.getLogger(__name__)

Builder = Callable[[Mapping[str, Any], StageContext], BuildResult]

_MISSING = object()


@dataclass(frozen=True)
class ContinuationStage:
    """One element of the ladder."""

    index: int
    scale: float
    overlay: Dict[str, Any]
    payload: Dict[str, Any] = field(repr=False)
    previous_solution: Optional[np.ndarray] = field(default=None, repr=False)


def iter_scales(count: int, factor: float) -> Iterator[Tuple[int, float]]:
    """Yield ``(index, cumulative scale)`` using a running product."""

    scale = 1.0
    for index in range(int(count)):
        yield index, scale
        scale *= factor


def scaled_value(base: Any, scale: float) -> Any:
    """Multiply a configuration scalar; integers stay integers."""

    if isinstance(base, bool) or not isinstance(base, (int, float)):
        raise ConfigurationError(f"scale key must refer to a number, found {base!r}")
    value = base * scale
    if isinstance(base, int):
        return int(round(value))
    return float(value)


def _validated_dump(payload: Mapping[str, Any]) -> Dict[str, Any]:
    try:
        return Config.model_validate(dict(payload)).model_dump(by_alias=True)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid configuration: {exc}") from exc


def base_value(base_payload: Mapping[str, Any], scale_key: str) -> Any:
    """Return the unscaled value of ``scale_key``; schema defaults fill gaps."""

    value = get_dotted(dict(base_payload), scale_key, None)
    if value is None:
        value = get_dotted(_validated_dump(base_payload), scale_key, None)
    if value is None:
        raise ConfigurationError(f"flameGenerator.scaleKey '{scale_key}' does not name a configuration value")
    return value


def stage_payload(base_payload: Mapping[str, Any], scale_key: str, scale: float) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Return ``(payload, overlay)`` for a stage with cumulative ``scale``."""

    payload = copy.deepcopy(dict(base_payload))
    value = scaled_value(base_value(payload, scale_key), scale)
    set_dotted(payload, scale_key, value)
    return payload, {scale_key: value}


def check_scale_key(base_payload: Mapping[str, Any], scale_key: str) -> None:
    """Ensure the scale key names a value of the validated configuration."""

    payload, _ = stage_payload(base_payload, scale_key, 1.0)
    if get_dotted(_validated_dump(payload), scale_key, _MISSING) is _MISSING:
        raise ConfigurationError(f"flameGenerator.scaleKey '{scale_key}' does not name a configuration value")


def transfer_solution(previous: np.ndarray, stepper: SteadyStateStepper) -> None:
    """Copy the previous stage's solution into ``stepper`` element for element."""

    source = np.asarray(previous)
    target = stepper.solution
    if source.shape != target.shape:
        raise SolutionLayoutError(
            f"solution layout mismatch between stages: previous {source.shape}, new {target.shape}"
        )
    np.copyto(target, source)


class ContinuationDriver:
    """Run the flame ladder stage by stage."""

    def __init__(
        self,
        base_payload: Mapping[str, Any],
        settings: FlameGeneratorSettings,
        environment: RunEnvironment,
        *,
        builder: Builder = build_from_payload,
        serializer: Optional[FlameSerializer] = None,
        progress: Optional[ProgressReporter] = None,
    ) -> None:
        self.base_payload = copy.deepcopy(dict(base_payload))
        self.settings = settings
        self.environment = environment
        self.builder = builder
        self.serializer = serializer or FlameSerializer(environment.flames_directory, environment.group)
        self.progress = progress or ProgressReporter(settings.max_number_flames, enabled=False)
        self._previous: Optional[np.ndarray] = None
        check_scale_key(self.base_payload, settings.scale_key)

    def stages(self) -> Iterator[ContinuationStage]:
        """Yield stages lazily; each picks up the solution left by its predecessor."""

        for index, scale in iter_scales(self.settings.max_number_flames, self.settings.scale_factor):
            payload, overlay = stage_payload(self.base_payload, self.settings.scale_key, scale)
            previous, self._previous = self._previous, None
            yield ContinuationStage(
                index=index,
                scale=scale,
                overlay=overlay,
                payload=payload,
                previous_solution=previous,
            )

    def run(self) -> List[FlameRecord]:
        records: List[FlameRecord] = []
        for stage in self.stages():
            try:
                record = self.run_stage(stage)
            except FlameGenError as exc:
                logger.error("flame %d aborted: %s", stage.index, format_exception_short(exc))
                raise
            records.append(record)
            self._previous = record.solution
        self._write_ladder_summary(records)
        return records

    def _construct(self, stage: ContinuationStage, context: StageContext) -> SteadyStateStepper:
        result = self.builder(stage.payload, context)
        if isinstance(result, Err):
            error = WrongTypeError if result.kind is BuildErrorKind.WRONG_TYPE else ConfigurationError
            raise error(f"flame {stage.index}: {result.message}")
        return result.value

    def run_stage(self, stage: ContinuationStage) -> FlameRecord:
        context = self.environment.for_stage(stage.index)
        logger.info("Starting flame %d", stage.index)
        log_stage(logger, "construct", stage=stage.index, scale=f"{stage.scale:.6g}")
        context.prepare()
        stepper = self._construct(stage, context)
        try:
            stepper.initialize()
            if stage.previous_solution is not None:
                transfer_solution(stage.previous_solution, stepper)
            status = stepper.solve()

            logger.info("\tWriting results for flame %d", stage.index)
            record = FlameRecord.create(
                stage.index,
                stepper.solution,
                scale=stage.scale,
                status=status.value,
                steps=stepper.state.step,
            )
            self.serializer.reset()
            stepper.register_serializable_components(self.serializer)
            self.serializer.serialize(record)
            self._write_stage_output(stage, context, stepper, record)
        finally:
            stepper.close()
        self.progress.update(stage.index, stage.scale, record.status)
        return record

    def _write_stage_output(
        self,
        stage: ContinuationStage,
        context: StageContext,
        stepper: SteadyStateStepper,
        record: FlameRecord,
    ) -> None:
        if not context.group.is_root:
            return
        writer.write_parquet(stepper.history.to_frame(), context.output_directory / constants.CONVERGENCE_SERIES)
        last = stepper.history.last() or {}
        writer.write_summary(
            {
                "stage": stage.index,
                "time": record.time,
                "scale": stage.scale,
                "overlay": stage.overlay,
                "status": record.status,
                "steps": record.steps,
                "passes": len(stepper.history),
                "ceiling": stepper.state.ceiling,
                "residual_rms": last.get("residual_rms"),
                "checkpoint": flame_filename(stage.index),
            },
            context.output_directory / constants.SUMMARY_FILE,
        )

    def _write_ladder_summary(self, records: List[FlameRecord]) -> None:
        if not self.environment.group.is_root:
            return
        frame = pd.DataFrame(
            [
                {
                    "stage": record.stage_index,
                    "time": record.time,
                    "scale": record.scale,
                    "status": record.status,
                    "steps": record.steps,
                    "checkpoint": flame_filename(record.stage_index),
                }
                for record in records
            ],
            columns=["stage", "time", "scale", "status", "steps", "checkpoint"],
        )
        base = self.environment.output_directory
        writer.write_parquet(frame, base / constants.LADDER_FILE)
        writer.write_summary(
            {
                "version": constants.VERSION,
                "flames": len(records),
                "converged": int((frame["status"] == "converged").sum()),
                "exhausted": int((frame["status"] == "exhausted").sum()),
                "scale_factor": self.settings.scale_factor,
                "scale_key": self.settings.scale_key,
                "final_scale": records[-1].scale if records else None,
            },
            base / constants.SUMMARY_FILE,
        )
        log_stage(logger, "ladder_complete", flames=len(records))


__all__ = [
    "ContinuationStage",
    "ContinuationDriver",
    "FlameRecord",
    "iter_scales",
    "scaled_value",
    "base_value",
    "stage_payload",
    "check_scale_key",
    "transfer_solution",
]
