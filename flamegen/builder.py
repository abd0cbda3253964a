"""Construct steppers from the declarative ``timestepper`` description.

Construction never raises for configuration problems; it returns either
``Ok(stepper)`` or ``Err(kind, message)`` so the caller decides how to abort.
"""
from __future__ import annotations

import enum
import functools
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, TextIO, Union

from pydantic import ValidationError

from . import constants
from .criteria import CRITERIA, build_criterion
from .engine import BoxMesh, BoxMeshBoundaryCells, FlameModel, TimeIntegrator, initial_profile
from .environment import StageContext
from .logs import make_log
from .schema import Config, DomainSpec, FieldBoundCheckSpec, TimeStepperSpec
from .stepper import SteadyStateStepper

logger = logging.getLogger(__name__)


class BuildErrorKind(str, enum.Enum):
    INVALID_CONFIGURATION = "invalid_configuration"
    UNKNOWN_TYPE = "unknown_type"
    WRONG_TYPE = "wrong_type"


@dataclass(frozen=True)
class Ok:
    value: Any


@dataclass(frozen=True)
class Err:
    kind: BuildErrorKind
    message: str


BuildResult = Union[Ok, Err]

STEPPER_TYPES: Dict[str, str] = {
    "SteadyStateStepper": "a time stepper designed to march to steady state",
    "TimeStepper": "a fixed-length time stepper (cannot drive a flame ladder)",
}

DOMAIN_TYPES: Dict[str, str] = {
    "BoxMeshBoundaryCells": "uniform 1D box mesh with Dirichlet ghost cells",
    "BoxMesh": "uniform 1D box mesh without boundary cells",
}


def build_domain(spec: DomainSpec) -> BuildResult:
    if spec.type not in DOMAIN_TYPES:
        return Err(BuildErrorKind.UNKNOWN_TYPE, f"Unknown domain type '{spec.type}'")
    if spec.type == "BoxMesh":
        return Ok(BoxMesh(faces=spec.faces, lower=spec.lower, upper=spec.upper, scale=spec.scale))
    return Ok(
        BoxMeshBoundaryCells(
            faces=spec.faces,
            lower=spec.lower,
            upper=spec.upper,
            scale=spec.scale,
            boundary_lower=spec.boundary.lower,
            boundary_upper=spec.boundary.upper,
        )
    )


def build_stepper(spec: TimeStepperSpec, context: StageContext) -> BuildResult:
    """Build a :class:`SteadyStateStepper` for one stage."""

    if spec.type not in STEPPER_TYPES:
        return Err(BuildErrorKind.UNKNOWN_TYPE, f"Unknown timestepper type '{spec.type}'")
    if spec.type != "SteadyStateStepper":
        return Err(BuildErrorKind.WRONG_TYPE, "The TimeStepper must be SteadyStateStepper")

    domain_result = build_domain(spec.domain)
    if isinstance(domain_result, Err):
        return domain_result
    domain = domain_result.value
    if not isinstance(domain, BoxMeshBoundaryCells):
        return Err(BuildErrorKind.WRONG_TYPE, "The Domain must be of type BoxMeshBoundaryCells")

    for criterion_spec in spec.criteria:
        if isinstance(criterion_spec, FieldBoundCheckSpec) and criterion_spec.field not in domain.fields:
            return Err(
                BuildErrorKind.INVALID_CONFIGURATION,
                f"FieldBoundCheck refers to unknown field '{criterion_spec.field}'",
            )
    criteria = [build_criterion(criterion_spec) for criterion_spec in spec.criteria]
    if not any(criterion.can_exhaust for criterion in criteria):
        logger.warning(
            "%s: no criterion can end the stage without convergence; capping at %d steps",
            context.title,
            spec.max_steps,
        )
        criteria.append(CRITERIA["MaxIterationsReached"](spec.max_steps))

    model = FlameModel(
        diffusivity=spec.model.diffusivity,
        pre_exponential=spec.model.pre_exponential,
        zeldovich_number=spec.model.zeldovich_number,
    )
    init = spec.initialization
    initializer = functools.partial(
        initial_profile,
        profile=init.profile,
        value=init.value,
        center=init.center,
        width=init.width,
    )
    integrator = TimeIntegrator(
        domain,
        model,
        dt=spec.arguments.dt,
        cfl=spec.arguments.cfl,
        initializer=initializer,
    )

    log = None
    if spec.log is not None and (spec.log.type != "file" or context.group.is_root):
        log = make_log(
            spec.log.type,
            directory=context.output_directory,
            name=spec.log.name,
            prefix=f"[{context.title}] ",
        )
    return Ok(
        SteadyStateStepper(
            integrator,
            criteria,
            steps_between_checks=spec.steps_between_checks,
            log=log,
            group=context.group,
        )
    )


def build_from_payload(payload: Mapping[str, Any], context: StageContext) -> BuildResult:
    """Validate a stage payload and build its stepper."""

    try:
        cfg = Config.model_validate(dict(payload))
    except ValidationError as exc:
        return Err(BuildErrorKind.INVALID_CONFIGURATION, str(exc))
    return build_stepper(cfg.timestepper, context)


def print_info(stream: TextIO) -> None:
    """Write the registered component types to ``stream``."""

    def _section(title: str, entries: Mapping[str, str]) -> None:
        stream.write(f"{title}:\n")
        for name, description in entries.items():
            stream.write(f"\t{name}: {description}\n")

    _section("TimeSteppers", STEPPER_TYPES)
    _section("Domains", DOMAIN_TYPES)
    _section("ConvergenceCriteria", {name: cls.description for name, cls in CRITERIA.items()})
    _section("Logs", {"stdout": "forward messages to the run log", "file": "write flame_<n>/convergence.log"})
    stream.write(f"Default steps between checks: {constants.DEFAULT_STEPS_BETWEEN_CHECKS}\n")


__all__ = [
    "BuildErrorKind",
    "Ok",
    "Err",
    "BuildResult",
    "STEPPER_TYPES",
    "DOMAIN_TYPES",
    "build_domain",
    "build_stepper",
    "build_from_payload",
    "print_info",
]
