"""Configuration schema for flame continuation runs.

This module defines Pydantic models that mirror the structure of the YAML
input files consumed by :mod:`flamegen.run`.  Keys follow the camelCase
spelling used in the input files; the models expose snake_case attributes
and accept either spelling.
"""
from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from . import constants
from .errors import ConfigurationError


class _Section(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class FlameGeneratorSettings(_Section):
    """Ladder controls read from the ``flameGenerator`` section."""

    max_number_flames: int = Field(
        constants.DEFAULT_MAX_FLAMES,
        alias="maxNumberFlames",
        ge=0,
        description="Number of stages in the continuation ladder.",
    )
    scale_factor: float = Field(
        constants.DEFAULT_SCALE_FACTOR,
        alias="scaleFactor",
        description="Multiplicative factor applied to the scale key between stages.",
    )
    scale_key: str = Field(
        constants.DEFAULT_SCALE_KEY,
        alias="scaleKey",
        description="Dotted configuration path scaled at every stage.",
    )

    @field_validator("scale_factor")
    def _validate_scale_factor(cls, value: float) -> float:
        if not value > 0.0:
            raise ConfigurationError("flameGenerator.scaleFactor must be positive")
        return value

    @field_validator("scale_key")
    def _validate_scale_key(cls, value: str) -> str:
        parts = [segment for segment in value.split(".") if segment]
        if not parts:
            raise ConfigurationError("flameGenerator.scaleKey must be a dotted path")
        return ".".join(parts)


class EnvironmentSettings(_Section):
    """Output directory policy."""

    title: Optional[str] = Field(None, description="Run title; defaults to the input file stem.")
    output_directory: Optional[Path] = Field(
        None,
        alias="outputDirectory",
        description="Base output directory; defaults to ./_<title>.",
    )
    tag_directory: bool = Field(
        True,
        alias="tagDirectory",
        description="Append a timestamp to the base output directory.",
    )


class BoundaryValues(_Section):
    lower: float = 0.0
    upper: float = 1.0


class DomainSpec(_Section):
    """Uniform one-dimensional box mesh."""

    type: str = "BoxMeshBoundaryCells"
    faces: int = Field(64, ge=2, description="Number of cells along the box.")
    lower: float = 0.0
    upper: float = 1.0
    scale: float = Field(1.0, gt=0.0, description="Length multiplier applied to [lower, upper].")
    boundary: BoundaryValues = Field(default_factory=BoundaryValues)

    @model_validator(mode="after")
    def _check_extent(self) -> "DomainSpec":
        if self.upper <= self.lower:
            raise ConfigurationError(
                f"timestepper.domain.upper ({self.upper}) must exceed lower ({self.lower})"
            )
        return self


class FlameModelSpec(_Section):
    """Reaction-diffusion flame coefficients (nondimensional)."""

    diffusivity: float = Field(1.0, gt=0.0)
    pre_exponential: float = Field(10.0, alias="preExponential", ge=0.0)
    zeldovich_number: float = Field(2.0, alias="zeldovichNumber", ge=0.0)


class SteppingArguments(_Section):
    dt: Optional[float] = Field(None, gt=0.0, description="Fixed step size; derived from cfl when omitted.")
    cfl: float = Field(constants.DEFAULT_CFL, gt=0.0, description="dt = cfl * dx^2 / diffusivity.")


class InitializationSpec(_Section):
    profile: Literal["linear", "constant", "tanh"] = "linear"
    value: float = 0.0
    center: float = Field(0.5, description="Front position as a fraction of the domain length.")
    width: float = Field(0.05, gt=0.0, description="Front width as a fraction of the domain length.")


class ResidualBelowThresholdSpec(_Section):
    type: Literal["ResidualBelowThreshold"]
    tolerance: float = Field(..., gt=0.0)
    norm: Literal["rms", "l2", "linf"] = "rms"


class FieldBoundCheckSpec(_Section):
    type: Literal["FieldBoundCheck"]
    field: str = "temperature"
    lower: Optional[float] = None
    upper: Optional[float] = None

    @model_validator(mode="after")
    def _check_bounds(self) -> "FieldBoundCheckSpec":
        if self.lower is not None and self.upper is not None and self.lower > self.upper:
            raise ConfigurationError("FieldBoundCheck.lower must not exceed upper")
        return self


class MaxIterationsReachedSpec(_Section):
    type: Literal["MaxIterationsReached"]
    max_steps: int = Field(..., alias="maxSteps", gt=0)


CriterionSpec = Annotated[
    Union[ResidualBelowThresholdSpec, FieldBoundCheckSpec, MaxIterationsReachedSpec],
    Field(discriminator="type"),
]


class LogSpec(_Section):
    type: Literal["stdout", "file"] = "stdout"
    name: str = "convergence.log"


class TimeStepperSpec(_Section):
    """Declarative description of the stepper, its domain and criteria."""

    type: str = "SteadyStateStepper"
    steps_between_checks: int = Field(
        constants.DEFAULT_STEPS_BETWEEN_CHECKS,
        alias="stepsBetweenChecks",
        gt=0,
        description="Burst size: steps integrated between convergence checks.",
    )
    max_steps: int = Field(
        constants.DEFAULT_MAX_STEPS,
        alias="maxSteps",
        gt=0,
        description="Step cap added when no criterion can end a stage on its own.",
    )
    domain: DomainSpec = Field(default_factory=DomainSpec)
    model: FlameModelSpec = Field(default_factory=FlameModelSpec)
    arguments: SteppingArguments = Field(default_factory=SteppingArguments)
    initialization: InitializationSpec = Field(default_factory=InitializationSpec)
    criteria: List[CriterionSpec] = Field(default_factory=list)
    log: Optional[LogSpec] = Field(default_factory=LogSpec)


class Config(_Section):
    """Top-level configuration object."""

    flame_generator: FlameGeneratorSettings = Field(
        default_factory=FlameGeneratorSettings, alias="flameGenerator"
    )
    environment: EnvironmentSettings = Field(default_factory=EnvironmentSettings)
    timestepper: TimeStepperSpec = Field(default_factory=TimeStepperSpec)

    @model_validator(mode="before")
    def _null_sections(cls, data: Any) -> Any:
        """Treat empty YAML sections (``flameGenerator:``) as defaults."""

        if not isinstance(data, dict):
            return data
        return {key: value for key, value in data.items() if value is not None}


__all__ = [
    "Config",
    "FlameGeneratorSettings",
    "EnvironmentSettings",
    "TimeStepperSpec",
    "DomainSpec",
    "BoundaryValues",
    "FlameModelSpec",
    "SteppingArguments",
    "InitializationSpec",
    "CriterionSpec",
    "ResidualBelowThresholdSpec",
    "FieldBoundCheckSpec",
    "MaxIterationsReachedSpec",
    "LogSpec",
]
