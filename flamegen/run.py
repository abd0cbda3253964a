"""CLI entry point for the flame continuation ladder."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, TextIO

from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from . import config_utils, constants
from .builder import print_info as _print_builder_info
from .environment import SERIAL, ProcessGroup, RunEnvironment
from .errors import ConfigurationError
from .io import writer
from .io.checkpoint import FlameRecord
from .orchestrator import ContinuationDriver
from .provenance import gather_run_provenance
from .runtime import ProgressReporter
from .schema import Config

logger = logging.getLogger(__name__)


def load_payload(path: Path, overrides: Optional[Sequence[str]] = None) -> Dict[str, Any]:
    """Read a YAML input file into a plain mapping and apply overrides."""

    yaml = YAML(typ="safe")
    source_path = Path(path).resolve()
    try:
        with source_path.open("r", encoding="utf-8") as fh:
            data = yaml.load(fh)
    except OSError as exc:
        raise ConfigurationError(f"unable to read input file: {source_path}") from exc
    except YAMLError as exc:
        raise ConfigurationError(f"invalid YAML in {source_path}: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError("the input file root must be a mapping")
    if overrides:
        data = config_utils.apply_overrides_dict(data, overrides)
    return data


def validate_config(payload: Dict[str, Any]) -> Config:
    try:
        return Config.model_validate(payload)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid configuration: {exc}") from exc


def load_config(path: Path, overrides: Optional[Sequence[str]] = None) -> Config:
    """Load a YAML configuration file into a :class:`Config` instance."""

    return validate_config(load_payload(path, overrides))


def run_flame_generator(
    input_location: str | Path,
    *,
    overrides: Sequence[str] = (),
    group: ProcessGroup = SERIAL,
    progress: bool = False,
) -> List[FlameRecord]:
    """Locate the input, prepare the output directory and run the ladder."""

    input_path = config_utils.locate_input(input_location)
    payload = load_payload(input_path, overrides)
    cfg = validate_config(payload)

    environment = RunEnvironment.setup(cfg.environment, input_path, group)
    reporter = ProgressReporter(cfg.flame_generator.max_number_flames, enabled=progress)
    driver = ContinuationDriver(payload, cfg.flame_generator, environment, progress=reporter)

    environment.prepare()
    if group.is_root:
        writer.write_yaml(payload, environment.output_directory / input_path.name)
        writer.write_summary(
            gather_run_provenance(input_path, overrides=overrides, world_size=group.size),
            environment.output_directory / constants.RUN_INFO_FILE,
        )
    logger.info(
        "Running %d flames (scaleFactor=%g, scaleKey=%s)",
        cfg.flame_generator.max_number_flames,
        cfg.flame_generator.scale_factor,
        cfg.flame_generator.scale_key,
    )
    return driver.run()


def print_info(stream: TextIO) -> None:
    stream.write(f"{constants.PROGRAM_NAME}\n")
    stream.write(f"\tVersion: {constants.VERSION}\n")
    stream.write("-" * 40 + "\n")
    _print_builder_info(stream)
    stream.write("-" * 40 + "\n")
    stream.flush()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate a ladder of steady flames on progressively scaled domains",
        allow_abbrev=False,
        epilog=(
            "Configuration values may also be overridden with "
            f"{constants.YAML_OVERRIDE_PREFIX}<dotted.key>=value."
        ),
    )
    parser.add_argument("--input", help="Path or URL of the YAML input file")
    parser.add_argument("--version", action="store_true", help="Print the version and exit")
    parser.add_argument(
        "--info",
        "-version",
        dest="info",
        action="store_true",
        help="Print build and component information, then continue",
    )
    parser.add_argument(
        "--override",
        action="append",
        nargs="+",
        metavar="PATH=VALUE",
        help="Apply configuration overrides using dotted paths; e.g. --override flameGenerator.maxNumberFlames=3",
    )
    parser.add_argument(
        "--overrides-file",
        action="append",
        type=Path,
        help="Load overrides from a file (one PATH=VALUE per line).",
    )
    parser.add_argument(
        "--progress",
        action="store_true",
        help="Show a console progress bar over the flame ladder.",
    )
    parser.add_argument(
        "--quiet",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Only log warnings and errors.",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Command line entry point."""

    raw_args = list(sys.argv[1:] if argv is None else argv)
    yaml_overrides, remaining = config_utils.split_yaml_overrides(raw_args)
    args = build_parser().parse_args(remaining)

    if args.info:
        print_info(sys.stdout)
    if args.version:
        sys.stdout.write(f"{constants.VERSION}\n")
        return
    if not args.input:
        raise ConfigurationError("the --input must be specified")

    override_list: List[str] = []
    for override_path in args.overrides_file or ():
        override_list.extend(config_utils.read_overrides_file(override_path))
    for group in args.override or ():
        override_list.extend(group)
    override_list.extend(yaml_overrides)

    config_utils.configure_logging(
        logging.WARNING if args.quiet else logging.INFO,
        suppress_warnings=args.quiet,
    )
    run_flame_generator(args.input, overrides=override_list, progress=args.progress)


__all__ = [
    "load_payload",
    "load_config",
    "validate_config",
    "run_flame_generator",
    "print_info",
    "build_parser",
    "main",
]

if __name__ == "__main__":  # pragma: no cover - standard CLI entrypoint
    main()
