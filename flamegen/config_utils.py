"""Configuration input helpers: overrides, dotted paths, input location and logging."""
from __future__ import annotations

import logging
import tempfile
import warnings
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple
from urllib.parse import urlparse

import requests

from . import constants
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT_S = 30.0


_LITERALS: Dict[str, Any] = {
    "true": True,
    "false": False,
    "none": None,
    "null": None,
    "~": None,
}


def parse_override_value(raw: str) -> Any:
    """Convert the right-hand side of ``path=value`` to a scalar.

    Booleans and nulls follow YAML spelling, numbers become ``int`` or
    ``float``, and surrounding quotes force a string.
    """

    text = raw.strip()
    if text.lower() in _LITERALS:
        return _LITERALS[text.lower()]
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        return text[1:-1]
    for convert in (int, float):
        try:
            return convert(text)
        except ValueError:
            continue
    return text


def _split_path(path: str) -> List[str]:
    return [segment for segment in path.strip().split(".") if segment]


def get_dotted(payload: Dict[str, Any], path: str, default: Any = None) -> Any:
    """Return the value stored at a dotted path, or ``default`` when absent."""

    target: Any = payload
    for segment in _split_path(path):
        if not isinstance(target, dict) or segment not in target:
            return default
        target = target[segment]
    return target


def set_dotted(payload: Dict[str, Any], path: str, value: Any) -> None:
    """Store ``value`` at a dotted path, creating intermediate mappings."""

    parts = _split_path(path)
    if not parts:
        raise ConfigurationError(f"Invalid configuration path '{path}'")
    target: Any = payload
    for segment in parts[:-1]:
        if not isinstance(target, dict):
            raise ConfigurationError(f"Cannot traverse into non-mapping at '{segment}' for '{path}'")
        if segment not in target or target[segment] is None:
            target[segment] = {}
        target = target[segment]
    if not isinstance(target, dict):
        raise ConfigurationError(f"Cannot set '{path}'; target is not a mapping")
    target[parts[-1]] = value


def apply_overrides_dict(payload: Dict[str, Any], overrides: Sequence[str]) -> Dict[str, Any]:
    """Apply dotted-path ``PATH=VALUE`` overrides to a configuration dictionary."""

    for item in overrides or ():
        key, sep, value_str = item.partition("=")
        if not sep:
            raise ConfigurationError(f"Invalid override '{item}'; expected path=value")
        if not _split_path(key):
            raise ConfigurationError(f"Invalid override '{item}'; empty path")
        set_dotted(payload, key, parse_override_value(value_str))
    return payload


def split_yaml_overrides(argv: Sequence[str]) -> Tuple[List[str], List[str]]:
    """Separate ``-yaml::path=value`` tokens from the remaining arguments.

    Returns ``(overrides, remaining)`` where overrides are plain
    ``path=value`` strings.
    """

    overrides: List[str] = []
    remaining: List[str] = []
    prefix = constants.YAML_OVERRIDE_PREFIX
    for token in argv:
        if token.startswith(prefix):
            overrides.append(token[len(prefix):])
        else:
            remaining.append(token)
    return overrides, remaining


def read_overrides_file(path: Path) -> List[str]:
    """Return ``PATH=VALUE`` lines from a file, skipping blanks and ``#`` comments."""

    lines: List[str] = []
    with Path(path).open("r", encoding="utf-8") as fh:
        for raw in fh:
            text = raw.strip()
            if not text or text.startswith("#"):
                continue
            lines.append(text)
    return lines


def is_url(location: str) -> bool:
    return urlparse(str(location)).scheme in {"http", "https"}


def download_input(url: str, destination_dir: Path | None = None) -> Path:
    """Download a remote input file and return the local path."""

    name = Path(urlparse(url).path).name or "input.yaml"
    target_dir = Path(destination_dir) if destination_dir is not None else Path(tempfile.gettempdir()) / "flamegen"
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / name
    logger.info("Downloading %s to %s", url, target)
    try:
        response = requests.get(url, timeout=DOWNLOAD_TIMEOUT_S)
        response.raise_for_status()
    except requests.exceptions.RequestException as exc:
        raise ConfigurationError(f"unable to download input file: {url} ({exc})") from exc
    target.write_bytes(response.content)
    return target


def locate_input(location: str | Path) -> Path:
    """Resolve ``--input`` to an existing local file, downloading URLs."""

    text = str(location)
    if is_url(text):
        path = download_input(text)
    else:
        path = Path(text).expanduser().resolve()
    if not path.is_file():
        raise ConfigurationError(f"unable to locate input file: {path}")
    return path


def configure_logging(level: int, suppress_warnings: bool = False) -> None:
    """Set the root log level from the CLI; ``--quiet`` also mutes Python warnings."""

    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    root = logging.getLogger()
    root.setLevel(level)
    if suppress_warnings:
        warnings.filterwarnings("ignore")
    logging.captureWarnings(True)


__all__ = [
    "parse_override_value",
    "get_dotted",
    "set_dotted",
    "apply_overrides_dict",
    "split_yaml_overrides",
    "read_overrides_file",
    "is_url",
    "download_input",
    "locate_input",
    "configure_logging",
]
