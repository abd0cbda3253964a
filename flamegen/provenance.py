"""Provenance record written to ``run_info.json`` at the start of a ladder.

Nothing here may abort a run: values that cannot be determined are stored as
``None``.
"""

from __future__ import annotations

import datetime as dt
import hashlib
import platform
import subprocess
import sys
from importlib import metadata
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Sequence

from . import constants

PACKAGE_DISTS = ("numpy", "scipy", "pandas", "pyarrow", "pydantic", "ruamel.yaml", "requests")
_HASH_BLOCK = 1 << 20


def _now_utc() -> str:
    now = dt.datetime.now(dt.timezone.utc).replace(microsecond=0)
    return now.strftime("%Y-%m-%dT%H:%M:%SZ")


def package_versions(dists: Iterable[str]) -> Dict[str, Optional[str]]:
    versions: Dict[str, Optional[str]] = {}
    for name in dists:
        try:
            versions[name] = metadata.version(name)
        except metadata.PackageNotFoundError:
            versions[name] = None
    return versions


def git_revision(directory: Optional[Path] = None) -> Optional[str]:
    """Return the commit hash of the checkout holding ``directory``."""

    where = directory or Path(__file__).resolve().parent
    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            cwd=where,
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return None
    return result.stdout.strip() or None


def input_fingerprint(path: Optional[Path]) -> Optional[Dict[str, Any]]:
    if path is None:
        return None
    resolved = Path(path).resolve()
    digest: Optional[str] = None
    if resolved.is_file():
        sha = hashlib.sha256()
        try:
            with resolved.open("rb") as handle:
                while block := handle.read(_HASH_BLOCK):
                    sha.update(block)
            digest = sha.hexdigest()
        except OSError:
            digest = None
    return {"path": str(resolved), "exists": resolved.exists(), "sha256": digest}


def gather_run_provenance(
    input_path: Optional[Path],
    *,
    overrides: Sequence[str] = (),
    package_dists: Optional[Sequence[str]] = None,
    world_size: int = 1,
) -> Dict[str, Any]:
    """Return a JSON-serialisable description of this run."""

    return {
        "program": constants.PROGRAM_NAME,
        "version": constants.VERSION,
        "timestamp_utc": _now_utc(),
        "cwd": str(Path.cwd()),
        "argv": list(sys.argv),
        "python": {"version": platform.python_version(), "executable": sys.executable},
        "platform": {
            "system": platform.system(),
            "release": platform.release(),
            "machine": platform.machine(),
        },
        "packages": package_versions(package_dists or PACKAGE_DISTS),
        "git_commit": git_revision(),
        "input": input_fingerprint(input_path),
        "overrides": list(overrides),
        "world_size": int(world_size),
    }


__all__ = ["gather_run_provenance", "package_versions", "git_revision", "input_fingerprint"]
