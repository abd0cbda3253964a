from __future__ import annotations

import copy
import sys
from pathlib import Path
from typing import Any, Callable, Dict

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from flamegen.io import writer  # noqa: E402

# Small, quickly converging ladder: pure diffusion between Dirichlet values
# 0 and 1 relaxes to a linear profile in a few dozen steps.
SMALL_LADDER: Dict[str, Any] = {
    "flameGenerator": {"maxNumberFlames": 3, "scaleFactor": 0.8},
    "environment": {"tagDirectory": False},
    "timestepper": {
        "type": "SteadyStateStepper",
        "stepsBetweenChecks": 20,
        "maxSteps": 5000,
        "domain": {"type": "BoxMeshBoundaryCells", "faces": 16},
        "model": {"preExponential": 0.0},
        "initialization": {"profile": "constant", "value": 0.0},
        "criteria": [
            {"type": "ResidualBelowThreshold", "tolerance": 1.0e-6},
            {"type": "FieldBoundCheck", "field": "temperature", "lower": 0.0, "upper": 1.0},
            {"type": "MaxIterationsReached", "maxSteps": 5000},
        ],
        "log": {"type": "file"},
    },
}


@pytest.fixture
def small_ladder() -> Dict[str, Any]:
    return copy.deepcopy(SMALL_LADDER)


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[..., Path]:
    """Write a ladder configuration below ``tmp_path`` and return its path."""

    def _write(payload: Dict[str, Any], name: str = "ladder.yaml") -> Path:
        data = copy.deepcopy(payload)
        data.setdefault("environment", {})
        data["environment"].setdefault("outputDirectory", str(tmp_path / "out"))
        path = tmp_path / name
        writer.write_yaml(data, path)
        return path

    return _write
