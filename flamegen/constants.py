"""Project-wide constants and defaults."""
from __future__ import annotations

VERSION = "0.3.0"
PROGRAM_NAME = "Flame Generator"

# Ladder defaults (flameGenerator section)
DEFAULT_MAX_FLAMES = 10
DEFAULT_SCALE_FACTOR = 0.85
DEFAULT_SCALE_KEY = "timestepper.domain.scale"

# Stepping defaults (timestepper section)
DEFAULT_STEPS_BETWEEN_CHECKS = 100
DEFAULT_MAX_STEPS = 100_000
DEFAULT_CFL = 10.0

# Output layout
FLAME_PREFIX = "flame_"
FLAMES_DIRECTORY = "flames"
CHECKPOINT_INDEX = "flames.json"
RUN_INFO_FILE = "run_info.json"
LADDER_FILE = "ladder.parquet"
SUMMARY_FILE = "summary.json"
CONVERGENCE_SERIES = "series/convergence.parquet"

# Command-line override prefix accepted before argument parsing
YAML_OVERRIDE_PREFIX = "-yaml::"
