"""Configuration paths and defaults for codefind."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("CODEFIND_HOME", str(Path.home() / ".codefind"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

# Files that mark a directory as a loadable project root
PROJECT_MARKERS = ("pyproject.toml", "setup.py", "setup.cfg")

DEFAULT_MAX_RESULTS = 10
DEFAULT_NORMAL_DEBOUNCE_MS = 500
DEFAULT_AI_DEBOUNCE_MS = 1000
DEFAULT_EDITOR_COMMAND = "cursor -g {path}:{line}"

# Lines on each side of the match in the AI payload / preview panel
CONTEXT_RADIUS = 5
PREVIEW_RADIUS = 3
