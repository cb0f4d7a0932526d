"""Configuration paths and analysis defaults for local ReqGraph stores."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("REQGRAPH_HOME", str(Path.home() / ".reqgraph"))).expanduser()
MEMORY_DIR = BASE_DIR / "memory"
CONFIG_FILE = BASE_DIR / "config.toml"
REPORT_FILE = BASE_DIR / "reports" / "entrypoints.txt"

# Prefix stripped from module paths and require specifiers before comparing them
ROOT_PREFIX = "lib/"
# Modules whose path starts with this are reported as externally reachable
ENTRY_PREFIX = "api"
SOURCE_EXTENSIONS = {".js"}

SKIP_DIRS = {
    ".git", "node_modules", "bower_components", "coverage", "dist",
    "build", ".nyc_output", ".cache", ".reqgraph",
}


def ensure_base_dirs() -> None:
    """Create base directories for local storage if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
    MEMORY_DIR.mkdir(parents=True, exist_ok=True)
