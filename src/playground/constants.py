"""Stable constants shared across the sandbox lifecycle."""

from __future__ import annotations

from typing import Final

# Filesystem layout inside a sandbox root.
CONFIG_SUBDIR: Final[str] = "config"
SESSION_STATE_FILE: Final[str] = ".session.json"
LOG_FILENAME: Final[str] = "play.jsonl"

# Process output channels.
CHANNEL_PREFIX: Final[str] = "sandbox:"
CHANNEL_LOG_PREFIX: Final[str] = "sandbox-"

# Wrapper scripts.
DEFAULT_UNWRAPPER_SUFFIX: Final[str] = "-noplay"
SCRIPT_MODE: Final[int] = 0o755

# Clone defaults.
DEFAULT_CLONE_DEPTH: Final[int] = 1
DEFAULT_CLONE_RECURSIVE: Final[bool] = True

DEFAULT_HOME_ENV_VAR: Final[str] = "HOME"

__all__ = [
    "CHANNEL_LOG_PREFIX",
    "CHANNEL_PREFIX",
    "CONFIG_SUBDIR",
    "DEFAULT_CLONE_DEPTH",
    "DEFAULT_CLONE_RECURSIVE",
    "DEFAULT_HOME_ENV_VAR",
    "DEFAULT_UNWRAPPER_SUFFIX",
    "LOG_FILENAME",
    "SCRIPT_MODE",
    "SESSION_STATE_FILE",
]
