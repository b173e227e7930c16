"""Filesystem-backed sandbox namespace: one directory per sandbox name."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Final

from playground.constants import CONFIG_SUBDIR

_SAFE_NAME_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9._-]*$")


class SandboxStore:
    """Map sandbox names to directories under ``root``.

    Directory presence is the only record of a sandbox; no manifest is kept.
    """

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser().resolve(strict=False)

    @property
    def root(self) -> Path:
        return self._root

    def list(self) -> set[str]:
        """Names of subdirectories of the root that do not start with a dot."""

        if not self._root.is_dir():
            return set()
        return {
            entry.name
            for entry in self._root.iterdir()
            if entry.is_dir() and not entry.name.startswith(".")
        }

    def list_installed(self) -> tuple[str, ...]:
        """Sorted names whose directory also carries the ``config`` checkout."""

        return tuple(
            sorted(
                name
                for name in self.list()
                if _SAFE_NAME_PATTERN.fullmatch(name) is not None and self.is_installed(name)
            )
        )

    def path_for(self, name: str) -> Path:
        return self._root / validate_name(name)

    def config_path_for(self, name: str) -> Path:
        return self.path_for(name) / CONFIG_SUBDIR

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_dir()

    def is_installed(self, name: str) -> bool:
        return self.exists(name) and self.config_path_for(name).is_dir()


def validate_name(name: str) -> str:
    """Return ``name`` when it is a single safe path segment, else raise ``ValueError``."""

    if not isinstance(name, str) or not name:
        raise ValueError("sandbox name must not be empty")
    if name in {".", ".."} or name.startswith("."):
        raise ValueError(f"sandbox name must not start with '.': {name!r}")
    if _SAFE_NAME_PATTERN.fullmatch(name) is None:
        raise ValueError(f"sandbox name contains unsupported characters: {name!r}")
    return name


__all__ = ["SandboxStore", "validate_name"]
