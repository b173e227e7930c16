"""Symlink selected real-home items into sandboxes."""

from __future__ import annotations

import os
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from playground.sandbox.store import SandboxStore


class ContentLinker:
    """Make real-home paths visible inside a sandbox by reference.

    Linking never overwrites an existing sandbox path and silently skips sources
    that do not exist, so re-running it is a no-op for items already linked.
    """

    def __init__(
        self,
        real_home: Path | str,
        inherited_paths: Iterable[str],
        *,
        logger: Any | None = None,
    ) -> None:
        self._real_home = Path(real_home).expanduser()
        self._inherited = normalize_inherited_paths(inherited_paths)
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def inherited_paths(self) -> tuple[str, ...]:
        return self._inherited

    def link_inherited(self, sandbox_path: Path | str) -> tuple[Path, ...]:
        """Create missing links inside ``sandbox_path``; return the links created."""

        sandbox = Path(sandbox_path)
        created: list[Path] = []
        for relpath in self._inherited:
            src = self._real_home / relpath
            dst = sandbox / relpath
            if dst.exists() or dst.is_symlink():
                continue
            if not src.exists():
                continue
            dst.parent.mkdir(parents=True, exist_ok=True)
            os.symlink(src, dst, target_is_directory=src.is_dir())
            created.append(dst)

        if created:
            self._logger.info(
                "inherited_content_linked",
                sandbox=sandbox.name,
                links=[path.relative_to(sandbox).as_posix() for path in created],
            )
        return tuple(created)

    def update_all(self, store: SandboxStore) -> dict[str, tuple[Path, ...]]:
        """Re-apply linking across every installed sandbox."""

        results: dict[str, tuple[Path, ...]] = {}
        for name in store.list_installed():
            results[name] = self.link_inherited(store.path_for(name))
        return results


def normalize_inherited_paths(paths: Iterable[str]) -> tuple[str, ...]:
    """Deduplicate relative paths and reject absolute or upward-traversing ones."""

    normalized: list[str] = []
    seen: set[str] = set()
    for raw in paths:
        cleaned = raw.strip().replace("\\", "/")
        while cleaned.startswith("./"):
            cleaned = cleaned[2:]
        cleaned = cleaned.rstrip("/")
        if not cleaned:
            continue
        pure = PurePosixPath(cleaned)
        if pure.is_absolute():
            raise ValueError(f"inherited path must be relative: {raw!r}")
        if ".." in pure.parts:
            raise ValueError(f"inherited path must not traverse upwards: {raw!r}")
        if cleaned in seen:
            continue
        seen.add(cleaned)
        normalized.append(cleaned)
    return tuple(normalized)


def describe_links(sandbox_path: Path, relpaths: Sequence[str]) -> dict[str, str | None]:
    """Map each inherited relpath to its link target inside ``sandbox_path`` (or ``None``)."""

    described: dict[str, str | None] = {}
    for relpath in relpaths:
        candidate = sandbox_path / relpath
        described[relpath] = os.readlink(candidate) if candidate.is_symlink() else None
    return described


__all__ = ["ContentLinker", "describe_links", "normalize_inherited_paths"]
