"""Clone configuration repositories into fresh sandbox directories."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from playground.constants import DEFAULT_CLONE_DEPTH, DEFAULT_CLONE_RECURSIVE
from playground.sandbox.errors import ProvisionFailure
from playground.utils.fs import remove_tree_quietly

if TYPE_CHECKING:
    from collections.abc import Mapping

    from playground.sandbox.linker import ContentLinker
    from playground.sandbox.store import SandboxStore


@dataclass(frozen=True, slots=True)
class CloneOptions:
    """Flags passed to ``git clone``; ``depth=None`` disables shallow cloning."""

    recursive: bool = DEFAULT_CLONE_RECURSIVE
    depth: int | str | None = DEFAULT_CLONE_DEPTH

    def to_args(self) -> tuple[str, ...]:
        args: list[str] = []
        if self.recursive:
            args.append("--recursive")
        depth = _coerce_depth(self.depth)
        if depth is not None:
            args.append(f"--depth={depth}")
        return tuple(args)


class Provisioner:
    """Create, clone, and link a sandbox, or leave nothing behind.

    ``provision`` returns only after the clone succeeded and inherited content was
    linked. Any failure after the sandbox directory was created removes that
    directory before the error propagates.
    """

    def __init__(
        self,
        store: SandboxStore,
        linker: ContentLinker,
        *,
        git_executable: str = "git",
        env_overrides: Mapping[str, str] | None = None,
        logger: Any | None = None,
    ) -> None:
        self._store = store
        self._linker = linker
        self._git_executable = git_executable
        self._env_overrides = dict(env_overrides or {})
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def provision(
        self,
        name: str,
        url: str,
        options: CloneOptions | None = None,
    ) -> Path:
        clone_options = options if options is not None else CloneOptions()
        sandbox_dir = self._store.path_for(name)
        self._store.root.mkdir(parents=True, exist_ok=True)

        try:
            sandbox_dir.mkdir(parents=False, exist_ok=False)
        except OSError as exc:
            # An existing directory is never reused or removed.
            self._logger.warning("sandbox_create_failed", sandbox=name, error=str(exc))
            raise ProvisionFailure(f"cannot create sandbox {name!r}: {exc}") from exc

        succeeded = False
        try:
            self._clone(url, self._store.config_path_for(name), clone_options)
            try:
                self._linker.link_inherited(sandbox_dir)
            except OSError as exc:
                raise ProvisionFailure(f"cannot link inherited content: {exc}") from exc
            succeeded = True
        finally:
            if not succeeded:
                removed = remove_tree_quietly(sandbox_dir)
                self._logger.warning(
                    "sandbox_provision_rolled_back", sandbox=name, url=url, removed=removed
                )

        self._logger.info(
            "sandbox_provisioned",
            sandbox=name,
            url=url,
            recursive=clone_options.recursive,
            depth=_coerce_depth(clone_options.depth),
        )
        return sandbox_dir

    def clone_command(self, url: str, target: Path, options: CloneOptions) -> tuple[str, ...]:
        return (self._git_executable, "clone", *options.to_args(), url, str(target))

    def _clone(self, url: str, target: Path, options: CloneOptions) -> None:
        command = self.clone_command(url, target, options)
        try:
            proc = subprocess.run(
                list(command),
                env=self._build_environment(),
                check=False,
                text=True,
                capture_output=True,
            )
        except OSError as exc:
            raise ProvisionFailure(
                f"cannot run {command[0]!r}: {exc}", command=command
            ) from exc

        if proc.returncode != 0:
            detail = proc.stderr.strip() or proc.stdout.strip()
            message = f"clone failed with exit code {proc.returncode}: {url}"
            if detail:
                message = f"{message}: {detail}"
            raise ProvisionFailure(
                message,
                command=command,
                returncode=proc.returncode,
                stderr=proc.stderr,
            )

    def _build_environment(self) -> dict[str, str]:
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        env.update(self._env_overrides)
        return env


def _coerce_depth(value: int | str | None) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    if not text or text == "0":
        return None
    return text


def clone_options_from(recursive: object, depth: object) -> CloneOptions:
    """Build ``CloneOptions`` from loosely typed config values."""

    resolved_depth: int | str | None
    if depth is None or isinstance(depth, bool):
        resolved_depth = None
    elif isinstance(depth, (int, str)):
        resolved_depth = depth
    else:
        raise ValueError(f"depth must be an integer or string, got {type(depth).__name__}")
    return CloneOptions(recursive=bool(recursive), depth=resolved_depth)


__all__ = ["CloneOptions", "Provisioner", "clone_options_from"]
