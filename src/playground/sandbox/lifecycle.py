"""
play-sandbox: sandbox lifecycle

Purpose
- Resolve user input to an installed sandbox, a preset, or a raw repository reference.
- Provision on demand, launch, and restart the most recently launched sandbox.

Functional requirements
- Lookup order is installed name, then preset name (first match wins), then repository
  recognition; anything else is a ``RecognitionFailure``.
- Restart never relaunches while the previous process is alive: relaunch is a one-shot
  continuation of the process exit event that resolves a ``Future``.
"""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from playground.constants import DEFAULT_CLONE_DEPTH, DEFAULT_CLONE_RECURSIVE
from playground.observability.events import EventType
from playground.observability.logging import correlation_scope
from playground.sandbox.errors import MissingRepoReference, PreconditionFailure, RecognitionFailure
from playground.sandbox.provisioner import CloneOptions
from playground.sandbox.repo_url import derive_name, normalize_url, recognize
from playground.sandbox.session import channel_name
from playground.sandbox.store import validate_name

if TYPE_CHECKING:
    from collections.abc import Callable, Collection, Sequence

    from playground.observability.events import EventBus, ProcessEvent
    from playground.sandbox.launcher import ProcessLauncher
    from playground.sandbox.linker import ContentLinker
    from playground.sandbox.provisioner import Provisioner
    from playground.sandbox.session import ProcessHandle, SessionStateFile
    from playground.sandbox.store import SandboxStore


@dataclass(frozen=True, slots=True)
class RepoDescriptor:
    """A configuration repository plus the sandbox name and clone options it maps to."""

    url: str
    name: str | None = None
    recursive: bool = DEFAULT_CLONE_RECURSIVE
    depth: int | str | None = DEFAULT_CLONE_DEPTH

    @property
    def sandbox_name(self) -> str:
        """Explicit name, else the name derived from ``url`` (possibly empty)."""

        if self.name is not None and self.name.strip():
            return self.name.strip()
        return derive_name(self.url)

    def clone_options(self) -> CloneOptions:
        return CloneOptions(recursive=self.recursive, depth=self.depth)


@dataclass(frozen=True, slots=True)
class Installed:
    name: str


@dataclass(frozen=True, slots=True)
class Preset:
    descriptor: RepoDescriptor

    @property
    def name(self) -> str:
        return self.descriptor.sandbox_name


@dataclass(frozen=True, slots=True)
class RawReference:
    """A recognized repository reference typed by the user."""

    text: str
    url: str
    derived_name: str


Selection = Installed | Preset | RawReference


def find_preset(name: str, presets: Sequence[RepoDescriptor]) -> RepoDescriptor | None:
    for descriptor in presets:
        if descriptor.sandbox_name == name:
            return descriptor
    return None


def resolve_selection(
    text: str,
    *,
    installed: Collection[str],
    presets: Sequence[RepoDescriptor],
) -> Selection:
    value = text.strip()
    if not value:
        raise RecognitionFailure(text, "empty selection")
    if value in installed:
        return Installed(value)
    descriptor = find_preset(value, presets)
    if descriptor is not None:
        return Preset(descriptor)
    if recognize(value):
        return RawReference(text=value, url=normalize_url(value), derived_name=derive_name(value))
    raise RecognitionFailure(text)


class SandboxLifecycle:
    """Tie store, provisioner, launcher and session together for user-facing operations."""

    def __init__(
        self,
        *,
        store: SandboxStore,
        provisioner: Provisioner,
        linker: ContentLinker,
        launcher: ProcessLauncher,
        bus: EventBus,
        presets: Sequence[RepoDescriptor] = (),
        default_clone_options: CloneOptions | None = None,
        state_file: SessionStateFile | None = None,
        logger: Any | None = None,
    ) -> None:
        self._store = store
        self._provisioner = provisioner
        self._linker = linker
        self._launcher = launcher
        self._session = launcher.session
        self._bus = bus
        self._presets = tuple(presets)
        self._default_clone_options = default_clone_options or CloneOptions()
        self._state_file = state_file
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def presets(self) -> tuple[RepoDescriptor, ...]:
        return self._presets

    def available_options(self) -> tuple[str, ...]:
        """Installed sandbox names followed by preset names not yet installed."""

        installed = self._store.list_installed()
        options = list(installed)
        for descriptor in self._presets:
            name = descriptor.sandbox_name
            if name and name not in options:
                options.append(name)
        return tuple(options)

    def resolve(self, text: str) -> Selection:
        return resolve_selection(
            text,
            installed=self._store.list_installed(),
            presets=self._presets,
        )

    def checkout(
        self,
        selection: Selection,
        *,
        name: str | None = None,
        ask_name: Callable[[str], str | None] | None = None,
    ) -> ProcessHandle:
        """Launch ``selection``, provisioning it first when it is not installed."""

        if isinstance(selection, Installed):
            return self.launch_installed(selection.name)
        if isinstance(selection, Preset):
            return self.start_with(selection.descriptor)
        if isinstance(selection, RawReference):
            target = (name or "").strip() or selection.derived_name
            if not target and ask_name is not None:
                target = (ask_name(selection.url) or "").strip()
            if not target:
                raise RecognitionFailure(
                    selection.text,
                    f"cannot derive a sandbox name from {selection.text!r}; pass an explicit name",
                )
            options = self._default_clone_options
            return self.start_with(
                RepoDescriptor(
                    url=selection.url,
                    name=target,
                    recursive=options.recursive,
                    depth=options.depth,
                )
            )
        raise TypeError(f"unsupported selection: {selection!r}")

    def start_with(self, descriptor: RepoDescriptor) -> ProcessHandle:
        if not descriptor.url or not descriptor.url.strip():
            raise MissingRepoReference("a repository URL is required to start a configuration")

        name = _checked_name(descriptor.sandbox_name, text=descriptor.url)
        with correlation_scope(sandbox=name):
            if self._store.is_installed(name):
                self._logger.info("sandbox_already_installed", sandbox=name)
                return self._launch(name, self._store.path_for(name))
            path = self._provisioner.provision(
                name, descriptor.url.strip(), descriptor.clone_options()
            )
            return self._launch(name, path)

    def launch_installed(self, name: str) -> ProcessHandle:
        checked = _checked_name(name, text=name)
        if not self._store.is_installed(checked):
            raise RecognitionFailure(name, f"sandbox is not installed: {name}")
        with correlation_scope(sandbox=checked):
            return self._launch(checked, self._store.path_for(checked))

    def update_symlinks(self) -> dict[str, tuple[Path, ...]]:
        """Backfill inherited links into every installed sandbox."""

        results = self._linker.update_all(self._store)
        self._logger.info(
            "symlinks_updated",
            sandboxes=len(results),
            links_created=sum(len(links) for links in results.values()),
        )
        return results

    def start_last(self, confirm: Callable[[str], bool]) -> Future[ProcessHandle]:
        """Relaunch the last sandbox, killing its live process first when confirmed.

        The returned future resolves with the new handle once the old process has
        reported its exit, or immediately when no process was running. A declined
        confirmation resolves it with the handle that is still running.
        """

        home = self._session.last_sandbox_path
        if home is None:
            raise PreconditionFailure("nothing run yet")

        name = home.name
        channel = channel_name(name)
        future: Future[ProcessHandle] = Future()

        live = self._session.live_process_for(channel)
        if live is None:
            future.set_result(self._launch(name, home))
            return future

        if not confirm(f"Sandbox {name!r} is running. Kill it and start it again?"):
            self._logger.info("restart_declined", sandbox=name)
            future.set_result(live)
            return future

        def relaunch(event: ProcessEvent) -> None:
            self._logger.info("restart_after_exit", sandbox=name, status=event.status)
            try:
                future.set_result(self._launch(name, home))
            except Exception as exc:  # noqa: BLE001 - surfaced through the future.
                future.set_exception(exc)

        token = self._bus.subscribe_once(EventType.PROCESS_EXITED, relaunch, channel=channel)
        if not live.is_alive() and self._bus.unsubscribe(token):
            # Exited before the subscription was in place; nothing left to wait for.
            future.set_result(self._launch(name, home))
            return future

        self._logger.info("restart_terminating", sandbox=name, channel=channel)
        live.terminate()
        return future

    def _launch(self, name: str, home: Path) -> ProcessHandle:
        handle = self._launcher.launch(name, home)
        if self._state_file is not None:
            self._state_file.save(self._session)
        return handle


def _checked_name(name: str, *, text: str) -> str:
    try:
        return validate_name(name)
    except ValueError as exc:
        raise RecognitionFailure(text, f"invalid sandbox name for {text!r}: {exc}") from exc


__all__ = [
    "Installed",
    "Preset",
    "RawReference",
    "RepoDescriptor",
    "SandboxLifecycle",
    "Selection",
    "find_preset",
    "resolve_selection",
]
