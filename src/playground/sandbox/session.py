"""Process-wide record of the last launched sandbox and its live processes."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from playground.constants import CHANNEL_PREFIX
from playground.utils.fs import atomic_write

if TYPE_CHECKING:
    from collections.abc import Iterator


class ProcessHandle(Protocol):
    """Live process as seen by the session and the restart flow."""

    @property
    def channel(self) -> str: ...

    def is_alive(self) -> bool: ...

    def terminate(self) -> None: ...


def channel_name(name: str) -> str:
    """Deterministic output channel for sandbox ``name``."""

    return f"{CHANNEL_PREFIX}{name}"


@dataclass(slots=True)
class Session:
    """Last launched sandbox plus process handles keyed by channel name.

    Created empty, updated by every successful launch, overwritten but never reset.
    """

    last_sandbox_path: Path | None = None
    _processes: dict[str, ProcessHandle] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    @property
    def last_sandbox_name(self) -> str | None:
        with self._lock:
            return self.last_sandbox_path.name if self.last_sandbox_path is not None else None

    def record_launch(self, home: Path, handle: ProcessHandle) -> None:
        with self._lock:
            self.last_sandbox_path = Path(home)
            self._processes[handle.channel] = handle

    def attach(self, handle: ProcessHandle) -> None:
        """Track ``handle`` without touching ``last_sandbox_path``."""

        with self._lock:
            self._processes[handle.channel] = handle

    def process_for(self, channel: str) -> ProcessHandle | None:
        with self._lock:
            return self._processes.get(channel)

    def live_process_for(self, channel: str) -> ProcessHandle | None:
        handle = self.process_for(channel)
        if handle is not None and handle.is_alive():
            return handle
        return None

    def iter_processes(self) -> Iterator[tuple[str, ProcessHandle]]:
        with self._lock:
            items = tuple(self._processes.items())
        yield from items


@dataclass(frozen=True, slots=True)
class RecordedProcess:
    """Identity of the last launched process: pid plus its start time."""

    pid: int
    create_time: float


class SessionStateFile:
    """JSON mirror of the session for short-lived CLI processes.

    Holds ``last_sandbox_path`` and, while it is known, the pid and start time of
    the process launched for it so a later invocation can find it again.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load_into(self, session: Session) -> Session:
        """Fill ``session.last_sandbox_path`` from disk when it is still unset."""

        if session.last_sandbox_path is not None:
            return session
        stored = self.read()
        if stored is not None:
            session.last_sandbox_path = stored
        return session

    def read(self) -> Path | None:
        raw = self._read_payload().get("last_sandbox_path")
        if not isinstance(raw, str) or not raw.strip():
            return None
        return Path(raw)

    def read_process(self) -> RecordedProcess | None:
        """The recorded process of the last sandbox, if one was saved."""

        payload = self._read_payload()
        raw = payload.get("process")
        if not isinstance(raw, dict) or not payload.get("last_sandbox_path"):
            return None
        pid = raw.get("pid")
        create_time = raw.get("create_time")
        if isinstance(pid, bool) or not isinstance(pid, int) or pid <= 0:
            return None
        if isinstance(create_time, bool) or not isinstance(create_time, int | float):
            return None
        return RecordedProcess(pid=pid, create_time=float(create_time))

    def save(self, session: Session) -> None:
        home = session.last_sandbox_path
        if home is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload: dict[str, object] = {"last_sandbox_path": home.as_posix()}
        handle = session.process_for(channel_name(home.name))
        pid = getattr(handle, "pid", None)
        create_time = getattr(handle, "create_time", None)
        if isinstance(pid, int) and isinstance(create_time, float):
            payload["process"] = {"pid": pid, "create_time": create_time}
        atomic_write(self._path, json.dumps(payload, sort_keys=True, indent=2) + "\n")

    def _read_payload(self) -> dict[str, object]:
        if not self._path.is_file():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        return payload if isinstance(payload, dict) else {}


__all__ = [
    "ProcessHandle",
    "RecordedProcess",
    "Session",
    "SessionStateFile",
    "channel_name",
]
