"""Start the application as a detached child with its home redirected into a sandbox."""

from __future__ import annotations

import os
import subprocess
import sys
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

import psutil
import structlog

from playground.constants import CHANNEL_LOG_PREFIX, DEFAULT_HOME_ENV_VAR
from playground.observability.events import EventType
from playground.sandbox.errors import PreconditionFailure
from playground.sandbox.session import channel_name
from playground.utils.fs import which_excluding

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping, Sequence

    from playground.observability.events import EventBus
    from playground.sandbox.session import RecordedProcess, Session

_TERMINATE_GRACE_SECONDS = 3.0
_WATCH_INTERVAL_SECONDS = 0.5
_CREATE_TIME_TOLERANCE_SECONDS = 0.01


def supports_windowed_child(
    environ: Mapping[str, str] | None = None,
    platform: str | None = None,
) -> bool:
    """Whether this environment can show a windowed child process."""

    env = os.environ if environ is None else environ
    current = sys.platform if platform is None else platform
    if current == "darwin" or current.startswith("win"):
        return True
    return bool(env.get("DISPLAY") or env.get("WAYLAND_DISPLAY"))


class SandboxProcess:
    """An application process bound to one sandbox output channel.

    ``process`` is the ``psutil.Popen`` of a fresh launch, or a ``psutil.Process``
    found again through the session file. Only the former yields an exit code.
    """

    def __init__(
        self,
        *,
        name: str,
        home: Path,
        log_path: Path,
        process: psutil.Process,
        bus: EventBus,
    ) -> None:
        self.name = name
        self.home = home
        self.log_path = log_path
        self._channel = channel_name(name)
        self._process = process
        self._bus = bus
        self._returncode: int | None = None
        self._termination_requested = threading.Event()
        self._exited = threading.Event()
        self._watcher = threading.Thread(
            target=self._watch,
            name=f"watch-{self._channel}",
            daemon=True,
        )

    @property
    def channel(self) -> str:
        return self._channel

    @property
    def pid(self) -> int:
        return int(self._process.pid)

    @property
    def create_time(self) -> float | None:
        try:
            return float(self._process.create_time())
        except psutil.NoSuchProcess:
            return None

    @property
    def returncode(self) -> int | None:
        return self._returncode

    def is_alive(self) -> bool:
        return not self._exited.is_set() and not self._defunct()

    def start_watching(self) -> None:
        self._watcher.start()

    def terminate(self) -> None:
        """Request termination of the process and its children."""

        self._termination_requested.set()
        try:
            children = self._process.children(recursive=True)
        except psutil.NoSuchProcess:
            children = []

        targets: list[psutil.Process] = [*children, self._process]
        for target in targets:
            try:
                target.terminate()
            except psutil.NoSuchProcess:
                continue

        _, alive = psutil.wait_procs(children, timeout=_TERMINATE_GRACE_SECONDS)
        for straggler in alive:
            try:
                straggler.kill()
            except psutil.NoSuchProcess:
                continue

    def _defunct(self) -> bool:
        try:
            return self._process.status() == psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return True

    def _wait_for_exit(self) -> int | None:
        # A reattached process is not our child and may stay a zombie after exit.
        while True:
            try:
                return self._process.wait(timeout=_WATCH_INTERVAL_SECONDS)
            except psutil.TimeoutExpired:
                if not self._defunct():
                    continue
            try:
                return self._process.wait(timeout=0)
            except psutil.TimeoutExpired:
                return None

    def _watch(self) -> None:
        returncode = self._wait_for_exit()
        self._returncode = returncode
        killed = self._termination_requested.is_set() or (
            returncode is not None and returncode < 0
        )
        try:
            self._bus.emit(
                EventType.PROCESS_EXITED,
                self._channel,
                {
                    "status": "killed" if killed else "exited",
                    "returncode": returncode,
                    "pid": self.pid,
                    "sandbox": self.name,
                },
            )
        finally:
            self._exited.set()


class ProcessLauncher:
    """Launch the configured application with ``home_env_var`` pointing at a sandbox."""

    def __init__(
        self,
        session: Session,
        bus: EventBus,
        *,
        executable: str,
        log_dir: Path | str,
        args: Sequence[str] = (),
        home_env_var: str = DEFAULT_HOME_ENV_VAR,
        require_display: bool = True,
        capability_check: Callable[[], bool] | None = None,
        exclude_dirs: Iterable[Path | str] = (),
        environ: Mapping[str, str] | None = None,
        logger: Any | None = None,
    ) -> None:
        if not executable.strip():
            raise ValueError("executable must not be empty")
        if not home_env_var.strip():
            raise ValueError("home_env_var must not be empty")

        self._session = session
        self._bus = bus
        self._executable = executable.strip()
        self._log_dir = Path(log_dir).expanduser()
        self._args = tuple(args)
        self._home_env_var = home_env_var.strip()
        self._require_display = require_display
        self._capability_check = capability_check or supports_windowed_child
        self._exclude_dirs = tuple(Path(item).expanduser() for item in exclude_dirs)
        self._environ = dict(environ) if environ is not None else None
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def home_env_var(self) -> str:
        return self._home_env_var

    @property
    def session(self) -> Session:
        return self._session

    def resolve_executable(self) -> Path:
        """Locate the application on ``PATH``, never returning a promoted wrapper."""

        resolved = which_excluding(
            self._executable,
            exclude=self._exclude_dirs,
            search_path=self._base_environment().get("PATH"),
        )
        if resolved is None:
            raise PreconditionFailure(f"application executable not found: {self._executable}")
        return resolved

    def build_environment(self, home: Path) -> dict[str, str]:
        env = self._base_environment()
        env[self._home_env_var] = str(home)
        return env

    def log_path_for(self, name: str) -> Path:
        return self._log_dir / f"{CHANNEL_LOG_PREFIX}{name}.log"

    def launch(self, name: str, home: Path | str) -> SandboxProcess:
        """Start the application asynchronously and record it as the last sandbox."""

        if self._require_display and not self._capability_check():
            raise PreconditionFailure(
                "cannot launch a windowed application: no display available "
                "(set application.require_display = false for terminal editors)"
            )

        home_path = Path(home)
        executable = self.resolve_executable()
        command = [str(executable), *self._args]
        log_path = self.log_path_for(name)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        with log_path.open("ab") as log_handle:
            try:
                process = psutil.Popen(
                    command,
                    cwd=str(home_path),
                    env=self.build_environment(home_path),
                    stdin=subprocess.DEVNULL,
                    stdout=log_handle,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
            except OSError as exc:
                raise PreconditionFailure(f"cannot start {executable}: {exc}") from exc

        handle = SandboxProcess(
            name=name,
            home=home_path,
            log_path=log_path,
            process=process,
            bus=self._bus,
        )
        self._session.record_launch(home_path, handle)
        self._bus.emit(
            EventType.PROCESS_STARTED,
            handle.channel,
            {"pid": handle.pid, "sandbox": name, "home": home_path.as_posix()},
        )
        handle.start_watching()
        self._logger.info(
            "sandbox_launched",
            sandbox=name,
            channel=handle.channel,
            pid=handle.pid,
            executable=str(executable),
            log_path=str(log_path),
        )
        return handle

    def reattach(self, home: Path | str, recorded: RecordedProcess) -> SandboxProcess | None:
        """Track a process launched by an earlier invocation, if it is still running.

        The pid must still belong to the process that was recorded: a different
        start time means the pid was reused and nothing is attached.
        """

        home_path = Path(home)
        try:
            process = psutil.Process(recorded.pid)
            started = process.create_time()
            defunct = process.status() == psutil.STATUS_ZOMBIE
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return None
        if defunct or abs(started - recorded.create_time) > _CREATE_TIME_TOLERANCE_SECONDS:
            return None

        name = home_path.name
        handle = SandboxProcess(
            name=name,
            home=home_path,
            log_path=self.log_path_for(name),
            process=process,
            bus=self._bus,
        )
        self._session.attach(handle)
        handle.start_watching()
        self._logger.info(
            "sandbox_reattached",
            sandbox=name,
            channel=handle.channel,
            pid=handle.pid,
        )
        return handle

    def _base_environment(self) -> dict[str, str]:
        return dict(os.environ if self._environ is None else self._environ)


__all__ = ["ProcessLauncher", "SandboxProcess", "supports_windowed_child"]
