"""Promote the last sandbox to the default launch target through wrapper scripts."""

from __future__ import annotations

import os
import re
import shlex
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import structlog
from jinja2 import Environment, StrictUndefined

from playground.constants import DEFAULT_HOME_ENV_VAR, DEFAULT_UNWRAPPER_SUFFIX, SCRIPT_MODE
from playground.sandbox.errors import PreconditionFailure
from playground.utils.fs import atomic_write

if TYPE_CHECKING:
    from collections.abc import Mapping

    from playground.sandbox.session import Session

Confirm = Callable[[str], bool]

_ENV_VAR_NAME: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_WRAPPER_TEMPLATE: Final[str] = """\
#!/bin/sh
# Generated by play: {{ purpose }}.
{{ home_env_var }}={{ home | shquote }}
export {{ home_env_var }}
exec {{ executable | shquote }} "$@"
"""


@dataclass(frozen=True, slots=True)
class PromotedScripts:
    """Paths of the two generated scripts and the homes they pin."""

    wrapper: Path
    unwrapper: Path
    sandbox_home: Path
    original_home: Path


class Promoter:
    """Write or remove the wrapper/unwrapper pair in ``script_dir``."""

    def __init__(
        self,
        session: Session,
        *,
        script_dir: Path | str,
        resolve_executable: Callable[[], Path],
        home_env_var: str = DEFAULT_HOME_ENV_VAR,
        unwrapper_suffix: str = DEFAULT_UNWRAPPER_SUFFIX,
        original_home: Path | str | None = None,
        executable_name: str | None = None,
        environ: Mapping[str, str] | None = None,
        logger: Any | None = None,
    ) -> None:
        if _ENV_VAR_NAME.fullmatch(home_env_var) is None:
            raise ValueError(f"home_env_var is not a valid variable name: {home_env_var!r}")
        if not unwrapper_suffix or "/" in unwrapper_suffix:
            raise ValueError("unwrapper_suffix must be a non-empty file name fragment")

        self._session = session
        self._script_dir = Path(script_dir).expanduser()
        self._resolve_executable = resolve_executable
        self._home_env_var = home_env_var
        self._unwrapper_suffix = unwrapper_suffix
        self._executable_name = executable_name
        env = os.environ if environ is None else environ
        if original_home is None:
            original_home = env.get(home_env_var) or Path.home()
        self._original_home = Path(original_home)
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

        self._environment = Environment(
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
            newline_sequence="\n",
        )
        self._environment.filters["shquote"] = lambda value: shlex.quote(str(value))
        self._template = self._environment.from_string(_WRAPPER_TEMPLATE)

    @property
    def original_home(self) -> Path:
        return self._original_home

    def script_paths(self) -> tuple[Path, Path]:
        """``(wrapper, unwrapper)`` paths named after the executable's base name."""

        basename = self._executable_name or self._resolve_executable().name
        wrapper = self._script_dir / basename
        unwrapper = self._script_dir / f"{basename}{self._unwrapper_suffix}"
        return wrapper, unwrapper

    def render(self, *, home: Path, executable: Path, purpose: str) -> str:
        return self._template.render(
            home_env_var=self._home_env_var,
            home=home,
            executable=executable,
            purpose=purpose,
        )

    def persist(self, confirm: Confirm) -> PromotedScripts | None:
        """Make the last launched sandbox the default; ``None`` when declined."""

        sandbox_home = self._session.last_sandbox_path
        if sandbox_home is None:
            raise PreconditionFailure("nothing launched yet")

        if not confirm(f"Make {sandbox_home.name!r} the default configuration?"):
            self._logger.info("persist_declined", sandbox=sandbox_home.name)
            return None

        executable = self._resolve_executable()
        wrapper, unwrapper = self.script_paths()
        self._script_dir.mkdir(parents=True, exist_ok=True)
        atomic_write(
            wrapper,
            self.render(home=sandbox_home, executable=executable, purpose="sandbox default"),
            mode=SCRIPT_MODE,
        )
        atomic_write(
            unwrapper,
            self.render(home=self._original_home, executable=executable, purpose="original home"),
            mode=SCRIPT_MODE,
        )
        self._logger.info(
            "sandbox_persisted",
            sandbox=sandbox_home.name,
            wrapper=str(wrapper),
            unwrapper=str(unwrapper),
        )
        return PromotedScripts(
            wrapper=wrapper,
            unwrapper=unwrapper,
            sandbox_home=sandbox_home,
            original_home=self._original_home,
        )

    def unpersist(self, confirm: Confirm) -> tuple[Path, ...] | None:
        """Delete both scripts; returns the paths actually removed, ``None`` when declined."""

        if not confirm("Remove the persisted default and restore the original home?"):
            self._logger.info("unpersist_declined")
            return None

        removed: list[Path] = []
        for path in self.script_paths():
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            removed.append(path)
        self._logger.info("sandbox_unpersisted", removed=[str(path) for path in removed])
        return tuple(removed)


__all__ = ["Confirm", "PromotedScripts", "Promoter"]
