"""Process entrypoint for ``play`` and ``python -m playground``."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    """Exit statuses of the ``play`` command."""

    SUCCESS = 0
    OPERATION_FAILED = 1
    CONFIG_ERROR = 2
    INTERNAL_ERROR = 4


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Run one ``play`` command and translate failures into an exit status."""

    try:
        from playground.ui.cli import run_cli

        status: object = run_cli(argv)
    except SystemExit as exc:
        status = exc.code
    except KeyboardInterrupt:
        print("interrupted", file=sys.stderr)
        return int(ExitCode.OPERATION_FAILED)
    except Exception as exc:  # noqa: BLE001 - every failure becomes an exit status.
        code = exit_code_for(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            print(f"error: {str(exc).strip() or type(exc).__name__}", file=sys.stderr)
        return int(code)
    return _as_exit_code(status)


def exit_code_for(exc: BaseException) -> ExitCode:
    """Classify ``exc`` by the first config or sandbox error in its cause chain."""

    from playground.config.loader import ConfigLoadError
    from playground.config.schema import ConfigValidationError
    from playground.sandbox.errors import SandboxError

    for item in _causes(exc):
        if isinstance(item, (ConfigLoadError, ConfigValidationError)):
            return ExitCode.CONFIG_ERROR
        if isinstance(item, SandboxError):
            return ExitCode.OPERATION_FAILED
    return ExitCode.INTERNAL_ERROR


def _causes(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


def _as_exit_code(status: object) -> int:
    if status is None:
        return int(ExitCode.SUCCESS)
    if isinstance(status, int) and status in {code.value for code in ExitCode}:
        return int(status)
    if isinstance(status, str) and status.strip():
        print(status.strip(), file=sys.stderr)
    return int(ExitCode.INTERNAL_ERROR)


__all__ = ["ExitCode", "cli_entrypoint", "exit_code_for"]
