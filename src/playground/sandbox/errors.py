"""Error kinds raised by the sandbox lifecycle."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


class SandboxError(RuntimeError):
    """Base error for sandbox lifecycle failures."""


class RecognitionFailure(SandboxError):
    """Raised when input names neither a sandbox, a preset, nor a repository."""

    def __init__(self, text: str, message: str | None = None) -> None:
        self.text = text
        super().__init__(message or f"not an installed sandbox, preset, or repository: {text}")


class ProvisionFailure(SandboxError):
    """Raised when a sandbox could not be created or filled; nothing partial is left."""

    def __init__(
        self,
        message: str,
        *,
        command: Sequence[str] = (),
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class PreconditionFailure(SandboxError):
    """Raised when an operation runs without the state or capability it needs."""


class MissingRepoReference(SandboxError):
    """Raised when a start-with-configuration call carries no repository URL."""


__all__ = [
    "MissingRepoReference",
    "PreconditionFailure",
    "ProvisionFailure",
    "RecognitionFailure",
    "SandboxError",
]
