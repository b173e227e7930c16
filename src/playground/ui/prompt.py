"""Interactive confirmation and name prompts for destructive or ambiguous operations."""

from __future__ import annotations

import sys
from collections.abc import Callable

from rich.console import Console
from rich.prompt import Confirm, Prompt

ConfirmFn = Callable[[str], bool]
AskNameFn = Callable[[str], "str | None"]


def make_confirm(*, assume_yes: bool = False, console: Console | None = None) -> ConfirmFn:
    """Build the confirmation callback handed to promoter and restart operations.

    ``assume_yes`` answers every question with yes. Without a terminal on stdin the
    question cannot be asked and is answered with no.
    """

    target = console or Console(stderr=True, highlight=False)

    def confirm(question: str) -> bool:
        if assume_yes:
            return True
        if not sys.stdin.isatty():
            target.print(f"{question} [not a terminal; pass --yes to confirm]", markup=False)
            return False
        try:
            return Confirm.ask(question, console=target, default=False)
        except EOFError:
            return False

    return confirm


def make_ask_name(*, console: Console | None = None) -> AskNameFn | None:
    """Name prompt for repositories whose sandbox name cannot be derived."""

    if not sys.stdin.isatty():
        return None
    target = console or Console(stderr=True, highlight=False)

    def ask_name(url: str) -> str | None:
        try:
            answer = Prompt.ask(f"Sandbox name for {url}", console=target, default="")
        except EOFError:
            return None
        return answer.strip() or None

    return ask_name


__all__ = ["AskNameFn", "ConfirmFn", "make_ask_name", "make_confirm"]
