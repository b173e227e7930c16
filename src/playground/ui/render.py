"""Human-readable output for ``play`` commands, rendered with ``rich``.

Color is off under ``--no-color`` or a non-empty ``NO_COLOR``. Values such as
sandbox names, URLs and paths are escaped so rich markup in them prints literally.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:
    from collections.abc import Sequence


def _use_color(no_color: bool) -> bool:
    return not (no_color or os.environ.get("NO_COLOR"))


class CLIRenderer:
    """Deterministic line-oriented output with optional color."""

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        console: Console | None = None,
    ) -> None:
        self.verbose = verbose
        self.console = console or Console(
            no_color=not _use_color(no_color),
            highlight=False,
            soft_wrap=True,
        )

    def heading(self, text: str) -> None:
        self.console.print(f"[bold]{escape(text)}[/bold]")

    def kv(self, key: str, value: object) -> None:
        self.console.print(f"{escape(key)}: {escape(str(value))}")

    def text(self, line: str) -> None:
        self.console.print(escape(line))

    def section(self, title: str) -> None:
        self.console.print()
        self.heading(title)

    def warning(self, text: str) -> None:
        self.console.print(f"  [yellow]Warning:[/yellow] {escape(text)}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self.console.print(f"  {escape(prefix)}{escape(entry)}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Print a borderless table; nothing is printed for zero rows."""

        if not rows:
            return
        if title:
            self.section(title)
        grid = Table(box=None, show_edge=False, pad_edge=False, header_style="bold")
        for header in headers:
            grid.add_column(escape(header))
        for row in rows:
            grid.add_row(*(escape(str(cell)) for cell in row))
        self.console.print(grid)

    def ok(self, label: str) -> None:
        self.console.print(f"  [green]OK[/green]  {escape(label)}")

    def fail(self, label: str) -> None:
        self.console.print(f"  [red]FAIL[/red]  {escape(label)}")


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
