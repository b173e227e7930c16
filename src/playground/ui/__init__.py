"""UI package exports for the ``play`` command line."""

from playground.ui.cli import build_parser, build_runtime, run_cli
from playground.ui.prompt import make_ask_name, make_confirm
from playground.ui.render import CLIRenderer, create_renderer

__all__ = [
    "CLIRenderer",
    "build_parser",
    "build_runtime",
    "create_renderer",
    "make_ask_name",
    "make_confirm",
    "run_cli",
]
