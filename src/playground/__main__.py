"""Module entrypoint for ``python -m playground``."""

from __future__ import annotations

from playground.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
