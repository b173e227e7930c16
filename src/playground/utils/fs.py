"""Filesystem helpers shared by the session file, wrapper scripts and provisioning."""

from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "remove_tree_quietly",
    "which_excluding",
]


def atomic_write(
    path: PathLike,
    data: bytes | str,
    *,
    encoding: str = "utf-8",
    mode: int | None = None,
) -> None:
    """Replace ``path`` with ``data`` in one ``os.replace`` step.

    The content is written and fsynced to a sibling temp file first, so readers
    see either the old file or the complete new one. ``mode`` is applied before
    the swap. The parent directory must already exist.
    """

    target = Path(path)
    payload = data.encode(encoding) if isinstance(data, str) else data
    with tempfile.NamedTemporaryFile(
        "wb", dir=target.parent, prefix=f".{target.name}.", suffix=".tmp", delete=False
    ) as scratch:
        staged = Path(scratch.name)
        try:
            scratch.write(payload)
            scratch.flush()
            os.fsync(scratch.fileno())
        except BaseException:
            scratch.close()
            staged.unlink(missing_ok=True)
            raise
    try:
        if mode is not None:
            staged.chmod(mode)
        os.replace(staged, target)
    except BaseException:
        staged.unlink(missing_ok=True)
        raise


def remove_tree_quietly(path: PathLike) -> bool:
    """Remove ``path`` recursively; return ``True`` when nothing is left behind."""

    doomed = Path(path)
    if doomed.is_dir() and not doomed.is_symlink():
        shutil.rmtree(doomed, ignore_errors=True)
    else:
        with contextlib.suppress(OSError):
            doomed.unlink()
    return not os.path.lexists(doomed)


def which_excluding(
    name: str,
    *,
    exclude: Iterable[PathLike] = (),
    search_path: str | None = None,
) -> Path | None:
    """``shutil.which`` over ``PATH`` minus the ``exclude`` directories.

    A ``name`` containing a separator is checked directly instead of searched.
    """

    if os.sep in name:
        direct = Path(name).expanduser()
        return direct.resolve() if direct.is_file() and os.access(direct, os.X_OK) else None

    if search_path is None:
        search_path = os.environ.get("PATH", os.defpath)
    skipped = {Path(entry).expanduser().resolve() for entry in exclude}
    remaining = [
        entry
        for entry in search_path.split(os.pathsep)
        if entry and Path(entry).expanduser().resolve() not in skipped
    ]
    found = shutil.which(name, path=os.pathsep.join(remaining))
    return None if found is None else Path(found).resolve()
