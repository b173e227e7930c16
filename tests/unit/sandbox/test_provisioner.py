"""
play-sandbox: unit tests for sandbox provisioning

Purpose
- ``git clone`` receives the configured flags and lands in ``<sandbox>/config``.
- A failed clone or a failed link leaves no sandbox directory behind.
- A pre-existing sandbox directory is reported and left untouched.

The ``git`` used here is a small script that records its arguments.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import pytest

from playground.sandbox.errors import ProvisionFailure
from playground.sandbox.linker import ContentLinker
from playground.sandbox.provisioner import CloneOptions, Provisioner, clone_options_from
from playground.sandbox.store import SandboxStore

_FAKE_GIT = """#!{python}
import json
import pathlib
import sys

args = sys.argv[1:]
pathlib.Path({record!r}).write_text(json.dumps(args), encoding="utf-8")
target = pathlib.Path(args[-1])
target.mkdir(parents=True)
(target / "init.el").write_text(";; cloned\\n", encoding="utf-8")
if {fail!r}:
    sys.stderr.write("fatal: repository not found\\n")
    sys.exit(128)
"""


class _RecordingLogger:
    def __init__(self) -> None:
        self.events: list[str] = []

    def info(self, event: str, **fields: Any) -> None:
        self.events.append(event)

    def warning(self, event: str, **fields: Any) -> None:
        self.events.append(event)


def _fake_git(tmp_path: Path, *, fail: bool = False) -> tuple[Path, Path]:
    record = tmp_path / "git-args.json"
    script = tmp_path / "bin" / "git"
    script.parent.mkdir(exist_ok=True)
    script.write_text(
        _FAKE_GIT.format(python=sys.executable, record=str(record), fail=fail),
        encoding="utf-8",
    )
    script.chmod(0o755)
    return script, record


def _provisioner(tmp_path: Path, git: Path, logger: _RecordingLogger) -> Provisioner:
    home = tmp_path / "home"
    (home / ".gnupg").mkdir(parents=True)
    store = SandboxStore(tmp_path / "sandboxes")
    linker = ContentLinker(home, [".gnupg"], logger=logger)
    return Provisioner(store, linker, git_executable=str(git), logger=logger)


@pytest.mark.unit
def test_provision_clones_into_config_and_links(tmp_path: Path) -> None:
    git, record = _fake_git(tmp_path)
    logger = _RecordingLogger()
    provisioner = _provisioner(tmp_path, git, logger)

    sandbox = provisioner.provision("prelude", "https://github.com/bbatsov/prelude.git")

    assert sandbox == (tmp_path / "sandboxes").resolve() / "prelude"
    assert (sandbox / "config" / "init.el").is_file()
    assert (sandbox / ".gnupg").is_symlink()
    assert json.loads(record.read_text(encoding="utf-8")) == [
        "clone",
        "--recursive",
        "--depth=1",
        "https://github.com/bbatsov/prelude.git",
        str(sandbox / "config"),
    ]
    assert logger.events[-1] == "sandbox_provisioned"


@pytest.mark.unit
def test_failed_clone_removes_sandbox_directory(tmp_path: Path) -> None:
    git, _ = _fake_git(tmp_path, fail=True)
    logger = _RecordingLogger()
    provisioner = _provisioner(tmp_path, git, logger)

    with pytest.raises(ProvisionFailure) as excinfo:
        provisioner.provision("broken", "https://github.com/nobody/missing.git")

    assert excinfo.value.returncode == 128
    assert "repository not found" in str(excinfo.value)
    assert excinfo.value.command[1] == "clone"
    assert not (tmp_path / "sandboxes" / "broken").exists()
    assert "sandbox_provision_rolled_back" in logger.events


@pytest.mark.unit
def test_failed_linking_is_a_provision_failure_and_rolls_back(tmp_path: Path) -> None:
    git, _ = _fake_git(tmp_path)
    logger = _RecordingLogger()
    home = tmp_path / "home"
    # The clone leaves config/init.el as a file, so its link parent cannot be created.
    (home / "config" / "init.el" / "keys").mkdir(parents=True)
    linker = ContentLinker(home, ["config/init.el/keys"], logger=logger)
    store = SandboxStore(tmp_path / "sandboxes")
    provisioner = Provisioner(store, linker, git_executable=str(git), logger=logger)

    with pytest.raises(ProvisionFailure, match="cannot link inherited content") as excinfo:
        provisioner.provision("prelude", "https://github.com/bbatsov/prelude.git")

    assert isinstance(excinfo.value.__cause__, OSError)
    assert not (tmp_path / "sandboxes" / "prelude").exists()
    assert "sandbox_provision_rolled_back" in logger.events


@pytest.mark.unit
def test_existing_directory_is_left_untouched(tmp_path: Path) -> None:
    git, record = _fake_git(tmp_path)
    existing = tmp_path / "sandboxes" / "prelude"
    existing.mkdir(parents=True)
    (existing / "keep.txt").write_text("mine", encoding="utf-8")
    logger = _RecordingLogger()
    provisioner = _provisioner(tmp_path, git, logger)

    with pytest.raises(ProvisionFailure):
        provisioner.provision("prelude", "https://github.com/bbatsov/prelude.git")

    assert (existing / "keep.txt").read_text(encoding="utf-8") == "mine"
    assert not record.exists()
    assert logger.events == ["sandbox_create_failed"]


@pytest.mark.unit
def test_missing_git_executable_is_a_provision_failure(tmp_path: Path) -> None:
    logger = _RecordingLogger()
    provisioner = _provisioner(tmp_path, tmp_path / "no-such-git", logger)

    with pytest.raises(ProvisionFailure, match="cannot run"):
        provisioner.provision("prelude", "https://github.com/bbatsov/prelude.git")

    assert not (tmp_path / "sandboxes" / "prelude").exists()


@pytest.mark.unit
def test_clone_options_render_flags() -> None:
    assert CloneOptions().to_args() == ("--recursive", "--depth=1")
    assert CloneOptions(recursive=False, depth=None).to_args() == ()
    assert CloneOptions(recursive=False, depth=0).to_args() == ()
    assert CloneOptions(recursive=True, depth="5").to_args() == ("--recursive", "--depth=5")


@pytest.mark.unit
def test_clone_options_from_loose_values() -> None:
    assert clone_options_from(True, "3") == CloneOptions(recursive=True, depth="3")
    assert clone_options_from(0, None) == CloneOptions(recursive=False, depth=None)
    with pytest.raises(ValueError):
        clone_options_from(True, 1.5)


@pytest.mark.unit
def test_clone_command_is_deterministic(tmp_path: Path) -> None:
    provisioner = _provisioner(tmp_path, Path("git"), _RecordingLogger())

    command = provisioner.clone_command(
        "user/repo", tmp_path / "x" / "config", CloneOptions(recursive=False, depth=2)
    )

    assert command == ("git", "clone", "--depth=2", "user/repo", str(tmp_path / "x" / "config"))
