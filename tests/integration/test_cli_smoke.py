"""
play-sandbox: CLI subprocess smoke contracts

Purpose
- Exercise ``python -m playground`` end to end: exit codes, JSON output, and the
  files each command leaves behind.
- Checkout of a local configuration repository, then persist and return.
- A restart replaces the application that an earlier invocation started.
"""

from __future__ import annotations

import json
import os
import shutil
import subprocess
import sys
import time
from pathlib import Path

import psutil
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = PROJECT_ROOT / "src"

pytestmark = pytest.mark.integration

_CONFIG = """
[paths]
sandbox_root = "{root}/sandboxes"
script_dir = "{root}/scripts"
log_dir = "{root}/logs"

[application]
executable = "fakeapp"
require_display = false

[inherit]
paths = [".gnupg"]

[[presets]]
url = "https://github.com/bbatsov/prelude.git"
name = "prelude"
"""


def _run_cli(workspace: Path, *args: str) -> subprocess.CompletedProcess[str]:
    env = os.environ.copy()
    existing_pythonpath = env.get("PYTHONPATH")
    src_pythonpath = str(SRC_PATH)
    env["PYTHONPATH"] = (
        src_pythonpath if not existing_pythonpath else f"{src_pythonpath}:{existing_pythonpath}"
    )
    env["HOME"] = str(workspace / "home")
    env["XDG_CONFIG_HOME"] = str(workspace / "xdg")
    env["PATH"] = os.pathsep.join([str(workspace / "bin"), env.get("PATH", os.defpath)])
    env["GIT_TERMINAL_PROMPT"] = "0"
    env["GIT_CONFIG_NOSYSTEM"] = "1"
    env.pop("DISPLAY", None)
    env.pop("WAYLAND_DISPLAY", None)
    return subprocess.run(
        [sys.executable, "-m", "playground", *args, "--config", str(workspace / "play.toml")],
        cwd=workspace,
        text=True,
        capture_output=True,
        stdin=subprocess.DEVNULL,
        check=False,
        env=env,
        timeout=120,
    )


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    (tmp_path / "home" / ".gnupg").mkdir(parents=True)
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    app = bin_dir / "fakeapp"
    app.write_text(f"#!{sys.executable}\nprint('fakeapp running')\n", encoding="utf-8")
    app.chmod(0o755)
    (tmp_path / "play.toml").write_text(_CONFIG.format(root=tmp_path.as_posix()), encoding="utf-8")
    return tmp_path


def test_list_json_on_empty_root(workspace: Path) -> None:
    completed = _run_cli(workspace, "list", "--json")

    assert completed.returncode == 0, completed.stderr
    payload = json.loads(completed.stdout)
    assert payload["sandboxes"] == []
    assert payload["presets"] == [
        {"name": "prelude", "url": "https://github.com/bbatsov/prelude.git", "installed": False}
    ]


def test_config_json_reflects_file(workspace: Path) -> None:
    completed = _run_cli(workspace, "config", "--json")

    assert completed.returncode == 0, completed.stderr
    config = json.loads(completed.stdout)["config"]
    assert config["application"]["require_display"] is False
    assert config["inherit"]["paths"] == [".gnupg"]


def test_unknown_target_exits_with_one(workspace: Path) -> None:
    completed = _run_cli(workspace, "checkout", "definitely-not-a-sandbox")

    assert completed.returncode == 1
    assert "error: not an installed sandbox, preset, or repository" in completed.stderr
    assert not (workspace / "sandboxes" / "definitely-not-a-sandbox").exists()


def test_invalid_config_exits_with_two(workspace: Path) -> None:
    (workspace / "play.toml").write_text("[observability]\nlog_level = 3\n", encoding="utf-8")

    completed = _run_cli(workspace, "list")

    assert completed.returncode == 2
    assert "observability.log_level" in completed.stderr


def test_restart_without_launch_exits_with_one(workspace: Path) -> None:
    completed = _run_cli(workspace, "restart", "--yes")

    assert completed.returncode == 1
    assert "nothing run yet" in completed.stderr


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
def test_checkout_persist_return_flow(workspace: Path) -> None:
    origin = workspace / "configs" / "emacs"
    origin.mkdir(parents=True)
    (origin / "init.el").write_text(";; hello\n", encoding="utf-8")
    for args in (
        ("init", "--quiet"),
        ("add", "init.el"),
        ("-c", "user.name=play", "-c", "user.email=play@example.invalid", "commit", "-qm", "init"),
    ):
        subprocess.run(["git", *args], cwd=origin, check=True, capture_output=True)

    checkout = _run_cli(workspace, "checkout", str(origin), "--name", "mine")
    assert checkout.returncode == 0, checkout.stderr
    assert "Launched: mine" in checkout.stdout
    sandbox = workspace / "sandboxes" / "mine"
    assert (sandbox / "config" / "init.el").is_file()
    assert (sandbox / ".gnupg").is_symlink()

    persist = _run_cli(workspace, "persist", "--yes")
    assert persist.returncode == 0, persist.stderr
    wrapper = (workspace / "scripts" / "fakeapp").read_text(encoding="utf-8")
    assert f"HOME={sandbox.resolve().as_posix()}\n" in wrapper
    unwrapper = (workspace / "scripts" / "fakeapp-noplay").read_text(encoding="utf-8")
    assert f"HOME={(workspace / 'home').as_posix()}\n" in unwrapper

    declined = _run_cli(workspace, "return")
    assert declined.returncode == 1
    assert (workspace / "scripts" / "fakeapp").exists()

    returned = _run_cli(workspace, "return", "--yes")
    assert returned.returncode == 0, returned.stderr
    assert not (workspace / "scripts" / "fakeapp").exists()
    assert not (workspace / "scripts" / "fakeapp-noplay").exists()

    listing = json.loads(_run_cli(workspace, "list", "--json").stdout)
    assert listing["last_sandbox"] == sandbox.resolve().as_posix()
    assert [item["name"] for item in listing["sandboxes"]] == ["mine"]


_SLEEPING_APP = """#!{python}
import os
import time

with open({pids!r}, "a", encoding="utf-8") as handle:
    handle.write(str(os.getpid()) + "\\n")
time.sleep(60)
"""


def _wait_for_pids(path: Path, count: int, timeout: float = 30.0) -> list[int]:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if path.exists():
            pids = [int(token) for token in path.read_text(encoding="utf-8").split()]
            if len(pids) >= count:
                return pids
        time.sleep(0.1)
    raise AssertionError(f"expected {count} application start(s) in {path}")


def _running(pids: list[int]) -> list[int]:
    running: list[int] = []
    for pid in pids:
        try:
            if psutil.Process(pid).status() != psutil.STATUS_ZOMBIE:
                running.append(pid)
        except psutil.NoSuchProcess:
            continue
    return running


def test_restart_replaces_application_started_by_earlier_invocation(workspace: Path) -> None:
    pid_file = workspace / "app-pids"
    (workspace / "bin" / "fakeapp").write_text(
        _SLEEPING_APP.format(python=sys.executable, pids=str(pid_file)), encoding="utf-8"
    )
    (workspace / "sandboxes" / "mine" / "config").mkdir(parents=True)
    try:
        checkout = _run_cli(workspace, "checkout", "mine")
        assert checkout.returncode == 0, checkout.stderr
        [first] = _wait_for_pids(pid_file, 1)
        state = json.loads((workspace / "sandboxes" / ".session.json").read_text("utf-8"))
        assert state["process"]["pid"] == first

        restart = _run_cli(workspace, "restart", "--yes")
        assert restart.returncode == 0, restart.stderr
        assert "Launched: mine" in restart.stdout
        first_again, second = _wait_for_pids(pid_file, 2)

        assert first_again == first
        assert _running([first, second]) == [second]
    finally:
        if pid_file.exists():
            for pid in _running([int(token) for token in pid_file.read_text("utf-8").split()]):
                psutil.Process(pid).kill()
