"""
play-sandbox: unit tests for config loader

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Deterministic env var path mapping and type coercion.
- Path normalization relative to the config file and the environment's home.
- Effective config dumping.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from playground.config.loader import (
    ConfigLoadError,
    default_config_path,
    dump_effective_config,
    env_overrides,
    load_config,
)
from playground.config.schema import ConfigValidationError


def _write_config(path: Path, body: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body, encoding="utf-8")
    return path


@pytest.mark.unit
def test_defaults_apply_without_config_file(tmp_path: Path) -> None:
    environ = {"HOME": str(tmp_path), "XDG_CONFIG_HOME": str(tmp_path / "xdg")}
    config = load_config(environ=environ)

    assert config["paths"]["sandbox_root"] == (tmp_path / ".emacs-play").as_posix()
    assert config["paths"]["script_dir"] == (tmp_path / "bin").as_posix()
    assert config["application"]["executable"] == "emacs"
    assert config["git"] == {"executable": "git", "recursive": True, "depth": 1}
    assert [preset["name"] for preset in config["presets"]] == ["prelude", "spacemacs", "purcell"]


@pytest.mark.unit
def test_precedence_cli_over_env_over_file(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "play.toml",
        """
[application]
executable = "emacs-file"
require_display = true

[git]
depth = 5
""",
    )
    environ = {
        "HOME": str(tmp_path),
        "PLAY_APPLICATION_EXECUTABLE": "emacs-env",
        "PLAY_APPLICATION_REQUIRE_DISPLAY": "no",
        "PLAY_GIT_DEPTH": "7",
    }

    from_env = load_config(config_path, environ=environ)
    from_cli = load_config(
        config_path,
        environ=environ,
        cli_overrides={"application.executable": "emacs-cli"},
    )

    assert from_env["application"]["executable"] == "emacs-env"
    assert from_env["application"]["require_display"] is False
    assert from_env["git"]["depth"] == "7"
    assert from_cli["application"]["executable"] == "emacs-cli"


@pytest.mark.unit
def test_file_values_override_defaults_and_presets_are_replaced(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "play.toml",
        """
[inherit]
paths = [".ssh", "./.ssh/", ".gitconfig"]

[[presets]]
url = "git@github.com:doomemacs/doomemacs.git"
depth = 0
""",
    )

    config = load_config(config_path, environ={"HOME": str(tmp_path)})

    assert config["inherit"]["paths"] == [".ssh", ".gitconfig"]
    assert config["presets"] == [{"url": "git@github.com:doomemacs/doomemacs.git", "depth": 0}]


@pytest.mark.unit
def test_relative_paths_anchor_at_config_directory(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "etc" / "play.toml",
        """
[paths]
sandbox_root = "sandboxes"
script_dir = "~/scripts"
""",
    )

    config = load_config(config_path, environ={"HOME": "/home/someone"})

    assert config["paths"]["sandbox_root"] == (tmp_path / "etc" / "sandboxes").resolve().as_posix()
    assert config["paths"]["script_dir"] == "/home/someone/scripts"


@pytest.mark.unit
def test_env_var_expansion_in_paths(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PLAY_TEST_LOGS", str(tmp_path / "logs"))
    config_path = _write_config(
        tmp_path / "play.toml", '[paths]\nlog_dir = "$PLAY_TEST_LOGS/play"\n'
    )

    config = load_config(config_path, environ={"HOME": str(tmp_path)})

    assert config["paths"]["log_dir"] == (tmp_path / "logs" / "play").as_posix()


@pytest.mark.unit
def test_missing_explicit_config_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="not found"):
        load_config(tmp_path / "absent.toml", environ={})


@pytest.mark.unit
def test_invalid_toml_is_a_load_error(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "play.toml", "[paths\n")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(config_path, environ={})


@pytest.mark.unit
def test_bad_env_boolean_is_a_load_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="PLAY_OBSERVABILITY_LOG_TO_STDOUT"):
        load_config(
            environ={
                "HOME": str(tmp_path),
                "XDG_CONFIG_HOME": str(tmp_path),
                "PLAY_OBSERVABILITY_LOG_TO_STDOUT": "maybe",
            }
        )


@pytest.mark.unit
def test_schema_violations_surface_as_validation_errors(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "play.toml",
        """
[git]
depth = -1

[application]
executable = "emacs"
home_env_var = "NOT-VALID"
""",
    )

    with pytest.raises(ConfigValidationError) as excinfo:
        load_config(config_path, environ={"HOME": str(tmp_path)})

    paths = {issue.path for issue in excinfo.value.issues}
    assert paths == {"git.depth", "application.home_env_var"}


@pytest.mark.unit
def test_default_config_path_prefers_xdg(tmp_path: Path) -> None:
    xdg = default_config_path({"XDG_CONFIG_HOME": str(tmp_path)})
    fallback = default_config_path({"XDG_CONFIG_HOME": "  "})

    assert xdg == tmp_path / "play" / "config.toml"
    assert fallback.parts[-3:] == (".config", "play", "config.toml")


@pytest.mark.unit
def test_default_config_file_is_read_from_xdg(tmp_path: Path) -> None:
    _write_config(
        tmp_path / "xdg" / "play" / "config.toml",
        '[application]\nexecutable = "emacs-nox"\nrequire_display = false\n',
    )

    environ = {"HOME": str(tmp_path), "XDG_CONFIG_HOME": str(tmp_path / "xdg")}
    config = load_config(environ=environ)

    assert config["application"]["executable"] == "emacs-nox"
    assert config["application"]["require_display"] is False


@pytest.mark.unit
def test_dump_effective_config_is_deterministic(tmp_path: Path) -> None:
    environ = {"HOME": str(tmp_path), "XDG_CONFIG_HOME": str(tmp_path)}
    first = dump_effective_config(load_config(environ=environ))
    second = dump_effective_config(load_config(environ=environ))

    assert first == second
    assert json.loads(first)["observability"] == {"log_level": "INFO", "log_to_stdout": False}


@pytest.mark.unit
def test_env_overrides_ignore_unknown_play_variables() -> None:
    overrides = env_overrides(
        {
            "PLAY_GIT_RECURSIVE": "off",
            "PLAY_PATHS_SCRIPT_DIR": " /opt/bin ",
            "PLAY_NOT_A_SETTING": "1",
            "PATH": "/usr/bin",
        }
    )

    assert overrides == {"git": {"recursive": False}, "paths": {"script_dir": "/opt/bin"}}


@pytest.mark.unit
@pytest.mark.parametrize("raw", ["full", "-1", "1.5"])
def test_env_depth_must_be_a_digit_string(tmp_path: Path, raw: str) -> None:
    config_path = _write_config(tmp_path / "play.toml", "")

    with pytest.raises(ConfigValidationError) as excinfo:
        load_config(config_path, environ={"HOME": str(tmp_path), "PLAY_GIT_DEPTH": raw})

    assert [issue.path for issue in excinfo.value.issues] == ["git.depth"]
