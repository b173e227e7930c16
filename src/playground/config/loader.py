"""
play-sandbox: runtime config loader.

Sources are layered in a fixed order, each one overriding the previous:

1. built-in defaults (``schema.DEFAULT_CONFIG``)
2. the TOML file (``$XDG_CONFIG_HOME/play/config.toml`` unless one is given)
3. ``PLAY_*`` environment variables listed in ``ENV_BINDINGS``
4. dotted ``section.key`` overrides passed by the CLI

Path fields are expanded (``~`` and ``$VARS``) and anchored at the directory of
the config file once every layer has been applied.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Final

from playground.config.schema import (
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
)

DEFAULT_CONFIG_DIRNAME: Final[str] = "play"
DEFAULT_CONFIG_FILE: Final[str] = "config.toml"
ENV_PREFIX: Final[str] = "PLAY_"

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def _as_text(env_name: str, raw: str) -> str:
    return raw.strip()


def _as_flag(env_name: str, raw: str) -> bool:
    token = raw.strip().lower()
    if token in _TRUTHY:
        return True
    if token in _FALSY:
        return False
    raise ConfigLoadError(f"{env_name}={raw!r} is not a boolean (use true/false, yes/no, 1/0)")


# git.depth stays text here; the schema accepts digit strings as well as integers.
ENV_BINDINGS: Final[Mapping[str, tuple[tuple[str, str], Callable[[str, str], object]]]] = {
    "PLAY_PATHS_SANDBOX_ROOT": (("paths", "sandbox_root"), _as_text),
    "PLAY_PATHS_SCRIPT_DIR": (("paths", "script_dir"), _as_text),
    "PLAY_PATHS_LOG_DIR": (("paths", "log_dir"), _as_text),
    "PLAY_APPLICATION_EXECUTABLE": (("application", "executable"), _as_text),
    "PLAY_APPLICATION_HOME_ENV_VAR": (("application", "home_env_var"), _as_text),
    "PLAY_APPLICATION_REQUIRE_DISPLAY": (("application", "require_display"), _as_flag),
    "PLAY_APPLICATION_UNWRAPPER_SUFFIX": (("application", "unwrapper_suffix"), _as_text),
    "PLAY_GIT_EXECUTABLE": (("git", "executable"), _as_text),
    "PLAY_GIT_RECURSIVE": (("git", "recursive"), _as_flag),
    "PLAY_GIT_DEPTH": (("git", "depth"), _as_text),
    "PLAY_OBSERVABILITY_LOG_LEVEL": (("observability", "log_level"), _as_text),
    "PLAY_OBSERVABILITY_LOG_TO_STDOUT": (("observability", "log_to_stdout"), _as_flag),
}


def default_config_path(environ: Mapping[str, str] | None = None) -> Path:
    """``$XDG_CONFIG_HOME/play/config.toml`` falling back to ``~/.config``."""

    env = os.environ if environ is None else environ
    xdg_home = env.get("XDG_CONFIG_HOME", "").strip()
    config_home = Path(xdg_home).expanduser() if xdg_home else Path.home() / ".config"
    return config_home / DEFAULT_CONFIG_DIRNAME / DEFAULT_CONFIG_FILE


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective config.

    An explicit ``config_path`` must exist; the default location may be absent.
    Raises ``ConfigLoadError`` for unreadable input and ``ConfigValidationError``
    when the merged result breaks the schema.
    """

    env = dict(os.environ if environ is None else environ)
    if config_path is None:
        source = default_config_path(env)
        from_file = _read_toml(source) if source.exists() else {}
    else:
        source = Path(config_path).expanduser().resolve()
        if not source.exists():
            raise ConfigLoadError(f"config file not found: {source}")
        from_file = _read_toml(source)

    config = assert_valid_config(merge_config(default_config(), from_file))
    for layer in (env_overrides(env), _dotted_overrides(cli_overrides or {})):
        config = merge_config(config, layer)
    config = assert_valid_config(config)
    return assert_valid_config(normalize_paths(config, base_dir=source.parent, environ=env))


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Nested override mapping built from the ``PLAY_*`` variables present."""

    overrides: dict[str, Any] = {}
    for env_name, ((section, key), convert) in sorted(ENV_BINDINGS.items()):
        raw = environ.get(env_name)
        if raw is not None:
            overrides.setdefault(section, {})[key] = convert(env_name, raw)
    return overrides


def normalize_paths(
    config: Mapping[str, object],
    *,
    base_dir: Path,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Expand ``~``/env vars and anchor relative path fields at ``base_dir``."""

    result = merge_config({}, config)
    home = (environ or {}).get("HOME")
    for section, key in PATH_FIELDS:
        block = result.get(section)
        if isinstance(block, dict) and isinstance(block.get(key), str):
            block[key] = _resolve_path(block[key], base_dir, home)
    return result


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Deterministic JSON dump of the effective config."""

    return json.dumps(config, sort_keys=True, indent=2, ensure_ascii=False)


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _dotted_overrides(overrides: Mapping[str, object]) -> dict[str, Any]:
    nested: dict[str, Any] = {}
    for dotted, value in sorted(overrides.items()):
        *parents, leaf = [part for part in dotted.split(".") if part] or [""]
        if not leaf:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        cursor = nested
        for part in parents:
            cursor = cursor.setdefault(part, {})
        cursor[leaf] = value
    return nested


def _resolve_path(raw: str, base_dir: Path, home: str | None) -> str:
    text = os.path.expandvars(raw)
    if home and (text == "~" or text.startswith("~/")):
        text = home + text[1:]
    path = Path(text).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return Path(os.path.normpath(path)).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_BINDINGS",
    "ENV_PREFIX",
    "default_config_path",
    "dump_effective_config",
    "env_overrides",
    "load_config",
    "normalize_paths",
]
