"""
play-sandbox: configuration schema and validation.

``DEFAULT_CONFIG`` is the authoritative set of defaults. ``validate_config``
walks a candidate config table by table and reports every problem it finds,
each tagged with a dotted field path such as ``presets[1].depth``.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, NotRequired, TypedDict

from playground.constants import (
    DEFAULT_CLONE_DEPTH,
    DEFAULT_CLONE_RECURSIVE,
    DEFAULT_HOME_ENV_VAR,
    DEFAULT_UNWRAPPER_SUFFIX,
)
from playground.sandbox.lifecycle import RepoDescriptor
from playground.sandbox.linker import normalize_inherited_paths
from playground.sandbox.store import validate_name

_ENV_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_LOG_LEVELS: Final[tuple[str, ...]] = ("CRITICAL", "DEBUG", "ERROR", "INFO", "WARNING")

PATHS_KEYS: Final[tuple[str, ...]] = ("sandbox_root", "script_dir", "log_dir")
# Expanded and anchored at the config file directory by the loader.
PATH_FIELDS: Final[tuple[tuple[str, str], ...]] = tuple(("paths", key) for key in PATHS_KEYS)


class PathsConfig(TypedDict):
    sandbox_root: str
    script_dir: str
    log_dir: str


class ApplicationConfig(TypedDict):
    executable: str
    args: list[str]
    home_env_var: str
    require_display: bool
    unwrapper_suffix: str


class GitConfig(TypedDict):
    executable: str
    recursive: bool
    depth: int | str


class InheritConfig(TypedDict):
    paths: list[str]


class ObservabilityConfig(TypedDict):
    log_level: str
    log_to_stdout: bool


class PresetConfig(TypedDict):
    url: str
    name: NotRequired[str]
    recursive: NotRequired[bool]
    depth: NotRequired[int | str]


class PlayConfig(TypedDict):
    paths: PathsConfig
    application: ApplicationConfig
    git: GitConfig
    inherit: InheritConfig
    observability: ObservabilityConfig
    presets: list[PresetConfig]


DEFAULT_CONFIG: Final[PlayConfig] = {
    "paths": {
        "sandbox_root": "~/.emacs-play",
        "script_dir": "~/bin",
        "log_dir": "~/.emacs-play/.logs",
    },
    "application": {
        "executable": "emacs",
        "args": [],
        "home_env_var": DEFAULT_HOME_ENV_VAR,
        "require_display": True,
        "unwrapper_suffix": DEFAULT_UNWRAPPER_SUFFIX,
    },
    "git": {
        "executable": "git",
        "recursive": DEFAULT_CLONE_RECURSIVE,
        "depth": DEFAULT_CLONE_DEPTH,
    },
    "inherit": {
        "paths": [".gnupg", ".authinfo.gpg"],
    },
    "observability": {
        "log_level": "INFO",
        "log_to_stdout": False,
    },
    "presets": [
        {"url": "https://github.com/bbatsov/prelude.git", "name": "prelude"},
        {"url": "https://github.com/syl20bnr/spacemacs.git", "name": "spacemacs"},
        {"url": "https://github.com/purcell/emacs.d.git", "name": "purcell"},
    ],
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """The config failed validation; ``issues`` lists every problem found."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "- <root>: rejected"))


def default_config() -> PlayConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto ``base``; lists (presets, args) are replaced wholesale."""

    merged: dict[str, Any] = {}
    for key, value in base.items():
        if isinstance(value, Mapping):
            merged[key] = merge_config(value, {})
        else:
            merged[key] = copy.deepcopy(value)
    for key, value in overlay.items():
        if isinstance(value, Mapping):
            current = merged.get(key)
            merged[key] = merge_config(current if isinstance(current, Mapping) else {}, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    issues: list[ConfigValidationIssue] = []
    if not isinstance(config, Mapping):
        issues.append(
            ConfigValidationIssue("<root>", f"expected a table, got {type(config).__name__}")
        )
        return ConfigValidationResult(config=None, issues=tuple(issues))

    normalized = _check_root(_Table(config, "", issues))
    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return the normalized config or raise ``ConfigValidationError``."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def repo_descriptors(config: Mapping[str, Any]) -> tuple[RepoDescriptor, ...]:
    """Preset list of a validated config as ``RepoDescriptor`` values, in order."""

    git = config.get("git", {})
    return tuple(
        RepoDescriptor(
            url=preset["url"],
            name=preset.get("name"),
            recursive=preset.get("recursive", git.get("recursive", DEFAULT_CLONE_RECURSIVE)),
            depth=preset.get("depth", git.get("depth", DEFAULT_CLONE_DEPTH)),
        )
        for preset in config.get("presets", [])
    )


_UNSET: Final = object()


class _Table:
    """One TOML table under validation; problems are appended to the shared list."""

    def __init__(
        self, raw: Mapping[object, object], path: str, issues: list[ConfigValidationIssue]
    ) -> None:
        self.path = path
        self.issues = issues
        self.values: dict[str, object] = {}
        for key, value in raw.items():
            if isinstance(key, str):
                self.values[key] = value
            else:
                self.flag(path or "<root>", f"table keys must be strings, got {key!r}")

    def at(self, key: str) -> str:
        return f"{self.path}.{key}" if self.path else key

    def flag(self, path: str, message: str) -> None:
        self.issues.append(ConfigValidationIssue(path=path, message=message))

    def allow_only(self, *keys: str) -> None:
        for key in sorted(set(self.values) - set(keys)):
            self.flag(self.at(key), "unknown field")

    def table(self, key: str) -> _Table | None:
        if key not in self.values:
            self.flag(self.at(key), "missing required section")
            return None
        raw = self.values[key]
        if not isinstance(raw, Mapping):
            self.flag(self.at(key), f"expected a table, got {type(raw).__name__}")
            return None
        return _Table(raw, self.at(key), self.issues)

    def _fetch(self, key: str, default: object) -> object:
        if key in self.values:
            return self.values[key]
        if default is _UNSET:
            self.flag(self.at(key), "missing required field")
        return default

    def text(self, key: str, default: object = _UNSET) -> str | None:
        raw = self._fetch(key, default)
        if raw is _UNSET:
            return None
        if not isinstance(raw, str):
            self.flag(self.at(key), f"expected string, got {type(raw).__name__}")
            return None
        if not raw.strip():
            self.flag(self.at(key), "must not be empty")
            return None
        return raw.strip()

    def path_text(self, key: str) -> str | None:
        value = self.text(key)
        if value is not None and "\x00" in value:
            self.flag(self.at(key), "must not contain NUL bytes")
            return None
        return value

    def boolean(self, key: str, default: object = _UNSET) -> bool | None:
        raw = self._fetch(key, default)
        if raw is _UNSET:
            return None
        if not isinstance(raw, bool):
            self.flag(self.at(key), f"expected boolean, got {type(raw).__name__}")
            return None
        return raw

    def depth(self, key: str, default: object = _UNSET) -> int | str | None:
        raw = self._fetch(key, default)
        if raw is _UNSET:
            return None
        if isinstance(raw, bool) or not isinstance(raw, (int, str)):
            self.flag(self.at(key), f"expected integer or string, got {type(raw).__name__}")
            return None
        if isinstance(raw, int):
            if raw < 0:
                self.flag(self.at(key), "must be >= 0")
                return None
            return raw
        digits = raw.strip()
        if digits and not digits.isdigit():
            self.flag(self.at(key), "must be a non-negative integer")
            return None
        return digits

    def strings(self, key: str) -> list[tuple[int, str]]:
        raw = self.values.get(key, [])
        if not isinstance(raw, (list, tuple)):
            self.flag(self.at(key), f"expected array of strings, got {type(raw).__name__}")
            return []
        found: list[tuple[int, str]] = []
        for index, item in enumerate(raw):
            if isinstance(item, str):
                found.append((index, item))
            else:
                self.flag(f"{self.at(key)}[{index}]", f"expected string, got {type(item).__name__}")
        return found


def _keep(out: dict[str, Any], key: str, value: object) -> None:
    if value is not None:
        out[key] = value


def _check_root(root: _Table) -> dict[str, Any]:
    checks = {
        "application": _check_application,
        "git": _check_git,
        "inherit": _check_inherit,
        "observability": _check_observability,
        "paths": _check_paths,
    }
    root.allow_only(*checks, "presets")
    out: dict[str, Any] = {}
    for name, check in checks.items():
        section = root.table(name)
        if section is not None:
            out[name] = check(section)
    out["presets"] = _check_presets(root)
    return out


def _check_paths(table: _Table) -> dict[str, Any]:
    table.allow_only(*PATHS_KEYS)
    out: dict[str, Any] = {}
    for key in PATHS_KEYS:
        _keep(out, key, table.path_text(key))
    return out


def _check_application(table: _Table) -> dict[str, Any]:
    table.allow_only("executable", "args", "home_env_var", "require_display", "unwrapper_suffix")
    out: dict[str, Any] = {}
    _keep(out, "executable", table.text("executable"))
    out["args"] = [item for _, item in table.strings("args")]

    env_var = table.text("home_env_var", DEFAULT_HOME_ENV_VAR)
    if env_var is not None and not _ENV_NAME_PATTERN.fullmatch(env_var):
        table.flag(table.at("home_env_var"), "must be an environment variable name")
        env_var = None
    _keep(out, "home_env_var", env_var)

    _keep(out, "require_display", table.boolean("require_display", True))

    suffix = table.text("unwrapper_suffix", DEFAULT_UNWRAPPER_SUFFIX)
    if suffix is not None and "/" in suffix:
        table.flag(table.at("unwrapper_suffix"), "must not contain '/'")
        suffix = None
    _keep(out, "unwrapper_suffix", suffix)
    return out


def _check_git(table: _Table) -> dict[str, Any]:
    table.allow_only("executable", "recursive", "depth")
    out: dict[str, Any] = {}
    _keep(out, "executable", table.text("executable", "git"))
    _keep(out, "recursive", table.boolean("recursive", DEFAULT_CLONE_RECURSIVE))
    _keep(out, "depth", table.depth("depth", DEFAULT_CLONE_DEPTH))
    return out


def _check_inherit(table: _Table) -> dict[str, Any]:
    table.allow_only("paths")
    accepted: list[str] = []
    for index, item in table.strings("paths"):
        try:
            accepted.extend(normalize_inherited_paths([item]))
        except ValueError as exc:
            table.flag(f"{table.at('paths')}[{index}]", str(exc))
    return {"paths": list(dict.fromkeys(accepted))}


def _check_observability(table: _Table) -> dict[str, Any]:
    table.allow_only("log_level", "log_to_stdout")
    out: dict[str, Any] = {}
    level = table.text("log_level", "INFO")
    if level is not None and level.upper() not in _LOG_LEVELS:
        table.flag(
            table.at("log_level"),
            f"invalid value {level!r}; expected one of: {', '.join(_LOG_LEVELS)}",
        )
        level = None
    _keep(out, "log_level", level.upper() if level else None)
    _keep(out, "log_to_stdout", table.boolean("log_to_stdout", False))
    return out


def _check_presets(root: _Table) -> list[dict[str, Any]]:
    raw_presets = root.values.get("presets", [])
    if not isinstance(raw_presets, (list, tuple)):
        root.flag("presets", f"expected array of tables, got {type(raw_presets).__name__}")
        return []

    presets: list[dict[str, Any]] = []
    for index, raw in enumerate(raw_presets):
        where = f"presets[{index}]"
        if not isinstance(raw, Mapping):
            root.flag(where, f"expected a table, got {type(raw).__name__}")
            continue
        table = _Table(raw, where, root.issues)
        table.allow_only("url", "name", "recursive", "depth")
        preset: dict[str, Any] = {}
        _keep(preset, "url", table.text("url"))
        if "name" in table.values:
            _keep(preset, "name", table.text("name"))
        if "recursive" in table.values:
            _keep(preset, "recursive", table.boolean("recursive"))
        if "depth" in table.values:
            _keep(preset, "depth", table.depth("depth"))

        if "url" in preset:
            sandbox_name = RepoDescriptor(url=preset["url"], name=preset.get("name")).sandbox_name
            if not sandbox_name:
                table.flag(where, "preset needs a name; none can be derived from its url")
            else:
                try:
                    validate_name(sandbox_name)
                except ValueError as exc:
                    table.flag(table.at("name"), str(exc))
        presets.append(preset)
    return presets


__all__ = [
    "DEFAULT_CONFIG",
    "PATH_FIELDS",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "PlayConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "repo_descriptors",
    "validate_config",
]
