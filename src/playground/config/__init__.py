"""
play-sandbox config package public API.

Purpose
- Export config loading/validation entrypoints and public error types.

Functional requirements
- Support loading from ``config.toml`` + ``PLAY_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from playground.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    default_config_path,
    dump_effective_config,
    load_config,
    normalize_paths,
)
from playground.config.schema import (
    DEFAULT_CONFIG,
    PATH_FIELDS,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    PlayConfig,
    assert_valid_config,
    default_config,
    merge_config,
    repo_descriptors,
    validate_config,
)

__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PATH_FIELDS",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "PlayConfig",
    "assert_valid_config",
    "default_config",
    "default_config_path",
    "dump_effective_config",
    "load_config",
    "merge_config",
    "normalize_paths",
    "repo_descriptors",
    "validate_config",
]
