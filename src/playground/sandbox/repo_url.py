"""Repository reference recognition, GitHub normalization, and name derivation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Final

_SCP_LIKE_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9._-]+@[A-Za-z0-9.-]+:.+\.git$")
_SCHEME_URL_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?:ssh|git|https?|file)://.+\.git/?$", re.IGNORECASE
)
_SHORTHAND_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<owner>[-a-z0-9_.]+)/(?P<repo>[-a-z0-9_.]+)$", re.IGNORECASE
)
_GITHUB_SSH_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?:ssh://)?git@github\.com[:/](?P<owner>[-A-Za-z0-9_.]+)/(?P<repo>[-A-Za-z0-9_.]+?)"
    r"(?:\.git)?/?$"
)
_GITHUB_HTTPS_RE: Final[re.Pattern[str]] = re.compile(
    r"^https?://(?:www\.)?github\.com/(?P<owner>[-A-Za-z0-9_.]+)/(?P<repo>[-A-Za-z0-9_.]+?)"
    r"(?:\.git)?/?$",
    re.IGNORECASE,
)
_DOT_SEGMENTS: Final[frozenset[str]] = frozenset({".", ".."})


def is_github_shorthand(text: str) -> bool:
    """Return ``True`` for ``owner/repo`` strings (case-insensitive)."""

    match = _SHORTHAND_RE.fullmatch(text.strip())
    if match is None:
        return False
    return match.group("owner") not in _DOT_SEGMENTS and match.group("repo") not in _DOT_SEGMENTS


def is_local_repository(text: str) -> bool:
    """Return ``True`` for a bare ``*.git`` directory or a working tree with ``.git``."""

    candidate = Path(os.path.expandvars(text.strip())).expanduser()
    if not candidate.is_dir():
        return False
    if candidate.name.endswith(".git"):
        return True
    return (candidate / ".git").exists()


def recognize(text: str) -> bool:
    """Return ``True`` when ``text`` plausibly names a cloneable git repository."""

    value = text.strip()
    if not value:
        return False
    if _SCP_LIKE_RE.fullmatch(value) or _SCHEME_URL_RE.fullmatch(value):
        return True
    if parse_github_shorthand(value) is not None:
        return True
    return is_local_repository(value)


def parse_github_shorthand(url: str) -> str | None:
    """Extract canonical ``owner/repo`` from a GitHub SSH, HTTPS, or shorthand reference."""

    value = url.strip()
    for pattern in (_GITHUB_SSH_RE, _GITHUB_HTTPS_RE):
        match = pattern.fullmatch(value)
        if match is not None:
            return _canonical(match.group("owner"), match.group("repo"))

    if is_github_shorthand(value):
        owner, _, repo = value.partition("/")
        return _canonical(owner, repo)
    return None


def to_https_url(shorthand: str) -> str:
    """Return ``https://github.com/{owner}/{repo}.git`` for an ``owner/repo`` segment."""

    owner, sep, repo = shorthand.strip().partition("/")
    if not sep or not owner or not repo:
        raise ValueError(f"expected owner/repo, got {shorthand!r}")
    return f"https://github.com/{owner}/{_strip_git_suffix(repo)}.git"


def derive_name(url: str) -> str:
    """Return the GitHub owner for ``url`` or ``""`` when it cannot be derived."""

    shorthand = parse_github_shorthand(url)
    if shorthand is None:
        return ""
    return shorthand.partition("/")[0]


def normalize_url(text: str) -> str:
    """Canonical clone URL: GitHub forms become HTTPS, local paths become absolute."""

    value = text.strip()
    shorthand = parse_github_shorthand(value)
    if shorthand is not None and not is_local_repository(value):
        return to_https_url(shorthand)
    if is_local_repository(value):
        return Path(os.path.expandvars(value)).expanduser().resolve().as_posix()
    return value


def _canonical(owner: str, repo: str) -> str | None:
    repo_name = _strip_git_suffix(repo)
    if not owner or not repo_name:
        return None
    if owner in _DOT_SEGMENTS or repo_name in _DOT_SEGMENTS:
        return None
    return f"{owner}/{repo_name}"


def _strip_git_suffix(repo: str) -> str:
    return repo[: -len(".git")] if repo.lower().endswith(".git") else repo


__all__ = [
    "derive_name",
    "is_github_shorthand",
    "is_local_repository",
    "normalize_url",
    "parse_github_shorthand",
    "recognize",
    "to_https_url",
]
