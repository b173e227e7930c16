"""
play-sandbox: unit tests for repository reference recognition

Purpose
- GitHub shorthand recognition and owner-derived names.
- SSH/HTTPS GitHub URLs canonicalize to one HTTPS clone URL.
- Generic git URLs and local repositories are recognized without a derived name.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from hypothesis import given
from hypothesis import strategies as st

from playground.sandbox.repo_url import (
    derive_name,
    is_github_shorthand,
    normalize_url,
    parse_github_shorthand,
    recognize,
    to_https_url,
)

_SEGMENT = st.from_regex(r"[a-zA-Z0-9_-][a-zA-Z0-9_.-]{0,15}", fullmatch=True).filter(
    lambda text: text not in {".", ".."} and not text.lower().endswith(".git")
)


@given(owner=_SEGMENT, repo=_SEGMENT)
def test_shorthand_is_recognized_and_names_owner(owner: str, repo: str) -> None:
    shorthand = f"{owner}/{repo}"

    assert recognize(shorthand)
    assert derive_name(shorthand) == owner


@pytest.mark.parametrize(
    "url",
    [
        "git@github.com:owner/repo.git",
        "https://github.com/owner/repo",
        "https://github.com/owner/repo.git",
        "https://github.com/owner/repo/",
        "ssh://git@github.com/owner/repo.git",
    ],
)
def test_github_forms_round_trip_to_canonical_https(url: str) -> None:
    shorthand = parse_github_shorthand(url)

    assert shorthand == "owner/repo"
    assert to_https_url(shorthand) == "https://github.com/owner/repo.git"


def test_user_repo_shorthand_resolves_name_and_url() -> None:
    assert recognize("user/repo")
    assert derive_name("user/repo") == "user"
    assert normalize_url("user/repo") == "https://github.com/user/repo.git"


def test_shorthand_matching_is_case_insensitive() -> None:
    assert is_github_shorthand("Bbatsov/Prelude")
    assert derive_name("Bbatsov/Prelude") == "Bbatsov"


@pytest.mark.parametrize(
    "url",
    [
        "user@example.org:configs/emacs.git",
        "ssh://example.org/emacs.git",
        "git://example.org/emacs.git/",
        "https://gitlab.com/someone/emacs.git",
        "file:///srv/git/emacs.git",
    ],
)
def test_generic_git_urls_are_recognized_without_a_name(url: str) -> None:
    assert recognize(url)
    assert derive_name(url) == ""
    assert normalize_url(url) == url


@pytest.mark.parametrize(
    "text",
    ["", "   ", "prelude", "a/b/c", "https://example.org/page", "../repo", "./x"],
)
def test_unrecognized_references(text: str) -> None:
    assert not recognize(text)
    assert parse_github_shorthand(text) is None


def test_to_https_url_rejects_missing_repo() -> None:
    with pytest.raises(ValueError):
        to_https_url("owner")


def test_local_working_tree_is_recognized_and_made_absolute(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    work_tree = tmp_path / "configs" / "emacs"
    (work_tree / ".git").mkdir(parents=True)
    monkeypatch.chdir(tmp_path)

    assert recognize("configs/emacs")
    assert derive_name("configs/emacs") == "configs"
    assert normalize_url("configs/emacs") == work_tree.resolve().as_posix()


def test_local_bare_repository_is_recognized(tmp_path: Path) -> None:
    bare = tmp_path / "emacs.git"
    bare.mkdir()

    assert recognize(str(bare))
    assert normalize_url(str(bare)) == bare.resolve().as_posix()


def test_plain_directory_is_not_a_repository(tmp_path: Path) -> None:
    plain = tmp_path / "notes"
    plain.mkdir()

    assert not recognize(str(plain))
