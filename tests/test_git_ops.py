"""Tests for fetching sources and classifying git failures."""

import shutil
import tempfile
from pathlib import Path

import pytest
from git import Actor, Repo

from skillsync.errors import FetchError, FetchErrorKind
from skillsync.utils.git_ops import (
    DirectoryFetcher,
    GitFetcher,
    TransientTree,
    classify_git_error,
    fetcher_for,
    normalize_source,
    repo_name_from_source,
    slugify,
)

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git binary not available")


# --- Classification ---


def test_classify_authentication():
    stderr = "fatal: could not read Username for 'https://github.com': terminal prompts disabled"
    assert classify_git_error(stderr) is FetchErrorKind.AUTHENTICATION
    assert classify_git_error("fatal: Authentication failed for 'https://x'") is FetchErrorKind.AUTHENTICATION
    assert (
        classify_git_error("fatal: unable to access 'https://x/': The requested URL returned error: 403")
        is FetchErrorKind.AUTHENTICATION
    )


def test_classify_not_found():
    assert classify_git_error("remote: Repository not found.\nfatal: repository 'x' not found") is FetchErrorKind.NOT_FOUND
    assert classify_git_error("fatal: repository '/tmp/nope' does not exist") is FetchErrorKind.NOT_FOUND


def test_classify_network():
    assert (
        classify_git_error("fatal: unable to access 'https://x/': Could not resolve host: x")
        is FetchErrorKind.NETWORK
    )
    assert classify_git_error("fatal: unable to access 'https://x/': Operation too slow") is FetchErrorKind.NETWORK
    assert classify_git_error("fatal: unable to access 'https://x/': SSL error") is FetchErrorKind.NETWORK


def test_classify_unknown():
    assert classify_git_error("fatal: something unexpected") is FetchErrorKind.UNKNOWN
    assert classify_git_error("") is FetchErrorKind.UNKNOWN


def test_fetch_error_message_has_hint():
    err = FetchError("https://x/y.git", FetchErrorKind.AUTHENTICATION, "denied")
    assert "authentication failed" in str(err)
    assert "denied" in str(err)


# --- Names ---


def test_repo_name_from_source():
    assert repo_name_from_source("https://github.com/acme/pdf-tools.git") == "pdf-tools"
    assert repo_name_from_source("git@github.com:acme/skills") == "skills"
    assert repo_name_from_source("/home/u/src/my-skill/") == "my-skill"


def test_normalize_source_resolves_local_directories(monkeypatch):
    with tempfile.TemporaryDirectory() as tmpdir:
        skill = Path(tmpdir) / "my-skill"
        skill.mkdir()
        monkeypatch.chdir(skill)

        assert normalize_source(".") == str(skill.resolve())
        assert repo_name_from_source(normalize_source(".")) == "my-skill"
        assert normalize_source("../my-skill") == str(skill.resolve())

    assert normalize_source("https://github.com/acme/skills.git") == "https://github.com/acme/skills.git"
    assert normalize_source("git@github.com:acme/skills") == "git@github.com:acme/skills"


def test_slugify_is_deterministic():
    key = slugify("https://github.com/acme/skills.git")
    assert key == slugify("https://github.com/acme/skills.git")
    assert "/" not in key and ":" not in key


# --- Transient trees ---


def test_transient_tree_clears_leftovers():
    with tempfile.TemporaryDirectory() as tmpdir:
        leftover = TransientTree.prepare(Path(tmpdir), "install", "src").path
        leftover.mkdir()
        (leftover / "stale").write_text("x")

        with TransientTree.prepare(Path(tmpdir), "install", "src") as tree:
            assert tree.path == leftover
            assert not tree.path.exists()
            tree.path.mkdir()
        assert not tree.path.exists()


# --- Fetchers ---


def test_directory_fetcher_copies_without_git_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        src = Path(tmpdir) / "src"
        (src / ".git").mkdir(parents=True)
        (src / "SKILL.md").write_text("# s\n")

        result = DirectoryFetcher().fetch(str(src), Path(tmpdir) / "dest")
        assert (result.path / "SKILL.md").is_file()
        assert not (result.path / ".git").exists()
        assert result.commit == ""

        with pytest.raises(FetchError) as exc:
            DirectoryFetcher().fetch(str(Path(tmpdir) / "missing"), Path(tmpdir) / "dest2")
        assert exc.value.kind is FetchErrorKind.NOT_FOUND


def test_fetcher_for():
    with tempfile.TemporaryDirectory() as tmpdir:
        assert isinstance(fetcher_for(tmpdir), DirectoryFetcher)
        (Path(tmpdir) / ".git").mkdir()
        assert isinstance(fetcher_for(tmpdir), GitFetcher)
        assert isinstance(fetcher_for("https://github.com/acme/skills.git"), GitFetcher)


@requires_git
def test_git_fetcher_clones_local_repo():
    with tempfile.TemporaryDirectory() as tmpdir:
        origin = Path(tmpdir) / "origin"
        repo = Repo.init(origin)
        (origin / "SKILL.md").write_text("---\nname: origin\n---\n")
        repo.index.add(["SKILL.md"])
        author = Actor("Test", "test@example.com")
        commit = repo.index.commit("initial", author=author, committer=author)

        result = GitFetcher(stall_timeout=30).fetch(str(origin), Path(tmpdir) / "clone")
        assert (result.path / "SKILL.md").is_file()
        assert result.commit == commit.hexsha


@requires_git
def test_git_fetcher_missing_repo():
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(FetchError) as exc:
            GitFetcher().fetch(str(Path(tmpdir) / "nope"), Path(tmpdir) / "clone")
        assert exc.value.kind is FetchErrorKind.NOT_FOUND
