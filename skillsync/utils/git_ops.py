"""Git operations — fetch a remote source tree into a transient directory."""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from git import GitCommandError, GitCommandNotFound, InvalidGitRepositoryError, NoSuchPathError, Repo

from skillsync.errors import FetchError, FetchErrorKind, SkillIOError
from skillsync.utils.file_scanner import COPY_IGNORE

logger = logging.getLogger(__name__)

# git aborts an HTTP transfer that stays below this many bytes/second
# for the configured stall timeout
_LOW_SPEED_LIMIT = "1000"

_AUTH_MARKERS = (
    "authentication failed",
    "could not read username",
    "could not read password",
    "terminal prompts disabled",
    "permission denied (publickey)",
    "invalid username or password",
    "returned error: 401",
    "returned error: 403",
)
_NOT_FOUND_MARKERS = (
    "repository not found",
    "returned error: 404",
    "not found",
    "does not exist",
    "does not appear to be a git repository",
)
_NETWORK_MARKERS = (
    "could not resolve host",
    "failed to connect",
    "connection timed out",
    "connection refused",
    "network is unreachable",
    "operation too slow",
)
# curl prefixes most HTTP failures with this; only a fallback
_GENERIC_NETWORK_MARKER = "unable to access"


@dataclass
class FetchResult:
    """What a fetch produced."""

    path: Path
    source: str
    commit: str = ""
    """HEAD commit of the fetched tree, empty when the source is not a repo."""


class Fetcher(Protocol):
    """Retrieves a snapshot of ``source`` into ``destination``."""

    def fetch(self, source: str, destination: Path, shallow: bool = True) -> FetchResult: ...


class GitFetcher:
    """Clone a repository (URL or local path) with GitPython."""

    def __init__(self, stall_timeout: int = 300):
        self.stall_timeout = stall_timeout

    def fetch(self, source: str, destination: Path, shallow: bool = True) -> FetchResult:
        env = {
            "GIT_TERMINAL_PROMPT": "0",
            "GIT_ASKPASS": "echo",
            "GIT_HTTP_LOW_SPEED_LIMIT": _LOW_SPEED_LIMIT,
            "GIT_HTTP_LOW_SPEED_TIME": str(self.stall_timeout),
        }
        options = {"depth": 1} if shallow else {}
        logger.debug("Cloning %s into %s (shallow=%s)", source, destination, shallow)
        try:
            repo = Repo.clone_from(source, destination, env=env, **options)
        except GitCommandError as e:
            stderr = _clean_stderr(e.stderr)
            raise FetchError(source, classify_git_error(stderr), stderr) from e
        except GitCommandNotFound as e:
            raise FetchError(source, FetchErrorKind.UNKNOWN, "git executable not found") from e

        commit = ""
        try:
            commit = repo.head.commit.hexsha
        except ValueError:
            # empty repository, no HEAD yet
            pass
        return FetchResult(path=destination, source=source, commit=commit)


class DirectoryFetcher:
    """Snapshot a plain local directory. Same contract as :class:`GitFetcher`."""

    def fetch(self, source: str, destination: Path, shallow: bool = True) -> FetchResult:
        src = Path(source).expanduser()
        if not src.is_dir():
            raise FetchError(source, FetchErrorKind.NOT_FOUND, "not a directory")
        try:
            shutil.copytree(src, destination, ignore=shutil.ignore_patterns(*COPY_IGNORE))
        except OSError as e:
            raise SkillIOError("copy source tree", src, e) from e
        return FetchResult(path=destination, source=source, commit=_local_head(src))


def fetcher_for(source: str, stall_timeout: int = 300) -> Fetcher:
    """Pick a fetcher: plain local directories are copied, everything else cloned."""
    path = Path(source).expanduser()
    if path.is_dir() and not (path / ".git").exists():
        return DirectoryFetcher()
    return GitFetcher(stall_timeout=stall_timeout)


def normalize_source(source: str) -> str:
    """Absolute path for an existing local directory; URLs are returned unchanged."""
    path = Path(source).expanduser()
    if path.is_dir():
        return str(path.resolve())
    return source


def classify_git_error(stderr: str) -> FetchErrorKind:
    """Map git's stderr to a :class:`FetchErrorKind`."""
    text = stderr.lower()
    if any(marker in text for marker in _AUTH_MARKERS):
        return FetchErrorKind.AUTHENTICATION
    if any(marker in text for marker in _NETWORK_MARKERS):
        return FetchErrorKind.NETWORK
    if any(marker in text for marker in _NOT_FOUND_MARKERS):
        return FetchErrorKind.NOT_FOUND
    if _GENERIC_NETWORK_MARKER in text:
        return FetchErrorKind.NETWORK
    return FetchErrorKind.UNKNOWN


def repo_name_from_source(source: str) -> str:
    """Last path component of a URL or path, without a ``.git`` suffix."""
    name = re.split(r"[/:\\]", source.rstrip("/\\"))[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return name or "source"


def _clean_stderr(stderr: str | None) -> str:
    text = (stderr or "").strip()
    if text.startswith("stderr:"):
        text = text[len("stderr:"):].strip()
    return text.strip("'\" \n")


def _local_head(path: Path) -> str:
    try:
        return Repo(path, search_parent_directories=False).head.commit.hexsha
    except (InvalidGitRepositoryError, NoSuchPathError, ValueError):
        return ""


def slugify(value: str) -> str:
    """Filesystem-safe, deterministic key for a source or package name."""
    slug = re.sub(r"[^A-Za-z0-9._-]+", "-", value).strip("-.")
    return slug or "source"


@dataclass
class TransientTree:
    """A deterministic scratch directory holding one fetched tree.

    The directory name depends only on the operation and key, so a leftover
    from an interrupted attempt is cleared by the next attempt with the same
    key. Use as a context manager to remove it afterwards::

        with TransientTree.prepare(work_dir, "install", url) as tree:
            result = fetcher.fetch(url, tree.path)
    """

    path: Path

    @classmethod
    def prepare(cls, work_dir: Path, operation: str, key: str) -> TransientTree:
        path = Path(work_dir) / f"skillsync-{operation}-{slugify(key)}"
        if path.exists():
            logger.debug("Clearing leftover work directory %s", path)
            try:
                shutil.rmtree(path)
            except OSError as e:
                raise SkillIOError("clear work directory", path, e) from e
        path.parent.mkdir(parents=True, exist_ok=True)
        return cls(path=path)

    def __enter__(self) -> TransientTree:
        return self

    def __exit__(self, *exc) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        if self.path.exists():
            shutil.rmtree(self.path, ignore_errors=True)
