"""Exception taxonomy for skillsync.

Every error raised by the library derives from :class:`SkillSyncError` so a
caller (the CLI, or an embedding application) can catch one type and report
the message.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path


class SkillSyncError(Exception):
    """Base class for all skillsync errors."""


# --- Fetch ---


class FetchErrorKind(Enum):
    """Why a remote fetch failed. Used for user messaging only."""

    AUTHENTICATION = "authentication"
    NOT_FOUND = "not_found"
    NETWORK = "network"
    UNKNOWN = "unknown"


class FetchError(SkillSyncError):
    """A remote source could not be fetched."""

    def __init__(self, source: str, kind: FetchErrorKind = FetchErrorKind.UNKNOWN, detail: str = ""):
        self.source = source
        self.kind = kind
        self.detail = detail
        hint = {
            FetchErrorKind.AUTHENTICATION: "authentication failed (is the repository private?)",
            FetchErrorKind.NOT_FOUND: "repository not found",
            FetchErrorKind.NETWORK: "network error (could not reach host)",
        }.get(kind, "fetch failed")
        message = f"Could not fetch {source}: {hint}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


# --- Locator ---


class LocatorError(SkillSyncError):
    """Base class for package-location failures."""


class NoPackagesFoundError(LocatorError):
    """A fetched tree contained no skill packages (or none matched the selection)."""

    def __init__(self, root: str | Path, names: list[str] | None = None):
        self.root = Path(root)
        self.names = list(names or [])
        if self.names:
            message = f"No skill named {', '.join(self.names)} found in {self.root}"
        else:
            message = f"No skills found in {self.root}"
        super().__init__(message)


class PackageNotFoundError(LocatorError):
    """A specific package could not be located inside a fetched tree."""

    def __init__(self, name: str, root: str | Path):
        self.name = name
        self.root = Path(root)
        super().__init__(f"Skill '{name}' not found in {self.root}")


# --- Filesystem ---


class SkillIOError(SkillSyncError):
    """A filesystem operation failed. Carries the operation and the path."""

    def __init__(self, operation: str, path: str | Path, cause: BaseException | str):
        self.operation = operation
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"{operation} failed for {self.path}: {cause}")


# --- Manifest / registry ---


class ManifestError(SkillSyncError):
    """A manifest sidecar could not be read or parsed."""

    def __init__(self, path: str | Path, detail: str):
        self.path = Path(path)
        self.detail = detail
        super().__init__(f"Invalid manifest {self.path}: {detail}")


class RegistryError(SkillSyncError):
    """The registry document is corrupt. Never reset silently."""

    def __init__(self, path: str | Path, detail: str):
        self.path = Path(path)
        self.detail = detail
        super().__init__(
            f"Registry {self.path} is corrupt ({detail}). "
            "Fix or move the file aside; it was left untouched."
        )


# --- Lifecycle ---


class InvalidSkillNameError(SkillSyncError, ValueError):
    """A skill name cannot be used as a directory name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Invalid skill name: {name!r}")


class SkillNotInstalledError(SkillSyncError):
    """The operation needs an installed copy and none exists."""

    def __init__(self, name: str, detail: str = ""):
        self.name = name
        message = f"Skill '{name}' is not installed"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class NothingInstalledError(SkillSyncError):
    """An install had no effect: nothing installed and nothing already present."""

    def __init__(self, name: str, outcomes: list | None = None):
        self.name = name
        self.outcomes = list(outcomes or [])
        failures = [f"{o.tool.value}: {o.error}" for o in self.outcomes if o.error]
        message = f"Skill '{name}' was not installed to any target"
        if failures:
            message += ": " + "; ".join(failures)
        super().__init__(message)


class PathCollisionError(SkillSyncError):
    """The destination path already exists. skillsync never overwrites."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        super().__init__(f"Destination already exists: {self.path}")


class NoRepositoryError(SkillSyncError):
    """No repository URL is known for a skill, so it cannot be updated."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Skill '{name}' has no repository configured; "
            "set one with `skillsync set-repo` first"
        )


class OrphanedBackupError(SkillSyncError):
    """An interrupted update left a backup behind. Recover it before updating."""

    def __init__(self, name: str, backup_path: str | Path):
        self.name = name
        self.backup_path = Path(backup_path)
        super().__init__(
            f"Skill '{name}' has a leftover update backup at {self.backup_path}; "
            "run `skillsync recover` to restore or discard it"
        )
