"""Installer — copy skill packages into tool targets and remove them again.

Each (tool, root) pair is attempted independently::

    PENDING -> SKIPPED                      target already has the skill
    PENDING -> COPYING -> INSTALLED | FAILED

A failure on one target never aborts the others. An install fails as a
whole only when nothing was installed and nothing was already present.
"""

from __future__ import annotations

import logging
import shutil
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from skillsync.config import Settings
from skillsync.errors import (
    NothingInstalledError,
    PathCollisionError,
    SkillIOError,
    SkillNotInstalledError,
    SkillSyncError,
)
from skillsync.registry.models import RegistryEntry, SkillRegistry, SkillSource
from skillsync.registry.reconciler import find_installed, scan_installed
from skillsync.registry.store import RegistryStore
from skillsync.skills.frontmatter import (
    SkillMetadata,
    read_metadata_sidecar,
    read_skill_metadata,
)
from skillsync.skills.locator import locate_packages
from skillsync.skills.manifest import build_manifest, write_manifest
from skillsync.targets import Location, Scope, ToolRoots, ToolTarget, validate_skill_name
from skillsync.utils.file_scanner import COPY_IGNORE, MANIFEST_FILENAME
from skillsync.utils.git_ops import (
    Fetcher,
    TransientTree,
    fetcher_for,
    normalize_source,
    repo_name_from_source,
)

logger = logging.getLogger(__name__)


class TargetStatus(Enum):
    PENDING = "pending"
    COPYING = "copying"
    SKIPPED = "skipped"
    INSTALLED = "installed"
    FAILED = "failed"


@dataclass
class TargetOutcome:
    """What happened to one tool target during an install."""

    tool: ToolTarget
    path: Path
    status: TargetStatus = TargetStatus.PENDING
    error: str = ""


@dataclass
class InstallSummary:
    """Per-target outcomes of installing one skill."""

    name: str
    outcomes: list[TargetOutcome] = field(default_factory=list)
    metadata: SkillMetadata | None = None

    def _with(self, status: TargetStatus) -> list[TargetOutcome]:
        return [o for o in self.outcomes if o.status is status]

    @property
    def installed(self) -> list[TargetOutcome]:
        return self._with(TargetStatus.INSTALLED)

    @property
    def skipped(self) -> list[TargetOutcome]:
        return self._with(TargetStatus.SKIPPED)

    @property
    def failed(self) -> list[TargetOutcome]:
        return self._with(TargetStatus.FAILED)

    @property
    def installed_tools(self) -> list[str]:
        return [o.tool.value for o in self.installed]

    @property
    def is_zero_effect(self) -> bool:
        return not self.installed and not self.skipped

    def summary(self) -> str:
        return (
            f"{self.name}: {len(self.installed)} installed, "
            f"{len(self.skipped)} skipped, {len(self.failed)} failed"
        )


@dataclass
class InstallReport:
    """Result of installing a selection of skills from one source."""

    source: str
    commit: str = ""
    summaries: list[InstallSummary] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    """Skills that had no effect at all, with the reason."""


class RemovalStatus(Enum):
    REMOVED = "removed"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass
class RemovalOutcome:
    tool: ToolTarget
    path: Path
    status: RemovalStatus
    location: Location | None = None
    error: str = ""


@dataclass
class RemovalSummary:
    name: str
    outcomes: list[RemovalOutcome] = field(default_factory=list)
    registry_entry_deleted: bool = False

    @property
    def removed(self) -> list[RemovalOutcome]:
        return [o for o in self.outcomes if o.status is RemovalStatus.REMOVED]

    @property
    def failed(self) -> list[RemovalOutcome]:
        return [o for o in self.outcomes if o.status is RemovalStatus.FAILED]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def resolve_metadata(
    source_dir: Path,
    name: str,
    repository: str | None = None,
    commit_hash: str | None = None,
) -> SkillMetadata:
    """Metadata for a freshly copied package.

    Precedence: SKILL.md front matter, then a ``metadata.json`` shipped
    with the package, then a minimal record of the name. The repository
    (and commit, when known) are stamped on whichever wins.
    """
    metadata = (
        read_skill_metadata(source_dir)
        or read_metadata_sidecar(source_dir)
        or SkillMetadata(name=name)
    )
    if repository:
        metadata.repository = repository
    if commit_hash:
        metadata.commit_hash = commit_hash
    return metadata


def copy_package(source_dir: Path, dest: Path) -> None:
    """Copy a package tree. Raises FileExistsError if ``dest`` exists."""
    shutil.copytree(source_dir, dest, ignore=shutil.ignore_patterns(*COPY_IGNORE, MANIFEST_FILENAME))


def remove_package_dir(scope: Scope, path: Path) -> None:
    """Delete an installed copy, refusing anything outside the scope's roots."""
    if not scope.contains(path):
        raise SkillIOError("remove", path, "path is outside every tool root")
    try:
        if path.is_symlink():
            path.unlink()
        else:
            shutil.rmtree(path)
    except OSError as e:
        raise SkillIOError("remove", path, e) from e


class Installer:
    """Installs, extends and removes skills within one scope."""

    def __init__(
        self,
        scope: Scope,
        settings: Settings | None = None,
        fetcher: Fetcher | None = None,
        store: RegistryStore | None = None,
    ):
        self.scope = scope
        self.settings = settings or Settings()
        self.fetcher = fetcher
        self.store = store or RegistryStore.for_scope(scope)

    # ------------------------------------------------------------------
    # Install
    # ------------------------------------------------------------------

    def install_from_source(
        self,
        source: str,
        names: list[str] | None = None,
        tools: list[str | ToolTarget] | None = None,
    ) -> InstallReport:
        """Fetch ``source`` and install every located skill (or the selection).

        Raises:
            FetchError: the source could not be fetched.
            NoPackagesFoundError: the source holds no (selected) skill.
            NothingInstalledError: no skill had any effect.
        """
        source = normalize_source(source)
        fetcher = self.fetcher or fetcher_for(source, self.settings.fetch_timeout)
        report = InstallReport(source=source)
        first_error: NothingInstalledError | None = None

        with TransientTree.prepare(self.settings.work_dir, "install", source) as tree:
            result = fetcher.fetch(source, tree.path, shallow=True)
            report.commit = result.commit
            candidates = locate_packages(
                tree.path, names, root_name=repo_name_from_source(source)
            )
            logger.info("Installing %d skill(s) from %s", len(candidates), source)

            for candidate in candidates:
                try:
                    summary = self.install_directory(
                        candidate.path,
                        candidate.name,
                        tools,
                        repository=source,
                        commit_hash=result.commit,
                    )
                except NothingInstalledError as e:
                    report.failures[candidate.name] = str(e)
                    first_error = first_error or e
                    continue
                report.summaries.append(summary)

        if not report.summaries and first_error is not None:
            raise first_error
        return report

    def install_directory(
        self,
        source_dir: str | Path,
        name: str,
        tools: list[str | ToolTarget] | None = None,
        repository: str | None = None,
        commit_hash: str | None = None,
        source: str = SkillSource.REMOTE,
        metadata: SkillMetadata | None = None,
    ) -> InstallSummary:
        """Copy one package directory into the active root of each tool.

        Raises:
            NothingInstalledError: nothing installed and nothing already present.
            RegistryError: the registry document is corrupt (checked first).
        """
        validate_skill_name(name)
        source_dir = Path(source_dir)
        registry = self.store.load()

        targets = self._resolve_tools(tools, source_dir)
        if metadata is None:
            metadata = resolve_metadata(source_dir, name, repository, commit_hash)

        summary = InstallSummary(name=name)
        for tool in targets:
            summary.outcomes.append(self._install_one(source_dir, name, tool, metadata))

        if summary.is_zero_effect:
            raise NothingInstalledError(name, summary.outcomes)

        if summary.installed:
            summary.metadata = metadata
            self._record_install(registry, name, summary.installed_tools, metadata, source)

        logger.info(summary.summary())
        return summary

    def apply_to_tools(self, name: str, tools: list[str | ToolTarget]) -> InstallSummary:
        """Install an already installed skill into more tools, copying a local copy."""
        validate_skill_name(name)
        skill = find_installed(self.scope, name, self.store)
        if skill is None or skill.preferred_path() is None:
            raise SkillNotInstalledError(name)

        source_dir = skill.preferred_path()
        stored = skill.entry.metadata if skill.tracked else None
        metadata = stored or resolve_metadata(source_dir, name)
        return self.install_directory(
            source_dir,
            name,
            tools,
            source=skill.entry.source,
            metadata=metadata,
        )

    def _resolve_tools(
        self, tools: list[str | ToolTarget] | None, source_dir: Path
    ) -> list[ToolTarget]:
        if tools:
            return ToolTarget.parse_many(tools)

        declared = read_skill_metadata(source_dir)
        if declared and declared.target_tools:
            known = []
            for value in declared.target_tools:
                try:
                    known.append(ToolTarget.parse(value))
                except ValueError:
                    logger.debug("Ignoring unknown declared tool %r", value)
            if known:
                return ToolTarget.parse_many(known)
        return list(self.settings.default_tools)

    def _install_one(
        self, source_dir: Path, name: str, tool: ToolTarget, metadata: SkillMetadata
    ) -> TargetOutcome:
        roots = self.scope.roots(tool)
        dest = roots.active / name
        outcome = TargetOutcome(tool=tool, path=dest)

        existing = roots.locate(name)
        if existing is not None:
            outcome.path = roots.skill_path(name, existing)
            outcome.status = TargetStatus.SKIPPED
            logger.info("%s already present for %s (%s); skipping", name, tool.value, existing.value)
            return outcome

        if dest.exists() or dest.is_symlink():
            return self._fail(outcome, PathCollisionError(dest))

        outcome.status = TargetStatus.COPYING
        try:
            roots.active.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return self._fail(outcome, SkillIOError("create root", roots.active, e))

        try:
            copy_package(source_dir, dest)
        except FileExistsError:
            if not dest.is_dir():
                return self._fail(outcome, PathCollisionError(dest))
            outcome.status = TargetStatus.SKIPPED
            logger.info("%s appeared at %s during install; skipping", name, dest)
            return outcome
        except OSError as e:
            self._discard_partial(dest)
            return self._fail(outcome, SkillIOError("copy", dest, e))

        try:
            manifest = build_manifest(dest, name=name, repository=metadata.repository, metadata=metadata)
            write_manifest(dest, manifest)
        except SkillSyncError as e:
            self._discard_partial(dest)
            return self._fail(outcome, e)

        outcome.status = TargetStatus.INSTALLED
        logger.debug("Installed %s into %s", name, dest)
        return outcome

    @staticmethod
    def _fail(outcome: TargetOutcome, error: Exception) -> TargetOutcome:
        outcome.status = TargetStatus.FAILED
        outcome.error = str(error)
        logger.warning("Install to %s failed: %s", outcome.tool.value, error)
        return outcome

    @staticmethod
    def _discard_partial(dest: Path) -> None:
        if dest.exists():
            shutil.rmtree(dest, ignore_errors=True)

    def _record_install(
        self,
        registry: SkillRegistry,
        name: str,
        tools: list[str],
        metadata: SkillMetadata,
        source: str,
    ) -> None:
        entry = registry.get(name)
        if entry is None:
            entry = RegistryEntry(
                id=str(uuid.uuid4()),
                name=name,
                description=metadata.description,
                enabled=True,
                source=source,
                installed_by=sorted(tools),
                installed_at=utc_now(),
                metadata=metadata,
            )
        else:
            entry.add_tools(tools)
            entry.installed_at = utc_now()
            entry.metadata = metadata
            entry.description = metadata.description or entry.description
        registry.upsert(entry)
        self.store.save(registry)

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def uninstall(self, name: str) -> RemovalSummary:
        """Remove the skill from every root of every tool and forget it.

        Raises:
            SkillNotInstalledError: no copy exists anywhere.
            SkillIOError: copies exist but none could be removed.
        """
        validate_skill_name(name)
        registry = self.store.load()
        summary = RemovalSummary(name=name)

        for roots in self.scope.all_roots():
            summary.outcomes.extend(self._remove_from(roots, name))

        if not summary.removed:
            if summary.failed:
                first = summary.failed[0]
                raise SkillIOError("remove", first.path, first.error)
            raise SkillNotInstalledError(name)

        summary.registry_entry_deleted = registry.remove(name)
        self.store.save(registry)
        logger.info("Uninstalled %s (%d copies removed)", name, len(summary.removed))
        return summary

    def remove_from_tools(self, name: str, tools: list[str | ToolTarget]) -> RemovalSummary:
        """Remove the skill from some tools only.

        The registry entry loses those tools and is deleted once no tool
        has the skill any more.
        """
        validate_skill_name(name)
        targets = ToolTarget.parse_many(tools)
        registry = self.store.load()
        entry = registry.get(name)
        observed = scan_installed(self.scope).get(name)

        if entry is None and (
            observed is None or not any(t in observed.locations for t in targets)
        ):
            raise SkillNotInstalledError(name, f"not installed for {', '.join(t.value for t in targets)}")

        summary = RemovalSummary(name=name)
        for tool in targets:
            summary.outcomes.extend(self._remove_from(self.scope.roots(tool), name))

        gone = {t.value for t in targets} - {o.tool.value for o in summary.failed}

        if entry is not None:
            entry.add_tools(observed.tools if observed else [])
            entry.remove_tools(sorted(gone))
            if entry.installed_by:
                registry.upsert(entry)
            else:
                registry.remove(name)
                summary.registry_entry_deleted = True
            self.store.save(registry)

        logger.info(
            "Removed %s from %s",
            name,
            ", ".join(o.tool.value for o in summary.removed) or "no tool",
        )
        return summary

    def _remove_from(self, roots: ToolRoots, name: str) -> list[RemovalOutcome]:
        outcomes = []
        for location in (Location.ACTIVE, Location.INACTIVE):
            path = roots.skill_path(name, location)
            if not (path.is_dir() or path.is_symlink()):
                continue
            try:
                remove_package_dir(self.scope, path)
            except SkillIOError as e:
                logger.warning("%s", e)
                outcomes.append(
                    RemovalOutcome(roots.tool, path, RemovalStatus.FAILED, location, str(e))
                )
                continue
            outcomes.append(RemovalOutcome(roots.tool, path, RemovalStatus.REMOVED, location))

        if not outcomes:
            outcomes.append(
                RemovalOutcome(roots.tool, roots.active / name, RemovalStatus.NOT_FOUND)
            )
        return outcomes
