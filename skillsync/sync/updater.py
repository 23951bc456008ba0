"""Updater — check installed skills against their repository and replace them.

Replacing a copy walks a small state machine so an interruption at any
point leaves something recoverable::

    BACKED_UP -> OLD_REMOVED -> NEW_COPIED -> MANIFEST_REGENERATED -> CLEANED_UP
        \\_____________________ on failure: RESTORED from the backup

The backup is a dot-prefixed sibling of the installed copy, so it never
shows up as a skill and survives a crash. A backup found at the start of
an update means an earlier run died half way: the update refuses to run
until :meth:`Updater.restore_backup` or :meth:`Updater.discard_backup`
has dealt with it.
"""

from __future__ import annotations

import logging
import shutil
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from skillsync.config import Settings
from skillsync.errors import (
    NoRepositoryError,
    OrphanedBackupError,
    PathCollisionError,
    SkillIOError,
    SkillNotInstalledError,
    SkillSyncError,
)
from skillsync.registry.models import RegistryEntry, SkillSource
from skillsync.registry.reconciler import find_installed, scan_installed
from skillsync.registry.store import RegistryStore
from skillsync.skills.diff import ManifestDiff, diff_manifests
from skillsync.skills.frontmatter import SkillMetadata, read_skill_metadata
from skillsync.skills.locator import find_package_source
from skillsync.skills.manifest import build_manifest, read_manifest, write_manifest
from skillsync.sync.installer import copy_package, remove_package_dir, resolve_metadata
from skillsync.targets import Location, Scope, ToolTarget, validate_skill_name
from skillsync.utils.git_ops import Fetcher, FetchResult, TransientTree, fetcher_for, normalize_source

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".skillsync-backup"


class UpdatePhase(Enum):
    BACKED_UP = "backed_up"
    OLD_REMOVED = "old_removed"
    NEW_COPIED = "new_copied"
    MANIFEST_REGENERATED = "manifest_regenerated"
    CLEANED_UP = "cleaned_up"
    RESTORED = "restored"


def backup_path_for(skill_path: Path) -> Path:
    return skill_path.with_name(f".{skill_path.name}{BACKUP_SUFFIX}")


@dataclass
class InstalledCopy:
    """One installed copy of a skill: tool, root and path."""

    tool: ToolTarget
    location: Location
    path: Path


@dataclass
class UpdateCheck:
    """Comparison of an installed copy with its repository."""

    name: str
    tool: ToolTarget
    repository: str
    current_version: str | None
    latest_version: str | None
    diff: ManifestDiff

    @property
    def has_update(self) -> bool:
        """Content differs. Version strings do not take part."""
        return self.diff.has_update

    @property
    def version_changed(self) -> bool:
        return (
            self.latest_version is not None
            and self.current_version is not None
            and self.latest_version != self.current_version
        )


@dataclass
class UpdateResult:
    name: str
    tool: ToolTarget
    path: Path
    repository: str
    previous_version: str | None
    new_version: str | None
    commit: str = ""
    diff: ManifestDiff = field(default_factory=ManifestDiff)
    phases: list[UpdatePhase] = field(default_factory=list)


@dataclass
class UpdateOutcome:
    """Result for one copy in :meth:`Updater.update_all`."""

    tool: ToolTarget
    result: UpdateResult | None = None
    error: str = ""


@dataclass
class OrphanedBackup:
    """A backup left behind by an interrupted update."""

    name: str
    tool: ToolTarget
    location: Location
    backup_path: Path
    target_path: Path

    @property
    def target_exists(self) -> bool:
        return self.target_path.exists()


class Updater:
    """Checks and applies updates for skills of one scope."""

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
    # Lookup
    # ------------------------------------------------------------------

    def installed_copies(self, name: str) -> list[InstalledCopy]:
        """Every installed copy of ``name``, active copies first."""
        observed = scan_installed(self.scope).get(name)
        if observed is None:
            return []
        copies = [
            InstalledCopy(tool, observed.locations[tool], observed.paths[tool])
            for tool in ToolTarget
            if tool in observed.locations
        ]
        copies.sort(key=lambda c: c.location is not Location.ACTIVE)
        return copies

    def installed_copy(self, name: str, tool: str | ToolTarget | None = None) -> InstalledCopy:
        """The copy for ``tool``, or the preferred copy when no tool is given."""
        validate_skill_name(name)
        if tool is not None:
            tool = ToolTarget.parse(tool)
            roots = self.scope.roots(tool)
            location = roots.locate(name)
            if location is None:
                raise SkillNotInstalledError(name, f"not installed for {tool.value}")
            return InstalledCopy(tool, location, roots.skill_path(name, location))

        copies = self.installed_copies(name)
        if not copies:
            raise SkillNotInstalledError(name)
        return copies[0]

    def resolve_repository(self, name: str, path: Path | None = None) -> str:
        """Repository URL of a skill.

        Looked up in the registry entry, then the installed copy's manifest
        sidecar, then its SKILL.md front matter.

        Raises:
            NoRepositoryError: none of them names a repository.
        """
        entry = self.store.load().get(name)
        if entry is not None and entry.repository:
            return entry.repository

        if path is None:
            path = self.installed_copy(name).path

        manifest = read_manifest(path)
        if manifest is not None and manifest.repository:
            return manifest.repository

        declared = read_skill_metadata(path)
        if declared is not None and declared.repository:
            return declared.repository

        raise NoRepositoryError(name)

    def set_repository(self, name: str, url: str) -> RegistryEntry:
        """Record ``url`` as the update source of an installed skill."""
        validate_skill_name(name)
        url = url.strip()
        if not url:
            raise ValueError("Repository URL must not be empty")
        url = normalize_source(url)

        registry = self.store.load()
        entry = registry.get(name)
        if entry is None:
            skill = find_installed(self.scope, name, self.store)
            if skill is None:
                raise SkillNotInstalledError(name)
            entry = RegistryEntry(
                id=str(uuid.uuid4()),
                name=name,
                description=skill.entry.description,
                enabled=skill.enabled,
                source=SkillSource.LOCAL,
                installed_by=list(skill.installed_by),
                metadata=skill.entry.metadata,
            )

        if entry.metadata is None:
            entry.metadata = SkillMetadata(name=name)
        entry.metadata.repository = url
        registry.upsert(entry)
        self.store.save(registry)
        logger.info("Repository of %s set to %s", name, url)
        return entry

    # ------------------------------------------------------------------
    # Check
    # ------------------------------------------------------------------

    def check(self, name: str, tool: str | ToolTarget | None = None) -> UpdateCheck:
        """Compare an installed copy with the current state of its repository.

        A copy without a manifest sidecar is compared by hashing its files.
        """
        copy = self.installed_copy(name, tool)
        repository = self.resolve_repository(name, copy.path)
        local = read_manifest(copy.path) or build_manifest(copy.path, name=name)

        with TransientTree.prepare(self.settings.work_dir, "check", name) as tree:
            source, _ = self._fetch(repository, tree, name)
            remote = build_manifest(source, name=name, repository=repository)

        entry = self.store.load().get(name)
        current = (entry.version if entry else None) or local.version
        diff = diff_manifests(local, remote)
        logger.info("%s (%s): %s", name, copy.tool.value, diff.summary())
        return UpdateCheck(
            name=name,
            tool=copy.tool,
            repository=repository,
            current_version=current,
            latest_version=remote.version,
            diff=diff,
        )

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update(self, name: str, tool: str | ToolTarget | None = None) -> UpdateResult:
        """Replace one installed copy with the repository's current content.

        Raises:
            OrphanedBackupError: an earlier update left a backup behind.
            NoRepositoryError: no repository is known.
            FetchError, LocatorError: the new content could not be fetched;
                the installed copy is untouched.
            SkillIOError: replacing failed; the previous copy was restored.
        """
        copy = self.installed_copy(name, tool)
        outcomes = self._update_copies(name, [copy], stop_on_error=True)
        return outcomes[0].result

    def update_all(self, name: str) -> list[UpdateOutcome]:
        """Update every installed copy of ``name`` from a single fetch.

        A copy that fails is restored and reported; the others still update.
        """
        validate_skill_name(name)
        copies = self.installed_copies(name)
        if not copies:
            raise SkillNotInstalledError(name)
        return self._update_copies(name, copies, stop_on_error=False)

    def _update_copies(
        self, name: str, copies: list[InstalledCopy], stop_on_error: bool
    ) -> list[UpdateOutcome]:
        registry = self.store.load()
        repository = self.resolve_repository(name, copies[0].path)
        outcomes: list[UpdateOutcome] = []
        fetched: tuple[Path, FetchResult] | None = None
        latest: SkillMetadata | None = None

        with TransientTree.prepare(self.settings.work_dir, "update", name) as tree:
            for copy in copies:
                try:
                    backup = self._back_up(name, copy.path)
                except SkillSyncError as e:
                    if stop_on_error:
                        raise
                    outcomes.append(UpdateOutcome(copy.tool, error=str(e)))
                    continue

                if fetched is None:
                    try:
                        fetched = self._fetch(repository, tree, name)
                    except (SkillSyncError, OSError):
                        self._discard(backup)
                        raise

                source, fetch_result = fetched
                try:
                    result = self._replace(name, copy, backup, source, repository, fetch_result.commit)
                except SkillSyncError as e:
                    if stop_on_error:
                        raise
                    outcomes.append(UpdateOutcome(copy.tool, error=str(e)))
                    continue

                latest = resolve_metadata(copy.path, name, repository, fetch_result.commit or None)
                outcomes.append(UpdateOutcome(copy.tool, result=result))

        for outcome in outcomes:
            if outcome.result is not None:
                self._discard(backup_path_for(outcome.result.path))
                outcome.result.phases.append(UpdatePhase.CLEANED_UP)

        if latest is not None:
            entry = registry.get(name)
            if entry is None:
                entry = RegistryEntry(
                    id=str(uuid.uuid4()),
                    name=name,
                    source=SkillSource.REMOTE,
                    installed_by=[c.tool.value for c in copies],
                )
            entry.metadata = latest
            entry.description = latest.description or entry.description
            registry.upsert(entry)
            self.store.save(registry)
        return outcomes

    def _fetch(self, repository: str, tree: TransientTree, name: str) -> tuple[Path, FetchResult]:
        fetcher = self.fetcher or fetcher_for(repository, self.settings.fetch_timeout)
        result = fetcher.fetch(repository, tree.path, shallow=True)
        return find_package_source(tree.path, name), result

    def _back_up(self, name: str, path: Path) -> Path:
        backup = backup_path_for(path)
        if backup.exists():
            raise OrphanedBackupError(name, backup)
        try:
            shutil.copytree(path, backup, symlinks=True)
        except OSError as e:
            shutil.rmtree(backup, ignore_errors=True)
            raise SkillIOError("back up", path, e) from e
        logger.debug("Backed up %s to %s", path, backup)
        return backup

    def _discard(self, backup: Path) -> None:
        if backup.exists():
            shutil.rmtree(backup, ignore_errors=True)

    def _replace(
        self,
        name: str,
        copy: InstalledCopy,
        backup: Path,
        source: Path,
        repository: str,
        commit: str,
    ) -> UpdateResult:
        path = copy.path
        previous = read_manifest(backup) or build_manifest(backup, name=name)
        result = UpdateResult(
            name=name,
            tool=copy.tool,
            path=path,
            repository=repository,
            previous_version=previous.version,
            new_version=None,
            commit=commit,
            phases=[UpdatePhase.BACKED_UP],
        )

        try:
            remove_package_dir(self.scope, path)
            result.phases.append(UpdatePhase.OLD_REMOVED)

            try:
                copy_package(source, path)
            except OSError as e:
                raise SkillIOError("copy", path, e) from e
            result.phases.append(UpdatePhase.NEW_COPIED)

            metadata = resolve_metadata(path, name, repository, commit or None)
            manifest = build_manifest(path, name=name, repository=repository, metadata=metadata)
            write_manifest(path, manifest)
            result.phases.append(UpdatePhase.MANIFEST_REGENERATED)
        except SkillSyncError as e:
            logger.warning("Update of %s failed (%s); restoring previous copy", path, e)
            self._restore(path, backup)
            result.phases.append(UpdatePhase.RESTORED)
            raise

        result.new_version = manifest.version
        result.diff = diff_manifests(previous, manifest)
        logger.info(
            "Updated %s for %s (%s -> %s): %s",
            name,
            copy.tool.value,
            result.previous_version or "?",
            result.new_version or "?",
            result.diff.summary(),
        )
        return result

    def _restore(self, path: Path, backup: Path) -> None:
        try:
            if path.exists() or path.is_symlink():
                remove_package_dir(self.scope, path)
            backup.rename(path)
        except (OSError, SkillSyncError) as e:
            logger.error("Could not restore %s; the backup is kept at %s", path, backup)
            raise SkillIOError("restore", path, e) from e

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def find_orphaned_backups(self) -> list[OrphanedBackup]:
        """Backups left in any root of the scope by an interrupted update."""
        orphans = []
        for roots in self.scope.all_roots():
            for location in (Location.ACTIVE, Location.INACTIVE):
                root = roots.root(location)
                if not root.is_dir():
                    continue
                for child in sorted(root.iterdir()):
                    if not (
                        child.name.startswith(".")
                        and child.name.endswith(BACKUP_SUFFIX)
                        and child.is_dir()
                    ):
                        continue
                    name = child.name[1 : -len(BACKUP_SUFFIX)]
                    orphans.append(
                        OrphanedBackup(
                            name=name,
                            tool=roots.tool,
                            location=location,
                            backup_path=child,
                            target_path=root / name,
                        )
                    )
        for orphan in orphans:
            logger.warning("Found leftover update backup %s", orphan.backup_path)
        return orphans

    def restore_backup(self, orphan: OrphanedBackup) -> Path:
        """Put an orphaned backup back in place of whatever copy is there now."""
        roots = self.scope.roots(orphan.tool)
        other = Location.INACTIVE if orphan.location is Location.ACTIVE else Location.ACTIVE
        other_path = roots.skill_path(orphan.name, other)
        if other_path.exists():
            raise PathCollisionError(other_path)

        self._restore(orphan.target_path, orphan.backup_path)
        logger.info("Restored %s from %s", orphan.target_path, orphan.backup_path)
        return orphan.target_path

    def discard_backup(self, orphan: OrphanedBackup) -> None:
        """Delete an orphaned backup, keeping the current copy."""
        try:
            shutil.rmtree(orphan.backup_path)
        except OSError as e:
            raise SkillIOError("discard backup", orphan.backup_path, e) from e
        logger.info("Discarded %s", orphan.backup_path)

