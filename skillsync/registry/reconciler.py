"""Registry reconciler — merge the stored registry with a live filesystem scan.

Skills can be added, removed or moved between roots by hand, so every
read re-scans all tool roots of the scope. The scan is the truth for where a
skill is and whether it is enabled; the stored registry contributes what the
filesystem cannot tell (repository URL, install time, source).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path

from skillsync.errors import SkillNotInstalledError
from skillsync.registry.models import (
    InstalledSkill,
    RegistryEntry,
    SkillDetail,
    SkillRegistry,
    SkillSource,
    preferred_path,
)
from skillsync.registry.store import RegistryStore
from skillsync.skills.frontmatter import SkillMetadata, read_metadata_sidecar, read_skill_metadata
from skillsync.skills.locator import is_skill_dir
from skillsync.targets import SKILL_MARKER, Location, Scope, ToolTarget
from skillsync.utils.file_scanner import list_skill_files

logger = logging.getLogger(__name__)


@dataclass
class ObservedSkill:
    """Everything a scan saw for one skill name across all tool roots."""

    name: str
    locations: dict[ToolTarget, Location] = field(default_factory=dict)
    paths: dict[ToolTarget, Path] = field(default_factory=dict)
    metadata: SkillMetadata | None = None

    @property
    def tools(self) -> list[str]:
        return sorted(tool.value for tool in self.locations)

    @property
    def enabled(self) -> bool:
        return any(loc is Location.ACTIVE for loc in self.locations.values())


@dataclass
class LiveScan:
    """Result of scanning every root of a scope."""

    skills: dict[str, ObservedSkill] = field(default_factory=dict)

    def get(self, name: str) -> ObservedSkill | None:
        return self.skills.get(name)


def scan_installed(scope: Scope) -> LiveScan:
    """Scan the active and inactive root of every tool for skill directories."""
    scan = LiveScan()
    for roots in scope.all_roots():
        for location in (Location.ACTIVE, Location.INACTIVE):
            root = roots.root(location)
            if not root.is_dir():
                continue
            for child in sorted(root.iterdir()):
                if child.name.startswith(".") or not is_skill_dir(child):
                    continue
                observed = scan.skills.setdefault(child.name, ObservedSkill(name=child.name))
                if observed.locations.get(roots.tool) is Location.ACTIVE:
                    logger.warning(
                        "Skill '%s' is in both roots of %s; treating it as enabled",
                        child.name,
                        roots.tool.value,
                    )
                    continue
                observed.locations[roots.tool] = location
                observed.paths[roots.tool] = child

    for observed in scan.skills.values():
        observed.metadata = _observed_metadata(observed)
    return scan


def _observed_metadata(observed: ObservedSkill) -> SkillMetadata:
    path = preferred_path(observed.locations, observed.paths)
    metadata = None
    if path is not None:
        metadata = read_skill_metadata(path) or read_metadata_sidecar(path)
    return metadata or SkillMetadata(name=observed.name)


def merge_registry(stored: SkillRegistry, scan: LiveScan) -> list[InstalledSkill]:
    """Merge stored entries with observed state. Pure: neither input is modified.

    - a stored entry seen on disk gets ``installed_by`` unioned with the
      observed tools and ``enabled`` taken from where it was found;
    - a skill on disk with no entry gets an ephemeral, untracked entry;
    - a stored entry not found anywhere on disk is not installed and is left out.

    The result is sorted by name.
    """
    merged: dict[str, InstalledSkill] = {}

    for entry in stored.entries:
        observed = scan.get(entry.name)
        if observed is None:
            continue
        view = replace(
            entry,
            installed_by=sorted(set(entry.installed_by) | set(observed.tools)),
            enabled=observed.enabled,
        )
        merged[entry.name] = InstalledSkill(
            entry=view,
            locations=dict(observed.locations),
            paths=dict(observed.paths),
            tracked=True,
        )

    for name, observed in scan.skills.items():
        if name in merged:
            continue
        metadata = observed.metadata or SkillMetadata(name=name)
        entry = RegistryEntry(
            id=name,
            name=name,
            description=metadata.description,
            enabled=observed.enabled,
            source=SkillSource.LOCAL,
            installed_by=observed.tools,
            installed_at=None,
            metadata=metadata,
        )
        merged[name] = InstalledSkill(
            entry=entry,
            locations=dict(observed.locations),
            paths=dict(observed.paths),
            tracked=False,
        )

    return [merged[name] for name in sorted(merged)]


def list_installed(scope: Scope, store: RegistryStore | None = None) -> list[InstalledSkill]:
    """Every skill installed in ``scope``, reconciled. Re-reads everything."""
    store = store or RegistryStore.for_scope(scope)
    return merge_registry(store.load(), scan_installed(scope))


def find_installed(scope: Scope, name: str, store: RegistryStore | None = None) -> InstalledSkill | None:
    for skill in list_installed(scope, store):
        if skill.name == name:
            return skill
    return None


def describe_skill(scope: Scope, name: str, store: RegistryStore | None = None) -> SkillDetail:
    """Reconciled entry plus SKILL.md content and file list of the preferred copy."""
    skill = find_installed(scope, name, store)
    if skill is None:
        raise SkillNotInstalledError(name)

    path = skill.preferred_path()
    content = ""
    files: list[str] = []
    if path is not None:
        try:
            content = (path / SKILL_MARKER).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s: %s", path / SKILL_MARKER, e)
        files = list_skill_files(path)
    return SkillDetail(skill=skill, content=content, files=files)
