"""Registry data models — stored entries and the reconciled view."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from skillsync.skills.frontmatter import SkillMetadata
from skillsync.targets import Location, ToolTarget


class SkillSource:
    REMOTE = "remote"  # installed from a repository
    LOCAL = "local"  # scaffolded locally, or found on disk untracked


def _tool_ids(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"installedBy must be a list of tool ids, got {value!r}")
    return sorted(set(value))


@dataclass
class RegistryEntry:
    """A single stored registry entry, keyed by skill name."""

    id: str
    name: str
    description: str = ""
    enabled: bool = True  # advisory; the filesystem decides
    source: str = SkillSource.REMOTE
    installed_by: list[str] = field(default_factory=list)
    installed_at: str | None = None
    metadata: SkillMetadata | None = None

    @property
    def version(self) -> str | None:
        return self.metadata.version if self.metadata else None

    @property
    def repository(self) -> str | None:
        return self.metadata.repository if self.metadata else None

    def add_tools(self, tools: list[str]) -> None:
        self.installed_by = sorted(set(self.installed_by) | set(tools))

    def remove_tools(self, tools: list[str]) -> None:
        self.installed_by = sorted(set(self.installed_by) - set(tools))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "source": self.source,
            "installedBy": list(self.installed_by),
            "installedAt": self.installed_at,
            "metadata": self.metadata.to_dict() if self.metadata else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RegistryEntry:
        name = data["name"]
        metadata = data.get("metadata")
        return cls(
            id=str(data.get("id") or name),
            name=str(name),
            description=data.get("description") or "",
            enabled=bool(data.get("enabled", True)),
            source=data.get("source") or SkillSource.REMOTE,
            installed_by=_tool_ids(data.get("installedBy")),
            installed_at=data.get("installedAt"),
            metadata=SkillMetadata.from_dict(metadata, fallback_name=str(name))
            if isinstance(metadata, dict)
            else None,
        )


@dataclass
class SkillRegistry:
    """All stored entries of one scope."""

    entries: list[RegistryEntry] = field(default_factory=list)

    def get(self, name: str) -> RegistryEntry | None:
        for entry in self.entries:
            if entry.name == name:
                return entry
        return None

    def upsert(self, entry: RegistryEntry) -> None:
        for i, existing in enumerate(self.entries):
            if existing.name == entry.name:
                self.entries[i] = entry
                return
        self.entries.append(entry)

    def remove(self, name: str) -> bool:
        before = len(self.entries)
        self.entries = [e for e in self.entries if e.name != name]
        return len(self.entries) != before

    def to_dict(self) -> dict[str, Any]:
        return {"skills": [entry.to_dict() for entry in self.entries]}


def preferred_path(
    locations: dict[ToolTarget, Location], paths: dict[ToolTarget, Path]
) -> Path | None:
    """An active copy if there is one, else any inactive copy (tool order)."""
    for tool in ToolTarget:
        if locations.get(tool) is Location.ACTIVE:
            return paths[tool]
    for tool in ToolTarget:
        if tool in paths:
            return paths[tool]
    return None


@dataclass
class InstalledSkill:
    """Reconciled view of one skill: stored entry merged with what is on disk."""

    entry: RegistryEntry
    locations: dict[ToolTarget, Location] = field(default_factory=dict)
    paths: dict[ToolTarget, Path] = field(default_factory=dict)
    tracked: bool = True
    """False when the skill was found on disk but has no registry entry."""

    @property
    def name(self) -> str:
        return self.entry.name

    @property
    def enabled(self) -> bool:
        return self.entry.enabled

    @property
    def installed_by(self) -> list[str]:
        return self.entry.installed_by

    @property
    def version(self) -> str | None:
        return self.entry.version

    def preferred_path(self) -> Path | None:
        return preferred_path(self.locations, self.paths)


@dataclass
class SkillDetail:
    """A skill's reconciled entry plus its marker content and file list."""

    skill: InstalledSkill
    content: str = ""
    files: list[str] = field(default_factory=list)
