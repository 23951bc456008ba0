"""Manifest differ — classify file-level changes between two manifests."""

from __future__ import annotations

from dataclasses import dataclass, field

from skillsync.skills.manifest import SkillManifest


@dataclass
class ManifestDiff:
    """File-level changes from a local manifest to a remote one."""

    changed: list[str] = field(default_factory=list)
    new: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def has_update(self) -> bool:
        return bool(self.changed or self.new or self.removed)

    def summary(self) -> str:
        if not self.has_update:
            return "up to date"
        return (
            f"{len(self.changed)} changed, {len(self.new)} new, "
            f"{len(self.removed)} removed"
        )


def diff_manifests(local: SkillManifest | None, remote: SkillManifest | None) -> ManifestDiff:
    """Compare two manifests by content hash.

    A missing manifest counts as an empty file set. Declared versions are
    ignored: only file hashes decide whether an update exists.
    """
    local_files = local.file_map() if local else {}
    remote_files = remote.file_map() if remote else {}

    diff = ManifestDiff()
    for path, record in remote_files.items():
        current = local_files.get(path)
        if current is None:
            diff.new.append(path)
        elif current.hash != record.hash:
            diff.changed.append(path)

    diff.removed = [path for path in local_files if path not in remote_files]

    diff.changed.sort()
    diff.new.sort()
    diff.removed.sort()
    return diff
