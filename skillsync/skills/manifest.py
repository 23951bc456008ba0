"""Content manifests — a hash of every file in a skill package.

Each installed copy carries a ``.skill-manifest.json`` sidecar describing
the files it was installed with. Comparing it with a manifest built from the
remote tree tells whether an update exists, independent of any version
string the publisher declares.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from skillsync.errors import ManifestError, SkillIOError
from skillsync.skills.frontmatter import SkillMetadata, read_skill_metadata
from skillsync.utils.file_scanner import MANIFEST_FILENAME, relative_posix, scan_package_files

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class FileRecord:
    """One file of a package: slash-normalized relative path, sha256, size."""

    path: str
    hash: str
    size: int

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "hash": self.hash, "size": self.size}


@dataclass
class SkillManifest:
    """Content snapshot of one package plus its declared metadata."""

    name: str
    version: str | None = None
    description: str = ""
    repository: str | None = None
    generated_at: str = ""
    files: list[FileRecord] = field(default_factory=list)

    def file_map(self) -> dict[str, FileRecord]:
        return {record.path: record for record in self.files}

    def same_content(self, other: SkillManifest) -> bool:
        return self.file_map() == other.file_map()

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "name": self.name,
            "description": self.description,
            "repository": self.repository,
            "files": [record.to_dict() for record in self.files],
            "generatedAt": self.generated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SkillManifest:
        files = [
            FileRecord(path=str(f["path"]), hash=str(f["hash"]), size=int(f.get("size", 0)))
            for f in data.get("files", [])
        ]
        return cls(
            name=str(data.get("name", "")),
            version=data.get("version"),
            description=data.get("description") or "",
            repository=data.get("repository"),
            generated_at=data.get("generatedAt", ""),
            files=files,
        )


def hash_file(path: Path) -> str:
    """sha256 hex digest of the file's raw bytes."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def build_manifest(
    skill_dir: str | Path,
    name: str | None = None,
    repository: str | None = None,
    metadata: SkillMetadata | None = None,
) -> SkillManifest:
    """Build a manifest for the package rooted at ``skill_dir``.

    Args:
        skill_dir: Package root.
        name: Package name; defaults to the directory name. Pass it when the
            directory is a scratch location (a fetched tree).
        repository: Origin repository URL to record.
        metadata: Already-resolved metadata. Parsed from SKILL.md when omitted,
            falling back to the package name and empty fields.

    Raises:
        SkillIOError: if a file cannot be read.
    """
    skill_dir = Path(skill_dir)
    name = name or skill_dir.name
    if metadata is None:
        metadata = read_skill_metadata(skill_dir) or SkillMetadata(name=name)

    records = []
    for path in scan_package_files(skill_dir):
        try:
            records.append(
                FileRecord(
                    path=relative_posix(path, skill_dir),
                    hash=hash_file(path),
                    size=path.stat().st_size,
                )
            )
        except OSError as e:
            raise SkillIOError("hash file", path, e) from e

    return SkillManifest(
        name=name,
        version=metadata.version,
        description=metadata.description,
        repository=repository or metadata.repository,
        generated_at=datetime.now(timezone.utc).isoformat(),
        files=records,
    )


def manifest_path(skill_dir: Path) -> Path:
    return Path(skill_dir) / MANIFEST_FILENAME


def write_manifest(skill_dir: str | Path, manifest: SkillManifest) -> Path:
    """Write the sidecar, replacing any previous one in a single rename."""
    path = manifest_path(Path(skill_dir))
    tmp = path.with_name(path.name + ".tmp")
    try:
        tmp.write_text(json.dumps(manifest.to_dict(), indent=2), encoding="utf-8")
        os.replace(tmp, path)
    except OSError as e:
        raise SkillIOError("write manifest", path, e) from e
    return path


def load_manifest(skill_dir: str | Path) -> SkillManifest:
    """Read the sidecar.

    Raises:
        ManifestError: when it is missing, unreadable or malformed.
    """
    path = manifest_path(Path(skill_dir))
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ManifestError(path, "not found") from None
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ManifestError(path, str(e)) from e

    if not isinstance(data, dict):
        raise ManifestError(path, "expected a JSON object")
    try:
        return SkillManifest.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise ManifestError(path, f"malformed file record: {e}") from e


def read_manifest(skill_dir: str | Path) -> SkillManifest | None:
    """Read the sidecar, treating a missing or broken one as no manifest."""
    if not manifest_path(Path(skill_dir)).exists():
        return None
    try:
        return load_manifest(skill_dir)
    except ManifestError as e:
        logger.warning("%s; treating as no manifest", e)
        return None
