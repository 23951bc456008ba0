"""Declared skill metadata, parsed from the SKILL.md front matter.

A marker document may open with a block of ``key: value`` lines between two
``---`` lines::

    ---
    name: pdf-tools
    version: 1.2.0
    description: Extract and fill PDF forms
    tags: [pdf, documents]
    allowed-tools: Read, Write, Bash
    ---
    # PDF tools
    ...

Metadata resolution is best effort: a missing or unparsable block yields
``None`` (callers fall back to defaults), never an exception.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from skillsync.targets import SKILL_MARKER

logger = logging.getLogger(__name__)

FRONTMATTER_DELIMITER = "---"
METADATA_SIDECAR = "metadata.json"


@dataclass
class SkillMetadata:
    """Resolved metadata for one skill."""

    name: str
    version: str | None = None
    description: str = ""
    tags: list[str] = field(default_factory=list)
    allowed_tools: list[str] = field(default_factory=list)
    target_tools: list[str] = field(default_factory=list)
    repository: str | None = None
    commit_hash: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "tags": list(self.tags),
            "allowedTools": list(self.allowed_tools),
            "targetTools": list(self.target_tools),
            "repository": self.repository,
            "commitHash": self.commit_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], fallback_name: str = "") -> SkillMetadata:
        return cls(
            name=str(data.get("name") or fallback_name),
            version=_as_optional_str(data.get("version")),
            description=str(data.get("description") or ""),
            tags=_as_list(data.get("tags")),
            allowed_tools=_as_list(_first(data, "allowedTools", "allowed-tools", "allowed_tools")),
            target_tools=_as_list(_first(data, "targetTools", "target-tools", "target_tools")),
            repository=_as_optional_str(_first(data, "repository", "repo")),
            commit_hash=_as_optional_str(_first(data, "commitHash", "commit_hash")),
        )


def parse_frontmatter(text: str) -> dict[str, Any] | None:
    """Return the key/value pairs of the leading front-matter block.

    Returns None when there is no block, the block is never closed, or it
    holds no keys. YAML is tried first; blocks YAML rejects (unquoted
    colons in descriptions are common) are read line by line.
    """
    lines = text.lstrip("\ufeff").splitlines()
    if not lines or lines[0].strip() != FRONTMATTER_DELIMITER:
        return None

    try:
        end = next(
            i for i in range(1, len(lines)) if lines[i].strip() == FRONTMATTER_DELIMITER
        )
    except StopIteration:
        return None

    block = "\n".join(lines[1:end])
    try:
        # BaseLoader keeps every scalar a string, so "1.10" stays "1.10"
        data = yaml.load(block, Loader=yaml.BaseLoader)
    except yaml.YAMLError as e:
        logger.debug("Front matter is not valid YAML, reading line by line: %s", e)
        data = None

    if not isinstance(data, dict):
        data = _parse_key_values(lines[1:end])

    data = {str(k).strip(): v for k, v in data.items() if k is not None}
    return data or None


def metadata_from_text(text: str, fallback_name: str) -> SkillMetadata | None:
    """Parse a marker document into metadata, or None without front matter."""
    data = parse_frontmatter(text)
    if data is None:
        return None
    return SkillMetadata.from_dict(data, fallback_name=fallback_name)


def read_skill_metadata(skill_dir: Path) -> SkillMetadata | None:
    """Metadata from ``<skill_dir>/SKILL.md`` front matter, if any."""
    marker = skill_dir / SKILL_MARKER
    try:
        text = marker.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Could not read %s: %s", marker, e)
        return None
    return metadata_from_text(text, fallback_name=skill_dir.name)


def read_metadata_sidecar(skill_dir: Path) -> SkillMetadata | None:
    """Metadata from a publisher-provided ``metadata.json``, if present and valid."""
    path = skill_dir / METADATA_SIDECAR
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: expected a JSON object", path)
        return None
    return SkillMetadata.from_dict(data, fallback_name=skill_dir.name)


def render_frontmatter(metadata: SkillMetadata) -> str:
    """Serialize metadata as a front-matter block (used by the scaffold)."""
    data: dict[str, Any] = {"name": metadata.name}
    if metadata.version:
        data["version"] = metadata.version
    data["description"] = metadata.description
    if metadata.tags:
        data["tags"] = list(metadata.tags)
    if metadata.allowed_tools:
        data["allowed-tools"] = ", ".join(metadata.allowed_tools)
    if metadata.target_tools:
        data["target-tools"] = list(metadata.target_tools)
    body = yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=None)
    return f"{FRONTMATTER_DELIMITER}\n{body}{FRONTMATTER_DELIMITER}\n"


def _parse_key_values(lines: list[str]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for line in lines:
        if ":" not in line or line.lstrip().startswith("#"):
            continue
        key, _, value = line.partition(":")
        key = key.strip()
        if not key:
            continue
        data[key] = value.strip().strip("'\"")
    return data


def _first(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) not in (None, ""):
            return data[key]
    return None


def _as_optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_list(value: Any) -> list[str]:
    """Accept a YAML list, ``[a, b]`` or ``a, b`` and return clean strings."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        items = [str(v) for v in value if v is not None]
    else:
        text = str(value).strip()
        if text.startswith("[") and text.endswith("]"):
            text = text[1:-1]
        items = text.split(",")
    return [item.strip().strip("'\"") for item in items if item.strip().strip("'\"")]
