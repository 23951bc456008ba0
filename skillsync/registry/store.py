"""File-backed registry store — one JSON document per scope.

Layout: ``<claude-code active root>/skill-registry.json``::

    {"skills": [{"id": ..., "name": ..., "installedBy": [...], ...}]}

A missing document is an empty registry. A corrupt one raises
:class:`RegistryError` and is left untouched: resetting it would lose the
metadata (repository URLs, install times) of skills that are still on disk.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from skillsync.errors import RegistryError, SkillIOError
from skillsync.registry.models import RegistryEntry, SkillRegistry
from skillsync.targets import Scope

logger = logging.getLogger(__name__)


class RegistryStore:
    """Loads and saves the registry document of one scope."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    @classmethod
    def for_scope(cls, scope: Scope) -> RegistryStore:
        return cls(scope.registry_path)

    def load(self) -> SkillRegistry:
        if not self.path.exists():
            return SkillRegistry()

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise RegistryError(self.path, f"invalid JSON: {e}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise RegistryError(self.path, str(e)) from e

        if isinstance(data, dict):
            raw_entries = data.get("skills", [])
        elif isinstance(data, list):
            raw_entries = data
        else:
            raise RegistryError(self.path, "expected an object with a 'skills' list")

        if not isinstance(raw_entries, list):
            raise RegistryError(self.path, "'skills' is not a list")

        entries = []
        for i, raw in enumerate(raw_entries):
            if not isinstance(raw, dict) or not raw.get("name"):
                raise RegistryError(self.path, f"entry {i} has no name")
            try:
                entries.append(RegistryEntry.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                raise RegistryError(self.path, f"entry {i}: {e}") from e
        return SkillRegistry(entries=entries)

    def save(self, registry: SkillRegistry) -> None:
        """Write the document in one rename so readers never see half of it."""
        tmp = self.path.with_name(f".{self.path.name}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(registry.to_dict(), indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            raise SkillIOError("write registry", self.path, e) from e
        logger.debug("Saved %d registry entr(y/ies) to %s", len(registry.entries), self.path)
