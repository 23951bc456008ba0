"""Source preview — list the skills a source offers before installing any."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from skillsync.config import Settings
from skillsync.registry.models import preferred_path
from skillsync.registry.reconciler import scan_installed
from skillsync.registry.store import RegistryStore
from skillsync.skills.diff import diff_manifests
from skillsync.skills.frontmatter import SkillMetadata, read_skill_metadata
from skillsync.skills.locator import locate_packages
from skillsync.skills.manifest import build_manifest, read_manifest
from skillsync.targets import Scope
from skillsync.utils.git_ops import (
    Fetcher,
    TransientTree,
    fetcher_for,
    normalize_source,
    repo_name_from_source,
)

logger = logging.getLogger(__name__)


@dataclass
class CatalogItem:
    """One skill offered by a source, with its install status in a scope."""

    name: str
    version: str | None = None
    description: str = ""
    tags: list[str] = field(default_factory=list)
    target_tools: list[str] = field(default_factory=list)
    installed: bool = False
    installed_version: str | None = None
    installed_by: list[str] = field(default_factory=list)
    has_update: bool = False


def scan_source(
    source: str,
    scope: Scope,
    settings: Settings | None = None,
    fetcher: Fetcher | None = None,
    names: list[str] | None = None,
) -> list[CatalogItem]:
    """Fetch ``source`` and describe each skill it holds.

    Installed skills are compared by content hash with the fetched copy.

    Raises:
        FetchError: the source could not be fetched.
        NoPackagesFoundError: the source holds no skill.
    """
    source = normalize_source(source)
    settings = settings or Settings()
    fetcher = fetcher or fetcher_for(source, settings.fetch_timeout)
    registry = RegistryStore.for_scope(scope).load()
    live = scan_installed(scope)

    items = []
    with TransientTree.prepare(settings.work_dir, "scan", source) as tree:
        fetcher.fetch(source, tree.path, shallow=True)
        candidates = locate_packages(tree.path, names, root_name=repo_name_from_source(source))

        for candidate in candidates:
            metadata = read_skill_metadata(candidate.path) or SkillMetadata(name=candidate.name)
            item = CatalogItem(
                name=candidate.name,
                version=metadata.version,
                description=metadata.description,
                tags=list(metadata.tags),
                target_tools=list(metadata.target_tools),
            )

            observed = live.get(candidate.name)
            if observed is not None:
                path = preferred_path(observed.locations, observed.paths)
                local = read_manifest(path) or build_manifest(path, name=candidate.name)
                remote = build_manifest(candidate.path, name=candidate.name, metadata=metadata)
                entry = registry.get(candidate.name)

                item.installed = True
                item.installed_by = observed.tools
                item.installed_version = (entry.version if entry else None) or local.version
                item.has_update = diff_manifests(local, remote).has_update
            items.append(item)

    logger.info("%s offers %d skill(s)", source, len(items))
    return items
