"""Package locator — find skill packages inside a fetched tree.

Layout rules:

- a root that itself carries ``SKILL.md`` is exactly one package, named
  after the root directory;
- otherwise packages are the immediate subdirectories carrying ``SKILL.md``,
  searched under ``skills/`` when that directory exists and under the root
  when it does not.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from skillsync.errors import NoPackagesFoundError, PackageNotFoundError
from skillsync.targets import SKILL_MARKER

logger = logging.getLogger(__name__)

PACKAGES_SUBDIR = "skills"


@dataclass
class SkillCandidate:
    """A package directory found in a fetched tree."""

    name: str
    path: Path


def is_skill_dir(path: Path) -> bool:
    return path.is_dir() and (path / SKILL_MARKER).is_file()


def search_root(root: Path) -> Path:
    """The directory whose children are candidate packages."""
    packages = root / PACKAGES_SUBDIR
    return packages if packages.is_dir() else root


def _child_packages(directory: Path) -> list[SkillCandidate]:
    candidates = []
    for child in sorted(directory.iterdir()):
        if child.name.startswith("."):
            continue
        if is_skill_dir(child):
            candidates.append(SkillCandidate(name=child.name, path=child))
    return candidates


def locate_packages(
    root: str | Path,
    names: list[str] | None = None,
    root_name: str | None = None,
) -> list[SkillCandidate]:
    """Find candidate packages under ``root``, optionally restricted to ``names``.

    Candidates not in ``names`` are skipped silently so a caller can install
    a selection from a multi-package repository. ``root_name`` names a
    single-package root when the directory name is only a scratch name.

    Raises:
        NoPackagesFoundError: when no candidate remains.
    """
    root = Path(root)
    if is_skill_dir(root):
        candidates = [SkillCandidate(name=root_name or root.name, path=root)]
    elif root.is_dir():
        candidates = _child_packages(search_root(root))
    else:
        candidates = []

    logger.debug("Found %d package(s) under %s", len(candidates), root)

    if names:
        wanted = set(names)
        candidates = [c for c in candidates if c.name in wanted]

    if not candidates:
        raise NoPackagesFoundError(root, names)
    return candidates


def normalize_name(name: str) -> str:
    """Hyphen and underscore are interchangeable in package names."""
    return name.replace("_", "-")


def find_package_source(fetch_root: str | Path, name: str) -> Path:
    """Locate the subtree for ``name`` in a freshly fetched tree.

    Tries an exact directory match, then a hyphen/underscore-insensitive
    match. Only when the tree has no package layout at all does the whole
    fetch count as the package.

    Raises:
        PackageNotFoundError: when nothing matches.
    """
    fetch_root = Path(fetch_root)
    base = search_root(fetch_root)

    exact = base / name
    if is_skill_dir(exact):
        return exact

    children = _child_packages(base) if base.is_dir() else []
    wanted = normalize_name(name)
    for candidate in children:
        if normalize_name(candidate.name) == wanted:
            logger.debug("Matched %s to %s by normalized name", name, candidate.path)
            return candidate.path

    has_layout = base != fetch_root or bool(children)
    if not has_layout and is_skill_dir(fetch_root):
        return fetch_root

    raise PackageNotFoundError(name, fetch_root)
