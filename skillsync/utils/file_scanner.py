"""File scanner — enumerate the files that make up a skill package."""

from __future__ import annotations

from pathlib import Path

# Written by skillsync into every installed copy; never part of the content
MANIFEST_FILENAME = ".skill-manifest.json"

# Directories never copied from a fetched tree
COPY_IGNORE = (".git",)


def scan_package_files(package_dir: Path) -> list[Path]:
    """Recursively list the content files of a package, sorted by relative path.

    Skips dot-prefixed files and directories (at any depth) and the
    manifest sidecar.
    """
    files = []
    for item in package_dir.rglob("*"):
        if item.is_file() and _should_include(item.relative_to(package_dir)):
            files.append(item)
    return sorted(files, key=lambda p: relative_posix(p, package_dir))


def _should_include(relative: Path) -> bool:
    """Check if a file (relative to the package root) is package content."""
    if relative.name == MANIFEST_FILENAME:
        return False
    return not any(part.startswith(".") for part in relative.parts)


def relative_posix(path: Path, root: Path) -> str:
    """Slash-normalized path of ``path`` relative to ``root``."""
    return path.relative_to(root).as_posix()


def list_skill_files(package_dir: Path) -> list[str]:
    """Relative, slash-normalized paths of a package's content files."""
    return [relative_posix(p, package_dir) for p in scan_package_files(package_dir)]
