"""Enable or disable a skill by moving it between a tool's two roots."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from skillsync.errors import PathCollisionError, SkillIOError, SkillNotInstalledError, SkillSyncError
from skillsync.registry.reconciler import scan_installed
from skillsync.registry.store import RegistryStore
from skillsync.targets import Location, Scope, ToolTarget, validate_skill_name

logger = logging.getLogger(__name__)


class ToggleStatus(Enum):
    MOVED = "moved"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass
class ToggleOutcome:
    tool: ToolTarget
    status: ToggleStatus
    path: Path | None = None
    error: str = ""


def _move(scope: Scope, name: str, tool: ToolTarget, enabled: bool) -> Path:
    roots = scope.roots(tool)
    src_location, dst_location = (
        (Location.INACTIVE, Location.ACTIVE) if enabled else (Location.ACTIVE, Location.INACTIVE)
    )
    src = roots.skill_path(name, src_location)
    dst = roots.skill_path(name, dst_location)

    if not src.is_dir():
        raise SkillNotInstalledError(name, f"not in the {src_location.value} root of {tool.value}")
    if dst.exists():
        raise PathCollisionError(dst)

    try:
        dst.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise SkillIOError("create root", dst.parent, e) from e

    # the destination may have appeared while the root was being created
    if dst.exists():
        raise PathCollisionError(dst)
    try:
        src.rename(dst)
    except OSError as e:
        raise SkillIOError("move", src, e) from e

    logger.info("%s %s for %s", "Enabled" if enabled else "Disabled", name, tool.value)
    return dst


def _record_enabled(scope: Scope, name: str, store: RegistryStore | None) -> None:
    """Refresh the registry's enabled hint from where the skill now lives."""
    store = store or RegistryStore.for_scope(scope)
    registry = store.load()
    entry = registry.get(name)
    if entry is None:
        return
    observed = scan_installed(scope).get(name)
    entry.enabled = observed.enabled if observed else False
    registry.upsert(entry)
    store.save(registry)


def toggle_skill(
    scope: Scope,
    name: str,
    tool: str | ToolTarget,
    enabled: bool,
    store: RegistryStore | None = None,
) -> Path:
    """Move ``name`` into the active (``enabled``) or inactive root of ``tool``.

    Returns the new path.

    Raises:
        SkillNotInstalledError: the skill is not in the source root.
        PathCollisionError: the destination already exists; nothing moved.
        SkillIOError: the rename failed.
    """
    validate_skill_name(name)
    tool = ToolTarget.parse(tool)
    path = _move(scope, name, tool, enabled)
    _record_enabled(scope, name, store)
    return path


def set_enabled(
    scope: Scope,
    name: str,
    enabled: bool,
    tools: list[str | ToolTarget] | None = None,
    store: RegistryStore | None = None,
) -> list[ToggleOutcome]:
    """Enable or disable ``name`` for several tools at once.

    Without ``tools`` every tool holding a copy is toggled. A tool already in
    the requested state is reported as unchanged.
    """
    validate_skill_name(name)
    observed = scan_installed(scope).get(name)
    if observed is None:
        raise SkillNotInstalledError(name)

    targets = ToolTarget.parse_many(tools) if tools else list(observed.locations)
    wanted = Location.ACTIVE if enabled else Location.INACTIVE

    outcomes = []
    for tool in targets:
        location = observed.locations.get(tool)
        if location is None:
            outcomes.append(
                ToggleOutcome(tool, ToggleStatus.FAILED, error=f"not installed for {tool.value}")
            )
            continue
        if location is wanted:
            outcomes.append(ToggleOutcome(tool, ToggleStatus.UNCHANGED, observed.paths[tool]))
            continue
        try:
            path = _move(scope, name, tool, enabled)
        except SkillSyncError as e:
            logger.warning("%s", e)
            outcomes.append(ToggleOutcome(tool, ToggleStatus.FAILED, error=str(e)))
            continue
        outcomes.append(ToggleOutcome(tool, ToggleStatus.MOVED, path))

    if any(o.status is ToggleStatus.MOVED for o in outcomes):
        _record_enabled(scope, name, store)
    return outcomes
