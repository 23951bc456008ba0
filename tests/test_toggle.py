"""Tests for enabling and disabling skills."""

import tempfile
from pathlib import Path

import pytest

from skillsync.errors import PathCollisionError, SkillNotInstalledError
from skillsync.registry.models import RegistryEntry, SkillRegistry
from skillsync.registry.reconciler import find_installed
from skillsync.registry.store import RegistryStore
from skillsync.sync.toggle import ToggleStatus, set_enabled, toggle_skill
from skillsync.targets import Scope, ToolTarget


def _write_skill(root: Path, name: str = "alpha") -> Path:
    skill = root / name
    skill.mkdir(parents=True)
    (skill / "SKILL.md").write_text(f"---\nname: {name}\n---\n")
    (skill / "notes.md").write_text("keep me\n")
    return skill


def test_disable_then_enable_roundtrip():
    with tempfile.TemporaryDirectory() as tmpdir:
        scope = Scope.global_scope(tmpdir)
        roots = scope.roots(ToolTarget.CLAUDE_CODE)
        _write_skill(roots.active)

        path = toggle_skill(scope, "alpha", "claude-code", enabled=False)
        assert path == roots.inactive / "alpha"
        assert not (roots.active / "alpha").exists()
        assert (path / "notes.md").read_text() == "keep me\n"
        assert not find_installed(scope, "alpha").enabled

        path = toggle_skill(scope, "alpha", ToolTarget.CLAUDE_CODE, enabled=True)
        assert path == roots.active / "alpha"
        assert not (roots.inactive / "alpha").exists()
        assert find_installed(scope, "alpha").enabled


def test_toggle_refuses_collision():
    with tempfile.TemporaryDirectory() as tmpdir:
        scope = Scope.global_scope(tmpdir)
        roots = scope.roots(ToolTarget.CURSOR)
        _write_skill(roots.active)
        _write_skill(roots.inactive)
        (roots.inactive / "alpha" / "notes.md").write_text("other copy\n")

        with pytest.raises(PathCollisionError):
            toggle_skill(scope, "alpha", "cursor", enabled=False)

        # both copies untouched
        assert (roots.active / "alpha" / "notes.md").read_text() == "keep me\n"
        assert (roots.inactive / "alpha" / "notes.md").read_text() == "other copy\n"


def test_toggle_missing_source():
    with tempfile.TemporaryDirectory() as tmpdir:
        scope = Scope.global_scope(tmpdir)
        with pytest.raises(SkillNotInstalledError):
            toggle_skill(scope, "alpha", "codex", enabled=True)

        # already enabled: nothing in the inactive root to move
        _write_skill(scope.roots(ToolTarget.CODEX).active)
        with pytest.raises(SkillNotInstalledError):
            toggle_skill(scope, "alpha", "codex", enabled=True)


def test_toggle_updates_registry_hint():
    with tempfile.TemporaryDirectory() as tmpdir:
        scope = Scope.global_scope(tmpdir)
        _write_skill(scope.roots(ToolTarget.CLAUDE_CODE).active)
        store = RegistryStore.for_scope(scope)
        store.save(SkillRegistry(entries=[RegistryEntry(id="1", name="alpha", installed_by=["claude-code"])]))

        toggle_skill(scope, "alpha", "claude-code", enabled=False)
        assert store.load().get("alpha").enabled is False


def test_set_enabled_across_tools():
    with tempfile.TemporaryDirectory() as tmpdir:
        scope = Scope.workspace(tmpdir)
        _write_skill(scope.roots(ToolTarget.CLAUDE_CODE).active)
        _write_skill(scope.roots(ToolTarget.DROID).inactive)

        outcomes = set_enabled(scope, "alpha", enabled=False)
        statuses = {o.tool: o.status for o in outcomes}
        assert statuses == {
            ToolTarget.CLAUDE_CODE: ToggleStatus.MOVED,
            ToolTarget.DROID: ToggleStatus.UNCHANGED,
        }
        assert (scope.roots(ToolTarget.CLAUDE_CODE).inactive / "alpha").is_dir()

        outcomes = set_enabled(scope, "alpha", enabled=True, tools=["droid", "cursor"])
        statuses = {o.tool: o.status for o in outcomes}
        assert statuses[ToolTarget.DROID] is ToggleStatus.MOVED
        assert statuses[ToolTarget.CURSOR] is ToggleStatus.FAILED

        with pytest.raises(SkillNotInstalledError):
            set_enabled(scope, "missing", enabled=True)
