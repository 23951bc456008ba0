"""Tests for the registry store and the reconciler."""

import json
import tempfile
from pathlib import Path

import pytest

from skillsync.errors import RegistryError, SkillNotInstalledError
from skillsync.registry.models import RegistryEntry, SkillRegistry
from skillsync.registry.reconciler import (
    describe_skill,
    list_installed,
    merge_registry,
    scan_installed,
)
from skillsync.registry.store import RegistryStore
from skillsync.skills.frontmatter import SkillMetadata
from skillsync.targets import Location, Scope, ToolTarget


def _write_skill(root: Path, name: str, version: str = "1.0.0") -> Path:
    skill = root / name
    skill.mkdir(parents=True, exist_ok=True)
    (skill / "SKILL.md").write_text(
        f"---\nname: {name}\nversion: {version}\ndescription: The {name} skill\n---\n# {name}\n"
    )
    return skill


def _entry(name: str, tools=None, enabled=True, repository=None) -> RegistryEntry:
    return RegistryEntry(
        id=f"id-{name}",
        name=name,
        description=f"The {name} skill",
        enabled=enabled,
        installed_by=list(tools or []),
        installed_at="2026-01-01T00:00:00+00:00",
        metadata=SkillMetadata(name=name, version="1.0.0", repository=repository),
    )


# --- Store ---


def test_missing_registry_is_empty():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = RegistryStore(Path(tmpdir) / "skill-registry.json")
        assert store.load().entries == []


def test_save_and_load():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "nested" / "skill-registry.json"
        store = RegistryStore(path)
        registry = SkillRegistry(entries=[_entry("alpha", ["cursor"], repository="https://x/a.git")])
        store.save(registry)

        data = json.loads(path.read_text())
        assert data["skills"][0]["installedBy"] == ["cursor"]
        assert data["skills"][0]["metadata"]["repository"] == "https://x/a.git"

        loaded = store.load()
        assert loaded.get("alpha").repository == "https://x/a.git"
        assert loaded.get("alpha").installed_at == "2026-01-01T00:00:00+00:00"
        assert not list(path.parent.glob(".*.tmp"))


def test_corrupt_registry_is_not_reset():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "skill-registry.json"
        path.write_text("{ this is not json")
        store = RegistryStore(path)

        with pytest.raises(RegistryError):
            store.load()
        assert path.read_text() == "{ this is not json"

        path.write_text(json.dumps({"skills": [{"description": "no name"}]}))
        with pytest.raises(RegistryError):
            store.load()

        # a bare string must not be split into characters
        path.write_text(json.dumps({"skills": [{"name": "a", "installedBy": "claude-code"}]}))
        with pytest.raises(RegistryError):
            store.load()

        path.write_text(json.dumps({"skills": [{"name": "a", "installedBy": ["cursor", 3]}]}))
        with pytest.raises(RegistryError):
            store.load()


def test_registry_upsert_and_remove():
    registry = SkillRegistry()
    registry.upsert(_entry("alpha", ["cursor"]))
    registry.upsert(_entry("alpha", ["codex"]))
    assert len(registry.entries) == 1
    assert registry.get("alpha").installed_by == ["codex"]
    assert registry.remove("alpha")
    assert not registry.remove("alpha")


# --- Reconciler ---


def test_scan_reads_both_roots():
    with tempfile.TemporaryDirectory() as tmpdir:
        scope = Scope.global_scope(tmpdir)
        _write_skill(scope.roots(ToolTarget.CLAUDE_CODE).active, "alpha")
        _write_skill(scope.roots(ToolTarget.CURSOR).inactive, "alpha")
        (scope.roots(ToolTarget.CURSOR).active / "not-a-skill").mkdir(parents=True)

        scan = scan_installed(scope)
        alpha = scan.get("alpha")
        assert alpha.locations == {
            ToolTarget.CLAUDE_CODE: Location.ACTIVE,
            ToolTarget.CURSOR: Location.INACTIVE,
        }
        assert alpha.enabled
        assert alpha.metadata.version == "1.0.0"
        assert scan.get("not-a-skill") is None


def test_merge_unions_tools_and_uses_location_for_enabled():
    with tempfile.TemporaryDirectory() as tmpdir:
        scope = Scope.global_scope(tmpdir)
        _write_skill(scope.roots(ToolTarget.CURSOR).inactive, "alpha")
        _write_skill(scope.roots(ToolTarget.CODEX).active, "beta")

        stored = SkillRegistry(
            entries=[
                _entry("alpha", ["claude-code"], enabled=True),
                _entry("gone", ["cursor"]),
            ]
        )
        merged = merge_registry(stored, scan_installed(scope))

        assert [s.name for s in merged] == ["alpha", "beta"]
        alpha, beta = merged
        assert alpha.tracked
        assert alpha.installed_by == ["claude-code", "cursor"]
        assert not alpha.enabled

        # on disk without an entry: ephemeral and untracked
        assert not beta.tracked
        assert beta.installed_by == ["codex"]
        assert beta.enabled
        assert beta.version == "1.0.0"

        # the stored registry is not modified
        assert stored.get("alpha").installed_by == ["claude-code"]
        assert stored.get("alpha").enabled


def test_list_installed_sees_manual_changes():
    with tempfile.TemporaryDirectory() as tmpdir:
        scope = Scope.global_scope(tmpdir)
        assert list_installed(scope) == []

        _write_skill(scope.roots(ToolTarget.DROID).active, "manual")
        assert [s.name for s in list_installed(scope)] == ["manual"]


def test_list_installed_surfaces_corrupt_registry():
    with tempfile.TemporaryDirectory() as tmpdir:
        scope = Scope.global_scope(tmpdir)
        _write_skill(scope.roots(ToolTarget.CLAUDE_CODE).active, "alpha")
        scope.registry_path.write_text("[broken")
        with pytest.raises(RegistryError):
            list_installed(scope)


def test_describe_skill():
    with tempfile.TemporaryDirectory() as tmpdir:
        scope = Scope.global_scope(tmpdir)
        skill = _write_skill(scope.roots(ToolTarget.CLAUDE_CODE).active, "alpha")
        (skill / "scripts").mkdir()
        (skill / "scripts" / "run.sh").write_text("echo\n")

        detail = describe_skill(scope, "alpha")
        assert detail.content.startswith("---\nname: alpha")
        assert detail.files == ["SKILL.md", "scripts/run.sh"]

        with pytest.raises(SkillNotInstalledError):
            describe_skill(scope, "missing")
