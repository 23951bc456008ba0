"""Tests for update checks, safe replacement and backup recovery."""

import tempfile
from pathlib import Path

import pytest

from skillsync.config import Settings
from skillsync.errors import (
    FetchError,
    NoRepositoryError,
    OrphanedBackupError,
    SkillIOError,
    SkillNotInstalledError,
)
from skillsync.registry.store import RegistryStore
from skillsync.skills.manifest import load_manifest
from skillsync.sync.installer import Installer
from skillsync.sync.updater import BACKUP_SUFFIX, UpdatePhase, Updater, backup_path_for
from skillsync.targets import ToolTarget
from skillsync.utils.git_ops import DirectoryFetcher


def _write_package(pkg: Path, version: str, script: str) -> None:
    (pkg / "scripts").mkdir(parents=True, exist_ok=True)
    (pkg / "SKILL.md").write_text(f"---\nname: alpha\nversion: {version}\ndescription: Alpha\n---\n# Alpha\n")
    (pkg / "scripts" / "run.sh").write_text(script)


def _setup(tmpdir: str, tools=("claude-code",)):
    """Install alpha 1.0.0 from a local source; return (updater, source package dir)."""
    base = Path(tmpdir)
    source = base / "src"
    pkg = source / "skills" / "alpha"
    _write_package(pkg, "1.0.0", "echo v1\n")

    settings = Settings(home=base / "home", work_dir=base / "work")
    scope = settings.scope()
    Installer(scope, settings=settings, fetcher=DirectoryFetcher()).install_from_source(
        str(source), tools=list(tools)
    )
    return Updater(scope, settings=settings, fetcher=DirectoryFetcher()), pkg


def _installed(updater: Updater, tool: ToolTarget = ToolTarget.CLAUDE_CODE) -> Path:
    return updater.scope.roots(tool).active / "alpha"


# --- Check ---


def test_check_up_to_date_then_changed():
    with tempfile.TemporaryDirectory() as tmpdir:
        updater, pkg = _setup(tmpdir)
        result = updater.check("alpha")
        assert not result.has_update
        assert result.current_version == "1.0.0"

        (pkg / "scripts" / "run.sh").write_text("echo v2\n")
        (pkg / "extra.md").write_text("new file\n")
        result = updater.check("alpha")
        assert result.has_update
        assert result.diff.changed == ["scripts/run.sh"]
        assert result.diff.new == ["extra.md"]
        # content changed without a version bump
        assert not result.version_changed


def test_check_without_sidecar_hashes_installed_copy():
    with tempfile.TemporaryDirectory() as tmpdir:
        updater, _ = _setup(tmpdir)
        (_installed(updater) / ".skill-manifest.json").unlink()
        assert not updater.check("alpha").has_update


def test_check_relative_source_from_another_directory(monkeypatch):
    with tempfile.TemporaryDirectory() as tmpdir:
        base = Path(tmpdir)
        pkg = base / "src" / "skills" / "alpha"
        _write_package(pkg, "1.0.0", "echo v1\n")
        (base / "elsewhere").mkdir()

        settings = Settings(home=base / "home", work_dir=base / "work")
        scope = settings.scope()
        monkeypatch.chdir(base)
        Installer(scope, settings=settings).install_from_source("src")

        monkeypatch.chdir(base / "elsewhere")
        updater = Updater(scope, settings=settings)
        assert updater.resolve_repository("alpha") == str((base / "src").resolve())
        assert not updater.check("alpha").has_update

        (pkg / "scripts" / "run.sh").write_text("echo v2\n")
        assert updater.check("alpha").has_update


def test_check_not_installed():
    with tempfile.TemporaryDirectory() as tmpdir:
        updater, _ = _setup(tmpdir)
        with pytest.raises(SkillNotInstalledError):
            updater.check("alpha", "cursor")


# --- Update ---


def test_update_replaces_content():
    with tempfile.TemporaryDirectory() as tmpdir:
        updater, pkg = _setup(tmpdir)
        _write_package(pkg, "1.1.0", "echo v2\n")

        result = updater.update("alpha")
        installed = _installed(updater)

        assert result.previous_version == "1.0.0"
        assert result.new_version == "1.1.0"
        assert result.diff.changed == ["SKILL.md", "scripts/run.sh"]
        assert result.phases == [
            UpdatePhase.BACKED_UP,
            UpdatePhase.OLD_REMOVED,
            UpdatePhase.NEW_COPIED,
            UpdatePhase.MANIFEST_REGENERATED,
            UpdatePhase.CLEANED_UP,
        ]
        assert (installed / "scripts" / "run.sh").read_text() == "echo v2\n"
        assert load_manifest(installed).version == "1.1.0"
        assert not backup_path_for(installed).exists()

        entry = RegistryStore.for_scope(updater.scope).load().get("alpha")
        assert entry.version == "1.1.0"
        assert entry.installed_by == ["claude-code"]
        assert not updater.check("alpha").has_update


def test_failed_replacement_restores_previous_copy(monkeypatch):
    with tempfile.TemporaryDirectory() as tmpdir:
        updater, pkg = _setup(tmpdir)
        _write_package(pkg, "2.0.0", "echo v2\n")

        def broken_copy(source, dest):
            dest.mkdir()
            (dest / "partial").write_text("half")
            raise OSError("disk full")

        monkeypatch.setattr("skillsync.sync.updater.copy_package", broken_copy)
        with pytest.raises(SkillIOError):
            updater.update("alpha")

        installed = _installed(updater)
        assert (installed / "scripts" / "run.sh").read_text() == "echo v1\n"
        assert not (installed / "partial").exists()
        assert not backup_path_for(installed).exists()
        assert RegistryStore.for_scope(updater.scope).load().get("alpha").version == "1.0.0"


def test_fetch_failure_leaves_copy_untouched():
    with tempfile.TemporaryDirectory() as tmpdir:
        updater, _ = _setup(tmpdir)
        updater.set_repository("alpha", str(Path(tmpdir) / "gone"))

        with pytest.raises(FetchError):
            updater.update("alpha")
        installed = _installed(updater)
        assert (installed / "scripts" / "run.sh").read_text() == "echo v1\n"
        assert not backup_path_for(installed).exists()


def test_update_all_copies():
    with tempfile.TemporaryDirectory() as tmpdir:
        updater, pkg = _setup(tmpdir, tools=("claude-code", "cursor"))
        _write_package(pkg, "1.2.0", "echo v3\n")

        outcomes = updater.update_all("alpha")
        assert sorted(o.tool.value for o in outcomes) == ["claude-code", "cursor"]
        assert all(o.result is not None for o in outcomes)
        for tool in (ToolTarget.CLAUDE_CODE, ToolTarget.CURSOR):
            assert (_installed(updater, tool) / "scripts" / "run.sh").read_text() == "echo v3\n"


def test_no_repository():
    with tempfile.TemporaryDirectory() as tmpdir:
        settings = Settings(home=Path(tmpdir) / "home", work_dir=Path(tmpdir) / "work")
        scope = settings.scope()
        skill = scope.roots(ToolTarget.CLAUDE_CODE).active / "local-only"
        skill.mkdir(parents=True)
        (skill / "SKILL.md").write_text("# local\n")

        updater = Updater(scope, settings=settings, fetcher=DirectoryFetcher())
        with pytest.raises(NoRepositoryError):
            updater.update("local-only")

        entry = updater.set_repository("local-only", "https://example.com/skills.git")
        assert entry.repository == "https://example.com/skills.git"
        assert updater.resolve_repository("local-only") == "https://example.com/skills.git"


# --- Recovery ---


def test_orphaned_backup_blocks_update_until_recovered():
    with tempfile.TemporaryDirectory() as tmpdir:
        updater, pkg = _setup(tmpdir)
        installed = _installed(updater)

        # an interrupted run: backup present, installed copy half written
        backup = installed.with_name(f".alpha{BACKUP_SUFFIX}")
        installed.rename(backup)
        installed.mkdir()
        (installed / "SKILL.md").write_text("# half\n")

        with pytest.raises(OrphanedBackupError):
            updater.update("alpha")

        orphans = updater.find_orphaned_backups()
        assert len(orphans) == 1
        assert orphans[0].name == "alpha"
        assert orphans[0].tool is ToolTarget.CLAUDE_CODE
        assert orphans[0].target_exists

        updater.restore_backup(orphans[0])
        assert (installed / "scripts" / "run.sh").read_text() == "echo v1\n"
        assert updater.find_orphaned_backups() == []

        _write_package(pkg, "1.1.0", "echo v2\n")
        assert updater.update("alpha").new_version == "1.1.0"


def test_discard_backup():
    with tempfile.TemporaryDirectory() as tmpdir:
        updater, _ = _setup(tmpdir)
        installed = _installed(updater)
        backup = backup_path_for(installed)
        backup.mkdir()
        (backup / "SKILL.md").write_text("# old\n")

        (orphan,) = updater.find_orphaned_backups()
        updater.discard_backup(orphan)
        assert not backup.exists()
        assert (installed / "scripts" / "run.sh").read_text() == "echo v1\n"
