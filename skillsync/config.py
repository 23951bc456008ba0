"""Runtime settings, read from the environment with explicit overrides."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from skillsync.targets import Scope, ToolTarget

ENV_HOME = "SKILLSYNC_HOME"
ENV_WORK_DIR = "SKILLSYNC_WORK_DIR"
ENV_FETCH_TIMEOUT = "SKILLSYNC_FETCH_TIMEOUT"
ENV_DEFAULT_TOOLS = "SKILLSYNC_DEFAULT_TOOLS"

DEFAULT_FETCH_TIMEOUT = 300


@dataclass
class Settings:
    """Where skillsync reads and writes, and how it fetches."""

    home: Path = field(default_factory=Path.home)
    work_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))
    fetch_timeout: int = DEFAULT_FETCH_TIMEOUT
    default_tools: list[ToolTarget] = field(
        default_factory=lambda: [ToolTarget.CLAUDE_CODE]
    )

    @classmethod
    def from_env(cls, home: str | Path | None = None) -> Settings:
        """Build settings from ``SKILLSYNC_*`` variables.

        An explicit ``home`` wins over ``SKILLSYNC_HOME``.
        """
        settings = cls()
        env_home = home or os.environ.get(ENV_HOME)
        if env_home:
            settings.home = Path(env_home).expanduser()

        work_dir = os.environ.get(ENV_WORK_DIR)
        if work_dir:
            settings.work_dir = Path(work_dir).expanduser()

        timeout = os.environ.get(ENV_FETCH_TIMEOUT)
        if timeout:
            try:
                settings.fetch_timeout = int(timeout)
            except ValueError:
                raise ValueError(f"{ENV_FETCH_TIMEOUT} must be an integer, got {timeout!r}") from None

        tools = os.environ.get(ENV_DEFAULT_TOOLS)
        if tools:
            settings.default_tools = ToolTarget.parse_many(
                t for t in tools.split(",") if t.strip()
            )

        return settings

    def scope(self, workspace: str | Path | None = None) -> Scope:
        """The workspace scope if ``workspace`` is given, else the global scope."""
        if workspace:
            return Scope.workspace(Path(workspace).expanduser())
        return Scope.global_scope(self.home)
