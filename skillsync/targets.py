"""Tool targets — where each consumer tool keeps its skills.

Every tool target owns two parallel roots per scope: an *active* root the
tool reads skills from, and an *inactive* root that holds disabled skills.
Whether a skill is enabled for a tool is decided only by which of the two
roots contains a directory named after it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from skillsync.errors import InvalidSkillNameError

SKILL_MARKER = "SKILL.md"
REGISTRY_FILE = "skill-registry.json"


class ToolTarget(Enum):
    """The closed set of consumer tools skills can be installed into."""

    CLAUDE_CODE = "claude-code"
    CURSOR = "cursor"
    CODEX = "codex"
    OPENCODE = "opencode"
    ANTIGRAVITY = "antigravity"
    DROID = "droid"

    @classmethod
    def parse(cls, value: str | ToolTarget) -> ToolTarget:
        """Resolve a tool identifier; raises ValueError for unknown ids."""
        if isinstance(value, ToolTarget):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            known = ", ".join(t.value for t in cls)
            raise ValueError(f"Unknown tool '{value}' (expected one of: {known})") from None

    @classmethod
    def parse_many(cls, values) -> list[ToolTarget]:
        """Parse a list of ids, dropping duplicates but keeping order."""
        tools: list[ToolTarget] = []
        for value in values:
            tool = cls.parse(value)
            if tool not in tools:
                tools.append(tool)
        return tools


class Location(Enum):
    """Which of a tool's two roots holds a skill."""

    ACTIVE = "active"
    INACTIVE = "inactive"


# (active, inactive) relative to the user's home directory
_GLOBAL_ROOTS: dict[ToolTarget, tuple[str, str]] = {
    ToolTarget.CLAUDE_CODE: (".claude/skills", ".claude/.disabled_skills"),
    ToolTarget.CURSOR: (".cursor/skills", ".cursor/.disabled_skills"),
    ToolTarget.CODEX: (".codex/skills", ".codex/.disabled_skills"),
    ToolTarget.OPENCODE: (".config/opencode/skills", ".config/opencode/.disabled_skills"),
    ToolTarget.ANTIGRAVITY: (
        ".gemini/antigravity/global_skills",
        ".gemini/antigravity/.disabled_skills",
    ),
    ToolTarget.DROID: (".droid/skills", ".droid/.disabled_skills"),
}

# (active, inactive) relative to a workspace root
_WORKSPACE_ROOTS: dict[ToolTarget, tuple[str, str]] = {
    ToolTarget.CLAUDE_CODE: (".claude/skills", ".claude/.disabled_skills"),
    ToolTarget.CURSOR: (".cursor/skills", ".cursor/.disabled_skills"),
    ToolTarget.CODEX: (".codex/skills", ".codex/.disabled_skills"),
    ToolTarget.OPENCODE: (".opencode/skills", ".opencode/.disabled_skills"),
    ToolTarget.ANTIGRAVITY: (".agent/skills", ".agent/.disabled_skills"),
    ToolTarget.DROID: (".droid/skills", ".droid/.disabled_skills"),
}


@dataclass(frozen=True)
class ToolRoots:
    """The active and inactive root of one tool in one scope."""

    tool: ToolTarget
    active: Path
    inactive: Path

    def root(self, location: Location) -> Path:
        return self.active if location is Location.ACTIVE else self.inactive

    def skill_path(self, name: str, location: Location) -> Path:
        return self.root(location) / name

    def locate(self, name: str) -> Location | None:
        """Return where ``name`` lives for this tool, active root first."""
        if (self.active / name).is_dir():
            return Location.ACTIVE
        if (self.inactive / name).is_dir():
            return Location.INACTIVE
        return None


@dataclass(frozen=True)
class Scope:
    """Global (home directory) or per-workspace installation scope."""

    base: Path
    is_workspace: bool = False

    @classmethod
    def global_scope(cls, home: str | Path | None = None) -> Scope:
        return cls(base=Path(home) if home else Path.home(), is_workspace=False)

    @classmethod
    def workspace(cls, path: str | Path) -> Scope:
        return cls(base=Path(path), is_workspace=True)

    @property
    def label(self) -> str:
        return f"workspace {self.base}" if self.is_workspace else "global"

    def roots(self, tool: ToolTarget) -> ToolRoots:
        table = _WORKSPACE_ROOTS if self.is_workspace else _GLOBAL_ROOTS
        active, inactive = table[tool]
        return ToolRoots(tool=tool, active=self.base / active, inactive=self.base / inactive)

    def all_roots(self) -> list[ToolRoots]:
        return [self.roots(tool) for tool in ToolTarget]

    @property
    def registry_path(self) -> Path:
        return self.roots(ToolTarget.CLAUDE_CODE).active / REGISTRY_FILE

    def contains(self, path: Path) -> bool:
        """True if ``path`` lies strictly inside one of this scope's roots.

        The last component is not resolved, so a symlinked skill directory
        counts as inside the root that holds the link.
        """
        if path.name in ("", ".", ".."):
            return False
        resolved = path.parent.resolve() / path.name
        for roots in self.all_roots():
            for root in (roots.active, roots.inactive):
                base = root.resolve()
                if resolved != base and base in resolved.parents:
                    return True
        return False


def validate_skill_name(name: str) -> str:
    """Return ``name`` if it is usable as a skill directory name.

    Raises:
        InvalidSkillNameError: for empty, dot-prefixed or path-like names.
    """
    if (
        not name
        or name != name.strip()
        or name.startswith(".")
        or "/" in name
        or "\\" in name
        or name in (".", "..")
    ):
        raise InvalidSkillNameError(name)
    return name
