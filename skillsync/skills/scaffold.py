"""Skill scaffold — create a new local skill and install it like any other.

The package is rendered into a scratch directory first and then goes
through the regular installer, so an existing skill of the same name is
skipped rather than overwritten.
"""

from __future__ import annotations

from pathlib import Path

from skillsync.config import Settings
from skillsync.registry.models import SkillSource
from skillsync.skills.frontmatter import SkillMetadata, render_frontmatter
from skillsync.sync.installer import Installer, InstallSummary
from skillsync.targets import SKILL_MARKER, Scope, ToolTarget, validate_skill_name
from skillsync.utils.git_ops import TransientTree

DEFAULT_VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Template content for generated files
# ---------------------------------------------------------------------------

_BODY_TEMPLATE = """\
# {title}

{description}

## Instructions

Describe when this skill applies and the steps to follow.
"""


def _title(name: str) -> str:
    return name.replace("-", " ").replace("_", " ").title()


def render_skill_md(metadata: SkillMetadata, body: str = "") -> str:
    """Front matter followed by ``body``, or a starter body when it is empty."""
    if not body.strip():
        body = _BODY_TEMPLATE.format(
            title=_title(metadata.name),
            description=metadata.description or "What this skill does.",
        )
    if not body.endswith("\n"):
        body += "\n"
    return f"{render_frontmatter(metadata)}\n{body}"


def create_skill(
    scope: Scope,
    name: str,
    description: str = "",
    tools: list[str | ToolTarget] | None = None,
    body: str = "",
    settings: Settings | None = None,
) -> InstallSummary:
    """Scaffold ``name`` and install it into ``tools`` (default tools when omitted).

    Raises:
        InvalidSkillNameError: the name cannot be a directory name.
        NothingInstalledError: no target could be written.
    """
    validate_skill_name(name)
    settings = settings or Settings()
    metadata = SkillMetadata(name=name, version=DEFAULT_VERSION, description=description)

    with TransientTree.prepare(settings.work_dir, "create", name) as tree:
        package = Path(tree.path)
        package.mkdir(parents=True)
        (package / SKILL_MARKER).write_text(render_skill_md(metadata, body), encoding="utf-8")

        installer = Installer(scope, settings=settings)
        return installer.install_directory(
            package,
            name,
            tools,
            source=SkillSource.LOCAL,
            metadata=metadata,
        )
