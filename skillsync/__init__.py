"""skillsync — fetch, install, track and toggle third-party skill packages.

A skill is a directory carrying a ``SKILL.md`` marker document. skillsync
installs skills into the skill directories of one or more consumer tools,
records a content manifest for each installed copy, detects drift against
the origin repository, and reconciles its registry against what is actually
on disk.
"""

__version__ = "0.1.0"
