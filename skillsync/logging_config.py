"""Logging setup for the command line.

The library modules only create loggers; handlers are installed here, by
the CLI, so embedding applications keep control of their own logging.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_NOISY_LOGGERS = ("git", "git.cmd", "urllib3")


def setup_logging(verbose: bool = False, console: Console | None = None) -> None:
    """Route log records through rich on stderr.

    Only warnings are shown unless ``verbose``; commands print their own results.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=verbose,
        show_path=verbose,
        markup=False,
        rich_tracebacks=verbose,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger("skillsync")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
