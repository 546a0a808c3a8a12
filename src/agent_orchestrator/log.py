# log.py
# Logging setup. Components log through logging.getLogger(__name__);
# this routes records through rich so they interleave cleanly with the
# trace rendered by display.py.

import logging

from rich.logging import RichHandler

from agent_orchestrator.display import console


def setup_logging(level: str | int = "INFO") -> None:
    handler = RichHandler(console=console, show_path=False, rich_tracebacks=True, markup=False)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    root = logging.getLogger("agent_orchestrator")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level if isinstance(level, int) else level.upper())
    root.propagate = False
