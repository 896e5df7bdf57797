"""Terminal output and logging helpers.

The CLI talks to the user through ``step``/``info``/``warn``/``fatal``; the
engine modules only log diagnostic detail through the ``lockstep`` logger
hierarchy, which ``configure_logging`` wires to stderr.
"""

from __future__ import annotations

import logging
import sys

_LOGGER_NAME = "lockstep"


def step(msg: str) -> None:
    """Print a visually distinct step header.

    Used to separate the phases of a command (graph load, planning, writing)
    in terminal output.
    """
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")


def info(msg: str) -> None:
    print(f"  {msg}")


def warn(msg: str) -> None:
    print(f"  warning: {msg}", file=sys.stderr)


def fatal(msg: str) -> None:
    """Print an error message and exit with code 1.

    Use for unrecoverable errors that should halt the command.
    """
    print(f"ERROR: {msg}", file=sys.stderr)
    sys.exit(1)


def configure_logging(*, verbose: bool = False) -> logging.Logger:
    """Attach a stderr handler to the ``lockstep`` logger."""
    level = logging.DEBUG if verbose else logging.WARNING
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Reset handlers so repeated CLI invocations in one process don't duplicate output.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("[lockstep] %(levelname)s %(message)s"))
    logger.addHandler(handler)
    return logger
