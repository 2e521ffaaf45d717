"""
Logging bootstrap for Ledger Insight.

Modules never configure handlers themselves: they call
``get_logger("<module>")`` and inherit whatever the ``ledger_insight``
namespace logger was given by ``configure_logging``.  Handlers are installed
once per process; later calls only adjust the level.

The level can also be forced from the environment through
``LEDGER_INSIGHT_LOG_LEVEL`` (``DEBUG``, ``INFO``, ``WARNING`` ...), which
wins over the level passed in code.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional


NAMESPACE = "ledger_insight"
LEVEL_ENV_VAR = "LEDGER_INSIGHT_LOG_LEVEL"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-36s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_handlers_installed = False


def _resolve_level(level: int) -> int:
    override = os.environ.get(LEVEL_ENV_VAR, "").strip().upper()
    if not override:
        return level
    resolved = logging.getLevelName(override)
    # getLevelName returns "Level X" for unknown names
    return resolved if isinstance(resolved, int) else level


def configure_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
) -> None:
    """Attach console (and optional file) handlers to the package logger.

    Parameters
    ----------
    level:
        Minimum severity to emit.  Overridden by ``LEDGER_INSIGHT_LOG_LEVEL``.
    log_file:
        Optional path; when given a UTF-8 ``FileHandler`` is added as well.
        Only honoured on the first call.
    """
    global _handlers_installed  # noqa: PLW0603

    root = logging.getLogger(NAMESPACE)
    effective = _resolve_level(level)
    root.setLevel(effective)

    if _handlers_installed:
        for handler in root.handlers:
            handler.setLevel(effective)
        return

    root.propagate = False
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(effective)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(effective)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    _handlers_installed = True


def get_logger(name: str) -> logging.Logger:
    """Return ``ledger_insight.<name>``."""
    return logging.getLogger(f"{NAMESPACE}.{name}")
