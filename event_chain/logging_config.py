"""Structured logging for event-chain.

Records are emitted through structlog with snake_case event names and
keyword context, e.g. ``logger.debug("event_subscribed", key="ping")``.
Buses and streams bind their identity once (``bus=...``, ``key=...``) so
individual calls only carry what changes.

Nothing is configured on import. A host calls :func:`configure_logging`
to route the ``event_chain`` logger namespace to stderr or a file; the
root logger and other libraries' handlers are left alone.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import structlog

LOGGER_NAMESPACE = "event_chain"

_handler: logging.Handler | None = None


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Path | None = None,
    colors: bool = True,
) -> None:
    """Configure structured logging for the ``event_chain`` namespace.

    Calling again replaces the previous handler and closes it, so a log
    file is never held open twice.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render records as JSON instead of console lines
        log_file: Append records to this file instead of stderr
        colors: Whether to use colors in console output
    """
    global _handler

    namespace = logging.getLogger(LOGGER_NAMESPACE)
    if _handler is not None:
        namespace.removeHandler(_handler)
        _handler.close()

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        _handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        colors = False
    else:
        _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(logging.Formatter("%(message)s"))

    namespace.addHandler(_handler)
    namespace.setLevel(getattr(logging, level.upper()))
    namespace.propagate = False

    renderer: structlog.types.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=colors)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, **context: Any) -> Any:
    """Get a structured logger for ``name``, bound to ``context`` if given."""
    logger = structlog.get_logger(name)
    return logger.bind(**context) if context else logger
