"""Logging setup: structlog events and stdlib records share one stderr handler."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

# imapclient logs every protocol line, message bodies included, at DEBUG.
QUIET_LOGGERS = ("imapclient",)


def setup_logging(*, json: bool = False, level: str = "INFO", **context: Any) -> None:
    """Configure structlog and the stdlib root logger for the agent.

    Parameters
    ----------
    json:
        If *True*, output JSON lines (for log shippers).  The default is a
        human-friendly console renderer, since mail2print usually runs in a
        terminal or under systemd.
    level:
        Root log level name, case-insensitive.
    context:
        Bound to every event for the rest of the process, e.g. the IMAP host
        and mailbox being watched.
    """
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if json:
        tail: list[structlog.types.Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        tail = [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *tail],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(root.level, logging.INFO))

    structlog.contextvars.clear_contextvars()
    if context:
        structlog.contextvars.bind_contextvars(**context)
