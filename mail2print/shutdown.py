"""Graceful shutdown handling via SIGTERM / SIGINT."""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Callable

import structlog

logger = structlog.get_logger()


def install_signal_handlers(
    shutdown_event: asyncio.Event,
    *,
    on_signal: Callable[[], None] | None = None,
) -> None:
    """Register SIGTERM and SIGINT handlers that set *shutdown_event*.

    Call this once from the running event loop.  *on_signal*, if given, is
    invoked right after the event is set; the supervisor uses it to abandon
    an IMAP IDLE that is blocking a worker thread.
    """
    loop = asyncio.get_running_loop()

    def _handle(sig: signal.Signals) -> None:
        logger.info("shutdown_signal_received", signal=sig.name)
        shutdown_event.set()
        if on_signal is not None:
            on_signal()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _handle, sig)
