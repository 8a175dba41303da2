"""Supervisor — wires up the pipeline and runs the connect/process/wait loop."""

from __future__ import annotations

import asyncio

import structlog

from .config import Mail2PrintConfig
from .converters import ConverterOptions, ConverterRegistry, PluginLoader
from .dispatcher import Dispatcher
from .errors import TransportError
from .mailbox import MailboxSession
from .models import SupervisorState
from .parser import MimeParser
from .printing import CupsPrintSink, PrintSink
from .retry import with_retry
from .shutdown import install_signal_handlers
from .spool import FileSpool

logger = structlog.get_logger()


class Supervisor:
    """Top-level loop combining a :class:`MailboxSession` and a :class:`Dispatcher`.

    ``run()`` walks the state machine::

        INIT → CONNECT → PROCESS ─┬─ (single pass) ─────────→ SHUTDOWN
                          ↑       └─ (idle mode) → WAIT ─┬─→ SHUTDOWN
                          └── REOPEN ←── folder closed ──┘

    In idle mode a keep-alive task issues a status command every
    ``keepalive_interval_seconds`` while the supervisor waits in IDLE.
    """

    def __init__(
        self,
        config: Mail2PrintConfig,
        *,
        session: MailboxSession,
        dispatcher: Dispatcher,
        registry: ConverterRegistry,
    ) -> None:
        self.config = config
        self.state: SupervisorState = SupervisorState.INIT
        self._session = session
        self._dispatcher = dispatcher
        self._registry = registry
        self._shutdown_event = asyncio.Event()
        self._keep_alive_task: asyncio.Task[None] | None = None
        self._closed = False

    @classmethod
    def from_config(
        cls,
        config: Mail2PrintConfig,
        *,
        print_sink: PrintSink | None = None,
    ) -> Supervisor:
        """INIT: validate the printer and build every collaborator.

        Raises :class:`~mail2print.errors.ConfigurationError` for an unknown
        printer.
        """
        sink: PrintSink | None = None
        if config.printer is not None:
            sink = print_sink or CupsPrintSink()
            sink.check_printer(config.printer)

        spool = FileSpool(config.output_folder) if config.output_folder is not None else None
        options = ConverterOptions(
            convert_office_files=config.convert_office_files,
            office_binary=config.office_binary,
        )
        registry = PluginLoader(config.plugins_dir, options).load()
        dispatcher = Dispatcher(
            MimeParser(),
            registry,
            spool=spool,
            print_sink=sink,
            printer=config.printer,
        )
        return cls(
            config,
            session=MailboxSession(config.imap),
            dispatcher=dispatcher,
            registry=registry,
        )

    @property
    def running(self) -> bool:
        return not self._shutdown_event.is_set()

    def request_shutdown(self) -> None:
        """Stop after the current message; abandons an in-flight IDLE."""
        self._shutdown_event.set()
        self._session.abort_idle()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(self, *, install_signals: bool = True) -> None:
        """Run until the single pass completes or a shutdown is requested.

        A :class:`TransportError` that survives the reconnect retries is
        re-raised after the shutdown sequence.
        """
        if install_signals:
            install_signal_handlers(self._shutdown_event, on_signal=self._session.abort_idle)

        try:
            self.state = SupervisorState.CONNECT
            await self._connect()

            while self.running:
                if not self._session.is_open:
                    self.state = SupervisorState.REOPEN
                    logger.info("connection_lost_reopening")
                    await self._reopen()

                self.state = SupervisorState.PROCESS
                try:
                    await self.process_unseen()
                except TransportError as exc:
                    logger.error("process_pass_failed", error=str(exc))
                    if not self.config.idle_mode:
                        raise

                if not self.config.idle_mode or not self.running:
                    break
                if not self._session.is_open:
                    continue

                self.state = SupervisorState.WAIT
                self._ensure_keep_alive()
                await self._wait()
        finally:
            await self.shutdown()

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    async def _connect(self) -> None:
        @with_retry(self.config.retry, retryable_exceptions=(TransportError,))
        async def _open() -> None:
            await self._session.connect()
            await self._session.open_inbox()

        await _open()

    async def _reopen(self) -> None:
        @with_retry(self.config.retry, retryable_exceptions=(TransportError,))
        async def _reopen_folder() -> None:
            await self._session.reopen()

        await _reopen_folder()

    async def process_unseen(self) -> int:
        """PROCESS: dispatch every unseen message once, newest first.

        Returns the number of messages handed to the dispatcher.  When
        deletion is enabled and at least one message was flagged, the folder
        is expunged at the end of the pass.
        """
        messages = await self._session.fetch_unseen()
        logger.info("processing_unread_messages", count=len(messages))

        handled = 0
        pending_deletions = 0
        for message in messages:
            if not self.running:
                logger.info("pass_interrupted", remaining=len(messages) - handled)
                break
            outcome = await self._dispatcher.process(message)
            handled += 1
            await self._session.mark_seen(message)
            if outcome.processed and self.config.delete:
                await self._session.mark_deleted(message)
                pending_deletions += 1

        if pending_deletions:
            await self._session.expunge()
        return handled

    async def _wait(self) -> None:
        """WAIT: IDLE until the server reports activity or shutdown is requested."""
        logger.info("waiting_for_new_messages")
        idle_task = asyncio.create_task(self._session.idle_wait())
        stop_task = asyncio.create_task(self._shutdown_event.wait())
        try:
            await asyncio.wait({idle_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
            if not idle_task.done():
                self._session.abort_idle()
            woke_on_activity = await idle_task
        finally:
            stop_task.cancel()
        logger.debug("idle_returned", activity=woke_on_activity)

    # ------------------------------------------------------------------
    # Keep-alive
    # ------------------------------------------------------------------

    def _ensure_keep_alive(self) -> None:
        if self._keep_alive_task is None:
            self._keep_alive_task = asyncio.create_task(self._keep_alive())

    async def _keep_alive(self) -> None:
        interval = self.config.imap.keepalive_interval_seconds
        logger.debug("keep_alive_started", interval=interval)
        while self.running:
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=interval)
            except TimeoutError:
                pass
            else:
                break
            if not self._session.is_open:
                continue
            try:
                recent = await self._session.keep_alive()
            except TransportError as exc:
                logger.error("keep_alive_failed", error=str(exc))
            else:
                logger.debug("keep_alive_ok", recent=recent)
        logger.debug("keep_alive_stopped")

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def shutdown(self) -> None:
        """SHUTDOWN: stop keep-alive, shut down converters, close the folder.

        Safe to call more than once; only the first call has any effect.
        """
        if self._closed:
            return
        self._closed = True
        self.state = SupervisorState.SHUTDOWN
        self.request_shutdown()

        if self._keep_alive_task is not None:
            await self._keep_alive_task
            self._keep_alive_task = None

        self._registry.shutdown()
        try:
            await self._session.close()
        except TransportError as exc:
            logger.warning("imap_close_failed", error=str(exc))
        logger.info("supervisor_stopped")
