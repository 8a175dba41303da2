"""Dispatcher — per-message orchestration of spool, conversion and printing."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable

import structlog

from .converters.registry import ConverterRegistry
from .errors import ParseError, PrintError, SpoolError
from .models import AttachmentDescriptor, MailMessage, ProcessingOutcome
from .parser import MimeParser
from .printing import PrintSink
from .spool import UNKNOWN_NAME, FileSpool

logger = structlog.get_logger()


class Dispatcher:
    """Extract a message's attachments and hand each to the spool and/or printer.

    Attachments are handled one after the other; blocking work (disk, print
    system, converters) runs in worker threads and is awaited before the
    outcome is decided, so a message is never reported processed before its
    jobs have completed.  Per-attachment errors are logged and never escape.
    """

    def __init__(
        self,
        parser: MimeParser,
        registry: ConverterRegistry,
        *,
        spool: FileSpool | None = None,
        print_sink: PrintSink | None = None,
        printer: str | None = None,
    ) -> None:
        if (print_sink is None) != (printer is None):
            raise ValueError("print_sink and printer must be given together")
        self._parser = parser
        self._registry = registry
        self._spool = spool
        self._print_sink = print_sink
        self._printer = printer

    async def process(self, message: MailMessage) -> ProcessingOutcome:
        log = logger.bind(uid=message.uid, subject=message.subject)
        log.debug("message_processing")
        outcome = ProcessingOutcome()

        try:
            attachments = self._parser.attachments(message.raw)
        except ParseError as exc:
            log.error("message_parse_failed", error=str(exc))
            return outcome

        for attachment in attachments:
            handled = False
            if self._spool is not None and await self._guarded(
                self._spool_attachment(self._spool, attachment, outcome), attachment
            ):
                handled = True
            if (
                self._print_sink is not None
                and self._printer is not None
                and await self._guarded(
                    self._print_attachment(
                        self._print_sink, self._printer, attachment, message.subject, outcome
                    ),
                    attachment,
                )
            ):
                handled = True
            if handled:
                outcome.processed = True
            else:
                outcome.skipped += 1

        log.info(
            "message_processed",
            attachments=len(attachments),
            spooled=len(outcome.spooled),
            printed=outcome.printed,
            skipped=outcome.skipped,
            processed=outcome.processed,
        )
        return outcome

    async def _guarded(self, step: Awaitable[bool], attachment: AttachmentDescriptor) -> bool:
        """Await one attachment step; an unexpected failure only costs that step."""
        try:
            return await step
        except Exception:
            logger.exception("attachment_failed", filename=attachment.name)
            return False

    async def _spool_attachment(
        self,
        spool: FileSpool,
        attachment: AttachmentDescriptor,
        outcome: ProcessingOutcome,
    ) -> bool:
        name = attachment.name or UNKNOWN_NAME
        try:
            path = await asyncio.to_thread(spool.write, name, attachment.read_bytes())
        except SpoolError as exc:
            logger.error("spool_write_failed", filename=name, error=str(exc))
            return False
        outcome.spooled.append(path)
        return True

    async def _print_attachment(
        self,
        sink: PrintSink,
        printer: str,
        attachment: AttachmentDescriptor,
        subject: str,
        outcome: ProcessingOutcome,
    ) -> bool:
        pdf = await asyncio.to_thread(self._registry.to_pdf, attachment, subject)
        if pdf is None:
            return False
        title = attachment.name or subject or "mail2print"
        try:
            await asyncio.to_thread(sink.print_pdf, pdf, printer, title=title)
        except PrintError as exc:
            logger.warning(
                "print_failed",
                printer=printer,
                filename=attachment.name,
                error=str(exc),
            )
            return False
        outcome.printed += 1
        return True
