"""Converter registry — ordered plugins with first-match selection."""

from __future__ import annotations

import structlog

from ..models import AttachmentDescriptor
from .base import ConverterPlugin

logger = structlog.get_logger()

PDF_CONTENT_TYPE = "application/pdf"


def is_pdf(content_type: str, filename: str) -> bool:
    """PDF fast-path test: ``.pdf`` suffix or ``application/pdf`` content type."""
    return filename.lower().endswith(".pdf") or PDF_CONTENT_TYPE in content_type.lower()


class ConverterRegistry:
    """Registry of converter plugins, kept in registration order.

    The first plugin whose ``can_convert`` returns True is authoritative for
    the attachment: if it fails, the attachment is unsupported and no other
    plugin is tried.
    """

    def __init__(self, plugins: list[ConverterPlugin] | None = None) -> None:
        self._plugins: list[ConverterPlugin] = []
        self._shut_down = False
        for plugin in plugins or []:
            self.register(plugin)

    def register(self, plugin: ConverterPlugin) -> None:
        """Append *plugin* after the already registered ones."""
        self._plugins.append(plugin)
        logger.debug("converter_registered", converter=plugin.name, position=len(self._plugins))

    @property
    def plugins(self) -> list[ConverterPlugin]:
        return list(self._plugins)

    def select(self, content_type: str, filename: str, subject: str) -> ConverterPlugin | None:
        """First registered plugin claiming the attachment, or None."""
        content_type = content_type.lower()
        filename = filename.lower()
        for plugin in self._plugins:
            if plugin.can_convert(content_type, filename, subject):
                return plugin
        return None

    def to_pdf(self, attachment: AttachmentDescriptor, subject: str) -> bytes | None:
        """Return PDF bytes for *attachment*, or None if it is unsupported.

        PDFs pass through verbatim without consulting any plugin.  A plugin
        that raises, while claiming or while converting, makes the attachment
        unsupported; nothing propagates to the caller.
        """
        content_type = attachment.content_type.lower()
        filename = attachment.name.lower()

        if is_pdf(content_type, filename):
            logger.debug("pdf_passthrough", filename=attachment.name, content_type=content_type)
            return attachment.read_bytes()

        try:
            plugin = self.select(content_type, filename, subject)
        except Exception as exc:
            logger.error(
                "conversion_failed",
                stage="select",
                filename=attachment.name,
                error=str(exc),
            )
            return None
        if plugin is None:
            logger.info(
                "attachment_unsupported",
                filename=attachment.name,
                content_type=content_type,
            )
            return None

        logger.info("converting", converter=plugin.name, filename=attachment.name)
        try:
            return plugin.convert_to_pdf(attachment.open_stream(), content_type, filename, subject)
        except Exception as exc:
            logger.error(
                "conversion_failed",
                converter=plugin.name,
                filename=attachment.name,
                error=str(exc),
            )
            return None

    def shutdown(self) -> None:
        """Shut down every plugin exactly once; later calls are no-ops."""
        if self._shut_down:
            return
        self._shut_down = True
        for plugin in self._plugins:
            try:
                plugin.shutdown()
            except Exception:
                logger.exception("converter_shutdown_failed", converter=plugin.name)
