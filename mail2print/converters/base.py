"""Abstract base class for converter plugins."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import BinaryIO


@dataclass(frozen=True)
class ConverterOptions:
    """Settings handed to every converter at construction time."""

    convert_office_files: bool = False
    office_binary: str = "soffice"


class ConverterPlugin(ABC):
    """Turn one kind of attachment into PDF bytes.

    Plugins are instantiated once per process by the
    :class:`~mail2print.converters.loader.PluginLoader` and must tolerate
    being asked about any attachment.
    """

    def __init__(self, options: ConverterOptions | None = None) -> None:
        self.options = options or ConverterOptions()

    @property
    @abstractmethod
    def name(self) -> str:
        """Stable identifier used in log events."""

    @abstractmethod
    def can_convert(self, content_type: str, filename: str, subject: str) -> bool:
        """Return True if this plugin claims the attachment.

        Pure predicate without I/O.  *content_type* and *filename* are
        lower-cased by the registry.
        """

    @abstractmethod
    def convert_to_pdf(
        self,
        stream: BinaryIO,
        content_type: str,
        filename: str,
        subject: str,
    ) -> bytes:
        """Read the attachment from *stream* and return PDF bytes.

        Raise :class:`~mail2print.errors.ConversionError` when the input
        cannot be converted.
        """

    def shutdown(self) -> None:
        """Release plugin resources.  Must be idempotent."""
