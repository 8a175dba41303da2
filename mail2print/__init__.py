"""Print and spool the attachments of mails arriving in an IMAP inbox."""

from .config import ImapConfig, Mail2PrintConfig, RetryConfig
from .converters import (
    ConverterOptions,
    ConverterPlugin,
    ConverterRegistry,
    PluginLoader,
    is_pdf,
)
from .dispatcher import Dispatcher
from .envelope import extract_envelope
from .errors import (
    ConfigurationError,
    ConversionError,
    Mail2PrintError,
    ParseError,
    PrintError,
    SpoolError,
    TransportError,
)
from .logging import setup_logging
from .mailbox import MailboxSession
from .models import AttachmentDescriptor, MailMessage, ProcessingOutcome, SupervisorState
from .parser import MimeParser
from .printing import CupsPrintSink, PrintSink
from .retry import with_retry
from .spool import FileSpool
from .supervisor import Supervisor

__all__ = [
    "AttachmentDescriptor",
    "ConfigurationError",
    "ConversionError",
    "ConverterOptions",
    "ConverterPlugin",
    "ConverterRegistry",
    "CupsPrintSink",
    "Dispatcher",
    "FileSpool",
    "ImapConfig",
    "Mail2PrintConfig",
    "Mail2PrintError",
    "MailMessage",
    "MailboxSession",
    "MimeParser",
    "ParseError",
    "PluginLoader",
    "PrintError",
    "PrintSink",
    "ProcessingOutcome",
    "RetryConfig",
    "SpoolError",
    "Supervisor",
    "SupervisorState",
    "TransportError",
    "extract_envelope",
    "is_pdf",
    "setup_logging",
    "with_retry",
]
