"""Error taxonomy for the mail-to-print pipeline."""

from __future__ import annotations


class Mail2PrintError(Exception):
    """Base class for all mail2print errors."""


class ConfigurationError(Mail2PrintError):
    """Invalid startup configuration (unknown printer, unusable output folder)."""


class TransportError(Mail2PrintError):
    """IMAP connection or protocol failure; the folder must be reopened."""


class ParseError(Mail2PrintError):
    """A message could not be split into attachments."""


class ConversionError(Mail2PrintError):
    """A converter plugin could not produce a PDF."""


class PrintError(Mail2PrintError):
    """The print system rejected a job."""


class SpoolError(Mail2PrintError):
    """An attachment could not be written to the output folder."""
