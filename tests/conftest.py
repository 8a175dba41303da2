"""Shared test fixtures for the mail2print test suite."""

from __future__ import annotations

from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import BinaryIO

import pytest

from mail2print.config import ImapConfig, Mail2PrintConfig, RetryConfig
from mail2print.converters.base import ConverterPlugin
from mail2print.errors import ConversionError, PrintError
from mail2print.models import MailMessage
from mail2print.envelope import extract_envelope
from mail2print.printing import PrintSink


@pytest.fixture
def imap_config() -> ImapConfig:
    return ImapConfig(
        host="imap.test.com",
        port=993,
        username="testuser",
        password="testpass",
        mailbox="INBOX",
        poll_interval_seconds=0.01,
    )


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(max_attempts=2, initial_wait_seconds=0.01, max_wait_seconds=0.01)


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    out = tmp_path / "out"
    out.mkdir()
    return out


@pytest.fixture
def printer_config(imap_config: ImapConfig, retry_config: RetryConfig) -> Mail2PrintConfig:
    return Mail2PrintConfig(imap=imap_config, retry=retry_config, printer="P1")


# ------------------------------------------------------------------
# Sample EML builders
# ------------------------------------------------------------------


def _build_email(
    *,
    subject: str = "Test Subject",
    date: str | None = "Mon, 02 Jun 2025 12:00:00 +0000",
    body: str = "Please print the attached files.",
    attachments: list[tuple[str | None, str, bytes]] | None = None,
) -> bytes:
    """Build a multipart email with a text body and optional attachments.

    Each attachment is ``(filename, content_type, payload)``; a ``None``
    filename produces a part without a name.
    """
    msg = MIMEMultipart("mixed")
    msg["Subject"] = subject
    msg["From"] = "sender@example.com"
    msg["To"] = "printer@example.com"
    msg["Message-ID"] = "<multi-001@example.com>"
    if date is not None:
        msg["Date"] = date
    msg.attach(MIMEText(body, "plain"))

    for filename, content_type, payload in attachments or []:
        maintype, subtype = content_type.split("/", 1)
        part = MIMEBase(maintype, subtype)
        part.set_payload(payload)
        encoders.encode_base64(part)
        if filename is None:
            part.add_header("Content-Disposition", "attachment")
        else:
            part.add_header("Content-Disposition", "attachment", filename=filename)
        msg.attach(part)

    return msg.as_bytes()


def _make_message(
    uid: str = "1",
    *,
    attachments: list[tuple[str | None, str, bytes]] | None = None,
    date: str = "Mon, 02 Jun 2025 12:00:00 +0000",
    subject: str = "Test Subject",
) -> MailMessage:
    raw = _build_email(subject=subject, date=date, attachments=attachments)
    envelope = extract_envelope(raw)
    assert envelope.sent_date is not None
    return MailMessage(uid=uid, subject=envelope.subject, sent_date=envelope.sent_date, raw=raw)


PDF_BYTES = b"%PDF-1.4 fake pdf content"


@pytest.fixture
def multipart_eml_bytes() -> bytes:
    return _build_email(
        attachments=[
            ("report.pdf", "application/pdf", PDF_BYTES),
            ("data.csv", "text/csv", b"col1,col2\na,b\n"),
        ],
    )


# ------------------------------------------------------------------
# Fakes
# ------------------------------------------------------------------


class FakePrintSink(PrintSink):
    """Records print jobs instead of talking to CUPS."""

    def __init__(self, printers: set[str] | None = None, *, fail: bool = False) -> None:
        self.printers = printers if printers is not None else {"P1"}
        self.fail = fail
        self.jobs: list[tuple[str, bytes, str]] = []

    def has_printer(self, printer: str) -> bool:
        return printer in self.printers

    def print_pdf(self, data: bytes, printer: str, *, title: str = "mail2print") -> None:
        if self.fail:
            raise PrintError("printer on fire")
        self.jobs.append((printer, data, title))


class FakeConverter(ConverterPlugin):
    """Claims a fixed set of suffixes and records every call."""

    def __init__(
        self,
        name: str = "fake",
        suffixes: tuple[str, ...] = (".docx",),
        *,
        output: bytes = b"%PDF-converted",
        fail: bool = False,
    ) -> None:
        super().__init__()
        self._name = name
        self._suffixes = suffixes
        self._output = output
        self._fail = fail
        self.can_convert_calls: list[tuple[str, str, str]] = []
        self.convert_calls: list[tuple[bytes, str, str, str]] = []
        self.shutdown_calls = 0

    @property
    def name(self) -> str:
        return self._name

    def can_convert(self, content_type: str, filename: str, subject: str) -> bool:
        self.can_convert_calls.append((content_type, filename, subject))
        return filename.endswith(self._suffixes)

    def convert_to_pdf(
        self,
        stream: BinaryIO,
        content_type: str,
        filename: str,
        subject: str,
    ) -> bytes:
        self.convert_calls.append((stream.read(), content_type, filename, subject))
        if self._fail:
            raise ConversionError(f"{self._name} cannot convert {filename}")
        return self._output

    def shutdown(self) -> None:
        self.shutdown_calls += 1


@pytest.fixture
def print_sink() -> FakePrintSink:
    return FakePrintSink()


class ClaimErrorConverter(FakeConverter):
    """A plugin whose ``can_convert`` itself blows up."""

    def can_convert(self, content_type: str, filename: str, subject: str) -> bool:
        super().can_convert(content_type, filename, subject)
        raise KeyError("broken plugin lookup table")
