"""Lightweight envelope extraction from raw EML bytes.

Uses ``email.parser.BytesHeaderParser`` which parses *only* the headers
without walking the MIME body, so sorting a large unseen batch by date does
not pay for a full parse of every attachment.
"""

from __future__ import annotations

import email.message
import email.parser
import email.policy
import email.utils
from dataclasses import dataclass
from datetime import UTC, datetime


@dataclass(frozen=True)
class Envelope:
    subject: str
    sent_date: datetime | None


def extract_envelope(raw_bytes: bytes) -> Envelope:
    """Extract subject and sent-date from raw RFC 822 bytes.

    ``sent_date`` is ``None`` when the ``Date`` header is missing or cannot
    be parsed; naive dates are taken as UTC.
    """
    parser = email.parser.BytesHeaderParser(policy=email.policy.default)
    headers = parser.parsebytes(raw_bytes)

    return Envelope(
        subject=str(headers.get("Subject", "")),
        sent_date=_parse_date(headers),
    )


def _parse_date(headers: email.message.Message) -> datetime | None:
    try:
        header_value = headers.get("Date")
        if not header_value:
            return None
        parsed = email.utils.parsedate_to_datetime(str(header_value))
    except (TypeError, ValueError, IndexError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
