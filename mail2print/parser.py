"""Walk a raw MIME message and collect its attachments."""

from __future__ import annotations

import email
import email.message
import email.policy

from .errors import ParseError
from .models import AttachmentDescriptor

# Leaf parts of these main types are message body, not attachments, unless
# they carry a filename or an attachment disposition.
_BODY_MAINTYPES = frozenset({"text", "multipart", "message"})


class MimeParser:
    """Stateless parser: raw RFC 822 bytes → ordered attachment descriptors."""

    def attachments(self, raw_bytes: bytes) -> list[AttachmentDescriptor]:
        """Return the attachments of *raw_bytes* in MIME walk order.

        Raises :class:`ParseError` when a part cannot be decoded.
        """
        try:
            msg = email.message_from_bytes(raw_bytes, policy=email.policy.default)
            return self._extract_attachments(msg)
        except (LookupError, ValueError, TypeError) as exc:
            raise ParseError(f"malformed MIME message: {exc}") from exc

    def _extract_attachments(self, msg: email.message.Message) -> list[AttachmentDescriptor]:
        attachments: list[AttachmentDescriptor] = []

        for part in msg.walk():
            if part.is_multipart():
                continue

            disposition = str(part.get("Content-Disposition", "")).lower()
            filename = part.get_filename()
            maintype = part.get_content_maintype()

            if not (
                "attachment" in disposition
                or filename
                or maintype not in _BODY_MAINTYPES
            ):
                continue

            payload = part.get_payload(decode=True)
            if payload is None:
                continue

            attachments.append(
                AttachmentDescriptor(
                    name=filename or "",
                    content_type=part.get_content_type().lower(),
                    payload=payload,
                )
            )

        return attachments
