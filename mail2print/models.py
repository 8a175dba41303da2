"""Data carried between the mailbox, the dispatcher and the converters."""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import BinaryIO


class SupervisorState(str, Enum):
    """States of the supervisor loop."""

    INIT = "init"
    CONNECT = "connect"
    PROCESS = "process"
    WAIT = "wait"
    REOPEN = "reopen"
    SHUTDOWN = "shutdown"


@dataclass
class MailMessage:
    """An unseen message fetched from the watched folder."""

    uid: str
    subject: str
    sent_date: datetime
    raw: bytes
    deleted: bool = False


@dataclass
class AttachmentDescriptor:
    """A single attachment extracted from a MIME message.

    ``name`` may be empty when the part carries no filename.  The payload is
    held in memory, so :meth:`open_stream` can be called any number of times
    and always starts at offset 0.
    """

    name: str
    content_type: str
    payload: bytes = field(repr=False)

    def open_stream(self) -> BinaryIO:
        return io.BytesIO(self.payload)

    def read_bytes(self) -> bytes:
        return self.payload


@dataclass
class ProcessingOutcome:
    """Result of dispatching one message.

    ``processed`` is true iff at least one attachment was spooled or printed;
    only processed messages may be flagged for deletion.
    """

    processed: bool = False
    spooled: list[Path] = field(default_factory=list)
    printed: int = 0
    skipped: int = 0
