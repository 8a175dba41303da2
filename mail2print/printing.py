"""Print sinks — submit PDF buffers to the CUPS scheduler."""

from __future__ import annotations

import abc
import tempfile

import cups
import structlog

from .errors import ConfigurationError, PrintError

logger = structlog.get_logger()


class PrintSink(abc.ABC):
    """Accepts a PDF byte buffer and submits it to a named printer."""

    @abc.abstractmethod
    def has_printer(self, printer: str) -> bool:
        """Return True if *printer* exactly matches a configured destination."""

    @abc.abstractmethod
    def print_pdf(self, data: bytes, printer: str, *, title: str = "mail2print") -> None:
        """Submit *data* as one job. Raises :class:`PrintError` on failure."""

    def check_printer(self, printer: str) -> None:
        """Raise :class:`ConfigurationError` when *printer* is unknown."""
        if not self.has_printer(printer):
            raise ConfigurationError(f"Printer {printer} not found")


class CupsPrintSink(PrintSink):
    """Print sink on the local CUPS scheduler, through pycups.

    Every call opens its own :class:`cups.Connection`, since jobs are
    submitted from worker threads.  pycups raises ``RuntimeError`` when the
    scheduler cannot be reached and :class:`cups.IPPError` when it refuses a
    request.
    """

    def __init__(self, *, job_options: dict[str, str] | None = None) -> None:
        self._job_options = dict(job_options or {})

    def printers(self) -> dict[str, dict]:
        """CUPS destinations keyed by their exact name."""
        try:
            return cups.Connection().getPrinters()
        except (cups.IPPError, RuntimeError) as exc:
            raise ConfigurationError(f"cannot query CUPS: {exc}") from exc

    def has_printer(self, printer: str) -> bool:
        return printer in self.printers()

    def print_pdf(self, data: bytes, printer: str, *, title: str = "mail2print") -> None:
        try:
            # printFile uploads from a path, so the buffer goes through a temp file
            with tempfile.NamedTemporaryFile(prefix="mail2print-", suffix=".pdf") as tmp:
                tmp.write(data)
                tmp.flush()
                job_id = cups.Connection().printFile(printer, tmp.name, title, self._job_options)
        except (cups.IPPError, RuntimeError) as exc:
            raise PrintError(f"CUPS rejected job for {printer}: {exc}") from exc
        except OSError as exc:
            raise PrintError(f"cannot stage print job: {exc}") from exc
        logger.info("print_job_submitted", printer=printer, title=title, size=len(data), job_id=job_id)
