"""Office documents → PDF through a headless LibreOffice."""

from __future__ import annotations

import mimetypes
import subprocess
import tempfile
from pathlib import Path, PurePath
from typing import BinaryIO

import structlog

from ..errors import ConversionError
from .base import ConverterPlugin

logger = structlog.get_logger()

OFFICE_SUFFIXES = frozenset({
    ".doc", ".docx", ".odt", ".rtf",
    ".xls", ".xlsx", ".ods",
    ".ppt", ".pptx", ".odp",
})

OFFICE_CONTENT_TYPES = frozenset({
    "application/msword",
    "application/rtf",
    "application/vnd.ms-excel",
    "application/vnd.ms-powerpoint",
    "application/vnd.oasis.opendocument.text",
    "application/vnd.oasis.opendocument.spreadsheet",
    "application/vnd.oasis.opendocument.presentation",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
})


class OfficeConverter(ConverterPlugin):
    """Claims office documents, but only with ``--convert-office-files``."""

    timeout_seconds = 120.0

    @property
    def name(self) -> str:
        return "libreoffice"

    def can_convert(self, content_type: str, filename: str, subject: str) -> bool:
        if not self.options.convert_office_files:
            return False
        return PurePath(filename).suffix in OFFICE_SUFFIXES or content_type in OFFICE_CONTENT_TYPES

    def convert_to_pdf(
        self,
        stream: BinaryIO,
        content_type: str,
        filename: str,
        subject: str,
    ) -> bytes:
        suffix = PurePath(filename).suffix or mimetypes.guess_extension(content_type) or ""
        with tempfile.TemporaryDirectory(prefix="mail2print-") as tmp:
            workdir = Path(tmp)
            source = workdir / f"attachment{suffix}"
            source.write_bytes(stream.read())

            cmd = [
                self.options.office_binary,
                # private profile: a desktop LibreOffice holding the default one would block us
                f"-env:UserInstallation={(workdir / 'profile').as_uri()}",
                "--headless",
                "--convert-to",
                "pdf",
                "--outdir",
                str(workdir),
                str(source),
            ]
            try:
                proc = subprocess.Popen(
                    cmd,
                    cwd=str(workdir),
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                )
            except OSError as exc:
                raise ConversionError(f"cannot run {self.options.office_binary}: {exc}") from exc
            try:
                _, err = proc.communicate(timeout=self.timeout_seconds)
            except subprocess.TimeoutExpired as exc:
                proc.kill()
                proc.communicate()
                raise ConversionError(f"{filename}: conversion timed out") from exc

            target = workdir / "attachment.pdf"
            if proc.returncode != 0 or not target.exists():
                raise ConversionError(
                    f"{filename}: {self.options.office_binary} exited with {proc.returncode}: "
                    f"{err.decode('utf-8', errors='replace').strip()}"
                )
            data = target.read_bytes()

        logger.debug("office_converted", filename=filename, size=len(data))
        return data
