"""Write attachments into the output folder without overwriting."""

from __future__ import annotations

from pathlib import Path, PurePath

import structlog

from .errors import SpoolError

logger = structlog.get_logger()

UNKNOWN_NAME = "unknown"

# NAME_MAX is 255 bytes on common filesystems; keep room for a numeric prefix.
MAX_NAME_BYTES = 240
MAX_SUFFIX_BYTES = 16


class FileSpool:
    """Write byte buffers into *directory* without overwriting existing files.

    A name that is already taken is prefixed with the smallest free decimal
    integer: ``report.pdf``, ``1report.pdf``, ``2report.pdf``, …
    """

    def __init__(self, directory: Path) -> None:
        self._directory = directory

    @property
    def directory(self) -> Path:
        return self._directory

    def target_path(self, name: str) -> Path:
        """First non-existing path for *name* under the spool directory."""
        safe_name = _safe_name(name)
        target = self._directory / safe_name
        number = 0
        while target.exists():
            number += 1
            target = self._directory / f"{number}{safe_name}"
        return target

    def write(self, name: str, data: bytes) -> Path:
        """Write *data* under a free variant of *name*. Returns the path used.

        Raises :class:`SpoolError` for any filesystem failure, including
        while looking for a free name.
        """
        while True:
            target: Path | str = name
            try:
                target = self.target_path(name)
                # "xb" fails instead of clobbering a file created since the check
                with target.open("xb") as fh:
                    fh.write(data)
            except FileExistsError:
                continue
            except OSError as exc:
                raise SpoolError(f"cannot write {target}: {exc}") from exc
            logger.info("attachment_spooled", path=str(target), size=len(data))
            return target


def _safe_name(name: str) -> str:
    """Strip directory components and shorten names the filesystem would reject.

    Empty names become ``unknown``.  Long names keep their suffix and are cut
    to :data:`MAX_NAME_BYTES` UTF-8 bytes, leaving room for a collision prefix.
    """
    base = PurePath(name.replace("\\", "/")).name if name else ""
    if base in ("", ".", ".."):
        return UNKNOWN_NAME
    if len(base.encode("utf-8")) <= MAX_NAME_BYTES:
        return base
    suffix = PurePath(base).suffix
    if len(suffix.encode("utf-8")) > MAX_SUFFIX_BYTES:
        suffix = ""
    budget = MAX_NAME_BYTES - len(suffix.encode("utf-8"))
    stem = base[: len(base) - len(suffix)] if suffix else base
    stem = stem.encode("utf-8")[:budget].decode("utf-8", errors="ignore")
    return (stem + suffix) or UNKNOWN_NAME
