"""Images → PDF with Pillow, one page per frame."""

from __future__ import annotations

import io
from pathlib import PurePath
from typing import BinaryIO

from PIL import Image, ImageSequence

from ..errors import ConversionError
from .base import ConverterPlugin

IMAGE_SUFFIXES = frozenset({
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".tif", ".tiff", ".webp",
})


class ImageConverter(ConverterPlugin):
    @property
    def name(self) -> str:
        return "image"

    def can_convert(self, content_type: str, filename: str, subject: str) -> bool:
        return content_type.startswith("image/") or PurePath(filename).suffix in IMAGE_SUFFIXES

    def convert_to_pdf(
        self,
        stream: BinaryIO,
        content_type: str,
        filename: str,
        subject: str,
    ) -> bytes:
        try:
            with Image.open(stream) as im:
                pages = [frame.convert("RGB") for frame in ImageSequence.Iterator(im)]
        except (OSError, ValueError) as exc:
            raise ConversionError(f"{filename}: not a readable image: {exc}") from exc

        out = io.BytesIO()
        pages[0].save(out, format="PDF", save_all=True, append_images=pages[1:])
        return out.getvalue()
