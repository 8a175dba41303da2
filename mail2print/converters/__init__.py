"""Converter plugins that turn attachments into PDF."""

from .base import ConverterOptions, ConverterPlugin
from .image import ImageConverter
from .loader import PluginLoader
from .office import OfficeConverter
from .registry import ConverterRegistry, is_pdf

__all__ = [
    "ConverterOptions",
    "ConverterPlugin",
    "ConverterRegistry",
    "ImageConverter",
    "OfficeConverter",
    "PluginLoader",
    "is_pdf",
]
