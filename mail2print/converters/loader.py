"""Plugin loader — builds the converter registry at startup.

Built-in converters come first, then converters found in ``*.py`` modules
inside the plugins directory (in filename order).  Every concrete
:class:`ConverterPlugin` subclass defined by such a module is instantiated
exactly once.
"""

from __future__ import annotations

import importlib.util
import inspect
from collections.abc import Iterable
from pathlib import Path
from types import ModuleType

import structlog

from .base import ConverterOptions, ConverterPlugin
from .image import ImageConverter
from .office import OfficeConverter
from .registry import ConverterRegistry

logger = structlog.get_logger()

BUILTIN_CONVERTERS: tuple[type[ConverterPlugin], ...] = (OfficeConverter, ImageConverter)


class PluginLoader:
    """Discover converter plugins and register one instance of each."""

    def __init__(
        self,
        plugins_dir: Path | None,
        options: ConverterOptions,
        *,
        builtins: Iterable[type[ConverterPlugin]] = BUILTIN_CONVERTERS,
    ) -> None:
        self._plugins_dir = plugins_dir
        self._options = options
        self._builtins = tuple(builtins)

    def load(self) -> ConverterRegistry:
        registry = ConverterRegistry()
        for cls in (*self._builtins, *self._discover()):
            try:
                plugin = cls(self._options)
            except Exception:
                logger.exception("converter_init_failed", converter=cls.__qualname__)
                continue
            registry.register(plugin)
            logger.info("converter_loaded", converter=plugin.name)
        return registry

    def _discover(self) -> list[type[ConverterPlugin]]:
        if self._plugins_dir is None or not self._plugins_dir.is_dir():
            logger.debug("plugins_dir_missing", path=str(self._plugins_dir))
            return []

        found: list[type[ConverterPlugin]] = []
        for path in sorted(self._plugins_dir.glob("*.py")):
            if path.name.startswith("_"):
                continue
            try:
                module = _import_file(path)
            except Exception:
                logger.exception("plugin_import_failed", path=str(path))
                continue
            found.extend(_plugin_classes(module))
        return found


def _import_file(path: Path) -> ModuleType:
    module_name = f"mail2print_plugins.{path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"cannot load plugin module from {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _plugin_classes(module: ModuleType) -> list[type[ConverterPlugin]]:
    """Concrete ConverterPlugin subclasses defined in *module*, in source order."""
    return [
        obj
        for obj in vars(module).values()
        if inspect.isclass(obj)
        and issubclass(obj, ConverterPlugin)
        and obj.__module__ == module.__name__
        and not inspect.isabstract(obj)
    ]
