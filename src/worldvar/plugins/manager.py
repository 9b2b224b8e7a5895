"""Plugin discovery and loading.

Discovery: entry_points (pip-installed) via pluggy setuptools entrypoints,
plus single-file plugins from ``.worldvar/plugins/``. A plugin exposing a
``configure(settings)`` method receives its ``[plugins.settings.<name>]``
table after loading.
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pluggy

from worldvar.plugins.hookspecs import WorldVarHookSpec

PROJECT_NAME = "worldvar"
ENTRY_POINT_GROUP = "worldvar.plugins"

logger = logging.getLogger(__name__)


class PluginManager:
    """Manages plugin discovery, loading, and hook dispatch."""

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(WorldVarHookSpec)
        self._loaded = False

    def discover_and_load(
        self,
        *,
        local_dir: Path | None = None,
        settings: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> list[str]:
        """Load entry-point and local plugins, then hand each its settings.

        Returns the names of all registered plugins.
        """
        self._pm.load_setuptools_entrypoints(ENTRY_POINT_GROUP)
        self._normalize_plugin_instances()
        if local_dir is not None:
            self._discover_local(local_dir)
        self._configure_plugins(settings or {})
        self._loaded = True
        return self.list_plugin_names()

    def register_plugin(self, plugin: object, name: str | None = None) -> None:
        """Register a plugin instance directly."""
        resolved_name = name or plugin.__class__.__name__
        self._pm.register(plugin, name=resolved_name)
        logger.debug("Registered plugin: %s", resolved_name)

    def unregister(self, plugin: object) -> None:
        self._pm.unregister(plugin)

    @property
    def is_loaded(self) -> bool:
        """Whether discover_and_load() has been called."""
        return self._loaded

    @property
    def hook(self) -> pluggy.HookRelay:
        return self._pm.hook

    def list_plugin_names(self) -> list[str]:
        return [self._pm.get_name(p) or p.__class__.__name__ for p in self._pm.get_plugins()]

    # ------------------------------------------------------------------
    # Local directory discovery
    # ------------------------------------------------------------------

    def _discover_local(self, local_dir: Path) -> None:
        """Import each ``*.py`` in *local_dir* and register its hook classes.

        Files starting with ``_`` are skipped. A broken file is logged and
        skipped; it never stops the others from loading.
        """
        if not local_dir.is_dir():
            return

        for py_file in sorted(local_dir.glob("*.py")):
            if py_file.name.startswith("_"):
                continue
            module_name = f"worldvar_local_plugin_{py_file.stem}"
            try:
                spec = importlib.util.spec_from_file_location(module_name, py_file)
                if spec is None or spec.loader is None:
                    logger.warning("Could not create module spec for %s", py_file)
                    continue
                module = importlib.util.module_from_spec(spec)
                sys.modules[module_name] = module
                spec.loader.exec_module(module)
            except Exception:
                logger.warning("Failed to load local plugin %s", py_file, exc_info=True)
                sys.modules.pop(module_name, None)
                continue

            for _attr_name, obj in inspect.getmembers(module, inspect.isclass):
                if obj.__module__ != module_name or not self._has_hook_impls(obj):
                    continue
                try:
                    self.register_plugin(obj(), name=py_file.stem)
                except Exception:
                    logger.warning(
                        "Failed to instantiate plugin class %s from %s",
                        obj.__name__,
                        py_file,
                        exc_info=True,
                    )

    def _normalize_plugin_instances(self) -> None:
        """Swap entry-point plugin classes for instances so hooks bind ``self``."""
        for plugin in list(self._pm.get_plugins()):
            if not inspect.isclass(plugin) or not self._has_hook_impls(plugin):
                continue
            plugin_name = self._pm.get_name(plugin) or plugin.__name__
            self._pm.unregister(plugin)
            try:
                instance = plugin()
            except Exception:
                logger.warning(
                    "Failed to instantiate entry-point plugin %s",
                    plugin_name,
                    exc_info=True,
                )
                continue
            self._pm.register(instance, name=plugin_name)

    def _configure_plugins(self, settings: Mapping[str, Mapping[str, Any]]) -> None:
        for plugin in self._pm.get_plugins():
            configure = getattr(plugin, "configure", None)
            if not callable(configure):
                continue
            name = self._pm.get_name(plugin) or plugin.__class__.__name__
            try:
                configure(dict(settings.get(name, {})))
            except Exception:
                logger.warning("Failed to configure plugin %s", name, exc_info=True)

    @staticmethod
    def _has_hook_impls(cls: type) -> bool:
        """True if *cls* has a method marked with ``@hookimpl``.

        ``HookimplMarker("worldvar")`` sets a ``worldvar_impl`` attribute.
        """
        for name in dir(cls):
            if name.startswith("_"):
                continue
            method = getattr(cls, name, None)
            if callable(method) and getattr(method, "worldvar_impl", None):
                return True
        return False
