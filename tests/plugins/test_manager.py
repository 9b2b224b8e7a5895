"""Tests for PluginManager: registration, local discovery, configuration."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pluggy

from worldvar.plugins.manager import PluginManager

hookimpl = pluggy.HookimplMarker("worldvar")

_LOCAL_PLUGIN_SRC = """\
import pluggy

hookimpl = pluggy.HookimplMarker("worldvar")


class AuditPlugin:
    \"\"\"Records cycles and accepts settings.\"\"\"

    def __init__(self):
        self.settings = None
        self.cycles = []

    def configure(self, settings):
        self.settings = settings

    @hookimpl
    def post_cycle(self, cycle_id, status, applied, failed):
        self.cycles.append((cycle_id, status))
"""

_SYNTAX_ERROR_SRC = """\
def broken(
"""

_NO_HOOKS_SRC = """\
class PlainClass:
    def hello(self):
        return "world"
"""


class _DummyPlugin:
    @hookimpl
    def post_context_switch(self, scope: str) -> None:
        pass


class TestPluginManager:
    def test_hook_relay_accessible(self) -> None:
        pm = PluginManager()
        assert hasattr(pm.hook, "post_cycle")
        assert hasattr(pm.hook, "post_integrity_violation")
        assert hasattr(pm.hook, "post_context_switch")

    def test_register_and_unregister(self) -> None:
        pm = PluginManager()
        plugin = _DummyPlugin()
        pm.register_plugin(plugin, name="dummy")
        assert "dummy" in pm.list_plugin_names()
        pm.unregister(plugin)
        assert "dummy" not in pm.list_plugin_names()

    def test_default_name(self) -> None:
        pm = PluginManager()
        pm.register_plugin(_DummyPlugin())
        assert "_DummyPlugin" in pm.list_plugin_names()

    def test_is_loaded(self, tmp_path: Path) -> None:
        pm = PluginManager()
        assert pm.is_loaded is False
        pm.discover_and_load(local_dir=tmp_path / "missing")
        assert pm.is_loaded is True


class TestLocalDiscovery:
    def _write(self, directory: Path, name: str, source: str) -> None:
        directory.mkdir(parents=True, exist_ok=True)
        (directory / name).write_text(source, encoding="utf-8")

    def test_loads_and_configures(self, tmp_path: Path) -> None:
        plugins = tmp_path / "plugins"
        self._write(plugins, "audit.py", _LOCAL_PLUGIN_SRC)
        pm = PluginManager()

        names = pm.discover_and_load(local_dir=plugins, settings={"audit": {"level": "high"}})

        assert "audit" in names
        pm.hook.post_cycle(cycle_id="c1", status="reconciled", applied=1, failed=0)
        module = sys.modules["worldvar_local_plugin_audit"]
        plugin: Any = next(
            p for p in pm._pm.get_plugins() if isinstance(p, module.AuditPlugin)
        )
        assert plugin.settings == {"level": "high"}
        assert plugin.cycles == [("c1", "reconciled")]

    def test_missing_settings_gives_empty_dict(self, tmp_path: Path) -> None:
        plugins = tmp_path / "plugins"
        self._write(plugins, "audit.py", _LOCAL_PLUGIN_SRC)
        pm = PluginManager()
        pm.discover_and_load(local_dir=plugins)
        module = sys.modules["worldvar_local_plugin_audit"]
        plugin: Any = next(
            p for p in pm._pm.get_plugins() if isinstance(p, module.AuditPlugin)
        )
        assert plugin.settings == {}

    def test_broken_and_plain_files_skipped(self, tmp_path: Path) -> None:
        plugins = tmp_path / "plugins"
        self._write(plugins, "broken.py", _SYNTAX_ERROR_SRC)
        self._write(plugins, "plain.py", _NO_HOOKS_SRC)
        self._write(plugins, "_private.py", _LOCAL_PLUGIN_SRC)
        self._write(plugins, "good.py", _LOCAL_PLUGIN_SRC)
        pm = PluginManager()

        names = pm.discover_and_load(local_dir=plugins)

        assert "good" in names
        assert "broken" not in names
        assert "plain" not in names
        assert "_private" not in names
        assert "worldvar_local_plugin_broken" not in sys.modules
