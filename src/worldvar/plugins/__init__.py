"""Extension layer — plugin system via pluggy.

Discovery: entry_points (pip-installed) plus single-file local plugins.
INVARIANT: Plugin failures are warnings, never errors.
"""

from worldvar.plugins.event_bus import EventBus
from worldvar.plugins.hookspecs import hookimpl
from worldvar.plugins.manager import PluginManager

__all__ = ["EventBus", "PluginManager", "hookimpl"]
