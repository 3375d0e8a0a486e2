"""Built-in plugins and the startup registration pass.

Plugins are listed by name: a built-in id, or ``package.module:Class``
for a third-party plugin. Each is registered with the dispatcher once,
in list order, and its options are resolved at that moment.
"""

import importlib
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Type

from bluegreen.hooks import HookDispatcher, Plugin
from bluegreen.plugins.audit_logging import AuditLoggingPlugin
from bluegreen.plugins.db_migrations import DbMigrationsPlugin
from bluegreen.plugins.notifications import NotificationsPlugin

logger = logging.getLogger(__name__)

BUILTIN_PLUGINS: Dict[str, Type[Plugin]] = {
    AuditLoggingPlugin.plugin_id: AuditLoggingPlugin,
    NotificationsPlugin.plugin_id: NotificationsPlugin,
    DbMigrationsPlugin.plugin_id: DbMigrationsPlugin,
}


def resolve_plugin(name: str) -> Type[Plugin]:
    """Map a plugin name to its class."""
    if ":" not in name:
        try:
            return BUILTIN_PLUGINS[name]
        except KeyError:
            raise ValueError(
                f"Unknown plugin '{name}' (built-ins: {', '.join(sorted(BUILTIN_PLUGINS))})"
            ) from None
    module_name, _, attr = name.partition(":")
    module = importlib.import_module(module_name)
    try:
        plugin_cls = getattr(module, attr)
    except AttributeError:
        raise ValueError(f"Module '{module_name}' has no plugin '{attr}'") from None
    if not (isinstance(plugin_cls, type) and issubclass(plugin_cls, Plugin)):
        raise ValueError(f"'{name}' is not a Plugin subclass")
    return plugin_cls


def load_plugins(
    names: Iterable[str],
    dispatcher: HookDispatcher,
    overrides: Optional[Mapping[str, object]] = None,
) -> List[Plugin]:
    """Instantiate and register each named plugin, then validate overrides."""
    loaded = []
    for name in names:
        plugin = resolve_plugin(name)()
        dispatcher.register_plugin(plugin, overrides)
        loaded.append(plugin)
    dispatcher.check_overrides(overrides)
    logger.info("Plugins loaded: %s", ", ".join(p.plugin_id for p in loaded) or "none")
    return loaded


__all__ = [
    "BUILTIN_PLUGINS",
    "AuditLoggingPlugin",
    "DbMigrationsPlugin",
    "NotificationsPlugin",
    "load_plugins",
    "resolve_plugin",
]
