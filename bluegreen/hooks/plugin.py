"""Plugin base class and namespaced option resolution.

A plugin declares ``{OPTION: default}`` once. Its options are resolved a
single time, at registration, into a read-only mapping; later changes to
the override source are not seen by the plugin.
"""

import logging
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from .config import HookName

logger = logging.getLogger(__name__)

NAMESPACE = "plugin"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


class Plugin:
    """Base class for independently authored plugins.

    Subclasses set ``plugin_id`` and ``options`` and return their handlers
    from ``hooks()``. Handlers receive a ``HookContext`` and report failure
    by returning False or a non-zero int, or by raising.
    """

    plugin_id: str = ""
    options: Dict[str, Any] = {}

    def hooks(self) -> Mapping[HookName, Any]:
        return {}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.plugin_id}>"


def qualified_name(plugin_id: str, option: str) -> str:
    """``plugin.<plugin_id>.<OPTION>``"""
    return f"{NAMESPACE}.{plugin_id}.{option}"


def split_qualified(key: str) -> Optional[tuple]:
    """Return (plugin_id, option) for a qualified key, None for a bare one."""
    if not key.startswith(NAMESPACE + "."):
        return None
    parts = key.split(".", 2)
    if len(parts) != 3 or not parts[1] or not parts[2]:
        raise ValueError(f"Malformed plugin option '{key}' (expected plugin.<id>.<OPTION>)")
    return parts[1], parts[2]


def coerce_option(name: str, default: Any, value: Any) -> Any:
    """Convert an override to the type of the declared default."""
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError(f"Option {name} expects a boolean, got {value!r}")
    if isinstance(default, int):
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"Option {name} expects an integer, got {value!r}") from None
    if isinstance(default, float):
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValueError(f"Option {name} expects a number, got {value!r}") from None
    if default is None:
        return value
    return str(value)


def resolve_options(
    plugin_id: str,
    declared: Mapping[str, Any],
    overrides: Optional[Mapping[str, Any]] = None,
) -> Mapping[str, Any]:
    """Apply bare then qualified overrides to the declared defaults.

    A qualified key wins over a bare one. A qualified key naming this
    plugin but an option it never declared is rejected.
    """
    resolved = dict(declared)
    bare: Dict[str, Any] = {}
    qualified: Dict[str, Any] = {}
    for key, value in (overrides or {}).items():
        parts = split_qualified(key)
        if parts is None:
            bare[key] = value
        elif parts[0] == plugin_id:
            if parts[1] not in declared:
                raise ValueError(
                    f"Plugin '{plugin_id}' has no option '{parts[1]}' (from {key})"
                )
            qualified[parts[1]] = value

    for source in (bare, qualified):
        for option, value in source.items():
            if option in declared:
                resolved[option] = coerce_option(
                    qualified_name(plugin_id, option), declared[option], value
                )
    return MappingProxyType(resolved)
