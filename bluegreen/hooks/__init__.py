"""Plugin hook dispatcher.

Fixed set of lifecycle hook names, an explicit registry populated by a
plugin registration pass, and broadcast semantics that distinguish
gating (pre_*) from observational hooks.
"""

from bluegreen.hooks.config import DispatchReport, HookName, HookResult
from bluegreen.hooks.dispatcher import (
    HookContext,
    HookDispatcher,
    HookHandler,
    HookRegistration,
)
from bluegreen.hooks.plugin import Plugin, coerce_option, qualified_name, resolve_options

__all__ = [
    "DispatchReport",
    "HookContext",
    "HookDispatcher",
    "HookHandler",
    "HookName",
    "HookRegistration",
    "HookResult",
    "Plugin",
    "coerce_option",
    "qualified_name",
    "resolve_options",
]
