"""Explicit hook registry and broadcast engine.

Handlers are registered per hook name and run in registration order.
Gating (pre_*) hooks stop at the first failure and raise HookFailed;
observational hooks log and record failures and keep going.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Protocol, Union, runtime_checkable

from bluegreen.errors import HookFailed

from .config import DispatchReport, HookName, HookResult
from .plugin import Plugin, qualified_name, resolve_options, split_qualified

if TYPE_CHECKING:
    from bluegreen.deployment.config import DeploymentConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HookContext:
    """What a handler gets to see: read-only configuration plus event parameters."""

    hook: HookName
    app_name: str
    config: Optional["DeploymentConfig"] = None
    options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    params: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def get(self, name: str, default: Any = None) -> Any:
        return self.params.get(name, default)


@runtime_checkable
class HookHandler(Protocol):
    def __call__(self, ctx: HookContext) -> Optional[Union[bool, int]]:
        ...


@dataclass
class HookRegistration:
    """One handler registered under one hook name."""

    hook: HookName
    plugin_id: str
    handler: HookHandler
    declared_arguments: Mapping[str, Any] = field(default_factory=dict)


def _is_failure(result: Any) -> bool:
    if result is None or result is True:
        return False
    if result is False:
        return True
    if isinstance(result, int):
        return result != 0
    return False


class HookDispatcher:
    """Owns the registry; plugins only contribute entries."""

    def __init__(self, config: Optional["DeploymentConfig"] = None, app_name: str = ""):
        self._config = config
        self._app_name = app_name or (config.app_name if config is not None else "")
        self._registry: Dict[HookName, List[HookRegistration]] = {h: [] for h in HookName}
        self._options: Dict[str, Mapping[str, Any]] = {}
        self._lock = threading.Lock()

    def options_for(self, plugin_id: str) -> Mapping[str, Any]:
        return self._options.get(plugin_id) or MappingProxyType({})

    def declared_options(self) -> Dict[str, Any]:
        """Every resolved option, keyed ``plugin.<id>.<OPTION>``."""
        return {
            qualified_name(plugin_id, option): value
            for plugin_id, options in self._options.items()
            for option, value in options.items()
        }

    def registrations(self, hook: Union[HookName, str]) -> List[HookRegistration]:
        return list(self._registry[HookName.parse(hook)])

    def register(
        self,
        hook: Union[HookName, str],
        plugin_id: str,
        handler: HookHandler,
        declared_arguments: Optional[Mapping[str, Any]] = None,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> HookRegistration:
        """Register one handler. Options resolve on the plugin's first registration."""
        hook = HookName.parse(hook)
        if not callable(handler):
            raise TypeError(f"Handler for {hook.value} from '{plugin_id}' is not callable")
        declared = dict(declared_arguments or {})
        with self._lock:
            if plugin_id not in self._options:
                self._options[plugin_id] = resolve_options(plugin_id, declared, overrides)
            registration = HookRegistration(
                hook=hook,
                plugin_id=plugin_id,
                handler=handler,
                declared_arguments=MappingProxyType(declared),
            )
            self._registry[hook].append(registration)
        logger.debug("Registered %s handler from plugin '%s'", hook.value, plugin_id)
        return registration

    def register_plugin(
        self, plugin: Plugin, overrides: Optional[Mapping[str, Any]] = None
    ) -> List[HookRegistration]:
        """Resolve the plugin's options and register each of its handlers."""
        if not plugin.plugin_id:
            raise ValueError(f"{plugin!r} has no plugin_id")
        if plugin.plugin_id in self._options:
            raise ValueError(f"Plugin '{plugin.plugin_id}' is already registered")
        with self._lock:
            self._options[plugin.plugin_id] = resolve_options(
                plugin.plugin_id, plugin.options, overrides
            )
        registrations = [
            self.register(hook, plugin.plugin_id, handler, plugin.options)
            for hook, handler in plugin.hooks().items()
        ]
        logger.info(
            "Loaded plugin '%s' (%d hooks)", plugin.plugin_id, len(registrations)
        )
        return registrations

    def check_overrides(self, overrides: Optional[Mapping[str, Any]]) -> None:
        """Reject qualified keys that name an unknown plugin or option."""
        for key in overrides or {}:
            parts = split_qualified(key)
            if parts is None:
                continue
            plugin_id, option = parts
            if plugin_id not in self._options:
                raise ValueError(f"Option {key} names plugin '{plugin_id}', which is not loaded")
            if option not in self._options[plugin_id]:
                raise ValueError(f"Plugin '{plugin_id}' has no option '{option}' (from {key})")

    def dispatch(self, hook: Union[HookName, str], **params: Any) -> DispatchReport:
        """Broadcast ``hook`` to its handlers.

        Raises HookFailed on the first failure of a gating hook. A hook
        nobody handles is a successful, empty report.
        """
        hook = HookName.parse(hook)
        report = DispatchReport(hook=hook)
        frozen = MappingProxyType(dict(params))
        for registration in self.registrations(hook):
            result = self._invoke(registration, frozen)
            report.results.append(result)
            if result.success:
                continue
            if hook.gating:
                logger.error(
                    "Gating hook %s failed in plugin '%s': %s",
                    hook.value,
                    registration.plugin_id,
                    result.error or "reported failure",
                )
                raise HookFailed(
                    hook.value, registration.plugin_id, result.error or "", gating=True
                )
            logger.warning(
                "Hook %s failed in plugin '%s' (continuing): %s",
                hook.value,
                registration.plugin_id,
                result.error or "reported failure",
            )
        return report

    # ── Internal helpers ─────────────────────────────────────────────

    def _invoke(self, registration: HookRegistration, params: Mapping[str, Any]) -> HookResult:
        ctx = HookContext(
            hook=registration.hook,
            app_name=self._app_name,
            config=self._config,
            options=self.options_for(registration.plugin_id),
            params=params,
        )
        start = time.monotonic()
        try:
            outcome = registration.handler(ctx)
        except Exception as exc:
            logger.exception(
                "Hook %s raised in plugin '%s'", registration.hook.value, registration.plugin_id
            )
            return HookResult(
                hook=registration.hook,
                plugin_id=registration.plugin_id,
                success=False,
                duration_ms=(time.monotonic() - start) * 1000,
                error=f"{type(exc).__name__}: {exc}",
            )
        failed = _is_failure(outcome)
        return HookResult(
            hook=registration.hook,
            plugin_id=registration.plugin_id,
            success=not failed,
            duration_ms=(time.monotonic() - start) * 1000,
            error=f"returned {outcome!r}" if failed else None,
        )
