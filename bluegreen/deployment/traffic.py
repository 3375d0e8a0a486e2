"""Traffic shift engine: walk the reverse proxy through a weight schedule."""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from bluegreen.proxy.config import ProxyOptions, build_proxy_config
from bluegreen.proxy.nginx import ReverseProxy
from bluegreen.proxy.renderer import ProxyConfigRenderer

from .config import DeploymentConfig, Slot, normalize_schedule, validate_weights
from .environment import Environment, EnvironmentStore
from .health import HealthProber, ProbeResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrafficState:
    """A (blue, green) split; the two weights always sum to 100."""

    blue: int
    green: int

    def __post_init__(self):
        validate_weights(self.blue, self.green)

    @classmethod
    def routed_to(cls, slot: Slot) -> "TrafficState":
        """Everything on ``slot``."""
        return cls.between(slot.other, slot, 0, 100)

    @classmethod
    def between(cls, source: Slot, target: Slot, source_weight: int, target_weight: int) -> "TrafficState":
        """Map a (from, to) schedule pair onto blue/green."""
        if source is target:
            raise ValueError("Cannot shift traffic from a slot to itself")
        if source is Slot.BLUE:
            return cls(blue=source_weight, green=target_weight)
        return cls(blue=target_weight, green=source_weight)

    def weight_for(self, slot: Slot) -> int:
        return self.blue if slot is Slot.BLUE else self.green

    def __str__(self) -> str:
        return f"blue={self.blue}/green={self.green}"


@dataclass
class ShiftResult:
    """What a schedule walk ended with."""

    final: TrafficState
    applied: List[TrafficState] = field(default_factory=list)
    aborted: bool = False
    reason: str = ""
    failed_check: Optional[ProbeResult] = None

    @property
    def completed(self) -> bool:
        return not self.aborted


class TrafficShiftEngine:
    """Renders, applies and verifies each step of a traffic schedule."""

    def __init__(
        self,
        config: DeploymentConfig,
        proxy: ReverseProxy,
        renderer: Optional[ProxyConfigRenderer] = None,
        prober: Optional[HealthProber] = None,
        store: Optional[EnvironmentStore] = None,
        options: Optional[ProxyOptions] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._config = config
        self._proxy = proxy
        self._renderer = renderer or ProxyConfigRenderer()
        self._prober = prober
        self._store = store
        self._options = options or ProxyOptions()
        self._sleep = sleep

    def current(self, fallback: Slot) -> TrafficState:
        """The last applied state, or everything on ``fallback`` if none is known."""
        if self._store is None:
            return TrafficState.routed_to(fallback)
        blue, green = self._store.weights()
        return TrafficState(blue=blue, green=green)

    def render(self, state: TrafficState) -> str:
        proxy_config = build_proxy_config(self._config, self._options, state.blue, state.green)
        return self._renderer.render(proxy_config)

    def apply(self, state: TrafficState) -> str:
        """Regenerate the proxy config for ``state`` and reload the proxy."""
        validate_weights(state.blue, state.green)
        rendered = self.render(state)
        self._proxy.reload(rendered)
        if self._store is not None:
            self._store.record_weights(state.blue, state.green)
        logger.info("Applied traffic split %s for %s", state, self._config.app_name)
        return rendered

    def shift(
        self,
        source: Environment,
        target: Environment,
        schedule: Sequence[Sequence[int]],
        on_step: Optional[Callable[[TrafficState], None]] = None,
        check_health: Optional[bool] = None,
    ) -> ShiftResult:
        """Apply each (from, to) step in order.

        The whole schedule is validated before the first step. If a step's
        post-shift health check fails, the last good state is re-applied and
        the result is marked aborted; deciding what that means is up to the
        caller.
        """
        steps = normalize_schedule(schedule)
        if check_health is None:
            check_health = self._config.post_shift_health_check
        if check_health and self._prober is None:
            raise ValueError("Post-shift health checks need a HealthProber")

        last_good = self.current(fallback=source.name)
        result = ShiftResult(final=last_good)
        logger.info(
            "Shifting traffic %s -> %s over %d step(s)",
            source.name.value,
            target.name.value,
            len(steps),
        )

        for index, (source_weight, target_weight) in enumerate(steps, start=1):
            state = TrafficState.between(source.name, target.name, source_weight, target_weight)
            self.apply(state)
            result.applied.append(state)
            if on_step is not None:
                on_step(state)

            is_last = index == len(steps)
            if not is_last and self._config.observation_window > 0:
                logger.info(
                    "Observing step %d/%d for %.1fs", index, len(steps), self._config.observation_window
                )
                self._sleep(self._config.observation_window)

            if check_health and target_weight > 0:
                probe = self._prober.probe(
                    target,
                    endpoint=self._config.health_endpoint,
                    max_attempts=self._config.post_shift_health_retries,
                    interval=self._config.health_delay,
                    connect_timeout=self._config.health_timeout,
                )
                if not probe.healthy:
                    logger.error(
                        "Post-shift health check failed at %s; restoring %s", state, last_good
                    )
                    if last_good != state:
                        self.apply(last_good)
                    result.final = last_good
                    result.aborted = True
                    result.failed_check = probe
                    result.reason = (
                        f"health check failed on {target.name.value} at {state}: {probe.detail}"
                    )
                    return result

            last_good = state
            result.final = state

        return result
