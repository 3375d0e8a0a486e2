"""Manual cutover: route traffic to a chosen slot, fully or as a weighted split."""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from bluegreen.errors import HealthCheckFailed
from bluegreen.hooks import HookDispatcher, HookName

from .config import CutoverPhase, DeploymentConfig, Slot, validate_weights
from .environment import Environment, EnvironmentStore
from .health import HealthProber
from .locking import DeploymentLock
from .run import RunController, RunRecord
from .traffic import TrafficShiftEngine, TrafficState

logger = logging.getLogger(__name__)


@dataclass
class CutoverRecord(RunRecord):
    """One manual cutover run."""

    flipped: bool = False
    noop: bool = False


class CutoverController(RunController):
    """Applies one explicit traffic state; flips the store only at 100%."""

    purpose = "cutover"
    phases = CutoverPhase

    def __init__(
        self,
        config: DeploymentConfig,
        store: EnvironmentStore,
        lock: DeploymentLock,
        prober: HealthProber,
        traffic: TrafficShiftEngine,
        dispatcher: HookDispatcher,
    ):
        super().__init__(config, store, lock, dispatcher)
        self._prober = prober
        self._traffic = traffic
        self._state: Optional[TrafficState] = None

    def run(
        self,
        target: Union[Slot, str],
        blue_weight: Optional[int] = None,
        green_weight: Optional[int] = None,
    ) -> CutoverRecord:
        """Cut over to ``target``.

        Without weights everything goes to ``target``. With weights both
        must be given and sum to 100; they are checked before the lock is
        taken.
        """
        slot = Slot.parse(target)
        if (blue_weight is None) != (green_weight is None):
            raise ValueError("Give both --blue-weight and --green-weight, or neither")
        if blue_weight is None:
            self._state = TrafficState.routed_to(slot)
        else:
            blue, green = validate_weights(blue_weight, green_weight)
            self._state = TrafficState(blue=blue, green=green)
        record = CutoverRecord(target_environment=slot)
        record.version = self._store.get(slot).version or ""
        return self._run(record)

    def _execute(self, record: CutoverRecord) -> None:
        state = self._state
        target = self._store.get(record.target_environment)
        active = self._store.active()
        record.source_environment = active
        full = state.weight_for(target.name) == 100

        current = self._traffic.current(fallback=active)
        if full and target.is_active and current == state:
            logger.info(
                "%s is already active with all traffic; nothing to cut over", target.name.value
            )
            record.noop = True
            record.traffic = current
            return

        self._enter(record, CutoverPhase.PRE_CUTOVER)
        self._dispatcher.dispatch(
            HookName.PRE_CUTOVER,
            version=record.version,
            target_env=target.name.value,
        )

        if state.weight_for(target.name) > 0:
            self._enter(record, CutoverPhase.HEALTH_GATE)
            self._health_gate(record, target)

        self._enter(record, CutoverPhase.TRAFFIC_SHIFT)
        self._traffic.apply(state)
        record.traffic = state
        self._broadcast(
            record,
            HookName.POST_TRAFFIC_SHIFT,
            version=record.version,
            target_env=target.name.value,
            weight_blue=state.blue,
            weight_green=state.green,
        )

        self._enter(record, CutoverPhase.CUTOVER)
        if full:
            record.flipped = self._store.flip(expected_active=target.name.other)
        else:
            logger.info(
                "Partial cutover to %s at %s; %s stays active",
                target.name.value,
                state,
                active.value,
            )
        self._broadcast(
            record,
            HookName.POST_CUTOVER,
            version=record.version,
            target_env=target.name.value,
            weight_blue=state.blue,
            weight_green=state.green,
        )

    def _health_gate(self, record: CutoverRecord, target: Environment) -> None:
        if self._config.skip_health_check:
            self._warn(record, "Skipping health check of %s before cutover", target.name.value)
            return
        result = self._prober.gate(target, self._config)
        self._broadcast(
            record,
            HookName.POST_HEALTH,
            version=record.version,
            env_name=target.name.value,
            healthy=result.healthy,
            attempts=result.attempt_count,
        )
        if result.healthy:
            return
        if self._config.force:
            self._warn(
                record,
                "Cutover target %s is unhealthy; continuing (forced)",
                target.name.value,
            )
            return
        raise HealthCheckFailed(target.name.value, result.attempt_count, result.detail)
