"""Rollback controller: route everything back to the inactive slot.

INIT -> HEALTH_GATE -> CUTOVER -> POST_ROLLBACK -> DONE | FAILED. The
previous slot is gated like a deployment target unless forced, then gets
100% of traffic in a single step. The environment being abandoned is left
running unless cleanup was explicitly requested.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from bluegreen.errors import RollbackTargetUnhealthy, RuntimeUnavailable
from bluegreen.hooks import HookDispatcher, HookName

from .cleanup import EnvironmentCleaner
from .config import DeploymentConfig, DeploymentOutcome, RollbackPhase
from .environment import Environment, EnvironmentStore
from .health import HealthProber
from .locking import DeploymentLock
from .run import RunController, RunRecord
from .traffic import TrafficShiftEngine, TrafficState

logger = logging.getLogger(__name__)


@dataclass
class RollbackRecord(RunRecord):
    """One rollback run."""

    cleaned: bool = False


class RollbackController(RunController):
    """Reverses the last cutover."""

    purpose = "rollback"
    phases = RollbackPhase
    success_outcome = DeploymentOutcome.ROLLED_BACK

    def __init__(
        self,
        config: DeploymentConfig,
        store: EnvironmentStore,
        lock: DeploymentLock,
        prober: HealthProber,
        traffic: TrafficShiftEngine,
        dispatcher: HookDispatcher,
        cleaner: Optional[EnvironmentCleaner] = None,
    ):
        super().__init__(config, store, lock, dispatcher)
        self._prober = prober
        self._traffic = traffic
        self._cleaner = cleaner
        self._clean = False

    def run(self, clean: bool = False) -> RollbackRecord:
        """Roll back; with ``clean`` also stop the abandoned environment."""
        if clean and self._cleaner is None:
            raise ValueError("clean=True needs an EnvironmentCleaner")
        self._clean = clean
        _, previous = self._store.environments()
        return self._run(RollbackRecord(version=previous.version or ""))

    def _execute(self, record: RollbackRecord) -> None:
        current, previous = self._store.environments()
        record.source_environment = current.name
        record.target_environment = previous.name
        logger.info(
            "Rolling back %s from %s to %s (version %s)",
            self._config.app_name,
            current.name.value,
            previous.name.value,
            previous.version or "unknown",
        )
        self._dispatcher.dispatch(
            HookName.PRE_ROLLBACK,
            version=record.version,
            app_name=self._config.app_name,
            target_env=previous.name.value,
        )

        self._enter(record, RollbackPhase.HEALTH_GATE)
        self._health_gate(record, previous)

        self._enter(record, RollbackPhase.CUTOVER)
        state = TrafficState.routed_to(previous.name)
        self._traffic.apply(state)
        record.traffic = state
        self._store.flip(expected_active=current.name)

        self._enter(record, RollbackPhase.POST_ROLLBACK)
        self._broadcast(
            record,
            HookName.POST_ROLLBACK,
            version=record.version,
            env_name=previous.name.value,
        )
        if self._clean:
            try:
                record.cleaned = self._cleaner.stop(current.name, record)
            except RuntimeUnavailable as exc:
                self._warn(record, "Rolled back, but cleaning up %s failed: %s", current.name.value, exc)

    def _health_gate(self, record: RollbackRecord, previous: Environment) -> None:
        result = self._prober.gate(previous, self._config)
        self._broadcast(
            record,
            HookName.POST_HEALTH,
            version=record.version,
            env_name=previous.name.value,
            healthy=result.healthy,
            attempts=result.attempt_count,
        )
        if result.healthy:
            return
        if self._config.force:
            self._warn(
                record,
                "Rollback target %s is unhealthy after %d attempts; rolling back anyway (forced)",
                previous.name.value,
                result.attempt_count,
            )
            return
        raise RollbackTargetUnhealthy(previous.name.value, result.attempt_count, result.detail)
