"""Explicit cleanup of a slot's containers. Never runs on its own."""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from bluegreen.errors import InvalidEnvironment
from bluegreen.hooks import HookDispatcher
from bluegreen.runtime import ContainerRuntime

from .config import CleanupPhase, DeploymentConfig, Slot
from .environment import EnvironmentStore
from .locking import DeploymentLock
from .run import RunController, RunRecord

logger = logging.getLogger(__name__)


@dataclass
class CleanupRecord(RunRecord):
    """One cleanup run."""

    stopped: bool = False


class EnvironmentCleaner(RunController):
    """Stops the inactive slot, or the active one only when forced."""

    purpose = "cleanup"
    phases = CleanupPhase

    def __init__(
        self,
        config: DeploymentConfig,
        runtime: ContainerRuntime,
        store: EnvironmentStore,
        lock: DeploymentLock,
        dispatcher: HookDispatcher,
    ):
        super().__init__(config, store, lock, dispatcher)
        self._runtime = runtime
        self._slot: Optional[Slot] = None

    def run(self, environment: Optional[Union[Slot, str]] = None) -> CleanupRecord:
        """Take the lock and stop ``environment`` (default: the inactive slot)."""
        self._slot = Slot.parse(environment) if environment is not None else None
        return self._run(CleanupRecord())

    def stop(self, slot: Slot, record: Optional[RunRecord] = None) -> bool:
        """Stop ``slot``'s containers; the caller must already hold the lock.

        Returns False when nothing was running.
        """
        if slot is self._store.active():
            if not self._config.force:
                raise InvalidEnvironment(
                    f"Refusing to clean up active environment '{slot.value}' without --force"
                )
            logger.warning("Cleaning up ACTIVE environment %s (forced)", slot.value)
            if record is not None:
                record.warnings.append(f"Cleaned up active environment {slot.value} (forced)")
        if not self._runtime.is_running(slot.value):
            logger.info("Environment %s is not running; nothing to clean up", slot.value)
            return False
        self._runtime.stop_environment(slot.value)
        logger.info("Stopped environment %s for %s", slot.value, self._config.app_name)
        return True

    def _execute(self, record: CleanupRecord) -> None:
        slot = self._slot or self._store.inactive()
        record.target_environment = slot
        record.version = self._store.get(slot).version or ""
        self._enter(record, CleanupPhase.STOPPING)
        record.stopped = self.stop(slot, record)
