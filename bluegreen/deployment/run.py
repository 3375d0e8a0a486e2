"""Run records and the lock-scoped skeleton shared by every state machine.

A controller subclass supplies its phase enum and a ``_execute`` body.
``_run`` takes the application lock, records phase transitions, turns
errors into a FAILED record and broadcasts the ``error`` and ``cleanup``
hooks, and releases the lock on every path.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional, Type

from bluegreen.errors import DeploymentError, LockHeld
from bluegreen.hooks import DispatchReport, HookDispatcher, HookName, HookResult
from bluegreen.logging_config import DeploymentContext, bind_phase

from .config import DeploymentConfig, DeploymentOutcome, Slot
from .environment import EnvironmentStore
from .locking import DeploymentLock

logger = logging.getLogger(__name__)


@dataclass
class RunRecord:
    """Outcome record of one pipeline, rollback, cutover or cleanup run."""

    app_name: str = ""
    version: str = ""
    deployment_id: str = ""
    phase: str = "init"
    phases: List[str] = field(default_factory=list)
    outcome: Optional[DeploymentOutcome] = None
    source_environment: Optional[Slot] = None
    target_environment: Optional[Slot] = None
    traffic: Any = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    failed_phase: Optional[str] = None
    hook_failures: List[HookResult] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.outcome is not None and self.outcome is not DeploymentOutcome.FAILED

    @property
    def has_warnings(self) -> bool:
        return bool(self.hook_failures or self.warnings)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def warning_lines(self) -> List[str]:
        return list(self.warnings) + [r.describe() for r in self.hook_failures]


class RunController:
    """Skeleton for a lock-scoped state machine."""

    purpose = "run"
    phases: Type = None
    cleanup_phase: Optional[str] = None
    success_outcome = DeploymentOutcome.SUCCESS

    def __init__(
        self,
        config: DeploymentConfig,
        store: EnvironmentStore,
        lock: DeploymentLock,
        dispatcher: HookDispatcher,
    ):
        self._config = config
        self._store = store
        self._lock = lock
        self._dispatcher = dispatcher

    @property
    def config(self) -> DeploymentConfig:
        return self._config

    def _execute(self, record: RunRecord) -> None:
        raise NotImplementedError

    def _run(self, record: RunRecord) -> RunRecord:
        record.app_name = self._config.app_name
        with DeploymentContext(app_name=record.app_name, version=record.version) as ctx:
            record.deployment_id = ctx.deployment_id
            self._enter(record, self.phases.INIT)
            try:
                with self._lock.hold(self.purpose):
                    try:
                        self._execute(record)
                    except DeploymentError as exc:
                        self._fail(record, exc)
                    except Exception as exc:
                        self._fail(record, exc)
                        raise
                    finally:
                        self._cleanup(record)
            except LockHeld as exc:
                # Errors raised inside the block are recorded above; only
                # acquisition can get here, and the lock is not ours to release.
                self._fail(record, exc)

            if record.outcome is None:
                record.outcome = self.success_outcome
                self._enter(record, self.phases.DONE)
                record.finished_at = datetime.now(timezone.utc)
            logger.info(
                "%s for %s finished: %s%s in %.0f ms",
                self.purpose.capitalize(),
                record.app_name,
                record.outcome.value,
                " (with warnings)" if record.has_warnings else "",
                ctx.elapsed_ms,
            )
        return record

    # ── Internal helpers ─────────────────────────────────────────────

    def _enter(self, record: RunRecord, phase) -> None:
        value = phase.value if hasattr(phase, "value") else str(phase)
        record.phase = value
        record.phases.append(value)
        bind_phase(value)
        logger.info("%s %s: entering %s", self.purpose.capitalize(), record.deployment_id, value)

    def _broadcast(self, record: RunRecord, hook: HookName, **params: Any) -> DispatchReport:
        """Dispatch ``hook``; observational failures land on the record."""
        report = self._dispatcher.dispatch(hook, **params)
        record.hook_failures.extend(report.failures)
        return report

    def _warn(self, record: RunRecord, message: str, *args: Any) -> None:
        text = message % args if args else message
        logger.warning("%s", text)
        record.warnings.append(text)

    def _fail(self, record: RunRecord, exc: BaseException) -> None:
        failed_phase = record.phase
        if isinstance(exc, DeploymentError):
            if exc.phase is None:
                exc.phase = failed_phase
            logger.error("%s failed in phase %s: %s", self.purpose.capitalize(), failed_phase, exc)
        else:
            logger.exception(
                "%s failed unexpectedly in phase %s", self.purpose.capitalize(), failed_phase
            )
        record.failed_phase = failed_phase
        record.error = str(exc)
        record.error_type = type(exc).__name__
        record.outcome = DeploymentOutcome.FAILED
        self._enter(record, self.phases.FAILED)
        record.finished_at = datetime.now(timezone.utc)
        self._broadcast(
            record,
            HookName.ERROR,
            version=record.version,
            phase=failed_phase,
            error=record.error,
            error_type=record.error_type,
            operation=self.purpose,
        )

    def _cleanup(self, record: RunRecord) -> None:
        if record.outcome is None and self.cleanup_phase is not None:
            self._enter(record, self.cleanup_phase)
        self._broadcast(
            record,
            HookName.CLEANUP,
            version=record.version,
            outcome=(record.outcome or self.success_outcome).value,
            operation=self.purpose,
        )
