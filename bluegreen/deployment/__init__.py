"""Blue/green deployment orchestration.

Environment store, per-application lock, health prober, traffic shift
engine and the pipeline, rollback, cutover and cleanup state machines.
"""

from bluegreen.deployment.cleanup import CleanupRecord, EnvironmentCleaner
from bluegreen.deployment.config import (
    DEFAULT_TRAFFIC_SCHEDULE,
    TERMINAL_PHASES,
    CleanupPhase,
    CutoverPhase,
    DeploymentConfig,
    DeploymentOutcome,
    EnvironmentRole,
    HealthStatus,
    PipelinePhase,
    RollbackPhase,
    Slot,
    normalize_schedule,
    parse_schedule,
    validate_weights,
)
from bluegreen.deployment.cutover import CutoverController, CutoverRecord
from bluegreen.deployment.environment import Environment, EnvironmentStore
from bluegreen.deployment.health import HealthProber, ProbeAttempt, ProbeResult
from bluegreen.deployment.locking import DeploymentLock
from bluegreen.deployment.pipeline import Deployment, DeploymentPipeline
from bluegreen.deployment.rollback import RollbackController, RollbackRecord
from bluegreen.deployment.run import RunController, RunRecord
from bluegreen.deployment.traffic import ShiftResult, TrafficShiftEngine, TrafficState
from bluegreen.errors import (
    AlreadyRunning,
    DeploymentError,
    HealthCheckFailed,
    HookFailed,
    InvalidEnvironment,
    InvalidTrafficState,
    LockHeld,
    RollbackTargetUnhealthy,
    RuntimeUnavailable,
    TrafficShiftAborted,
)

__all__ = [
    # Config
    "DEFAULT_TRAFFIC_SCHEDULE",
    "TERMINAL_PHASES",
    "CleanupPhase",
    "CutoverPhase",
    "DeploymentConfig",
    "DeploymentOutcome",
    "EnvironmentRole",
    "HealthStatus",
    "PipelinePhase",
    "RollbackPhase",
    "Slot",
    "normalize_schedule",
    "parse_schedule",
    "validate_weights",
    # Errors
    "AlreadyRunning",
    "DeploymentError",
    "HealthCheckFailed",
    "HookFailed",
    "InvalidEnvironment",
    "InvalidTrafficState",
    "LockHeld",
    "RollbackTargetUnhealthy",
    "RuntimeUnavailable",
    "TrafficShiftAborted",
    # State
    "Environment",
    "EnvironmentStore",
    "DeploymentLock",
    # Health & traffic
    "HealthProber",
    "ProbeAttempt",
    "ProbeResult",
    "ShiftResult",
    "TrafficShiftEngine",
    "TrafficState",
    # State machines
    "CleanupRecord",
    "CutoverController",
    "CutoverRecord",
    "Deployment",
    "DeploymentPipeline",
    "EnvironmentCleaner",
    "RollbackController",
    "RollbackRecord",
    "RunController",
    "RunRecord",
]
