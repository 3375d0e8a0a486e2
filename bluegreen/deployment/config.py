"""Deployment configuration, slots, phases and outcomes."""

import enum
import logging
import re
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Sequence, Tuple, Union

from bluegreen.errors import InvalidEnvironment, InvalidTrafficState

logger = logging.getLogger(__name__)


class Slot(str, enum.Enum):
    """One of the two parallel environments."""

    BLUE = "blue"
    GREEN = "green"

    @property
    def other(self) -> "Slot":
        return Slot.GREEN if self is Slot.BLUE else Slot.BLUE

    @classmethod
    def parse(cls, value: str) -> "Slot":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidEnvironment(
                f"Unknown environment '{value}' (expected blue or green)"
            ) from None


class EnvironmentRole(str, enum.Enum):
    """Traffic role of a slot."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class PipelinePhase(str, enum.Enum):
    """Phases of the deployment state machine."""

    INIT = "init"
    PRE_DEPLOY = "pre_deploy"
    ENV_STARTING = "env_starting"
    HEALTH_GATE = "health_gate"
    TRAFFIC_SHIFT = "traffic_shift"
    CUTOVER = "cutover"
    POST_DEPLOY = "post_deploy"
    CLEANUP = "cleanup"
    DONE = "done"
    FAILED = "failed"


class RollbackPhase(str, enum.Enum):
    """Phases of the rollback state machine."""

    INIT = "init"
    HEALTH_GATE = "health_gate"
    CUTOVER = "cutover"
    POST_ROLLBACK = "post_rollback"
    DONE = "done"
    FAILED = "failed"


class CutoverPhase(str, enum.Enum):
    """Phases of a manual cutover."""

    INIT = "init"
    PRE_CUTOVER = "pre_cutover"
    HEALTH_GATE = "health_gate"
    TRAFFIC_SHIFT = "traffic_shift"
    CUTOVER = "cutover"
    DONE = "done"
    FAILED = "failed"


class CleanupPhase(str, enum.Enum):
    """Phases of an explicit environment cleanup."""

    INIT = "init"
    STOPPING = "stopping"
    DONE = "done"
    FAILED = "failed"


TERMINAL_PHASES = frozenset({"done", "failed"})


class DeploymentOutcome(str, enum.Enum):
    """Terminal result of a run."""

    SUCCESS = "success"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


class HealthStatus(str, enum.Enum):
    """Health gate verdict."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


WeightPair = Tuple[int, int]

DEFAULT_TRAFFIC_SCHEDULE: Tuple[WeightPair, ...] = ((90, 10), (50, 50), (0, 100))

_ENDPOINT_RE = re.compile(r"^/[A-Za-z0-9/_.~-]*$")


def validate_weights(first: Any, second: Any) -> WeightPair:
    """Return the pair as ints, or raise if it is not a valid split."""
    for value in (first, second):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidTrafficState(
                f"Weights must be whole-number percentages, got {first!r}/{second!r}"
            )
        if not 0 <= value <= 100:
            raise InvalidTrafficState(
                f"Weights must be within 0..100, got {first}/{second}"
            )
    if first + second != 100:
        raise InvalidTrafficState(
            f"Weights must sum to 100, got {first}+{second}={first + second}"
        )
    return first, second


def parse_schedule(text: str) -> Tuple[WeightPair, ...]:
    """Parse ``"90:10,50:50,0:100"`` into validated (from, to) pairs."""
    pairs = []
    for chunk in text.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        left, sep, right = chunk.partition(":")
        if not sep:
            raise InvalidTrafficState(f"Schedule step '{chunk}' is not 'from:to'")
        try:
            pair = (int(left), int(right))
        except ValueError:
            raise InvalidTrafficState(
                f"Schedule step '{chunk}' is not a pair of integers"
            ) from None
        pairs.append(validate_weights(*pair))
    if not pairs:
        raise InvalidTrafficState("Traffic schedule is empty")
    return tuple(pairs)


@dataclass(frozen=True)
class DeploymentConfig:
    """Resolved, immutable configuration for one invocation."""

    app_name: str = "myapp"
    image_repo: str = ""
    state_dir: str = ".bgd"
    blue_port: int = 8081
    green_port: int = 8082
    app_host: str = "localhost"
    health_endpoint: str = "/health"
    health_retries: int = 12
    health_delay: float = 5.0
    health_timeout: float = 5.0
    traffic_schedule: Tuple[WeightPair, ...] = DEFAULT_TRAFFIC_SCHEDULE
    observation_window: float = 10.0
    post_shift_health_check: bool = True
    post_shift_health_retries: int = 3
    lock_timeout: float = 0.0
    lock_poll_interval: float = 0.5
    command_timeout: float = 300.0
    force: bool = False
    skip_health_check: bool = False

    def __post_init__(self):
        if not self.app_name:
            raise ValueError("app_name is required")
        if self.health_retries < 1:
            raise ValueError("health_retries must be at least 1")
        endpoint = self.health_endpoint.strip()
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint
        if not _ENDPOINT_RE.match(endpoint):
            raise ValueError(f"Invalid health endpoint {self.health_endpoint!r}")
        object.__setattr__(self, "health_endpoint", endpoint)
        for pair in self.traffic_schedule:
            validate_weights(*pair)

    @property
    def app_dir(self) -> Path:
        """Directory holding this application's durable state."""
        return Path(self.state_dir) / self.app_name

    def port_for(self, slot: Union[Slot, str]) -> int:
        return self.blue_port if Slot.parse(slot) is Slot.BLUE else self.green_port

    @classmethod
    def from_settings(cls, settings, **overrides: Any) -> "DeploymentConfig":
        """Build the run configuration from settings plus explicit overrides."""
        known = {f.name for f in fields(cls)}
        values = {
            name: getattr(settings, name)
            for name in known
            if name != "traffic_schedule" and hasattr(settings, name)
        }
        schedule = getattr(settings, "traffic_schedule", None)
        if isinstance(schedule, str):
            values["traffic_schedule"] = parse_schedule(schedule)
        for name, value in overrides.items():
            if name not in known:
                raise TypeError(f"Unknown deployment option '{name}'")
            if value is not None:
                values[name] = value
        if isinstance(values.get("traffic_schedule"), str):
            values["traffic_schedule"] = parse_schedule(values["traffic_schedule"])
        return cls(**values)


def normalize_schedule(schedule: Sequence[Sequence[int]]) -> Tuple[WeightPair, ...]:
    """Validate every step before any of them is applied."""
    if not schedule:
        raise InvalidTrafficState("Traffic schedule is empty")
    for step in schedule:
        if len(step) != 2:
            raise InvalidTrafficState(f"Schedule step {step!r} is not a weight pair")
    return tuple(validate_weights(*step) for step in schedule)
