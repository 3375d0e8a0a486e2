"""Error taxonomy for deployment, rollback and cutover runs."""

from typing import Optional


class DeploymentError(Exception):
    """Base class for every failure a run can record."""

    def __init__(self, message: str, phase: Optional[str] = None):
        super().__init__(message)
        self.phase = phase


class LockHeld(DeploymentError):
    """Another deployment or rollback holds the application lock."""

    def __init__(self, app_name: str, owner: str = ""):
        detail = f" (held by {owner})" if owner else ""
        super().__init__(f"A deployment for '{app_name}' is already running{detail}")
        self.app_name = app_name
        self.owner = owner


AlreadyRunning = LockHeld


class HealthCheckFailed(DeploymentError):
    """The candidate environment never became healthy."""

    def __init__(self, environment: str, attempts: int, detail: str = ""):
        message = f"Environment '{environment}' failed health check after {attempts} attempts"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.environment = environment
        self.attempts = attempts


class RollbackTargetUnhealthy(HealthCheckFailed):
    """The environment to roll back to is not healthy."""


class TrafficShiftAborted(DeploymentError):
    """A post-shift health check failed; last good weights were kept."""

    def __init__(self, message: str, last_good=None):
        super().__init__(message)
        self.last_good = last_good


class HookFailed(DeploymentError):
    """A hook handler reported failure."""

    def __init__(self, hook: str, plugin_id: str, detail: str = "", gating: bool = True):
        message = f"Hook '{hook}' from plugin '{plugin_id}' failed"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.hook = hook
        self.plugin_id = plugin_id
        self.gating = gating


class RuntimeUnavailable(DeploymentError):
    """The container runtime or the reverse proxy could not do its job."""


class InvalidTrafficState(DeploymentError, ValueError):
    """Weights outside 0..100 or not summing to 100."""


class InvalidEnvironment(DeploymentError, ValueError):
    """An environment name that is neither slot."""
