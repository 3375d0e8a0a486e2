"""Deployment Context Management.

Context variables binding the deployment id, application name, version
and current phase to every log entry emitted while a run is in progress.
"""

import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

_deployment_id_var: ContextVar[str] = ContextVar("deployment_id", default="")
_app_name_var: ContextVar[str] = ContextVar("app_name", default="")
_version_var: ContextVar[str] = ContextVar("version", default="")
_phase_var: ContextVar[str] = ContextVar("phase", default="")


def generate_deployment_id() -> str:
    """Generate a short unique deployment ID."""
    return uuid.uuid4().hex[:12]


def bind_phase(phase: str) -> None:
    """Record the phase the current run has entered."""
    _phase_var.set(phase)


def get_context_dict() -> dict[str, Any]:
    """Get all context variables as a dictionary for log binding."""
    ctx = {}
    for key, var in (
        ("deployment_id", _deployment_id_var),
        ("app", _app_name_var),
        ("version", _version_var),
        ("phase", _phase_var),
    ):
        value = var.get()
        if value:
            ctx[key] = value
    return ctx


@dataclass
class DeploymentContext:
    """Context manager for run-scoped logging context.

    Example:
        with DeploymentContext(app_name="shop", version="v2"):
            logger.info("starting")  # includes deployment_id, app, version
    """

    app_name: str = ""
    version: str = ""
    deployment_id: str = ""
    started_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    _tokens: list = field(default_factory=list, repr=False)

    def __post_init__(self):
        if not self.deployment_id:
            self.deployment_id = generate_deployment_id()

    def __enter__(self) -> "DeploymentContext":
        self._tokens = [
            (_deployment_id_var, _deployment_id_var.set(self.deployment_id)),
            (_app_name_var, _app_name_var.set(self.app_name)),
            (_version_var, _version_var.set(self.version)),
            (_phase_var, _phase_var.set("")),
        ]
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since context was created."""
        delta = datetime.now(timezone.utc) - self.started_at
        return delta.total_seconds() * 1000
