"""Interface the state machines need from a container runtime."""

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from bluegreen.deployment.config import DeploymentConfig


@runtime_checkable
class ContainerRuntime(Protocol):
    """Start/stop/liveness only; runtime metadata is never inspected."""

    def start_environment(self, name: str, version: str, config: "DeploymentConfig") -> str:
        """Materialize slot ``name`` at ``version`` and return its container group id."""
        ...

    def stop_environment(self, name: str) -> None:
        ...

    def is_running(self, name: str) -> bool:
        ...
