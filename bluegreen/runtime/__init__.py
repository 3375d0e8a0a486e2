"""Container runtime collaborator: start, stop and liveness of a slot."""

from bluegreen.runtime.base import ContainerRuntime
from bluegreen.runtime.commands import run_command
from bluegreen.runtime.compose import DockerComposeRuntime

__all__ = [
    "ContainerRuntime",
    "DockerComposeRuntime",
    "run_command",
]
