"""Structured logging and deployment-scoped log context.

Provides JSON or console logging plus a context that binds the
deployment id, application, version and current phase to every record.
"""

from bluegreen.logging_config.config import LogFormat, LoggingConfig, LogLevel
from bluegreen.logging_config.context import (
    DeploymentContext,
    bind_phase,
    generate_deployment_id,
    get_context_dict,
)
from bluegreen.logging_config.setup import configure_logging, get_logger

__all__ = [
    "DeploymentContext",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "bind_phase",
    "configure_logging",
    "generate_deployment_id",
    "get_context_dict",
    "get_logger",
]
