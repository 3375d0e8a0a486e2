"""Audit trail plugin: one JSON object per lifecycle event, appended to a file."""

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from bluegreen.hooks import HookContext, HookName, Plugin

logger = logging.getLogger(__name__)

SEVERITIES = ("debug", "info", "warning", "error", "critical")


def severity_rank(name: str) -> int:
    try:
        return SEVERITIES.index(str(name).lower())
    except ValueError:
        return SEVERITIES.index("info")


class AuditLoggingPlugin(Plugin):
    """Appends deployment events to ``AUDIT_LOG_FILE`` (JSON lines).

    A relative path is resolved inside the application's state directory.
    """

    plugin_id = "audit_logging"
    options = {
        "AUDIT_LOG_FILE": "audit.log",
        "AUDIT_LOG_LEVEL": "info",
    }

    def __init__(self):
        self._lock = threading.Lock()

    def hooks(self):
        return {
            HookName.PRE_DEPLOY: self.on_pre_deploy,
            HookName.POST_DEPLOY: self.on_post_deploy,
            HookName.POST_TRAFFIC_SHIFT: self.on_post_traffic_shift,
            HookName.POST_CUTOVER: self.on_post_cutover,
            HookName.POST_ROLLBACK: self.on_post_rollback,
            HookName.ERROR: self.on_error,
        }

    def on_pre_deploy(self, ctx: HookContext) -> None:
        self.record(ctx, "deployment_started", "info", {"target_env": ctx.get("target_env")})

    def on_post_deploy(self, ctx: HookContext) -> None:
        self.record(ctx, "deployment_completed", "info", {"environment": ctx.get("env_name")})

    def on_post_traffic_shift(self, ctx: HookContext) -> None:
        self.record(
            ctx,
            "traffic_shifted",
            "info",
            {
                "target_env": ctx.get("target_env"),
                "blue": ctx.get("weight_blue"),
                "green": ctx.get("weight_green"),
            },
        )

    def on_post_cutover(self, ctx: HookContext) -> None:
        self.record(ctx, "cutover_completed", "info", {"environment": ctx.get("target_env")})

    def on_post_rollback(self, ctx: HookContext) -> None:
        self.record(ctx, "rollback_completed", "warning", {"environment": ctx.get("env_name")})

    def on_error(self, ctx: HookContext) -> None:
        self.record(
            ctx,
            f"{ctx.get('operation', 'deploy')}_failed",
            "error",
            {"phase": ctx.get("phase"), "error": ctx.get("error")},
        )

    def record(
        self,
        ctx: HookContext,
        event: str,
        severity: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Append one event; returns False if it was below the configured level."""
        if severity_rank(severity) < severity_rank(ctx.options["AUDIT_LOG_LEVEL"]):
            return False
        entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "app": ctx.app_name,
            "version": ctx.get("version") or "unknown",
            "event": event,
            "severity": severity,
            "details": details or {},
        }
        path = self.log_path(ctx)
        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as fh:
                fh.write(json.dumps(entry, default=str) + "\n")
        logger.debug("Audit event %s written to %s", event, path)
        return True

    def log_path(self, ctx: HookContext) -> Path:
        path = Path(ctx.options["AUDIT_LOG_FILE"])
        if not path.is_absolute() and ctx.config is not None:
            path = ctx.config.app_dir / path
        return path
