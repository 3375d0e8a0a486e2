"""Webhook notifications for finished deployments, rollbacks and failures."""

import logging
from typing import Any, Dict, Optional

import httpx

from bluegreen.hooks import HookContext, HookName, Plugin

logger = logging.getLogger(__name__)


class NotificationsPlugin(Plugin):
    """Posts a JSON message to ``NOTIFY_WEBHOOK_URL``.

    ``NOTIFY_EVENTS`` selects among ``deploy``, ``rollback`` and ``error``.
    A transport error or non-2xx answer is reported as a hook failure,
    which the pipeline records but never acts on.
    """

    plugin_id = "notifications"
    options = {
        "NOTIFY_ENABLED": False,
        "NOTIFY_WEBHOOK_URL": "",
        "NOTIFY_EVENTS": "deploy,rollback,error",
        "NOTIFY_TIMEOUT": 5.0,
    }

    def __init__(self, client: Optional[httpx.Client] = None):
        self._client = client

    def hooks(self):
        return {
            HookName.POST_DEPLOY: self.on_post_deploy,
            HookName.POST_ROLLBACK: self.on_post_rollback,
            HookName.ERROR: self.on_error,
        }

    def on_post_deploy(self, ctx: HookContext) -> Optional[bool]:
        return self.notify(
            ctx,
            "deploy",
            "success",
            f"Deployed {ctx.app_name} {ctx.get('version')} to {ctx.get('env_name')}",
            environment=ctx.get("env_name"),
        )

    def on_post_rollback(self, ctx: HookContext) -> Optional[bool]:
        return self.notify(
            ctx,
            "rollback",
            "warning",
            f"Rolled back {ctx.app_name} to {ctx.get('env_name')}",
            environment=ctx.get("env_name"),
        )

    def on_error(self, ctx: HookContext) -> Optional[bool]:
        return self.notify(
            ctx,
            "error",
            "error",
            f"{ctx.get('operation', 'deploy').capitalize()} of {ctx.app_name} failed "
            f"in {ctx.get('phase')}: {ctx.get('error')}",
            phase=ctx.get("phase"),
        )

    def notify(self, ctx: HookContext, event: str, status: str, message: str, **extra: Any) -> Optional[bool]:
        options = ctx.options
        if not options["NOTIFY_ENABLED"]:
            return None
        events = {e.strip() for e in options["NOTIFY_EVENTS"].split(",") if e.strip()}
        if event not in events:
            return None
        url = options["NOTIFY_WEBHOOK_URL"]
        if not url:
            logger.warning("Notifications are enabled but NOTIFY_WEBHOOK_URL is empty")
            return False

        payload: Dict[str, Any] = {
            "app": ctx.app_name,
            "event": event,
            "status": status,
            "version": ctx.get("version"),
            "message": message,
        }
        payload.update({k: v for k, v in extra.items() if v is not None})
        try:
            if self._client is not None:
                response = self._client.post(url, json=payload, timeout=options["NOTIFY_TIMEOUT"])
            else:
                with httpx.Client(timeout=options["NOTIFY_TIMEOUT"]) as client:
                    response = client.post(url, json=payload)
        except httpx.HTTPError as exc:
            logger.error("Notification for %s failed: %s", event, exc)
            return False
        if not response.is_success:
            logger.error("Notification webhook answered HTTP %d", response.status_code)
            return False
        logger.info("Sent %s notification for %s", event, ctx.app_name)
        return True
