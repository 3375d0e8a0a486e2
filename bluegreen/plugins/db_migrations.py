"""Database backup, migration and restore around deployments."""

import logging
import os
import subprocess
from typing import Dict

from bluegreen.hooks import HookContext, HookName, Plugin
from bluegreen.runtime.commands import Runner, run_command

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300.0


class DbMigrationsPlugin(Plugin):
    """Runs shell commands configured per application.

    Both handlers are gating: a failed backup or migration stops the
    deployment before any container starts, and a failed restore stops the
    rollback before traffic moves.
    """

    plugin_id = "db_migrations"
    options = {
        "SKIP_MIGRATIONS": False,
        "DB_BACKUP_CMD": "",
        "MIGRATIONS_CMD": "",
        "DB_ROLLBACK": False,
        "DB_RESTORE_CMD": "",
    }

    def __init__(self, runner: Runner = subprocess.run):
        self._runner = runner

    def hooks(self):
        return {
            HookName.PRE_DEPLOY: self.on_pre_deploy,
            HookName.PRE_ROLLBACK: self.on_pre_rollback,
        }

    def on_pre_deploy(self, ctx: HookContext) -> None:
        options = ctx.options
        if options["SKIP_MIGRATIONS"]:
            logger.info("Skipping database migrations for %s", ctx.app_name)
            return
        if options["DB_BACKUP_CMD"]:
            logger.info("Backing up database before deploying %s", ctx.get("version"))
            self._run(ctx, options["DB_BACKUP_CMD"])
        if options["MIGRATIONS_CMD"]:
            logger.info("Running database migrations for %s", ctx.get("version"))
            self._run(ctx, options["MIGRATIONS_CMD"])

    def on_pre_rollback(self, ctx: HookContext) -> bool:
        options = ctx.options
        if not options["DB_ROLLBACK"]:
            return True
        if not options["DB_RESTORE_CMD"]:
            logger.error("DB_ROLLBACK is set but DB_RESTORE_CMD is empty")
            return False
        logger.info("Restoring database for rollback of %s", ctx.app_name)
        self._run(ctx, options["DB_RESTORE_CMD"])
        return True

    def _run(self, ctx: HookContext, command: str) -> None:
        env: Dict[str, str] = dict(os.environ)
        env["BGD_APP_NAME"] = ctx.app_name
        env["BGD_VERSION"] = str(ctx.get("version") or "")
        env["BGD_TARGET_ENV"] = str(ctx.get("target_env") or "")
        timeout = ctx.config.command_timeout if ctx.config is not None else DEFAULT_TIMEOUT
        run_command(command, timeout, runner=self._runner, env=env)
