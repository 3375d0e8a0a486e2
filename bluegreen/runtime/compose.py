"""Docker Compose implementation of the container runtime.

Each slot is its own compose project named ``<app>-<slot>``; the version,
image and port reach the compose file through environment variables.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

from .commands import Runner, run_command

if TYPE_CHECKING:
    from bluegreen.deployment.config import DeploymentConfig

logger = logging.getLogger(__name__)


class DockerComposeRuntime:
    """Drives ``docker compose`` for one application."""

    def __init__(
        self,
        app_name: str,
        compose_file: str = "docker-compose.yml",
        image_repo: str = "",
        project_dir: Optional[str] = None,
        compose_command: Sequence[str] = ("docker", "compose"),
        timeout: float = 300.0,
        runner: Runner = subprocess.run,
    ):
        self.app_name = app_name
        self.compose_file = compose_file
        self.image_repo = image_repo
        self.project_dir = Path(project_dir) if project_dir else Path.cwd()
        self.compose_command = list(compose_command)
        self.timeout = timeout
        self._runner = runner

    def project_name(self, name: str) -> str:
        return f"{self.app_name}-{name}"

    def start_environment(self, name: str, version: str, config: "DeploymentConfig") -> str:
        project = self.project_name(name)
        env = self._environment(name, version, config.port_for(name))
        logger.info("Starting %s environment (%s) at version %s", name, project, version)
        run_command(
            self._base(name) + ["up", "-d", "--remove-orphans"],
            timeout=self.timeout,
            runner=self._runner,
            env=env,
            cwd=str(self.project_dir),
        )
        return project

    def stop_environment(self, name: str) -> None:
        logger.info("Stopping %s environment (%s)", name, self.project_name(name))
        run_command(
            self._base(name) + ["down"],
            timeout=self.timeout,
            runner=self._runner,
            cwd=str(self.project_dir),
        )

    def is_running(self, name: str) -> bool:
        completed = run_command(
            self._base(name) + ["ps", "--status", "running", "--quiet"],
            timeout=self.timeout,
            runner=self._runner,
            cwd=str(self.project_dir),
        )
        return bool((completed.stdout or "").strip())

    # ── Internal helpers ─────────────────────────────────────────────

    def _base(self, name: str) -> List[str]:
        args = self.compose_command + ["-p", self.project_name(name), "-f", self.compose_file]
        env_file = self.project_dir / f".env.{name}"
        if env_file.exists():
            args += ["--env-file", str(env_file)]
        return args

    def _environment(self, name: str, version: str, port: int) -> Dict[str, str]:
        env = dict(os.environ)
        image = f"{self.image_repo}:{version}" if self.image_repo else version
        env.update(
            {
                "APP_NAME": self.app_name,
                "ENV_NAME": name,
                "VERSION": version,
                "IMAGE": image,
                "PORT": str(port),
            }
        )
        return env
