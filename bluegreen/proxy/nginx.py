"""Reverse-proxy collaborator backed by an nginx config file."""

import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from bluegreen.errors import RuntimeUnavailable
from bluegreen.runtime.commands import Runner, run_command

logger = logging.getLogger(__name__)


@runtime_checkable
class ReverseProxy(Protocol):
    """Accepts a rendered configuration and applies it without dropping connections."""

    def reload(self, rendered: str) -> None:
        ...


class NginxProxy:
    """Writes the config file, optionally validates it, then signals a reload.

    If validation or the reload fails the previous file is put back, so the
    file on disk always matches what nginx is serving.
    """

    def __init__(
        self,
        config_path: str,
        reload_command: str,
        validate_command: Optional[str] = None,
        runner: Runner = subprocess.run,
        timeout: float = 30.0,
    ):
        self._path = Path(config_path)
        self._reload_command = reload_command
        self._validate_command = validate_command or None
        self._runner = runner
        self._timeout = timeout

    @property
    def path(self) -> Path:
        return self._path

    def current(self) -> Optional[str]:
        try:
            return self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def reload(self, rendered: str) -> None:
        previous = self.current()
        self._write(rendered)
        try:
            if self._validate_command:
                run_command(self._validate_command, self._timeout, runner=self._runner)
            run_command(self._reload_command, self._timeout, runner=self._runner)
        except RuntimeUnavailable as exc:
            logger.error("Proxy reload failed, restoring previous config: %s", exc)
            self._restore(previous)
            raise
        logger.info("Reloaded proxy with new configuration (%s)", self._path)

    # ── Internal helpers ─────────────────────────────────────────────

    def _restore(self, previous: Optional[str]) -> None:
        if previous is None:
            try:
                self._path.unlink()
            except FileNotFoundError:
                pass
            return
        self._write(previous)

    def _write(self, text: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._path.parent), prefix=".nginx-", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self._path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
