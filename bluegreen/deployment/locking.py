"""Per-application advisory lock.

A lock file created with O_EXCL marks a run in progress. ``hold()`` is the
only way the state machines take it, so release happens on every exit path.
"""

import json
import logging
import os
import socket
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

from bluegreen.errors import LockHeld

from .config import DeploymentConfig

logger = logging.getLogger(__name__)

CORRUPT_LOCK_GRACE_SECONDS = 30.0


class DeploymentLock:
    """Acquire-if-absent lock scoped to one application."""

    FILENAME = "deploy.lock"

    def __init__(
        self,
        config: DeploymentConfig,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._config = config
        self._path = config.app_dir / self.FILENAME
        self._clock = clock
        self._sleep = sleep
        self._token: Optional[str] = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def owned(self) -> bool:
        """Whether this instance currently holds the lock."""
        return self._token is not None

    def is_held(self) -> bool:
        return self._path.exists()

    def owner(self) -> Optional[Dict[str, Any]]:
        """Return the lock file contents, or None if absent or unreadable."""
        snapshot = self._snapshot()
        return _parse_record(snapshot[1]) if snapshot else None

    def acquire(self, purpose: str = "deploy", timeout: Optional[float] = None) -> None:
        """Take the lock or raise LockHeld once ``timeout`` seconds pass."""
        if self._token is not None:
            raise RuntimeError("Lock already acquired by this instance")
        if timeout is None:
            timeout = self._config.lock_timeout
        deadline = self._clock() + max(0.0, timeout)
        self._path.parent.mkdir(parents=True, exist_ok=True)

        while True:
            token = uuid.uuid4().hex
            try:
                fd = os.open(str(self._path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                if self._break_if_stale():
                    continue
                if self._clock() >= deadline:
                    raise LockHeld(self._config.app_name, self._describe_owner()) from None
                self._sleep(self._config.lock_poll_interval)
                continue

            record = {
                "token": token,
                "pid": os.getpid(),
                "host": socket.gethostname(),
                "purpose": purpose,
                "acquired_at": datetime.now(timezone.utc).isoformat(),
            }
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(record, fh)
            self._token = token
            logger.debug("Acquired %s lock for %s", purpose, self._config.app_name)
            return

    def release(self) -> None:
        """Remove the lock file if it is still ours."""
        if self._token is None:
            return
        token, self._token = self._token, None
        current = self.owner()
        if current is None:
            logger.warning("Lock for %s vanished before release", self._config.app_name)
            return
        if current.get("token") != token:
            logger.warning(
                "Lock for %s is now owned by another run; leaving it in place",
                self._config.app_name,
            )
            return
        try:
            self._path.unlink()
        except FileNotFoundError:
            logger.warning("Lock for %s vanished before release", self._config.app_name)
            return
        logger.debug("Released lock for %s", self._config.app_name)

    @contextmanager
    def hold(self, purpose: str = "deploy", timeout: Optional[float] = None) -> Iterator["DeploymentLock"]:
        """Scoped acquisition: the lock is released however the block exits."""
        self.acquire(purpose=purpose, timeout=timeout)
        try:
            yield self
        finally:
            self.release()

    # ── Internal helpers ─────────────────────────────────────────────

    def _describe_owner(self) -> str:
        current = self.owner()
        if not current:
            return ""
        return (
            f"{current.get('purpose', 'run')} pid {current.get('pid')} "
            f"on {current.get('host')} since {current.get('acquired_at')}"
        )

    def _snapshot(self, path: Optional[Path] = None) -> Optional[Tuple[Tuple[int, int], str]]:
        """Identity and raw text of the lock file as one consistent read."""
        try:
            with open(path or self._path, encoding="utf-8", errors="replace") as fh:
                stat = os.fstat(fh.fileno())
                return (stat.st_ino, stat.st_mtime_ns), fh.read()
        except FileNotFoundError:
            return None

    def _break_if_stale(self) -> bool:
        observed = self._snapshot()
        if observed is None:
            return True
        current = _parse_record(observed[1])
        if current is None:
            try:
                age = time.time() - self._path.stat().st_mtime
            except FileNotFoundError:
                return True
            if age < CORRUPT_LOCK_GRACE_SECONDS:
                return False
            reason = "unreadable lock file"
        else:
            if current.get("host") != socket.gethostname():
                return False
            if _pid_alive(int(current.get("pid", 0))):
                return False
            reason = f"owner pid {current.get('pid')} is gone"

        logger.warning("Breaking stale lock for %s: %s", self._config.app_name, reason)
        return self._discard(observed)

    def _discard(self, observed: Tuple[Tuple[int, int], str]) -> bool:
        """Move the stale file aside and delete it only if it is the one we judged.

        Another run may break the same lock and take a fresh one between our
        read and the rename; in that case its file is linked back in place.
        """
        aside = self._path.with_name(f"{self._path.name}.stale-{uuid.uuid4().hex}")
        try:
            os.rename(self._path, aside)
        except FileNotFoundError:
            return True
        try:
            if self._snapshot(aside) == observed:
                return True
            try:
                os.link(aside, self._path)
            except FileExistsError:
                logger.error(
                    "Lock for %s was retaken while a stale lock was being broken",
                    self._config.app_name,
                )
            else:
                logger.info(
                    "Lock for %s was retaken by another run; leaving it in place",
                    self._config.app_name,
                )
            return False
        finally:
            aside.unlink()


def _parse_record(text: str) -> Optional[Dict[str, Any]]:
    try:
        record = json.loads(text)
    except json.JSONDecodeError:
        return None
    return record if isinstance(record, dict) else None


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True
