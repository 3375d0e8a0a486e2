"""Durable record of which slot is active.

The store is the only state the deployer owns. Both markers live in one
JSON document per application that is replaced atomically, so a reader
never observes two active slots or none.
"""

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from bluegreen.errors import InvalidEnvironment

from .config import DeploymentConfig, EnvironmentRole, Slot

logger = logging.getLogger(__name__)


@dataclass
class Environment:
    """One slot as seen at a point in time."""

    name: Slot
    role: EnvironmentRole
    port: int
    container_group_id: Optional[str] = None
    version: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.role is EnvironmentRole.ACTIVE


class EnvironmentStore:
    """Reads and atomically rewrites the active/inactive markers."""

    FILENAME = "environments.json"

    def __init__(self, config: DeploymentConfig):
        self._config = config
        self._path = config.app_dir / self.FILENAME
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    # ── Queries ──────────────────────────────────────────────────────

    def active(self) -> Slot:
        return Slot.parse(self._read()["active"])

    def inactive(self) -> Slot:
        return self.active().other

    def get(self, slot: Slot) -> Environment:
        data = self._read()
        active = Slot.parse(data["active"])
        meta = data["slots"].get(slot.value, {})
        return Environment(
            name=slot,
            role=EnvironmentRole.ACTIVE if slot is active else EnvironmentRole.INACTIVE,
            port=self._config.port_for(slot),
            container_group_id=meta.get("container_group_id"),
            version=meta.get("version"),
        )

    def environments(self) -> Tuple[Environment, Environment]:
        """Return (active, inactive)."""
        active = self.active()
        return self.get(active), self.get(active.other)

    def weights(self) -> Tuple[int, int]:
        """Last applied (blue, green) weights."""
        weights = self._read()["weights"]
        return int(weights["blue"]), int(weights["green"])

    def snapshot(self) -> Dict[str, Any]:
        return self._read()

    # ── Mutations ────────────────────────────────────────────────────

    def activate(self, slot: Slot) -> bool:
        """Make ``slot`` the active environment.

        Returns False without writing anything when it already is.
        """
        with self._lock:
            data = self._read()
            if Slot.parse(data["active"]) is slot:
                logger.info("Environment %s is already active; nothing to flip", slot.value)
                return False
            self._set_active(data, slot)
            return True

    def flip(self, expected_active: Slot) -> bool:
        """Swap roles only if ``expected_active`` is still the active slot.

        A store already flipped by an earlier attempt is left alone, so a
        retried flip is a no-op rather than a double swap.
        """
        with self._lock:
            data = self._read()
            current = Slot.parse(data["active"])
            if current is not expected_active:
                logger.info(
                    "Active environment is already %s; flip from %s skipped",
                    current.value,
                    expected_active.value,
                )
                return False
            self._set_active(data, expected_active.other)
            return True

    def record_release(
        self, slot: Slot, version: str, container_group_id: Optional[str]
    ) -> None:
        """Remember what was started in a slot."""
        with self._lock:
            data = self._read()
            data["slots"][slot.value] = {
                "version": version,
                "container_group_id": container_group_id,
                "started_at": _now(),
            }
            self._write(data)

    def record_weights(self, blue: int, green: int) -> None:
        with self._lock:
            data = self._read()
            if data["weights"] == {"blue": blue, "green": green}:
                return
            data["weights"] = {"blue": blue, "green": green}
            self._write(data)

    # ── Internal helpers ─────────────────────────────────────────────

    def _set_active(self, data: Dict[str, Any], slot: Slot) -> None:
        previous = data["active"]
        data["active"] = slot.value
        data["inactive"] = slot.other.value
        data["flipped_at"] = _now()
        self._write(data)
        logger.info(
            "Flipped active environment %s -> %s for %s",
            previous,
            slot.value,
            self._config.app_name,
        )

    def _default(self) -> Dict[str, Any]:
        return {
            "active": Slot.BLUE.value,
            "inactive": Slot.GREEN.value,
            "weights": {"blue": 100, "green": 0},
            "slots": {},
        }

    def _read(self) -> Dict[str, Any]:
        if not self._path.exists():
            data = self._default()
            self._write(data)
            logger.info(
                "Initialized environment markers for %s (active=blue)",
                self._config.app_name,
            )
            return data
        with open(self._path, encoding="utf-8") as fh:
            data = json.load(fh)
        active = Slot.parse(data.get("active", ""))
        if data.get("inactive") != active.other.value:
            raise InvalidEnvironment(
                f"Inconsistent environment markers in {self._path}: "
                f"active={data.get('active')!r} inactive={data.get('inactive')!r}"
            )
        data.setdefault("slots", {})
        data.setdefault(
            "weights",
            {active.value: 100, active.other.value: 0},
        )
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._path.parent), prefix=".environments-", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, sort_keys=True)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self._path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
