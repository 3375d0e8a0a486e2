"""Hook names and result records."""

import enum
from dataclasses import dataclass, field
from typing import List, Optional


class HookName(str, enum.Enum):
    """The closed set of lifecycle events a plugin can handle."""

    PRE_DEPLOY = "pre_deploy"
    POST_DEPLOY = "post_deploy"
    PRE_CUTOVER = "pre_cutover"
    POST_CUTOVER = "post_cutover"
    POST_HEALTH = "post_health"
    POST_TRAFFIC_SHIFT = "post_traffic_shift"
    PRE_ROLLBACK = "pre_rollback"
    POST_ROLLBACK = "post_rollback"
    CLEANUP = "cleanup"
    ERROR = "error"

    @property
    def gating(self) -> bool:
        """pre_* hooks can abort the calling phase; all others only observe."""
        return self.value.startswith("pre_")

    @classmethod
    def parse(cls, value) -> "HookName":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            raise ValueError(f"Unknown hook '{value}'") from None


@dataclass
class HookResult:
    """Result of one handler invocation."""

    hook: HookName
    plugin_id: str
    success: bool
    duration_ms: float = 0.0
    error: Optional[str] = None

    def describe(self) -> str:
        status = "ok" if self.success else f"failed: {self.error or 'reported failure'}"
        return f"{self.hook.value}[{self.plugin_id}] {status}"


@dataclass
class DispatchReport:
    """Every result produced by one broadcast of a hook."""

    hook: HookName
    results: List[HookResult] = field(default_factory=list)

    @property
    def failures(self) -> List[HookResult]:
        return [r for r in self.results if not r.success]

    @property
    def ok(self) -> bool:
        return not self.failures
