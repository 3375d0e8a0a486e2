"""Pytest configuration and shared fixtures."""

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import httpx
import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from bluegreen.deployment import (  # noqa: E402
    CutoverController,
    DeploymentConfig,
    DeploymentLock,
    DeploymentPipeline,
    EnvironmentCleaner,
    EnvironmentStore,
    HealthProber,
    RollbackController,
    TrafficShiftEngine,
)
from bluegreen.errors import RuntimeUnavailable  # noqa: E402
from bluegreen.hooks import HookDispatcher, HookName  # noqa: E402


class FakeRuntime:
    """In-memory container runtime."""

    def __init__(self):
        self.running: Dict[str, str] = {}
        self.calls: List[tuple] = []
        self.fail_start = False

    def start_environment(self, name, version, config):
        self.calls.append(("start", name, version))
        if self.fail_start:
            raise RuntimeUnavailable(f"cannot start {name}")
        self.running[name] = version
        return f"{config.app_name}-{name}"

    def stop_environment(self, name):
        self.calls.append(("stop", name))
        self.running.pop(name, None)

    def is_running(self, name):
        return name in self.running


class FakeProxy:
    """Records every rendered config it is asked to apply."""

    def __init__(self):
        self.reloads: List[str] = []
        self.fail = False

    def reload(self, rendered):
        if self.fail:
            raise RuntimeUnavailable("reload failed")
        self.reloads.append(rendered)


class FakeHealth:
    """httpx MockTransport handler answering per port.

    ``script[port]`` is a list of status codes consumed one per request;
    the last one repeats. Ports without a script answer 200.
    """

    def __init__(self):
        self.script: Dict[int, List[int]] = {}
        self.requests: List[httpx.Request] = []

    def set(self, port: int, *codes: int) -> None:
        self.script[port] = list(codes)

    def count(self, port: int) -> int:
        return sum(1 for r in self.requests if r.url.port == port)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        codes = self.script.get(request.url.port)
        if not codes:
            return httpx.Response(200, json={"status": "ok"})
        code = codes.pop(0) if len(codes) > 1 else codes[0]
        if code == 0:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(code)


class HookRecorder:
    """Registers a handler for every hook and remembers each call."""

    def __init__(self, dispatcher: HookDispatcher, plugin_id: str = "recorder"):
        self.calls: List[tuple] = []
        self.results: Dict[HookName, object] = {}
        for hook in HookName:
            dispatcher.register(hook, plugin_id, self._handler(hook))

    def _handler(self, hook):
        def handle(ctx):
            self.calls.append((hook.value, dict(ctx.params)))
            result = self.results.get(hook)
            if isinstance(result, Exception):
                raise result
            return result
        return handle

    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def count(self, name: str) -> int:
        return self.names().count(name)


@dataclass
class Harness:
    """A fully wired deployer around in-memory collaborators."""

    config: DeploymentConfig
    store: EnvironmentStore
    lock: DeploymentLock
    runtime: FakeRuntime
    proxy: FakeProxy
    health: FakeHealth
    prober: HealthProber
    traffic: TrafficShiftEngine
    dispatcher: HookDispatcher
    hooks: HookRecorder
    sleeps: List[float] = field(default_factory=list)

    def pipeline(self) -> DeploymentPipeline:
        return DeploymentPipeline(
            self.config, self.runtime, self.store, self.lock, self.prober, self.traffic, self.dispatcher
        )

    def cleaner(self) -> EnvironmentCleaner:
        return EnvironmentCleaner(self.config, self.runtime, self.store, self.lock, self.dispatcher)

    def rollback(self) -> RollbackController:
        return RollbackController(
            self.config, self.store, self.lock, self.prober, self.traffic, self.dispatcher, self.cleaner()
        )

    def cutover(self) -> CutoverController:
        return CutoverController(
            self.config, self.store, self.lock, self.prober, self.traffic, self.dispatcher
        )


def make_config(tmp_path: Path, **overrides) -> DeploymentConfig:
    values = dict(
        app_name="shop",
        state_dir=str(tmp_path / "state"),
        health_retries=3,
        health_delay=1.0,
        health_timeout=0.5,
        observation_window=2.0,
        post_shift_health_retries=2,
    )
    values.update(overrides)
    return DeploymentConfig(**values)


def make_harness(tmp_path: Path, store: Optional[EnvironmentStore] = None, health: Optional[FakeHealth] = None, **overrides) -> Harness:
    config = make_config(tmp_path, **overrides)
    sleeps: List[float] = []
    health = health or FakeHealth()
    prober = HealthProber(
        client=httpx.Client(transport=httpx.MockTransport(health)),
        sleep=sleeps.append,
    )
    store = store or EnvironmentStore(config)
    proxy = FakeProxy()
    dispatcher = HookDispatcher(config)
    return Harness(
        config=config,
        store=store,
        lock=DeploymentLock(config, sleep=sleeps.append),
        runtime=FakeRuntime(),
        proxy=proxy,
        health=health,
        prober=prober,
        traffic=TrafficShiftEngine(config, proxy, prober=prober, store=store, sleep=sleeps.append),
        dispatcher=dispatcher,
        hooks=HookRecorder(dispatcher),
        sleeps=sleeps,
    )


@pytest.fixture
def config(tmp_path):
    return make_config(tmp_path)


@pytest.fixture
def harness(tmp_path):
    return make_harness(tmp_path)
