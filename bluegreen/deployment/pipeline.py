"""Deployment pipeline controller.

INIT -> PRE_DEPLOY -> ENV_STARTING -> HEALTH_GATE -> TRAFFIC_SHIFT ->
CUTOVER -> POST_DEPLOY -> CLEANUP -> DONE, with FAILED reachable from
every phase. The store flip in CUTOVER is the single step that commits a
deployment and only runs after every gate has passed.
"""

import logging
from dataclasses import dataclass

from bluegreen.errors import (
    HealthCheckFailed,
    HookFailed,
    RuntimeUnavailable,
    TrafficShiftAborted,
)
from bluegreen.hooks import HookDispatcher, HookName
from bluegreen.runtime import ContainerRuntime

from .config import DeploymentConfig, PipelinePhase
from .environment import Environment, EnvironmentStore
from .health import HealthProber
from .locking import DeploymentLock
from .run import RunController, RunRecord
from .traffic import TrafficShiftEngine, TrafficState

logger = logging.getLogger(__name__)


@dataclass
class Deployment(RunRecord):
    """One execution of the pipeline for one version."""


class DeploymentPipeline(RunController):
    """Sequences runtime, prober, traffic engine, store and hooks for one deploy."""

    purpose = "deploy"
    phases = PipelinePhase
    cleanup_phase = PipelinePhase.CLEANUP

    def __init__(
        self,
        config: DeploymentConfig,
        runtime: ContainerRuntime,
        store: EnvironmentStore,
        lock: DeploymentLock,
        prober: HealthProber,
        traffic: TrafficShiftEngine,
        dispatcher: HookDispatcher,
    ):
        super().__init__(config, store, lock, dispatcher)
        self._runtime = runtime
        self._prober = prober
        self._traffic = traffic

    def run(self, version: str) -> Deployment:
        """Deploy ``version`` to the inactive slot and cut traffic over to it."""
        if not version:
            raise ValueError("version is required")
        return self._run(Deployment(version=version))

    def _execute(self, deployment: Deployment) -> None:
        active, target = self._store.environments()
        deployment.source_environment = active.name
        deployment.target_environment = target.name
        logger.info(
            "Deploying %s %s to %s (active: %s)",
            self._config.app_name,
            deployment.version,
            target.name.value,
            active.name.value,
        )

        self._enter(deployment, PipelinePhase.PRE_DEPLOY)
        self._dispatcher.dispatch(
            HookName.PRE_DEPLOY,
            version=deployment.version,
            app_name=self._config.app_name,
            target_env=target.name.value,
        )

        self._enter(deployment, PipelinePhase.ENV_STARTING)
        target = self._start_target(deployment, target)

        self._enter(deployment, PipelinePhase.HEALTH_GATE)
        self._health_gate(deployment, target)

        self._enter(deployment, PipelinePhase.TRAFFIC_SHIFT)
        self._shift_traffic(deployment, active, target)

        self._enter(deployment, PipelinePhase.CUTOVER)
        self._cutover(deployment, active, target)

        self._enter(deployment, PipelinePhase.POST_DEPLOY)
        self._broadcast(
            deployment,
            HookName.POST_DEPLOY,
            version=deployment.version,
            env_name=target.name.value,
        )

    # ── Phases ───────────────────────────────────────────────────────

    def _start_target(self, deployment: Deployment, target: Environment) -> Environment:
        name = target.name.value
        if self._runtime.is_running(name):
            if not self._config.force:
                raise RuntimeUnavailable(
                    f"Target environment '{name}' is already running; "
                    "clean it up first or deploy with --force"
                )
            self._warn(deployment, "Stopping running target environment %s (forced)", name)
            self._runtime.stop_environment(name)

        group_id = self._runtime.start_environment(name, deployment.version, self._config)
        self._store.record_release(target.name, deployment.version, group_id)
        logger.info("Started %s %s in %s (%s)", self._config.app_name, deployment.version, name, group_id)
        return self._store.get(target.name)

    def _health_gate(self, deployment: Deployment, target: Environment) -> None:
        result = self._prober.gate(target, self._config)
        self._broadcast(
            deployment,
            HookName.POST_HEALTH,
            version=deployment.version,
            env_name=target.name.value,
            healthy=result.healthy,
            attempts=result.attempt_count,
        )
        if result.healthy:
            return
        if self._config.skip_health_check:
            self._warn(
                deployment,
                "Health gate failed for %s after %d attempts; continuing because the check is skipped",
                target.name.value,
                result.attempt_count,
            )
            return
        raise HealthCheckFailed(target.name.value, result.attempt_count, result.detail)

    def _shift_traffic(self, deployment: Deployment, active: Environment, target: Environment) -> None:
        def on_step(state: TrafficState) -> None:
            deployment.traffic = state
            self._broadcast(
                deployment,
                HookName.POST_TRAFFIC_SHIFT,
                version=deployment.version,
                target_env=target.name.value,
                weight_blue=state.blue,
                weight_green=state.green,
            )

        result = self._traffic.shift(active, target, self._config.traffic_schedule, on_step=on_step)
        deployment.traffic = result.final
        if not result.completed:
            raise TrafficShiftAborted(
                f"Traffic shift to {target.name.value} aborted: {result.reason}",
                last_good=result.final,
            )
        if result.final.weight_for(target.name) != 100:
            raise TrafficShiftAborted(
                f"Traffic schedule ended at {result.final}, not 100% on {target.name.value}",
                last_good=result.final,
            )

    def _cutover(self, deployment: Deployment, active: Environment, target: Environment) -> None:
        try:
            self._dispatcher.dispatch(
                HookName.PRE_CUTOVER,
                version=deployment.version,
                target_env=target.name.value,
            )
        except HookFailed:
            self._restore_traffic(deployment, active)
            raise

        self._store.flip(expected_active=active.name)
        self._broadcast(
            deployment,
            HookName.POST_CUTOVER,
            version=deployment.version,
            target_env=target.name.value,
        )

    def _restore_traffic(self, deployment: Deployment, active: Environment) -> None:
        """Route everything back to the still-active slot before failing."""
        state = TrafficState.routed_to(active.name)
        try:
            self._traffic.apply(state)
        except RuntimeUnavailable as exc:
            self._warn(deployment, "Could not restore traffic to %s: %s", active.name.value, exc)
            return
        deployment.traffic = state
