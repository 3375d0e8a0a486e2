"""Command line front end: bgd deploy|rollback|cutover|cleanup|status."""

import argparse
import logging
import shlex
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence

from bluegreen.deployment import (
    CutoverController,
    DeploymentConfig,
    DeploymentLock,
    DeploymentPipeline,
    EnvironmentCleaner,
    EnvironmentStore,
    HealthProber,
    RollbackController,
    RunRecord,
    TrafficShiftEngine,
)
from bluegreen.hooks import HookDispatcher
from bluegreen.logging_config import LogFormat, LoggingConfig, LogLevel, configure_logging
from bluegreen.plugins import load_plugins
from bluegreen.proxy import NginxProxy, ProxyConfigRenderer, ProxyOptions, ReverseProxy
from bluegreen.runtime import ContainerRuntime, DockerComposeRuntime
from bluegreen.settings import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Every collaborator one invocation needs, wired from settings."""

    config: DeploymentConfig
    dispatcher: HookDispatcher
    store: EnvironmentStore
    lock: DeploymentLock
    prober: HealthProber
    traffic: TrafficShiftEngine
    runtime: ContainerRuntime
    cleaner: EnvironmentCleaner

    def pipeline(self) -> DeploymentPipeline:
        return DeploymentPipeline(
            self.config, self.runtime, self.store, self.lock, self.prober, self.traffic, self.dispatcher
        )

    def rollback(self) -> RollbackController:
        return RollbackController(
            self.config, self.store, self.lock, self.prober, self.traffic, self.dispatcher, self.cleaner
        )

    def cutover(self) -> CutoverController:
        return CutoverController(
            self.config, self.store, self.lock, self.prober, self.traffic, self.dispatcher
        )


def parse_option(text: str):
    """``KEY=VALUE`` -> (KEY, VALUE)."""
    key, sep, value = text.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got '{text}'")
    return key.strip(), value


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--app-name", default=None, help="Application name (default: BGD_APP_NAME)")
    common.add_argument("--force", action="store_true", help="Override health and safety checks")
    common.add_argument(
        "--skip-health-check", action="store_true",
        help="Continue past a failed health gate (logged as a warning)",
    )
    common.add_argument(
        "--db-rollback", action="store_true",
        help="Restore the database during rollback (db_migrations plugin)",
    )
    common.add_argument(
        "--option", action="append", default=[], type=parse_option, metavar="KEY=VALUE",
        help="Plugin option override, bare or as plugin.<id>.<OPTION> (repeatable)",
    )
    common.add_argument(
        "--log-level", default=None, choices=[level.value for level in LogLevel],
        help="Log level (default: BGD_LOG_LEVEL or INFO)",
    )

    parser = argparse.ArgumentParser(
        prog="bgd", description="Blue/green deployment orchestrator"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    deploy = sub.add_parser("deploy", parents=[common], help="Deploy a version to the inactive slot")
    deploy.add_argument("version", help="Version to deploy, e.g. an image tag")

    rollback = sub.add_parser("rollback", parents=[common], help="Route traffic back to the previous slot")
    rollback.add_argument(
        "--clean", action="store_true",
        help="Stop the abandoned environment after rolling back",
    )

    cutover = sub.add_parser("cutover", parents=[common], help="Route traffic to a chosen slot")
    cutover.add_argument("--target", required=True, choices=["blue", "green"])
    cutover.add_argument("--blue-weight", type=int, default=None)
    cutover.add_argument("--green-weight", type=int, default=None)

    cleanup = sub.add_parser("cleanup", parents=[common], help="Stop an environment's containers")
    cleanup.add_argument("--environment", choices=["blue", "green"], default=None,
                         help="Slot to stop (default: the inactive one)")

    sub.add_parser("status", parents=[common], help="Show active slot, versions and weights")
    return parser


def build_services(
    settings: Settings,
    args: argparse.Namespace,
    runtime: Optional[ContainerRuntime] = None,
    proxy: Optional[ReverseProxy] = None,
    prober: Optional[HealthProber] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Services:
    """Resolve configuration once and wire the collaborators around it."""
    config = DeploymentConfig.from_settings(
        settings,
        app_name=args.app_name,
        force=args.force,
        skip_health_check=args.skip_health_check,
    )

    overrides: Dict[str, Any] = dict(args.option)
    if args.db_rollback:
        overrides["DB_ROLLBACK"] = True
    dispatcher = HookDispatcher(config)
    load_plugins(settings.plugin_names, dispatcher, overrides)

    store = EnvironmentStore(config)
    lock = DeploymentLock(config, sleep=sleep)
    if runtime is None:
        runtime = DockerComposeRuntime(
            config.app_name,
            compose_file=settings.compose_file,
            image_repo=config.image_repo,
            compose_command=shlex.split(settings.compose_command),
            timeout=config.command_timeout,
        )
    if proxy is None:
        proxy = NginxProxy(
            settings.proxy_config_path,
            reload_command=settings.proxy_reload_command.format(app_name=config.app_name),
            validate_command=settings.proxy_validate_command.format(app_name=config.app_name),
            timeout=config.command_timeout,
        )
    if prober is None:
        prober = HealthProber(host=config.app_host, sleep=sleep)
    traffic = TrafficShiftEngine(
        config,
        proxy,
        renderer=ProxyConfigRenderer(settings.proxy_template_dir),
        prober=prober,
        store=store,
        options=ProxyOptions.from_settings(settings),
        sleep=sleep,
    )
    cleaner = EnvironmentCleaner(config, runtime, store, lock, dispatcher)
    return Services(
        config=config,
        dispatcher=dispatcher,
        store=store,
        lock=lock,
        prober=prober,
        traffic=traffic,
        runtime=runtime,
        cleaner=cleaner,
    )


def report(record: RunRecord, out=None) -> int:
    """Print the outcome and return the process exit code."""
    out = out or sys.stdout
    outcome = record.outcome.value if record.outcome else "unknown"
    print(f"{record.app_name}: {outcome} (phase: {record.phase})", file=out)
    if record.traffic is not None:
        print(f"  traffic: {record.traffic}", file=out)
    if record.duration_seconds is not None:
        print(f"  duration: {record.duration_seconds:.1f}s", file=out)
    if record.error:
        print(f"  failed in {record.failed_phase}: {record.error_type}: {record.error}", file=out)
    for line in record.warning_lines():
        print(f"  warning: {line}", file=out)
    return 0 if record.succeeded else 1


def show_status(services: Services, out=None) -> int:
    out = out or sys.stdout
    active, inactive = services.store.environments()
    blue, green = services.store.weights()
    print(f"{services.config.app_name}", file=out)
    for env in (active, inactive):
        print(
            f"  {env.name.value:5s} {env.role.value:8s} port={env.port} "
            f"version={env.version or '-'}",
            file=out,
        )
    print(f"  traffic: blue={blue}/green={green}", file=out)
    owner = services.lock.owner()
    if owner:
        print(
            f"  locked: {owner.get('purpose')} by pid {owner.get('pid')} since {owner.get('acquired_at')}",
            file=out,
        )
    return 0


def _configure_logging(settings: Settings, args: argparse.Namespace) -> None:
    level = (args.log_level or settings.log_level).upper()
    log_format = settings.log_format.lower()
    log_file = None
    if settings.log_to_file:
        app_name = args.app_name or settings.app_name
        log_file = str(Path(settings.state_dir) / app_name / "logs" / "bgd.log")
    configure_logging(
        LoggingConfig(
            level=LogLevel(level) if level in LogLevel.__members__ else LogLevel.INFO,
            format=LogFormat(log_format) if log_format in [f.value for f in LogFormat] else LogFormat.CONSOLE,
            log_file=log_file,
        )
    )


def main(argv: Optional[Sequence[str]] = None, settings: Optional[Settings] = None, **collaborators) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = settings or get_settings()
    _configure_logging(settings, args)

    try:
        services = build_services(settings, args, **collaborators)
        if args.command == "status":
            return show_status(services)
        if args.command == "deploy":
            record = services.pipeline().run(args.version)
        elif args.command == "rollback":
            record = services.rollback().run(clean=args.clean)
        elif args.command == "cutover":
            record = services.cutover().run(
                args.target, blue_weight=args.blue_weight, green_weight=args.green_weight
            )
        else:
            record = services.cleaner.run(args.environment)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return report(record)
