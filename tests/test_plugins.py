"""Tests for the built-in plugins and plugin loading."""

import json
import subprocess

import httpx
import pytest

from bluegreen.errors import HookFailed
from bluegreen.hooks import HookDispatcher, HookName
from bluegreen.plugins import (
    BUILTIN_PLUGINS,
    AuditLoggingPlugin,
    DbMigrationsPlugin,
    NotificationsPlugin,
    load_plugins,
    resolve_plugin,
)

from conftest import make_config


class TestAuditLoggingPlugin:
    def setup_method(self):
        self.plugin = AuditLoggingPlugin()

    def _dispatcher(self, tmp_path, overrides=None):
        dispatcher = HookDispatcher(make_config(tmp_path), app_name="shop")
        dispatcher.register_plugin(self.plugin, overrides)
        return dispatcher

    def _events(self, path):
        return [json.loads(line) for line in path.read_text().splitlines()]

    def test_writes_json_lines_under_app_dir(self, tmp_path):
        dispatcher = self._dispatcher(tmp_path)
        dispatcher.dispatch(HookName.PRE_DEPLOY, version="v2", app_name="shop", target_env="green")
        dispatcher.dispatch(
            HookName.POST_TRAFFIC_SHIFT, version="v2", target_env="green", weight_blue=50, weight_green=50
        )
        path = tmp_path / "state" / "shop" / "audit.log"
        events = self._events(path)
        assert [e["event"] for e in events] == ["deployment_started", "traffic_shifted"]
        assert events[0]["app"] == "shop"
        assert events[0]["version"] == "v2"
        assert events[0]["severity"] == "info"
        assert events[1]["details"] == {"target_env": "green", "blue": 50, "green": 50}
        assert events[0]["timestamp"].endswith("Z")

    def test_error_event_named_after_operation(self, tmp_path):
        dispatcher = self._dispatcher(tmp_path)
        dispatcher.dispatch(
            HookName.ERROR, version="v1", phase="health_gate", error="boom",
            error_type="RollbackTargetUnhealthy", operation="rollback",
        )
        event = self._events(tmp_path / "state" / "shop" / "audit.log")[0]
        assert event["event"] == "rollback_failed"
        assert event["severity"] == "error"
        assert event["details"] == {"phase": "health_gate", "error": "boom"}

    def test_level_filters_events(self, tmp_path):
        log = tmp_path / "custom" / "audit.jsonl"
        dispatcher = self._dispatcher(
            tmp_path, {"plugin.audit_logging.AUDIT_LOG_LEVEL": "warning", "AUDIT_LOG_FILE": str(log)}
        )
        dispatcher.dispatch(HookName.POST_DEPLOY, version="v2", env_name="green")
        dispatcher.dispatch(HookName.POST_ROLLBACK, version="v1", env_name="blue")
        assert [e["event"] for e in self._events(log)] == ["rollback_completed"]

    def test_missing_version_is_unknown(self, tmp_path):
        dispatcher = self._dispatcher(tmp_path)
        dispatcher.dispatch(HookName.POST_CUTOVER, target_env="green")
        event = self._events(tmp_path / "state" / "shop" / "audit.log")[0]
        assert event["version"] == "unknown"


class TestNotificationsPlugin:
    def setup_method(self):
        self.requests = []
        self.status = 200

        def handler(request):
            self.requests.append(request)
            return httpx.Response(self.status)

        self.plugin = NotificationsPlugin(client=httpx.Client(transport=httpx.MockTransport(handler)))

    def _dispatcher(self, tmp_path, **options):
        overrides = {"NOTIFY_ENABLED": "true", "NOTIFY_WEBHOOK_URL": "https://hooks.example.com/x"}
        overrides.update(options)
        dispatcher = HookDispatcher(make_config(tmp_path))
        dispatcher.register_plugin(self.plugin, overrides)
        return dispatcher

    def test_disabled_by_default(self, tmp_path):
        dispatcher = HookDispatcher(make_config(tmp_path))
        dispatcher.register_plugin(self.plugin)
        report = dispatcher.dispatch(HookName.POST_DEPLOY, version="v2", env_name="green")
        assert report.ok
        assert self.requests == []

    def test_posts_deploy_message(self, tmp_path):
        report = self._dispatcher(tmp_path).dispatch(HookName.POST_DEPLOY, version="v2", env_name="green")
        assert report.ok
        body = json.loads(self.requests[0].content)
        assert body["event"] == "deploy"
        assert body["status"] == "success"
        assert body["version"] == "v2"
        assert body["environment"] == "green"
        assert str(self.requests[0].url) == "https://hooks.example.com/x"

    def test_event_selection(self, tmp_path):
        dispatcher = self._dispatcher(tmp_path, NOTIFY_EVENTS="error")
        dispatcher.dispatch(HookName.POST_DEPLOY, version="v2", env_name="green")
        dispatcher.dispatch(HookName.ERROR, version="v2", phase="cutover", error="x", operation="deploy")
        assert len(self.requests) == 1
        assert json.loads(self.requests[0].content)["phase"] == "cutover"

    def test_http_error_is_an_observational_failure(self, tmp_path):
        self.status = 500
        report = self._dispatcher(tmp_path).dispatch(HookName.POST_ROLLBACK, version="v1", env_name="blue")
        assert not report.ok
        assert report.failures[0].plugin_id == "notifications"

    def test_missing_url_fails(self, tmp_path):
        report = self._dispatcher(tmp_path, NOTIFY_WEBHOOK_URL="").dispatch(
            HookName.POST_DEPLOY, version="v2", env_name="green"
        )
        assert not report.ok
        assert self.requests == []


class FakeRunner:
    def __init__(self, fail=()):
        self.fail = set(fail)
        self.calls = []

    def __call__(self, args, **kwargs):
        self.calls.append((args, kwargs))
        code = 1 if args[0] in self.fail else 0
        return subprocess.CompletedProcess(args, code, stdout="", stderr="")


class TestDbMigrationsPlugin:
    def _dispatcher(self, tmp_path, runner, **options):
        dispatcher = HookDispatcher(make_config(tmp_path, command_timeout=42.0))
        dispatcher.register_plugin(DbMigrationsPlugin(runner=runner), options)
        return dispatcher

    def test_backup_then_migrate(self, tmp_path):
        runner = FakeRunner()
        dispatcher = self._dispatcher(
            tmp_path, runner, DB_BACKUP_CMD="backup.sh --full", MIGRATIONS_CMD="migrate up"
        )
        dispatcher.dispatch(HookName.PRE_DEPLOY, version="v2", app_name="shop", target_env="green")
        assert [c[0] for c in runner.calls] == [["backup.sh", "--full"], ["migrate", "up"]]
        kwargs = runner.calls[1][1]
        assert kwargs["env"]["BGD_VERSION"] == "v2"
        assert kwargs["env"]["BGD_TARGET_ENV"] == "green"
        assert kwargs["env"]["BGD_APP_NAME"] == "shop"
        assert kwargs["timeout"] == 42.0

    def test_failed_migration_gates_deploy(self, tmp_path):
        runner = FakeRunner(fail={"migrate"})
        dispatcher = self._dispatcher(tmp_path, runner, MIGRATIONS_CMD="migrate up")
        with pytest.raises(HookFailed) as excinfo:
            dispatcher.dispatch(HookName.PRE_DEPLOY, version="v2")
        assert excinfo.value.plugin_id == "db_migrations"

    def test_skip_migrations(self, tmp_path):
        runner = FakeRunner()
        dispatcher = self._dispatcher(tmp_path, runner, MIGRATIONS_CMD="migrate up", SKIP_MIGRATIONS="1")
        dispatcher.dispatch(HookName.PRE_DEPLOY, version="v2")
        assert runner.calls == []

    def test_rollback_restore_only_when_requested(self, tmp_path):
        runner = FakeRunner()
        self._dispatcher(tmp_path, runner, DB_RESTORE_CMD="restore.sh").dispatch(HookName.PRE_ROLLBACK)
        assert runner.calls == []

        runner = FakeRunner()
        self._dispatcher(tmp_path, runner, DB_ROLLBACK="true", DB_RESTORE_CMD="restore.sh").dispatch(
            HookName.PRE_ROLLBACK, version="v1"
        )
        assert [c[0] for c in runner.calls] == [["restore.sh"]]

    def test_rollback_without_restore_command_fails(self, tmp_path):
        dispatcher = self._dispatcher(tmp_path, FakeRunner(), DB_ROLLBACK="true")
        with pytest.raises(HookFailed):
            dispatcher.dispatch(HookName.PRE_ROLLBACK)


class TestPluginLoading:
    def test_builtins(self):
        assert set(BUILTIN_PLUGINS) == {"audit_logging", "notifications", "db_migrations"}
        assert resolve_plugin("audit_logging") is AuditLoggingPlugin

    def test_dotted_name(self):
        assert resolve_plugin("bluegreen.plugins.notifications:NotificationsPlugin") is NotificationsPlugin

    def test_unknown_plugin(self):
        with pytest.raises(ValueError):
            resolve_plugin("ssl")
        with pytest.raises(ValueError):
            resolve_plugin("bluegreen.plugins:Missing")
        with pytest.raises(ValueError):
            resolve_plugin("bluegreen.plugins:load_plugins")

    def test_load_in_order(self, tmp_path):
        dispatcher = HookDispatcher(make_config(tmp_path))
        loaded = load_plugins(["db_migrations", "audit_logging"], dispatcher)
        assert [p.plugin_id for p in loaded] == ["db_migrations", "audit_logging"]
        pre_deploy = [r.plugin_id for r in dispatcher.registrations(HookName.PRE_DEPLOY)]
        assert pre_deploy == ["db_migrations", "audit_logging"]

    def test_override_for_unloaded_plugin_rejected(self, tmp_path):
        dispatcher = HookDispatcher(make_config(tmp_path))
        with pytest.raises(ValueError):
            load_plugins(["audit_logging"], dispatcher, {"plugin.notifications.NOTIFY_ENABLED": "1"})
