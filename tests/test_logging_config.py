"""Tests for structured logging and deployment-scoped log context."""

import json
import logging
import sys

from bluegreen.logging_config.config import LogFormat, LoggingConfig, LogLevel
from bluegreen.logging_config.context import (
    DeploymentContext,
    bind_phase,
    generate_deployment_id,
    get_context_dict,
)
from bluegreen.logging_config.setup import (
    ConsoleFormatter,
    StructuredFormatter,
    configure_logging,
    get_logger,
)


def _record(msg="test", level=logging.INFO, name="test", lineno=1, exc_info=None):
    return logging.LogRecord(
        name=name, level=level, pathname="test.py",
        lineno=lineno, msg=msg, args=(), exc_info=exc_info,
    )


class TestLoggingConfig:
    """Tests for logging configuration dataclasses."""

    def test_default_config_values(self):
        config = LoggingConfig()
        assert config.level == LogLevel.INFO
        assert config.format == LogFormat.CONSOLE
        assert config.include_caller is False
        assert config.log_file is None
        assert config.service_name == "bluegreen"

    def test_log_format_enum_values(self):
        assert LogFormat.JSON.value == "json"
        assert LogFormat.CONSOLE.value == "console"


class TestDeploymentContext:
    """Tests for run-scoped context variables."""

    def test_generate_deployment_id_unique(self):
        ids = {generate_deployment_id() for _ in range(50)}
        assert len(ids) == 50
        assert all(len(i) == 12 for i in ids)

    def test_context_binds_fields(self):
        with DeploymentContext(app_name="shop", version="v2", deployment_id="abc"):
            ctx = get_context_dict()
            assert ctx == {"deployment_id": "abc", "app": "shop", "version": "v2"}

    def test_auto_generates_deployment_id(self):
        with DeploymentContext(app_name="shop") as ctx:
            assert ctx.deployment_id
            assert get_context_dict()["deployment_id"] == ctx.deployment_id

    def test_bind_phase(self):
        with DeploymentContext(app_name="shop"):
            bind_phase("health_gate")
            assert get_context_dict()["phase"] == "health_gate"
            bind_phase("traffic_shift")
            assert get_context_dict()["phase"] == "traffic_shift"

    def test_context_cleanup_on_exit(self):
        with DeploymentContext(app_name="shop", version="v2"):
            bind_phase("cutover")
        assert get_context_dict() == {}

    def test_nested_contexts(self):
        with DeploymentContext(app_name="outer", deployment_id="one"):
            with DeploymentContext(app_name="inner", deployment_id="two"):
                assert get_context_dict()["app"] == "inner"
            assert get_context_dict()["deployment_id"] == "one"

    def test_elapsed_ms(self):
        ctx = DeploymentContext()
        assert ctx.elapsed_ms >= 0


class TestStructuredFormatter:
    """Tests for JSON structured log formatting."""

    def test_formats_as_json(self):
        parsed = json.loads(StructuredFormatter().format(_record("hello world")))
        assert parsed["message"] == "hello world"
        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "test"
        assert "timestamp" in parsed
        assert parsed["service"] == "bluegreen"

    def test_includes_caller_info(self):
        formatter = StructuredFormatter(include_caller=True)
        parsed = json.loads(formatter.format(_record(lineno=42)))
        assert parsed["line"] == 42
        assert "function" in parsed

    def test_excludes_caller_when_disabled(self):
        parsed = json.loads(StructuredFormatter().format(_record(lineno=42)))
        assert "line" not in parsed

    def test_includes_deployment_context(self):
        formatter = StructuredFormatter()
        with DeploymentContext(app_name="shop", version="v2", deployment_id="ctx-test"):
            bind_phase("cutover")
            parsed = json.loads(formatter.format(_record()))
        assert parsed["deployment_id"] == "ctx-test"
        assert parsed["app"] == "shop"
        assert parsed["phase"] == "cutover"

    def test_formats_exception(self):
        formatter = StructuredFormatter()
        try:
            raise ValueError("test error")
        except ValueError:
            parsed = json.loads(
                formatter.format(_record("failed", logging.ERROR, exc_info=sys.exc_info()))
            )
        assert parsed["exception"]["type"] == "ValueError"
        assert "test error" in parsed["exception"]["message"]


class TestConsoleFormatter:
    """Tests for console log formatting."""

    def test_formats_readable_output(self):
        output = ConsoleFormatter().format(_record("hello", name="bluegreen.deployment"))
        assert "bluegreen.deployment" in output
        assert "hello" in output

    def test_includes_context_info(self):
        with DeploymentContext(app_name="shop", deployment_id="abc"):
            output = ConsoleFormatter(use_color=False).format(_record())
        assert "deployment_id=abc" in output
        assert "app=shop" in output

    def test_color_codes(self):
        record = _record("error", logging.ERROR)
        assert "\033[31m" in ConsoleFormatter().format(record)
        assert "\033[" not in ConsoleFormatter(use_color=False).format(record)


class TestConfigureLogging:
    """Tests for the configure_logging setup function."""

    def setup_method(self):
        self.root = logging.getLogger()
        self.saved = (list(self.root.handlers), self.root.level)

    def teardown_method(self):
        for handler in self.root.handlers:
            if handler not in self.saved[0]:
                handler.close()
        self.root.handlers[:] = self.saved[0]
        self.root.setLevel(self.saved[1])

    def test_json_format(self):
        configure_logging(LoggingConfig(format=LogFormat.JSON))
        assert len(self.root.handlers) == 1
        assert isinstance(self.root.handlers[0].formatter, StructuredFormatter)

    def test_console_format(self):
        configure_logging(LoggingConfig(format=LogFormat.CONSOLE))
        assert isinstance(self.root.handlers[0].formatter, ConsoleFormatter)

    def test_sets_log_level(self):
        configure_logging(LoggingConfig(level=LogLevel.DEBUG))
        assert self.root.level == logging.DEBUG

    def test_log_file(self, tmp_path):
        path = tmp_path / "logs" / "bgd.log"
        configure_logging(LoggingConfig(log_file=str(path)))
        assert len(self.root.handlers) == 2
        get_logger("bluegreen.test").warning("written to file")
        for handler in self.root.handlers:
            handler.flush()
        assert "written to file" in path.read_text()

    def test_quiets_noisy_loggers(self):
        configure_logging()
        assert logging.getLogger("httpx").level >= logging.WARNING

    def test_env_var_override_level(self, monkeypatch):
        monkeypatch.setenv("BGD_LOG_LEVEL", "debug")
        configure_logging(LoggingConfig(level=LogLevel.ERROR))
        assert self.root.level == logging.DEBUG

    def test_env_var_override_format(self, monkeypatch):
        monkeypatch.setenv("BGD_LOG_FORMAT", "JSON")
        configure_logging(LoggingConfig(format=LogFormat.CONSOLE))
        assert isinstance(self.root.handlers[0].formatter, StructuredFormatter)

    def test_get_logger_returns_logger(self):
        logger = get_logger("bluegreen.cli")
        assert logger.name == "bluegreen.cli"
