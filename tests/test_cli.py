"""
Tests for the command-line interface.
"""

import argparse
import json
import os
import signal
import threading
from unittest.mock import Mock, patch

import pytest
import yaml

from promql_poller import cli
from promql_poller.config.models import LoggingConfig
from promql_poller.utils.structured_logging import logging_manager

from conftest import FakeQueryExecutor, unused_port


class FakeExecutorFactory:
    """Replaces the QueryExecutor class; yields a shared fake executor."""

    def __init__(self, executor):
        self.executor = executor
        self.http_config = None
        self.active_at_exit = None

    def __call__(self, http_config=None):
        self.http_config = http_config
        return self

    async def __aenter__(self):
        return self.executor

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.active_at_exit = self.executor.active
        return False


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logging_manager.shutdown()


@pytest.fixture
def config_file(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.dump({
        'queries': {
            'up': {'server': 'http://localhost:9090', 'promql': 'up', 'interval': '100ms'},
            'cpu': {'server': 'http://localhost:9090', 'promql': 'node_cpu', 'interval': '100ms'},
        },
        'http': {'timeout': 5},
        'scheduler': {'shutdown_timeout': 1},
    }))
    return str(config_path)


def stdout_records(capsys):
    out = capsys.readouterr().out
    return [json.loads(line) for line in out.splitlines() if line]


class TestParser:

    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 1
        assert "usage: promql-poller" in capsys.readouterr().out

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--version"])
        assert exc_info.value.code == 0
        assert "promql-poller" in capsys.readouterr().out

    def test_query_arguments(self):
        args = cli.build_parser().parse_args(
            ["-c", "other.yaml", "query", "--name", "adhoc", "-P", "http://prom:9090", "up"]
        )
        assert args.config == "other.yaml"
        assert args.name == "adhoc"
        assert args.plain is True
        assert args.server == "http://prom:9090"
        assert args.query == "up"


class TestInitAndValidate:

    def test_init_writes_example(self, tmp_path, capsys):
        config_path = tmp_path / "config.yaml"

        assert cli.main(["--config", str(config_path), "init"]) == 0
        assert config_path.exists()
        assert "✓" in capsys.readouterr().out

        assert cli.main(["--config", str(config_path), "init"]) == 1
        assert "already exists" in capsys.readouterr().err

        assert cli.main(["--config", str(config_path), "init", "--force"]) == 0

    def test_validate_valid(self, config_file, capsys):
        assert cli.main(["--config", config_file, "validate"]) == 0

        out = capsys.readouterr().out
        assert "✓ Configuration is valid" in out
        assert "up: every 0:00:00.100000 on http://localhost:9090" in out
        assert "node_cpu" in out

    def test_validate_invalid(self, tmp_path, capsys):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("queries:\n  up:\n    server: localhost\n    promql: up\n")

        assert cli.main(["--config", str(config_path), "validate"]) == 1
        assert "✗ Configuration validation failed" in capsys.readouterr().out

    def test_validate_missing_file(self, tmp_path, capsys):
        assert cli.main(["--config", str(tmp_path / "missing.yaml"), "validate"]) == 1
        assert "not found" in capsys.readouterr().err


class TestRunAndQuery:

    def test_run_prints_every_query(self, config_file, capsys):
        factory = FakeExecutorFactory(FakeQueryExecutor())

        with patch("promql_poller.cli.QueryExecutor", factory):
            assert cli.main(["-q", "--config", config_file, "run"]) == 0

        records = stdout_records(capsys)
        assert sorted(record["name"] for record in records) == ["cpu", "up"]
        assert factory.http_config.timeout == 5

    def test_run_fails_on_unreachable_server(self, tmp_path, capsys):
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.dump({'queries': {'up': {
            'server': f'http://127.0.0.1:{unused_port()}', 'promql': 'up', 'interval': '1s',
        }}}))

        assert cli.main(["-q", "--config", str(config_path), "run"]) == 1

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "Error: Get " in captured.err

    def test_run_missing_config(self, tmp_path, capsys):
        assert cli.main(["--config", str(tmp_path / "missing.yaml"), "run"]) == 1
        assert "Configuration file not found" in capsys.readouterr().err

    def test_query(self, capsys):
        factory = FakeExecutorFactory(FakeQueryExecutor())

        with patch("promql_poller.cli.QueryExecutor", factory):
            code = cli.main(["-q", "query", "--name", "adhoc", "http://localhost:9090", "up"])

        assert code == 0
        records = stdout_records(capsys)
        assert len(records) == 1
        assert records[0]["name"] == "adhoc"

    def test_query_rejects_bad_server(self, capsys):
        assert cli.main(["-q", "query", "localhost:9090", "up"]) == 1
        assert "http://" in capsys.readouterr().err


class TestStart:

    def test_start_polls_until_sigterm(self, config_file, capsys):
        """Test that start polls every query and exits cleanly on SIGTERM."""
        executor = FakeQueryExecutor()
        timer = threading.Timer(0.35, os.kill, args=(os.getpid(), signal.SIGTERM))

        with patch("promql_poller.cli.QueryExecutor", FakeExecutorFactory(executor)):
            timer.start()
            try:
                code = cli.main(["--config", config_file, "start"])
            finally:
                timer.cancel()

        assert code == 0
        records = stdout_records(capsys)
        up = [record for record in records if record["name"] == "up"]
        cpu = [record for record in records if record["name"] == "cpu"]
        assert len(up) >= 3
        assert len(cpu) >= 3

    def test_start_without_drain_cancels_slow_queries(self, tmp_path, capsys):
        """Test that queries still running at shutdown are cancelled before the session closes."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.dump({
            'queries': {
                'up': {'server': 'http://localhost:9090', 'promql': 'up', 'interval': '10s'},
                'cpu': {'server': 'http://localhost:9090', 'promql': 'node_cpu', 'interval': '10s'},
            },
            'scheduler': {'shutdown_timeout': 0},
        }))
        factory = FakeExecutorFactory(FakeQueryExecutor(delay=5))
        timer = threading.Timer(0.2, os.kill, args=(os.getpid(), signal.SIGTERM))

        with patch("promql_poller.cli.QueryExecutor", factory):
            timer.start()
            try:
                code = cli.main(["--config", str(config_path), "start"])
            finally:
                timer.cancel()

        assert code == 0
        assert factory.active_at_exit == 0
        assert stdout_records(capsys) == []


class TestExitCodes:

    def test_keyboard_interrupt(self, config_file, capsys):
        with patch("promql_poller.cli.validate_command", Mock(side_effect=KeyboardInterrupt)):
            assert cli.main(["--config", config_file, "validate"]) == 130
        assert "cancelled" in capsys.readouterr().err

    def test_error_message(self, config_file, capsys):
        with patch.dict(os.environ, {}, clear=False), \
                patch("promql_poller.cli.validate_command", Mock(side_effect=RuntimeError("boom"))):
            os.environ.pop("DEBUG", None)
            assert cli.main(["--config", config_file, "validate"]) == 1

        err = capsys.readouterr().err
        assert "Error: boom" in err
        assert "Traceback" not in err

    @pytest.mark.parametrize("argv, env", [
        (["--debug"], {}),
        ([], {"DEBUG": "true"}),
    ])
    def test_debug_prints_traceback(self, config_file, capsys, argv, env):
        """Test that the flag and the DEBUG environment variable both show tracebacks."""
        with patch.dict(os.environ, env), \
                patch("promql_poller.cli.validate_command", Mock(side_effect=RuntimeError("boom"))):
            if "DEBUG" not in env:
                os.environ.pop("DEBUG", None)
            assert cli.main(argv + ["--config", config_file, "validate"]) == 1

        err = capsys.readouterr().err
        assert "Traceback" in err
        assert "RuntimeError: boom" in err


class TestLoggingLevel:

    @pytest.mark.parametrize("quiet, debug, env, expected", [
        (False, False, {}, "WARNING"),
        (True, True, {}, "ERROR"),
        (False, True, {}, "DEBUG"),
        (False, False, {"DEBUG": "1"}, "DEBUG"),
    ])
    def test_level_resolution(self, quiet, debug, env, expected):
        args = argparse.Namespace(quiet=quiet, debug=debug)

        with patch.dict(os.environ, env), \
                patch.object(logging_manager, "setup_logging") as setup_logging:
            if "DEBUG" not in env:
                os.environ.pop("DEBUG", None)
            cli._setup_logging(args, LoggingConfig(level="WARNING"))

        assert setup_logging.call_args.kwargs["log_level"] == expected
