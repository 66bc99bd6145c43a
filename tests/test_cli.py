"""Tests for the command line interface."""

import asyncio
import logging
from datetime import datetime, timezone

import pytest
import yaml
from click.testing import CliRunner

from snapverify import cli
from snapverify.cli import (
    EXIT_CONFIG_ERROR,
    EXIT_FAILURE,
    EXIT_INTERRUPTED,
    EXIT_OK,
    configure_logging,
    main,
)
from snapverify.config.models import LoggingConfig, LogLevel
from snapverify.errors import VerificationMismatchError
from snapverify.orchestrator import RunContext, RunOutcome, RunReport
from snapverify.orchestrator.snapshot import SnapshotSummary
from snapverify.version import __version__


@pytest.fixture(autouse=True)
def restore_package_logger():
    """Undo configure_logging so later tests still see records in caplog."""
    package_logger = logging.getLogger("snapverify")
    yield
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "snapverify.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "node_name": "es-node-1",
                "cluster_name": "logs",
                "environment": "staging",
                "cluster": {"url": "http://es.test:9200"},
                "repository": {"bucket": "backups.example.com"},
                "notifications": {"pagerduty_api_key": "pd-secret-key"},
            }
        )
    )
    return path


def verified_report():
    context = RunContext.create(datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc))
    return RunReport(
        context=context,
        outcome=RunOutcome.VERIFIED,
        repository_created=True,
        snapshot=SnapshotSummary(
            repository=context.repository,
            snapshot=context.snapshot,
            state="SUCCESS",
            shards_total=5,
            shards_successful=5,
            duration_ms=1500,
        ),
        documents_verified=100,
        pruned_repositories=["11-2023"],
        finished_at=context.started_at,
    )


class TestMain:
    """Tests for the command group."""

    def test_version(self, runner):
        """Test --version prints the package version."""
        result = runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner):
        """Test every command is registered."""
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        for command in ("run", "prune", "validate-config"):
            assert command in result.output


class TestValidateConfig:
    """Tests for validate-config."""

    def test_valid_config(self, runner, config_file):
        """Test a valid file is displayed with secrets masked."""
        result = runner.invoke(main, ["validate-config", "--config", str(config_file)])

        assert result.exit_code == EXIT_OK
        assert "backups.example.com" in result.output
        assert "pd-secret-key" not in result.output
        assert "Configuration is valid" in result.output

    def test_invalid_config(self, runner, tmp_path):
        """Test validation errors exit with the config error code."""
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"node_name": "es-node-1"}))

        result = runner.invoke(main, ["validate-config", "--config", str(path)])

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "Configuration error" in result.output


class TestRunCommand:
    """Tests for run and prune."""

    def test_verified_run(self, runner, config_file, monkeypatch):
        """Test a verified run exits 0 and prints a summary."""
        calls = []

        async def fake_execute(config, command, retention_months=None):
            calls.append((config.node_name, command, retention_months))
            return verified_report()

        monkeypatch.setattr(cli, "_execute", fake_execute)

        result = runner.invoke(main, ["run", "--config", str(config_file)])

        assert result.exit_code == EXIT_OK
        assert calls == [("es-node-1", "run", None)]
        assert "Backup Verified" in result.output
        assert "11-2023" in result.output

    def test_not_master(self, runner, config_file, monkeypatch):
        """Test a non-master node exits 0."""

        async def fake_execute(config, command, retention_months=None):
            return RunReport(context=RunContext.create(), outcome=RunOutcome.NOT_MASTER)

        monkeypatch.setattr(cli, "_execute", fake_execute)

        result = runner.invoke(main, ["run", "--config", str(config_file)])

        assert result.exit_code == EXIT_OK
        assert "Not the elected master" in result.output

    def test_failure_exit_code(self, runner, config_file, monkeypatch):
        """Test a failed run exits 1."""

        async def fake_execute(config, command, retention_months=None):
            raise VerificationMismatchError(3, "a", "b")

        monkeypatch.setattr(cli, "_execute", fake_execute)

        result = runner.invoke(main, ["run", "--config", str(config_file)])

        assert result.exit_code == EXIT_FAILURE
        assert "Item 3 in test restore doesn't match" in result.output

    def test_interrupted_exit_code(self, runner, config_file, monkeypatch):
        """Test cancellation exits 130."""

        async def fake_execute(config, command, retention_months=None):
            raise asyncio.CancelledError()

        monkeypatch.setattr(cli, "_execute", fake_execute)

        result = runner.invoke(main, ["run", "--config", str(config_file)])

        assert result.exit_code == EXIT_INTERRUPTED

    def test_missing_config(self, runner, tmp_path, monkeypatch):
        """Test no discoverable config exits with the config error code."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("SNAPVERIFY_CONFIG", raising=False)
        monkeypatch.setattr("snapverify.config.loader.DEFAULT_CONFIG_PATHS", ["nope.yaml"])

        result = runner.invoke(main, ["run"])

        assert result.exit_code == EXIT_CONFIG_ERROR

    def test_prune_months_override(self, runner, config_file, monkeypatch):
        """Test prune passes the --months override through."""
        calls = []

        async def fake_execute(config, command, retention_months=None):
            calls.append((command, retention_months))
            return RunReport(
                context=RunContext.create(),
                outcome=RunOutcome.PRUNED,
                pruned_repositories=["01-2024"],
            )

        monkeypatch.setattr(cli, "_execute", fake_execute)

        result = runner.invoke(main, ["prune", "--config", str(config_file), "--months", "1"])

        assert result.exit_code == EXIT_OK
        assert calls == [("prune", 1)]
        assert "01-2024" in result.output

    def test_prune_rejects_zero_months(self, runner, config_file):
        """Test --months must be at least 1."""
        result = runner.invoke(main, ["prune", "--config", str(config_file), "--months", "0"])

        assert result.exit_code != EXIT_OK


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_level_and_format(self):
        """Test the configured level and format are applied."""
        package_logger = configure_logging(LoggingConfig(level=LogLevel.WARNING))

        assert package_logger.level == logging.WARNING
        assert len(package_logger.handlers) == 1
        assert "[snapverify]" in package_logger.handlers[0].formatter._fmt

    def test_verbose_forces_debug(self):
        """Test --verbose overrides the configured level."""
        package_logger = configure_logging(LoggingConfig(level=LogLevel.ERROR), verbose=True)

        assert package_logger.level == logging.DEBUG

    def test_file_handler(self, tmp_path):
        """Test records are also written to the configured file."""
        log_file = tmp_path / "s3_backup.log"
        package_logger = configure_logging(LoggingConfig(file=str(log_file)))

        logging.getLogger("snapverify.test").info("hello from the test")
        for handler in package_logger.handlers:
            handler.flush()

        assert "[snapverify] INFO: hello from the test" in log_file.read_text()

    def test_reconfigure_does_not_duplicate_handlers(self):
        """Test calling twice replaces the handlers."""
        configure_logging(LoggingConfig())
        package_logger = configure_logging(LoggingConfig())

        assert len(package_logger.handlers) == 1
