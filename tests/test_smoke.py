"""
Smoke tests to verify the test infrastructure is working correctly.

These tests verify:
- the package and its subpackages import
- asyncio support works
- the shared fixtures are wired up
"""

import asyncio

import pytest

import snapverify
from snapverify.version import __version__


class TestPackage:
    """Tests that the package is importable."""

    def test_version(self):
        """Verify the version is exported."""
        assert snapverify.__version__ == __version__
        assert __version__.count(".") == 2

    def test_subpackages_import(self):
        """Verify every subpackage imports without side effects."""
        from snapverify import cli, cluster, config, errors, notify, orchestrator

        assert cli.main is not None
        assert cluster.ClusterApi is not None
        assert config.load_config is not None
        assert issubclass(errors.VerificationMismatchError, errors.BackupVerificationError)
        assert notify.FailureNotifier is not None
        assert orchestrator.BackupVerificationOrchestrator is not None


class TestAsyncSupport:
    """Tests to verify async test support."""

    @pytest.mark.asyncio
    async def test_async_function(self):
        """Verify async test functions work."""
        await asyncio.sleep(0)
        assert True

    @pytest.mark.asyncio
    async def test_mock_notifier(self, notifier):
        """Verify the notifier fixture records awaits."""
        await notifier.notify(RuntimeError("boom"))

        notifier.notify.assert_awaited_once()


class TestFixtures:
    """Tests to verify the shared fixtures."""

    def test_config(self, config):
        """Verify the default test configuration."""
        assert config.node_name == "es-node-1"
        assert config.probe.test_size == 3
        assert not config.is_production

    def test_run_context(self, run_context):
        """Verify the fixed run context names."""
        assert run_context.repository == "03-2024"
        assert run_context.snapshot == "03-15_1200"

    @pytest.mark.asyncio
    async def test_clock(self, clock):
        """Verify the virtual clock advances on sleep."""
        start = clock()
        await clock.sleep(5)

        assert clock() == start + 5
        assert clock.sleeps == [5]

    @pytest.mark.asyncio
    async def test_fake_cluster(self, api, fake_cluster):
        """Verify the API is routed to the fake cluster."""
        assert await api.master_node() == "es-node-1"
        assert fake_cluster.requests == [("GET", "/_cat/master")]
