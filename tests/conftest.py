"""
Snapverify Test Configuration and Fixtures

This module provides pytest fixtures for testing snapshot backup verification.
All fixtures are designed to avoid real network calls and real sleeping.

Fixture Categories:
- Configuration: Validated SnapverifyConfig with short deadlines
- Time: FakeClock whose sleep advances a virtual monotonic clock
- Fake cluster: respx-backed in-memory cluster speaking the REST endpoints
  used by the pipeline
- Components: ClusterApi wired to the fake cluster, mock notifier
"""

import copy
import fnmatch
import json
from collections.abc import AsyncIterator, Iterator
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
import respx

from snapverify.cluster import ClusterApi, ClusterGateway, RetryingCaller
from snapverify.config import SnapverifyConfig
from snapverify.orchestrator import RunContext

CLUSTER_URL = "http://es.test:9200"
NODE_NAME = "es-node-1"

# 2024-03-15T12:00:00Z
RUN_STARTED_AT = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Configuration Fixtures
# =============================================================================


def make_config(**overrides: Any) -> SnapverifyConfig:
    """Build a test configuration; keyword arguments replace top-level keys."""
    data: dict[str, Any] = {
        "node_name": NODE_NAME,
        "cluster_name": "logs",
        "environment": "test",
        "cluster": {"url": CLUSTER_URL, "http_timeout_seconds": 5},
        "repository": {"bucket": "backups.example.com"},
        "probe": {"test_size": 3},
        "timeouts": {
            "backup_timeout_seconds": 60,
            "snapshot_poll_interval_seconds": 1,
            "snapshot_settle_seconds": 0,
            "index_online_timeout_seconds": 30,
            "index_poll_interval_seconds": 1,
            "document_visibility_timeout_seconds": 10,
        },
    }
    data.update(overrides)
    return SnapverifyConfig(**data)


@pytest.fixture
def config() -> SnapverifyConfig:
    """Validated configuration pointing at the fake cluster."""
    return make_config()


@pytest.fixture
def config_factory():
    """Factory building configurations with top-level overrides."""
    return make_config


@pytest.fixture
def run_context() -> RunContext:
    """Run context for 2024-03-15T12:00Z."""
    return RunContext.create(RUN_STARTED_AT)


# =============================================================================
# Time Fixtures
# =============================================================================


class FakeClock:
    """Virtual monotonic clock; ``sleep`` advances it instead of waiting.

    Attributes:
        now: Current virtual time in seconds
        sleeps: Every duration passed to sleep
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Fresh virtual clock."""
    return FakeClock()


# =============================================================================
# Fake Cluster
# =============================================================================


class FakeCluster:
    """In-memory cluster speaking the subset of the REST API snapverify uses.

    Indices are dicts of doc id -> source. Snapshots capture a copy of
    every index at creation time; restore copies one of them back under
    a new name.

    Attributes:
        master: Node name reported by _cat/master
        settings: Body of _cluster/settings
        indices: Index name -> {doc_id: source}
        repositories: Repository name -> registration body
        snapshots: (repository, snapshot) -> captured indices
        status_states: States returned by successive _status calls (last repeats)
        snapshot_failed_shards: Failed shard count in snapshot info
        restore_overrides: Doc id -> value written into restored copies
        restore_failed_shards: Failed shard count in the restore response
        shard_state: State reported by _cat/shards
        failing_repository_deletes: Repositories whose DELETE returns 500
        forced_statuses: Path -> status returned instead of the normal reply
        requests: (method, path) of every request received
    """

    def __init__(self, master: str = NODE_NAME) -> None:
        self.master = master
        self.settings: dict[str, Any] = {"persistent": {}, "transient": {}}
        self.indices: dict[str, dict[str, dict[str, Any]]] = {}
        self.repositories: dict[str, dict[str, Any]] = {}
        self.snapshots: dict[tuple[str, str], dict[str, dict[str, Any]]] = {}
        self.status_states: list[str] = ["IN_PROGRESS", "SUCCESS"]
        self.snapshot_failed_shards = 0
        self.restore_overrides: dict[int, str] = {}
        self.restore_failed_shards = 0
        self.shard_state = "STARTED"
        self.failing_repository_deletes: set[str] = set()
        self.forced_statuses: dict[str, int] = {}
        self.requests: list[tuple[str, str]] = []

    # -- helpers used by tests -------------------------------------------

    def add_repository(self, name: str) -> None:
        self.repositories[name] = {"type": "s3", "settings": {}}

    def calls(self, method: str, path_prefix: str = "") -> list[str]:
        """Paths of recorded requests with this method and prefix."""
        return [
            path
            for recorded_method, path in self.requests
            if recorded_method == method and path.startswith(path_prefix)
        ]

    # -- routing ----------------------------------------------------------

    def install(self, router: respx.MockRouter) -> None:
        """Register every route on a respx router."""
        routes = [
            (r"^/_cat/master$", self._cat_master),
            (r"^/_cluster/settings$", self._cluster_settings),
            (r"^/_cat/indices/(?P<pattern>[^/]+)$", self._cat_indices),
            (r"^/_cat/shards/(?P<index>[^/]+)$", self._cat_shards),
            (r"^/_snapshot/(?P<repo>[^/]+)/(?P<snap>[^/]+)/_status$", self._snapshot_status),
            (r"^/_snapshot/(?P<repo>[^/]+)/(?P<snap>[^/]+)/_restore$", self._restore),
            (r"^/_snapshot/(?P<repo>[^/]+)/(?P<snap>[^/]+)$", self._snapshot),
            (r"^/_snapshot/(?P<repo>[^/]+)$", self._repository),
            (r"^/_snapshot$", self._list_repositories),
            (r"^/(?P<index>[^/]+)/_recovery$", self._recovery),
            (r"^/(?P<index>[^/]+)/_refresh$", self._refresh),
            (r"^/(?P<index>[^/]+)/_doc/(?P<doc_id>\d+)$", self._document),
            (r"^/(?P<index>[^/_][^/]*)$", self._index),
        ]
        for pattern, handler in routes:
            router.route(path__regex=pattern).mock(side_effect=self._recorded(handler))

    def _recorded(self, handler):
        def side_effect(request: httpx.Request, **kwargs: str) -> httpx.Response:
            self.requests.append((request.method, request.url.path))
            forced = self.forced_statuses.get(request.url.path)
            if forced is not None:
                return httpx.Response(
                    forced, json={"error": {"type": "security_exception"}, "status": forced}
                )
            return handler(request, **kwargs)

        return side_effect

    # -- handlers ---------------------------------------------------------

    def _cat_master(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"id": "abc", "host": "10.0.0.1", "node": self.master}])

    def _cluster_settings(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=self.settings)

    def _cat_indices(self, request: httpx.Request, pattern: str) -> httpx.Response:
        matches = [{"index": name} for name in self.indices if fnmatch.fnmatch(name, pattern)]
        return httpx.Response(200, json=matches)

    def _cat_shards(self, request: httpx.Request, index: str) -> httpx.Response:
        if index not in self.indices:
            return _missing_index(index)
        rows = [
            {"index": index, "shard": "0", "prirep": "p", "state": self.shard_state},
            {"index": index, "shard": "0", "prirep": "r", "state": self.shard_state},
        ]
        return httpx.Response(200, json=rows)

    def _index(self, request: httpx.Request, index: str) -> httpx.Response:
        if request.method == "PUT":
            if index in self.indices:
                return httpx.Response(
                    400, json={"error": {"type": "resource_already_exists_exception"}}
                )
            self.indices[index] = {}
            return httpx.Response(200, json={"acknowledged": True, "index": index})
        if index not in self.indices:
            return _missing_index(index)
        if request.method == "DELETE":
            del self.indices[index]
            return httpx.Response(200, json={"acknowledged": True})
        return httpx.Response(200, json={index: {}})

    def _refresh(self, request: httpx.Request, index: str) -> httpx.Response:
        if index not in self.indices:
            return _missing_index(index)
        return httpx.Response(200, json={"_shards": {"total": 2, "successful": 2, "failed": 0}})

    def _document(self, request: httpx.Request, index: str, doc_id: str) -> httpx.Response:
        if request.method == "PUT":
            self.indices.setdefault(index, {})[doc_id] = json.loads(request.content)
            return httpx.Response(201, json={"_index": index, "_id": doc_id, "result": "created"})

        if index not in self.indices:
            return _missing_index(index)
        source = self.indices[index].get(doc_id)
        if source is None:
            return httpx.Response(404, json={"_index": index, "_id": doc_id, "found": False})
        return httpx.Response(
            200, json={"_index": index, "_id": doc_id, "found": True, "_source": source}
        )

    def _recovery(self, request: httpx.Request, index: str) -> httpx.Response:
        if index not in self.indices:
            return _missing_index(index)
        shards = [{"id": 0, "type": "SNAPSHOT", "stage": "DONE"}]
        return httpx.Response(200, json={index: {"shards": shards}})

    def _list_repositories(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=copy.deepcopy(self.repositories))

    def _repository(self, request: httpx.Request, repo: str) -> httpx.Response:
        if request.method == "PUT":
            self.repositories[repo] = json.loads(request.content)
            return httpx.Response(200, json={"acknowledged": True})
        if repo not in self.repositories:
            return httpx.Response(404, json={"error": {"type": "repository_missing_exception"}})
        if request.method == "DELETE":
            if repo in self.failing_repository_deletes:
                return httpx.Response(500, json={"error": "repository in use"})
            del self.repositories[repo]
            return httpx.Response(200, json={"acknowledged": True})
        return httpx.Response(200, json={repo: self.repositories[repo]})

    def _snapshot(self, request: httpx.Request, repo: str, snap: str) -> httpx.Response:
        if repo not in self.repositories:
            return httpx.Response(404, json={"error": {"type": "repository_missing_exception"}})
        if request.method == "PUT":
            self.snapshots[(repo, snap)] = copy.deepcopy(self.indices)
            return httpx.Response(200, json={"accepted": True})
        if (repo, snap) not in self.snapshots:
            return _missing_snapshot(snap)

        failed = self.snapshot_failed_shards
        info = {
            "snapshot": snap,
            "state": self.status_states[-1],
            "duration_in_millis": 1234,
            "shards": {"total": 5, "successful": 5 - failed, "failed": failed},
            "failures": [
                {"index": "logs-1", "shard_id": i, "node_id": "n1", "reason": "IOException"}
                for i in range(failed)
            ],
        }
        return httpx.Response(200, json={"snapshots": [info]})

    def _snapshot_status(self, request: httpx.Request, repo: str, snap: str) -> httpx.Response:
        if (repo, snap) not in self.snapshots:
            return _missing_snapshot(snap)
        state = self.status_states.pop(0) if len(self.status_states) > 1 else self.status_states[0]
        status = {
            "snapshot": snap,
            "repository": repo,
            "state": state,
            "shards_stats": {"done": 5 if state == "SUCCESS" else 2, "total": 5},
        }
        return httpx.Response(200, json={"snapshots": [status]})

    def _restore(self, request: httpx.Request, repo: str, snap: str) -> httpx.Response:
        captured = self.snapshots.get((repo, snap))
        if captured is None:
            return _missing_snapshot(snap)

        body = json.loads(request.content)
        source_index = body["indices"]
        target_index = body["rename_replacement"]
        if target_index in self.indices:
            return httpx.Response(500, json={"error": f"index {target_index} already exists"})

        if source_index not in captured:
            return _missing_index(source_index)

        restored = copy.deepcopy(captured[source_index])
        for doc_id, value in self.restore_overrides.items():
            restored.setdefault(str(doc_id), {"id": doc_id})["value"] = value
        self.indices[target_index] = restored

        if self.restore_failed_shards:
            failed = self.restore_failed_shards
            return httpx.Response(
                200,
                json={
                    "snapshot": {
                        "snapshot": snap,
                        "indices": [target_index],
                        "shards": {"total": 1, "successful": 1 - failed, "failed": failed},
                    }
                },
            )
        return httpx.Response(200, json={"accepted": True})


def _missing_index(index: str) -> httpx.Response:
    return httpx.Response(
        404,
        json={"error": {"type": "index_not_found_exception", "index": index}, "status": 404},
    )


def _missing_snapshot(snapshot: str) -> httpx.Response:
    return httpx.Response(
        404,
        json={"error": {"type": "snapshot_missing_exception", "reason": snapshot}, "status": 404},
    )


@pytest.fixture
def fake_cluster() -> Iterator[FakeCluster]:
    """In-memory cluster served through respx at CLUSTER_URL."""
    cluster = FakeCluster()
    with respx.mock(assert_all_called=False) as router:
        cluster.install(router)
        yield cluster


@pytest_asyncio.fixture
async def api(config: SnapverifyConfig, fake_cluster: FakeCluster) -> AsyncIterator[ClusterApi]:
    """ClusterApi talking to the fake cluster."""
    async with ClusterGateway(config.cluster) as gateway:
        yield ClusterApi(RetryingCaller(gateway))


@pytest.fixture
def notifier() -> AsyncMock:
    """Stand-in FailureNotifier recording notify() calls."""
    mock = AsyncMock()
    mock.notify = AsyncMock(return_value=None)
    return mock
