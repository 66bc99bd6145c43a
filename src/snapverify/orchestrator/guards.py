"""
Run guards: master election and cluster health.

Both run before anything is written to the cluster.
"""

import logging

from snapverify.cluster.api import ClusterApi
from snapverify.errors import PreconditionFailed

logger = logging.getLogger(__name__)

ALLOCATION_SETTING = "cluster.routing.allocation.enable"
ALLOCATION_ENABLED = "all"


class MasterElectionGuard:
    """Lets the run proceed on the elected master node only.

    The scheduler fires on every node; all but one of them must exit
    quietly.
    """

    def __init__(self, api: ClusterApi, node_name: str) -> None:
        self._api = api
        self._node_name = node_name

    async def is_master(self) -> bool:
        """Whether this node is the currently elected master."""
        master = await self._api.master_node()
        logger.debug("Elected master: %s (this node: %s)", master, self._node_name)
        return master is not None and master == self._node_name


class ClusterHealthPrecondition:
    """Refuses to run while shard allocation is restricted.

    Creating the probe index while allocation is disabled leaves its
    shards unassigned and can push the cluster into a red state.
    """

    def __init__(self, api: ClusterApi) -> None:
        self._api = api

    async def assert_shard_allocation_enabled(self) -> None:
        """Check the routing allocation setting.

        The transient value wins over the persistent one; an unset
        setting means allocation is enabled.

        Raises:
            PreconditionFailed: If allocation is anything other than "all"
        """
        settings = await self._api.cluster_settings()
        value = ALLOCATION_ENABLED
        for scope in ("persistent", "transient"):
            scoped = settings.get(scope) or {}
            if ALLOCATION_SETTING in scoped:
                value = str(scoped[ALLOCATION_SETTING])

        if value.lower() != ALLOCATION_ENABLED:
            raise PreconditionFailed(
                f"Shard allocation is restricted ({ALLOCATION_SETTING}={value}); "
                "refusing to create probe data"
            )
        logger.debug("Shard allocation enabled")
