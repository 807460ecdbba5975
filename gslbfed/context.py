"""Application context: builds and wires every shared service once."""

import asyncio
import threading
from typing import Dict, List, Optional

from .exceptions import GSLBFederationError
from .filter import GDPObj, GlobalFilter
from .hostmap import HostMaps
from .ingestion import FederationState, MemberController, sync_from_ingestion_layer
from .logging_config import get_logger
from .models import FederatorConfig
from .policy import GDPController
from .queues import KeyHandler, QueueName, WorkerPool, WorkQueueRegistry
from .retry import sync_from_retry_layer
from .store import Stores

logger = get_logger(__name__)


def log_graph_key(key: str) -> None:
    """Default graph layer consumer: record the decision and move on."""
    logger.info("Federation key ready for graph layer", key=key)


class FederationContext:
    """Owns the stores, host maps, filter, policy pointer and queues.

    Everything is constructed here, before any worker starts, and handed to
    the components that need it.
    """

    def __init__(self, config: FederatorConfig,
                 graph_handler: Optional[KeyHandler] = None):
        self.config = config
        self.stores = Stores()
        self.host_maps = HostMaps()
        self.global_filter = GlobalFilter()
        self.gdp_obj = GDPObj()
        # Queues are bound to the running loop in run()
        self.queues = WorkQueueRegistry(config.workers)
        self.state = FederationState(self.stores, self.host_maps, self.global_filter,
                                     self.queues, tenant=config.tenant)
        # One controller per enabled member cluster
        self.controllers: Dict[str, MemberController] = {
            cluster.name: MemberController(cluster.name, self.state)
            for cluster in config.clusters
            if cluster.enabled
        }
        self.gdp_controller = GDPController(self.state, self.gdp_obj)
        self.graph_handler = graph_handler or log_graph_key
        self._pools: List[WorkerPool] = []
        self._watchers: list = []

    def controller_for(self, cluster: str) -> MemberController:
        try:
            return self.controllers[cluster]
        except KeyError:
            raise GSLBFederationError(f"cluster {cluster} is not configured") from None

    def start_workers(self, stop_event: asyncio.Event) -> None:
        # The REST layer has no consumer here
        handlers = {
            QueueName.OBJECT_INGESTION_LAYER: lambda key: sync_from_ingestion_layer(key, self.state),
            QueueName.GRAPH_LAYER: self.graph_handler,
            QueueName.RETRY_LAYER: lambda key: sync_from_retry_layer(key, self.queues),
        }
        for name, handler in handlers.items():
            pool = WorkerPool(self.queues.get_queue_by_name(name), handler, stop_event)
            pool.start()
            self._pools.append(pool)

    def start_watchers(self, loop: asyncio.AbstractEventLoop, stop: threading.Event) -> None:
        from .watcher import ClusterWatcher

        watchers = {}
        for cluster in self.config.clusters:
            if not cluster.enabled:
                continue
            watcher = ClusterWatcher(cluster, self.controllers[cluster.name], self.config)
            watcher.start(loop, stop)
            watchers[cluster.name] = watcher
        self._watchers = list(watchers.values())

        # Called through asyncio.to_thread by the policy controller
        self.gdp_controller.namespace_lister = (
            lambda cluster, key, value: watchers[cluster].client.list_namespaces(key, value)
            if cluster in watchers else []
        )

        # Defaults to the first enabled cluster
        gdp_cluster = self.config.gdp_cluster or next(iter(watchers), None)
        if gdp_cluster is None or gdp_cluster not in watchers:
            logger.warning("No cluster to watch the policy object on", gdp_cluster=gdp_cluster)
            return
        watchers[gdp_cluster].start_policy_watch(loop, stop, self.gdp_controller.handle_event)

    async def run(self, stop_event: asyncio.Event, watch: bool = True) -> None:
        """Run worker pools (and cluster watches) until stop_event is set."""
        loop = asyncio.get_running_loop()
        self.queues.bind(loop)
        # Watch threads can't wait on an asyncio.Event
        thread_stop = threading.Event()
        self.start_workers(stop_event)
        if watch:
            self.start_watchers(loop, thread_stop)

        logger.info("Federator running", clusters=list(self.controllers))
        await stop_event.wait()

        # Shutdown
        thread_stop.set()
        for pool in self._pools:
            await pool.join()
        for watcher in self._watchers:
            watcher.client.close()
        logger.info("Federator stopped")
