"""Kubernetes watch glue for member clusters and the policy object.

Watch streams block, so each one runs in a daemon thread and hands its
events back to the event loop. Coroutine callbacks are scheduled on the
loop as tasks; plain callbacks are called there directly.
"""

import asyncio
import concurrent.futures
import inspect
import threading
from typing import Any, Callable, List, Optional

from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException

from .ingestion import MemberController
from .logging_config import get_logger, log_function_entry, log_function_exit, log_k8s_operation
from .models import (
    GDP_GROUP,
    GDP_PLURAL,
    GDP_VERSION,
    ROUTE_GROUP,
    ROUTE_PLURAL,
    ROUTE_VERSION,
    ClusterConfig,
    FederatorConfig,
    IngressObj,
    LBSvcObj,
    RouteObj,
)

logger = get_logger(__name__)

# (event type, object); may be a coroutine function
EventCallback = Callable[[str, Any], Any]


class ClusterClient:
    """API clients for one member cluster."""

    def __init__(self, cluster_config: ClusterConfig):
        self.cluster_config = cluster_config
        self._api_client: Optional[client.ApiClient] = None
        self.core_v1: Optional[client.CoreV1Api] = None
        self.networking_v1: Optional[client.NetworkingV1Api] = None
        self.custom_objects: Optional[client.CustomObjectsApi] = None

    def connect(self) -> None:
        """Initialize API clients for the cluster."""
        log_function_entry(logger, "connect", cluster_name=self.cluster_config.name)
        log_k8s_operation(logger, "connect", self.cluster_config.name,
                          kubeconfig_path=self.cluster_config.kubeconfig_path,
                          context=self.cluster_config.context)
        try:
            if self.cluster_config.kubeconfig_path:
                self._api_client = config.new_client_from_config(
                    config_file=self.cluster_config.kubeconfig_path,
                    context=self.cluster_config.context,
                )
            else:
                logger.debug("Loading in-cluster config", cluster=self.cluster_config.name)
                config.load_incluster_config()
                self._api_client = client.ApiClient()

            self.core_v1 = client.CoreV1Api(self._api_client)
            self.networking_v1 = client.NetworkingV1Api(self._api_client)
            self.custom_objects = client.CustomObjectsApi(self._api_client)
            logger.info("Successfully connected to cluster", cluster=self.cluster_config.name)
            log_function_exit(logger, "connect", cluster_name=self.cluster_config.name, status="success")
        except Exception as e:
            logger.error("Failed to connect to cluster",
                         cluster=self.cluster_config.name,
                         error=str(e),
                         kubeconfig_path=self.cluster_config.kubeconfig_path,
                         context=self.cluster_config.context)
            raise

    def list_namespaces(self, key: str, value: str) -> List[str]:
        """Names of namespaces labelled key=value."""
        if self.core_v1 is None:
            self.connect()
        response = self.core_v1.list_namespace(label_selector=f"{key}={value}")
        return [ns.metadata.name for ns in response.items]

    def close(self) -> None:
        if self._api_client is not None:
            self._api_client.close()


class WatchThread:
    """Runs one watch stream until stopped, re-opening it on timeout."""

    def __init__(self, name: str, list_func: Callable[..., Any], callback: EventCallback,
                 loop: asyncio.AbstractEventLoop, stop: threading.Event, timeout_seconds: int,
                 **list_kwargs: Any):
        self.name = name
        self.list_func = list_func
        self.callback = callback
        self.loop = loop
        self.stop = stop
        self.timeout_seconds = timeout_seconds
        self.list_kwargs = list_kwargs
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _log_failure(self, future: concurrent.futures.Future) -> None:
        if not future.cancelled() and future.exception() is not None:
            logger.error("Event handler failed", watch=self.name, error=str(future.exception()))

    def _deliver(self, event_type: str, obj: Any) -> None:
        if inspect.iscoroutinefunction(self.callback):
            future = asyncio.run_coroutine_threadsafe(self.callback(event_type, obj), self.loop)
            future.add_done_callback(self._log_failure)
        else:
            self.loop.call_soon_threadsafe(self.callback, event_type, obj)

    def _run(self) -> None:
        # Each pass re-lists, so a timed out stream replays current state
        while not self.stop.is_set():
            w = watch.Watch()
            try:
                for event in w.stream(self.list_func, timeout_seconds=self.timeout_seconds, **self.list_kwargs):
                    if self.stop.is_set():
                        w.stop()
                        break
                    self._deliver(event["type"], event["object"])
            except ApiException as e:
                # CRDs such as routes aren't installed everywhere.
                if e.status == 404:
                    logger.warning("Resource not served by this cluster, stopping watch", watch=self.name)
                    return
                logger.error("Watch failed, re-opening", watch=self.name, status=e.status, error=str(e))
                self.stop.wait(5)
            except Exception as e:
                logger.error("Watch failed, re-opening", watch=self.name, error=str(e))
                self.stop.wait(5)


class ClusterWatcher:
    """Event source for one member cluster."""

    def __init__(self, cluster_config: ClusterConfig, controller: MemberController,
                 federator_config: FederatorConfig):
        self.cluster_config = cluster_config
        self.controller = controller
        self.federator_config = federator_config
        self.client = ClusterClient(cluster_config)
        self._threads: List[WatchThread] = []

    def _dispatch(self, kind: str) -> EventCallback:
        def callback(event_type: str, obj: Any) -> None:
            self.controller.handle_event(kind, event_type, obj)
        return callback

    def start(self, loop: asyncio.AbstractEventLoop, stop: threading.Event) -> None:
        self.client.connect()
        timeout = self.federator_config.watch_timeout_seconds
        name = self.cluster_config.name

        # Namespace events keep the namespace selection current
        self._threads.append(WatchThread(f"{name}-namespaces", self.client.core_v1.list_namespace,
                                         self._dispatch("Namespace"), loop, stop, timeout))
        if self.federator_config.enable_ingress:
            self._threads.append(WatchThread(f"{name}-ingresses",
                                             self.client.networking_v1.list_ingress_for_all_namespaces,
                                             self._dispatch(IngressObj), loop, stop, timeout))
        if self.federator_config.enable_route:
            self._threads.append(WatchThread(f"{name}-routes",
                                             self.client.custom_objects.list_cluster_custom_object,
                                             self._dispatch(RouteObj), loop, stop, timeout,
                                             group=ROUTE_GROUP, version=ROUTE_VERSION, plural=ROUTE_PLURAL))
        if self.federator_config.enable_service:
            self._threads.append(WatchThread(f"{name}-services",
                                             self.client.core_v1.list_service_for_all_namespaces,
                                             self._dispatch(LBSvcObj), loop, stop, timeout))
        for thread in self._threads:
            thread.start()
        logger.info("Started cluster watches", cluster=name, watches=[t.name for t in self._threads])

    def start_policy_watch(self, loop: asyncio.AbstractEventLoop, stop: threading.Event,
                           callback: EventCallback) -> None:
        """Watch the GlobalDeploymentPolicy objects held by this cluster."""
        thread = WatchThread(f"{self.cluster_config.name}-gdp",
                             self.client.custom_objects.list_namespaced_custom_object,
                             callback, loop, stop, self.federator_config.watch_timeout_seconds,
                             group=GDP_GROUP, version=GDP_VERSION,
                             namespace=self.federator_config.gdp_namespace, plural=GDP_PLURAL)
        thread.start()
        self._threads.append(thread)
