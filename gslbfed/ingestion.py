"""Ingestion: member cluster event handlers and the ingestion layer worker.

Event handlers run the filter on fresh metadata, file the object in the
accepted or rejected store and publish its federation key. Workers on the
ingestion queue re-read the store for that key and hand a graph key
(``tenant/hostname``) to the graph layer.
"""

from typing import Any, Dict, List, Optional, Tuple

from .exceptions import EmptyResultError, FilterStateError, InvalidFederationKeyError
from .filter import GlobalFilter
from .hostmap import HostMaps
from .logging_config import get_logger, log_function_entry, log_function_exit, log_k8s_operation
from .models import OBJECT_TYPES, IngressObj, LBSvcObj, RouteObj
from .objects import (
    IngressHostMeta,
    ObjectMeta,
    get_ingress_host_meta,
    get_route_meta,
    get_svc_meta,
    is_svc_type_lb,
)
from .queues import QueueName, WorkQueueRegistry, publish_key
from .store import Stores
from .utils import k8s_get, split_multi_cluster_key

logger = get_logger(__name__)


class FederationState:
    """The shared services every ingestion and policy handler works on."""

    def __init__(self, stores: Stores, host_maps: HostMaps, global_filter: GlobalFilter,
                 queues: WorkQueueRegistry, tenant: str = "admin"):
        self.stores = stores
        self.host_maps = host_maps
        self.global_filter = global_filter
        self.queues = queues
        self.tenant = tenant

    def publish_ingestion_key(self, obj: ObjectMeta, reason: str) -> None:
        queue = self.queues.get_queue_by_name(QueueName.OBJECT_INGESTION_LAYER)
        queue.publish(obj.get_federation_key(), reason=reason)

    def publish_graph_key(self, hostname: str, reason: str) -> str:
        queue = self.queues.get_queue_by_name(QueueName.GRAPH_LAYER)
        return publish_key(queue, self.tenant, hostname, reason)


def file_object(state: FederationState, obj: ObjectMeta) -> bool:
    """Run the filter on obj and store it as accepted or rejected.

    Publishes the federation key when the accepted view changed. Returns
    the filter outcome.
    """
    obj_type = obj.get_type()
    cluster, namespace, name = obj.get_cluster(), obj.get_namespace(), obj.get_name()
    accepted_store = state.stores.accepted_store(obj_type)
    rejected_store = state.stores.rejected_store(obj_type)
    key = obj.get_federation_key()

    if not obj.apply_filter(state.global_filter):
        rejected_store.add_or_update(obj, cluster, namespace, name)
        if accepted_store.delete_cluster_ns_obj(cluster, namespace, name) is not None:
            state.publish_ingestion_key(obj, "rejected")
        return False

    rejected_store.delete_cluster_ns_obj(cluster, namespace, name)
    previous = accepted_store.get_cluster_ns_obj(cluster, namespace, name)
    # Stored even when unchanged: labels aren't part of the checksum.
    accepted_store.add_or_update(obj, cluster, namespace, name)
    if previous is not None and previous.get_checksum() == obj.get_checksum():
        logger.debug("Object unchanged, nothing to publish", key=key)
        return True

    old_hostname = obj.get_hostname_from_host_map(state.host_maps, key)
    if old_hostname and old_hostname != obj.get_hostname():
        # The old hostname has no key left to resolve it, clean it up directly.
        state.publish_graph_key(old_hostname, "hostname changed")

    obj.update_host_map(state.host_maps, key)
    state.publish_ingestion_key(obj, "added" if previous is None else "updated")
    return True


def forget_object(state: FederationState, obj: ObjectMeta) -> None:
    """Drop obj from both stores; publish if it was accepted."""
    obj_type = obj.get_type()
    cluster, namespace, name = obj.get_cluster(), obj.get_namespace(), obj.get_name()
    state.stores.rejected_store(obj_type).delete_cluster_ns_obj(cluster, namespace, name)
    if state.stores.accepted_store(obj_type).delete_cluster_ns_obj(cluster, namespace, name) is not None:
        state.publish_ingestion_key(obj, "deleted")


def reevaluate_objects(state: FederationState, cluster: Optional[str] = None,
                       namespace: Optional[str] = None) -> Tuple[List[str], List[str]]:
    """Re-run the filter over stored objects after a policy change.

    Only objects whose decision flips are moved between stores and
    published.

    Returns:
        (keys newly accepted, keys newly rejected)
    """
    log_function_entry(logger, "reevaluate_objects", cluster=cluster, namespace=namespace)
    newly_accepted: List[str] = []
    newly_rejected: List[str] = []

    for obj_type in (IngressObj, RouteObj, LBSvcObj):
        accepted_store = state.stores.accepted_store(obj_type)
        rejected_store = state.stores.rejected_store(obj_type)

        for obj_cluster, obj_ns, name, obj in accepted_store.get_all_cluster_ns_objects():
            if not _in_scope(obj_cluster, obj_ns, cluster, namespace):
                continue
            if obj.apply_filter(state.global_filter):
                continue
            accepted_store.delete_cluster_ns_obj(obj_cluster, obj_ns, name)
            rejected_store.add_or_update(obj, obj_cluster, obj_ns, name)
            state.publish_ingestion_key(obj, "rejected on re-evaluation")
            newly_rejected.append(obj.get_federation_key())

        for obj_cluster, obj_ns, name, obj in rejected_store.get_all_cluster_ns_objects():
            if not _in_scope(obj_cluster, obj_ns, cluster, namespace):
                continue
            if not obj.apply_filter(state.global_filter):
                continue
            rejected_store.delete_cluster_ns_obj(obj_cluster, obj_ns, name)
            accepted_store.add_or_update(obj, obj_cluster, obj_ns, name)
            key = obj.get_federation_key()
            obj.update_host_map(state.host_maps, key)
            state.publish_ingestion_key(obj, "accepted on re-evaluation")
            newly_accepted.append(key)

    log_function_exit(logger, "reevaluate_objects",
                      newly_accepted=len(newly_accepted),
                      newly_rejected=len(newly_rejected))
    return newly_accepted, newly_rejected


def _in_scope(obj_cluster: str, obj_ns: str, cluster: Optional[str], namespace: Optional[str]) -> bool:
    if cluster is not None and obj_cluster != cluster:
        return False
    if namespace is not None and obj_ns != namespace:
        return False
    return True


def publish_all_accepted(state: FederationState, reason: str) -> List[str]:
    """Publish a graph key for every accepted hostname, once each."""
    hostnames: Dict[str, None] = {}
    for obj_type in (IngressObj, RouteObj, LBSvcObj):
        for _, _, _, obj in state.stores.accepted_store(obj_type).get_all_cluster_ns_objects():
            if obj.get_hostname():
                hostnames.setdefault(obj.get_hostname())
    return [state.publish_graph_key(hostname, reason) for hostname in hostnames]


class MemberController:
    """Event handlers for one member cluster."""

    def __init__(self, name: str, state: FederationState):
        self.name = name
        self.state = state

    def _ingress_hosts_in_stores(self, namespace: str, ing_name: str) -> List[IngressHostMeta]:
        hosts = []
        for store in (self.state.stores.accepted_store(IngressObj), self.state.stores.rejected_store(IngressObj)):
            for obj in store.get_all_objects_for(self.name, namespace):
                if isinstance(obj, IngressHostMeta) and obj.ing_name == ing_name:
                    hosts.append(obj)
        return hosts

    def on_ingress_add_or_update(self, ingress: Any) -> None:
        namespace = k8s_get(ingress, "metadata", "namespace", default="default")
        ing_name = k8s_get(ingress, "metadata", "name")
        log_k8s_operation(logger, "ingress_add_or_update", self.name, namespace=namespace, name=ing_name)

        ing_hosts = get_ingress_host_meta(ingress, self.name)
        for stale in self._ingress_hosts_in_stores(namespace, ing_name):
            if stale.ingress_host_in_list(ing_hosts) is None:
                forget_object(self.state, stale)
        for ing_host in ing_hosts:
            file_object(self.state, ing_host)

    def on_ingress_delete(self, ingress: Any) -> None:
        namespace = k8s_get(ingress, "metadata", "namespace", default="default")
        ing_name = k8s_get(ingress, "metadata", "name")
        log_k8s_operation(logger, "ingress_delete", self.name, namespace=namespace, name=ing_name)
        for ing_host in self._ingress_hosts_in_stores(namespace, ing_name):
            forget_object(self.state, ing_host)

    def on_route_add_or_update(self, route: Any) -> None:
        route_meta = get_route_meta(route, self.name)
        log_k8s_operation(logger, "route_add_or_update", self.name,
                          namespace=route_meta.namespace, name=route_meta.name)
        if not route_meta.hostname:
            logger.info("Route has no host, skipping",
                        cluster=self.name, namespace=route_meta.namespace, name=route_meta.name)
            forget_object(self.state, route_meta)
            return
        if not route_meta.ip_addr:
            logger.info("Route has no IP address yet, skipping",
                        cluster=self.name, namespace=route_meta.namespace, name=route_meta.name)
            forget_object(self.state, route_meta)
            return
        file_object(self.state, route_meta)

    def on_route_delete(self, route: Any) -> None:
        route_meta = get_route_meta(route, self.name)
        log_k8s_operation(logger, "route_delete", self.name,
                          namespace=route_meta.namespace, name=route_meta.name)
        forget_object(self.state, route_meta)

    def _forget_service(self, svc: Any) -> None:
        namespace = k8s_get(svc, "metadata", "namespace", default="default")
        name = k8s_get(svc, "metadata", "name")
        for store in (self.state.stores.accepted_store(LBSvcObj), self.state.stores.rejected_store(LBSvcObj)):
            obj = store.get_cluster_ns_obj(self.name, namespace, name)
            if obj is not None:
                forget_object(self.state, obj)
                return

    def on_service_add_or_update(self, svc: Any) -> None:
        if not is_svc_type_lb(svc):
            # It may have been a LoadBalancer before this update.
            self._forget_service(svc)
            return
        try:
            svc_meta = get_svc_meta(svc, self.name)
        except EmptyResultError as e:
            logger.info("Skipping service", cluster=self.name, reason=e.message)
            self._forget_service(svc)
            return
        log_k8s_operation(logger, "service_add_or_update", self.name,
                          namespace=svc_meta.namespace, name=svc_meta.name)
        file_object(self.state, svc_meta)

    def on_service_delete(self, svc: Any) -> None:
        log_k8s_operation(logger, "service_delete", self.name,
                          namespace=k8s_get(svc, "metadata", "namespace"),
                          name=k8s_get(svc, "metadata", "name"))
        self._forget_service(svc)

    def on_namespace_add_or_update(self, ns: Any) -> None:
        """Select the namespace if it carries the namespace selector label."""
        ns_name = k8s_get(ns, "metadata", "name")
        labels = k8s_get(ns, "metadata", "labels", default={})
        try:
            label = self.state.global_filter.get_ns_filter_label()
        except FilterStateError:
            logger.debug("No namespace selector, ignoring namespace event", cluster=self.name, namespace=ns_name)
            return

        if labels.get(label.key) == label.value:
            self.state.global_filter.add_ns_to_ns_filter(self.name, ns_name)
        else:
            self.state.global_filter.delete_ns_from_ns_filter(self.name, ns_name)
        reevaluate_objects(self.state, cluster=self.name, namespace=ns_name)

    def on_namespace_delete(self, ns: Any) -> None:
        ns_name = k8s_get(ns, "metadata", "name")
        try:
            self.state.global_filter.delete_ns_from_ns_filter(self.name, ns_name)
        except FilterStateError:
            return
        reevaluate_objects(self.state, cluster=self.name, namespace=ns_name)

    def handle_event(self, kind: str, event_type: str, obj: Any) -> None:
        """Dispatch a watch event (ADDED, MODIFIED, DELETED) for kind."""
        handlers = {
            IngressObj: (self.on_ingress_add_or_update, self.on_ingress_delete),
            RouteObj: (self.on_route_add_or_update, self.on_route_delete),
            LBSvcObj: (self.on_service_add_or_update, self.on_service_delete),
            "Namespace": (self.on_namespace_add_or_update, self.on_namespace_delete),
        }
        if kind not in handlers:
            logger.warning("Unknown object kind", cluster=self.name, kind=kind)
            return
        add_or_update, delete = handlers[kind]
        if event_type == "DELETED":
            delete(obj)
        elif event_type in ("ADDED", "MODIFIED"):
            add_or_update(obj)
        else:
            logger.debug("Ignoring watch event", cluster=self.name, kind=kind, event_type=event_type)


def sync_from_ingestion_layer(key: str, state: FederationState) -> Optional[str]:
    """Translate a federation key into a graph key from current state.

    An accepted object publishes its hostname; an absent one publishes the
    hostname remembered for it, then forgets it. Returns the graph key, or
    None when there was nothing to publish.
    """
    try:
        cluster, namespace, obj_type, name = split_multi_cluster_key(key)
    except InvalidFederationKeyError as e:
        logger.error("Dropping malformed key", key=key, error=e.message)
        return None
    if obj_type not in OBJECT_TYPES:
        logger.error("Dropping key of unknown object kind", key=key, obj_type=obj_type)
        return None

    obj = state.stores.accepted_store(obj_type).get_cluster_ns_obj(cluster, namespace, name)
    if obj is not None:
        if not obj.get_hostname():
            logger.warning("Accepted object has no hostname, nothing to publish", key=key)
            return None
        return state.publish_graph_key(obj.get_hostname(), "add")

    host_map = state.host_maps.for_type(obj_type)
    hostname = host_map.recall(key)
    if not hostname:
        logger.debug("No hostname remembered for key, nothing to clean up", key=key)
        return None
    graph_key = state.publish_graph_key(hostname, "delete")
    host_map.forget(key)
    return graph_key
