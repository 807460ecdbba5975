"""Cluster object stores: cluster -> namespace -> object name -> metadata.

Absence of an entry means the object is not currently observed; presence
is its last observed state.
"""

import threading
from typing import Dict, List, Optional, Tuple

from .logging_config import get_logger, log_store_operation
from .models import IngressObj, LBSvcObj, RouteObj
from .objects import IngressHostMeta, ObjectMeta, RouteMeta, SvcMeta

logger = get_logger(__name__)


class ClusterStore:
    """Three level index of observed objects, guarded by one lock."""

    def __init__(self, name: str):
        self.name = name
        self._clusters: Dict[str, Dict[str, Dict[str, ObjectMeta]]] = {}
        self._lock = threading.RLock()

    def add_or_update(self, obj: ObjectMeta, cluster: str, namespace: str, name: str) -> None:
        with self._lock:
            self._clusters.setdefault(cluster, {}).setdefault(namespace, {})[name] = obj
        log_store_operation(logger, "add_or_update", self.name,
                            cluster=cluster, namespace=namespace, name=name)

    def delete_cluster_ns_obj(self, cluster: str, namespace: str, name: str) -> Optional[ObjectMeta]:
        """Remove an object. Returns what was removed, None if it wasn't there."""
        with self._lock:
            ns_store = self._clusters.get(cluster)
            if ns_store is None:
                return None
            obj_store = ns_store.get(namespace)
            if obj_store is None:
                return None
            obj = obj_store.pop(name, None)
            if not obj_store:
                del ns_store[namespace]
            if not ns_store:
                del self._clusters[cluster]
        if obj is not None:
            log_store_operation(logger, "delete", self.name,
                                cluster=cluster, namespace=namespace, name=name)
        return obj

    def get_cluster_ns_obj(self, cluster: str, namespace: str, name: str) -> Optional[ObjectMeta]:
        with self._lock:
            return self._clusters.get(cluster, {}).get(namespace, {}).get(name)

    def get_all_cluster_ns_objects(self) -> List[Tuple[str, str, str, ObjectMeta]]:
        """Snapshot of every (cluster, namespace, name, object) in the store."""
        with self._lock:
            return [
                (cluster, namespace, name, obj)
                for cluster, ns_store in self._clusters.items()
                for namespace, obj_store in ns_store.items()
                for name, obj in obj_store.items()
            ]

    def get_all_objects_for(self, cluster: str, namespace: Optional[str] = None) -> List[ObjectMeta]:
        with self._lock:
            ns_store = self._clusters.get(cluster, {})
            if namespace is not None:
                return list(ns_store.get(namespace, {}).values())
            return [obj for obj_store in ns_store.values() for obj in obj_store.values()]

    def get_objects_by_hostname(self, hostname: str) -> List[ObjectMeta]:
        """All objects advertising hostname, across clusters."""
        with self._lock:
            return [
                obj
                for ns_store in self._clusters.values()
                for obj_store in ns_store.values()
                for obj in obj_store.values()
                if obj.get_hostname() == hostname
            ]

    def __len__(self) -> int:
        with self._lock:
            return sum(len(obj_store) for ns_store in self._clusters.values()
                       for obj_store in ns_store.values())


class Stores:
    """Accepted and rejected stores per object kind."""

    def __init__(self) -> None:
        self.accepted: Dict[str, ClusterStore] = {
            obj_type: ClusterStore(f"accepted-{obj_type.lower()}")
            for obj_type in (IngressObj, RouteObj, LBSvcObj)
        }
        self.rejected: Dict[str, ClusterStore] = {
            obj_type: ClusterStore(f"rejected-{obj_type.lower()}")
            for obj_type in (IngressObj, RouteObj, LBSvcObj)
        }

    def accepted_store(self, obj_type: str) -> ClusterStore:
        return self.accepted[obj_type]

    def rejected_store(self, obj_type: str) -> ClusterStore:
        return self.rejected[obj_type]


def add_or_update_ingress_store(store: ClusterStore, ing_host: IngressHostMeta, cluster: str) -> None:
    store.add_or_update(ing_host, cluster, ing_host.namespace, ing_host.obj_name)


def delete_from_ingress_store(store: Optional[ClusterStore], ing_host: IngressHostMeta,
                              cluster: str) -> Optional[ObjectMeta]:
    if store is None:
        return None
    return store.delete_cluster_ns_obj(cluster, ing_host.namespace, ing_host.obj_name)


def add_or_update_route_store(store: ClusterStore, route: RouteMeta, cluster: str) -> None:
    store.add_or_update(route, cluster, route.namespace, route.name)


def delete_from_route_store(store: Optional[ClusterStore], namespace: str, name: str,
                            cluster: str) -> Optional[ObjectMeta]:
    if store is None:
        return None
    return store.delete_cluster_ns_obj(cluster, namespace, name)


def add_or_update_lb_svc_store(store: ClusterStore, svc: SvcMeta, cluster: str) -> None:
    store.add_or_update(svc, cluster, svc.namespace, svc.name)


def delete_from_lb_svc_store(store: Optional[ClusterStore], namespace: str, name: str,
                             cluster: str) -> Optional[ObjectMeta]:
    if store is None:
        return None
    return store.delete_cluster_ns_obj(cluster, namespace, name)
