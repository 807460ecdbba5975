"""Global filter engine.

Holds the federation policy currently in force (application selector,
namespace selector, applicable clusters and traffic split) and decides
whether a discovered object is federated.

The checksum kept alongside the filter is a wrap-around sum of FNV-1a
hashes of each meaningful field. Equal checksums mean "no policy change".
It is a cheap change detector: collisions are possible and it must never
be used for anything security sensitive.
"""

import threading
from enum import Enum
from typing import Dict, List, Optional, Protocol, Tuple

from pydantic import BaseModel

from .exceptions import FilterStateError, NoTrafficWeightError
from .logging_config import get_logger, log_filter_decision
from .models import FilterSnapshot, GlobalDeploymentPolicy
from .utils import ReadWriteLock, add_checksum, fnv_hash

logger = get_logger(__name__)


class FilterReason(str, Enum):
    CLUSTER_NOT_SELECTED = "cluster is not selected"
    NO_NAMESPACES_FOR_CLUSTER = "no namespace selected for cluster"
    NAMESPACE_NOT_SELECTED = "namespace is not selected"
    NAMESPACE_SELECTED = "namespace selected"
    NAMESPACE_AND_APP_SELECTED = "namespace and app selected"
    APP_SELECTOR_MISMATCH = "app selector mismatch"
    NO_SELECTOR = "no selector configured"
    APP_SELECTED = "app selected"


class Filterable(Protocol):
    """What the filter needs to know about a candidate object."""

    labels: Dict[str, str]

    def get_type(self) -> str: ...

    def get_cluster(self) -> str: ...

    def get_namespace(self) -> str: ...

    def get_name(self) -> str: ...


class Label(BaseModel):
    key: str
    value: str

    def matches(self, labels: Dict[str, str]) -> bool:
        return labels.get(self.key) == self.value


class ClusterTraffic(BaseModel):
    """Weight of traffic routed to the cluster ``cluster_name``."""

    cluster_name: str
    weight: int


class AppFilter:
    def __init__(self, label: Label):
        self.label = label

    def checksum(self) -> int:
        return fnv_hash(self.label.key + self.label.value)


class NamespaceFilter:
    """Namespace selector plus the namespaces it currently selects.

    The checksum only covers the selector label, not the selected
    namespaces, which are filled in by namespace events.
    """

    def __init__(self, label: Label):
        self.label = label
        self.selected_ns: Dict[str, List[str]] = {}
        self.checksum = fnv_hash(label.key + label.value)
        self._lock = threading.RLock()

    def get_checksum(self) -> int:
        with self._lock:
            return self.checksum

    def get_filter_label(self) -> Label:
        with self._lock:
            return self.label.model_copy()

    def add_ns(self, cluster: str, namespace: str) -> None:
        with self._lock:
            ns_list = self.selected_ns.setdefault(cluster, [])
            if namespace not in ns_list:
                ns_list.append(namespace)

    def remove_ns(self, cluster: str, namespace: str) -> None:
        with self._lock:
            ns_list = self.selected_ns.get(cluster)
            if ns_list and namespace in ns_list:
                ns_list.remove(namespace)

    def is_selected(self, cluster: str, namespace: str) -> Tuple[bool, bool]:
        """Return (cluster has an entry, namespace selected)."""
        with self._lock:
            ns_list = self.selected_ns.get(cluster)
            if ns_list is None:
                return False, False
            return True, namespace in ns_list

    def copy_selected_from(self, other: "NamespaceFilter") -> None:
        with other._lock:
            selected = {cluster: list(ns_list) for cluster, ns_list in other.selected_ns.items()}
        with self._lock:
            self.selected_ns = selected

    def selected_snapshot(self) -> Dict[str, List[str]]:
        with self._lock:
            return {cluster: list(ns_list) for cluster, ns_list in self.selected_ns.items()}


def single_label(label: Dict[str, str]) -> Optional[Label]:
    # Selectors with zero or several pairs are treated as absent.
    if len(label) != 1:
        return None
    key, value = next(iter(label.items()))
    return Label(key=key, value=value)


def is_traffic_weight_changed(new: GlobalDeploymentPolicy, old: GlobalDeploymentPolicy) -> bool:
    """Whether the traffic split differs between two policies.

    True if the lengths differ, if a cluster of the old split is missing
    from the new one, or if a cluster's weight changed. Ordering is
    irrelevant.
    """
    old_split = old.spec.traffic_split
    new_split = new.spec.traffic_split
    if len(old_split) != len(new_split):
        return True
    for old_member in old_split:
        found = False
        for new_member in new_split:
            if old_member.cluster == new_member.cluster:
                found = True
                if old_member.weight != new_member.weight:
                    return True
        if not found:
            return True
    return False


class GlobalFilter:
    """All filters in one place, guarded by a single read/write lock.

    Built once per process by the application context and mutated in place.
    """

    def __init__(self) -> None:
        self.app_filter: Optional[AppFilter] = None
        self.ns_filter: Optional[NamespaceFilter] = None
        self.traffic_split: List[ClusterTraffic] = []
        self.applicable_clusters: List[str] = []
        self.checksum = 0
        self.lock = ReadWriteLock()

    def get_ns_filter_label(self) -> Label:
        with self.lock.read_locked():
            if self.ns_filter is None:
                raise FilterStateError("no NSFilter present")
            return self.ns_filter.get_filter_label()

    def get_app_filter_label(self) -> Label:
        with self.lock.read_locked():
            if self.app_filter is None:
                raise FilterStateError("no appFilter present")
            return self.app_filter.label.model_copy()

    def get_checksum(self) -> int:
        with self.lock.read_locked():
            return self.checksum

    def is_cluster_allowed(self, cluster: str) -> bool:
        with self.lock.read_locked():
            return cluster in self.applicable_clusters

    def add_ns_to_ns_filter(self, cluster: str, namespace: str) -> None:
        """Select namespace for cluster.

        Raises:
            FilterStateError: if no namespace selector is configured.
        """
        with self.lock.write_locked():
            if self.ns_filter is None:
                raise FilterStateError("NSFilter empty in GlobalFilter, can't add namespace",
                                       details={"cluster": cluster, "namespace": namespace})
            self.ns_filter.add_ns(cluster, namespace)
        logger.debug("Namespace selected", cluster=cluster, namespace=namespace)

    def delete_ns_from_ns_filter(self, cluster: str, namespace: str) -> None:
        with self.lock.write_locked():
            if self.ns_filter is None:
                raise FilterStateError("NSFilter empty in GlobalFilter, can't delete namespace",
                                       details={"cluster": cluster, "namespace": namespace})
            self.ns_filter.remove_ns(cluster, namespace)

    def _build_from(self, gdp: GlobalDeploymentPolicy) -> None:
        rules = gdp.spec.match_rules
        app_label = single_label(rules.app_selector.label)
        self.app_filter = AppFilter(app_label) if app_label else None
        ns_label = single_label(rules.namespace_selector.label)
        self.ns_filter = NamespaceFilter(ns_label) if ns_label else None
        self.applicable_clusters = list(gdp.spec.match_clusters)
        self.traffic_split = [
            ClusterTraffic(cluster_name=ts.cluster, weight=ts.weight)
            for ts in gdp.spec.traffic_split
        ]
        self.compute_checksum()

    def add_to_filter(self, gdp: GlobalDeploymentPolicy) -> None:
        """(Re)build every filter from a policy document."""
        with self.lock.write_locked():
            self._build_from(gdp)
        logger.info("Added/changed the global filter",
                    gdp=gdp.name, namespace=gdp.namespace, checksum=self.checksum)

    def compute_checksum(self) -> None:
        """Recompute the checksum. Caller holds the write lock."""
        sums = []
        if self.app_filter is not None:
            sums.append(self.app_filter.checksum())
        if self.ns_filter is not None:
            sums.append(self.ns_filter.get_checksum())
        sums.extend(fnv_hash(cluster) for cluster in self.applicable_clusters)
        sums.extend(fnv_hash(ts.cluster_name + str(ts.weight)) for ts in self.traffic_split)
        self.checksum = add_checksum(*sums)

    def update_global_filter(self, old_gdp: GlobalDeploymentPolicy,
                             new_gdp: GlobalDeploymentPolicy) -> Tuple[bool, bool]:
        """Apply an updated policy.

        Returns:
            (filter updated, traffic weights changed). (False, False) when the
            checksums match.
        """
        nf = GlobalFilter()
        nf.add_to_filter(new_gdp)

        logger.info("Got a policy update event", gdp=old_gdp.name, namespace=old_gdp.namespace)
        with self.lock.write_locked():
            logger.debug("Comparing filter checksums", old_checksum=self.checksum, new_checksum=nf.checksum)
            if self.checksum == nf.checksum:
                return False, False

            # Same namespace selector: keep the namespaces already selected.
            if (self.ns_filter is not None and nf.ns_filter is not None
                    and self.ns_filter.get_checksum() == nf.ns_filter.get_checksum()):
                nf.ns_filter.copy_selected_from(self.ns_filter)

            self.app_filter = nf.app_filter
            self.ns_filter = nf.ns_filter
            self.traffic_split = nf.traffic_split
            self.applicable_clusters = nf.applicable_clusters
            self.checksum = nf.checksum

        traffic_weight_changed = is_traffic_weight_changed(new_gdp, old_gdp)
        logger.info("Filter changed, objects will be re-evaluated",
                    gdp=new_gdp.name,
                    namespace=new_gdp.namespace,
                    traffic_weight_changed=traffic_weight_changed)
        return True, traffic_weight_changed

    def delete_from_global_filter(self, gdp: Optional[GlobalDeploymentPolicy] = None) -> None:
        """Reset the filter to its empty state."""
        with self.lock.write_locked():
            self.app_filter = None
            self.ns_filter = None
            self.applicable_clusters = []
            self.checksum = 0
            self.traffic_split = []
        logger.info("Global filter cleared", gdp=gdp.name if gdp else None)

    def get_traffic_weight(self, namespace: str, cluster: str) -> int:
        """Configured weight for cluster.

        Raises:
            NoTrafficWeightError: if the cluster has no weight.
        """
        with self.lock.read_locked():
            for ts in self.traffic_split:
                if ts.cluster_name == cluster:
                    return ts.weight
        logger.info("No weight available for this cluster", cluster=cluster, namespace=namespace)
        raise NoTrafficWeightError(cluster)

    def evaluate(self, obj: Filterable) -> Tuple[bool, FilterReason]:
        """Decide whether obj is federated, and why."""
        cluster = obj.get_cluster()
        namespace = obj.get_namespace()
        with self.lock.read_locked():
            if cluster not in self.applicable_clusters:
                return False, FilterReason.CLUSTER_NOT_SELECTED

            if self.ns_filter is not None:
                has_cluster, selected = self.ns_filter.is_selected(cluster, namespace)
                if not has_cluster:
                    return False, FilterReason.NO_NAMESPACES_FOR_CLUSTER
                if not selected:
                    return False, FilterReason.NAMESPACE_NOT_SELECTED
                if self.app_filter is None:
                    return True, FilterReason.NAMESPACE_SELECTED
                if self.app_filter.label.matches(obj.labels):
                    return True, FilterReason.NAMESPACE_AND_APP_SELECTED
                return False, FilterReason.APP_SELECTOR_MISMATCH

            if self.app_filter is None:
                return False, FilterReason.NO_SELECTOR
            if self.app_filter.label.matches(obj.labels):
                return True, FilterReason.APP_SELECTED
            return False, FilterReason.APP_SELECTOR_MISMATCH

    def apply_filter(self, obj: Filterable) -> bool:
        accepted, reason = self.evaluate(obj)
        log_filter_decision(logger, obj.get_type(), obj.get_cluster(), obj.get_namespace(),
                            obj.get_name(), accepted, reason.value)
        return accepted

    def snapshot(self) -> FilterSnapshot:
        with self.lock.read_locked():
            return FilterSnapshot(
                app_filter={"key": self.app_filter.label.key, "value": self.app_filter.label.value}
                if self.app_filter else None,
                ns_filter={"key": self.ns_filter.label.key, "value": self.ns_filter.label.value}
                if self.ns_filter else None,
                selected_namespaces=self.ns_filter.selected_snapshot() if self.ns_filter else {},
                applicable_clusters=list(self.applicable_clusters),
                traffic_split={ts.cluster_name: ts.weight for ts in self.traffic_split},
                checksum=self.checksum,
            )


class GDPObj:
    """Pointer to the authoritative policy object."""

    def __init__(self) -> None:
        self.name = ""
        self.namespace = ""
        self._lock = ReadWriteLock()

    def set(self, name: str, namespace: str) -> None:
        with self._lock.write_locked():
            self.name = name
            self.namespace = namespace

    def get(self) -> Tuple[str, str]:
        with self._lock.read_locked():
            return self.name, self.namespace

    def clear(self) -> None:
        self.set("", "")

    def is_empty(self) -> bool:
        with self._lock.read_locked():
            return self.name == "" and self.namespace == ""
