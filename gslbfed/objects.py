"""Federation metadata for ingress hosts, routes and LoadBalancer services.

Each kind is a flat model exposing the same method contract. Instances are
the minimal information kept for every object, accepted or rejected.
"""

import ipaddress
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from .exceptions import NoHostnameError, NoLoadBalancerAddressError, NoPathsError, UnsupportedCapabilityError
from .filter import GlobalFilter
from .hostmap import HostMaps
from .logging_config import get_logger
from .models import (
    DefaultHTTPSHealthMonitorPort,
    IngressObj,
    LBSvcObj,
    PassthroughRoute,
    ProtocolTCP,
    RouteObj,
)
from .utils import add_checksum, fnv_hash, k8s_get, multi_cluster_key, stringify

logger = get_logger(__name__)


def _object_checksum(cluster: str, namespace: str, name: str,
                     hostname: str, ip_addr: str, paths: List[str]) -> int:
    # Paths are sorted so discovery order doesn't change the checksum.
    return add_checksum(
        fnv_hash(cluster),
        fnv_hash(namespace),
        fnv_hash(name),
        fnv_hash(hostname),
        fnv_hash(ip_addr),
        fnv_hash(stringify(sorted(paths))),
    )


class IngressHostMeta(BaseModel):
    """One virtual host of an ingress."""

    cluster: str
    ing_name: str
    obj_name: str
    namespace: str
    hostname: str
    ip_addr: str
    labels: Dict[str, str] = Field(default_factory=dict)
    paths: List[str] = Field(default_factory=list)
    tls: bool = False

    def get_type(self) -> str:
        return IngressObj

    def get_name(self) -> str:
        return self.obj_name

    def get_namespace(self) -> str:
        return self.namespace

    def get_cluster(self) -> str:
        return self.cluster

    def get_hostname(self) -> str:
        return self.hostname

    def get_ip_addr(self) -> str:
        return self.ip_addr

    def get_ingress_host_meta_key(self) -> str:
        return self.ing_name + "/" + self.hostname

    def get_federation_key(self) -> str:
        return multi_cluster_key(self.cluster, self.namespace, IngressObj, self.obj_name)

    def get_port(self) -> int:
        raise UnsupportedCapabilityError(IngressObj, "get_port")

    def get_protocol(self) -> str:
        raise UnsupportedCapabilityError(IngressObj, "get_protocol")

    def get_paths(self) -> List[str]:
        if not self.paths:
            raise NoPathsError(IngressObj, self.obj_name)
        return list(self.paths)

    def get_tls(self) -> bool:
        return self.tls

    def is_passthrough(self) -> bool:
        return False

    def ingress_host_in_list(self, ihm_list: List["IngressHostMeta"]) -> Optional["IngressHostMeta"]:
        for ihm in ihm_list:
            if ihm.hostname == self.hostname:
                return ihm
        return None

    def get_checksum(self) -> int:
        return _object_checksum(self.cluster, self.namespace, self.ing_name,
                                self.hostname, self.ip_addr, self.paths)

    def apply_filter(self, global_filter: GlobalFilter) -> bool:
        return global_filter.apply_filter(self)

    def update_host_map(self, host_maps: HostMaps, key: str) -> None:
        host_maps.ingress.remember(key, self.ip_addr, self.hostname)

    def get_hostname_from_host_map(self, host_maps: HostMaps, key: str) -> str:
        return host_maps.ingress.recall(key)

    def delete_map_by_key(self, host_maps: HostMaps, key: str) -> None:
        host_maps.ingress.forget(key)


class RouteMeta(BaseModel):
    """An OpenShift route. Passthrough routes carry only port and protocol."""

    cluster: str
    name: str
    namespace: str
    hostname: str
    ip_addr: str
    labels: Dict[str, str] = Field(default_factory=dict)
    paths: List[str] = Field(default_factory=list)
    tls: bool = False
    port: int = 0
    protocol: str = ""
    passthrough: bool = False

    def get_type(self) -> str:
        return RouteObj

    def get_name(self) -> str:
        return self.name

    def get_namespace(self) -> str:
        return self.namespace

    def get_cluster(self) -> str:
        return self.cluster

    def get_hostname(self) -> str:
        return self.hostname

    def get_ip_addr(self) -> str:
        return self.ip_addr

    def get_federation_key(self) -> str:
        return multi_cluster_key(self.cluster, self.namespace, RouteObj, self.name)

    def get_port(self) -> int:
        if self.passthrough:
            return self.port
        raise UnsupportedCapabilityError(RouteObj, "get_port")

    def get_protocol(self) -> str:
        if self.passthrough:
            return self.protocol
        raise UnsupportedCapabilityError(RouteObj, "get_protocol")

    def get_paths(self) -> List[str]:
        if not self.paths:
            raise NoPathsError(RouteObj, self.name)
        return list(self.paths)

    def get_tls(self) -> bool:
        return self.tls

    def is_passthrough(self) -> bool:
        return self.passthrough

    def get_checksum(self) -> int:
        return _object_checksum(self.cluster, self.namespace, self.name,
                                self.hostname, self.ip_addr, self.paths)

    def apply_filter(self, global_filter: GlobalFilter) -> bool:
        return global_filter.apply_filter(self)

    def update_host_map(self, host_maps: HostMaps, key: str) -> None:
        host_maps.route.remember(key, self.ip_addr, self.hostname)

    def get_hostname_from_host_map(self, host_maps: HostMaps, key: str) -> str:
        return host_maps.route.recall(key)

    def delete_map_by_key(self, host_maps: HostMaps, key: str) -> None:
        host_maps.route.forget(key)


class SvcMeta(BaseModel):
    """A Service of type LoadBalancer."""

    cluster: str
    name: str
    namespace: str
    hostname: str
    ip_addr: str
    labels: Dict[str, str] = Field(default_factory=dict)

    def get_type(self) -> str:
        return LBSvcObj

    def get_name(self) -> str:
        return self.name

    def get_namespace(self) -> str:
        return self.namespace

    def get_cluster(self) -> str:
        return self.cluster

    def get_hostname(self) -> str:
        return self.hostname

    def get_ip_addr(self) -> str:
        return self.ip_addr

    def get_federation_key(self) -> str:
        return multi_cluster_key(self.cluster, self.namespace, LBSvcObj, self.name)

    def get_port(self) -> int:
        raise UnsupportedCapabilityError(LBSvcObj, "get_port")

    def get_protocol(self) -> str:
        raise UnsupportedCapabilityError(LBSvcObj, "get_protocol")

    def get_paths(self) -> List[str]:
        raise NoPathsError(LBSvcObj, self.name)

    def get_tls(self) -> bool:
        return False

    def is_passthrough(self) -> bool:
        return False

    def get_checksum(self) -> int:
        return _object_checksum(self.cluster, self.namespace, self.name,
                                self.hostname, self.ip_addr, [])

    def apply_filter(self, global_filter: GlobalFilter) -> bool:
        return global_filter.apply_filter(self)

    def update_host_map(self, host_maps: HostMaps, key: str) -> None:
        host_maps.service.remember(key, self.ip_addr, self.hostname)

    def get_hostname_from_host_map(self, host_maps: HostMaps, key: str) -> str:
        return host_maps.service.recall(key)

    def delete_map_by_key(self, host_maps: HostMaps, key: str) -> None:
        host_maps.service.forget(key)


ObjectMeta = Union[IngressHostMeta, RouteMeta, SvcMeta]


def ingress_get_ip_addrs(ingress: Any) -> List[Dict[str, str]]:
    """Virtual hosts of an ingress that have both a hostname and an IP."""
    host_ips: List[Dict[str, str]] = []
    seen = set()
    for lb in k8s_get(ingress, "status", "load_balancer", "ingress", default=[]):
        ip = k8s_get(lb, "ip", default="")
        hostname = k8s_get(lb, "hostname", default="")
        if not ip or not hostname or hostname in seen:
            continue
        seen.add(hostname)
        host_ips.append({"hostname": hostname, "ip": ip})
    return host_ips


def get_paths_for_host(host: str, ingress: Any) -> List[str]:
    """Paths of every rule for host, de-duplicated in order, default "/"."""
    path_list: List[str] = []
    for rule in k8s_get(ingress, "spec", "rules", default=[]):
        if k8s_get(rule, "host", default="") != host:
            continue
        for path in k8s_get(rule, "http", "paths", default=[]):
            path_key = k8s_get(path, "path", default="") or "/"
            if path_key not in path_list:
                path_list.append(path_key)
    if not path_list:
        path_list.append("/")
    return path_list


def get_tls_hosts(ingress: Any) -> List[str]:
    tls_hosts: List[str] = []
    for tls in k8s_get(ingress, "spec", "tls", default=[]):
        for host in k8s_get(tls, "hosts", default=[]):
            if host not in tls_hosts:
                tls_hosts.append(host)
    return tls_hosts


def get_ingress_host_meta(ingress: Any, cluster: str) -> List[IngressHostMeta]:
    """Split an ingress into one metadata object per IP-bearing host."""
    name = k8s_get(ingress, "metadata", "name")
    namespace = k8s_get(ingress, "metadata", "namespace", default="default")
    labels = dict(k8s_get(ingress, "metadata", "labels", default={}))
    tls_hosts = get_tls_hosts(ingress)

    metas = []
    for hip in ingress_get_ip_addrs(ingress):
        hostname = hip["hostname"]
        metas.append(IngressHostMeta(
            cluster=cluster,
            ing_name=name,
            obj_name=name + "/" + hostname,
            namespace=namespace,
            hostname=hostname,
            ip_addr=hip["ip"],
            labels=dict(labels),
            paths=get_paths_for_host(hostname, ingress),
            tls=hostname in tls_hosts,
        ))
    logger.debug("Built ingress host metadata", cluster=cluster, namespace=namespace,
                 ingress=name, hosts=[m.hostname for m in metas])
    return metas


def route_get_ip_addr(route: Any) -> Optional[str]:
    """First status condition message that is an IP address."""
    for ingr in k8s_get(route, "status", "ingress", default=[]):
        for condition in k8s_get(ingr, "conditions", default=[]):
            message = k8s_get(condition, "message", default="")
            if not message:
                continue
            try:
                ipaddress.ip_address(message)
            except ValueError:
                continue
            return message
    return None


def get_route_meta(route: Any, cluster: str) -> RouteMeta:
    meta = RouteMeta(
        cluster=cluster,
        name=k8s_get(route, "metadata", "name"),
        namespace=k8s_get(route, "metadata", "namespace", default="default"),
        hostname=k8s_get(route, "spec", "host", default=""),
        ip_addr=route_get_ip_addr(route) or "",
        labels=dict(k8s_get(route, "metadata", "labels", default={})),
    )

    tls = k8s_get(route, "spec", "tls")
    if tls is not None:
        if k8s_get(tls, "termination", default="") == PassthroughRoute:
            # Passthrough routes aren't path addressable.
            meta.port = DefaultHTTPSHealthMonitorPort
            meta.protocol = ProtocolTCP
            meta.passthrough = True
            return meta
        meta.tls = True

    meta.paths = [k8s_get(route, "spec", "path", default="") or "/"]
    return meta


def is_svc_type_lb(svc: Any) -> bool:
    return k8s_get(svc, "spec", "type", default="") == "LoadBalancer"


def get_svc_meta(svc: Any, cluster: str) -> SvcMeta:
    """Metadata for a LoadBalancer service.

    Raises:
        NoLoadBalancerAddressError: if no address has been assigned yet.
        NoHostnameError: if the address carries an IP but no hostname.
    """
    name = k8s_get(svc, "metadata", "name")
    namespace = k8s_get(svc, "metadata", "namespace", default="default")
    lb_ingress = k8s_get(svc, "status", "load_balancer", "ingress", default=[])
    if not lb_ingress:
        raise NoLoadBalancerAddressError(cluster, namespace, name)
    ip = k8s_get(lb_ingress[0], "ip", default="")
    hostname = k8s_get(lb_ingress[0], "hostname", default="")
    if not ip and not hostname:
        raise NoLoadBalancerAddressError(cluster, namespace, name)
    if not hostname:
        # Graph keys are per hostname, an IP alone can't be published.
        raise NoHostnameError(LBSvcObj, cluster, namespace, name)
    return SvcMeta(
        cluster=cluster,
        name=name,
        namespace=namespace,
        hostname=hostname,
        ip_addr=ip,
        labels=dict(k8s_get(svc, "metadata", "labels", default={})),
    )
