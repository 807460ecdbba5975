"""Data models for gslbfed configuration and policy documents."""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# Object kinds, also used as the kind component of federation keys.
IngressObj = "Ingress"
RouteObj = "Route"
LBSvcObj = "LBSvc"
OBJECT_TYPES = (IngressObj, RouteObj, LBSvcObj)

PassthroughRoute = "passthrough"
DefaultHTTPSHealthMonitorPort = 443
ProtocolTCP = "TCP"

GDP_GROUP = "amko.vmware.com"
GDP_VERSION = "v1alpha1"
GDP_PLURAL = "globaldeploymentpolicies"
ROUTE_GROUP = "route.openshift.io"
ROUTE_VERSION = "v1"
ROUTE_PLURAL = "routes"


class ClusterConfig(BaseModel):
    """Configuration for a member Kubernetes cluster."""

    name: str = Field(..., description="Cluster name identifier, as used in matchClusters")
    kubeconfig_path: Optional[str] = Field(None, description="Path to kubeconfig file")
    context: Optional[str] = Field(None, description="Kubernetes context name")
    enabled: bool = Field(True, description="Whether to watch this cluster")


class WorkerConfig(BaseModel):
    """Number of workers per pipeline stage."""

    ingestion: int = Field(4, ge=1, description="Object ingestion layer workers")
    graph: int = Field(4, ge=1, description="Graph layer workers")
    rest: int = Field(4, ge=1, description="REST layer workers")
    retry: int = Field(1, ge=1, description="Retry layer workers")


class FederatorConfig(BaseModel):
    """Top level configuration for the federator process."""

    clusters: List[ClusterConfig] = Field(default_factory=list, description="Member cluster configurations")
    gdp_namespace: str = Field("avi-system", description="Namespace watched for the GlobalDeploymentPolicy")
    tenant: str = Field("admin", description="Tenant prefix of the keys handed to the graph layer")
    gdp_cluster: Optional[str] = Field(None, description="Cluster holding the policy; defaults to the first cluster")
    workers: WorkerConfig = Field(default_factory=WorkerConfig, description="Worker pool sizes")
    watch_timeout_seconds: int = Field(300, ge=1, description="Server side timeout of a single watch call")
    enable_ingress: bool = Field(True, description="Federate Ingress hosts")
    enable_route: bool = Field(True, description="Federate OpenShift Routes")
    enable_service: bool = Field(True, description="Federate LoadBalancer Services")


class Selector(BaseModel):
    """Label selector; only a single key/value pair is meaningful."""

    label: Dict[str, str] = Field(default_factory=dict, description="Label pairs to match")


class MatchRules(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    app_selector: Selector = Field(default_factory=Selector, alias="appSelector")
    namespace_selector: Selector = Field(default_factory=Selector, alias="namespaceSelector")


class TrafficSplitEntry(BaseModel):
    cluster: str = Field(..., description="Member cluster name")
    weight: int = Field(..., ge=0, description="Relative traffic weight")


class GDPSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    match_rules: MatchRules = Field(default_factory=MatchRules, alias="matchRules")
    match_clusters: List[str] = Field(default_factory=list, alias="matchClusters")
    traffic_split: List[TrafficSplitEntry] = Field(default_factory=list, alias="trafficSplit")


class ObjectMeta(BaseModel):
    name: str = Field(..., description="Object name")
    namespace: str = Field("default", description="Object namespace")


class GlobalDeploymentPolicy(BaseModel):
    """The federation policy custom resource."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    metadata: ObjectMeta
    spec: GDPSpec = Field(default_factory=GDPSpec)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace


class FilterSnapshot(BaseModel):
    """Read-only view of the global filter, for display."""

    app_filter: Optional[Dict[str, str]] = None
    ns_filter: Optional[Dict[str, str]] = None
    selected_namespaces: Dict[str, List[str]] = Field(default_factory=dict)
    applicable_clusters: List[str] = Field(default_factory=list)
    traffic_split: Dict[str, int] = Field(default_factory=dict)
    checksum: int = 0
