"""gslbfed: Federation of load balancing endpoints across Kubernetes clusters."""

__version__ = "0.1.0"

# Lazy imports to avoid loading heavy dependencies for CLI usage
__all__ = [
    "FederationContext",
    "GlobalFilter",
    "ClusterStore",
    "FederatorConfig",
    "GlobalDeploymentPolicy",
]


def __getattr__(name):
    if name == "FederationContext":
        from .context import FederationContext
        return FederationContext
    elif name == "GlobalFilter":
        from .filter import GlobalFilter
        return GlobalFilter
    elif name == "ClusterStore":
        from .store import ClusterStore
        return ClusterStore
    elif name == "FederatorConfig":
        from .models import FederatorConfig
        return FederatorConfig
    elif name == "GlobalDeploymentPolicy":
        from .models import GlobalDeploymentPolicy
        return GlobalDeploymentPolicy
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
