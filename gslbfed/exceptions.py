"""Exception hierarchy for gslbfed."""

from typing import Any, Dict, Optional


class GSLBFederationError(Exception):
    """Base exception for all federation errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format for API responses."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class UnsupportedCapabilityError(GSLBFederationError):
    """Raised when an object kind doesn't support the requested capability.

    Callers treat this as "not applicable", never as a failure.
    """

    def __init__(self, obj_type: str, capability: str):
        super().__init__(
            f"{obj_type} object doesn't support {capability}",
            details={"obj_type": obj_type, "capability": capability},
        )
        self.obj_type = obj_type
        self.capability = capability


class EmptyResultError(GSLBFederationError):
    """Raised when a lookup found nothing. Logged and skipped by callers."""


class NoPathsError(EmptyResultError):
    """Raised when no paths could be derived for an object."""

    def __init__(self, obj_type: str, name: str):
        super().__init__(
            f"no paths for {obj_type} {name}",
            details={"obj_type": obj_type, "name": name},
        )
        self.name = name


class NoTrafficWeightError(EmptyResultError):
    """Raised when a cluster has no configured traffic weight."""

    def __init__(self, cluster: str):
        super().__init__(f"no weight available for cluster {cluster}", details={"cluster": cluster})
        self.cluster = cluster


class NoLoadBalancerAddressError(EmptyResultError):
    """Raised when a service has no load balancer IP or hostname yet."""

    def __init__(self, cluster: str, namespace: str, name: str):
        super().__init__(
            f"no load balancer address for service {namespace}/{name} in cluster {cluster}",
            details={"cluster": cluster, "namespace": namespace, "name": name},
        )


class NoHostnameError(EmptyResultError):
    """Raised when an object carries no hostname to publish under."""

    def __init__(self, obj_type: str, cluster: str, namespace: str, name: str):
        super().__init__(
            f"no hostname for {obj_type} {namespace}/{name} in cluster {cluster}",
            details={"obj_type": obj_type, "cluster": cluster, "namespace": namespace, "name": name},
        )


class FilterStateError(GSLBFederationError):
    """Raised when a filter operation is called in the wrong state."""


class InvalidFederationKeyError(GSLBFederationError):
    """Raised when a key can't be split into its expected parts."""

    def __init__(self, key: str, expected: str):
        super().__init__(
            f"invalid key {key!r}, expected {expected}",
            details={"key": key, "expected": expected},
        )
        self.key = key


class QueueNotFoundError(GSLBFederationError):
    """Raised when a work queue name isn't registered."""

    def __init__(self, name: str):
        super().__init__(f"work queue {name} is not registered", details={"queue": name})
        self.name = name


class ConfigurationError(GSLBFederationError):
    """Raised when the federator configuration can't be loaded."""
