"""Per object-kind memory of the last hostname/IP advertised for a key.

Entries outlive the object they were recorded for, so that a delete event
can still resolve which hostname has to be cleaned up downstream.
"""

import threading
from typing import Dict, Optional

from pydantic import BaseModel

from .logging_config import get_logger
from .models import IngressObj, LBSvcObj, RouteObj

logger = get_logger(__name__)


class IPHostname(BaseModel):
    """Last known address of a federated object."""

    ip: str = ""
    hostname: str = ""


class ObjHostMap:
    """Lock protected map of federation key to :class:`IPHostname`."""

    def __init__(self, obj_type: str):
        self.obj_type = obj_type
        self._host_map: Dict[str, IPHostname] = {}
        self._lock = threading.Lock()

    def remember(self, key: str, ip: str, hostname: str) -> None:
        with self._lock:
            self._host_map[key] = IPHostname(ip=ip, hostname=hostname)
        logger.debug("Remembered host", obj_type=self.obj_type, key=key, hostname=hostname, ip=ip)

    def recall(self, key: str) -> str:
        """Return the hostname recorded for key, or "" if never seen."""
        with self._lock:
            entry = self._host_map.get(key)
        if entry is None:
            return ""
        return entry.hostname

    def recall_entry(self, key: str) -> Optional[IPHostname]:
        with self._lock:
            entry = self._host_map.get(key)
        return entry.model_copy() if entry is not None else None

    def forget(self, key: str) -> None:
        with self._lock:
            self._host_map.pop(key, None)
        logger.debug("Forgot host", obj_type=self.obj_type, key=key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._host_map)


class HostMaps:
    """One independent host map per object kind, built at startup."""

    def __init__(self) -> None:
        self._maps: Dict[str, ObjHostMap] = {
            IngressObj: ObjHostMap(IngressObj),
            RouteObj: ObjHostMap(RouteObj),
            LBSvcObj: ObjHostMap(LBSvcObj),
        }

    def for_type(self, obj_type: str) -> ObjHostMap:
        try:
            return self._maps[obj_type]
        except KeyError:
            raise ValueError(f"unknown object type {obj_type}") from None

    @property
    def ingress(self) -> ObjHostMap:
        return self._maps[IngressObj]

    @property
    def route(self) -> ObjHostMap:
        return self._maps[RouteObj]

    @property
    def service(self) -> ObjHostMap:
        return self._maps[LBSvcObj]
