"""Shared helpers: hashing, key handling and locking."""

import json
import threading
from contextlib import contextmanager
from typing import Any, Iterator, List, Tuple

from .exceptions import InvalidFederationKeyError

FNV32_OFFSET_BASIS = 0x811C9DC5
FNV32_PRIME = 0x01000193
UINT32_MASK = 0xFFFFFFFF


def fnv_hash(value: str) -> int:
    """32-bit FNV-1a hash of a string.

    Non-cryptographic: used for checksums and shard selection only.
    """
    h = FNV32_OFFSET_BASIS
    for byte in value.encode("utf-8"):
        h ^= byte
        h = (h * FNV32_PRIME) & UINT32_MASK
    return h


def add_checksum(*values: int) -> int:
    """Sum checksums with uint32 wrap-around."""
    return sum(values) & UINT32_MASK


def stringify(values: List[str]) -> str:
    """Compact JSON encoding of a string list."""
    return json.dumps(values, separators=(",", ":"))


def present_in_list(key: str, str_list: List[str]) -> bool:
    return key in str_list


def bucket(key: str, num_workers: int) -> int:
    """Pick the worker shard for a key."""
    if num_workers <= 1:
        return 0
    return fnv_hash(key) % num_workers


def extract_namespace_object_name(key: str) -> Tuple[str, str]:
    """Split a ``namespace/name`` key.

    Raises:
        InvalidFederationKeyError: if the key has no separator.
    """
    namespace, sep, name = key.partition("/")
    if not sep or not namespace or not name:
        raise InvalidFederationKeyError(key, "namespace/name")
    return namespace, name


def multi_cluster_key(cluster: str, namespace: str, obj_type: str, name: str) -> str:
    """Build a federation key: ``cluster/namespace/objectKind/objectName``.

    Ingress host names already carry ``ingName/hostname``.
    """
    return "/".join([cluster, namespace, obj_type, name])


def split_multi_cluster_key(key: str) -> Tuple[str, str, str, str]:
    """Inverse of :func:`multi_cluster_key`.

    Returns:
        (cluster, namespace, obj_type, name)
    """
    parts = key.split("/", 3)
    if len(parts) != 4 or not all(parts):
        raise InvalidFederationKeyError(key, "cluster/namespace/objectKind/objectName[/hostname]")
    cluster, namespace, obj_type, name = parts
    return cluster, namespace, obj_type, name


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def k8s_get(obj: Any, *path: str, default: Any = None) -> Any:
    """Read a nested field from a kubernetes model object or a plain dict.

    Path components are snake_case attribute names; for dicts the
    camelCase key used in the raw API payload is tried as well.
    """
    current = obj
    for attr in path:
        if current is None:
            return default
        if isinstance(current, dict):
            if attr in current:
                current = current[attr]
            else:
                current = current.get(_camel(attr))
        else:
            current = getattr(current, attr, None)
    return default if current is None else current


class ReadWriteLock:
    """Many readers or one writer.

    Writers are preferred once waiting so a stream of readers can't starve
    a policy update.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
