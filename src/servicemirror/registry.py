"""Local mirror of service instances.

``ServiceRegistry`` is written by the sync actor and read by arbitrary
callers, possibly on other threads. Every mutation builds a new immutable
snapshot and swaps it in under a lock; readers grab the current snapshot
without locking and can never observe a half-applied change to a service.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from servicemirror.instance import InstanceConfig

__all__ = ["Instances", "ServiceRegistry", "Snapshot"]

logger = logging.getLogger("servicemirror.registry")

type Instances = Mapping[str, InstanceConfig]
type Snapshot = Mapping[str, Instances]

_EMPTY: Instances = MappingProxyType({})


class ServiceRegistry:
    """Thread-safe mapping of service name to its instances.

    Examples
    --------
    >>> registry = ServiceRegistry()
    >>> registry.upsert("checkout", "host1", InstanceConfig("10.0.0.1", 8080))
    >>> dict(registry.get("checkout"))
    {'host1': InstanceConfig(host='10.0.0.1', port=8080, name='', weight=None)}
    >>> registry.get("billing") is None
    True
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot: Snapshot = MappingProxyType({})

    def get(self, service: str) -> Instances | None:
        """Instances of *service*, or ``None`` when the service is unknown."""
        return self._snapshot.get(service)

    def get_all(self) -> Snapshot:
        """The whole registry as one consistent, read-only snapshot."""
        return self._snapshot

    def services(self) -> frozenset[str]:
        return frozenset(self._snapshot)

    def __contains__(self, service: object) -> bool:
        return service in self._snapshot

    def __len__(self) -> int:
        return len(self._snapshot)

    def _swap(self, service: str, instances: Instances | None) -> None:
        # callers hold self._lock
        current = dict(self._snapshot)
        if instances is None:
            current.pop(service, None)
        else:
            current[service] = instances
        self._snapshot = MappingProxyType(current)

    def ensure_service(self, service: str) -> None:
        """Make *service* known, with no instances if it was not already."""
        with self._lock:
            if service not in self._snapshot:
                self._swap(service, _EMPTY)

    def upsert(self, service: str, node: str, config: InstanceConfig) -> None:
        with self._lock:
            instances = dict(self._snapshot.get(service, _EMPTY))
            instances[node] = config
            self._swap(service, MappingProxyType(instances))

    def remove(self, service: str, node: str) -> bool:
        """Remove one instance; ``False`` when service or node is unknown."""
        with self._lock:
            instances = self._snapshot.get(service)
            if instances is None or node not in instances:
                return False
            remaining = {k: v for k, v in instances.items() if k != node}
            self._swap(service, MappingProxyType(remaining))
            return True

    def replace_service(
        self, service: str, instances: Mapping[str, InstanceConfig],
    ) -> None:
        with self._lock:
            self._swap(service, MappingProxyType(dict(instances)))

    def retain(self, service: str, nodes: Iterable[str]) -> frozenset[str]:
        """Drop every instance of *service* not in *nodes*; return the dropped names."""
        keep = frozenset(nodes)
        with self._lock:
            instances = self._snapshot.get(service)
            if instances is None:
                return frozenset()
            dropped = frozenset(instances) - keep
            if dropped:
                self._swap(
                    service,
                    MappingProxyType({k: v for k, v in instances.items() if k in keep}),
                )
            return dropped

    def drop_service(self, service: str) -> bool:
        with self._lock:
            if service not in self._snapshot:
                return False
            self._swap(service, None)
            return True

    def clear(self) -> None:
        with self._lock:
            self._snapshot = MappingProxyType({})
        logger.debug("Registry cleared")
