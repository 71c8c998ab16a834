"""In-memory lease store for the pull registry.

Maps a service name to the endpoints currently serving it. Each entry is a
lease that lapses unless the owner refreshes it before ``expires_at``.
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

# Leases shorter than this are stretched to it.
MIN_TTL_SECONDS = 5


@dataclass(frozen=True)
class Lease:
    """A time-bounded claim that ip:port serves ``service``."""
    service: str
    ip: str
    port: int
    expires_at: float
    meta: Optional[dict[str, str]] = None

    @property
    def key(self) -> tuple[str, int]:
        return (self.ip, self.port)


@dataclass
class LeaseInfo:
    """An active lease as reported to callers."""
    service: str
    ip: str
    port: int
    ttl_seconds: int
    meta: Optional[dict[str, str]] = None

    def to_dict(self) -> dict:
        return {
            "service": self.service,
            "ip": self.ip,
            "port": self.port,
            "ttlSeconds": self.ttl_seconds,
            "meta": self.meta,
        }


class LeaseStore:
    """Thread-safe mapping of service name to active leases.

    A single lock covers every read-modify-write, so concurrent registrations
    for the same service never overwrite each other and the sweeper never sees
    a half-updated bucket. Within a service, leases keep insertion order; a
    refreshed lease moves to the end.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: dict[str, dict[tuple[str, int], Lease]] = {}

    def upsert(
        self,
        service: str,
        ip: str,
        port: int,
        ttl_seconds: float,
        meta: Optional[dict[str, str]] = None,
    ) -> float:
        """Create or refresh the lease for (service, ip, port).

        Args:
            service: Service name (non-empty, case-sensitive).
            ip: Advertised address.
            port: Advertised port.
            ttl_seconds: Requested lifetime; raised to MIN_TTL_SECONDS if lower.
            meta: Optional string metadata stored with the lease.

        Returns:
            Absolute expiry time (epoch seconds).

        Raises:
            ValueError: If the service name is empty.
        """
        if not service:
            raise ValueError("service name must not be empty")

        ttl = max(MIN_TTL_SECONDS, ttl_seconds)
        expires_at = self._clock() + ttl
        lease = Lease(
            service=service,
            ip=ip,
            port=port,
            expires_at=expires_at,
            meta=dict(meta) if meta is not None else None,
        )

        with self._lock:
            bucket = self._buckets.setdefault(service, {})
            bucket.pop(lease.key, None)
            bucket[lease.key] = lease

        return expires_at

    def remove(self, service: str, ip: str, port: int) -> bool:
        """Drop the lease for (service, ip, port) if present.

        Returns:
            True if a lease was removed.
        """
        with self._lock:
            bucket = self._buckets.get(service)
            if bucket is None:
                return False
            removed = bucket.pop((ip, port), None) is not None
            if not bucket:
                del self._buckets[service]
            return removed

    def query(self, service: str, now: Optional[float] = None) -> list[LeaseInfo]:
        """List unexpired leases for ``service`` in insertion order.

        Returns an empty list for unknown services.
        """
        if now is None:
            now = self._clock()

        with self._lock:
            leases = list(self._buckets.get(service, {}).values())

        return [
            LeaseInfo(
                service=lease.service,
                ip=lease.ip,
                port=lease.port,
                ttl_seconds=max(0, math.floor(lease.expires_at - now)),
                meta=dict(lease.meta) if lease.meta is not None else None,
            )
            for lease in leases
            if lease.expires_at > now
        ]

    def sweep(self, now: Optional[float] = None) -> int:
        """Remove expired leases and the buckets they leave empty.

        Returns:
            Number of leases removed.
        """
        if now is None:
            now = self._clock()

        removed = 0
        with self._lock:
            for service in list(self._buckets):
                bucket = self._buckets[service]
                expired = [key for key, lease in bucket.items() if lease.expires_at <= now]
                for key in expired:
                    del bucket[key]
                removed += len(expired)
                if not bucket:
                    del self._buckets[service]
        return removed

    def services(self) -> list[str]:
        """Names of services that currently hold at least one lease."""
        with self._lock:
            return list(self._buckets)

    def __contains__(self, service: str) -> bool:
        with self._lock:
            return service in self._buckets

    def __len__(self) -> int:
        with self._lock:
            return sum(len(bucket) for bucket in self._buckets.values())
