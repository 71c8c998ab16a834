"""HTTP client for the registry hub.

Implements the registry protocol:
- POST /register    - Create or refresh a lease
- POST /deregister  - Drop a lease
- GET /discover     - List active leases for a service
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import requests

from ..cancellation import CancelToken
from .retry_policy import RetryPolicy, default_retry_policy

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_URL = "http://localhost:5000"


@dataclass
class Registration:
    """Acknowledgment of a /register call."""
    status: str
    expires_at: Optional[datetime] = None


@dataclass
class DiscoveredLease:
    """One entry of a /discover answer."""
    service: str
    ip: str
    port: int
    ttl_seconds: int
    meta: Optional[dict[str, str]] = None


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class RegistryClient:
    """HTTP client for a registry hub.

    Communicates with the hub's JSON API. Connection and 5xx errors are
    retried according to the retry policy; anything else is raised.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_REGISTRY_URL,
        retry_policy: Optional[RetryPolicy] = None,
        request_timeout: float = 5.0,
    ):
        """Initialize HTTP client.

        Args:
            base_url: Base URL of the hub (e.g., http://10.0.0.2:5000).
            retry_policy: Retry policy for failed requests.
            request_timeout: Per-request timeout in seconds.
        """
        self.base_url = base_url.rstrip("/")
        self.retry_policy = retry_policy or default_retry_policy()
        self.request_timeout = request_timeout
        self._session = requests.Session()
        self._session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

    def register(
        self,
        service: str,
        ip: str,
        port: int,
        ttl_seconds: int,
        meta: Optional[dict[str, str]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> Registration:
        """Create or refresh a lease.

        POST /register

        Raises:
            requests.RequestException: On transport or HTTP errors.
        """
        payload: dict[str, Any] = {
            "service": service,
            "ip": ip,
            "port": port,
            "ttlSeconds": ttl_seconds,
        }
        if meta:
            payload["meta"] = meta

        response = self._request_with_retry(
            "POST", f"{self.base_url}/register", cancel=cancel, json=payload
        )
        data = response.json()
        return Registration(
            status=data.get("status", ""),
            expires_at=_parse_timestamp(data.get("expiresAt")),
        )

    def deregister(
        self,
        service: str,
        ip: str,
        port: int,
        cancel: Optional[CancelToken] = None,
    ) -> str:
        """Drop a lease.

        POST /deregister

        Returns:
            Status string reported by the hub.
        """
        response = self._request_with_retry(
            "POST",
            f"{self.base_url}/deregister",
            cancel=cancel,
            json={"service": service, "ip": ip, "port": port},
        )
        return response.json().get("status", "")

    def discover(
        self, service: str, cancel: Optional[CancelToken] = None
    ) -> list[DiscoveredLease]:
        """List active leases for ``service``.

        GET /discover?service=...

        Entries without a usable ip or port are skipped.
        """
        response = self._request_with_retry(
            "GET",
            f"{self.base_url}/discover",
            cancel=cancel,
            params={"service": service},
        )
        data = response.json()
        if not isinstance(data, list):
            logger.warning("Unexpected /discover payload: %r", type(data).__name__)
            return []

        leases = []
        for item in data:
            if not isinstance(item, dict):
                continue
            ip = item.get("ip")
            port = item.get("port")
            if not isinstance(ip, str) or not ip.strip() or not isinstance(port, int):
                continue
            leases.append(DiscoveredLease(
                service=item.get("service", service),
                ip=ip,
                port=port,
                ttl_seconds=int(item.get("ttlSeconds") or 0),
                meta=item.get("meta"),
            ))
        return leases

    def _request_with_retry(
        self,
        method: str,
        url: str,
        cancel: Optional[CancelToken] = None,
        **kwargs,
    ) -> requests.Response:
        """Execute HTTP request with retry logic.

        Raises:
            requests.RequestException: After all retries are exhausted.
            Cancelled: If ``cancel`` fires between attempts.
        """
        kwargs.setdefault("timeout", self.request_timeout)
        attempt = 0

        while True:
            if cancel is not None:
                cancel.raise_if_cancelled()

            try:
                response = self._session.request(method, url, **kwargs)
                if response.status_code not in self.retry_policy.retry_statuses:
                    response.raise_for_status()
                    return response
                if not self.retry_policy.should_retry(attempt):
                    response.raise_for_status()
                    return response
                logger.debug("%s %s -> %d, retrying", method, url, response.status_code)

            except (requests.ConnectionError, requests.Timeout) as e:
                if not self.retry_policy.should_retry(attempt):
                    raise
                logger.debug("%s %s failed (%s), retrying", method, url, e)

            delay = self.retry_policy.get_delay(attempt)
            if cancel is not None:
                cancel.sleep(delay)
            else:
                time.sleep(delay)
            attempt += 1

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
