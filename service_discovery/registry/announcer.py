"""Pull-registry roles: keepalive registration and single-shot lookup."""

import logging
import time
from typing import Optional

import requests

from ..cancellation import CancelToken
from ..discovery.protocol import Announcer, Endpoint, ResolveOutcome, Resolver
from ..transport.http_client import RegistryClient
from ..worker import BackgroundWorker

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30
DEFAULT_KEEPALIVE_INTERVAL = 10.0


class RegistryAnnouncer(BackgroundWorker, Announcer):
    """Keeps a lease alive by re-registering on a fixed interval.

    Failures to reach the hub are logged and retried on the next tick.
    """

    name = "registry-keepalive"

    def __init__(
        self,
        client: RegistryClient,
        service: str,
        endpoint: Endpoint,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        interval: float = DEFAULT_KEEPALIVE_INTERVAL,
        meta: Optional[dict[str, str]] = None,
        deregister_on_stop: bool = False,
    ):
        """Initialize announcer.

        Args:
            client: Client for the hub.
            service: Service name to register under.
            endpoint: Address this instance serves on.
            ttl_seconds: Lease lifetime requested on every push.
            interval: Seconds between pushes; keep it below ttl_seconds.
            meta: Metadata sent with every push.
            deregister_on_stop: Drop the lease when stopping.
        """
        super().__init__()
        if not service:
            raise ValueError("service name must not be empty")
        if interval <= 0:
            raise ValueError(f"keepalive interval must be positive, got {interval}")
        self.client = client
        self.service = service
        self.endpoint = endpoint
        self.ttl_seconds = ttl_seconds
        self.interval = interval
        self.meta = meta
        self.deregister_on_stop = deregister_on_stop
        self.failures = 0

    def push_once(self, cancel: Optional[CancelToken] = None) -> bool:
        """Register once. Returns False (after logging) if the hub was unreachable."""
        try:
            ack = self.client.register(
                self.service,
                self.endpoint.ip,
                self.endpoint.port,
                self.ttl_seconds,
                meta=self.meta,
                cancel=cancel,
            )
        except (requests.RequestException, ValueError) as e:
            self.failures += 1
            logger.warning("Registration of %s failed: %s", self.service, e)
            return False

        logger.debug("Registered %s at %s until %s", self.service, self.endpoint, ack.expires_at)
        return True

    def run(self, cancel: CancelToken) -> None:
        logger.info(
            "Registering %s at %s every %.1fs (ttl %ds)",
            self.service, self.endpoint, self.interval, self.ttl_seconds,
        )
        while True:
            self.push_once(cancel)
            cancel.sleep(self.interval)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        super().stop(timeout)
        if self.deregister_on_stop:
            try:
                self.client.deregister(self.service, self.endpoint.ip, self.endpoint.port)
                logger.info("Deregistered %s at %s", self.service, self.endpoint)
            except requests.RequestException as e:
                logger.warning("Deregistration of %s failed: %s", self.service, e)


class RegistryResolver(Resolver):
    """Single lookup against the hub; the first active lease wins.

    Retrying an empty answer is left to the caller.
    """

    source = "registry"

    def __init__(self, client: RegistryClient):
        self.client = client

    def resolve(
        self, service: str, cancel: Optional[CancelToken] = None
    ) -> ResolveOutcome:
        start = time.monotonic()
        try:
            leases = self.client.discover(service, cancel=cancel)
        except (requests.RequestException, ValueError) as e:
            logger.warning("Registry lookup for %s failed: %s", service, e)
            leases = []

        endpoint = None
        if leases:
            first = leases[0]
            endpoint = Endpoint(first.ip, first.port)
            logger.info("Discovered %s at %s (ttl %ds)", service, endpoint, first.ttl_seconds)
        else:
            logger.info("No active lease for %s", service)

        return ResolveOutcome(
            endpoint=endpoint,
            attempts=1,
            elapsed=time.monotonic() - start,
            source=self.source,
        )
