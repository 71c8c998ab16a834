"""Build announcers and resolvers for a transport name from settings."""

from typing import Callable

from .discovery.prober import BroadcastResolver, MulticastResolver
from .discovery.protocol import Announcer, Endpoint, Resolver
from .discovery.resolver import RetryConfig
from .discovery.responder import BroadcastResponder, MulticastResponder
from .registry.announcer import RegistryAnnouncer, RegistryResolver
from .settings import Settings
from .transport.http_client import RegistryClient
from .transport.retry_policy import no_retry_policy

REGISTRY = "registry"
BROADCAST = "broadcast"
MULTICAST = "multicast"


def _registry_client(settings: Settings) -> RegistryClient:
    return RegistryClient(
        settings.registry.url,
        retry_policy=no_retry_policy(),
        request_timeout=settings.registry.request_timeout,
    )


def _retry(settings: Settings) -> RetryConfig:
    return RetryConfig(
        attempts=settings.resolver.attempts,
        attempt_timeout=settings.resolver.attempt_timeout,
    )


def _registry_announcer(settings: Settings, service: str, endpoint: Endpoint) -> Announcer:
    return RegistryAnnouncer(
        _registry_client(settings),
        service,
        endpoint,
        ttl_seconds=settings.service.ttl,
        interval=settings.service.keepalive_interval,
        meta=settings.service.meta or None,
    )


def _broadcast_announcer(settings: Settings, service: str, endpoint: Endpoint) -> Announcer:
    return BroadcastResponder(endpoint, port=settings.broadcast.port)


def _multicast_announcer(settings: Settings, service: str, endpoint: Endpoint) -> Announcer:
    return MulticastResponder(
        endpoint,
        group=settings.multicast.group,
        port=settings.multicast.port,
    )


def _registry_resolver(settings: Settings) -> Resolver:
    return RegistryResolver(_registry_client(settings))


def _broadcast_resolver(settings: Settings) -> Resolver:
    return BroadcastResolver(
        port=settings.broadcast.port,
        broadcast_address=settings.broadcast.address,
        retry=_retry(settings),
    )


def _multicast_resolver(settings: Settings) -> Resolver:
    return MulticastResolver(
        group=settings.multicast.group,
        port=settings.multicast.port,
        ttl=settings.multicast.ttl,
        retry=_retry(settings),
    )


ANNOUNCERS: dict[str, Callable[[Settings, str, Endpoint], Announcer]] = {
    REGISTRY: _registry_announcer,
    BROADCAST: _broadcast_announcer,
    MULTICAST: _multicast_announcer,
}

RESOLVERS: dict[str, Callable[[Settings], Resolver]] = {
    REGISTRY: _registry_resolver,
    BROADCAST: _broadcast_resolver,
    MULTICAST: _multicast_resolver,
}

TRANSPORT_NAMES = tuple(RESOLVERS)


def make_announcer(kind: str, settings: Settings, service: str, endpoint: Endpoint) -> Announcer:
    """Announcer for ``kind``.

    Raises:
        ValueError: For an unknown transport name.
    """
    try:
        factory = ANNOUNCERS[kind]
    except KeyError:
        raise ValueError(f"Unknown transport '{kind}'. Must be one of: {', '.join(TRANSPORT_NAMES)}")
    return factory(settings, service, endpoint)


def make_resolver(kind: str, settings: Settings) -> Resolver:
    """Resolver for ``kind``.

    Raises:
        ValueError: For an unknown transport name.
    """
    try:
        factory = RESOLVERS[kind]
    except KeyError:
        raise ValueError(f"Unknown transport '{kind}'. Must be one of: {', '.join(TRANSPORT_NAMES)}")
    return factory(settings)
