"""Discovery module - broadcast and multicast probe/response discovery."""

from .protocol import Announcer, Endpoint, ResolveOutcome, Resolver
from .resolver import ClientResolver, ProbeExchange, RetryConfig
from .responder import (
    DEFAULT_DISCOVERY_PORT,
    DEFAULT_MULTICAST_GROUP,
    BroadcastResponder,
    MulticastResponder,
)
from .prober import (
    BroadcastProbeExchange,
    BroadcastResolver,
    MulticastProbeExchange,
    MulticastResolver,
)

__all__ = [
    "Announcer",
    "Endpoint",
    "ResolveOutcome",
    "Resolver",
    "ClientResolver",
    "ProbeExchange",
    "RetryConfig",
    "DEFAULT_DISCOVERY_PORT",
    "DEFAULT_MULTICAST_GROUP",
    "BroadcastResponder",
    "MulticastResponder",
    "BroadcastProbeExchange",
    "BroadcastResolver",
    "MulticastProbeExchange",
    "MulticastResolver",
]
