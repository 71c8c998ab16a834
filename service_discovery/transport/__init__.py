"""Transport module - HTTP communication with the registry hub."""

from .http_client import (
    DEFAULT_REGISTRY_URL,
    DiscoveredLease,
    Registration,
    RegistryClient,
)
from .retry_policy import (
    RetryPolicy,
    default_retry_policy,
    no_retry_policy,
)

__all__ = [
    "DEFAULT_REGISTRY_URL",
    "DiscoveredLease",
    "Registration",
    "RegistryClient",
    "RetryPolicy",
    "default_retry_policy",
    "no_retry_policy",
]
