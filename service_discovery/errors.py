"""Exception types for service discovery.

Timeouts are not errors here: an exhausted probe budget or an empty registry
answer is reported through ``ResolveOutcome.found``.
"""


class DiscoveryError(Exception):
    """Base class for service discovery errors."""


class MalformedPayload(DiscoveryError):
    """A datagram or record could not be parsed into an endpoint."""


class Cancelled(DiscoveryError):
    """A blocking operation was interrupted by its cancel token."""


class ConfigError(DiscoveryError):
    """Settings file is missing, unreadable or has the wrong shape."""
