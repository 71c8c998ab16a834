"""Registry module - lease store, expiry sweeper, hub and its clients."""

from .lease_store import MIN_TTL_SECONDS, Lease, LeaseInfo, LeaseStore
from .sweeper import DEFAULT_SWEEP_INTERVAL, ExpirySweeper
from .announcer import RegistryAnnouncer, RegistryResolver

__all__ = [
    "MIN_TTL_SECONDS",
    "Lease",
    "LeaseInfo",
    "LeaseStore",
    "DEFAULT_SWEEP_INTERVAL",
    "ExpirySweeper",
    "RegistryAnnouncer",
    "RegistryResolver",
]
