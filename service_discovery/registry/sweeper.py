"""Background pruning of expired leases."""

import logging

from ..cancellation import CancelToken
from ..worker import BackgroundWorker
from .lease_store import LeaseStore

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL = 5.0


class ExpirySweeper(BackgroundWorker):
    """Periodically removes expired leases from a LeaseStore."""

    name = "lease-sweeper"

    def __init__(self, store: LeaseStore, interval: float = DEFAULT_SWEEP_INTERVAL):
        super().__init__()
        if interval <= 0:
            raise ValueError(f"sweep interval must be positive, got {interval}")
        self.store = store
        self.interval = interval

    def run(self, cancel: CancelToken) -> None:
        logger.debug("Sweeping expired leases every %.1fs", self.interval)
        while not cancel.cancelled:
            cancel.sleep(self.interval)
            try:
                removed = self.store.sweep()
            except Exception:
                logger.exception("Lease sweep failed")
                continue
            if removed:
                logger.info("Expired %d lease(s)", removed)
