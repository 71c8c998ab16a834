"""Supervised background threads with an explicit shutdown signal."""

import logging
import threading
from typing import Optional

from .cancellation import CancelToken
from .errors import Cancelled

logger = logging.getLogger(__name__)


class BackgroundWorker:
    """A long-lived task running on its own thread.

    Subclasses implement ``run(cancel)``, which must return (or raise
    Cancelled) once the token fires. ``stop()`` cancels and joins, so no work
    from this worker happens after it returns.
    """

    name = "worker"

    def __init__(self):
        self._cancel = CancelToken()
        self._thread: Optional[threading.Thread] = None
        self._started = False

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the worker thread.

        Raises:
            RuntimeError: If the worker was already started.
        """
        if self._started:
            raise RuntimeError(f"{self.name} already started")
        self._started = True
        self._thread = threading.Thread(
            target=self._main, name=self.name, daemon=True
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Signal shutdown and wait for the thread to exit."""
        self._cancel.cancel()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("%s did not stop within %.1fs", self.name, timeout)
                return
        self._cancel.close()

    def run(self, cancel: CancelToken) -> None:
        raise NotImplementedError

    def _main(self) -> None:
        try:
            self.run(self._cancel)
        except Cancelled:
            pass
        except Exception:
            logger.exception("%s crashed", self.name)
        finally:
            logger.debug("%s stopped", self.name)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *args):
        self.stop()
