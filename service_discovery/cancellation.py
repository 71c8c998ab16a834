"""Cooperative cancellation for blocking socket and delay operations.

A CancelToken pairs a threading.Event with a connected socket pair. The read
end of the pair is selectable, so a single ``select()`` can wait on a socket
and on cancellation at the same time.
"""

import select
import socket
import threading
import time
from typing import Optional

from .errors import Cancelled


class CancelToken:
    """Signal shared between an owner and the blocking work it may abort."""

    def __init__(self):
        self._event = threading.Event()
        self._reader, self._writer = socket.socketpair()
        self._reader.setblocking(False)
        self._lock = threading.Lock()
        self._closed = False

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation. Safe to call more than once, from any thread."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            if not self._closed:
                try:
                    self._writer.send(b"x")
                except OSError:
                    pass

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled("operation cancelled")

    def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless cancelled first.

        Raises:
            Cancelled: If the token fires before the delay elapses.
        """
        if self._event.wait(max(0.0, seconds)):
            raise Cancelled("operation cancelled")

    def fileno(self) -> int:
        return self._reader.fileno()

    def close(self) -> None:
        """Release the wake-up socket pair."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for sock in (self._reader, self._writer):
                try:
                    sock.close()
                except OSError:
                    pass

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def wait_readable(
    sock: socket.socket,
    timeout: Optional[float],
    cancel: Optional[CancelToken] = None,
) -> bool:
    """Wait until ``sock`` has data to read.

    Args:
        sock: Socket to watch.
        timeout: Seconds to wait; None waits indefinitely.
        cancel: Optional token that aborts the wait.

    Returns:
        True if the socket is readable, False if the timeout elapsed.

    Raises:
        Cancelled: If the token fires while waiting.
    """
    if cancel is None:
        readable, _, _ = select.select([sock], [], [], timeout)
        return bool(readable)

    cancel.raise_if_cancelled()
    deadline = None if timeout is None else time.monotonic() + timeout
    while True:
        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        readable, _, _ = select.select([sock, cancel], [], [], remaining)
        if cancel in readable or cancel.cancelled:
            raise Cancelled("operation cancelled")
        if sock in readable:
            return True
        if deadline is not None and time.monotonic() >= deadline:
            return False
