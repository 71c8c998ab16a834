"""Greeting/echo exchange performed once an endpoint is resolved.

Server: sends HELLO_FROM_SERVER, reads one message, answers
ECHO_FROM_SERVER:<message>, closes. Client: reads the greeting, sends
HELLO_FROM_CLIENT, reads the reply.
"""

import errno
import logging
import select
import socket
import threading
from dataclasses import dataclass
from typing import Optional

from .cancellation import CancelToken, wait_readable
from .discovery.protocol import Endpoint
from .errors import Cancelled
from .worker import BackgroundWorker

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_PORT = 16000
DEFAULT_CONNECT_TIMEOUT = 2.0

SERVER_GREETING = b"HELLO_FROM_SERVER"
CLIENT_GREETING = b"HELLO_FROM_CLIENT"
ECHO_PREFIX = b"ECHO_FROM_SERVER:"

BUFFER_SIZE = 4096


@dataclass
class HandshakeResult:
    """What the client saw while talking to a resolved endpoint."""
    endpoint: Endpoint
    connected: bool = False
    greeting: Optional[str] = None
    reply: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.connected and self.error is None


class EchoServer(BackgroundWorker):
    """TCP service that greets each client and echoes one message back.

    Each accepted connection is handled on its own thread and shares no
    state with the others.
    """

    name = "echo-server"

    def __init__(self, port: int = DEFAULT_SERVICE_PORT, host: str = "", io_timeout: float = 10.0):
        super().__init__()
        self.host = host
        self.port = port
        self.io_timeout = io_timeout
        self._sock: Optional[socket.socket] = None

    @property
    def address(self) -> tuple[str, int]:
        if self._sock is None:
            raise RuntimeError("echo server is not started")
        return self._sock.getsockname()

    def start(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
            sock.listen()
        except OSError:
            sock.close()
            raise
        self._sock = sock
        super().start()

    def run(self, cancel: CancelToken) -> None:
        sock = self._sock
        logger.info("TCP service listening on port %d", sock.getsockname()[1])
        try:
            while True:
                if not wait_readable(sock, None, cancel):
                    continue
                try:
                    conn, addr = sock.accept()
                except OSError as e:
                    logger.warning("Accept failed: %s", e)
                    continue
                threading.Thread(
                    target=self._serve_client,
                    args=(conn, addr),
                    name=f"echo-{addr[0]}:{addr[1]}",
                    daemon=True,
                ).start()
        finally:
            try:
                sock.close()
            except OSError:
                pass
            self._sock = None
            logger.info("TCP service stopped")

    def _serve_client(self, conn: socket.socket, addr: tuple) -> None:
        logger.info("TCP connected: %s:%d", *addr[:2])
        try:
            with conn:
                conn.settimeout(self.io_timeout)
                conn.sendall(SERVER_GREETING)
                data = conn.recv(BUFFER_SIZE)
                if data:
                    logger.info("Received from %s:%d: %s", *addr[:2], data.decode("utf-8", "replace"))
                    conn.sendall(ECHO_PREFIX + data)
        except OSError as e:
            logger.warning("Client handler error: %s", e)
        finally:
            logger.info("TCP disconnected: %s:%d", *addr[:2])


def _recv(sock: socket.socket, timeout: float, cancel: Optional[CancelToken]) -> bytes:
    if not wait_readable(sock, timeout, cancel):
        raise TimeoutError(f"No data within {timeout:.1f}s")
    return sock.recv(BUFFER_SIZE)


def greet(
    endpoint: Endpoint,
    timeout: float = DEFAULT_CONNECT_TIMEOUT,
    cancel: Optional[CancelToken] = None,
) -> HandshakeResult:
    """Connect to ``endpoint`` and run the greeting exchange.

    Connection and protocol failures are reported in the result.

    Raises:
        Cancelled: If ``cancel`` fires during connect or a read.
    """
    result = HandshakeResult(endpoint=endpoint)
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setblocking(False)
        err = sock.connect_ex((endpoint.ip, endpoint.port))
        if err not in (0, errno.EINPROGRESS, errno.EWOULDBLOCK):
            result.error = f"Connect failed: {err}"
            return result
        if not _wait_writable(sock, timeout, cancel):
            result.error = "TCP connect timed out"
            return result
        err = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        if err:
            result.error = f"Connect failed: {err}"
            return result
        result.connected = True

        greeting = _recv(sock, timeout, cancel)
        if not greeting:
            result.error = "Connection closed before greeting"
            return result
        result.greeting = greeting.decode("utf-8", "replace")

        sock.setblocking(True)
        sock.settimeout(timeout)
        sock.sendall(CLIENT_GREETING)
        sock.setblocking(False)

        reply = _recv(sock, timeout, cancel)
        if reply:
            result.reply = reply.decode("utf-8", "replace")
    except OSError as e:
        result.error = str(e)
    finally:
        try:
            sock.close()
        except OSError:
            pass
    return result


def _wait_writable(sock: socket.socket, timeout: float, cancel: Optional[CancelToken]) -> bool:
    readers = [cancel] if cancel is not None else []
    if cancel is not None:
        cancel.raise_if_cancelled()
    readable, writable, _ = select.select(readers, [sock], [], timeout)
    if cancel is not None and (cancel in readable or cancel.cancelled):
        raise Cancelled("operation cancelled")
    return bool(writable)

