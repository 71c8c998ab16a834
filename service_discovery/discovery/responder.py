"""UDP responders that answer discovery probes.

A responder binds the well-known discovery port and answers every
``DISCOVER_REQUEST`` datagram with its advertised endpoint, unicast to the
probe's source address. It keeps no per-client state.
"""

import logging
import socket
import struct
from typing import Optional

from ..cancellation import CancelToken, wait_readable
from ..worker import BackgroundWorker
from . import wire
from .protocol import Announcer, Endpoint

logger = logging.getLogger(__name__)

# Default UDP discovery port (fixed)
DEFAULT_DISCOVERY_PORT = 15000

DEFAULT_MULTICAST_GROUP = "239.0.0.222"

MAX_DATAGRAM = 4096


class UDPResponder(BackgroundWorker, Announcer):
    """Answers discovery probes on a bound UDP socket.

    The socket is bound in ``start()`` so bind errors reach the caller, and it
    is released when the receive loop exits, including on errors.
    """

    name = "udp-responder"

    def __init__(
        self,
        advertised: Endpoint,
        port: int = DEFAULT_DISCOVERY_PORT,
        bind_host: str = "",
    ):
        """Initialize responder.

        Args:
            advertised: Endpoint returned to probing clients.
            port: UDP port to listen on. Default: 15000. 0 picks a free port.
            bind_host: Local address to bind. Default: all interfaces.
        """
        super().__init__()
        self.advertised = advertised
        self.port = port
        self.bind_host = bind_host
        self._sock: Optional[socket.socket] = None

    @property
    def address(self) -> tuple[str, int]:
        """Bound (host, port) of the discovery socket."""
        if self._sock is None:
            raise RuntimeError("responder is not started")
        return self._sock.getsockname()

    def start(self) -> None:
        self._sock = self._create_socket()
        try:
            super().start()
        except Exception:
            self._release()
            raise

    def reply_for(self, data: bytes) -> Optional[bytes]:
        """Response payload for a datagram, or None if it is not a probe."""
        if not wire.is_request(data):
            return None
        return self.encode_response()

    def encode_response(self) -> bytes:
        raise NotImplementedError

    def run(self, cancel: CancelToken) -> None:
        sock = self._sock
        logger.info(
            "%s listening on UDP %s:%d, advertising %s",
            self.name, *sock.getsockname(), self.advertised,
        )
        try:
            while sock.fileno() != -1:
                try:
                    if not wait_readable(sock, None, cancel):
                        continue
                    data, addr = sock.recvfrom(MAX_DATAGRAM)
                except OSError as e:
                    logger.warning("UDP error: %s", e)
                    continue
                self._handle(sock, data, addr)
        finally:
            self._release()
            logger.info("%s stopped", self.name)

    def _handle(self, sock: socket.socket, data: bytes, addr: tuple) -> None:
        reply = self.reply_for(data)
        if reply is None:
            logger.debug("Ignoring %d byte datagram from %s", len(data), addr)
            return
        try:
            sock.sendto(reply, addr)
        except OSError as e:
            logger.warning("Failed to answer %s: %s", addr, e)
            return
        logger.info("Sent discovery response to %s:%d", *addr[:2])

    def _create_socket(self) -> socket.socket:
        raise NotImplementedError

    def _release(self) -> None:
        """Close the socket. Errors are swallowed."""
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None


class BroadcastResponder(UDPResponder):
    """Replies ``DISCOVER_RESPONSE;ip;port`` to broadcast probes."""

    name = "broadcast-responder"

    def encode_response(self) -> bytes:
        return wire.encode_broadcast_response(self.advertised)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.bind((self.bind_host, self.port))
        except OSError:
            sock.close()
            raise
        return sock


class MulticastResponder(UDPResponder):
    """Joins a multicast group and replies with a JSON service record."""

    name = "multicast-responder"

    def __init__(
        self,
        advertised: Endpoint,
        group: str = DEFAULT_MULTICAST_GROUP,
        port: int = DEFAULT_DISCOVERY_PORT,
        interface: str = "0.0.0.0",
        schema: str = wire.DEFAULT_SCHEMA,
    ):
        super().__init__(advertised, port=port)
        self.group = group
        self.interface = interface
        self.schema = schema
        self._joined = False

    def encode_response(self) -> bytes:
        return wire.encode_multicast_response(self.advertised, schema=self.schema)

    def _membership(self) -> bytes:
        return struct.pack(
            "=4s4s", socket.inet_aton(self.group), socket.inet_aton(self.interface)
        )

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.bind_host, self.port))
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, self._membership())
        except OSError:
            sock.close()
            raise
        self._joined = True
        logger.info("Joined multicast group %s:%d", self.group, self.port)
        return sock

    def _release(self) -> None:
        if self._sock is not None and self._joined:
            try:
                self._sock.setsockopt(
                    socket.IPPROTO_IP, socket.IP_DROP_MEMBERSHIP, self._membership()
                )
            except OSError:
                pass
            self._joined = False
        super()._release()
