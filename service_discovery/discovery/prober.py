"""Client side of broadcast and multicast discovery."""

import logging
import socket
import struct
from typing import Optional

from ..cancellation import CancelToken, wait_readable
from . import wire
from .protocol import Endpoint, ResolveOutcome, Resolver
from .resolver import ClientResolver, ProbeExchange, RetryConfig
from .responder import DEFAULT_DISCOVERY_PORT, DEFAULT_MULTICAST_GROUP, MAX_DATAGRAM

logger = logging.getLogger(__name__)

BROADCAST_ADDRESS = "255.255.255.255"


class UDPProbeExchange(ProbeExchange):
    """Sends probes to a fixed target from an ephemeral UDP socket."""

    def __init__(self, target: tuple[str, int]):
        self.target = target
        self._sock: Optional[socket.socket] = None

    def open(self) -> None:
        self._sock = self._create_socket()

    def close(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None

    def send_probe(self) -> None:
        self._sock.sendto(wire.encode_request(), self.target)

    def drain(self) -> None:
        while True:
            try:
                if not wait_readable(self._sock, 0):
                    return
                _, addr = self._sock.recvfrom(MAX_DATAGRAM)
            except OSError as e:
                logger.debug("Drain stopped: %s", e)
                return
            logger.debug("Discarding late datagram from %s", addr)

    def receive(
        self, timeout: float, cancel: Optional[CancelToken] = None
    ) -> Optional[tuple[bytes, tuple]]:
        if not wait_readable(self._sock, timeout, cancel):
            return None
        return self._sock.recvfrom(MAX_DATAGRAM)

    def _create_socket(self) -> socket.socket:
        raise NotImplementedError


class BroadcastProbeExchange(UDPProbeExchange):
    """Probe via ``SO_BROADCAST``; replies use the plain delimited format."""

    def __init__(
        self,
        port: int = DEFAULT_DISCOVERY_PORT,
        broadcast_address: str = BROADCAST_ADDRESS,
    ):
        super().__init__((broadcast_address, port))
        self.description = f"broadcast {broadcast_address}:{port}"

    def parse(self, data: bytes) -> Endpoint:
        return wire.parse_broadcast_response(data)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.bind(("", 0))
        except OSError:
            sock.close()
            raise
        return sock


class MulticastProbeExchange(UDPProbeExchange):
    """Probe a multicast group; replies carry a JSON service record.

    Joining the group from the probing socket is best effort; membership is
    dropped on close whether or not the join succeeded.
    """

    def __init__(
        self,
        group: str = DEFAULT_MULTICAST_GROUP,
        port: int = DEFAULT_DISCOVERY_PORT,
        ttl: int = 1,
        join_group: bool = True,
    ):
        super().__init__((group, port))
        self.group = group
        self.ttl = ttl
        self.join_group = join_group
        self.description = f"multicast {group}:{port}"
        self._joined = False

    def parse(self, data: bytes) -> Endpoint:
        return wire.parse_multicast_response(data)

    def _membership(self) -> bytes:
        return struct.pack("=4s4s", socket.inet_aton(self.group), socket.inet_aton("0.0.0.0"))

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(("", 0))
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, self.ttl)
        except OSError:
            sock.close()
            raise

        if self.join_group:
            try:
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, self._membership())
                self._joined = True
            except OSError as e:
                logger.debug("Could not join %s: %s", self.group, e)
        return sock

    def close(self) -> None:
        if self._sock is not None and self._joined:
            try:
                self._sock.setsockopt(
                    socket.IPPROTO_IP, socket.IP_DROP_MEMBERSHIP, self._membership()
                )
            except OSError:
                pass
            self._joined = False
        super().close()


class BroadcastResolver(Resolver):
    """Resolve by broadcasting a probe on the local segment.

    The probe carries no service name; the first responder to answer wins.
    """

    source = "broadcast"

    def __init__(
        self,
        port: int = DEFAULT_DISCOVERY_PORT,
        broadcast_address: str = BROADCAST_ADDRESS,
        retry: Optional[RetryConfig] = None,
    ):
        self.port = port
        self.broadcast_address = broadcast_address
        self.client = ClientResolver(retry)

    def resolve(
        self, service: str, cancel: Optional[CancelToken] = None
    ) -> ResolveOutcome:
        logger.debug("Resolving '%s' by broadcast", service)
        exchange = BroadcastProbeExchange(self.port, self.broadcast_address)
        return self.client.resolve(exchange, cancel, source=self.source)


class MulticastResolver(Resolver):
    """Resolve by probing a multicast group; the first valid record wins."""

    source = "multicast"

    def __init__(
        self,
        group: str = DEFAULT_MULTICAST_GROUP,
        port: int = DEFAULT_DISCOVERY_PORT,
        ttl: int = 1,
        retry: Optional[RetryConfig] = None,
    ):
        self.group = group
        self.port = port
        self.ttl = ttl
        self.client = ClientResolver(retry)

    def resolve(
        self, service: str, cancel: Optional[CancelToken] = None
    ) -> ResolveOutcome:
        logger.debug("Resolving '%s' by multicast", service)
        exchange = MulticastProbeExchange(self.group, self.port, ttl=self.ttl)
        return self.client.resolve(exchange, cancel, source=self.source)
