"""Broadcast and multicast responders and probes over real sockets."""

import json
import socket
import struct
import threading
import time

import pytest

from service_discovery.cancellation import CancelToken, wait_readable
from service_discovery.discovery import (
    BroadcastProbeExchange,
    BroadcastResolver,
    BroadcastResponder,
    MulticastProbeExchange,
    MulticastResolver,
    MulticastResponder,
    RetryConfig,
)
from service_discovery.discovery.protocol import Endpoint
from service_discovery.errors import Cancelled

ADVERTISED = Endpoint("192.168.1.10", 16000)
GROUP = "239.0.0.222"


def loopback_resolver(port: int, attempts: int = 3, timeout: float = 1.0) -> BroadcastResolver:
    return BroadcastResolver(
        port=port,
        broadcast_address="127.0.0.1",
        retry=RetryConfig(attempts=attempts, attempt_timeout=timeout),
    )


@pytest.fixture
def responder():
    r = BroadcastResponder(ADVERTISED, port=0, bind_host="127.0.0.1")
    r.start()
    yield r
    r.stop()


def test_broadcast_probe_resolves_on_first_attempt(responder):
    outcome = loopback_resolver(responder.address[1]).resolve("my-service")

    assert outcome.found
    assert outcome.endpoint == ADVERTISED
    assert outcome.attempts == 1
    assert outcome.source == "broadcast"


def test_responder_ignores_bad_datagrams_and_keeps_serving(responder):
    port = responder.address[1]
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.settimeout(0.3)
        sock.sendto(b"hello there", ("127.0.0.1", port))
        sock.sendto(b"\xff\xfe\x00", ("127.0.0.1", port))
        with pytest.raises(socket.timeout):
            sock.recvfrom(4096)

        sock.sendto(b"DISCOVER_REQUEST", ("127.0.0.1", port))
        data, _ = sock.recvfrom(4096)

    assert data == b"DISCOVER_RESPONSE;192.168.1.10;16000"
    assert responder.running


def test_non_responding_peer_fails_after_budget(free_udp_port):
    started = time.monotonic()
    outcome = loopback_resolver(free_udp_port, attempts=2, timeout=0.1).resolve("my-service")

    assert not outcome.found
    assert outcome.attempts == 2
    assert time.monotonic() - started >= 0.2 * 0.9


def test_responder_stop_releases_socket():
    r = BroadcastResponder(ADVERTISED, port=0, bind_host="127.0.0.1")
    r.start()
    port = r.address[1]
    r.stop()

    assert not r.running
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind(("127.0.0.1", port))


def test_responder_start_fails_when_port_taken():
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as taken:
        taken.bind(("127.0.0.1", 0))
        port = taken.getsockname()[1]

        r = BroadcastResponder(ADVERTISED, port=port, bind_host="127.0.0.1")
        with pytest.raises(OSError):
            r.start()


def test_probe_exchange_cancel_mid_receive(free_udp_port):
    exchange = BroadcastProbeExchange(port=free_udp_port, broadcast_address="127.0.0.1")
    with CancelToken() as token:
        threading.Timer(0.05, token.cancel).start()
        with pytest.raises(Cancelled):
            with exchange:
                exchange.send_probe()
                exchange.receive(10, token)

    assert exchange._sock is None


def test_multicast_responder_reply_payload():
    r = MulticastResponder(ADVERTISED)

    reply = r.reply_for(b"DISCOVER_REQUEST\n")
    assert reply.startswith(b"DISCOVER_RESPONSE_JSON;")
    assert json.loads(reply[len(b"DISCOVER_RESPONSE_JSON;"):]) == {
        "schema": "tcp",
        "ip": "192.168.1.10",
        "port": 16000,
    }
    assert r.reply_for(b"DISCOVER_RESPONSE;1.2.3.4;5") is None


def test_broadcast_responder_reply_payload():
    r = BroadcastResponder(ADVERTISED)

    assert r.reply_for(b"DISCOVER_REQUEST") == b"DISCOVER_RESPONSE;192.168.1.10;16000"
    assert r.reply_for(b"PING") is None


def test_multicast_probe_exchange_releases_on_close():
    exchange = MulticastProbeExchange(port=9)
    with exchange:
        assert exchange._sock is not None

    assert exchange._sock is None
    assert exchange._joined is False


def test_probe_exchange_drains_stale_datagrams():
    exchange = BroadcastProbeExchange(port=9, broadcast_address="127.0.0.1")
    with exchange, socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as peer:
        port = exchange._sock.getsockname()[1]
        peer.sendto(b"DISCOVER_RESPONSE;10.0.0.99;17000", ("127.0.0.1", port))
        assert wait_readable(exchange._sock, 1.0)

        exchange.drain()

        assert exchange.receive(0.1) is None


def test_multicast_resolver_open_failure_is_not_found(free_udp_port):
    resolver = MulticastResolver(
        port=free_udp_port,
        ttl=999,
        retry=RetryConfig(attempts=2, attempt_timeout=0.1),
    )

    outcome = resolver.resolve("my-service")

    assert not outcome.found
    assert outcome.attempts == 0
    assert outcome.source == "multicast"


def test_multicast_responder_join_failure_releases_socket(free_udp_port):
    r = MulticastResponder(ADVERTISED, group="10.0.0.1", port=free_udp_port)

    with pytest.raises(OSError):
        r.start()

    assert not r.running
    assert r._sock is None
    assert r._joined is False
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind(("", free_udp_port))


def multicast_loopback_available() -> bool:
    """True if a datagram sent to GROUP comes back to a local member."""
    membership = struct.pack("=4s4s", socket.inet_aton(GROUP), socket.inet_aton("0.0.0.0"))
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as receiver, \
                socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sender:
            receiver.bind(("", 0))
            receiver.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership)
            receiver.settimeout(0.5)
            sender.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 1)
            sender.sendto(b"ping", (GROUP, receiver.getsockname()[1]))
            receiver.recvfrom(64)
    except OSError:
        return False
    return True


@pytest.fixture
def multicast_loopback():
    if not multicast_loopback_available():
        pytest.skip("no multicast route on this host")


def test_multicast_probe_resolves_over_loopback(multicast_loopback):
    with MulticastResponder(ADVERTISED, group=GROUP, port=0) as responder:
        resolver = MulticastResolver(
            group=GROUP,
            port=responder.address[1],
            retry=RetryConfig(attempts=3, attempt_timeout=1.0),
        )
        outcome = resolver.resolve("my-service")

    assert outcome.found
    assert outcome.endpoint == ADVERTISED
    assert outcome.source == "multicast"


def test_multicast_responder_joins_on_start_and_releases_on_stop(multicast_loopback):
    r = MulticastResponder(ADVERTISED, group=GROUP, port=0)
    r.start()
    port = r.address[1]

    assert r.running
    assert r._joined is True

    r.stop()

    assert not r.running
    assert r._sock is None
    assert r._joined is False
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind(("", port))
