"""Datagram formats for broadcast and multicast discovery.

Probe (both transports):   DISCOVER_REQUEST
Broadcast response:        DISCOVER_RESPONSE;<ip>;<port>
Multicast response:        DISCOVER_RESPONSE_JSON;{"schema": "tcp", "ip": ..., "port": ...}
"""

import json
from dataclasses import dataclass

from ..errors import MalformedPayload
from .protocol import Endpoint

DISCOVER_REQUEST = "DISCOVER_REQUEST"
BROADCAST_RESPONSE_PREFIX = "DISCOVER_RESPONSE;"
MULTICAST_RESPONSE_PREFIX = "DISCOVER_RESPONSE_JSON;"

DEFAULT_SCHEMA = "tcp"


@dataclass(frozen=True)
class ServiceConfig:
    """Structured record carried by a multicast response."""
    schema: str
    ip: str
    port: int

    @property
    def endpoint(self) -> Endpoint:
        return Endpoint(self.ip, self.port)

    def to_dict(self) -> dict:
        return {"schema": self.schema, "ip": self.ip, "port": self.port}


def _decode(data: bytes) -> str:
    try:
        return data.decode("utf-8").strip()
    except UnicodeDecodeError as e:
        raise MalformedPayload(f"Not UTF-8: {e}") from e


def _check_port(port: int) -> int:
    if not 0 < port < 65536:
        raise MalformedPayload(f"Port out of range: {port}")
    return port


def encode_request() -> bytes:
    return DISCOVER_REQUEST.encode("utf-8")


def is_request(data: bytes) -> bool:
    """Whether a datagram is exactly the probe token (surrounding whitespace ignored)."""
    try:
        return _decode(data) == DISCOVER_REQUEST
    except MalformedPayload:
        return False


def encode_broadcast_response(endpoint: Endpoint) -> bytes:
    return f"{BROADCAST_RESPONSE_PREFIX}{endpoint.ip};{endpoint.port}".encode("utf-8")


def parse_broadcast_response(data: bytes) -> Endpoint:
    """Parse ``DISCOVER_RESPONSE;ip;port``.

    Raises:
        MalformedPayload: On a wrong prefix, field count or port.
    """
    message = _decode(data)
    if not message.startswith(BROADCAST_RESPONSE_PREFIX):
        raise MalformedPayload(f"Unexpected prefix: {message[:32]!r}")

    parts = message[len(BROADCAST_RESPONSE_PREFIX):].split(";")
    if len(parts) != 2 or not parts[0]:
        raise MalformedPayload(f"Expected 'ip;port', got {message!r}")

    if not (parts[1].isascii() and parts[1].isdigit()):
        raise MalformedPayload(f"Invalid port: {parts[1]!r}")

    return Endpoint(ip=parts[0], port=_check_port(int(parts[1])))


def encode_multicast_response(endpoint: Endpoint, schema: str = DEFAULT_SCHEMA) -> bytes:
    record = ServiceConfig(schema=schema, ip=endpoint.ip, port=endpoint.port)
    return (MULTICAST_RESPONSE_PREFIX + json.dumps(record.to_dict())).encode("utf-8")


def parse_multicast_record(data: bytes) -> ServiceConfig:
    """Parse ``DISCOVER_RESPONSE_JSON;{...}`` into its record.

    All of ``schema``, ``ip`` and ``port`` are required.

    Raises:
        MalformedPayload: On a wrong prefix, bad JSON or missing fields.
    """
    message = _decode(data)
    if not message.startswith(MULTICAST_RESPONSE_PREFIX):
        raise MalformedPayload(f"Unexpected prefix: {message[:32]!r}")

    try:
        record = json.loads(message[len(MULTICAST_RESPONSE_PREFIX):])
    except json.JSONDecodeError as e:
        raise MalformedPayload(f"Invalid JSON: {e}") from e

    if not isinstance(record, dict):
        raise MalformedPayload("Record must be a JSON object")

    schema = record.get("schema")
    ip = record.get("ip")
    port = record.get("port")

    if not isinstance(schema, str):
        raise MalformedPayload("Missing 'schema'")
    if not isinstance(ip, str) or not ip:
        raise MalformedPayload("Missing 'ip'")
    # bool is an int subclass
    if not isinstance(port, int) or isinstance(port, bool):
        raise MalformedPayload("Missing or non-integer 'port'")

    return ServiceConfig(schema=schema, ip=ip, port=_check_port(port))


def parse_multicast_response(data: bytes) -> Endpoint:
    return parse_multicast_record(data).endpoint
