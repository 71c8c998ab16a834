"""Tests for discovery datagram formats."""

import json

import pytest

from service_discovery.discovery import wire
from service_discovery.discovery.protocol import Endpoint
from service_discovery.errors import MalformedPayload


def test_broadcast_response_parses_to_endpoint():
    endpoint = wire.parse_broadcast_response(b"DISCOVER_RESPONSE;192.168.1.10;16000")

    assert endpoint == Endpoint(ip="192.168.1.10", port=16000)


def test_broadcast_response_encoding():
    payload = wire.encode_broadcast_response(Endpoint("10.0.0.5", 8080))

    assert payload == b"DISCOVER_RESPONSE;10.0.0.5;8080"


def test_broadcast_response_tolerates_trailing_whitespace():
    endpoint = wire.parse_broadcast_response(b"DISCOVER_RESPONSE;10.0.0.5;8080\r\n")

    assert endpoint == Endpoint("10.0.0.5", 8080)


@pytest.mark.parametrize("payload", [
    b"DISCOVER_RESPONSE;10.0.0.5",
    b"DISCOVER_RESPONSE;10.0.0.5;8080;extra",
    b"DISCOVER_RESPONSE;10.0.0.5;http",
    b"DISCOVER_RESPONSE;;8080",
    b"DISCOVER_RESPONSE;10.0.0.5;70000",
    b"DISCOVER_RESPONSE;10.0.0.5;1_6000",
    b"DISCOVER_RESPONSE;10.0.0.5;+80",
    b"DISCOVER_RESPONSE;10.0.0.5; 80",
    "DISCOVER_RESPONSE;10.0.0.5;\u0668\u0660".encode("utf-8"),
    b"HELLO;10.0.0.5;8080",
    b"\xff\xfe",
])
def test_malformed_broadcast_responses(payload):
    with pytest.raises(MalformedPayload):
        wire.parse_broadcast_response(payload)


def test_multicast_record_round_trip_fields():
    payload = wire.encode_multicast_response(Endpoint("10.0.0.5", 16000))

    assert payload.startswith(b"DISCOVER_RESPONSE_JSON;")
    body = json.loads(payload[len(b"DISCOVER_RESPONSE_JSON;"):])
    assert body == {"schema": "tcp", "ip": "10.0.0.5", "port": 16000}

    record = wire.parse_multicast_record(payload)
    assert record.schema == "tcp"
    assert record.endpoint == Endpoint("10.0.0.5", 16000)


def test_multicast_response_missing_schema_is_malformed():
    payload = b'DISCOVER_RESPONSE_JSON;{"ip": "10.0.0.5", "port": 16000}'

    with pytest.raises(MalformedPayload, match="schema"):
        wire.parse_multicast_response(payload)


@pytest.mark.parametrize("payload", [
    b'DISCOVER_RESPONSE_JSON;{"schema": "tcp", "port": 16000}',
    b'DISCOVER_RESPONSE_JSON;{"schema": "tcp", "ip": "10.0.0.5"}',
    b'DISCOVER_RESPONSE_JSON;{"schema": "tcp", "ip": "10.0.0.5", "port": "16000"}',
    b'DISCOVER_RESPONSE_JSON;{"schema": "tcp", "ip": "10.0.0.5", "port": true}',
    b'DISCOVER_RESPONSE_JSON;[1, 2, 3]',
    b"DISCOVER_RESPONSE_JSON;not json",
    b"DISCOVER_RESPONSE;10.0.0.5;16000",
])
def test_malformed_multicast_responses(payload):
    with pytest.raises(MalformedPayload):
        wire.parse_multicast_response(payload)


def test_request_token_matching():
    assert wire.is_request(b"DISCOVER_REQUEST")
    assert wire.is_request(b"  DISCOVER_REQUEST\n")
    assert not wire.is_request(b"DISCOVER_REQUEST_EXTRA")
    assert not wire.is_request(b"discover_request")
    assert not wire.is_request(b"\xff")
    assert wire.encode_request() == b"DISCOVER_REQUEST"


def test_endpoint_parse():
    assert Endpoint.parse("10.0.0.5:8080") == Endpoint("10.0.0.5", 8080)
    assert str(Endpoint("10.0.0.5", 8080)) == "10.0.0.5:8080"
    with pytest.raises(ValueError):
        Endpoint.parse("10.0.0.5")
    with pytest.raises(ValueError):
        Endpoint.parse("10.0.0.5:0")
