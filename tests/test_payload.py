"""Tests for ResultPayload."""

import pytest

from resultsink.errors import SerializationError
from resultsink.payload import ResultPayload


def test_from_dict_keeps_body():
    payload = ResultPayload.from_dict({"start_unix": 1707552000, "start": "x", "extra": [1]})
    assert payload.key == "1707552000"
    assert payload.start == "x"
    assert payload.body["extra"] == [1]


def test_integral_float_and_string_are_accepted():
    assert ResultPayload.from_dict({"start_unix": 12.0}).start_unix == 12
    assert ResultPayload.from_dict({"start_unix": "12"}).start_unix == 12


@pytest.mark.parametrize("data", [
    {},
    {"start_unix": None},
    {"start_unix": True},
    {"start_unix": 1.5},
    {"start_unix": "soon"},
    {"start_unix": float("inf")},
    {"start_unix": float("nan")},
    ["start_unix", 1],
])
def test_invalid_payloads(data):
    with pytest.raises(SerializationError):
        ResultPayload.from_dict(data)


def test_bytes_roundtrip():
    payload = ResultPayload.from_dict({"start_unix": 7, "ping": [{"location": "a"}]})
    assert ResultPayload.from_bytes(payload.to_bytes()) == payload


def test_to_bytes_always_carries_key():
    payload = ResultPayload(start_unix=7, body={})
    assert b'"start_unix":7' in payload.to_bytes()


def test_from_bytes_rejects_garbage():
    with pytest.raises(SerializationError):
        ResultPayload.from_bytes(b"\xff\xfe")
    with pytest.raises(SerializationError):
        ResultPayload.from_bytes(b"[]")


def test_sections_tolerate_malformed_values():
    payload = ResultPayload.from_dict({"start_unix": 1, "ip": "x", "ping": [1, {"location": "a"}]})
    assert payload.section("ip") == {}
    assert payload.items("ping") == [{"location": "a"}]
    assert payload.items("trace") == []
