"""Tests for event decoding and SSE line splitting."""

from __future__ import annotations

import json

import pytest

from opencode_sdk import (
    DecodeError,
    MessagePartUpdatedEvent,
    MessageUpdatedEvent,
    ServerConnectedEvent,
    SessionStatusEvent,
    SessionUpdatedEvent,
    StreamError,
    UnknownEvent,
    parse_event,
)
from opencode_sdk.events import SseLineDecoder, frame_payload


# ---------------------------------------------------------------------------
# parse_event
# ---------------------------------------------------------------------------


def test_session_status():
    event = parse_event(
        '{"type":"session.status","properties":{"sessionID":"s1","status":{"type":"busy"}}}'
    )
    assert isinstance(event, SessionStatusEvent)
    assert event.session_id == "s1"
    assert event.status.type == "busy"


def test_unknown_type_keeps_properties():
    event = parse_event('{"type":"some.future.kind","properties":{"x":1}}')
    assert isinstance(event, UnknownEvent)
    assert event.type == "some.future.kind"
    assert event.properties == {"x": 1}


def test_server_connected_accepts_bytes():
    event = parse_event(b'{"type":"server.connected","properties":{}}')
    assert isinstance(event, ServerConnectedEvent)
    assert event.type == "server.connected"


def test_message_part_updated():
    payload = {
        "type": "message.part.updated",
        "properties": {
            "part": {
                "id": "prt_1",
                "sessionID": "ses_1",
                "messageID": "msg_2",
                "type": "step-finish",
                "reason": "stop",
                "cost": 0.25,
                "tokens": {
                    "input": 10,
                    "output": 20,
                    "reasoning": 0,
                    "cache": {"read": 3, "write": 4},
                },
                "time": {"start": 1, "end": 2},
            },
            "delta": "lo",
        },
    }
    event = parse_event(payload)
    assert isinstance(event, MessagePartUpdatedEvent)
    assert event.delta == "lo"
    part = event.part
    assert (part.id, part.session_id, part.message_id) == ("prt_1", "ses_1", "msg_2")
    assert part.type == "step-finish"
    assert part.reason == "stop"
    assert part.tokens is not None
    assert part.tokens.cache_read == 3
    assert part.tokens.cache_write == 4
    assert part.time is not None
    assert part.time.end == 2


def test_message_updated_assistant_fields():
    payload = {
        "type": "message.updated",
        "properties": {
            "info": {
                "id": "msg_2",
                "sessionID": "ses_1",
                "role": "assistant",
                "parentID": "msg_1",
                "modelID": "claude",
                "providerID": "anthropic",
                "path": {"cwd": "/work", "root": "/"},
                "time": {"created": 5, "completed": 9},
                "finish": "stop",
            }
        },
    }
    event = parse_event(json.dumps(payload))
    assert isinstance(event, MessageUpdatedEvent)
    assert event.info.role == "assistant"
    assert event.info.parent_id == "msg_1"
    assert event.info.path is not None
    assert event.info.path.cwd == "/work"
    assert event.info.time is not None
    assert event.info.time.completed == 9
    assert event.info.tokens is None


def test_session_updated():
    payload = {
        "type": "session.updated",
        "properties": {
            "info": {
                "id": "ses_1",
                "slug": "s",
                "projectID": "p",
                "directory": "/d",
                "title": "t",
                "version": "1",
            }
        },
    }
    event = parse_event(payload)
    assert isinstance(event, SessionUpdatedEvent)
    assert event.info.title == "t"


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[]",
        '{"properties": {}}',
        '{"type": "session.status", "properties": {"status": {"type": "idle"}}}',
        '{"type": "message.updated", "properties": {"info": "oops"}}',
        '{"type": "x", "properties": [1, 2]}',
    ],
)
def test_malformed_payloads(raw: str):
    with pytest.raises(DecodeError):
        parse_event(raw)


# ---------------------------------------------------------------------------
# Framing
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("line", "payload"),
    [
        ('data: {"a":1}', '{"a":1}'),
        ('data:{"a":1}', '{"a":1}'),
        ("event: message", None),
        (": ping", None),
        ("", None),
    ],
)
def test_frame_payload(line: str, payload: str | None):
    assert frame_payload(line) == payload


def test_line_decoder_joins_chunks():
    decoder = SseLineDecoder()
    assert decoder.feed(b"data: {\"ty") == []
    assert decoder.feed(b"pe\": 1}\r\n\nda") == ['data: {"type": 1}', ""]
    assert decoder.feed(b"ta: x") == []
    assert decoder.flush() == ["data: x"]
    assert decoder.flush() == []


def test_line_decoder_ceiling():
    decoder = SseLineDecoder(max_line_bytes=8)
    assert decoder.feed(b"12345678\n") == ["12345678"]
    with pytest.raises(StreamError):
        decoder.feed(b"123456789")


def test_line_decoder_byte_at_a_time():
    decoder = SseLineDecoder(max_line_bytes=64)
    line = b"data: " + b"x" * 40
    out = []
    for i in range(len(line)):
        out.extend(decoder.feed(line[i : i + 1]))
    assert out == []
    assert decoder.feed(b"\nda") == ["data: " + "x" * 40]
    assert decoder.feed(b"ta: y\n") == ["data: y"]


def test_deeply_nested_payload_is_a_decode_error():
    depth = 100_000
    payload = '{"type": "x", "properties": {"a": ' + "[" * depth + "]" * depth + "}}"
    with pytest.raises(DecodeError):
        parse_event(payload)
