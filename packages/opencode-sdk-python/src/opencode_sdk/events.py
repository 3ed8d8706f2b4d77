"""OpenCode event types and the decoder for the ``/event`` stream."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
import json
from typing import Any, Union

from .exceptions import DecodeError, StreamError
from .types import (
    MessageInfo,
    MessagePart,
    Session,
    SessionStatus,
    parse_message_info,
    parse_part,
    parse_session,
    parse_session_status,
)


MAX_FRAME_BYTES = 1024 * 1024

DATA_PREFIX = "data:"


# ---------------------------------------------------------------------------
# Event variants
# ---------------------------------------------------------------------------


@dataclass
class ServerConnectedEvent:
    """First event on every stream."""

    type: str = "server.connected"


@dataclass
class MessageUpdatedEvent:
    info: MessageInfo
    type: str = "message.updated"


@dataclass
class MessagePartUpdatedEvent:
    """A part was created or grew; ``delta`` holds the newly appended text."""

    part: MessagePart
    delta: str | None = None
    type: str = "message.part.updated"


@dataclass
class SessionUpdatedEvent:
    info: Session
    type: str = "session.updated"


@dataclass
class SessionStatusEvent:
    session_id: str
    status: SessionStatus
    type: str = "session.status"


@dataclass
class UnknownEvent:
    """Any event type this SDK does not model, properties kept verbatim."""

    type: str
    properties: dict[str, Any] = field(default_factory=dict)


Event = Union[
    ServerConnectedEvent,
    MessageUpdatedEvent,
    MessagePartUpdatedEvent,
    SessionUpdatedEvent,
    SessionStatusEvent,
    UnknownEvent,
]


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def _server_connected(props: dict[str, Any]) -> Event:
    return ServerConnectedEvent()


def _message_updated(props: dict[str, Any]) -> Event:
    return MessageUpdatedEvent(info=parse_message_info(props["info"]))


def _message_part_updated(props: dict[str, Any]) -> Event:
    return MessagePartUpdatedEvent(part=parse_part(props["part"]), delta=props.get("delta"))


def _session_updated(props: dict[str, Any]) -> Event:
    return SessionUpdatedEvent(info=parse_session(props["info"]))


def _session_status(props: dict[str, Any]) -> Event:
    return SessionStatusEvent(
        session_id=props["sessionID"],
        status=parse_session_status(props["status"]),
    )


_PARSERS: dict[str, Callable[[dict[str, Any]], Event]] = {
    "server.connected": _server_connected,
    "message.updated": _message_updated,
    "message.part.updated": _message_part_updated,
    "session.updated": _session_updated,
    "session.status": _session_status,
}


def parse_event(data: str | bytes | dict[str, Any]) -> Event:
    """Decode one ``{type, properties}`` payload into its event variant.

    Raises:
        DecodeError: The payload is not JSON or misses required fields
    """
    if isinstance(data, dict):
        envelope = data
    else:
        try:
            envelope = json.loads(data)
        except (ValueError, RecursionError) as exc:
            raise DecodeError(f"invalid event payload: {exc}") from exc

    if not isinstance(envelope, dict) or not isinstance(envelope.get("type"), str):
        raise DecodeError("event payload has no type")
    event_type: str = envelope["type"]
    props = envelope.get("properties")
    if props is None:
        props = {}
    if not isinstance(props, dict):
        raise DecodeError(f"{event_type}: properties is not an object")

    parser = _PARSERS.get(event_type)
    if parser is None:
        return UnknownEvent(type=event_type, properties=props)
    try:
        return parser(props)
    except (KeyError, TypeError, AttributeError) as exc:
        raise DecodeError(f"{event_type}: malformed properties ({exc!r})") from exc


def frame_payload(line: str) -> str | None:
    """Return the payload of a ``data:`` line, or None for any other line."""
    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX) :]
    return payload[1:] if payload.startswith(" ") else payload


class SseLineDecoder:
    """Split a byte stream into text lines with a per-line size ceiling.

    Usage:
        decoder = SseLineDecoder()
        for chunk in chunks:
            for line in decoder.feed(chunk):
                ...
        for line in decoder.flush():
            ...
    """

    def __init__(self, max_line_bytes: int = MAX_FRAME_BYTES) -> None:
        self._max = max_line_bytes
        self._buffer = bytearray()

    def feed(self, chunk: bytes) -> list[str]:
        """Add a chunk and return every line it completed.

        Raises:
            StreamError: A single line grew beyond the ceiling
        """
        start = len(self._buffer)
        self._buffer.extend(chunk)
        lines: list[str] = []
        while True:
            idx = self._buffer.find(b"\n", start)
            if idx < 0:
                break
            if idx > self._max:
                raise StreamError(f"event frame exceeds {self._max} bytes")
            raw = bytes(self._buffer[:idx])
            del self._buffer[: idx + 1]
            start = 0
            lines.append(_decode_line(raw))
        if len(self._buffer) > self._max:
            raise StreamError(f"event frame exceeds {self._max} bytes")
        return lines

    def flush(self) -> list[str]:
        """Return the unterminated last line, if any."""
        if not self._buffer:
            return []
        raw = bytes(self._buffer)
        self._buffer.clear()
        return [_decode_line(raw)]


def _decode_line(raw: bytes) -> str:
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    return raw.decode("utf-8", errors="replace")
