"""
OpenCode Python client, async-first with sync wrapper.

Covers the session and message REST calls of ``opencode serve`` and
streams its server-sent events as typed objects.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
import inspect
from typing import Any, TypeVar

import httpx

from .events import MAX_FRAME_BYTES, Event, SseLineDecoder, frame_payload, parse_event
from .exceptions import (
    AddressNotSetError,
    DecodeError,
    OpencodeApiError,
    StreamError,
)
from .log import get_logger
from .types import Message, Session, parse_message, parse_session


__all__ = ["OpencodeApiError", "OpencodeAsyncClient", "OpencodeClient", "build_url"]

logger = get_logger(__name__)

T = TypeVar("T")

EventHandler = Callable[[Event], Awaitable[None] | None]


def build_url(addr: str, path: str) -> str:
    """Return ``http://<addr><path>``, or an empty string without an address."""
    if not addr:
        return ""
    return f"http://{addr}{path}"


# ---------------------------------------------------------------------------
# Async client
# ---------------------------------------------------------------------------


class OpencodeAsyncClient:
    """Async client for a running OpenCode server."""

    def __init__(
        self,
        addr: str,
        directory: str | None = None,
        timeout: float = 30.0,
        max_frame_bytes: int = MAX_FRAME_BYTES,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.addr = addr
        self.directory = directory or None
        self._timeout = timeout
        self._max_frame_bytes = max_frame_bytes
        self._http = httpx.AsyncClient(
            headers={"Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> OpencodeAsyncClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # --- Sessions ---

    async def list_sessions(self) -> list[Session]:
        logger.info("Listing sessions")
        data = await self._request("GET", "/session")
        if not isinstance(data, list):
            raise DecodeError("expected a list of sessions")
        sessions = [_decode(parse_session, s, "session") for s in data]
        logger.info("Sessions retrieved", count=len(sessions))
        return sessions

    async def create_session(self, title: str) -> Session:
        logger.info("Creating session", title=title)
        data = await self._request("POST", "/session", json={"title": title})
        session = _decode(parse_session, data, "session")
        logger.info("Session created", id=session.id, title=session.title)
        return session

    # --- Messages ---

    async def send_message(self, session_id: str, text: str) -> Message:
        """Post a text message to a session.

        The returned message is the stored user message. The assistant's
        answer is not part of the response; it arrives on the event stream.
        """
        logger.info("Sending message", session_id=session_id)
        data = await self._request(
            "POST",
            f"/session/{session_id}/message",
            json={"parts": [{"type": "text", "text": text}]},
        )
        message = _decode(parse_message, data, "message")
        logger.info("Message sent", message_id=message.id, session_id=session_id)
        return message

    # --- Streaming ---

    async def events(self) -> AsyncIterator[Event]:
        """Iterate over the server's events until the stream ends.

        Malformed frames are logged and skipped. A stream that ends cleanly
        simply stops the iteration.

        Raises:
            StreamError: The connection failed or a frame exceeded the size limit
            OpencodeApiError: The server refused the stream
        """
        url = self._url("/event")
        timeout = httpx.Timeout(self._timeout, read=None)
        headers = {"Accept": "text/event-stream"}
        logger.info("Starting event stream", directory=self.directory)
        try:
            async with self._http.stream(
                "GET", url, params=self._params(), headers=headers, timeout=timeout
            ) as resp:
                if not resp.is_success:
                    await resp.aread()
                    raise OpencodeApiError(resp.status_code, resp.text)
                logger.info("Event stream connected")
                decoder = SseLineDecoder(self._max_frame_bytes)
                async for chunk in resp.aiter_bytes():
                    for line in decoder.feed(chunk):
                        event = _decode_frame(line)
                        if event is not None:
                            yield event
                for line in decoder.flush():
                    event = _decode_frame(line)
                    if event is not None:
                        yield event
        except httpx.TransportError as exc:
            logger.error("Event stream error", err=str(exc))
            raise StreamError(f"event stream failed: {exc}") from exc
        logger.info("Event stream ended")

    async def stream_events(
        self,
        handler: EventHandler,
        *,
        stop: asyncio.Event | None = None,
    ) -> None:
        """Feed every event to ``handler`` until the stream ends or ``stop`` is set.

        The handler runs on the reading task, one event at a time and in
        arrival order; a slow handler slows down reading. Coroutine handlers
        are awaited.
        """

        async def _pump() -> None:
            async for event in self.events():
                result = handler(event)
                if inspect.isawaitable(result):
                    await result

        if stop is None:
            await _pump()
            return

        pump = asyncio.create_task(_pump())
        stopper = asyncio.create_task(stop.wait())
        try:
            done, _ = await asyncio.wait(
                {pump, stopper}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (pump, stopper):
                task.cancel()
            await asyncio.gather(pump, stopper, return_exceptions=True)
        if pump in done:
            pump.result()
        else:
            logger.info("Event stream stopped")

    # --- HTTP primitives ---

    def _url(self, path: str) -> str:
        url = build_url(self.addr, path)
        if not url:
            raise AddressNotSetError("OpenCode server address is not set")
        return url

    def _params(self) -> dict[str, str]:
        return {"directory": self.directory} if self.directory else {}

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        resp = await self._http.request(
            method, self._url(path), params=self._params(), json=json
        )
        return self._handle_response(resp)

    def _handle_response(self, resp: httpx.Response) -> Any:
        if not resp.is_success:
            try:
                body = resp.json()
            except ValueError:
                body = resp.text
            logger.error("Unexpected status code", status=resp.status_code, url=str(resp.url))
            raise OpencodeApiError(resp.status_code, body)
        try:
            return resp.json()
        except (ValueError, RecursionError) as exc:
            raise DecodeError(f"invalid JSON response: {exc}") from exc


# ---------------------------------------------------------------------------
# Sync wrapper
# ---------------------------------------------------------------------------


class OpencodeClient:
    """Synchronous wrapper around OpencodeAsyncClient.

    Every call runs on its own event loop with a short-lived async client.
    """

    def __init__(
        self,
        addr: str,
        directory: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.addr = addr
        self.directory = directory
        self.timeout = timeout

    def _run(self, call: Callable[[OpencodeAsyncClient], Awaitable[T]]) -> T:
        async def _go() -> T:
            async with OpencodeAsyncClient(
                self.addr, directory=self.directory, timeout=self.timeout
            ) as client:
                return await call(client)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop and loop.is_running():
            import concurrent.futures

            with concurrent.futures.ThreadPoolExecutor() as pool:
                return pool.submit(asyncio.run, _go()).result()
        return asyncio.run(_go())

    def list_sessions(self) -> list[Session]:
        return self._run(lambda c: c.list_sessions())

    def create_session(self, title: str) -> Session:
        return self._run(lambda c: c.create_session(title))

    def send_message(self, session_id: str, text: str) -> Message:
        return self._run(lambda c: c.send_message(session_id, text))


# ---------------------------------------------------------------------------
# Decoding helpers
# ---------------------------------------------------------------------------


def _decode(parser: Callable[[Any], T], data: Any, what: str) -> T:
    try:
        return parser(data)
    except (KeyError, TypeError, AttributeError) as exc:
        raise DecodeError(f"malformed {what}: {exc!r}") from exc


def _decode_frame(line: str) -> Event | None:
    payload = frame_payload(line)
    if payload is None:
        return None
    try:
        event = parse_event(payload)
    except DecodeError as exc:
        logger.warning("Error decoding event", err=str(exc), data=payload[:200])
        return None
    logger.debug("Received event", type=event.type)
    return event
