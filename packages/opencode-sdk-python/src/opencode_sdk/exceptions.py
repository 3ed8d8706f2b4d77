"""Errors raised by the OpenCode SDK."""

from __future__ import annotations

from typing import Any


class OpencodeError(Exception):
    """Base class for all SDK errors."""


class AlreadyRunningError(OpencodeError):
    """Raised when starting a server that already has a live process."""


class PortAllocationError(OpencodeError):
    """Raised when no free local port could be obtained."""


class ConfigStagingError(OpencodeError):
    """Raised when the isolated config directory could not be written."""


class SpawnError(OpencodeError):
    """Raised when the server process failed to start or died right away."""


class StopError(OpencodeError):
    """Raised when the server process could not be signalled."""


class NotReadyError(OpencodeError):
    """Raised when the server did not answer its health check in time."""


class AddressNotSetError(OpencodeError):
    """Raised when a request is attempted before an address is known."""


class DecodeError(OpencodeError):
    """Raised when a response body or event payload cannot be decoded."""


class StreamError(OpencodeError):
    """Raised when the event stream breaks mid-flight."""


class OpencodeApiError(OpencodeError):
    """Raised when the OpenCode API returns a non-2xx response."""

    def __init__(self, status: int, body: Any) -> None:
        self.status = status
        self.body = body
        super().__init__(f"OpenCode API error {status}: {body}")

    @property
    def code(self) -> int:
        return self.status
