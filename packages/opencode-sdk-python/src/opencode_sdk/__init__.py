"""OpenCode Python SDK: supervise ``opencode serve`` and talk to it over HTTP + SSE."""

from .client import OpencodeAsyncClient, OpencodeClient, build_url
from .config import OpencodeConfig
from .events import (
    Event,
    MessagePartUpdatedEvent,
    MessageUpdatedEvent,
    ServerConnectedEvent,
    SessionStatusEvent,
    SessionUpdatedEvent,
    UnknownEvent,
    parse_event,
)
from .exceptions import (
    AddressNotSetError,
    AlreadyRunningError,
    ConfigStagingError,
    DecodeError,
    NotReadyError,
    OpencodeApiError,
    OpencodeError,
    PortAllocationError,
    SpawnError,
    StopError,
    StreamError,
)
from .ports import allocate_port
from .server import OpencodeServer, ServerState
from .staging import build_environment, expand_env, stage_config
from .types import (
    Message,
    MessageInfo,
    MessagePart,
    Session,
    SessionStatus,
    TokenUsage,
)

__all__ = [
    "OpencodeAsyncClient",
    "OpencodeClient",
    "OpencodeConfig",
    "OpencodeServer",
    "ServerState",
    "build_url",
    "allocate_port",
    "build_environment",
    "expand_env",
    "stage_config",
    # Events
    "Event",
    "MessagePartUpdatedEvent",
    "MessageUpdatedEvent",
    "ServerConnectedEvent",
    "SessionStatusEvent",
    "SessionUpdatedEvent",
    "UnknownEvent",
    "parse_event",
    # Data types
    "Message",
    "MessageInfo",
    "MessagePart",
    "Session",
    "SessionStatus",
    "TokenUsage",
    # Errors
    "AddressNotSetError",
    "AlreadyRunningError",
    "ConfigStagingError",
    "DecodeError",
    "NotReadyError",
    "OpencodeApiError",
    "OpencodeError",
    "PortAllocationError",
    "SpawnError",
    "StopError",
    "StreamError",
]
