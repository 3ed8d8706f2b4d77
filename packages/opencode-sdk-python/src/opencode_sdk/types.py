"""Core data types for the OpenCode Python SDK."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal


# ---------------------------------------------------------------------------
# Shared records
# ---------------------------------------------------------------------------

Role = Literal["user", "assistant"]

PartType = str  # Open-ended; see the canonical list below.

# Canonical part types:
# text, tool, reasoning, file, step-start, step-finish, snapshot, patch, agent


@dataclass
class TokenUsage:
    input: int = 0
    output: int = 0
    reasoning: int = 0
    cache_read: int = 0
    cache_write: int = 0


@dataclass
class PartTime:
    start: int
    end: int | None = None


@dataclass
class MessageTime:
    created: int
    completed: int | None = None


@dataclass
class MessagePath:
    cwd: str
    root: str


# ---------------------------------------------------------------------------
# Domain entities
# ---------------------------------------------------------------------------


@dataclass
class Session:
    """A unit of conversational state on the server."""

    id: str
    slug: str
    project_id: str
    directory: str
    title: str
    version: str
    parent_id: str | None = None


@dataclass
class SessionStatus:
    type: str  # "idle", "busy", "retry", ...


@dataclass
class MessageInfo:
    """Message metadata; the assistant-only fields stay None for user messages."""

    id: str
    session_id: str
    role: Role
    time: MessageTime | None = None
    parent_id: str | None = None
    model_id: str | None = None
    provider_id: str | None = None
    mode: str | None = None
    agent: str | None = None
    path: MessagePath | None = None
    cost: float | None = None
    tokens: TokenUsage | None = None
    finish: str | None = None


@dataclass
class MessagePart:
    type: PartType
    text: str = ""
    id: str = ""
    session_id: str = ""
    message_id: str = ""
    time: PartTime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    synthetic: bool | None = None
    ignored: bool | None = None
    reason: str | None = None
    cost: float | None = None
    tokens: TokenUsage | None = None


@dataclass
class Message:
    """A persisted message with its ordered parts."""

    info: MessageInfo
    parts: list[MessagePart] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.info.id

    @property
    def session_id(self) -> str:
        return self.info.session_id

    @property
    def role(self) -> Role:
        return self.info.role


# ---------------------------------------------------------------------------
# Parsers (wire names are camelCase)
# ---------------------------------------------------------------------------


def parse_session(data: dict[str, Any]) -> Session:
    return Session(
        id=data["id"],
        slug=data.get("slug", ""),
        project_id=data.get("projectID", ""),
        directory=data.get("directory", ""),
        title=data.get("title", ""),
        version=data.get("version", ""),
        parent_id=data.get("parentID"),
    )


def parse_session_status(data: dict[str, Any]) -> SessionStatus:
    return SessionStatus(type=data["type"])


def parse_tokens(data: dict[str, Any] | None) -> TokenUsage | None:
    if data is None:
        return None
    cache = data.get("cache") or {}
    return TokenUsage(
        input=data.get("input", 0),
        output=data.get("output", 0),
        reasoning=data.get("reasoning", 0),
        cache_read=cache.get("read", 0),
        cache_write=cache.get("write", 0),
    )


def parse_message_info(data: dict[str, Any]) -> MessageInfo:
    time = data.get("time")
    path = data.get("path")
    return MessageInfo(
        id=data["id"],
        session_id=data.get("sessionID", ""),
        role=data["role"],
        time=MessageTime(time["created"], time.get("completed")) if time else None,
        parent_id=data.get("parentID"),
        model_id=data.get("modelID"),
        provider_id=data.get("providerID"),
        mode=data.get("mode"),
        agent=data.get("agent"),
        path=MessagePath(path.get("cwd", ""), path.get("root", "")) if path else None,
        cost=data.get("cost"),
        tokens=parse_tokens(data.get("tokens")),
        finish=data.get("finish"),
    )


def parse_part(data: dict[str, Any]) -> MessagePart:
    time = data.get("time")
    return MessagePart(
        type=data["type"],
        text=data.get("text", ""),
        id=data.get("id", ""),
        session_id=data.get("sessionID", ""),
        message_id=data.get("messageID", ""),
        time=PartTime(time["start"], time.get("end")) if time else None,
        metadata=data.get("metadata") or {},
        synthetic=data.get("synthetic"),
        ignored=data.get("ignored"),
        reason=data.get("reason"),
        cost=data.get("cost"),
        tokens=parse_tokens(data.get("tokens")),
    )


def parse_message(data: dict[str, Any]) -> Message:
    return Message(
        info=parse_message_info(data["info"]),
        parts=[parse_part(p) for p in data.get("parts") or []],
    )
