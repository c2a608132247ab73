"""Core data models — no internal dependencies, only Pydantic + stdlib."""

from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Backends and health
# ---------------------------------------------------------------------------

class BackendKind(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"

    @property
    def other(self) -> "BackendKind":
        return BackendKind.REMOTE if self is BackendKind.LOCAL else BackendKind.LOCAL


class HealthStatus(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    DEGRADED = "degraded"
    CHECKING = "checking"


class ServiceHealth(BaseModel):
    """Health of one probed service. Replaced on every poll, never mutated."""
    model_config = ConfigDict(frozen=True)

    status: HealthStatus = HealthStatus.CHECKING
    latency_ms: float | None = None
    last_checked_at: float | None = None
    error_message: str | None = None

    @property
    def is_available(self) -> bool:
        return self.status is HealthStatus.AVAILABLE


class BackendHealth(ServiceHealth):
    kind: BackendKind
    model: str | None = None  # model id the backend will serve, when known


class HealthSnapshot(BaseModel):
    """One published poll cycle: both backends plus the proxy and search hops."""
    model_config = ConfigDict(frozen=True)

    local: BackendHealth = Field(default_factory=lambda: BackendHealth(kind=BackendKind.LOCAL))
    remote: BackendHealth = Field(default_factory=lambda: BackendHealth(kind=BackendKind.REMOTE))
    proxy: ServiceHealth = Field(default_factory=ServiceHealth)
    search: ServiceHealth = Field(default_factory=ServiceHealth)
    tick: int = 0

    def for_backend(self, kind: BackendKind) -> BackendHealth:
        return self.local if kind is BackendKind.LOCAL else self.remote


# ---------------------------------------------------------------------------
# Failover
# ---------------------------------------------------------------------------

class FailoverState(BaseModel):
    model_config = ConfigDict(frozen=True)

    preferred_backend: BackendKind
    active_backend: BackendKind
    last_switch_at: float | None = None


class NoticeKind(str, Enum):
    FAILOVER = "failover"  # switched away from the preferred backend
    FAILBACK = "failback"  # switched back to the preferred backend


class FailoverNotice(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: NoticeKind
    from_backend: BackendKind
    to_backend: BackendKind
    message: str
    timestamp: float = Field(default_factory=time.time)


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

class ChatRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    role: ChatRole
    content: str

    def to_wire(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class ChatConfig(BaseModel):
    """Per-call generation settings."""
    model_config = ConfigDict(frozen=True)

    model: str
    temperature: float = 0.7
    max_tokens: int = 2048
    system_prompt: str | None = None


class StreamDelta(BaseModel):
    """One incremental text fragment. The final delta carries the full text."""
    model_config = ConfigDict(frozen=True)

    text: str
    is_final: bool = False


class SearchResult(BaseModel):
    title: str
    snippet: str
    url: str = ""
    source: str = ""


class SearchAugmentation(BaseModel):
    """Answer + citations fetched for one query, ready to fold into a user turn."""
    answer: str
    citations: list[str] = Field(default_factory=list)
    results: list[SearchResult] = Field(default_factory=list)
    digest: str = ""


class ChatRequest(BaseModel):
    """Adapter-agnostic incoming chat request. History is owned by the caller."""
    query: str
    history: list[ChatMessage] = Field(default_factory=list)
    web_search: bool = True
    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))

    @field_validator("history")
    @classmethod
    def _system_first(cls, history: list[ChatMessage]) -> list[ChatMessage]:
        for index, message in enumerate(history):
            if message.role is ChatRole.SYSTEM and index != 0:
                raise ValueError("a system message may only appear first in the history")
        return history


class ErrorInfo(BaseModel):
    code: str
    message: str
    backend: BackendKind | None = None
    status_code: int | None = None
    remediation: list[str] = Field(default_factory=list)


class ChatResult(BaseModel):
    text: str
    backend: BackendKind
    model: str
    incomplete: bool = False
    augmented: bool = False
    citations: list[str] = Field(default_factory=list)
    user_message: ChatMessage | None = None  # original, unaugmented turn for history
    prompt: str = ""  # user-turn content actually sent to the model
    error: ErrorInfo | None = None


class ChatEventType(str, Enum):
    SEARCH = "search"
    DELTA = "delta"
    FINAL = "final"
    ERROR = "error"


class ChatEvent(BaseModel):
    type: ChatEventType
    delta: StreamDelta | None = None
    result: ChatResult | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    request_id: str = ""
    timestamp: float = Field(default_factory=time.time)
