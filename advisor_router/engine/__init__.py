from advisor_router.engine.models import (
    BackendHealth,
    BackendKind,
    ChatConfig,
    ChatEvent,
    ChatEventType,
    ChatMessage,
    ChatRequest,
    ChatResult,
    ChatRole,
    FailoverNotice,
    FailoverState,
    HealthSnapshot,
    HealthStatus,
    NoticeKind,
    SearchAugmentation,
    SearchResult,
    ServiceHealth,
    StreamDelta,
)
from advisor_router.engine.errors import (
    BusyError,
    ChatError,
    ConfigurationError,
    StreamParseWarning,
    UnreachableError,
    UpstreamError,
)
from advisor_router.engine.config import Preferences

__all__ = [
    "BackendHealth",
    "BackendKind",
    "BusyError",
    "ChatConfig",
    "ChatError",
    "ChatEvent",
    "ChatEventType",
    "ChatMessage",
    "ChatRequest",
    "ChatResult",
    "ChatRole",
    "ConfigurationError",
    "FailoverNotice",
    "FailoverState",
    "HealthSnapshot",
    "HealthStatus",
    "NoticeKind",
    "Preferences",
    "SearchAugmentation",
    "SearchResult",
    "ServiceHealth",
    "StreamDelta",
    "StreamParseWarning",
    "UnreachableError",
    "UpstreamError",
]
