"""Typed chat errors with user-facing remediation steps."""

from __future__ import annotations

import httpx

from advisor_router.engine.models import BackendKind, ErrorInfo

PROXY_HINT = "Make sure the CORS proxy is running (start it separately with `advisor-proxy`)"


class ChatError(Exception):
    """Base for every error raised by an adapter or the routing core."""

    code = "chat_error"

    def __init__(
        self,
        message: str,
        *,
        backend: BackendKind | None = None,
        remediation: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.backend = backend
        self.remediation = list(remediation or [])

    def to_info(self) -> ErrorInfo:
        return ErrorInfo(
            code=self.code,
            message=self.message,
            backend=self.backend,
            status_code=getattr(self, "status_code", None),
            remediation=self.remediation,
        )


class ConfigurationError(ChatError):
    code = "configuration"


class UnreachableError(ChatError):
    code = "unreachable"


class UpstreamError(ChatError):
    code = "upstream"

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        body: str = "",
        backend: BackendKind | None = None,
        remediation: list[str] | None = None,
    ) -> None:
        super().__init__(message, backend=backend, remediation=remediation)
        self.status_code = status_code
        self.body = body


class BusyError(ChatError):
    code = "busy"


class StreamParseWarning(ChatError):
    """A malformed stream chunk. Caught inside the stream loop, never fatal."""

    code = "stream_parse"


# ---------------------------------------------------------------------------
# Remediation
# ---------------------------------------------------------------------------

def local_remediation(base_url: str, model: str) -> list[str]:
    return [
        "Make sure Ollama is installed (https://ollama.com)",
        f"Check that the local server is running and reachable at {base_url}",
        f'Install at least one model (run "ollama pull {model}")',
    ]


def remote_remediation(endpoint: str | None) -> list[str]:
    return [
        f"Check that the endpoint URL is correct ({endpoint or 'not configured'})",
        "Check that the API key is valid",
        PROXY_HINT,
    ]


def credential_remediation() -> list[str]:
    return [
        "The remote endpoint rejected the credentials: re-enter the API key",
        "Confirm the key has access to the configured model",
    ]


def translate_transport_error(
    exc: httpx.HTTPError,
    *,
    backend: BackendKind,
    target: str,
    remediation: list[str],
) -> ChatError:
    """Map an httpx failure to the typed taxonomy."""
    if isinstance(exc, httpx.TimeoutException):
        return UnreachableError(
            f"Timed out talking to {target}: {exc}",
            backend=backend,
            remediation=remediation,
        )
    if isinstance(exc, httpx.HTTPStatusError):
        return upstream_error(exc.response.status_code, exc.response.text, backend=backend,
                              target=target, remediation=remediation)
    return UnreachableError(
        f"Cannot connect to {target}: {exc}",
        backend=backend,
        remediation=remediation,
    )


def upstream_error(
    status_code: int,
    body: str,
    *,
    backend: BackendKind,
    target: str,
    remediation: list[str],
) -> UpstreamError:
    steps = list(remediation)
    if status_code in (401, 403):
        steps = credential_remediation() + steps
    return UpstreamError(
        f"{target} returned status {status_code}: {body[:500]}",
        status_code=status_code,
        body=body,
        backend=backend,
        remediation=steps,
    )
