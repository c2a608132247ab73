"""Preferences — the read-only configuration record for the routing layer."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from advisor_router.engine.errors import ConfigurationError
from advisor_router.engine.models import BackendKind, ChatConfig

DEFAULT_LOCAL_URL = "http://localhost:11434"
DEFAULT_LOCAL_MODEL = "gemma3:4b-it-qat"
DEFAULT_PROXY_URL = "http://localhost:3002"
DEFAULT_REMOTE_MODEL = "gpt-4"
DEFAULT_SEARCH_MODEL = "sonar"
DEFAULT_SEARCH_BASE_URL = "https://api.perplexity.ai"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Backend names used by the dashboard preference record.
_FILE_BACKENDS = {"ollama": BackendKind.LOCAL, "openai": BackendKind.REMOTE}


def parse_backend(value: str) -> BackendKind:
    """Accept ``local``/``remote`` as well as the dashboard's ``ollama``/``openai``."""
    name = value.strip().lower()
    if name in _FILE_BACKENDS:
        return _FILE_BACKENDS[name]
    try:
        return BackendKind(name)
    except ValueError:
        raise ConfigurationError(
            f"Unknown backend {value!r}",
            remediation=["Use one of: local, remote (or ollama, openai)"],
        ) from None


def _flag(value: str | None, default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Preferences(BaseModel):
    model_config = ConfigDict(frozen=True)

    preferred_backend: BackendKind = BackendKind.LOCAL
    local_url: str = DEFAULT_LOCAL_URL
    local_model: str = DEFAULT_LOCAL_MODEL
    proxy_url: str = DEFAULT_PROXY_URL
    remote_endpoint: str | None = None
    remote_api_key: str | None = None
    remote_model: str = DEFAULT_REMOTE_MODEL
    search_api_key: str | None = None
    search_model: str = DEFAULT_SEARCH_MODEL
    search_base_url: str = DEFAULT_SEARCH_BASE_URL
    system_prompt: str | None = None
    temperature: float = 0.7
    max_tokens: int = 2048
    health_interval: float = 10.0
    probe_timeout: float = 8.0
    search_timeout: float = 20.0
    web_search: bool = True
    trace_dir: str = "./traces"
    log_level: str = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def _check_log_level(cls, value: Any) -> str:
        name = str(value).strip().upper()
        if not isinstance(logging.getLevelName(name), int):
            raise ConfigurationError(
                f"Unknown log level {value!r}",
                remediation=["Use one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"],
            )
        return name

    @model_validator(mode="after")
    def _check_timings(self) -> "Preferences":
        if self.health_interval <= 0:
            raise ConfigurationError("health_interval must be positive")
        if self.probe_timeout >= self.health_interval:
            raise ConfigurationError(
                f"probe_timeout ({self.probe_timeout}s) must be below "
                f"health_interval ({self.health_interval}s)",
            )
        return self

    # -- sources ------------------------------------------------------------

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: Any) -> "Preferences":
        """Build from environment variables (all optional).

          PREFERRED_BACKEND   — ``local`` (default) or ``remote``
          LOCAL_URL / LOCAL_MODEL
          PROXY_URL
          REMOTE_ENDPOINT / REMOTE_API_KEY / REMOTE_MODEL
          SEARCH_API_KEY / SEARCH_MODEL / SEARCH_BASE_URL
          SYSTEM_PROMPT
          HEALTH_INTERVAL / PROBE_TIMEOUT / SEARCH_TIMEOUT
          WEB_SEARCH          — ``0`` disables augmentation
          TRACE_DIR / LOG_LEVEL
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}

        if env.get("PREFERRED_BACKEND"):
            values["preferred_backend"] = parse_backend(env["PREFERRED_BACKEND"])
        for field, var in (
            ("local_url", "LOCAL_URL"),
            ("local_model", "LOCAL_MODEL"),
            ("proxy_url", "PROXY_URL"),
            ("remote_endpoint", "REMOTE_ENDPOINT"),
            ("remote_api_key", "REMOTE_API_KEY"),
            ("remote_model", "REMOTE_MODEL"),
            ("search_api_key", "SEARCH_API_KEY"),
            ("search_model", "SEARCH_MODEL"),
            ("search_base_url", "SEARCH_BASE_URL"),
            ("system_prompt", "SYSTEM_PROMPT"),
            ("trace_dir", "TRACE_DIR"),
            ("log_level", "LOG_LEVEL"),
        ):
            if env.get(var):
                values[field] = env[var]
        for field, var in (
            ("temperature", "TEMPERATURE"),
            ("health_interval", "HEALTH_INTERVAL"),
            ("probe_timeout", "PROBE_TIMEOUT"),
            ("search_timeout", "SEARCH_TIMEOUT"),
        ):
            if env.get(var):
                values[field] = float(env[var])
        if env.get("MAX_TOKENS"):
            values["max_tokens"] = int(env["MAX_TOKENS"])
        values["web_search"] = _flag(env.get("WEB_SEARCH"), True)

        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_file(cls, path: str | Path, base: "Preferences | None" = None) -> "Preferences":
        """Overlay the dashboard's JSON preference record on ``base`` (env by default)."""
        base = base or cls.from_env()
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise ConfigurationError(f"Preferences file not found: {path}") from None
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Preferences file {path} is not valid JSON: {exc.msg}") from exc

        ai = (raw.get("ai") or {}) if isinstance(raw, dict) else {}
        updates: dict[str, Any] = {}
        if ai.get("preferredModel"):
            updates["preferred_backend"] = parse_backend(ai["preferredModel"])
        mapping = {
            "naiBaseUrl": "remote_endpoint",
            "naiApiKey": "remote_api_key",
            "naiModel": "remote_model",
            "perplexityApiKey": "search_api_key",
            "perplexityModel": "search_model",
            "systemPrompt": "system_prompt",
            "ollamaUrl": "local_url",
            "ollamaModel": "local_model",
        }
        for key, field in mapping.items():
            if ai.get(key):
                updates[field] = ai[key]
        return cls(**{**base.model_dump(), **updates})

    # -- derived ------------------------------------------------------------

    def model_for(self, kind: BackendKind) -> str:
        return self.local_model if kind is BackendKind.LOCAL else self.remote_model

    def chat_config(self, kind: BackendKind) -> ChatConfig:
        return ChatConfig(
            model=self.model_for(kind),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            system_prompt=self.system_prompt,
        )

    def with_preferred(self, kind: BackendKind) -> "Preferences":
        return self.model_copy(update={"preferred_backend": kind})

    def configure_logging(self, **kwargs: Any) -> None:
        """Root logging setup for console entry points only."""
        logging.basicConfig(level=self.log_level, format=LOG_FORMAT, **kwargs)
