"""WebSearchAugmenter — keyword-triggered search context folded into the user turn."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx
from openai import AsyncOpenAI

from advisor_router.engine.config import DEFAULT_SEARCH_BASE_URL, DEFAULT_SEARCH_MODEL
from advisor_router.engine.models import (
    HealthStatus,
    SearchAugmentation,
    SearchResult,
    ServiceHealth,
)

logger = logging.getLogger(__name__)


class WebSearchAugmenter:
    """Decides from the raw query text whether to search, then asks a search-capable
    chat-completions provider for an answer plus citations.

    ``search`` never raises: a failed call, a timeout or an empty answer all
    come back as ``None`` so the chat goes ahead without context.
    """

    KEYWORDS: tuple[str, ...] = (
        "search", "find", "look up", "what is", "who is", "when did",
        "latest", "current", "news", "today", "recent", "now",
        "how to", "where is", "weather", "stock", "price",
    )
    MAX_CITATION_RESULTS = 3
    TEMPERATURE = 0.2
    MAX_TOKENS = 1000

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_SEARCH_MODEL,
        base_url: str = DEFAULT_SEARCH_BASE_URL,
        timeout: float = 20.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url
        self._timeout = timeout
        self._client: AsyncOpenAI | None = None
        if api_key:
            self._client = AsyncOpenAI(
                api_key=api_key,
                base_url=base_url,
                timeout=timeout,
                max_retries=0,
                http_client=http_client,
            )

    @property
    def configured(self) -> bool:
        return self._client is not None

    # -- decision -----------------------------------------------------------

    def should_search(self, query: str) -> bool:
        lowered = query.lower()
        return any(keyword in lowered for keyword in self.KEYWORDS)

    # -- search -------------------------------------------------------------

    async def search(self, query: str) -> SearchAugmentation | None:
        if self._client is None:
            return None
        t0 = time.time()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._model,
                    messages=[{"role": "user", "content": query}],
                    temperature=self.TEMPERATURE,
                    max_tokens=self.MAX_TOKENS,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("web search timed out after %.1fs", self._timeout)
            return None
        except Exception as exc:
            logger.warning("web search failed: %s", exc)
            return None

        try:
            augmentation = self.extract(response)
        except (TypeError, ValueError, AttributeError) as exc:
            logger.warning("web search returned an unreadable payload: %s", exc)
            return None
        if augmentation is None:
            logger.warning("web search returned no answer")
            return None
        logger.info(
            "web search ok: %d citation(s) in %.0fms",
            len(augmentation.citations), (time.time() - t0) * 1000,
        )
        return augmentation

    def extract(self, response: Any) -> SearchAugmentation | None:
        """Pull the answer text and citation URLs out of a completion."""
        choices = getattr(response, "choices", None) or []
        if not choices:
            return None
        choice = choices[0]
        message = getattr(choice, "message", None)
        answer = (getattr(message, "content", None) or "").strip()
        if not answer:
            return None

        extra = getattr(response, "model_extra", None) or {}
        choice_extra = getattr(choice, "model_extra", None) or {}
        citations = extra.get("citations") or choice_extra.get("citations") or []
        citations = [str(c) for c in citations if c] if isinstance(citations, list) else []

        results = [SearchResult(
            title="Latest Information",
            snippet=answer,
            url=citations[0] if citations else "",
            source="Web search",
        )]
        if citations:
            for index, url in enumerate(citations[: self.MAX_CITATION_RESULTS], start=1):
                results.append(SearchResult(
                    title=f"Source {index}",
                    snippet="Referenced in the answer above",
                    url=url,
                    source="Citation",
                ))
        else:
            search_results = extra.get("search_results") or []
            if not isinstance(search_results, list):
                search_results = []
            for entry in search_results[: self.MAX_CITATION_RESULTS]:
                if isinstance(entry, dict) and entry.get("url"):
                    citations.append(str(entry["url"]))
                    results.append(SearchResult(
                        title=str(entry.get("title") or f"Source {len(results)}"),
                        snippet="Referenced in the answer above",
                        url=str(entry["url"]),
                        source="Citation",
                    ))

        return SearchAugmentation(
            answer=answer,
            citations=citations,
            results=results,
            digest=self.format_digest(answer, citations),
        )

    # -- injection ----------------------------------------------------------

    @staticmethod
    def format_digest(answer: str, citations: list[str]) -> str:
        digest = f"\n\nHere is current information from web search:\n\n{answer}\n"
        if citations:
            digest += "\nSources:\n" + "".join(
                f"{index}. {url}\n" for index, url in enumerate(citations, start=1)
            )
        return digest

    @staticmethod
    def augment(query: str, augmentation: SearchAugmentation | None) -> str:
        """Text actually sent to the model for this user turn."""
        if augmentation is None:
            return query
        return f"Answer this question: {query}{augmentation.digest}"

    # -- health -------------------------------------------------------------

    async def check_health(self) -> ServiceHealth:
        """No network call: search is usable whenever a key is configured."""
        if self.configured:
            return ServiceHealth(status=HealthStatus.AVAILABLE, last_checked_at=time.time())
        return ServiceHealth(
            status=HealthStatus.UNAVAILABLE,
            last_checked_at=time.time(),
            error_message="No search API key configured",
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
