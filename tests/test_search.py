"""Tests for WebSearchAugmenter — decision, extraction, failure swallowing."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from advisor_router.engine.models import HealthStatus, SearchAugmentation
from advisor_router.search.augmenter import WebSearchAugmenter

from conftest import mock_client


def _completion(content: str, **extra) -> dict:
    return {
        "id": "cmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "sonar",
        "choices": [{
            "index": 0,
            "finish_reason": "stop",
            "message": {"role": "assistant", "content": content},
        }],
        **extra,
    }


class _Provider:
    def __init__(self, response: httpx.Response | None = None, delay: float = 0.0) -> None:
        self.response = response
        self.delay = delay
        self.requests: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.response


def _augmenter(provider: _Provider, **kwargs) -> WebSearchAugmenter:
    return WebSearchAugmenter(api_key="pplx-test", http_client=mock_client(provider), **kwargs)


class TestDecision:

    @pytest.mark.parametrize("query", [
        "what's the weather in Boston",
        "LATEST news on Acme Corp",
        "Who is the CEO of Globex?",
        "stock price for ACME",
    ])
    def test_keyword_triggers_search(self, query):
        assert WebSearchAugmenter().should_search(query)

    @pytest.mark.parametrize("query", [
        "summarize account risks",
        "draft a follow-up email for the renewal",
    ])
    def test_no_keyword_no_search(self, query):
        assert not WebSearchAugmenter().should_search(query)


class TestSearch:

    async def test_extracts_answer_and_citations(self):
        citations = ["https://a.example", "https://b.example", "https://c.example", "https://d.example"]
        provider = _Provider(httpx.Response(200, json=_completion("Sunny, 21C.", citations=citations)))
        augmentation = await _augmenter(provider).search("what's the weather in Boston")

        assert augmentation.answer == "Sunny, 21C."
        assert augmentation.citations == citations
        assert [r.title for r in augmentation.results] == [
            "Latest Information", "Source 1", "Source 2", "Source 3",
        ]
        assert augmentation.results[0].url == "https://a.example"
        assert "Here is current information from web search:\n\nSunny, 21C.\n" in augmentation.digest
        assert "1. https://a.example" in augmentation.digest

        request = provider.requests[0]
        assert request.url.path == "/chat/completions"
        assert request.headers["authorization"] == "Bearer pplx-test"
        body = json.loads(request.content)
        assert body["messages"] == [{"role": "user", "content": "what's the weather in Boston"}]
        assert body["temperature"] == 0.2
        assert body["max_tokens"] == 1000
        assert body["model"] == "sonar"

    async def test_search_results_used_when_no_citations(self):
        provider = _Provider(httpx.Response(200, json=_completion(
            "Acme acquired Initech.",
            search_results=[{"title": "Acme press release", "url": "https://acme.example/pr"}],
        )))
        augmentation = await _augmenter(provider).search("latest Acme news")
        assert augmentation.citations == ["https://acme.example/pr"]
        assert augmentation.results[1].title == "Acme press release"

    async def test_malformed_search_results_are_ignored(self):
        provider = _Provider(httpx.Response(200, json=_completion(
            "Acme acquired Initech.",
            search_results={"url": "http://a"},
        )))
        augmentation = await _augmenter(provider).search("latest Acme news")
        assert augmentation.answer == "Acme acquired Initech."
        assert augmentation.citations == []
        assert len(augmentation.results) == 1

    async def test_provider_error_returns_none(self):
        provider = _Provider(httpx.Response(500, json={"error": {"message": "overloaded"}}))
        assert await _augmenter(provider).search("latest news") is None

    async def test_empty_answer_returns_none(self):
        provider = _Provider(httpx.Response(200, json=_completion("")))
        assert await _augmenter(provider).search("latest news") is None

    async def test_timeout_returns_none(self):
        provider = _Provider(httpx.Response(200, json=_completion("late")), delay=1.0)
        assert await _augmenter(provider, timeout=0.05).search("latest news") is None

    async def test_without_key_no_call(self):
        augmenter = WebSearchAugmenter(api_key=None)
        assert not augmenter.configured
        assert await augmenter.search("latest news") is None


class TestInjection:

    def test_augment_folds_digest_into_query(self):
        digest = WebSearchAugmenter.format_digest("It is sunny.", ["https://w.example"])
        augmentation = SearchAugmentation(answer="It is sunny.", digest=digest)
        prompt = WebSearchAugmenter.augment("weather in Boston?", augmentation)
        assert prompt.startswith("Answer this question: weather in Boston?\n\nHere is current information")
        assert prompt.endswith("Sources:\n1. https://w.example\n")

    def test_no_augmentation_keeps_query(self):
        assert WebSearchAugmenter.augment("plain question", None) == "plain question"


class TestHealth:

    async def test_available_iff_key_configured(self):
        assert (await WebSearchAugmenter(api_key="k").check_health()).status is HealthStatus.AVAILABLE
        health = await WebSearchAugmenter().check_health()
        assert health.status is HealthStatus.UNAVAILABLE
        assert health.error_message
