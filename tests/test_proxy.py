"""Tests for the CORS proxy app and ProxyForwarder."""

from __future__ import annotations

import gzip
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from advisor_router.adapters.proxy.app import create_app
from advisor_router.proxy.forwarder import ProxyForwarder

from conftest import sse

ENDPOINT = "https://llm.example.com/v1"


class _Upstream:
    """Fake OpenAI-compatible endpoint keyed by path."""

    def __init__(self, routes: dict[str, httpx.Response | Exception]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        result = self.routes.get(request.url.path)
        if result is None:
            return httpx.Response(404, text="not found")
        if isinstance(result, Exception):
            raise result
        return result


class _ChunkedBody(httpx.AsyncByteStream):
    """Response body delivered chunk by chunk, as a live connection would."""

    def __init__(self, *chunks: bytes) -> None:
        self.chunks = chunks

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk


def _streamed(*chunks: bytes, **headers: str) -> httpx.Response:
    return httpx.Response(
        200,
        headers={"content-type": "text/event-stream", **headers},
        stream=_ChunkedBody(*chunks),
    )


def _client(upstream: _Upstream) -> TestClient:
    forwarder = ProxyForwarder(httpx.AsyncClient(transport=httpx.MockTransport(upstream)))
    return TestClient(create_app(forwarder))


def _envelope(**body) -> dict:
    return {"endpoint": ENDPOINT, "apiKey": "sk-test", "body": {"model": "gpt-4", "messages": [], **body}}


class TestProxyForwarding:

    def test_liveness(self):
        response = _client(_Upstream({})).get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    @pytest.mark.parametrize("payload", [
        {},
        {"endpoint": ENDPOINT, "apiKey": "sk-test"},
        {"endpoint": ENDPOINT, "body": {"model": "x"}},
    ])
    def test_missing_fields(self, payload):
        response = _client(_Upstream({})).post("/proxy", json=payload)
        assert response.status_code == 400
        assert response.json() == {"error": "Missing required fields: endpoint, apiKey, or body"}

    def test_non_stream_returns_upstream_json_unmodified(self):
        completion = {
            "id": "cmpl-9",
            "object": "chat.completion",
            "choices": [{"index": 0, "message": {"role": "assistant", "content": "Hi"}}],
            "usage": {"prompt_tokens": 3, "completion_tokens": 1},
        }
        upstream = _Upstream({"/v1/chat/completions": httpx.Response(200, json=completion)})
        response = _client(upstream).post("/proxy", json=_envelope(stream=False, temperature=0.1))

        assert response.status_code == 200
        assert response.json() == completion
        sent = upstream.requests[0]
        assert str(sent.url) == f"{ENDPOINT}/chat/completions"
        assert sent.headers["authorization"] == "Bearer sk-test"
        assert json.loads(sent.content) == _envelope(stream=False, temperature=0.1)["body"]

    def test_stream_relays_lines_verbatim(self):
        upstream_body = b": openai-processing\n\n" + sse("Hel", "lo", "!")
        chunks = [upstream_body[i:i + 16] for i in range(0, len(upstream_body), 16)]
        upstream = _Upstream({"/v1/chat/completions": _streamed(*chunks)})
        response = _client(upstream).post("/proxy", json=_envelope(stream=True))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert len(response.content) >= len(upstream_body)
        assert response.content.splitlines() == upstream_body.splitlines()

    def test_stream_relays_decoded_bytes_for_compressed_upstream(self):
        upstream_body = sse("Hel", "lo")
        compressed = gzip.compress(upstream_body)
        upstream = _Upstream({
            "/v1/chat/completions": _streamed(compressed[:10], compressed[10:], **{"content-encoding": "gzip"}),
        })
        response = _client(upstream).post("/proxy", json=_envelope(stream=True))

        assert response.status_code == 200
        assert "content-encoding" not in response.headers
        assert response.content == upstream_body
        assert b"data: [DONE]" in response.content

    def test_upstream_error_surfaces_status_and_body(self):
        upstream = _Upstream({
            "/v1/chat/completions": httpx.Response(401, text='{"error": "invalid api key"}'),
        })
        response = _client(upstream).post("/proxy", json=_envelope(stream=True))
        assert response.status_code == 401
        assert response.json() == {
            "error": "API returned status 401",
            "details": '{"error": "invalid api key"}',
        }

    @pytest.mark.parametrize("exc, status", [
        (httpx.ConnectError("[Errno 111] Connection refused"), 503),
        (httpx.ReadTimeout("read timed out"), 504),
        (httpx.RemoteProtocolError("peer closed connection"), 502),
    ])
    def test_transport_failure_keeps_message(self, exc, status):
        upstream = _Upstream({"/v1/chat/completions": exc})
        response = _client(upstream).post("/proxy", json=_envelope(stream=False))
        assert response.status_code == status
        body = response.json()
        assert body["message"] == str(exc)
        assert body["remediation"]

    def test_cors_preflight(self):
        response = _client(_Upstream({})).options(
            "/proxy",
            headers={
                "Origin": "http://localhost:5173",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"


class TestRemoteProbe:

    def _probe(self, upstream: _Upstream, **extra) -> dict:
        response = _client(upstream).post(
            "/health/remote", json={"endpoint": ENDPOINT, "apiKey": "sk-test", **extra},
        )
        assert response.status_code == 200
        return response.json()

    def test_models_listing_ok(self):
        upstream = _Upstream({"/v1/models": httpx.Response(200, json={"data": []})})
        result = self._probe(upstream)
        assert result["status"] == "available"
        assert len(upstream.requests) == 1

    def test_falls_back_to_one_token_completion(self):
        upstream = _Upstream({
            "/v1/models": httpx.Response(404),
            "/v1/chat/completions": httpx.Response(200, json={"choices": []}),
        })
        result = self._probe(upstream, model="llama-70b")
        assert result["status"] == "available"
        body = json.loads(upstream.requests[1].content)
        assert body == {
            "model": "llama-70b",
            "messages": [{"role": "user", "content": "test"}],
            "max_tokens": 1,
            "stream": False,
        }

    def test_default_probe_model(self):
        upstream = _Upstream({
            "/v1/models": httpx.Response(405),
            "/v1/chat/completions": httpx.Response(200, json={"choices": []}),
        })
        self._probe(upstream)
        assert json.loads(upstream.requests[1].content)["model"] == "gpt-3.5-turbo"

    def test_completion_error_payload_is_degraded(self):
        upstream = _Upstream({
            "/v1/models": httpx.Response(404),
            "/v1/chat/completions": httpx.Response(200, json={"error": {"message": "model overloaded"}}),
        })
        result = self._probe(upstream)
        assert result["status"] == "degraded"
        assert "model overloaded" in result["message"]

    def test_both_stages_fail(self):
        upstream = _Upstream({
            "/v1/models": httpx.Response(404),
            "/v1/chat/completions": httpx.Response(500),
        })
        result = self._probe(upstream)
        assert result == {"status": "unavailable", "message": "Endpoint returned status 500", "latency_ms": None}

    def test_unreachable_endpoint(self):
        upstream = _Upstream({"/v1/models": httpx.ConnectError("Name or service not known")})
        result = self._probe(upstream)
        assert result["status"] == "unavailable"
        assert result["message"] == "Name or service not known"

    def test_missing_fields(self):
        response = _client(_Upstream({})).post("/health/remote", json={"endpoint": ENDPOINT})
        assert response.status_code == 400
