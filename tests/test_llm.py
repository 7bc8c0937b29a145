"""Tests for the LLM client retry protocol and fallback variant."""

from __future__ import annotations

import asyncio
import http.client
import io
import json
import urllib.error

import pytest

from repomap import llm as llm_module
from repomap.errors import (
    MalformedResponse,
    ProviderHTTPError,
    RetriesExhausted,
    TransportError,
    Unauthorized,
)
from repomap.llm import (
    PLACEHOLDER_CONNECTION,
    PLACEHOLDER_EMPTY,
    PLACEHOLDER_GENERIC,
    PLACEHOLDER_RATE_LIMITED,
    PLACEHOLDER_UNAUTHORIZED,
    LLMClient,
    backoff_delay_ms,
    extract_text,
    parse_retry_hint,
)

RATE_LIMITED = (429, json.dumps({"error": {"code": 429, "message": "Resource exhausted."}}))


class TestBackoffDelay:
    def test_exponential_without_hint(self):
        # Nth retry waits 2000 * 2^(N-1) ms.
        assert [backoff_delay_ms(n - 1) for n in (1, 2, 3)] == [2000, 4000, 8000]

    def test_hint_rounds_up_and_adds_buffer(self):
        assert backoff_delay_ms(0, 37.4812) == 38482
        assert backoff_delay_ms(2, 2.0) == 3000

    def test_custom_base(self):
        assert backoff_delay_ms(1, base_delay_ms=500) == 1000


class TestRetryHint:
    def test_parses_decimal_seconds(self):
        body = '{"error": {"message": "Quota exceeded. Please retry in 12.5s."}}'
        assert parse_retry_hint(body) == 12.5

    def test_parses_integer_seconds(self):
        assert parse_retry_hint("retry in 3s") == 3.0

    def test_reworded_message_has_no_hint(self):
        assert parse_retry_hint("Try again after 5 seconds") is None
        assert parse_retry_hint("") is None


class TestExtractText:
    def test_nested_text(self):
        body = json.dumps({"candidates": [{"content": {"parts": [{"text": "hi"}]}}]})
        assert extract_text(body) == "hi"

    @pytest.mark.parametrize(
        "body",
        [
            "{}",
            json.dumps({"candidates": []}),
            json.dumps({"candidates": [{"content": {"parts": [{}]}}]}),
            json.dumps({"candidates": [{"content": {"parts": [{"text": ""}]}}]}),
            "not json",
        ],
    )
    def test_missing_text_is_malformed(self, body):
        with pytest.raises(MalformedResponse):
            extract_text(body)


class TestComplete:
    def test_success_first_attempt(self, scripted_llm):
        client = scripted_llm("answer")
        assert asyncio.run(client.complete("prompt")) == "answer"
        assert client.prompts == ["prompt"]
        assert client.sleeper.delays == []

    def test_rate_limited_then_success(self, scripted_llm):
        client = scripted_llm(RATE_LIMITED, "finally")
        assert asyncio.run(client.complete("p")) == "finally"
        assert len(client.prompts) == 2
        assert client.sleeper.delays == [2.0]
        assert client.get_stats() == {"total_calls": 2, "retries": 1}

    def test_retry_cap_without_hint(self, scripted_llm):
        client = scripted_llm(RATE_LIMITED)
        with pytest.raises(RetriesExhausted) as info:
            asyncio.run(client.complete("p"))
        assert info.value.attempts == 3
        # No fourth attempt, and the delay floor doubles each time.
        assert len(client.prompts) == 3
        assert client.sleeper.delays == [2.0, 4.0, 8.0]

    def test_provider_hint_overrides_backoff(self, scripted_llm):
        hinted = (429, '{"error": {"message": "Please retry in 1.5s."}}')
        client = scripted_llm(hinted, "ok")
        assert asyncio.run(client.complete("p")) == "ok"
        assert client.sleeper.delays == [2.5]

    def test_reworded_hint_falls_back_to_exponential(self, scripted_llm):
        reworded = (429, '{"error": {"message": "Please wait 30 seconds before retrying."}}')
        client = scripted_llm(reworded, reworded, "ok")
        assert asyncio.run(client.complete("p")) == "ok"
        assert client.sleeper.delays == [2.0, 4.0]

    def test_unauthorized_is_not_retried(self, scripted_llm):
        client = scripted_llm((403, "forbidden"))
        with pytest.raises(Unauthorized):
            asyncio.run(client.complete("p"))
        assert len(client.prompts) == 1
        assert client.sleeper.delays == []

    def test_server_error_is_not_retried(self, scripted_llm):
        client = scripted_llm((500, "boom"))
        with pytest.raises(ProviderHTTPError) as info:
            asyncio.run(client.complete("p"))
        assert info.value.status_code == 500
        assert len(client.prompts) == 1

    def test_malformed_payload_is_not_retried(self, scripted_llm):
        client = scripted_llm((200, json.dumps({"candidates": []})))
        with pytest.raises(MalformedResponse):
            asyncio.run(client.complete("p"))
        assert len(client.prompts) == 1

    def test_transport_error_propagates_immediately(self, scripted_llm):
        client = scripted_llm(TransportError("unreachable"))
        with pytest.raises(TransportError):
            asyncio.run(client.complete("p"))
        assert client.sleeper.delays == []
        assert client.get_stats()["retries"] == 0

    def test_only_first_model_is_used(self, scripted_llm):
        client = scripted_llm("ok", models=["primary", "secondary"])
        asyncio.run(client.complete("p"))
        assert client.models_called == ["primary"]


class TestCompleteWithFallback:
    def test_falls_through_to_next_model(self, scripted_llm):
        client = scripted_llm(RATE_LIMITED, "second", models=["a", "b"])
        assert asyncio.run(client.complete_with_fallback("p")) == "second"
        assert client.models_called == ["a", "b"]
        # Single attempt per candidate, no backoff.
        assert client.sleeper.delays == []

    def test_returns_first_success(self, scripted_llm):
        client = scripted_llm("first", models=["a", "b"])
        assert asyncio.run(client.complete_with_fallback("p")) == "first"
        assert client.models_called == ["a"]

    @pytest.mark.parametrize(
        "reply, expected",
        [
            (RATE_LIMITED, PLACEHOLDER_RATE_LIMITED),
            ((401, "bad key"), PLACEHOLDER_UNAUTHORIZED),
            ((403, "forbidden"), PLACEHOLDER_UNAUTHORIZED),
            ((500, "boom"), PLACEHOLDER_GENERIC),
            ((200, "{}"), PLACEHOLDER_EMPTY),
            (TransportError("down"), PLACEHOLDER_CONNECTION),
        ],
    )
    def test_failures_become_placeholders(self, scripted_llm, reply, expected):
        client = scripted_llm(reply)
        assert asyncio.run(client.complete_with_fallback("p")) == expected

    def test_reports_last_failure(self, scripted_llm):
        client = scripted_llm(RATE_LIMITED, (401, "no"), models=["a", "b"])
        assert asyncio.run(client.complete_with_fallback("p")) == PLACEHOLDER_UNAUTHORIZED


class TestTransport:
    def test_http_error_returns_status_and_body(self, monkeypatch):
        def fake_urlopen(req, timeout):
            raise urllib.error.HTTPError(
                req.full_url, 429, "Too Many Requests", {}, io.BytesIO(b"retry in 2s")
            )

        monkeypatch.setattr(llm_module.urllib.request, "urlopen", fake_urlopen)
        client = LLMClient(api_key="k")
        assert client._post_sync("gemini-2.5-flash", "hello") == (429, "retry in 2s")

    def test_url_error_raises_transport_error(self, monkeypatch):
        def fake_urlopen(req, timeout):
            raise urllib.error.URLError("name resolution failed")

        monkeypatch.setattr(llm_module.urllib.request, "urlopen", fake_urlopen)
        client = LLMClient(api_key="k")
        with pytest.raises(TransportError):
            client._post_sync("gemini-2.5-flash", "hello")

    def test_request_shape(self, monkeypatch):
        seen = {}

        class _Resp(io.BytesIO):
            status = 200

        def fake_urlopen(req, timeout):
            seen["url"] = req.full_url
            seen["body"] = json.loads(req.data.decode("utf-8"))
            return _Resp(b'{"candidates": []}')

        monkeypatch.setattr(llm_module.urllib.request, "urlopen", fake_urlopen)
        client = LLMClient(api_key="k/y", base_url="https://llm.test/models")
        status, _ = client._post_sync("m1", "hello")
        assert status == 200
        assert seen["url"] == "https://llm.test/models/m1:generateContent?key=k%2Fy"
        assert seen["body"] == {"contents": [{"parts": [{"text": "hello"}]}]}

    def test_truncated_body_degrades_to_placeholder(self, monkeypatch):
        class _Truncated(io.BytesIO):
            status = 200

            def read(self, *args):
                raise http.client.IncompleteRead(b"{\"cand", 493)

        monkeypatch.setattr(llm_module.urllib.request, "urlopen", lambda req, timeout: _Truncated())
        client = LLMClient(api_key="k")
        assert asyncio.run(client.complete_with_fallback("p")) == PLACEHOLDER_CONNECTION
        with pytest.raises(TransportError):
            asyncio.run(client.complete("p"))

    def test_malformed_base_url_is_transport_error(self):
        client = LLMClient(api_key="k", base_url="not-a-url")
        with pytest.raises(TransportError):
            client._post_sync("m1", "hello")

    def test_requires_a_model(self):
        with pytest.raises(ValueError):
            LLMClient(api_key="k", models=[])
