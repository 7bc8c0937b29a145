"""LLM client -- async wrapper around the Gemini ``generateContent`` API.

Two entry points with different failure contracts:

* :meth:`LLMClient.complete` retries rate-limited calls with backoff and
  raises once retries are exhausted or on any hard error.  Used by batch
  summarization.
* :meth:`LLMClient.complete_with_fallback` makes one attempt per configured
  model and never raises; it returns a short placeholder message instead.
  Used by interactive question flows.
"""

from __future__ import annotations

import asyncio
import http.client
import json
import logging
import math
import re
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from .errors import (
    MalformedResponse,
    ProviderHTTPError,
    ProviderUnavailable,
    RateLimited,
    RetriesExhausted,
    TransportError,
    Unauthorized,
)
from .models import RetryState

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_MODEL = "gemini-2.5-flash"

RATE_LIMIT_STATUS = 429
AUTH_STATUSES = (401, 403)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_MS = 2000
DEFAULT_HINT_BUFFER_MS = 1000

# e.g. "Please retry in 37.48s."
_RETRY_HINT_RE = re.compile(r"retry in (\d+(?:\.\d+)?)s")

# ---------------------------------------------------------------------------
# User-facing placeholders returned by the non-throwing variant
# ---------------------------------------------------------------------------

PLACEHOLDER_RATE_LIMITED = "AI is taking a short break. Please try again in a moment."
PLACEHOLDER_UNAUTHORIZED = "AI service is temporarily unavailable."
PLACEHOLDER_GENERIC = "Could not analyze this content right now."
PLACEHOLDER_EMPTY = "AI couldn't generate a response. Try again."
PLACEHOLDER_CONNECTION = "Connection issue. Please check your network."
PLACEHOLDER_UNAVAILABLE = "Analysis unavailable at the moment."

PLACEHOLDER_MESSAGES: tuple[str, ...] = (
    PLACEHOLDER_RATE_LIMITED,
    PLACEHOLDER_UNAUTHORIZED,
    PLACEHOLDER_GENERIC,
    PLACEHOLDER_EMPTY,
    PLACEHOLDER_CONNECTION,
    PLACEHOLDER_UNAVAILABLE,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_retry_hint(body: str) -> float | None:
    """Seconds from a ``retry in <n>s`` phrase in an error body, if any."""
    match = _RETRY_HINT_RE.search(body or "")
    if not match:
        return None
    return float(match.group(1))


def backoff_delay_ms(
    attempt: int,
    hint_seconds: float | None = None,
    *,
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
    hint_buffer_ms: int = DEFAULT_HINT_BUFFER_MS,
) -> int:
    """Delay before retrying after the zero-based *attempt* was rate limited.

    A provider hint wins (rounded up, plus a fixed buffer); otherwise the
    delay doubles per attempt starting at *base_delay_ms*.
    """
    if hint_seconds is not None:
        return math.ceil(hint_seconds * 1000) + hint_buffer_ms
    return base_delay_ms * (2 ** attempt)


def _read_error_body(exc: urllib.error.HTTPError) -> str:
    """Body of an error reply; empty when the connection dies mid-read."""
    try:
        return exc.read().decode("utf-8", errors="replace")
    except (http.client.HTTPException, OSError):
        return ""


def extract_text(body: str) -> str:
    """Pull ``candidates[0].content.parts[0].text`` out of a response body."""
    try:
        data = json.loads(body)
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (json.JSONDecodeError, KeyError, IndexError, TypeError) as exc:
        raise MalformedResponse("LLM response is missing the completion text") from exc
    if not isinstance(text, str) or not text:
        raise MalformedResponse("LLM response contains no completion text")
    return text


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


@dataclass
class LLMClient:
    """Minimal async Gemini client built on urllib."""

    api_key: str
    models: list[str] = field(default_factory=lambda: [DEFAULT_MODEL])
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS
    hint_buffer_ms: int = DEFAULT_HINT_BUFFER_MS
    timeout: float = 120.0
    base_url: str = GEMINI_BASE_URL
    # Injected so tests can observe backoff without waiting.
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)
    _total_calls: int = field(default=0, init=False, repr=False)
    _retry_count: int = field(default=0, init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.models:
            raise ValueError("LLMClient needs at least one model")

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _endpoint(self, model: str) -> str:
        key = urllib.parse.quote(self.api_key, safe="")
        return f"{self.base_url}/{model}:generateContent?key={key}"

    def _post_sync(self, model: str, prompt: str) -> tuple[int, str]:
        """Blocking POST. Returns ``(status, body)`` for any HTTP reply."""
        payload = json.dumps({"contents": [{"parts": [{"text": prompt}]}]}).encode("utf-8")
        try:
            req = urllib.request.Request(
                self._endpoint(model),
                data=payload,
                headers={"Content-Type": "application/json"},
                method="POST",
            )
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                return resp.status, resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as exc:
            return exc.code, _read_error_body(exc)
        except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as exc:
            # IncompleteRead from resp.read(), ValueError from a malformed URL
            raise TransportError(f"Could not reach LLM provider: {exc}") from exc

    async def _attempt(self, model: str, prompt: str) -> str:
        """One request, classified into text or a typed failure."""
        try:
            status, body = await asyncio.to_thread(self._post_sync, model, prompt)
        except TransportError:
            logger.error("LLM transport failure for model %s", model, exc_info=True)
            raise
        self._total_calls += 1

        if 200 <= status < 300:
            return extract_text(body)
        if status == RATE_LIMIT_STATUS:
            raise RateLimited(body, parse_retry_hint(body))
        if status in AUTH_STATUSES:
            raise Unauthorized(status, body)
        raise ProviderHTTPError(status, body)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def complete(self, prompt: str) -> str:
        """Return the completion for *prompt*, retrying only on rate limits.

        Attempts are strictly sequential.  Raises :class:`RetriesExhausted`
        after ``max_attempts`` rate-limited attempts, and any other
        :class:`ProviderUnavailable` subclass immediately.
        """
        model = self.models[0]
        state = RetryState(max_attempts=self.max_attempts)
        while True:
            try:
                return await self._attempt(model, prompt)
            except RateLimited as exc:
                state.next_delay_ms = backoff_delay_ms(
                    state.attempt,
                    exc.retry_after,
                    base_delay_ms=self.base_delay_ms,
                    hint_buffer_ms=self.hint_buffer_ms,
                )
                logger.warning(
                    "LLM rate limit hit (attempt %d/%d)", state.attempt + 1, state.max_attempts
                )
                logger.info("Waiting %d ms before retry", state.next_delay_ms)
                self._retry_count += 1
                await self.sleep(state.next_delay_ms / 1000)
                state.attempt += 1
                if state.exhausted:
                    raise RetriesExhausted(state.attempt) from exc

    async def complete_with_fallback(self, prompt: str) -> str:
        """Try each model once, in order; never raises.

        Returns the first successful completion, otherwise a placeholder
        describing the last failure.
        """
        last_message = ""
        for model in self.models:
            try:
                return await self._attempt(model, prompt)
            except RateLimited:
                last_message = PLACEHOLDER_RATE_LIMITED
            except Unauthorized:
                last_message = PLACEHOLDER_UNAUTHORIZED
            except MalformedResponse:
                last_message = PLACEHOLDER_EMPTY
            except TransportError:
                last_message = PLACEHOLDER_CONNECTION
            except ProviderUnavailable:
                last_message = PLACEHOLDER_GENERIC
            logger.warning("Model %s failed: %s", model, last_message)
        return last_message or PLACEHOLDER_UNAVAILABLE

    def get_stats(self) -> dict[str, int]:
        """Runtime call counters."""
        return {"total_calls": self._total_calls, "retries": self._retry_count}
