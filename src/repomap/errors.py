"""Exception hierarchy shared by the tree, provider, and LLM layers."""

from __future__ import annotations


class RepomapError(Exception):
    """Base exception for the whole package."""


# -- Tree provider ------------------------------------------------------------


class InvalidEntry(RepomapError):
    """A provider entry is missing its name or path."""

    def __init__(self, index: int, parent_path: str, reason: str) -> None:
        self.index = index
        self.parent_path = parent_path
        self.reason = reason
        super().__init__(
            f"Invalid entry #{index} under '{parent_path or '/'}': {reason}"
        )


class TreeProviderError(RepomapError):
    """The source-tree provider answered with a non-success status."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Tree provider error ({status_code}): {message}")


# -- LLM provider -------------------------------------------------------------


class ProviderUnavailable(RepomapError):
    """Any failure of the LLM completion provider."""


class RateLimited(ProviderUnavailable):
    """A single attempt was rate limited (429).

    Absorbed by the retry loop; only surfaces as :class:`RetriesExhausted`.
    """

    def __init__(self, body: str = "", retry_after: float | None = None) -> None:
        self.body = body
        self.retry_after = retry_after
        super().__init__("LLM provider rate limited the request")


class RetriesExhausted(ProviderUnavailable):
    """Still rate limited after the maximum number of attempts."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"LLM provider still rate limited after {attempts} attempts")


class Unauthorized(ProviderUnavailable):
    """The credential was rejected (401/403)."""

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"LLM provider rejected the credential ({status_code})")


class ProviderHTTPError(ProviderUnavailable):
    """Non-success status that is neither rate limiting nor auth."""

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"LLM provider error ({status_code}): {body[:200]}")


class MalformedResponse(ProviderUnavailable):
    """Success status but the envelope lacks the completion text."""


class TransportError(ProviderUnavailable):
    """Network-level failure before any HTTP status was received."""
