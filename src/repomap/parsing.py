"""Response parser -- validates the shape of model output.

Structured answers are checked against :class:`AnalysisResult`; anything
that does not fit is reported as absent (``None``), never partially accepted
and never retried.
"""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from .llm import PLACEHOLDER_MESSAGES
from .models import AnalysisResult

logger = logging.getLogger(__name__)

ERROR_PREFIX = "Error"
NULL_ANSWER = "null"


def is_placeholder(text: str) -> bool:
    """True when *text* contains one of the fallback client's failure messages."""
    return any(message in text for message in PLACEHOLDER_MESSAGES)


def strip_fences(text: str) -> str:
    """Remove ```json / ``` markers anywhere in *text* and trim."""
    return text.replace("```json", "").replace("```", "").strip()


def parse_structured(text: str) -> AnalysisResult | None:
    """Parse a structured analysis, or ``None`` when the text is unusable."""
    stripped = (text or "").strip()
    if not stripped.startswith("{") and not stripped.startswith("```"):
        logger.warning("Analysis skipped (model returned plain text): %.80s", stripped)
        return None
    if is_placeholder(stripped):
        logger.warning("Analysis skipped (placeholder message): %.80s", stripped)
        return None

    cleaned = strip_fences(stripped)
    if not cleaned.startswith("{"):
        logger.warning("Analysis skipped (no JSON object after fences)")
        return None
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        logger.warning("Model returned invalid JSON", exc_info=True)
        return None
    try:
        return AnalysisResult.model_validate(data)
    except ValidationError as exc:
        logger.warning("Model JSON does not match the analysis shape: %s", exc)
        return None


def parse_path_answer(text: str | None) -> str | None:
    """Clean a "which file?" answer, or ``None`` for empty/error/``null``.

    The ``null`` check is case-sensitive.
    """
    if not text or text.startswith(ERROR_PREFIX) or text.strip() == NULL_ANSWER:
        return None
    if is_placeholder(text):
        return None
    cleaned = text.replace("`", "").replace("'", "").replace('"', "").strip()
    return cleaned or None
