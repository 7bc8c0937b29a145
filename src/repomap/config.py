"""User configuration for repomap.

Precedence: CLI flag > environment > ``repomap.toml`` > default.
Credentials (``GEMINI_API_KEY``, ``GITHUB_TOKEN``) only ever come from the
environment, optionally seeded from a ``.env`` file.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .llm import DEFAULT_MODEL

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "repomap.toml"
LLM_KEY_ENV = "GEMINI_API_KEY"
GITHUB_TOKEN_ENV = "GITHUB_TOKEN"


class RepomapConfig(BaseModel):
    """Tunables for the LLM client, context budgets, and projection."""

    models: list[str] = Field(default_factory=lambda: [DEFAULT_MODEL])
    """Gemini model ids, tried in order by the non-throwing client."""

    max_attempts: int = Field(default=3, ge=1)
    """Rate-limited attempts before giving up."""

    base_delay_ms: int = Field(default=2000, ge=0)
    """First backoff delay when the provider gives no hint."""

    hint_buffer_ms: int = Field(default=1000, ge=0)

    request_timeout: float = Field(default=120.0, gt=0)

    outline_max_depth: int = Field(default=2, ge=0)
    outline_max_items: int = Field(default=50, ge=1)

    excerpt_chars: int = Field(default=40_000, ge=1)
    """Content budget for file summaries and analyses."""

    question_excerpt_chars: int = Field(default=30_000, ge=1)
    """Content budget for targeted questions."""

    find_file_max_paths: int = Field(default=1000, ge=1)

    projection_depth: int = Field(default=3, ge=0)

    @field_validator("models", mode="before")
    @classmethod
    def _split_models(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [m.strip() for m in value.split(",") if m.strip()]
        return value

    @field_validator("models")
    @classmethod
    def _non_empty(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("at least one model is required")
        return value


_ENV_OVERRIDES = {
    "REPOMAP_MODELS": "models",
    "REPOMAP_MAX_ATTEMPTS": "max_attempts",
}


def find_config_file(start: Path) -> Path | None:
    """First ``repomap.toml`` in *start* or its parents."""
    start = start.resolve()
    for d in [start, *start.parents]:
        candidate = d / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def load_config(start: Path | None = None, overrides: dict[str, Any] | None = None) -> RepomapConfig:
    """Merge defaults, ``repomap.toml``, environment, then *overrides*."""
    values: dict[str, Any] = {}

    path = find_config_file(start or Path.cwd())
    if path is not None:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
        table = data.get("repomap", data)
        values.update({k: v for k, v in table.items() if k in RepomapConfig.model_fields})
        logger.debug("Loaded config from %s", path)

    for env_name, field_name in _ENV_OVERRIDES.items():
        raw = os.environ.get(env_name, "").strip()
        if raw:
            values[field_name] = raw

    values.update({k: v for k, v in (overrides or {}).items() if v is not None})
    return RepomapConfig.model_validate(values)


def load_dotenv(start_dir: Path) -> None:
    """Load a .env file from *start_dir* (or parents) into os.environ.

    Only sets vars that are not already present in the environment.
    """
    search = start_dir.resolve()
    for d in [search, *search.parents]:
        candidate = d / ".env"
        if not candidate.is_file():
            continue
        for line in candidate.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("\"'")
            if key and key not in os.environ:
                os.environ[key] = value
        return  # stop after the first .env found
