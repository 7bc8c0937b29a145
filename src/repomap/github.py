"""Source-tree provider -- GitHub REST contents API via urllib.

Every non-2xx reply becomes a :class:`TreeProviderError` carrying the
original status code so callers can tell "not found" from "rate limited"
from "server error".
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import http.client
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any

from .errors import TreeProviderError
from .models import Entry, RepoProfile

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


def _to_entry(item: dict[str, Any]) -> Entry:
    return Entry(
        kind="dir" if item.get("type") == "dir" else "file",
        path=item.get("path") or "",
        name=item.get("name") or "",
        byte_size=item.get("size") or 0,
        download_locator=item.get("download_url"),
    )


def _error_message(body: str) -> str:
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return body.strip() or "Failed to fetch"
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return body.strip() or "Failed to fetch"


@dataclass
class GitHubClient:
    """Async-friendly GitHub client; blocking calls run in worker threads."""

    token: str | None = None
    base_url: str = GITHUB_API_URL
    timeout: float = 30.0

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "repomap",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _url(self, path: str, params: dict[str, str | None] | None = None) -> str:
        url = f"{self.base_url}{path}"
        query = {k: v for k, v in (params or {}).items() if v}
        if query:
            url = f"{url}?{urllib.parse.urlencode(query)}"
        return url

    def _get_sync(self, url: str) -> str:
        """Blocking GET returning the decoded body."""
        logger.debug("GET %s", url)
        try:
            req = urllib.request.Request(url, headers=self._headers(), method="GET")
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                return resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as exc:
            try:
                body = exc.read().decode("utf-8", errors="replace")
            except (http.client.HTTPException, OSError):
                body = ""
            message = _error_message(body)
            logger.warning("GitHub request failed (%s): %s", exc.code, message)
            raise TreeProviderError(exc.code, message) from exc
        except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as exc:
            raise TreeProviderError(500, f"Failed to fetch: {exc}") from exc

    async def _get_json(self, path: str, params: dict[str, str | None] | None = None) -> Any:
        body = await asyncio.to_thread(self._get_sync, self._url(path, params))
        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise TreeProviderError(502, "GitHub returned invalid JSON") from exc

    @staticmethod
    def _contents_path(owner: str, repo: str, path: str) -> str:
        quoted = urllib.parse.quote(path.strip("/"))
        return f"/repos/{owner}/{repo}/contents/{quoted}"

    # ------------------------------------------------------------------
    # Tree
    # ------------------------------------------------------------------

    async def list_directory(
        self, owner: str, repo: str, path: str = "", ref: str | None = None,
    ) -> list[Entry]:
        """Entries directly under *path* (repository root by default)."""
        data = await self._get_json(self._contents_path(owner, repo, path), {"ref": ref})
        items = data if isinstance(data, list) else [data]
        return [_to_entry(item) for item in items if isinstance(item, dict)]

    async def fetch_file_text(
        self, owner: str, repo: str, path: str, ref: str | None = None,
    ) -> str:
        """Decode a file's base64 ``content`` field from the contents API."""
        data = await self._get_json(self._contents_path(owner, repo, path), {"ref": ref})
        if not isinstance(data, dict) or "content" not in data:
            raise TreeProviderError(500, "No content found")
        try:
            raw = base64.b64decode(data["content"])
        except (binascii.Error, ValueError) as exc:
            raise TreeProviderError(500, "File content is not valid base64") from exc
        return raw.decode("utf-8", errors="replace")

    async def fetch_raw(self, download_url: str) -> str:
        return await asyncio.to_thread(self._get_sync, download_url)

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    async def get_repository(self, owner: str, repo: str) -> RepoProfile:
        data = await self._get_json(f"/repos/{owner}/{repo}")
        return RepoProfile.model_validate(data)

    async def list_user_repositories(self, user: str, per_page: int = 100) -> list[RepoProfile]:
        data = await self._get_json(f"/users/{user}/repos", {"per_page": str(per_page)})
        if not isinstance(data, list):
            raise TreeProviderError(502, "Expected a list of repositories")
        return [RepoProfile.model_validate(item) for item in data]
