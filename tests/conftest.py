"""Shared fakes for the tree provider and the LLM transport."""

from __future__ import annotations

import json
from collections.abc import Callable

import pytest

from repomap.errors import TreeProviderError
from repomap.llm import LLMClient
from repomap.models import Entry, RepoProfile


def gemini_body(text: str) -> str:
    return json.dumps({"candidates": [{"content": {"parts": [{"text": text}]}}]})


class FakeSource:
    """In-memory stand-in for GitHubClient.

    ``listings`` maps a folder path to its entries; ``files`` maps a file
    path to its text.  Every call is recorded in ``calls``.
    """

    def __init__(
        self,
        listings: dict[str, list[Entry]] | None = None,
        files: dict[str, str] | None = None,
        repos: list[RepoProfile] | None = None,
    ) -> None:
        self.listings = dict(listings or {})
        self.files = dict(files or {})
        self.repos = list(repos or [])
        self.calls: list[tuple] = []

    async def list_directory(self, owner, repo, path="", ref=None):
        self.calls.append(("list", path, ref))
        if path not in self.listings:
            raise TreeProviderError(404, "Not Found")
        return list(self.listings[path])

    async def fetch_file_text(self, owner, repo, path, ref=None):
        self.calls.append(("text", path, ref))
        if path not in self.files:
            raise TreeProviderError(404, "Not Found")
        return self.files[path]

    async def fetch_raw(self, download_url):
        self.calls.append(("raw", download_url))
        path = download_url.rsplit("/main/", 1)[-1]
        if path not in self.files:
            raise TreeProviderError(404, "Not Found")
        return self.files[path]

    async def get_repository(self, owner, repo):
        self.calls.append(("repo", owner, repo))
        return RepoProfile(name=repo, full_name=f"{owner}/{repo}", language="Python")

    async def list_user_repositories(self, user, per_page=100):
        self.calls.append(("repos", user))
        return list(self.repos)


class Sleeper:
    """Async sleep replacement that records requested delays (seconds)."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def file_entry(path: str, size: int = 10, locator: str | None = None) -> Entry:
    return Entry(
        kind="file",
        path=path,
        name=path.rsplit("/", 1)[-1],
        byte_size=size,
        download_locator=locator,
    )


def dir_entry(path: str) -> Entry:
    return Entry(kind="dir", path=path, name=path.rsplit("/", 1)[-1])


@pytest.fixture
def scripted_llm() -> Callable[..., LLMClient]:
    """Build an LLMClient whose transport replays scripted ``(status, body)`` pairs.

    Strings in the script are shorthand for a 200 reply with that text; an
    exception instance is raised instead of returned.  The client gets
    ``prompts`` (every prompt sent), ``models_called`` and ``sleeper``
    attributes for assertions.
    """

    def build(*script, models: list[str] | None = None) -> LLMClient:
        replies = list(script)
        sleeper = Sleeper()
        client = LLMClient(api_key="test-key", models=models or ["model-a"], sleep=sleeper)
        client.prompts = []
        client.models_called = []
        client.sleeper = sleeper

        def post(model: str, prompt: str) -> tuple[int, str]:
            client.prompts.append(prompt)
            client.models_called.append(model)
            reply = replies.pop(0) if len(replies) > 1 else replies[0]
            if isinstance(reply, Exception):
                raise reply
            if isinstance(reply, str):
                return 200, gemini_body(reply)
            return reply

        client._post_sync = post
        return client

    return build


@pytest.fixture
def fake_source() -> Callable[..., FakeSource]:
    return FakeSource


@pytest.fixture
def entries():
    """Entry builders: ``entries.file(path, size)`` and ``entries.dir(path)``."""

    class _Builders:
        file = staticmethod(file_entry)
        dir = staticmethod(dir_entry)

    return _Builders
