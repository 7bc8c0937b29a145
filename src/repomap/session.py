"""Repository session -- the single writer of one repository's tree.

A renderer drives a :class:`RepoSession` with "expand", "select" and "ask"
calls.  Each network call is an await point; expansion results are merged
as a whole child list so concurrent flows never see a half-updated folder.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from .cache import SessionCache
from .config import RepomapConfig
from .context import ContextLimits, build_context, build_path_listing
from .errors import TreeProviderError
from .github import GitHubClient
from .graph import project
from .llm import LLMClient
from .models import AnalysisResult, GraphProjection, Node, NodeKind, ProfileTarget, RepoProfile
from .parsing import is_placeholder, parse_path_answer, parse_structured
from .prompts import TaskKind, format_prompt
from .tree import TreeStats, collect_file_paths, count_nodes, find_node, make_root, merge_children, normalize_entries

logger = logging.getLogger(__name__)


@dataclass
class RepoSession:
    """Canonical tree plus LLM helpers for one ``owner/repo@branch``."""

    owner: str
    repo: str
    source: GitHubClient
    llm: LLMClient | None = None
    branch: str | None = None
    config: RepomapConfig = field(default_factory=RepomapConfig)
    root: Node | None = field(default=None, init=False)
    profile: RepoProfile | None = field(default=None, init=False)
    cache: SessionCache = field(default_factory=SessionCache, init=False)

    # ------------------------------------------------------------------
    # Tree
    # ------------------------------------------------------------------

    async def open(self) -> Node:
        """Fetch the root listing and repository metadata concurrently."""
        entries, profile = await asyncio.gather(
            self.source.list_directory(self.owner, self.repo, "", self.branch),
            self.source.get_repository(self.owner, self.repo),
        )
        self.profile = profile
        self.root = make_root(self.repo, normalize_entries(entries, "", skip_invalid=True))
        return self.root

    def _require_root(self) -> Node:
        if self.root is None:
            raise RuntimeError("Session not opened; call open() first")
        return self.root

    def node(self, path: str) -> Node:
        found = find_node(self._require_root(), path)
        if found is None:
            raise KeyError(path)
        return found

    async def expand(self, path: str, *, refresh: bool = False) -> Node:
        """Fetch and merge the children of the folder at *path*."""
        folder = self.node(path)
        if not folder.is_folder:
            raise ValueError(f"'{path}' is not a folder")
        if folder.is_expanded and not refresh:
            return folder
        entries = await self.source.list_directory(self.owner, self.repo, path, self.branch)
        fetched = normalize_entries(entries, path, skip_invalid=True)
        if refresh:
            self.cache.discard((TaskKind.FOLDER_SUMMARY, path))
        return merge_children(self._require_root(), path, fetched)

    async def load_content(self, path: str) -> str:
        node = self.node(path)
        if node.is_folder:
            raise ValueError(f"'{path}' is a folder")
        if node.content is not None:
            return node.content
        if node.download_locator:
            text = await self.source.fetch_raw(node.download_locator)
        else:
            text = await self.source.fetch_file_text(self.owner, self.repo, path, self.branch)
        # A refresh may have replaced the node while the fetch was pending.
        self.node(path).content = text
        return text

    def projection(self, max_depth: int | None = None) -> GraphProjection:
        depth = self.config.projection_depth if max_depth is None else max_depth
        return project(self._require_root(), depth)

    def stats(self) -> TreeStats:
        return count_nodes(self._require_root())

    # ------------------------------------------------------------------
    # LLM helpers
    # ------------------------------------------------------------------

    def _require_llm(self) -> LLMClient:
        if self.llm is None:
            raise RuntimeError("No LLM client configured for this session")
        return self.llm

    def _limits(self, excerpt_chars: int | None = None) -> ContextLimits:
        return ContextLimits(
            outline_depth=self.config.outline_max_depth,
            outline_items=self.config.outline_max_items,
            excerpt_chars=excerpt_chars or self.config.question_excerpt_chars,
        )

    async def summarize_file(self, path: str) -> str:
        """Plain-language summary of a file; raises if the provider fails."""
        llm = self._require_llm()

        async def run() -> str:
            await self.load_content(path)
            node = self.node(path)
            context = build_context(node, limits=self._limits(self.config.excerpt_chars))
            prompt = format_prompt(TaskKind.FILE_SUMMARY, node, context, branch=self.branch)
            return await llm.complete(prompt)

        return await self.cache.get_or_create((TaskKind.FILE_SUMMARY, path), run)

    async def analyze_file(self, path: str) -> AnalysisResult | None:
        """Structured analysis of a file, or ``None`` if unavailable."""
        llm = self._require_llm()

        async def run() -> AnalysisResult | None:
            await self.load_content(path)
            node = self.node(path)
            context = build_context(node, limits=self._limits(self.config.excerpt_chars))
            prompt = format_prompt(TaskKind.FILE_ANALYSIS, node, context)
            result = parse_structured(await llm.complete_with_fallback(prompt))
            if result is not None:
                node = self.node(path)
                node.ai_summary = result.summary
                node.analyzed = True
            return result

        return await self.cache.get_or_create(
            (TaskKind.FILE_ANALYSIS, path), run, store_if=lambda r: r is not None
        )

    async def summarize_folder(self, path: str) -> str:
        llm = self._require_llm()

        async def run() -> str:
            node = self.node(path)
            context = build_context(node, limits=self._limits())
            prompt = format_prompt(TaskKind.FOLDER_SUMMARY, node, context)
            return await llm.complete_with_fallback(prompt)

        return await self.cache.get_or_create(
            (TaskKind.FOLDER_SUMMARY, path), run, store_if=lambda t: not is_placeholder(t)
        )

    async def ask(self, path: str, question: str, *, include_root: bool = True) -> str:
        """Answer *question* about the node at *path*; never raises on LLM failure."""
        llm = self._require_llm()
        node = self.node(path)
        if node.kind is NodeKind.FILE and node.content is None:
            try:
                await self.load_content(path)
            except TreeProviderError:
                logger.warning("Could not load %s; asking without content", path, exc_info=True)
            node = self.node(path)
        root = self._require_root() if include_root else None
        context = build_context(node, root=root, limits=self._limits())
        prompt = format_prompt(TaskKind.QUESTION, node, context, question=question)
        return await llm.complete_with_fallback(prompt)

    async def find_relevant_file(self, query: str) -> str | None:
        """Ask the model which loaded file most likely answers *query*."""
        llm = self._require_llm()
        paths = collect_file_paths(self._require_root())
        context = build_path_listing(paths, self.config.find_file_max_paths)
        prompt = format_prompt(TaskKind.FIND_FILE, None, context, question=query)
        return parse_path_answer(await llm.complete_with_fallback(prompt))

    def close(self) -> None:
        """End the session: drop cached artifacts and the tree."""
        self.cache.clear()
        self.root = None
        self.profile = None


async def ask_profile_question(
    llm: LLMClient,
    target: ProfileTarget,
    repos: Sequence[RepoProfile],
    question: str,
) -> str:
    """Answer a question about a user, a language, or one repository."""
    context = build_context(target, repos=repos)
    prompt = format_prompt(TaskKind.PROFILE_QUESTION, target, context, question=question)
    return await llm.complete_with_fallback(prompt)
