"""FastAPI server exposing tree listing, file summaries, and file lookup."""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from ..config import RepomapConfig
from ..context import ContextLimits, build_context, build_path_listing
from ..errors import ProviderUnavailable, TreeProviderError
from ..github import GitHubClient
from ..llm import LLMClient
from ..models import Entry, Node, NodeKind
from ..parsing import parse_path_answer
from ..prompts import TaskKind, format_prompt

logger = logging.getLogger(__name__)

app = FastAPI(title="repomap", version="0.1.0")

# Set by start_server() before uvicorn starts.
_github: GitHubClient | None = None
_llm_client: LLMClient | None = None
_config: RepomapConfig = RepomapConfig()


class ChildrenResponse(BaseModel):
    children: list[Entry]


class FileSummaryRequest(BaseModel):
    owner: str = ""
    repo: str = ""
    path: str = ""
    branch: str | None = None


class FileSummaryResponse(BaseModel):
    summary: str


class FindFileRequest(BaseModel):
    query: str
    paths: list[str] = Field(default_factory=list)


class FindFileResponse(BaseModel):
    path: str | None


def configure(
    github: GitHubClient | None = None,
    llm_client: LLMClient | None = None,
    config: RepomapConfig | None = None,
) -> None:
    """Install the collaborators used by the route handlers."""
    global _github, _llm_client, _config
    _github = github or GitHubClient()
    _llm_client = llm_client
    _config = config or RepomapConfig()


def _require_github() -> GitHubClient:
    if _github is None:
        raise HTTPException(status_code=503, detail="Tree provider not configured.")
    return _github


def _require_llm() -> LLMClient:
    if _llm_client is None:
        raise HTTPException(status_code=503, detail="LLM not configured (missing GEMINI_API_KEY).")
    return _llm_client


@app.get("/api/children", response_model=ChildrenResponse)
async def get_children(
    owner: str | None = Query(None),
    repo: str | None = Query(None),
    branch: str | None = Query(None),
    path: str = Query(""),
) -> ChildrenResponse:
    """List the entries directly under *path*."""
    if not owner or not repo:
        raise HTTPException(status_code=400, detail="Missing owner or repo")
    github = _require_github()
    try:
        entries = await github.list_directory(owner, repo, path, branch)
    except TreeProviderError as exc:
        logger.error("Error fetching children of %s/%s:%s: %s", owner, repo, path, exc)
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    return ChildrenResponse(children=entries)


@app.post("/api/file-summary", response_model=FileSummaryResponse)
async def file_summary(req: FileSummaryRequest) -> FileSummaryResponse:
    """Fetch a file and summarize it with the retrying client."""
    if not req.owner or not req.repo or not req.path:
        raise HTTPException(status_code=400, detail="Missing required params")
    github = _require_github()
    llm = _require_llm()

    try:
        content = await github.fetch_file_text(req.owner, req.repo, req.path, req.branch)
    except TreeProviderError as exc:
        logger.error("Error fetching %s: %s", req.path, exc)
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc

    node = Node(
        name=req.path.rsplit("/", 1)[-1],
        kind=NodeKind.FILE,
        path=req.path,
        content=content,
    )
    context = build_context(node, limits=ContextLimits(excerpt_chars=_config.excerpt_chars))
    prompt = format_prompt(TaskKind.FILE_SUMMARY, node, context, branch=req.branch)
    try:
        summary = await llm.complete(prompt)
    except ProviderUnavailable as exc:
        logger.error("Error summarizing %s: %s", req.path, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return FileSummaryResponse(summary=summary)


@app.post("/api/find-file", response_model=FindFileResponse)
async def find_file(req: FindFileRequest) -> FindFileResponse:
    """Pick the path most likely to answer *query* from the given list."""
    llm = _require_llm()
    context = build_path_listing(req.paths, _config.find_file_max_paths)
    prompt = format_prompt(TaskKind.FIND_FILE, None, context, question=req.query)
    answer = await llm.complete_with_fallback(prompt)
    return FindFileResponse(path=parse_path_answer(answer))


def start_server(
    github: GitHubClient | None = None,
    llm_client: LLMClient | None = None,
    config: RepomapConfig | None = None,
    host: str = "127.0.0.1",
    port: int = 8000,
) -> None:
    """Configure collaborators and run the app under uvicorn."""
    import uvicorn

    configure(github, llm_client, config)
    uvicorn.run(app, host=host, port=port)
