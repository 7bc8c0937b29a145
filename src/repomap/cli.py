"""CLI entry point for repomap -- explore and explain a GitHub repository."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.tree import Tree

from .config import GITHUB_TOKEN_ENV, LLM_KEY_ENV, RepomapConfig, load_config, load_dotenv
from .errors import RepomapError
from .models import Node, ProfileTarget, TargetKind

app = typer.Typer(
    name="repomap",
    help="Map a GitHub repository and ask an LLM to explain it.",
    add_completion=False,
)

console = Console()


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _split_repo(slug: str) -> tuple[str, str]:
    owner, sep, repo = slug.strip().strip("/").partition("/")
    if not sep or not owner or not repo or "/" in repo:
        console.print(f"[red]Error:[/red] expected OWNER/REPO, got [bold]{slug}[/bold]")
        raise typer.Exit(code=1)
    return owner, repo


def _load_config(**overrides) -> RepomapConfig:
    load_dotenv(Path.cwd())
    return load_config(Path.cwd(), overrides)


def _build_github_client():
    from .github import GitHubClient

    return GitHubClient(token=os.environ.get(GITHUB_TOKEN_ENV, "").strip() or None)


def _build_llm_client(cfg: RepomapConfig):
    """Build an LLM client from environment + config, or exit."""
    from .llm import LLMClient

    api_key = os.environ.get(LLM_KEY_ENV, "").strip()
    if not api_key:
        console.print(f"[red]Error:[/red] {LLM_KEY_ENV} is not set.")
        raise typer.Exit(code=1)
    return LLMClient(
        api_key=api_key,
        models=list(cfg.models),
        max_attempts=cfg.max_attempts,
        base_delay_ms=cfg.base_delay_ms,
        hint_buffer_ms=cfg.hint_buffer_ms,
        timeout=cfg.request_timeout,
    )


def _build_session(slug: str, branch: str | None, cfg: RepomapConfig, *, with_llm: bool = True):
    from .session import RepoSession

    owner, repo = _split_repo(slug)
    return RepoSession(
        owner=owner,
        repo=repo,
        source=_build_github_client(),
        llm=_build_llm_client(cfg) if with_llm else None,
        branch=branch,
        config=cfg,
    )


def _run(coro):
    """Run *coro*, turning package errors into a one-line message."""
    try:
        return asyncio.run(coro)
    except RepomapError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1)
    except KeyError as exc:
        console.print(f"[red]Error:[/red] path not found: {exc.args[0]}")
        raise typer.Exit(code=1)
    except ValueError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1)


async def _open_to(session, path: str) -> None:
    """Open the session and expand every folder on the way to *path*."""
    await session.open()
    parts = [p for p in path.strip("/").split("/") if p]
    for i in range(1, len(parts)):
        await session.expand("/".join(parts[:i]))


def _rich_tree(node: Node, depth: int, label: str | None = None) -> Tree:
    tree = Tree(label or f"[bold]{node.name}[/bold]")

    def add(parent: Tree, current: Node, level: int) -> None:
        for child in current.children or []:
            if child.is_folder:
                branch = parent.add(f"[blue]{child.name}/[/blue]")
                if level < depth:
                    add(branch, child, level + 1)
            else:
                parent.add(f"{child.name} [dim]({child.byte_size} B)[/dim]")

    add(tree, node, 1)
    return tree


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def tree(
    repo: str = typer.Argument(..., help="Repository as OWNER/REPO."),
    branch: Optional[str] = typer.Option(None, "--branch", "-b", help="Branch or ref."),
    depth: int = typer.Option(2, "--depth", "-d", help="Folder levels to fetch."),
    max_items: Optional[int] = typer.Option(None, "--max-items", help="Cap on outline lines."),
    outline: bool = typer.Option(False, "--outline", help="Print the LLM outline instead."),
) -> None:
    """Fetch the repository tree and print it."""
    from .context import build_outline
    from .tree import iter_nodes

    cfg = _load_config(outline_max_items=max_items)
    session = _build_session(repo, branch, cfg, with_llm=False)

    async def fetch() -> Node:
        root = await session.open()
        frontier = [n for n in root.children or [] if n.is_folder]
        for _level in range(1, depth):
            await asyncio.gather(*(session.expand(n.path) for n in frontier))
            frontier = [c for n in frontier for c in n.children or [] if c.is_folder]
        return root

    root = _run(fetch())
    if outline:
        console.print(build_outline(root, depth, cfg.outline_max_items), end="")
    else:
        console.print(_rich_tree(root, depth))

    stats = session.stats()
    folders = sum(1 for n in iter_nodes(root) if n.is_folder and n.is_expanded)
    console.print(
        f"\n[dim]{stats.files} files, {stats.folders} folders "
        f"({folders} expanded), {stats.total_bytes} bytes loaded[/dim]"
    )


@app.command()
def summarize(
    repo: str = typer.Argument(..., help="Repository as OWNER/REPO."),
    path: str = typer.Argument(..., help="File path inside the repository."),
    branch: Optional[str] = typer.Option(None, "--branch", "-b", help="Branch or ref."),
) -> None:
    """Explain one file in plain language."""
    cfg = _load_config()
    session = _build_session(repo, branch, cfg)

    async def run() -> str:
        await _open_to(session, path)
        return await session.summarize_file(path)

    console.print(_run(run()))


@app.command()
def analyze(
    repo: str = typer.Argument(..., help="Repository as OWNER/REPO."),
    path: str = typer.Argument(..., help="File path inside the repository."),
    branch: Optional[str] = typer.Option(None, "--branch", "-b", help="Branch or ref."),
) -> None:
    """List the main exports of a file with short descriptions."""
    cfg = _load_config()
    session = _build_session(repo, branch, cfg)

    async def run():
        await _open_to(session, path)
        return await session.analyze_file(path)

    result = _run(run())
    if result is None:
        console.print("[yellow]Analysis unavailable.[/yellow]")
        raise typer.Exit(code=1)

    console.print(f"[bold]{path}[/bold]: {result.summary}")
    table = Table("Name", "Type", "Description")
    for item in result.items:
        table.add_row(item.name, item.type, item.description)
    console.print(table)


@app.command()
def ask(
    repo: str = typer.Argument(..., help="Repository as OWNER/REPO."),
    question: str = typer.Argument(..., help="Question to ask."),
    path: str = typer.Option("", "--path", "-p", help="File or folder the question is about."),
    branch: Optional[str] = typer.Option(None, "--branch", "-b", help="Branch or ref."),
) -> None:
    """Ask a question about a file, a folder, or the whole repository."""
    cfg = _load_config()
    session = _build_session(repo, branch, cfg)

    async def run() -> str:
        await _open_to(session, path)
        target = session.node(path.strip("/"))
        if target.is_folder and not target.is_expanded:
            await session.expand(target.path)
        return await session.ask(target.path, question)

    console.print(_run(run()))


@app.command()
def find(
    repo: str = typer.Argument(..., help="Repository as OWNER/REPO."),
    query: str = typer.Argument(..., help="What you are looking for."),
    branch: Optional[str] = typer.Option(None, "--branch", "-b", help="Branch or ref."),
) -> None:
    """Guess which top-level file answers QUERY."""
    cfg = _load_config()
    session = _build_session(repo, branch, cfg)

    async def run() -> str | None:
        await session.open()
        return await session.find_relevant_file(query)

    found = _run(run())
    if found is None:
        console.print("[yellow]No relevant file found.[/yellow]")
        raise typer.Exit(code=1)
    console.print(found)


@app.command()
def profile(
    user: str = typer.Argument(..., help="GitHub user name."),
    question: str = typer.Argument(..., help="Question to ask."),
    language: Optional[str] = typer.Option(None, "--language", "-l", help="Ask about one language."),
    repo: Optional[str] = typer.Option(None, "--repo", "-r", help="Ask about one repository."),
) -> None:
    """Ask a question about a user's repositories."""
    from .session import ask_profile_question

    if language and repo:
        console.print("[red]Error:[/red] pass --language or --repo, not both.")
        raise typer.Exit(code=1)

    cfg = _load_config()
    github = _build_github_client()
    llm = _build_llm_client(cfg)

    async def run() -> str:
        repos = await github.list_user_repositories(user)
        if language:
            target = ProfileTarget(kind=TargetKind.LANGUAGE, name=language)
        elif repo:
            match = next((r for r in repos if r.name == repo), None)
            target = ProfileTarget(kind=TargetKind.REPOSITORY, name=repo, repo=match)
        else:
            target = ProfileTarget(kind=TargetKind.USER, name=user)
        return await ask_profile_question(llm, target, repos, question)

    console.print(_run(run()))


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address."),
    port: int = typer.Option(8000, "--port", "-p", help="Port number."),
) -> None:
    """Launch the HTTP API."""
    from .web.server import start_server

    cfg = _load_config()
    llm = _build_llm_client(cfg) if os.environ.get(LLM_KEY_ENV, "").strip() else None
    if llm is None:
        console.print(f"[yellow]{LLM_KEY_ENV} not set; summary endpoints will return 503.[/yellow]")

    console.print(f"[bold cyan]Serving[/bold cyan] http://{host}:{port}")
    start_server(github=_build_github_client(), llm_client=llm, config=cfg, host=host, port=port)


@app.command()
def config() -> None:
    """Show the effective configuration."""
    cfg = _load_config()
    console.print("[bold]repomap config:[/bold]")
    for field_name in RepomapConfig.model_fields:
        console.print(f"  {field_name} = {getattr(cfg, field_name)!r}")


if __name__ == "__main__":
    app()
