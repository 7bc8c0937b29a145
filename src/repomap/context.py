"""Context builder -- bounded text views of the tree for LLM prompts.

Everything here is a pure function of its inputs.  The outline renderer is
the token-budget safety valve: however large the tree, it never emits more
than ``max_items`` node lines.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from .models import Node, NodeKind, ProfileTarget, PromptContext, RepoProfile, TargetKind

DEFAULT_OUTLINE_DEPTH = 2
DEFAULT_OUTLINE_ITEMS = 50

# Character budgets for raw file content.
MAX_EXCERPT_CHARS = 40_000
QUESTION_EXCERPT_CHARS = 30_000

TOP_REPOSITORIES = 5
MAX_LISTED_PATHS = 1000


# ---------------------------------------------------------------------------
# Outline
# ---------------------------------------------------------------------------


def build_outline(
    node: Node,
    max_depth: int = DEFAULT_OUTLINE_DEPTH,
    max_items: int = DEFAULT_OUTLINE_ITEMS,
) -> str:
    """Render *node* as an indented tree of at most *max_items* node lines.

    Folders deeper than *max_depth* collapse to a ``... (K items)`` line.
    Once the item budget is spent, the remaining siblings at each open
    level collapse to a single ``... (N items truncated)`` marker.
    """
    lines: list[str] = []
    emitted = 0

    def visit(current: Node, depth: int) -> None:
        nonlocal emitted
        indent = "  " * depth
        lines.append(f"{indent}- {current.name} ({current.kind.value})")
        emitted += 1

        children = current.children
        if not children:
            return
        if depth >= max_depth:
            lines.append(f"{indent}  ... ({len(children)} items)")
            return
        for i, child in enumerate(children):
            if emitted >= max_items:
                lines.append(f"{indent}  ... ({len(children) - i} items truncated)")
                return
            visit(child, depth + 1)

    if max_items > 0:
        visit(node, 0)
    return "".join(f"{line}\n" for line in lines)


# ---------------------------------------------------------------------------
# Content excerpt
# ---------------------------------------------------------------------------


def truncate_text(text: str, max_chars: int = MAX_EXCERPT_CHARS) -> str:
    """Hard character cut; no attempt to respect word or line boundaries."""
    return text[:max(0, max_chars)]


def build_content_excerpt(node: Node, max_chars: int = MAX_EXCERPT_CHARS) -> str | None:
    """The node's loaded text cut to *max_chars*, or ``None`` if not loaded."""
    if node.content is None:
        return None
    return truncate_text(node.content, max_chars)


def build_path_listing(paths: Sequence[str], max_paths: int = MAX_LISTED_PATHS) -> PromptContext:
    """Context for a find-file query: the first *max_paths* paths, one per line."""
    return PromptContext(
        target_path="",
        target_kind=TargetKind.FOLDER,
        local_outline="\n".join(paths[:max_paths]),
    )


# ---------------------------------------------------------------------------
# Per-target context rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContextLimits:
    outline_depth: int = DEFAULT_OUTLINE_DEPTH
    outline_items: int = DEFAULT_OUTLINE_ITEMS
    excerpt_chars: int = QUESTION_EXCERPT_CHARS


Target = Node | ProfileTarget


def target_kind(target: Target) -> TargetKind:
    if isinstance(target, ProfileTarget):
        return target.kind
    return TargetKind.FOLDER if target.kind is NodeKind.FOLDER else TargetKind.FILE


def _folder_context(
    target: Node, root: Node | None, repos: Sequence[RepoProfile], limits: ContextLimits,
) -> PromptContext:
    return PromptContext(
        target_path=target.path,
        target_kind=TargetKind.FOLDER,
        local_outline=build_outline(target, limits.outline_depth, limits.outline_items),
        global_outline=_global_outline(root, limits),
    )


def _file_context(
    target: Node, root: Node | None, repos: Sequence[RepoProfile], limits: ContextLimits,
) -> PromptContext:
    return PromptContext(
        target_path=target.path,
        target_kind=TargetKind.FILE,
        global_outline=_global_outline(root, limits),
        raw_content_excerpt=build_content_excerpt(target, limits.excerpt_chars),
    )


def _user_context(
    target: ProfileTarget, root: Node | None, repos: Sequence[RepoProfile], limits: ContextLimits,
) -> PromptContext:
    languages = list(dict.fromkeys(r.language for r in repos if r.language))
    top = sorted(repos, key=lambda r: r.stargazers_count, reverse=True)[:TOP_REPOSITORIES]
    outline = (
        "User Context:\n"
        f"- Total Repositories: {len(repos)}\n"
        f"- Total Stars: {sum(r.stargazers_count for r in repos)}\n"
        f"- Languages: {', '.join(languages)}\n"
        f"- Top Repositories: {', '.join(f'{r.name} ({r.stargazers_count} stars)' for r in top)}\n"
    )
    return PromptContext(target_path=target.name, target_kind=TargetKind.USER, local_outline=outline)


def _language_context(
    target: ProfileTarget, root: Node | None, repos: Sequence[RepoProfile], limits: ContextLimits,
) -> PromptContext:
    matching = [r for r in repos if r.language == target.name]
    outline = (
        f"Language Context ({target.name}):\n"
        f"- Total Repositories: {len(matching)}\n"
        f"- Total Stars: {sum(r.stargazers_count for r in matching)}\n"
        f"- Repositories: {', '.join(r.name for r in matching)}\n"
    )
    return PromptContext(target_path=target.name, target_kind=TargetKind.LANGUAGE, local_outline=outline)


def _repository_context(
    target: ProfileTarget, root: Node | None, repos: Sequence[RepoProfile], limits: ContextLimits,
) -> PromptContext:
    repo = target.repo
    if repo is None:
        repo = next((r for r in repos if r.name == target.name), None)
    outline = ""
    if repo is not None:
        outline = (
            f"Repository Context ({repo.name}):\n"
            f"- Description: {repo.description or 'N/A'}\n"
            f"- Language: {repo.language}\n"
            f"- Stars: {repo.stargazers_count}\n"
            f"- Forks: {repo.forks_count}\n"
            f"- Open Issues: {repo.open_issues_count}\n"
            f"- Created: {repo.created_at}\n"
            f"- Last Updated: {repo.updated_at}\n"
        )
    return PromptContext(target_path=target.name, target_kind=TargetKind.REPOSITORY, local_outline=outline)


def _global_outline(root: Node | None, limits: ContextLimits) -> str | None:
    if root is None:
        return None
    return build_outline(root, limits.outline_depth, limits.outline_items)


_RULES: dict[TargetKind, Callable[..., PromptContext]] = {
    TargetKind.FOLDER: _folder_context,
    TargetKind.FILE: _file_context,
    TargetKind.USER: _user_context,
    TargetKind.LANGUAGE: _language_context,
    TargetKind.REPOSITORY: _repository_context,
}


def build_context(
    target: Target,
    *,
    root: Node | None = None,
    repos: Sequence[RepoProfile] = (),
    limits: ContextLimits | None = None,
) -> PromptContext:
    """Build the prompt context for *target* using the rule for its kind.

    *root* adds a whole-repository outline for FILE/FOLDER targets; *repos*
    feeds the USER/LANGUAGE/REPOSITORY rules.
    """
    return _RULES[target_kind(target)](target, root, repos, limits or ContextLimits())
