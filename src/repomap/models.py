"""Pydantic models for repomap's tree, graph, and prompt pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Tree provider input
# ---------------------------------------------------------------------------

class Entry(BaseModel):
    """One raw listing row from the source-tree provider.

    Transient: discarded once normalized into a :class:`Node`.  ``name`` and
    ``path`` default to empty so malformed provider rows still validate and
    can be rejected by the normalizer with a precise error.
    """

    kind: Literal["dir", "file"]
    path: str = ""
    name: str = ""
    byte_size: int = Field(default=0, ge=0)
    download_locator: str | None = None


# ---------------------------------------------------------------------------
# Canonical tree
# ---------------------------------------------------------------------------

class NodeKind(str, Enum):
    FOLDER = "FOLDER"
    FILE = "FILE"


class Node(BaseModel):
    """Canonical tree element.

    ``path`` is unique across the tree and is the only stable identifier.
    ``children`` is ``None`` until a folder has been expanded; an empty list
    means "fetched, has none".
    """

    name: str
    kind: NodeKind
    path: str
    byte_size: int = 0
    children: list[Node] | None = None
    download_locator: str | None = None
    content: str | None = None
    ai_summary: str | None = None
    analyzed: bool = False

    @property
    def is_folder(self) -> bool:
        return self.kind is NodeKind.FOLDER

    @property
    def is_expanded(self) -> bool:
        return self.children is not None


# ---------------------------------------------------------------------------
# Graph projection (derived, disposable)
# ---------------------------------------------------------------------------

@dataclass
class GraphNode:
    """Layout wrapper around a :class:`Node`, held by reference."""

    id: str
    node: Node
    depth: int
    weight: int
    radius: float
    expanded: bool

    @property
    def name(self) -> str:
        return self.node.name

    @property
    def kind(self) -> NodeKind:
        return self.node.kind


@dataclass(frozen=True)
class GraphLink:
    source_id: str
    target_id: str


@dataclass
class GraphProjection:
    nodes: list[GraphNode] = field(default_factory=list)
    links: list[GraphLink] = field(default_factory=list)

    def node_ids(self) -> set[str]:
        return {n.id for n in self.nodes}

    def link_pairs(self) -> set[tuple[str, str]]:
        return {(link.source_id, link.target_id) for link in self.links}


# ---------------------------------------------------------------------------
# Prompt pipeline
# ---------------------------------------------------------------------------

class TargetKind(str, Enum):
    """What an "ask a question" call is pointed at."""

    FILE = "FILE"
    FOLDER = "FOLDER"
    USER = "USER"
    LANGUAGE = "LANGUAGE"
    REPOSITORY = "REPOSITORY"


@dataclass
class PromptContext:
    """Per-request context handed from the context builder to the formatter."""

    target_path: str
    target_kind: TargetKind
    local_outline: str = ""
    global_outline: str | None = None
    raw_content_excerpt: str | None = None


@dataclass
class RetryState:
    """Bookkeeping for one logical LLM request."""

    attempt: int = 0
    max_attempts: int = 3
    next_delay_ms: int = 0

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts


# ---------------------------------------------------------------------------
# Structured analysis output
# ---------------------------------------------------------------------------

class AnalysisItem(BaseModel):
    """One exported symbol described by the model."""

    name: str
    type: Literal["FUNCTION", "CLASS", "COMPONENT"]
    description: str

    @field_validator("type", mode="before")
    @classmethod
    def _upper_type(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value


class AnalysisResult(BaseModel):
    """Validated shape of a structured file analysis."""

    summary: str
    items: list[AnalysisItem]


# ---------------------------------------------------------------------------
# Cross-repository ("universe") profile
# ---------------------------------------------------------------------------

class RepoProfile(BaseModel):
    """Repository metadata used for profile questions."""

    name: str
    full_name: str = ""
    description: str | None = None
    language: str | None = None
    stargazers_count: int = 0
    forks_count: int = 0
    open_issues_count: int = 0
    created_at: str = ""
    updated_at: str = ""
    default_branch: str = "main"


class ProfileTarget(BaseModel):
    """A USER, LANGUAGE, or REPOSITORY node in the profile view."""

    kind: TargetKind
    name: str
    repo: RepoProfile | None = None

    @field_validator("kind")
    @classmethod
    def _profile_kind(cls, value: TargetKind) -> TargetKind:
        if value in (TargetKind.FILE, TargetKind.FOLDER):
            raise ValueError("profile targets must be USER, LANGUAGE, or REPOSITORY")
        return value
