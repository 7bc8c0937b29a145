"""repomap - explore a source repository and explain it with an LLM."""

from .models import (  # noqa: F401 -- public re-exports
    AnalysisResult,
    Entry,
    GraphLink,
    GraphNode,
    GraphProjection,
    Node,
    NodeKind,
    ProfileTarget,
    RepoProfile,
    TargetKind,
)
from .llm import LLMClient
from .session import RepoSession, ask_profile_question

__version__ = "0.1.0"

__all__ = [
    "LLMClient",
    "RepoSession",
    "ask_profile_question",
    "AnalysisResult",
    "Entry",
    "GraphLink",
    "GraphNode",
    "GraphProjection",
    "Node",
    "NodeKind",
    "ProfileTarget",
    "RepoProfile",
    "TargetKind",
]
