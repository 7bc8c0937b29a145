"""Prompt templates for every LLM task.

The formatter is a pure function: it picks a template by task and splices in
the outline/excerpt text produced by :mod:`repomap.context` verbatim.  It
never truncates; budgets are applied upstream.
"""

from __future__ import annotations

from enum import Enum

from .models import Node, ProfileTarget, PromptContext


class TaskKind(str, Enum):
    FILE_SUMMARY = "file_summary"
    FILE_ANALYSIS = "file_analysis"
    FOLDER_SUMMARY = "folder_summary"
    QUESTION = "question"
    PROFILE_QUESTION = "profile_question"
    FIND_FILE = "find_file"


_FILE_SUMMARY = """\
You are an expert senior software engineer. Summarize this code file clearly \
and briefly for a developer who has just joined a large, unfamiliar project.
Keep the tone friendly and low-key, as if helping a colleague.

1. What is the purpose of this file?
2. What are the main functions/classes/components?
3. What modules/libraries does it depend on?
4. Mention any tricky logic or patterns used.
5. The file is from the branch: {branch}.

File: {path}
Here is the code:

{content}"""

_FILE_ANALYSIS = """\
Analyze "{name}".
1. Summary: 2 sentences on its architectural role.
2. Exports: list the main functions/classes/components (max 10 words description each).
Output JSON ONLY, shaped as:
{{"summary": "...", "items": [{{"name": "...", "type": "FUNCTION" | "CLASS" | "COMPONENT", "description": "..."}}]}}

CODE:
{content}"""

_FOLDER_SUMMARY = """\
Analyze folder: {name}
Structure:
{outline}
Summarize its responsibility in 2 sentences."""

_QUESTION = """\
You are an expert senior software engineer analyzing a codebase.

Target File/Folder: "{path}" ({kind})

Global Repository Context:
{global_context}

Specific Context (the user is looking at this right now):
{specific_context}

User Question: "{question}"

Instructions:
1. Answer directly and authoritatively. Avoid hedging words like "likely", "possibly", "might".
2. Use the Global Repository Context to place the target in the bigger picture.
3. If the answer depends on code not visible in the Specific Context, say what you would expect to find based on standard patterns, without guessing wildly.
4. Keep the answer under 150 words. Use Markdown for formatting."""

_PROFILE_QUESTION = """\
You are an expert software engineer analyzing a GitHub user's profile and repositories.

Target Node: "{name}" ({kind})

Context:
{context}

User Question: "{question}"

Instructions:
1. Answer directly and helpfully.
2. Use the provided context to give specific details.
3. Keep the answer under 150 words. Use Markdown."""

_FIND_FILE = """\
I have a list of file paths from a software repository.
The user is asking: "{question}"

Based on the file names, folder structure, and common software conventions, \
identify the SINGLE file path that is MOST LIKELY to contain the logic or \
definition the user is looking for.

Return ONLY the full path string.
If nothing is relevant, return "null".

File Paths:
{paths}"""


def _specific_context(target: Node, context: PromptContext) -> str:
    if target.is_folder:
        return f"Folder Structure Map (Recursive):\n{context.local_outline}"
    if context.raw_content_excerpt is not None:
        return f"Code Content:\n{context.raw_content_excerpt}"
    return f"File: {target.name} (Content unavailable)"


def format_prompt(
    task: TaskKind,
    target: Node | ProfileTarget | None,
    context: PromptContext,
    question: str | None = None,
    branch: str | None = None,
) -> str:
    """Compose the final prompt string for *task*.

    ``FIND_FILE`` takes no target; its path listing travels in
    ``context.local_outline``.
    """
    if task is TaskKind.FIND_FILE:
        return _FIND_FILE.format(question=question or "", paths=context.local_outline)

    if target is None:
        raise ValueError(f"{task.value} prompts need a target")

    if task is TaskKind.PROFILE_QUESTION:
        if not isinstance(target, ProfileTarget):
            raise TypeError("profile questions target a USER, LANGUAGE, or REPOSITORY")
        return _PROFILE_QUESTION.format(
            name=target.name,
            kind=target.kind.value,
            context=context.local_outline,
            question=question or "",
        )

    if not isinstance(target, Node):
        raise TypeError(f"{task.value} prompts target a file or folder")

    if task is TaskKind.FILE_SUMMARY:
        return _FILE_SUMMARY.format(
            branch=branch or "default",
            path=target.path,
            content=context.raw_content_excerpt or "",
        )
    if task is TaskKind.FILE_ANALYSIS:
        return _FILE_ANALYSIS.format(name=target.name, content=context.raw_content_excerpt or "")
    if task is TaskKind.FOLDER_SUMMARY:
        return _FOLDER_SUMMARY.format(name=target.name, outline=context.local_outline)
    if task is TaskKind.QUESTION:
        global_context = ""
        if context.global_outline:
            global_context = f"Repository Structure (Root):\n{context.global_outline}"
        return _QUESTION.format(
            path=target.path,
            kind=target.kind.value,
            global_context=global_context,
            specific_context=_specific_context(target, context),
            question=question or "",
        )
    raise ValueError(f"Unknown task: {task!r}")
