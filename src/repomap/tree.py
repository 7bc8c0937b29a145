"""Tree normalizer -- turns provider entries into canonical nodes.

Pure transformations over :class:`~repomap.models.Node` trees.  The only
mutation offered is :func:`merge_children`, which swaps a folder's child list
in a single assignment so readers never observe a half-merged folder.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from .errors import InvalidEntry
from .models import Entry, Node, NodeKind

logger = logging.getLogger(__name__)


def normalize_entries(
    entries: Iterable[Entry],
    parent_path: str = "",
    *,
    skip_invalid: bool = False,
) -> list[Node]:
    """Convert provider *entries* (children of *parent_path*) into nodes.

    Provider order is preserved; nothing is re-sorted.  Entries without a
    name or path raise :class:`InvalidEntry`, or are logged and dropped when
    *skip_invalid* is set.
    """
    nodes: list[Node] = []
    for index, entry in enumerate(entries):
        reason = None
        if not entry.name:
            reason = "missing name"
        elif not entry.path:
            reason = "missing path"
        if reason is not None:
            if skip_invalid:
                logger.warning(
                    "Skipping entry #%d under '%s': %s", index, parent_path or "/", reason
                )
                continue
            raise InvalidEntry(index, parent_path, reason)

        nodes.append(Node(
            name=entry.name,
            kind=NodeKind.FOLDER if entry.kind == "dir" else NodeKind.FILE,
            path=entry.path,
            byte_size=entry.byte_size if entry.kind == "file" else 0,
            download_locator=entry.download_locator or None,
        ))
    return nodes


def make_root(name: str, children: list[Node] | None = None) -> Node:
    """Build the repository root folder (path ``""``)."""
    return Node(name=name, kind=NodeKind.FOLDER, path="", children=children)


def iter_nodes(root: Node) -> Iterator[Node]:
    """Depth-first, pre-order walk over every loaded node."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        if node.children:
            stack.extend(reversed(node.children))


def find_node(root: Node, path: str) -> Node | None:
    """Locate the node whose path equals *path*, following path prefixes."""
    if root.path == path:
        return root
    current = root
    while current.children:
        for child in current.children:
            if child.path == path:
                return child
            if child.is_folder and path.startswith(child.path + "/"):
                current = child
                break
        else:
            return None
    return None


def merge_children(root: Node, parent_path: str, fetched: list[Node]) -> Node:
    """Install *fetched* as the children of the folder at *parent_path*.

    Already-loaded state of a child that reappears with the same path and
    kind (its own children, content, summary) is carried over.  Siblings of
    the target folder are untouched.  Returns the updated folder.
    """
    parent = find_node(root, parent_path)
    if parent is None:
        raise KeyError(parent_path)
    if not parent.is_folder:
        raise ValueError(f"'{parent_path}' is a file and cannot hold children")

    previous = {c.path: c for c in parent.children or []}
    merged: list[Node] = []
    for node in fetched:
        old = previous.get(node.path)
        if old is not None and old.kind is node.kind:
            node = node.model_copy(update={
                "children": old.children,
                "content": old.content,
                "ai_summary": old.ai_summary,
                "analyzed": old.analyzed,
            })
        merged.append(node)

    parent.children = merged
    return parent


def collect_file_paths(root: Node) -> list[str]:
    """Paths of every loaded file, in tree order."""
    return [n.path for n in iter_nodes(root) if n.kind is NodeKind.FILE]


@dataclass
class TreeStats:
    files: int = 0
    folders: int = 0
    total_bytes: int = 0


def count_nodes(root: Node) -> TreeStats:
    """Count loaded files and folders below *root* (root excluded)."""
    stats = TreeStats()
    for node in iter_nodes(root):
        if node is root:
            continue
        if node.is_folder:
            stats.folders += 1
        else:
            stats.files += 1
            stats.total_bytes += node.byte_size
    return stats
