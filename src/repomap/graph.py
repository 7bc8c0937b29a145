"""Graph projector -- canonical tree to layout-ready nodes and links.

The projection is derived data: it holds references to tree nodes but owns
nothing, and projecting the same tree state twice yields the same node and
link sets so a renderer can diff consecutive projections.
"""

from __future__ import annotations

import math

from .models import GraphLink, GraphNode, GraphProjection, Node

# Radius hints, in arbitrary layout units.
FOLDER_BASE_RADIUS = 8.0
FILE_BASE_RADIUS = 4.0
MAX_RADIUS_BONUS = 12.0


def loaded_weight(node: Node, weights: dict[str, int] | None = None) -> int:
    """Sum of the sizes of all currently loaded descendant files.

    Folders whose children were never fetched weigh 0 until expanded.  When
    *weights* is given, every visited node's weight is recorded by path.
    """
    if node.is_folder:
        total = sum(loaded_weight(child, weights) for child in node.children or [])
    else:
        total = node.byte_size
    if weights is not None:
        weights[node.path] = total
    return total


def radius_hint(node: Node, weight: int) -> float:
    base = FOLDER_BASE_RADIUS if node.is_folder else FILE_BASE_RADIUS
    # log2 growth keeps a 1 MB file from dwarfing the rest of the graph
    bonus = min(math.log2(1 + weight) / 2, MAX_RADIUS_BONUS)
    return round(base + bonus, 3)


def project(root: Node, max_depth: int) -> GraphProjection:
    """Project the subtree of *root* reachable within *max_depth* levels.

    The root sits at depth 0; a node at depth ``max_depth`` is included but
    its children are not.  Every included parent/child pair yields one link.
    """
    projection = GraphProjection()
    weights: dict[str, int] = {}

    def visit(node: Node, depth: int) -> None:
        weight = weights[node.path]
        projection.nodes.append(GraphNode(
            id=node.path,
            node=node,
            depth=depth,
            weight=weight,
            radius=radius_hint(node, weight),
            expanded=node.is_expanded,
        ))
        if depth >= max_depth or not node.children:
            return
        for child in node.children:
            projection.links.append(GraphLink(source_id=node.path, target_id=child.path))
            visit(child, depth + 1)

    if max_depth >= 0:
        loaded_weight(root, weights)
        visit(root, 0)
    return projection
