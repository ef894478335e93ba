"""
Graph model for investigation results.

Nodes and links arrive as plain dicts (``{"nodes": [...], "links": [...]}``) and
are validated once into a :class:`Graph`. The graph keeps an id -> index map and
stores everything that changes while the view is alive (position, velocity,
pin) in index-aligned numpy arrays, so links never hold references to node
objects.

- Duplicate, missing or empty node ids raise :class:`GraphValidationError` and
  no graph is produced.
- Links whose source or target id is unknown are dropped and logged.
- ``fixed`` holds the pinned position of each node, NaN when the node is free.
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from matplotlib.colors import is_color_like

logger = logging.getLogger(__name__)

GROUPS: Tuple[str, ...] = ("person", "case", "crime", "family", "associate", "company")
DEFAULT_SIZE = 10.0


class GraphValidationError(ValueError):
    """
    Raised when a dataset cannot be turned into a graph.

    Attributes:
        node_id: Offending node id, when the problem is tied to one node
    """

    def __init__(self, message: str, node_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.node_id = node_id


@dataclass(frozen=True)
class Node:
    id: str
    group: str
    size: float = DEFAULT_SIZE
    color: Optional[str] = None
    # initial position hint; the live position is Graph.pos
    x: Optional[float] = None
    y: Optional[float] = None


@dataclass(frozen=True)
class Link:
    source_id: str
    target_id: str
    relationship: str = ""


NodeLike = Union[Node, Mapping]
LinkLike = Union[Link, Mapping]


# ---------------------------- Graph ---------------------------- #


class Graph:
    def __init__(self, nodes: Sequence[Node], links: Sequence[Link], dropped_links: int = 0) -> None:
        self.nodes: Tuple[Node, ...] = tuple(nodes)
        self.links: Tuple[Link, ...] = tuple(links)
        self.dropped_links = dropped_links
        self.index: Dict[str, int] = {node.id: i for i, node in enumerate(self.nodes)}

        n = len(self.nodes)
        if self.links:
            self.edges = np.array(
                [[self.index[l.source_id], self.index[l.target_id]] for l in self.links], dtype=int
            )
        else:
            self.edges = np.zeros((0, 2), dtype=int)
        self.sizes = np.array([node.size for node in self.nodes], dtype=float)

        self.pos = np.full((n, 2), np.nan, dtype=float)
        for i, node in enumerate(self.nodes):
            if node.x is not None and node.y is not None:
                self.pos[i] = (node.x, node.y)
        self.vel = np.zeros((n, 2), dtype=float)
        self.fixed = np.full((n, 2), np.nan, dtype=float)

        neighbors: Dict[str, set] = {node.id: set() for node in self.nodes}
        for link in self.links:
            if link.source_id == link.target_id:
                continue
            neighbors[link.source_id].add(link.target_id)
            neighbors[link.target_id].add(link.source_id)
        self.adjacency: Dict[str, FrozenSet[str]] = {k: frozenset(v) for k, v in neighbors.items()}

    @property
    def n_nodes(self) -> int:
        return len(self.nodes)

    @property
    def n_links(self) -> int:
        return len(self.links)

    # ---- lookup ---- #
    def index_of(self, node_id: str) -> int:
        return self.index[node_id]

    def resolve(self, node_id: str) -> Node:
        return self.nodes[self.index[node_id]]

    def neighbors(self, node_id: str) -> FrozenSet[str]:
        return self.adjacency[node_id]

    def is_connected(self, a: str, b: str) -> bool:
        return b in self.adjacency.get(a, ())

    # ---- pins ---- #
    def pin(self, node_id: str, x: float, y: float) -> None:
        i = self.index[node_id]
        self.fixed[i] = (x, y)
        self.pos[i] = (x, y)
        self.vel[i] = 0.0

    def unpin(self, node_id: str) -> None:
        self.fixed[self.index[node_id]] = np.nan

    def is_pinned(self, node_id: str) -> bool:
        return not bool(np.isnan(self.fixed[self.index[node_id], 0]))

    def pinned_mask(self) -> np.ndarray:
        return ~np.isnan(self.fixed[:, 0])

    def position(self, node_id: str) -> Tuple[float, float]:
        x, y = self.pos[self.index[node_id]]
        return float(x), float(y)

    # ---- geometry helpers ---- #
    def bounding_box(self, with_sizes: bool = False) -> Optional[Tuple[float, float, float, float]]:
        placed = ~np.isnan(self.pos[:, 0])
        if not np.any(placed):
            return None
        pts = self.pos[placed]
        pad = self.sizes[placed] if with_sizes else np.zeros(pts.shape[0])
        return (
            float(np.min(pts[:, 0] - pad)),
            float(np.min(pts[:, 1] - pad)),
            float(np.max(pts[:, 0] + pad)),
            float(np.max(pts[:, 1] + pad)),
        )

    def center(self) -> Tuple[float, float]:
        placed = ~np.isnan(self.pos[:, 0])
        if not np.any(placed):
            return 0.0, 0.0
        c = self.pos[placed].mean(axis=0)
        return float(c[0]), float(c[1])

    # ---- serialization ---- #
    def to_dict(self) -> Dict:
        nodes = []
        for i, node in enumerate(self.nodes):
            item = {"id": node.id, "group": node.group, "size": node.size}
            if node.color is not None:
                item["color"] = node.color
            if not np.isnan(self.pos[i, 0]):
                item["x"] = float(self.pos[i, 0])
                item["y"] = float(self.pos[i, 1])
            nodes.append(item)
        links = [
            {"source": l.source_id, "target": l.target_id, "relationship": l.relationship}
            for l in self.links
        ]
        return {"nodes": nodes, "links": links}

    @staticmethod
    def from_dict(data: Optional[Mapping]) -> "Graph":
        if not data:
            return build([], [])
        if not isinstance(data, Mapping):
            raise GraphValidationError(f"Dataset must be a mapping of nodes and links, got {type(data).__name__}")
        return build(data.get("nodes") or [], data.get("links") or [])


# ---------------------------- Ingestion ---------------------------- #


def _coerce_node(item: NodeLike, position: int) -> Node:
    if isinstance(item, Node):
        node = item
    elif isinstance(item, Mapping):
        node = Node(
            id=item.get("id"),
            group=item.get("group", ""),
            size=item.get("size", DEFAULT_SIZE),
            color=item.get("color"),
            x=item.get("x"),
            y=item.get("y"),
        )
    else:
        raise GraphValidationError(f"Node #{position} is not a mapping: {item!r}")

    if not isinstance(node.id, str) or not node.id:
        raise GraphValidationError(f"Node #{position} has no usable id: {node.id!r}")
    try:
        size = float(node.size)
    except (TypeError, ValueError):
        raise GraphValidationError(f"Node {node.id!r} has a non-numeric size: {node.size!r}", node.id)
    if not math.isfinite(size) or size <= 0:
        raise GraphValidationError(f"Node {node.id!r} must have a positive size, got {node.size!r}", node.id)

    color = node.color
    if color is not None and not is_color_like(color):
        logger.warning(f"Ignoring invalid color {color!r} on node {node.id!r}")
        color = None
    if node.group not in GROUPS:
        logger.warning(f"Node {node.id!r} has unknown group {node.group!r}")

    x, y = node.x, node.y
    if x is None or y is None:
        x = y = None
    else:
        try:
            x, y = float(x), float(y)
        except (TypeError, ValueError):
            raise GraphValidationError(f"Node {node.id!r} has a non-numeric position: {(node.x, node.y)!r}", node.id)
        if not (math.isfinite(x) and math.isfinite(y)):
            raise GraphValidationError(f"Node {node.id!r} has a non-finite position: {(x, y)!r}", node.id)
    return Node(id=node.id, group=node.group, size=size, color=color, x=x, y=y)


def _coerce_link(item: LinkLike) -> Optional[Link]:
    if isinstance(item, Link):
        return item
    if not isinstance(item, Mapping):
        return None
    source = item.get("source", item.get("sourceId"))
    target = item.get("target", item.get("targetId"))
    return Link(source_id=source, target_id=target, relationship=str(item.get("relationship") or ""))


def build(nodes: Iterable[NodeLike], links: Iterable[LinkLike]) -> Graph:
    """Validate nodes/links and return a new :class:`Graph`.

    Raises GraphValidationError for duplicate or malformed nodes; links with an
    unknown endpoint are dropped.
    """
    checked: List[Node] = []
    seen = set()
    for position, item in enumerate(nodes):
        node = _coerce_node(item, position)
        if node.id in seen:
            raise GraphValidationError(f"Duplicate node id {node.id!r}", node.id)
        seen.add(node.id)
        checked.append(node)

    kept: List[Link] = []
    dropped = 0
    for item in links:
        link = _coerce_link(item)
        resolved = (
            link is not None
            and isinstance(link.source_id, str)
            and isinstance(link.target_id, str)
            and link.source_id in seen
            and link.target_id in seen
        )
        if not resolved:
            dropped += 1
            logger.warning(f"Dropping link with unresolved endpoint: {item!r}")
            continue
        kept.append(link)

    logger.debug(f"Built graph: {len(checked)} nodes, {len(kept)} links, {dropped} dropped")
    return Graph(checked, kept, dropped_links=dropped)


def load_graph(path: str) -> Graph:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return Graph.from_dict(data)
