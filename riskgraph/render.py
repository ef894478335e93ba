"""
Drawing of the relationship graph on a matplotlib Axes.

The Axes data coordinates are surface pixels, origin top-left, y growing
downward. All graph artists share one transform ``view + ax.transData``; the
``view`` Affine2D is loaded from the Viewport once per frame, so node positions
stay in world units and zooming never rewrites them.

Styling is split out into :func:`frame_style`, a pure function of the graph and
the highlight state, so it can be checked without a figure.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import matplotlib.patheffects as path_effects
from matplotlib.collections import LineCollection, PatchCollection, PolyCollection
from matplotlib.colors import to_rgba, to_rgba_array
from matplotlib.lines import Line2D
from matplotlib.patches import Circle
from matplotlib.text import Text
from matplotlib.transforms import Affine2D

from .interaction import HighlightState
from .model import GROUPS, Graph, Node
from .viewport import Viewport

GROUP_COLORS = {
    "person": "#A95565",
    "case": "#4E8677",
    "crime": "#B1F7FC",
    "family": "#8271B0",
    "associate": "#8271B0",
    "company": "#BB870C",
}
GROUP_LABELS = {
    "person": "Target person",
    "case": "Court case",
    "crime": "Charge",
    "family": "Family member",
    "associate": "Associate",
    "company": "Related company",
}
GROUP_DETAILS = {
    "person": "Click to select for details",
    "case": "Court judgment",
    "crime": "Related charge",
    "family": "Family relationship",
    "associate": "Associated person",
    "company": "Related corporate entity",
}
FALLBACK_COLOR = "#78909C"

BACKGROUND = "#1a1a2e"
PANEL = "#16213e"
BORDER = "#333333"
TEXT = "#ffffff"
TEXT_SECONDARY = "#b0b0b0"
NODE_STROKE = "#263238"
NODE_LABEL_COLOR = "#ECEFF1"
LINK_COLOR = "#546E7A"
LINK_HIGHLIGHT_COLOR = "#A95565"
LINK_LABEL_COLOR = "#90A4AE"
SELECTION_COLOR = "orange"

BASE_LINK_ALPHA = 0.6
ACTIVE_LINK_ALPHA = 0.9
DIM_ALPHA = 0.2
ARROW_LENGTH = 10.0
ARROW_HALF_WIDTH = 4.0
SELECTION_GAP = 4.0
TOOLTIP_OFFSET = (10.0, -10.0)


def node_color(node: Node) -> str:
    return node.color or GROUP_COLORS.get(node.group, FALLBACK_COLOR)


def group_label(group: str) -> str:
    return GROUP_LABELS.get(group, group)


def tooltip_text(node: Node) -> str:
    lines = [node.id, f"Type: {group_label(node.group)}"]
    detail = GROUP_DETAILS.get(node.group)
    if detail:
        lines.append(detail)
    return "\n".join(lines)


# ---------------------------- Styling ---------------------------- #


@dataclass(frozen=True)
class FrameStyle:
    node_alpha: np.ndarray
    node_emphasis: np.ndarray
    link_alpha: np.ndarray
    link_active: np.ndarray
    link_label_alpha: np.ndarray


def frame_style(graph: Optional[Graph], highlight: HighlightState) -> FrameStyle:
    n = graph.n_nodes if graph is not None else 0
    m = graph.n_links if graph is not None else 0
    active = highlight.active_node_id
    if graph is None or active is None or active not in graph.index:
        return FrameStyle(
            node_alpha=np.ones(n),
            node_emphasis=np.zeros(n, dtype=bool),
            link_alpha=np.full(m, BASE_LINK_ALPHA),
            link_active=np.zeros(m, dtype=bool),
            link_label_alpha=np.ones(m),
        )
    lit = {active} | set(highlight.connected_ids)
    a = graph.index[active]
    link_active = (graph.edges[:, 0] == a) | (graph.edges[:, 1] == a)
    return FrameStyle(
        node_alpha=np.array([1.0 if node.id in lit else DIM_ALPHA for node in graph.nodes]).reshape(n),
        node_emphasis=np.array([node.id == active for node in graph.nodes], dtype=bool).reshape(n),
        link_alpha=np.where(link_active, ACTIVE_LINK_ALPHA, DIM_ALPHA),
        link_active=link_active,
        link_label_alpha=np.where(link_active, 1.0, DIM_ALPHA),
    )


def arrowheads(src: np.ndarray, dst: np.ndarray, target_radii: np.ndarray) -> np.ndarray:
    """Triangles (m, 3, 2) whose tips touch the rim of each target circle."""
    d = dst - src
    length = np.linalg.norm(d, axis=1)
    u = d / np.where(length > 0, length, 1.0)[:, None]
    tip = dst - u * target_radii[:, None]
    base = tip - u * ARROW_LENGTH
    normal = np.stack([-u[:, 1], u[:, 0]], axis=1) * ARROW_HALF_WIDTH
    return np.stack([tip, base + normal, base - normal], axis=1)


# ---------------------------- Renderer ---------------------------- #


class Renderer:
    def __init__(self, ax, show_legend: bool = True) -> None:
        self.ax = ax
        self.view = Affine2D()
        self.transform = self.view + ax.transData
        self.graph: Optional[Graph] = None
        self.style: Optional[FrameStyle] = None

        ax.set_axis_off()
        ax.set_autoscale_on(False)

        # artists
        self.link_collection = LineCollection([], linewidths=1.5, zorder=2, transform=self.transform)
        self.arrow_collection = PolyCollection([], linewidths=0.0, zorder=2, transform=self.transform)
        self.node_collection = PatchCollection([], linewidths=2.0, zorder=3, transform=self.transform)
        ax.add_collection(self.link_collection, autolim=False)
        ax.add_collection(self.arrow_collection, autolim=False)
        ax.add_collection(self.node_collection, autolim=False)
        self.sel_ring = Circle(
            (0.0, 0.0), 1.0, fill=False, edgecolor=SELECTION_COLOR, linewidth=2.0,
            zorder=4, transform=self.transform, visible=False,
        )
        ax.add_patch(self.sel_ring)
        self.node_labels: List[Text] = []
        self.link_labels: List[Text] = []
        self._circles: List[Circle] = []
        self._base_colors = np.zeros((0, 4))

        self.tooltip = ax.text(
            0.0, 0.0, "", transform=ax.transData, ha="left", va="top", fontsize=9, color=TEXT,
            zorder=10, visible=False,
            bbox=dict(boxstyle="round,pad=0.5", fc=PANEL, ec=BORDER, alpha=0.95),
        )
        self.placeholder = ax.text(
            0.5, 0.5, "No graph data", transform=ax.transAxes, ha="center", va="center",
            fontsize=12, color="#999999", visible=False,
        )
        self.legend = self._build_legend() if show_legend else None

    def _build_legend(self):
        seen = []
        handles = []
        for group in GROUPS:
            label = group_label(group)
            if label in seen:
                continue
            seen.append(label)
            handles.append(
                Line2D([], [], marker="o", linestyle="None", markersize=8, color=GROUP_COLORS[group], label=label)
            )
        legend = self.ax.legend(
            handles=handles, loc="lower left", title="Legend", fontsize=8, title_fontsize=9,
            facecolor=PANEL, edgecolor=BORDER, labelcolor=TEXT_SECONDARY, framealpha=0.95,
        )
        legend.get_title().set_color(TEXT)
        legend.set_zorder(9)
        return legend

    def set_surface(self, width: float, height: float) -> None:
        self.ax.set_xlim(0.0, width)
        self.ax.set_ylim(height, 0.0)

    # ---- per-graph artists ---- #
    def bind(self, graph: Graph) -> None:
        self.unbind()
        self.graph = graph
        self._circles = [Circle((0.0, 0.0), node.size) for node in graph.nodes]
        if graph.n_nodes:
            self._base_colors = to_rgba_array([node_color(node) for node in graph.nodes])
        halo = [path_effects.withStroke(linewidth=2.5, foreground="black")]
        for node in graph.nodes:
            self.node_labels.append(self.ax.text(
                0.0, 0.0, node.id, transform=self.transform, ha="center", va="center", fontsize=9,
                fontweight="semibold", color=NODE_LABEL_COLOR, zorder=5, path_effects=halo, clip_on=True,
            ))
        for link in graph.links:
            self.link_labels.append(self.ax.text(
                0.0, 0.0, link.relationship, transform=self.transform, ha="center", va="center",
                fontsize=8, color=LINK_LABEL_COLOR, zorder=2.5, clip_on=True,
            ))
        self.placeholder.set_visible(graph.n_nodes == 0)

    def unbind(self) -> None:
        for text in self.node_labels + self.link_labels:
            text.remove()
        self.node_labels = []
        self.link_labels = []
        self._circles = []
        self._base_colors = np.zeros((0, 4))
        self.node_collection.set_paths([])
        self.link_collection.set_segments([])
        self.arrow_collection.set_verts([])
        self.sel_ring.set_visible(False)
        self.tooltip.set_visible(False)
        self.placeholder.set_visible(True)
        self.graph = None

    # ---- frame ---- #
    def draw(
        self,
        viewport: Viewport,
        highlight: HighlightState,
        pointer: Optional[Tuple[float, float]] = None,
    ) -> FrameStyle:
        g = self.graph
        self.view.set_matrix(viewport.matrix())
        style = frame_style(g, highlight)
        self.style = style
        if g is None or g.n_nodes == 0:
            self.sel_ring.set_visible(False)
            self.tooltip.set_visible(False)
            return style

        pos = g.pos
        for circle, p in zip(self._circles, pos):
            circle.set_center((p[0], p[1]))
        self.node_collection.set_paths(self._circles)
        face = self._base_colors.copy()
        face[:, 3] *= style.node_alpha
        edge = np.where(style.node_emphasis[:, None], to_rgba(LINK_HIGHLIGHT_COLOR), to_rgba(NODE_STROKE))
        edge[:, 3] = style.node_alpha
        self.node_collection.set_facecolor(face)
        self.node_collection.set_edgecolor(edge)
        self.node_collection.set_linewidth(np.where(style.node_emphasis, 3.5, 2.0))
        for text, p, alpha in zip(self.node_labels, pos, style.node_alpha):
            text.set_position((p[0], p[1]))
            text.set_alpha(alpha)

        if g.n_links:
            src = pos[g.edges[:, 0]]
            dst = pos[g.edges[:, 1]]
            colors = np.where(style.link_active[:, None], to_rgba(LINK_HIGHLIGHT_COLOR), to_rgba(LINK_COLOR))
            colors[:, 3] = style.link_alpha
            self.link_collection.set_segments(np.stack([src, dst], axis=1))
            self.link_collection.set_color(colors)
            self.arrow_collection.set_verts(arrowheads(src, dst, g.sizes[g.edges[:, 1]]))
            self.arrow_collection.set_facecolor(colors)
            mids = (src + dst) / 2.0
            for text, mid, alpha in zip(self.link_labels, mids, style.link_label_alpha):
                text.set_position((mid[0], mid[1]))
                text.set_alpha(alpha)

        selected = highlight.selected_node_id
        if selected is not None and selected in g.index:
            i = g.index[selected]
            self.sel_ring.set_center((pos[i, 0], pos[i, 1]))
            self.sel_ring.set_radius(g.sizes[i] + SELECTION_GAP)
            self.sel_ring.set_visible(True)
        else:
            self.sel_ring.set_visible(False)

        active = highlight.active_node_id
        if active is not None and active in g.index:
            anchor = pointer if pointer is not None else viewport.to_screen(*g.position(active))
            self.tooltip.set_text(tooltip_text(g.resolve(active)))
            self.tooltip.set_position((anchor[0] + TOOLTIP_OFFSET[0], anchor[1] + TOOLTIP_OFFSET[1]))
            self.tooltip.set_visible(True)
        else:
            self.tooltip.set_visible(False)
        return style
