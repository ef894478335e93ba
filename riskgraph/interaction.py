"""
Pointer state machine for the graph view.

Coordinates passed in are surface ("screen") coordinates: pixels from the
top-left corner of the drawing area. They are mapped to world coordinates
through the viewport before touching nodes.

States:
- idle: hovering highlights a node and its direct neighbours
- dragging(node_id): the node is pinned under the pointer, layout is reheated
- panning: pointer movement translates the viewport
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, FrozenSet, List, Optional, Tuple

import numpy as np

from .layout import LayoutSimulator
from .model import Graph
from .viewport import Viewport, usable_surface

logger = logging.getLogger(__name__)


class InteractionState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    PANNING = "panning"


@dataclass
class HighlightState:
    active_node_id: Optional[str] = None
    connected_ids: FrozenSet[str] = field(default_factory=frozenset)
    selected_node_id: Optional[str] = None

    def clear_hover(self) -> None:
        self.active_node_id = None
        self.connected_ids = frozenset()


@dataclass
class DragSession:
    node_id: str
    # grab point minus node centre, world units
    offset: Tuple[float, float]
    start: Tuple[float, float]
    moved: float = 0.0


class InteractionController:
    def __init__(
        self,
        graph: Graph,
        simulator: LayoutSimulator,
        viewport: Viewport,
        surface: Tuple[float, float] = (0.0, 0.0),
        pick_tolerance: float = 4.0,
        click_tolerance: float = 3.0,
        zoom_step: float = 1.2,
        visible_margin: float = 40.0,
    ) -> None:
        self.graph = graph
        self.simulator = simulator
        self.viewport = viewport
        self.surface = usable_surface(*surface)
        self.pick_tolerance = pick_tolerance
        self.click_tolerance = click_tolerance
        self.zoom_step = zoom_step
        self.visible_margin = visible_margin

        self.state = InteractionState.IDLE
        self.highlight = HighlightState()
        self.drag: Optional[DragSession] = None
        self.pointer: Optional[Tuple[float, float]] = None
        self._pan_last: Optional[Tuple[float, float]] = None
        self._select_listeners: List[Callable[[Optional[str]], None]] = []
        self._change_listeners: List[Callable[[], None]] = []

    # ---------------- Subscriptions ---------------- #
    def on_select(self, callback: Callable[[Optional[str]], None]) -> None:
        self._select_listeners.append(callback)

    def on_change(self, callback: Callable[[], None]) -> None:
        self._change_listeners.append(callback)

    def _changed(self) -> None:
        for callback in list(self._change_listeners):
            callback()

    def dispose(self) -> None:
        self._select_listeners.clear()
        self._change_listeners.clear()

    @property
    def dragging_node_id(self) -> Optional[str]:
        return self.drag.node_id if self.drag is not None else None

    # ---------------- Hit testing ---------------- #
    def node_at(self, sx: float, sy: float) -> Optional[str]:
        g = self.graph
        if g.n_nodes == 0:
            return None
        wx, wy = self.viewport.to_world(sx, sy)
        d2 = (g.pos[:, 0] - wx) ** 2 + (g.pos[:, 1] - wy) ** 2
        reach = g.sizes + self.pick_tolerance / self.viewport.scale
        d2 = np.where(d2 <= reach ** 2, d2, np.inf)
        idx = int(np.argmin(d2))
        if not np.isfinite(d2[idx]):
            return None
        return g.nodes[idx].id

    def _clamped_world(self, sx: float, sy: float) -> Tuple[float, float]:
        width, height = self.surface
        x0, y0 = self.viewport.to_world(0.0, 0.0)
        x1, y1 = self.viewport.to_world(width, height)
        wx, wy = self.viewport.to_world(sx, sy)
        return min(max(wx, x0), x1), min(max(wy, y0), y1)

    # ---------------- Pointer events ---------------- #
    def pointer_down(self, sx: float, sy: float) -> None:
        self.pointer = (sx, sy)
        if self.state is not InteractionState.IDLE:
            return
        node_id = self.node_at(sx, sy)
        if node_id is None:
            self.state = InteractionState.PANNING
            self._pan_last = (sx, sy)
            return
        nx, ny = self.graph.position(node_id)
        wx, wy = self._clamped_world(sx, sy)
        self.drag = DragSession(node_id=node_id, offset=(wx - nx, wy - ny), start=(sx, sy))
        self.state = InteractionState.DRAGGING
        self.graph.pin(node_id, wx, wy)
        self.simulator.reheat()
        logger.debug(f"Drag start on {node_id!r}")
        self._changed()

    def pointer_move(self, sx: float, sy: float) -> None:
        self.pointer = (sx, sy)
        if self.state is InteractionState.DRAGGING:
            drag = self.drag
            drag.moved = max(drag.moved, math.hypot(sx - drag.start[0], sy - drag.start[1]))
            self.graph.pin(drag.node_id, *self._clamped_world(sx, sy))
            self._changed()
            return
        if self.state is InteractionState.PANNING:
            lx, ly = self._pan_last
            self.viewport.pan_by(sx - lx, sy - ly)
            self._pan_last = (sx, sy)
            self._changed()
            return
        self.hover(self.node_at(sx, sy))

    def pointer_up(self, sx: float, sy: float) -> None:
        self.pointer = (sx, sy)
        if self.state is InteractionState.DRAGGING:
            drag = self.drag
            self.graph.unpin(drag.node_id)
            self.simulator.release()
            self.drag = None
            self.state = InteractionState.IDLE
            if drag.moved <= self.click_tolerance:
                self.toggle_selection(drag.node_id)
            self._changed()
            return
        if self.state is InteractionState.PANNING:
            self._pan_last = None
            self.state = InteractionState.IDLE

    def wheel(self, sx: float, sy: float, steps: float) -> None:
        self.pointer = (sx, sy)
        self.viewport.zoom_by(self.zoom_step ** steps, (sx, sy))
        self._changed()

    def pointer_leave(self) -> None:
        self.pointer = None
        if self.highlight.active_node_id is None:
            return
        self.highlight.clear_hover()
        self._changed()

    # ---------------- Highlight / selection ---------------- #
    def hover(self, node_id: Optional[str]) -> None:
        if self.state is InteractionState.DRAGGING:
            return
        if node_id == self.highlight.active_node_id:
            if node_id is not None:
                self._changed()  # tooltip follows the pointer
            return
        if node_id is None:
            self.highlight.clear_hover()
        else:
            self.highlight.active_node_id = node_id
            self.highlight.connected_ids = self.graph.neighbors(node_id)
        self._changed()

    def toggle_selection(self, node_id: str) -> None:
        h = self.highlight
        h.selected_node_id = None if h.selected_node_id == node_id else node_id
        logger.info(f"Selection: {h.selected_node_id!r}")
        for callback in list(self._select_listeners):
            callback(h.selected_node_id)
        self._changed()

    def clear_selection(self) -> None:
        if self.highlight.selected_node_id is not None:
            self.toggle_selection(self.highlight.selected_node_id)

    # ---------------- Surface ---------------- #
    def resize(self, width: float, height: float) -> None:
        self.surface = usable_surface(width, height)
        self.viewport.clamp_to_surface(
            self.surface[0], self.surface[1], self.graph.bounding_box(with_sizes=True), self.visible_margin
        )
        self.simulator.set_extent(*self.surface)
        self._changed()
