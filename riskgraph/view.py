"""
Interactive relationship-graph window

Features:
- Drag a node to pin it under the pointer; the layout relaxes around it and the
  node is released when the button is let go.
- Click a node to select it (click it again to clear). Hover a node to
  highlight it with its direct neighbours and show a tooltip.
- Drag empty space to pan, scroll to zoom around the pointer.
- Keys: ``r`` resets the view, ``escape`` clears the selection.

A new dataset replaces the previous graph wholesale: the old session's frame
timer and canvas callbacks are torn down before the new simulator is created.
The pan/zoom state is kept unless ``set_data(..., reset_view=True)``.
"""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field
from typing import Callable, List, Mapping, Optional, Tuple, Union

import matplotlib.pyplot as plt

from .config import LayoutParams, ViewerConfig, load_config
from .interaction import InteractionController, InteractionState
from .layout import LayoutSimulator
from .model import Graph, load_graph
from .render import BACKGROUND, TEXT_SECONDARY, Renderer
from .viewport import Viewport, usable_surface

logger = logging.getLogger(__name__)


@dataclass
class GraphSession:
    graph: Graph
    simulator: LayoutSimulator
    controller: InteractionController
    cids: List[int] = field(default_factory=list)

    def dispose(self, canvas) -> None:
        for cid in self.cids:
            canvas.mpl_disconnect(cid)
        self.cids.clear()
        self.controller.dispose()
        self.simulator.dispose()


class GraphView:
    def __init__(
        self,
        data: Union[Graph, Mapping, None] = None,
        params: Optional[LayoutParams] = None,
        config: Optional[ViewerConfig] = None,
        on_select: Optional[Callable[[Optional[str]], None]] = None,
        fig=None,
    ) -> None:
        self.params = params or LayoutParams()
        self.config = config or ViewerConfig()
        self.on_select = on_select
        if fig is None:
            fig = plt.figure(figsize=self.config.figsize)
            fig.canvas.manager.set_window_title(self.config.title)
        self.fig = fig
        self.fig.set_facecolor(BACKGROUND)
        self.ax = fig.add_axes([0.0, 0.0, 1.0, 1.0])

        self.viewport = Viewport()
        self.renderer = Renderer(self.ax, show_legend=self.config.show_legend)
        self.status_text = self.ax.text(
            0.01, 0.99, "", transform=self.ax.transAxes, va="top", ha="left", fontsize=9,
            color=TEXT_SECONDARY, zorder=10,
        )
        self.session: Optional[GraphSession] = None
        self.surface: Tuple[float, float] = self._measure_surface()
        self.renderer.set_surface(*self.surface)
        self.cid_resize = self.fig.canvas.mpl_connect("resize_event", self.on_resize)
        self.set_data(data)

    # ---------------- Data ---------------- #
    def set_data(self, data: Union[Graph, Mapping, None], reset_view: bool = False) -> Graph:
        graph = data if isinstance(data, Graph) else Graph.from_dict(data)
        if self.session is not None:
            self.session.dispose(self.fig.canvas)
            self.session = None
        if reset_view:
            self.viewport.reset()

        simulator = LayoutSimulator(
            graph,
            self.params,
            extent=self.surface,
            timer_factory=self.fig.canvas.new_timer,
            interval_ms=self.config.frame_interval_ms,
        )
        controller = InteractionController(
            graph,
            simulator,
            self.viewport,
            surface=self.surface,
            pick_tolerance=self.config.pick_tolerance_px,
            click_tolerance=self.config.click_tolerance_px,
            zoom_step=self.config.zoom_step,
            visible_margin=self.config.visible_margin_px,
        )
        session = GraphSession(graph, simulator, controller)
        simulator.on_tick(self._on_tick)
        controller.on_change(self.redraw)
        controller.on_select(self._on_select)
        canvas = self.fig.canvas
        session.cids = [
            canvas.mpl_connect("button_press_event", self.on_press),
            canvas.mpl_connect("button_release_event", self.on_release),
            canvas.mpl_connect("motion_notify_event", self.on_motion),
            canvas.mpl_connect("scroll_event", self.on_scroll),
            canvas.mpl_connect("axes_leave_event", self.on_leave),
            canvas.mpl_connect("figure_leave_event", self.on_leave),
            canvas.mpl_connect("key_press_event", self.on_key_press),
        ]
        self.session = session
        self.renderer.bind(graph)

        if graph.n_nodes:
            msg = f"{graph.n_nodes} nodes, {graph.n_links} links"
            if graph.dropped_links:
                msg += f" ({graph.dropped_links} dropped)"
            self._set_status(msg)
            simulator.restart()
        else:
            self._set_status("")
        logger.info(f"Loaded graph: {graph.n_nodes} nodes, {graph.n_links} links")
        self.redraw()
        return graph

    def dispose(self) -> None:
        if self.session is not None:
            self.session.dispose(self.fig.canvas)
            self.session = None
        if self.cid_resize is not None:
            self.fig.canvas.mpl_disconnect(self.cid_resize)
            self.cid_resize = None
        self.renderer.unbind()
        logger.debug("Graph view disposed")

    # ---------------- Events ---------------- #
    def _surface_point(self, event) -> Optional[Tuple[float, float]]:
        if event.inaxes != self.ax or event.xdata is None or event.ydata is None:
            return None
        return float(event.xdata), float(event.ydata)

    def on_press(self, event) -> None:
        if self.session is None or event.button != 1:
            return
        p = self._surface_point(event)
        if p is None:
            return
        self.session.controller.pointer_down(*p)

    def on_release(self, event) -> None:
        if self.session is None or event.button != 1:
            return
        controller = self.session.controller
        # a release outside the axes still has to end the drag
        p = self._surface_point(event) or controller.pointer or (0.0, 0.0)
        controller.pointer_up(*p)

    def on_motion(self, event) -> None:
        if self.session is None:
            return
        controller = self.session.controller
        p = self._surface_point(event)
        if p is None:
            if controller.state is InteractionState.IDLE:
                controller.pointer_leave()
            return
        controller.pointer_move(*p)

    def on_scroll(self, event) -> None:
        if self.session is None:
            return
        p = self._surface_point(event)
        if p is None:
            return
        self.session.controller.wheel(p[0], p[1], event.step)

    def on_leave(self, event) -> None:
        if self.session is None:
            return
        if self.session.controller.state is InteractionState.IDLE:
            self.session.controller.pointer_leave()

    def on_key_press(self, event) -> None:
        if self.session is None:
            return
        if event.key == "r":
            self.viewport.reset()
            self._set_status("View reset.")
            self.redraw()
        elif event.key == "escape":
            self.session.controller.clear_selection()

    def on_resize(self, event) -> None:
        self.surface = self._measure_surface()
        self.renderer.set_surface(*self.surface)
        if self.session is not None:
            self.session.controller.resize(*self.surface)
        else:
            self.redraw()

    def _on_tick(self) -> None:
        self.redraw()
        if self.session is not None and self.session.simulator.converged:
            self._set_status("Layout settled.")

    def _on_select(self, node_id: Optional[str]) -> None:
        self._set_status(f"Selected {node_id}" if node_id is not None else "Selection cleared.")
        if self.on_select is not None:
            self.on_select(node_id)

    # ---------------- Drawing helpers ---------------- #
    def _measure_surface(self) -> Tuple[float, float]:
        bbox = self.ax.get_window_extent()
        return usable_surface(bbox.width, bbox.height)

    def redraw(self) -> None:
        if self.session is None:
            return
        controller = self.session.controller
        self.renderer.draw(self.viewport, controller.highlight, controller.pointer)
        self.fig.canvas.draw_idle()

    def _set_status(self, msg: str) -> None:
        self.status_text.set_text(msg)
        self.fig.canvas.draw_idle()

    # ---------------- Run ---------------- #
    def run(self) -> None:
        plt.show()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="riskgraph-viewer", description="Interactive risk relationship graph viewer.")
    parser.add_argument("dataset", nargs="?", help="JSON file with 'nodes' and 'links'")
    parser.add_argument("--config", help="JSON file with 'layout' and 'viewer' options")
    parser.add_argument("--seed", type=int, default=None, help="seed for the layout's tie-breaking noise")
    parser.add_argument(
        "--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="logging verbosity"
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        params, config = load_config(args.config)
        graph = load_graph(args.dataset) if args.dataset else None
    except (OSError, ValueError) as e:
        logger.error(f"Cannot start viewer: {e}")
        return 2
    if args.seed is not None:
        params.seed = args.seed

    def report(node_id: Optional[str]) -> None:
        print(f"selected: {node_id}" if node_id is not None else "selection cleared")

    view = GraphView(graph, params=params, config=config, on_select=report)
    view.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
