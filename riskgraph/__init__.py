"""Interactive force-directed viewer for risk-investigation relationship graphs."""
from .config import LayoutParams, ViewerConfig, load_config
from .interaction import HighlightState, InteractionController, InteractionState
from .layout import LayoutSimulator
from .model import Graph, GraphValidationError, Link, Node, build, load_graph
from .viewport import Viewport

__all__ = [
    "Graph",
    "GraphValidationError",
    "HighlightState",
    "InteractionController",
    "InteractionState",
    "LayoutParams",
    "LayoutSimulator",
    "Link",
    "Node",
    "ViewerConfig",
    "Viewport",
    "build",
    "load_config",
    "load_graph",
]
