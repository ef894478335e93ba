"""Tunable parameters for the layout solver and the viewer window."""
from __future__ import annotations

import json
from dataclasses import dataclass, fields
from typing import Dict, Optional, Tuple

# Ticks for alpha to decay from 1 to ALPHA_MIN.
COOLING_TICKS = 300
ALPHA_MIN = 0.001


@dataclass
class LayoutParams:
    link_distance: float = 120.0
    charge_strength: float = -1000.0
    charge_distance_min: float = 1.0
    charge_exact_limit: int = 200
    charge_theta: float = 0.9
    center_strength: float = 0.1
    collision_margin: float = 8.0
    collision_strength: float = 1.0
    alpha_min: float = ALPHA_MIN
    alpha_decay: float = 1.0 - ALPHA_MIN ** (1.0 / COOLING_TICKS)
    drag_alpha_target: float = 0.3
    velocity_decay: float = 0.4
    default_extent: Tuple[float, float] = (800.0, 600.0)
    seed: int = 0


@dataclass
class ViewerConfig:
    figsize: Tuple[float, float] = (10.5, 7.0)
    title: str = "Risk relationship graph"
    frame_interval_ms: int = 20
    pick_tolerance_px: float = 4.0
    click_tolerance_px: float = 3.0
    zoom_step: float = 1.2
    visible_margin_px: float = 40.0
    show_legend: bool = True


def _from_section(cls, section: Optional[Dict]):
    if not section:
        return cls()
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} option(s): {', '.join(unknown)}")
    values = dict(section)
    for key in ("default_extent", "figsize"):
        if key in values:
            values[key] = tuple(float(v) for v in values[key])
    return cls(**values)


def load_config(path: Optional[str]) -> Tuple[LayoutParams, ViewerConfig]:
    """Read ``{"layout": {...}, "viewer": {...}}``; missing file path means defaults."""
    if path is None:
        return LayoutParams(), ViewerConfig()
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    unknown = sorted(set(data) - {"layout", "viewer"})
    if unknown:
        raise ValueError(f"Unknown config section(s): {', '.join(unknown)}")
    return _from_section(LayoutParams, data.get("layout")), _from_section(ViewerConfig, data.get("viewer"))
