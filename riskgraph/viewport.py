"""Pan/zoom state mapping world coordinates onto the drawing surface."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

SCALE_MIN = 0.1
SCALE_MAX = 4.0
DEFAULT_SURFACE = (800.0, 600.0)


def usable_surface(width: float, height: float) -> Tuple[float, float]:
    if width > 0 and height > 0 and math.isfinite(width) and math.isfinite(height):
        return float(width), float(height)
    return DEFAULT_SURFACE


@dataclass
class Viewport:
    """screen = world * scale + translate; node coordinates are never touched."""

    scale: float = 1.0
    tx: float = 0.0
    ty: float = 0.0

    def reset(self) -> None:
        self.scale = 1.0
        self.tx = 0.0
        self.ty = 0.0

    def to_world(self, sx: float, sy: float) -> Tuple[float, float]:
        return (sx - self.tx) / self.scale, (sy - self.ty) / self.scale

    def to_screen(self, wx: float, wy: float) -> Tuple[float, float]:
        return wx * self.scale + self.tx, wy * self.scale + self.ty

    def matrix(self) -> np.ndarray:
        s = self.scale
        return np.array([[s, 0.0, self.tx], [0.0, s, self.ty], [0.0, 0.0, 1.0]])

    def zoom_by(self, factor: float, pivot: Tuple[float, float]) -> None:
        """Multiply the scale, keeping the screen point ``pivot`` over the same world point."""
        if not math.isfinite(factor):
            return
        new_scale = min(SCALE_MAX, max(SCALE_MIN, self.scale * factor))
        wx, wy = self.to_world(*pivot)
        self.scale = new_scale
        self.tx = pivot[0] - wx * new_scale
        self.ty = pivot[1] - wy * new_scale

    def pan_by(self, dx: float, dy: float) -> None:
        self.tx += dx
        self.ty += dy

    def clamp_to_surface(
        self,
        width: float,
        height: float,
        bounds: Optional[Tuple[float, float, float, float]],
        margin: float = 40.0,
    ) -> None:
        """Shift translate so at least ``margin`` px of the content stays on screen."""
        if bounds is None:
            return
        width, height = usable_surface(width, height)
        xmin, ymin, xmax, ymax = bounds
        left, top = self.to_screen(xmin, ymin)
        right, bottom = self.to_screen(xmax, ymax)
        mx = min(margin, width / 2.0)
        my = min(margin, height / 2.0)
        if right < mx:
            self.tx += mx - right
        elif left > width - mx:
            self.tx -= left - (width - mx)
        if bottom < my:
            self.ty += my - bottom
        elif top > height - my:
            self.ty -= top - (height - my)
