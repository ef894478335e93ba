"""
Force-directed layout for the relationship graph.

Each force is a callable ``force(pos, vel, alpha) -> dv`` that reads the current
positions/velocities and returns a velocity increment for every node. The
simulator applies the registered forces in order, damps the velocity and
integrates it into ``Graph.pos``. Pinned nodes (``Graph.fixed``) are snapped
back to their pin every tick and never move on their own.

Forces installed by default:
- link: spring toward ``link_distance`` between linked nodes
- charge: inverse-distance repulsion between unlinked nodes; exact for small
  graphs, a Barnes-Hut quadtree above ``charge_exact_limit`` nodes
- center: gentle pull of the centroid toward the middle of the drawing surface
- collision: keeps circles ``size + collision_margin`` apart

The heat value ``alpha`` decays geometrically toward ``alpha_target`` each tick.
A drag raises the target so the layout relaxes around the dragged node; once
alpha drops below ``alpha_min`` the frame timer is stopped.
"""
from __future__ import annotations

import logging
import math
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
from scipy.spatial import cKDTree

from .config import LayoutParams
from .model import Graph

logger = logging.getLogger(__name__)

ForceFn = Callable[[np.ndarray, np.ndarray, float], np.ndarray]

JIGGLE = 1e-6
INITIAL_RADIUS = 10.0
INITIAL_ANGLE = math.pi * (3.0 - math.sqrt(5.0))
MAX_TREE_DEPTH = 20


def _jiggle(rng: np.random.Generator, d: np.ndarray) -> np.ndarray:
    # coincident points get a tiny random direction instead of 0/0
    zero = np.all(d == 0.0, axis=-1)
    if not np.any(zero):
        return d
    d = d.copy()
    d[zero] = (rng.random((int(zero.sum()), 2)) - 0.5) * JIGGLE
    return d


def _without_self_loops(edges: np.ndarray) -> np.ndarray:
    return edges[edges[:, 0] != edges[:, 1]]


# ---------------------------- Forces ---------------------------- #


class LinkForce:
    def __init__(self, edges: np.ndarray, n: int, distance: float = 120.0, seed: int = 0) -> None:
        self.edges = _without_self_loops(edges)
        self.distance = float(distance)
        count = np.bincount(self.edges.ravel(), minlength=n).astype(float)
        src, dst = self.edges[:, 0], self.edges[:, 1]
        # nodes with many links get weaker springs so hubs do not dominate
        self.strength = 1.0 / np.minimum(count[src], count[dst]) if self.edges.size else np.zeros(0)
        self.bias = count[src] / (count[src] + count[dst]) if self.edges.size else np.zeros(0)
        self._rng = np.random.default_rng(seed)

    def __call__(self, pos: np.ndarray, vel: np.ndarray, alpha: float) -> np.ndarray:
        dv = np.zeros_like(pos)
        if self.edges.shape[0] == 0:
            return dv
        src, dst = self.edges[:, 0], self.edges[:, 1]
        d = _jiggle(self._rng, (pos[dst] + vel[dst]) - (pos[src] + vel[src]))
        dist = np.linalg.norm(d, axis=1)
        k = (dist - self.distance) / dist * alpha * self.strength
        f = d * k[:, None]
        np.add.at(dv, dst, -f * self.bias[:, None])
        np.add.at(dv, src, f * (1.0 - self.bias)[:, None])
        return dv


class _QuadLevel:
    """One level of an implicit quadtree: occupied cells with their mass and centroid."""

    def __init__(self, pos: np.ndarray, lo: np.ndarray, size: float, level: int) -> None:
        self.side = 1 << level
        ij = np.clip(np.floor((pos - lo) / size * self.side), 0, self.side - 1).astype(np.int64)
        self.keys, node_cell = np.unique(ij[:, 0] * self.side + ij[:, 1], return_inverse=True)
        self.node_cell = node_cell.reshape(-1)
        self.counts = np.bincount(self.node_cell).astype(float)
        self.centroids = np.zeros((self.keys.size, 2), dtype=float)
        np.add.at(self.centroids, self.node_cell, pos)
        self.centroids /= self.counts[:, None]

    def children(self, nodes: np.ndarray, cells: np.ndarray, parent: "_QuadLevel") -> Tuple[np.ndarray, np.ndarray]:
        """Expand (node, parent cell) pairs into (node, occupied child cell) pairs."""
        px, py = np.divmod(parent.keys[cells], parent.side)
        out_nodes, out_cells = [], []
        for a in (0, 1):
            for b in (0, 1):
                code = (2 * px + a) * self.side + (2 * py + b)
                idx = np.minimum(np.searchsorted(self.keys, code), self.keys.size - 1)
                hit = self.keys[idx] == code
                out_nodes.append(nodes[hit])
                out_cells.append(idx[hit])
        return np.concatenate(out_nodes), np.concatenate(out_cells)


class ChargeForce:
    def __init__(
        self,
        edges: np.ndarray,
        strength: float = -1000.0,
        distance_min: float = 1.0,
        exact_limit: int = 200,
        theta: float = 0.9,
        seed: int = 0,
    ) -> None:
        self.strength = float(strength)
        self.distance_min2 = float(distance_min) ** 2
        self.exact_limit = int(exact_limit)
        self.theta = float(theta)
        # node/cell and node/node evaluations made by the last approximate() call
        self.interactions = 0
        linked = _without_self_loops(edges)
        if linked.size:
            self.linked = np.unique(np.sort(linked, axis=1), axis=0)
        else:
            self.linked = np.zeros((0, 2), dtype=int)
        self._rng = np.random.default_rng(seed)

    def __call__(self, pos: np.ndarray, vel: np.ndarray, alpha: float) -> np.ndarray:
        if pos.shape[0] < 2 or self.strength == 0.0:
            return np.zeros_like(pos)
        if pos.shape[0] <= self.exact_limit:
            return self.exact(pos, alpha)
        return self.approximate(pos, alpha)

    def _weights(self, l2: np.ndarray, alpha: float, mass=1.0) -> np.ndarray:
        l2 = np.where(l2 < self.distance_min2, np.sqrt(self.distance_min2 * l2), l2)
        return self.strength * alpha * mass / l2

    def exact(self, pos: np.ndarray, alpha: float) -> np.ndarray:
        diff = _jiggle(self._rng, pos[None, :, :] - pos[:, None, :])  # diff[i, j] = pos[j] - pos[i]
        w = self._weights(np.sum(diff * diff, axis=2), alpha)
        np.fill_diagonal(w, 0.0)
        if self.linked.shape[0]:
            w[self.linked[:, 0], self.linked[:, 1]] = 0.0
            w[self.linked[:, 1], self.linked[:, 0]] = 0.0
        return np.einsum("ij,ijk->ik", w, diff)

    def approximate(self, pos: np.ndarray, alpha: float) -> np.ndarray:
        """
        Barnes-Hut: a quadtree cell of width ``w`` whose centroid lies farther
        than ``w / theta`` from a node acts on it as one mass. All nodes walk
        the tree together, one level at a time; pairs that are still open at
        the deepest level are summed exactly.
        """
        n = pos.shape[0]
        dv = np.zeros_like(pos)
        lo = pos.min(axis=0)
        size = max(float(np.ptp(pos, axis=0).max()), 1.0)
        depth = min(MAX_TREE_DEPTH, max(1, int(math.ceil(math.log(n, 4)))))
        levels = [_QuadLevel(pos, lo, size, level) for level in range(depth + 1)]
        theta2 = self.theta * self.theta
        interactions = 0

        nodes = np.arange(n)
        cells = np.zeros(n, dtype=int)
        for level, quad in enumerate(levels):
            width = size / quad.side
            d = quad.centroids[cells] - pos[nodes]
            l2 = np.sum(d * d, axis=1)
            interactions += nodes.size
            far = (quad.node_cell[nodes] != cells) & (width * width < theta2 * l2)
            if np.any(far):
                w = self._weights(l2[far], alpha, quad.counts[cells[far]])
                np.add.at(dv, nodes[far], d[far] * w[:, None])
            nodes, cells = nodes[~far], cells[~far]
            if level < depth:
                nodes, cells = levels[level + 1].children(nodes, cells, quad)

        # open leaves: every member of the cell, one by one
        leaf = levels[-1]
        members = np.argsort(leaf.node_cell, kind="stable")
        counts = leaf.counts.astype(int)
        starts = np.cumsum(counts) - counts
        per = counts[cells]
        i = np.repeat(nodes, per)
        first = np.repeat(starts[cells] - (np.cumsum(per) - per), per)
        j = members[first + np.arange(i.size)]
        keep = i != j
        i, j = i[keep], j[keep]
        interactions += i.size
        if i.size:
            d = _jiggle(self._rng, pos[j] - pos[i])
            np.add.at(dv, i, d * self._weights(np.sum(d * d, axis=1), alpha)[:, None])

        # linked pairs are held by their spring only; where the partner was
        # folded into a far cell this removes its exact share, not the centroid's
        if self.linked.shape[0]:
            i, j = self.linked[:, 0], self.linked[:, 1]
            d = _jiggle(self._rng, pos[j] - pos[i])
            f = d * self._weights(np.sum(d * d, axis=1), alpha)[:, None]
            np.add.at(dv, i, -f)
            np.add.at(dv, j, f)
        self.interactions = interactions
        return dv


class CenterForce:
    def __init__(self, x: float, y: float, strength: float = 0.1) -> None:
        self.x = float(x)
        self.y = float(y)
        self.strength = float(strength)

    def __call__(self, pos: np.ndarray, vel: np.ndarray, alpha: float) -> np.ndarray:
        dv = np.zeros_like(pos)
        if pos.shape[0]:
            dv[:] = (np.array([self.x, self.y]) - pos.mean(axis=0)) * self.strength
        return dv


class CollisionForce:
    def __init__(self, sizes: np.ndarray, margin: float = 8.0, strength: float = 1.0, seed: int = 0) -> None:
        self.radii = np.asarray(sizes, dtype=float) + float(margin)
        self.strength = float(strength)
        self._rng = np.random.default_rng(seed)

    def __call__(self, pos: np.ndarray, vel: np.ndarray, alpha: float) -> np.ndarray:
        dv = np.zeros_like(pos)
        if pos.shape[0] < 2:
            return dv
        pred = pos + vel
        pairs = cKDTree(pred).query_pairs(r=2.0 * float(self.radii.max()), output_type="ndarray")
        if pairs.size == 0:
            return dv
        i, j = pairs[:, 0], pairs[:, 1]
        d = _jiggle(self._rng, pred[i] - pred[j])
        l2 = np.sum(d * d, axis=1)
        r = self.radii[i] + self.radii[j]
        hit = l2 < r * r
        if not np.any(hit):
            return dv
        i, j, d, r = i[hit], j[hit], d[hit], r[hit]
        l = np.sqrt(l2[hit])
        d = d * ((r - l) / l * self.strength)[:, None]
        ri2, rj2 = self.radii[i] ** 2, self.radii[j] ** 2
        wi = rj2 / (ri2 + rj2)
        np.add.at(dv, i, d * wi[:, None])
        np.add.at(dv, j, -d * (1.0 - wi)[:, None])
        return dv


# ---------------------------- Simulator ---------------------------- #


class LayoutSimulator:
    def __init__(
        self,
        graph: Graph,
        params: Optional[LayoutParams] = None,
        extent: Optional[Tuple[float, float]] = None,
        timer_factory: Optional[Callable] = None,
        interval_ms: int = 20,
    ) -> None:
        self.graph = graph
        self.params = params or LayoutParams()
        self.alpha: float = 1.0
        self.alpha_target: float = 0.0
        self.running: bool = False
        self.disposed: bool = False
        self.tick_count: int = 0
        self._listeners: List[Callable[[], None]] = []
        self.center: Tuple[float, float] = self._extent_center(extent)
        self.forces: Dict[str, ForceFn] = {}
        self._init_positions()
        self._install_default_forces()
        self._timer = None
        if timer_factory is not None:
            self._timer = timer_factory(interval=interval_ms)
            self._timer.add_callback(self.step)

    # ---- setup ---- #
    def _extent_center(self, extent: Optional[Tuple[float, float]]) -> Tuple[float, float]:
        w, h = extent if extent is not None else (0.0, 0.0)
        if not (w > 0 and h > 0 and math.isfinite(w) and math.isfinite(h)):
            w, h = self.params.default_extent
        return w / 2.0, h / 2.0

    def _init_positions(self) -> None:
        pos = self.graph.pos
        idx = np.flatnonzero(np.isnan(pos[:, 0]) | np.isnan(pos[:, 1]))
        if idx.size == 0:
            return
        # phyllotaxis spiral, so no two nodes start on top of each other
        r = INITIAL_RADIUS * np.sqrt(0.5 + idx)
        a = idx * INITIAL_ANGLE
        pos[idx, 0] = self.center[0] + r * np.cos(a)
        pos[idx, 1] = self.center[1] + r * np.sin(a)

    def _install_default_forces(self) -> None:
        p = self.params
        g = self.graph
        self.forces["link"] = LinkForce(g.edges, g.n_nodes, distance=p.link_distance, seed=p.seed)
        self.forces["charge"] = ChargeForce(
            g.edges,
            strength=p.charge_strength,
            distance_min=p.charge_distance_min,
            exact_limit=p.charge_exact_limit,
            theta=p.charge_theta,
            seed=p.seed + 1,
        )
        self.forces["center"] = CenterForce(*self.center, strength=p.center_strength)
        self.forces["collision"] = CollisionForce(
            g.sizes, margin=p.collision_margin, strength=p.collision_strength, seed=p.seed + 2
        )

    def add_force(self, name: str, force: ForceFn) -> None:
        self.forces[name] = force

    def remove_force(self, name: str) -> None:
        self.forces.pop(name, None)

    def set_extent(self, width: float, height: float) -> None:
        self.center = self._extent_center((width, height))
        center = self.forces.get("center")
        if isinstance(center, CenterForce):
            center.x, center.y = self.center

    def on_tick(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    # ---- integration ---- #
    @property
    def converged(self) -> bool:
        return self.alpha < self.params.alpha_min

    def tick(self, iterations: int = 1) -> None:
        g = self.graph
        p = self.params
        for _ in range(max(1, int(iterations))):
            self.alpha += (self.alpha_target - self.alpha) * p.alpha_decay
            self.tick_count += 1
            if g.n_nodes == 0:
                continue
            for force in self.forces.values():
                g.vel += force(g.pos, g.vel, self.alpha)
            pinned = g.pinned_mask()
            free = ~pinned
            g.vel[free] *= 1.0 - p.velocity_decay
            g.pos[free] += g.vel[free]
            g.pos[pinned] = g.fixed[pinned]
            g.vel[pinned] = 0.0

    def run(self, max_ticks: int = 1000) -> int:
        """Tick synchronously until cooled; returns the number of ticks taken."""
        ticks = 0
        while not self.converged and ticks < max_ticks:
            self.tick()
            ticks += 1
        return ticks

    # ---- frame loop ---- #
    def step(self) -> None:
        if self.disposed or not self.running:
            return
        self.tick()
        for callback in list(self._listeners):
            callback()
        if self.converged:
            self.stop()
            logger.debug(f"Layout cooled after {self.tick_count} ticks")

    def restart(self) -> None:
        if self.disposed:
            return
        self.running = True
        if self._timer is not None:
            self._timer.start()

    def stop(self) -> None:
        self.running = False
        if self._timer is not None:
            self._timer.stop()

    def reheat(self, target: Optional[float] = None) -> None:
        self.alpha_target = self.params.drag_alpha_target if target is None else float(target)
        self.restart()

    def release(self) -> None:
        self.alpha_target = 0.0

    def dispose(self) -> None:
        if self.disposed:
            return
        self.stop()
        if self._timer is not None:
            self._timer.remove_callback(self.step)
            self._timer = None
        self._listeners.clear()
        self.disposed = True
        logger.debug("Layout simulator disposed")
