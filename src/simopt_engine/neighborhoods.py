"""Lattice neighborhoods around a center point.

von Neumann neighborhoods are bounded by Manhattan (L1) distance, Moore
neighborhoods by Chebyshev (L-inf) distance. Each comes as a bounding-box
scan and as a breadth-first expansion; both produce the same point set,
the BFS variant only ever touching points inside the neighborhood.
"""

from __future__ import annotations

import itertools
import logging
from collections import deque
from typing import Callable, List, Optional, Sequence, Set, Tuple

import numpy as np

from .problem import InputMap

_LOGGER = logging.getLogger(__name__)

Point = Tuple[int, ...]


def _manhattan(a: Point, b: Point) -> int:
    return sum(abs(x - y) for x, y in zip(a, b))


def _chebyshev(a: Point, b: Point) -> int:
    return max((abs(x - y) for x, y in zip(a, b)), default=0)


def _check(center: Sequence[int], radius: int) -> Point:
    if len(center) == 0:
        raise ValueError("The dimension must be 1 or more")
    if radius < 0:
        raise ValueError("The radius must be >= 0")
    return tuple(int(c) for c in center)


def _bounding_box_scan(center: Point, radius: int, include_center: bool, dist: Callable[[Point, Point], int]) -> List[Point]:
    ranges = [range(c - radius, c + radius + 1) for c in center]
    out: List[Point] = []
    for p in itertools.product(*ranges):
        if dist(center, p) <= radius and (include_center or p != center):
            out.append(p)
    return out


def _bfs(center: Point, radius: int, include_center: bool, dist: Callable[[Point, Point], int], steps: List[Point]) -> List[Point]:
    out: List[Point] = []
    visited = {center}
    queue = deque([center])
    while queue:
        cur = queue.popleft()
        d = dist(center, cur)
        if include_center or cur != center:
            out.append(cur)
        if d >= radius:
            continue
        for s in steps:
            nxt = tuple(c + ds for c, ds in zip(cur, s))
            if nxt not in visited and dist(center, nxt) <= radius:
                visited.add(nxt)
                queue.append(nxt)
    return out


def _unit_steps(d: int) -> List[Point]:
    steps: List[Point] = []
    for i in range(d):
        for sign in (1, -1):
            s = [0] * d
            s[i] = sign
            steps.append(tuple(s))
    return steps


def _king_steps(d: int) -> List[Point]:
    return [s for s in itertools.product((-1, 0, 1), repeat=d) if any(s)]


def von_neumann_neighborhood(center: Sequence[int], radius: int = 1, include_center: bool = False) -> List[Point]:
    c = _check(center, radius)
    if radius == 0:
        return [c] if include_center else []
    return _bounding_box_scan(c, radius, include_center, _manhattan)


def von_neumann_neighborhood_bfs(center: Sequence[int], radius: int = 1, include_center: bool = False) -> List[Point]:
    c = _check(center, radius)
    if radius == 0:
        return [c] if include_center else []
    return _bfs(c, radius, include_center, _manhattan, _unit_steps(len(c)))


def moore_neighborhood(center: Sequence[int], radius: int = 1, include_center: bool = False) -> List[Point]:
    c = _check(center, radius)
    if radius == 0:
        return [c] if include_center else []
    return _bounding_box_scan(c, radius, include_center, _chebyshev)


def moore_neighborhood_bfs(center: Sequence[int], radius: int = 1, include_center: bool = False) -> List[Point]:
    c = _check(center, radius)
    if radius == 0:
        return [c] if include_center else []
    return _bfs(c, radius, include_center, _chebyshev, _king_steps(len(c)))


def zero_von_neumann_neighborhood(dimension: int, radius: int = 1, include_center: bool = False) -> List[Point]:
    return von_neumann_neighborhood((0,) * dimension, radius, include_center)


def zero_moore_neighborhood(dimension: int, radius: int = 1, include_center: bool = False) -> List[Point]:
    return moore_neighborhood((0,) * dimension, radius, include_center)


class NeighborhoodFinder:
    """Enumerates lattice neighbors of an InputMap.

    Offsets are counted in lattice steps of each input's granularity
    (unit steps for continuous inputs). Points are not filtered for
    feasibility; callers do that.
    """

    name: str = "base"

    def __init__(self, radius: int = 1, use_bfs: bool = False, include_center: bool = False):
        if radius < 1:
            raise ValueError("The neighborhood radius must be >= 1")
        self.radius = int(radius)
        self.use_bfs = bool(use_bfs)
        self.include_center = bool(include_center)

    def offsets(self, dimension: int) -> List[Point]:
        raise NotImplementedError

    def neighborhood(self, input_map: InputMap, solver: Optional[object] = None) -> Set[InputMap]:
        problem = input_map.problem
        x0 = input_map.input_values
        step = np.where(problem.granularity > 0, problem.granularity, 1.0)
        out: Set[InputMap] = set()
        for off in self.offsets(problem.dimension):
            x = x0 + np.asarray(off, dtype=np.float64) * step
            out.add(problem.to_input_map(x))
        _LOGGER.debug("%s: %d neighbors around %s", self.name, len(out), input_map)
        return out


class VonNeumannNeighborhoodFinder(NeighborhoodFinder):
    name = "von_neumann"

    def offsets(self, dimension: int) -> List[Point]:
        fn = von_neumann_neighborhood_bfs if self.use_bfs else von_neumann_neighborhood
        return fn((0,) * dimension, self.radius, self.include_center)


class MooreNeighborhoodFinder(NeighborhoodFinder):
    name = "moore"

    def offsets(self, dimension: int) -> List[Point]:
        fn = moore_neighborhood_bfs if self.use_bfs else moore_neighborhood
        return fn((0,) * dimension, self.radius, self.include_center)


def make_neighborhood_finder(kind: str = "von_neumann", radius: int = 1, use_bfs: bool = False) -> NeighborhoodFinder:
    kind = kind.lower()
    if kind == "von_neumann":
        return VonNeumannNeighborhoodFinder(radius=radius, use_bfs=use_bfs)
    if kind == "moore":
        return MooreNeighborhoodFinder(radius=radius, use_bfs=use_bfs)
    raise ValueError(f"Unknown neighborhood kind: {kind}")
