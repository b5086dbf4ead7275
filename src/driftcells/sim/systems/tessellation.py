"""Bounded Voronoi tessellation of the agent positions.

Each cell is the bounding box clipped by the perpendicular bisectors between
its site and the site's Delaunay neighbours (found with
``scipy.spatial.Delaunay``). The cell list is returned in the same order as
the input sites so callers can zip cells back onto agents.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, List, Sequence

import numpy as np
from scipy.spatial import Delaunay, QhullError, cKDTree

from ..core.errors import ConfigurationError, DegenerateInputError
from ..utils.math2d import BoundingBox, Position, polygon_area

logger = logging.getLogger(__name__)

_VERTEX_EPSILON = 1e-9
# Sites closer than this fraction of the larger box side count as coincident.
_COINCIDENT_FRACTION = 1e-9


@dataclass(frozen=True, slots=True)
class Cell:
    site: Position
    vertices: tuple[Position, ...]

    @property
    def area(self) -> float:
        return polygon_area(self.vertices)

    def is_empty(self) -> bool:
        return len(self.vertices) < 3

    def contains(self, point: Position, strict: bool = False) -> bool:
        """Point-in-convex-polygon test; vertices are counter-clockwise."""
        if self.is_empty():
            return False
        count = len(self.vertices)
        for index in range(count):
            a = self.vertices[index]
            b = self.vertices[(index + 1) % count]
            cross = (b.x - a.x) * (point.y - a.y) - (b.y - a.y) * (point.x - a.x)
            if cross < 0.0 or (strict and cross == 0.0):
                return False
        return True


@dataclass(frozen=True, slots=True)
class Tessellation:
    cells: tuple[Cell, ...]
    bounds: BoundingBox

    def __len__(self) -> int:
        return len(self.cells)

    def __iter__(self):
        return iter(self.cells)

    @property
    def total_area(self) -> float:
        return sum(cell.area for cell in self.cells)


def _clip(polygon: List[Position], site: Position, other: Position) -> List[Position]:
    """Keep the part of ``polygon`` that is at least as close to ``site`` as to ``other``."""
    dx = other.x - site.x
    dy = other.y - site.y
    mid_x = (site.x + other.x) * 0.5
    mid_y = (site.y + other.y) * 0.5

    def side(point: Position) -> float:
        return (point.x - mid_x) * dx + (point.y - mid_y) * dy

    clipped: List[Position] = []
    count = len(polygon)
    for index in range(count):
        current = polygon[index]
        following = polygon[(index + 1) % count]
        current_side = side(current)
        following_side = side(following)
        if current_side <= 0.0:
            clipped.append(current)
        if (current_side < 0.0 < following_side) or (following_side < 0.0 < current_side):
            t = current_side / (current_side - following_side)
            clipped.append(
                Position(
                    current.x + (following.x - current.x) * t,
                    current.y + (following.y - current.y) * t,
                )
            )
    return _dedupe(clipped)


def _dedupe(polygon: List[Position]) -> List[Position]:
    cleaned: List[Position] = []
    for point in polygon:
        if cleaned and abs(point.x - cleaned[-1].x) <= _VERTEX_EPSILON and abs(point.y - cleaned[-1].y) <= _VERTEX_EPSILON:
            continue
        cleaned.append(point)
    while (
        len(cleaned) > 1
        and abs(cleaned[0].x - cleaned[-1].x) <= _VERTEX_EPSILON
        and abs(cleaned[0].y - cleaned[-1].y) <= _VERTEX_EPSILON
    ):
        cleaned.pop()
    return cleaned


def _all_collinear(sites: Sequence[Position]) -> bool:
    origin = sites[0]
    anchor = sites[1]
    ax = anchor.x - origin.x
    ay = anchor.y - origin.y
    for site in sites[2:]:
        if ax * (site.y - origin.y) - ay * (site.x - origin.x) != 0.0:
            return False
    return True


def validate_sites(sites: Sequence[Position], tolerance: float = 0.0) -> None:
    count = len(sites)
    if count == 0:
        raise DegenerateInputError("tessellation needs at least one site", site_count=0)
    for site in sites:
        if not site.is_finite():
            raise DegenerateInputError(f"non-finite site {site}", site_count=count)
    if len({(site.x, site.y) for site in sites}) != count:
        raise DegenerateInputError("coincident sites", site_count=count)
    if tolerance > 0.0 and count > 1:
        points = np.asarray([(site.x, site.y) for site in sites], dtype=float)
        if cKDTree(points).query_pairs(tolerance):
            raise DegenerateInputError(f"sites closer than {tolerance:g}", site_count=count)
    if count >= 3 and _all_collinear(sites):
        raise DegenerateInputError("all sites are collinear", site_count=count)


def delaunay_neighbors(sites: Sequence[Position]) -> List[Sequence[int]]:
    """Indices of each site's Delaunay neighbours.

    Falls back to "every other site" when Qhull cannot triangulate the input
    or leaves some points out of the triangulation.
    """
    count = len(sites)
    everyone = [[other for other in range(count) if other != index] for index in range(count)]
    if count <= 3:
        return everyone
    points = np.asarray([(site.x, site.y) for site in sites], dtype=float)
    try:
        triangulation = Delaunay(points)
    except QhullError:
        logger.debug("qhull rejected %d sites; clipping against all pairs", count)
        return everyone
    if len(triangulation.coplanar):
        logger.debug("%d sites left out of triangulation; clipping against all pairs", len(triangulation.coplanar))
        return everyone
    indptr, indices = triangulation.vertex_neighbor_vertices
    return [indices[indptr[index] : indptr[index + 1]].tolist() for index in range(count)]


class TessellationEngine:
    def __init__(self) -> None:
        self._last_key: tuple[tuple[Position, ...], BoundingBox] | None = None
        self._last: Tessellation | None = None
        self.builds = 0
        self.cache_hits = 0

    @property
    def last(self) -> Tessellation | None:
        return self._last

    def clear(self) -> None:
        self._last_key = None
        self._last = None

    def build(self, sites: Iterable[Position], bounds: BoundingBox) -> Tessellation:
        sites = tuple(sites)
        if not bounds.is_valid():
            raise ConfigurationError(f"bounds must be positive, got {bounds.width}x{bounds.height}")
        key = (sites, bounds)
        if key == self._last_key and self._last is not None:
            self.cache_hits += 1
            return self._last

        validate_sites(sites, _COINCIDENT_FRACTION * max(bounds.width, bounds.height))
        box = bounds.corners()
        neighbors = delaunay_neighbors(sites)
        cells: List[Cell] = []
        for index, site in enumerate(sites):
            polygon = list(box)
            for other in neighbors[index]:
                polygon = _clip(polygon, site, sites[other])
                if len(polygon) < 3:
                    break
            if len(polygon) < 3 and bounds.contains(site):
                raise DegenerateInputError(f"site {index} produced an empty cell", site_count=len(sites))
            cells.append(Cell(site=site, vertices=tuple(polygon) if len(polygon) >= 3 else ()))

        tessellation = Tessellation(cells=tuple(cells), bounds=bounds)
        self._last_key = key
        self._last = tessellation
        self.builds += 1
        return tessellation


def is_partition(tessellation: Tessellation, tolerance: float = 1e-6) -> bool:
    expected = tessellation.bounds.area
    return math.isclose(tessellation.total_area, expected, rel_tol=tolerance, abs_tol=tolerance)
