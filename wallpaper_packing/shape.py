"""
shape.py - Polygonal shapes and their derived quantities

Shapes are immutable. Concave polygons are split into convex parts once,
at construction, so the intersection test only ever sees convex pieces.
"""
import math
from dataclasses import dataclass, field
from functools import cached_property
from typing import List, Optional, Sequence, Tuple

import numpy as np
from shapely.geometry import LinearRing, Polygon
from shapely.geometry.polygon import orient

from .errors import DegenerateShape
from .geometry import Transform, as_points

# Edges shorter than this are treated as repeated vertices
EDGE_TOLERANCE = 1e-12
# Relative tolerance for convexity and ear tests
CONVEX_TOLERANCE = 1e-12


def signed_area(vertices: np.ndarray) -> float:
    """Shoelace formula; positive for counter-clockwise vertices."""
    x, y = vertices[:, 0], vertices[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))


def _cross(o: np.ndarray, a: np.ndarray, b: np.ndarray) -> float:
    return float((a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0]))


def is_convex_polygon(vertices: np.ndarray, tol: float = CONVEX_TOLERANCE) -> bool:
    """True when every turn of a CCW polygon is a left turn (collinear allowed)."""
    edges = np.roll(vertices, -1, axis=0) - vertices
    nxt = np.roll(edges, -1, axis=0)
    turns = edges[:, 0] * nxt[:, 1] - edges[:, 1] * nxt[:, 0]
    scale = max(float(np.max(np.abs(vertices))), 1.0) ** 2
    return bool(np.all(turns >= -tol * scale))


def edge_normals(vertices: np.ndarray) -> np.ndarray:
    """Unit normals of each edge of a polygon."""
    edges = np.roll(vertices, -1, axis=0) - vertices
    normals = np.column_stack((edges[:, 1], -edges[:, 0]))
    lengths = np.hypot(normals[:, 0], normals[:, 1])
    return normals / lengths[:, None]


def _point_in_triangle(p, a, b, c, tol: float) -> bool:
    return (_cross(a, b, p) >= -tol and _cross(b, c, p) >= -tol
            and _cross(c, a, p) >= -tol)


def _ear_clip(vertices: np.ndarray) -> List[List[int]]:
    """Triangulate a simple CCW polygon, returning vertex index triples."""
    scale = max(float(np.max(np.abs(vertices))), 1.0) ** 2
    tol = CONVEX_TOLERANCE * scale
    remaining = list(range(len(vertices)))
    triangles = []

    while len(remaining) > 3:
        n = len(remaining)
        for k in range(n):
            i_prev, i, i_next = remaining[k - 1], remaining[k], remaining[(k + 1) % n]
            a, b, c = vertices[i_prev], vertices[i], vertices[i_next]
            if _cross(a, b, c) <= tol:
                continue
            blocked = any(
                _point_in_triangle(vertices[j], a, b, c, tol)
                for j in remaining if j not in (i_prev, i, i_next)
            )
            if blocked:
                continue
            triangles.append([i_prev, i, i_next])
            remaining.pop(k)
            break
        else:
            # Only collinear vertices are left to clip
            for k in range(n):
                a = vertices[remaining[k - 1]]
                b = vertices[remaining[k]]
                c = vertices[remaining[(k + 1) % n]]
                if abs(_cross(a, b, c)) <= tol:
                    remaining.pop(k)
                    break
            else:
                raise DegenerateShape("Polygon could not be triangulated")

    if abs(_cross(*(vertices[i] for i in remaining))) > tol:
        triangles.append(remaining)
    return triangles


def _merge_pair(p: List[int], q: List[int], u: int, v: int) -> List[int]:
    """Merge two CCW parts sharing edge u->v in p (v->u in q)."""
    iv = p.index(v)
    p_rot = p[iv:] + p[:iv]          # v ... u
    iu = q.index(u)
    q_rot = q[iu:] + q[:iu]          # u ... v
    return p_rot + q_rot[1:-1]


def _shared_edge(p: List[int], q: List[int]) -> Optional[Tuple[int, int]]:
    q_edges = {(q[k], q[(k + 1) % len(q)]) for k in range(len(q))}
    for k in range(len(p)):
        u, v = p[k], p[(k + 1) % len(p)]
        if (v, u) in q_edges:
            return u, v
    return None


def convex_decomposition(vertices: np.ndarray) -> List[np.ndarray]:
    """
    Split a simple CCW polygon into convex parts.

    Ear clipping followed by a Hertel-Mehlhorn pass that removes every
    diagonal whose two neighbouring parts stay convex once joined.
    """
    if is_convex_polygon(vertices):
        return [vertices.copy()]

    parts = _ear_clip(vertices)
    merged = True
    while merged:
        merged = False
        for i in range(len(parts)):
            for j in range(i + 1, len(parts)):
                edge = _shared_edge(parts[i], parts[j])
                if edge is None:
                    continue
                candidate = _merge_pair(parts[i], parts[j], *edge)
                if is_convex_polygon(vertices[candidate]):
                    parts[i] = candidate
                    del parts[j]
                    merged = True
                    break
            if merged:
                break
    return [vertices[p].copy() for p in parts]


class Shape:
    """
    Closed polygon with counter-clockwise vertices.

    Construction validates the polygon and caches its area, centroid,
    bounding radius and convex decomposition.
    """

    __slots__ = ("name", "vertices", "parts", "part_normals",
                 "_area", "_centroid", "_radius")

    def __init__(self, vertices, name: str = "Polygon"):
        try:
            verts = as_points(vertices)
        except ValueError as e:
            raise DegenerateShape(str(e)) from e
        if len(verts) < 3:
            raise DegenerateShape(f"A shape needs at least 3 vertices, got {len(verts)}")
        if not np.all(np.isfinite(verts)):
            raise DegenerateShape("Vertex coordinates must be finite")

        edges = np.roll(verts, -1, axis=0) - verts
        if np.any(np.hypot(edges[:, 0], edges[:, 1]) <= EDGE_TOLERANCE):
            raise DegenerateShape("Shape has a zero-length edge")

        area = signed_area(verts)
        if area <= 0:
            raise DegenerateShape(
                f"Shape area must be positive with counter-clockwise winding, got {area:.6g}"
            )
        if not LinearRing(verts).is_simple:
            raise DegenerateShape("Shape edges intersect each other")

        self.name = name
        self.vertices = verts
        self.parts = convex_decomposition(verts)
        self.part_normals = [edge_normals(p) for p in self.parts]
        self._area = area
        self._centroid = self._compute_centroid(verts, area)
        self._radius = float(np.max(np.hypot(*(verts - self._centroid).T)))
        self._freeze()

    @staticmethod
    def _compute_centroid(verts: np.ndarray, area: float) -> np.ndarray:
        x, y = verts[:, 0], verts[:, 1]
        xn, yn = np.roll(x, -1), np.roll(y, -1)
        cross = x * yn - xn * y
        return np.array([np.sum((x + xn) * cross), np.sum((y + yn) * cross)]) / (6.0 * area)

    def _freeze(self):
        for arr in [self.vertices, self._centroid, *self.parts, *self.part_normals]:
            arr.flags.writeable = False

    @classmethod
    def from_radial(cls, name: str, radii: Sequence[float]) -> "Shape":
        """Polygon whose i-th vertex lies at radius radii[i], angle 2*pi*i/n."""
        n = len(radii)
        angles = 2.0 * np.pi * np.arange(n) / max(n, 1)
        r = np.asarray(radii, dtype=float)
        return cls(np.column_stack((r * np.cos(angles), r * np.sin(angles))), name=name)

    @classmethod
    def regular_polygon(cls, n_sides: int, radius: float = 1.0) -> "Shape":
        return cls.from_radial(f"Polygon{n_sides}", [radius] * n_sides)

    def area(self) -> float:
        return self._area

    def centroid(self) -> np.ndarray:
        return self._centroid

    def bounding_radius(self) -> float:
        return self._radius

    @property
    def is_convex(self) -> bool:
        return len(self.parts) == 1

    @property
    def num_vertices(self) -> int:
        return len(self.vertices)

    def rotational_symmetry(self) -> int:
        """Largest n for which rotating by 2*pi/n about the centroid maps the shape onto itself."""
        n = len(self.vertices)
        rel = self.vertices - self._centroid
        tol = 1e-9 * max(self._radius, 1.0)
        for order in range(n, 1, -1):
            if n % order:
                continue
            angle = 2.0 * math.pi / order
            c, s = math.cos(angle), math.sin(angle)
            rotated = rel @ np.array([[c, s], [-s, c]])
            if np.allclose(rotated, np.roll(rel, -(n // order), axis=0), atol=tol):
                return order
        return 1

    def transformed(self, transform: Transform) -> "Shape":
        """Copy of this shape with every vertex moved by `transform` (winding stays CCW)."""
        m = transform.matrix()
        t = transform.translation

        def place(points: np.ndarray) -> np.ndarray:
            moved = points @ m.T + t
            return moved[::-1] if transform.reflected else moved

        out = object.__new__(Shape)
        out.name = self.name
        out.vertices = place(self.vertices)
        out.parts = [place(p) for p in self.parts]
        out.part_normals = [n @ m.T for n in self.part_normals]
        out._area = self._area
        out._centroid = m @ self._centroid + t
        out._radius = self._radius
        out._freeze()
        return out

    def to_polygon(self) -> Polygon:
        return Polygon(self.vertices)

    def convex_hull(self) -> "Shape":
        """Convex hull of this shape, usable as a convex approximation."""
        hull = orient(self.to_polygon().convex_hull, sign=1.0)
        return Shape(list(hull.exterior.coords)[:-1], name=f"{self.name}Hull")

    def __len__(self) -> int:
        return len(self.vertices)

    def __repr__(self) -> str:
        return f"Shape(name={self.name!r}, vertices={len(self.vertices)}, area={self._area:.6g})"


@dataclass(frozen=True)
class ShapeInstance:
    """
    A shape placed by a transform.

    Asymmetric-unit instances keep their translation in fractional cell
    coordinates; periodic images produced by a wallpaper group carry a
    Cartesian transform and the `index` of the image they represent.
    """
    shape: Shape
    transform: Transform = field(default_factory=Transform)
    index: Optional[tuple] = None

    @cached_property
    def polygon(self) -> Shape:
        """Shape with the transform applied (meaningful for Cartesian placements)."""
        return self.shape.transformed(self.transform)

    @property
    def position(self) -> Tuple[float, float]:
        return (self.transform.tx, self.transform.ty)

    @property
    def angle(self) -> float:
        return self.transform.angle

    @property
    def reflected(self) -> bool:
        return self.transform.reflected
