"""
intersection.py - Exact overlap test between placed shapes

Separating-axis test on convex parts, preceded by a bounding-circle filter.
Shapes that only touch (projections overlapping by no more than EPSILON on
some axis) do not count as overlapping.
"""
from typing import Union

import numpy as np

from .shape import Shape, ShapeInstance

# Minimum interval overlap, in length units, that counts as a real overlap
EPSILON = 1e-9

ShapeLike = Union[Shape, ShapeInstance]


def _as_shape(item: ShapeLike) -> Shape:
    return item.polygon if isinstance(item, ShapeInstance) else item


def convex_intersects(
    verts_a: np.ndarray,
    normals_a: np.ndarray,
    verts_b: np.ndarray,
    normals_b: np.ndarray,
    eps: float = EPSILON
) -> bool:
    """
    Separating-axis test for two convex polygons.

    Every edge normal of either polygon is a candidate axis. The polygons
    overlap only if their projections overlap by more than `eps` on all of
    them.
    """
    axes = np.vstack((normals_a, normals_b))
    proj_a = verts_a @ axes.T
    proj_b = verts_b @ axes.T
    gap_ab = proj_b.min(axis=0) - proj_a.max(axis=0)
    gap_ba = proj_a.min(axis=0) - proj_b.max(axis=0)
    return not bool(np.any((gap_ab >= -eps) | (gap_ba >= -eps)))


def within_reach(a: Shape, b: Shape) -> bool:
    """Bounding-circle filter: False when the centroids are too far apart to overlap."""
    reach = a.bounding_radius() + b.bounding_radius()
    delta = a.centroid() - b.centroid()
    return float(delta @ delta) <= reach * reach


def intersects(a: ShapeLike, b: ShapeLike, eps: float = EPSILON) -> bool:
    """True when the two placed shapes share a region of positive area."""
    shape_a, shape_b = _as_shape(a), _as_shape(b)
    if not within_reach(shape_a, shape_b):
        return False
    for verts_a, normals_a in zip(shape_a.parts, shape_a.part_normals):
        for verts_b, normals_b in zip(shape_b.parts, shape_b.part_normals):
            if convex_intersects(verts_a, normals_a, verts_b, normals_b, eps):
                return True
    return False
