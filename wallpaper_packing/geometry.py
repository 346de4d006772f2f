"""
geometry.py - 2-D points and rigid transforms

A Transform is an isometry of the plane stored as (angle, translation,
reflected). Points are mirrored across the x axis first when `reflected`
is set, then rotated counter-clockwise by `angle`, then translated.
"""
import math
from dataclasses import dataclass, InitVar
from typing import Tuple, Sequence, Union

import numpy as np

from .errors import InvalidTransform

Point = Tuple[float, float]
PointLike = Union[Point, Sequence[float], np.ndarray]

# Tolerance used when recognising an orthogonal matrix
ISOMETRY_TOLERANCE = 1e-8

TWO_PI = 2.0 * math.pi


def rotation_matrix(angle: float) -> np.ndarray:
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[c, -s], [s, c]])


def wrap_angle(angle: float) -> float:
    """Map an angle onto [0, 2*pi)."""
    wrapped = math.fmod(angle, TWO_PI)
    if wrapped < 0:
        wrapped += TWO_PI
    return wrapped


def as_points(points) -> np.ndarray:
    """Coerce a vertex list into a float (n, 2) array."""
    arr = np.array(points, dtype=float)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError(f"Expected an (n, 2) array of points, got shape {arr.shape}")
    return arr


@dataclass(frozen=True)
class Transform:
    angle: float = 0.0
    tx: float = 0.0
    ty: float = 0.0
    reflected: bool = False
    scale: InitVar[float] = 1.0

    def __post_init__(self, scale: float):
        if scale != 1.0:
            raise InvalidTransform(f"Scale factor {scale} requested; only isometries are allowed")
        if not (math.isfinite(self.angle) and math.isfinite(self.tx) and math.isfinite(self.ty)):
            raise InvalidTransform(
                f"Non-finite transform parameters: angle={self.angle}, t=({self.tx}, {self.ty})"
            )

    @classmethod
    def identity(cls) -> "Transform":
        return cls()

    @classmethod
    def from_matrix(cls, matrix, translation: PointLike = (0.0, 0.0)) -> "Transform":
        """
        Build a transform from a 2x2 linear part and a translation.

        Raises InvalidTransform when the linear part scales or shears.
        """
        m = np.asarray(matrix, dtype=float)
        if m.shape != (2, 2) or not np.all(np.isfinite(m)):
            raise InvalidTransform(f"Linear part must be a finite 2x2 matrix, got {m!r}")
        if not np.allclose(m.T @ m, np.eye(2), atol=ISOMETRY_TOLERANCE):
            raise InvalidTransform(f"Matrix is not orthogonal (det={np.linalg.det(m):.6g})")
        reflected = bool(np.linalg.det(m) < 0)
        angle = wrap_angle(math.atan2(m[1, 0], m[0, 0]))
        tx, ty = (float(v) for v in translation)
        return cls(angle=angle, tx=tx, ty=ty, reflected=reflected)

    @property
    def translation(self) -> np.ndarray:
        return np.array([self.tx, self.ty])

    def matrix(self) -> np.ndarray:
        """Linear part R(angle) @ diag(1, -1 if reflected)."""
        m = rotation_matrix(self.angle)
        if self.reflected:
            m[:, 1] = -m[:, 1]
        return m

    def apply(self, point: PointLike) -> np.ndarray:
        return self.matrix() @ np.asarray(point, dtype=float) + self.translation

    def apply_points(self, points) -> np.ndarray:
        return as_points(points) @ self.matrix().T + self.translation

    def rotate(self, vector: PointLike) -> np.ndarray:
        """Apply only the linear part (for direction vectors)."""
        return self.matrix() @ np.asarray(vector, dtype=float)

    def compose(self, other: "Transform") -> "Transform":
        """Transform equivalent to applying `other` first and then `self`."""
        m = self.matrix()
        return Transform.from_matrix(m @ other.matrix(), m @ other.translation + self.translation)

    __matmul__ = compose

    def inverse(self) -> "Transform":
        mt = self.matrix().T
        return Transform.from_matrix(mt, -(mt @ self.translation))

