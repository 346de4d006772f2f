"""
cell.py - Parametrised unit cell of a 2-D lattice

Basis vectors are a1 = (a, 0) and a2 = (b cos(gamma), b sin(gamma)). The
lattice family fixes which of (a, b, gamma) may vary: square and hexagonal
cells tie b to a, and only oblique cells have a free angle.
"""
import math
from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np

from .errors import DegenerateCell
from .geometry import Transform, PointLike
from .wallpaper import LatticeFamily, SymmetryOperation

# Range the cell angle may explore during optimisation
CELL_ANGLE_BOUNDS = (math.pi / 4, 3 * math.pi / 4)

FAMILY_ANGLES: Dict[LatticeFamily, float] = {
    LatticeFamily.RECTANGULAR: math.pi / 2,
    LatticeFamily.SQUARE: math.pi / 2,
    LatticeFamily.HEXAGONAL: 2 * math.pi / 3,
}

FAMILY_PARAMETERS: Dict[LatticeFamily, Tuple[str, ...]] = {
    LatticeFamily.OBLIQUE: ("a", "b", "gamma"),
    LatticeFamily.RECTANGULAR: ("a", "b"),
    LatticeFamily.SQUARE: ("a",),
    LatticeFamily.HEXAGONAL: ("a",),
}

_TOLERANCE = 1e-9


@dataclass(frozen=True)
class UnitCell:
    a: float
    b: float
    gamma: float
    family: LatticeFamily = LatticeFamily.OBLIQUE

    def __post_init__(self):
        for label, value in (("a", self.a), ("b", self.b), ("gamma", self.gamma)):
            if not math.isfinite(value):
                raise DegenerateCell(f"Cell parameter {label} must be finite, got {value}")
        if self.a <= 0 or self.b <= 0:
            raise DegenerateCell(f"Cell lengths must be positive, got a={self.a}, b={self.b}")
        if not 0 < self.gamma < math.pi:
            raise DegenerateCell(f"Cell angle must lie in (0, pi), got {self.gamma}")

        expected = FAMILY_ANGLES.get(self.family)
        if expected is not None and abs(self.gamma - expected) > _TOLERANCE:
            raise DegenerateCell(
                f"A {self.family.value} cell needs gamma={expected:.6f}, got {self.gamma:.6f}"
            )
        if self.family in (LatticeFamily.SQUARE, LatticeFamily.HEXAGONAL):
            if abs(self.a - self.b) > _TOLERANCE * max(self.a, self.b):
                raise DegenerateCell(f"A {self.family.value} cell needs a == b, got {self.a} and {self.b}")

    @classmethod
    def from_family(cls, family: LatticeFamily, length: float) -> "UnitCell":
        """Cell with both sides `length`, angle fixed by the family (90 degrees when free)."""
        gamma = FAMILY_ANGLES.get(family, math.pi / 2)
        return cls(length, length, gamma, family)

    @classmethod
    def for_group(cls, group, length: float) -> "UnitCell":
        return cls.from_family(group.family, length)

    def parameters(self) -> Tuple[float, float, float]:
        return (self.a, self.b, self.gamma)

    def degrees_of_freedom(self) -> List[str]:
        """Names of the parameters that may change without breaking the family."""
        return list(FAMILY_PARAMETERS[self.family])

    def with_parameter(self, name: str, value: float) -> "UnitCell":
        """New cell with one parameter replaced; tied lengths move together."""
        if name not in FAMILY_PARAMETERS[self.family]:
            raise ValueError(f"Parameter {name!r} is fixed for a {self.family.value} cell")
        if name == "a":
            tied = self.family in (LatticeFamily.SQUARE, LatticeFamily.HEXAGONAL)
            return UnitCell(value, value if tied else self.b, self.gamma, self.family)
        if name == "b":
            return UnitCell(self.a, value, self.gamma, self.family)
        return UnitCell(self.a, self.b, value, self.family)

    def scaled(self, factor: float) -> "UnitCell":
        return UnitCell(self.a * factor, self.b * factor, self.gamma, self.family)

    def area(self) -> float:
        return self.a * self.b * math.sin(self.gamma)

    def lattice_matrix(self) -> np.ndarray:
        """Columns are the basis vectors a1 and a2."""
        return np.array([
            [self.a, self.b * math.cos(self.gamma)],
            [0.0, self.b * math.sin(self.gamma)],
        ])

    def to_cartesian(self, fractional: PointLike) -> np.ndarray:
        return self.lattice_matrix() @ np.asarray(fractional, dtype=float)

    def to_fractional(self, point: PointLike) -> np.ndarray:
        return np.linalg.solve(self.lattice_matrix(), np.asarray(point, dtype=float))

    def cartesian_transform(self, operation: SymmetryOperation) -> Transform:
        """
        Express a fractional symmetry operation as a Cartesian isometry.

        Raises InvalidTransform when the cell metric does not admit the
        operation (e.g. a 4-fold rotation in a cell with a != b).
        """
        lattice = self.lattice_matrix()
        linear = lattice @ operation.matrix @ np.linalg.inv(lattice)
        return Transform.from_matrix(linear, lattice @ operation.translation)

    def shell_for_distance(self, distance: float) -> int:
        """
        Smallest neighbour shell containing every image whose reference
        point lies within `distance` of some point of the central cell.
        """
        inverse = np.linalg.inv(self.lattice_matrix())
        reach = distance * float(np.max(np.hypot(inverse[:, 0], inverse[:, 1])))
        return int(math.ceil(reach)) + 1

    def __str__(self) -> str:
        return (f"UnitCell(a={self.a:.6f}, b={self.b:.6f}, "
                f"gamma={math.degrees(self.gamma):.4f} deg, {self.family.value})")
