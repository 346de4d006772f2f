"""
wallpaper.py - The 17 plane symmetry groups

Each group carries its full table of general-position operations written in
the International Tables notation (e.g. "-y,x-y" or "-x+1/2,y+1/2") and
parsed once at import. Operations act on fractional cell coordinates; the
cell converts them to Cartesian isometries. Centred groups list their
centring translations explicitly, so `order` is always the number of copies
of one asymmetric-unit instance inside the conventional cell.
"""
import re
import itertools
from dataclasses import dataclass
from enum import Enum
from fractions import Fraction
from typing import Dict, Iterator, List, NamedTuple, Tuple

import numpy as np

from .errors import UnknownWallpaperGroup
from .geometry import Transform
from .shape import ShapeInstance

_TERM = re.compile(r"([+-]?)\s*(x|y|\d+(?:/\d+)?)")


class LatticeFamily(Enum):
    OBLIQUE = "oblique"
    RECTANGULAR = "rectangular"
    SQUARE = "square"
    HEXAGONAL = "hexagonal"


@dataclass(frozen=True, eq=False)
class SymmetryOperation:
    """Affine map x -> W x + w in fractional coordinates."""
    code: str
    matrix: np.ndarray
    translation: np.ndarray

    @classmethod
    def parse(cls, code: str) -> "SymmetryOperation":
        """
        Parse an operation such as "(-x+1/2, y)".

        Each comma-separated component is a signed sum of x, y and at most
        one rational constant.
        """
        components = [c.strip() for c in code.strip().strip("()").split(",")]
        if len(components) != 2:
            raise ValueError(f"Symmetry operation needs two components: {code!r}")

        matrix = np.zeros((2, 2))
        translation = np.zeros(2)
        for row, component in enumerate(components):
            compact = component.replace(" ", "")
            if not compact or _TERM.sub("", compact):
                raise ValueError(f"Cannot parse component {component!r} of {code!r}")
            for sign, term in _TERM.findall(compact):
                value = -1.0 if sign == "-" else 1.0
                if term == "x":
                    matrix[row, 0] += value
                elif term == "y":
                    matrix[row, 1] += value
                else:
                    translation[row] += value * float(Fraction(term))
        if abs(round(np.linalg.det(matrix))) != 1:
            raise ValueError(f"Operation {code!r} is not invertible over the lattice")

        matrix.flags.writeable = False
        translation.flags.writeable = False
        return cls(code=code, matrix=matrix, translation=translation)

    def apply(self, position) -> np.ndarray:
        return self.matrix @ np.asarray(position, dtype=float) + self.translation

    @property
    def is_identity(self) -> bool:
        return bool(np.array_equal(self.matrix, np.eye(2)) and not np.any(self.translation))

    def __str__(self) -> str:
        return self.code


class ImageIndex(NamedTuple):
    """Identifies one periodic image: symmetry operation and lattice offset."""
    operation: int
    offset: Tuple[int, int]


_P3 = ("x,y", "-y,x-y", "-x+y,-x")
_P6 = _P3 + ("-x,-y", "y,-x+y", "x-y,x")
_P2MM = ("x,y", "-x,-y", "-x,y", "x,-y")
_P4 = ("x,y", "-x,-y", "-y,x", "y,-x")


def _centred(ops: Tuple[str, ...]) -> Tuple[str, ...]:
    shifted = []
    for op in ops:
        x, y = op.split(",")
        shifted.append(f"{x}+1/2,{y}+1/2")
    return ops + tuple(shifted)


class WallpaperGroup(Enum):
    """
    Closed set of the 17 wallpaper groups, named in full Hermann-Mauguin form.

    Value: (family, centred, operation strings). The identity is always the
    first operation.
    """
    p1 = (LatticeFamily.OBLIQUE, False, ("x,y",))
    p2 = (LatticeFamily.OBLIQUE, False, ("x,y", "-x,-y"))
    p1m1 = (LatticeFamily.RECTANGULAR, False, ("x,y", "-x,y"))
    p1g1 = (LatticeFamily.RECTANGULAR, False, ("x,y", "-x,y+1/2"))
    c1m1 = (LatticeFamily.RECTANGULAR, True, _centred(("x,y", "-x,y")))
    p2mm = (LatticeFamily.RECTANGULAR, False, _P2MM)
    p2mg = (LatticeFamily.RECTANGULAR, False, ("x,y", "-x,-y", "-x+1/2,y", "x+1/2,-y"))
    p2gg = (LatticeFamily.RECTANGULAR, False, ("x,y", "-x,-y", "-x+1/2,y+1/2", "x+1/2,-y+1/2"))
    c2mm = (LatticeFamily.RECTANGULAR, True, _centred(_P2MM))
    p4 = (LatticeFamily.SQUARE, False, _P4)
    p4mm = (LatticeFamily.SQUARE, False, _P4 + ("-x,y", "x,-y", "y,x", "-y,-x"))
    p4gm = (LatticeFamily.SQUARE, False, _P4 + (
        "-x+1/2,y+1/2", "x+1/2,-y+1/2", "y+1/2,x+1/2", "-y+1/2,-x+1/2"))
    p3 = (LatticeFamily.HEXAGONAL, False, _P3)
    p3m1 = (LatticeFamily.HEXAGONAL, False, _P3 + ("-y,-x", "-x+y,y", "x,x-y"))
    p31m = (LatticeFamily.HEXAGONAL, False, _P3 + ("y,x", "x-y,-y", "-x,-x+y"))
    p6 = (LatticeFamily.HEXAGONAL, False, _P6)
    p6mm = (LatticeFamily.HEXAGONAL, False, _P6 + (
        "-y,-x", "-x+y,y", "x,x-y", "y,x", "x-y,-y", "-x,-x+y"))

    def __init__(self, family: LatticeFamily, centred: bool, operation_codes: Tuple[str, ...]):
        self.family = family
        self.centred = centred
        self.operation_codes = operation_codes

    @property
    def operations(self) -> Tuple[SymmetryOperation, ...]:
        return _OPERATION_TABLES[self]

    def order(self) -> int:
        """Number of symmetry-equivalent copies per asymmetric-unit instance."""
        return len(self.operation_codes)

    @property
    def lattice_type(self) -> str:
        return "centred" if self.centred else "primitive"

    def generate_images(self, instance: ShapeInstance, cell, neighbour_shell: int) -> "ImageSequence":
        """All copies of `instance` under every operation and every offset |i|, |j| <= shell."""
        return ImageSequence(self, instance, cell, neighbour_shell)

    def __str__(self) -> str:
        return self.name


_OPERATION_TABLES: Dict[WallpaperGroup, Tuple[SymmetryOperation, ...]] = {
    group: tuple(SymmetryOperation.parse(code) for code in group.operation_codes)
    for group in WallpaperGroup
}

ALIASES = {
    "pm": WallpaperGroup.p1m1,
    "pg": WallpaperGroup.p1g1,
    "cm": WallpaperGroup.c1m1,
    "pmm": WallpaperGroup.p2mm,
    "pmg": WallpaperGroup.p2mg,
    "pgg": WallpaperGroup.p2gg,
    "cmm": WallpaperGroup.c2mm,
    "p4m": WallpaperGroup.p4mm,
    "p4g": WallpaperGroup.p4gm,
    "p6m": WallpaperGroup.p6mm,
}


def group_names() -> List[str]:
    return [g.name for g in WallpaperGroup]


def get_wallpaper_group(name) -> WallpaperGroup:
    """Look up a group by full or short name (case-sensitive, e.g. 'p2mg' or 'pmg')."""
    if isinstance(name, WallpaperGroup):
        return name
    key = str(name).strip()
    if key in WallpaperGroup.__members__:
        return WallpaperGroup[key]
    if key in ALIASES:
        return ALIASES[key]
    raise UnknownWallpaperGroup(
        f"Unknown wallpaper group {name!r}; expected one of {', '.join(group_names())}"
    )


def lattice_offsets(shell: int) -> Iterator[Tuple[int, int]]:
    """Integer offsets (i, j) with |i|, |j| <= shell, starting with (0, 0)."""
    yield (0, 0)
    for i, j in itertools.product(range(-shell, shell + 1), repeat=2):
        if (i, j) != (0, 0):
            yield (i, j)


class ImageSequence:
    """
    Lazily generated periodic images of one instance.

    Iterating again restarts the sequence; nothing is stored beyond the
    per-operation Cartesian transforms computed at the start of a pass.
    Images are yielded operation by operation, offset (0, 0) first, so the
    very first image is always the instance itself.
    """

    def __init__(self, group: WallpaperGroup, instance: ShapeInstance, cell, shell: int):
        if shell < 0:
            raise ValueError(f"Neighbour shell must be non-negative, got {shell}")
        self.group = group
        self.instance = instance
        self.cell = cell
        self.shell = int(shell)

    def __len__(self) -> int:
        return self.group.order() * (2 * self.shell + 1) ** 2

    def central(self) -> List[ShapeInstance]:
        """Images at lattice offset (0, 0) only, one per operation."""
        return [image for image in self._iterate(offsets=[(0, 0)])]

    def __iter__(self) -> Iterator[ShapeInstance]:
        return self._iterate(offsets=list(lattice_offsets(self.shell)))

    def _iterate(self, offsets) -> Iterator[ShapeInstance]:
        lattice = self.cell.lattice_matrix()
        position = np.array([self.instance.transform.tx, self.instance.transform.ty])
        orientation = self.instance.transform.matrix()
        for k, op in enumerate(self.group.operations):
            linear = self.cell.cartesian_transform(op).matrix() @ orientation
            frac = op.apply(position)
            frac = frac - np.floor(frac)
            for offset in offsets:
                cart = lattice @ (frac + offset)
                yield ShapeInstance(
                    self.instance.shape,
                    Transform.from_matrix(linear, cart),
                    index=ImageIndex(k, offset),
                )
