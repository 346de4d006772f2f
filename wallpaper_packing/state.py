"""
state.py - A periodic packing: unit cell + asymmetric unit + wallpaper group

Instance translations are fractional cell coordinates, so changing the cell
moves every shape with it. Periodic copies are never stored; they are
generated from the asymmetric unit whenever a check needs them.
"""
import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .cell import UnitCell
from .errors import OverlapDetectedDuringInit
from .geometry import Transform, TWO_PI
from .intersection import intersects
from .shape import Shape, ShapeInstance
from .wallpaper import ImageIndex, ImageSequence, WallpaperGroup, get_wallpaper_group

logger = logging.getLogger(__name__)

Overlap = Tuple[int, int, ImageIndex]

# R2 low-discrepancy sequence used for deterministic starting positions
_R2_X = 0.7548776662466927
_R2_Y = 0.5698402909980532


class PackingState:
    """
    Unit cell, ordered asymmetric-unit instances and a wallpaper group.

    `neighbour_shell` is the smallest range of lattice offsets considered by
    the overlap check. The shell derived from the shapes' bounding radii is
    used whenever it is larger, or when `neighbour_shell` is None.
    """

    def __init__(
        self,
        cell: UnitCell,
        instances: Sequence[ShapeInstance],
        group,
        neighbour_shell: Optional[int] = None
    ):
        self.group: WallpaperGroup = get_wallpaper_group(group)
        if cell.family != self.group.family:
            cell = UnitCell(cell.a, cell.b, cell.gamma, self.group.family)
        if neighbour_shell is not None and neighbour_shell < 0:
            raise ValueError(f"Neighbour shell must be non-negative, got {neighbour_shell}")
        self.cell = cell
        self.instances: List[ShapeInstance] = list(instances)
        self.neighbour_shell = neighbour_shell

    # Density

    def total_shapes(self) -> int:
        return len(self.instances) * self.group.order()

    def occupied_area(self) -> float:
        return sum(inst.shape.area() for inst in self.instances) * self.group.order()

    def packing_fraction(self) -> float:
        return self.occupied_area() / self.cell.area()

    # Periodic images

    def required_shell(self) -> int:
        """Neighbour shell guaranteed to contain every image that could touch the unit."""
        if not self.instances:
            return 0
        reach = max(
            inst.shape.bounding_radius() + float(np.hypot(*inst.shape.centroid()))
            for inst in self.instances
        )
        return self.cell.shell_for_distance(2.0 * reach)

    def effective_shell(self) -> int:
        """Configured shell, raised to the required shell when the cell is too small for it."""
        required = self.required_shell()
        if self.neighbour_shell is not None:
            return max(self.neighbour_shell, required)
        return required

    def images(self, index: int, shell: Optional[int] = None) -> ImageSequence:
        if shell is None:
            shell = self.effective_shell()
        return self.group.generate_images(self.instances[index], self.cell, shell)

    def cartesian_instances(self) -> List[ShapeInstance]:
        """Every shape of the central cell, placed in Cartesian coordinates."""
        placed = []
        for i in range(len(self.instances)):
            placed.extend(self.images(i, shell=0))
        return placed

    def _pairs(self):
        """
        Yield (i, j, reference, image) for every pair that must be disjoint.

        Any overlapping pair of copies can be mapped by a group element onto
        a pair that contains an untransformed instance, and the pair (i, g.j)
        is equivalent to (j, g^-1.i), so only j >= i needs checking.
        """
        shell = self.effective_shell()
        references = [next(iter(self.images(i, shell=0))) for i in range(len(self.instances))]
        for i, reference in enumerate(references):
            for j in range(i, len(self.instances)):
                for image in self.images(j, shell):
                    if j == i and image.index == (0, (0, 0)):
                        continue
                    yield i, j, reference, image

    def is_valid(self) -> bool:
        """True when no two generated copies overlap."""
        for _, _, reference, image in self._pairs():
            if intersects(reference, image):
                return False
        return True

    def find_overlaps(self) -> List[Overlap]:
        """All overlapping pairs as (instance, other instance, image index of the other)."""
        return [
            (i, j, image.index)
            for i, j, reference, image in self._pairs()
            if intersects(reference, image)
        ]

    def is_finite(self) -> bool:
        values = list(self.cell.parameters())
        for inst in self.instances:
            values.extend((inst.transform.tx, inst.transform.ty, inst.transform.angle))
        return all(math.isfinite(v) for v in values) and math.isfinite(self.packing_fraction())

    # Mutation

    def set_instance(self, index: int, x: float, y: float, angle: float):
        """Move an instance to fractional (x, y) with orientation `angle`, keeping its reflection."""
        inst = self.instances[index]
        transform = Transform(
            angle=angle % TWO_PI,
            tx=x - math.floor(x),
            ty=y - math.floor(y),
            reflected=inst.transform.reflected,
        )
        self.instances[index] = ShapeInstance(inst.shape, transform)

    def clone_best(self) -> "PackingState":
        """
        Independent copy for checkpointing.

        Cells, shapes and instances are immutable values, so copying the
        instance list detaches the clone from any later mutation.
        """
        return PackingState(self.cell, list(self.instances), self.group, self.neighbour_shell)

    # Serialisation

    def to_dict(self) -> Dict[str, Any]:
        shapes: List[Shape] = []
        shape_ids: Dict[int, int] = {}
        for inst in self.instances:
            if id(inst.shape) not in shape_ids:
                shape_ids[id(inst.shape)] = len(shapes)
                shapes.append(inst.shape)

        return {
            "group": self.group.name,
            "cell": {
                "a": self.cell.a,
                "b": self.cell.b,
                "gamma": self.cell.gamma,
                "family": self.cell.family.value,
            },
            "neighbour_shell": self.neighbour_shell,
            "shapes": [
                {"name": s.name, "vertices": s.vertices.tolist()} for s in shapes
            ],
            "instances": [
                {
                    "shape": shape_ids[id(inst.shape)],
                    "x": inst.transform.tx,
                    "y": inst.transform.ty,
                    "angle": inst.transform.angle,
                    "reflected": inst.transform.reflected,
                }
                for inst in self.instances
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PackingState":
        group = get_wallpaper_group(data["group"])
        cell_data = data["cell"]
        cell = UnitCell(
            float(cell_data["a"]), float(cell_data["b"]), float(cell_data["gamma"]), group.family
        )
        shapes = [Shape(s["vertices"], name=s.get("name", "Polygon")) for s in data["shapes"]]
        instances = [
            ShapeInstance(
                shapes[int(item.get("shape", 0))],
                Transform(
                    angle=float(item["angle"]),
                    tx=float(item["x"]),
                    ty=float(item["y"]),
                    reflected=bool(item.get("reflected", False)),
                ),
            )
            for item in data["instances"]
        ]
        return cls(cell, instances, group, data.get("neighbour_shell"))

    # Construction of starting configurations

    @classmethod
    def from_group(
        cls,
        shape: Shape,
        group,
        num_instances: int = 1,
        neighbour_shell: Optional[int] = None,
        max_attempts: int = 12
    ) -> "PackingState":
        """
        Deterministic, overlap-free starting state.

        The cell side starts at 4 * radius * (number of shapes in the cell)
        and instances sit on a low-discrepancy sequence of fractional
        positions; the cell is doubled until the state is valid.
        """
        group = get_wallpaper_group(group)
        length = 4.0 * _reach(shape) * num_instances * group.order()
        instances = [
            ShapeInstance(shape, Transform(
                tx=(0.5 + (k + 1) * _R2_X) % 1.0,
                ty=(0.5 + (k + 1) * _R2_Y) % 1.0,
            ))
            for k in range(num_instances)
        ]
        return cls._grow_until_valid(shape, group, instances, length, neighbour_shell, max_attempts)

    @classmethod
    def random(
        cls,
        shape: Shape,
        group,
        num_instances: int,
        rng: np.random.Generator,
        neighbour_shell: Optional[int] = None,
        max_attempts: int = 12
    ) -> "PackingState":
        """Random positions and orientations in a cell grown until nothing overlaps."""
        group = get_wallpaper_group(group)
        length = 2.0 * _reach(shape) * math.sqrt(num_instances * group.order())
        angle_range = TWO_PI / shape.rotational_symmetry()
        instances = [
            ShapeInstance(shape, Transform(
                angle=float(rng.uniform(0.0, angle_range)),
                tx=float(rng.random()),
                ty=float(rng.random()),
            ))
            for _ in range(num_instances)
        ]
        return cls._grow_until_valid(shape, group, instances, length, neighbour_shell, max_attempts)

    @classmethod
    def _grow_until_valid(cls, shape, group, instances, length, neighbour_shell, max_attempts):
        state = None
        for attempt in range(max_attempts):
            state = cls(UnitCell.for_group(group, length), instances, group, neighbour_shell)
            if state.is_valid():
                logger.debug("Initial %s cell side %.4f valid after %d attempt(s)",
                             group.name, length, attempt + 1)
                return state
            length *= 2.0
        raise OverlapDetectedDuringInit(
            f"Could not find an overlap-free {group.name} start for {shape.name} "
            f"after {max_attempts} attempts",
            overlaps=state.find_overlaps() if state is not None else [],
        )

    def summary(self) -> str:
        return (f"{self.group.name}: {len(self.instances)} instance(s) x {self.group.order()} "
                f"ops, {self.cell}, packing fraction {self.packing_fraction():.6f}")

    def __repr__(self) -> str:
        return f"PackingState({self.summary()})"


def _reach(shape: Shape) -> float:
    """Distance from the shape's local origin to its furthest vertex."""
    return float(np.max(np.hypot(shape.vertices[:, 0], shape.vertices[:, 1])))
