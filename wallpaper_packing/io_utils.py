"""
io_utils.py - File I/O utilities for packing results
Handles the JSON result format and a CSV of Cartesian positions
"""
import json
import math
import os
from typing import Any, Dict, Optional

from .optimize import OptimizationResult
from .shape import Shape
from .state import PackingState


def get_output_path(filename: str = "packing.json", directory: Optional[str] = None) -> str:
    """Output path inside `directory` (created if missing) or the working directory."""
    if directory:
        os.makedirs(directory, exist_ok=True)
        return os.path.join(directory, filename)
    return filename


def parse_vertices(text: str) -> Shape:
    """
    Parse a vertex list such as "0,0 1,0 1,1 0,1" into a Shape.

    Pairs are separated by whitespace or ';', coordinates by ','.
    """
    pairs = [p for p in text.replace(";", " ").split() if p]
    vertices = []
    for pair in pairs:
        parts = pair.split(",")
        if len(parts) != 2:
            raise ValueError(f"Invalid vertex {pair!r}; expected 'x,y'")
        vertices.append((float(parts[0]), float(parts[1])))
    return Shape(vertices, name="Custom")


def save_result(result: OptimizationResult, path: str) -> str:
    with open(path, "w") as f:
        json.dump(result.to_dict(), f, indent=2)
    return path


def load_result_data(path: str) -> Dict[str, Any]:
    with open(path, "r") as f:
        return json.load(f)


def load_state(path: str) -> PackingState:
    """Read a state written by save_result (or a bare PackingState.to_dict dump)."""
    data = load_result_data(path)
    return PackingState.from_dict(data.get("state", data))


def write_positions_csv(state: PackingState, path: str, decimals: int = 6) -> str:
    """
    Write every shape of the central cell in Cartesian coordinates.

    Format:
    - Comment line with the cell parameters: # a,b,gamma
    - Header: instance,operation,x,y,angle,reflected
    - Angles in degrees
    """
    a, b, gamma = state.cell.parameters()
    with open(path, "w") as f:
        f.write(f"# {a:.{decimals}f},{b:.{decimals}f},{gamma:.{decimals}f}\n")
        f.write("instance,operation,x,y,angle,reflected\n")
        for i in range(len(state.instances)):
            for image in state.images(i, shell=0):
                t = image.transform
                f.write(f"{i},{image.index.operation},"
                        f"{t.tx:.{decimals}f},{t.ty:.{decimals}f},"
                        f"{math.degrees(t.angle):.{decimals}f},{int(t.reflected)}\n")
    return path
