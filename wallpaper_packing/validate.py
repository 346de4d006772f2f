"""
validate.py - Validation and reporting utilities
"""
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .optimize import OptimizationResult
from .state import Overlap, PackingState


@dataclass
class ValidationResult:
    valid: bool
    group: str
    n_instances: int
    total_shapes: int
    packing_fraction: float
    neighbour_shell: int
    overlaps: List[Overlap] = field(default_factory=list)
    error_message: Optional[str] = None


def validate_state(state: PackingState) -> ValidationResult:
    """Check a state for overlaps, non-finite values and an impossible density."""
    fraction = state.packing_fraction()
    errors = []

    if not state.is_finite():
        errors.append("non-finite parameters")
    overlaps = state.find_overlaps()
    if overlaps:
        errors.append(f"{len(overlaps)} overlap(s)")
    if not overlaps and not 0 < fraction <= 1 + 1e-9:
        errors.append(f"packing fraction {fraction:.6f} outside (0, 1]")

    return ValidationResult(
        valid=not errors,
        group=state.group.name,
        n_instances=len(state.instances),
        total_shapes=state.total_shapes(),
        packing_fraction=fraction,
        neighbour_shell=state.effective_shell(),
        overlaps=overlaps,
        error_message="; ".join(errors) if errors else None,
    )


def print_result_summary(result: OptimizationResult):
    """Print detailed run summary."""
    stats = result.statistics
    state = result.state
    a, b, gamma = state.cell.parameters()

    print("=" * 60)
    print("PACKING SUMMARY")
    print("=" * 60)
    print(f"Group: {state.group.name} (order {state.group.order()}, {state.group.lattice_type})")
    print(f"Cell: a={a:.6f} b={b:.6f} gamma={math.degrees(gamma):.4f} deg")
    print(f"Packing fraction: {result.packing_fraction:.6f}")
    print(f"Initial fraction: {stats.initial_fraction:.6f}")
    print()
    print(f"Iterations: {stats.iterations} ({stats.termination_reason})")
    print(f"Accepted: {stats.accepted}  Rejected: {stats.rejected} "
          f"(invalid proposals: {stats.invalid_proposals})")
    print(f"Acceptance ratio: {stats.acceptance_ratio:.3f}")
    print(f"Elapsed: {stats.elapsed:.1f}s")
    print()
    print("Instances (fractional x, y, angle deg, reflected):")
    for i, inst in enumerate(state.instances):
        print(f"  {i:3d}: {inst.transform.tx:.6f} {inst.transform.ty:.6f} "
              f"{math.degrees(inst.angle):.4f} {inst.reflected}")
    print("=" * 60)


def print_runs_summary(results: Sequence[OptimizationResult]):
    """One line per run, best first."""
    ranked = sorted(results, key=lambda r: r.packing_fraction, reverse=True)
    print(f"{len(ranked)} run(s):")
    for r in ranked:
        print(f"  run {r.statistics.run_index:3d}: fraction={r.packing_fraction:.6f} "
              f"iterations={r.statistics.iterations} ({r.statistics.termination_reason})")
