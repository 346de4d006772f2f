#!/usr/bin/env python3
"""
run.py - Main entry point for the wallpaper packing optimizer

Usage:
    python run.py p2 [--mode quick|standard|aggressive|maximum] [--seed 42]
    python run.py p2gg --num-sides 5 --runs 8 --workers 4
    python run.py p1 --vertices "0,0 2,0 2,1 1,1 1,2 0,2"

Modes:
    quick:      1 run, 1000 steps
    standard:   4 runs, 5000 steps
    aggressive: 8 runs, 20000 steps
    maximum:    32 runs, 100000 steps
"""
import argparse
import logging
import sys
import time

from wallpaper_packing import (
    OptimizationConfig, PackingError, PackingSolver, Shape, group_names, get_wallpaper_group
)
from wallpaper_packing.io_utils import (
    get_output_path, parse_vertices, save_result, write_positions_csv
)
from wallpaper_packing.validate import print_result_summary, print_runs_summary, validate_state


def get_config(mode: str) -> OptimizationConfig:
    """Get configuration for specified mode."""
    if mode == "quick":
        return OptimizationConfig.quick_mode()
    elif mode == "standard":
        return OptimizationConfig.standard_mode()
    elif mode == "aggressive":
        return OptimizationConfig.aggressive_mode()
    elif mode == "maximum":
        return OptimizationConfig.maximum_mode()
    else:
        return OptimizationConfig.standard_mode()


def main(args) -> int:
    """Main solver entry point."""
    config = get_config(args.mode)
    config.seed = args.seed
    if args.steps is not None:
        config.max_iterations = args.steps
    if args.runs is not None:
        config.num_start_configs = args.runs
    if args.time_budget is not None:
        config.time_budget = args.time_budget
    if args.shell is not None:
        config.neighbour_shell = args.shell
    config.num_instances = args.instances
    config.n_workers = args.workers

    if args.vertices:
        shape = parse_vertices(args.vertices)
    else:
        shape = Shape.regular_polygon(args.num_sides)
    group = get_wallpaper_group(args.wallpaper_group)

    print("=" * 70)
    print("WALLPAPER GROUP PACKING OPTIMIZER")
    print("=" * 70)
    print(f"Group: {group.name} (order {group.order()})")
    print(f"Shape: {shape.name}, {shape.num_vertices} vertices, area {shape.area():.6f}")
    print(f"Mode: {args.mode}  Seed: {config.seed}")
    print(f"Runs: {config.num_start_configs}  Steps: {config.max_iterations}  "
          f"Workers: {config.n_workers}")
    print()

    start_time = time.time()
    solver = PackingSolver(config)
    result = solver.solve(shape, group, strategy=args.init, verbose=True)
    solve_time = time.time() - start_time

    print()
    print_runs_summary(solver.results)
    print()
    print_result_summary(result)

    check = validate_state(result.state)
    if check.valid:
        print("✓ Final state validated")
    else:
        print(f"✗ Final state invalid: {check.error_message}")

    output_path = get_output_path(args.output, args.output_dir)
    save_result(result, output_path)
    print(f"✓ Saved to: {output_path}")
    if args.positions:
        csv_path = write_positions_csv(result.state, get_output_path(args.positions, args.output_dir))
        print(f"✓ Positions: {csv_path}")

    print(f"Total time: {solve_time:.1f}s")
    return 0 if check.valid else 1


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Find dense packings of 2-D shapes")
    parser.add_argument("wallpaper_group", help=f"Wallpaper group: {', '.join(group_names())}")
    parser.add_argument(
        "--mode",
        choices=["quick", "standard", "aggressive", "maximum"],
        default="standard",
        help="Optimization mode"
    )
    parser.add_argument("--num-sides", type=int, default=4, help="Sides of a regular polygon")
    parser.add_argument("--vertices", help="Custom polygon, e.g. '0,0 1,0 1,1 0,1'")
    parser.add_argument("--instances", type=int, default=1, help="Shapes in the asymmetric unit")
    parser.add_argument("-s", "--steps", type=int, help="Monte Carlo steps per run")
    parser.add_argument("--runs", type=int, help="Independent starting configurations")
    parser.add_argument("--workers", type=int, default=1, help="Worker processes")
    parser.add_argument("--time-budget", type=float, help="Seconds per run")
    parser.add_argument("--shell", type=int, help="Minimum neighbour shell (default: derived from cell)")
    parser.add_argument("--init", choices=["random", "lattice"], default="random",
                        help="Starting configuration")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--output", default="packing.json", help="Result JSON file")
    parser.add_argument("--positions", help="Also write Cartesian positions to this CSV")
    parser.add_argument("--output-dir", help="Directory for output files")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    try:
        sys.exit(main(args))
    except (PackingError, ValueError) as e:
        print(f"✗ Error: {e}")
        sys.exit(2)
