"""
packing.py - Multi-start packing solver

Key strategies:
1. Several independent Monte Carlo runs per shape/group pair
2. Independent random streams spawned from one master seed
3. Random or lattice-like starting configurations
4. Keep the run with the highest final packing fraction
"""
import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from typing import List, Optional

import numpy as np

from .errors import OverlapDetectedDuringInit
from .optimize import MonteCarloOptimizer, OptimizationConfig, OptimizationResult
from .shape import Shape
from .state import PackingState
from .wallpaper import get_wallpaper_group

logger = logging.getLogger(__name__)


def create_initial_state(
    shape: Shape,
    group,
    num_instances: int = 1,
    strategy: str = "random",
    rng: Optional[np.random.Generator] = None,
    neighbour_shell: Optional[int] = None
) -> PackingState:
    """Create a starting state with the given strategy ("random" or "lattice")."""
    if strategy == "lattice":
        return PackingState.from_group(shape, group, num_instances, neighbour_shell)
    if strategy == "random":
        if rng is None:
            raise ValueError("Random starting states need an explicit random generator")
        return PackingState.random(shape, group, num_instances, rng, neighbour_shell)
    raise ValueError(f"Unknown initial strategy {strategy!r}")


def _run_single(
    shape: Shape,
    group_name: str,
    config: OptimizationConfig,
    seed_sequence: np.random.SeedSequence,
    run_index: int,
    initial: Optional[PackingState],
    strategy: str
) -> OptimizationResult:
    """One self-contained run; module level so worker processes can import it."""
    rng = np.random.default_rng(seed_sequence)
    if initial is not None:
        state = initial.clone_best()
    else:
        state = create_initial_state(shape, group_name, config.num_instances, strategy, rng,
                                     config.neighbour_shell)
    optimizer = MonteCarloOptimizer(config, rng)
    result = optimizer.run(state, seed=seed_sequence.entropy)
    result.statistics.spawn_key = tuple(seed_sequence.spawn_key)
    result.statistics.run_index = run_index
    return result


class PackingSolver:
    """
    Runs `config.num_start_configs` independent searches and keeps the best.

    Each run owns its state and its random stream, spawned from
    `config.seed`, so results do not depend on the number of workers.
    """

    def __init__(self, config: Optional[OptimizationConfig] = None):
        self.config = (config or OptimizationConfig.standard_mode()).validate()
        self.results: List[OptimizationResult] = []

    def solve(
        self,
        shape: Shape,
        group,
        initial_state: Optional[PackingState] = None,
        strategy: str = "random",
        verbose: bool = False
    ) -> OptimizationResult:
        group = get_wallpaper_group(group)
        if initial_state is not None and not initial_state.is_valid():
            # Fail before any worker starts
            raise OverlapDetectedDuringInit(
                "Initial configuration contains overlapping shapes",
                overlaps=initial_state.find_overlaps(),
            )

        runs = self.config.num_start_configs
        seeds = np.random.SeedSequence(self.config.seed).spawn(runs)
        args = [
            (shape, group.name, self.config, seeds[i], i, initial_state, strategy)
            for i in range(runs)
        ]

        if verbose:
            print(f"Packing {shape.name} in {group.name}: {runs} run(s), "
                  f"{self.config.max_iterations} iterations each")

        results: List[Optional[OptimizationResult]] = [None] * runs
        if self.config.n_workers > 1 and runs > 1:
            with ProcessPoolExecutor(max_workers=self.config.n_workers) as executor:
                futures = {executor.submit(_run_single, *a): a[4] for a in args}
                for future in as_completed(futures):
                    results[futures[future]] = future.result()
        else:
            for a in args:
                results[a[4]] = _run_single(*a)

        self.results = results
        for i, result in enumerate(results):
            logger.info("Run %d: packing fraction %.6f (%s)", i, result.packing_fraction,
                        result.statistics.termination_reason)
            if verbose:
                print(f"  Run {i + 1}: fraction={result.packing_fraction:.6f}, "
                      f"acceptance={result.statistics.acceptance_ratio:.3f}")

        return self.best_result()

    def best_result(self) -> OptimizationResult:
        if not self.results:
            raise RuntimeError("No runs have been completed")
        # Ties go to the lowest run index
        return max(enumerate(self.results), key=lambda item: (item[1].packing_fraction, -item[0]))[1]

    def fractions(self) -> List[float]:
        return [r.packing_fraction for r in self.results]
