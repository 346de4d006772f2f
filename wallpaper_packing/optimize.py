"""
optimize.py - Basin-hopping Monte Carlo search for dense packings

Each iteration perturbs one degree of freedom of the accepted state (move an
instance, turn an instance, or change a cell parameter), rejects proposals
that create overlaps, and accepts valid ones with the Metropolis criterion
on packing fraction. Key components:
- Geometric cooling of the temperature
- Step sizes adapted from the rolling acceptance ratio
- Best-so-far checkpointing
- Iteration, time, patience and consecutive-rejection budgets
"""
import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np

from .cell import CELL_ANGLE_BOUNDS
from .errors import (
    DegenerateCell, InvalidTransform, NumericalError, OptimizerDivergence,
    OverlapDetectedDuringInit
)
from .state import PackingState

logger = logging.getLogger(__name__)

MOVE_TRANSLATE = "translate"
MOVE_ROTATE = "rotate"
MOVE_CELL = "cell"


@dataclass
class OptimizationConfig:
    # Budgets
    max_iterations: int = 5000
    time_budget: Optional[float] = None        # seconds, None = unlimited
    patience: Optional[int] = None             # iterations without a new best
    max_consecutive_rejections: Optional[int] = 2500

    # Temperature schedule: T <- T * cooling_rate every iteration
    initial_temperature: float = 0.1
    cooling_rate: float = 0.999

    # Initial step sizes
    translate_step: float = 0.05               # fractional cell units
    rotate_step: float = 0.3                   # radians
    cell_step: float = 0.05                    # log-scale for lengths, radians for gamma

    # Step bounds (as multiples of the initial step)
    step_floor: float = 1e-3
    step_ceiling: float = 4.0

    # Move probabilities (normalised on use)
    prob_translate: float = 0.45
    prob_rotate: float = 0.25
    prob_cell: float = 0.30

    # Step adaptation toward a target acceptance window
    adapt_interval: int = 100
    target_acceptance_low: float = 0.3
    target_acceptance_high: float = 0.5
    step_shrink: float = 0.9
    step_grow: float = 1.1

    # Minimum overlap-check shell; the shell derived from the cell geometry wins when larger
    neighbour_shell: Optional[int] = None

    # Multi-start
    num_start_configs: int = 1
    num_instances: int = 1
    n_workers: int = 1

    record_trace: bool = False
    log_interval: int = 1000
    seed: int = 42

    @classmethod
    def quick_mode(cls):
        """Fast mode for testing."""
        return cls(max_iterations=1000, num_start_configs=1)

    @classmethod
    def standard_mode(cls):
        """Standard mode - good balance."""
        return cls(max_iterations=5000, num_start_configs=4)

    @classmethod
    def aggressive_mode(cls):
        """Longer anneal from a hotter start."""
        return cls(
            max_iterations=20000,
            initial_temperature=0.2,
            cooling_rate=0.9997,
            patience=8000,
            num_start_configs=8
        )

    @classmethod
    def maximum_mode(cls):
        """Maximum optimization - use for final results."""
        return cls(
            max_iterations=100000,
            initial_temperature=0.3,
            cooling_rate=0.99995,
            patience=30000,
            max_consecutive_rejections=10000,
            num_start_configs=32
        )

    def validate(self):
        """Raise ValueError for settings the optimiser cannot run with."""
        if self.max_iterations < 0:
            raise ValueError("max_iterations must be non-negative")
        if self.time_budget is not None and self.time_budget <= 0:
            raise ValueError("time_budget must be positive")
        if self.patience is not None and self.patience <= 0:
            raise ValueError("patience must be positive")
        if self.max_consecutive_rejections is not None and self.max_consecutive_rejections <= 0:
            raise ValueError("max_consecutive_rejections must be positive")
        if self.initial_temperature < 0:
            raise ValueError("initial_temperature must be non-negative")
        if not 0 < self.cooling_rate <= 1:
            raise ValueError("cooling_rate must lie in (0, 1]")
        if min(self.translate_step, self.rotate_step, self.cell_step) <= 0:
            raise ValueError("step sizes must be positive")
        if min(self.prob_translate, self.prob_rotate, self.prob_cell) < 0:
            raise ValueError("move probabilities must be non-negative")
        if self.prob_translate + self.prob_rotate + self.prob_cell <= 0:
            raise ValueError("at least one move type needs a positive probability")
        if not 0 <= self.target_acceptance_low < self.target_acceptance_high <= 1:
            raise ValueError("target acceptance window must satisfy 0 <= low < high <= 1")
        if self.adapt_interval <= 0:
            raise ValueError("adapt_interval must be positive")
        if self.num_start_configs <= 0 or self.num_instances <= 0 or self.n_workers <= 0:
            raise ValueError("num_start_configs, num_instances and n_workers must be positive")
        if self.neighbour_shell is not None and self.neighbour_shell < 0:
            raise ValueError("neighbour_shell must be non-negative")
        return self


class Phase(Enum):
    INITIALIZING = "initializing"
    PERTURBING = "perturbing"
    EVALUATING = "evaluating"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    TERMINATED = "terminated"


@dataclass
class RunStatistics:
    seed: Optional[int] = None
    # Replay a run with np.random.default_rng(np.random.SeedSequence(seed, spawn_key=spawn_key))
    spawn_key: Tuple[int, ...] = ()
    run_index: int = 0
    iterations: int = 0
    accepted: int = 0
    rejected: int = 0
    invalid_proposals: int = 0
    termination_reason: str = ""
    elapsed: float = 0.0
    initial_fraction: float = 0.0
    best_history: List[Tuple[int, float]] = field(default_factory=list)
    trace: List[Tuple[str, bool]] = field(default_factory=list)
    divergence: Optional[OptimizerDivergence] = None

    @property
    def acceptance_ratio(self) -> float:
        attempts = self.accepted + self.rejected
        return self.accepted / attempts if attempts else 0.0


@dataclass
class OptimizationResult:
    state: PackingState
    packing_fraction: float
    statistics: RunStatistics

    def to_dict(self) -> Dict:
        stats = self.statistics
        return {
            "packing_fraction": self.packing_fraction,
            "state": self.state.to_dict(),
            "statistics": {
                "seed": stats.seed,
                "spawn_key": list(stats.spawn_key),
                "run_index": stats.run_index,
                "iterations": stats.iterations,
                "accepted": stats.accepted,
                "rejected": stats.rejected,
                "invalid_proposals": stats.invalid_proposals,
                "acceptance_ratio": stats.acceptance_ratio,
                "termination_reason": stats.termination_reason,
                "elapsed": stats.elapsed,
                "initial_fraction": stats.initial_fraction,
            },
        }


@dataclass
class _Move:
    kind: str
    index: int
    previous: object


class MonteCarloOptimizer:
    """
    Basin-hopping Monte Carlo on one PackingState.

    All randomness comes from the generator handed in, so a fixed seed and
    config reproduce the same accept/reject sequence (unless a time budget
    cuts the run short).
    """

    def __init__(self, config: Optional[OptimizationConfig] = None,
                 rng: Optional[np.random.Generator] = None):
        self.config = (config or OptimizationConfig()).validate()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self.phase = Phase.INITIALIZING

        total = self.config.prob_translate + self.config.prob_rotate + self.config.prob_cell
        self._move_kinds = (MOVE_TRANSLATE, MOVE_ROTATE, MOVE_CELL)
        self._move_cdf = np.cumsum([
            self.config.prob_translate / total,
            self.config.prob_rotate / total,
            self.config.prob_cell / total,
        ])

    def _initial_steps(self) -> Dict[str, float]:
        return {
            MOVE_TRANSLATE: self.config.translate_step,
            MOVE_ROTATE: self.config.rotate_step,
            MOVE_CELL: self.config.cell_step,
        }

    def _choose_move(self) -> str:
        slot = int(np.searchsorted(self._move_cdf, self.rng.random(), side="right"))
        return self._move_kinds[min(slot, len(self._move_kinds) - 1)]

    def _perturb(self, state: PackingState, kind: str, steps: Dict[str, float]) -> Optional[_Move]:
        """Apply one random move in place; None means the move left the allowed range."""
        step = steps[kind]
        if kind == MOVE_CELL:
            cell = state.cell
            name = cell.degrees_of_freedom()[int(self.rng.integers(len(cell.degrees_of_freedom())))]
            delta = float(self.rng.uniform(-step, step))
            if name == "gamma":
                value = cell.gamma + delta
                if not CELL_ANGLE_BOUNDS[0] <= value <= CELL_ANGLE_BOUNDS[1]:
                    return None
            else:
                value = getattr(cell, name) * math.exp(delta)
            state.cell = cell.with_parameter(name, value)
            return _Move(kind, -1, cell)

        index = int(self.rng.integers(len(state.instances)))
        previous = state.instances[index]
        x, y = previous.position
        angle = previous.angle
        if kind == MOVE_TRANSLATE:
            x += float(self.rng.uniform(-step, step))
            y += float(self.rng.uniform(-step, step))
        else:
            angle += float(self.rng.uniform(-step, step))
        state.set_instance(index, x, y, angle)
        return _Move(kind, index, previous)

    @staticmethod
    def _revert(state: PackingState, move: _Move):
        if move.kind == MOVE_CELL:
            state.cell = move.previous
        else:
            state.instances[move.index] = move.previous

    def _adapt_steps(self, steps: Dict[str, float], ratio: float):
        """
        Grow steps while too many proposals succeed, shrink them while too few do.

        The direction is intentional: larger steps lower the acceptance ratio
        and smaller ones raise it, so this rule pulls the ratio into the
        target window. Shrinking on high acceptance would raise the ratio
        further and pin the steps at `step_floor`.
        """
        cfg = self.config
        if ratio > cfg.target_acceptance_high:
            factor = cfg.step_grow
        elif ratio < cfg.target_acceptance_low:
            factor = cfg.step_shrink
        else:
            return
        initial = self._initial_steps()
        for kind in steps:
            steps[kind] = min(max(steps[kind] * factor, initial[kind] * cfg.step_floor),
                              initial[kind] * cfg.step_ceiling)
        steps[MOVE_ROTATE] = min(steps[MOVE_ROTATE], math.pi)

    def _budget_exhausted(self, stats: RunStatistics, start: float, since_best: int,
                          consecutive_rejections: int) -> Optional[str]:
        cfg = self.config
        if stats.iterations >= cfg.max_iterations:
            return "iterations"
        if cfg.time_budget is not None and time.perf_counter() - start >= cfg.time_budget:
            return "time"
        if cfg.patience is not None and since_best >= cfg.patience:
            return "patience"
        if (cfg.max_consecutive_rejections is not None
                and consecutive_rejections >= cfg.max_consecutive_rejections):
            return "divergence"
        return None

    def run(self, state: PackingState, seed: Optional[int] = None) -> OptimizationResult:
        """
        Optimise `state` in place and return the best checkpoint.

        Raises OverlapDetectedDuringInit when the starting state is invalid
        and NumericalError (carrying the best checkpoint) if the working
        state becomes non-finite.
        """
        cfg = self.config
        self.phase = Phase.INITIALIZING
        if cfg.neighbour_shell is not None:
            state.neighbour_shell = cfg.neighbour_shell
        if not state.instances:
            raise ValueError("Cannot optimise a state without instances")
        if not state.is_valid():
            raise OverlapDetectedDuringInit(
                "Initial configuration contains overlapping shapes", overlaps=state.find_overlaps()
            )

        stats = RunStatistics(seed=seed)
        current = state.packing_fraction()
        stats.initial_fraction = current
        best_state = state.clone_best()
        best = current
        stats.best_history.append((0, best))

        temperature = cfg.initial_temperature
        steps = self._initial_steps()
        window_accepted = window_total = 0
        since_best = 0
        consecutive_rejections = 0
        start = time.perf_counter()

        while True:
            reason = self._budget_exhausted(stats, start, since_best, consecutive_rejections)
            if reason is not None:
                break
            stats.iterations += 1

            self.phase = Phase.PERTURBING
            kind = self._choose_move()
            try:
                move = self._perturb(state, kind, steps)
            except (InvalidTransform, DegenerateCell) as e:
                self.phase = Phase.TERMINATED
                raise NumericalError(f"Perturbation produced a corrupt state: {e}",
                                     checkpoint=best_state) from e

            accepted = False
            if move is not None:
                self.phase = Phase.EVALUATING
                if state.is_valid():
                    fraction = state.packing_fraction()
                    if not math.isfinite(fraction):
                        self.phase = Phase.TERMINATED
                        raise NumericalError("Packing fraction is not finite", checkpoint=best_state)
                    delta = current - fraction
                    if delta <= 0:
                        accepted = True
                    elif temperature > 0:
                        accepted = bool(self.rng.random() < math.exp(-delta / temperature))
                    if accepted:
                        current = fraction
                else:
                    stats.invalid_proposals += 1
                if not accepted:
                    self._revert(state, move)
            else:
                stats.invalid_proposals += 1

            if accepted:
                self.phase = Phase.ACCEPTED
                stats.accepted += 1
                consecutive_rejections = 0
                if current > best:
                    best = current
                    best_state = state.clone_best()
                    stats.best_history.append((stats.iterations, best))
                    since_best = 0
                else:
                    since_best += 1
            else:
                self.phase = Phase.REJECTED
                stats.rejected += 1
                consecutive_rejections += 1
                since_best += 1

            if cfg.record_trace:
                stats.trace.append((kind, accepted))

            temperature *= cfg.cooling_rate
            window_total += 1
            window_accepted += accepted
            if window_total >= cfg.adapt_interval:
                self._adapt_steps(steps, window_accepted / window_total)
                window_accepted = window_total = 0

            if cfg.log_interval and stats.iterations % cfg.log_interval == 0:
                logger.debug(
                    "Iteration %d: current=%.6f best=%.6f T=%.3g steps=%s",
                    stats.iterations, current, best, temperature,
                    {k: round(v, 5) for k, v in steps.items()},
                )

        if reason == "divergence":
            stats.divergence = OptimizerDivergence(
                f"{consecutive_rejections} consecutive rejections", consecutive_rejections
            )
            logger.warning("Stopping early after %d consecutive rejections; best=%.6f",
                           consecutive_rejections, best)

        self.phase = Phase.TERMINATED
        stats.termination_reason = reason
        stats.elapsed = time.perf_counter() - start
        logger.info(
            "Run finished (%s) after %d iterations: best=%.6f, acceptance=%.3f",
            reason, stats.iterations, best, stats.acceptance_ratio,
        )
        return OptimizationResult(state=best_state, packing_fraction=best, statistics=stats)


def optimize_packing(
    state: PackingState,
    config: Optional[OptimizationConfig] = None,
    seed: Optional[int] = None
) -> OptimizationResult:
    """Main optimization entry point: one seeded run starting from `state`."""
    config = config or OptimizationConfig.standard_mode()
    seed = config.seed if seed is None else seed
    optimizer = MonteCarloOptimizer(config, np.random.default_rng(seed))
    return optimizer.run(state, seed=seed)
