"""
Tests for the Monte Carlo optimiser
"""

import math
import unittest

import numpy as np

from wallpaper_packing.cell import UnitCell
from wallpaper_packing.errors import NumericalError, OptimizerDivergence, OverlapDetectedDuringInit
from wallpaper_packing.geometry import Transform
from wallpaper_packing.optimize import (
    MonteCarloOptimizer, OptimizationConfig, Phase, optimize_packing
)
from wallpaper_packing.shape import Shape, ShapeInstance
from wallpaper_packing.state import PackingState

SQUARE = Shape([(0, 0), (1, 0), (1, 1), (0, 1)], name="Square")


def tight_square_state():
    return PackingState(UnitCell(1.0, 1.0, math.pi / 2), [ShapeInstance(SQUARE)], "p1")


class _FailingState(PackingState):
    """Reports a NaN packing fraction after the first evaluation."""

    evaluations = 0

    def packing_fraction(self):
        self.evaluations += 1
        if self.evaluations > 1:
            return float("nan")
        return super().packing_fraction()


def valid_with_wider_shell(state):
    """Overlap check one shell beyond the derived one, independent of any configured shell."""
    wider = PackingState(state.cell, list(state.instances), state.group, state.required_shell() + 1)
    return wider.is_valid()


class _AuditedState(PackingState):
    """
    Re-checks every state the optimiser scores.

    The optimiser only asks for the packing fraction of states that passed
    its own overlap check, so every accepted state passes through here.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.evaluations = 0
        self.violations = []

    def packing_fraction(self):
        fraction = super().packing_fraction()
        self.evaluations += 1
        if fraction > 1.0 + 1e-9 or not valid_with_wider_shell(self):
            self.violations.append((self.evaluations, fraction, self.cell.parameters()))
        return fraction


class TestConfig(unittest.TestCase):
    """Test configuration presets and validation"""

    def test_presets_validate(self):
        for preset in (OptimizationConfig.quick_mode, OptimizationConfig.standard_mode,
                       OptimizationConfig.aggressive_mode, OptimizationConfig.maximum_mode):
            config = preset()
            self.assertIs(config.validate(), config)

    def test_invalid_settings(self):
        for kwargs in [
            {"max_iterations": -1},
            {"cooling_rate": 0.0},
            {"cooling_rate": 1.5},
            {"prob_translate": 0.0, "prob_rotate": 0.0, "prob_cell": 0.0},
            {"translate_step": 0.0},
            {"target_acceptance_low": 0.6, "target_acceptance_high": 0.5},
            {"time_budget": 0.0},
            {"num_start_configs": 0},
        ]:
            with self.assertRaises(ValueError, msg=str(kwargs)):
                OptimizationConfig(**kwargs).validate()


class TestRun(unittest.TestCase):
    """Test a short optimisation from a sparse start"""

    def setUp(self):
        self.config = OptimizationConfig(max_iterations=300, seed=1)

    def test_improves_and_stays_valid(self):
        state = PackingState.from_group(Shape.regular_polygon(4), "p1")
        result = optimize_packing(state, self.config)
        stats = result.statistics

        self.assertTrue(result.state.is_valid())
        self.assertAlmostEqual(result.packing_fraction, result.state.packing_fraction())
        self.assertAlmostEqual(stats.initial_fraction, 0.125)
        self.assertGreater(result.packing_fraction, stats.initial_fraction)
        self.assertLessEqual(result.packing_fraction, 1.0)

        self.assertEqual(stats.iterations, 300)
        self.assertEqual(stats.termination_reason, "iterations")
        self.assertEqual(stats.accepted + stats.rejected, stats.iterations)
        fractions = [f for _, f in stats.best_history]
        self.assertEqual(fractions, sorted(fractions))
        self.assertEqual(fractions[-1], result.packing_fraction)

    def test_reproducible(self):
        self.config.record_trace = True
        results = [
            optimize_packing(PackingState.from_group(Shape.regular_polygon(4), "p2"), self.config)
            for _ in range(2)
        ]
        self.assertEqual(results[0].statistics.trace, results[1].statistics.trace)
        self.assertEqual(results[0].packing_fraction, results[1].packing_fraction)
        self.assertEqual(len(results[0].statistics.trace), 300)

    def test_invalid_start(self):
        instances = [ShapeInstance(SQUARE), ShapeInstance(SQUARE, Transform(tx=0.5, ty=0.5))]
        state = PackingState(UnitCell(1.0, 1.0, math.pi / 2), instances, "p1")
        with self.assertRaises(OverlapDetectedDuringInit) as ctx:
            optimize_packing(state, self.config)
        self.assertTrue(ctx.exception.overlaps)


class TestAcceptedStates(unittest.TestCase):
    """Test that no accepted state overlaps or exceeds full density"""

    def audited_start(self, group):
        start = PackingState.from_group(Shape.regular_polygon(4), group)
        return _AuditedState(start.cell, start.instances, start.group)

    def test_every_evaluated_state(self):
        for group in ("c2mm", "p6", "p1"):
            for shell in (None, 0):
                with self.subTest(group=group, shell=shell):
                    state = self.audited_start(group)
                    config = OptimizationConfig(max_iterations=150, neighbour_shell=shell, seed=2)
                    result = optimize_packing(state, config)
                    self.assertGreater(state.evaluations, 1)
                    self.assertEqual(state.violations, [])
                    self.assertLessEqual(result.packing_fraction, 1.0)
                    self.assertTrue(valid_with_wider_shell(result.state))

    def test_small_configured_shell(self):
        """A zero shell cannot let the cell shrink through its periodic neighbours"""
        state = PackingState.from_group(Shape.regular_polygon(4), "p1")
        config = OptimizationConfig(max_iterations=1500, neighbour_shell=0, seed=1)
        result = optimize_packing(state, config)
        self.assertGreater(result.packing_fraction, 0.0)
        self.assertLessEqual(result.packing_fraction, 1.0)
        self.assertEqual(result.state.neighbour_shell, 0)
        self.assertTrue(valid_with_wider_shell(result.state))


class TestTermination(unittest.TestCase):
    """Test each budget that ends a run"""

    def test_zero_iterations(self):
        result = optimize_packing(tight_square_state(), OptimizationConfig(max_iterations=0))
        self.assertEqual(result.statistics.iterations, 0)
        self.assertEqual(result.statistics.termination_reason, "iterations")
        self.assertAlmostEqual(result.packing_fraction, 1.0)

    def test_patience(self):
        config = OptimizationConfig(max_iterations=100000, patience=5, seed=3)
        state = PackingState.from_group(Shape.regular_polygon(4), "p1")
        result = optimize_packing(state, config)
        self.assertEqual(result.statistics.termination_reason, "patience")
        self.assertLess(result.statistics.iterations, 100000)

    def test_divergence(self):
        """Nothing can be accepted from a tight tiling at zero temperature"""
        config = OptimizationConfig(
            max_iterations=1000, initial_temperature=0.0, prob_translate=0.0,
            max_consecutive_rejections=10,
        )
        optimizer = MonteCarloOptimizer(config, np.random.default_rng(5))
        result = optimizer.run(tight_square_state())
        stats = result.statistics
        self.assertEqual(stats.termination_reason, "divergence")
        self.assertEqual(stats.iterations, 10)
        self.assertIsInstance(stats.divergence, OptimizerDivergence)
        self.assertEqual(stats.divergence.consecutive_rejections, 10)
        self.assertTrue(result.state.is_valid())
        self.assertAlmostEqual(result.packing_fraction, 1.0)
        self.assertIs(optimizer.phase, Phase.TERMINATED)

    def test_time_budget(self):
        config = OptimizationConfig(
            max_iterations=10 ** 9, time_budget=0.05, max_consecutive_rejections=None
        )
        state = PackingState.from_group(Shape.regular_polygon(4), "p1")
        result = optimize_packing(state, config)
        self.assertEqual(result.statistics.termination_reason, "time")
        self.assertGreaterEqual(result.statistics.elapsed, 0.05)

    def test_numerical_error(self):
        config = OptimizationConfig(max_iterations=50, prob_rotate=0.0, prob_cell=0.0)
        state = _FailingState(UnitCell(4.0, 4.0, math.pi / 2), [ShapeInstance(SQUARE)], "p1")
        with self.assertRaises(NumericalError) as ctx:
            optimize_packing(state, config)
        checkpoint = ctx.exception.checkpoint
        self.assertIsNotNone(checkpoint)
        self.assertTrue(checkpoint.is_valid())
        self.assertAlmostEqual(checkpoint.packing_fraction(), 1.0 / 16.0)


class TestStepAdaptation(unittest.TestCase):
    """Test the acceptance-driven step size rule"""

    def setUp(self):
        self.optimizer = MonteCarloOptimizer(OptimizationConfig())

    def test_grow_and_shrink(self):
        steps = self.optimizer._initial_steps()
        self.optimizer._adapt_steps(steps, 0.9)
        self.assertAlmostEqual(steps["translate"], 0.05 * 1.1)
        steps = self.optimizer._initial_steps()
        self.optimizer._adapt_steps(steps, 0.0)
        self.assertAlmostEqual(steps["cell"], 0.05 * 0.9)
        steps = self.optimizer._initial_steps()
        self.optimizer._adapt_steps(steps, 0.4)
        self.assertEqual(steps, self.optimizer._initial_steps())

    def test_bounds(self):
        steps = self.optimizer._initial_steps()
        for _ in range(500):
            self.optimizer._adapt_steps(steps, 1.0)
        self.assertAlmostEqual(steps["translate"], 0.05 * 4.0)
        self.assertLessEqual(steps["rotate"], math.pi)
        for _ in range(2000):
            self.optimizer._adapt_steps(steps, 0.0)
        self.assertAlmostEqual(steps["translate"], 0.05 * 1e-3)


if __name__ == "__main__":
    unittest.main()
