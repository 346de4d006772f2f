"""
Tests for result persistence and vertex parsing
"""

import os
import tempfile
import unittest

from wallpaper_packing.io_utils import (
    get_output_path, load_result_data, load_state, parse_vertices, save_result,
    write_positions_csv
)
from wallpaper_packing.optimize import OptimizationConfig, optimize_packing
from wallpaper_packing.shape import Shape
from wallpaper_packing.state import PackingState


class TestParseVertices(unittest.TestCase):
    """Test the command-line vertex format"""

    def test_spaces(self):
        shape = parse_vertices("0,0 1,0 1,1 0,1")
        self.assertEqual(shape.num_vertices, 4)
        self.assertAlmostEqual(shape.area(), 1.0)

    def test_semicolons(self):
        self.assertAlmostEqual(parse_vertices("0,0;2,0;0,2").area(), 2.0)

    def test_bad_pair(self):
        with self.assertRaises(ValueError):
            parse_vertices("0,0,0 1,0 1,1")
        with self.assertRaises(ValueError):
            parse_vertices("0,0 1,a 1,1")


class TestPersistence(unittest.TestCase):
    """Test writing and reading results"""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        state = PackingState.from_group(Shape.regular_polygon(6), "p2")
        self.result = optimize_packing(state, OptimizationConfig(max_iterations=50, seed=9))

    def tearDown(self):
        self.tmp.cleanup()

    def test_output_path(self):
        directory = os.path.join(self.tmp.name, "nested")
        path = get_output_path("out.json", directory)
        self.assertTrue(os.path.isdir(directory))
        self.assertEqual(path, os.path.join(directory, "out.json"))
        self.assertEqual(get_output_path("out.json"), "out.json")

    def test_json_round_trip(self):
        path = save_result(self.result, os.path.join(self.tmp.name, "result.json"))
        data = load_result_data(path)
        self.assertEqual(data["statistics"]["iterations"], 50)
        self.assertAlmostEqual(data["packing_fraction"], self.result.packing_fraction)

        state = load_state(path)
        self.assertEqual(state.group, self.result.state.group)
        self.assertAlmostEqual(state.packing_fraction(), self.result.packing_fraction)
        self.assertTrue(state.is_valid())

    def test_positions_csv(self):
        path = write_positions_csv(self.result.state, os.path.join(self.tmp.name, "pos.csv"))
        with open(path) as f:
            lines = f.read().splitlines()
        self.assertTrue(lines[0].startswith("# "))
        self.assertEqual(lines[1], "instance,operation,x,y,angle,reflected")
        self.assertEqual(len(lines), 2 + self.result.state.total_shapes())


if __name__ == "__main__":
    unittest.main()
