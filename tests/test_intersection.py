"""
Tests for the separating-axis overlap test
"""

import unittest

import numpy as np

from wallpaper_packing.geometry import Transform
from wallpaper_packing.intersection import intersects, within_reach
from wallpaper_packing.shape import Shape, ShapeInstance

SQUARE = Shape([(0, 0), (1, 0), (1, 1), (0, 1)], name="Square")
L_SHAPE = Shape([(0, 0), (2, 0), (2, 1), (1, 1), (1, 2), (0, 2)], name="L")


def placed(shape, angle=0.0, tx=0.0, ty=0.0, reflected=False):
    return shape.transformed(Transform(angle=angle, tx=tx, ty=ty, reflected=reflected))


def random_transform(rng):
    return Transform(
        angle=float(rng.uniform(0, 2 * np.pi)),
        tx=float(rng.uniform(-2, 2)),
        ty=float(rng.uniform(-2, 2)),
        reflected=bool(rng.integers(2)),
    )


class TestSquares(unittest.TestCase):
    """Test contact and overlap cases between unit squares"""

    def test_identical(self):
        self.assertTrue(intersects(SQUARE, SQUARE))

    def test_edge_contact(self):
        """Touching along an edge is not an overlap"""
        self.assertFalse(intersects(SQUARE, placed(SQUARE, tx=1.0)))
        self.assertFalse(intersects(SQUARE, placed(SQUARE, ty=-1.0)))

    def test_corner_contact(self):
        self.assertFalse(intersects(SQUARE, placed(SQUARE, tx=1.0, ty=1.0)))

    def test_separated(self):
        self.assertFalse(intersects(SQUARE, placed(SQUARE, tx=3.0)))

    def test_slight_overlap(self):
        self.assertTrue(intersects(SQUARE, placed(SQUARE, tx=0.99)))
        self.assertTrue(intersects(SQUARE, placed(SQUARE, angle=np.pi / 4, tx=1.5, ty=0.3)))

    def test_bounding_filter(self):
        self.assertFalse(within_reach(SQUARE, placed(SQUARE, tx=1.5, ty=1.5)))
        self.assertTrue(within_reach(SQUARE, placed(SQUARE, tx=0.9, ty=0.9)))

    def test_shape_instances(self):
        a = ShapeInstance(SQUARE, Transform())
        b = ShapeInstance(SQUARE, Transform(tx=0.5, ty=0.5))
        self.assertTrue(intersects(a, b))
        self.assertTrue(intersects(SQUARE, b))


class TestConcave(unittest.TestCase):
    """Test shapes decomposed into several convex parts"""

    def test_square_in_notch(self):
        """Inside the convex hull but outside the L itself"""
        small = Shape([(1.2, 1.2), (1.8, 1.2), (1.8, 1.8), (1.2, 1.8)])
        self.assertFalse(intersects(L_SHAPE, small))
        self.assertTrue(intersects(L_SHAPE.convex_hull(), small))

    def test_square_in_arm(self):
        small = Shape([(0.2, 1.2), (0.8, 1.2), (0.8, 1.8), (0.2, 1.8)])
        self.assertTrue(intersects(L_SHAPE, small))

    def test_interlocking(self):
        """Two L shapes nested corner to corner"""
        rotated = placed(L_SHAPE, angle=np.pi, tx=3.0, ty=3.0)
        self.assertFalse(intersects(L_SHAPE, rotated))
        self.assertTrue(intersects(L_SHAPE, placed(L_SHAPE, angle=np.pi, tx=2.5, ty=2.5)))


class TestProperties(unittest.TestCase):
    """Test symmetry, invariance and agreement with polygon clipping"""

    def setUp(self):
        self.rng = np.random.default_rng(2024)
        self.shapes = [SQUARE, L_SHAPE, Shape.regular_polygon(5, 0.8), Shape.regular_polygon(3)]

    def random_pair(self):
        i, j = self.rng.integers(len(self.shapes), size=2)
        return (self.shapes[i].transformed(random_transform(self.rng)),
                self.shapes[j].transformed(random_transform(self.rng)))

    def test_symmetric(self):
        for _ in range(200):
            a, b = self.random_pair()
            self.assertEqual(intersects(a, b), intersects(b, a))

    def test_rigid_invariance(self):
        for _ in range(200):
            a, b = self.random_pair()
            g = random_transform(self.rng)
            self.assertEqual(intersects(a, b), intersects(a.transformed(g), b.transformed(g)))

    def test_matches_shapely(self):
        checked = 0
        for _ in range(300):
            a, b = self.random_pair()
            pa, pb = a.to_polygon(), b.to_polygon()
            if pa.intersection(pb).area > 1e-6:
                self.assertTrue(intersects(a, b))
                checked += 1
            elif pa.distance(pb) > 1e-6:
                self.assertFalse(intersects(a, b))
                checked += 1
        self.assertGreater(checked, 250)


if __name__ == "__main__":
    unittest.main()
