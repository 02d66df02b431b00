"""Tests for grid partitioning."""

import unittest

import numpy as np

from TexForge.core.grid import TileRegion, grid_dimensions, partition
from TexForge.errors import ConfigurationError


def _coverage(width, height, regions):
    counts = np.zeros((height, width), dtype=np.int32)
    for r in regions:
        counts[r.pixel_y:r.pixel_y + r.height, r.pixel_x:r.pixel_x + r.width] += 1
    return counts


class TestGridDimensions(unittest.TestCase):
    def test_exact_multiple(self):
        self.assertEqual(grid_dimensions(2048, 1024, 512), (4, 2))

    def test_partial_tiles_round_up(self):
        self.assertEqual(grid_dimensions(1025, 1, 1024), (2, 1))

    def test_tile_larger_than_image(self):
        self.assertEqual(grid_dimensions(100, 50, 1024), (1, 1))

    def test_huge_dimensions_use_integer_math(self):
        big = 10 ** 15 + 1
        self.assertEqual(grid_dimensions(big, 1, 10 ** 15), (2, 1))


class TestPartition(unittest.TestCase):
    def test_region_count_matches_grid(self):
        for w, h, s in [(1, 1, 1), (7, 3, 2), (1024, 1024, 1024), (1000, 600, 256)]:
            cols, rows = grid_dimensions(w, h, s)
            self.assertEqual(len(partition(w, h, s)), cols * rows)

    def test_row_major_order(self):
        regions = partition(5, 5, 2)
        keys = [(r.row, r.col) for r in regions]
        self.assertEqual(keys, sorted(keys))
        self.assertEqual(regions[0].id, "0_0")
        self.assertEqual(regions[1].id, "1_0")
        self.assertEqual(regions[3].id, "0_1")

    def test_covers_every_pixel_exactly_once(self):
        for w, h, s in [(7, 3, 2), (64, 48, 16), (100, 37, 33)]:
            counts = _coverage(w, h, partition(w, h, s))
            self.assertTrue(np.all(counts == 1), f"{w}x{h}/{s}")

    def test_edge_tiles_are_clipped(self):
        regions = partition(2500, 1100, 1024)
        last = regions[-1]
        self.assertEqual((last.col, last.row), (2, 1))
        self.assertEqual((last.width, last.height), (452, 76))
        for r in regions:
            self.assertLessEqual(r.pixel_x + r.width, 2500)
            self.assertLessEqual(r.pixel_y + r.height, 1100)

    def test_image_equal_to_tile_size(self):
        regions = partition(512, 512, 512)
        self.assertEqual(regions, [TileRegion(0, 0, 0, 0, 512, 512)])

    def test_one_pixel_over_tile_size(self):
        regions = partition(513, 512, 512)
        self.assertEqual(len(regions), 2)
        self.assertEqual(regions[1], TileRegion(1, 0, 512, 0, 1, 512))

    def test_landscape_example(self):
        regions = partition(2048, 1536, 1024)
        self.assertEqual(
            [(r.id, r.pixel_x, r.pixel_y, r.width, r.height) for r in regions],
            [
                ("0_0", 0, 0, 1024, 1024),
                ("1_0", 1024, 0, 1024, 1024),
                ("0_1", 0, 1024, 1024, 512),
                ("1_1", 1024, 1024, 1024, 512),
            ],
        )

    def test_deterministic(self):
        self.assertEqual(partition(300, 200, 64), partition(300, 200, 64))

    def test_invalid_arguments_rejected(self):
        for args in [(0, 10, 4), (10, 0, 4), (10, 10, 0), (-1, 10, 4),
                     (10, 10, -4), (10.5, 10, 4), (10, 10, True)]:
            with self.assertRaises(ConfigurationError, msg=repr(args)):
                partition(*args)

    def test_configuration_error_is_value_error(self):
        with self.assertRaises(ValueError):
            partition(10, 10, 0)


class TestTileRegion(unittest.TestCase):
    def test_box_and_area(self):
        r = TileRegion(col=2, row=1, pixel_x=20, pixel_y=10, width=5, height=3)
        self.assertEqual(r.id, "2_1")
        self.assertEqual(r.box, (20, 10, 25, 13))
        self.assertEqual(r.area, 15)


if __name__ == "__main__":
    unittest.main(verbosity=2)
