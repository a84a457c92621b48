import unittest

import numpy as np

from maptools.common.palette import (
    BASE_COLORS,
    MAP_PALETTE,
    MULTIPLIERS,
    build_palette,
    palette_index,
    scale_color,
)


class ScaleColorTests(unittest.TestCase):
    def test_floors_each_channel(self):
        self.assertEqual(scale_color((200, 100, 50, 255), 180), (141, 70, 35, 255))

    def test_full_brightness_is_identity(self):
        for color in BASE_COLORS:
            self.assertEqual(scale_color(color, 255), color)

    def test_alpha_untouched(self):
        self.assertEqual(scale_color((10, 20, 30, 77), 0), (0, 0, 0, 77))


class BuildPaletteTests(unittest.TestCase):
    def test_size_and_layout(self):
        self.assertEqual(MAP_PALETTE.shape, (len(BASE_COLORS) * 4, 4))
        self.assertEqual(MAP_PALETTE.dtype, np.uint8)
        for base, color in enumerate(BASE_COLORS):
            for shade, mult in enumerate(MULTIPLIERS):
                self.assertEqual(tuple(MAP_PALETTE[palette_index(base, shade)]),
                                 scale_color(color, mult))

    def test_deterministic(self):
        a = build_palette(BASE_COLORS, MULTIPLIERS)
        b = build_palette(BASE_COLORS, MULTIPLIERS)
        self.assertTrue(np.array_equal(a, b))

    def test_known_entries(self):
        self.assertEqual(tuple(MAP_PALETTE[0]), (0, 0, 0, 0))
        # grass, shade 2 (x255) is the base color itself
        self.assertEqual(tuple(MAP_PALETTE[6]), (127, 178, 56, 255))
        # grass, shade 0 (x180)
        self.assertEqual(tuple(MAP_PALETTE[4]), (89, 125, 39, 255))

    def test_read_only(self):
        with self.assertRaises(ValueError):
            MAP_PALETTE[0, 0] = 1


if __name__ == '__main__':
    unittest.main()
