"""Map item color palette.

Map items store one byte per pixel. The byte selects a base color and a
shade: index = base * 4 + shade. Each shade multiplies the RGB channels of
the base color by a fixed brightness value (alpha is left alone), so the
full palette is 62 base colors x 4 shades = 248 RGBA entries.

Base 0 is fully transparent (unexplored map area).
"""

import numpy as np

BASE_COLORS = [
    (0, 0, 0, 0),
    (127, 178, 56, 255),
    (247, 233, 163, 255),
    (199, 199, 199, 255),
    (255, 0, 0, 255),
    (160, 160, 255, 255),
    (167, 167, 167, 255),
    (0, 124, 0, 255),
    (255, 255, 255, 255),
    (164, 168, 184, 255),
    (151, 109, 77, 255),
    (112, 112, 112, 255),
    (64, 64, 255, 255),
    (143, 119, 72, 255),
    (255, 252, 245, 255),
    (216, 127, 51, 255),
    (178, 76, 216, 255),
    (102, 153, 216, 255),
    (229, 229, 51, 255),
    (127, 204, 25, 255),
    (242, 127, 165, 255),
    (76, 76, 76, 255),
    (153, 153, 153, 255),
    (76, 127, 153, 255),
    (127, 63, 178, 255),
    (51, 76, 178, 255),
    (102, 76, 51, 255),
    (102, 127, 51, 255),
    (153, 51, 51, 255),
    (25, 25, 25, 255),
    (250, 238, 77, 255),
    (92, 219, 213, 255),
    (74, 128, 255, 255),
    (0, 217, 58, 255),
    (129, 86, 49, 255),
    (112, 2, 0, 255),
    (209, 177, 161, 255),
    (159, 82, 36, 255),
    (149, 87, 108, 255),
    (112, 108, 138, 255),
    (186, 133, 36, 255),
    (103, 117, 53, 255),
    (160, 77, 78, 255),
    (57, 41, 35, 255),
    (135, 107, 98, 255),
    (87, 92, 92, 255),
    (122, 73, 88, 255),
    (76, 62, 92, 255),
    (76, 50, 35, 255),
    (76, 82, 42, 255),
    (142, 60, 46, 255),
    (37, 22, 16, 255),
    (189, 48, 49, 255),
    (148, 63, 97, 255),
    (92, 25, 29, 255),
    (22, 126, 134, 255),
    (58, 142, 140, 255),
    (86, 44, 62, 255),
    (20, 180, 133, 255),
    (100, 100, 100, 255),
    (216, 175, 147, 255),
    (127, 167, 150, 255),
]

# Shade order matters: palette index = base * 4 + shade
MULTIPLIERS = (180, 220, 255, 135)


def scale_color(pixel, multiplier):
    """Darken an RGBA pixel by multiplier/255, flooring each RGB channel."""
    r, g, b, a = pixel
    return (r * multiplier // 255, g * multiplier // 255, b * multiplier // 255, a)


def build_palette(base_colors, multipliers):
    """Expand base colors x multipliers into a read-only (N*4, 4) uint8 array."""
    entries = []
    for color in base_colors:
        for multiplier in multipliers:
            entries.append(scale_color(color, multiplier))
    palette = np.array(entries, dtype=np.uint8).reshape(-1, 4)
    palette.flags.writeable = False
    return palette


def palette_index(base, shade):
    return base * len(MULTIPLIERS) + shade


MAP_PALETTE = build_palette(BASE_COLORS, MULTIPLIERS)
