import numpy as np
import pytest

DARK = (20, 20, 20)


@pytest.fixture
def dark_image():
    """Factory for a uniformly dark RGB image of the given size."""
    def make(width=100, height=100, color=DARK):
        img = np.zeros((height, width, 3), dtype=np.uint8)
        img[:, :] = color
        return img
    return make


@pytest.fixture
def ring_points():
    """Factory for a normalized 4-point iris ring around (cx, cy) in pixels."""
    def make(cx, cy, r, width, height):
        pixels = [(cx - r, cy), (cx + r, cy), (cx, cy - r), (cx, cy + r)]
        return [(x / width, y / height) for x, y in pixels]
    return make
