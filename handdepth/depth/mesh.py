"""Static triangulation of a regular point grid."""

from __future__ import annotations

import numpy as np


def build_triangles(width: int, height: int) -> np.ndarray:
    """Triangle indices for a ``width`` x ``height`` grid of points.

    Each cell (x, y) emits ``(ll, ul, ur)`` then ``(ll, ur, lr)`` where
    ``ul = y*width + x`` and ``ll`` is the point one row below.

    Returns:
        int32 array of length ``6 * (width - 1) * (height - 1)``.

    Raises:
        ValueError: If either dimension is not positive.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Grid size must be positive, got {width}x{height}")

    ys, xs = np.mgrid[0 : height - 1, 0 : width - 1]
    ul = ys * width + xs
    ur = ul + 1
    ll = ul + width
    lr = ll + 1
    return np.stack([ll, ul, ur, ll, ur, lr], axis=-1).reshape(-1).astype(np.int32)


class GridMesher:
    """Holds the triangle buffer for one grid size. Read-only once built."""

    def __init__(self, width: int, height: int) -> None:
        self._width = width
        self._height = height
        self._triangles = build_triangles(width, height)
        self._triangles.flags.writeable = False

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def triangles(self) -> np.ndarray:
        return self._triangles
