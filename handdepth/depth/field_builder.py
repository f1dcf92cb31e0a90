"""Depth field normalization and point-cloud assembly.

The geometry is a relief for visualization: X and Y come from the pixel
grid scaled into roughly a unit square (the 0.9 factor is kept as-is) and Z
is the min/max normalized depth. It is not a calibrated reconstruction.
"""

from __future__ import annotations

import numpy as np

from handdepth.depth.mesh import GridMesher
from handdepth.types import PointCloud

GRID_EXTENT = 0.9
DEPTH_COLOR_WEIGHTS = (1.0, 0.59, 0.11)


class DepthFieldBuilder:
    """Turns a flat depth output into a coloured point cloud.

    All arrays are allocated once for the grid size and overwritten by
    every ``build``. The returned PointCloud holds views onto them.

    Usage:
        >>> builder = DepthFieldBuilder(224, 224)
        >>> cloud = builder.build(depth_output, render_rgb)
        >>> cloud.positions.shape
        (50176, 3)
    """

    def __init__(self, width: int, height: int, mesher: GridMesher | None = None) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"Depth field size must be positive, got {width}x{height}")
        self._width = width
        self._height = height
        self._mesher = mesher or GridMesher(width, height)
        if (self._mesher.width, self._mesher.height) != (width, height):
            raise ValueError("Mesher grid does not match the depth field size")

        n = width * height
        self._normalized = np.zeros(n, dtype=np.float32)
        self._depth_colors = np.zeros((n, 3), dtype=np.float32)
        self._colors = np.zeros((n, 3), dtype=np.float32)
        self._positions = np.zeros((n, 3), dtype=np.float32)

        ys, xs = np.divmod(np.arange(n), width)
        self._positions[:, 0] = xs / (width / GRID_EXTENT)
        self._positions[:, 1] = ys / (height / GRID_EXTENT)
        self._built = False

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def triangles(self) -> np.ndarray:
        return self._mesher.triangles

    @property
    def point_cloud(self) -> PointCloud:
        """The latest point cloud.

        Raises:
            RuntimeError: Before the first ``build``.
        """
        if not self._built:
            raise RuntimeError("No depth field built yet. Call build() first.")
        return PointCloud(
            positions=self._positions,
            colors=self._colors,
            depth_colors=self._depth_colors,
            normalized=self._normalized,
            triangles=self._mesher.triangles,
            width=self._width,
            height=self._height,
        )

    def build(self, depth_values: np.ndarray, color_image: np.ndarray) -> PointCloud:
        """Normalize ``depth_values`` and rebuild positions and colours.

        Args:
            depth_values: W*H depth or disparity values, row-major.
            color_image: (H, W, C>=3) uint8 image in render order, i.e. the
                bottom row first. Point (x, y) takes ``color_image[H - y - 1, x]``.

        Returns:
            The updated point cloud.

        Raises:
            ValueError: If sizes do not match the grid.
        """
        n = self._width * self._height
        depth = np.asarray(depth_values, dtype=np.float32).reshape(-1)
        if depth.size != n:
            raise ValueError(f"Expected {n} depth values, got {depth.size}")
        if color_image.shape[:2] != (self._height, self._width) or color_image.ndim != 3 or color_image.shape[2] < 3:
            raise ValueError(
                f"Expected ({self._height}, {self._width}, C>=3) colour image, got {color_image.shape}"
            )

        self.normalize(depth, out=self._normalized)

        np.multiply(self._normalized[:, None], DEPTH_COLOR_WEIGHTS, out=self._depth_colors, dtype=np.float32)
        self._positions[:, 2] = self._normalized

        flipped = color_image[::-1, :, :3].reshape(n, 3)
        np.divide(flipped, np.float32(255.0), out=self._colors, dtype=np.float32)

        self._built = True
        return self.point_cloud

    @staticmethod
    def normalize(depth: np.ndarray, out: np.ndarray | None = None) -> np.ndarray:
        """Rescale to [0, 1] with the observed min/max.

        A degenerate (or non-finite) range yields all zeros; NaN samples
        become zero.
        """
        if out is None:
            out = np.empty(depth.shape, dtype=np.float32)
        if depth.size == 0 or np.isnan(depth).all():
            out.fill(0.0)
            return out

        lo = np.nanmin(depth)
        hi = np.nanmax(depth)
        span = float(hi) - float(lo)
        if not np.isfinite(span) or span <= 0.0:
            out.fill(0.0)
            return out

        np.subtract(depth, lo, out=out, dtype=np.float32)
        out /= np.float32(span)
        np.nan_to_num(out, copy=False, nan=0.0)
        return out
