"""Affine resampling of frames into fixed-size model inputs.

Every output pixel centre ``q`` is pulled back through the inverse of the
vertex transform, shifted into the source UV rectangle and sampled from the
source with OpenCV's ``remap``. Sampling is bilinear by default; nearest is
available. Source positions outside the UV rectangle's [0, 1] range are
written as zero, which is how FIT mode letterboxes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import cv2
import numpy as np

from handdepth.vision.transform import (
    FULL_UV,
    AspectMode,
    ImageTransform,
    UVRect,
    identity,
    invert,
    texture_uv_rect,
    vertex_transform,
)


class Interpolation(Enum):
    NEAREST = cv2.INTER_NEAREST
    BILINEAR = cv2.INTER_LINEAR


@dataclass(frozen=True, slots=True)
class ResizeOptions:
    """Configuration for a default (non-crop) resize.

    Attributes:
        width: Output width in pixels.
        height: Output height in pixels.
        aspect_mode: FILL stretches, FIT letterboxes, CROP crops centrally.
        rotation_deg: Rotation about the image centre, any angle.
        flip_x: Mirror horizontally.
        flip_y: Mirror vertically.
        interpolation: Sampling filter.
    """
    width: int
    height: int
    aspect_mode: AspectMode = AspectMode.FILL
    rotation_deg: float = 0.0
    flip_x: bool = False
    flip_y: bool = False
    interpolation: Interpolation = Interpolation.BILINEAR

    def __post_init__(self) -> None:
        _validate_size(self.width, self.height)


def _validate_size(width: int, height: int) -> None:
    if width <= 0 or height <= 0:
        raise ValueError(f"Resize target must be positive, got {width}x{height}")


class AffineResampler:
    """Resamples arbitrary-size images into an owned, reused output buffer.

    The buffer is reallocated only when the requested size (or channel
    count) changes. Callers must copy the result if they need it beyond the
    next call. Not reentrant.

    Usage:
        >>> resampler = AffineResampler()
        >>> small = resampler.resize(frame, 224, 224)
        >>> rotated, used = resampler.resize_with_options(
        ...     frame, ResizeOptions(224, 224, rotation_deg=90)
        ... )
    """

    def __init__(self, interpolation: Interpolation = Interpolation.BILINEAR) -> None:
        self._interpolation = interpolation
        self._buffer: np.ndarray | None = None
        self._grid: tuple[np.ndarray, np.ndarray] | None = None

    @property
    def interpolation(self) -> Interpolation:
        return self._interpolation

    @property
    def buffer(self) -> np.ndarray | None:
        return self._buffer

    def ensure_capacity(self, width: int, height: int, channels: int = 3) -> np.ndarray:
        """Return the output buffer, reallocating only if its shape differs."""
        _validate_size(width, height)
        shape = (height, width) if channels == 0 else (height, width, channels)
        if self._buffer is None or self._buffer.shape != shape:
            self._buffer = np.zeros(shape, dtype=np.uint8)
            self._grid = None
        return self._buffer

    def resize(
        self,
        source: np.ndarray,
        width: int,
        height: int,
        transform: np.ndarray | None = None,
        uv_rect: UVRect | None = None,
        interpolation: Interpolation | None = None,
    ) -> np.ndarray:
        """Resample ``source`` into a ``width`` x ``height`` image.

        Args:
            source: (H, W) or (H, W, C) uint8 image. Never modified.
            width: Output width.
            height: Output height.
            transform: 4x4 vertex transform mapping source to output
                coordinates. Identity when None.
            uv_rect: Source sub-rectangle. Full image when None.
            interpolation: Overrides the resampler's default filter.

        Returns:
            The resampler's output buffer, (height, width[, C]) uint8.

        Raises:
            ValueError: If the size is not positive or the source is invalid.
        """
        _validate_size(width, height)
        src = self._validate(source)
        matrix = identity() if transform is None else np.asarray(transform, dtype=np.float64)
        if matrix.shape != (4, 4):
            raise ValueError(f"Expected a 4x4 transform, got shape {matrix.shape}")
        uv = uv_rect or FULL_UV
        filt = self._interpolation if interpolation is None else interpolation

        channels = 0 if src.ndim == 2 else src.shape[2]
        out = self.ensure_capacity(width, height, channels)

        # Pull output pixel centres back into the source (z = 0)
        inv = invert(matrix)
        qx, qy = self._output_grid(width, height)
        px = inv[0, 0] * qx + inv[0, 1] * qy + inv[0, 3]
        py = inv[1, 0] * qx + inv[1, 1] * qy + inv[1, 3]
        u, v = uv.apply(px, py)

        src_h, src_w = src.shape[:2]
        map_x = (u * src_w - 0.5).astype(np.float32)
        map_y = (v * src_h - 0.5).astype(np.float32)

        cv2.remap(
            src,
            map_x,
            map_y,
            interpolation=filt.value,
            dst=out,
            borderMode=cv2.BORDER_REPLICATE,
        )

        outside = (u < 0.0) | (u > 1.0) | (v < 0.0) | (v > 1.0)
        if outside.any():
            out[outside] = 0
        return out

    def resize_with_options(
        self,
        source: np.ndarray,
        options: ResizeOptions,
    ) -> tuple[np.ndarray, ImageTransform]:
        """Resize with flips, rotation and aspect handling from ``options``.

        Returns:
            Tuple of the output buffer and the transform that produced it.
        """
        src = self._validate(source)
        used = ImageTransform(
            matrix=vertex_transform(options.rotation_deg, options.flip_x, options.flip_y),
            uv_rect=texture_uv_rect(
                src.shape[1], src.shape[0], options.width, options.height, options.aspect_mode
            ),
        )
        out = self.resize(
            src,
            options.width,
            options.height,
            used.matrix,
            used.uv_rect,
            interpolation=options.interpolation,
        )
        return out, used

    def _validate(self, source: np.ndarray) -> np.ndarray:
        """Validate input image and make it contiguous for OpenCV."""
        if source is None:
            raise ValueError("Source image is None")
        if source.ndim not in (2, 3) or (source.ndim == 3 and source.shape[2] > 4):
            raise ValueError(f"Expected (H, W) or (H, W, C<=4) image, got shape {source.shape}")
        if source.size == 0:
            raise ValueError("Source image is empty")
        if source.dtype != np.uint8:
            raise ValueError(f"Expected uint8 image, got {source.dtype}")
        return np.ascontiguousarray(source)

    def _output_grid(self, width: int, height: int) -> tuple[np.ndarray, np.ndarray]:
        """Normalized output pixel centres, cached while the size is unchanged."""
        if self._grid is None or self._grid[0].shape != (height, width):
            xs = (np.arange(width, dtype=np.float64) + 0.5) / width
            ys = (np.arange(height, dtype=np.float64) + 0.5) / height
            self._grid = (
                np.broadcast_to(xs[None, :], (height, width)),
                np.broadcast_to(ys[:, None], (height, width)),
            )
        return self._grid
