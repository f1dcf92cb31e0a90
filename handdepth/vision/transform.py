"""Homogeneous 4x4 transforms and UV rectangles for affine resampling.

Matrices act on column vectors ``[x, y, z, 1]`` in normalized image
coordinates: ``u`` grows with the column index and ``v`` with the row index,
so the centre of pixel ``(r, c)`` in a W x H image is
``((c + 0.5) / W, (r + 0.5) / H)``.

Rotation is about the Z (depth) axis, counter-clockwise for positive
degrees when X points right and Y points up.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np


class AspectMode(Enum):
    """How a source of a different aspect ratio fills the output."""

    FILL = "fill"  # Stretch both axes independently
    FIT = "fit"  # Preserve aspect, pad (letterbox)
    CROP = "crop"  # Preserve aspect, crop the overflow


@dataclass(frozen=True, slots=True)
class UVRect:
    """Source sub-rectangle in normalized [0, 1] coordinates.

    A point ``p`` produced by the inverse vertex transform samples the source
    at ``(x + p.x * width, y + p.y * height)``. Regions outside [0, 1] are
    padding.
    """
    x: float = 0.0
    y: float = 0.0
    width: float = 1.0
    height: float = 1.0

    def apply(self, u: np.ndarray, v: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        return self.x + u * self.width, self.y + v * self.height


FULL_UV = UVRect()


@dataclass(frozen=True, slots=True)
class ImageTransform:
    """The exact transform a resampled image was produced with."""
    matrix: np.ndarray
    uv_rect: UVRect = FULL_UV


# ----- Matrix builders -----

def identity() -> np.ndarray:
    return np.eye(4, dtype=np.float64)


def translate(x: float, y: float, z: float = 0.0) -> np.ndarray:
    m = np.eye(4, dtype=np.float64)
    m[:3, 3] = (x, y, z)
    return m


def rotation_z(degrees: float) -> np.ndarray:
    rad = np.deg2rad(degrees)
    c, s = np.cos(rad), np.sin(rad)
    m = np.eye(4, dtype=np.float64)
    m[0, 0], m[0, 1] = c, -s
    m[1, 0], m[1, 1] = s, c
    return m


def scale(x: float, y: float, z: float = 1.0) -> np.ndarray:
    return np.diag([x, y, z, 1.0]).astype(np.float64)


def trs(
    translation: tuple[float, float, float],
    rotation_deg: float,
    scaling: tuple[float, float, float],
) -> np.ndarray:
    """Translation * Rotation * Scale, applied to a point right to left."""
    return translate(*translation) @ rotation_z(rotation_deg) @ scale(*scaling)


PUSH_MATRIX = translate(0.5, 0.5)
POP_MATRIX = translate(-0.5, -0.5)


def about_center(m: np.ndarray) -> np.ndarray:
    """Make ``m`` act around the image centre (0.5, 0.5) instead of the origin."""
    return PUSH_MATRIX @ m @ POP_MATRIX


def vertex_transform(rotation_deg: float = 0.0, flip_x: bool = False, flip_y: bool = False) -> np.ndarray:
    """Default resize transform: flips and rotation about the image centre."""
    flips = (-1.0 if flip_x else 1.0, -1.0 if flip_y else 1.0, 1.0)
    return about_center(trs((0.0, 0.0, 0.0), rotation_deg, flips))


def multiply_point3x4(m: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Apply the affine part of ``m`` to (..., 3) points (no projective divide)."""
    pts = np.asarray(points, dtype=np.float64)
    result: np.ndarray = pts @ m[:3, :3].T + m[:3, 3]
    return result


def invert(m: np.ndarray) -> np.ndarray:
    """Inverse of an affine 4x4 matrix.

    Raises:
        ValueError: If the linear part is singular.
    """
    linear = m[:3, :3]
    if abs(np.linalg.det(linear)) < 1e-12:
        raise ValueError("Transform is singular and cannot be inverted")
    inv_linear = np.linalg.inv(linear)
    result = np.eye(4, dtype=np.float64)
    result[:3, :3] = inv_linear
    result[:3, 3] = -inv_linear @ m[:3, 3]
    return result


# ----- Aspect handling -----

def texture_uv_rect(
    src_width: int,
    src_height: int,
    dst_width: int,
    dst_height: int,
    mode: AspectMode,
) -> UVRect:
    """UV rectangle mapping a source onto a destination for ``mode``."""
    if mode is AspectMode.FILL:
        return FULL_UV

    src_aspect = src_width / src_height
    dst_aspect = dst_width / dst_height

    if mode is AspectMode.FIT:
        if src_aspect > dst_aspect:
            s = src_aspect / dst_aspect
            return UVRect(0.0, (1.0 - s) / 2.0, 1.0, s)
        s = dst_aspect / src_aspect
        return UVRect((1.0 - s) / 2.0, 0.0, s, 1.0)

    # CROP
    if src_aspect > dst_aspect:
        s = dst_aspect / src_aspect
        return UVRect((1.0 - s) / 2.0, 0.0, s, 1.0)
    s = src_aspect / dst_aspect
    return UVRect(0.0, (1.0 - s) / 2.0, 1.0, s)
