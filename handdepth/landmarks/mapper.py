"""Palm crop transforms and inverse mapping of landmark outputs.

The crop is built from a palm detection so the wrist-to-middle-finger axis
points "up" in the cropped image and the palm box, enlarged by a scale
factor, fills it. The same matrix drives the resampler and, inverted, maps
model outputs back to the detection's coordinate frame.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from loguru import logger

from handdepth.types import (
    JOINT_COUNT,
    MODEL_OUTPUT_SCALE,
    PALM_MIDDLE_BASE,
    PALM_WRIST,
    LandmarkDimension,
    UnsupportedModelError,
)
from handdepth.vision.transform import about_center, invert, multiply_point3x4, rotation_z, trs

if TYPE_CHECKING:
    from collections.abc import Sequence

    from handdepth.types import PalmDetection

DEFAULT_PALM_SHIFT = (0.0, -0.2)
DEFAULT_PALM_SCALE = 2.8


@dataclass(frozen=True, slots=True)
class CropTransform:
    """A palm crop and the parameters it was derived from.

    Attributes:
        matrix: 4x4 forward transform, detection space to crop space.
        rotation_deg: Rotation about Z in degrees.
        hand_scale: Side of the cropped square in detection units.
        center: Normalized crop centre after rotation and shift.
    """
    matrix: np.ndarray
    rotation_deg: float
    hand_scale: float
    center: tuple[float, float]

    def inverse(self) -> np.ndarray:
        return invert(self.matrix)

    def forward(self, points: np.ndarray) -> np.ndarray:
        """Map (..., 3) detection-space points into crop space."""
        return multiply_point3x4(self.matrix, points)


def derive_crop_transform(
    detection: PalmDetection,
    shift: Sequence[float] = DEFAULT_PALM_SHIFT,
    scale_factor: float = DEFAULT_PALM_SCALE,
    start_keypoint: int = PALM_WRIST,
    end_keypoint: int = PALM_MIDDLE_BASE,
) -> CropTransform:
    """Derive the crop transform for a palm detection.

    Args:
        detection: Palm box and keypoints.
        shift: Crop centre offset in units of the hand scale.
        scale_factor: Crop side relative to the larger box side.
        start_keypoint: Keypoint index at the base of the anchor vector.
        end_keypoint: Keypoint index at the tip of the anchor vector.

    Returns:
        The forward crop transform.

    Raises:
        ValueError: If the box is empty or the scale factor is not positive.
    """
    if scale_factor <= 0:
        raise ValueError(f"scale_factor must be positive, got {scale_factor}")

    vec = detection.keypoints[end_keypoint] - detection.keypoints[start_keypoint]
    rotation_deg = -(90.0 + math.degrees(math.atan2(float(vec[1]), float(vec[0]))))

    hand_scale = max(detection.rect.width, detection.rect.height) * scale_factor
    if hand_scale <= 0:
        raise ValueError(f"Palm box is empty: {detection.rect}")

    cx, cy = detection.rect.center
    center = multiply_point3x4(rotation_z(rotation_deg), np.array([cx - 0.5, cy - 0.5, 0.0]))[:2]
    center = (center + np.asarray(shift, dtype=np.float64) * hand_scale) / hand_scale

    matrix = about_center(
        trs(
            (-center[0], -center[1], 0.0),
            rotation_deg,
            (1.0 / hand_scale, -1.0 / hand_scale, 1.0),
        )
    )
    return CropTransform(
        matrix=matrix,
        rotation_deg=rotation_deg,
        hand_scale=hand_scale,
        center=(float(center[0]), float(center[1])),
    )


def map_output_to_source(
    transform: CropTransform | None,
    points: np.ndarray,
    input_scale: float = MODEL_OUTPUT_SCALE,
) -> np.ndarray:
    """Map model-space points back through the inverse crop transform.

    Args:
        transform: The crop the model input was resampled with.
        points: (..., 3) points in the model's native range.
        input_scale: Native range divisor, 255 for pixel outputs.

    Returns:
        (..., 3) float32 points in detection coordinates.

    Raises:
        RuntimeError: If no crop transform is supplied.
    """
    if transform is None:
        raise RuntimeError("No crop transform: a palm detection must be processed first")
    normalized = np.asarray(points, dtype=np.float64) / input_scale
    return multiply_point3x4(transform.inverse(), normalized).astype(np.float32)


class CoordinateMapper:
    """Derives palm crops and maps flat landmark outputs back to the source.

    The landmark dimensionality is fixed when the mapper is built from the
    model's declared output shape.

    Usage:
        >>> mapper = CoordinateMapper.from_output_shape((1, 63))
        >>> crop = mapper.derive_crop_transform(palm)
        >>> joints = mapper.map_landmarks(crop, raw_output)  # (21, 3)
    """

    def __init__(
        self,
        dimension: LandmarkDimension = LandmarkDimension.THREE,
        shift: Sequence[float] = DEFAULT_PALM_SHIFT,
        scale_factor: float = DEFAULT_PALM_SCALE,
        input_scale: float = MODEL_OUTPUT_SCALE,
    ) -> None:
        if scale_factor <= 0:
            raise ValueError(f"scale_factor must be positive, got {scale_factor}")
        self._dimension = dimension
        self._shift = (float(shift[0]), float(shift[1]))
        self._scale_factor = float(scale_factor)
        self._input_scale = input_scale
        self._points = np.zeros((JOINT_COUNT, 3), dtype=np.float64)

    @classmethod
    def from_output_shape(cls, shape: Sequence[int | None], **kwargs: object) -> CoordinateMapper:
        """Build a mapper for a landmark model output of shape ``[1, N]``.

        Raises:
            UnsupportedModelError: If N is not 21 * 2 or 21 * 3.
        """
        dimension = dimension_from_shape(shape)
        logger.info(f"Landmark model outputs {dimension.value}-D joints")
        return cls(dimension, **kwargs)  # type: ignore[arg-type]

    @property
    def dimension(self) -> LandmarkDimension:
        return self._dimension

    @property
    def shift(self) -> tuple[float, float]:
        return self._shift

    @property
    def scale_factor(self) -> float:
        return self._scale_factor

    def derive_crop_transform(self, detection: PalmDetection) -> CropTransform:
        return derive_crop_transform(detection, self._shift, self._scale_factor)

    def map_landmarks(self, transform: CropTransform | None, output: np.ndarray) -> np.ndarray:
        """Map a flat landmark output of length 21 * dims to (21, 3) joints."""
        if transform is None:
            raise RuntimeError("No crop transform: a palm detection must be processed first")
        dims = self._dimension.value
        flat = np.asarray(output).reshape(-1)
        if flat.size != JOINT_COUNT * dims:
            raise ValueError(f"Expected {JOINT_COUNT * dims} landmark values, got {flat.size}")

        self._points[:, :dims] = flat.reshape(JOINT_COUNT, dims)
        if dims == 2:
            self._points[:, 2] = 0.0
        return map_output_to_source(transform, self._points, self._input_scale)


def dimension_from_shape(shape: Sequence[int | None]) -> LandmarkDimension:
    """Pick the landmark dimensionality from an output shape ``[1, N]``."""
    if len(shape) == 2 and shape[1] == JOINT_COUNT * 2:
        return LandmarkDimension.TWO
    if len(shape) == 2 and shape[1] == JOINT_COUNT * 3:
        return LandmarkDimension.THREE
    raise UnsupportedModelError(
        f"Unsupported landmark output shape {tuple(shape)}; "
        f"expected [1, {JOINT_COUNT * 2}] or [1, {JOINT_COUNT * 3}]"
    )
