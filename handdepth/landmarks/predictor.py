"""Hand landmark predictor: palm crop → tensor → engine → source joints."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np
from loguru import logger

from handdepth.landmarks.mapper import (
    DEFAULT_PALM_SCALE,
    DEFAULT_PALM_SHIFT,
    CoordinateMapper,
    CropTransform,
)
from handdepth.types import HandLandmarkResult, LandmarkDimension, UnsupportedModelError
from handdepth.vision.resampler import AffineResampler, Interpolation
from handdepth.vision.tensor_packer import (
    PackConfig,
    PackMode,
    TensorPacker,
    infer_layout,
    to_model_layout,
)
from handdepth.vision.transform import AspectMode, texture_uv_rect

if TYPE_CHECKING:
    from collections.abc import Sequence

    from handdepth.types import InferenceRuntime, PalmDetection


@dataclass(frozen=True, slots=True)
class LandmarkInference:
    """Raw landmark output paired with the crop the input was made with.

    Attributes:
        landmarks: Flat model output, 21 * dims values in pixel units.
        score: Hand presence score.
        crop: Crop transform used to resample the model input.
    """
    landmarks: np.ndarray
    score: float
    crop: CropTransform


def _check_score_output(runtime: InferenceRuntime) -> None:
    """Output 1 must exist and hold one presence score (unknown dims count as 1)."""
    try:
        shape = runtime.get_output_shape(1)
    except IndexError as e:
        raise UnsupportedModelError("Landmark model has no presence score output (output 1)") from e
    if any(d is not None and d != 1 for d in shape):
        raise UnsupportedModelError(
            f"Presence score output must hold a single value, got shape {tuple(shape)}"
        )


class HandLandmarkPredictor:
    """Runs a 21-joint hand landmark model on a palm crop.

    The model's output 0 must have shape [1, 42] or [1, 63]; output 1 holds
    the hand presence score. Anything else fails here, not per frame.

    Usage:
        >>> predictor = HandLandmarkPredictor(runtime)
        >>> inference = predictor.invoke(rgb_frame, palm)
        >>> result = predictor.get_result(inference)
        >>> result.joints.shape
        (21, 3)
    """

    def __init__(
        self,
        runtime: InferenceRuntime,
        palm_shift: Sequence[float] = DEFAULT_PALM_SHIFT,
        palm_scale: float = DEFAULT_PALM_SCALE,
        pack_config: PackConfig | None = None,
        aspect_mode: AspectMode = AspectMode.FILL,
        interpolation: Interpolation = Interpolation.BILINEAR,
    ) -> None:
        self._runtime = runtime
        self._layout, self._width, self._height, channels = infer_layout(runtime.get_input_shape(0))
        self._mapper = CoordinateMapper.from_output_shape(
            runtime.get_output_shape(0),
            shift=palm_shift,
            scale_factor=palm_scale,
        )
        _check_score_output(runtime)
        config = pack_config or PackConfig(PackMode.UNIT_SCALE)
        self._packer = TensorPacker(
            PackConfig(config.mode, config.offset, config.scale, channels=channels)
        )
        self._resampler = AffineResampler(interpolation)
        self._aspect_mode = aspect_mode
        self._result = HandLandmarkResult()
        logger.debug(
            f"HandLandmarkPredictor ready | input {self._width}x{self._height} "
            f"{self._layout.value} | {self._mapper.dimension.value}-D"
        )

    @property
    def dtype(self) -> np.dtype:
        return self._packer.dtype

    @property
    def input_size(self) -> tuple[int, int]:
        return (self._width, self._height)

    @property
    def dimension(self) -> LandmarkDimension:
        return self._mapper.dimension

    @property
    def mapper(self) -> CoordinateMapper:
        return self._mapper

    def invoke(self, frame: np.ndarray, detection: PalmDetection | None = None) -> LandmarkInference:
        """Crop the palm region from ``frame`` and run the model on it.

        Args:
            frame: RGB image (H, W, 3|4), dtype uint8.
            detection: Palm detection in the frame's normalized coordinates.

        Returns:
            The raw output together with the crop it belongs to.

        Raises:
            RuntimeError: If no detection is given.
        """
        if detection is None:
            raise RuntimeError("HandLandmarkPredictor.invoke() requires a palm detection")

        crop = self._mapper.derive_crop_transform(detection)
        uv_rect = texture_uv_rect(
            frame.shape[1], frame.shape[0], self._width, self._height, self._aspect_mode
        )
        image = self._resampler.resize(frame, self._width, self._height, crop.matrix, uv_rect)
        tensor = self._packer.pack(image)

        self._runtime.set_input_tensor(0, to_model_layout(tensor, self._layout))
        self._runtime.invoke()
        landmarks = np.array(self._runtime.get_output_tensor(0), dtype=np.float32).reshape(-1)
        score = float(np.asarray(self._runtime.get_output_tensor(1)).reshape(-1)[0])

        return LandmarkInference(landmarks=landmarks, score=score, crop=crop)

    def get_result(self, inference: LandmarkInference | None) -> HandLandmarkResult:
        """Map an inference back into source coordinates.

        The returned object is reused; its previous contents are overwritten.

        Raises:
            RuntimeError: If ``inference`` is None.
        """
        if inference is None:
            raise RuntimeError("No landmark inference to map. Call invoke() with a detection first.")
        joints = self._mapper.map_landmarks(inference.crop, inference.landmarks)
        np.copyto(self._result.joints, joints)
        self._result.score = inference.score
        return self._result

    def predict(self, frame: np.ndarray, detection: PalmDetection) -> HandLandmarkResult:
        return self.get_result(self.invoke(frame, detection))

    def close(self) -> None:
        self._runtime.close()

    def __enter__(self) -> HandLandmarkPredictor:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
