"""Monocular depth predictor: frame → tensor → engine → point cloud."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np
from loguru import logger

from handdepth.depth.field_builder import DepthFieldBuilder
from handdepth.vision.resampler import AffineResampler, Interpolation, ResizeOptions
from handdepth.vision.tensor_packer import (
    PackConfig,
    PackMode,
    TensorPacker,
    infer_layout,
    to_model_layout,
)
from handdepth.vision.transform import AspectMode

if TYPE_CHECKING:
    from collections.abc import Sequence

    from handdepth.types import InferenceRuntime, PointCloud


def output_grid_size(shape: Sequence[int | None], fallback: tuple[int, int]) -> tuple[int, int]:
    """(width, height) of a depth output such as [1, H, W] or [1, 1, H, W].

    Falls back to ``fallback`` when the spatial dims are not fixed.
    """
    dims = [d for d in shape[1:] if d != 1]
    if len(dims) == 2 and all(isinstance(d, int) and d > 0 for d in dims):
        return dims[1], dims[0]  # type: ignore[return-value]
    return fallback


class DepthPredictor:
    """Runs a depth model on whole frames and builds a point cloud.

    The input resolution and layout come from the model's declared input
    shape. The point cloud has one point per output pixel; its colours are
    sampled from the same resampled frame the model saw.

    Usage:
        >>> predictor = DepthPredictor(runtime)
        >>> cloud = predictor.invoke(rgb_frame)
        >>> sink.update(cloud.positions, cloud.colors, cloud.triangles)
    """

    def __init__(
        self,
        runtime: InferenceRuntime,
        aspect_mode: AspectMode = AspectMode.FILL,
        interpolation: Interpolation = Interpolation.BILINEAR,
        pack_config: PackConfig | None = None,
        rotation_deg: float = 0.0,
        flip_x: bool = False,
        flip_y: bool = False,
    ) -> None:
        self._runtime = runtime
        self._layout, width, height, channels = infer_layout(runtime.get_input_shape(0))
        self._options = ResizeOptions(
            width=width,
            height=height,
            aspect_mode=aspect_mode,
            rotation_deg=rotation_deg,
            flip_x=flip_x,
            flip_y=flip_y,
            interpolation=interpolation,
        )
        config = pack_config or PackConfig(PackMode.UNIT_SCALE)
        self._packer = TensorPacker(
            PackConfig(config.mode, config.offset, config.scale, channels=channels)
        )
        self._resampler = AffineResampler(interpolation)
        self._color_resampler = AffineResampler(interpolation)

        out_w, out_h = output_grid_size(runtime.get_output_shape(0), (width, height))
        self._builder = DepthFieldBuilder(out_w, out_h)
        logger.debug(
            f"DepthPredictor ready | input {width}x{height} {self._layout.value} | "
            f"cloud {out_w}x{out_h}"
        )

    @property
    def dtype(self) -> np.dtype:
        return self._packer.dtype

    @property
    def input_size(self) -> tuple[int, int]:
        return (self._options.width, self._options.height)

    @property
    def output_size(self) -> tuple[int, int]:
        return (self._builder.width, self._builder.height)

    @property
    def resize_options(self) -> ResizeOptions:
        return self._options

    @property
    def triangles(self) -> np.ndarray:
        return self._builder.triangles

    @property
    def input_image(self) -> np.ndarray | None:
        """The most recent resampled model input."""
        return self._resampler.buffer

    def invoke(self, frame: np.ndarray) -> PointCloud:
        """Run the depth model on an RGB frame and rebuild the point cloud.

        Args:
            frame: RGB image (H, W, 3|4), dtype uint8.

        Returns:
            Point cloud views, overwritten by the next call.
        """
        image, _ = self._resampler.resize_with_options(frame, self._options)
        tensor = self._packer.pack(image)

        self._runtime.set_input_tensor(0, to_model_layout(tensor, self._layout))
        self._runtime.invoke()
        depth = self._runtime.get_output_tensor(0)

        out_w, out_h = self.output_size
        color = image
        if (out_w, out_h) != self.input_size:
            color = self._color_resampler.resize(image, out_w, out_h)

        # Rendering uses bottom-up rows
        return self._builder.build(depth, color[::-1])

    def close(self) -> None:
        self._runtime.close()

    def __enter__(self) -> DepthPredictor:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
