"""Pixel-to-tensor packing for model inputs.

Tensors are indexed ``[y, x, c]`` with the row first, matching the image
buffer. Each rule is a pure function of the source pixel.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

import numpy as np

from handdepth.types import TensorLayout, UnsupportedModelError

if TYPE_CHECKING:
    from collections.abc import Sequence

_CHANNEL_COUNTS = (1, 3, 4)


class PackMode(Enum):
    """Available pixel normalization rules."""

    RAW = auto()  # Unsigned byte, 0-255
    UNIT_SCALE = auto()  # p / 255
    OFFSET_SCALE = auto()  # (p - offset) * scale
    SIGNED_BYTE = auto()  # Two's-complement reinterpretation


_DTYPES = {
    PackMode.RAW: np.dtype(np.uint8),
    PackMode.UNIT_SCALE: np.dtype(np.float32),
    PackMode.OFFSET_SCALE: np.dtype(np.float32),
    PackMode.SIGNED_BYTE: np.dtype(np.int8),
}


@dataclass(frozen=True, slots=True)
class PackConfig:
    """Configuration for tensor packing.

    Attributes:
        mode: Normalization rule.
        offset: Subtracted before scaling (OFFSET_SCALE only).
        scale: Multiplier after the offset (OFFSET_SCALE only).
        channels: Leading channels to keep; alpha is dropped by default.
    """
    mode: PackMode = PackMode.UNIT_SCALE
    offset: float = 0.0
    scale: float = 1.0
    channels: int = 3

    @property
    def dtype(self) -> np.dtype:
        return _DTYPES[self.mode]


def pack(
    image: np.ndarray,
    config: PackConfig | None = None,
    out: np.ndarray | None = None,
) -> np.ndarray:
    """Convert a uint8 image into a ``(H, W, channels)`` tensor.

    Args:
        image: (H, W, C) uint8 image with C >= ``config.channels``.
        config: Packing rule. UNIT_SCALE when None.
        out: Optional destination with the right shape and dtype.

    Returns:
        The packed tensor (``out`` when given).

    Raises:
        ValueError: If the image or destination is invalid.
    """
    config = config or PackConfig()
    if image.ndim != 3 or image.shape[2] < config.channels:
        raise ValueError(
            f"Expected (H, W, C>={config.channels}) image, got shape {image.shape}"
        )
    if image.dtype != np.uint8:
        raise ValueError(f"Expected uint8 image, got {image.dtype}")

    pixels = image[:, :, : config.channels]
    shape = pixels.shape
    if out is None:
        out = np.empty(shape, dtype=config.dtype)
    elif out.shape != shape or out.dtype != config.dtype:
        raise ValueError(
            f"Output buffer {out.shape}/{out.dtype} does not match {shape}/{config.dtype}"
        )

    if config.mode is PackMode.RAW:
        np.copyto(out, pixels)
    elif config.mode is PackMode.SIGNED_BYTE:
        np.copyto(out, np.ascontiguousarray(pixels).view(np.int8))
    elif config.mode is PackMode.UNIT_SCALE:
        np.divide(pixels, np.float32(255.0), out=out, dtype=np.float32)
    else:
        np.subtract(pixels, np.float32(config.offset), out=out, dtype=np.float32)
        out *= np.float32(config.scale)
    return out


def infer_layout(shape: Sequence[int | None]) -> tuple[TensorLayout, int, int, int]:
    """Read (layout, width, height, channels) from a declared image input shape.

    Channels-last is assumed whenever the last axis looks like channels.

    Raises:
        UnsupportedModelError: If the shape is not a fixed 4-D image shape.
    """
    if len(shape) != 4 or any(not isinstance(d, int) or d <= 0 for d in shape[1:]):
        raise UnsupportedModelError(f"Expected a fixed [N, H, W, C] or [N, C, H, W] input, got {tuple(shape)}")
    _, a, b, c = shape
    if c in _CHANNEL_COUNTS:
        return TensorLayout.NHWC, b, a, c  # type: ignore[return-value]
    if a in _CHANNEL_COUNTS:
        return TensorLayout.NCHW, c, b, a  # type: ignore[return-value]
    raise UnsupportedModelError(f"Cannot find a channel axis in input shape {tuple(shape)}")


def to_model_layout(tensor: np.ndarray, layout: TensorLayout) -> np.ndarray:
    """Add the batch axis and reorder channels for the engine's input layout."""
    if layout is TensorLayout.NCHW:
        return np.ascontiguousarray(tensor.transpose(2, 0, 1))[None]
    return tensor[None]


class TensorPacker:
    """Packs images into an owned tensor reused across frames.

    The packing strategy is fixed at construction. Only the vectorized CPU
    path exists; it is reentrant as a function but the owned buffer is
    overwritten on every call.

    Usage:
        >>> packer = TensorPacker(PackConfig(PackMode.OFFSET_SCALE, 127.5, 1 / 127.5))
        >>> tensor = packer.pack(resized)  # (H, W, 3) float32 in [-1, 1]
    """

    def __init__(self, config: PackConfig | None = None) -> None:
        self._config = config or PackConfig()
        self._buffer: np.ndarray | None = None

    @property
    def config(self) -> PackConfig:
        return self._config

    @property
    def dtype(self) -> np.dtype:
        return self._config.dtype

    def ensure_capacity(self, width: int, height: int) -> np.ndarray:
        shape = (height, width, self._config.channels)
        if self._buffer is None or self._buffer.shape != shape:
            self._buffer = np.empty(shape, dtype=self._config.dtype)
        return self._buffer

    def pack(self, image: np.ndarray) -> np.ndarray:
        out = self.ensure_capacity(image.shape[1], image.shape[0])
        return pack(image, self._config, out=out)
