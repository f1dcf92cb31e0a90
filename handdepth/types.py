"""Shared types, protocols, and constants for HandDepth."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Protocol

import numpy as np

if TYPE_CHECKING:
    from pathlib import Path

    from numpy.typing import NDArray


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

JOINT_COUNT = 21
PALM_KEYPOINT_COUNT = 7
PALM_WRIST = 0
PALM_MIDDLE_BASE = 2
MODEL_OUTPUT_SCALE = 255.0


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class UnsupportedModelError(ValueError):
    """Raised at construction when a model declares a shape we cannot use."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class LandmarkDimension(Enum):
    TWO = 2
    THREE = 3


class TensorLayout(Enum):
    NHWC = "nhwc"
    NCHW = "nchw"


# ---------------------------------------------------------------------------
# Core Data Structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Rect:
    """Axis-aligned rectangle in normalized image coordinates."""
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width * 0.5, self.y + self.height * 0.5)

    @classmethod
    def from_center(cls, cx: float, cy: float, width: float, height: float) -> Rect:
        return cls(cx - width * 0.5, cy - height * 0.5, width, height)


@dataclass(frozen=True, slots=True)
class PalmDetection:
    """Palm box and reference keypoints from an upstream palm detector.

    Attributes:
        rect: Palm bounding box in normalized coordinates.
        keypoints: (K, 2) array of normalized [x, y] keypoints. Index 0 is the
            wrist centre and index 2 the base of the middle finger.
        score: Detector confidence [0, 1].
    """
    rect: Rect
    keypoints: NDArray[np.float32]
    score: float = 1.0

    def __post_init__(self) -> None:
        kp = self.keypoints
        if kp.ndim != 2 or kp.shape[1] != 2 or kp.shape[0] <= PALM_MIDDLE_BASE:
            raise ValueError(
                f"Expected (K, 2) keypoints with K > {PALM_MIDDLE_BASE}, got {kp.shape}"
            )


@dataclass(slots=True)
class HandLandmarkResult:
    """Hand landmarks mapped back into source coordinates.

    Owned by the predictor that produced it and overwritten on every call.

    Attributes:
        score: Hand presence score reported by the model.
        joints: (21, 3) array of [x, y, z]. Z is 0 for 2-D models.
    """
    score: float = 0.0
    joints: NDArray[np.float32] = field(
        default_factory=lambda: np.zeros((JOINT_COUNT, 3), dtype=np.float32)
    )


@dataclass(frozen=True, slots=True)
class PointCloud:
    """Views onto the buffers owned by a DepthFieldBuilder.

    Attributes:
        positions: (W*H, 3) float32 vertex positions.
        colors: (W*H, 3) float32 RGB colours in [0, 1] sampled from the frame.
        depth_colors: (W*H, 3) float32 pseudo-colour of the normalized depth.
        normalized: (W*H,) float32 depth rescaled to [0, 1].
        triangles: Static int32 triangle index buffer for the grid.
        width: Grid width in points.
        height: Grid height in points.
    """
    positions: NDArray[np.float32]
    colors: NDArray[np.float32]
    depth_colors: NDArray[np.float32]
    normalized: NDArray[np.float32]
    triangles: NDArray[np.int32]
    width: int
    height: int

    def depth_image(self) -> NDArray[np.uint8]:
        """Return the pseudo-coloured depth as an (H, W, 3) uint8 RGB image."""
        img = self.depth_colors.reshape(self.height, self.width, 3) * 255.0
        return np.clip(img, 0, 255).astype(np.uint8)


# ---------------------------------------------------------------------------
# Protocols (Interfaces)
# ---------------------------------------------------------------------------

class InferenceRuntime(Protocol):
    """Protocol for the inference engine collaborator."""

    def load(self, model: str | Path | bytes) -> None:
        """Load a model from disk or memory."""
        ...

    def get_input_shape(self, index: int) -> tuple[int | None, ...]:
        """Declared shape of input ``index``; unknown dims are None."""
        ...

    def get_output_shape(self, index: int) -> tuple[int | None, ...]:
        """Declared shape of output ``index``; unknown dims are None."""
        ...

    def set_input_tensor(self, index: int, tensor: np.ndarray) -> None:
        ...

    def invoke(self) -> None:
        """Run the model on the inputs set so far. Blocks until done."""
        ...

    def get_output_tensor(self, index: int) -> np.ndarray:
        ...

    def close(self) -> None:
        """Release resources."""
        ...


class ImagePredictor(Protocol):
    """Capability shared by every model that consumes a resampled frame."""

    @property
    def dtype(self) -> np.dtype:
        """Element type of the input tensor this predictor packs."""
        ...

    @property
    def input_size(self) -> tuple[int, int]:
        """Model input (width, height)."""
        ...

    def close(self) -> None:
        ...


class MeshSink(Protocol):
    """Receives point-cloud geometry for display. Rendering lives elsewhere."""

    def update(
        self,
        positions: NDArray[np.float32],
        colors: NDArray[np.float32],
        triangles: NDArray[np.int32],
    ) -> None:
        ...
