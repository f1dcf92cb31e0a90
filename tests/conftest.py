"""Shared test fixtures for HandDepth."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import numpy as np
import pytest

from handdepth.types import PalmDetection, Rect


class FakeRuntime:
    """In-memory InferenceRuntime with fixed shapes and a scripted model."""

    def __init__(
        self,
        input_shape: tuple[int | None, ...],
        output_shapes: list[tuple[int | None, ...]],
        model: Callable[[np.ndarray], list[np.ndarray]] | None = None,
    ) -> None:
        self.input_shape = input_shape
        self.output_shapes = output_shapes
        self.model = model
        self.inputs: dict[int, np.ndarray] = {}
        self.outputs: list[np.ndarray] = []
        self.invoke_count = 0
        self.closed = False

    def load(self, model: Any) -> None:
        pass

    def get_input_shape(self, index: int) -> tuple[int | None, ...]:
        return self.input_shape

    def get_output_shape(self, index: int) -> tuple[int | None, ...]:
        return self.output_shapes[index]

    def set_input_tensor(self, index: int, tensor: np.ndarray) -> None:
        self.inputs[index] = tensor.copy()

    def invoke(self) -> None:
        self.invoke_count += 1
        if self.model is not None:
            self.outputs = self.model(self.inputs[0])
        else:
            self.outputs = [np.zeros([d or 1 for d in s], dtype=np.float32) for s in self.output_shapes]

    def get_output_tensor(self, index: int) -> np.ndarray:
        if not self.outputs:
            raise RuntimeError("No outputs yet. Call invoke() first.")
        return self.outputs[index]

    def close(self) -> None:
        self.closed = True


class RecordingSink:
    """MeshSink that keeps the last geometry it received."""

    def __init__(self) -> None:
        self.calls = 0
        self.positions: np.ndarray | None = None
        self.colors: np.ndarray | None = None
        self.triangles: np.ndarray | None = None

    def update(self, positions: np.ndarray, colors: np.ndarray, triangles: np.ndarray) -> None:
        self.calls += 1
        self.positions = positions
        self.colors = colors
        self.triangles = triangles


def channel_mean_depth(tensor: np.ndarray) -> list[np.ndarray]:
    """Depth stand-in for an NCHW input: mean over channels, shape (1, H, W)."""
    return [tensor.mean(axis=1)]


@pytest.fixture
def depth_runtime() -> FakeRuntime:
    return FakeRuntime((1, 3, 8, 8), [(1, 8, 8)], model=channel_mean_depth)


@pytest.fixture
def landmark_runtime() -> FakeRuntime:
    def model(tensor: np.ndarray) -> list[np.ndarray]:
        return [np.zeros((1, 63), dtype=np.float32), np.array([[0.9]], dtype=np.float32)]

    return FakeRuntime((1, 16, 16, 3), [(1, 63), (1, 1)], model=model)


@pytest.fixture
def dummy_rgb_frame() -> np.ndarray:
    """Generate a dummy 480x640 RGB frame."""
    return np.random.default_rng(42).integers(0, 256, (480, 640, 3), dtype=np.uint8)


@pytest.fixture
def upright_palm() -> PalmDetection:
    """Palm box centred in the frame with the wrist below the middle finger."""
    keypoints = np.zeros((7, 2), dtype=np.float32)
    keypoints[0] = (0.5, 0.6)
    keypoints[2] = (0.5, 0.4)
    return PalmDetection(rect=Rect.from_center(0.5, 0.5, 0.2, 0.2), keypoints=keypoints, score=0.95)


def _tiny_onnx(build: Callable[[Any, Any], Any]) -> bytes:
    onnx = pytest.importorskip("onnx")
    model = build(onnx.helper, onnx.TensorProto)
    model.ir_version = 8
    onnx.checker.check_model(model)
    return model.SerializeToString()


@pytest.fixture
def depth_onnx_bytes() -> bytes:
    """NCHW (1, 3, 8, 8) → (1, 1, 8, 8) channel-mean model."""

    def build(helper: Any, tp: Any) -> Any:
        node = helper.make_node("ReduceMean", ["image"], ["depth"], axes=[1], keepdims=1)
        graph = helper.make_graph(
            [node],
            "tiny_depth",
            [helper.make_tensor_value_info("image", tp.FLOAT, [1, 3, 8, 8])],
            [helper.make_tensor_value_info("depth", tp.FLOAT, [1, 1, 8, 8])],
        )
        return helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])

    return _tiny_onnx(build)


@pytest.fixture
def landmark_onnx_bytes() -> bytes:
    """NHWC (1, 16, 16, 3) → constant (1, 63) landmarks at 127.5 and a 0.5 score."""

    def build(helper: Any, tp: Any) -> Any:
        nodes = [
            helper.make_node("ReduceSum", ["image"], ["total"], keepdims=1),
            helper.make_node("Reshape", ["total", "shape"], ["flat"]),
            helper.make_node("Mul", ["flat", "zero"], ["nothing"]),
            helper.make_node("Add", ["nothing", "joints"], ["landmarks"]),
            helper.make_node("Sigmoid", ["nothing"], ["score"]),
        ]
        initializers = [
            helper.make_tensor("shape", tp.INT64, [2], [1, 1]),
            helper.make_tensor("zero", tp.FLOAT, [1], [0.0]),
            helper.make_tensor("joints", tp.FLOAT, [1, 63], [127.5] * 63),
        ]
        graph = helper.make_graph(
            nodes,
            "tiny_landmarks",
            [helper.make_tensor_value_info("image", tp.FLOAT, [1, 16, 16, 3])],
            [
                helper.make_tensor_value_info("landmarks", tp.FLOAT, [1, 63]),
                helper.make_tensor_value_info("score", tp.FLOAT, [1, 1]),
            ],
            initializer=initializers,
        )
        return helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])

    return _tiny_onnx(build)


@pytest.fixture
def fake_runtime() -> type[FakeRuntime]:
    return FakeRuntime


@pytest.fixture
def mesh_sink() -> RecordingSink:
    return RecordingSink()
