"""Per-frame vision pipeline.

Orchestrates both paths over a shared frame: frame → resample → tensor →
engine → either point cloud (depth path) or source-space hand joints
(landmark path).

Single-threaded and synchronous: each stage runs once per frame in order
and engine calls block. Not safe to call from several threads at once.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import numpy as np
from loguru import logger

from handdepth.config import Settings
from handdepth.depth.predictor import DepthPredictor
from handdepth.inference.onnx_runtime import ONNXInferenceRuntime
from handdepth.landmarks.mapper import DEFAULT_PALM_SCALE, DEFAULT_PALM_SHIFT
from handdepth.landmarks.predictor import HandLandmarkPredictor
from handdepth.types import HandLandmarkResult, InferenceRuntime, MeshSink, PalmDetection, PointCloud
from handdepth.vision.resampler import Interpolation
from handdepth.vision.tensor_packer import PackConfig
from handdepth.vision.transform import AspectMode

RuntimeFactory = Callable[[str], InferenceRuntime]
_P = TypeVar("_P", DepthPredictor, HandLandmarkPredictor)


@dataclass
class PipelineConfig:
    """Configuration for the vision pipeline.

    Attributes:
        depth_model_path: Depth model; the depth path is disabled when None.
        landmark_model_path: Landmark model; the hand path is disabled when None.
        depth_aspect_mode: How frames fill the depth model input.
        hand_aspect_mode: UV aspect handling for the palm crop.
        interpolation: Resampling filter for both paths.
        pack_config: Input normalization for both models.
        palm_shift: Palm crop centre offset, in hand-scale units.
        palm_scale: Palm crop size relative to the palm box.
        num_threads: ONNX Runtime intra-op threads.
        providers: ONNX Runtime execution providers; auto when empty.
    """
    depth_model_path: str | None = None
    landmark_model_path: str | None = None
    depth_aspect_mode: AspectMode = AspectMode.FILL
    hand_aspect_mode: AspectMode = AspectMode.FILL
    interpolation: Interpolation = Interpolation.BILINEAR
    pack_config: PackConfig = field(default_factory=PackConfig)
    palm_shift: tuple[float, float] = DEFAULT_PALM_SHIFT
    palm_scale: float = DEFAULT_PALM_SCALE
    num_threads: int = 2
    providers: list[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls, config: Settings) -> PipelineConfig:
        return cls(
            depth_model_path=config.depth_model_path,
            landmark_model_path=config.landmark_model_path,
            depth_aspect_mode=config.depth_aspect_mode,
            hand_aspect_mode=config.hand_aspect_mode,
            interpolation=config.resample_interpolation,
            pack_config=config.pack_config,
            palm_shift=config.palm_shift,
            palm_scale=config.palm_scale,
            num_threads=config.onnx_num_threads,
            providers=list(config.onnx_providers),
        )


@dataclass(frozen=True, slots=True)
class DepthFrameResult:
    """Depth path output for one frame.

    Attributes:
        cloud: Point cloud views (overwritten by the next frame).
        timestamp_ms: Frame timestamp in milliseconds.
        inference_time_ms: Total latency in milliseconds.
    """
    cloud: PointCloud
    timestamp_ms: float = 0.0
    inference_time_ms: float = 0.0


@dataclass(frozen=True, slots=True)
class HandFrameResult:
    """Hand path output for one frame.

    Attributes:
        hand: Joints in detection coordinates (overwritten by the next frame).
        timestamp_ms: Frame timestamp in milliseconds.
        inference_time_ms: Total latency in milliseconds.
    """
    hand: HandLandmarkResult
    timestamp_ms: float = 0.0
    inference_time_ms: float = 0.0


class VisionPipeline:
    """Depth and hand-landmark pipeline over ONNX models.

    Usage:
        >>> pipeline = VisionPipeline(PipelineConfig(depth_model_path="models/depth.onnx"))
        >>> pipeline.start()
        >>>
        >>> # In your frame loop:
        >>> result = pipeline.process_depth(rgb_frame)
        >>> print(result.cloud.positions.shape, f"{result.inference_time_ms:.1f}ms")
        >>>
        >>> pipeline.stop()
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        runtime_factory: RuntimeFactory | None = None,
        mesh_sink: MeshSink | None = None,
    ) -> None:
        self._config = config or PipelineConfig()
        self._runtime_factory = runtime_factory or self._load_onnx
        self._mesh_sink = mesh_sink
        self._depth: DepthPredictor | None = None
        self._hand: HandLandmarkPredictor | None = None
        self._is_running = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def depth_predictor(self) -> DepthPredictor | None:
        return self._depth

    @property
    def hand_predictor(self) -> HandLandmarkPredictor | None:
        return self._hand

    def start(self) -> None:
        """Load the configured models and build the predictors.

        Shape problems surface here, before any frame is processed. A
        running pipeline is stopped first. If any model fails, every runtime
        opened so far is closed and the error propagates.
        """
        if self._is_running:
            self.stop()
        logger.info("Starting vision pipeline...")
        cfg = self._config

        depth: DepthPredictor | None = None
        hand: HandLandmarkPredictor | None = None
        try:
            if cfg.depth_model_path:
                depth = self._build(
                    cfg.depth_model_path,
                    lambda runtime: DepthPredictor(
                        runtime,
                        aspect_mode=cfg.depth_aspect_mode,
                        interpolation=cfg.interpolation,
                        pack_config=cfg.pack_config,
                    ),
                )
            if cfg.landmark_model_path:
                hand = self._build(
                    cfg.landmark_model_path,
                    lambda runtime: HandLandmarkPredictor(
                        runtime,
                        palm_shift=cfg.palm_shift,
                        palm_scale=cfg.palm_scale,
                        pack_config=cfg.pack_config,
                        aspect_mode=cfg.hand_aspect_mode,
                        interpolation=cfg.interpolation,
                    ),
                )
        except Exception:
            if depth is not None:
                depth.close()
            logger.error("Pipeline start failed; released the models loaded so far")
            raise

        self._depth, self._hand = depth, hand
        if self._depth is None and self._hand is None:
            logger.warning("No models configured. Both pipeline paths are disabled.")

        self._is_running = True
        logger.info(
            f"Pipeline started | Depth: {self._depth.input_size if self._depth else 'off'} | "
            f"Hand: {self._hand.dimension.name if self._hand else 'off'}"
        )

    def stop(self) -> None:
        """Release all resources."""
        if self._depth:
            self._depth.close()
        if self._hand:
            self._hand.close()
        self._depth = None
        self._hand = None
        self._is_running = False
        logger.info("Pipeline stopped.")

    def process_depth(self, frame: np.ndarray) -> DepthFrameResult:
        """Run the depth path on one RGB frame.

        Raises:
            RuntimeError: If the pipeline is not started or has no depth model.
        """
        self._require_running()
        if self._depth is None:
            raise RuntimeError("Depth path disabled: no depth model configured.")

        t_start = time.perf_counter()
        cloud = self._depth.invoke(frame)
        if self._mesh_sink is not None:
            self._mesh_sink.update(cloud.positions, cloud.colors, cloud.triangles)
        inference_ms = (time.perf_counter() - t_start) * 1000.0

        return DepthFrameResult(
            cloud=cloud,
            timestamp_ms=time.time() * 1000.0,
            inference_time_ms=inference_ms,
        )

    def process_hand(self, frame: np.ndarray, detection: PalmDetection | None) -> HandFrameResult:
        """Run the landmark path on one RGB frame and palm detection.

        Raises:
            RuntimeError: If the pipeline is not started, has no landmark
                model, or ``detection`` is None.
        """
        self._require_running()
        if self._hand is None:
            raise RuntimeError("Hand path disabled: no landmark model configured.")

        t_start = time.perf_counter()
        hand = self._hand.get_result(self._hand.invoke(frame, detection))
        inference_ms = (time.perf_counter() - t_start) * 1000.0

        return HandFrameResult(
            hand=hand,
            timestamp_ms=time.time() * 1000.0,
            inference_time_ms=inference_ms,
        )

    def _require_running(self) -> None:
        if not self._is_running:
            raise RuntimeError("Pipeline not started. Call start() first.")

    def _build(self, model_path: str, make: Callable[[InferenceRuntime], _P]) -> _P:
        """Open a runtime for ``model_path`` and wrap it, closing it if wrapping fails."""
        runtime = self._runtime_factory(model_path)
        try:
            return make(runtime)
        except Exception:
            runtime.close()
            raise

    def _load_onnx(self, model_path: str) -> InferenceRuntime:
        runtime = ONNXInferenceRuntime(
            providers=self._config.providers or None,
            num_threads=self._config.num_threads,
        )
        runtime.load(model_path)
        return runtime

    def __enter__(self) -> VisionPipeline:
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        self.stop()
