"""Inference module — ONNX runtime backend and the per-frame pipeline."""

from handdepth.inference.onnx_runtime import ONNXInferenceRuntime
from handdepth.inference.pipeline import PipelineConfig, VisionPipeline

__all__ = ["ONNXInferenceRuntime", "PipelineConfig", "VisionPipeline"]
