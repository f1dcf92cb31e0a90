"""Latency benchmark for the CPU stages of the depth path.

Times resampling, tensor packing, point-cloud assembly and the full
chain on synthetic frames. The engine is not involved; the first packed
channel stands in for its output.
"""

from __future__ import annotations

import time
from collections.abc import Callable

import numpy as np
from loguru import logger

from handdepth.depth.field_builder import DepthFieldBuilder
from handdepth.vision.resampler import AffineResampler, Interpolation
from handdepth.vision.tensor_packer import TensorPacker


def _summarize(latencies: list[float]) -> dict[str, float]:
    arr = np.array(latencies)
    return {
        "avg_ms": float(np.mean(arr)),
        "p50_ms": float(np.percentile(arr, 50)),
        "p95_ms": float(np.percentile(arr, 95)),
        "p99_ms": float(np.percentile(arr, 99)),
        "min_ms": float(np.min(arr)),
        "max_ms": float(np.max(arr)),
    }


def _time(fn: Callable[[], object], iterations: int, warmup: int) -> dict[str, float]:
    for _ in range(warmup):
        fn()
    latencies = []
    for _ in range(iterations):
        t0 = time.perf_counter()
        fn()
        latencies.append((time.perf_counter() - t0) * 1000.0)
    return _summarize(latencies)


def benchmark_depth_stages(
    model_size: tuple[int, int] = (224, 224),
    frame_size: tuple[int, int] = (640, 480),
    num_iterations: int = 200,
    warmup: int = 10,
    interpolation: Interpolation = Interpolation.BILINEAR,
    seed: int = 0,
) -> dict[str, dict[str, float]]:
    """Benchmark per-stage latency of the depth path.

    Args:
        model_size: Model input (width, height).
        frame_size: Synthetic frame (width, height).
        num_iterations: Timed iterations per stage.
        warmup: Untimed iterations per stage.
        interpolation: Resampling filter.
        seed: Seed for the synthetic frame.

    Returns:
        Dict of stage name → avg_ms, p50_ms, p95_ms, p99_ms, min_ms, max_ms.
    """
    width, height = model_size
    frame = np.random.default_rng(seed).integers(
        0, 256, (frame_size[1], frame_size[0], 3), dtype=np.uint8
    )
    resampler = AffineResampler(interpolation)
    packer = TensorPacker()
    builder = DepthFieldBuilder(width, height)

    image = resampler.resize(frame, width, height)
    tensor = packer.pack(image)
    depth = tensor[:, :, 0].copy()

    def full() -> None:
        img = resampler.resize(frame, width, height)
        t = packer.pack(img)
        builder.build(t[:, :, 0], img[::-1])

    results = {
        "resample": _time(lambda: resampler.resize(frame, width, height), num_iterations, warmup),
        "pack": _time(lambda: packer.pack(image), num_iterations, warmup),
        "build": _time(lambda: builder.build(depth, image[::-1]), num_iterations, warmup),
        "total": _time(full, num_iterations, warmup),
    }
    logger.debug(f"Depth stage benchmark done: {model_size} from {frame_size}")
    return results
