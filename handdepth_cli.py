"""HandDepth CLI — depth point clouds, stage benchmarks, and environment info.

Usage:
    python handdepth_cli.py depth --model models/depth.onnx --image photo.jpg --output cloud.npz
    python handdepth_cli.py depth --model models/depth.onnx --camera 0
    python handdepth_cli.py benchmark --iterations 500
    python handdepth_cli.py info
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
from loguru import logger

if TYPE_CHECKING:
    from handdepth.types import PointCloud


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="handdepth",
        description="HandDepth — depth point clouds and hand landmark mapping",
    )
    parser.add_argument("--log-level", type=str, default=None, help="Override the configured log level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # ---- depth ----
    depth_parser = subparsers.add_parser("depth", help="Build a point cloud from an image or camera")
    depth_parser.add_argument("--model", type=str, default=None, help="Path to ONNX depth model")
    depth_parser.add_argument("--image", type=str, default=None, help="Process a single image file")
    depth_parser.add_argument("--camera", type=int, default=None, help="Camera device index")
    depth_parser.add_argument("--output", type=str, default=None, help="Write the cloud to a .npz file")

    # ---- benchmark ----
    bench_parser = subparsers.add_parser("benchmark", help="Benchmark CPU stage latency")
    bench_parser.add_argument("--size", type=int, default=224, help="Model input side length")
    bench_parser.add_argument("--iterations", type=int, default=200, help="Number of iterations")
    bench_parser.add_argument("--nearest", action="store_true", help="Use nearest sampling")
    bench_parser.add_argument("--budget-ms", type=float, default=20.0, help="P95 budget for the total")

    # ---- info ----
    subparsers.add_parser("info", help="Show system information")

    args = parser.parse_args()

    from handdepth.config import settings
    from handdepth.logging_config import setup_logging

    if args.log_level:
        settings.log_level = args.log_level.upper()
    setup_logging(settings)

    if args.command == "depth":
        cmd_depth(args)
    elif args.command == "benchmark":
        cmd_benchmark(args)
    elif args.command == "info":
        cmd_info()


def cmd_depth(args: argparse.Namespace) -> None:
    """Run the depth path on an image or a live camera."""
    import cv2

    from handdepth.config import settings
    from handdepth.inference.pipeline import PipelineConfig, VisionPipeline

    config = PipelineConfig.from_settings(settings)
    config.landmark_model_path = None
    if args.model:
        config.depth_model_path = args.model
    if not config.depth_model_path or not Path(config.depth_model_path).exists():
        logger.error(f"Depth model not found: {config.depth_model_path}")
        sys.exit(1)

    with VisionPipeline(config) as pipeline:
        if args.image:
            bgr = cv2.imread(args.image, cv2.IMREAD_COLOR)
            if bgr is None:
                logger.error(f"Cannot read image {args.image}")
                sys.exit(1)
            result = pipeline.process_depth(cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB))
            logger.info(
                f"Point cloud: {result.cloud.width}x{result.cloud.height} | "
                f"Latency: {result.inference_time_ms:.1f}ms"
            )
            if args.output:
                _save_cloud(args.output, result.cloud)
            return

        camera = settings.camera_index if args.camera is None else args.camera
        cap = cv2.VideoCapture(camera)
        if not cap.isOpened():
            logger.error(f"Cannot open camera {camera}")
            sys.exit(1)
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, settings.camera_width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, settings.camera_height)
        cap.set(cv2.CAP_PROP_FPS, settings.camera_fps)

        logger.info("Press 'q' to quit")
        result = None
        while True:
            ret, frame = cap.read()
            if not ret:
                break

            result = pipeline.process_depth(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))

            depth_bgr = cv2.cvtColor(result.cloud.depth_image(), cv2.COLOR_RGB2BGR)
            depth_bgr = cv2.resize(depth_bgr, (frame.shape[1], frame.shape[0]))
            cv2.putText(
                depth_bgr,
                f"Latency: {result.inference_time_ms:.1f}ms",
                (10, 30),
                cv2.FONT_HERSHEY_SIMPLEX,
                0.7,
                (0, 255, 0),
                2,
            )
            cv2.imshow("HandDepth", np.hstack([frame, depth_bgr]))
            if cv2.waitKey(1) & 0xFF == ord("q"):
                break

        cap.release()
        cv2.destroyAllWindows()
        if args.output and result is not None:
            _save_cloud(args.output, result.cloud)


def _save_cloud(path: str, cloud: PointCloud) -> None:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    np.savez_compressed(
        out,
        positions=cloud.positions,
        colors=cloud.colors,
        triangles=cloud.triangles,
        normalized=cloud.normalized,
    )
    logger.info(f"Saved point cloud to {out}")


def cmd_benchmark(args: argparse.Namespace) -> None:
    """Benchmark CPU stage latency."""
    from handdepth.benchmark import benchmark_depth_stages
    from handdepth.vision.resampler import Interpolation

    results = benchmark_depth_stages(
        model_size=(args.size, args.size),
        num_iterations=args.iterations,
        interpolation=Interpolation.NEAREST if args.nearest else Interpolation.BILINEAR,
    )

    print("\n=== STAGE LATENCY BENCHMARK ===")
    for stage, stats in results.items():
        print(f"  {stage}:")
        for key, val in stats.items():
            print(f"    {key}: {val:.3f} ms")

    p95 = results["total"]["p95_ms"]
    if p95 < args.budget_ms:
        print(f"\nPASS: P95 total latency within {args.budget_ms:.0f}ms budget")
    else:
        print(f"\nFAIL: P95 total latency {p95:.1f}ms exceeds {args.budget_ms:.0f}ms budget")
        sys.exit(1)


def cmd_info() -> None:
    """Show system information."""
    import platform

    import cv2
    import onnxruntime as ort

    from handdepth import __version__
    from handdepth.config import settings

    ort_ver = ort.__version__
    providers = ort.get_available_providers()

    print(f"""
HandDepth — Depth & Hand Landmark Pipeline
══════════════════════════════════════════
  HandDepth:    {__version__} ({settings.app_env})
  Depth model:  {settings.depth_model_path}
  Hand model:   {settings.landmark_model_path}
  Python:       {platform.python_version()}
  Platform:     {platform.system()} {platform.machine()}
  NumPy:        {np.__version__}
  OpenCV:       {cv2.__version__}
  ONNX Runtime: {ort_ver}
  ORT Providers:{providers}
""")


if __name__ == "__main__":
    main()
