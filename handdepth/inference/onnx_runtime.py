"""ONNX Runtime engine for the depth and landmark predictors.

Exposes the index-based engine interface (declared shapes, set input,
blocking invoke, read output) over an ``onnxruntime.InferenceSession``.
Hardware acceleration is whatever execution provider ONNX Runtime selects.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import numpy as np
import onnxruntime as ort
from loguru import logger

# Highest priority first; CPU is always the last resort
PREFERRED_PROVIDERS = (
    "CUDAExecutionProvider",
    "DmlExecutionProvider",
    "CoreMLExecutionProvider",
    "CPUExecutionProvider",
)


class ONNXInferenceRuntime:
    """InferenceRuntime backed by ONNX Runtime.

    Inputs are addressed by position in the model's declared input list,
    outputs likewise. ``invoke`` runs every declared output.

    Usage:
        >>> runtime = ONNXInferenceRuntime(num_threads=4)
        >>> runtime.load("models/depth.onnx")
        >>> runtime.get_input_shape(0)
        (1, 3, 256, 256)
        >>> runtime.set_input_tensor(0, tensor)
        >>> runtime.invoke()
        >>> depth = runtime.get_output_tensor(0)
    """

    def __init__(
        self,
        providers: list[str] | None = None,
        num_threads: int = 2,
        enable_profiling: bool = False,
    ) -> None:
        """Configure the session; nothing is loaded until load().

        Args:
            providers: Execution providers in priority order. Auto-detected
                from the installed ONNX Runtime build when None or empty.
            num_threads: Intra-op thread count.
            enable_profiling: Write an ONNX Runtime profile for the session.
        """
        self._providers = providers or self._detect_providers()
        self._num_threads = num_threads
        self._enable_profiling = enable_profiling
        self._session: ort.InferenceSession | None = None
        self._input_names: list[str] = []
        self._output_names: list[str] = []
        self._input_shapes: list[tuple[int | None, ...]] = []
        self._output_shapes: list[tuple[int | None, ...]] = []
        self._feeds: dict[str, np.ndarray] = {}
        self._results: list[np.ndarray] = []

    @staticmethod
    def _detect_providers() -> list[str]:
        available = set(ort.get_available_providers())
        return [p for p in PREFERRED_PROVIDERS if p in available] or ["CPUExecutionProvider"]

    @property
    def providers(self) -> list[str]:
        return self._providers

    @property
    def input_names(self) -> list[str]:
        return self._input_names

    @property
    def output_names(self) -> list[str]:
        return self._output_names

    @property
    def is_loaded(self) -> bool:
        return self._session is not None

    def load(self, model: str | Path | bytes) -> None:
        """Create a session from a .onnx file or serialized model bytes.

        Replaces any previously loaded model.

        Raises:
            FileNotFoundError: If ``model`` is a path that does not exist.
            RuntimeError: If ONNX Runtime rejects the model.
        """
        if isinstance(model, bytes):
            source: str | bytes = model
            label = f"<{len(model)} bytes>"
        else:
            path = Path(model)
            if not path.exists():
                raise FileNotFoundError(f"Model not found: {path}")
            source, label = str(path), path.name

        try:
            session = ort.InferenceSession(
                source,
                sess_options=self._session_options(),
                providers=self._providers,
            )
        except Exception as e:
            raise RuntimeError(f"Failed to load ONNX model {label}: {e}") from e

        self._bind(session)
        logger.info(
            f"Loaded ONNX model {label} | provider={session.get_providers()[0]} | "
            f"inputs={dict(zip(self._input_names, self._input_shapes))} | "
            f"outputs={dict(zip(self._output_names, self._output_shapes))}"
        )

    def get_input_shape(self, index: int) -> tuple[int | None, ...]:
        """Declared shape of input ``index``; symbolic dims are None."""
        self._require_session()
        return self._input_shapes[index]

    def get_output_shape(self, index: int) -> tuple[int | None, ...]:
        """Declared shape of output ``index``; symbolic dims are None."""
        self._require_session()
        return self._output_shapes[index]

    def set_input_tensor(self, index: int, tensor: np.ndarray) -> None:
        self._require_session()
        self._feeds[self._input_names[index]] = tensor

    def invoke(self) -> None:
        """Run the model synchronously on the inputs set so far.

        Raises:
            RuntimeError: If no model is loaded or an input was never set.
        """
        session = self._require_session()
        missing = [name for name in self._input_names if name not in self._feeds]
        if missing:
            raise RuntimeError(f"Inputs not set: {missing}")
        self._results = session.run(self._output_names, self._feeds)

    def get_output_tensor(self, index: int) -> np.ndarray:
        self._require_session()
        if not self._results:
            raise RuntimeError("No outputs yet. Call invoke() first.")
        return self._results[index]

    def close(self) -> None:
        """Drop the session and any tensors it holds."""
        if self._session is not None and self._enable_profiling:
            logger.info(f"ONNX Runtime profile written to {self._session.end_profiling()}")
        self._session = None
        self._feeds.clear()
        self._results = []

    def _session_options(self) -> ort.SessionOptions:
        options = ort.SessionOptions()
        options.intra_op_num_threads = self._num_threads
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        options.enable_profiling = self._enable_profiling
        return options

    def _bind(self, session: ort.InferenceSession) -> None:
        inputs, outputs = session.get_inputs(), session.get_outputs()
        self._session = session
        self._input_names = [node.name for node in inputs]
        self._output_names = [node.name for node in outputs]
        self._input_shapes = [_fixed_shape(node.shape) for node in inputs]
        self._output_shapes = [_fixed_shape(node.shape) for node in outputs]
        self._feeds.clear()
        self._results = []

    def _require_session(self) -> ort.InferenceSession:
        if self._session is None:
            raise RuntimeError("No model loaded. Call load() first.")
        return self._session

    def __enter__(self) -> ONNXInferenceRuntime:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def _fixed_shape(shape: list[Any]) -> tuple[int | None, ...]:
    """Symbolic or unknown dims become None."""
    return tuple(d if isinstance(d, int) else None for d in shape)
