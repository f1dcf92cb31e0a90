"""HandDepth — Centralised Settings (Pydantic v2).

Single source of truth for all configuration.
Loads from .env, environment variables, or defaults.
"""

from __future__ import annotations

import json

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from handdepth.vision.resampler import Interpolation
from handdepth.vision.tensor_packer import PackConfig, PackMode
from handdepth.vision.transform import AspectMode


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────
    app_name: str = "HandDepth"
    app_version: str = "0.1.0"
    app_env: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_dir: str = "logs"

    # ── Model paths ──────────────────────────────────────────
    depth_model_path: str | None = "models/depth.onnx"
    landmark_model_path: str | None = None

    # ── Inference ────────────────────────────────────────────
    onnx_num_threads: int = 2
    onnx_providers: list[str] = []

    # ── Camera ───────────────────────────────────────────────
    camera_index: int = 0
    camera_width: int = 640
    camera_height: int = 480
    camera_fps: int = 30

    # ── Resampling / packing ─────────────────────────────────
    depth_aspect_mode: AspectMode = AspectMode.FILL
    hand_aspect_mode: AspectMode = AspectMode.FILL
    interpolation: str = "bilinear"
    pack_mode: PackMode = PackMode.UNIT_SCALE
    pack_offset: float = 0.0
    pack_scale: float = 1.0

    # ── Palm crop ────────────────────────────────────────────
    palm_shift_x: float = 0.0
    palm_shift_y: float = -0.2
    palm_scale: float = 2.8

    @field_validator("onnx_providers", mode="before")
    @classmethod
    def _parse_providers(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return json.loads(v) if v else []
        return v

    @field_validator("pack_mode", mode="before")
    @classmethod
    def _parse_pack_mode(cls, v: str | PackMode) -> PackMode:
        if isinstance(v, str):
            return PackMode[v.upper()]
        return v

    @field_validator("depth_aspect_mode", "hand_aspect_mode", mode="before")
    @classmethod
    def _parse_aspect_mode(cls, v: str | AspectMode) -> str | AspectMode:
        return v.lower() if isinstance(v, str) else v

    @field_validator("interpolation")
    @classmethod
    def _check_interpolation(cls, v: str) -> str:
        v = v.lower()
        if v not in ("bilinear", "nearest"):
            raise ValueError(f"interpolation must be 'bilinear' or 'nearest', got {v!r}")
        return v

    @field_validator("palm_scale", "camera_width", "camera_height", "camera_fps", "onnx_num_threads")
    @classmethod
    def _check_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def resample_interpolation(self) -> Interpolation:
        return Interpolation[self.interpolation.upper()]

    @property
    def palm_shift(self) -> tuple[float, float]:
        return (self.palm_shift_x, self.palm_shift_y)

    @property
    def pack_config(self) -> PackConfig:
        return PackConfig(self.pack_mode, self.pack_offset, self.pack_scale)


settings = Settings()
