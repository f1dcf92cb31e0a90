"""Landmarks module — palm crop transforms and landmark prediction."""

from handdepth.landmarks.mapper import CoordinateMapper, CropTransform, derive_crop_transform
from handdepth.landmarks.predictor import HandLandmarkPredictor, LandmarkInference

__all__ = [
    "CoordinateMapper",
    "CropTransform",
    "HandLandmarkPredictor",
    "LandmarkInference",
    "derive_crop_transform",
]
