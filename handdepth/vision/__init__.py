"""Vision module — affine resampling and tensor packing."""

from handdepth.vision.resampler import AffineResampler, Interpolation, ResizeOptions
from handdepth.vision.tensor_packer import PackConfig, PackMode, TensorPacker, pack
from handdepth.vision.transform import AspectMode, ImageTransform, UVRect

__all__ = [
    "AffineResampler",
    "AspectMode",
    "ImageTransform",
    "Interpolation",
    "PackConfig",
    "PackMode",
    "ResizeOptions",
    "TensorPacker",
    "UVRect",
    "pack",
]
