"""Depth module — depth normalization, point clouds, and grid meshing."""

from handdepth.depth.field_builder import DepthFieldBuilder
from handdepth.depth.mesh import GridMesher, build_triangles
from handdepth.depth.predictor import DepthPredictor

__all__ = ["DepthFieldBuilder", "DepthPredictor", "GridMesher", "build_triangles"]
