"""
Map relief package: turn raster map images into classified 3D terrain meshes.

Core functionality:
- Pixel classification into terrain, road and building (pass 1)
- Height resolution with building-density tiers (pass 2)
- Optional height-field smoothing and texture brightness/contrast
- Regular grid mesh generation with smooth normals
- recompute() / ReliefPipeline for running everything in order
"""

from .errors import DegenerateMeshError, InvalidInputError, ReliefError
from .features import FeatureType, build_feature_map, classify_pixel, pixel_info
from .heights import resolve_heights
from .mesh_operations import MeshGeometry, build_mesh, place_mesh
from .parameters import ParameterLimits, ReliefParameters
from .pipeline import ReliefPipeline, ReliefResult, recompute
from .transforms import adjust_texture, smooth_height_field

__all__ = [
    "DegenerateMeshError",
    "InvalidInputError",
    "ReliefError",
    "FeatureType",
    "build_feature_map",
    "classify_pixel",
    "pixel_info",
    "resolve_heights",
    "MeshGeometry",
    "build_mesh",
    "place_mesh",
    "ParameterLimits",
    "ReliefParameters",
    "ReliefPipeline",
    "ReliefResult",
    "recompute",
    "adjust_texture",
    "smooth_height_field",
]
