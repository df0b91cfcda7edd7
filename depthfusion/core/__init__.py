"""
Core depth map fusion module
Depth/similarity maps, view parameters and map storage
"""

from .camera import Camera, CameraPose, ViewParams, MultiViewParams, load_multi_view_params
from .geometry import normalize, closest_point_to_line
from .depth_sim_map import (
    DepthSim,
    DepthSimMap,
    DepthSimMapError,
    ScaleMismatchError,
    ResolutionError,
    SizeMismatchError
)
from .image_io import NpzMapCodec, write_color_image

__all__ = [
    'Camera',
    'CameraPose',
    'ViewParams',
    'MultiViewParams',
    'load_multi_view_params',
    'normalize',
    'closest_point_to_line',
    'DepthSim',
    'DepthSimMap',
    'DepthSimMapError',
    'ScaleMismatchError',
    'ResolutionError',
    'SizeMismatchError',
    'NpzMapCodec',
    'write_color_image'
]
