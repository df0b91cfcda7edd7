"""
Depth map fusion for multi-view stereo

Modules:
- core: Depth/similarity maps, fusion, statistics, view parameters
- run_fusion: command line entry point
"""

from .core import (
    DepthSim,
    DepthSimMap,
    MultiViewParams,
    ViewParams,
    load_multi_view_params
)

__all__ = [
    'DepthSim',
    'DepthSimMap',
    'MultiViewParams',
    'ViewParams',
    'load_multi_view_params'
]
