import numpy as np
import pytest

from depthfusion.core.camera import Camera, CameraPose, MultiViewParams, ViewParams


def pinhole(width, height, focal=100.0):
    return Camera(K=np.array([
        [focal, 0.0, width / 2.0],
        [0.0, focal, height / 2.0],
        [0.0, 0.0, 1.0],
    ]))


@pytest.fixture
def make_mp():
    """Factory for a single view (index 0) seen by an identity-pose pinhole camera"""
    def _make(width=8, height=6, focal=100.0):
        view = ViewParams.from_camera(pinhole(width, height, focal), CameraPose.identity(), width, height)
        return MultiViewParams({0: view})
    return _make


@pytest.fixture
def mp(make_mp):
    return make_mp()


@pytest.fixture
def parallel_rays_mp():
    """4x4 view where every pixel looks along +Z from the origin"""
    view = ViewParams(
        width=4,
        height=4,
        C=np.zeros(3),
        iCam=np.array([
            [0.0, 0.0, 0.0],
            [0.0, 0.0, 0.0],
            [0.0, 0.0, 1.0],
        ]),
    )
    return MultiViewParams({0: view})
