"""
Camera model and per-view parameters

Depth/similarity maps only need a few things from a view: its full
resolution size, the projection center and the inverse of the
calibrated rotation (to turn a pixel into a viewing ray).
"""
import numpy as np
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass
class Camera:
    """
    Camera with intrinsic parameters

    K - intrinsic matrix (3x3):
        [fx  0  cx]
        [0  fy  cy]
        [0   0   1]
    """
    K: np.ndarray

    @property
    def fx(self) -> float:
        return self.K[0, 0]

    @property
    def fy(self) -> float:
        return self.K[1, 1]

    @property
    def cx(self) -> float:
        return self.K[0, 2]

    @property
    def cy(self) -> float:
        return self.K[1, 2]


@dataclass
class CameraPose:
    """
    Camera pose in world coordinates

    R - rotation matrix (3x3): world to camera
    t - translation vector (3x1): world to camera

    Transform: X_camera = R @ X_world + t
    """
    R: np.ndarray
    t: np.ndarray

    @property
    def center(self) -> np.ndarray:
        """Camera center in world coordinates: C = -R^T @ t"""
        return -self.R.T @ self.t.ravel()

    @property
    def projection_matrix(self) -> np.ndarray:
        """3x4 projection matrix [R|t]"""
        return np.hstack([self.R, self.t.reshape(3, 1)])

    @staticmethod
    def identity() -> 'CameraPose':
        """Create identity pose (camera at origin)"""
        return CameraPose(R=np.eye(3), t=np.zeros(3))


@dataclass
class ViewParams:
    """
    Everything a depth map needs to know about its view

    C    - projection center in world coordinates (3,)
    iCam - inverse of K @ R (3x3), maps [x, y, 1] to a world ray direction
    P    - original projection matrix K @ [R|t] (3x4), opaque metadata
    """
    width: int
    height: int
    C: np.ndarray
    iCam: np.ndarray
    P: Optional[np.ndarray] = None
    downscale: int = 1
    metadata: Dict[str, object] = field(default_factory=dict)

    @classmethod
    def from_camera(cls, camera: Camera, pose: CameraPose,
                    width: int, height: int, downscale: int = 1) -> 'ViewParams':
        K = camera.K.astype(np.float64)
        R = np.asarray(pose.R, dtype=np.float64)
        return cls(
            width=int(width),
            height=int(height),
            C=pose.center.astype(np.float64),
            iCam=np.linalg.inv(K @ R),
            P=K @ pose.projection_matrix,
            downscale=int(downscale)
        )

    def pixel_ray(self, x: float, y: float) -> np.ndarray:
        """Unit world-space direction through full resolution pixel (x, y)"""
        ray = self.iCam @ np.array([x, y, 1.0])
        return ray / np.linalg.norm(ray)

    def back_project(self, x: float, y: float, depth: float) -> np.ndarray:
        """3D point at `depth` along the ray of pixel (x, y)"""
        return self.C + self.pixel_ray(x, y) * depth


class MultiViewParams:
    """
    Lookup of ViewParams by view index

    Handed explicitly to every depth map that needs camera geometry.
    """

    def __init__(self, views: Optional[Dict[int, ViewParams]] = None):
        self._views: Dict[int, ViewParams] = dict(views or {})

    def __getitem__(self, rc: int) -> ViewParams:
        return self._views[rc]

    def __setitem__(self, rc: int, view: ViewParams):
        self._views[rc] = view

    def __contains__(self, rc: int) -> bool:
        return rc in self._views

    def __len__(self) -> int:
        return len(self._views)

    def indices(self):
        return sorted(self._views.keys())

    def get_width(self, rc: int) -> int:
        return self._views[rc].width

    def get_height(self, rc: int) -> int:
        return self._views[rc].height

    def get_downscale_factor(self, rc: int) -> int:
        return self._views[rc].downscale

    def get_original_p(self, rc: int) -> Optional[np.ndarray]:
        return self._views[rc].P

    def get_metadata(self, rc: int) -> Dict[str, object]:
        return self._views[rc].metadata


def load_multi_view_params(path: str) -> MultiViewParams:
    """
    Load view parameters from .npz file

    Expected arrays:
        K      - shared intrinsics (3x3)
        R      - rotations (N, 3, 3)
        t      - translations (N, 3)
        width  - full resolution image width
        height - full resolution image height
        downscale (optional) - downscale factor applied to the source images

    Returns:
        MultiViewParams indexed 0..N-1
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Camera file not found: {path}")

    data = np.load(str(path))

    camera = Camera(K=data['K'].astype(np.float64))
    rotations = data['R'].astype(np.float64)
    translations = data['t'].astype(np.float64).reshape(-1, 3)
    width = int(data['width'])
    height = int(data['height'])
    downscale = int(data['downscale']) if 'downscale' in data.files else 1

    if len(rotations) != len(translations):
        raise ValueError(
            f"Camera file {path.name}: {len(rotations)} rotations "
            f"but {len(translations)} translations"
        )

    mp = MultiViewParams()
    for rc, (R, t) in enumerate(zip(rotations, translations)):
        mp[rc] = ViewParams.from_camera(
            camera, CameraPose(R=R, t=t), width, height, downscale
        )

    return mp
