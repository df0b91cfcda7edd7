"""
Reading and writing per-view float maps and preview images
"""
import numpy as np
import cv2 as cv
from pathlib import Path
from typing import Dict, Tuple


class NpzMapCodec:
    """
    Stores a single float map with its metadata in a .npz archive

    Layout:
        map          - float32 array (height, width)
        meta_<key>   - one array per metadata entry
    """

    META_PREFIX = "meta_"

    def write_map(self, path: str, width: int, height: int,
                  buffer: np.ndarray, metadata: Dict[str, object] = None):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = np.asarray(buffer, dtype=np.float32).reshape(height, width)
        arrays = {'map': data}
        for key, value in (metadata or {}).items():
            if value is None:
                continue
            arrays[self.META_PREFIX + key] = np.asarray(value)

        # np.savez appends .npz to bare names, write through a handle instead
        with open(path, 'wb') as f:
            np.savez(f, **arrays)

    def read_map(self, path: str) -> Tuple[int, int, np.ndarray]:
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Map file not found: {path}")

        with np.load(str(path)) as data:
            buffer = data['map'].astype(np.float32)

        height, width = buffer.shape
        return width, height, buffer

    def read_metadata(self, path: str) -> Dict[str, np.ndarray]:
        with np.load(str(path)) as data:
            return {
                name[len(self.META_PREFIX):]: data[name]
                for name in data.files if name.startswith(self.META_PREFIX)
            }


def write_color_image(path: str, rgb: np.ndarray):
    """Write an (H, W, 3) uint8 RGB buffer as an image file"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    ok = cv.imwrite(str(path), np.ascontiguousarray(rgb[:, :, ::-1]))
    if not ok:
        raise IOError(f"Could not write image: {path}")
