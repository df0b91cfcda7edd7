"""
Utility functions for depth/similarity maps
"""
import numpy as np
import cv2 as cv
from enum import Enum
from pathlib import Path


class EFileType(Enum):
    depthMap = "depthMap"
    simMap = "simMap"


def get_file_name_from_index(folder: str, rc: int, file_type: EFileType,
                             scale: int = 1, ext: str = "npz") -> str:
    """
    Path of a per-view map file

    Maps computed at full resolution are named "{rc}_{type}.{ext}",
    downscaled ones get a "_scale{scale}" suffix.
    """
    suffix = f"_scale{scale}" if scale > 1 else ""
    return str(Path(folder) / f"{rc}_{file_type.value}{suffix}.{ext}")


def jet_color_map(values: np.ndarray) -> np.ndarray:
    """
    Map normalized values to RGB with the jet color map

    Args:
        values: array of floats in [0, 1] (clipped otherwise)

    Returns:
        array of shape values.shape + (3,), dtype uint8, RGB order
    """
    values = np.nan_to_num(np.asarray(values, dtype=np.float32), nan=0.0)
    levels = np.round(np.clip(values, 0.0, 1.0) * 255).astype(np.uint8)
    flat = levels.reshape(-1, 1)
    bgr = cv.applyColorMap(flat, cv.COLORMAP_JET).reshape(-1, 3)
    return bgr[:, ::-1].reshape(values.shape + (3,))


def normalize_range(values: np.ndarray, vmin: float, vmax: float) -> np.ndarray:
    """(values - vmin) / (vmax - vmin) clipped to [0, 1], degenerate range maps to 0"""
    span = vmax - vmin
    if not np.isfinite(span) or span == 0:
        return np.zeros_like(values, dtype=np.float32)
    return np.clip((values - vmin) / span, 0.0, 1.0).astype(np.float32)
