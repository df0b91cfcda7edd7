"""
Geometric primitives for depth map processing

Contains:
- Vector normalization
- Closest point on a 3D line
"""
import numpy as np


def normalize(v: np.ndarray) -> np.ndarray:
    """Unit vector along v (zero vector is returned unchanged)"""
    n = np.linalg.norm(v)
    if n == 0:
        return v
    return v / n


def closest_point_to_line(point: np.ndarray,
                          line_point: np.ndarray,
                          line_dir: np.ndarray) -> np.ndarray:
    """
    Orthogonal projection of `point` onto the line (line_point, line_dir)

    Args:
        point: 3D point to project
        line_point: any point on the line
        line_dir: unit direction of the line

    Returns:
        Point on the line closest to `point`
    """
    return line_point + line_dir * np.dot(line_dir, point - line_point)
