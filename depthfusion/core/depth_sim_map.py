"""
Depth/Similarity map of a single view

A DepthSimMap stores one (depth, similarity) pair per cell for a view
computed at a given scale (image downscale) and step (pixel stride on top
of the scale). Cell (x, y) corresponds to full resolution pixel
(x * scale * step, y * scale * step).

Conventions:
- depth == -1 means "no estimate"
- similarity is a matching cost, lower is better, default 1 (worst)

All index conversions between resolutions use integer floor division.
"""
import logging
from typing import Callable, NamedTuple, Optional, Tuple, Union

import numpy as np

from .camera import MultiViewParams
from .geometry import normalize, closest_point_to_line
from .image_io import write_color_image
from .utils import EFileType, get_file_name_from_index, jet_color_map, normalize_range

logger = logging.getLogger(__name__)

DEFAULT_DEPTH = -1.0
DEFAULT_SIM = 1.0

# Upper bound of depth samples drawn for percentile estimation
PERCENTILE_MAX_SAMPLES = 50000


class DepthSimMapError(RuntimeError):
    """Base class for depth/sim map precondition failures"""


class ScaleMismatchError(DepthSimMapError):
    """Maps with different (scale, step) combined with add()"""


class ResolutionError(DepthSimMapError):
    """add11() called on a map that is not at scale 1 / step 1"""


class SizeMismatchError(DepthSimMapError):
    """Maps with different (width, height)"""


class DepthSim(NamedTuple):
    depth: float = DEFAULT_DEPTH
    sim: float = DEFAULT_SIM


CellRef = Union[int, Tuple[int, int]]


class DepthSimMap:
    """
    Grid of depth/similarity cells for view `rc` at (scale, step)

    Storage is two float32 arrays of shape (height, width), so the flat
    cell index is y * width + x.
    """

    def __init__(self, rc: int, mp: MultiViewParams, scale: int = 1, step: int = 1):
        if scale < 1 or step < 1:
            raise ValueError(f"scale and step must be >= 1 (got scale={scale}, step={step})")

        self._rc = rc
        self._mp = mp
        self._scale = int(scale)
        self._step = int(step)

        self._w = mp.get_width(rc) // (self._scale * self._step)
        self._h = mp.get_height(rc) // (self._scale * self._step)

        self._depth = np.full((self._h, self._w), DEFAULT_DEPTH, dtype=np.float32)
        self._sim = np.full((self._h, self._w), DEFAULT_SIM, dtype=np.float32)

    @property
    def rc(self) -> int:
        return self._rc

    @property
    def scale(self) -> int:
        return self._scale

    @property
    def step(self) -> int:
        return self._step

    @property
    def width(self) -> int:
        return self._w

    @property
    def height(self) -> int:
        return self._h

    @property
    def depth(self) -> np.ndarray:
        return self._depth

    @property
    def sim(self) -> np.ndarray:
        return self._sim

    def __len__(self) -> int:
        return self._w * self._h

    # ------------------------------------------------------------------
    # Cell access
    # ------------------------------------------------------------------

    def _check_xy(self, x: int, y: int):
        if not (0 <= x < self._w and 0 <= y < self._h):
            raise IndexError(f"Cell ({x}, {y}) outside {self._w}x{self._h} map")

    def get_cell(self, x: int, y: int) -> DepthSim:
        self._check_xy(x, y)
        return DepthSim(float(self._depth[y, x]), float(self._sim[y, x]))

    def get_cell_by_index(self, i: int) -> DepthSim:
        if not 0 <= i < len(self):
            raise IndexError(f"Cell index {i} outside map of {len(self)} cells")
        return self.get_cell(i % self._w, i // self._w)

    def set_cell(self, x: int, y: int, value: DepthSim):
        self._check_xy(x, y)
        self._depth[y, x] = value.depth
        self._sim[y, x] = value.sim

    def get_depth_map(self) -> np.ndarray:
        """Flat copy of the internal depth buffer"""
        return self._depth.ravel().copy()

    def get_sim_map(self) -> np.ndarray:
        """Flat copy of the internal similarity buffer"""
        return self._sim.ravel().copy()

    # ------------------------------------------------------------------
    # Resampling
    # ------------------------------------------------------------------

    def _size_at_scale(self, scale: int) -> Tuple[int, int]:
        """(width, height) of the view image downscaled by `scale`"""
        return self._mp.get_width(self._rc) // scale, self._mp.get_height(self._rc) // scale

    @staticmethod
    def _as_map(buffer: np.ndarray, width: int) -> np.ndarray:
        """View a flat or 2D buffer as a (rows, width) float32 array"""
        data = np.asarray(buffer, dtype=np.float32)
        if data.ndim == 1:
            if width == 0 or data.size % width:
                raise ValueError(f"Flat buffer of {data.size} values is not a multiple of width {width}")
            data = data.reshape(-1, width)
        return data

    def _map_step1(self, src: np.ndarray, out: Optional[np.ndarray], fill: bool) -> np.ndarray:
        wdm, hdm = self._size_at_scale(self._scale)

        if out is None:
            out = np.full((hdm, wdm), DEFAULT_DEPTH, dtype=np.float32)
        else:
            if out.shape != (hdm, wdm):
                raise SizeMismatchError(f"Output buffer {out.shape} expected {(hdm, wdm)}")
            if fill:
                out.fill(DEFAULT_DEPTH)

        xs = np.arange(wdm) // self._step
        ys = np.arange(hdm) // self._step
        ok_x = xs < self._w
        ok_y = ys < self._h

        out[np.ix_(ok_y, ok_x)] = src[np.ix_(ys[ok_y], xs[ok_x])]
        return out

    def get_depth_map_step1(self, out: Optional[np.ndarray] = None, fill: bool = True) -> np.ndarray:
        """
        Depth map at the size of the view image with the scale applied

        The internal buffer only holds every `step`-th pixel, each output
        pixel takes the value of the cell covering it. Pixels past the last
        cell are left at -1 (new buffer or fill=True) or untouched.
        """
        return self._map_step1(self._depth, out, fill)

    def get_sim_map_step1(self, out: Optional[np.ndarray] = None, fill: bool = True) -> np.ndarray:
        """Similarity counterpart of get_depth_map_step1()"""
        return self._map_step1(self._sim, out, fill)

    def _map_step1_x_part(self, src: np.ndarray, x_from: int, part_w: int) -> np.ndarray:
        if x_from < 0 or part_w < 0:
            raise ValueError(f"Invalid column range: x_from={x_from}, part_w={part_w}")

        _, hdm = self._size_at_scale(self._scale)
        out = np.full((hdm, part_w), DEFAULT_DEPTH, dtype=np.float32)

        xs = np.arange(x_from, x_from + part_w) // self._step
        ys = np.arange(hdm) // self._step
        ok_x = xs < self._w
        ok_y = ys < self._h

        out[np.ix_(ok_y, ok_x)] = src[np.ix_(ys[ok_y], xs[ok_x])]
        return out

    def get_depth_map_step1_x_part(self, x_from: int, part_w: int) -> np.ndarray:
        """Columns [x_from, x_from + part_w) of get_depth_map_step1(), as a new buffer"""
        return self._map_step1_x_part(self._depth, x_from, part_w)

    def get_sim_map_step1_x_part(self, x_from: int, part_w: int) -> np.ndarray:
        return self._map_step1_x_part(self._sim, x_from, part_w)

    def init_just_from_depth_map(self, depth_map: np.ndarray, default_sim: float):
        """
        Fill depths from a depth map at the size of the view with scale applied

        Cell (x, y) reads pixel (x * step, y * step), every similarity is
        set to `default_sim`.
        """
        wdm, _ = self._size_at_scale(self._scale)
        src = self._as_map(depth_map, wdm)

        xs = np.arange(self._w) * self._step
        ys = np.arange(self._h) * self._step
        ok_x = xs < src.shape[1]
        ok_y = ys < src.shape[0]

        cells = np.ix_(ok_y, ok_x)
        self._depth[cells] = src[np.ix_(ys[ok_y], xs[ok_x])]
        self._sim[cells] = default_sim

    def init_just_from_depth_sim_map(self, other: 'DepthSimMap', default_sim: float):
        """Copy depths of a map with the same size, reset similarities to `default_sim`"""
        if other._w != self._w or other._h != self._h:
            raise SizeMismatchError(
                f"Input depth map is not at the same size "
                f"({other._w}x{other._h} vs {self._w}x{self._h})"
            )

        self._depth[:] = other._depth
        self._sim.fill(default_sim)

    def init_from_depth_map_and_sim_map(self, depth_map: np.ndarray, sim_map: np.ndarray,
                                        from_scale: int):
        """
        Fill cells from depth and similarity maps computed at `from_scale` (step 1)

        Cell (x, y) reads pixel ((x * step * scale) // from_scale, ...),
        cells mapping outside the source maps are left untouched.
        """
        wdm, hdm = self._size_at_scale(from_scale)
        depth = self._as_map(depth_map, wdm)
        sim = self._as_map(sim_map, wdm)

        if depth.shape != sim.shape:
            raise SizeMismatchError(f"Depth map {depth.shape} and sim map {sim.shape} differ")

        xs = (np.arange(self._w) * self._step * self._scale) // from_scale
        ys = (np.arange(self._h) * self._step * self._scale) // from_scale
        ok_x = xs < min(wdm, depth.shape[1])
        ok_y = ys < min(hdm, depth.shape[0])

        cells = np.ix_(ok_y, ok_x)
        src = np.ix_(ys[ok_y], xs[ok_x])
        self._depth[cells] = depth[src]
        self._sim[cells] = sim[src]

    # ------------------------------------------------------------------
    # Fusion
    # ------------------------------------------------------------------

    def add(self, other: 'DepthSimMap'):
        """Keep, per cell, the valid estimate with the lowest similarity"""
        if self._scale != other._scale or self._step != other._step:
            raise ScaleMismatchError(
                f"You can only add to the same scale and step map "
                f"(scale {other._scale}/{self._scale}, step {other._step}/{self._step})"
            )
        if self._depth.shape != other._depth.shape:
            raise SizeMismatchError(
                f"Cannot add {other._w}x{other._h} map to {self._w}x{self._h} map"
            )

        better = (other._depth > DEFAULT_DEPTH) & (other._sim < self._sim)
        self._depth[better] = other._depth[better]
        self._sim[better] = other._sim[better]

        logger.debug("add: %d/%d cells replaced", int(better.sum()), better.size)

    def add11(self, other: 'DepthSimMap'):
        """
        Splat a coarser map into this scale 1 / step 1 map

        Each valid cell of `other` covers a (p x p) window of this map,
        p = other.step * other.scale, spanning [x*p - k, x*p + k1] with
        k1 = p // 2 and k = k1 - 1 for even p (k = k1 otherwise). The cell
        wins its window when no cell already inside has a strictly lower
        similarity, and then overwrites the whole window (clipped to the map).

        Windows of neighbouring cells tile without overlap, so all windows
        are evaluated at once on a padded copy of this map.
        """
        if self._scale != 1 or self._step != 1:
            raise ResolutionError("You can only add to scale1-step1 map.")

        p = other._step * other._scale
        k1 = p // 2
        k = k1 - 1 if p % 2 == 0 else k1

        H, W = self._h, self._w
        oh, ow = other._h, other._w
        ph = max(oh * p, k + H)
        pw = max(ow * p, k + W)

        # Padding never wins a comparison and is cropped away afterwards
        sim_pad = np.full((ph, pw), np.inf, dtype=np.float32)
        depth_pad = np.full((ph, pw), DEFAULT_DEPTH, dtype=np.float32)
        sim_pad[k:k + H, k:k + W] = self._sim
        depth_pad[k:k + H, k:k + W] = self._depth

        region = (slice(0, oh * p), slice(0, ow * p))
        window_min = sim_pad[region].reshape(oh, p, ow, p).min(axis=(1, 3))

        winners = (other._depth > DEFAULT_DEPTH) & ~(other._sim > window_min)

        mask = np.repeat(np.repeat(winners, p, axis=0), p, axis=1)
        depth_up = np.repeat(np.repeat(other._depth, p, axis=0), p, axis=1)
        sim_up = np.repeat(np.repeat(other._sim, p, axis=0), p, axis=1)

        depth_pad[region] = np.where(mask, depth_up, depth_pad[region])
        sim_pad[region] = np.where(mask, sim_up, sim_pad[region])

        self._depth[:] = depth_pad[k:k + H, k:k + W]
        self._sim[:] = sim_pad[k:k + H, k:k + W]

        logger.debug("add11: %d/%d cells of scale %d step %d map accepted",
                     int(winners.sum()), winners.size, other._scale, other._step)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_max_min_depth(self) -> Tuple[float, float]:
        """(max, min) over valid depths, (-1, inf) when there is none"""
        valid = self._depth[self._depth > DEFAULT_DEPTH]
        if valid.size == 0:
            return DEFAULT_DEPTH, float('inf')
        return float(valid.max()), float(valid.min())

    def get_max_min_sim(self) -> Tuple[float, float]:
        """(max, min) over similarities > -1, (-1, inf) when there is none"""
        valid = self._sim[self._sim > -1.0]
        if valid.size == 0:
            return -1.0, float('inf')
        return float(valid.max()), float(valid.min())

    def get_percentile_depth(self, perc: float) -> float:
        """
        Approximate depth percentile (perc in [0, 1])

        At most ~PERCENTILE_MAX_SAMPLES cells are sampled with a regular
        stride. No interpolation: the sorted sample at int(n * perc) is
        returned, the index clamped to the sample. Returns -1 when no
        sampled cell has a valid depth.
        """
        n_cells = self._w * self._h
        stride = max(1, n_cells // PERCENTILE_MAX_SAMPLES)

        samples = self._depth.ravel()[::stride]
        depths = np.sort(samples[samples > DEFAULT_DEPTH])

        if depths.size == 0:
            return DEFAULT_DEPTH

        index = int(depths.size * perc)
        index = min(max(index, 0), depths.size - 1)
        return float(depths[index])

    # ------------------------------------------------------------------
    # Smoothness
    # ------------------------------------------------------------------

    def get_cell_smooth_step(self, cell: CellRef) -> float:
        """
        Signed distance between a cell's depth and its 4-neighbourhood surface

        Valid (> 0) neighbour depths are back-projected and averaged. With
        a valid center depth and at least two neighbours, the centroid is
        projected on the viewing ray of the center point p0 and the result
        is |C - pS| - |C - p0|: positive when the neighbourhood lies
        farther from the camera. Border cells and unsupported cells give 0.
        """
        if isinstance(cell, tuple):
            x, y = cell
        else:
            x, y = cell % self._w, cell // self._w

        if x <= 0 or x >= self._w - 1 or y <= 0 or y >= self._h - 1:
            return 0.0

        view = self._mp[self._rc]
        s = self._scale * self._step

        cg = np.zeros(3)
        n = 0
        for dx, dy in ((0, -1), (0, 1), (-1, 0), (1, 0)):
            d = float(self._depth[y + dy, x + dx])
            if d > 0.0:
                cg += view.back_project((x + dx) * s, (y + dy) * s, d)
                n += 1

        d0 = float(self._depth[y, x])
        if d0 > 0.0 and n > 1:
            cg /= n
            p0 = view.back_project(x * s, y * s, d0)
            vcn = normalize(view.C - p0)
            ps = closest_point_to_line(cg, p0, vcn)
            return float(np.linalg.norm(view.C - ps) - np.linalg.norm(view.C - p0))

        return 0.0

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _metadata(self) -> dict:
        view = self._mp[self._rc]
        max_depth, min_depth = self.get_max_min_depth()

        metadata = dict(self._mp.get_metadata(self._rc))
        metadata['downscale'] = self._mp.get_downscale_factor(self._rc)
        metadata['CArr'] = view.C
        metadata['iCamArr'] = view.iCam
        metadata['minDepth'] = np.float32(min_depth)
        metadata['maxDepth'] = np.float32(max_depth)
        metadata['P'] = self._mp.get_original_p(self._rc)
        return metadata

    def save(self, codec, folder: str):
        """Write depth and similarity maps at the view size with scale applied"""
        depth_map = self.get_depth_map_step1()
        sim_map = self.get_sim_map_step1()
        height, width = depth_map.shape
        metadata = self._metadata()

        codec.write_map(get_file_name_from_index(folder, self._rc, EFileType.depthMap, self._scale),
                        width, height, depth_map, metadata)
        codec.write_map(get_file_name_from_index(folder, self._rc, EFileType.simMap, self._scale),
                        width, height, sim_map, metadata)

    def load(self, codec, folder: str, from_scale: int):
        """Read the depth and similarity maps written at `from_scale`"""
        _, _, depth_map = codec.read_map(
            get_file_name_from_index(folder, self._rc, EFileType.depthMap, from_scale))
        _, _, sim_map = codec.read_map(
            get_file_name_from_index(folder, self._rc, EFileType.simMap, from_scale))

        self.init_from_depth_map_and_sim_map(depth_map, sim_map, from_scale)

    def save_refine(self, codec, depth_map_path: str, sim_map_path: str):
        """Write the internal buffers as they are (meant for scale 1 / step 1 maps)"""
        metadata = self._metadata()
        codec.write_map(depth_map_path, self._w, self._h, self._depth, metadata)
        codec.write_map(sim_map_path, self._w, self._h, self._sim, metadata)

    def save_to_image(self, filename: str, sim_thr: float = -2.0,
                      color_map: Callable[[np.ndarray], np.ndarray] = jet_color_map,
                      writer: Callable[[str, np.ndarray], None] = write_color_image) -> bool:
        """
        Write a preview image: depth on the left half, similarity on the right

        Depths are normalized between the 1% percentile * 0.8 and the 90%
        percentile * 1.1. Similarities between -1 and `sim_thr`, or the
        map's own similarity range when `sim_thr` < -1.

        Failures are logged and reported through the return value only.
        """
        try:
            max_depth = self.get_percentile_depth(0.9) * 1.1
            min_depth = self.get_percentile_depth(0.01) * 0.8

            max_sim, min_sim = sim_thr, -1.0
            if sim_thr < -1.0:
                auto_max, auto_min = self.get_max_min_sim()
                # only use it if the automatic range is valid
                if abs(auto_max - auto_min) > np.finfo(np.float32).eps:
                    max_sim, min_sim = auto_max, auto_min
                logger.debug("save_to_image: max sim %s, min sim %s", max_sim, min_sim)

            buffer = np.zeros((self._h, 2 * self._w, 3), dtype=np.uint8)
            buffer[:, :self._w] = color_map(normalize_range(self._depth, min_depth, max_depth))
            buffer[:, self._w:] = color_map(normalize_range(self._sim, min_sim, max_sim))

            writer(filename, buffer)
            return True
        except Exception:
            logger.error("Failed to save '%s' (sim_thr: %s)", filename, sim_thr, exc_info=True)
            return False
