"""
Tests for DepthSimMap construction, cell access and resampling.
"""
import numpy as np
import pytest

from depthfusion.core.depth_sim_map import DepthSim, DepthSimMap, SizeMismatchError


def ramp(m):
    """Fill depth with 10 * y + x and sim with a distinct value per cell"""
    ys, xs = np.mgrid[0:m.height, 0:m.width]
    m.depth[:] = 10 * ys + xs
    m.sim[:] = -(10 * ys + xs) / 100.0
    return m


def test_dimensions_follow_scale_and_step(make_mp):
    mp = make_mp(width=10, height=7)

    assert (DepthSimMap(0, mp).width, DepthSimMap(0, mp).height) == (10, 7)

    m = DepthSimMap(0, mp, scale=2, step=1)
    assert (m.width, m.height) == (5, 3)
    assert len(m) == 15

    m = DepthSimMap(0, mp, scale=2, step=2)
    assert (m.width, m.height) == (2, 1)
    assert m.depth.shape == (1, 2)


def test_default_cells(mp):
    m = DepthSimMap(0, mp)

    assert m.get_cell(0, 0) == DepthSim(-1.0, 1.0)
    assert np.all(m.depth == -1.0)
    assert np.all(m.sim == 1.0)


def test_invalid_scale_rejected(mp):
    with pytest.raises(ValueError):
        DepthSimMap(0, mp, scale=0)
    with pytest.raises(ValueError):
        DepthSimMap(0, mp, step=0)


def test_cell_access(mp):
    m = DepthSimMap(0, mp)
    m.set_cell(3, 2, DepthSim(4.5, -0.25))

    assert m.get_cell(3, 2) == DepthSim(4.5, -0.25)
    assert m.get_cell_by_index(2 * m.width + 3) == DepthSim(4.5, -0.25)
    assert m.get_depth_map()[2 * m.width + 3] == 4.5
    assert m.get_sim_map()[2 * m.width + 3] == -0.25


def test_out_of_range_access_fails(mp):
    m = DepthSimMap(0, mp)

    with pytest.raises(IndexError):
        m.get_cell(m.width, 0)
    with pytest.raises(IndexError):
        m.get_cell(0, -1)
    with pytest.raises(IndexError):
        m.set_cell(0, m.height, DepthSim())
    with pytest.raises(IndexError):
        m.get_cell_by_index(len(m))


def test_get_depth_map_is_a_copy(mp):
    m = DepthSimMap(0, mp)
    flat = m.get_depth_map()
    flat[:] = 42.0

    assert np.all(m.depth == -1.0)


def test_depth_map_step1_repeats_cells(make_mp):
    m = ramp(DepthSimMap(0, make_mp(width=8, height=6), scale=1, step=2))
    assert (m.width, m.height) == (4, 3)

    full = m.get_depth_map_step1()

    assert full.shape == (6, 8)
    assert full[3, 5] == m.depth[1, 2]
    assert full[0, 1] == m.depth[0, 0]
    assert full[5, 7] == m.depth[2, 3]


def test_sim_map_step1(make_mp):
    m = ramp(DepthSimMap(0, make_mp(width=8, height=6), scale=1, step=2))

    full = m.get_sim_map_step1()

    assert full.shape == (6, 8)
    assert full[4, 6] == m.sim[2, 3]


def test_depth_map_step1_uncovered_pixels(make_mp):
    # 9 // 2 = 4 cells cover pixels 0..7 only
    m = ramp(DepthSimMap(0, make_mp(width=9, height=6), scale=1, step=2))

    full = m.get_depth_map_step1()
    assert full.shape == (6, 9)
    assert np.all(full[:, 8] == -1.0)

    untouched = np.full((6, 9), 7.0, dtype=np.float32)
    m.get_depth_map_step1(out=untouched, fill=False)
    assert np.all(untouched[:, 8] == 7.0)
    assert untouched[2, 3] == m.depth[1, 1]

    reset = np.full((6, 9), 7.0, dtype=np.float32)
    m.get_depth_map_step1(out=reset, fill=True)
    assert np.all(reset[:, 8] == -1.0)
    np.testing.assert_array_equal(reset, full)


def test_depth_map_step1_with_scale(make_mp):
    m = ramp(DepthSimMap(0, make_mp(width=8, height=8), scale=2, step=1))

    full = m.get_depth_map_step1()

    assert full.shape == (4, 4)
    np.testing.assert_array_equal(full, m.depth)


def test_depth_map_step1_wrong_buffer(make_mp):
    m = DepthSimMap(0, make_mp(width=8, height=6), scale=1, step=2)

    with pytest.raises(SizeMismatchError):
        m.get_depth_map_step1(out=np.zeros((3, 4), dtype=np.float32))


def test_depth_map_step1_x_part(make_mp):
    m = ramp(DepthSimMap(0, make_mp(width=9, height=6), scale=1, step=2))

    part = m.get_depth_map_step1_x_part(6, 4)

    assert part.shape == (6, 4)
    # pixel columns 6, 7 -> cell column 3; 8, 9 -> past the last cell
    np.testing.assert_array_equal(part[:, 0], np.repeat(m.depth[:, 3], 2))
    np.testing.assert_array_equal(part[:, 1], np.repeat(m.depth[:, 3], 2))
    assert np.all(part[:, 2:] == -1.0)


def test_x_part_matches_full_map(make_mp):
    m = ramp(DepthSimMap(0, make_mp(width=8, height=6), scale=1, step=2))

    full = m.get_sim_map_step1()
    part = m.get_sim_map_step1_x_part(2, 3)

    np.testing.assert_array_equal(part, full[:, 2:5])


def test_x_part_returns_new_buffer(make_mp):
    m = ramp(DepthSimMap(0, make_mp(width=8, height=6), scale=1, step=2))

    first = m.get_depth_map_step1_x_part(0, 2)
    first[:] = 99.0
    second = m.get_depth_map_step1_x_part(0, 2)

    assert not np.any(second == 99.0)


def test_x_part_invalid_range(mp):
    m = DepthSimMap(0, mp)

    with pytest.raises(ValueError):
        m.get_depth_map_step1_x_part(-1, 2)


def test_init_just_from_depth_map_samples_every_step(make_mp):
    m = DepthSimMap(0, make_mp(width=8, height=6), scale=1, step=2)
    source = np.arange(48, dtype=np.float32).reshape(6, 8)

    m.init_just_from_depth_map(source, 0.3)

    assert m.depth[1, 2] == source[2, 4]
    assert m.depth[2, 3] == source[4, 6]
    assert np.allclose(m.sim, 0.3)


def test_init_just_from_depth_map_accepts_flat_buffer(make_mp):
    m = DepthSimMap(0, make_mp(width=8, height=6), scale=2, step=1)
    source = np.arange(12, dtype=np.float32)

    m.init_just_from_depth_map(source, 0.0)

    np.testing.assert_array_equal(m.depth, source.reshape(3, 4))


def test_step1_round_trip(make_mp):
    mp = make_mp(width=7, height=5)
    m = DepthSimMap(0, mp)
    m.depth[:] = np.random.default_rng(0).uniform(1.0, 20.0, size=m.depth.shape)

    restored = DepthSimMap(0, mp)
    restored.init_just_from_depth_map(m.get_depth_map_step1(), 0.5)

    np.testing.assert_array_equal(restored.depth, m.depth)


def test_init_just_from_depth_sim_map(mp):
    source = ramp(DepthSimMap(0, mp))
    m = DepthSimMap(0, mp)

    m.init_just_from_depth_sim_map(source, -0.5)

    np.testing.assert_array_equal(m.depth, source.depth)
    assert np.all(m.sim == -0.5)


def test_init_just_from_depth_sim_map_size_mismatch(make_mp):
    mp = make_mp(width=8, height=8)

    with pytest.raises(SizeMismatchError):
        DepthSimMap(0, mp).init_just_from_depth_sim_map(DepthSimMap(0, mp, scale=2), 0.0)


def test_init_from_finer_maps(make_mp):
    m = DepthSimMap(0, make_mp(width=8, height=8), scale=2, step=1)
    depth = np.arange(64, dtype=np.float32).reshape(8, 8)
    sim = -depth / 100.0

    m.init_from_depth_map_and_sim_map(depth, sim, 1)

    assert m.depth[1, 3] == depth[2, 6]
    assert m.sim[1, 3] == pytest.approx(sim[2, 6])


def test_init_from_coarser_maps(make_mp):
    m = DepthSimMap(0, make_mp(width=8, height=8), scale=2, step=1)
    depth = np.array([[1.0, 2.0], [3.0, 4.0]], dtype=np.float32)
    sim = np.array([[0.1, 0.2], [0.3, 0.4]], dtype=np.float32)

    m.init_from_depth_map_and_sim_map(depth, sim, 4)

    # cell x reads (x * 2) // 4
    np.testing.assert_array_equal(m.depth, np.repeat(np.repeat(depth, 2, axis=0), 2, axis=1))
    assert m.get_cell(3, 0) == DepthSim(2.0, pytest.approx(0.2))


def test_init_from_maps_leaves_unmapped_cells(make_mp):
    m = DepthSimMap(0, make_mp(width=10, height=10))
    depth = np.arange(9, dtype=np.float32).reshape(3, 3) + 1.0
    sim = np.zeros((3, 3), dtype=np.float32)

    m.init_from_depth_map_and_sim_map(depth, sim, 3)

    assert m.get_cell(8, 0) == DepthSim(3.0, 0.0)
    assert m.get_cell(9, 0) == DepthSim(-1.0, 1.0)
    assert m.get_cell(0, 9) == DepthSim(-1.0, 1.0)
