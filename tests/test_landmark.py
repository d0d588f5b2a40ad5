import math

import numpy as np
import pytest

from lmkforge.datum import Planet, ellipsoid_for
from lmkforge.landmark import (
    SRM_DEFAULT,
    Landmark,
    interpolate_float_grid,
    interpolate_uint8_grid,
    read_landmark,
)


@pytest.fixture
def lmk():
    lm = Landmark(body=Planet.MOON, lmk_id="test_patch", resolution=5.0)
    lm.allocate(20, 10)
    lm.anchor_col = lm.num_cols / 2.0
    lm.anchor_row = lm.num_rows / 2.0
    lm.calculate_anchor_rotation(10.0, 20.0, 0.0)
    lm.calculate_derived()
    rows, cols = np.mgrid[0:10, 0:20]
    lm.ele = (0.5 * cols + 2.0 * rows).astype(np.float32)
    lm.srm = ((cols * 7 + rows * 3) % 256).astype(np.uint8)
    return lm


def test_allocate_defaults():
    lm = Landmark()
    lm.allocate(4, 3)
    assert lm.srm.shape == (3, 4)
    assert lm.num_pixels == 12
    assert np.all(lm.srm == SRM_DEFAULT)
    assert np.all(np.isnan(lm.ele))


def test_interpolate_float_on_grid_points():
    grid = np.arange(12, dtype=np.float32).reshape(3, 4)
    assert interpolate_float_grid(grid, 2, 1) == grid[1, 2]
    assert interpolate_float_grid(grid, 3, 2) == grid[2, 3]


def test_interpolate_float_midpoint_is_mean():
    grid = np.arange(12, dtype=np.float32).reshape(3, 4)
    expected = float(grid[0:2, 1:3].mean())
    assert interpolate_float_grid(grid, 1.5, 0.5) == pytest.approx(expected)


def test_interpolate_float_outside_is_nan():
    grid = np.zeros((3, 4), dtype=np.float32)
    left = interpolate_float_grid(grid, -0.1, 1)
    below = interpolate_float_grid(grid, 1, 2.5)
    inside = interpolate_float_grid(grid, 1, 1)
    assert float(left) == pytest.approx(math.nan, nan_ok=True)
    assert float(below) == pytest.approx(math.nan, nan_ok=True)
    assert float(inside) == 0.0


def test_interpolate_float_nan_neighbour_propagates():
    grid = np.zeros((3, 3), dtype=np.float32)
    grid[1, 1] = np.nan
    assert math.isnan(interpolate_float_grid(grid, 0.5, 0.5))
    assert interpolate_float_grid(grid, 0, 0) == 0.0


def test_interpolate_uint8():
    grid = np.array([[10, 20], [30, 40]], dtype=np.uint8)
    assert interpolate_uint8_grid(grid, 1, 0) == 20
    assert interpolate_uint8_grid(grid, 5, 0) is None


def test_rotation_is_orthonormal(lmk):
    np.testing.assert_allclose(lmk.map_r_world @ lmk.map_r_world.T, np.eye(3), atol=1e-9)
    np.testing.assert_allclose(lmk.world_r_map, lmk.map_r_world.T)
    np.testing.assert_allclose(lmk.map_normal_vector, lmk.world_r_map[:, 2])


def test_anchor_on_moon_sphere(lmk):
    assert np.linalg.norm(lmk.anchor_point) == pytest.approx(ellipsoid_for(Planet.MOON).a)


def test_map_plane_contains_anchor(lmk):
    plane = lmk.map_plane_params
    assert float(plane[:3] @ lmk.anchor_point + plane[3]) == pytest.approx(0.0, abs=1e-6)


def test_anchor_pixel_maps_to_anchor_point(lmk):
    p = lmk.col_row_elevation_to_world(lmk.anchor_col, lmk.anchor_row, 0.0)
    np.testing.assert_allclose(p, lmk.anchor_point, atol=1e-6)


def test_world_round_trip(lmk):
    p = lmk.col_row_elevation_to_world(3.25, 7.5, 12.0)
    col, row, ele = lmk.world_to_col_row_elevation(p)
    assert col == pytest.approx(3.25)
    assert row == pytest.approx(7.5)
    assert ele == pytest.approx(12.0)


def test_col_row_to_world_uses_elevation(lmk):
    p, has_data = lmk.col_row_to_world(4, 2)
    assert has_data
    np.testing.assert_allclose(
        p, lmk.col_row_elevation_to_world(4, 2, float(lmk.ele[2, 4])), atol=1e-6
    )


def test_col_row_to_world_missing_data(lmk):
    lmk.ele[2, 4] = np.nan
    p, has_data = lmk.col_row_to_world(4, 2)
    assert not has_data
    np.testing.assert_allclose(p, lmk.col_row_elevation_to_world(4, 2, 0.0), atol=1e-6)


def test_interpolate_srm_outside_is_nan(lmk):
    assert math.isnan(lmk.interpolate_srm(-1, 0))
    assert lmk.interpolate_srm(3, 2) == float(lmk.srm[2, 3])


def test_zero_resolution_rejected():
    lm = Landmark(resolution=0.0)
    with pytest.raises(ValueError):
        lm.calculate_derived()


def test_write_read_round_trip(lmk, tmp_path):
    path = tmp_path / "patch.lmk"
    lmk.write(path)
    back = read_landmark(path)
    assert back.filename == str(path)
    assert back.body == Planet.MOON
    assert back.lmk_id == "test_patch"
    assert (back.num_cols, back.num_rows) == (20, 10)
    assert back.resolution == lmk.resolution
    np.testing.assert_array_equal(back.anchor_point, lmk.anchor_point)
    np.testing.assert_array_equal(back.map_r_world, lmk.map_r_world)
    np.testing.assert_array_equal(back.srm, lmk.srm)
    np.testing.assert_array_equal(back.ele, lmk.ele)
    np.testing.assert_allclose(back.map_plane_params, lmk.map_plane_params)


def test_written_file_layout(lmk, tmp_path):
    path = tmp_path / "patch.lmk"
    lmk.write(path)
    data = path.read_bytes()
    assert data[:15] == b"#! LVS Map v3.0"
    assert len(data) == 196 + 5 * lmk.num_pixels
    text = (tmp_path / "patch.lmk.txt").read_text().splitlines()
    assert text[0] == f"LMK_BODY {int(Planet.MOON)} "
    assert text[1] == "LMK_ID test_patch"
    assert text[2] == "LMK_SIZE 20 10"
    assert sum(line.startswith("LMK_WORLD_2_MAP_ROT") for line in text) == 3


def test_read_truncated(lmk, tmp_path):
    path = tmp_path / "patch.lmk"
    lmk.write(path)
    path.write_bytes(path.read_bytes()[:-10])
    with pytest.raises(ValueError):
        read_landmark(path)


def test_read_missing_file(tmp_path):
    with pytest.raises(OSError):
        read_landmark(tmp_path / "missing.lmk")


def test_write_mismatched_arrays(lmk, tmp_path):
    lmk.srm = lmk.srm[:5]
    with pytest.raises(ValueError):
        lmk.write(tmp_path / "bad.lmk")


def test_copy_is_independent(lmk):
    other = lmk.copy()
    other.ele[0, 0] = 999.0
    other.anchor_point[0] += 1.0
    assert lmk.ele[0, 0] != 999.0
    np.testing.assert_array_equal(other.srm, lmk.srm)
    assert other.anchor_point[0] == lmk.anchor_point[0] + 1.0


def test_copy_header_has_no_data(lmk):
    header = lmk.copy_header()
    assert header.num_cols == lmk.num_cols
    assert header.srm.size == 0
    np.testing.assert_array_equal(header.mapxy2col_row, lmk.mapxy2col_row)