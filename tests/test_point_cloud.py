import math

import numpy as np
import pytest

from lmkforge.datum import Planet
from lmkforge.landmark import Landmark
from lmkforge.point_cloud import (
    PlyStorageMode,
    PointFileType,
    PointFrame,
    PointStructure,
    frame_from_str,
    ply_storage_mode_from_str,
    point_file_type_from_str,
    point_to_landmark,
    read_ply,
    read_points_ascii,
    structure_from_str,
    write_ply_facet,
    write_ply_facet_window,
    write_ply_points,
)


def _grid_landmark(cols, rows, resolution=2.0):
    lmk = Landmark(resolution=resolution)
    lmk.allocate(cols, rows)
    lmk.anchor_col = cols / 2.0
    lmk.anchor_row = rows / 2.0
    lmk.calculate_derived()
    return lmk


def _header_lines(path):
    text = path.read_bytes().split(b"end_header")[0].decode("ascii")
    return text.splitlines()


@pytest.mark.parametrize(
    "text, expected",
    [("PLY", PointFileType.PLY), ("POINT", PointFileType.POINT), (None, PointFileType.POINT),
     ("xyz", PointFileType.UNDEFINED)],
)
def test_point_file_type_from_str(text, expected):
    assert point_file_type_from_str(text) is expected


@pytest.mark.parametrize(
    "text, expected",
    [("LOCAL", PointFrame.LOCAL), ("RASTER", PointFrame.RASTER), ("WORLD", PointFrame.WORLD),
     (None, PointFrame.WORLD), ("bogus", PointFrame.WORLD)],
)
def test_frame_from_str(text, expected):
    assert frame_from_str(text) is expected


@pytest.mark.parametrize(
    "text, expected",
    [("MESH", PointStructure.MESH), ("POINTCLOUD", PointStructure.POINTCLOUD),
     ("bogus", PointStructure.MESH)],
)
def test_structure_from_str(text, expected):
    assert structure_from_str(text) is expected


@pytest.mark.parametrize(
    "text, expected",
    [("PLY_ASCII", PlyStorageMode.ASCII), ("PLY_BIG_ENDIAN", PlyStorageMode.BIG_ENDIAN),
     ("PLY_LITTLE_ENDIAN", PlyStorageMode.LITTLE_ENDIAN), ("bogus", PlyStorageMode.DEFAULT),
     (None, PlyStorageMode.DEFAULT)],
)
def test_ply_storage_mode_from_str(text, expected):
    assert ply_storage_mode_from_str(text) is expected


def test_read_points_ascii_skips_bad_lines(tmp_path):
    path = tmp_path / "points.txt"
    path.write_text("1 2 3 7\nbad line\n4.5 5.5 6.5 255\n")
    points, intensities = read_points_ascii(path)
    np.testing.assert_allclose(points, [[1, 2, 3], [4.5, 5.5, 6.5]])
    assert intensities.tolist() == [7, 255]


def test_read_points_ascii_missing_file(tmp_path):
    with pytest.raises(OSError):
        read_points_ascii(tmp_path / "absent.txt")


def test_point_to_landmark_raster_single_point():
    lmk = _grid_landmark(12, 12, resolution=2.0)
    point_to_landmark([[2.0, 2.0, 3.0]], [40], lmk, PointFrame.RASTER)
    assert lmk.ele[2, 2] == pytest.approx(6.0)
    assert lmk.ele[6, 6] == pytest.approx(6.0)
    assert lmk.srm[2, 2] == 40
    assert math.isnan(lmk.ele[11, 11])
    assert lmk.srm[11, 11] == 0


def test_point_to_landmark_ignores_points_outside():
    lmk = _grid_landmark(5, 5)
    point_to_landmark([[-10.0, 2.0, 1.0]], [9], lmk, PointFrame.RASTER)
    assert np.isnan(lmk.ele).all()
    assert (lmk.srm == 0).all()


def test_point_to_landmark_length_mismatch():
    lmk = _grid_landmark(5, 5)
    with pytest.raises(ValueError):
        point_to_landmark([[1.0, 1.0, 1.0]], [1, 2], lmk, PointFrame.RASTER)


def test_point_to_landmark_world_frame_recovers_elevation():
    lmk = Landmark(body=Planet.MOON, resolution=10.0)
    lmk.allocate(20, 20)
    lmk.anchor_col = 10.0
    lmk.anchor_row = 10.0
    lmk.calculate_anchor_rotation(10.0, 20.0, 0.0)
    lmk.calculate_derived()
    pts = [lmk.col_row_elevation_to_world(c, r, 5.0) for r in range(20) for c in range(20)]
    point_to_landmark(pts, [50] * len(pts), lmk, PointFrame.WORLD)
    np.testing.assert_allclose(lmk.ele, 5.0, atol=1e-3)
    assert (lmk.srm == 50).all()


@pytest.mark.parametrize(
    "storage",
    [PlyStorageMode.ASCII, PlyStorageMode.BIG_ENDIAN, PlyStorageMode.LITTLE_ENDIAN,
     PlyStorageMode.DEFAULT],
)
def test_write_points_raster_round_trip(tmp_path, storage):
    lmk = _grid_landmark(4, 3, resolution=2.0)
    lmk.ele[:, :] = np.arange(12, dtype=np.float32).reshape(3, 4)
    lmk.ele[1, 2] = np.nan
    lmk.srm[:, :] = np.arange(12, dtype=np.uint8).reshape(3, 4) * 10
    path = tmp_path / "points.ply"
    write_ply_points(path, lmk, storage, PointFrame.RASTER)
    points, intensities = read_ply(path)
    expected = [
        (j, i, lmk.ele[i, j] / 2.0)
        for i in range(3) for j in range(4) if not math.isnan(lmk.ele[i, j])
    ]
    np.testing.assert_allclose(points, expected)
    assert intensities.tolist() == [
        int(lmk.srm[i, j]) for i in range(3) for j in range(4) if not math.isnan(lmk.ele[i, j])
    ]


def test_write_points_local_frame_keeps_elevation(tmp_path):
    lmk = _grid_landmark(3, 3, resolution=2.0)
    lmk.ele[:, :] = np.arange(9, dtype=np.float32).reshape(3, 3)
    path = tmp_path / "local.ply"
    write_ply_points(path, lmk, PlyStorageMode.LITTLE_ENDIAN, PointFrame.LOCAL)
    points, _ = read_ply(path)
    np.testing.assert_allclose(points[:, 2], lmk.ele.ravel())


def test_facet_full_grid_counts(tmp_path):
    lmk = _grid_landmark(3, 3)
    lmk.ele[:, :] = 1.0
    path = tmp_path / "mesh.ply"
    write_ply_facet(path, lmk, PlyStorageMode.ASCII, PointFrame.RASTER)
    header = _header_lines(path)
    assert "element vertex 9" in header
    assert "element face 8" in header
    points, _ = read_ply(path)
    assert len(points) == 9


def test_facet_with_hole_references_valid_vertices(tmp_path):
    lmk = _grid_landmark(3, 3)
    lmk.ele[:, :] = 1.0
    lmk.ele[0, 0] = np.nan
    path = tmp_path / "hole.ply"
    write_ply_facet(path, lmk, PlyStorageMode.ASCII, PointFrame.RASTER)
    header = _header_lines(path)
    assert "element vertex 8" in header
    assert "element face 6" in header
    body = path.read_text().split("end_header\n")[1].splitlines()
    faces = [list(map(int, line.split())) for line in body[8:]]
    assert len(faces) == 6
    assert all(f[0] == 3 and all(0 <= k < 8 for k in f[1:]) for f in faces)


def test_facet_binary_readable(tmp_path):
    lmk = _grid_landmark(4, 4)
    lmk.ele[:, :] = 2.0
    path = tmp_path / "mesh_be.ply"
    write_ply_facet(path, lmk, PlyStorageMode.BIG_ENDIAN, PointFrame.RASTER)
    points, intensities = read_ply(path)
    assert len(points) == 16
    np.testing.assert_allclose(points[:, 2], 1.0)
    assert (intensities == lmk.srm.ravel()).all()


def test_facet_window_outside_raises(tmp_path):
    lmk = _grid_landmark(3, 3)
    lmk.ele[:, :] = 1.0
    with pytest.raises(ValueError):
        write_ply_facet_window(
            tmp_path / "x.ply", lmk, 100, 100, 3, 3, PlyStorageMode.ASCII, PointFrame.RASTER
        )


def test_read_ply_skips_leading_elements(tmp_path):
    path = tmp_path / "hand.ply"
    path.write_text(
        "ply\nformat ascii 1.0\ncomment made by hand\n"
        "element face 1\nproperty list uchar int vertex_indices\n"
        "element vertex 2\nproperty float x\nproperty float y\nproperty float z\n"
        "property uchar intensity\nend_header\n"
        "3 0 1 1\n1 2 3 4\n5 6 7 8\n"
    )
    points, intensities = read_ply(path)
    np.testing.assert_allclose(points, [[1, 2, 3], [5, 6, 7]])
    assert intensities.tolist() == [4, 8]


def test_read_ply_rejects_non_ply(tmp_path):
    path = tmp_path / "junk.ply"
    path.write_text("hello world\n")
    with pytest.raises(ValueError):
        read_ply(path)


def test_read_ply_truncated(tmp_path):
    path = tmp_path / "short.ply"
    path.write_text(
        "ply\nformat ascii 1.0\nelement vertex 2\nproperty float x\n"
        "property float y\nproperty float z\nend_header\n1 2 3\n"
    )
    with pytest.raises(ValueError):
        read_ply(path)