"""Ray intersection, cropping and resampling of landmark maps."""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

from lmkforge.datum import ecef_to_lat_long_height
from lmkforge.landmark import Landmark

INTERSECTION_MAX_ITERATIONS = 100


def _vec3(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=float).reshape(3)


def _plane_through(normal: np.ndarray, point: np.ndarray) -> np.ndarray:
    return np.append(normal, -float(normal @ point))


def _point_to_plane_distance(point: np.ndarray, plane: np.ndarray) -> float:
    normal = plane[:3]
    return float((normal @ point + plane[3]) / np.linalg.norm(normal))


def _ray_plane_intersection(
    origin: np.ndarray, ray: np.ndarray, plane: np.ndarray
) -> np.ndarray | None:
    denominator = float(plane[:3] @ ray)
    if denominator == 0.0:
        return None
    t = -(float(plane[:3] @ origin) + plane[3]) / denominator
    return origin + t * ray


def _sample(grid: np.ndarray, cols: np.ndarray, rows: np.ndarray) -> np.ndarray:
    """Bilinear samples of ``grid`` at many points; NaN outside the grid."""
    grid = np.asarray(grid, dtype=float)
    cols, rows = np.broadcast_arrays(np.asarray(cols, float), np.asarray(rows, float))
    out = np.full(cols.shape, np.nan)
    if grid.size == 0:
        return out
    nr, nc = grid.shape
    inside = (cols >= 0) & (cols <= nc - 1) & (rows >= 0) & (rows <= nr - 1)
    c = cols[inside]
    r = rows[inside]
    c0 = np.floor(c).astype(int)
    r0 = np.floor(r).astype(int)
    c1 = np.minimum(c0 + 1, nc - 1)
    r1 = np.minimum(r0 + 1, nr - 1)
    fc = c - c0
    fr = r - r0
    total = np.zeros(c.shape)
    with np.errstate(invalid="ignore"):
        for weight, rr, cc in (
            ((1 - fc) * (1 - fr), r0, c0),
            (fc * (1 - fr), r0, c1),
            ((1 - fc) * fr, r1, c0),
            (fc * fr, r1, c1),
        ):
            total += np.where(weight > 0.0, weight * grid[rr, cc], 0.0)
    out[inside] = total
    return out


def _to_srm(values: np.ndarray) -> np.ndarray:
    missing = np.isnan(values)
    clipped = np.clip(np.rint(np.where(missing, 0.0, values)), 0, 255)
    return clipped.astype(np.uint8)


def intersect_map_plane(
    lmk: Landmark, origin: Sequence[float], ray: Sequence[float]
) -> np.ndarray | None:
    """Intersect a world-frame ray with the landmark tangent plane.

    Returns None when the ray is parallel to the plane.
    """
    return _ray_plane_intersection(_vec3(origin), _vec3(ray), np.asarray(lmk.map_plane_params))


def intersect_elevation(
    lmk: Landmark, origin: Sequence[float], ray: Sequence[float], tol: float
) -> np.ndarray | None:
    """Intersect a world-frame ray with the landmark elevation map.

    Starts from the tangent-plane intersection and refines it along the ray.
    Returns None if the ray leaves the map, meets missing data or does not
    converge to within ``tol`` metres.
    """
    c = _vec3(origin)
    r = _vec3(ray)
    dot_n_ray = float(r @ lmk.map_normal_vector)
    p = intersect_map_plane(lmk, c, r)
    if p is None:
        return None

    dist = math.inf
    for _ in range(INTERSECTION_MAX_ITERATIONS):
        if not dist > tol:
            break
        col, row, ele0 = lmk.world_to_col_row_elevation(p)
        if col < 2 or col > lmk.num_cols - 2 or row < 2 or row > lmk.num_rows - 2:
            return None
        ele_dem = lmk.interpolate_elevation(col, row)
        p = p + ((ele_dem - ele0) / dot_n_ray) * r
        dist = abs(ele_dem - ele0)

    if dist < tol:
        return p
    return None


def intersect_elevation_low_slant(
    lmk: Landmark,
    origin: Sequence[float],
    ray: Sequence[float],
    max_range: float,
    min_elevation: float,
    max_elevation: float,
) -> np.ndarray | None:
    """Intersect a ray meeting the map at a low slant angle by stepping along it.

    The search runs between the map elevations ``max_elevation`` and
    ``min_elevation`` and covers at most ``max_range`` metres. Returns None
    when no intersection is found.
    """
    c = _vec3(origin)
    r = _vec3(ray)
    normal = np.asarray(lmk.map_normal_vector, dtype=float)
    anchor = np.asarray(lmk.anchor_point, dtype=float)

    camera_height = _point_to_plane_distance(c, np.asarray(lmk.map_plane_params))
    max_elevation = min(max_elevation, camera_height)

    high_plane = _plane_through(normal, anchor + max_elevation * normal)
    low_plane = _plane_through(normal, anchor + min_elevation * normal)

    high = _ray_plane_intersection(c, r, high_plane)
    low = _ray_plane_intersection(c, r, low_plane)
    if high is None or low is None:
        return None
    x1, y1, _ = lmk.world_to_col_row_elevation(high)
    x2, y2, _ = lmk.world_to_col_row_elevation(low)

    steps = int(round(max(abs(x1 - x2), abs(y1 - y2)) * 2))
    if steps == 0:
        return None
    dh = -(max_elevation - min_elevation) / steps
    dx = -(x1 - x2) / steps
    dy = -(y1 - y2) / steps

    steps = min(steps, int(max_range / lmk.resolution))

    dhp = 1.0
    for i in range(steps):
        x = x1 + dx * i
        y = y1 + dy * i
        if x < 1 or x > lmk.num_cols - 1 or y < 1 or y > lmk.num_rows - 1:
            return None
        h_dem = lmk.interpolate_elevation(x, y)
        if math.isnan(h_dem):
            continue
        h = h_dem - (max_elevation + dh * i)
        if h >= 0.0 and dhp < 0.0:
            corners = [
                lmk.col_row_to_world(x - 0.5, y - 0.5),
                lmk.col_row_to_world(x - 0.5, y + 0.5),
                lmk.col_row_to_world(x + 0.5, y + 0.5),
                lmk.col_row_to_world(x + 0.5, y - 0.5),
            ]
            if not all(has_data for _, has_data in corners):
                return None
            upper_left, lower_left, lower_right, upper_right = (p for p, _ in corners)
            tx = (upper_right - upper_left) + (lower_right - lower_left)
            ty = (upper_left - lower_left) + (upper_right - lower_right)
            local_normal = np.cross(tx, ty)
            local_normal = local_normal / np.linalg.norm(local_normal)
            centre, _ = lmk.col_row_to_world(x, y)
            return _ray_plane_intersection(c, r, _plane_through(local_normal, centre))
        dhp = h
    return None


def subset_landmark(lmk: Landmark, left: int, top: int, ncols: int, nrows: int) -> Landmark:
    """Copy a region of interest of ``lmk`` into a new landmark.

    The anchor moves to the centre of the region but the map plane keeps its
    orientation, so the elevations are copied unchanged.
    """
    if ncols <= 0 or nrows <= 0:
        raise ValueError("region of interest must have a positive size")
    if left < 0 or top < 0 or left + ncols > lmk.num_cols or top + nrows > lmk.num_rows:
        raise ValueError("region of interest lies outside the landmark")
    sub = lmk.copy_header()
    sub.anchor_col = ncols / 2.0
    sub.anchor_row = nrows / 2.0
    sub.anchor_point = lmk.col_row_elevation_to_world(
        left + sub.anchor_col, top + sub.anchor_row, 0.0
    )
    sub.calculate_derived()
    sub.allocate(ncols, nrows)
    sub.ele[:, :] = lmk.ele[top : top + nrows, left : left + ncols]
    sub.srm[:, :] = lmk.srm[top : top + nrows, left : left + ncols]
    return sub


def resample_landmark(lmk: Landmark, scale: float) -> Landmark:
    """Resample ``lmk`` so that the new resolution is ``scale`` times the old one."""
    if not scale > 0:
        raise ValueError("scale must be positive")
    sub = lmk.copy_header()
    ncols = int(lmk.num_cols / scale)
    nrows = int(lmk.num_rows / scale)
    sub.resolution = lmk.resolution * scale
    sub.anchor_col = ncols / 2.0
    sub.anchor_row = nrows / 2.0
    sub.anchor_point, _ = lmk.col_row_to_world(sub.anchor_col * scale, sub.anchor_row * scale)
    sub.calculate_derived()
    sub.allocate(ncols, nrows)

    rows, cols = np.meshgrid(np.arange(nrows) * scale, np.arange(ncols) * scale, indexing="ij")
    sub.ele[:, :] = _sample(lmk.ele, cols, rows).astype(np.float32)
    sub.srm[:, :] = _to_srm(_sample(lmk.srm, cols, rows))
    return sub


def rescale_landmark(lmk: Landmark, resolution: float) -> Landmark:
    """Resample ``lmk`` to a new resolution in metres per pixel."""
    return resample_landmark(lmk, resolution / lmk.resolution)


def crop_interpolate_landmark(
    lmk: Landmark, left: int, top: int, ncols: int, nrows: int
) -> Landmark:
    """Crop ``lmk`` to a region of interest about a new tangent plane.

    The anchor moves to the centre of the region and the tangent plane is
    recomputed there; elevations and reflectance are interpolated from
    ``lmk``. ``lmk`` itself is left unchanged.
    """
    if ncols <= 0 or nrows <= 0:
        raise ValueError("region of interest must have a positive size")
    sub = lmk.copy_header()
    sub.anchor_col = ncols / 2.0
    sub.anchor_row = nrows / 2.0
    centre_col = left + sub.anchor_col
    centre_row = top + sub.anchor_row
    centre_ele = float(np.float32(lmk.interpolate_elevation(centre_col, centre_row)))
    if math.isnan(centre_ele):
        raise ValueError("no elevation data at the centre of the region of interest")
    anchor = lmk.col_row_elevation_to_world(centre_col, centre_row, centre_ele)
    latitude, longitude, height = ecef_to_lat_long_height(anchor, sub.body)
    sub.calculate_anchor_rotation(latitude, longitude, height)
    sub.calculate_derived()
    sub.allocate(ncols, nrows)

    ii, jj = np.meshgrid(np.arange(nrows, dtype=float), np.arange(ncols, dtype=float), indexing="ij")
    to_map = sub.col_row2mapxy
    map_x = to_map[0, 0] * jj + to_map[0, 1] * ii + to_map[0, 2]
    map_y = to_map[1, 0] * jj + to_map[1, 1] * ii + to_map[1, 2]
    local = np.stack([map_x, map_y, np.zeros_like(map_x)], axis=-1)
    world = local @ sub.world_r_map.T + sub.anchor_point

    parent = (world - lmk.anchor_point) @ np.asarray(lmk.map_r_world, dtype=float).T
    to_pixel = lmk.mapxy2col_row
    cols = to_pixel[0, 0] * parent[..., 0] + to_pixel[0, 1] * parent[..., 1] + to_pixel[0, 2]
    rows = to_pixel[1, 0] * parent[..., 0] + to_pixel[1, 1] * parent[..., 1] + to_pixel[1, 2]

    sub.ele[:, :] = _sample(lmk.ele, cols, rows).astype(np.float32)
    sub.srm[:, :] = _to_srm(_sample(lmk.srm, cols, rows))
    return sub