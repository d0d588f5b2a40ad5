"""Landmark elevation and reflectance maps on a local tangent plane."""

from __future__ import annotations

import math
import os
import struct
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from lmkforge.datum import Planet, lat_long_height_to_ecef, localmap_to_ecef_rotation

SRM_DEFAULT = 100
LMK_ID_SIZE = 32
VERSION_SIZE = 32
VERSION = b"#! LVS Map v3.0"

_HEADER = struct.Struct(">32s32s3i3d3d9d")


def _bilinear(grid: np.ndarray, col: float, row: float) -> float:
    rows, cols = grid.shape
    if not (0.0 <= col <= cols - 1 and 0.0 <= row <= rows - 1):
        return math.nan
    c0 = int(math.floor(col))
    r0 = int(math.floor(row))
    c1 = min(c0 + 1, cols - 1)
    r1 = min(r0 + 1, rows - 1)
    fc = col - c0
    fr = row - r0
    terms = (
        ((1 - fc) * (1 - fr), r0, c0),
        (fc * (1 - fr), r0, c1),
        ((1 - fc) * fr, r1, c0),
        (fc * fr, r1, c1),
    )
    return float(sum(w * float(grid[r, c]) for w, r, c in terms if w > 0.0))


def interpolate_float_grid(grid: np.ndarray, col: float, row: float) -> float:
    """Bilinearly interpolate ``grid[row, col]``; NaN outside the grid or over missing data."""
    return _bilinear(np.asarray(grid), col, row)


def interpolate_uint8_grid(grid: np.ndarray, col: float, row: float) -> int | None:
    """Bilinearly interpolate an 8-bit grid; None when (col, row) lies outside it."""
    value = _bilinear(np.asarray(grid), col, row)
    if math.isnan(value):
        return None
    return max(0, min(255, int(round(value))))


def _empty_srm() -> np.ndarray:
    return np.zeros((0, 0), dtype=np.uint8)


def _empty_ele() -> np.ndarray:
    return np.zeros((0, 0), dtype=np.float32)


@dataclass
class Landmark:
    """A gridded elevation map and surface reflectance map anchored on a planet.

    ``srm`` and ``ele`` are indexed ``[row, col]``.
    """

    filename: str = ""
    body: Planet = Planet.MOON
    lmk_id: str = ""
    num_cols: int = 0
    num_rows: int = 0
    anchor_col: float = 0.0
    anchor_row: float = 0.0
    resolution: float = 1.0
    anchor_point: np.ndarray = field(default_factory=lambda: np.zeros(3))
    map_r_world: np.ndarray = field(default_factory=lambda: np.eye(3))
    srm: np.ndarray = field(default_factory=_empty_srm)
    ele: np.ndarray = field(default_factory=_empty_ele)
    world_r_map: np.ndarray = field(default_factory=lambda: np.eye(3))
    col_row2mapxy: np.ndarray = field(default_factory=lambda: np.zeros((2, 3)))
    mapxy2col_row: np.ndarray = field(default_factory=lambda: np.zeros((2, 3)))
    map_normal_vector: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0, 1.0]))
    map_plane_params: np.ndarray = field(default_factory=lambda: np.zeros(4))

    @property
    def num_pixels(self) -> int:
        """Number of map pixels."""
        return self.num_cols * self.num_rows

    def allocate(self, num_cols: int, num_rows: int) -> None:
        """Size the maps to ``num_cols`` x ``num_rows`` with default reflectance and no elevation."""
        if num_cols < 0 or num_rows < 0:
            raise ValueError("landmark dimensions must be non-negative")
        self.num_cols = int(num_cols)
        self.num_rows = int(num_rows)
        self.srm = np.full((self.num_rows, self.num_cols), SRM_DEFAULT, dtype=np.uint8)
        self.ele = np.full((self.num_rows, self.num_cols), np.nan, dtype=np.float32)

    def calculate_anchor_rotation(
        self, latitude: float, longitude: float, elevation: float
    ) -> None:
        """Set the anchor point and world-to-map rotation from a geodetic position."""
        self.anchor_point = lat_long_height_to_ecef(latitude, longitude, elevation, self.body)
        self.map_r_world = localmap_to_ecef_rotation(latitude, longitude, elevation, self.body)

    def calculate_derived(self) -> None:
        """Recompute the pixel/map transforms, map normal and map plane."""
        if self.resolution == 0:
            raise ValueError("landmark resolution must be non-zero")
        res = self.resolution
        self.col_row2mapxy = np.array(
            [
                [res, 0.0, -res * self.anchor_col],
                [0.0, -res, res * self.anchor_row],
            ]
        )
        self.mapxy2col_row = np.array(
            [
                [1 / res, 0.0, self.anchor_col],
                [0.0, -1 / res, self.anchor_row],
            ]
        )
        self.world_r_map = np.asarray(self.map_r_world, dtype=float).T.copy()
        self.map_normal_vector = self.world_r_map[:, 2].copy()
        self.map_plane_params = np.append(
            self.map_normal_vector, -float(np.dot(self.map_normal_vector, self.anchor_point))
        )

    def copy_header(self) -> "Landmark":
        """Return a landmark sharing this header but with no map data."""
        return Landmark(
            body=self.body,
            lmk_id=self.lmk_id[:LMK_ID_SIZE],
            num_cols=self.num_cols,
            num_rows=self.num_rows,
            anchor_col=self.anchor_col,
            anchor_row=self.anchor_row,
            resolution=self.resolution,
            anchor_point=np.array(self.anchor_point, dtype=float),
            map_r_world=np.array(self.map_r_world, dtype=float),
            world_r_map=np.array(self.world_r_map, dtype=float),
            col_row2mapxy=np.array(self.col_row2mapxy, dtype=float),
            mapxy2col_row=np.array(self.mapxy2col_row, dtype=float),
            map_normal_vector=np.array(self.map_normal_vector, dtype=float),
            map_plane_params=np.array(self.map_plane_params, dtype=float),
        )

    def copy(self) -> "Landmark":
        """Return a deep copy of the header and maps."""
        other = self.copy_header()
        other.srm = np.array(self.srm, dtype=np.uint8)
        other.ele = np.array(self.ele, dtype=np.float32)
        return other

    def write(self, path: str | os.PathLike) -> None:
        """Write the binary landmark file and an ASCII header to ``path`` + ".txt"."""
        shape = (self.num_rows, self.num_cols)
        if self.srm.shape != shape or self.ele.shape != shape:
            raise ValueError("map arrays do not match landmark dimensions")
        lmk_id = self.lmk_id.encode("latin-1")[:LMK_ID_SIZE]
        header = _HEADER.pack(
            VERSION,
            lmk_id,
            int(self.body),
            self.num_cols,
            self.num_rows,
            float(self.anchor_col),
            float(self.anchor_row),
            float(self.resolution),
            *(float(v) for v in self.anchor_point),
            *(float(v) for v in np.asarray(self.map_r_world).ravel()),
        )
        filename = os.fspath(path)
        with open(filename, "wb") as fp:
            fp.write(header)
            fp.write(self.srm.astype(np.uint8).tobytes())
            fp.write(self.ele.astype(">f4").tobytes())

        rot = np.asarray(self.map_r_world)
        ap = self.anchor_point
        lines = [
            f"LMK_BODY {int(self.body)} \n",
            f"LMK_ID {self.lmk_id[:LMK_ID_SIZE]}\n",
            f"LMK_SIZE {self.num_cols} {self.num_rows}\n",
            f"LMK_RESOLUTION {self.resolution:f} \n",
            f"LMK_ANCHOR_POINT {ap[0]:f} {ap[1]:f} {ap[2]:f} \n",
            f"LMK_ANCHOR_PIXEL {self.anchor_col:f} {self.anchor_row:f} \n",
        ]
        lines += [f"LMK_WORLD_2_MAP_ROT {r[0]:f} {r[1]:f} {r[2]:f} \n" for r in rot]
        with open(f"{filename}.txt", "w") as fp:
            fp.writelines(lines)

    def col_row_elevation_to_world(self, col: float, row: float, elevation: float) -> np.ndarray:
        """Body-fixed position of pixel (col, row) at the given map elevation."""
        pim = np.array([col, row, 1.0])
        pm = np.array([self.col_row2mapxy[0] @ pim, self.col_row2mapxy[1] @ pim, elevation])
        return self.world_r_map @ pm + self.anchor_point

    def col_row_to_world(self, col: float, row: float) -> tuple[np.ndarray, bool]:
        """Body-fixed position of pixel (col, row) at its interpolated elevation.

        Returns the point and whether elevation data existed; where it did not,
        an elevation of zero is used.
        """
        ele = self.interpolate_elevation(col, row)
        has_data = not math.isnan(ele)
        return self.col_row_elevation_to_world(col, row, ele if has_data else 0.0), has_data

    def interpolate_elevation(self, col: float, row: float) -> float:
        """Bilinearly interpolated elevation at (col, row); NaN where unknown."""
        return interpolate_float_grid(self.ele, col, row)

    def interpolate_srm(self, col: float, row: float) -> float:
        """Bilinearly interpolated reflectance at (col, row); NaN outside the map."""
        value = interpolate_uint8_grid(self.srm, col, row)
        return math.nan if value is None else float(value)

    def world_to_col_row_elevation(self, point: Sequence[float]) -> tuple[float, float, float]:
        """Pixel column, row and map elevation of a body-fixed point."""
        pw = np.asarray(point, dtype=float) - self.anchor_point
        pm = np.asarray(self.map_r_world) @ pw
        ele = float(pm[2])
        pm[2] = 1.0
        return float(self.mapxy2col_row[0] @ pm), float(self.mapxy2col_row[1] @ pm), ele


def read_landmark(path: str | os.PathLike) -> Landmark:
    """Read a binary landmark file."""
    filename = os.fspath(path)
    with open(filename, "rb") as fp:
        data = fp.read()
    if len(data) < _HEADER.size:
        raise ValueError(f"{filename}: truncated landmark header")
    values = _HEADER.unpack_from(data)
    _, raw_id, body, num_cols, num_rows = values[:5]
    anchor_col, anchor_row, resolution = values[5:8]
    anchor_point = np.array(values[8:11])
    map_r_world = np.array(values[11:20]).reshape(3, 3)
    if num_cols < 0 or num_rows < 0:
        raise ValueError(f"{filename}: invalid landmark dimensions")

    lmk = Landmark(
        filename=filename,
        body=Planet(body),
        lmk_id=raw_id.split(b"\0", 1)[0].decode("latin-1"),
        num_cols=num_cols,
        num_rows=num_rows,
        anchor_col=anchor_col,
        anchor_row=anchor_row,
        resolution=resolution,
        anchor_point=anchor_point,
        map_r_world=map_r_world,
    )
    lmk.calculate_derived()

    n = num_cols * num_rows
    start = _HEADER.size
    if len(data) < start + 5 * n:
        raise ValueError(f"{filename}: truncated landmark data")
    lmk.srm = (
        np.frombuffer(data, dtype=np.uint8, count=n, offset=start)
        .reshape(num_rows, num_cols)
        .copy()
    )
    lmk.ele = (
        np.frombuffer(data, dtype=">f4", count=n, offset=start + n)
        .astype(np.float32)
        .reshape(num_rows, num_cols)
    )
    return lmk