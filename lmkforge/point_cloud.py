"""Gridding point clouds into landmarks and exchanging landmarks as PLY files."""

from __future__ import annotations

import logging
import math
import os
import re
import struct
import sys
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Iterable, Sequence

import numpy as np

from lmkforge.landmark import Landmark

logger = logging.getLogger(__name__)

_WINDOW_RADIUS = 4
_INT_PREFIX = re.compile(r"[+-]?\d+")


class PointFileType(IntEnum):
    """Kinds of point files."""

    POINT = 0
    PLY = 1
    UNDEFINED = 2


class PointStructure(IntEnum):
    """How points are organised when written."""

    POINTCLOUD = 0
    MESH = 1


class PointFrame(IntEnum):
    """Coordinate frame of point coordinates."""

    WORLD = 0
    LOCAL = 1
    RASTER = 2


class PlyStorageMode(IntEnum):
    """Encoding of a PLY file body."""

    BIG_ENDIAN = 0
    LITTLE_ENDIAN = 1
    ASCII = 2
    DEFAULT = 3


def _match_prefix(text: str, choices: Iterable[tuple[str, object]]):
    for name, value in choices:
        if name.startswith(text):
            return value
    return None


def point_file_type_from_str(text: str | None) -> PointFileType:
    """Parse "POINT" or "PLY" (any prefix); None means POINT, anything else UNDEFINED."""
    if text is None:
        return PointFileType.POINT
    found = _match_prefix(text, (("POINT", PointFileType.POINT), ("PLY", PointFileType.PLY)))
    if found is None:
        logger.warning('Value of str must be "POINT" or "PLY"')
        return PointFileType.UNDEFINED
    return found


def ply_storage_mode_from_str(text: str | None) -> PlyStorageMode:
    """Parse a PLY storage mode name (any prefix); unknown names give DEFAULT."""
    if text is None:
        return PlyStorageMode.DEFAULT
    found = _match_prefix(
        text,
        (
            ("PLY_ASCII", PlyStorageMode.ASCII),
            ("PLY_BIG_ENDIAN", PlyStorageMode.BIG_ENDIAN),
            ("PLY_LITTLE_ENDIAN", PlyStorageMode.LITTLE_ENDIAN),
        ),
    )
    if found is None:
        logger.warning(
            'Value of str must be "PLY_BIG_ENDIAN" or "PLY_LITTLE_ENDIAN" or "PLY_ASCII"'
        )
        return PlyStorageMode.DEFAULT
    return found


def frame_from_str(text: str | None) -> PointFrame:
    """Parse "WORLD", "LOCAL" or "RASTER" (any prefix); anything else gives WORLD."""
    if text is None:
        logger.info("Defaulting to WORLD")
        return PointFrame.WORLD
    found = _match_prefix(
        text,
        (("WORLD", PointFrame.WORLD), ("LOCAL", PointFrame.LOCAL), ("RASTER", PointFrame.RASTER)),
    )
    if found is None:
        logger.warning('Value of str must be "WORLD" or "LOCAL" or "RASTER"; defaulting to WORLD')
        return PointFrame.WORLD
    return found


def structure_from_str(text: str | None) -> PointStructure:
    """Parse "MESH" or "POINTCLOUD" (any prefix); anything else gives MESH."""
    if text is None:
        return PointStructure.MESH
    found = _match_prefix(
        text, (("MESH", PointStructure.MESH), ("POINTCLOUD", PointStructure.POINTCLOUD))
    )
    if found is None:
        logger.warning('Value of str must be "POINTCLOUD" or "MESH". Defaulting to MESH')
        return PointStructure.MESH
    return found


def _c_round(value: float) -> int:
    """Round half away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _to_raster(lmk: Landmark, point: np.ndarray, frame: PointFrame) -> tuple[float, float, float]:
    if frame == PointFrame.WORLD:
        return lmk.world_to_col_row_elevation(point)
    if frame == PointFrame.LOCAL:
        pm = np.asarray(lmk.map_r_world, dtype=float) @ (point - np.asarray(lmk.anchor_point))
        return float(pm[0]), float(pm[1]), float(pm[2])
    return float(point[0]), float(point[1]), float(point[2]) * lmk.resolution


def point_to_landmark(
    points: Sequence[Sequence[float]] | np.ndarray,
    intensities: Sequence[float] | np.ndarray,
    lmk: Landmark,
    frame: PointFrame,
) -> Landmark:
    """Grid points into ``lmk`` by distance-weighted averaging.

    Each point spreads its elevation and intensity over a 9x9 pixel window
    with weights ``exp(-2 d)``. Pixels that no point reaches get NaN elevation
    and zero reflectance. The landmark header must be complete. Returns ``lmk``.
    """
    pts = np.asarray(points, dtype=float).reshape(-1, 3)
    values = np.asarray(intensities, dtype=float).ravel()
    if len(values) != len(pts):
        raise ValueError("there must be one intensity per point")

    rows, cols = lmk.num_rows, lmk.num_cols
    if lmk.ele.shape != (rows, cols) or lmk.srm.shape != (rows, cols):
        lmk.allocate(cols, rows)

    weight = np.zeros((rows, cols))
    ele_sum = np.zeros((rows, cols))
    srm_sum = np.zeros((rows, cols))

    for point, intensity in zip(pts, values):
        x, y, ele = _to_raster(lmk, point, frame)
        if not (math.isfinite(x) and math.isfinite(y)):
            continue
        ix, iy = _c_round(x), _c_round(y)
        if not (0 <= ix < cols and 0 <= iy < rows):
            continue
        c0, c1 = max(ix - _WINDOW_RADIUS, 0), min(ix + _WINDOW_RADIUS, cols - 1)
        r0, r1 = max(iy - _WINDOW_RADIUS, 0), min(iy + _WINDOW_RADIUS, rows - 1)
        m = np.arange(r0, r1 + 1)[:, None]
        n = np.arange(c0, c1 + 1)[None, :]
        wt = np.exp(-2.0 * np.sqrt((m - y) ** 2 + (n - x) ** 2))
        window = (slice(r0, r1 + 1), slice(c0, c1 + 1))
        ele_sum[window] += wt * ele
        srm_sum[window] += wt * intensity
        weight[window] += wt

    covered = weight > 0.0
    safe = np.where(covered, weight, 1.0)
    lmk.ele = np.where(covered, ele_sum / safe, np.nan).astype(np.float32)
    srm = np.clip(np.where(covered, srm_sum / safe, 0.0), 0, 255)
    lmk.srm = srm.astype(np.uint8)
    return lmk


def read_points_ascii(path: str | os.PathLike) -> tuple[np.ndarray, np.ndarray]:
    """Read lines of ``X Y Z intensity``; lines that do not parse are skipped.

    Returns an (N, 3) float array of points and an N-long uint8 array of intensities.
    """
    coords: list[tuple[float, float, float]] = []
    levels: list[int] = []
    with open(os.fspath(path), "r") as fp:
        for line in fp:
            parts = line.split()
            try:
                x, y, z = (float(token) for token in parts[:3])
                match = _INT_PREFIX.match(parts[3])
                if match is None:
                    raise ValueError(parts[3])
            except (ValueError, IndexError):
                logger.warning("Failure to scan point values from line %.256s; ignoring", line)
                continue
            coords.append((x, y, z))
            levels.append(int(match.group()) & 0xFF)
    return np.array(coords, dtype=float).reshape(-1, 3), np.array(levels, dtype=np.uint8)


_PLY_TYPES = {
    "int8": "b", "char": "b",
    "uint8": "B", "uchar": "B",
    "int16": "h", "short": "h",
    "uint16": "H", "ushort": "H",
    "int32": "i", "int": "i",
    "uint32": "I", "uint": "I",
    "float32": "f", "float": "f",
    "float64": "d", "double": "d",
}

_FORMAT_NAMES = {
    PlyStorageMode.ASCII: "ascii",
    PlyStorageMode.BIG_ENDIAN: "binary_big_endian",
    PlyStorageMode.LITTLE_ENDIAN: "binary_little_endian",
}


@dataclass
class _PlyProperty:
    name: str
    value_type: str
    count_type: str | None = None


@dataclass
class _PlyElement:
    name: str
    count: int
    properties: list[_PlyProperty] = field(default_factory=list)


def _ply_type(name: str) -> str:
    try:
        return _PLY_TYPES[name]
    except KeyError:
        raise ValueError(f"unknown PLY type {name!r}") from None


def _parse_header(data: bytes) -> tuple[PlyStorageMode, list[_PlyElement], int]:
    marker = data.find(b"end_header")
    if not data.startswith(b"ply") or marker < 0:
        raise ValueError("not a PLY file")
    newline = data.find(b"\n", marker)
    body_start = len(data) if newline < 0 else newline + 1
    lines = data[:marker].decode("ascii", errors="replace").splitlines()

    storage: PlyStorageMode | None = None
    elements: list[_PlyElement] = []
    for line in lines[1:]:
        words = line.split()
        if not words or words[0] in ("comment", "obj_info"):
            continue
        if words[0] == "format" and len(words) >= 2:
            modes = {name: mode for mode, name in _FORMAT_NAMES.items()}
            if words[1] not in modes:
                raise ValueError(f"unknown PLY format {words[1]!r}")
            storage = modes[words[1]]
        elif words[0] == "element" and len(words) == 3:
            elements.append(_PlyElement(words[1], int(words[2])))
        elif words[0] == "property" and elements:
            if len(words) == 5 and words[1] == "list":
                _ply_type(words[2])
                _ply_type(words[3])
                elements[-1].properties.append(_PlyProperty(words[4], words[3], words[2]))
            elif len(words) == 3:
                _ply_type(words[1])
                elements[-1].properties.append(_PlyProperty(words[2], words[1]))
            else:
                raise ValueError(f"malformed PLY property line {line!r}")
        else:
            raise ValueError(f"malformed PLY header line {line!r}")
    if storage is None:
        raise ValueError("PLY header has no format line")
    return storage, elements, body_start


class _PlyCursor:
    """Sequential reader over a PLY body."""

    def __init__(self, storage: PlyStorageMode, body: bytes) -> None:
        self.ascii = storage == PlyStorageMode.ASCII
        self.prefix = ">" if storage == PlyStorageMode.BIG_ENDIAN else "<"
        self.body = body
        self.tokens = body.split() if self.ascii else []
        self.pos = 0

    def scalar(self, type_name: str) -> float:
        code = _ply_type(type_name)
        if self.ascii:
            if self.pos >= len(self.tokens):
                raise ValueError("truncated PLY data")
            token = self.tokens[self.pos]
            self.pos += 1
            return float(token)
        fmt = self.prefix + code
        try:
            (value,) = struct.unpack_from(fmt, self.body, self.pos)
        except struct.error:
            raise ValueError("truncated PLY data") from None
        self.pos += struct.calcsize(fmt)
        return float(value)

    def table(self, element: _PlyElement) -> np.ndarray:
        """Read every instance of a scalar-only element as a (count, nprops) array."""
        nprops = len(element.properties)
        if self.ascii:
            size = element.count * nprops
            if self.pos + size > len(self.tokens):
                raise ValueError("truncated PLY data")
            chunk = self.tokens[self.pos : self.pos + size]
            self.pos += size
            return np.array([float(t) for t in chunk], dtype=float).reshape(element.count, nprops)
        dtype = np.dtype(
            [(f"f{k}", self.prefix + _ply_type(p.value_type)) for k, p in enumerate(element.properties)]
        )
        if self.pos + dtype.itemsize * element.count > len(self.body):
            raise ValueError("truncated PLY data")
        records = np.frombuffer(self.body, dtype=dtype, count=element.count, offset=self.pos)
        self.pos += dtype.itemsize * element.count
        out = np.empty((element.count, nprops))
        for k in range(nprops):
            out[:, k] = records[f"f{k}"]
        return out

    def skip(self, element: _PlyElement) -> None:
        if all(p.count_type is None for p in element.properties):
            self.table(element)
            return
        for _ in range(element.count):
            for prop in element.properties:
                if prop.count_type is None:
                    self.scalar(prop.value_type)
                else:
                    for _ in range(int(self.scalar(prop.count_type))):
                        self.scalar(prop.value_type)


def read_ply(path: str | os.PathLike) -> tuple[np.ndarray, np.ndarray]:
    """Read the vertices of a PLY file.

    Returns an (N, 3) float array of x, y, z and an N-long uint8 array of
    the ``intensity`` property (zeros when the file has none).
    """
    with open(os.fspath(path), "rb") as fp:
        data = fp.read()
    storage, elements, start = _parse_header(data)
    cursor = _PlyCursor(storage, data[start:])

    for element in elements:
        if element.name != "vertex":
            cursor.skip(element)
            continue
        names = [p.name for p in element.properties]
        if any(p.count_type is not None for p in element.properties):
            raise ValueError("vertex element must hold scalar properties only")
        for axis in ("x", "y", "z"):
            if axis not in names:
                raise ValueError(f"vertex element lacks property {axis!r}")
        table = cursor.table(element)
        points = table[:, [names.index("x"), names.index("y"), names.index("z")]]
        if "intensity" in names:
            raw = np.clip(table[:, names.index("intensity")], 0, 255)
            intensities = raw.astype(np.uint8)
        else:
            intensities = np.zeros(element.count, dtype=np.uint8)
        return points, intensities
    raise ValueError("PLY file has no vertex element")


def _resolve_storage(storage: PlyStorageMode) -> PlyStorageMode:
    storage = PlyStorageMode(storage)
    if storage == PlyStorageMode.DEFAULT:
        return PlyStorageMode.LITTLE_ENDIAN if sys.byteorder == "little" else PlyStorageMode.BIG_ENDIAN
    return storage


def _landmark_vertices(
    lmk: Landmark, frame: PointFrame, rows: range, cols: range
) -> list[tuple[float, float, float, int]]:
    vertices = []
    for i in rows:
        for j in cols:
            ele = lmk.interpolate_elevation(j, i)
            if math.isnan(ele):
                continue
            if frame == PointFrame.WORLD:
                point, _ = lmk.col_row_to_world(float(j), float(i))
                x, y, z = (float(v) for v in point)
            elif frame == PointFrame.LOCAL:
                raster = np.array([j, i, 1.0])
                x = float(lmk.col_row2mapxy[0] @ raster)
                y = float(lmk.col_row2mapxy[1] @ raster)
                z = ele
            else:
                x, y, z = float(j), float(i), ele / lmk.resolution
            vertices.append((x, y, z, int(lmk.srm[i, j])))
    return vertices


def _write_ply(
    path: str | os.PathLike,
    storage: PlyStorageMode,
    vertices: list[tuple[float, float, float, int]],
    faces: list[tuple[int, int, int]] | None,
) -> None:
    storage = _resolve_storage(storage)
    lines = [
        "ply",
        f"format {_FORMAT_NAMES[storage]} 1.0",
        f"element vertex {len(vertices)}",
        "property float32 x",
        "property float32 y",
        "property float32 z",
        "property uint8 intensity",
    ]
    if faces is not None:
        lines += [f"element face {len(faces)}", "property list int32 int32 vertex_indices"]
    lines.append("end_header")

    with open(os.fspath(path), "wb") as fp:
        fp.write(("\n".join(lines) + "\n").encode("ascii"))
        if storage == PlyStorageMode.ASCII:
            for x, y, z, v in vertices:
                coords = " ".join(f"{float(np.float32(c)):.9g}" for c in (x, y, z))
                fp.write(f"{coords} {v}\n".encode("ascii"))
            for a, b, c in faces or ():
                fp.write(f"3 {a} {b} {c}\n".encode("ascii"))
        else:
            prefix = ">" if storage == PlyStorageMode.BIG_ENDIAN else "<"
            vertex = struct.Struct(prefix + "fffB")
            face = struct.Struct(prefix + "4i")
            fp.write(b"".join(vertex.pack(x, y, z, v) for x, y, z, v in vertices))
            fp.write(b"".join(face.pack(3, a, b, c) for a, b, c in faces or ()))


def write_ply_facet_window(
    path: str | os.PathLike,
    lmk: Landmark,
    x0: int,
    y0: int,
    cols: int,
    rows: int,
    storage: PlyStorageMode,
    frame: PointFrame,
) -> None:
    """Write a ``cols`` x ``rows`` window of the landmark centred on (x0, y0) as a PLY mesh.

    Each pixel with elevation becomes a vertex; each pixel square is split
    into two triangles wherever their corners have elevation.
    """
    min_i = y0 - int(rows / 2)
    max_i = y0 + int(rows / 2) + (1 if rows % 2 == 1 else 0)
    min_j = x0 - int(cols / 2)
    max_j = x0 + int(cols / 2) + (1 if cols % 2 == 1 else 0)
    min_i, min_j = max(min_i, 0), max(min_j, 0)
    max_i, max_j = min(max_i, lmk.num_rows), min(max_j, lmk.num_cols)
    if max_i <= min_i or max_j <= min_j:
        raise ValueError("the window does not overlap the landmark")

    valid = ~np.isnan(np.asarray(lmk.ele[min_i:max_i, min_j:max_j], dtype=float))
    index = np.full(valid.shape, -1, dtype=np.int64)
    index[valid] = np.arange(int(valid.sum()))

    faces: list[tuple[int, int, int]] = []
    for i in range(valid.shape[0] - 1):
        for j in range(valid.shape[1] - 1):
            ul, ur = int(index[i, j]), int(index[i, j + 1])
            ll, lr = int(index[i + 1, j]), int(index[i + 1, j + 1])
            if ul >= 0 and ur >= 0 and lr >= 0:
                faces.append((ul, ur, lr))
            if ul >= 0 and lr >= 0 and ll >= 0:
                faces.append((ul, lr, ll))

    vertices = _landmark_vertices(lmk, frame, range(min_i, max_i), range(min_j, max_j))
    _write_ply(path, storage, vertices, faces)


def write_ply_facet(
    path: str | os.PathLike, lmk: Landmark, storage: PlyStorageMode, frame: PointFrame
) -> None:
    """Write the whole landmark as a PLY mesh."""
    write_ply_facet_window(
        path, lmk, int(lmk.anchor_col), int(lmk.anchor_row),
        lmk.num_cols, lmk.num_rows, storage, frame,
    )


def write_ply_points(
    path: str | os.PathLike, lmk: Landmark, storage: PlyStorageMode, frame: PointFrame
) -> None:
    """Write every landmark pixel with elevation as a PLY point cloud."""
    vertices = _landmark_vertices(lmk, frame, range(lmk.num_rows), range(lmk.num_cols))
    _write_ply(path, storage, vertices, None)