"""Planetary datums and conversions between geodetic and body-fixed coordinates."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Sequence

import numpy as np

DEG2RAD = math.pi / 180.0
RAD2DEG = 180.0 / math.pi


class Projection(IntEnum):
    """Supported map projections."""

    UTM = 0
    STEREO = 1
    EQUIDISTANT_CYLINDRICAL = 2
    GEOGRAPHIC = 3
    ORTHOGRAPHIC = 4
    UNDEFINED = 5


class Planet(IntEnum):
    """Planetary bodies with a defined ellipsoid."""

    EARTH = 0
    MOON = 1
    MARS = 2
    UNDEFINED = 3


@dataclass(frozen=True)
class Ellipsoid:
    """Reference ellipsoid parameters."""

    a: float
    b: float
    e2: float
    e2b: float
    e: float
    f: float


_ELLIPSOIDS = {
    Planet.EARTH: Ellipsoid(
        6378137.00, 6356752.3141, 0.00669437999013, 0.00673949678826,
        0.08181919084255, 0.00335281066474,
    ),
    Planet.MOON: Ellipsoid(1737400.0, 1737400.0, 0.0, 0.0, 0.0, 0.0),
    Planet.MARS: Ellipsoid(
        3396190.0, 3376200.0, 0.0117373700, 0.011876772094,
        0.10833914343394, 0.0058860075,
    ),
}


def ellipsoid_for(body: Planet) -> Ellipsoid:
    """Return the reference ellipsoid of ``body``."""
    try:
        return _ELLIPSOIDS[Planet(body)]
    except (KeyError, ValueError):
        raise ValueError(f"no ellipsoid defined for {body!r}") from None


def _atan_ratio(num: float, den: float) -> float:
    """Arctangent of num/den, taking the limit when den is zero."""
    if den == 0.0:
        return math.atan2(num, 0.0)
    return math.atan(num / den)


def lat_long_height_to_ecef(
    latitude: float, longitude: float, elevation: float, body: Planet
) -> np.ndarray:
    """Convert geodetic latitude/longitude (degrees) and height (m) to body-fixed XYZ."""
    ell = ellipsoid_for(body)
    cs = math.cos(latitude * DEG2RAD)
    si = math.sin(latitude * DEG2RAD)
    csl = math.cos(longitude * DEG2RAD)
    sil = math.sin(longitude * DEG2RAD)
    n = ell.a / math.sqrt(1 - ell.e2 * si * si)
    return np.array(
        [
            (n + elevation) * cs * csl,
            (n + elevation) * cs * sil,
            (n * (1 - ell.e2) + elevation) * si,
        ]
    )


def ecef_to_lat_long_height(
    point: Sequence[float], body: Planet
) -> tuple[float, float, float]:
    """Convert body-fixed XYZ to (latitude, longitude, height) on the ellipsoid."""
    ell = ellipsoid_for(body)
    x, y, z = (float(v) for v in point)
    d = math.hypot(x, y)
    ph = _atan_ratio(z * ell.a, d * ell.b)
    cs = math.cos(ph)
    si = math.sin(ph)
    lat = _atan_ratio(z + ell.e2b * ell.b * si**3, d - ell.e2 * ell.a * cs**3)
    lon = math.atan2(y, x)
    si = math.sin(lat)
    n = ell.a / math.sqrt(1 - ell.e2 * si * si)
    height = d / math.cos(lat) - n
    return lat * RAD2DEG, lon * RAD2DEG, height


def lat_long_height_to_ecef_sphere(
    latitude: float, longitude: float, elevation: float, radius: float
) -> np.ndarray:
    """Convert latitude/longitude/height to XYZ on a sphere of ``radius`` metres."""
    r = radius + elevation
    cs = math.cos(latitude * DEG2RAD)
    return np.array(
        [
            r * cs * math.cos(longitude * DEG2RAD),
            r * cs * math.sin(longitude * DEG2RAD),
            r * math.sin(latitude * DEG2RAD),
        ]
    )


def ecef_to_lat_long_height_sphere(
    point: Sequence[float], radius: float
) -> tuple[float, float, float]:
    """Convert XYZ to (latitude, longitude, height) on a sphere of ``radius`` metres."""
    x, y, z = (float(v) for v in point)
    d = math.hypot(x, y)
    lat = _atan_ratio(z, d) * RAD2DEG
    lon = math.atan2(y, x) * RAD2DEG
    height = math.sqrt(x * x + y * y + z * z) - radius
    return lat, lon, height


def _unit(v: np.ndarray) -> np.ndarray:
    return v / np.linalg.norm(v)


def _rotation_from(to_xyz, latitude: float, longitude: float, elevation: float) -> np.ndarray:
    dp_lat = to_xyz(latitude + 0.001, longitude, elevation) - to_xyz(
        latitude - 0.001, longitude, elevation
    )
    dp_long = to_xyz(latitude, longitude + 0.001, elevation) - to_xyz(
        latitude, longitude - 0.001, elevation
    )
    dy = _unit(dp_lat)
    dx = _unit(dp_long)
    dz = np.cross(dx, dy)
    return np.array([dx, dy, dz])


def localmap_to_ecef_rotation(
    latitude: float, longitude: float, elevation: float, body: Planet
) -> np.ndarray:
    """Rotation whose rows are the local east, north and up axes on the ellipsoid."""
    ellipsoid_for(body)
    return _rotation_from(
        lambda la, lo, h: lat_long_height_to_ecef(la, lo, h, body),
        latitude, longitude, elevation,
    )


def localmap_to_ecef_rotation_sphere(
    latitude: float, longitude: float, elevation: float, radius: float
) -> np.ndarray:
    """Rotation whose rows are the local east, north and up axes on a sphere."""
    return _rotation_from(
        lambda la, lo, h: lat_long_height_to_ecef_sphere(la, lo, h, radius),
        latitude, longitude, elevation,
    )


def planet_from_str(text: str | None) -> Planet:
    """Parse a planet name; any prefix of the name is accepted, None means the Moon."""
    if text is None:
        return Planet.MOON
    for name, planet in (("Moon", Planet.MOON), ("Earth", Planet.EARTH), ("Mars", Planet.MARS)):
        if name.startswith(text):
            return planet
    raise ValueError(f'planet must be "Moon", "Earth" or "Mars", not {text!r}')


def projection_from_str(text: str | None) -> Projection:
    """Parse a projection name; any prefix of the name is accepted."""
    if text is None:
        return Projection.UNDEFINED
    for name, projection in (
        ("EQ_CYLINDERICAL", Projection.EQUIDISTANT_CYLINDRICAL),
        ("UTM", Projection.UTM),
        ("STEREO", Projection.STEREO),
        ("GEOGRAPHIC", Projection.GEOGRAPHIC),
    ):
        if name.startswith(text):
            return projection
    raise ValueError(
        f'projection must be "EQ_CYLINDERICAL", "UTM", "STEREO" or "GEOGRAPHIC", not {text!r}'
    )