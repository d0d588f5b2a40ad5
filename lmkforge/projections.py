"""Equidistant cylindrical, orthographic and stereographic map projections."""

from __future__ import annotations

import math

from lmkforge.datum import DEG2RAD, RAD2DEG, Planet, ellipsoid_for

_ORIGIN_TOLERANCE = 0.000001


def _atan_ratio(num: float, den: float) -> float:
    """Arctangent of num/den, taking the limit when den is zero."""
    if den == 0.0:
        return math.atan2(num, 0.0)
    return math.atan(num / den)


def latlong_to_equidistant_cylindrical(
    latitude: float,
    longitude: float,
    standard_parallel: float,
    central_meridian: float,
    body: Planet,
) -> tuple[float, float]:
    """Project latitude/longitude (degrees) to equidistant cylindrical (x, y).

    The longitude offset is taken from ``standard_parallel`` and wrapped to
    [-pi, pi]; the horizontal scale uses the cosine of ``central_meridian``.
    """
    central_meridian_rad = central_meridian * DEG2RAD
    standard_parallel_rad = standard_parallel * DEG2RAD
    latitude_rad = latitude * DEG2RAD
    longitude_rad = longitude * DEG2RAD

    delta_longitude = longitude_rad - standard_parallel_rad
    if delta_longitude > math.pi:
        delta_longitude -= 2 * math.pi
    if delta_longitude < -math.pi:
        delta_longitude += 2 * math.pi

    radius = ellipsoid_for(body).a
    x = radius * math.cos(central_meridian_rad) * delta_longitude
    y = radius * latitude_rad
    return x, y


def equidistant_cylindrical_to_latlong(
    x: float,
    y: float,
    standard_parallel: float,
    central_meridian: float,
    body: Planet,
) -> tuple[float, float]:
    """Invert equidistant cylindrical (x, y) to latitude/longitude in degrees.

    The longitude is measured from ``central_meridian`` and the horizontal
    scale uses the cosine of ``standard_parallel``.
    """
    standard_parallel_rad = standard_parallel * DEG2RAD
    central_meridian_rad = central_meridian * DEG2RAD
    radius = ellipsoid_for(body).a
    latitude = y / radius
    longitude = central_meridian_rad + x / (radius * math.cos(standard_parallel_rad))
    return latitude * RAD2DEG, longitude * RAD2DEG


def orthographic_projection(
    lat: float, lon: float, lat0: float, lon0: float, body: Planet
) -> tuple[float, float]:
    """Project latitude/longitude (degrees) orthographically about (lat0, lon0)."""
    radius = ellipsoid_for(body).a
    dlon = (lon - lon0) * DEG2RAD
    x = radius * math.cos(lat * DEG2RAD) * math.sin(dlon)
    y = radius * (
        math.cos(lat0 * DEG2RAD) * math.sin(lat * DEG2RAD)
        - math.sin(lat0 * DEG2RAD) * math.cos(lat * DEG2RAD) * math.cos(dlon)
    )
    return x, y


def inverse_orthographic_projection(
    x: float, y: float, lat0: float, lon0: float, radius: float
) -> tuple[float, float]:
    """Invert orthographic (x, y) about (lat0, lon0) on a sphere of ``radius`` metres."""
    rho = math.hypot(x, y)
    if rho < _ORIGIN_TOLERANCE:
        return lat0, lon0
    if rho > radius:
        raise ValueError("point lies outside the visible hemisphere")
    c = math.asin(rho / radius)
    cosc = math.cos(c)
    sinc = math.sin(c)
    lat = math.asin(
        cosc * math.sin(lat0 * DEG2RAD) + y * sinc * math.cos(lat0 * DEG2RAD) / rho
    ) * RAD2DEG
    lon = lon0 + _atan_ratio(
        x * sinc,
        rho * cosc * math.cos(lat0 * DEG2RAD) - y * sinc * math.sin(lat0 * DEG2RAD),
    ) * RAD2DEG
    return lat, lon


def latlong_to_stereographic(
    lat: float, lon: float, lat0: float, lon0: float, body: Planet
) -> tuple[float, float]:
    """Project latitude/longitude (degrees) stereographically about (lat0, lon0)."""
    lat0_rad = lat0 * DEG2RAD
    lat_rad = lat * DEG2RAD
    dlon = (lon - lon0) * DEG2RAD
    radius = ellipsoid_for(body).a
    k0 = 1.0
    k = 2 * k0 / (
        1
        + math.sin(lat0_rad) * math.sin(lat_rad)
        + math.cos(lat0_rad) * math.cos(lat_rad) * math.cos(dlon)
    )
    x = radius * k * math.cos(lat_rad) * math.sin(dlon)
    y = radius * k * (
        math.cos(lat0_rad) * math.sin(lat_rad)
        - math.sin(lat0_rad) * math.cos(lat_rad) * math.cos(dlon)
    )
    return x, y


def stereographic_to_latlong(
    x: float, y: float, lat0: float, lon0: float, radius: float
) -> tuple[float, float]:
    """Invert stereographic (x, y) about (lat0, lon0) to latitude/longitude in degrees."""
    lat0_rad = lat0 * DEG2RAD
    k0 = 1.0
    rho = math.hypot(x, y)
    if rho == 0.0:
        return lat0, lon0
    c = 2 * math.atan(rho / (2 * radius * k0))
    lat = math.asin(
        math.cos(c) * math.sin(lat0_rad) + y * math.sin(c) * math.cos(lat0_rad) / rho
    )
    if lat0 == 90:
        lon = lon0 + _atan_ratio(x, -y) * RAD2DEG
    elif lat0 == -90:
        lon = lon0 + _atan_ratio(x, y) * RAD2DEG
    else:
        lon = lon0 + _atan_ratio(
            x * math.sin(c),
            rho * math.cos(lat0_rad) * math.cos(c) - y * math.sin(lat0_rad) * math.sin(c),
        ) * RAD2DEG
    return lat * RAD2DEG, lon