"""Annotation drawing on single-channel images held as 2-D numpy arrays.

Images are indexed ``image[row, col]``; every function draws in place.
"""

from __future__ import annotations

import math

import numpy as np


def _shape(image: np.ndarray) -> tuple[int, int]:
    if not isinstance(image, np.ndarray) or image.ndim != 2:
        raise ValueError("image must be a 2-D numpy array")
    rows, cols = image.shape
    return rows, cols


def _byte(value: int) -> int:
    return int(value) & 0xFF


def _half(size: int) -> int:
    return int(size / 2)


def _clamp(value: int, limit: int) -> int:
    if value < 0:
        return 0
    if value >= limit:
        return limit - 1
    return value


def _fill_square(image: np.ndarray, x: float, y: float, k: int, size: int, value: int) -> None:
    rows, cols = _shape(image)
    minx, maxx = int(x - k), int(x + k)
    miny, maxy = int(y - k), int(y + k)
    if size == 2:
        maxx -= 1
        maxy -= 1
    minx, maxx = _clamp(minx, cols), _clamp(maxx, cols)
    miny, maxy = _clamp(miny, rows), _clamp(maxy, rows)
    image[miny : maxy + 1, minx : maxx + 1] = value


def draw_feature_block(image: np.ndarray, x: float, y: float, value: int, size: int) -> None:
    """Fill a square of roughly ``size`` pixels centred on (x, y)."""
    k = 0 if size == 1 else _half(size)
    _fill_square(image, x, y, k, size, _byte(value))


def draw_feature_circle(image: np.ndarray, x: float, y: float, value: int, size: int) -> None:
    """Mark (x, y) with a small filled square and a ring of radius ``size``."""
    value = _byte(value)
    _fill_square(image, x, y, 1, size, value)
    draw_circle(image, x, y, float(size), value)
    draw_circle(image, x, y, float(size + 1), value)


def draw_feature_cross(image: np.ndarray, x: float, y: float, value: int, size: int) -> None:
    """Draw a '+' of arm length ``size // 2`` centred on (x, y)."""
    k = _half(size)
    draw_line(image, x - k, y, x + k, y, value, 1)
    draw_line(image, x, y - k, x, y + k, value, 1)


def draw_arrow(
    image: np.ndarray, x0: float, y0: float, x1: float, y1: float, value: int, size: int
) -> None:
    """Draw a line from (x0, y0) to (x1, y1) with an arrow head at (x1, y1)."""
    dx = 7 * math.cos(3.14 / 3.0)
    dy = 7 * math.sin(3.14 / 3.0)
    draw_line(image, x0, y0, x1, y1, value, size)

    length = math.hypot(x1 - x0, y1 - y0)
    if length == 0.0:
        return
    ux = (x1 - x0) / length
    uy = -(y1 - y0) / length

    hx = x1 - dx * uy - dy * ux + 0.5
    hy = y1 - dx * ux + dy * uy + 0.5
    draw_line(image, x1, y1, hx, hy, value, size)

    hx = x1 + dx * uy - dy * ux
    hy = y1 + dx * ux + dy * uy
    draw_line(image, x1, y1, hx, hy, value, size)


def draw_line(
    image: np.ndarray, x0: float, y0: float, x1: float, y1: float, value: int, size: int
) -> None:
    """Draw a Bresenham line of thickness ``size`` from (x0, y0) towards (x1, y1).

    The end point itself is not drawn, and pixels closer than half the
    thickness to the border are skipped.
    """
    rows, cols = _shape(image)
    value = _byte(value)
    hs = _half(size)

    sx = int(abs(x1 - x0))
    sy = int(abs(y1 - y0))
    incy = 1 if (y1 - y0) > 0 else -1
    incx = 1 if (x1 - x0) > 0 else -1
    x = int(x0)
    y = int(y0)

    def inside() -> bool:
        return hs < x < cols - hs and hs < y < rows - hs

    if sx > sy:
        e = 2 * sy - sx
        for _ in range(sx):
            if inside():
                image[y - hs : y + hs + 1, x] = value
            x += incx
            if e < 0:
                e += 2 * sy
            else:
                y += incy
                e += 2 * sy - 2 * sx
    else:
        e = 2 * sx - sy
        for _ in range(sy):
            if inside():
                image[y, x - hs : x + hs + 1] = value
            y += incy
            if e < 0:
                e += 2 * sx
            else:
                x += incx
                e += 2 * sx - 2 * sy


def _ellipse_segments(x0: float, y0: float, a: float, b: float, theta: float):
    """Yield the end points of the polygon approximating an ellipse."""
    count = int(a * b * 2)
    if count <= 0:
        return
    step = 2 * math.pi / count
    ct, st = math.cos(theta), math.sin(theta)

    def point(i: int) -> tuple[int, int]:
        px = a * math.cos(i * step)
        py = b * math.sin(i * step)
        return int(px * ct - py * st + x0 + 0.5), int(px * st + py * ct + y0 + 0.5)

    for i in range(count):
        yield point(i), point((i + 1) % count)


def draw_ellipse(
    image: np.ndarray, x0: float, y0: float, a: float, b: float, theta: float, value: int
) -> None:
    """Draw the outline of an ellipse with semi-axes a, b rotated by ``theta`` radians."""
    rows, cols = _shape(image)
    for (xa, ya), (xb, yb) in _ellipse_segments(x0, y0, a, b, theta):
        if 0 < xa < cols and 0 < ya < rows and 0 < xb < cols and 0 < yb < rows:
            draw_line(image, xa, ya, xb, yb, value, 1)


def fill_ellipse(
    image: np.ndarray, x0: float, y0: float, a: float, b: float, theta: float, value: int
) -> None:
    """Draw a filled ellipse; the outline is traced with ``value - 1`` then filled row by row."""
    rows, cols = _shape(image)
    value = _byte(value)
    marker = value - 1
    marker_byte = _byte(marker)

    xmin, xmax, ymin, ymax = cols, 0, rows, 0
    for (xa, ya), (xb, yb) in _ellipse_segments(x0, y0, a, b, theta):
        if 0 < xa < cols and 0 < ya < rows and 0 < xb < cols and 0 < yb < rows:
            draw_line(image, xa, ya, xb, yb, marker_byte, 1)
            xmin = min(xmin, xa)
            xmax = max(xmax, xa)
            ymin = min(ymin, ya)
            ymax = max(ymax, ya)
        elif xa <= 0:
            if 0 <= ya < rows:
                image[ya, 0] = marker_byte
            xmin = 0
        elif xb <= 0:
            if 0 <= yb < rows:
                image[yb, 0] = marker_byte
            xmin = 0
        elif xa >= cols:
            if 0 <= ya < rows:
                image[ya, cols - 1] = marker_byte
            xmax = cols - 1
        elif xb >= cols:
            if 0 <= yb < rows:
                image[yb, cols - 1] = marker_byte
            xmax = cols - 1

    for i in range(ymin, ymax + 1):
        row = image[i]
        xl, xr = xmin, xmax
        if marker >= 0:
            hits = np.flatnonzero(row[xmin : xmax + 1] == marker)
            if hits.size:
                xl = xmin + int(hits[0])
                xr = xmin + int(hits[-1])
        row[xl : xr + 1] = value


def draw_box(
    image: np.ndarray, x0: float, y0: float, box_size: int, value: int, line_size: int
) -> None:
    """Draw the outline of a square of side ``box_size`` centred on (x0, y0)."""
    half = _half(box_size)
    left = int(x0 - half)
    right = int(x0 + half)
    top = int(y0 - half)
    bottom = int(y0 + half)
    draw_line(image, left, top, right, top, value, line_size)
    draw_line(image, left, top + box_size, right, top + box_size, value, line_size)
    draw_line(image, left, top, left, bottom, value, line_size)
    draw_line(image, left + box_size, top, left + box_size, bottom, value, line_size)


def draw_circle(image: np.ndarray, x0: float, y0: float, radius: float, value: int) -> None:
    """Draw the outline of a circle of ``radius`` pixels centred on (x0, y0)."""
    draw_ellipse(image, x0, y0, radius, radius, 0.0, value)