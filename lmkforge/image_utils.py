"""Reading and writing 8-bit images stored with separate colour planes."""

from __future__ import annotations

import os
from typing import Sequence

import numpy as np
from PIL import Image


def _flat_bytes(data: Sequence[int] | np.ndarray, size: int) -> np.ndarray:
    arr = np.asarray(data, dtype=np.uint8).ravel()
    if arr.size != size:
        raise ValueError(f"expected {size} values, got {arr.size}")
    return arr


def interleave_rgb(planar: Sequence[int] | np.ndarray, width: int, height: int) -> np.ndarray:
    """Turn R, G and B planes laid end to end into interleaved RGB values."""
    data = _flat_bytes(planar, width * height * 3)
    return data.reshape(3, width * height).T.ravel()


def separate_rgb_channels(
    interleaved: Sequence[int] | np.ndarray, width: int, height: int
) -> np.ndarray:
    """Turn interleaved RGB values into R, G and B planes laid end to end."""
    data = _flat_bytes(interleaved, width * height * 3)
    return data.reshape(width * height, 3).T.ravel()


def load_channel_separated_image(path: str | os.PathLike) -> np.ndarray:
    """Load a monochrome or RGB image.

    A monochrome image comes back with shape (rows, cols); an RGB image with
    shape (3, rows, cols), one plane per channel.
    """
    with Image.open(os.fspath(path)) as img:
        mode = img.mode
        if mode == "P":
            mode = "RGBA" if "transparency" in img.info else "RGB"
        if mode in ("L", "1"):
            return np.array(img.convert("L"), dtype=np.uint8)
        if mode == "RGB":
            arr = np.array(img.convert("RGB"), dtype=np.uint8)
            return np.ascontiguousarray(arr.transpose(2, 0, 1))
    raise ValueError(f"{os.fspath(path)}: image must be monochrome or RGB, not {mode}")


def write_channel_separated_image(
    path: str | os.PathLike,
    image: Sequence[int] | np.ndarray,
    cols: int,
    rows: int,
    channels: int,
) -> None:
    """Write a monochrome or channel-separated RGB image to a PNG file."""
    if channels == 3:
        data = interleave_rgb(image, cols, rows).reshape(rows, cols, 3)
        picture = Image.fromarray(data, "RGB")
    elif channels == 1:
        data = _flat_bytes(image, cols * rows).reshape(rows, cols)
        picture = Image.fromarray(data, "L")
    else:
        raise ValueError(f"writing images with {channels} channels is not supported")
    picture.save(os.fspath(path), format="PNG")