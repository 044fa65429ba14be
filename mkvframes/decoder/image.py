"""
Planar YUV 4:2:0 (yuv420p / I420) to packed RGB.

Buffer layout for a width x height frame (total = width * height):

    [0, total)                         Y, full resolution, row-major
    [total, total + total/4)           U, (width/2) x (height/2)
    [total + total/4, ...)             V, (width/2) x (height/2)

Pixel (x, y) samples Y[y*width + x] and U/V[(y/2)*(width/2) + x/2], all
divisions truncating. Odd dimensions are not special-cased.
"""

import numpy as np

from mkvframes.decoder.colorspace import yuv_to_rgb_array
from mkvframes.errors import BufferTooShortError


def required_size(width: int, height: int) -> int:
    """Smallest buffer length decode_yuv420p can read a width x height frame from."""
    if width <= 0 or height <= 0:
        return 0
    total = width * height
    last_chroma = ((height - 1) // 2) * (width // 2) + (width - 1) // 2
    return total + total // 4 + last_chroma + 1


def decode_yuv420p(data: bytes | memoryview, width: int, height: int) -> np.ndarray:
    """
    Decode one yuv420p frame into a (height, width) uint32 raster of 0xRRGGBB.

    Raises:
        BufferTooShortError: data is shorter than required_size(width, height).
    """
    if width <= 0 or height <= 0:
        return np.zeros((max(height, 0), max(width, 0)), dtype=np.uint32)

    needed = required_size(width, height)
    if len(data) < needed:
        raise BufferTooShortError(needed, len(data))

    buf = np.frombuffer(data, dtype=np.uint8, count=needed)
    total = width * height
    u_base = total
    v_base = total + total // 4

    rows = np.arange(height)[:, None]
    cols = np.arange(width)[None, :]
    chroma = (rows // 2) * (width // 2) + cols // 2

    y_plane = buf[:total].reshape(height, width)
    u_plane = buf[u_base + chroma]
    v_plane = buf[v_base + chroma]

    return yuv_to_rgb_array(y_plane, u_plane, v_plane)
