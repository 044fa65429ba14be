"""
YUV -> RGB conversion for limited-range BT.601 video.

Integer approximation with 8-bit fixed point
(https://en.wikipedia.org/wiki/YUV#Y%E2%80%B2UV444_to_RGB888_conversion):

    C = Y - 16, D = U - 128, E = V - 128
    R = clamp((298*C           + 409*E + 128) >> 8)
    G = clamp((298*C - 100*D - 208*E + 128) >> 8)
    B = clamp((298*C + 516*D           + 128) >> 8)

packed as 0xRRGGBB.
"""

import numpy as np


def _clamp(value: int) -> int:
    return max(0, min(value, 0xFF))


def yuv_to_rgb(y: int, u: int, v: int) -> int:
    """Convert one 8-bit (Y, U, V) sample to a packed 24-bit RGB value."""
    c = (y & 0xFF) - 16
    d = (u & 0xFF) - 128
    e = (v & 0xFF) - 128

    r = _clamp((298 * c + 409 * e + 128) >> 8)
    g = _clamp((298 * c - 100 * d - 208 * e + 128) >> 8)
    b = _clamp((298 * c + 516 * d + 128) >> 8)

    return (r << 16) | (g << 8) | b


def yuv_to_rgb_array(y: np.ndarray, u: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Vectorised yuv_to_rgb over equally shaped uint8 arrays. Returns uint32."""
    c = y.astype(np.int32) - 16
    d = u.astype(np.int32) - 128
    e = v.astype(np.int32) - 128

    # numpy >> on signed ints is arithmetic, same as the scalar path
    r = np.clip((298 * c + 409 * e + 128) >> 8, 0, 0xFF)
    g = np.clip((298 * c - 100 * d - 208 * e + 128) >> 8, 0, 0xFF)
    b = np.clip((298 * c + 516 * d + 128) >> 8, 0, 0xFF)

    return ((r << 16) | (g << 8) | b).astype(np.uint32)


def unpack_rgb(raster: np.ndarray) -> np.ndarray:
    """Split a packed 0xRRGGBB raster into an (..., 3) uint8 array."""
    raster = raster.astype(np.uint32, copy=False)
    return np.stack(
        [(raster >> 16) & 0xFF, (raster >> 8) & 0xFF, raster & 0xFF],
        axis=-1,
    ).astype(np.uint8)
