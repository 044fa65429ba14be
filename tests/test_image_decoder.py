import numpy as np
import pytest

from mkv_builder import yuv420p_frame
from mkvframes.decoder.colorspace import yuv_to_rgb
from mkvframes.decoder.image import decode_yuv420p, required_size
from mkvframes.errors import BufferTooShortError


def test_4x2_frame_matches_hand_computed_pixels():
    y_plane = [16, 60, 120, 235, 30, 90, 150, 210]
    u_plane = [100, 200]  # one chroma sample per 2x2 block
    v_plane = [50, 180]
    data = bytes(y_plane + u_plane + v_plane)

    raster = decode_yuv420p(data, 4, 2)

    assert raster.shape == (2, 4)
    assert raster.dtype == np.uint32
    for y in range(2):
        for x in range(4):
            expected = yuv_to_rgb(y_plane[y * 4 + x], u_plane[x // 2], v_plane[x // 2])
            assert int(raster[y, x]) == expected, (x, y)


def test_chroma_subsampled_over_2x2_blocks():
    width, height = 4, 4
    data = bytearray([128] * (width * height))
    data += bytes([10, 20, 30, 40])  # U
    data += bytes([128, 128, 128, 128])  # V

    raster = decode_yuv420p(bytes(data), width, height)

    # Pixels of the same 2x2 block share chroma
    assert raster[0, 0] == raster[0, 1] == raster[1, 0] == raster[1, 1]
    assert raster[2, 2] == raster[2, 3] == raster[3, 2] == raster[3, 3]
    assert int(raster[0, 2]) == yuv_to_rgb(128, 20, 128)
    assert int(raster[3, 0]) == yuv_to_rgb(128, 30, 128)


def test_every_pixel_matches_scalar_conversion():
    width, height = 16, 8
    data = yuv420p_frame(width, height, seed=3)
    total = width * height

    raster = decode_yuv420p(data, width, height)

    for y in range(height):
        for x in range(width):
            chroma = (y // 2) * (width // 2) + x // 2
            expected = yuv_to_rgb(data[y * width + x], data[total + chroma], data[total + total // 4 + chroma])
            assert int(raster[y, x]) == expected


def test_odd_dimensions_use_truncating_offsets():
    width, height = 3, 3
    assert required_size(width, height) == 14
    data = bytes(range(14))

    raster = decode_yuv420p(data, width, height)

    # (2, 2): Y index 8, chroma index (1 * 1) + 1 = 2 -> U at 9 + 2, V at 11 + 2
    assert int(raster[2, 2]) == yuv_to_rgb(8, 11, 13)


def test_extra_trailing_bytes_are_ignored():
    data = yuv420p_frame(4, 2)
    assert np.array_equal(decode_yuv420p(data + b"\xff" * 10, 4, 2), decode_yuv420p(data, 4, 2))


def test_memoryview_input():
    data = b"\x00" * 5 + yuv420p_frame(4, 2)
    view = memoryview(data)[5:]
    assert np.array_equal(decode_yuv420p(view, 4, 2), decode_yuv420p(bytes(view), 4, 2))


def test_short_buffer_raises():
    data = yuv420p_frame(4, 2)
    with pytest.raises(BufferTooShortError) as exc_info:
        decode_yuv420p(data[:-1], 4, 2)
    assert exc_info.value.required == 12
    assert exc_info.value.actual == 11


def test_zero_size_frame():
    raster = decode_yuv420p(b"", 0, 0)
    assert raster.shape == (0, 0)
