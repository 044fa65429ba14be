import numpy as np

from mkv_builder import pcm_s32
from mkvframes.decoder.audio import byteorder_for_codec, decode_audio_samples

SAMPLES = [0, 1, -1, 2**31 - 1, -(2**31), 123456789, -42]


def test_big_endian_samples_in_order():
    result = decode_audio_samples(pcm_s32(SAMPLES, "big"), "big")
    assert result.dtype == np.int32
    assert result.tolist() == SAMPLES


def test_little_endian_samples_in_order():
    result = decode_audio_samples(pcm_s32(SAMPLES, "little"), "little")
    assert result.tolist() == SAMPLES


def test_byte_order_matters():
    result = decode_audio_samples(pcm_s32([1], "little"), "big")
    assert result.tolist() == [0x01000000]


def test_trailing_partial_sample_is_dropped():
    data = pcm_s32([7, 8]) + b"\x01\x02\x03"
    assert decode_audio_samples(data).tolist() == [7, 8]


def test_empty_and_sub_sample_payloads():
    assert decode_audio_samples(b"").tolist() == []
    assert decode_audio_samples(b"\x00\x01").tolist() == []


def test_memoryview_input():
    data = memoryview(b"\xaa" + pcm_s32([5, -5]))[1:]
    assert decode_audio_samples(data).tolist() == [5, -5]


def test_byteorder_for_codec():
    assert byteorder_for_codec("A_PCM/INT/LIT") == "little"
    assert byteorder_for_codec("A_PCM/INT/BIG", default="little") == "big"
    assert byteorder_for_codec("A_OPUS", default="little") == "little"
    assert byteorder_for_codec("") == "big"
