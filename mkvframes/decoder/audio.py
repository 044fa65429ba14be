from typing import Literal

import numpy as np

from mkvframes.container.ebml_parser import CODEC_ID_PCM_BIG, CODEC_ID_PCM_LITTLE

SAMPLE_WIDTH = 4


def decode_audio_samples(data: bytes | memoryview, byteorder: Literal["big", "little"] = "big") -> np.ndarray:
    """
    Reinterpret raw PCM bytes as signed 32-bit samples, preserving order.

    Trailing bytes that don't make up a whole sample are dropped.
    """
    count = len(data) // SAMPLE_WIDTH
    if count == 0:
        return np.empty(0, dtype=np.int32)
    dtype = np.dtype(">i4" if byteorder == "big" else "<i4")
    samples = np.frombuffer(data, dtype=dtype, count=count)
    return samples.astype(np.int32)


def byteorder_for_codec(codec_id: str, default: Literal["big", "little"] = "big") -> Literal["big", "little"]:
    """Byte order declared by a PCM CodecID, or default when the codec doesn't say."""
    if codec_id == CODEC_ID_PCM_LITTLE:
        return "little"
    if codec_id == CODEC_ID_PCM_BIG:
        return "big"
    return default
