from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

import numpy as np


class TrackType(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class Track:
    """Normalized description of one media stream."""

    id: int
    type: TrackType
    title: str | None = None
    codec_id: str = ""
    # Video-specific
    width: int = 0
    height: int = 0
    # Audio-specific
    sample_rate: int = 0
    channels: int = 0


@dataclass(frozen=True, slots=True, eq=False)
class VideoFrame:
    """A decoded video frame: packed 0xRRGGBB raster of shape (height, width)."""

    track_id: int
    timecode: int
    duration: int
    image: np.ndarray = field(repr=False)
    kind: Literal[TrackType.VIDEO] = TrackType.VIDEO

    @property
    def width(self) -> int:
        return self.image.shape[1]

    @property
    def height(self) -> int:
        return self.image.shape[0]


@dataclass(frozen=True, slots=True, eq=False)
class AudioFrame:
    """A decoded audio frame: signed 32-bit samples, channels interleaved."""

    track_id: int
    timecode: int
    duration: int
    samples: np.ndarray = field(repr=False)
    kind: Literal[TrackType.AUDIO] = TrackType.AUDIO


Frame = VideoFrame | AudioFrame
