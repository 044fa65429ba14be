"""
mkvframes: decode raw video and audio frames out of a Matroska stream.

- container: EBML parser, streaming MKV demuxer and byte source adapters
- decoder: YUV420p -> RGB raster and 32-bit PCM -> samples
- frame_reader: track mapping, frame dispatch and the stream driver
"""

from mkvframes.errors import (
    BufferTooShortError,
    ContainerMalformedError,
    FrameReaderError,
    SourceIOError,
)
from mkvframes.frame_reader import FrameConsumer, FrameReader, parse_frame, parse_tracks, read_frames
from mkvframes.models import AudioFrame, Frame, Track, TrackType, VideoFrame

__all__ = [
    "AudioFrame",
    "BufferTooShortError",
    "ContainerMalformedError",
    "Frame",
    "FrameConsumer",
    "FrameReader",
    "FrameReaderError",
    "SourceIOError",
    "Track",
    "TrackType",
    "VideoFrame",
    "parse_frame",
    "parse_tracks",
    "read_frames",
]
