"""
Pure Python EBML/MKV parser for frame demuxing.

Provides the building blocks used by the streaming demuxer:

- EBML primitives: variable-length integers, element IDs and sizes,
  unsigned/float/string payloads, and child element iteration.
- Tracks parsing: TrackEntry -> MKVTrack (track descriptor) with the
  video/audio parameters needed to decode raw frames.
- Block parsing: SimpleBlock and BlockGroup/Block, including all four
  lacing modes, producing MKVFrame records (raw frame records) whose
  payload offsets point past the block header and lacing prefix.
"""

import logging
import struct
from dataclasses import dataclass

from mkvframes.errors import ContainerMalformedError, TruncatedElementError

logger = logging.getLogger(__name__)

# =============================================================================
# EBML Element IDs (Matroska)
# =============================================================================

# Top-level
EBML_HEADER = 0x1A45DFA3
DOC_TYPE = 0x4282
SEGMENT = 0x18538067

# Segment children (level 1)
SEEK_HEAD = 0x114D9B74
INFO = 0x1549A966
TRACKS = 0x1654AE6B
CLUSTER = 0x1F43B675
CUES = 0x1C53BB6B
CHAPTERS = 0x1043A770
TAGS = 0x1254C367
ATTACHMENTS = 0x1941A469

# Info
TIMESTAMP_SCALE = 0x2AD7B1
DURATION = 0x4489

# Tracks
TRACK_ENTRY = 0xAE
TRACK_NUMBER = 0xD7
TRACK_UID = 0x73C5
TRACK_TYPE = 0x83
TRACK_NAME = 0x536E
CODEC_ID = 0x86
DEFAULT_DURATION = 0x23E383

# Video track settings
VIDEO = 0xE0
PIXEL_WIDTH = 0xB0
PIXEL_HEIGHT = 0xBA

# Audio track settings
AUDIO = 0xE1
SAMPLING_FREQUENCY = 0xB5
CHANNELS = 0x9F
BIT_DEPTH = 0x6264

# Cluster
CLUSTER_TIMESTAMP = 0xE7
SIMPLE_BLOCK = 0xA3
BLOCK_GROUP = 0xA0
BLOCK = 0xA1
BLOCK_DURATION = 0x9B

# Elements that end an unknown-size Cluster when they appear at its level
LEVEL1_IDS = frozenset(
    {
        EBML_HEADER,
        SEGMENT,
        SEEK_HEAD,
        INFO,
        TRACKS,
        CLUSTER,
        CUES,
        CHAPTERS,
        TAGS,
        ATTACHMENTS,
    }
)

# Unknown/indeterminate size sentinel
UNKNOWN_SIZE = -1

# MKV Track types
TRACK_TYPE_VIDEO = 1
TRACK_TYPE_AUDIO = 2
TRACK_TYPE_SUBTITLE = 17

# Raw PCM codec IDs (byte order is part of the CodecID)
CODEC_ID_PCM_BIG = "A_PCM/INT/BIG"
CODEC_ID_PCM_LITTLE = "A_PCM/INT/LIT"
CODEC_ID_UNCOMPRESSED_VIDEO = "V_UNCOMPRESSED"

# Block flags
_FLAG_KEYFRAME = 0x80
_LACING_NONE = 0
_LACING_XIPH = 1
_LACING_FIXED = 2
_LACING_EBML = 3


# =============================================================================
# Low-level EBML parsing
# =============================================================================


def read_vint(data: bytes, pos: int) -> tuple[int, int, int]:
    """
    Read a variable-length integer (VINT) from EBML data.

    Returns:
        (raw_value, value_without_marker, new_pos)
        raw_value includes the VINT marker bit.
        value_without_marker has the marker bit masked off (for element sizes),
        or UNKNOWN_SIZE when all value bits are set.

    Raises:
        TruncatedElementError: fewer bytes are available than the VINT needs.
        ContainerMalformedError: the leading byte is 0x00.
    """
    if pos >= len(data):
        raise TruncatedElementError(f"EBML VINT: position {pos} beyond data length {len(data)}")

    first = data[pos]
    if first == 0:
        raise ContainerMalformedError(f"EBML VINT: invalid leading byte 0x00 at pos {pos}")

    length = 1
    mask = 0x80
    while not (first & mask):
        length += 1
        mask >>= 1

    if pos + length > len(data):
        raise TruncatedElementError(
            f"EBML VINT: need {length} bytes at pos {pos}, only {len(data) - pos} available"
        )

    raw = int.from_bytes(data[pos : pos + length], "big")
    value = raw & ~(1 << (7 * length))

    if value == (1 << (7 * length)) - 1:
        value = UNKNOWN_SIZE

    return raw, value, pos + length


def read_element_id(data: bytes, pos: int) -> tuple[int, int]:
    """
    Read an EBML element ID.

    Returns:
        (element_id, new_pos)
    """
    raw, _, new_pos = read_vint(data, pos)
    if new_pos - pos > 4:
        raise ContainerMalformedError(f"EBML element ID longer than 4 bytes at pos {pos}")
    return raw, new_pos


def read_element_size(data: bytes, pos: int) -> tuple[int, int]:
    """
    Read an EBML element data size.

    Returns:
        (size, new_pos)  where size may be UNKNOWN_SIZE (-1)
    """
    _, value, new_pos = read_vint(data, pos)
    return value, new_pos


def read_uint(data: bytes, pos: int, length: int) -> int:
    """Read an unsigned integer of N bytes (big-endian)."""
    if length > 8:
        raise ContainerMalformedError(f"EBML uint must be at most 8 bytes, got {length}")
    return int.from_bytes(data[pos : pos + length], "big")


def read_float(data: bytes, pos: int, length: int) -> float:
    """Read a 4 or 8 byte IEEE float (big-endian). An empty float is 0.0."""
    if length == 0:
        return 0.0
    if length == 4:
        return struct.unpack(">f", data[pos : pos + 4])[0]
    elif length == 8:
        return struct.unpack(">d", data[pos : pos + 8])[0]
    raise ContainerMalformedError(f"EBML float must be 4 or 8 bytes, got {length}")


def read_string(data: bytes, pos: int, length: int) -> str:
    """Read a UTF-8 string of N bytes, stripping null terminators."""
    raw = data[pos : pos + length]
    return bytes(raw).rstrip(b"\x00").decode("utf-8", errors="replace")


# =============================================================================
# Element iteration
# =============================================================================


def iter_elements(data: bytes, start: int, end: int):
    """
    Iterate over EBML elements within a fully buffered range.

    An unknown-size element is yielded and ends the iteration.

    Yields:
        (element_id, data_offset, data_size, element_start)
        element_start is the byte position of the element ID.
        data_offset is where the element's data begins (after ID + size).
        data_size is the declared size (may be UNKNOWN_SIZE).

    Raises:
        ContainerMalformedError: if a child's header or data runs past
            the end of the range.
    """
    pos = start
    while pos < end:
        element_start = pos
        try:
            eid, pos2 = read_element_id(data, pos)
            size, pos3 = read_element_size(data, pos2)
        except TruncatedElementError as e:
            raise ContainerMalformedError(f"Truncated element header at {pos} (parent ends at {end})") from e

        if pos3 > end or (size != UNKNOWN_SIZE and pos3 + size > end):
            raise ContainerMalformedError(
                f"Element 0x{eid:X} at {pos} overruns its parent ({pos3 + max(size, 0)} > {end})"
            )

        yield eid, pos3, size, element_start
        if size == UNKNOWN_SIZE:
            break
        pos = pos3 + size


# =============================================================================
# Track parsing
# =============================================================================


@dataclass
class MKVTrack:
    """Metadata for a single track extracted from MKV Tracks element."""

    track_number: int = 0
    track_type: int = 0  # 1=video, 2=audio, 17=subtitle
    name: str | None = None
    codec_id: str = ""  # e.g. "V_UNCOMPRESSED", "A_PCM/INT/BIG"
    default_duration_ns: int = 0  # Default frame duration in nanoseconds

    # Video fields
    pixel_width: int = 0
    pixel_height: int = 0

    # Audio fields
    sample_rate: float = 8000.0  # Matroska default SamplingFrequency
    channels: int = 1  # Matroska default Channels
    bit_depth: int = 0

    @property
    def is_video(self) -> bool:
        return self.track_type == TRACK_TYPE_VIDEO

    @property
    def is_audio(self) -> bool:
        return self.track_type == TRACK_TYPE_AUDIO

    @property
    def is_subtitle(self) -> bool:
        return self.track_type == TRACK_TYPE_SUBTITLE


def parse_tracks(data: bytes, start: int, end: int) -> list[MKVTrack]:
    """
    Parse the Tracks element children to extract track metadata.

    Args:
        data: Buffer containing the Tracks element children.
        start: Start offset of the Tracks children (after Tracks ID + size).
        end: End offset of the Tracks children.

    Returns:
        List of MKVTrack for each TrackEntry with a track number, in
        container order.
    """
    tracks = []

    for eid, data_off, size, _ in iter_elements(data, start, end):
        if eid != TRACK_ENTRY or size == UNKNOWN_SIZE:
            continue

        track = MKVTrack()
        te_end = data_off + size

        for child_eid, child_off, child_size, _ in iter_elements(data, data_off, te_end):
            if child_size == UNKNOWN_SIZE:
                raise ContainerMalformedError(f"Unknown-size element 0x{child_eid:X} inside TrackEntry")
            if child_eid == TRACK_NUMBER:
                track.track_number = read_uint(data, child_off, child_size)
            elif child_eid == TRACK_TYPE:
                track.track_type = read_uint(data, child_off, child_size)
            elif child_eid == TRACK_NAME:
                track.name = read_string(data, child_off, child_size)
            elif child_eid == CODEC_ID:
                track.codec_id = read_string(data, child_off, child_size)
            elif child_eid == DEFAULT_DURATION:
                track.default_duration_ns = read_uint(data, child_off, child_size)
            elif child_eid == VIDEO:
                _parse_video_settings(data, child_off, child_off + child_size, track)
            elif child_eid == AUDIO:
                _parse_audio_settings(data, child_off, child_off + child_size, track)

        if track.track_number > 0:
            tracks.append(track)
        else:
            logger.debug("[ebml] Ignoring TrackEntry without TrackNumber")

    return tracks


def _parse_video_settings(data: bytes, start: int, end: int, track: MKVTrack) -> None:
    """Parse Video element children into MKVTrack fields."""
    for eid, off, size, _ in iter_elements(data, start, end):
        if eid == PIXEL_WIDTH:
            track.pixel_width = read_uint(data, off, size)
        elif eid == PIXEL_HEIGHT:
            track.pixel_height = read_uint(data, off, size)


def _parse_audio_settings(data: bytes, start: int, end: int, track: MKVTrack) -> None:
    """Parse Audio element children into MKVTrack fields."""
    for eid, off, size, _ in iter_elements(data, start, end):
        if eid == SAMPLING_FREQUENCY:
            track.sample_rate = read_float(data, off, size)
        elif eid == CHANNELS:
            track.channels = read_uint(data, off, size)
        elif eid == BIT_DEPTH:
            track.bit_depth = read_uint(data, off, size)


# =============================================================================
# Block / Cluster parsing
# =============================================================================


@dataclass
class MKVFrame:
    """
    A single raw frame extracted from an MKV Cluster.

    ``data`` holds the complete Block/SimpleBlock body; the frame payload
    starts at ``payload_offset``, after the block header and any lacing
    prefix (and after the preceding laced frames).
    """

    track_number: int
    timecode: int  # Absolute timecode in TimestampScale ticks
    data: bytes
    payload_offset: int = 0
    payload_size: int | None = None  # None = up to the end of data
    duration: int = 0  # Ticks, 0 if unknown
    is_keyframe: bool = False

    @property
    def payload(self) -> memoryview:
        """The frame bytes without the already consumed header prefix."""
        end = len(self.data) if self.payload_size is None else self.payload_offset + self.payload_size
        return memoryview(self.data)[self.payload_offset : end]


def parse_block_header(data: bytes, pos: int) -> tuple[int, int, int, int]:
    """
    Parse the header of a SimpleBlock or Block element.

    The block header starts with:
    - Track number (VINT, marker bit stripped)
    - Relative timecode (int16, signed, big-endian)
    - Flags byte (keyframe, lacing, etc.)

    Returns:
        (track_number, relative_timecode, flags, header_end_pos)
        flags bit layout for SimpleBlock:
          - bit 7 (0x80): keyframe
          - bits 2-1 (0x06): lacing (0=none, 1=Xiph, 2=fixed, 3=EBML)
          - bit 0 (0x01): discardable
    """
    _, track_number, pos2 = read_vint(data, pos)
    if pos2 + 3 > len(data):
        raise TruncatedElementError(f"Block header truncated at pos {pos}")

    timecode = int.from_bytes(data[pos2 : pos2 + 2], "big", signed=True)
    flags = data[pos2 + 2]

    return track_number, timecode, flags, pos2 + 3


def extract_block_frames(data: bytes, pos: int, block_size: int) -> tuple[int, int, int, list[tuple[int, int]]]:
    """
    Parse a SimpleBlock or Block and locate its frame payloads.

    Handles all four lacing modes: no lacing, Xiph, fixed-size, and EBML.

    Args:
        data: Buffer containing the block.
        pos: Start of the block data (after element ID + size).
        block_size: Total size of the block data.

    Returns:
        (track_number, relative_timecode, flags, [(frame_offset, frame_size), ...])
        with offsets absolute within ``data``.
    """
    block_end = pos + block_size
    track_number, rel_timecode, flags, header_end = parse_block_header(data, pos)
    if header_end > block_end:
        raise ContainerMalformedError(f"Block header at {pos} overruns block of {block_size} bytes")
    lacing = (flags >> 1) & 0x03

    if lacing == _LACING_NONE:
        return track_number, rel_timecode, flags, [(header_end, block_end - header_end)]

    if header_end >= block_end:
        raise ContainerMalformedError(f"Laced block at {pos} has no frame count")

    # Laced: first byte after header is the number of frames minus one
    num_frames = data[header_end] + 1
    lace_pos = header_end + 1

    if lacing == _LACING_FIXED:
        frame_size, remainder = divmod(block_end - lace_pos, num_frames)
        if remainder:
            raise ContainerMalformedError(
                f"Fixed-size lacing at {pos}: {block_end - lace_pos} bytes for {num_frames} frames"
            )
        return (
            track_number,
            rel_timecode,
            flags,
            [(lace_pos + i * frame_size, frame_size) for i in range(num_frames)],
        )

    frame_sizes = []
    if lacing == _LACING_XIPH:
        # Sizes encoded as a run of 255s plus a final byte < 255
        for _ in range(num_frames - 1):
            size = 0
            while True:
                if lace_pos >= block_end:
                    raise ContainerMalformedError(f"Xiph lacing sizes overrun block at {pos}")
                val = data[lace_pos]
                lace_pos += 1
                size += val
                if val < 255:
                    break
            frame_sizes.append(size)
    elif lacing == _LACING_EBML and num_frames > 1:
        # EBML lacing: first size is a VINT, later ones are signed VINT deltas
        _, size, lace_pos = read_vint(data, lace_pos)
        frame_sizes.append(size)
        for _ in range(num_frames - 2):
            start = lace_pos
            _, value, lace_pos = read_vint(data, lace_pos)
            bias = (1 << (7 * (lace_pos - start) - 1)) - 1
            size += value - bias
            frame_sizes.append(size)

    # Last frame gets the remaining bytes
    last_size = block_end - lace_pos - sum(frame_sizes)
    if last_size < 0 or any(sz < 0 for sz in frame_sizes):
        raise ContainerMalformedError(f"Lace sizes exceed block of {block_size} bytes at {pos}")
    frame_sizes.append(last_size)

    frames = []
    frame_start = lace_pos
    for sz in frame_sizes:
        frames.append((frame_start, sz))
        frame_start += sz
    return track_number, rel_timecode, flags, frames


def block_to_frames(
    data: bytes,
    pos: int,
    size: int,
    cluster_timecode: int,
    *,
    keyframe_from_flags: bool = True,
    duration: int | None = None,
    default_durations: dict[int, int] | None = None,
) -> list[MKVFrame]:
    """
    Turn one SimpleBlock/Block body into MKVFrame records.

    Each record keeps a copy of the whole block body so that the payload
    offset is relative to the block start.

    Args:
        keyframe_from_flags: SimpleBlock carries the keyframe bit in its
            flags; Block (inside a BlockGroup) does not.
        duration: BlockDuration in ticks when the BlockGroup has one.
        default_durations: track number -> DefaultDuration in ticks.
    """
    track_num, rel_tc, flags, frame_spans = extract_block_frames(data, pos, size)
    block = bytes(data[pos : pos + size])
    if duration is None:
        duration = (default_durations or {}).get(track_num, 0)
    is_kf = keyframe_from_flags and bool(flags & _FLAG_KEYFRAME)

    return [
        MKVFrame(
            track_number=track_num,
            timecode=cluster_timecode + rel_tc,
            data=block,
            payload_offset=offset - pos,
            payload_size=frame_size,
            duration=duration,
            is_keyframe=is_kf,
        )
        for offset, frame_size in frame_spans
    ]


def parse_block_group(
    data: bytes,
    start: int,
    end: int,
    cluster_timecode: int,
    default_durations: dict[int, int] | None = None,
) -> list[MKVFrame]:
    """Parse a BlockGroup and return the frames of its Block."""
    block_data_off = None
    block_data_size = 0
    duration = None

    for eid, off, size, _ in iter_elements(data, start, end):
        if eid == BLOCK:
            block_data_off = off
            block_data_size = size
        elif eid == BLOCK_DURATION:
            duration = read_uint(data, off, size)

    if block_data_off is None:
        logger.debug("[ebml] BlockGroup at %d has no Block", start)
        return []

    return block_to_frames(
        data,
        block_data_off,
        block_data_size,
        cluster_timecode,
        keyframe_from_flags=False,
        duration=duration,
        default_durations=default_durations,
    )
