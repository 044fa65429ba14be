"""
Streaming MKV demuxer.

Reads an MKV byte stream via an async iterator and yields raw frame
records (MKVFrame) with absolute timecodes. Only the element currently
being parsed is buffered, so the source is consumed strictly in order.

Architecture:
  AsyncIterator[bytes] -> StreamBuffer -> EBML parsing -> MKVFrame yields

The demuxer works in two phases:
  1. read_header(): Consume bytes until Tracks is fully parsed, returning
     an MKVHeader with the track descriptors and timing scale.
  2. iter_frames(): Yield MKVFrame objects from Cluster/SimpleBlock data
     as clusters arrive, until the source is exhausted.
"""

import logging
from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass, field

from mkvframes.configs import Settings, settings as default_settings
from mkvframes.container.ebml_parser import (
    BLOCK_GROUP,
    CLUSTER,
    CLUSTER_TIMESTAMP,
    DOC_TYPE,
    DURATION,
    EBML_HEADER,
    INFO,
    LEVEL1_IDS,
    SEGMENT,
    SIMPLE_BLOCK,
    TIMESTAMP_SCALE,
    TRACKS,
    UNKNOWN_SIZE,
    MKVFrame,
    MKVTrack,
    block_to_frames,
    iter_elements,
    parse_block_group,
    parse_tracks,
    read_element_id,
    read_element_size,
    read_float,
    read_string,
    read_uint,
)
from mkvframes.errors import ContainerMalformedError, SourceIOError, TruncatedElementError

logger = logging.getLogger(__name__)


class StreamBuffer:
    """
    Accumulating byte buffer for streaming EBML parsing.

    Collects chunks from an async byte source and exposes them as one
    contiguous bytes object for parsing. Consumed bytes are dropped from
    the front to keep memory bounded to the element being parsed.
    """

    def __init__(self) -> None:
        self._chunks: list[bytes] = []
        self._total: int = 0
        self._consumed: int = 0  # Logical bytes consumed (for offset tracking)

    @property
    def available(self) -> int:
        """Number of buffered bytes available for reading."""
        return self._total

    @property
    def consumed(self) -> int:
        """Total bytes consumed so far (for absolute offset tracking)."""
        return self._consumed

    def append(self, data: bytes) -> None:
        """Add bytes to the buffer."""
        if data:
            self._chunks.append(bytes(data))
            self._total += len(data)

    def get_all(self) -> bytes:
        """Get all buffered data as a single bytes object (without consuming)."""
        if not self._chunks:
            return b""
        if len(self._chunks) > 1:
            self._chunks = [b"".join(self._chunks)]
        return self._chunks[0]

    def consume(self, size: int) -> int:
        """Discard size bytes from the front. Returns actual bytes consumed."""
        if size <= 0:
            return 0
        actual = min(size, self._total)
        remaining = actual
        while remaining > 0 and self._chunks:
            chunk = self._chunks[0]
            if len(chunk) <= remaining:
                remaining -= len(chunk)
                self._chunks.pop(0)
            else:
                self._chunks[0] = chunk[remaining:]
                remaining = 0
        self._total -= actual
        self._consumed += actual
        return actual


@dataclass
class MKVHeader:
    """Parsed MKV header metadata."""

    tracks: list[MKVTrack] = field(default_factory=list)
    doc_type: str = "matroska"
    timestamp_scale_ns: int = 1_000_000  # Default 1ms
    duration_ms: float = 0.0

    def get_track(self, track_number: int) -> MKVTrack | None:
        for track in self.tracks:
            if track.track_number == track_number:
                return track
        return None


class MKVDemuxer:
    """
    Streaming async MKV demuxer.

    Reads an MKV byte stream from an async iterator and provides:
    - read_header(): Parse EBML header + Segment metadata + Tracks
    - iter_frames(): Yield MKVFrame objects from Clusters

    Usage:
        demuxer = MKVDemuxer()
        header = await demuxer.read_header(source)
        async for frame in demuxer.iter_frames(source):
            process(frame)

    Errors:
        ContainerMalformedError for anything that is not a readable
        Matroska stream, SourceIOError when the source itself fails.
        A truncated trailing element at end of stream is logged and
        dropped.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or default_settings
        self._buf = StreamBuffer()
        self._header: MKVHeader | None = None
        self._eof = False
        self._truncated = False
        self._default_durations: dict[int, int] = {}  # track number -> ticks

    @property
    def header(self) -> MKVHeader | None:
        return self._header

    async def read_header(self, source: AsyncIterator[bytes]) -> MKVHeader:
        """
        Read and parse the MKV header (EBML header, Segment, Info, Tracks).

        Consumes bytes from source until Tracks is fully parsed and the
        first Cluster (or end of stream) is reached. Bytes of the first
        Cluster remain buffered for iter_frames().

        Returns:
            MKVHeader with track info and timing metadata.
        """
        if self._header is not None:
            raise RuntimeError("read_header() has already been called")
        header = MKVHeader()

        element = await self._next_element_header(source)
        if element is None:
            raise ContainerMalformedError(
                f"Source ended prematurely: got {self._buf.available} bytes, need at least an EBML header"
            )
        if element[0] != EBML_HEADER:
            raise ContainerMalformedError(f"Not an MKV file: expected EBML header, got 0x{element[0]:X}")
        await self._read_ebml_header(source, element, header)

        element = await self._next_element_header(source)
        if element is None:
            raise ContainerMalformedError("Source ended before the Segment element")
        if element[0] != SEGMENT:
            raise ContainerMalformedError(f"Expected Segment, got 0x{element[0]:X}")
        self._buf.consume(element[2])
        await self._read_segment_metadata(source, header)

        for track in header.tracks:
            if track.default_duration_ns > 0:
                self._default_durations[track.track_number] = round(
                    track.default_duration_ns / header.timestamp_scale_ns
                )

        self._header = header
        return header

    async def _read_ebml_header(
        self, source: AsyncIterator[bytes], element: tuple[int, int, int], header: MKVHeader
    ) -> None:
        """Parse the EBML header element at the buffer front into header.doc_type."""
        _, size, pos = element
        if size == UNKNOWN_SIZE:
            raise ContainerMalformedError("EBML header has unknown size")
        data = await self._read_element(source, pos, size, "EBML header")
        for child_eid, off, child_size, _ in iter_elements(data, pos, pos + size):
            if child_eid == DOC_TYPE:
                header.doc_type = read_string(data, off, child_size)
        if header.doc_type not in ("matroska", "webm"):
            logger.warning("[mkv_demuxer] Unexpected EBML DocType %r, parsing as Matroska", header.doc_type)
        self._buf.consume(pos + size)

    async def _read_segment_metadata(self, source: AsyncIterator[bytes], header: MKVHeader) -> None:
        """Walk top-level Segment children up to the first Cluster, filling Info and Tracks into header."""
        tracks_found = False
        while True:
            element = await self._next_element_header(source)
            if element is None:
                break
            eid, size, pos = element

            if eid == CLUSTER:
                # Reached media data; leave it for iter_frames.
                break

            if size == UNKNOWN_SIZE:
                raise ContainerMalformedError(f"Unknown-size element 0x{eid:X} in Segment header")

            if eid == INFO:
                data = await self._read_element(source, pos, size, "Info")
                self._parse_info_element(data, pos, pos + size, header)
                self._buf.consume(pos + size)
            elif eid == TRACKS:
                data = await self._read_element(source, pos, size, "Tracks")
                header.tracks = parse_tracks(data, pos, pos + size)
                tracks_found = True
                self._buf.consume(pos + size)
                logger.info(
                    "[mkv_demuxer] Parsed %d tracks: %s",
                    len(header.tracks),
                    ", ".join(f"#{t.track_number}={t.codec_id or '?'}" for t in header.tracks),
                )
            else:
                # SeekHead, Tags, Chapters, Void...
                self._check_element_size(eid, size)
                if not await self._skip(source, pos + size):
                    break

        if not tracks_found:
            raise ContainerMalformedError("No Tracks element before the first Cluster")

    async def _read_chained_segment(self, source: AsyncIterator[bytes], element: tuple[int, int, int]) -> None:
        """
        Read the metadata of a Segment that follows the first one.

        Appended streams usually repeat the same Tracks; frames of the new
        Segment are only accepted when its track layout and timestamp
        scale match the first Segment.
        """
        header = MKVHeader()
        if element[0] == EBML_HEADER:
            await self._read_ebml_header(source, element, header)
            element = await self._next_element_header(source)
            if element is None or element[0] != SEGMENT:
                raise ContainerMalformedError("Appended EBML header is not followed by a Segment")
        self._buf.consume(element[2])
        await self._read_segment_metadata(source, header)

        if header.tracks != self._header.tracks or header.timestamp_scale_ns != self._header.timestamp_scale_ns:
            raise ContainerMalformedError("Chained Segment changes the track layout or timestamp scale")
        logger.info("[mkv_demuxer] Continuing into chained Segment with the same %d tracks", len(header.tracks))

    async def iter_frames(self, source: AsyncIterator[bytes]) -> AsyncIterator[MKVFrame]:
        """
        Yield MKVFrame objects from Cluster/SimpleBlock data.

        Must be called after read_header(). Continues consuming bytes from
        source, parsing Clusters and yielding individual frames until the
        source is exhausted.

        A later Segment is followed only if it repeats the first Segment's
        tracks and timestamp scale; otherwise ContainerMalformedError.
        """
        if self._header is None:
            raise RuntimeError("read_header() must be called before iter_frames()")

        while not self._truncated:
            element = await self._next_element_header(source)
            if element is None:
                if self._buf.available:
                    logger.warning(
                        "[mkv_demuxer] Discarding %d trailing bytes (incomplete element header)", self._buf.available
                    )
                break
            eid, size, pos = element

            if eid == CLUSTER:
                if size == UNKNOWN_SIZE:
                    self._buf.consume(pos)
                    async for frame in self._iter_unknown_size_cluster(source):
                        yield frame
                    continue

                self._check_element_size(eid, size)
                if not await self._ensure_bytes(source, pos + size):
                    self._warn_truncated(eid, pos + size)
                    break
                data = self._buf.get_all()
                for frame in self._iter_cluster_frames(data, pos, pos + size):
                    yield frame
                self._buf.consume(pos + size)
            elif eid in (SEGMENT, EBML_HEADER):
                # Chained segment, possibly with its own EBML header
                await self._read_chained_segment(source, element)
            else:
                # Cues, Tags, Attachments, Void...
                if size == UNKNOWN_SIZE:
                    raise ContainerMalformedError(f"Unknown-size top-level element 0x{eid:X}")
                self._check_element_size(eid, size)
                if not await self._skip(source, pos + size):
                    self._warn_truncated(eid, pos + size)
                    break

    def _parse_info_element(self, data: bytes, start: int, end: int, header: MKVHeader) -> None:
        """Parse Info element children for timestamp scale and duration."""
        duration_ticks = 0.0
        for eid, off, size, _ in iter_elements(data, start, end):
            if eid == TIMESTAMP_SCALE:
                header.timestamp_scale_ns = read_uint(data, off, size) or 1_000_000
            elif eid == DURATION:
                duration_ticks = read_float(data, off, size)
        header.duration_ms = duration_ticks * header.timestamp_scale_ns / 1_000_000.0

    def _iter_cluster_frames(self, data: bytes, start: int, end: int) -> Iterator[MKVFrame]:
        """Parse a known-size Cluster and yield its frames."""
        cluster_timecode = 0

        for eid, data_off, size, _ in iter_elements(data, start, end):
            if size == UNKNOWN_SIZE:
                raise ContainerMalformedError(f"Unknown-size element 0x{eid:X} inside a Cluster")
            if eid == CLUSTER_TIMESTAMP:
                cluster_timecode = read_uint(data, data_off, size)
            elif eid == SIMPLE_BLOCK:
                yield from block_to_frames(
                    data, data_off, size, cluster_timecode, default_durations=self._default_durations
                )
            elif eid == BLOCK_GROUP:
                yield from parse_block_group(
                    data, data_off, data_off + size, cluster_timecode, self._default_durations
                )

    async def _iter_unknown_size_cluster(self, source: AsyncIterator[bytes]) -> AsyncIterator[MKVFrame]:
        """Parse an unknown-size Cluster by reading children until the next top-level element."""
        cluster_timecode = 0

        while True:
            element = await self._next_element_header(source)
            if element is None:
                break
            eid, size, pos = element

            # A new Cluster or other top-level element ends the current Cluster
            if eid in LEVEL1_IDS:
                break

            if size == UNKNOWN_SIZE:
                raise ContainerMalformedError(f"Unknown-size element 0x{eid:X} inside a Cluster")
            self._check_element_size(eid, size)
            if not await self._ensure_bytes(source, pos + size):
                self._warn_truncated(eid, pos + size)
                break
            data = self._buf.get_all()

            if eid == CLUSTER_TIMESTAMP:
                cluster_timecode = read_uint(data, pos, size)
            elif eid == SIMPLE_BLOCK:
                for frame in block_to_frames(
                    data, pos, size, cluster_timecode, default_durations=self._default_durations
                ):
                    yield frame
            elif eid == BLOCK_GROUP:
                for frame in parse_block_group(data, pos, pos + size, cluster_timecode, self._default_durations):
                    yield frame

            self._buf.consume(pos + size)

    async def _pull(self, source: AsyncIterator[bytes]) -> bool:
        """Append the next chunk from source. Returns False once the source is exhausted."""
        if self._eof:
            return False
        try:
            chunk = await source.__anext__()
        except StopAsyncIteration:
            self._eof = True
            return False
        except Exception as e:
            raise SourceIOError(f"Failed to read from byte source: {e}") from e
        self._buf.append(chunk)
        return True

    async def _ensure_bytes(self, source: AsyncIterator[bytes], needed: int) -> bool:
        """Ensure the buffer has at least 'needed' bytes. Returns False if the source ran dry first."""
        while self._buf.available < needed:
            if not await self._pull(source):
                return False
        return True

    async def _next_element_header(self, source: AsyncIterator[bytes]) -> tuple[int, int, int] | None:
        """
        Parse the element header at the front of the buffer.

        Returns:
            (element_id, size, data_offset) relative to the buffer front,
            or None if the source is exhausted before a full header arrives.
        """
        while True:
            data = self._buf.get_all()
            try:
                eid, pos = read_element_id(data, 0)
                size, pos = read_element_size(data, pos)
                return eid, size, pos
            except TruncatedElementError:
                if not await self._pull(source):
                    return None

    async def _read_element(self, source: AsyncIterator[bytes], pos: int, size: int, name: str) -> bytes:
        """Buffer a whole header-level element, which must be complete."""
        self._check_element_size(name, size)
        if not await self._ensure_bytes(source, pos + size):
            raise ContainerMalformedError(
                f"Source ended inside {name}: need {pos + size} bytes, got {self._buf.available}"
            )
        return self._buf.get_all()

    async def _skip(self, source: AsyncIterator[bytes], count: int) -> bool:
        """Discard count bytes, pulling from source as needed. Returns False if the source ran dry."""
        remaining = count - self._buf.consume(count)
        while remaining > 0:
            if not await self._pull(source):
                return False
            remaining -= self._buf.consume(remaining)
        return True

    def _check_element_size(self, element, size: int) -> None:
        if size > self._settings.max_element_size:
            label = f"0x{element:X}" if isinstance(element, int) else element
            raise ContainerMalformedError(
                f"Element {label} of {size} bytes exceeds max_element_size={self._settings.max_element_size}"
            )

    def _warn_truncated(self, eid: int, needed: int) -> None:
        self._truncated = True
        logger.warning(
            "[mkv_demuxer] Stream ended inside element 0x%X (need %d bytes, have %d); dropping it",
            eid,
            needed,
            self._buf.available,
        )
