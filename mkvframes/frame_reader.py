"""
Matroska frame reader.

Turns a Matroska byte stream of raw video (yuv420p) and raw audio
(32-bit PCM) into decoded frames:

    AsyncIterator[bytes] -> MKVDemuxer -> parse_tracks / parse_frame -> consumer

Two ways to drive it:

- push: ``await FrameReader().read(source, consumer)``. The consumer gets
  ``consume_tracks(tracks)`` once, then ``consume(frame)`` per frame, then
  ``consume(None)`` exactly once at end of stream.
- pull: ``tracks = await reader.read_tracks(source)`` followed by
  ``async for frame in reader.iter_frames(source)``.

Either way a frame is handed over before the next raw record is read, so a
slow consumer back-pressures the source.
"""

import enum
import inspect
import logging
from collections.abc import AsyncIterator, Iterable
from typing import Literal, Protocol, runtime_checkable

from mkvframes.configs import Settings, settings as default_settings
from mkvframes.container.ebml_parser import MKVFrame, MKVTrack
from mkvframes.container.mkv_demuxer import MKVDemuxer
from mkvframes.decoder.audio import byteorder_for_codec, decode_audio_samples
from mkvframes.decoder.image import decode_yuv420p
from mkvframes.errors import BufferTooShortError
from mkvframes.models import AudioFrame, Frame, Track, TrackType, VideoFrame

logger = logging.getLogger(__name__)


@runtime_checkable
class FrameConsumer(Protocol):
    """
    Receiver for the push interface.

    Either method may be a coroutine function; it is awaited before the
    reader continues.
    """

    def consume_tracks(self, tracks: list[Track]) -> None:
        """Called once with every video and audio track, before any frame."""
        ...

    def consume(self, frame: Frame | None) -> None:
        """Called for every frame, then once more with None at end of stream."""
        ...


class ReaderState(enum.Enum):
    START = "start"
    TRACKS_EMITTED = "tracks_emitted"
    FRAME_EMITTED = "frame_emitted"
    ENDED = "ended"


def parse_tracks(descriptors: Iterable[MKVTrack]) -> list[Track]:
    """Map container track descriptors to Tracks, keeping only video and audio in container order."""
    result = []

    for descriptor in descriptors:
        if descriptor.is_video:
            track = Track(
                id=descriptor.track_number,
                type=TrackType.VIDEO,
                title=descriptor.name,
                codec_id=descriptor.codec_id,
                width=descriptor.pixel_width,
                height=descriptor.pixel_height,
            )
        elif descriptor.is_audio:
            track = Track(
                id=descriptor.track_number,
                type=TrackType.AUDIO,
                title=descriptor.name,
                codec_id=descriptor.codec_id,
                sample_rate=int(descriptor.sample_rate),
                channels=descriptor.channels,
            )
        else:
            logger.debug(
                "[frame_reader] Skipping track #%d of type %d (%s)",
                descriptor.track_number,
                descriptor.track_type,
                descriptor.codec_id,
            )
            continue

        result.append(track)

    return result


def parse_frame(
    track: Track | None,
    record: MKVFrame,
    default_byteorder: Literal["big", "little"] = "big",
) -> Frame | None:
    """
    Decode one raw frame record for its owning track.

    Returns None when the track is unknown or neither video nor audio.

    Raises:
        BufferTooShortError: a video payload is smaller than the track's
            width x height yuv420p frame.
    """
    if track is None:
        return None

    # The record's payload view already skips the block header and lacing prefix
    payload = record.payload

    if track.type is TrackType.VIDEO:
        return VideoFrame(
            track_id=track.id,
            timecode=record.timecode,
            duration=record.duration,
            image=decode_yuv420p(payload, track.width, track.height),
        )
    elif track.type is TrackType.AUDIO:
        byteorder = byteorder_for_codec(track.codec_id, default_byteorder)
        return AudioFrame(
            track_id=track.id,
            timecode=record.timecode,
            duration=record.duration,
            samples=decode_audio_samples(payload, byteorder),
        )

    return None


class FrameReader:
    """
    Stream driver: header -> tracks -> frames -> end marker.

    One reader handles one stream. The state moves
    START -> TRACKS_EMITTED -> FRAME_EMITTED* -> ENDED and ENDED is final.

    Args:
        settings: Overrides the module-level settings.
        logger: Logger for instrumentation; defaults to this module's logger.
    """

    def __init__(self, settings: Settings | None = None, logger: logging.Logger | None = None) -> None:
        self._settings = settings or default_settings
        self._logger = logger or logging.getLogger(__name__)
        self._demuxer = MKVDemuxer(self._settings)
        self._tracks: list[Track] | None = None
        self._tracks_by_id: dict[int, Track] = {}
        self._state = ReaderState.START
        self._frame_count = 0
        self._dropped_count = 0

    @property
    def state(self) -> ReaderState:
        return self._state

    @property
    def tracks(self) -> list[Track] | None:
        return self._tracks

    @property
    def timestamp_scale_ns(self) -> int:
        """Nanoseconds per timecode tick."""
        header = self._demuxer.header
        return header.timestamp_scale_ns if header else 1_000_000

    async def read_tracks(self, source: AsyncIterator[bytes]) -> list[Track]:
        """Read the container header and return the video and audio tracks."""
        if self._state is not ReaderState.START:
            raise RuntimeError(f"Tracks already read (state={self._state.value})")

        header = await self._demuxer.read_header(source)
        self._logger.debug("[frame_reader] Track descriptors: %s", header.tracks)

        self._tracks = parse_tracks(header.tracks)
        self._tracks_by_id = {track.id: track for track in self._tracks}
        self._state = ReaderState.TRACKS_EMITTED
        self._logger.info(
            "[frame_reader] Tracks: %s",
            ", ".join(f"#{t.id} {t.type.value}" for t in self._tracks) or "none",
        )
        return self._tracks

    async def iter_frames(self, source: AsyncIterator[bytes]) -> AsyncIterator[Frame]:
        """Yield decoded frames until the source is exhausted. read_tracks() must come first."""
        if self._state is ReaderState.START:
            raise RuntimeError("read_tracks() must be called before iter_frames()")
        if self._state is ReaderState.ENDED:
            raise RuntimeError("Stream already ended")

        async for record in self._demuxer.iter_frames(source):
            self._logger.debug(
                "[frame_reader] Frame: track=%d timecode=%d duration=%d size=%d",
                record.track_number,
                record.timecode,
                record.duration,
                len(record.payload),
            )

            frame = self._dispatch(record)
            if frame is None:
                self._dropped_count += 1
                continue

            self._frame_count += 1
            self._state = ReaderState.FRAME_EMITTED
            yield frame

        self._state = ReaderState.ENDED
        self._logger.info(
            "[frame_reader] End of stream: %d frames, %d dropped", self._frame_count, self._dropped_count
        )

    async def read(self, source: AsyncIterator[bytes], consumer: FrameConsumer) -> None:
        """
        Push the whole stream into consumer.

        Errors from the container or the source propagate; in that case the
        end marker is not sent.
        """
        tracks = await self.read_tracks(source)
        await _maybe_await(consumer.consume_tracks(tracks))

        async for frame in self.iter_frames(source):
            await _maybe_await(consumer.consume(frame))

        await _maybe_await(consumer.consume(None))

    def _dispatch(self, record: MKVFrame) -> Frame | None:
        track = self._tracks_by_id.get(record.track_number)
        if track is None:
            self._logger.debug("[frame_reader] Dropping frame for unknown track #%d", record.track_number)
            return None

        try:
            return parse_frame(track, record, self._settings.default_audio_byte_order)
        except BufferTooShortError as e:
            self._logger.warning(
                "[frame_reader] Dropping %s frame on track #%d at %d: %s",
                track.type.value,
                track.id,
                record.timecode,
                e,
            )
            return None


async def _maybe_await(result) -> None:
    if inspect.isawaitable(result):
        await result


async def read_frames(
    source: AsyncIterator[bytes],
    consumer: FrameConsumer,
    settings: Settings | None = None,
) -> None:
    """Convenience wrapper: run a fresh FrameReader over source."""
    await FrameReader(settings).read(source, consumer)
