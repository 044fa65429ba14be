import asyncio
import io

import pytest

from mkv_builder import audio_track, build_mkv, cluster, pcm_s32, simple_block
from mkvframes.container.byte_source import iter_bytes, iter_file, iter_stream_reader
from mkvframes.frame_reader import FrameReader


async def _collect(source):
    return [chunk async for chunk in source]


@pytest.mark.asyncio
async def test_iter_bytes_chunks():
    assert await _collect(iter_bytes(b"abcdefg", 3)) == [b"abc", b"def", b"g"]
    assert await _collect(iter_bytes(b"", 3)) == []


@pytest.mark.asyncio
async def test_iter_file_reads_until_eof():
    chunks = await _collect(iter_file(io.BytesIO(b"0123456789"), 4))
    assert chunks == [b"0123", b"4567", b"89"]


@pytest.mark.asyncio
async def test_iter_stream_reader_until_eof():
    reader = asyncio.StreamReader()
    reader.feed_data(b"hello ")
    reader.feed_data(b"world")
    reader.feed_eof()
    assert b"".join(await _collect(iter_stream_reader(reader, 4))) == b"hello world"


@pytest.mark.asyncio
async def test_reader_over_file_source(consumer):
    data = build_mkv([audio_track(1, 8000.0, 1)], [cluster(0, simple_block(1, 0, pcm_s32([3, 4])))])
    await FrameReader().read(iter_file(io.BytesIO(data), 16), consumer)
    assert [f.samples.tolist() for f in consumer.frames] == [[3, 4]]
    assert consumer.events[-1] == ("frame", None)


@pytest.mark.asyncio
async def test_reader_with_settings_and_tiny_chunks(consumer, make_source, test_settings):
    data = build_mkv([audio_track(1, 8000.0, 1)], [cluster(5, simple_block(1, 1, pcm_s32([-7])))])
    await FrameReader(test_settings).read(make_source(data, chunk_size=1), consumer)
    assert [(f.timecode, f.samples.tolist()) for f in consumer.frames] == [(6, [-7])]
