"""
Byte source adapters for the streaming demuxer.

The demuxer consumes any ``AsyncIterator[bytes]``. These helpers wrap the
usual producers of a Matroska stream: an in-memory buffer, a binary file
object, or an ``asyncio.StreamReader`` such as the stdout of a transcoder
process the caller has already spawned. Opening and closing the underlying
resource stays with the caller.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import BinaryIO

from mkvframes.configs import settings

logger = logging.getLogger(__name__)


async def iter_bytes(data: bytes, chunk_size: int | None = None) -> AsyncIterator[bytes]:
    """Yield an in-memory buffer in chunks."""
    chunk_size = chunk_size or settings.read_chunk_size
    view = memoryview(data)
    for offset in range(0, len(view), chunk_size):
        yield bytes(view[offset : offset + chunk_size])


async def iter_file(fileobj: BinaryIO, chunk_size: int | None = None) -> AsyncIterator[bytes]:
    """
    Yield chunks read from a blocking binary file object.

    Reads run in a worker thread so the event loop is not blocked; exactly
    one read is outstanding at a time.
    """
    chunk_size = chunk_size or settings.read_chunk_size
    total = 0
    while True:
        chunk = await asyncio.to_thread(fileobj.read, chunk_size)
        if not chunk:
            break
        total += len(chunk)
        yield chunk
    logger.debug("[byte_source] File exhausted after %d bytes", total)


async def iter_stream_reader(reader: asyncio.StreamReader, chunk_size: int | None = None) -> AsyncIterator[bytes]:
    """Yield chunks from an asyncio StreamReader until EOF."""
    chunk_size = chunk_size or settings.read_chunk_size
    while True:
        chunk = await reader.read(chunk_size)
        if not chunk:
            break
        yield chunk
