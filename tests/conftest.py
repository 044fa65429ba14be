"""
Pytest configuration and shared fixtures for the frame reader tests.

Synthetic Matroska streams are built with the helpers in mkv_builder.py.
"""

from collections.abc import AsyncIterator

import pytest

from mkvframes.configs import Settings
from mkvframes.container.byte_source import iter_bytes


def pytest_configure(config):
    """Configure pytest-asyncio mode."""
    config.addinivalue_line("markers", "asyncio: mark test as async")


class RecordingConsumer:
    """FrameConsumer that records every callback in order."""

    def __init__(self):
        self.events = []

    def consume_tracks(self, tracks):
        self.events.append(("tracks", tracks))

    def consume(self, frame):
        self.events.append(("frame", frame))

    @property
    def frames(self):
        return [payload for kind, payload in self.events if kind == "frame" and payload is not None]


@pytest.fixture
def consumer():
    return RecordingConsumer()


@pytest.fixture
def test_settings():
    return Settings(read_chunk_size=4096, default_audio_byte_order="big")


@pytest.fixture
def make_source():
    """
    Factory fixture turning bytes into an async byte source.

    Usage:
        source = make_source(data, chunk_size=7)
    """

    def _make(data: bytes, chunk_size: int = 4096) -> AsyncIterator[bytes]:
        return iter_bytes(data, chunk_size)

    return _make
