class FrameReaderError(Exception):
    """Base exception for the frame reader."""

    pass


class ContainerMalformedError(FrameReaderError, ValueError):
    """The byte source does not parse as a Matroska container."""

    pass


class TruncatedElementError(ContainerMalformedError):
    """
    An EBML element (or VINT) extends past the bytes available.

    Fatal when the data is complete; the streaming demuxer catches it to
    pull more bytes from the source before deciding.
    """

    pass


class BufferTooShortError(FrameReaderError, ValueError):
    """A frame payload is shorter than its geometry requires."""

    def __init__(self, required: int, actual: int):
        super().__init__(f"Payload too short: need {required} bytes, got {actual}")
        self.required = required
        self.actual = actual


class SourceIOError(FrameReaderError, OSError):
    """The underlying byte source failed while being read."""

    pass
