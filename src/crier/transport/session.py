"""Per-connection frame reassembly for stream transports."""

from __future__ import annotations

import time
from typing import Optional

from ..protocol.envelope import MAXIMUM_TEXT, IncompleteFrame, MalformedEnvelope, frame_length


class Session:
    """One accepted stream, owned by whichever loop accepted it.

    A session accumulates bytes until exactly one envelope frame is
    complete. It is one-shot: once :meth:`feed` returns a frame, the
    session is finished and the connection should be closed.
    """

    def __init__(self, peer: Optional[str] = None, maximum: int = MAXIMUM_TEXT):
        self.peer = peer
        self.maximum = maximum
        self.buffer = bytearray()
        self.expected: Optional[int] = None
        self.done = False
        self.touched = time.monotonic()

    def feed(self, chunk: bytes) -> Optional[bytes]:
        """Append *chunk*; return the complete frame once available.

        Raises :class:`MalformedEnvelope` on an oversized declaration or on
        bytes beyond the end of the frame.
        """

        if self.done:
            raise MalformedEnvelope("data after a complete frame")

        self.touched = time.monotonic()
        self.buffer.extend(chunk)

        if self.expected is None:
            self.expected = frame_length(self.buffer, self.maximum)
            if self.expected is None:
                return None

        have = len(self.buffer)
        if have < self.expected:
            return None
        if have > self.expected:
            raise MalformedEnvelope(f"{have - self.expected} bytes beyond the frame")

        self.done = True
        frame = bytes(self.buffer)
        self.buffer = bytearray()
        return frame

    def closed(self) -> None:
        """The peer went away; complain if it left a partial frame."""

        if self.done:
            return

        raise IncompleteFrame(f"peer closed after {len(self.buffer)} bytes")
