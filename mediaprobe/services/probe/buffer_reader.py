# mediaprobe/services/probe/buffer_reader.py
from __future__ import annotations

import ctypes
from typing import Optional

from mediaprobe.common.logging import get_logger
from mediaprobe.domain.entities.source import BytesLike
from mediaprobe.services.native.symbols import ReadPacketFn

logger = get_logger(__name__)

# FFERRTAG('E', 'O', 'F', ' '); lavf 61+ retries a 0-byte read instead of stopping
AVERROR_EOF = -541478725


class BufferCursor:
    """
    Read position over a caller-owned buffer.

    Only moves forward, and never past `size` (which may be shorter than
    the buffer to expose a prefix only).
    """

    def __init__(self, data: BytesLike, size: Optional[int] = None) -> None:
        view = memoryview(data).cast("B")
        if size is None:
            size = view.nbytes
        if not 0 <= size <= view.nbytes:
            raise ValueError(f"size {size} outside buffer of {view.nbytes} bytes")
        self._view = view[:size]
        self._offset = 0

    @property
    def size(self) -> int:
        return self._view.nbytes

    @property
    def consumed(self) -> int:
        return self._offset

    @property
    def remaining(self) -> int:
        return self._view.nbytes - self._offset

    def take(self, requested: int) -> memoryview:
        """Return the next min(requested, remaining) bytes and advance past them."""
        n = min(max(requested, 0), self.remaining)
        chunk = self._view[self._offset:self._offset + n]
        self._offset += n
        return chunk


class BufferReader:
    """
    Feeds a BufferCursor to libav's custom-I/O pull contract.

    `callback` is the ctypes function handed to avio_alloc_context; keep this
    object alive until the I/O context is gone. Exhaustion is reported
    as AVERROR_EOF. Exceptions cannot unwind through libav, so they are
    parked on `error` and the read reports EOF as well.
    """

    def __init__(self, cursor: BufferCursor) -> None:
        self.cursor = cursor
        self.calls = 0
        self.error: Optional[BaseException] = None
        self.callback = ReadPacketFn(self._read_packet)

    def read_into(self, dest, requested: int) -> int:
        chunk = self.cursor.take(requested)
        n = chunk.nbytes
        if n:
            ctypes.memmove(dest, chunk.tobytes(), n)
        return n

    def _read_packet(self, opaque, buf, buf_size: int) -> int:
        self.calls += 1
        if not buf or buf_size <= 0:
            return AVERROR_EOF
        try:
            n = self.read_into(buf, buf_size)
        except Exception as e:
            logger.exception("read_packet failed after %d bytes", self.cursor.consumed)
            self.error = e
            return AVERROR_EOF
        return n if n > 0 else AVERROR_EOF

    def raise_pending(self) -> None:
        if self.error is not None:
            err, self.error = self.error, None
            raise err
