# mediaprobe/domain/entities/source.py
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from mediaprobe.domain.errors import InputFailure

_UINT32_MAX = 0xFFFFFFFF

BytesLike = Union[bytes, bytearray, memoryview]


@dataclass(frozen=True)
class ProbeSource:
    """
    What to probe: an in-memory buffer XOR a filename.

    `size` mirrors the native (pointer, length) pair. It defaults to the
    whole buffer and may be smaller to probe a prefix only.
    """
    buffer: Optional[BytesLike] = None
    size: Optional[int] = None
    filename: Optional[Union[str, Path]] = None

    @classmethod
    def from_buffer(cls, data: BytesLike, size: Optional[int] = None) -> "ProbeSource":
        return cls(buffer=data, size=size)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ProbeSource":
        return cls(filename=path)

    @property
    def kind(self) -> str:
        return "buffer" if self.buffer is not None else "file"

    @property
    def buffer_size(self) -> int:
        if self.buffer is None:
            return 0
        if self.size is not None:
            return self.size
        return memoryview(self.buffer).nbytes

    def encoded_filename(self) -> bytes:
        return os.fsencode(self.filename) if self.filename is not None else b""

    def validate(self, max_bytes: int = _UINT32_MAX) -> "ProbeSource":
        """Raise InputFailure unless exactly one usable input is present."""
        if self.buffer is not None and self.filename is not None:
            raise InputFailure("Pass either a buffer or a filename, not both.")
        if self.buffer is None and self.filename is None:
            raise InputFailure("Nothing to probe: no buffer and no filename.")

        if self.filename is not None:
            if not str(self.filename):
                raise InputFailure("Empty filename.")
            if b"\x00" in self.encoded_filename():
                raise InputFailure("Filename contains a NUL byte.")
            return self

        available = memoryview(self.buffer).nbytes
        size = self.buffer_size
        if size <= 0:
            raise InputFailure("Buffer size must be at least one byte.")
        if size > available:
            raise InputFailure(f"Buffer size {size} exceeds the {available} bytes supplied.")
        if size > min(max_bytes, _UINT32_MAX):
            raise InputFailure(f"Buffer of {size} bytes is too large to probe.")
        return self
