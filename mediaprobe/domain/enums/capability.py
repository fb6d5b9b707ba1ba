# mediaprobe/domain/enums/capability.py
from __future__ import annotations

from enum import IntEnum


class Capability(IntEnum):
    """Native entry points the probe depends on, in symbol-table order."""
    ALLOC_CONTEXT = 0
    MALLOC = 1
    CLOSE_INPUT = 2
    IO_ALLOC_CONTEXT = 3
    OPEN_INPUT = 4
    FIND_STREAM_INFO = 5
    FIND_BEST_STREAM = 6
    REGISTER_ALL = 7
    STRERROR = 8
    FORMAT_VERSION = 9
    IO_CONTEXT_FREE = 10
    FREEP = 11
