# mediaprobe/domain/enums/result_code.py
from __future__ import annotations

from enum import IntEnum


class ResultCode(IntEnum):
    """
    Codes owned by this package. Small positive values, so they never
    collide with libav's codes, which are always negative.
    """
    OK = 0
    INPUT_FAILURE = 1
    ALLOC = 2
    FORMAT_NOT_AVAILABLE = 3
    LIB_NOT_FOUND = 4
    FUNC_NOT_FOUND = 5

    @classmethod
    def describe(cls, code: int) -> str:
        if code < 0:
            return f"NATIVE({code})"
        try:
            return cls(code).name
        except ValueError:
            return f"UNKNOWN({code})"
