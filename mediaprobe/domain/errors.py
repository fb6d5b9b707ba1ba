# mediaprobe/domain/errors.py
from __future__ import annotations

from dataclasses import dataclass

from mediaprobe.domain.enums.result_code import ResultCode


@dataclass(eq=False)
class ProbeError(RuntimeError):
    """
    Base probe failure. `code` is the integer the C-style contract reports:
    a ResultCode for failures detected here, a negative libav code otherwise.
    """
    message: str
    code: int

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.message} [{ResultCode.describe(self.code)}]"


@dataclass(eq=False)
class InputFailure(ProbeError):
    """Caller passed an unusable source. Raised before anything native is touched."""
    code: int = ResultCode.INPUT_FAILURE


@dataclass(eq=False)
class AllocationError(ProbeError):
    code: int = ResultCode.ALLOC


@dataclass(eq=False)
class FormatNotAvailable(ProbeError):
    """Input opened, but libav attached no input format (or an unnamed one)."""
    code: int = ResultCode.FORMAT_NOT_AVAILABLE


@dataclass(eq=False)
class LibraryNotFound(ProbeError):
    code: int = ResultCode.LIB_NOT_FOUND
    library: str = ""


@dataclass(eq=False)
class SymbolNotFound(ProbeError):
    code: int = ResultCode.FUNC_NOT_FOUND
    symbol: str = ""


@dataclass(eq=False)
class UnsupportedLibrary(ProbeError):
    """Libraries loaded, but their version has no known struct layout."""
    code: int = ResultCode.FUNC_NOT_FOUND
    version: int = 0


@dataclass(eq=False)
class NativeError(ProbeError):
    """A negative libav return code, passed through untouched."""
    code: int = -1
    stage: str = ""
