# mediaprobe/services/native/symbols.py
from __future__ import annotations

import ctypes
import os
from collections.abc import Mapping
from ctypes import CFUNCTYPE, POINTER, c_char_p, c_int, c_size_t, c_uint, c_uint8, c_void_p
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from mediaprobe.common.logging import get_logger
from mediaprobe.common.settings import Settings, get_settings
from mediaprobe.domain.enums.capability import Capability
from mediaprobe.domain.errors import SymbolNotFound
from mediaprobe.services.native.library import LibraryHandle, LibraryLoader, open_library

logger = get_logger(__name__)

# int (*read_packet)(void *opaque, uint8_t *buf, int buf_size)
ReadPacketFn = CFUNCTYPE(c_int, c_void_p, POINTER(c_uint8), c_int)

AVFORMAT = "avformat"
AVUTIL = "avutil"

_ERRBUF_SIZE = 128


@dataclass(frozen=True)
class SymbolSpec:
    capability: Capability
    symbol: str
    library: str  # AVFORMAT | AVUTIL
    restype: Any
    argtypes: Tuple[Any, ...] = ()
    required: bool = True


SYMBOL_SPECS: Tuple[SymbolSpec, ...] = (
    SymbolSpec(Capability.ALLOC_CONTEXT, "avformat_alloc_context", AVFORMAT, c_void_p),
    SymbolSpec(Capability.MALLOC, "av_malloc", AVUTIL, c_void_p, (c_size_t,)),
    SymbolSpec(Capability.CLOSE_INPUT, "avformat_close_input", AVFORMAT, None, (POINTER(c_void_p),)),
    SymbolSpec(
        Capability.IO_ALLOC_CONTEXT,
        "avio_alloc_context",
        AVFORMAT,
        c_void_p,
        (c_void_p, c_int, c_int, c_void_p, ReadPacketFn, c_void_p, c_void_p),
    ),
    SymbolSpec(
        Capability.OPEN_INPUT,
        "avformat_open_input",
        AVFORMAT,
        c_int,
        (POINTER(c_void_p), c_char_p, c_void_p, c_void_p),
    ),
    SymbolSpec(Capability.FIND_STREAM_INFO, "avformat_find_stream_info", AVFORMAT, c_int, (c_void_p, c_void_p)),
    SymbolSpec(
        Capability.FIND_BEST_STREAM,
        "av_find_best_stream",
        AVFORMAT,
        c_int,
        (c_void_p, c_int, c_int, c_int, POINTER(c_void_p), c_int),
    ),
    # gone since FFmpeg 5; only called when the library still has it
    SymbolSpec(Capability.REGISTER_ALL, "av_register_all", AVFORMAT, None, required=False),
    SymbolSpec(Capability.STRERROR, "av_strerror", AVUTIL, c_int, (c_int, c_char_p, c_size_t)),
    SymbolSpec(Capability.FORMAT_VERSION, "avformat_version", AVFORMAT, c_uint),
    SymbolSpec(Capability.IO_CONTEXT_FREE, "avio_context_free", AVFORMAT, None, (POINTER(c_void_p),), required=False),
    SymbolSpec(Capability.FREEP, "av_freep", AVUTIL, None, (c_void_p,), required=False),
)


class SymbolTable(Mapping):
    """
    Resolved entry points for one probe call, indexed by Capability.

    Only ever built complete: every required capability is present. The table
    owns the library handles it was resolved from and closes them, in reverse
    open order, on close().
    """

    def __init__(self, handles: List[LibraryHandle], entries: Dict[Capability, Callable]) -> None:
        self._handles = list(handles)
        self._entries = dict(entries)
        self._closed = False

    # ---- Mapping API ----------------------------------------------------------
    def __getitem__(self, capability: Capability) -> Callable:
        if self._closed:
            raise RuntimeError(f"symbol table used after close ({capability.name})")
        return self._entries[capability]

    def __contains__(self, capability: object) -> bool:
        return capability in self._entries

    def __iter__(self) -> Iterator[Capability]:
        return iter(sorted(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    # ---- helpers --------------------------------------------------------------
    @property
    def libraries(self) -> List[LibraryHandle]:
        return list(self._handles)

    @property
    def closed(self) -> bool:
        return self._closed

    def version(self) -> int:
        return int(self[Capability.FORMAT_VERSION]())

    def strerror(self, code: int) -> str:
        """libav's text for `code`, falling back to the OS errno text."""
        buf = ctypes.create_string_buffer(_ERRBUF_SIZE + 1)
        if self[Capability.STRERROR](code, buf, _ERRBUF_SIZE) >= 0 and buf.value:
            return buf.value.decode("utf-8", errors="replace")
        return os.strerror(-code) if code < 0 else os.strerror(code)

    # ---- lifecycle ------------------------------------------------------------
    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._entries.clear()
        for handle in reversed(self._handles):
            handle.close()

    def __enter__(self) -> "SymbolTable":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def resolve_symbols(
    settings: Optional[Settings] = None,
    loader: Optional[LibraryLoader] = None,
) -> SymbolTable:
    """
    Open the libav libraries and resolve every capability.

    Raises LibraryNotFound if a library cannot be opened and SymbolNotFound if
    a required symbol is missing. In both cases every library opened so far is
    closed before the error propagates.
    """
    cfg = settings or get_settings()
    load = loader or open_library
    stems = {AVFORMAT: cfg.native.avformat_name, AVUTIL: cfg.native.avutil_name}

    handles: Dict[str, LibraryHandle] = {}
    try:
        for role, stem in stems.items():
            handles[role] = load(stem, cfg)

        entries: Dict[Capability, Callable] = {}
        missing: List[str] = []
        for spec in SYMBOL_SPECS:
            fn = handles[spec.library].lookup(spec.symbol, spec.restype, spec.argtypes)
            if fn is None:
                if spec.required:
                    missing.append(spec.symbol)
                else:
                    logger.debug("optional symbol %s not exported by lib%s", spec.symbol, stems[spec.library])
                continue
            entries[spec.capability] = fn

        if missing:
            raise SymbolNotFound(
                f"Missing libav symbols: {', '.join(missing)}",
                symbol=missing[0],
            )
    except BaseException:
        for handle in reversed(list(handles.values())):
            handle.close()
        raise

    logger.debug("resolved %d libav symbols", len(entries))
    return SymbolTable(list(handles.values()), entries)
