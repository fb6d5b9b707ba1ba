# mediaprobe/services/probe/libav_adapter.py
from __future__ import annotations

import ctypes
from contextlib import ExitStack
from ctypes import c_void_p
from typing import Optional

from mediaprobe.common.logging import get_logger
from mediaprobe.common.once import RunOnce
from mediaprobe.common.settings import Settings, get_settings
from mediaprobe.domain.entities.metadata import Metadata
from mediaprobe.domain.entities.source import ProbeSource
from mediaprobe.domain.enums.capability import Capability
from mediaprobe.domain.enums.media_type import MediaType
from mediaprobe.domain.errors import AllocationError, FormatNotAvailable, InputFailure, NativeError
from mediaprobe.domain.ports.probe import MediaProbePort
from mediaprobe.services.native.layouts import FormatView, NativeLayout, codec_display_name, io_buffer_slot
from mediaprobe.services.native.library import LibraryLoader
from mediaprobe.services.native.symbols import SymbolTable, resolve_symbols
from mediaprobe.services.probe.buffer_reader import BufferCursor, BufferReader

logger = get_logger(__name__)

# av_register_all() mutates libav globals; at most once per process
_REGISTRATION = RunOnce("av_register_all")


def _native_error(symbols: SymbolTable, code: int, stage: str) -> NativeError:
    return NativeError(message=f"{stage} failed: {symbols.strerror(code)}", code=code, stage=stage)


class _FormatContext:
    """
    One AVFormatContext plus, for buffer sources, the custom AVIOContext
    installed on it. close() releases the format context first and the
    custom I/O afterwards; libav never frees a caller-supplied pb itself.
    """

    def __init__(self, symbols: SymbolTable, layout: NativeLayout, address: int) -> None:
        self._symbols = symbols
        self._layout = layout
        self.ptr = c_void_p(address)
        self._io = c_void_p()
        self._reader: Optional[BufferReader] = None

    @classmethod
    def allocate(cls, symbols: SymbolTable, layout: NativeLayout) -> "_FormatContext":
        address = symbols[Capability.ALLOC_CONTEXT]()
        if not address:
            raise AllocationError("avformat_alloc_context returned NULL")
        return cls(symbols, layout, address)

    @property
    def live(self) -> bool:
        return bool(self.ptr.value)

    @property
    def view(self) -> FormatView:
        return self._layout.format_view(self.ptr.value)

    # ---- buffer path ----------------------------------------------------------
    def attach_reader(self, reader: BufferReader, buffer_size: int) -> None:
        staging = self._symbols[Capability.MALLOC](buffer_size)
        if not staging:
            raise AllocationError(f"av_malloc({buffer_size}) returned NULL")

        io = self._symbols[Capability.IO_ALLOC_CONTEXT](
            staging,
            buffer_size,
            0,  # read-only
            None,  # opaque: the callback is bound to its cursor already
            reader.callback,
            None,
            None,
        )
        if not io:
            self._freep(c_void_p(staging))
            raise AllocationError("avio_alloc_context returned NULL")

        self._io = c_void_p(io)
        self._reader = reader
        self.view.attach_io(io)

    def _freep(self, slot: c_void_p) -> None:
        if Capability.FREEP not in self._symbols:
            logger.warning("av_freep unavailable; I/O staging buffer not released")
            return
        self._symbols[Capability.FREEP](ctypes.addressof(slot))

    # ---- native calls ---------------------------------------------------------
    def open(self, filename: Optional[bytes]) -> None:
        ret = self._symbols[Capability.OPEN_INPUT](ctypes.pointer(self.ptr), filename, None, None)
        if ret < 0:
            # libav frees a user-supplied context when opening fails
            self.ptr = c_void_p()
        if self._reader is not None:
            self._reader.raise_pending()
        if ret < 0:
            raise _native_error(self._symbols, ret, "avformat_open_input")

    # ---- teardown -------------------------------------------------------------
    def close(self) -> None:
        if self.ptr.value:
            self._symbols[Capability.CLOSE_INPUT](ctypes.pointer(self.ptr))
            self.ptr = c_void_p()
        self._release_io()

    def _release_io(self) -> None:
        if not self._io.value:
            return
        if Capability.IO_CONTEXT_FREE in self._symbols and Capability.FREEP in self._symbols:
            # the buffer may have been reallocated by libav; free the current one
            self._symbols[Capability.FREEP](io_buffer_slot(self._io.value))
            self._symbols[Capability.IO_CONTEXT_FREE](ctypes.pointer(self._io))
        else:
            logger.warning("avio_context_free/av_freep unavailable; custom I/O context not released")
        self._io = c_void_p()
        self._reader = None

    def __enter__(self) -> "_FormatContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class LibavProbe(MediaProbePort):
    """
    MediaProbePort backed by libavformat loaded at runtime.

    Every call resolves its own symbol table and releases it, with all
    native objects, before returning. Instances hold configuration only and
    are safe to share between threads.
    """

    def __init__(self, settings: Optional[Settings] = None, loader: Optional[LibraryLoader] = None) -> None:
        self.cfg = settings or get_settings()
        self._loader = loader
        get_logger(level=self.cfg.log_level)

    # ---- Port API -------------------------------------------------------------
    def probe(self, source: ProbeSource) -> Metadata:
        if source is None:
            raise InputFailure("No source provided to probe().")
        source.validate(self.cfg.native.max_buffer_bytes)

        with ExitStack() as stack:
            symbols = stack.enter_context(resolve_symbols(self.cfg, self._loader))
            if Capability.REGISTER_ALL in symbols:
                _REGISTRATION(symbols[Capability.REGISTER_ALL])
            layout = NativeLayout.for_version(symbols.version())

            ctx = stack.enter_context(_FormatContext.allocate(symbols, layout))
            if source.buffer is not None:
                cursor = BufferCursor(source.buffer, source.buffer_size)
                ctx.attach_reader(BufferReader(cursor), self.cfg.native.io_buffer_size)
                ctx.open(None)
                logger.debug("opened %d-byte buffer, read %d bytes", cursor.size, cursor.consumed)
            else:
                ctx.open(source.encoded_filename())
                logger.debug("opened %s", source.filename)

            return self._extract(symbols, ctx.view)

    # ---- helpers --------------------------------------------------------------
    @staticmethod
    def _extract(symbols: SymbolTable, view: FormatView) -> Metadata:
        format_name = view.format_name
        if not format_name:
            raise FormatNotAvailable("libav attached no input format to the opened context")

        ret = symbols[Capability.FIND_STREAM_INFO](view.address, None)
        if ret < 0:
            raise _native_error(symbols, ret, "avformat_find_stream_info")

        find_best = symbols[Capability.FIND_BEST_STREAM]

        video_decoder = c_void_p()
        video_index = find_best(view.address, MediaType.VIDEO, -1, -1, ctypes.pointer(video_decoder), 0)
        if video_index < 0:
            raise _native_error(symbols, video_index, "av_find_best_stream(video)")

        # no audio is fine
        audio_decoder = c_void_p()
        audio_index = find_best(view.address, MediaType.AUDIO, -1, -1, ctypes.pointer(audio_decoder), 0)

        stream = view.stream(video_index)
        duration = view.duration
        if duration < 0:
            duration = stream.rescaled_duration

        meta = Metadata(
            duration=duration,
            width=stream.width,
            height=stream.height,
            delay=stream.delay,
            video_codec=codec_display_name(video_decoder.value),
            audio_codec=codec_display_name(audio_decoder.value) if audio_index >= 0 else None,
            format=format_name,
        )
        logger.debug(
            "probed %s: %dx%d video=%s audio=%s",
            meta.format, meta.width, meta.height, meta.video_codec, meta.audio_codec,
        )
        return meta
