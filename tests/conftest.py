# tests/conftest.py
from __future__ import annotations

import ctypes
from collections import Counter, defaultdict
from ctypes import POINTER, addressof, c_uint8, c_void_p
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

import pytest

from mediaprobe.common.settings import Settings
from mediaprobe.domain.enums.media_type import MediaType
from mediaprobe.domain.errors import LibraryNotFound
from mediaprobe.services.native.layouts import AVCodec, AVCodecContext58, AVInputFormat, AVIOContext, NativeLayout
from mediaprobe.services.native.symbols import SYMBOL_SPECS
from mediaprobe.services.probe import libav_adapter
from mediaprobe.services.probe.libav_adapter import LibavProbe

AVERROR_ENOENT = -2
AVERROR_INVALIDDATA = -1094995529
AVERROR_STREAM_NOT_FOUND = -1381258232
AVERROR_DECODER_NOT_FOUND = -1128613112
AVERROR_EOF = -541478725

WEBM_MAGIC = b"\x1a\x45\xdf\xa3"

LAVF_58 = (58 << 16) | (76 << 8) | 100
LAVF_60 = (60 << 16) | (16 << 8) | 100
LAVF_61 = (61 << 16) | (7 << 8) | 100


@dataclass
class FakeStream:
    kind: MediaType
    codec_name: Optional[bytes] = None
    long_name: Optional[bytes] = None
    width: int = 0
    height: int = 0
    delay: int = 0
    duration: int = -1
    time_base: Tuple[int, int] = (1, 1000)
    has_decoder: bool = True


def webm_streams() -> List[FakeStream]:
    return [
        FakeStream(MediaType.VIDEO, b"vp8", b"On2 VP8", width=640, height=360, delay=0, duration=32480),
        FakeStream(MediaType.AUDIO, b"vorbis", b"Vorbis", duration=32480),
    ]


class _FakeHandle:
    """Stands in for LibraryHandle: serves the fake's functions for one library."""

    def __init__(self, lib: "FakeLibav", role: str, stem: str) -> None:
        self._lib = lib
        self.role = role
        self.stem = stem
        self.closed = False

    def lookup(self, symbol, restype=None, argtypes=()):
        if self.closed:
            raise RuntimeError("lookup on closed fake library")
        owner = self._lib.symbol_owner.get(symbol)
        if owner != self.role or symbol in self._lib.missing_symbols:
            return None
        fn = getattr(self._lib, f"_{symbol}", None)
        if fn is None:
            return None
        self._lib.resolved.append(symbol)
        return fn

    def close(self) -> None:
        if self.closed:
            self._lib.double_closes += 1
            return
        self.closed = True
        self._lib.closed_libraries.append(self.stem)


class FakeLibav:
    """
    Python stand-in for libavformat/libavutil.

    Objects live in real ctypes memory laid out with the package's own
    struct definitions, so the probe reads them exactly as it would read
    libav's. Every allocation and free is tracked to catch leaks and double
    frees.
    """

    def __init__(self) -> None:
        self.version = LAVF_61
        self.format_name: Optional[bytes] = b"matroska,webm"
        self.iformat_without_name = False
        self.container_duration = 32_480_000
        self.streams: List[FakeStream] = webm_streams()
        self.files: Set[bytes] = {b"/media/trailer.webm"}
        self.magic = WEBM_MAGIC

        # failure injection
        self.missing_libraries: Set[str] = set()
        self.missing_symbols: Set[str] = {"av_register_all"}
        self.fail_alloc_context = False
        self.fail_malloc = False
        self.fail_io_alloc = False
        self.open_error: Optional[int] = None
        self.stream_info_error: Optional[int] = None
        self.max_reads = 10_000
        self.max_empty_reads = 8

        # bookkeeping
        self.symbol_owner: Dict[str, str] = {s.symbol: s.library for s in SYMBOL_SPECS}
        self.resolved: List[str] = []
        self.opened_libraries: List[str] = []
        self.closed_libraries: List[str] = []
        self.double_closes = 0
        self.double_frees = 0
        self.registered = 0
        self.calls: Counter = Counter()
        self.live: Dict[str, Set[int]] = defaultdict(set)
        self.read_sizes: List[Tuple[int, int]] = []  # (requested, returned)
        self.received = bytearray()
        self.read_status: Optional[int] = None
        self.io_pb_seen: List[Optional[int]] = []
        self._objects: Dict[int, list] = {}
        self._callbacks: Dict[int, object] = {}
        self._codecs: Dict[int, AVCodec] = {}

    # ---- loader -------------------------------------------------------------
    def loader(self, stem: str, settings: Settings) -> _FakeHandle:
        if stem in self.missing_libraries:
            raise LibraryNotFound(f"fake: lib{stem} missing", library=stem)
        role = "avformat" if stem == settings.native.avformat_name else "avutil"
        self.opened_libraries.append(stem)
        return _FakeHandle(self, role, stem)

    # ---- accounting ---------------------------------------------------------
    @property
    def layout(self) -> NativeLayout:
        return NativeLayout.for_version(self.version)

    def _keep(self, kind: str, *objs) -> int:
        addr = addressof(objs[0])
        self.live[kind].add(addr)
        self._objects[addr] = list(objs)
        return addr

    def _drop(self, kind: str, addr: int) -> None:
        if addr not in self.live[kind]:
            self.double_frees += 1
            return
        self.live[kind].discard(addr)
        self._objects.pop(addr, None)
        self._callbacks.pop(addr, None)

    def leaks(self) -> Dict[str, int]:
        found = {k: len(v) for k, v in self.live.items() if v}
        still_open = len(self.opened_libraries) - len(self.closed_libraries)
        if still_open:
            found["libraries"] = still_open
        return found

    def _codec(self, stream: FakeStream) -> int:
        codec = AVCodec(stream.codec_name, stream.long_name)
        addr = addressof(codec)
        self._codecs[addr] = codec
        return addr

    # ---- avformat -----------------------------------------------------------
    def _avformat_version(self):
        return self.version

    def _av_register_all(self):
        self.registered += 1

    def _avformat_alloc_context(self):
        self.calls["alloc_context"] += 1
        if self.fail_alloc_context:
            return None
        return self._keep("ctx", self.layout.format_context())

    def _avio_alloc_context(self, buffer, size, write_flag, opaque, read_cb, write_cb, seek_cb):
        self.calls["io_alloc_context"] += 1
        if self.fail_io_alloc:
            return None
        io = AVIOContext()
        io.buffer = buffer
        io.buffer_size = size
        addr = self._keep("io", io)
        self._callbacks[addr] = read_cb
        return addr

    def _avformat_open_input(self, pctx, filename, fmt, options):
        self.calls["open_input"] += 1
        addr = pctx.contents.value
        ctx = self.layout.format_context.from_address(addr)
        self.io_pb_seen.append(ctx.pb)

        if ctx.pb:
            self.received = bytearray()
            self._pull(ctx.pb)
            ok = bytes(self.received).startswith(self.magic)
            error = self.open_error if self.open_error is not None else (0 if ok else AVERROR_INVALIDDATA)
        else:
            error = self.open_error if self.open_error is not None else (0 if filename in self.files else AVERROR_ENOENT)

        if error:
            # libav frees the caller's context on failure, but never a custom pb
            self._drop("ctx", addr)
            pctx.contents.value = None
            return error

        self._populate(addr, ctx)
        return 0

    def _pull(self, io_addr: int) -> None:
        # lavf 61+ semantics: only a negative return ends the stream, 0 is retried
        io = AVIOContext.from_address(io_addr)
        cb = self._callbacks[io_addr]
        dest = ctypes.cast(io.buffer, POINTER(c_uint8))
        empty_reads = 0
        for _ in range(self.max_reads):
            n = cb(None, dest, io.buffer_size)
            self.read_sizes.append((io.buffer_size, n))
            if n < 0:
                self.read_status = n
                return
            if n == 0:
                empty_reads += 1
                if empty_reads > self.max_empty_reads:
                    pytest.fail(f"read callback returned 0 {empty_reads} times in a row; libav would spin forever")
                continue
            empty_reads = 0
            self.received += ctypes.string_at(io.buffer, n)
        pytest.fail(f"read callback never signalled end of stream in {self.max_reads} reads")

    def _populate(self, addr: int, ctx) -> None:
        layout = self.layout
        keep = self._objects[addr]
        if self.format_name is not None or self.iformat_without_name:
            iformat = AVInputFormat(self.format_name)
            keep.append(iformat)
            ctx.iformat = addressof(iformat)
        ctx.duration = self.container_duration

        addrs = []
        for i, fs in enumerate(self.streams):
            st = layout.stream()
            st.index = i
            st.time_base.num, st.time_base.den = fs.time_base
            st.duration = fs.duration
            if layout.codec_parameters is None:
                cc = AVCodecContext58()
                cc.codec_type = fs.kind
                cc.width, cc.height, cc.delay = fs.width, fs.height, fs.delay
                st.codec = addressof(cc)
                keep.append(cc)
            else:
                cp = layout.codec_parameters()
                cp.codec_type = fs.kind
                cp.width, cp.height, cp.video_delay = fs.width, fs.height, fs.delay
                st.codecpar = addressof(cp)
                keep.append(cp)
            keep.append(st)
            addrs.append(addressof(st))

        arr = (c_void_p * max(1, len(addrs)))(*addrs)
        keep.append(arr)
        ctx.streams = ctypes.cast(arr, POINTER(c_void_p))
        ctx.nb_streams = len(addrs)

    def _avformat_find_stream_info(self, ctx_addr, options):
        self.calls["find_stream_info"] += 1
        return self.stream_info_error or 0

    def _av_find_best_stream(self, ctx_addr, media_type, wanted, related, decoder_ret, flags):
        self.calls[f"find_best_stream:{MediaType(media_type).name}"] += 1
        for i, fs in enumerate(self.streams):
            if fs.kind != media_type:
                continue
            if not fs.has_decoder:
                return AVERROR_DECODER_NOT_FOUND
            decoder_ret.contents.value = self._codec(fs)
            return i
        return AVERROR_STREAM_NOT_FOUND

    def _avformat_close_input(self, pctx):
        self.calls["close_input"] += 1
        addr = pctx.contents.value
        if addr:
            self._drop("ctx", addr)
        pctx.contents.value = None

    def _avio_context_free(self, pio):
        self.calls["io_context_free"] += 1
        addr = pio.contents.value
        if addr:
            self._drop("io", addr)
        pio.contents.value = None

    # ---- avutil -------------------------------------------------------------
    def _av_malloc(self, size):
        self.calls["malloc"] += 1
        if self.fail_malloc:
            return None
        return self._keep("mem", (c_uint8 * size)())

    def _av_freep(self, slot_addr):
        self.calls["freep"] += 1
        slot = c_void_p.from_address(slot_addr)
        if slot.value:
            self._drop("mem", slot.value)
        slot.value = None

    def _av_strerror(self, code, buf, size):
        text = {
            AVERROR_INVALIDDATA: b"Invalid data found when processing input",
            AVERROR_STREAM_NOT_FOUND: b"Stream not found",
            AVERROR_DECODER_NOT_FOUND: b"Decoder not found",
        }.get(code)
        if text is None:
            return -1
        buf.value = text[: size - 1]
        return 0


@pytest.fixture()
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture()
def fake_libav() -> FakeLibav:
    return FakeLibav()


@pytest.fixture()
def prober(fake_libav: FakeLibav, settings: Settings) -> LibavProbe:
    return LibavProbe(settings, loader=fake_libav.loader)


@pytest.fixture(autouse=True)
def _reset_registration():
    libav_adapter._REGISTRATION.reset()
    yield
    libav_adapter._REGISTRATION.reset()
