# mediaprobe/services/native/layouts.py
"""
Minimal views over libav structs.

Only the leading fields up to the last one we read are declared; everything
after that is never touched. Layouts changed across major versions, so the
struct set is picked from ``avformat_version()`` at probe time:

    lavf 58   FFmpeg 4.x   AVStream.codec (AVCodecContext) still present
    lavf 59   FFmpeg 5.x   AVStream.codecpar after attached_pic
    lavf 60   FFmpeg 6.x   AVStream gains av_class, codecpar moves to the top
    lavf 61+  FFmpeg 7.x+  stream groups in AVFormatContext, coded side
                           data inside AVCodecParameters
"""
from __future__ import annotations

from ctypes import (
    POINTER,
    Structure,
    c_char,
    c_char_p,
    c_int,
    c_int64,
    c_uint,
    c_uint32,
    c_void_p,
)
from dataclasses import dataclass
from typing import Optional, Tuple, Type

from mediaprobe.domain.entities.metadata import TIME_BASE
from mediaprobe.domain.errors import UnsupportedLibrary

MIN_SUPPORTED_MAJOR = 58


class AVRational(Structure):
    _fields_ = [("num", c_int), ("den", c_int)]


class AVCodec(Structure):
    _fields_ = [("name", c_char_p), ("long_name", c_char_p)]


class AVInputFormat(Structure):
    _fields_ = [("name", c_char_p)]


class AVIOContext(Structure):
    _fields_ = [
        ("av_class", c_void_p),
        ("buffer", c_void_p),
        ("buffer_size", c_int),
    ]


# ---- codec parameters ---------------------------------------------------------
class AVCodecParameters58(Structure):
    """lavc 58..60"""
    _fields_ = [
        ("codec_type", c_int),
        ("codec_id", c_int),
        ("codec_tag", c_uint32),
        ("extradata", c_void_p),
        ("extradata_size", c_int),
        ("format", c_int),
        ("bit_rate", c_int64),
        ("bits_per_coded_sample", c_int),
        ("bits_per_raw_sample", c_int),
        ("profile", c_int),
        ("level", c_int),
        ("width", c_int),
        ("height", c_int),
        ("sample_aspect_ratio", AVRational),
        ("field_order", c_int),
        ("color_range", c_int),
        ("color_primaries", c_int),
        ("color_trc", c_int),
        ("color_space", c_int),
        ("chroma_location", c_int),
        ("video_delay", c_int),
    ]


class AVCodecParameters61(Structure):
    """lavc 61+: coded side data and framerate moved in"""
    _fields_ = [
        ("codec_type", c_int),
        ("codec_id", c_int),
        ("codec_tag", c_uint32),
        ("extradata", c_void_p),
        ("extradata_size", c_int),
        ("coded_side_data", c_void_p),
        ("nb_coded_side_data", c_int),
        ("format", c_int),
        ("bit_rate", c_int64),
        ("bits_per_coded_sample", c_int),
        ("bits_per_raw_sample", c_int),
        ("profile", c_int),
        ("level", c_int),
        ("width", c_int),
        ("height", c_int),
        ("sample_aspect_ratio", AVRational),
        ("framerate", AVRational),
        ("field_order", c_int),
        ("color_range", c_int),
        ("color_primaries", c_int),
        ("color_trc", c_int),
        ("color_space", c_int),
        ("chroma_location", c_int),
        ("video_delay", c_int),
    ]


class AVCodecContext58(Structure):
    """Deprecated per-stream codec context, only read on lavf 58."""
    _fields_ = [
        ("av_class", c_void_p),
        ("log_level_offset", c_int),
        ("codec_type", c_int),
        ("codec", c_void_p),
        ("codec_id", c_int),
        ("codec_tag", c_uint),
        ("priv_data", c_void_p),
        ("internal", c_void_p),
        ("opaque", c_void_p),
        ("bit_rate", c_int64),
        ("bit_rate_tolerance", c_int),
        ("global_quality", c_int),
        ("compression_level", c_int),
        ("flags", c_int),
        ("flags2", c_int),
        ("extradata", c_void_p),
        ("extradata_size", c_int),
        ("time_base", AVRational),
        ("ticks_per_frame", c_int),
        ("delay", c_int),
        ("width", c_int),
        ("height", c_int),
    ]


# ---- streams ------------------------------------------------------------------
class AVPacket59(Structure):
    _fields_ = [
        ("buf", c_void_p),
        ("pts", c_int64),
        ("dts", c_int64),
        ("data", c_void_p),
        ("size", c_int),
        ("stream_index", c_int),
        ("flags", c_int),
        ("side_data", c_void_p),
        ("side_data_elems", c_int),
        ("duration", c_int64),
        ("pos", c_int64),
        ("opaque", c_void_p),
        ("opaque_ref", c_void_p),
        ("time_base", AVRational),
    ]


class AVStream58(Structure):
    _fields_ = [
        ("index", c_int),
        ("id", c_int),
        ("codec", c_void_p),
        ("priv_data", c_void_p),
        ("time_base", AVRational),
        ("start_time", c_int64),
        ("duration", c_int64),
    ]


class AVStream59(Structure):
    _fields_ = [
        ("index", c_int),
        ("id", c_int),
        ("priv_data", c_void_p),
        ("time_base", AVRational),
        ("start_time", c_int64),
        ("duration", c_int64),
        ("nb_frames", c_int64),
        ("disposition", c_int),
        ("discard", c_int),
        ("sample_aspect_ratio", AVRational),
        ("metadata", c_void_p),
        ("avg_frame_rate", AVRational),
        ("attached_pic", AVPacket59),
        ("side_data", c_void_p),
        ("nb_side_data", c_int),
        ("event_flags", c_int),
        ("r_frame_rate", AVRational),
        ("codecpar", c_void_p),
    ]


class AVStream60(Structure):
    """lavf 60+: av_class first, codecpar moved up next to index/id"""
    _fields_ = [
        ("av_class", c_void_p),
        ("index", c_int),
        ("id", c_int),
        ("codecpar", c_void_p),
        ("priv_data", c_void_p),
        ("time_base", AVRational),
        ("start_time", c_int64),
        ("duration", c_int64),
    ]


# ---- format context -----------------------------------------------------------
class AVFormatContext58(Structure):
    _fields_ = [
        ("av_class", c_void_p),
        ("iformat", c_void_p),
        ("oformat", c_void_p),
        ("priv_data", c_void_p),
        ("pb", c_void_p),
        ("ctx_flags", c_int),
        ("nb_streams", c_uint),
        ("streams", POINTER(c_void_p)),
        ("filename", c_char * 1024),
        ("url", c_void_p),
        ("start_time", c_int64),
        ("duration", c_int64),
    ]


class AVFormatContext59(Structure):
    _fields_ = [
        ("av_class", c_void_p),
        ("iformat", c_void_p),
        ("oformat", c_void_p),
        ("priv_data", c_void_p),
        ("pb", c_void_p),
        ("ctx_flags", c_int),
        ("nb_streams", c_uint),
        ("streams", POINTER(c_void_p)),
        ("url", c_void_p),
        ("start_time", c_int64),
        ("duration", c_int64),
    ]


class AVFormatContext61(Structure):
    _fields_ = [
        ("av_class", c_void_p),
        ("iformat", c_void_p),
        ("oformat", c_void_p),
        ("priv_data", c_void_p),
        ("pb", c_void_p),
        ("ctx_flags", c_int),
        ("nb_streams", c_uint),
        ("streams", POINTER(c_void_p)),
        ("nb_stream_groups", c_uint),
        ("stream_groups", c_void_p),
        ("nb_chapters", c_uint),
        ("chapters", c_void_p),
        ("url", c_void_p),
        ("start_time", c_int64),
        ("duration", c_int64),
    ]


def _text(raw: Optional[bytes]) -> Optional[str]:
    if not raw:
        return None
    return raw.decode("utf-8", errors="replace")


def codec_display_name(address: Optional[int]) -> Optional[str]:
    """Short codec name, else the long one, else None."""
    if not address:
        return None
    codec = AVCodec.from_address(address)
    return _text(codec.name) or _text(codec.long_name)


def rescale(value: int, time_base: Tuple[int, int], target: int = TIME_BASE) -> int:
    """value * num/den expressed in 1/target units, rounded half away from zero."""
    num, den = time_base
    if value < 0 or num <= 0 or den <= 0:
        return value
    return (value * num * target + den // 2) // den


@dataclass(frozen=True)
class NativeLayout:
    major: int
    format_context: Type[Structure]
    stream: Type[Structure]
    codec_parameters: Optional[Type[Structure]]  # None: read AVStream.codec instead

    @classmethod
    def for_version(cls, version: int) -> "NativeLayout":
        """`version` is avformat_version(): major << 16 | minor << 8 | micro."""
        major = (version >> 16) & 0xFF
        if major < MIN_SUPPORTED_MAJOR:
            raise UnsupportedLibrary(
                f"libavformat {major}.x is too old; need {MIN_SUPPORTED_MAJOR} or newer.",
                version=version,
            )
        if major == 58:
            return cls(major, AVFormatContext58, AVStream58, None)
        if major == 59:
            return cls(major, AVFormatContext59, AVStream59, AVCodecParameters58)
        if major == 60:
            return cls(major, AVFormatContext59, AVStream60, AVCodecParameters58)
        return cls(major, AVFormatContext61, AVStream60, AVCodecParameters61)

    def format_view(self, address: int) -> "FormatView":
        return FormatView(self, address)


class StreamView:
    def __init__(self, layout: NativeLayout, address: int) -> None:
        self._stream = layout.stream.from_address(address)
        if layout.codec_parameters is None:
            self._codec = AVCodecContext58.from_address(self._stream.codec) if self._stream.codec else None
            self._delay_field = "delay"
        else:
            cp = self._stream.codecpar
            self._codec = layout.codec_parameters.from_address(cp) if cp else None
            self._delay_field = "video_delay"

    @property
    def index(self) -> int:
        return self._stream.index

    @property
    def width(self) -> int:
        return self._codec.width if self._codec is not None else 0

    @property
    def height(self) -> int:
        return self._codec.height if self._codec is not None else 0

    @property
    def delay(self) -> int:
        return getattr(self._codec, self._delay_field) if self._codec is not None else 0

    @property
    def time_base(self) -> Tuple[int, int]:
        return self._stream.time_base.num, self._stream.time_base.den

    @property
    def duration(self) -> int:
        """Raw duration in stream time_base units."""
        return self._stream.duration

    @property
    def rescaled_duration(self) -> int:
        """Stream duration rescaled to AV_TIME_BASE; negative stays negative."""
        return rescale(self.duration, self.time_base)


class FormatView:
    def __init__(self, layout: NativeLayout, address: int) -> None:
        if not address:
            raise ValueError("FormatView over a NULL context")
        self._layout = layout
        self.address = address
        self._ctx = layout.format_context.from_address(address)

    @property
    def format_name(self) -> Optional[str]:
        if not self._ctx.iformat:
            return None
        return _text(AVInputFormat.from_address(self._ctx.iformat).name)

    @property
    def duration(self) -> int:
        return self._ctx.duration

    @property
    def nb_streams(self) -> int:
        return self._ctx.nb_streams

    @property
    def pb(self) -> Optional[int]:
        return self._ctx.pb

    def attach_io(self, io_address: int) -> None:
        self._ctx.pb = io_address

    def stream(self, index: int) -> StreamView:
        if not 0 <= index < self.nb_streams:
            raise IndexError(f"stream {index} out of range ({self.nb_streams} streams)")
        return StreamView(self._layout, self._ctx.streams[index])


def io_buffer_slot(io_address: int) -> int:
    """Address of AVIOContext.buffer, as av_freep() wants it."""
    return io_address + AVIOContext.buffer.offset


__all__ = [
    "AVCodec",
    "AVInputFormat",
    "AVIOContext",
    "AVRational",
    "FormatView",
    "NativeLayout",
    "StreamView",
    "codec_display_name",
    "io_buffer_slot",
    "rescale",
]
