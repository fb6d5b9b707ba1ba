import ctypes
from ctypes import addressof

import pytest

from mediaprobe.domain.errors import UnsupportedLibrary
from mediaprobe.services.native.layouts import (
    AVCodec,
    AVCodecParameters58,
    AVFormatContext58,
    AVFormatContext59,
    AVFormatContext61,
    AVInputFormat,
    AVIOContext,
    AVStream58,
    AVStream59,
    AVStream60,
    AVCodecContext58,
    AVCodecParameters61,
    NativeLayout,
    codec_display_name,
    io_buffer_slot,
    rescale,
)
from tests.conftest import LAVF_58, LAVF_60, LAVF_61

is_64bit = pytest.mark.skipif(ctypes.sizeof(ctypes.c_void_p) != 8, reason="offsets checked for LP64 only")


@pytest.mark.parametrize(
    "version, major, format_context, stream, codec_parameters",
    [
        (LAVF_58, 58, AVFormatContext58, AVStream58, None),
        ((59 << 16) | 27 << 8 | 100, 59, AVFormatContext59, AVStream59, AVCodecParameters58),
        (LAVF_60, 60, AVFormatContext59, AVStream60, AVCodecParameters58),
        ((60 << 16) | 3 << 8 | 100, 60, AVFormatContext59, AVStream60, AVCodecParameters58),
        (LAVF_61, 61, AVFormatContext61, AVStream60, AVCodecParameters61),
        ((62 << 16), 62, AVFormatContext61, AVStream60, AVCodecParameters61),
    ],
)
def test_layout_selection(version, major, format_context, stream, codec_parameters):
    layout = NativeLayout.for_version(version)
    assert layout.major == major
    assert layout.format_context is format_context
    assert layout.stream is stream
    assert layout.codec_parameters is codec_parameters


def test_old_libavformat_is_rejected():
    with pytest.raises(UnsupportedLibrary) as ei:
        NativeLayout.for_version((57 << 16) | 83 << 8 | 100)
    assert "57" in ei.value.message


# offsets as laid out by the public avformat.h / codec_par.h / avcodec.h of each release
@is_64bit
@pytest.mark.parametrize(
    "struct, field, offset",
    [
        (AVFormatContext58, "pb", 32),
        (AVFormatContext58, "url", 1080),
        (AVFormatContext58, "duration", 1096),
        (AVFormatContext59, "pb", 32),
        (AVFormatContext59, "streams", 48),
        (AVFormatContext59, "duration", 72),
        (AVFormatContext61, "nb_stream_groups", 56),
        (AVFormatContext61, "url", 88),
        (AVFormatContext61, "duration", 104),
        (AVStream58, "codec", 8),
        (AVStream58, "duration", 40),
        (AVStream59, "duration", 32),
        (AVStream59, "codecpar", 208),
        (AVStream60, "codecpar", 16),
        (AVStream60, "duration", 48),
        (AVCodecParameters58, "width", 56),
        (AVCodecParameters58, "height", 60),
        (AVCodecParameters58, "video_delay", 96),
        (AVCodecParameters61, "width", 72),
        (AVCodecParameters61, "height", 76),
        (AVCodecParameters61, "video_delay", 120),
        (AVCodecContext58, "delay", 112),
        (AVCodecContext58, "width", 116),
        (AVCodecContext58, "height", 120),
        (AVIOContext, "buffer", 8),
    ],
)
def test_lp64_offsets(struct, field, offset):
    assert getattr(struct, field).offset == offset


@pytest.mark.parametrize(
    "value, time_base, expected",
    [
        (32480, (1, 1000), 32_480_000),
        (90_000, (1, 90_000), 1_000_000),
        (1, (1, 3), 333_333),
        (2, (1, 3), 666_667),
        (-1, (1, 1000), -1),
        (100, (0, 1), 100),
        (100, (1, 0), 100),
    ],
)
def test_rescale(value, time_base, expected):
    assert rescale(value, time_base) == expected


def test_codec_display_name_prefers_short_name():
    both = AVCodec(b"vp8", b"On2 VP8")
    long_only = AVCodec(None, b"On2 VP8")
    neither = AVCodec(None, b"")
    assert codec_display_name(addressof(both)) == "vp8"
    assert codec_display_name(addressof(long_only)) == "On2 VP8"
    assert codec_display_name(addressof(neither)) is None
    assert codec_display_name(None) is None


def test_format_view_reads_context():
    layout = NativeLayout.for_version(LAVF_61)
    ctx = layout.format_context()
    iformat = AVInputFormat(b"matroska,webm")
    ctx.iformat = addressof(iformat)
    ctx.duration = 5

    view = layout.format_view(addressof(ctx))
    assert view.format_name == "matroska,webm"
    assert view.duration == 5
    assert view.nb_streams == 0
    with pytest.raises(IndexError):
        view.stream(0)

    io = AVIOContext()
    view.attach_io(addressof(io))
    assert view.pb == addressof(io)


def test_format_view_rejects_null():
    with pytest.raises(ValueError):
        NativeLayout.for_version(LAVF_61).format_view(0)


def test_io_buffer_slot_points_at_buffer_field():
    staging = (ctypes.c_uint8 * 16)()
    io = AVIOContext()
    io.buffer = addressof(staging)

    assert ctypes.c_void_p.from_address(io_buffer_slot(addressof(io))).value == addressof(staging)
