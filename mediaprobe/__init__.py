"""
mediaprobe: coarse container metadata through libavformat, loaded at runtime.

    >>> import mediaprobe
    >>> meta = mediaprobe.probe_file("clip.webm")
    >>> meta.format, meta.video_codec, meta.size
    ('matroska,webm', 'vp8', (640, 360))

Nothing native is needed at install time; FFmpeg's shared libraries are
located on each call (set FFMPEG_LIB_DIR to point at them explicitly).
"""
from mediaprobe.domain.entities.metadata import Metadata
from mediaprobe.domain.entities.outcome import ProbeOutcome
from mediaprobe.domain.entities.source import ProbeSource
from mediaprobe.domain.enums import KnownFormat, ResultCode
from mediaprobe.domain.errors import (
    AllocationError,
    FormatNotAvailable,
    InputFailure,
    LibraryNotFound,
    NativeError,
    ProbeError,
    SymbolNotFound,
    UnsupportedLibrary,
)
from mediaprobe.services.probe import (
    LibavProbe,
    probe,
    probe_buffer,
    probe_file,
    probe_many,
    read_info,
    release,
)

__all__ = [
    "AllocationError",
    "FormatNotAvailable",
    "InputFailure",
    "KnownFormat",
    "LibavProbe",
    "LibraryNotFound",
    "Metadata",
    "NativeError",
    "ProbeError",
    "ProbeOutcome",
    "ProbeSource",
    "ResultCode",
    "SymbolNotFound",
    "UnsupportedLibrary",
    "probe",
    "probe_buffer",
    "probe_file",
    "probe_many",
    "read_info",
    "release",
]
