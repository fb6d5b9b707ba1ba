# mediaprobe/domain/entities/metadata.py
from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import timedelta
from typing import Optional, Tuple

from mediaprobe.domain.enums.known_format import KnownFormat

# libav's AV_TIME_BASE: container durations are in microseconds
TIME_BASE = 1_000_000

_UINT32_MAX = 0xFFFFFFFF


def clamp_u32(value: int) -> int:
    if value < 0:
        return 0
    return min(int(value), _UINT32_MAX)


@dataclass
class Metadata:
    """
    Coarse container metadata produced by a successful probe.

    A zeroed record (the default) is valid input for `release()`. The text
    fields are owned by the record; `release()` drops them so the record can
    be probed into again.
    """
    duration: int = 0  # AV_TIME_BASE units; negative means unknown
    width: int = 0
    height: int = 0
    delay: int = 0
    video_codec: Optional[str] = None
    audio_codec: Optional[str] = None
    format: Optional[str] = None

    def __post_init__(self) -> None:
        self.width = clamp_u32(self.width)
        self.height = clamp_u32(self.height)
        self.delay = clamp_u32(self.delay)

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def known_format(self) -> Optional[KnownFormat]:
        return KnownFormat.maybe_from(self.format)

    @property
    def length(self) -> Optional[timedelta]:
        if self.duration < 0:
            return None
        return timedelta(microseconds=self.duration)

    @property
    def has_audio(self) -> bool:
        return self.audio_codec is not None

    def release(self) -> None:
        """Drop the owned text fields. No-op on a zeroed record."""
        self.video_codec = None
        self.audio_codec = None
        self.format = None

    def copy_into(self, out: "Metadata") -> "Metadata":
        for f in fields(self):
            setattr(out, f.name, getattr(self, f.name))
        return out
