# mediaprobe/domain/enums/known_format.py
from __future__ import annotations

from enum import StrEnum
from typing import Optional


class KnownFormat(StrEnum):
    WEBM = "webm"
    MP4 = "mp4"
    OGG = "ogg"

    @classmethod
    def maybe_from(cls, name: Optional[str]) -> Optional["KnownFormat"]:
        """
        Classify a libav demuxer name, e.g. "matroska,webm" or
        "mov,mp4,m4a,3gp,3g2,mj2". Substring match, first hit wins.
        """
        if not name:
            return None
        lowered = name.lower()
        for fmt in cls:
            if fmt.value in lowered:
                return fmt
        return None
