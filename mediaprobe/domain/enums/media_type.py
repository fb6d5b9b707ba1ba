# mediaprobe/domain/enums/media_type.py
from __future__ import annotations

from enum import IntEnum


class MediaType(IntEnum):
    # mirrors enum AVMediaType
    UNKNOWN = -1
    VIDEO = 0
    AUDIO = 1
    DATA = 2
    SUBTITLE = 3
    ATTACHMENT = 4
