from mediaprobe.domain.enums.capability import Capability
from mediaprobe.domain.enums.known_format import KnownFormat
from mediaprobe.domain.enums.media_type import MediaType
from mediaprobe.domain.enums.result_code import ResultCode

__all__ = [
    "Capability",
    "KnownFormat",
    "MediaType",
    "ResultCode",
]
