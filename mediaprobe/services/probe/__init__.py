from mediaprobe.services.probe.libav_adapter import LibavProbe
from mediaprobe.services.probe.service import (
    probe,
    probe_buffer,
    probe_file,
    probe_many,
    read_info,
    release,
)

__all__ = [
    "LibavProbe",
    "probe",
    "probe_buffer",
    "probe_file",
    "probe_many",
    "read_info",
    "release",
]
