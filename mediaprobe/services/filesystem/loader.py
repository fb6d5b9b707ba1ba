# mediaprobe/services/filesystem/loader.py
from __future__ import annotations

from pathlib import Path
from typing import Optional

from mediaprobe.common.settings import get_settings
from mediaprobe.domain.errors import InputFailure


def read_media_file(path: str | Path, *, max_bytes: Optional[int] = None) -> bytes:
    """
    Whole-file, in-memory copy for buffer probes.
    Refuses files larger than the native side can describe (uint32 size).
    """
    if not isinstance(path, Path):
        path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Media file not found: {path}")

    limit = max_bytes or get_settings().native.max_buffer_bytes
    size = path.stat().st_size
    if size > limit:
        raise InputFailure(f"{path} is {size} bytes; buffer probes are limited to {limit}.")

    with path.open("rb") as f:
        return f.read()
