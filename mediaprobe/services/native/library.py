# mediaprobe/services/native/library.py
from __future__ import annotations

import ctypes
import ctypes.util
import sys
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from mediaprobe.common.logging import get_logger
from mediaprobe.common.settings import Settings, get_settings
from mediaprobe.domain.errors import LibraryNotFound

logger = get_logger(__name__)


def _dlclose(handle: int) -> None:
    import _ctypes

    if sys.platform.startswith("win"):
        _ctypes.FreeLibrary(handle)
    else:
        _ctypes.dlclose(handle)


def library_filename(stem: str, platform: str = sys.platform) -> str:
    """`avformat` -> `libavformat.so` / `libavformat.dylib` / `avformat.dll`."""
    if platform.startswith("win"):
        return f"{stem}.dll"
    if platform == "darwin":
        return f"lib{stem}.dylib"
    return f"lib{stem}.so"


def _in_dir(directory: Path, filename: str) -> List[str]:
    found = [str(directory / filename)]
    # runtime-only installs ship libavformat.so.61 without the dev symlink
    if directory.is_dir():
        versioned = sorted(directory.glob(f"{filename}.*"), reverse=True)
        found.extend(str(p) for p in versioned)
    return found


def library_candidates(stem: str, settings: Optional[Settings] = None) -> List[str]:
    """
    Ordered paths/names to try for one library.
    A configured FFMPEG_LIB_DIR is authoritative; otherwise the loader's own
    search path goes first and the fallback directories last.
    """
    cfg = settings or get_settings()
    filename = library_filename(stem)

    if cfg.ffmpeg_lib_dir:
        return _in_dir(Path(cfg.ffmpeg_lib_dir), filename)

    candidates: List[str] = []
    found = ctypes.util.find_library(stem)
    if found:
        candidates.append(found)
    candidates.append(filename)
    for d in cfg.ffmpeg_fallback_dirs:
        candidates.extend(_in_dir(Path(d), filename))

    return list(dict.fromkeys(candidates))


class LibraryHandle:
    """
    One dlopen()ed shared library. Owned by a single probe call and closed
    exactly once; close() after close() is a no-op.
    """

    def __init__(self, stem: str, path: str, cdll: ctypes.CDLL) -> None:
        self.stem = stem
        self.path = path
        self._cdll: Optional[ctypes.CDLL] = cdll

    @property
    def closed(self) -> bool:
        return self._cdll is None

    def lookup(self, symbol: str, restype=None, argtypes: Sequence = ()) -> Optional[Callable]:
        """Return the configured foreign function, or None if the library lacks it."""
        if self._cdll is None:
            raise RuntimeError(f"lookup({symbol!r}) on closed library {self.stem}")
        try:
            # item access builds a fresh function object, so prototypes never leak between tables
            fn = self._cdll[symbol]
        except AttributeError:
            return None
        fn.restype = restype
        fn.argtypes = list(argtypes)
        return fn

    def close(self) -> None:
        if self._cdll is None:
            return
        handle = self._cdll._handle
        self._cdll = None
        _dlclose(handle)
        logger.debug("closed %s (%s)", self.stem, self.path)

    def __enter__(self) -> "LibraryHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"LibraryHandle({self.stem!r}, {self.path!r}, {state})"


LibraryLoader = Callable[[str, Settings], LibraryHandle]


def open_library(stem: str, settings: Optional[Settings] = None) -> LibraryHandle:
    """Load the first candidate that the dynamic loader accepts."""
    cfg = settings or get_settings()
    tried = library_candidates(stem, cfg)
    for candidate in tried:
        try:
            cdll = ctypes.CDLL(candidate)
        except OSError as e:
            logger.debug("dlopen %s failed: %s", candidate, e)
            continue
        logger.debug("loaded %s from %s", stem, candidate)
        return LibraryHandle(stem, candidate, cdll)

    raise LibraryNotFound(
        f"Could not load lib{stem}; tried {', '.join(tried)}. "
        "Install FFmpeg or set FFMPEG_LIB_DIR.",
        library=stem,
    )
