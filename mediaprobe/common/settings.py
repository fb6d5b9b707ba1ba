# mediaprobe/common/settings.py
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _csv_to_list(v: str | List[str] | None) -> List[str]:
    if v is None:
        return []
    if isinstance(v, (list, tuple)):
        return [str(s).strip() for s in v if s and str(s).strip()]
    return [s.strip() for s in str(v).split(",") if s.strip()]


class NativeConfig(BaseModel):
    # library stems, resolved to lib<stem>.so / .dylib / .dll
    avformat_name: str = "avformat"
    avutil_name: str = "avutil"

    # size of the av_malloc'd staging buffer handed to avio_alloc_context
    io_buffer_size: int = Field(4096, ge=64, le=1024 * 1024)

    # buffers are described to the native side with a uint32 size
    max_buffer_bytes: int = Field(0xFFFFFFFF, ge=1, le=0xFFFFFFFF)


class Settings(BaseSettings):
    # -------- Logging --------
    # applied to the "mediaprobe" logger when a LibavProbe is built
    log_level: str = "INFO"

    # -------- Native library lookup --------
    # When set, libraries are loaded from this directory only.
    ffmpeg_lib_dir: Optional[Path] = Field(default=None, alias="FFMPEG_LIB_DIR")
    ffmpeg_fallback_dirs: Annotated[List[Path], NoDecode] = Field(
        default_factory=lambda: [Path("/usr/local/lib")],
        alias="FFMPEG_FALLBACK_DIRS",
    )

    # -------- Concurrency --------
    probe_workers: int = Field(4, ge=1, le=64, description="Default pool size for probe_many()")

    # -------- Sub-configs --------
    native: NativeConfig = NativeConfig()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("ffmpeg_fallback_dirs", mode="before")
    @classmethod
    def _split_csv(cls, v):
        return [Path(p) for p in _csv_to_list(v)]

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper(cls, v):
        return str(v or "INFO").strip().upper()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Global settings accessor (cached). Use this everywhere you need config:
        from mediaprobe.common.settings import get_settings
        cfg = get_settings()
    """
    return Settings()  # pydantic_settings will read from .env automatically
