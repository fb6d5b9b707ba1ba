# mediaprobe/services/probe/service.py
from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional

from mediaprobe.common.concurrency.probe_pool import ProbePool
from mediaprobe.common.logging import get_logger
from mediaprobe.common.settings import Settings, get_settings
from mediaprobe.domain.entities.metadata import Metadata
from mediaprobe.domain.entities.outcome import ProbeOutcome
from mediaprobe.domain.entities.source import BytesLike, ProbeSource
from mediaprobe.domain.enums.result_code import ResultCode
from mediaprobe.domain.errors import InputFailure, ProbeError
from mediaprobe.domain.ports.probe import MediaProbePort
from mediaprobe.services.filesystem.loader import read_media_file
from mediaprobe.services.probe.libav_adapter import LibavProbe

logger = get_logger(__name__)


def _prober(settings: Optional[Settings], prober: Optional[MediaProbePort]) -> MediaProbePort:
    return prober or LibavProbe(settings)


def probe(
    source: ProbeSource,
    *,
    settings: Optional[Settings] = None,
    prober: Optional[MediaProbePort] = None,
) -> Metadata:
    """
    Probe `source` and return a fresh Metadata record.
    Raises a ProbeError subclass; `err.code` is the C-style result code.
    """
    if source is None:
        raise InputFailure("No source provided to probe().")
    return _prober(settings, prober).probe(source)


def read_info(
    source: ProbeSource,
    out: Optional[Metadata],
    *,
    settings: Optional[Settings] = None,
    prober: Optional[MediaProbePort] = None,
) -> int:
    """
    C-style entry point: returns ResultCode.OK or an error code (negative
    values are libav's own). `out` is written only on success.
    """
    if out is None:
        return ResultCode.INPUT_FAILURE
    try:
        meta = probe(source, settings=settings, prober=prober)
    except ProbeError as e:
        logger.debug("probe failed: %s", e)
        return e.code
    meta.copy_into(out)
    return ResultCode.OK


def release(metadata: Optional[Metadata]) -> None:
    """Free the record's owned fields. Safe on a zeroed record."""
    if metadata is None:
        return
    metadata.release()


def probe_buffer(
    data: BytesLike,
    size: Optional[int] = None,
    *,
    settings: Optional[Settings] = None,
    prober: Optional[MediaProbePort] = None,
) -> Metadata:
    return probe(ProbeSource.from_buffer(data, size), settings=settings, prober=prober)


def probe_file(
    path: str | Path,
    *,
    via_buffer: bool = False,
    settings: Optional[Settings] = None,
    prober: Optional[MediaProbePort] = None,
) -> Metadata:
    """
    Probe a file by name, or (via_buffer=True) load it into memory first and
    probe the bytes through the custom-I/O path.
    """
    if not via_buffer:
        return probe(ProbeSource.from_file(path), settings=settings, prober=prober)

    cfg = settings or get_settings()
    try:
        data = read_media_file(path, max_bytes=cfg.native.max_buffer_bytes)
    except OSError as e:
        raise InputFailure(f"Could not read {path}: {e}") from e
    return probe_buffer(data, settings=cfg, prober=prober)


def probe_many(
    paths: Iterable[str | Path],
    *,
    max_workers: Optional[int] = None,
    via_buffer: bool = False,
    settings: Optional[Settings] = None,
    prober: Optional[MediaProbePort] = None,
) -> List[ProbeOutcome]:
    """
    Probe several files concurrently. One outcome per path, in input order;
    a failing file never aborts the batch.
    """
    cfg = settings or get_settings()
    shared = _prober(cfg, prober)
    items = [Path(p) for p in paths]
    if not items:
        return []

    def _one(path: Path) -> ProbeOutcome:
        try:
            meta = probe_file(path, via_buffer=via_buffer, settings=cfg, prober=shared)
        except ProbeError as e:
            logger.info("probe failed for %s: %s", path, e)
            return ProbeOutcome(path=path, error=e)
        return ProbeOutcome(path=path, metadata=meta)

    workers = min(max_workers or cfg.probe_workers, len(items))
    with ProbePool("probe", max_workers=workers, max_pending=workers * 2) as pool:
        outcomes = pool.map(_one, items)
        stats = pool.stats()

    failed = sum(1 for o in outcomes if not o.ok)
    logger.info(
        "probed %d files in %.2fs with %d workers (%d failed)",
        stats.submitted, stats.uptime_sec, workers, failed,
    )
    return outcomes
