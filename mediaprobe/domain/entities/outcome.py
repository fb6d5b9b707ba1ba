# mediaprobe/domain/entities/outcome.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from mediaprobe.domain.entities.metadata import Metadata
from mediaprobe.domain.enums.result_code import ResultCode
from mediaprobe.domain.errors import ProbeError


@dataclass(frozen=True)
class ProbeOutcome:
    """Per-file result of a batch probe: metadata on success, the error otherwise."""
    path: Path
    metadata: Optional[Metadata] = None
    error: Optional[ProbeError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def code(self) -> int:
        return ResultCode.OK if self.error is None else self.error.code
