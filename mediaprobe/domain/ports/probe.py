from __future__ import annotations
from typing import Protocol
from mediaprobe.domain.entities.metadata import Metadata
from mediaprobe.domain.entities.source import ProbeSource

class MediaProbePort(Protocol):
    def probe(self, source: ProbeSource) -> Metadata: ...
