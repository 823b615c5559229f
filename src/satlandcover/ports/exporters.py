# src/satlandcover/ports/exporters.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from ..contracts.core import ClassCatalog
from ..contracts.products import AreaReport, ClassifiedRaster

URI = str

@dataclass(frozen=True)
class QuicklookSpec:
    """Parámetros mínimos para quicklook/preview."""
    max_size_px: int = 2048               # lado mayor
    nodata_rgb: tuple[int, int, int] = (0, 0, 0)

@runtime_checkable
class QuicklookExporterPort(Protocol):
    def export_classmap(self, classified: ClassifiedRaster, catalog: ClassCatalog, out_uri: URI, spec: QuicklookSpec = QuicklookSpec()) -> URI: ...


@runtime_checkable
class ReportExporterPort(Protocol):
    """Persiste un AreaReport (CSV/JSON)."""
    def export_area(self, report: AreaReport, out_uri: URI) -> URI: ...

__all__ = ["QuicklookExporterPort", "ReportExporterPort", "QuicklookSpec", "URI"]
