# src/satlandcover/ports/raster_read.py
from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence, runtime_checkable

from ..contracts.geo import GeoProfile, GeoRaster
from ..contracts.products import RasterTile

URI = str

@runtime_checkable
class RasterReaderPort(Protocol):
    """
    Lector de raster (GeoTIFF/COG).
    Reglas: read() devuelve SIEMPRE un GeoRaster 2D; read_tile() arma un RasterTile
    con una banda nombrada por cada banda del archivo.
    """
    def read(self, uri: URI, band_index: int | None = None) -> GeoRaster: ...
    def read_tile(
        self,
        uri: URI,
        *,
        band_names: Optional[Sequence[str]] = None,
        acquired: Optional[datetime] = None,
        tile_id: Optional[str] = None,
        cloud_pct: Optional[float] = None,
    ) -> RasterTile: ...
    def profile(self, uri: URI) -> GeoProfile: ...

__all__ = ["RasterReaderPort", "URI"]
