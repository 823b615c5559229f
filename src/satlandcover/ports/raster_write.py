# src/satlandcover/ports/raster_write.py
from __future__ import annotations

from typing import Mapping, Optional, Protocol, runtime_checkable

from ..contracts.geo import GeoRaster

URI = str

@runtime_checkable
class RasterWriterPort(Protocol):
    """
    Escritor GeoTIFF. `bands` en orden; todas sobre la misma grilla.
    """
    def write(self, uri: URI, raster: GeoRaster, *, compress: Optional[str] = None, tiled: bool = True) -> URI: ...
    def write_bands(self, uri: URI, bands: Mapping[str, GeoRaster], *, compress: Optional[str] = None, tiled: bool = True) -> URI: ...

__all__ = ["RasterWriterPort", "URI"]
