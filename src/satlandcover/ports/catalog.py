# src/satlandcover/ports/catalog.py
from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Iterable, Optional, Protocol, Tuple, runtime_checkable

from pydantic import BaseModel, ConfigDict, field_validator


class TileItem(BaseModel):
    """Entrada del almacén de tiles: un GeoTIFF multibanda por adquisición."""
    model_config = ConfigDict(frozen=True)

    tile_id: str
    acq_date: date
    path: Path
    band_names: Tuple[str, ...] = ()
    cloud_pct: Optional[float] = None
    sensor: Optional[str] = None

    @field_validator("band_names", mode="before")
    @classmethod
    def _split_bands(cls, v):
        # acepta "B2;B3;B4" o "B2,B3,B4" desde CSV
        if v is None:
            return ()
        if isinstance(v, str):
            sep = ";" if ";" in v else ","
            return tuple(s.strip() for s in v.split(sep) if s.strip())
        return tuple(v)


@runtime_checkable
class TileCatalogPort(Protocol):
    """
    Origen de tiles filtrables por fecha y % de nubes.
    Detrás del puerto puede haber CSV, STAC, DB, etc.
    """
    def iter_tiles(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        cloud_max: Optional[float] = None,
    ) -> Iterable[TileItem]:
        ...

__all__ = ["TileItem", "TileCatalogPort"]
