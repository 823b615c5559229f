# src/satlandcover/adapters/rasterio_reader.py
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Sequence

import numpy as np
import rasterio

from ..contracts.geo import CRSRef, DTypeStr, GeoProfile, GeoRaster, GeoTransform
from ..contracts.products import RasterTile
from ..ports.raster_read import RasterReaderPort

_DTYPE_MAP = {
    np.dtype("uint8"): "uint8",
    np.dtype("uint16"): "uint16",
    np.dtype("int16"): "int16",
    np.dtype("uint32"): "uint32",
    np.dtype("int32"): "int32",
    np.dtype("float32"): "float32",
    np.dtype("float64"): "float64",
}

# fecha en el nombre del archivo: 20240131 / 2024-01-31
_DATE_RE = re.compile(r"(\d{4})-?(\d{2})-?(\d{2})")


def _np_to_dtype_str(dt: np.dtype) -> DTypeStr:
    try:
        return _DTYPE_MAP[np.dtype(dt)]  # type: ignore[return-value]
    except KeyError as e:
        raise ValueError(f"dtype {dt} no soportado") from e


def _affine_to_gt(a) -> GeoTransform:
    return (a.c, a.a, a.b, a.f, a.d, a.e)


def _rasterio_crs_to_crsref(crs_obj) -> CRSRef:
    """rasterio CRS -> CRSRef (EPSG si se puede, si no WKT, si no vacío)."""
    if not crs_obj:
        return CRSRef()
    epsg = crs_obj.to_epsg()
    if epsg is not None:
        return CRSRef.from_epsg(int(epsg))
    wkt = crs_obj.to_wkt()
    return CRSRef.from_wkt(wkt) if wkt else CRSRef()


def date_from_name(path: str | Path) -> Optional[datetime]:
    m = _DATE_RE.search(Path(path).stem)
    if not m:
        return None
    try:
        return datetime(int(m.group(1)), int(m.group(2)), int(m.group(3)), tzinfo=timezone.utc)
    except ValueError:
        return None


@dataclass(frozen=True)
class RasterioTileReader(RasterReaderPort):
    """Lector GeoTIFF con rasterio.

    Nombres de banda: `band_names` explícitos, si no las descripciones del
    archivo, si no B1..Bn. Fecha: `acquired`, si no el tag ACQUISITION_DATE,
    si no la fecha en el nombre del archivo.
    """

    def _profile_of(self, ds, idx: int) -> GeoProfile:
        nodatavals = ds.nodatavals or ()
        nd = nodatavals[idx - 1] if len(nodatavals) >= idx else ds.nodata
        return GeoProfile(
            dtype=_np_to_dtype_str(np.dtype(ds.dtypes[idx - 1])),
            width=ds.width,
            height=ds.height,
            transform=_affine_to_gt(ds.transform),
            crs=_rasterio_crs_to_crsref(ds.crs),
            nodata=float(nd) if nd is not None else None,
        )

    def read(self, uri: str, band_index: int | None = None) -> GeoRaster:
        with rasterio.open(uri) as ds:
            idx = 1 if band_index is None else int(band_index)
            arr = ds.read(idx)
            return GeoRaster(arr, self._profile_of(ds, idx))

    def profile(self, uri: str) -> GeoProfile:
        with rasterio.open(uri) as ds:
            return self._profile_of(ds, 1)

    def read_tile(
        self,
        uri: str,
        *,
        band_names: Optional[Sequence[str]] = None,
        acquired: Optional[datetime] = None,
        tile_id: Optional[str] = None,
        cloud_pct: Optional[float] = None,
    ) -> RasterTile:
        with rasterio.open(uri) as ds:
            if band_names:
                names = tuple(band_names)
                if len(names) != ds.count:
                    raise ValueError(f"{uri}: {ds.count} bandas en el archivo, {len(names)} nombres entregados")
            elif all(ds.descriptions):
                names = tuple(ds.descriptions)
            else:
                names = tuple(f"B{i}" for i in range(1, ds.count + 1))

            bands: Dict[str, GeoRaster] = {}
            for i, name in enumerate(names, start=1):
                bands[name] = GeoRaster(ds.read(i), self._profile_of(ds, i))

            tags = ds.tags()
            when = acquired
            if when is None and tags.get("ACQUISITION_DATE"):
                when = datetime.fromisoformat(tags["ACQUISITION_DATE"])
            if when is None:
                when = date_from_name(uri)
            if when is None:
                raise ValueError(f"{uri}: no se pudo determinar la fecha de adquisición")
            if cloud_pct is None and tags.get("CLOUD_COVER"):
                cloud_pct = float(tags["CLOUD_COVER"])

        return RasterTile(
            bands=bands,
            acquired=when,
            tile_id=tile_id or Path(uri).stem,
            cloud_pct=cloud_pct,
        )

    def exists(self, uri: str) -> bool:
        return os.path.exists(uri)
