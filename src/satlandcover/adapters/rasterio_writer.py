# src/satlandcover/adapters/rasterio_writer.py
from __future__ import annotations

import os
from typing import Mapping, Optional

import numpy as np
import rasterio

from ..contracts.geo import GeoRaster, to_affine, validate_profile_compat
from ..contracts.products import ClassifiedRaster, CompositeRaster
from ..ports.raster_write import RasterWriterPort


def _ensure_dir(path: str) -> None:
    d = os.path.dirname(path)
    if d:
        os.makedirs(d, exist_ok=True)


class RasterioRasterWriter(RasterWriterPort):
    """GeoTIFF DEFLATE/tiled con rasterio; nodata y descripción por banda."""

    def write_bands(
        self,
        uri: str,
        bands: Mapping[str, GeoRaster],
        *,
        compress: Optional[str] = None,
        tiled: bool = True,
        tags: Optional[Mapping[str, str]] = None,
    ) -> str:
        if not bands:
            raise ValueError("write_bands sin bandas")
        rasters = list(bands.values())
        p = rasters[0].profile
        for r in rasters[1:]:
            validate_profile_compat(p, r.profile, check_dtype=True)
        _ensure_dir(uri)

        profile = {
            "driver": "GTiff",
            "height": p.height,
            "width": p.width,
            "count": len(rasters),
            "dtype": p.dtype,
            "transform": to_affine(p.transform),
            "compress": (compress or "DEFLATE").upper(),
            "nodata": p.nodata,
        }
        # GTiff exige bloques múltiplos de 16
        if tiled and p.width >= 256 and p.height >= 256:
            profile.update(tiled=True, blockxsize=256, blockysize=256)
        if p.crs.epsg is not None or p.crs.wkt:
            profile["crs"] = p.crs.to_string()

        with rasterio.open(uri, "w", **profile) as dst:
            for i, (name, r) in enumerate(bands.items(), start=1):
                dst.write(np.asarray(r.data, dtype=p.dtype), i)
                dst.set_band_description(i, name)
            if tags:
                dst.update_tags(**tags)
        return uri

    def write(self, uri: str, raster: GeoRaster, *, compress: Optional[str] = None, tiled: bool = True) -> str:
        return self.write_bands(uri, {"band_1": raster}, compress=compress, tiled=tiled)

    def write_classified(self, uri: str, classified: ClassifiedRaster) -> str:
        """Una banda uint8, nodata=255."""
        return self.write_bands(uri, {"class": classified.labels})

    def write_composite(self, uri: str, composite: CompositeRaster) -> str:
        tags = {}
        if composite.date_from and composite.date_to:
            tags = {"DATE_FROM": composite.date_from.isoformat(), "DATE_TO": composite.date_to.isoformat()}
        return self.write_bands(uri, composite.bands, tags=tags)
