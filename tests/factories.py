from datetime import datetime, timezone

import numpy as np

from satlandcover.contracts.core import FLOAT_NODATA
from satlandcover.contracts.geo import CRSRef, GeoProfile, GeoRaster
from satlandcover.contracts.products import CompositeRaster, MaskedTile, RasterTile

_NP2STR = {np.dtype("uint16"): "uint16", np.dtype("uint8"): "uint8", np.dtype("float32"): "float32", np.dtype("int32"): "int32"}

def make_profile(w=10, h=10, px=30.0, epsg=32740, dtype="uint16", nodata=None, x0=0.0, y0=300.0):
    return GeoProfile(
        dtype=dtype, width=w, height=h,
        transform=(x0, px, 0.0, y0, 0.0, -px),
        crs=CRSRef.from_epsg(epsg), nodata=nodata,
    )

def make_raster(value=0, w=10, h=10, px=30.0, dtype=np.uint16, nodata=None):
    arr = np.full((h, w), value, dtype=dtype)
    return GeoRaster(data=arr, profile=make_profile(w, h, px, dtype=_NP2STR[np.dtype(dtype)], nodata=nodata))

def raster_from(arr, px=30.0, nodata=None):
    arr = np.asarray(arr)
    h, w = arr.shape
    return GeoRaster(data=arr, profile=make_profile(w, h, px, dtype=_NP2STR[arr.dtype], nodata=nodata))

def make_tile(bands, day=1, tile_id=None, cloud_pct=None):
    """bands: {nombre: array 2D}"""
    ras = {n: raster_from(a) for n, a in bands.items()}
    return RasterTile(
        bands=ras,
        acquired=datetime(2023, 1, day, tzinfo=timezone.utc),
        tile_id=tile_id or f"T{day:02d}",
        cloud_pct=cloud_pct,
    )

def make_masked(bands, valid=None, day=1):
    """bands float32 con nodata=FLOAT_NODATA; valid por defecto todo True."""
    ras = {n: raster_from(np.asarray(a, dtype="float32"), nodata=FLOAT_NODATA) for n, a in bands.items()}
    tile = RasterTile(bands=ras, acquired=datetime(2023, 1, day, tzinfo=timezone.utc), tile_id=f"M{day:02d}")
    shape = tile.shape
    v = np.ones(shape, dtype=bool) if valid is None else np.asarray(valid, dtype=bool)
    return MaskedTile(tile=tile, valid=v)

def make_composite(bands):
    ras = {n: raster_from(np.asarray(a, dtype="float32"), nodata=FLOAT_NODATA) for n, a in bands.items()}
    first = next(iter(ras.values()))
    return CompositeRaster(bands=ras, count=np.ones(first.shape, dtype="int32"))
