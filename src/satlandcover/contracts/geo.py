# src/satlandcover/contracts/geo.py

from __future__ import annotations
import math
from dataclasses import dataclass, replace
from typing import Any, Literal, NamedTuple, Tuple, Optional

import numpy as np
import numpy.typing as npt

GeoTransform = Tuple[float, float, float, float, float, float]
DTypeStr = Literal["uint8","uint16","int16","uint32","int32","float32","float64"]

class Bounds(NamedTuple):
    minx: float; miny: float; maxx: float; maxy: float

# ---------- CRS (dominio puro, sin rasterio) ----------
@dataclass(frozen=True)
class CRSRef:
    wkt: Optional[str] = None
    epsg: Optional[int] = None

    @staticmethod
    def from_epsg(code: int) -> "CRSRef":
        return CRSRef(epsg=int(code))

    @staticmethod
    def from_wkt(wkt: str) -> "CRSRef":
        return CRSRef(wkt=wkt)

    @staticmethod
    def parse(text: str) -> "CRSRef":
        """Acepta 'EPSG:32719' o un WKT."""
        s = str(text).strip()
        if not s:
            raise ValueError("CRS vacío")
        if s.upper().startswith("EPSG:"):
            return CRSRef.from_epsg(int(s.split(":", 1)[1]))
        return CRSRef.from_wkt(s)

    def to_string(self) -> str:
        if self.epsg is not None:
            return f"EPSG:{int(self.epsg)}"
        if self.wkt:
            return self.wkt
        raise ValueError("CRSRef vacío: no hay WKT ni EPSG.")

    @staticmethod
    def _normalize_wkt(wkt: str) -> str:
        # comparación textual: mayúsculas, espacios colapsados
        s = " ".join(wkt.strip().upper().split())
        s = s.replace(" ,", ",").replace(", ", ",")
        return s.replace("[ ", "[").replace(" ]", "]")

    def equals(self, other: "CRSRef") -> bool:
        if self is other:
            return True
        if self.epsg is not None and other.epsg is not None:
            return int(self.epsg) == int(other.epsg)
        if self.wkt and other.wkt:
            return self._normalize_wkt(self.wkt) == self._normalize_wkt(other.wkt)
        # ambos vacíos: rasters sin georreferencia, se consideran iguales
        return not (self.wkt or self.epsg is not None or other.wkt or other.epsg is not None)

# ---------- Perfil y Raster ----------
@dataclass(frozen=True)
class GeoProfile:
    dtype: DTypeStr
    width: int
    height: int
    transform: GeoTransform
    crs: CRSRef
    nodata: Optional[float] = None

    @property
    def bounds(self) -> Bounds:
        return geotransform_bounds(self.transform, self.width, self.height)

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.height, self.width)

    def pixel_size(self) -> Tuple[float, float]:
        _, px, _, _, _, py = self.transform
        return (px, py)

    def pixel_area(self) -> float:
        return pixel_area(self.transform)

    def with_dtype(self, dtype: DTypeStr, nodata: Optional[float]) -> "GeoProfile":
        return replace(self, dtype=dtype, nodata=nodata)

@dataclass(frozen=True)
class GeoRaster:
    data: "npt.NDArray[Any]"  # type: ignore[valid-type]
    profile: GeoProfile

    def __post_init__(self):
        if getattr(self.data, "ndim", 0) != 2:
            raise ValueError(f"GeoRaster espera un array 2D; ndim={getattr(self.data, 'ndim', None)}")
        if self.data.shape != self.profile.shape:
            raise ValueError(
                f"Forma {self.data.shape} no coincide con el perfil {self.profile.shape}"
            )
        # Bloquea mutaciones accidentales sobre los datos
        self.data.setflags(write=False)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape  # type: ignore[no-any-return]

    def nodata_mask(self) -> np.ndarray:
        """True donde el píxel es nodata (valor centinela o no finito)."""
        nd = self.profile.nodata
        out = np.zeros(self.shape, dtype=bool)
        if self.data.dtype.kind == "f":
            out |= ~np.isfinite(self.data)
        if nd is not None:
            out |= self.data == nd
        return out

# ---------- GeoTransform helpers (convención GDAL) ----------
def geotransform_bounds(gt: GeoTransform, width: int, height: int) -> Bounds:
    x0, px, rx, y0, ry, py = gt
    x_w = x0 + width * px + height * rx
    y_w = y0 + width * ry + height * py
    minx, maxx = (x0, x_w) if x0 <= x_w else (x_w, x0)
    miny, maxy = (y_w, y0) if y_w <= y0 else (y0, y_w)
    return Bounds(minx, miny, maxx, maxy)

def pixel_area(gt: GeoTransform) -> float:
    _, px, rx, _, ry, py = gt
    return abs(px * py - rx * ry)

def pixel_to_world(col: float, row: float, gt: GeoTransform) -> Tuple[float, float]:
    x0, px, rx, y0, ry, py = gt
    return x0 + col * px + row * rx, y0 + col * ry + row * py

def world_to_pixel(x: float, y: float, gt: GeoTransform) -> Tuple[float, float]:
    """Inversa de pixel_to_world; devuelve (col, row) fraccionarios."""
    x0, px, rx, y0, ry, py = gt
    det = px * py - rx * ry
    if abs(det) < 1e-18:
        raise ValueError("GeoTransform no invertible (det≈0).")
    dx = x - x0; dy = y - y0
    col = ( py * dx - rx * dy) / det
    row = (-ry * dx + px * dy) / det
    return col, row

def to_affine(gt: GeoTransform):
    """GeoTransform GDAL -> affine.Affine (el orden de rasterio)."""
    from affine import Affine
    return Affine.from_gdal(*gt)

def _gt_close(a: GeoTransform, b: GeoTransform, tol: float = 1e-6) -> bool:
    return all(math.isclose(x, y, rel_tol=0.0, abs_tol=tol) for x, y in zip(a, b))

def validate_profile_compat(a: GeoProfile, b: GeoProfile, *, check_dtype: bool = False) -> None:
    """Misma grilla: CRS, dimensiones y geotransform (dtype opcional)."""
    if not a.crs.equals(b.crs):
        raise ValueError("CRS no coincide.")
    if a.width != b.width or a.height != b.height:
        raise ValueError(f"Dimensiones no coinciden: {a.shape} vs {b.shape}")
    if not _gt_close(a.transform, b.transform):
        raise ValueError("GeoTransform no coincide (requiere resampling/alineación).")
    if check_dtype and a.dtype != b.dtype:
        raise ValueError(f"dtype no coincide: {a.dtype} vs {b.dtype}")

__all__ = [
    "GeoTransform","Bounds","CRSRef","GeoProfile","GeoRaster","geotransform_bounds",
    "pixel_area","pixel_to_world","world_to_pixel","to_affine",
    "validate_profile_compat","DTypeStr",
]
