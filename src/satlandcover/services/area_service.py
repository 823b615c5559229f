# src/satlandcover/services/area_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

import numpy as np
from rasterio.features import geometry_mask
from shapely.geometry import mapping, shape
from shapely.geometry.base import BaseGeometry

from ..contracts.core import ClassCatalog
from ..contracts.errors import UnknownClassLabelError
from ..contracts.geo import to_affine
from ..contracts.products import AreaReport, ClassifiedRaster

logger = logging.getLogger(__name__)

# factor de conversión desde unidades de mapa al cuadrado (m²)
AREA_UNITS: Mapping[str, float] = MappingProxyType({
    "m2": 1.0,
    "ha": 1.0e-4,
    "km2": 1.0e-6,
})


@dataclass
class AreaService:
    """
    Estadística zonal: suma del área de píxel por clase dentro de una región.
    Región = geometría (centros de píxel dentro) o el raster completo.
    """

    def region_mask(self, classified: ClassifiedRaster, region: Any) -> np.ndarray:
        prof = classified.profile
        if region is None:
            return np.ones(prof.shape, dtype=bool)
        geom: BaseGeometry = region if isinstance(region, BaseGeometry) else shape(region)
        if geom.is_empty:
            return np.zeros(prof.shape, dtype=bool)
        return geometry_mask(
            [mapping(geom)],
            out_shape=prof.shape,
            transform=to_affine(prof.transform),
            all_touched=False,
            invert=True,
        )

    def aggregate(
        self,
        classified: ClassifiedRaster,
        catalog: ClassCatalog,
        *,
        region: Any = None,
        pixel_area: Optional[float] = None,
        unit: str = "m2",
        strict: bool = True,
    ) -> AreaReport:
        """
        pixel_area en unidades de mapa al cuadrado; por defecto |px*py| del perfil.
        strict=False reporta etiquetas desconocidas con su número en vez de fallar.
        """
        if unit not in AREA_UNITS:
            raise ValueError(f"unidad de área no soportada: {unit} (usa {sorted(AREA_UNITS)})")
        pa = float(pixel_area) if pixel_area is not None else classified.profile.pixel_area()
        if pa <= 0:
            raise ValueError(f"pixel_area debe ser > 0: {pa}")

        sel = self.region_mask(classified, region) & classified.valid_mask()
        vals = classified.data[sel]
        labels, counts = np.unique(vals, return_counts=True)
        pixel_counts = {int(k): int(v) for k, v in zip(labels, counts)}

        known = catalog.names()
        unknown = [k for k in pixel_counts if k not in known]
        if unknown and strict:
            raise UnknownClassLabelError(unknown)
        if unknown:
            logger.warning("etiquetas sin nombre en el catálogo: %s", unknown)

        factor = AREA_UNITS[unit]
        areas: Dict[int, float] = {k: n * pa * factor for k, n in pixel_counts.items()}
        names = {k: known.get(k, str(k)) for k in pixel_counts}
        report = AreaReport(areas=areas, names=names, unit=unit, pixel_counts=pixel_counts)
        logger.info("área por clase (%s): %s", unit, report.to_named())
        return report
