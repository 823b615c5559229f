# src/satlandcover/services/sampling_service.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from rasterio.features import geometry_mask
from shapely.geometry import mapping, shape
from shapely.geometry.base import BaseGeometry

from ..contracts.core import CLASS_NODATA, BandName, Stage
from ..contracts.errors import EmptyTrainingSetError, InvalidBandError
from ..contracts.geo import GeoProfile, to_affine, world_to_pixel
from ..contracts.products import CompositeRaster, TrainingSet

logger = logging.getLogger(__name__)

GeoJSON = Mapping[str, Any]


@dataclass(frozen=True)
class LabeledGeometry:
    """Geometría (GeoJSON-like o shapely, en el CRS del composite) + etiqueta de clase."""
    geometry: Any
    label: int

    def as_shape(self) -> BaseGeometry:
        g = self.geometry
        return g if isinstance(g, BaseGeometry) else shape(g)


def pixels_in_geometry(geom: BaseGeometry, profile: GeoProfile) -> np.ndarray:
    """
    Máscara booleana (H, W) de los píxeles que muestrea `geom`:
    - punto: el píxel que lo contiene (si cae dentro de la grilla)
    - polígono: píxeles cuyo centro cae dentro
    """
    h, w = profile.shape
    out = np.zeros((h, w), dtype=bool)
    if geom.is_empty:
        return out
    gtype = geom.geom_type
    if gtype in ("Point", "MultiPoint"):
        pts = [geom] if gtype == "Point" else list(geom.geoms)
        for p in pts:
            col, row = world_to_pixel(p.x, p.y, profile.transform)
            c, r = int(math.floor(col)), int(math.floor(row))
            if 0 <= r < h and 0 <= c < w:
                out[r, c] = True
        return out
    if gtype in ("Polygon", "MultiPolygon"):
        return geometry_mask(
            [mapping(geom)],
            out_shape=(h, w),
            transform=to_affine(profile.transform),
            all_touched=False,
            invert=True,
        )
    raise ValueError(f"Tipo de geometría no soportado para muestreo: {gtype}")


@dataclass
class SamplingService:
    """
    Extrae vectores de features etiquetados desde un composite.
    Píxeles con nodata en cualquiera de las bandas pedidas se omiten.
    """

    def extract(
        self,
        composite: CompositeRaster,
        geometries: Sequence[LabeledGeometry],
        bands: Sequence[BandName],
    ) -> TrainingSet:
        bands = tuple(bands)
        if not bands:
            raise ValueError("bands vacío")
        missing = [b for b in bands if b not in composite.bands]
        if missing:
            raise InvalidBandError(missing, where="composite (muestreo)", stage=Stage.SAMPLE)

        stack = composite.stack(bands)            # (F, H, W)
        valid = composite.valid_mask(bands)       # (H, W)

        xs: List[np.ndarray] = []
        ys: List[np.ndarray] = []
        supplied = set()
        for lg in geometries:
            label = int(lg.label)
            if not 0 <= label < CLASS_NODATA:
                raise ValueError(f"etiqueta de clase fuera de [0, {CLASS_NODATA}): {label}")
            supplied.add(label)
            sel = pixels_in_geometry(lg.as_shape(), composite.profile) & valid
            n = int(sel.sum())
            if n == 0:
                continue
            xs.append(stack[:, sel].T)
            ys.append(np.full(n, label, dtype="int32"))

        if xs:
            X = np.concatenate(xs, axis=0).astype("float32", copy=False)
            y = np.concatenate(ys, axis=0)
        else:
            X = np.empty((0, len(bands)), dtype="float32")
            y = np.empty((0,), dtype="int32")

        present = set(np.unique(y).tolist())
        empty = sorted(supplied - present)
        if empty or not supplied:
            raise EmptyTrainingSetError(empty)

        ts = TrainingSet(X=X, y=y, feature_names=bands)
        logger.info("muestras: %d en %d clases %s", len(ts), len(present), ts.class_counts())
        return ts

    def split(
        self, ts: TrainingSet, train_ratio: float = 0.8, seed: Optional[int] = 42
    ) -> Tuple[TrainingSet, TrainingSet]:
        """Split reproducible por permutación; train_ratio=1.0 deja test vacío."""
        if not 0.0 < train_ratio <= 1.0:
            raise ValueError(f"train_ratio fuera de (0, 1]: {train_ratio}")
        n = len(ts)
        rng = np.random.default_rng(seed)
        idx = rng.permutation(n)
        ntr = int(round(train_ratio * n))
        id_tr, id_te = idx[:ntr], idx[ntr:]
        tr = TrainingSet(X=ts.X[id_tr], y=ts.y[id_tr], feature_names=ts.feature_names)
        te = TrainingSet(X=ts.X[id_te], y=ts.y[id_te], feature_names=ts.feature_names)
        return tr, te


__all__ = ["LabeledGeometry", "SamplingService", "pixels_in_geometry"]
