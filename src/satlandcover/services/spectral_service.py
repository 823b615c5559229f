# src/satlandcover/services/spectral_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional

import numpy as np

from ..contracts.core import FLOAT_NODATA, BandName, BandScale, IndexDef, Stage
from ..contracts.errors import InvalidBandError
from ..contracts.geo import GeoRaster
from ..contracts.products import MaskedTile, clear_of_nodata, float_band

logger = logging.getLogger(__name__)


@dataclass
class SpectralService:
    """
    Escalado a reflectancia e índices normalizados (puro, sin I/O).
    - Toda salida es float32 con nodata=FLOAT_NODATA.
    - Píxeles inválidos de la máscara quedan en FLOAT_NODATA.
    - Nunca emite NaN/Inf: denominador cero -> FLOAT_NODATA.
    """
    quality_band: Optional[BandName] = None

    def _scale_one(self, r: GeoRaster, s: Optional[BandScale], valid: np.ndarray) -> GeoRaster:
        ok = valid & ~r.nodata_mask()
        out = np.full(r.shape, FLOAT_NODATA, dtype="float32")
        raw = r.data[ok].astype("float64", copy=False)
        if s is not None:
            raw = raw * s.scale + s.offset
        # un valor válido nunca puede coincidir con el centinela
        out[ok] = clear_of_nodata(raw.astype("float32"))
        return float_band(out, r.profile)

    def scale(
        self,
        masked: MaskedTile,
        scales: Mapping[BandName, BandScale],
        *,
        keep_quality: bool = False,
    ) -> MaskedTile:
        """
        reflectancia = raw * scale + offset para las bandas listadas en `scales`;
        el resto pasa a float32 sin cambiar valor. La banda QA se descarta salvo keep_quality.
        """
        missing = [b for b in scales if b not in masked.bands]
        if missing:
            raise InvalidBandError(missing, where="tile (escalado)", stage=Stage.SCALE)

        bands: Dict[BandName, GeoRaster] = {}
        for name, r in masked.bands.items():
            if name == self.quality_band and not keep_quality:
                continue
            bands[name] = self._scale_one(r, scales.get(name), masked.valid)
        if not bands:
            raise InvalidBandError(list(scales) or ["<espectral>"], where="tile (sin bandas tras escalar)", stage=Stage.SCALE)
        return masked.replace_bands(bands)

    def nd_index(self, a: np.ndarray, b: np.ndarray, valid: np.ndarray) -> np.ndarray:
        """(a - b) / (a + b); FLOAT_NODATA donde no hay dato o a + b == 0."""
        a64 = a.astype("float64", copy=False)
        b64 = b.astype("float64", copy=False)
        denom = a64 + b64
        ok = valid & (a != FLOAT_NODATA) & (b != FLOAT_NODATA) & np.isfinite(denom) & (denom != 0.0)
        out = np.full(a.shape, FLOAT_NODATA, dtype="float32")
        out[ok] = ((a64[ok] - b64[ok]) / denom[ok]).astype("float32")
        return out

    def add_indices(self, masked: MaskedTile, indices: Iterable[IndexDef]) -> MaskedTile:
        bands: Dict[BandName, GeoRaster] = dict(masked.bands)
        for idx in indices:
            if idx.name in bands:
                raise ValueError(f"El índice {idx.name} colisiona con una banda existente")
            missing = [n for n in (idx.a, idx.b) if n not in bands]
            if missing:
                raise InvalidBandError(missing, where=f"índice {idx.name}", stage=Stage.INDICES)
            ra, rb = bands[idx.a], bands[idx.b]
            a = np.where(ra.nodata_mask(), FLOAT_NODATA, ra.data).astype("float32", copy=False)
            b = np.where(rb.nodata_mask(), FLOAT_NODATA, rb.data).astype("float32", copy=False)
            bands[idx.name] = float_band(self.nd_index(a, b, masked.valid), ra.profile)
        return masked.replace_bands(bands)

    def prepare(
        self,
        masked: MaskedTile,
        scales: Mapping[BandName, BandScale],
        indices: Iterable[IndexDef] = (),
    ) -> MaskedTile:
        """Escala y agrega índices en una pasada."""
        return self.add_indices(self.scale(masked, scales), indices)
