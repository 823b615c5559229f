# src/satlandcover/services/mask_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from ..contracts.core import QualityMaskSpec, Stage
from ..contracts.errors import InvalidBandError
from ..contracts.products import MaskedTile, RasterTile

logger = logging.getLogger(__name__)


@dataclass
class CloudMaskService:
    """
    Máscara de nubes/sombras/cirros (puro, sin I/O).
    - bitmask: válido sii (qa & bits_malos) == 0
    - classes: válido sii el código de escena no está en el conjunto excluido
    - mask_nodata: además invalida píxeles con nodata en cualquier banda espectral
    """

    def quality_valid(self, qa: np.ndarray, spec: QualityMaskSpec) -> np.ndarray:
        if spec.encoding == "bitmask":
            qa = qa.astype(np.int64, copy=False)
            return (qa & spec.bitmask()) == 0
        return ~np.isin(qa, np.asarray(spec.classes))

    def build(self, tile: RasterTile, spec: QualityMaskSpec) -> MaskedTile:
        if not tile.has(spec.band):
            raise InvalidBandError([spec.band], where=f"tile {tile.tile_id or tile.date}", stage=Stage.MASK)

        qa_r = tile.bands[spec.band]
        valid = self.quality_valid(qa_r.data, spec)
        # nodata de la propia banda QA (bordes de escena)
        valid &= ~qa_r.nodata_mask()

        if spec.mask_nodata:
            for name, r in tile.bands.items():
                if name == spec.band:
                    continue
                valid &= ~r.nodata_mask()

        out = MaskedTile(tile=tile, valid=valid)
        logger.debug("mask %s: %.1f%% válido", tile.tile_id or tile.date, 100.0 * out.valid_fraction())
        return out
