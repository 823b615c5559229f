# src/satlandcover/services/composite_service.py
from __future__ import annotations

"""
Composite temporal por mediana, por píxel y por banda.

Para cada banda se apilan los valores de los tiles donde el píxel es válido
(máscara del tile y banda distinta de nodata) y se toma la mediana; con
cantidad par, el promedio de los dos valores centrales. Sin observaciones
válidas -> FLOAT_NODATA. La mediana no depende del orden de los tiles.

El trabajo se puede repartir en bloques de filas disjuntos (ThreadPoolExecutor);
cada bloque escribe solo su porción de la salida.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..contracts.core import FLOAT_NODATA, BandName, Stage
from ..contracts.errors import InvalidBandError
from ..contracts.geo import validate_profile_compat
from ..contracts.products import CompositeRaster, MaskedTile, RasterTile, clear_of_nodata, float_band

logger = logging.getLogger(__name__)


def select_tiles(
    tiles: Iterable[RasterTile],
    *,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    cloud_max: Optional[float] = None,
) -> List[RasterTile]:
    """Filtra por fecha de adquisición (inclusive) y % de nubes de escena."""
    out: List[RasterTile] = []
    for t in tiles:
        d = t.date
        if date_from and d < date_from:
            continue
        if date_to and d > date_to:
            continue
        if cloud_max is not None and t.cloud_pct is not None and t.cloud_pct > cloud_max:
            continue
        out.append(t)
    return out


@dataclass
class CompositeService:
    workers: int = 1
    block_rows: int = 512

    def _check_inputs(self, tiles: Sequence[MaskedTile]) -> Tuple[BandName, ...]:
        if not tiles:
            raise ValueError("composite requiere al menos un tile")
        ref = tiles[0]
        names = ref.band_names
        for t in tiles[1:]:
            validate_profile_compat(ref.profile, t.profile)
            if set(t.band_names) != set(names):
                missing = sorted(set(names) ^ set(t.band_names))
                raise InvalidBandError(missing, where=f"tile {t.tile.tile_id or t.tile.date}", stage=Stage.COMPOSITE)
        return names

    @staticmethod
    def _median_block(stack: np.ndarray, ok: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """stack/ok: (T, h, W). Devuelve (mediana float32 con FLOAT_NODATA, conteo)."""
        count = ok.sum(axis=0)
        vals = np.where(ok, stack, np.nan)
        # ordena con NaN al final; la mediana se toma de los primeros `count` valores
        vals.sort(axis=0)
        has = count > 0
        lo_i = np.where(has, (count - 1) // 2, 0)
        hi_i = np.where(has, count // 2, 0)
        lo = np.take_along_axis(vals, lo_i[None], axis=0)[0]
        hi = np.take_along_axis(vals, hi_i[None], axis=0)[0]
        med = ((lo + hi) / 2.0).astype("float32")
        clear_of_nodata(med)
        med[~has] = FLOAT_NODATA
        return med, count

    def _band_block(self, tiles: Sequence[MaskedTile], name: BandName, r0: int, r1: int):
        stack = np.stack([t.bands[name].data[r0:r1] for t in tiles], axis=0).astype("float64")
        ok = np.stack([t.valid[r0:r1] & ~t.bands[name].nodata_mask()[r0:r1] for t in tiles], axis=0)
        return self._median_block(stack, ok)

    def median(self, tiles: Sequence[MaskedTile]) -> CompositeRaster:
        tiles = list(tiles)
        names = self._check_inputs(tiles)
        prof = tiles[0].profile
        h, w = prof.shape

        out: Dict[BandName, np.ndarray] = {n: np.empty((h, w), dtype="float32") for n in names}
        count = np.zeros((h, w), dtype="int32")
        step = max(1, int(self.block_rows))
        blocks = [(r0, min(h, r0 + step)) for r0 in range(0, h, step)]

        def _run(block: Tuple[int, int]) -> None:
            r0, r1 = block
            for n in names:
                med, cnt = self._band_block(tiles, n, r0, r1)
                out[n][r0:r1] = med
                # cada bloque es dueño de sus filas
                np.maximum(count[r0:r1], cnt, out=count[r0:r1])

        if self.workers > 1 and len(blocks) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as ex:
                list(ex.map(_run, blocks))
        else:
            for b in blocks:
                _run(b)

        dates = sorted(t.tile.date for t in tiles)
        comp = CompositeRaster(
            bands={n: float_band(out[n], tiles[0].bands[n].profile) for n in names},
            count=count,
            date_from=dates[0],
            date_to=dates[-1],
        )
        logger.info(
            "composite: %d tiles, %d bandas, %.1f%% píxeles con dato",
            len(tiles), len(names), 100.0 * float((count > 0).mean()),
        )
        return comp
