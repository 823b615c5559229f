# src/satlandcover/adapters/csv_tile_catalog.py
from __future__ import annotations

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from ..ports.catalog import TileCatalogPort, TileItem

logger = logging.getLogger(__name__)

# Column map tolerante a distintas nomenclaturas
TILE_COLMAP: Dict[str, Tuple[str, ...]] = {
    "tile_id": ("tile_id", "TILE_ID", "scene_id", "SCENE_ID", "id", "system:index"),
    "acq_date": ("acq_date", "date", "DATE", "acquisition_date", "sensing_date", "datetime"),
    "path": ("path", "PATH", "filepath", "file", "asset_path"),
    "band_names": ("band_names", "bands", "BANDS"),
    "cloud_pct": ("cloud_pct", "CLOUD_COVER", "cloud_cover", "CLOUDY_PIXEL_PERCENTAGE", "clouds"),
    "sensor": ("sensor", "SENSOR", "platform", "SPACECRAFT_ID"),
}


def _first_present(df: pd.DataFrame, candidates: Tuple[str, ...]) -> Optional[str]:
    for c in candidates:
        if c in df.columns:
            return c
    return None


def _standardize(df: pd.DataFrame) -> pd.DataFrame:
    out = pd.DataFrame(index=df.index)
    for std, cands in TILE_COLMAP.items():
        col = _first_present(df, cands)
        out[std] = df[col] if col is not None else None
    return out


def _parse_date(val: Any) -> Optional[date]:
    if val is None or (isinstance(val, float) and pd.isna(val)):
        return None
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    s = str(val).strip()
    if not s:
        return None
    for fmt in ("%Y-%m-%d", "%Y/%m/%d", "%Y%m%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"):
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return pd.to_datetime(s).date()


def _opt(val: Any) -> Any:
    return None if val is None or (isinstance(val, float) and pd.isna(val)) else val


class CsvTileCatalog(TileCatalogPort):
    """Almacén de tiles local: un manifiesto CSV que apunta a GeoTIFFs multibanda.

    Columnas mínimas: `tile_id`, `acq_date`, `path`. Opcionales: `band_names`
    ("B2;B3;B4;QA_PIXEL"), `cloud_pct`, `sensor`. Rutas relativas al CSV.
    """

    def __init__(self, manifest: Path, encoding: str = "utf-8") -> None:
        self.manifest = Path(manifest).resolve()
        if not self.manifest.exists():
            raise FileNotFoundError(f"No se encontró el manifiesto de tiles: {self.manifest}")
        self.encoding = encoding
        self._items: List[TileItem] = self._load()

    def _abspath(self, p: Any) -> Path:
        path = Path(str(p))
        return path if path.is_absolute() else (self.manifest.parent / path).resolve()

    def _load(self) -> List[TileItem]:
        df = _standardize(pd.read_csv(self.manifest, encoding=self.encoding))
        items: List[TileItem] = []
        for i, r in df.iterrows():
            path = _opt(r["path"])
            acq = _parse_date(_opt(r["acq_date"]))
            if path is None or acq is None:
                raise ValueError(f"{self.manifest.name} fila {i}: faltan path/acq_date")
            tile_id = _opt(r["tile_id"])
            cloud = _opt(r["cloud_pct"])
            items.append(TileItem(
                tile_id=str(tile_id) if tile_id is not None else Path(str(path)).stem,
                acq_date=acq,
                path=self._abspath(path),
                band_names=_opt(r["band_names"]),
                cloud_pct=float(cloud) if cloud is not None else None,
                sensor=_opt(r["sensor"]),
            ))
        logger.info("catálogo %s: %d tiles", self.manifest.name, len(items))
        return items

    def __len__(self) -> int:
        return len(self._items)

    def iter_tiles(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        cloud_max: Optional[float] = None,
    ) -> Iterable[TileItem]:
        for it in sorted(self._items, key=lambda t: (t.acq_date, t.tile_id)):
            if date_from and it.acq_date < date_from:
                continue
            if date_to and it.acq_date > date_to:
                continue
            if cloud_max is not None and it.cloud_pct is not None and it.cloud_pct > cloud_max:
                continue
            yield it
