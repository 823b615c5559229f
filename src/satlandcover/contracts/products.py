# src/satlandcover/contracts/products.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

import numpy as np

from .core import CLASS_NODATA, FLOAT_NODATA, BandName
from .errors import InvalidBandError
from .geo import GeoProfile, GeoRaster, validate_profile_compat


def _utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _freeze_bands(bands: Mapping[BandName, GeoRaster]) -> Mapping[BandName, GeoRaster]:
    d = dict(bands)
    if not d:
        raise ValueError("un tile requiere al menos una banda")
    it = iter(d.values())
    first = next(it)
    for r in it:
        validate_profile_compat(first.profile, r.profile)
    return MappingProxyType(d)


@dataclass(frozen=True)
class RasterTile:
    """
    Escena multiespectral: bandas nombradas sobre una misma grilla.
    El orden del mapping es el orden de las bandas.
    """
    bands: Mapping[BandName, GeoRaster]
    acquired: datetime
    tile_id: str = ""
    cloud_pct: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, "bands", _freeze_bands(self.bands))
        object.__setattr__(self, "acquired", _utc(self.acquired))

    @property
    def profile(self) -> GeoProfile:
        return next(iter(self.bands.values())).profile

    @property
    def shape(self) -> Tuple[int, int]:
        return self.profile.shape

    @property
    def band_names(self) -> Tuple[BandName, ...]:
        return tuple(self.bands.keys())

    @property
    def date(self) -> date:
        return self.acquired.date()

    def has(self, band: BandName) -> bool:
        return band in self.bands

    def require(self, required: Iterable[BandName]) -> None:
        missing = [b for b in required if b not in self.bands]
        if missing:
            raise InvalidBandError(missing, where=f"tile {self.tile_id or self.acquired.isoformat()}")

    def with_bands(self, bands: Mapping[BandName, GeoRaster]) -> "RasterTile":
        return RasterTile(bands=bands, acquired=self.acquired, tile_id=self.tile_id, cloud_pct=self.cloud_pct)


@dataclass(frozen=True)
class MaskedTile:
    """RasterTile + máscara booleana de validez (True = píxel válido)."""
    tile: RasterTile
    valid: np.ndarray

    def __post_init__(self):
        v = np.asarray(self.valid, dtype=bool)
        if v.shape != self.tile.shape:
            raise ValueError(f"máscara {v.shape} no coincide con el tile {self.tile.shape}")
        v.setflags(write=False)
        object.__setattr__(self, "valid", v)

    @property
    def bands(self) -> Mapping[BandName, GeoRaster]:
        return self.tile.bands

    @property
    def band_names(self) -> Tuple[BandName, ...]:
        return self.tile.band_names

    @property
    def profile(self) -> GeoProfile:
        return self.tile.profile

    def valid_fraction(self) -> float:
        return float(self.valid.mean()) if self.valid.size else 0.0

    def replace_bands(self, bands: Mapping[BandName, GeoRaster]) -> "MaskedTile":
        return MaskedTile(tile=self.tile.with_bands(bands), valid=self.valid)


@dataclass(frozen=True)
class CompositeRaster:
    """
    Composite por mediana: bandas float32 con nodata=FLOAT_NODATA.
    `count` = nº de observaciones válidas por píxel (máximo entre bandas).
    """
    bands: Mapping[BandName, GeoRaster]
    count: np.ndarray
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    def __post_init__(self):
        object.__setattr__(self, "bands", _freeze_bands(self.bands))
        c = np.asarray(self.count)
        if c.shape != self.profile.shape:
            raise ValueError("count no coincide con la grilla del composite")
        c.setflags(write=False)
        object.__setattr__(self, "count", c)

    @property
    def profile(self) -> GeoProfile:
        return next(iter(self.bands.values())).profile

    @property
    def shape(self) -> Tuple[int, int]:
        return self.profile.shape

    @property
    def band_names(self) -> Tuple[BandName, ...]:
        return tuple(self.bands.keys())

    def require(self, required: Iterable[BandName]) -> None:
        missing = [b for b in required if b not in self.bands]
        if missing:
            raise InvalidBandError(missing, where="composite")

    def stack(self, order: Sequence[BandName]) -> np.ndarray:
        """(F, H, W) float32 en el orden pedido."""
        self.require(order)
        return np.stack([self.bands[n].data for n in order], axis=0).astype("float32", copy=False)

    def valid_mask(self, order: Optional[Sequence[BandName]] = None) -> np.ndarray:
        """True donde TODAS las bandas pedidas tienen dato."""
        names = tuple(order) if order is not None else self.band_names
        self.require(names)
        out = np.ones(self.shape, dtype=bool)
        for n in names:
            out &= ~self.bands[n].nodata_mask()
        return out


@dataclass(frozen=True)
class TrainingSample:
    features: Tuple[float, ...]
    label: int


@dataclass(frozen=True)
class TrainingSet:
    X: np.ndarray  # (N, F) float32
    y: np.ndarray  # (N,) int32
    feature_names: Tuple[BandName, ...]

    def __post_init__(self):
        if self.X.ndim != 2 or self.y.ndim != 1 or self.X.shape[0] != self.y.shape[0]:
            raise ValueError(f"X {self.X.shape} / y {self.y.shape} inconsistentes")
        if self.X.shape[1] != len(self.feature_names):
            raise ValueError("nº de columnas de X distinto de feature_names")

    def __len__(self) -> int:
        return int(self.y.shape[0])

    def samples(self) -> Tuple[TrainingSample, ...]:
        return tuple(
            TrainingSample(features=tuple(float(v) for v in row), label=int(lab))
            for row, lab in zip(self.X, self.y)
        )

    def class_counts(self) -> Dict[int, int]:
        unique, counts = np.unique(self.y, return_counts=True)
        return {int(k): int(v) for k, v in zip(unique, counts)}

    @classmethod
    def from_samples(cls, samples: Sequence[TrainingSample], feature_names: Sequence[BandName]) -> "TrainingSet":
        nf = len(feature_names)
        X = np.array([s.features for s in samples], dtype="float32").reshape(len(samples), nf)
        y = np.array([s.label for s in samples], dtype="int32")
        return cls(X=X, y=y, feature_names=tuple(feature_names))


@dataclass(frozen=True)
class ClassifiedRaster:
    labels: GeoRaster  # uint8, nodata=CLASS_NODATA

    def __post_init__(self):
        if self.labels.data.dtype != np.uint8:
            raise ValueError(f"ClassifiedRaster espera uint8; recibido {self.labels.data.dtype}")

    @property
    def profile(self) -> GeoProfile:
        return self.labels.profile

    @property
    def data(self) -> np.ndarray:
        return self.labels.data

    def valid_mask(self) -> np.ndarray:
        """Excluye CLASS_NODATA y, si el perfil declara otro, también el nodata del archivo."""
        out = self.labels.data != CLASS_NODATA
        nd = self.labels.profile.nodata
        if nd is not None and nd != CLASS_NODATA:
            out &= self.labels.data != nd
        return out

    def counts(self) -> Dict[int, int]:
        vals = self.labels.data[self.valid_mask()]
        unique, counts = np.unique(vals, return_counts=True)
        return {int(k): int(v) for k, v in zip(unique, counts)}


@dataclass(frozen=True)
class AreaReport:
    areas: Mapping[int, float]
    names: Mapping[int, str]
    unit: str = "m2"
    pixel_counts: Mapping[int, int] = field(default_factory=dict)

    @property
    def total(self) -> float:
        return float(sum(self.areas.values()))

    def __getitem__(self, label: int) -> float:
        return self.areas[label]

    def name_of(self, label: int) -> str:
        return self.names.get(label, str(label))

    def to_named(self) -> Dict[str, float]:
        return {self.name_of(k): float(v) for k, v in sorted(self.areas.items())}

    def percentages(self) -> Dict[int, float]:
        tot = self.total
        if tot <= 0:
            return {int(k): 0.0 for k in self.areas}
        return {int(k): (v / tot) * 100.0 for k, v in self.areas.items()}

    def rows(self) -> list[dict]:
        perc = self.percentages()
        return [
            {
                "class_id": int(k),
                "class_name": self.name_of(k),
                "pixels": int(self.pixel_counts.get(k, 0)),
                "area": float(v),
                "unit": self.unit,
                "percent": round(perc[k], 4),
            }
            for k, v in sorted(self.areas.items())
        ]


def clear_of_nodata(values: np.ndarray) -> np.ndarray:
    """Corre al siguiente float32 los valores válidos que caen justo en FLOAT_NODATA (in-place)."""
    values[values == FLOAT_NODATA] = np.nextafter(np.float32(FLOAT_NODATA), np.float32(0))
    return values


def float_band(data: np.ndarray, profile: GeoProfile) -> GeoRaster:
    """Empaqueta un array float32 con el centinela FLOAT_NODATA."""
    return GeoRaster(
        data=np.asarray(data, dtype="float32"),
        profile=profile.with_dtype("float32", FLOAT_NODATA),
    )


__all__ = [
    "RasterTile",
    "MaskedTile",
    "CompositeRaster",
    "TrainingSample",
    "TrainingSet",
    "ClassifiedRaster",
    "AreaReport",
    "float_band",
    "clear_of_nodata",
]
