# src/satlandcover/contracts/core.py
from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, field_validator, model_validator

# -------------------------
# Bandas y centinelas
# -------------------------
# Nombres de banda libres (B04, SR_B5, QA_PIXEL, SCL, NDVI...), sin espacios
BandName = str
_BAND_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")

ClassId = NonNegativeInt

FLOAT_NODATA: float = -9999.0   # bandas escaladas / índices / composite
CLASS_NODATA: int = 255         # raster clasificado (uint8)


def check_band_name(v: str) -> str:
    v2 = str(v).strip()
    if not _BAND_RE.match(v2):
        raise ValueError(f"nombre de banda inválido: {v!r}")
    return v2

# -------------------------
# Colores tipados (paleta cosmética)
# -------------------------
class RGB8(BaseModel):
    model_config = ConfigDict(frozen=True)
    r: int = Field(200, ge=0, le=255)
    g: int = Field(200, ge=0, le=255)
    b: int = Field(200, ge=0, le=255)
    def as_tuple(self) -> tuple[int, int, int]: return (self.r, self.g, self.b)
    def to_hex(self) -> str: return f"#{self.r:02X}{self.g:02X}{self.b:02X}"

    @classmethod
    def from_hex(cls, s: str) -> "RGB8":
        h = s.strip().lstrip("#")
        if len(h) != 6:
            raise ValueError(f"color hex inválido: {s}")
        return cls(r=int(h[0:2], 16), g=int(h[2:4], 16), b=int(h[4:6], 16))

# -------------------------
# Etiquetas de clase
# -------------------------
class ClassLabel(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: ClassId
    name: str
    color: RGB8 = RGB8()

    @field_validator("name")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("name no puede ser vacío")
        return v2

    @field_validator("color", mode="before")
    @classmethod
    def _hex_color(cls, v):
        return RGB8.from_hex(v) if isinstance(v, str) else v


class ClassCatalog(BaseModel):
    """
    Mapeo externo id -> nombre (+ color).
    Invariante: ids contiguos desde 0 y nombres únicos.
    """
    model_config = ConfigDict(frozen=True)
    labels: Tuple[ClassLabel, ...]

    @model_validator(mode="after")
    def _contiguous(self) -> "ClassCatalog":
        ids = sorted(c.id for c in self.labels)
        if ids != list(range(len(ids))):
            raise ValueError(f"ids de clase deben ser contiguos desde 0; recibido {ids}")
        names = [c.name for c in self.labels]
        if len(set(names)) != len(names):
            raise ValueError("nombres de clase repetidos")
        if len(ids) > CLASS_NODATA:
            raise ValueError(f"máximo {CLASS_NODATA} clases (uint8 con nodata={CLASS_NODATA})")
        return self

    @classmethod
    def from_names(cls, names: Iterable[str]) -> "ClassCatalog":
        return cls(labels=tuple(ClassLabel(id=i, name=n) for i, n in enumerate(names)))

    @classmethod
    def from_mapping(cls, m: Mapping[int, str]) -> "ClassCatalog":
        return cls(labels=tuple(ClassLabel(id=int(k), name=v) for k, v in sorted(m.items())))

    def ids(self) -> Tuple[int, ...]:
        return tuple(sorted(c.id for c in self.labels))

    def names(self) -> dict[int, str]:
        return {c.id: c.name for c in self.labels}

    def palette(self) -> dict[int, tuple[int, int, int]]:
        return {c.id: c.color.as_tuple() for c in self.labels}

    def name_of(self, label: int) -> Optional[str]:
        return self.names().get(int(label))

    def __len__(self) -> int:
        return len(self.labels)

# -------------------------
# Parámetros espectrales
# -------------------------
class BandScale(BaseModel):
    """reflectancia = raw * scale + offset"""
    model_config = ConfigDict(frozen=True)
    scale: float = 1.0
    offset: float = 0.0


class IndexDef(BaseModel):
    """Índice de diferencia normalizada (a - b) / (a + b)."""
    model_config = ConfigDict(frozen=True)
    name: BandName
    a: BandName
    b: BandName

    @field_validator("name", "a", "b")
    @classmethod
    def _band(cls, v: str) -> str:
        return check_band_name(v)

    @model_validator(mode="after")
    def _distinct(self) -> "IndexDef":
        if self.a == self.b:
            raise ValueError(f"{self.name}: las bandas a y b deben ser distintas")
        return self


NDVI_S2 = IndexDef(name="NDVI", a="B8", b="B4")
NDWI_S2 = IndexDef(name="NDWI", a="B3", b="B8")


MaskEncoding = Literal["bitmask", "classes"]

class QualityMaskSpec(BaseModel):
    """
    Configuración de la máscara de nubes/sombras.
    - bitmask: inválido si (qa & bits) != 0
    - classes: inválido si el código de clase pertenece al conjunto excluido
    """
    model_config = ConfigDict(frozen=True)
    band: BandName = "QA_PIXEL"
    encoding: MaskEncoding = "bitmask"
    bits: Tuple[int, ...] = (1, 2, 3, 4)
    classes: Tuple[int, ...] = ()
    mask_nodata: bool = True

    @field_validator("bits")
    @classmethod
    def _bit_range(cls, v: Tuple[int, ...]) -> Tuple[int, ...]:
        for b in v:
            if not 0 <= int(b) < 32:
                raise ValueError(f"posición de bit fuera de rango [0, 32): {b}")
        return tuple(sorted(set(int(b) for b in v)))

    @model_validator(mode="after")
    def _non_empty(self) -> "QualityMaskSpec":
        if self.encoding == "bitmask" and not self.bits:
            raise ValueError("encoding=bitmask requiere al menos un bit")
        if self.encoding == "classes" and not self.classes:
            raise ValueError("encoding=classes requiere al menos un código de clase")
        return self

    def bitmask(self) -> int:
        m = 0
        for b in self.bits:
            m |= 1 << b
        return m


# Presets habituales
LANDSAT_C2_QA = QualityMaskSpec(band="QA_PIXEL", encoding="bitmask", bits=(1, 2, 3, 4))
SENTINEL2_SCL = QualityMaskSpec(band="SCL", encoding="classes", classes=(3, 8, 9, 10))
SENTINEL2_QA60 = QualityMaskSpec(band="QA60", encoding="bitmask", bits=(10, 11))

# -------------------------
# Ejecuciones / auditoría
# -------------------------
class Stage(str, Enum):
    SELECT = "select"
    MASK = "mask"
    SCALE = "scale"
    INDICES = "indices"
    COMPOSITE = "composite"
    SAMPLE = "sample"
    TRAIN = "train"
    PREDICT = "predict"
    AREA = "area"
    EXPORT = "export"

class RunMeta(BaseModel):
    model_config = ConfigDict(frozen=True)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    run_id: str
    n_tiles: int = 0
    notes: str | None = None
    ended_at: datetime | None = None

    def end_now(self, **update) -> "RunMeta":
        return self.model_copy(update={"ended_at": datetime.now(timezone.utc), **update})

    @property
    def duration_s(self) -> float | None:
        if self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds()

class RunError(BaseModel):
    model_config = ConfigDict(frozen=True)
    stage: Stage
    message: str
    detail: str | None = None
