# src/satlandcover/config.py
from __future__ import annotations

from datetime import date
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Literal, Mapping, Optional, Tuple

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .contracts.core import (
    BandScale,
    ClassCatalog,
    ClassLabel,
    IndexDef,
    LANDSAT_C2_QA,
    QualityMaskSpec,
    check_band_name,
)

AreaUnit = Literal["m2", "ha", "km2"]

# Placeholders permitidos por clave de salida
OUTPUT_PLACEHOLDERS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "composite": ("run",),
    "classmap": ("run",),
    "area_report": ("run",),
    "quicklook": ("run",),
})


def _landsat_scales() -> Dict[str, BandScale]:
    # Landsat 8/9 Collection 2 Level-2 surface reflectance
    return {b: BandScale(scale=0.0000275, offset=-0.2) for b in ("SR_B2", "SR_B3", "SR_B4", "SR_B5", "SR_B6", "SR_B7")}


def _landsat_indices() -> Tuple[IndexDef, ...]:
    return (
        IndexDef(name="NDVI", a="SR_B5", b="SR_B4"),
        IndexDef(name="NDWI", a="SR_B3", b="SR_B5"),
    )


class Settings(BaseSettings):
    """
    Config unificada del pipeline. No toca disco.
    Se construye en composition/di.py (YAML) o desde variables SAT_*.
    Los services reciben parámetros explícitos, nunca Settings.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SAT_",
        env_nested_delimiter="__",
        extra="forbid",
        frozen=True,
    )

    # --- básicos ---
    project_root: Path = Path(".")

    # --- selección de escenas ---
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    cloud_cover_max: float = Field(60.0, ge=0.0, le=100.0)

    # --- máscara / escalado / índices ---
    quality_mask: QualityMaskSpec = LANDSAT_C2_QA
    band_scales: Dict[str, BandScale] = Field(default_factory=_landsat_scales)
    indices: Tuple[IndexDef, ...] = Field(default_factory=_landsat_indices)

    # --- clasificación ---
    training_bands: Tuple[str, ...] = ("SR_B2", "SR_B3", "SR_B4", "SR_B5", "SR_B6", "SR_B7", "NDVI", "NDWI")
    n_trees: int = Field(100, ge=1)
    seed: Optional[int] = None
    min_samples_leaf: int = Field(1, ge=1)
    train_ratio: float = Field(1.0, gt=0.0, le=1.0)
    n_jobs: Optional[int] = None
    label_property: str = "landcover"
    classes: Tuple[ClassLabel, ...] = ()

    # --- área ---
    area_unit: AreaUnit = "m2"

    # --- salidas (relativas a project_root) ---
    output_patterns: Dict[str, str] = Field(default_factory=lambda: {
        "composite": "work/{run}/composite.tif",
        "classmap": "products/{run}/classmap.tif",
        "area_report": "products/{run}/area.csv",
        "quicklook": "products/{run}/classmap.png",
    })

    # ----------------------------
    # Normalizadores / validadores
    # ----------------------------
    @field_validator("project_root", mode="before")
    @classmethod
    def _abs_root(cls, v: Path | str) -> Path:
        return Path(v).expanduser().resolve()

    @field_validator("training_bands")
    @classmethod
    def _bands(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        out = tuple(check_band_name(b) for b in v)
        if not out:
            raise ValueError("training_bands no puede ser vacío")
        if len(set(out)) != len(out):
            raise ValueError(f"training_bands repetidas: {out}")
        return out

    @field_validator("output_patterns")
    @classmethod
    def _check_out(cls, d: Dict[str, str]) -> Dict[str, str]:
        for k, pat in d.items():
            if k not in OUTPUT_PLACEHOLDERS:
                raise ValueError(f"output_patterns: clave desconocida {k!r}")
            allowed = set(OUTPUT_PLACEHOLDERS[k])
            used = {name for _, name in _iter_placeholders(pat)}
            unknown = used - allowed
            if unknown:
                raise ValueError(f"output_patterns[{k}] usa placeholders no permitidos: {sorted(unknown)}")
        return d

    @model_validator(mode="after")
    def _dates_and_classes(self) -> "Settings":
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError(f"date_from {self.date_from} posterior a date_to {self.date_to}")
        if self.classes:
            # valida contigüidad de ids
            ClassCatalog(labels=self.classes)
        return self

    # ----------------------------
    # Helpers puros (sin side-effects)
    # ----------------------------
    def class_catalog(self) -> ClassCatalog:
        if not self.classes:
            raise ValueError("Settings.classes vacío: define el catálogo de clases")
        return ClassCatalog(labels=self.classes)

    def out_path(self, key: str, **fmt) -> Path:
        """Resuelve patrón de salida (no crea carpetas)."""
        pat = self.output_patterns[key]
        return (self.project_root / pat.format(**fmt)).resolve()


# Utilidad interna: detectar {placeholders}
def _iter_placeholders(fmt: str):
    start = 0
    while True:
        i = fmt.find("{", start)
        if i == -1:
            break
        j = fmt.find("}", i + 1)
        if j == -1:
            break
        name = fmt[i + 1 : j].strip()
        if name:
            yield (i, name)
        start = j + 1


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Instancia cacheada. Úsala SOLO desde composition/di.py o CLI.
    Para tests, limpiar con get_settings.cache_clear().
    """
    return Settings()
