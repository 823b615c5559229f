# src/satlandcover/composition/di.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import yaml

from ..adapters.csv_exporter import CSVExporter
from ..adapters.png_quicklook import PngQuicklookExporter
from ..adapters.rasterio_writer import RasterioRasterWriter
from ..config import Settings
from ..contracts.core import ClassLabel, RGB8
from ..services.classifier_service import ClassifierService
from ..services.composite_service import CompositeService
from ..services.landcover_service import CompositeSpec, LandcoverService, LandcoverSpec


def load_settings_from_yaml(path: Path, **overrides) -> Settings:
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    data.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**data)

def load_class_labels(path: Path) -> tuple[ClassLabel, ...]:
    """[{"id": 0, "name": "Waterbody", "color": "#1F78B4"}, ...]"""
    items = json.loads(Path(path).read_text(encoding="utf-8"))
    out: list[ClassLabel] = []
    for it in items:
        color = it.get("color", {})
        out.append(
            ClassLabel(
                id=int(it["id"]),
                name=str(it["name"]),
                color=RGB8.from_hex(color) if isinstance(color, str) else RGB8(**color),
            )
        )
    return tuple(out)

def build_settings(project_root: Path, config: Optional[Path] = None) -> Settings:
    cfg = Path(config) if config else (project_root / "config" / "settings.yaml")
    st = load_settings_from_yaml(cfg.resolve(), project_root=str(project_root))
    if not st.classes:
        labels_json = (st.project_root / "config" / "class_labels.json").resolve()
        if labels_json.exists():
            st = st.model_copy(update={"classes": load_class_labels(labels_json)})
    return st

def composite_spec(s: Settings) -> CompositeSpec:
    return CompositeSpec(
        quality_mask=s.quality_mask,
        band_scales=dict(s.band_scales),
        indices=tuple(s.indices),
        date_from=s.date_from,
        date_to=s.date_to,
        cloud_max=s.cloud_cover_max,
    )

def landcover_spec(s: Settings, run_id: str, *, region=None, with_outputs: bool = True) -> LandcoverSpec:
    return LandcoverSpec(
        run_id=run_id,
        composite=composite_spec(s),
        catalog=s.class_catalog(),
        training_bands=tuple(s.training_bands),
        n_trees=s.n_trees,
        seed=s.seed,
        min_samples_leaf=s.min_samples_leaf,
        train_ratio=s.train_ratio,
        region=region,
        area_unit=s.area_unit,
        out_composite=s.out_path("composite", run=run_id) if with_outputs else None,
        out_classmap=s.out_path("classmap", run=run_id) if with_outputs else None,
        out_report=s.out_path("area_report", run=run_id) if with_outputs else None,
        out_png=s.out_path("quicklook", run=run_id) if with_outputs else None,
    )

def build_landcover_service(s: Settings, *, workers: int = 1) -> LandcoverService:
    return LandcoverService(
        compositor=CompositeService(workers=workers),
        classifier=ClassifierService(n_jobs=s.n_jobs),
        writer=RasterioRasterWriter(),
        reporter=CSVExporter(),
        ql_exporter=PngQuicklookExporter(),
    )
