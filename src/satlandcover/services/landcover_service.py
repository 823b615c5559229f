# src/satlandcover/services/landcover_service.py
from __future__ import annotations

"""
Orquestador del pipeline de cobertura de suelo.
  SELECT → MASK → SCALE/INDICES → COMPOSITE → SAMPLE → (SPLIT/ASSESS)
  → TRAIN → PREDICT → AREA → (EXPORT opcional)

No usa Settings ni calcula rutas: todo entra por LandcoverSpec y los ports.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from ..contracts.core import BandName, BandScale, ClassCatalog, IndexDef, QualityMaskSpec, RunMeta, Stage
from ..contracts.errors import UnknownClassLabelError
from ..contracts.products import AreaReport, ClassifiedRaster, CompositeRaster, MaskedTile, RasterTile
from ..ports.exporters import QuicklookExporterPort, ReportExporterPort
from .area_service import AreaService
from .classifier_service import AccuracyReport, ClassifierService, TrainedForest
from .composite_service import CompositeService, select_tiles
from .mask_service import CloudMaskService
from .sampling_service import LabeledGeometry, SamplingService
from .spectral_service import SpectralService

logger = logging.getLogger(__name__)

# ----------------------
# Especificaciones / DTOs
# ----------------------

@dataclass(frozen=True)
class CompositeSpec:
    quality_mask: QualityMaskSpec
    band_scales: Mapping[BandName, BandScale] = field(default_factory=dict)
    indices: Tuple[IndexDef, ...] = ()
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    cloud_max: Optional[float] = None


@dataclass(frozen=True)
class LandcoverSpec:
    run_id: str
    composite: CompositeSpec
    catalog: ClassCatalog
    training_bands: Tuple[BandName, ...]
    n_trees: int = 100
    seed: Optional[int] = None
    min_samples_leaf: int = 1
    train_ratio: float = 1.0          # < 1.0 reserva muestras para validación
    region: Optional[Any] = None      # GeoJSON-like; None = raster completo
    pixel_area: Optional[float] = None
    area_unit: str = "m2"
    strict_labels: bool = True
    out_composite: Optional[Path] = None
    out_classmap: Optional[Path] = None
    out_report: Optional[Path] = None
    out_png: Optional[Path] = None


@dataclass(frozen=True)
class LandcoverResult:
    composite: CompositeRaster
    model: TrainedForest
    classified: ClassifiedRaster
    area: AreaReport
    accuracy: Optional[AccuracyReport]
    meta: RunMeta
    outputs: Mapping[str, Path]

# ----------------------
# Servicio
# ----------------------

@dataclass
class LandcoverService:
    masker: CloudMaskService = field(default_factory=CloudMaskService)
    compositor: CompositeService = field(default_factory=CompositeService)
    sampler: SamplingService = field(default_factory=SamplingService)
    classifier: ClassifierService = field(default_factory=ClassifierService)
    area: AreaService = field(default_factory=AreaService)
    writer: Optional[Any] = None
    reporter: Optional[ReportExporterPort] = None
    ql_exporter: Optional[QuicklookExporterPort] = None

    # --------- Composite (reutilizable por el CLI) ---------
    def prepare_tile(self, tile: RasterTile, spec: CompositeSpec) -> MaskedTile:
        masked = self.masker.build(tile, spec.quality_mask)
        spectral = SpectralService(quality_band=spec.quality_mask.band)
        return spectral.prepare(masked, spec.band_scales, spec.indices)

    def build_composite(self, tiles: Sequence[RasterTile], spec: CompositeSpec) -> CompositeRaster:
        selected = select_tiles(tiles, date_from=spec.date_from, date_to=spec.date_to, cloud_max=spec.cloud_max)
        logger.info("selección: %d de %d tiles", len(selected), len(tiles))
        if not selected:
            raise ValueError("Ningún tile cumple el rango de fechas / umbral de nubes")
        prepared = []
        for t in selected:
            m = self.prepare_tile(t, spec)
            logger.info("tile %s (%s): %.1f%% válido", t.tile_id, t.date, 100.0 * m.valid_fraction())
            prepared.append(m)
        return self.compositor.median(prepared)

    # --------- API principal ---------
    def run(
        self,
        tiles: Sequence[RasterTile],
        geometries: Sequence[LabeledGeometry],
        spec: LandcoverSpec,
    ) -> LandcoverResult:
        meta = RunMeta(run_id=spec.run_id)

        composite = self.build_composite(tiles, spec.composite)

        ts = self.sampler.extract(composite, geometries, spec.training_bands)
        unknown = sorted(set(ts.class_counts()) - set(spec.catalog.ids()))
        if unknown:
            raise UnknownClassLabelError(unknown, stage=Stage.SAMPLE)
        accuracy: Optional[AccuracyReport] = None
        train_ts, test_ts = ts, None
        if spec.train_ratio < 1.0:
            train_ts, test_ts = self.sampler.split(ts, spec.train_ratio, seed=spec.seed)
        model = self.classifier.train(
            train_ts, spec.n_trees, seed=spec.seed, min_samples_leaf=spec.min_samples_leaf
        )
        if test_ts is not None and len(test_ts):
            accuracy = self.classifier.assess(model, test_ts)

        classified = self.classifier.predict(model, composite)
        area = self.area.aggregate(
            classified,
            spec.catalog,
            region=spec.region,
            pixel_area=spec.pixel_area,
            unit=spec.area_unit,
            strict=spec.strict_labels,
        )

        outputs = self._export(composite, classified, area, spec)
        meta = meta.end_now(n_tiles=len(tiles))
        logger.info("run %s terminado en %.2fs", spec.run_id, meta.duration_s or 0.0)
        return LandcoverResult(
            composite=composite,
            model=model,
            classified=classified,
            area=area,
            accuracy=accuracy,
            meta=meta,
            outputs=outputs,
        )

    # --------- Export (opcional y sin rutas implícitas) ---------
    def _export(
        self,
        composite: CompositeRaster,
        classified: ClassifiedRaster,
        area: AreaReport,
        spec: LandcoverSpec,
    ) -> Dict[str, Path]:
        out: Dict[str, Path] = {}
        if self.writer is not None:
            if spec.out_composite is not None:
                out["composite"] = Path(self.writer.write_composite(str(spec.out_composite), composite))
            if spec.out_classmap is not None:
                out["classmap"] = Path(self.writer.write_classified(str(spec.out_classmap), classified))
        if self.reporter is not None and spec.out_report is not None:
            out["area_report"] = Path(self.reporter.export_area(area, str(spec.out_report)))
        if self.ql_exporter is not None and spec.out_png is not None:
            out["quicklook"] = Path(self.ql_exporter.export_classmap(classified, spec.catalog, str(spec.out_png)))
        for k, p in out.items():
            logger.info("%s -> %s", k, p)
        return out


__all__ = [
    "CompositeSpec",
    "LandcoverSpec",
    "LandcoverResult",
    "LandcoverService",
]
