# src/satlandcover/cli.py
from __future__ import annotations

"""
CLI del pipeline de cobertura de suelo (contracts-first, minimal).

Comandos:
  - composite: máscara de nubes + reflectancia + índices + mediana temporal.
  - classify: composite + muestras etiquetadas -> random forest -> classmap + áreas.
  - area: áreas por clase de un classmap existente (opcional dentro de una región).

Ejemplos rápidos:
  python -m satlandcover.cli --config config/settings.yaml composite \
      --run mauritius-2023 -t ./tiles/LC09_20230105.tif -t ./tiles/LC09_20230121.tif

  python -m satlandcover.cli --config config/settings.yaml classify \
      --run mauritius-2023 --catalog ./tiles/manifest.csv \
      --samples ./config/training.geojson --region ./config/roi.geojson --png

  python -m satlandcover.cli area --classmap ./products/run/classmap.tif \
      --labels ./config/class_labels.json --unit km2
"""

import argparse
import json
import logging
import sys
from datetime import datetime, time
from pathlib import Path
from typing import List, Optional, Sequence

from .adapters.csv_exporter import CSVExporter
from .adapters.csv_tile_catalog import CsvTileCatalog
from .adapters.geojson_samples import load_labeled_geometries, load_region
from .adapters.rasterio_reader import RasterioTileReader
from .adapters.rasterio_writer import RasterioRasterWriter
from .composition.di import (
    build_landcover_service,
    build_settings,
    composite_spec,
    landcover_spec,
    load_class_labels,
)
from .config import Settings, get_settings
from .contracts.core import ClassCatalog
from .contracts.errors import PipelineError
from .contracts.products import ClassifiedRaster, RasterTile
from .services.area_service import AreaService

logger = logging.getLogger("satlandcover")

# ----------------------
# Utilidades locales
# ----------------------

def _settings(args: argparse.Namespace) -> Settings:
    root = Path(args.root) if args.root else Path.cwd()
    if args.config:
        return build_settings(root, Path(args.config))
    s = get_settings()
    if args.root:
        s = s.model_copy(update={"project_root": root.resolve()})
    return s


def _load_tiles(args: argparse.Namespace, s: Settings) -> List[RasterTile]:
    reader = RasterioTileReader()
    tiles: List[RasterTile] = []
    if args.catalog:
        cat = CsvTileCatalog(Path(args.catalog))
        for it in cat.iter_tiles(s.date_from, s.date_to, s.cloud_cover_max):
            tiles.append(reader.read_tile(
                str(it.path),
                band_names=it.band_names or None,
                acquired=datetime.combine(it.acq_date, time()),
                tile_id=it.tile_id,
                cloud_pct=it.cloud_pct,
            ))
    band_names: Optional[Sequence[str]] = args.bands or None
    for uri in args.tile or []:
        tiles.append(reader.read_tile(uri, band_names=band_names))
    if not tiles:
        raise ValueError("Debes especificar tiles con -t path.tif o --catalog manifest.csv")
    return tiles


def _out(explicit: Optional[str], s: Settings, key: str, run: str) -> Path:
    return Path(explicit) if explicit else s.out_path(key, run=run)

# ----------------------
# Comandos
# ----------------------

def cmd_composite(args: argparse.Namespace) -> int:
    s = _settings(args)
    tiles = _load_tiles(args, s)
    svc = build_landcover_service(s, workers=args.workers)
    comp = svc.build_composite(tiles, composite_spec(s))

    out_path = _out(args.out, s, "composite", args.run)
    RasterioRasterWriter().write_composite(str(out_path), comp)
    print(str(out_path))
    return 0


def cmd_classify(args: argparse.Namespace) -> int:
    s = _settings(args)
    tiles = _load_tiles(args, s)
    geoms = load_labeled_geometries(args.samples, label_property=args.label_property or s.label_property)
    region = load_region(args.region) if args.region else None

    svc = build_landcover_service(s, workers=args.workers)
    if not args.png:
        svc.ql_exporter = None
    spec = landcover_spec(s, args.run, region=region)
    res = svc.run(tiles, geoms, spec)

    if res.accuracy is not None:
        print(f"OA={res.accuracy.overall_accuracy:.4f} kappa={res.accuracy.kappa:.4f} n={res.accuracy.n}")
    print(json.dumps(res.area.to_named(), ensure_ascii=False))
    for p in res.outputs.values():
        print(str(p))
    return 0


def cmd_area(args: argparse.Namespace) -> int:
    s = _settings(args)
    raster = RasterioTileReader().read(args.classmap)
    classified = ClassifiedRaster(labels=raster)
    if args.labels:
        catalog = ClassCatalog(labels=load_class_labels(Path(args.labels)))
    else:
        catalog = s.class_catalog()
    region = load_region(args.region) if args.region else None

    report = AreaService().aggregate(
        classified,
        catalog,
        region=region,
        pixel_area=args.pixel_area,
        unit=args.unit or s.area_unit,
        strict=not args.lenient,
    )
    if args.out:
        print(CSVExporter().export_area(report, args.out))
    print(json.dumps(report.to_named(), ensure_ascii=False))
    return 0

# ----------------------
# Parser
# ----------------------

def _add_tile_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--run", required=True, help="identificador del run (para rutas de salida)")
    p.add_argument("-t", "--tile", action="append", default=[], help="GeoTIFF multibanda de una adquisición")
    p.add_argument("--bands", nargs="*", default=None, help="nombres de banda para -t (si el archivo no los trae)")
    p.add_argument("--catalog", help="manifiesto CSV de tiles (tile_id, acq_date, path, ...)")
    p.add_argument("--workers", type=int, default=1, help="hilos para el composite por bloques")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="satlandcover", description="Composite + random forest + áreas por clase")
    p.add_argument("--root", help="project_root (sobre-escribe Settings.project_root)")
    p.add_argument("--config", help="settings.yaml")
    p.add_argument("-v", "--verbose", action="count", default=0, help="-v INFO, -vv DEBUG")
    sub = p.add_subparsers(dest="cmd", required=True)

    pc = sub.add_parser("composite", help="genera el composite por mediana")
    _add_tile_args(pc)
    pc.add_argument("--out", help="ruta de salida TIFF (si no, Settings.output_patterns['composite'])")
    pc.set_defaults(func=cmd_composite)

    pk = sub.add_parser("classify", help="pipeline completo: composite, entrenamiento, classmap y áreas")
    _add_tile_args(pk)
    pk.add_argument("--samples", required=True, help="GeoJSON FeatureCollection con geometrías etiquetadas")
    pk.add_argument("--label-property", help="propiedad con la clase (default: Settings.label_property)")
    pk.add_argument("--region", help="GeoJSON de la región para el cálculo de áreas")
    pk.add_argument("--png", action="store_true", help="exporta quicklook PNG")
    pk.set_defaults(func=cmd_classify)

    pa = sub.add_parser("area", help="áreas por clase de un classmap")
    pa.add_argument("--classmap", required=True, help="GeoTIFF de clases (uint8, nodata=255)")
    pa.add_argument("--labels", help="class_labels.json (si no, Settings.classes)")
    pa.add_argument("--region", help="GeoJSON de la región")
    pa.add_argument("--pixel-area", type=float, default=None, help="área de píxel (default: del geotransform)")
    pa.add_argument("--unit", choices=("m2", "ha", "km2"), default=None)
    pa.add_argument("--lenient", action="store_true", help="reporta etiquetas desconocidas por su número")
    pa.add_argument("--out", help="CSV/JSON de salida")
    pa.set_defaults(func=cmd_area)

    return p


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = _build_parser()
    args = parser.parse_args(argv)
    level = logging.WARNING if args.verbose == 0 else (logging.INFO if args.verbose == 1 else logging.DEBUG)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        return int(args.func(args))
    except KeyboardInterrupt:
        return 130
    except PipelineError as ex:
        rec = ex.to_record()
        print(f"[ERROR] {rec.stage.value}: {rec.message}", file=sys.stderr)
        return 1
    except Exception as ex:
        logger.debug("fallo no controlado", exc_info=True)
        print(f"[ERROR] {ex}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
