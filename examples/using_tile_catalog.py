# =============================
# FILE: examples/using_tile_catalog.py
# =============================
"""
Uso mínimo: CsvTileCatalog detrás del TileCatalogPort + composite por mediana.
Las rutas del manifiesto son relativas al CSV.
"""
import logging
from pathlib import Path

from satlandcover.adapters.csv_tile_catalog import CsvTileCatalog
from satlandcover.adapters.rasterio_reader import RasterioTileReader
from satlandcover.adapters.rasterio_writer import RasterioRasterWriter
from satlandcover.composition.di import build_landcover_service, build_settings, composite_spec


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    root = Path("/ruta/al/proyecto").resolve()
    s = build_settings(root)

    port = CsvTileCatalog(root / "tiles" / "manifest.csv")
    reader = RasterioTileReader()

    print("Tiles (filtrados por fecha / nubes):")
    tiles = []
    for it in port.iter_tiles(s.date_from, s.date_to, s.cloud_cover_max):
        print(" -", it.tile_id, it.acq_date, it.cloud_pct, it.path)
        tiles.append(reader.read_tile(str(it.path), band_names=it.band_names or None, tile_id=it.tile_id, cloud_pct=it.cloud_pct))

    comp = build_landcover_service(s).build_composite(tiles, composite_spec(s))
    out = s.out_path("composite", run="example")
    print(RasterioRasterWriter().write_composite(str(out), comp))
