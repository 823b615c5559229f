# src/satlandcover/adapters/png_quicklook.py
from __future__ import annotations

import os

import numpy as np
from PIL import Image

from ..contracts.core import ClassCatalog
from ..contracts.products import ClassifiedRaster
from ..ports.exporters import QuicklookExporterPort, QuicklookSpec


class PngQuicklookExporter(QuicklookExporterPort):
    """Quicklook RGB del classmap según la paleta del catálogo (solo cosmético)."""

    def render(self, classified: ClassifiedRaster, catalog: ClassCatalog, spec: QuicklookSpec = QuicklookSpec()) -> np.ndarray:
        data = classified.data
        h, w = data.shape
        rgb = np.zeros((h, w, 3), dtype=np.uint8)
        rgb[...] = spec.nodata_rgb
        for cid, color in catalog.palette().items():
            rgb[data == cid] = color
        return rgb

    def export_classmap(self, classified: ClassifiedRaster, catalog: ClassCatalog, out_uri: str, spec: QuicklookSpec = QuicklookSpec()) -> str:
        os.makedirs(os.path.dirname(out_uri) or ".", exist_ok=True)
        img = Image.fromarray(self.render(classified, catalog, spec))
        if max(img.size) > spec.max_size_px:
            img.thumbnail((spec.max_size_px, spec.max_size_px), Image.Resampling.NEAREST)
        img.save(out_uri)
        return out_uri
