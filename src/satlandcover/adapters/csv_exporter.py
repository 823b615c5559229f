# src/satlandcover/adapters/csv_exporter.py

from __future__ import annotations

import csv
import json
import os

from ..contracts.products import AreaReport
from ..ports.exporters import ReportExporterPort

AREA_HEADERS = ["class_id", "class_name", "pixels", "area", "unit", "percent"]


class CSVExporter(ReportExporterPort):
    """Exporter mínimo del AreaReport.

    - `.json` -> {"unit": ..., "areas": {nombre: área}, "total": ...}
    - cualquier otra extensión -> CSV con AREA_HEADERS, una fila por clase
    """
    def export_area(self, report: AreaReport, out_uri: str) -> str:
        os.makedirs(os.path.dirname(out_uri) or ".", exist_ok=True)
        if out_uri.lower().endswith(".json"):
            payload = {"unit": report.unit, "areas": report.to_named(), "total": report.total}
            with open(out_uri, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
            return out_uri

        with open(out_uri, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=AREA_HEADERS)
            writer.writeheader()
            for row in report.rows():
                writer.writerow(row)
        return out_uri
