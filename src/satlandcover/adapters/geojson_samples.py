# src/satlandcover/adapters/geojson_samples.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Mapping

from ..services.sampling_service import LabeledGeometry


def _features(obj: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    t = obj.get("type")
    if t == "FeatureCollection":
        return list(obj.get("features", []))
    if t == "Feature":
        return [obj]
    raise ValueError(f"Formato GeoJSON no reconocido para muestras: type={t}")


def load_labeled_geometries(path: str | Path, label_property: str = "landcover") -> List[LabeledGeometry]:
    """
    FeatureCollection -> [LabeledGeometry]. La clase sale de properties[label_property].
    Las coordenadas deben estar en el CRS de los tiles.
    """
    obj = json.loads(Path(path).read_text(encoding="utf-8"))
    out: List[LabeledGeometry] = []
    for i, feat in enumerate(_features(obj)):
        props = feat.get("properties") or {}
        if label_property not in props:
            raise ValueError(f"{path}: feature {i} sin propiedad '{label_property}'")
        geom = feat.get("geometry")
        if not geom:
            continue
        out.append(LabeledGeometry(geometry=geom, label=int(props[label_property])))
    if not out:
        raise ValueError(f"{path}: sin geometrías etiquetadas")
    return out


def load_region(path: str | Path) -> Mapping[str, Any]:
    """Acepta Feature/FeatureCollection/Geometry; devuelve la primera geometría."""
    obj = json.loads(Path(path).read_text(encoding="utf-8"))
    t = obj.get("type")
    if t == "FeatureCollection":
        feats = obj.get("features", [])
        if not feats:
            raise ValueError("GeoJSON vacío")
        return feats[0]["geometry"]
    if t == "Feature":
        return obj["geometry"]
    if "coordinates" in obj:
        return obj
    raise ValueError("Formato GeoJSON no reconocido para región")
