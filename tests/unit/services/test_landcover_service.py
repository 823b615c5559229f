import csv
from datetime import date

import numpy as np
import pytest
from shapely.geometry import box

from satlandcover.adapters.csv_exporter import CSVExporter
from satlandcover.adapters.png_quicklook import PngQuicklookExporter
from satlandcover.contracts.core import BandScale, ClassCatalog, IndexDef, QualityMaskSpec, Stage
from satlandcover.contracts.errors import UnknownClassLabelError
from satlandcover.services.landcover_service import CompositeSpec, LandcoverService, LandcoverSpec
from satlandcover.services.sampling_service import LabeledGeometry
from tests.factories import make_tile

# mitad izquierda agua (NDVI < 0), mitad derecha vegetación (NDVI > 0)
CSPEC = CompositeSpec(
    quality_mask=QualityMaskSpec(band="QA", bits=(3,)),
    band_scales={"B4": BandScale(scale=0.0001), "B8": BandScale(scale=0.0001)},
    indices=(IndexDef(name="NDVI", a="B8", b="B4"),),
    date_from=date(2023, 1, 1),
    date_to=date(2023, 1, 20),
    cloud_max=50.0,
)


def _tile(day, cloudy_row=None, cloud_pct=10.0):
    b4 = np.full((10, 10), 500, dtype="uint16")
    b8 = np.full((10, 10), 4000, dtype="uint16")
    b4[:, :5] = 1000
    b8[:, :5] = 300 + day
    qa = np.zeros((10, 10), dtype="uint16")
    if cloudy_row is not None:
        qa[cloudy_row, :] = 1 << 3
        b8[cloudy_row, :] = 9000
    return make_tile({"B4": b4, "B8": b8, "QA": qa}, day=day, cloud_pct=cloud_pct)


TILES = [
    _tile(2, cloudy_row=0),
    _tile(5),
    _tile(9),
    _tile(25),                     # fuera de rango de fechas
    _tile(12, cloud_pct=90.0),     # demasiado nublado
]

SAMPLES = [
    LabeledGeometry(box(0.0, 0.0, 150.0, 300.0), 0),
    LabeledGeometry(box(150.0, 0.0, 300.0, 300.0), 1),
]


def _spec(**kw):
    base = dict(
        run_id="test",
        composite=CSPEC,
        catalog=ClassCatalog.from_names(["Waterbody", "Vegetation"]),
        training_bands=("NDVI",),
        n_trees=20,
        seed=7,
    )
    base.update(kw)
    return LandcoverSpec(**base)


def test_build_composite_selects_masks_and_adds_indices():
    comp = LandcoverService().build_composite(TILES, CSPEC)
    assert comp.band_names == ("B4", "B8", "NDVI")
    assert comp.count.max() == 3
    assert comp.count[0].tolist() == [2] * 10
    assert (comp.date_from, comp.date_to) == (date(2023, 1, 2), date(2023, 1, 9))
    # fila nublada descartada: mediana de los días 5 y 9
    assert comp.bands["B8"].data[0, 0] == pytest.approx(0.0307)
    assert comp.bands["B8"].data[5, 0] == pytest.approx(0.0305)
    assert (comp.bands["NDVI"].data[:, :5] < 0).all()
    assert (comp.bands["NDVI"].data[:, 5:] > 0).all()


def test_build_composite_without_selected_tiles():
    with pytest.raises(ValueError):
        LandcoverService().build_composite(TILES[3:4], CSPEC)


def test_run_end_to_end(tmp_path):
    svc = LandcoverService(reporter=CSVExporter(), ql_exporter=PngQuicklookExporter())
    res = svc.run(
        TILES,
        SAMPLES,
        _spec(out_report=tmp_path / "area.csv", out_png=tmp_path / "ql.png"),
    )
    expected = np.zeros((10, 10), dtype=np.uint8)
    expected[:, 5:] = 1
    np.testing.assert_array_equal(res.classified.data, expected)
    assert res.area.to_named() == {"Waterbody": pytest.approx(45000.0), "Vegetation": pytest.approx(45000.0)}
    assert res.accuracy is None
    assert res.meta.n_tiles == 5
    assert res.meta.ended_at is not None

    assert set(res.outputs) == {"area_report", "quicklook"}
    with open(res.outputs["area_report"], newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert [r["class_name"] for r in rows] == ["Waterbody", "Vegetation"]
    assert (tmp_path / "ql.png").exists()


def test_run_with_holdout_reports_accuracy():
    res = LandcoverService().run(TILES, SAMPLES, _spec(train_ratio=0.7, region=box(0.0, 0.0, 150.0, 300.0)))
    assert res.accuracy is not None
    assert res.accuracy.n == 30
    assert res.accuracy.overall_accuracy == pytest.approx(1.0)
    assert res.area.pixel_counts == {0: 50}


def test_run_rejects_sample_labels_missing_from_catalog():
    samples = SAMPLES + [LabeledGeometry(box(0.0, 0.0, 30.0, 30.0), 2)]
    with pytest.raises(UnknownClassLabelError) as ei:
        LandcoverService().run(TILES, samples, _spec())
    assert ei.value.labels == (2,)
    assert ei.value.stage == Stage.SAMPLE
