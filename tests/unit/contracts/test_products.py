from datetime import datetime

import numpy as np
import pytest

from satlandcover.contracts.errors import InvalidBandError
from satlandcover.contracts.products import AreaReport, MaskedTile, RasterTile, TrainingSample, TrainingSet
from tests.factories import make_raster, make_tile

def test_tile_requires_common_grid():
    with pytest.raises(ValueError):
        RasterTile(bands={"B4": make_raster(), "B8": make_raster(w=12)}, acquired=datetime(2023, 1, 1))

def test_tile_acquired_is_utc_and_require_raises_invalid_band():
    t = RasterTile(bands={"B4": make_raster()}, acquired=datetime(2023, 1, 1))
    assert t.acquired.tzinfo is not None
    with pytest.raises(InvalidBandError) as ei:
        t.require(["B4", "B8"])
    assert ei.value.missing == ("B8",)
    # también es KeyError para quien capture errores de mapping
    assert isinstance(ei.value, KeyError)

def test_masked_tile_shape_must_match():
    t = make_tile({"B4": np.zeros((10, 10), dtype=np.uint16)})
    with pytest.raises(ValueError):
        MaskedTile(tile=t, valid=np.ones((5, 5), dtype=bool))

def test_training_set_from_samples():
    samples = [TrainingSample((0.1, 0.2), 0), TrainingSample((0.5, 0.6), 1)]
    ts = TrainingSet.from_samples(samples, ["NDVI", "NDWI"])
    assert ts.X.shape == (2, 2) and ts.X.dtype == np.float32
    assert ts.class_counts() == {0: 1, 1: 1}
    assert ts.samples()[1].label == 1

def test_area_report_named_and_percentages():
    rep = AreaReport(areas={0: 300.0, 1: 100.0}, names={0: "Waterbody", 1: "Vegetation"})
    assert rep.total == 400.0
    assert rep.to_named() == {"Waterbody": 300.0, "Vegetation": 100.0}
    assert rep.percentages()[0] == pytest.approx(75.0)
    assert rep[1] == 100.0
