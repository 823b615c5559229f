import itertools
from datetime import date

import numpy as np
import pytest

from satlandcover.contracts.core import FLOAT_NODATA
from satlandcover.contracts.errors import InvalidBandError
from satlandcover.services.composite_service import CompositeService, select_tiles
from tests.factories import make_masked, make_tile


def test_median_of_valid_values_skips_nodata():
    tiles = [
        make_masked({"B4": [[10.0]]}, day=1),
        make_masked({"B4": [[20.0]]}, day=2),
        make_masked({"B4": [[FLOAT_NODATA]]}, day=3),
    ]
    comp = CompositeService().median(tiles)
    assert comp.bands["B4"].data[0, 0] == pytest.approx(15.0)
    assert comp.count[0, 0] == 2
    assert comp.date_from == date(2023, 1, 1) and comp.date_to == date(2023, 1, 3)


def test_masked_pixels_are_excluded_and_odd_count_takes_middle():
    tiles = [
        make_masked({"B4": [[1.0, 5.0]]}, valid=[[True, True]], day=1),
        make_masked({"B4": [[100.0, 7.0]]}, valid=[[False, True]], day=2),
        make_masked({"B4": [[3.0, 6.0]]}, valid=[[True, True]], day=3),
    ]
    out = CompositeService().median(tiles).bands["B4"].data
    assert out[0, 0] == pytest.approx(2.0)
    assert out[0, 1] == pytest.approx(6.0)


def test_pixel_without_observations_is_nodata():
    tiles = [
        make_masked({"B4": [[1.0, 2.0]]}, valid=[[False, True]], day=1),
        make_masked({"B4": [[3.0, 4.0]]}, valid=[[False, True]], day=2),
    ]
    comp = CompositeService().median(tiles)
    assert comp.bands["B4"].data[0, 0] == FLOAT_NODATA
    assert comp.count[0, 0] == 0
    assert not comp.valid_mask()[0, 0]
    assert np.isfinite(comp.bands["B4"].data).all()


def test_band_level_nodata_is_independent():
    tiles = [
        make_masked({"B4": [[0.2]], "NDVI": [[FLOAT_NODATA]]}, day=1),
        make_masked({"B4": [[0.4]], "NDVI": [[FLOAT_NODATA]]}, day=2),
    ]
    comp = CompositeService().median(tiles)
    assert comp.bands["B4"].data[0, 0] == pytest.approx(0.3)
    assert comp.bands["NDVI"].data[0, 0] == FLOAT_NODATA


def _random_tiles(n=4, shape=(6, 5), seed=0):
    rng = np.random.default_rng(seed)
    out = []
    for d in range(n):
        b4 = rng.random(shape).astype("float32")
        b8 = rng.random(shape).astype("float32")
        valid = rng.random(shape) > 0.3
        out.append(make_masked({"B4": b4, "B8": b8}, valid=valid, day=d + 1))
    return out


def test_order_independent():
    tiles = _random_tiles()
    ref = CompositeService().median(tiles)
    for perm in itertools.permutations(tiles):
        comp = CompositeService().median(list(perm))
        for name in ref.band_names:
            np.testing.assert_array_equal(comp.bands[name].data, ref.bands[name].data)
        np.testing.assert_array_equal(comp.count, ref.count)


def test_single_tile_is_identity_where_valid():
    (t,) = _random_tiles(n=1, seed=3)
    comp = CompositeService().median([t])
    for name in t.band_names:
        expected = np.where(t.valid, t.bands[name].data, FLOAT_NODATA)
        np.testing.assert_array_equal(comp.bands[name].data, expected)


def test_blocks_and_workers_match_single_pass():
    tiles = _random_tiles(n=5, shape=(9, 4), seed=7)
    ref = CompositeService().median(tiles)
    par = CompositeService(workers=3, block_rows=2).median(tiles)
    for name in ref.band_names:
        np.testing.assert_array_equal(par.bands[name].data, ref.bands[name].data)


def test_band_set_mismatch_and_empty_input():
    a = make_masked({"B4": [[1.0]]}, day=1)
    b = make_masked({"B8": [[1.0]]}, day=2)
    with pytest.raises(InvalidBandError):
        CompositeService().median([a, b])
    with pytest.raises(ValueError):
        CompositeService().median([])


def test_select_tiles_by_date_and_cloud():
    z = np.zeros((2, 2), dtype=np.uint16)
    tiles = [
        make_tile({"B4": z}, day=1, cloud_pct=10.0),
        make_tile({"B4": z}, day=10, cloud_pct=80.0),
        make_tile({"B4": z}, day=20, cloud_pct=None),
        make_tile({"B4": z}, day=30, cloud_pct=5.0),
    ]
    sel = select_tiles(tiles, date_from=date(2023, 1, 5), date_to=date(2023, 1, 25), cloud_max=50.0)
    assert [t.tile_id for t in sel] == ["T20"]
    assert len(select_tiles(tiles)) == 4


def test_median_landing_on_sentinel_stays_valid():
    tiles = [
        make_masked({"B": np.array([[-10000.0]])}, day=1),
        make_masked({"B": np.array([[-9998.0]])}, day=2),
    ]
    comp = CompositeService().median(tiles)
    assert not comp.bands["B"].nodata_mask().any()
    assert comp.bands["B"].data[0, 0] == pytest.approx(-9999.0)
    assert comp.count[0, 0] == 2
