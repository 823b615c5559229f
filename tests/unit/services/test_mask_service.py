from datetime import datetime

import numpy as np
import pytest

from satlandcover.contracts.core import QualityMaskSpec, SENTINEL2_SCL
from satlandcover.contracts.errors import InvalidBandError
from satlandcover.contracts.products import RasterTile
from satlandcover.services.mask_service import CloudMaskService
from tests.factories import make_tile, raster_from

SPEC_34 = QualityMaskSpec(band="QA_PIXEL", encoding="bitmask", bits=(3, 4), mask_nodata=False)

def _tile(qa, name="QA_PIXEL"):
    qa = np.asarray(qa, dtype=np.uint16)
    return make_tile({"SR_B4": np.full(qa.shape, 8000, dtype=np.uint16), name: qa})

def test_bit3_cloud_masks_pixel_and_zero_stays_valid():
    qa = [[1 << 3, 0], [1 << 4, 1 << 1]]
    m = CloudMaskService().build(_tile(qa), SPEC_34)
    # bit 3 (nube) y bit 4 (sombra) inválidos; 0 y bit 1 (no configurado) válidos
    assert m.valid.tolist() == [[False, True], [False, True]]

def test_landsat_default_bits_include_dilated_and_cirrus():
    qa = [[1 << 1, 1 << 2], [0, (1 << 6) | (1 << 7)]]  # 6/7 = clear/water, no excluidos
    spec = QualityMaskSpec(mask_nodata=False)
    m = CloudMaskService().build(_tile(qa), spec)
    assert m.valid.tolist() == [[False, False], [True, True]]

def test_scene_classification_codes():
    scl = [[3, 4], [8, 9], [10, 5]]
    m = CloudMaskService().build(_tile(scl, name="SCL"), SENTINEL2_SCL)
    assert m.valid.tolist() == [[False, True], [False, False], [False, True]]

def test_missing_quality_band_raises():
    t = make_tile({"SR_B4": np.zeros((3, 3), dtype=np.uint16)})
    with pytest.raises(InvalidBandError):
        CloudMaskService().build(t, SPEC_34)

def test_mask_nodata_invalidates_raw_nodata_pixels():
    qa = raster_from(np.zeros((2, 2), dtype=np.uint16))
    b4 = raster_from(np.array([[0, 100], [200, 300]], dtype=np.uint16), nodata=0)
    t = RasterTile(bands={"SR_B4": b4, "QA_PIXEL": qa}, acquired=datetime(2023, 1, 1))
    spec = QualityMaskSpec(band="QA_PIXEL", bits=(3,), mask_nodata=True)
    m = CloudMaskService().build(t, spec)
    assert m.valid.tolist() == [[False, True], [True, True]]
    assert m.valid_fraction() == pytest.approx(0.75)
