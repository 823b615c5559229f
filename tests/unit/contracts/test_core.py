import pytest
from pydantic import ValidationError

from satlandcover.contracts.core import (
    ClassCatalog, ClassLabel, IndexDef, QualityMaskSpec, RGB8, SENTINEL2_SCL, LANDSAT_C2_QA,
)

def test_rgb8_hex_roundtrip_and_label():
    col = RGB8.from_hex("#0A141E")
    lab = ClassLabel(id=0, name="Waterbody", color=col)
    assert lab.color.as_tuple() == (10, 20, 30)
    assert lab.color.to_hex() == "#0A141E"

def test_class_label_accepts_hex_string():
    lab = ClassLabel(id=1, name="Vegetation", color="#33A02C")
    assert lab.color.g == 0xA0

def test_catalog_contiguous_from_zero():
    cat = ClassCatalog.from_names(["Waterbody", "Vegetation", "Built-up"])
    assert cat.ids() == (0, 1, 2)
    assert cat.name_of(0) == "Waterbody"
    assert cat.name_of(7) is None

@pytest.mark.parametrize("ids", [(1, 2), (0, 2), (0, 1, 1)])
def test_catalog_rejects_non_contiguous_ids(ids):
    with pytest.raises(ValidationError):
        ClassCatalog(labels=tuple(ClassLabel(id=i, name=f"c{n}") for n, i in enumerate(ids)))

def test_catalog_rejects_duplicate_names():
    with pytest.raises(ValidationError):
        ClassCatalog.from_mapping({0: "agua", 1: "agua"})

def test_quality_mask_bitmask_value():
    assert LANDSAT_C2_QA.bitmask() == 0b11110
    assert QualityMaskSpec(bits=(3, 4)).bitmask() == 0b11000

def test_quality_mask_requires_classes_for_class_encoding():
    with pytest.raises(ValidationError):
        QualityMaskSpec(band="SCL", encoding="classes", classes=())
    assert set(SENTINEL2_SCL.classes) == {3, 8, 9, 10}

def test_index_def_requires_distinct_bands():
    with pytest.raises(ValidationError):
        IndexDef(name="NDVI", a="B8", b="B8")
    with pytest.raises(ValidationError):
        IndexDef(name="bad name", a="B8", b="B4")
