import numpy as np
import pytest

from satlandcover.contracts.core import CLASS_NODATA, FLOAT_NODATA, Stage
from satlandcover.contracts.errors import FeatureMismatchError, UnknownClassLabelError
from satlandcover.contracts.products import TrainingSample, TrainingSet
from satlandcover.services.classifier_service import ClassifierService
from tests.factories import make_composite


def _two_class_set():
    samples = [TrainingSample((0.1, 0.2), 0)] * 5 + [TrainingSample((0.5, 0.6), 1)] * 5
    return TrainingSet.from_samples(samples, ["NDVI", "NDWI"])


def test_forest_classifies_held_out_vector():
    svc = ClassifierService()
    model = svc.train(_two_class_set(), n_trees=25, seed=0)
    held_out = TrainingSet.from_samples([TrainingSample((0.11, 0.19), 0)], ["NDVI", "NDWI"])
    assert svc.predict_samples(model, held_out).tolist() == [0]
    assert model.classes == (0, 1)
    assert model.n_trees == 25
    assert set(model.feature_importances()) == {"NDVI", "NDWI"}


def test_same_seed_same_forest():
    rng = np.random.default_rng(0)
    X = rng.random((60, 3)).astype("float32")
    y = (X[:, 0] + 0.1 * rng.random(60) > 0.5).astype("int32")
    ts = TrainingSet(X=X, y=y, feature_names=("a", "b", "c"))
    svc = ClassifierService()
    grid = rng.random((40, 3)).astype("float32")
    p1 = svc.train(ts, 15, seed=123).model.predict_proba(grid)
    p2 = svc.train(ts, 15, seed=123).model.predict_proba(grid)
    np.testing.assert_array_equal(p1, p2)


def test_predict_raster_with_nodata_sentinel():
    svc = ClassifierService(block_rows=1)
    model = svc.train(_two_class_set(), n_trees=25, seed=0)
    ndvi = np.array([[0.1, 0.5], [FLOAT_NODATA, 0.12]], dtype="float32")
    ndwi = np.array([[0.2, 0.6], [0.3, 0.21]], dtype="float32")
    comp = make_composite({"NDWI": ndwi, "NDVI": ndvi, "B2": np.zeros((2, 2), "float32")})
    out = svc.predict(model, comp)
    assert out.data.dtype == np.uint8
    assert out.profile.nodata == CLASS_NODATA
    assert out.data.tolist() == [[0, 1], [CLASS_NODATA, 0]]
    assert out.counts() == {0: 2, 1: 1}


def test_feature_mismatch():
    svc = ClassifierService()
    model = svc.train(_two_class_set(), n_trees=5, seed=0)
    comp = make_composite({"NDVI": np.zeros((2, 2), "float32")})
    with pytest.raises(FeatureMismatchError):
        svc.predict(model, comp)
    comp2 = make_composite({"NDVI": np.zeros((2, 2), "float32"), "NDWI": np.zeros((2, 2), "float32")})
    with pytest.raises(FeatureMismatchError):
        svc.predict(model, comp2, bands=["NDWI", "NDVI"])


def test_assess_reports_confusion_and_accuracy():
    svc = ClassifierService()
    ts = _two_class_set()
    model = svc.train(ts, n_trees=10, seed=0)
    rep = svc.assess(model, ts)
    assert rep.overall_accuracy == pytest.approx(1.0)
    assert rep.kappa == pytest.approx(1.0)
    assert rep.confusion.tolist() == [[5, 0], [0, 5]]
    assert rep.producers_accuracy() == {0: 1.0, 1: 1.0}


def test_train_rejects_empty_set():
    ts = TrainingSet(X=np.empty((0, 2), "float32"), y=np.empty((0,), "int32"), feature_names=("a", "b"))
    with pytest.raises(ValueError):
        ClassifierService().train(ts)


@pytest.mark.parametrize("label", [255, 256])
def test_predict_refuses_classes_that_do_not_fit_the_classmap(label):
    X = np.array([[0.1], [0.2], [0.5], [0.6]], dtype="float32")
    y = np.array([0, 0, label, label], dtype="int32")
    svc = ClassifierService()
    model = svc.train(TrainingSet(X=X, y=y, feature_names=("NDVI",)), n_trees=5, seed=0)
    comp = make_composite({"NDVI": np.full((4, 4), 0.55, "float32")})
    with pytest.raises(UnknownClassLabelError) as ei:
        svc.predict(model, comp)
    assert ei.value.labels == (label,)
    assert ei.value.stage == Stage.PREDICT
