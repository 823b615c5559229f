# src/satlandcover/services/classifier_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple, Union

import numpy as np
from sklearn.ensemble import RandomForestClassifier
from sklearn.metrics import accuracy_score, cohen_kappa_score, confusion_matrix

from ..contracts.core import CLASS_NODATA, BandName, Stage
from ..contracts.errors import FeatureMismatchError, UnknownClassLabelError
from ..contracts.geo import GeoRaster
from ..contracts.products import ClassifiedRaster, CompositeRaster, TrainingSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrainedForest:
    """Modelo entrenado + bandas (en orden) con las que se entrenó."""
    model: RandomForestClassifier
    feature_names: Tuple[BandName, ...]
    classes: Tuple[int, ...]
    seed: Optional[int] = None

    @property
    def n_trees(self) -> int:
        return len(self.model.estimators_)

    def feature_importances(self) -> Dict[BandName, float]:
        return {n: float(v) for n, v in zip(self.feature_names, self.model.feature_importances_)}


@dataclass(frozen=True)
class AccuracyReport:
    confusion: np.ndarray           # filas = real, columnas = predicho
    labels: Tuple[int, ...]
    overall_accuracy: float
    kappa: float
    n: int

    def producers_accuracy(self) -> Dict[int, float]:
        tot = self.confusion.sum(axis=1)
        return {l: (float(self.confusion[i, i] / tot[i]) if tot[i] else 0.0) for i, l in enumerate(self.labels)}

    def consumers_accuracy(self) -> Dict[int, float]:
        tot = self.confusion.sum(axis=0)
        return {l: (float(self.confusion[i, i] / tot[i]) if tot[i] else 0.0) for i, l in enumerate(self.labels)}


@dataclass
class ClassifierService:
    """
    Random forest por píxel (scikit-learn).
    - train(): bootstrap por árbol, Gini, subconjunto aleatorio de features por nodo.
    - predict(): voto mayoritario; nodata de entrada -> CLASS_NODATA.
    La reproducibilidad exacta solo se garantiza con `seed` fijo.
    """
    n_jobs: Optional[int] = None
    block_rows: int = 1024

    def train(
        self,
        ts: TrainingSet,
        n_trees: int = 100,
        *,
        seed: Optional[int] = None,
        min_samples_leaf: int = 1,
        max_features: Union[str, int, float, None] = "sqrt",
    ) -> TrainedForest:
        if len(ts) == 0:
            raise ValueError("TrainingSet vacío")
        if n_trees < 1:
            raise ValueError(f"n_trees debe ser >= 1: {n_trees}")
        if not np.isfinite(ts.X).all():
            raise ValueError("TrainingSet contiene valores no finitos")

        rf = RandomForestClassifier(
            n_estimators=int(n_trees),
            criterion="gini",
            bootstrap=True,
            max_features=max_features,
            min_samples_leaf=int(min_samples_leaf),
            oob_score=False,
            n_jobs=self.n_jobs,
            random_state=seed,
        )
        rf.fit(ts.X, ts.y)
        model = TrainedForest(
            model=rf,
            feature_names=tuple(ts.feature_names),
            classes=tuple(int(c) for c in rf.classes_),
            seed=seed,
        )
        logger.info(
            "random forest: %d árboles, %d muestras, clases %s", n_trees, len(ts), list(model.classes)
        )
        return model

    def _check_features(self, model: TrainedForest, composite: CompositeRaster, bands: Optional[Sequence[BandName]]) -> None:
        if bands is not None and tuple(bands) != model.feature_names:
            raise FeatureMismatchError(model.feature_names, tuple(bands))
        if any(n not in composite.bands for n in model.feature_names):
            raise FeatureMismatchError(model.feature_names, composite.band_names)

    def predict(
        self,
        model: TrainedForest,
        composite: CompositeRaster,
        *,
        bands: Optional[Sequence[BandName]] = None,
    ) -> ClassifiedRaster:
        """
        Clasifica el composite restringido a las bandas del modelo (mismo orden).
        `bands`, si se entrega, debe ser exactamente el set de entrenamiento.
        """
        self._check_features(model, composite, bands)
        bad = [c for c in model.classes if not 0 <= c < CLASS_NODATA]
        if bad:
            # el classmap es uint8 y reserva CLASS_NODATA
            raise UnknownClassLabelError(bad, stage=Stage.PREDICT)
        names = model.feature_names
        stack = composite.stack(names)                # (F, H, W)
        valid = composite.valid_mask(names)           # (H, W)
        h, w = composite.shape

        out = np.full((h, w), CLASS_NODATA, dtype=np.uint8)
        step = max(1, int(self.block_rows))
        for r0 in range(0, h, step):
            r1 = min(h, r0 + step)
            v = valid[r0:r1]
            if not v.any():
                continue
            X = stack[:, r0:r1][:, v].T
            pred = model.model.predict(X).astype(np.uint8)
            blk = out[r0:r1]
            blk[v] = pred
            logger.debug("predict filas %d-%d: %d píxeles", r0, r1, int(v.sum()))

        prof = composite.profile.with_dtype("uint8", CLASS_NODATA)
        return ClassifiedRaster(labels=GeoRaster(data=out, profile=prof))

    def predict_samples(self, model: TrainedForest, ts: TrainingSet) -> np.ndarray:
        if tuple(ts.feature_names) != model.feature_names:
            raise FeatureMismatchError(model.feature_names, ts.feature_names)
        return model.model.predict(ts.X).astype("int32")

    def assess(self, model: TrainedForest, ts: TrainingSet) -> AccuracyReport:
        """Matriz de confusión, exactitud global y kappa sobre un set de validación."""
        if len(ts) == 0:
            raise ValueError("set de validación vacío")
        pred = self.predict_samples(model, ts)
        labels = tuple(sorted(set(model.classes) | set(int(v) for v in np.unique(ts.y))))
        cm = confusion_matrix(ts.y, pred, labels=list(labels))
        rep = AccuracyReport(
            confusion=cm,
            labels=labels,
            overall_accuracy=float(accuracy_score(ts.y, pred)),
            kappa=float(cohen_kappa_score(ts.y, pred, labels=list(labels))),
            n=len(ts),
        )
        logger.info("validación: OA=%.3f kappa=%.3f (n=%d)", rep.overall_accuracy, rep.kappa, rep.n)
        return rep
