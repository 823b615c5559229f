# src/satlandcover/contracts/errors.py
from __future__ import annotations

from typing import Iterable, Optional, Sequence

from .core import RunError, Stage


class PipelineError(Exception):
    """Base de errores del pipeline; cada error conoce la etapa donde ocurrió."""
    stage: Stage = Stage.EXPORT

    def to_record(self) -> RunError:
        return RunError(stage=self.stage, message=str(self), detail=type(self).__name__)


class InvalidBandError(PipelineError, KeyError):
    """Falta una banda requerida en el tile/raster."""
    stage = Stage.MASK

    def __init__(self, missing: Iterable[str], *, where: str = "tile", stage: Optional[Stage] = None):
        self.missing = tuple(missing)
        self.where = where
        if stage is not None:
            self.stage = stage
        super().__init__(f"Faltan bandas requeridas en {where}: {list(self.missing)}")

    # KeyError.__str__ agrega comillas; mantenemos el mensaje plano
    def __str__(self) -> str:
        return str(self.args[0])


class EmptyTrainingSetError(PipelineError):
    """Una o más clases no tienen píxeles válidos de entrenamiento."""
    stage = Stage.SAMPLE

    def __init__(self, labels: Sequence[int]):
        self.labels = tuple(sorted(int(x) for x in labels))
        super().__init__(f"Clases sin muestras de entrenamiento válidas: {list(self.labels)}")


class FeatureMismatchError(PipelineError):
    """Las bandas de predicción no coinciden con las de entrenamiento."""
    stage = Stage.PREDICT

    def __init__(self, expected: Sequence[str], got: Sequence[str]):
        self.expected = tuple(expected)
        self.got = tuple(got)
        super().__init__(
            f"Bandas de predicción {list(self.got)} no coinciden con las de entrenamiento {list(self.expected)}"
        )


class UnknownClassLabelError(PipelineError):
    """Etiquetas sin nombre en el catálogo de clases (raster o muestras)."""
    stage = Stage.AREA

    def __init__(self, labels: Sequence[int], *, stage: Optional[Stage] = None):
        self.labels = tuple(sorted(int(x) for x in labels))
        if stage is not None:
            self.stage = stage
        super().__init__(f"Etiquetas sin entrada en el catálogo de clases: {list(self.labels)}")


__all__ = [
    "PipelineError",
    "InvalidBandError",
    "EmptyTrainingSetError",
    "FeatureMismatchError",
    "UnknownClassLabelError",
]
