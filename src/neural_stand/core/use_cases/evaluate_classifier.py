from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from neural_stand.core.domain.entities.base import Sample
from neural_stand.core.domain.network.engine import NetworkEngine
from neural_stand.core.domain.utils.metrics import accuracy, confusion_matrix


@dataclass(frozen=True)
class EvaluationReport:
    accuracy: float
    count: int
    confusion: list[list[int]]


class EvaluateClassifierUseCase:
    """Predicts every labelled sample and scores the engine.

    Predictions are recorded on the samples as a side effect.
    """

    def run(self, engine: NetworkEngine, samples: Sequence[Sample]) -> EvaluationReport:
        labelled = [s for s in samples if s.label is not None]
        y_true = [s.label for s in labelled]
        y_pred = [engine.predict(s) for s in labelled]
        return EvaluationReport(
            accuracy=accuracy(y_true, y_pred),
            count=len(labelled),
            confusion=confusion_matrix(y_true, y_pred, num_classes=engine.topology.output_size),
        )
