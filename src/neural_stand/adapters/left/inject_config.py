from __future__ import annotations

from typing import Callable, Optional

import inject

from neural_stand.core.ports.dataset_provider import DatasetProviderPort
from neural_stand.core.ports.metrics_sink import MetricsSinkPort
from neural_stand.core.use_cases.evaluate_classifier import EvaluateClassifierUseCase
from neural_stand.core.use_cases.train_classifier import TrainClassifierUseCase


def build_bindings(
    *,
    dataset_provider: DatasetProviderPort,
    metrics_sink: Optional[MetricsSinkPort] = None,
) -> Callable[[inject.Binder], None]:
    """Wire the use cases for one run and return the binder callable.

    The use cases are built here, once; the binder only registers them.
    """

    evaluator = EvaluateClassifierUseCase()
    trainer = TrainClassifierUseCase(
        dataset_provider=dataset_provider,
        metrics_sink=metrics_sink,
        evaluator=evaluator,
    )

    def bind(binder: inject.Binder) -> None:
        binder.bind(DatasetProviderPort, dataset_provider)
        binder.bind(EvaluateClassifierUseCase, evaluator)
        binder.bind(TrainClassifierUseCase, trainer)
        if metrics_sink is not None:
            binder.bind(MetricsSinkPort, metrics_sink)

    return bind


def configure_injections(
    *,
    dataset_provider: DatasetProviderPort,
    metrics_sink: Optional[MetricsSinkPort] = None,
) -> None:
    """(Re)configure the global injector; earlier bindings are dropped."""

    inject.configure(
        build_bindings(dataset_provider=dataset_provider, metrics_sink=metrics_sink),
        clear=True,
    )
