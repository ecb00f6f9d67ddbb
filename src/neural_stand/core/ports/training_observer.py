from __future__ import annotations

from typing import Callable, Protocol

from neural_stand.core.domain.network.session import EpochStats, TrainingSummary

# (fractional progress in [0, 1], current validation error, elapsed seconds)
ProgressCallback = Callable[[float, float, float], None]


class TrainingObserverPort(Protocol):
    """Receives per-epoch statistics and the end-of-run summary.

    Called on whatever thread runs the training; implementations must
    redirect to their own execution context if they need one.
    """

    def on_epoch_end(self, stats: EpochStats) -> None: ...

    def on_training_end(self, summary: TrainingSummary) -> None: ...
