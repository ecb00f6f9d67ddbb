from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from neural_stand.core.domain.commands.train import TrainCommand
from neural_stand.core.domain.entities.model import Topology
from neural_stand.core.domain.errors.training import ConfigurationError, TrainingError
from neural_stand.core.domain.network.engine import NetworkEngine
from neural_stand.core.domain.network.session import EpochStats, SessionState, TrainingSummary
from neural_stand.core.domain.utils.rng import make_rng
from neural_stand.core.ports.dataset_provider import DatasetProviderPort
from neural_stand.core.ports.metrics_sink import MetricsSinkPort
from neural_stand.core.ports.training_observer import ProgressCallback
from neural_stand.core.use_cases.evaluate_classifier import EvaluateClassifierUseCase, EvaluationReport

_STOP_EVENTS = {
    SessionState.EARLY_STOPPED: "early_stop",
    SessionState.TARGET_REACHED: "target_reached",
    SessionState.CANCELLED: "cancelled",
}


@dataclass(frozen=True)
class TrainResult:
    engine: NetworkEngine
    best_error: float
    history: list[dict[str, Any]]
    summary: TrainingSummary | None
    test_accuracy: float | None = None
    test_report: EvaluationReport | None = None

    @property
    def cancelled(self) -> bool:
        """True only when the session itself stopped on a cancel request."""

        return self.summary is not None and self.summary.stop_reason is SessionState.CANCELLED


@dataclass
class _HistoryRecorder:
    """Turns engine callbacks into history rows and metrics records."""

    metrics: MetricsSinkPort | None
    history: list[dict[str, Any]] = field(default_factory=list)
    summary: TrainingSummary | None = None

    def on_epoch_end(self, stats: EpochStats) -> None:
        row = {
            "epoch": stats.epoch,
            "train/loss": stats.train_loss,
            "train/acc": stats.train_accuracy,
            "valid/loss": stats.valid_loss,
            "valid/acc": stats.valid_accuracy,
            "best/loss": stats.best_valid_loss,
            "lr": stats.learning_rate,
            "stale_epochs": stats.epochs_since_improvement,
            "elapsed": stats.elapsed,
        }
        self.history.append(row)
        if self.metrics:
            self.metrics.log(step=stats.epoch, metrics=row)

    def on_training_end(self, summary: TrainingSummary) -> None:
        self.summary = summary
        if not self.metrics:
            return
        event = _STOP_EVENTS.get(summary.stop_reason)
        if event:
            self.metrics.log(
                step=summary.epochs_run,
                metrics={
                    "event": event,
                    "epoch": summary.epochs_run,
                    "best/loss": summary.best_valid_loss,
                },
            )
        self.metrics.log(
            step=summary.epochs_run,
            metrics={
                "event": "run_end",
                "stop_reason": summary.stop_reason.value,
                "epochs_run": summary.epochs_run,
                "best/loss": summary.best_valid_loss,
                "final/acc": summary.final_accuracy,
                "train_size": summary.train_size,
                "valid_size": summary.valid_size,
                "elapsed": summary.elapsed,
            },
        )


class TrainClassifierUseCase:
    def __init__(
        self,
        *,
        dataset_provider: DatasetProviderPort,
        metrics_sink: MetricsSinkPort | None = None,
        evaluator: EvaluateClassifierUseCase | None = None,
    ) -> None:
        self._dataset = dataset_provider
        self._metrics = metrics_sink
        self._evaluator = evaluator or EvaluateClassifierUseCase()

    def build_engine(self, command: TrainCommand) -> NetworkEngine:
        info = self._dataset.info
        if info.num_classes < 1:
            raise ConfigurationError(f"num_classes must be >= 1, got {info.num_classes}")
        topology = Topology.build(info.feature_length, command.hidden_sizes, info.num_classes)
        return NetworkEngine(
            topology,
            config=command.engine_config(),
            rng=make_rng(command.seed),
            input_size=info.feature_length,
            num_classes=info.num_classes,
        )

    def run(
        self,
        command: TrainCommand,
        *,
        engine: NetworkEngine | None = None,
        progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> TrainResult:
        engine = engine or self.build_engine(command)
        samples = self._dataset.get_samples(split="train")
        if not samples:
            raise TrainingError("dataset provider returned no training samples")

        recorder = _HistoryRecorder(metrics=self._metrics)
        if self._metrics:
            self._metrics.log(
                step=0,
                metrics={
                    "event": "run_start",
                    "command": "train",
                    "topology": str(engine.topology),
                    "samples": len(samples),
                    "epochs": command.epochs,
                    "lr": command.learning_rate,
                    "momentum": command.momentum,
                    "weight_decay": command.weight_decay,
                    "seed": command.seed,
                },
            )

        best_error = engine.train_on_dataset(
            samples,
            command.epochs,
            command.acceptable_error,
            command.parallel,
            progress=progress,
            observer=recorder,
            cancel_event=cancel_event,
        )

        test_accuracy: float | None = None
        report: EvaluationReport | None = None
        test_samples = self._dataset.get_samples(split="test")
        if test_samples:
            report = self._evaluator.run(engine, test_samples)
            test_accuracy = report.accuracy
            if self._metrics:
                step = recorder.summary.epochs_run if recorder.summary else 0
                self._metrics.log(
                    step=step,
                    metrics={"event": "test_eval", "test/acc": report.accuracy, "test/n": report.count},
                )

        return TrainResult(
            engine=engine,
            best_error=best_error,
            history=recorder.history,
            summary=recorder.summary,
            test_accuracy=test_accuracy,
            test_report=report,
        )
