from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum

from neural_stand.core.domain.entities.model import EngineConfig


class SessionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    EARLY_STOPPED = "early_stopped"
    TARGET_REACHED = "target_reached"
    EPOCHS_EXHAUSTED = "epochs_exhausted"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (SessionState.IDLE, SessionState.RUNNING)


@dataclass(frozen=True)
class EpochStats:
    epoch: int
    train_loss: float
    train_accuracy: float
    valid_loss: float
    valid_accuracy: float
    learning_rate: float
    best_valid_loss: float
    epochs_since_improvement: int
    elapsed: float


@dataclass(frozen=True)
class TrainingSummary:
    stop_reason: SessionState
    epochs_run: int
    best_valid_loss: float
    final_accuracy: float
    train_size: int
    valid_size: int
    elapsed: float


@dataclass
class TrainingSession:
    """Mutable state of one `train_on_dataset` call.

    Lives only while the call runs. Terminal states are final: a new call
    starts a new session.
    """

    config: EngineConfig
    learning_rate: float = 0.0
    best_error: float = math.inf
    epochs_since_improvement: int = 0
    epoch: int = 0
    state: SessionState = field(default=SessionState.IDLE)

    def start(self) -> None:
        if self.state is not SessionState.IDLE:
            raise RuntimeError(f"session already {self.state.value}")
        self.learning_rate = self.config.learning_rate
        self.state = SessionState.RUNNING

    def finish(self, state: SessionState) -> None:
        if self.state is not SessionState.RUNNING or not state.is_terminal:
            raise RuntimeError(f"cannot move from {self.state.value} to {state.value}")
        self.state = state

    def record_validation(self, valid_error: float) -> bool:
        """Adapt the learning rate to the epoch's validation error.

        Returns True when the error improved on the best seen by more than the
        relative margin.
        """

        cfg = self.config
        self.epoch += 1
        if valid_error < self.best_error * (1.0 - cfg.improvement_margin):
            self.best_error = valid_error
            self.epochs_since_improvement = 0
            self.learning_rate = self._clamp(self.learning_rate * cfg.lr_growth)
            return True

        self.epochs_since_improvement += 1
        if self.epochs_since_improvement >= cfg.patience:
            self.learning_rate = self._clamp(self.learning_rate * cfg.lr_shrink)
        return False

    def decay(self) -> None:
        self.learning_rate = self._clamp(self.learning_rate * self.config.lr_decay)

    @property
    def should_stop_early(self) -> bool:
        return self.epochs_since_improvement >= self.config.early_stopping_patience

    def target_reached(self, valid_accuracy: float, valid_error: float, acceptable_error: float) -> bool:
        return valid_accuracy >= self.config.target_accuracy and valid_error < acceptable_error

    def _clamp(self, lr: float) -> float:
        return min(max(lr, self.config.lr_floor), self.config.lr_ceiling)
