from __future__ import annotations

from dataclasses import dataclass

from neural_stand.core.domain.entities.model import Activation, EngineConfig, UpdateConvention


@dataclass(frozen=True)
class TrainCommand:
    """Intent to train a classifier."""

    epochs: int = 100
    seed: int = 0

    # Stop once validation error is at or below this value (and accuracy is high).
    acceptable_error: float = 0.05
    parallel: bool = False

    # Default model: one hidden layer over the extracted features
    hidden_sizes: tuple[int, ...] = (64,)
    activation: Activation = "sigmoid"
    update_convention: UpdateConvention = "subtract"

    # Optimizer (momentum SGD with L2 weight decay)
    learning_rate: float = 0.1
    momentum: float = 0.9
    weight_decay: float = 1e-5
    batch_size: int = 16

    # Early stopping: stop when validation error hasn't improved for this many epochs.
    early_stopping_patience: int = 15

    def engine_config(self) -> EngineConfig:
        return EngineConfig(
            activation=self.activation,
            update_convention=self.update_convention,
            learning_rate=self.learning_rate,
            momentum=self.momentum,
            weight_decay=self.weight_decay,
            batch_size=self.batch_size,
            early_stopping_patience=self.early_stopping_patience,
        )
