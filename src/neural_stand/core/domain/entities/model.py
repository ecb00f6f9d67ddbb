from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from neural_stand.core.domain.errors.training import ConfigurationError

__all__ = [
    "Activation",
    "EngineConfig",
    "InitScheme",
    "Topology",
    "UpdateConvention",
]

Activation = Literal["sigmoid", "leaky_relu"]

# "subtract": weight -= delta, where delta follows the loss gradient.
# "add":      weight += delta, where delta follows the error signal (target - output).
UpdateConvention = Literal["subtract", "add"]

InitScheme = Literal["glorot", "he"]


@dataclass(frozen=True)
class Topology:
    """Ordered layer widths `[inputs, hidden..., classes]`."""

    layers: tuple[int, ...]

    def __post_init__(self) -> None:
        layers = tuple(int(n) for n in self.layers)
        object.__setattr__(self, "layers", layers)
        if len(layers) < 3:
            raise ConfigurationError(
                f"topology needs an input, at least one hidden and an output layer, got {list(layers)}"
            )
        if any(n < 1 for n in layers):
            raise ConfigurationError(f"layer widths must be positive, got {list(layers)}")

    @classmethod
    def build(cls, input_size: int, hidden_sizes: Sequence[int], num_classes: int) -> Topology:
        return cls(layers=(input_size, *hidden_sizes, num_classes))

    @property
    def input_size(self) -> int:
        return self.layers[0]

    @property
    def output_size(self) -> int:
        return self.layers[-1]

    @property
    def weight_count(self) -> int:
        return sum(a * b for a, b in zip(self.layers[:-1], self.layers[1:]))

    def __str__(self) -> str:
        return " -> ".join(str(n) for n in self.layers)


@dataclass(frozen=True)
class EngineConfig:
    """Every knob of a NetworkEngine.

    Defaults reproduce the stand's reference engine (sigmoid units, momentum
    0.9, adaptive learning rate between 0.001 and 0.5, early stop after 15
    stale epochs).
    """

    activation: Activation = "sigmoid"
    update_convention: UpdateConvention = "subtract"
    init_scheme: InitScheme = "glorot"
    normalize_input: bool = True

    # Regularizing noise on hidden activations (training mode only).
    hidden_noise: float = 0.005
    noise_probability: float = 0.1

    learning_rate: float = 0.1
    momentum: float = 0.9
    weight_decay: float = 1e-5
    batch_size: int = 16
    validation_fraction: float = 0.2

    # Adaptive learning rate
    lr_growth: float = 1.05
    lr_ceiling: float = 0.5
    lr_shrink: float = 0.7
    lr_floor: float = 0.001
    lr_decay: float = 0.995
    improvement_margin: float = 0.005
    patience: int = 5

    # Stopping rules
    early_stopping_patience: int = 15
    target_accuracy: float = 0.95
    max_single_sample_iterations: int = 5000

    loss_epsilon: float = 1e-6
    workers: int | None = None

    def __post_init__(self) -> None:
        if self.activation not in ("sigmoid", "leaky_relu"):
            raise ConfigurationError(f"unknown activation {self.activation!r}")
        if self.update_convention not in ("subtract", "add"):
            raise ConfigurationError(f"unknown update convention {self.update_convention!r}")
        if self.init_scheme not in ("glorot", "he"):
            raise ConfigurationError(f"unknown init scheme {self.init_scheme!r}")
        if self.hidden_noise < 0 or not 0.0 <= self.noise_probability <= 1.0:
            raise ConfigurationError("hidden_noise must be >= 0 and noise_probability in [0, 1]")
        if self.momentum < 0 or self.weight_decay < 0:
            raise ConfigurationError("momentum and weight_decay must be >= 0")
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {self.batch_size}")
        if not 0.0 <= self.validation_fraction < 1.0:
            raise ConfigurationError(
                f"validation_fraction must be in [0, 1), got {self.validation_fraction}"
            )
        if not 0.0 <= self.lr_floor <= self.lr_ceiling:
            raise ConfigurationError(
                f"need 0 <= lr_floor <= lr_ceiling, got {self.lr_floor} / {self.lr_ceiling}"
            )
        if not self.lr_floor <= self.learning_rate <= self.lr_ceiling:
            raise ConfigurationError(
                f"learning_rate {self.learning_rate} outside [{self.lr_floor}, {self.lr_ceiling}]"
            )
        if self.lr_growth < 1.0 or not 0.0 < self.lr_shrink <= 1.0 or not 0.0 < self.lr_decay <= 1.0:
            raise ConfigurationError("need lr_growth >= 1 and lr_shrink, lr_decay in (0, 1]")
        if self.patience < 1 or self.early_stopping_patience < 1:
            raise ConfigurationError("patience values must be >= 1")
        if self.max_single_sample_iterations < 1:
            raise ConfigurationError("max_single_sample_iterations must be >= 1")
        if not 0.0 < self.loss_epsilon < 0.5:
            raise ConfigurationError(f"loss_epsilon must be in (0, 0.5), got {self.loss_epsilon}")
        if self.workers is not None and self.workers < 1:
            raise ConfigurationError(f"workers must be >= 1, got {self.workers}")
