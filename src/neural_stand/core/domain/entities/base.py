from __future__ import annotations

from collections.abc import Sequence
from dataclasses import FrozenInstanceError, dataclass, field
from typing import Literal

from neural_stand.core.domain.errors.training import ConfigurationError

__all__ = ["DatasetSplit", "Sample"]

DatasetSplit = Literal["train", "test"]

_READ_ONLY = frozenset({"features", "num_classes", "label"})


@dataclass(eq=False)
class Sample:
    """One feature vector with its (optional) class label.

    `features`, `num_classes` and `label` are read-only once the sample is
    built; only the prediction fields are written, by `NetworkEngine.predict`.
    `label` is None for unlabelled input (e.g. a camera frame).
    """

    features: tuple[float, ...]
    num_classes: int
    label: int | None = None
    recognized_class: int | None = field(default=None, init=False)
    confidences: tuple[float, ...] | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        self.features = tuple(float(v) for v in self.features)
        if self.num_classes < 1:
            raise ConfigurationError(f"num_classes must be >= 1, got {self.num_classes}")
        if self.label is not None:
            self.label = int(self.label)
            if not 0 <= self.label < self.num_classes:
                raise ConfigurationError(
                    f"label {self.label} outside [0, {self.num_classes})"
                )
        object.__setattr__(self, "_sealed", True)

    def __setattr__(self, name: str, value: object) -> None:
        if name in _READ_ONLY and getattr(self, "_sealed", False):
            raise FrozenInstanceError(f"cannot assign to field {name!r}")
        object.__setattr__(self, name, value)

    @classmethod
    def of(cls, features: Sequence[float], label: int | None, num_classes: int) -> Sample:
        return cls(features=tuple(features), num_classes=num_classes, label=label)

    @property
    def target(self) -> tuple[float, ...]:
        """One-hot training signal (all zeros when the label is unknown)."""

        return tuple(
            1.0 if self.label is not None and i == self.label else 0.0
            for i in range(self.num_classes)
        )

    def is_correct(self) -> bool:
        return self.label is not None and self.recognized_class == self.label
