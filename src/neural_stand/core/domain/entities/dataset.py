from __future__ import annotations

from dataclasses import dataclass

__all__ = ["DatasetInfo"]


@dataclass(frozen=True)
class DatasetInfo:
    """Metadata required by the core training loop."""

    num_classes: int
    feature_length: int
    train_size: int | None = None
    test_size: int | None = None
    class_names: tuple[str, ...] | None = None

    def class_name(self, index: int | None) -> str:
        if index is None:
            return "Undef"
        if self.class_names and 0 <= index < len(self.class_names):
            return self.class_names[index]
        return str(index)
