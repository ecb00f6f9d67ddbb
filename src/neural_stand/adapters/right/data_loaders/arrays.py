from __future__ import annotations

import numpy as np

from neural_stand.core.domain.entities.base import DatasetSplit, Sample
from neural_stand.core.domain.entities.dataset import DatasetInfo
from neural_stand.core.ports.dataset_provider import DatasetProviderPort


class ArrayDatasetProvider(DatasetProviderPort):
    """Wraps in-memory feature arrays.

    x arrays have shape (n, feature_length); y arrays hold integer class labels.
    The test split is optional.
    """

    def __init__(
        self,
        *,
        x_train: np.ndarray,
        y_train: np.ndarray,
        x_test: np.ndarray | None = None,
        y_test: np.ndarray | None = None,
        num_classes: int | None = None,
        class_names: tuple[str, ...] | None = None,
    ) -> None:
        x_train = np.asarray(x_train, dtype=np.float64)
        y_train = np.asarray(y_train, dtype=np.int64)
        if x_train.ndim != 2 or len(x_train) != len(y_train):
            raise ValueError(
                f"x_train must be (n, d) and match y_train, got {x_train.shape} / {y_train.shape}"
            )
        if (x_test is None) != (y_test is None):
            raise ValueError("x_test and y_test must be given together")

        if num_classes is None:
            num_classes = int(y_train.max()) + 1 if len(y_train) else 1

        self._splits: dict[str, tuple[np.ndarray, np.ndarray]] = {"train": (x_train, y_train)}
        if x_test is not None:
            self._splits["test"] = (
                np.asarray(x_test, dtype=np.float64),
                np.asarray(y_test, dtype=np.int64),
            )

        self._info = DatasetInfo(
            num_classes=num_classes,
            feature_length=int(x_train.shape[1]),
            train_size=len(x_train),
            test_size=len(self._splits["test"][0]) if "test" in self._splits else 0,
            class_names=class_names,
        )

    @property
    def info(self) -> DatasetInfo:
        return self._info

    def get_samples(self, *, split: DatasetSplit) -> list[Sample]:
        if split not in self._splits:
            return []
        x, y = self._splits[split]
        n = self._info.num_classes
        return [Sample.of(row.tolist(), int(label), n) for row, label in zip(x, y)]
