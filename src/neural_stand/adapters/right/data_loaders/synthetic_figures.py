from __future__ import annotations

from typing import Literal

import numpy as np

from neural_stand.adapters.right.figures import FigureGenerator, FigureType, render
from neural_stand.core.domain.entities.base import DatasetSplit, Sample
from neural_stand.core.domain.entities.dataset import DatasetInfo
from neural_stand.core.domain.errors.training import ConfigurationError
from neural_stand.core.domain.features.extractor import FeatureExtractor
from neural_stand.core.domain.utils.rng import make_rng
from neural_stand.core.ports.dataset_provider import DatasetProviderPort

FeatureKind = Literal["grid", "projection"]

CLASS_NAMES = tuple(f.name.lower() for f in FigureType)


class SyntheticFiguresDatasetProvider(DatasetProviderPort):
    """Generated outline figures passed through the feature extractor.

    Each split holds `size // num_classes` figures per class. "grid" uses the
    bounding-box normalized feature vector, "projection" the raw row/column
    ink counts.
    """

    def __init__(
        self,
        *,
        num_classes: int = 4,
        train_size: int = 200,
        test_size: int = 80,
        seed: int = 0,
        feature_kind: FeatureKind = "grid",
        extractor: FeatureExtractor | None = None,
    ) -> None:
        if not 1 <= num_classes <= len(FigureType):
            raise ConfigurationError(f"num_classes must be in [1, {len(FigureType)}], got {num_classes}")
        if feature_kind not in ("grid", "projection"):
            raise ConfigurationError(f"unknown feature kind {feature_kind!r}")

        self._extractor = extractor or FeatureExtractor()
        self._feature_kind = feature_kind
        self._sizes = {"train": train_size, "test": test_size}
        self._generator = FigureGenerator(rng=make_rng(seed))
        self._cache: dict[str, list[Sample]] = {}

        cfg = self._extractor.config
        if feature_kind == "grid":
            feature_length = cfg.output_length
        else:
            feature_length = cfg.canvas_width + cfg.canvas_height
        self._info = DatasetInfo(
            num_classes=num_classes,
            feature_length=feature_length,
            train_size=(train_size // num_classes) * num_classes,
            test_size=(test_size // num_classes) * num_classes,
            class_names=CLASS_NAMES[:num_classes],
        )

    @property
    def info(self) -> DatasetInfo:
        return self._info

    def get_samples(self, *, split: DatasetSplit) -> list[Sample]:
        if split not in self._cache:
            self._cache[split] = self._generate(self._sizes.get(split, 0))
        return list(self._cache[split])

    def sample_for(self, figure: FigureType) -> tuple[Sample, np.ndarray]:
        """One labelled sample plus the rendered raster it came from."""

        image = render(self._generator.draw(figure))
        return Sample.of(self._features(image), int(figure), self._info.num_classes), image

    def _generate(self, size: int) -> list[Sample]:
        n = self._info.num_classes
        samples = []
        for label in range(n):
            for _ in range(size // n):
                sample, _ = self.sample_for(FigureType(label))
                samples.append(sample)
        return samples

    def _features(self, image: np.ndarray) -> tuple[float, ...]:
        if self._feature_kind == "projection":
            return self._extractor.extract_projection_counts(image)
        return self._extractor.extract(image)
