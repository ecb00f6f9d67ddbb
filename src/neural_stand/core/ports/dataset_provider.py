from __future__ import annotations

from typing import Protocol

from neural_stand.core.domain.entities.base import DatasetSplit, Sample
from neural_stand.core.domain.entities.dataset import DatasetInfo


class DatasetProviderPort(Protocol):
    """Port for providing labelled feature samples to the core.

    Image loading and feature extraction happen on the adapter side; the core
    only sees fixed-length vectors.
    """

    @property
    def info(self) -> DatasetInfo: ...

    def get_samples(self, *, split: DatasetSplit) -> list[Sample]: ...
