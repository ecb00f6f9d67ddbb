from __future__ import annotations

import numpy as np
import pytest

from neural_stand.core.domain.entities.base import Sample


def make_clusters(
    *,
    per_class: int = 30,
    noise: float = 0.05,
    seed: int = 0,
) -> list[Sample]:
    """Three well separated 4-d clusters with one-hot-like centers."""

    centers = np.array(
        [
            [0.9, 0.1, 0.2, 0.1],
            [0.1, 0.9, 0.1, 0.2],
            [0.2, 0.1, 0.9, 0.8],
        ]
    )
    rng = np.random.default_rng(seed)
    samples = []
    for label, center in enumerate(centers):
        for _ in range(per_class):
            x = center + rng.uniform(-noise, noise, size=center.shape)
            samples.append(Sample.of(x.tolist(), label, 3))
    return samples


@pytest.fixture
def clusters() -> list[Sample]:
    return make_clusters()


@pytest.fixture
def square_image() -> np.ndarray:
    """White 200x200 page with a black square outline away from the center."""

    img = np.full((200, 200), 255, dtype=np.uint8)
    img[40:101, 30] = 0
    img[40:101, 90] = 0
    img[40, 30:91] = 0
    img[100, 30:91] = 0
    return img
