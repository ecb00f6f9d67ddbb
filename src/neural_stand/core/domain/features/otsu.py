from __future__ import annotations

import numpy as np


def intensity_histogram(gray: np.ndarray) -> np.ndarray:
    """256-bin histogram of an integer grayscale raster."""

    values = np.clip(np.asarray(gray).astype(np.int64).ravel(), 0, 255)
    return np.bincount(values, minlength=256)


def otsu_threshold(gray: np.ndarray) -> int:
    """Global threshold maximizing the between-class variance.

    The dark class is every intensity below the returned value, so
    `gray < otsu_threshold(gray)` is the ink mask. Ties keep the first
    maximum. A raster with a single populated level has no split and gets 0.
    """

    hist = intensity_histogram(gray)
    total = int(hist.sum())
    if total == 0:
        return 0

    sum_all = float(np.dot(np.arange(256), hist))
    sum_dark = 0.0
    count_dark = 0
    best_variance = 0.0
    threshold = 0

    for t in range(1, 256):
        count_dark += int(hist[t - 1])
        sum_dark += (t - 1) * float(hist[t - 1])
        if count_dark == 0:
            continue
        count_light = total - count_dark
        if count_light == 0:
            break

        w_dark = count_dark / total
        w_light = count_light / total
        mean_dark = sum_dark / count_dark
        mean_light = (sum_all - sum_dark) / count_light
        variance = w_dark * w_light * (mean_dark - mean_light) ** 2
        if variance > best_variance:
            best_variance = variance
            threshold = t

    return threshold
