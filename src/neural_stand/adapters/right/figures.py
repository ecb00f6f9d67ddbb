from __future__ import annotations

import math
from enum import IntEnum

import numpy as np


class FigureType(IntEnum):
    TRIANGLE = 0
    RECTANGLE = 1
    CIRCLE = 2
    SINUSOID = 3


def draw_line(canvas: np.ndarray, x0: int, y0: int, x1: int, y1: int) -> None:
    """Bresenham line, inclusive of both end points. `canvas` is indexed [y, x]."""

    dx = abs(x1 - x0)
    dy = -abs(y1 - y0)
    sx = 1 if x0 < x1 else -1
    sy = 1 if y0 < y1 else -1
    err = dx + dy
    while True:
        canvas[y0, x0] = True
        if x0 == x1 and y0 == y1:
            return
        e2 = 2 * err
        if e2 >= dy:
            err += dy
            x0 += sx
        if e2 <= dx:
            err += dx
            y0 += sy


def render(mask: np.ndarray) -> np.ndarray:
    """Black ink on white paper, as the stand's bitmaps look."""

    return np.where(mask, 0, 255).astype(np.uint8)


class FigureGenerator:
    """Draws jittered outline figures on a square boolean canvas."""

    def __init__(
        self,
        *,
        rng: np.random.Generator,
        size: int = 200,
        figure_size: int = 100,
        size_jitter: int = 50,
        center_jitter: int = 50,
    ) -> None:
        self._rng = rng
        self.size = size
        self.figure_size = figure_size
        self.size_jitter = size_jitter
        self.center_jitter = center_jitter

    def draw(self, figure: FigureType) -> np.ndarray:
        canvas = np.zeros((self.size, self.size), dtype=bool)
        if figure is FigureType.TRIANGLE:
            self._triangle(canvas)
        elif figure is FigureType.RECTANGLE:
            self._rectangle(canvas)
        elif figure is FigureType.CIRCLE:
            self._circle(canvas)
        elif figure is FigureType.SINUSOID:
            self._sinusoid(canvas)
        else:
            raise ValueError(f"cannot draw figure {figure!r}")
        return canvas

    def draw_random(self, figure_count: int = len(FigureType)) -> tuple[np.ndarray, FigureType]:
        figure = FigureType(int(self._rng.integers(0, figure_count)))
        return self.draw(figure), figure

    def _jitter(self, spread: int) -> int:
        half = spread // 2
        if half <= 0:
            return 0
        return int(self._rng.integers(-half, half))

    def _clip(self, v: int) -> int:
        return min(max(v, 0), self.size - 1)

    def _corners(self) -> tuple[int, int, int, int]:
        mid = self.size // 2
        half = self.figure_size // 2
        x0 = self._clip(mid - half + self._jitter(self.size_jitter))
        y0 = self._clip(mid - half + self._jitter(self.size_jitter))
        x1 = self._clip(mid + half + self._jitter(self.size_jitter))
        y1 = self._clip(mid + half + self._jitter(self.size_jitter))
        return x0, y0, x1, y1

    def _triangle(self, canvas: np.ndarray) -> None:
        x0, y0, x1, y1 = self._corners()
        apex = self._clip((x0 + x1) // 2 + self._jitter(self.center_jitter // 2))
        draw_line(canvas, x0, y1, apex, y0)
        draw_line(canvas, apex, y0, x1, y1)
        draw_line(canvas, x1, y1, x0, y1)

    def _rectangle(self, canvas: np.ndarray) -> None:
        x0, y0, x1, y1 = self._corners()
        draw_line(canvas, x0, y0, x1, y0)
        draw_line(canvas, x1, y0, x1, y1)
        draw_line(canvas, x1, y1, x0, y1)
        draw_line(canvas, x0, y1, x0, y0)

    def _circle(self, canvas: np.ndarray) -> None:
        mid = self.size // 2
        cx = mid + self._jitter(self.center_jitter)
        cy = mid + self._jitter(self.center_jitter)
        radius = int(self._rng.integers(self.size // 4, max(self.size // 4 + 1, int(self.size * 0.325))))
        for t in np.arange(0.0, 2 * math.pi, 0.01):
            x = self._clip(int(cx + radius * math.cos(t)))
            y = self._clip(int(cy + radius * math.sin(t)))
            canvas[y, x] = True

    def _sinusoid(self, canvas: np.ndarray) -> None:
        x0, y0, x1, y1 = self._corners()
        amp = (y1 - y0) // 2
        cy = y0 + amp
        for x in np.arange(float(min(x0, x1)), float(max(x0, x1)) + 1e-9, 0.05):
            y = self._clip(round(cy + amp * math.sin(0.25 * x)))
            canvas[y, self._clip(int(x))] = True
