from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from neural_stand.core.domain.errors.training import ConfigurationError
from neural_stand.core.domain.features.otsu import otsu_threshold

# ITU-R 601 style luma weights used by the stand.
LUMA_WEIGHTS = (0.3, 0.59, 0.11)


@dataclass(frozen=True)
class ExtractorConfig:
    canvas_width: int = 200
    canvas_height: int = 200
    grid_cols: int = 10
    grid_rows: int = 10
    profile_bands: int = 40
    output_length: int = 200

    def __post_init__(self) -> None:
        if self.canvas_width < 1 or self.canvas_height < 1:
            raise ConfigurationError("canvas size must be positive")
        if self.grid_cols < 1 or self.grid_rows < 1 or self.profile_bands < 1:
            raise ConfigurationError("grid and profile band counts must be positive")
        if self.grid_cols > self.canvas_width or self.grid_rows > self.canvas_height:
            raise ConfigurationError("grid cannot be finer than the canvas")
        if self.output_length < 1:
            raise ConfigurationError(f"output_length must be >= 1, got {self.output_length}")


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Collapse a raster to integer luma in [0, 255].

    Accepts HxW, HxWx3 and HxWx4 (alpha ignored). Float rasters whose values
    fit in [0, 1] are treated as normalized and scaled up. NaN pixels read as
    black, infinities saturate.
    """

    arr = np.asarray(image)
    if arr.ndim == 3:
        if arr.shape[2] < 3:
            arr = arr[:, :, 0]
        else:
            rgb = np.nan_to_num(arr[:, :, :3].astype(np.float64), nan=0.0, posinf=255.0, neginf=0.0)
            if arr.dtype.kind == "f" and rgb.size and rgb.max() <= 1.0:
                rgb = rgb * 255.0
            r, g, b = LUMA_WEIGHTS
            return np.clip(rgb[:, :, 0] * r + rgb[:, :, 1] * g + rgb[:, :, 2] * b, 0, 255).astype(np.int64)
    if arr.ndim != 2:
        raise ConfigurationError(f"expected a 2-D or 3-D raster, got shape {arr.shape}")

    gray = np.nan_to_num(arr.astype(np.float64), nan=0.0, posinf=255.0, neginf=0.0)
    if arr.dtype.kind == "f" and gray.size and gray.max() <= 1.0:
        gray = gray * 255.0
    return np.clip(gray, 0, 255).astype(np.int64)


def resample_nearest(raster: np.ndarray, height: int, width: int) -> np.ndarray:
    """Nearest-neighbour resize by inverse projection of target coordinates."""

    src_h, src_w = raster.shape[:2]
    rows = np.arange(height) * src_h // height
    cols = np.arange(width) * src_w // width
    return raster[rows[:, None], cols[None, :]]


class FeatureExtractor:
    """Turns a raw raster into a fixed-length feature vector.

    Layout of the vector (default config): 10x10 grid ink densities, 40 row
    profiles, 40 column profiles, vertical symmetry, bounding-box aspect ratio,
    zero padding up to `output_length`.
    """

    def __init__(self, config: ExtractorConfig | None = None) -> None:
        self._config = config or ExtractorConfig()

    @property
    def config(self) -> ExtractorConfig:
        return self._config

    @property
    def output_length(self) -> int:
        return self._config.output_length

    def ink_mask(self, image: np.ndarray) -> np.ndarray:
        """Canvas-sized boolean mask of pixels darker than the Otsu threshold."""

        cfg = self._config
        gray = to_grayscale(image)
        if gray.size == 0:
            return np.zeros((cfg.canvas_height, cfg.canvas_width), dtype=bool)
        canvas = resample_nearest(gray, cfg.canvas_height, cfg.canvas_width)
        return canvas < otsu_threshold(canvas)

    def normalize(self, image: np.ndarray) -> np.ndarray | None:
        """Stretch the ink bounding box over the whole canvas.

        Returns None when the image has no ink at all.
        """

        mask = self.ink_mask(image)
        normalized, _ = self._normalize_mask(mask)
        return normalized

    def extract(self, image: np.ndarray) -> tuple[float, ...]:
        cfg = self._config
        mask = self.ink_mask(image)
        normalized, box = self._normalize_mask(mask)
        if normalized is None:
            return (0.0,) * cfg.output_length

        box_w, box_h = box
        features: list[float] = []
        features.extend(self._grid_densities(normalized))
        features.extend(self._row_profiles(normalized))
        features.extend(self._column_profiles(normalized))
        features.append(self._vertical_symmetry(normalized))
        features.append(box_w / box_h)
        return self._fit_length(features)

    def extract_projection_counts(self, image: np.ndarray) -> tuple[float, ...]:
        """Ink count per canvas column followed by ink count per canvas row.

        No bounding-box stretch; the vector has `canvas_width + canvas_height` entries.
        """

        mask = self.ink_mask(image)
        cols = mask.sum(axis=0).astype(float)
        rows = mask.sum(axis=1).astype(float)
        return tuple(cols.tolist()) + tuple(rows.tolist())

    def _normalize_mask(self, mask: np.ndarray) -> tuple[np.ndarray | None, tuple[int, int]]:
        ys, xs = np.nonzero(mask)
        if len(xs) == 0:
            return None, (0, 0)

        cfg = self._config
        min_x, max_x = int(xs.min()), int(xs.max())
        min_y, max_y = int(ys.min()), int(ys.max())
        box_w = max_x - min_x + 1
        box_h = max_y - min_y + 1
        src_cols = min_x + np.arange(cfg.canvas_width) * box_w // cfg.canvas_width
        src_rows = min_y + np.arange(cfg.canvas_height) * box_h // cfg.canvas_height
        return mask[src_rows[:, None], src_cols[None, :]], (box_w, box_h)

    def _grid_densities(self, canvas: np.ndarray) -> list[float]:
        cfg = self._config
        cell_h = cfg.canvas_height // cfg.grid_rows
        cell_w = cfg.canvas_width // cfg.grid_cols
        area = cell_h * cell_w
        out = []
        for gy in range(cfg.grid_rows):
            for gx in range(cfg.grid_cols):
                cell = canvas[gy * cell_h:(gy + 1) * cell_h, gx * cell_w:(gx + 1) * cell_w]
                out.append(int(cell.sum()) / area)
        return out

    def _row_profiles(self, canvas: np.ndarray) -> list[float]:
        cfg = self._config
        rows = [int(i * cfg.canvas_height / cfg.profile_bands) for i in range(cfg.profile_bands)]
        return [int(canvas[y, :].sum()) / cfg.canvas_width for y in rows]

    def _column_profiles(self, canvas: np.ndarray) -> list[float]:
        cfg = self._config
        cols = [int(i * cfg.canvas_width / cfg.profile_bands) for i in range(cfg.profile_bands)]
        return [int(canvas[:, x].sum()) / cfg.canvas_height for x in cols]

    @staticmethod
    def _vertical_symmetry(canvas: np.ndarray) -> float:
        half = canvas.shape[1] // 2
        if half == 0:
            return 1.0
        left = canvas[:, :half]
        right = canvas[:, ::-1][:, :half]
        mismatched = int(np.count_nonzero(left != right))
        return 1.0 - mismatched / left.size

    def _fit_length(self, features: list[float]) -> tuple[float, ...]:
        n = self._config.output_length
        if len(features) < n:
            features = features + [0.0] * (n - len(features))
        return tuple(features[:n])
