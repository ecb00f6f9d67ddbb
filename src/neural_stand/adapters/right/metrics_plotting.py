from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

# Default panels: one per quantity, each overlaying train and validation.
DEFAULT_PANELS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("loss", ("train/loss", "valid/loss")),
    ("accuracy", ("train/acc", "valid/acc")),
    ("learning rate", ("lr",)),
)

_X_AXES = ("epoch", "step")


@dataclass
class TrainingRun:
    """One JSONL training log split into per-epoch rows and events."""

    name: str
    rows: list[tuple[int, dict[str, Any]]] = field(default_factory=list)
    events: list[dict[str, Any]] = field(default_factory=list)

    @property
    def stop_reason(self) -> str | None:
        for event in reversed(self.events):
            if event.get("event") == "run_end":
                return event.get("stop_reason")
        return None

    def metric_names(self) -> set[str]:
        return {k for _, row in self.rows for k, v in row.items() if _is_number(v) and k != "epoch"}

    def curve(self, metric: str, *, x_axis: str = "epoch") -> tuple[list[float], list[float]]:
        points = []
        for step, row in self.rows:
            y = row.get(metric)
            x = row.get("epoch") if x_axis == "epoch" else step
            if _is_number(x) and _is_number(y) and math.isfinite(y):
                points.append((float(x), float(y)))
        points.sort()
        return [p[0] for p in points], [p[1] for p in points]

    def best_epoch(self) -> float | None:
        """Epoch with the lowest validation loss."""

        xs, ys = self.curve("valid/loss")
        if not ys:
            return None
        return xs[ys.index(min(ys))]


def _is_number(x: Any) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool)


def load_training_run(path: str | Path, *, name: str | None = None) -> TrainingRun:
    """Parse a log written by JsonlFileMetricsSink.

    Lines that are blank, not JSON or not `{"step", "metrics"}` records are
    ignored. The run is named after the topology of its `run_start` event
    unless `name` is given.
    """

    p = Path(path)
    run = TrainingRun(name=name or p.stem)
    with p.open("r", encoding="utf-8") as f:
        for line in f:
            try:
                rec = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(rec, dict) or not isinstance(rec.get("metrics"), dict):
                continue
            step = rec.get("step")
            if not _is_number(step):
                continue

            metrics = rec["metrics"]
            if "event" in metrics:
                run.events.append(metrics)
                topology = metrics.get("topology")
                if name is None and metrics["event"] == "run_start" and isinstance(topology, str):
                    run.name = topology
            else:
                run.rows.append((int(step), metrics))
    return run


def plot_panels(
    runs: list[TrainingRun],
    *,
    metrics: Iterable[str] | None = None,
    group_by: str = "suffix",
) -> list[tuple[str, list[str]]]:
    """Decide which metrics go on which subplot.

    Without explicit metrics the default loss / accuracy / lr panels are used.
    Explicit metrics are grouped by their suffix (`train/loss` with
    `valid/loss`) or, with group_by="none", plotted one per panel.
    """

    group_by = group_by.strip().lower()
    if group_by not in ("suffix", "none"):
        raise ValueError(f"group_by must be one of: suffix, none (got {group_by!r})")

    available: set[str] = set()
    for run in runs:
        available |= run.metric_names()

    if not metrics:
        return [
            (title, [m for m in names if m in available])
            for title, names in DEFAULT_PANELS
            if any(m in available for m in names)
        ]

    panels: dict[str, list[str]] = {}
    for m in metrics:
        m = m.strip()
        if m in available:
            key = m if group_by == "none" else m.rsplit("/", 1)[-1]
            panels.setdefault(key, []).append(m)
    return list(panels.items())


def plot_metrics_from_logs(
    *,
    log_paths: list[str | Path],
    out_path: str | Path | None,
    show: bool,
    x_axis: str = "epoch",
    metrics: list[str] | None = None,
    group_by: str = "suffix",
    title: str | None = None,
) -> Path | None:
    """Plot training curves of one or more runs.

    The epoch with the lowest validation loss is marked on every panel.
    If show is False, out_path must be provided and the figure will be saved.
    Returns the saved path (or None if nothing saved).
    """

    if not show and not out_path:
        raise ValueError("out_path is required when show=False")
    if not log_paths:
        raise ValueError("No log files provided")
    x_axis = x_axis.strip().lower()
    if x_axis not in _X_AXES:
        raise ValueError(f"x_axis must be one of: {', '.join(_X_AXES)} (got {x_axis!r})")

    runs = [load_training_run(p) for p in log_paths]
    panels = plot_panels(runs, metrics=metrics, group_by=group_by)
    if not panels:
        raise ValueError("No matching numeric metrics found to plot")

    # Choose backend before importing pyplot.
    import matplotlib

    if not show:
        matplotlib.use("Agg", force=True)

    import matplotlib.pyplot as plt  # pylint: disable=import-error

    fig, axes = plt.subplots(
        nrows=len(panels),
        ncols=1,
        figsize=(9.0, max(3.0, 2.6 * len(panels))),
        sharex=True,
        squeeze=False,
        constrained_layout=True,
    )

    for ax, (panel_title, names) in zip(axes[:, 0], panels):
        for run in runs:
            label_prefix = f"{run.name}: " if len(runs) > 1 else ""
            for metric in names:
                xs, ys = run.curve(metric, x_axis=x_axis)
                if len(xs) < 2:
                    continue
                ax.plot(xs, ys, marker="o", markersize=2.0, linewidth=1.4, label=label_prefix + metric)
            best = run.best_epoch()
            if best is not None and x_axis == "epoch":
                ax.axvline(best, color="grey", linestyle=":", linewidth=1.0)
        ax.set_title(panel_title)
        ax.grid(True, alpha=0.3)
        ax.legend(loc="best", fontsize=8)

    axes[-1, 0].set_xlabel(x_axis)
    if title is None and len(runs) == 1:
        reason = runs[0].stop_reason
        title = f"{runs[0].name} ({reason})" if reason else runs[0].name
    if title:
        fig.suptitle(title)

    saved: Path | None = None
    if out_path:
        saved = Path(out_path)
        saved.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(saved, dpi=130)

    if show:
        plt.show()
    else:
        plt.close(fig)

    return saved
