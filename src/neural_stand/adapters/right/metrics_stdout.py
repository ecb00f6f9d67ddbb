from __future__ import annotations

from typing import Any

from neural_stand.core.ports.metrics_sink import MetricsSinkPort


def _fmt(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.6g}"
    return str(value)


class StdoutMetricsSink(MetricsSinkPort):
    """Prints one line per record; `every` thins out per-epoch rows (events always print)."""

    def __init__(self, *, every: int = 1) -> None:
        self._every = max(1, int(every))

    def log(self, *, step: int, metrics: dict[str, Any]) -> None:
        if "event" not in metrics and step % self._every != 0:
            return
        items = ", ".join(f"{k}={_fmt(v)}" for k, v in metrics.items())
        print(f"[step={step}] {items}")
