from __future__ import annotations

import json
import math
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from threading import Lock
from typing import Any

import numpy as np

from neural_stand.core.ports.metrics_sink import MetricsSinkPort


def _plain(value: Any) -> Any:
    """Map a metrics value onto strict JSON; non-finite floats become null."""

    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, (np.generic, np.ndarray)):
        value = value.tolist()

    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if value is None or isinstance(value, (bool, int, str)):
        return value
    return str(value)


class JsonlFileMetricsSink(MetricsSinkPort):
    """One JSON object per `log` call:

      {"ts": "...", "step": 12, "run": "baseline", "metrics": {...}}

    `run` is only written when a run label is given, so several runs can
    share a file. With append=False an existing file is truncated first.
    Calls from the training thread and the caller are serialized by a lock.
    """

    def __init__(self, *, path: str | Path, run: str | None = None, append: bool = True) -> None:
        self._path = Path(path)
        self._run = run
        self._lock = Lock()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        if not append:
            self._path.write_text("", encoding="utf-8")

    @property
    def path(self) -> Path:
        return self._path

    def log(self, *, step: int, metrics: dict[str, Any]) -> None:
        record: dict[str, Any] = {"ts": datetime.now(timezone.utc).isoformat(), "step": int(step)}
        if self._run is not None:
            record["run"] = self._run
        record["metrics"] = _plain(metrics)
        line = json.dumps(record, ensure_ascii=False, allow_nan=False) + "\n"

        with self._lock, self._path.open("a", encoding="utf-8") as f:
            f.write(line)


class CompositeMetricsSink(MetricsSinkPort):
    """Forwards every record to each of the given sinks, skipping None."""

    def __init__(self, *sinks: MetricsSinkPort | None) -> None:
        self._sinks = tuple(s for s in sinks if s is not None)

    def log(self, *, step: int, metrics: dict[str, Any]) -> None:
        for sink in self._sinks:
            sink.log(step=step, metrics=metrics)
