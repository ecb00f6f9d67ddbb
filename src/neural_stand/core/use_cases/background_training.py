from __future__ import annotations

import threading
from enum import Enum
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class JobState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class BackgroundTrainingJob(Generic[T]):
    """Runs a long training call off the caller's thread.

    The callable receives the job's cancel event and should hand it to
    `train_on_dataset`. Any exception it raises is captured here and exposed
    through `state` / `error`; it never propagates into the host.

    A job that returns normally is CANCELLED only if `stopped_by_cancel`
    says its result came from a cancelled session. A cancel request that
    lands after training already finished leaves it COMPLETED.
    """

    def __init__(
        self,
        target: Callable[[threading.Event], T],
        *,
        name: str = "training",
        stopped_by_cancel: Callable[[T], bool] | None = None,
    ) -> None:
        self._target = target
        self._name = name
        self._stopped_by_cancel = stopped_by_cancel
        self._cancel = threading.Event()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._state = JobState.IDLE
        self._result: T | None = None
        self._error: str | None = None
        self._exception: BaseException | None = None

    @property
    def state(self) -> JobState:
        with self._lock:
            return self._state

    @property
    def result(self) -> T | None:
        return self._result

    @property
    def error(self) -> str | None:
        """Description of the failure, e.g. "OverflowError: math range error"."""

        return self._error

    @property
    def exception(self) -> BaseException | None:
        return self._exception

    def start(self) -> None:
        with self._lock:
            if self._state is not JobState.IDLE:
                raise RuntimeError(f"job {self._name!r} already {self._state.value}")
            self._state = JobState.RUNNING
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def cancel(self) -> None:
        """Ask the training loop to stop at its next batch or epoch boundary.

        No effect once the job has finished.
        """

        with self._lock:
            if self._state is JobState.RUNNING:
                self._cancel.set()

    def wait(self, timeout: float | None = None) -> JobState:
        if self._thread is not None:
            self._thread.join(timeout)
        return self.state

    def _run(self) -> None:
        try:
            result = self._target(self._cancel)
            cancelled = self._stopped_by_cancel is not None and self._stopped_by_cancel(result)
        except Exception as e:  # pylint: disable=broad-exception-caught
            with self._lock:
                self._exception = e
                self._error = f"{type(e).__name__}: {e}"
                self._state = JobState.FAILED
            return

        with self._lock:
            self._result = result
            self._state = JobState.CANCELLED if cancelled else JobState.COMPLETED
