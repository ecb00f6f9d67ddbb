from __future__ import annotations

import math
import threading
import time
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator

import numpy as np

from neural_stand.core.domain.entities.base import Sample
from neural_stand.core.domain.entities.model import EngineConfig, Topology
from neural_stand.core.domain.errors.training import ConfigurationError, TrainingError
from neural_stand.core.domain.network.activations import SIGMOID, get_activation
from neural_stand.core.domain.network.session import (
    EpochStats,
    SessionState,
    TrainingSession,
    TrainingSummary,
)
from neural_stand.core.domain.utils.metrics import argmax, cross_entropy
from neural_stand.core.domain.utils.rng import child_rngs, make_rng

if TYPE_CHECKING:
    from neural_stand.core.ports.training_observer import ProgressCallback, TrainingObserverPort

Matrix = list[list[float]]


@dataclass
class _Trace:
    """Activations and pre-activation sums of one forward pass.

    Allocated per call, so concurrent passes never share buffers.
    """

    activations: list[list[float]]
    sums: list[list[float]]

    @property
    def output(self) -> list[float]:
        return self.activations[-1]


@dataclass
class _Gradients:
    weights: list[Matrix]
    biases: list[list[float]]

    @classmethod
    def zeros(cls, topology: Topology) -> _Gradients:
        pairs = list(zip(topology.layers[:-1], topology.layers[1:]))
        return cls(
            weights=[[[0.0] * n_out for _ in range(n_in)] for n_in, n_out in pairs],
            biases=[[0.0] * n_out for _, n_out in pairs],
        )


class NetworkEngine:
    """Fully connected feed-forward classifier trained by back-propagation.

    Parameters: `W[l]` has shape (L_l x L_{l+1}) and `B[l]` length L_{l+1}.
    Hidden layers use the configured activation; the output layer is always
    a sigmoid so each output is a per-class score in (0, 1).

    One engine is owned by one caller: a second concurrent training call on
    the same instance raises TrainingError.
    """

    def __init__(
        self,
        topology: Topology | Sequence[int],
        *,
        config: EngineConfig | None = None,
        rng: np.random.Generator | None = None,
        seed: int | None = None,
        input_size: int | None = None,
        num_classes: int | None = None,
    ) -> None:
        if not isinstance(topology, Topology):
            topology = Topology(layers=tuple(topology))
        if input_size is not None and topology.input_size != input_size:
            raise ConfigurationError(
                f"input layer has {topology.input_size} neurons but features have length {input_size}"
            )
        if num_classes is not None and topology.output_size != num_classes:
            raise ConfigurationError(
                f"output layer has {topology.output_size} neurons but there are {num_classes} classes"
            )

        self._topology = topology
        self._config = config or EngineConfig()
        self._rng = rng if rng is not None else make_rng(seed)
        self._hidden = get_activation(self._config.activation)
        self._train_lock = threading.Lock()

        self._weights: list[Matrix] = []
        self._biases: list[list[float]] = []
        for n_in, n_out in zip(topology.layers[:-1], topology.layers[1:]):
            if self._config.init_scheme == "he":
                scale = math.sqrt(2.0 / n_in)
            else:
                scale = math.sqrt(2.0 / (n_in + n_out))
            self._weights.append(self._rng.uniform(-scale, scale, size=(n_in, n_out)).tolist())
            self._biases.append(self._rng.uniform(-0.1, 0.1, size=n_out).tolist())

        # Previous updates, for the momentum term.
        zeros = _Gradients.zeros(topology)
        self._prev_weight_deltas = zeros.weights
        self._prev_bias_deltas = zeros.biases

    @property
    def topology(self) -> Topology:
        return self._topology

    @property
    def config(self) -> EngineConfig:
        return self._config

    def parameters(self) -> tuple[list[Matrix], list[list[float]]]:
        """Deep copies of (weights, biases)."""

        return (
            [[list(row) for row in w] for w in self._weights],
            [list(b) for b in self._biases],
        )

    def describe(self) -> str:
        cfg = self._config
        return (
            f"Structure: {self._topology}\n"
            f"Total weights: {self._topology.weight_count:,}\n"
            f"Activation: {cfg.activation}\n"
            f"Learning rate: {cfg.learning_rate:.4f}\n"
            f"Momentum: {cfg.momentum:.2f}\n"
            f"Weight decay: {cfg.weight_decay:.6f}"
        )

    # -- inference ---------------------------------------------------------

    def compute(self, features: Sequence[float]) -> list[float]:
        """Inference-mode output activations."""

        self._check_length(features)
        return list(self._forward(features, rng=None).output)

    def predict(self, sample: Sample) -> int:
        """Classify `sample` and record the result on it."""

        outputs = self.compute(sample.features)
        predicted = argmax(outputs)
        sample.recognized_class = predicted
        sample.confidences = tuple(outputs)
        return predicted

    def loss(self, sample: Sample) -> float:
        """Inference-mode cross-entropy of one labelled sample."""

        self._check_sample(sample)
        trace = self._forward(sample.features, rng=None)
        return cross_entropy(trace.output, sample.target, epsilon=self._config.loss_epsilon)

    # -- training ----------------------------------------------------------

    def train(
        self,
        sample: Sample,
        acceptable_error: float,
        parallel: bool = False,
        *,
        max_iterations: int | None = None,
    ) -> int:
        """Fit one sample until its error is acceptable or the iteration cap is hit.

        Returns the number of update steps taken. Hitting the cap is not an
        error; the caller reads it from the return value. `parallel` is
        accepted for interface symmetry; a single sample has nothing to split.
        """

        self._check_sample(sample)
        cfg = self._config
        cap = max_iterations if max_iterations is not None else cfg.max_single_sample_iterations
        target = sample.target
        rng = self._rng if self._noise_enabled else None

        iterations = 0
        with self._exclusive():
            while iterations < cap:
                trace = self._forward(sample.features, rng=rng)
                error = cross_entropy(trace.output, target, epsilon=cfg.loss_epsilon)
                if error <= acceptable_error:
                    break
                grads = _Gradients.zeros(self._topology)
                self._accumulate(grads, trace, self._backward(trace, target))
                self._apply_update(grads, 1, cfg.learning_rate)
                iterations += 1
        return iterations

    def train_on_dataset(
        self,
        samples: Iterable[Sample],
        epoch_count: int,
        acceptable_error: float,
        parallel: bool = False,
        *,
        progress: ProgressCallback | None = None,
        observer: TrainingObserverPort | None = None,
        cancel_event: threading.Event | None = None,
    ) -> float:
        """Mini-batch training with a held-out validation split.

        Returns the best validation error seen over all epochs. `progress` is
        called once per completed epoch and once more with progress 1.0 when
        the run ends.
        """

        samples = list(samples)
        for sample in samples:
            self._check_sample(sample)
        if epoch_count < 0:
            raise ConfigurationError(f"epoch_count must be >= 0, got {epoch_count}")

        with self._exclusive():
            return self._run_session(
                samples,
                epoch_count,
                acceptable_error,
                parallel=parallel,
                progress=progress,
                observer=observer,
                cancel_event=cancel_event,
            )

    def _run_session(
        self,
        samples: list[Sample],
        epoch_count: int,
        acceptable_error: float,
        *,
        parallel: bool,
        progress: ProgressCallback | None,
        observer: TrainingObserverPort | None,
        cancel_event: threading.Event | None,
    ) -> float:
        cfg = self._config
        started = time.perf_counter()
        session = TrainingSession(config=cfg)
        session.start()

        shuffled = list(samples)
        self._rng.shuffle(shuffled)
        train_size = int(len(shuffled) * (1.0 - cfg.validation_fraction))
        train_set, valid_set = shuffled[:train_size], shuffled[train_size:]
        batch_size = max(1, min(cfg.batch_size, len(train_set)))

        def cancelled() -> bool:
            return cancel_event is not None and cancel_event.is_set()

        stop = SessionState.EPOCHS_EXHAUSTED
        executor = ThreadPoolExecutor(max_workers=cfg.workers) if parallel and train_set else None
        try:
            for epoch in range(epoch_count):
                if cancelled():
                    stop = SessionState.CANCELLED
                    break

                self._rng.shuffle(train_set)
                train_loss = 0.0
                train_hits = 0
                for start in range(0, len(train_set), batch_size):
                    if cancelled():
                        stop = SessionState.CANCELLED
                        break
                    batch = train_set[start:start + batch_size]
                    loss, hits = self._train_batch(batch, session.learning_rate, executor)
                    train_loss += loss
                    train_hits += hits
                if stop is SessionState.CANCELLED:
                    break

                valid_loss, valid_accuracy = self._evaluate(valid_set)
                session.record_validation(valid_loss)
                elapsed = time.perf_counter() - started

                if observer is not None:
                    observer.on_epoch_end(
                        EpochStats(
                            epoch=epoch + 1,
                            train_loss=train_loss / max(1, len(train_set)),
                            train_accuracy=train_hits / len(train_set) if train_set else 0.0,
                            valid_loss=valid_loss,
                            valid_accuracy=valid_accuracy,
                            learning_rate=session.learning_rate,
                            best_valid_loss=session.best_error,
                            epochs_since_improvement=session.epochs_since_improvement,
                            elapsed=elapsed,
                        )
                    )
                if progress is not None:
                    progress((epoch + 1) / epoch_count, valid_loss, elapsed)

                if session.should_stop_early:
                    stop = SessionState.EARLY_STOPPED
                    break
                if session.target_reached(valid_accuracy, valid_loss, acceptable_error):
                    stop = SessionState.TARGET_REACHED
                    break
                session.decay()
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        session.finish(stop)
        _, final_accuracy = self._evaluate(samples)
        elapsed = time.perf_counter() - started
        if observer is not None:
            observer.on_training_end(
                TrainingSummary(
                    stop_reason=stop,
                    epochs_run=session.epoch,
                    best_valid_loss=session.best_error,
                    final_accuracy=final_accuracy,
                    train_size=len(train_set),
                    valid_size=len(valid_set),
                    elapsed=elapsed,
                )
            )
        if progress is not None:
            progress(1.0, session.best_error, elapsed)
        return session.best_error

    def _train_batch(
        self,
        batch: list[Sample],
        learning_rate: float,
        executor: ThreadPoolExecutor | None,
    ) -> tuple[float, int]:
        eps = self._config.loss_epsilon
        grads = _Gradients.zeros(self._topology)
        lock = threading.Lock()
        totals = {"loss": 0.0, "hits": 0}

        if self._noise_enabled:
            rngs: list[np.random.Generator | None] = list(child_rngs(self._rng, len(batch)))
        else:
            rngs = [None] * len(batch)

        def work(sample: Sample, rng: np.random.Generator | None) -> None:
            trace = self._forward(sample.features, rng=rng)
            target = sample.target
            deltas = self._backward(trace, target)
            loss = cross_entropy(trace.output, target, epsilon=eps)
            hit = argmax(trace.output) == sample.label
            with lock:
                self._accumulate(grads, trace, deltas)
                totals["loss"] += loss
                totals["hits"] += int(hit)

        if executor is None:
            for sample, rng in zip(batch, rngs):
                work(sample, rng)
        else:
            # list() re-raises the first worker exception here
            list(executor.map(work, batch, rngs))

        self._apply_update(grads, len(batch), learning_rate)
        return totals["loss"], totals["hits"]

    def _evaluate(self, samples: Sequence[Sample]) -> tuple[float, float]:
        eps = self._config.loss_epsilon
        loss = 0.0
        hits = 0
        for sample in samples:
            trace = self._forward(sample.features, rng=None)
            loss += cross_entropy(trace.output, sample.target, epsilon=eps)
            if argmax(trace.output) == sample.label:
                hits += 1
        count = len(samples)
        return loss / max(1, count), (hits / count if count else 0.0)

    # -- numerics ----------------------------------------------------------

    def _forward(self, features: Sequence[float], *, rng: np.random.Generator | None) -> _Trace:
        """One forward pass; `rng` is given only in training mode (hidden noise)."""

        cfg = self._config
        inputs = self._prepare_input(features)
        activations = [inputs]
        sums = [inputs]
        last = len(self._weights) - 1

        for layer, (w, b) in enumerate(zip(self._weights, self._biases)):
            layer_sums = list(b)
            for a, row in zip(activations[-1], w):
                if a != 0.0:
                    layer_sums = [s + a * wij for s, wij in zip(layer_sums, row)]

            act = SIGMOID.fn if layer == last else self._hidden.fn
            outs = [act(s) for s in layer_sums]
            if rng is not None and layer != last:
                for j in range(len(outs)):
                    if rng.random() < cfg.noise_probability:
                        outs[j] += rng.uniform(-cfg.hidden_noise, cfg.hidden_noise)

            sums.append(layer_sums)
            activations.append(outs)
        return _Trace(activations=activations, sums=sums)

    def _prepare_input(self, features: Sequence[float]) -> list[float]:
        values = [float(v) for v in features]
        if not self._config.normalize_input or not values:
            return values
        lo = min(values)
        span = max(values) - lo
        if span > 0:
            return [(v - lo) / span for v in values]
        return values

    def _backward(self, trace: _Trace, target: Sequence[float]) -> list[list[float]]:
        """Deltas for every non-input layer; `deltas[l]` belongs to layer l + 1."""

        n = len(self._weights)
        deltas: list[list[float]] = [[] for _ in range(n)]
        deltas[n - 1] = [
            (o - t) * SIGMOID.derivative(s, o)
            for o, t, s in zip(trace.output, target, trace.sums[-1])
        ]
        derivative = self._hidden.derivative
        for layer in range(n - 2, -1, -1):
            downstream = deltas[layer + 1]
            w = self._weights[layer + 1]
            outs = trace.activations[layer + 1]
            sums = trace.sums[layer + 1]
            deltas[layer] = [
                sum(d * wij for d, wij in zip(downstream, w[i])) * derivative(sums[i], outs[i])
                for i in range(len(outs))
            ]
        return deltas

    @staticmethod
    def _accumulate(grads: _Gradients, trace: _Trace, deltas: list[list[float]]) -> None:
        for layer, layer_deltas in enumerate(deltas):
            gw = grads.weights[layer]
            for i, a in enumerate(trace.activations[layer]):
                if a != 0.0:
                    gw[i] = [g + a * d for g, d in zip(gw[i], layer_deltas)]
            grads.biases[layer] = [g + d for g, d in zip(grads.biases[layer], layer_deltas)]

    def _apply_update(self, grads: _Gradients, batch_size: int, learning_rate: float) -> None:
        """One momentum step with the batch-averaged gradient.

        delta = lr * grad + momentum * prev_delta + lr * weight_decay * w.
        Under the "add" convention the gradient terms flip sign and the weight
        is incremented, which yields the same trajectory.
        """

        cfg = self._config
        sign = 1.0 if cfg.update_convention == "subtract" else -1.0
        step = learning_rate / batch_size
        decay = learning_rate * cfg.weight_decay
        momentum = cfg.momentum

        for layer, w in enumerate(self._weights):
            prev = self._prev_weight_deltas[layer]
            gw = grads.weights[layer]
            for i, row in enumerate(w):
                prev_row = prev[i]
                grad_row = gw[i]
                for j, wij in enumerate(row):
                    delta = sign * (step * grad_row[j] + decay * wij) + momentum * prev_row[j]
                    row[j] = wij - sign * delta
                    prev_row[j] = delta

            b = self._biases[layer]
            prev_b = self._prev_bias_deltas[layer]
            gb = grads.biases[layer]
            for j in range(len(b)):
                delta = sign * step * gb[j] + momentum * prev_b[j]
                b[j] -= sign * delta
                prev_b[j] = delta

    # -- guards ------------------------------------------------------------

    @property
    def _noise_enabled(self) -> bool:
        return self._config.hidden_noise > 0.0 and self._config.noise_probability > 0.0

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        if not self._train_lock.acquire(blocking=False):
            raise TrainingError("this engine is already training")
        try:
            yield
        finally:
            self._train_lock.release()

    def _check_length(self, features: Sequence[float]) -> None:
        if len(features) != self._topology.input_size:
            raise ConfigurationError(
                f"feature vector has length {len(features)}, input layer expects {self._topology.input_size}"
            )

    def _check_sample(self, sample: Sample) -> None:
        self._check_length(sample.features)
        if sample.num_classes != self._topology.output_size:
            raise ConfigurationError(
                f"sample has {sample.num_classes} classes, output layer has {self._topology.output_size}"
            )
        if sample.label is None:
            raise ConfigurationError("training needs labelled samples")
