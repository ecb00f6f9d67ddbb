from __future__ import annotations

import math
import threading
from dataclasses import replace

import pytest

from conftest import make_clusters
from neural_stand.core.domain.entities.base import Sample
from neural_stand.core.domain.entities.model import EngineConfig
from neural_stand.core.domain.errors.training import ConfigurationError, TrainingError
from neural_stand.core.domain.network.engine import NetworkEngine, _Gradients
from neural_stand.core.domain.network.session import EpochStats, SessionState, TrainingSummary
from neural_stand.core.use_cases.evaluate_classifier import EvaluateClassifierUseCase

QUIET = EngineConfig(hidden_noise=0.0, noise_probability=0.0)


class _Observer:
    def __init__(self) -> None:
        self.epochs: list[EpochStats] = []
        self.summary: TrainingSummary | None = None

    def on_epoch_end(self, stats: EpochStats) -> None:
        self.epochs.append(stats)

    def on_training_end(self, summary: TrainingSummary) -> None:
        self.summary = summary


def _flatten(engine: NetworkEngine) -> list[float]:
    weights, biases = engine.parameters()
    return [v for w in weights for row in w for v in row] + [v for b in biases for v in b]


def test_single_sample_loss_never_increases() -> None:
    cfg = replace(QUIET, momentum=0.0, weight_decay=0.0, normalize_input=False, learning_rate=0.1)
    engine = NetworkEngine([3, 4, 1], config=cfg, seed=0)
    sample = Sample.of([0.2, 0.7, 0.4], 0, 1)

    losses = [engine.loss(sample)]
    for _ in range(50):
        assert engine.train(sample, 0.0, max_iterations=1) == 1
        losses.append(engine.loss(sample))

    assert all(b <= a for a, b in zip(losses, losses[1:]))
    assert losses[-1] < losses[0]


def test_single_sample_training_stops_when_acceptable() -> None:
    engine = NetworkEngine([4, 6, 3], config=QUIET, seed=0)
    sample = Sample.of([0.9, 0.1, 0.2, 0.1], 0, 3)

    assert engine.train(sample, 1e9) == 0
    assert engine.train(sample, -1.0, max_iterations=25) == 25

    steps = engine.train(sample, 0.1)
    assert steps < QUIET.max_single_sample_iterations
    assert engine.loss(sample) <= 0.1
    assert engine.predict(sample) == 0


def test_single_sample_training_needs_a_label() -> None:
    engine = NetworkEngine([4, 6, 3], seed=0)
    with pytest.raises(ConfigurationError):
        engine.train(Sample.of([0.0, 0.1, 0.2, 0.3], None, 3), 0.1)


def test_update_conventions_follow_the_same_trajectory() -> None:
    subtract = NetworkEngine([4, 5, 3], config=QUIET, seed=11)
    add = NetworkEngine([4, 5, 3], config=replace(QUIET, update_convention="add"), seed=11)
    sample = Sample.of([0.1, 0.9, 0.1, 0.2], 1, 3)

    for engine in (subtract, add):
        engine.train(sample, 0.0, max_iterations=20)
        engine.train(Sample.of([0.9, 0.1, 0.2, 0.1], 0, 3), 0.0, max_iterations=5)

    assert _flatten(add) == pytest.approx(_flatten(subtract), rel=1e-12, abs=1e-12)
    assert _flatten(add) != _flatten(NetworkEngine([4, 5, 3], config=QUIET, seed=11))


def test_learns_separable_clusters() -> None:
    engine = NetworkEngine([4, 6, 3], seed=0)
    observer = _Observer()

    best = engine.train_on_dataset(make_clusters(seed=0), 200, 0.05, observer=observer)

    assert math.isfinite(best)
    assert observer.epochs[-1].valid_accuracy > 0.9
    assert observer.summary is not None
    assert observer.summary.final_accuracy > 0.9

    report = EvaluateClassifierUseCase().run(engine, make_clusters(per_class=20, seed=1))
    assert report.count == 60
    assert report.accuracy > 0.9


@pytest.mark.parametrize("activation", ["sigmoid", "leaky_relu"])
def test_backprop_matches_finite_differences(activation: str) -> None:
    # pylint: disable=protected-access
    cfg = replace(QUIET, activation=activation, normalize_input=False)
    engine = NetworkEngine([3, 5, 4, 2], config=cfg, seed=3)
    features = [0.3, -0.8, 0.5]
    target = (1.0, 0.0)

    def half_squared_error() -> float:
        return 0.5 * sum((o - t) ** 2 for o, t in zip(engine.compute(features), target))

    trace = engine._forward(features, rng=None)
    grads = _Gradients.zeros(engine.topology)
    engine._accumulate(grads, trace, engine._backward(trace, target))

    h = 1e-6
    params = [(w, grads.weights[layer]) for layer, w in enumerate(engine._weights)]
    params += [([b], [grads.biases[layer]]) for layer, b in enumerate(engine._biases)]
    for values, analytic in params:
        for i, row in enumerate(values):
            for j, original in enumerate(row):
                row[j] = original + h
                up = half_squared_error()
                row[j] = original - h
                down = half_squared_error()
                row[j] = original
                assert analytic[i][j] == pytest.approx((up - down) / (2 * h), abs=1e-7)


def test_leaky_relu_deep_network_learns_clusters(clusters: list[Sample]) -> None:
    engine = NetworkEngine([4, 8, 8, 3], config=EngineConfig(activation="leaky_relu", init_scheme="he"), seed=0)
    observer = _Observer()

    best = engine.train_on_dataset(clusters, 200, 0.05, observer=observer)

    assert math.isfinite(best)
    assert observer.epochs[-1].valid_accuracy > 0.9
    assert all(math.isfinite(v) for v in _flatten(engine))


def test_progress_is_reported_per_epoch_and_at_the_end(clusters: list[Sample]) -> None:
    engine = NetworkEngine([4, 6, 3], seed=0)
    observer = _Observer()
    calls: list[tuple[float, float, float]] = []

    best = engine.train_on_dataset(
        clusters,
        6,
        -1.0,
        progress=lambda p, e, t: calls.append((p, e, t)),
        observer=observer,
    )

    assert observer.summary is not None
    assert observer.summary.stop_reason is SessionState.EPOCHS_EXHAUSTED
    assert observer.summary.epochs_run == 6
    assert len(calls) == 7
    assert [c[0] for c in calls[:-1]] == pytest.approx([(i + 1) / 6 for i in range(6)])
    assert calls[-1][0] == 1.0
    assert calls[-1][1] == best
    assert all(b[2] >= a[2] for a, b in zip(calls, calls[1:]))
    assert observer.summary.train_size == 72
    assert observer.summary.valid_size == 18


def test_early_stopping_when_validation_error_is_flat() -> None:
    cfg = replace(QUIET, learning_rate=0.0, lr_floor=0.0, momentum=0.0, early_stopping_patience=5)
    engine = NetworkEngine([4, 6, 3], config=cfg, seed=0)
    samples = [Sample.of([0.2, 0.5, 0.1, 0.9], 2, 3) for _ in range(10)]
    observer = _Observer()
    calls: list[float] = []
    before = engine.parameters()

    best = engine.train_on_dataset(samples, 100, 0.0, progress=lambda p, e, t: calls.append(p), observer=observer)

    assert observer.summary is not None
    assert observer.summary.stop_reason is SessionState.EARLY_STOPPED
    assert observer.summary.epochs_run == 6
    assert len(calls) == 7
    assert best == pytest.approx(observer.epochs[0].valid_loss)
    assert engine.parameters() == before


def test_target_reached_stops_training(clusters: list[Sample]) -> None:
    engine = NetworkEngine([4, 6, 3], config=QUIET, seed=0)
    observer = _Observer()

    engine.train_on_dataset(clusters, 500, 10.0, observer=observer)

    assert observer.summary is not None
    assert observer.summary.stop_reason is SessionState.TARGET_REACHED
    last = observer.epochs[-1]
    assert last.valid_accuracy >= QUIET.target_accuracy
    assert last.valid_loss < 10.0


def test_learning_rate_stays_within_bounds(clusters: list[Sample]) -> None:
    cfg = replace(
        QUIET,
        learning_rate=0.2,
        lr_floor=0.05,
        lr_ceiling=0.3,
        lr_growth=1.5,
        lr_shrink=0.3,
        patience=1,
        early_stopping_patience=50,
    )
    engine = NetworkEngine([4, 6, 3], config=cfg, seed=0)
    observer = _Observer()

    engine.train_on_dataset(clusters, 40, -1.0, observer=observer)

    rates = [s.learning_rate for s in observer.epochs]
    assert len(rates) == 40
    assert all(0.05 <= lr <= 0.3 for lr in rates)
    assert 0.3 in rates


def test_parallel_matches_serial_without_noise(clusters: list[Sample]) -> None:
    serial = NetworkEngine([4, 6, 3], config=QUIET, seed=5)
    parallel = NetworkEngine([4, 6, 3], config=replace(QUIET, workers=4), seed=5)

    a = serial.train_on_dataset(clusters, 5, -1.0, parallel=False)
    b = parallel.train_on_dataset(clusters, 5, -1.0, parallel=True)

    assert b == pytest.approx(a, rel=1e-6)
    assert _flatten(parallel) == pytest.approx(_flatten(serial), rel=1e-6, abs=1e-9)


def test_parallel_training_with_noise_learns(clusters: list[Sample]) -> None:
    engine = NetworkEngine([4, 6, 3], seed=2)
    observer = _Observer()

    engine.train_on_dataset(clusters, 150, 0.05, parallel=True, observer=observer)

    assert observer.summary is not None
    assert observer.summary.final_accuracy > 0.9


def test_cancel_before_the_first_epoch(clusters: list[Sample]) -> None:
    engine = NetworkEngine([4, 6, 3], seed=0)
    cancel = threading.Event()
    cancel.set()
    observer = _Observer()
    calls: list[tuple[float, float, float]] = []

    best = engine.train_on_dataset(
        clusters, 50, 0.05, progress=lambda *c: calls.append(c), observer=observer, cancel_event=cancel
    )

    assert math.isinf(best)
    assert observer.summary is not None
    assert observer.summary.stop_reason is SessionState.CANCELLED
    assert observer.summary.epochs_run == 0
    assert len(calls) == 1
    assert calls[0][0] == 1.0


def test_cancel_from_the_progress_callback(clusters: list[Sample]) -> None:
    engine = NetworkEngine([4, 6, 3], seed=0)
    cancel = threading.Event()
    observer = _Observer()

    def progress(fraction: float, error: float, elapsed: float) -> None:
        if fraction >= 0.1:
            cancel.set()

    engine.train_on_dataset(clusters, 30, -1.0, progress=progress, observer=observer, cancel_event=cancel)

    assert observer.summary is not None
    assert observer.summary.stop_reason is SessionState.CANCELLED
    assert observer.summary.epochs_run == 3


def test_concurrent_training_on_one_engine_is_rejected(clusters: list[Sample]) -> None:
    engine = NetworkEngine([4, 6, 3], seed=0)
    errors: list[Exception] = []

    def progress(fraction: float, error: float, elapsed: float) -> None:
        if fraction < 1.0:
            try:
                engine.train_on_dataset(clusters, 1, 0.05)
            except TrainingError as e:
                errors.append(e)
            try:
                engine.train(clusters[0], 0.05)
            except TrainingError as e:
                errors.append(e)

    engine.train_on_dataset(clusters, 3, -1.0, progress=progress)

    assert len(errors) == 4
    # The lock is released once the run ends.
    assert math.isfinite(engine.train_on_dataset(clusters, 1, -1.0))


def test_mismatched_samples_are_rejected_before_training() -> None:
    engine = NetworkEngine([4, 6, 3], seed=0)
    calls: list[float] = []
    with pytest.raises(ConfigurationError):
        engine.train_on_dataset([Sample.of([0.1, 0.2], 0, 3)], 5, 0.05, progress=lambda p, e, t: calls.append(p))
    with pytest.raises(ConfigurationError):
        engine.train_on_dataset([Sample.of([0.1, 0.2, 0.3, 0.4], 0, 2)], 5, 0.05)
    assert calls == []


def test_zero_epochs_returns_infinity(clusters: list[Sample]) -> None:
    engine = NetworkEngine([4, 6, 3], seed=0)
    before = engine.parameters()
    assert math.isinf(engine.train_on_dataset(clusters, 0, 0.05))
    assert engine.parameters() == before


def test_without_validation_split_error_is_zero(clusters: list[Sample]) -> None:
    engine = NetworkEngine([4, 6, 3], config=replace(QUIET, validation_fraction=0.0), seed=0)
    observer = _Observer()

    best = engine.train_on_dataset(clusters, 3, -1.0, observer=observer)

    assert best == 0.0
    assert observer.summary is not None
    assert observer.summary.valid_size == 0
    assert all(s.valid_accuracy == 0.0 for s in observer.epochs)
