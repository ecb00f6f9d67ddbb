from __future__ import annotations

import math

import pytest

from neural_stand.core.domain.entities.model import EngineConfig
from neural_stand.core.domain.network.session import SessionState, TrainingSession


def _session(**overrides) -> TrainingSession:
    session = TrainingSession(config=EngineConfig(**overrides))
    session.start()
    return session


def test_improvement_grows_the_learning_rate() -> None:
    session = _session(learning_rate=0.1)

    assert session.record_validation(1.0)
    assert session.best_error == 1.0
    assert session.learning_rate == pytest.approx(0.105)
    assert session.epochs_since_improvement == 0


def test_improvement_needs_the_relative_margin() -> None:
    session = _session()
    session.record_validation(1.0)

    assert not session.record_validation(0.996)
    assert session.best_error == 1.0
    assert session.epochs_since_improvement == 1
    assert session.record_validation(0.99)
    assert session.best_error == 0.99


def test_stale_epochs_shrink_the_learning_rate_down_to_the_floor() -> None:
    session = _session(learning_rate=0.002, patience=2, early_stopping_patience=10)
    session.record_validation(1.0)
    lr = session.learning_rate

    session.record_validation(1.0)
    assert session.learning_rate == lr
    session.record_validation(1.0)
    assert session.learning_rate == pytest.approx(max(lr * 0.7, 0.001))
    for _ in range(5):
        session.record_validation(1.0)
    assert session.learning_rate == 0.001
    assert not session.should_stop_early
    for _ in range(2):
        session.record_validation(1.0)
    assert not session.should_stop_early
    session.record_validation(1.0)
    assert session.should_stop_early


def test_growth_and_decay_are_clamped() -> None:
    session = _session(learning_rate=0.5)
    session.record_validation(1.0)
    assert session.learning_rate == 0.5
    session.decay()
    assert session.learning_rate == pytest.approx(0.4975)


def test_target_needs_accuracy_and_error() -> None:
    session = _session()
    assert session.target_reached(0.95, 0.01, 0.05)
    assert not session.target_reached(0.94, 0.01, 0.05)
    assert not session.target_reached(0.99, 0.05, 0.05)


def test_state_transitions() -> None:
    session = TrainingSession(config=EngineConfig())
    assert session.state is SessionState.IDLE
    assert math.isinf(session.best_error)

    session.start()
    assert session.state is SessionState.RUNNING
    with pytest.raises(RuntimeError):
        session.start()
    with pytest.raises(RuntimeError):
        session.finish(SessionState.RUNNING)

    session.finish(SessionState.EARLY_STOPPED)
    assert session.state.is_terminal
    with pytest.raises(RuntimeError):
        session.finish(SessionState.CANCELLED)
