from __future__ import annotations


class NeuralStandError(Exception):
    """Base class for errors raised by the core."""


class ConfigurationError(NeuralStandError, ValueError):
    """Bad topology, bad hyperparameters or a feature/input dimension mismatch.

    Raised eagerly (at construction or before the first epoch), never mid-training.
    """


class TrainingError(NeuralStandError, RuntimeError):
    """A training run could not be started or was misused (e.g. re-entered)."""
