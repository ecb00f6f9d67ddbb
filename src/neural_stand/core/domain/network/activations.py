from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable

LEAKY_SLOPE = 0.01


def sigmoid(x: float) -> float:
    # Split on the sign so exp() never overflows.
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    e = math.exp(x)
    return e / (1.0 + e)


def sigmoid_derivative(pre: float, out: float) -> float:
    return out * (1.0 - out)


def leaky_relu(x: float) -> float:
    return x if x > 0 else LEAKY_SLOPE * x


def leaky_relu_derivative(pre: float, out: float) -> float:
    return 1.0 if pre > 0 else LEAKY_SLOPE


@dataclass(frozen=True)
class ActivationFns:
    """An activation and its derivative.

    The derivative takes both the pre-activation sum and the activation value;
    each function uses whichever is cheaper.
    """

    name: str
    fn: Callable[[float], float]
    derivative: Callable[[float, float], float]


SIGMOID = ActivationFns("sigmoid", sigmoid, sigmoid_derivative)
LEAKY_RELU = ActivationFns("leaky_relu", leaky_relu, leaky_relu_derivative)

_BY_NAME = {a.name: a for a in (SIGMOID, LEAKY_RELU)}


def get_activation(name: str) -> ActivationFns:
    try:
        return _BY_NAME[name]
    except KeyError:
        raise ValueError(f"unknown activation {name!r}") from None
