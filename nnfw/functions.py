"""
NNFW Transfer Functions

Elementwise mappings inputs → outputs applied by a Cluster on every update.
`apply` writes into the caller's output buffer and touches nothing else
(LeakyIntegrator additionally remembers its previous output).

Functions that subclass DerivableFunction also expose
    derivate(x, y, out)   out ← ∂y/∂x  (diagonal Jacobian)
evaluated at input x and output y; backpropagation uses it to turn output
deltas into input deltas.  Every other function is treated as having an
identity Jacobian.

Families:
    output     Identity, Scale, Gain, Linear, Sigmoid, FakeSigmoid,
               ScaledSigmoid, Step, Ramp, LeakyIntegrator, LogLike,
               Composite, LinearCombo
    radial     Gauss
    periodic   Sawtooth, Triangle, Sin, PseudoGauss
    competitive WinnerTakeAll
"""

from __future__ import annotations
import copy
import numpy as np
from dataclasses import dataclass, field


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _sigmoid(z: np.ndarray) -> np.ndarray:
    # 1 / (1 + e^-z) without overflow for large |z|
    return np.exp(-np.logaddexp(0.0, -z))


def _sigmoid_slope(x: np.ndarray) -> np.ndarray:
    y = _sigmoid(x)
    return y * (1.0 - y)


# ---------------------------------------------------------------------------
# Base classes
# ---------------------------------------------------------------------------

class TransferFunction:
    """Elementwise inputs → outputs mapping owned by one Cluster."""

    def apply(self, inputs: np.ndarray, outputs: np.ndarray):
        raise NotImplementedError

    def set_size(self, n: int):
        """Called when the function is attached to a Cluster of n neurons."""

    def clone(self) -> "TransferFunction":
        return copy.deepcopy(self)

    @property
    def type_name(self) -> str:
        return type(self).__name__


class DerivableFunction(TransferFunction):
    """A TransferFunction that also knows its derivative."""

    def derivate(self, x: np.ndarray, y: np.ndarray, out: np.ndarray):
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Output functions
# ---------------------------------------------------------------------------

@dataclass
class IdentityFunction(DerivableFunction):
    """y = x"""

    def apply(self, inputs, outputs):
        outputs[...] = inputs

    def derivate(self, x, y, out):
        out.fill(1.0)


@dataclass
class ScaleFunction(TransferFunction):
    """y = rate · x"""
    rate: float = 1.0

    def apply(self, inputs, outputs):
        np.multiply(inputs, self.rate, out=outputs)


@dataclass
class GainFunction(TransferFunction):
    """y = x + gain"""
    gain: float = 1.0

    def apply(self, inputs, outputs):
        np.add(inputs, self.gain, out=outputs)


@dataclass
class LinearFunction(DerivableFunction):
    """y = m · x + b"""
    m: float = 1.0
    b: float = 0.0

    def apply(self, inputs, outputs):
        np.multiply(inputs, self.m, out=outputs)
        outputs += self.b

    def derivate(self, x, y, out):
        out.fill(self.m)


@dataclass
class SigmoidFunction(DerivableFunction):
    """y = 1 / (1 + exp(-λx))"""
    lambda_: float = 1.0

    def apply(self, inputs, outputs):
        outputs[...] = _sigmoid(self.lambda_ * inputs)

    def derivate(self, x, y, out):
        # λ · y · (1 − y)
        out[...] = self.lambda_ * y * (1.0 - y)


@dataclass
class FakeSigmoidFunction(DerivableFunction):
    """
    Piecewise rational approximation of the sigmoid:
        y = 0.5 + 0.575 · λx / (1 + |λx|)   clipped to 0 / 1 outside ±x0
    The derivative reuses the sigmoid form λ · y · (1 − y).
    """
    lambda_: float = 1.0

    _X0 = 6.0 + 2.0 / 3.0

    def apply(self, inputs, outputs):
        x = self.lambda_ * inputs
        mid = 0.5 + 0.575 * x / (1.0 + np.abs(x))
        outputs[...] = np.where(x <= -self._X0, 0.0, np.where(x < self._X0, mid, 1.0))

    def derivate(self, x, y, out):
        out[...] = self.lambda_ * y * (1.0 - y)


@dataclass
class ScaledSigmoidFunction(DerivableFunction):
    """y = (max − min) · sigmoid(λx) + min"""
    lambda_: float = 1.0
    min: float = -1.0
    max: float = 1.0

    def apply(self, inputs, outputs):
        outputs[...] = (self.max - self.min) * _sigmoid(self.lambda_ * inputs) + self.min

    def derivate(self, x, y, out):
        span = self.max - self.min
        if span == 0.0:
            out.fill(0.0)
            return
        out[...] = self.lambda_ * (y - self.min) * (self.max - y) / span


@dataclass
class StepFunction(DerivableFunction):
    """y = max if x > threshold else min.  Derivative: sigmoid slope at x."""
    min: float = 0.0
    max: float = 1.0
    threshold: float = 0.0

    def apply(self, inputs, outputs):
        outputs[...] = np.where(inputs > self.threshold, self.max, self.min)

    def derivate(self, x, y, out):
        out[...] = _sigmoid_slope(x)


@dataclass
class RampFunction(DerivableFunction):
    """
    Linear between (min_x, min_y) and (max_x, max_y), saturated outside.
    Derivative: the ramp slope inside [min_x, max_x], sigmoid slope outside.
    """
    min_x: float = -1.0
    max_x: float = 1.0
    min_y: float = -1.0
    max_y: float = 1.0

    def _slope(self) -> float:
        return (self.max_y - self.min_y) / (self.max_x - self.min_x)

    def apply(self, inputs, outputs):
        m = self._slope()
        q = self.min_y - m * self.min_x
        np.clip(m * inputs + q, self.min_y, self.max_y, out=outputs)

    def derivate(self, x, y, out):
        inside = (x >= self.min_x) & (x <= self.max_x)
        out[...] = np.where(inside, self._slope(), _sigmoid_slope(x))


@dataclass(eq=False)
class LeakyIntegratorFunction(TransferFunction):
    """
    y(t) = δ ⊙ y(t−1) + (1 − δ) ⊙ x(t)

    Keeps its previous output; `zeroing_status` forgets it.
    """
    delta: np.ndarray = field(default_factory=lambda: np.zeros(0))
    outprev: np.ndarray = field(default_factory=lambda: np.zeros(0))

    def __post_init__(self):
        self.delta = np.array(self.delta, dtype=float).flatten()
        if len(self.outprev) != len(self.delta):
            self.outprev = np.zeros(len(self.delta))

    def apply(self, inputs, outputs):
        # δ·(y_prev − x) + x
        outputs[...] = self.delta * (self.outprev - inputs) + inputs
        self.outprev[...] = outputs

    def zeroing_status(self):
        self.outprev.fill(0.0)

    def set_size(self, n):
        if len(self.delta) != n:
            self.delta = np.resize(self.delta, n) if len(self.delta) else np.zeros(n)
            self.outprev = np.zeros(n)


@dataclass
class LogLikeFunction(TransferFunction):
    """y = x / (1 + A·x + B)"""
    a: float = 1.0
    b: float = 0.0

    def apply(self, inputs, outputs):
        outputs[...] = inputs / (1.0 + self.a * inputs + self.b)


@dataclass
class CompositeFunction(TransferFunction):
    """y = second(first(x))"""
    first: TransferFunction = field(default_factory=IdentityFunction)
    second: TransferFunction = field(default_factory=IdentityFunction)

    def apply(self, inputs, outputs):
        mid = np.empty_like(inputs)
        self.first.apply(inputs, mid)
        self.second.apply(mid, outputs)

    def set_size(self, n):
        self.first.set_size(n)
        self.second.set_size(n)


@dataclass
class LinearComboFunction(TransferFunction):
    """y = w1 · first(x) + w2 · second(x)"""
    w1: float = 1.0
    first: TransferFunction = field(default_factory=IdentityFunction)
    w2: float = 1.0
    second: TransferFunction = field(default_factory=IdentityFunction)

    def apply(self, inputs, outputs):
        mid = np.empty_like(inputs)
        self.first.apply(inputs, mid)
        self.second.apply(inputs, outputs)
        outputs *= self.w2
        outputs += self.w1 * mid

    def set_size(self, n):
        self.first.set_size(n)
        self.second.set_size(n)


# ---------------------------------------------------------------------------
# Radial functions
# ---------------------------------------------------------------------------

@dataclass
class GaussFunction(DerivableFunction):
    """y = max · exp(−(centre − x)² / variance²)"""
    centre: float = 0.0
    variance: float = 1.0
    max: float = 1.0

    def apply(self, inputs, outputs):
        d = self.centre - inputs
        outputs[...] = self.max * np.exp(-(d * d) / (self.variance ** 2))

    def derivate(self, x, y, out):
        # 2 (centre − x) / variance² · y
        out[...] = 2.0 * (self.centre - x) / (self.variance ** 2) * y


# ---------------------------------------------------------------------------
# Periodic functions
# ---------------------------------------------------------------------------

@dataclass
class PeriodicFunction(TransferFunction):
    phase: float = 0.0
    span: float = 1.0
    amplitude: float = 1.0

    def _sawtooth(self, x: np.ndarray) -> np.ndarray:
        t = (x - self.phase) / self.span
        return t - np.floor(t + 0.5)


@dataclass
class SawtoothFunction(PeriodicFunction):
    """y = A · ((x−c)/s − floor((x−c)/s + ½))"""

    def apply(self, inputs, outputs):
        outputs[...] = self.amplitude * self._sawtooth(inputs)


@dataclass
class TriangleFunction(PeriodicFunction):
    """y = A · (1 − |sawtooth(x)|)"""

    def apply(self, inputs, outputs):
        outputs[...] = self.amplitude * (1.0 - np.abs(self._sawtooth(inputs)))


@dataclass
class SinFunction(PeriodicFunction):
    """y = A · sin(2π x / s − π c)"""

    @property
    def frequency(self) -> float:
        return 2.0 * np.pi / self.span

    def apply(self, inputs, outputs):
        outputs[...] = self.amplitude * np.sin(2.0 * np.pi * (inputs / self.span) - np.pi * self.phase)


@dataclass
class PseudoGaussFunction(PeriodicFunction):
    """y = ½ A · (sin(2π((x−c)/s + ¼)) + 1)"""

    def apply(self, inputs, outputs):
        t = (inputs - self.phase) / self.span + 0.25
        outputs[...] = 0.5 * self.amplitude * (np.sin(2.0 * np.pi * t) + 1.0)


# ---------------------------------------------------------------------------
# Competitive functions
# ---------------------------------------------------------------------------

@dataclass
class WinnerTakeAllFunction(TransferFunction):
    """Only the unit with the largest input outputs `value`; all others 0."""
    value: float = 1.0

    def apply(self, inputs, outputs):
        outputs.fill(0.0)
        if len(inputs):
            outputs[int(np.argmax(inputs))] = self.value


ALL_FUNCTIONS = (
    IdentityFunction, ScaleFunction, GainFunction, LinearFunction,
    SigmoidFunction, FakeSigmoidFunction, ScaledSigmoidFunction,
    StepFunction, RampFunction, LeakyIntegratorFunction, LogLikeFunction,
    CompositeFunction, LinearComboFunction, GaussFunction,
    SawtoothFunction, TriangleFunction, SinFunction, PseudoGaussFunction,
    WinnerTakeAllFunction,
)
