"""
NNFW Clusters

A Cluster is a named group of neurons sharing one transfer function.  It owns
an input buffer and an output buffer; linkers add into the inputs, `update()`
maps inputs to outputs.

Reset-before-accumulate contract:
    update() sets need_reset (unless accumulate is on).  The next linker that
    feeds the cluster sees need_reset, zeroes the inputs, clears the flag and
    adds its contribution; later linkers in the same pass just add.

Kinds (closed set, see ClusterKind):
    SIMPLE  y = f(x)
    BIASED  y = f(x − b), b learnable
    FAKE    y *is* x (outputs is a view of inputs), never resets
    DDE     y(t) = a0 + a1·f(x) + a2·x + a3·y(t−1) + a4·y'(t−1) + …
"""

from __future__ import annotations
import numpy as np
from enum import Enum
from typing import Any, Dict, List, Sequence

from . import algebra
from .functions import SigmoidFunction, TransferFunction


class ClusterKind(Enum):
    SIMPLE = "SimpleCluster"
    BIASED = "BiasedCluster"
    FAKE   = "FakeCluster"
    DDE    = "DDECluster"


class Updatable:
    """Anything that can sit in an update order: has a name and update()."""

    def __init__(self, name: str = "unnamed"):
        self.name = name

    def update(self):
        raise NotImplementedError

    def randomize(self, min_value: float, max_value: float):
        """Re-draw learnable parameters uniformly.  No-op by default."""

    def __repr__(self):
        return f"{type(self).__name__}({self.name!r})"


class Cluster(Updatable):
    """Base of every cluster kind."""

    kind: ClusterKind

    def __init__(self, num_neurons: int, name: str = "unnamed"):
        super().__init__(name)
        self._n = int(num_neurons)
        self._inputs = algebra.vector(self._n)
        self._outputs = algebra.vector(self._n)
        self._accumulate = False
        self._need_reset = False
        self._function: TransferFunction = SigmoidFunction(1.0)
        self._function.set_size(self._n)

    # ── Shape & flags ─────────────────────────────────────────────────────────

    @property
    def num_neurons(self) -> int:
        return self._n

    @property
    def accumulate(self) -> bool:
        """When on, feeding linkers never clear the inputs."""
        return self._accumulate

    @accumulate.setter
    def accumulate(self, mode: bool):
        self._accumulate = bool(mode)
        if self._accumulate:
            self._need_reset = False

    @property
    def need_reset(self) -> bool:
        return self._need_reset

    def _set_need_reset(self, flag: bool):
        self._need_reset = (not self._accumulate) and flag

    # ── Transfer function ─────────────────────────────────────────────────────

    @property
    def function(self) -> TransferFunction:
        return self._function

    @function.setter
    def function(self, f: TransferFunction):
        # The cluster owns its own copy
        self._function = f.clone()
        self._function.set_size(self._n)

    # ── Buffers ───────────────────────────────────────────────────────────────
    # Buffers are never rebound: writes go into the existing storage so that
    # views held by other objects stay valid.

    @property
    def inputs(self) -> np.ndarray:
        return self._inputs

    @property
    def outputs(self) -> np.ndarray:
        return self._outputs

    def net_inputs(self) -> np.ndarray:
        """The vector the transfer function was last applied to."""
        return self._inputs

    def _check_neuron(self, neuron: int):
        if not 0 <= neuron < self._n:
            raise IndexError(f"neuron {neuron} out of range for {self.name!r} ({self._n} neurons)")

    def set_input(self, neuron: int, value: float):
        self._check_neuron(neuron)
        self._inputs[neuron] = value

    def get_input(self, neuron: int) -> float:
        self._check_neuron(neuron)
        return float(self._inputs[neuron])

    def set_inputs(self, values: Sequence[float]):
        algebra.assign(self._inputs, np.asarray(values, dtype=float))

    def set_all_inputs(self, value: float):
        self._inputs.fill(value)
        self._need_reset = False

    def reset_inputs(self):
        algebra.zeroing(self._inputs)
        self._need_reset = False

    def set_output(self, neuron: int, value: float):
        self._check_neuron(neuron)
        self._outputs[neuron] = value

    def get_output(self, neuron: int) -> float:
        self._check_neuron(neuron)
        return float(self._outputs[neuron])

    def set_outputs(self, values: Sequence[float]):
        algebra.assign(self._outputs, np.asarray(values, dtype=float))

    # ── Copy / schema ─────────────────────────────────────────────────────────

    def _new_like(self) -> "Cluster":
        return type(self)(self._n, self.name)

    def clone(self) -> "Cluster":
        c = self._new_like()
        c.accumulate = self._accumulate
        c.function = self._function
        c.inputs[...] = self._inputs
        c.outputs[...] = self._outputs
        return c

    def properties(self) -> Dict[str, Any]:
        """Named-property view used by persistence."""
        return {
            "type": self.kind.value,
            "name": self.name,
            "numNeurons": self._n,
            "accumulate": self._accumulate,
            "outFunction": self._function,
        }


class SimpleCluster(Cluster):
    """Stateless: outputs = f(inputs)."""

    kind = ClusterKind.SIMPLE

    def update(self):
        self._function.apply(self._inputs, self._outputs)
        self._set_need_reset(True)


class BiasedCluster(Cluster):
    """outputs = f(inputs − biases), with a learnable bias per neuron."""

    kind = ClusterKind.BIASED

    def __init__(self, num_neurons: int, name: str = "unnamed"):
        super().__init__(num_neurons, name)
        self._biases = algebra.vector(self._n)
        self._net = algebra.vector(self._n)

    @property
    def biases(self) -> np.ndarray:
        return self._biases

    def update(self):
        np.subtract(self._inputs, self._biases, out=self._net)
        self._function.apply(self._net, self._outputs)
        self._set_need_reset(True)

    def net_inputs(self) -> np.ndarray:
        return self._net

    def set_bias(self, neuron: int, bias: float):
        self._check_neuron(neuron)
        self._biases[neuron] = bias

    def get_bias(self, neuron: int) -> float:
        self._check_neuron(neuron)
        return float(self._biases[neuron])

    def set_biases(self, biases: Sequence[float]):
        algebra.assign(self._biases, np.asarray(biases, dtype=float))

    def set_all_biases(self, bias: float):
        self._biases.fill(bias)

    def randomize(self, min_value: float, max_value: float):
        self._biases[...] = np.random.uniform(min_value, max_value, self._n)

    def clone(self) -> "BiasedCluster":
        c = super().clone()
        c.set_biases(self._biases)
        return c

    def properties(self) -> Dict[str, Any]:
        props = super().properties()
        props["biases"] = self._biases.copy()
        return props


class FakeCluster(Cluster):
    """
    Pure relay: the output buffer is a view of the input buffer, so anything
    written to the inputs is immediately visible as output.  It never asks
    feeding linkers to reset.
    """

    kind = ClusterKind.FAKE

    def __init__(self, num_neurons: int, name: str = "unnamed"):
        super().__init__(num_neurons, name)
        self._outputs = algebra.view(self._inputs, 0, self._n)

    def __setstate__(self, state):
        # pickle stores the view as a copy; re-alias it
        self.__dict__.update(state)
        self._outputs = algebra.view(self._inputs, 0, self._n)

    def update(self):
        pass


class DDECluster(Cluster):
    """
    Output governed by a discrete differential equation:

        y(t) = a0 + a1·f(x) + a2·x + a3·y(t−1) + a4·y'(t−1) + a5·y''(t−1) + …

    Derivatives are finite differences kept in a history of len(coeff) − 3
    vectors: history[0] = y(t−1), history[1] = y'(t−1), …
    """

    kind = ClusterKind.DDE

    def __init__(self, coeff: Sequence[float], num_neurons: int, name: str = "unnamed"):
        super().__init__(num_neurons, name)
        self._coeff = algebra.vector(0)
        self._history: List[np.ndarray] = []
        self.set_coeff(coeff)

    @property
    def coeff(self) -> np.ndarray:
        return self._coeff

    def set_coeff(self, coeff: Sequence[float]):
        self._coeff = algebra.vector(list(coeff))
        depth = max(len(self._coeff) - 3, 0)
        self._history = [algebra.vector(self._n) for _ in range(depth)]

    def update(self):
        c = self._coeff
        if len(c) == 0:
            self._outputs.fill(0.0)
            self._set_need_reset(True)
            return
        y = np.full(self._n, c[0])
        if len(c) > 1:
            fx = np.empty(self._n)
            self._function.apply(self._inputs, fx)
            y += c[1] * fx
        if len(c) > 2:
            y += c[2] * self._inputs
        for a, h in zip(c[3:], self._history):
            y += a * h
        self._outputs[...] = y
        self._update_history()
        self._set_need_reset(True)

    def _update_history(self):
        # y, y' = y − y(t−1), y'' = y' − y'(t−1), …
        current = self._outputs.copy()
        for h in self._history:
            diff = current - h
            h[...] = current
            current = diff

    def _new_like(self) -> "DDECluster":
        return DDECluster(self._coeff, self._n, self.name)

    def properties(self) -> Dict[str, Any]:
        props = super().properties()
        props["coeff"] = self._coeff.copy()
        return props


ALL_CLUSTERS = (SimpleCluster, BiasedCluster, FakeCluster, DDECluster)
