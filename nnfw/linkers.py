"""
NNFW Linkers

A Linker is a directed edge from one Cluster to another.  `update()` reads
`from.outputs` (or another port, for Copy) and adds into `to.inputs`, zeroing
the destination first when it still holds the previous step's values
(reset-before-accumulate, see clusters.py).

Weight matrices are laid out rows = from-neurons, cols = to-neurons:

    DOT     to.x[j]  += Σ_i  from.y[i] · W[i, j]
    NORM    to.x[j]  += ‖ from.y − W[:, j] ‖₂
    SPARSE  as DOT, W[i, j] ≡ 0 wherever mask[i, j] is False
    COPY    dst[:n]  += src[:n],  n = min(|from|, |to|), ports chosen by CopyMode
"""

from __future__ import annotations
import numpy as np
from enum import Enum
from typing import Any, Dict

from . import algebra
from .clusters import Cluster, Updatable
from .errors import DimensionError


class LinkerKind(Enum):
    DOT    = "DotLinker"
    NORM   = "NormLinker"
    SPARSE = "SparseMatrixLinker"
    COPY   = "CopyLinker"


class CopyMode(Enum):
    IN2IN   = "In2In"
    IN2OUT  = "In2Out"
    OUT2IN  = "Out2In"
    OUT2OUT = "Out2Out"


class Linker(Updatable):
    """Base of every linker kind."""

    kind: LinkerKind

    def __init__(self, from_cluster: Cluster, to_cluster: Cluster, name: str = "unnamed"):
        super().__init__(name)
        self.from_cluster = from_cluster
        self.to_cluster = to_cluster

    def size(self) -> int:
        """Number of scalar connections."""
        return self.from_cluster.num_neurons * self.to_cluster.num_neurons

    def _prepare_target(self):
        if self.to_cluster.need_reset:
            self.to_cluster.reset_inputs()

    def _new_like(self) -> "Linker":
        return type(self)(self.from_cluster, self.to_cluster, self.name)

    def clone(self) -> "Linker":
        return self._new_like()

    def properties(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "name": self.name,
            "from": self.from_cluster.name,
            "to": self.to_cluster.name,
        }

    def __repr__(self):
        return (f"{type(self).__name__}({self.name!r}: "
                f"{self.from_cluster.name!r} → {self.to_cluster.name!r})")


# ---------------------------------------------------------------------------
# Weighted linkers
# ---------------------------------------------------------------------------

class MatrixLinker(Linker):
    """A Linker carrying a rows × cols weight matrix."""

    def __init__(self, from_cluster: Cluster, to_cluster: Cluster, name: str = "unnamed"):
        super().__init__(from_cluster, to_cluster, name)
        self._weights = algebra.matrix(from_cluster.num_neurons, to_cluster.num_neurons)

    @property
    def rows(self) -> int:
        return self._weights.shape[0]

    @property
    def cols(self) -> int:
        return self._weights.shape[1]

    @property
    def weights(self) -> np.ndarray:
        return self._weights

    def _check_entry(self, from_neuron: int, to_neuron: int):
        if not (0 <= from_neuron < self.rows and 0 <= to_neuron < self.cols):
            raise IndexError(
                f"weight ({from_neuron}, {to_neuron}) out of range for "
                f"{self.name!r} ({self.rows}×{self.cols})")

    def set_weight(self, from_neuron: int, to_neuron: int, weight: float):
        self._check_entry(from_neuron, to_neuron)
        self._weights[from_neuron, to_neuron] = weight

    def get_weight(self, from_neuron: int, to_neuron: int) -> float:
        self._check_entry(from_neuron, to_neuron)
        return float(self._weights[from_neuron, to_neuron])

    def set_matrix(self, weights):
        algebra.assign(self._weights, np.asarray(weights, dtype=float))

    def randomize(self, min_value: float, max_value: float):
        self._weights[...] = np.random.uniform(min_value, max_value, self._weights.shape)

    def clone(self) -> "MatrixLinker":
        ln = self._new_like()
        ln.set_matrix(self._weights)
        return ln

    def properties(self) -> Dict[str, Any]:
        props = super().properties()
        props["weights"] = self._weights.copy()
        return props


class DotLinker(MatrixLinker):
    """Dense linear connection: to.inputs += from.outputs · W."""

    kind = LinkerKind.DOT

    def update(self):
        self._prepare_target()
        algebra.mul_xm(self.to_cluster.inputs, self.from_cluster.outputs, self._weights)


class NormLinker(MatrixLinker):
    """
    Distance-based connection: each destination unit j receives the Euclidean
    distance between the source outputs and column j of W.  Non-linear in W,
    so no learning rule is registered for it.
    """

    kind = LinkerKind.NORM

    def update(self):
        self._prepare_target()
        d = self.from_cluster.outputs[:, np.newaxis] - self._weights
        self.to_cluster.inputs[...] += np.sqrt(np.sum(d * d, axis=0))


class SparseMatrixLinker(MatrixLinker):
    """
    DOT linker with a boolean connectivity mask.  Weights outside the mask are
    forced to zero after every write.

    With prob < 1 each connection exists with probability `prob`.  Square
    linkers (typically recurrent, from == to) may also ask for an empty
    diagonal and/or a symmetric mask.
    """

    kind = LinkerKind.SPARSE

    def __init__(self, from_cluster: Cluster, to_cluster: Cluster, name: str = "unnamed",
                 prob: float = 1.0, zero_diagonal: bool = False, symmetric: bool = False):
        super().__init__(from_cluster, to_cluster, name)
        if (zero_diagonal or symmetric) and self.rows != self.cols:
            raise DimensionError(
                f"{name!r}: zero_diagonal/symmetric need a square matrix, got {self.rows}×{self.cols}")
        self._mask = self._draw_mask(prob)
        if zero_diagonal:
            np.fill_diagonal(self._mask, False)
        if symmetric:
            upper = np.triu(self._mask)
            self._mask[...] = upper | upper.T
        algebra.cover(self._weights, self._mask)

    def _draw_mask(self, prob: float) -> np.ndarray:
        if prob >= 1.0:
            return np.ones(self._weights.shape, dtype=bool)
        return np.random.uniform(0.0, 1.0, self._weights.shape) < prob

    @property
    def mask(self) -> np.ndarray:
        return self._mask

    def update(self):
        self._prepare_target()
        algebra.mul_xm(self.to_cluster.inputs, self.from_cluster.outputs, self._weights)

    # ── Writes (always re-masked) ─────────────────────────────────────────────

    def set_weight(self, from_neuron: int, to_neuron: int, weight: float):
        self._check_entry(from_neuron, to_neuron)
        self._weights[from_neuron, to_neuron] = weight if self._mask[from_neuron, to_neuron] else 0.0

    def set_matrix(self, weights):
        super().set_matrix(weights)
        algebra.cover(self._weights, self._mask)

    def randomize(self, min_value: float, max_value: float):
        super().randomize(min_value, max_value)
        algebra.cover(self._weights, self._mask)

    def set_mask(self, mask):
        mask = np.asarray(mask, dtype=bool)
        if mask.shape != self._mask.shape:
            raise DimensionError(f"set_mask: {mask.shape} vs {self._mask.shape}")
        self._mask[...] = mask
        algebra.cover(self._weights, self._mask)

    # ── Connectivity ──────────────────────────────────────────────────────────

    def connect(self, from_neuron: int, to_neuron: int):
        """Allow a connection; its weight starts at zero."""
        self._check_entry(from_neuron, to_neuron)
        self._mask[from_neuron, to_neuron] = True

    def disconnect(self, from_neuron: int, to_neuron: int):
        self._check_entry(from_neuron, to_neuron)
        self._mask[from_neuron, to_neuron] = False
        self._weights[from_neuron, to_neuron] = 0.0

    def connect_all(self):
        self._mask.fill(True)

    def disconnect_all(self):
        self._mask.fill(False)
        self._weights.fill(0.0)

    def connect_random(self, prob: float):
        """Re-draw the whole mask: each connection exists with probability prob."""
        self._mask[...] = self._draw_mask(prob)
        algebra.cover(self._weights, self._mask)

    def clone(self) -> "SparseMatrixLinker":
        ln = self._new_like()
        ln.set_mask(self._mask)
        ln.set_matrix(self._weights)
        return ln

    def properties(self) -> Dict[str, Any]:
        props = super().properties()
        props["mask"] = self._mask.copy()
        return props


# ---------------------------------------------------------------------------
# Copy linker
# ---------------------------------------------------------------------------

class CopyLinker(Linker):
    """
    Adds a prefix of one port of `from` into one port of `to`.  The prefix
    length is the smaller of the two cluster sizes.  No weights.
    """

    kind = LinkerKind.COPY

    def __init__(self, from_cluster: Cluster, to_cluster: Cluster, name: str = "unnamed",
                 mode: CopyMode = CopyMode.OUT2IN):
        super().__init__(from_cluster, to_cluster, name)
        self._dim = min(from_cluster.num_neurons, to_cluster.num_neurons)
        self.set_mode(mode)

    @property
    def mode(self) -> CopyMode:
        return self._mode

    def set_mode(self, mode: CopyMode):
        self._mode = CopyMode(mode)

    def _ports(self):
        src = (self.from_cluster.inputs if self._mode in (CopyMode.IN2IN, CopyMode.IN2OUT)
               else self.from_cluster.outputs)
        dst = (self.to_cluster.inputs if self._mode in (CopyMode.IN2IN, CopyMode.OUT2IN)
               else self.to_cluster.outputs)
        return algebra.view(src, 0, self._dim), algebra.view(dst, 0, self._dim)

    def size(self) -> int:
        return self._dim

    def update(self):
        self._prepare_target()
        src, dst = self._ports()
        dst += src

    def _new_like(self) -> "CopyLinker":
        return CopyLinker(self.from_cluster, self.to_cluster, self.name, self._mode)

    def properties(self) -> Dict[str, Any]:
        props = super().properties()
        props["mode"] = self._mode.value
        return props


ALL_LINKERS = (DotLinker, NormLinker, SparseMatrixLinker, CopyLinker)
