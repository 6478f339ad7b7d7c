"""
NNFW Modifiers

A Modifier is bound to one Cluster or Linker and applies the delta rule to its
learnable parameters:

    rule(rate, x, y):   params += rate · x ⊗ y     (weight matrices)
                        params += rate · x ⊙ y     (bias vectors)

The ModifierRegistry maps each ClusterKind / LinkerKind to the Modifier class
that knows its parameter store.  Parameter-less kinds map to NullModifier so
the learning loop can call rule() uniformly.  Kinds that are not registered
at all (NORM, COPY by default) are left out of gradient learning.
"""

from __future__ import annotations
import numpy as np
from enum import Enum
from typing import Dict, Optional, Type

from . import algebra
from .clusters import ClusterKind, Updatable
from .linkers import LinkerKind


class Modifier:
    """Update rule bound to exactly one Updatable."""

    def __init__(self, updatable: Updatable):
        self.updatable = updatable

    def rule(self, rate: float, x: np.ndarray, y: np.ndarray):
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}({self.updatable.name!r})"


class NullModifier(Modifier):
    """For kinds with nothing to learn."""

    def rule(self, rate, x, y):
        pass


class BiasModifier(Modifier):
    """biases += rate · x ⊙ y"""

    def rule(self, rate, x, y):
        algebra.delta_rule(self.updatable.biases, rate, x, y)


class MatrixModifier(Modifier):
    """weights += rate · x ⊗ y"""

    def rule(self, rate, x, y):
        algebra.delta_rule(self.updatable.weights, rate, x, y)


class SparseMatrixModifier(MatrixModifier):
    """As MatrixModifier, then re-applies the connectivity mask."""

    def rule(self, rate, x, y):
        super().rule(rate, x, y)
        algebra.cover(self.updatable.weights, self.updatable.mask)


class ModifierRegistry:
    """Kind → Modifier class table.  Built explicitly; see default_modifiers()."""

    def __init__(self):
        self._table: Dict[Enum, Type[Modifier]] = {}

    def register(self, kind: Enum, modifier: Type[Modifier]):
        self._table[kind] = modifier

    def unregister(self, kind: Enum):
        self._table.pop(kind, None)

    def lookup(self, kind: Enum) -> Optional[Type[Modifier]]:
        return self._table.get(kind)

    def __contains__(self, kind: Enum) -> bool:
        return kind in self._table

    def create_for(self, updatable: Updatable) -> Optional[Modifier]:
        """A Modifier bound to `updatable`, or None if its kind has no rule."""
        cls = self._table.get(getattr(updatable, "kind", None))
        return cls(updatable) if cls is not None else None


def default_modifiers() -> ModifierRegistry:
    reg = ModifierRegistry()
    reg.register(ClusterKind.SIMPLE, NullModifier)
    reg.register(ClusterKind.FAKE, NullModifier)
    reg.register(ClusterKind.DDE, NullModifier)
    reg.register(ClusterKind.BIASED, BiasModifier)
    reg.register(LinkerKind.DOT, MatrixModifier)
    reg.register(LinkerKind.SPARSE, SparseMatrixModifier)
    return reg
