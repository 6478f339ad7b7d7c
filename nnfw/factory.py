"""
NNFW Factory

Builds Clusters, Linkers and TransferFunctions from their type name and a
dict of already-parsed properties (see `properties()` on each entity).
Persistence goes through a Factory value; `default_factory()` knows every
kind shipped with nnfw, and callers can register more.
"""

from __future__ import annotations
import numpy as np
from typing import Any, Callable, Dict, Mapping, Optional, Type

from .clusters import ALL_CLUSTERS, Cluster, ClusterKind, DDECluster
from .errors import ConfigurationError
from .functions import ALL_FUNCTIONS, TransferFunction
from .linkers import ALL_LINKERS, CopyLinker, CopyMode, Linker, LinkerKind, SparseMatrixLinker

ClusterBuilder = Callable[[Mapping[str, Any]], Cluster]
LinkerBuilder = Callable[[Mapping[str, Any]], Linker]


def _simple_builder(cls: Type[Cluster]) -> ClusterBuilder:
    def build(props):
        return cls(int(props["numNeurons"]), props.get("name", "unnamed"))
    return build


def _build_dde(props) -> Cluster:
    return DDECluster(props.get("coeff", []), int(props["numNeurons"]), props.get("name", "unnamed"))


def _matrix_builder(cls: Type[Linker]) -> LinkerBuilder:
    def build(props):
        return cls(props["from"], props["to"], props.get("name", "unnamed"))
    return build


def _build_sparse(props) -> Linker:
    ln = SparseMatrixLinker(props["from"], props["to"], props.get("name", "unnamed"))
    if "mask" in props:
        ln.set_mask(np.asarray(props["mask"], dtype=bool).reshape(ln.rows, ln.cols))
    return ln


def _build_copy(props) -> Linker:
    mode = CopyMode(props.get("mode", CopyMode.OUT2IN.value))
    return CopyLinker(props["from"], props["to"], props.get("name", "unnamed"), mode)


class Factory:
    """Type name → constructor tables for clusters, linkers and functions."""

    def __init__(self):
        self._clusters: Dict[str, ClusterBuilder] = {}
        self._linkers: Dict[str, LinkerBuilder] = {}
        self._functions: Dict[str, Type[TransferFunction]] = {}

    # ── Registration ──────────────────────────────────────────────────────────

    def register_cluster(self, type_name: str, builder: ClusterBuilder):
        self._clusters[type_name] = builder

    def register_linker(self, type_name: str, builder: LinkerBuilder):
        self._linkers[type_name] = builder

    def register_function(self, cls: Type[TransferFunction], type_name: Optional[str] = None):
        self._functions[type_name or cls.__name__] = cls

    def function_class(self, type_name: str) -> Type[TransferFunction]:
        try:
            return self._functions[type_name]
        except KeyError:
            raise ConfigurationError(f"unknown transfer function type {type_name!r}") from None

    # ── Construction ──────────────────────────────────────────────────────────

    def create_function(self, type_name: str, params: Optional[Mapping[str, Any]] = None) -> TransferFunction:
        cls = self.function_class(type_name)
        try:
            return cls(**dict(params or {}))
        except TypeError as exc:
            raise ConfigurationError(f"bad parameters for {type_name}: {exc}") from exc

    def create_cluster(self, props: Mapping[str, Any]) -> Cluster:
        builder = self._clusters.get(props.get("type"))
        if builder is None:
            raise ConfigurationError(f"unknown cluster type {props.get('type')!r}")
        c = builder(props)
        c.accumulate = bool(props.get("accumulate", False))
        if props.get("outFunction") is not None:
            c.function = props["outFunction"]
        if "biases" in props and hasattr(c, "set_biases"):
            c.set_biases(np.asarray(props["biases"], dtype=float))
        return c

    def create_linker(self, props: Mapping[str, Any]) -> Linker:
        builder = self._linkers.get(props.get("type"))
        if builder is None:
            raise ConfigurationError(f"unknown linker type {props.get('type')!r}")
        ln = builder(props)
        if "weights" in props and hasattr(ln, "set_matrix"):
            w = np.asarray(props["weights"], dtype=float)
            ln.set_matrix(w.reshape(ln.from_cluster.num_neurons, ln.to_cluster.num_neurons))
        return ln


def default_factory() -> Factory:
    f = Factory()
    for cls in ALL_CLUSTERS:
        f.register_cluster(cls.kind.value,
                           _build_dde if cls.kind is ClusterKind.DDE else _simple_builder(cls))
    special = {LinkerKind.SPARSE: _build_sparse, LinkerKind.COPY: _build_copy}
    for cls in ALL_LINKERS:
        f.register_linker(cls.kind.value, special.get(cls.kind) or _matrix_builder(cls))
    for cls in ALL_FUNCTIONS:
        f.register_function(cls)
    return f
