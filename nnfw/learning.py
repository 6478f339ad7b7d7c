"""
NNFW Learning

Patterns and the backpropagation engine.

A Pattern associates Clusters with desired input and output vectors; a
PatternSet is a plain list of Patterns.

BackPropagationAlgo runs, per step, three ordered phases over its tracked
clusters (outputs first, then the backprop order):

    1. reset        δout ← 0 for every tracked non-output cluster
    2. propagate    δin  ← δout ⊙ f'(net)            (δout if f has no derivative)
                    for each tracked incoming linker L with tracked source:
                        δout[L.from] += W_L · δin
    3. apply        cluster modifier:  rule(−η, −1, δin)
                    linker modifier:   rule(−η, L.from.outputs, δin)
                    momentum (opt.):   rule(−η·μ, last outputs, last δin)

Output deltas are set by `set_teaching_input` as outputs − desired, so with
rate −η the updates descend E = ½ Σ (y − t)².
"""

from __future__ import annotations
import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from . import algebra
from .clusters import Cluster, Updatable
from .errors import DimensionError
from .functions import DerivableFunction
from .linkers import Linker
from .log import get_logger
from .modifiers import Modifier, ModifierRegistry, NullModifier, default_modifiers
from .net import NeuralNet

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

@dataclass
class PatternInfo:
    inputs: np.ndarray = field(default_factory=lambda: np.zeros(0))
    outputs: np.ndarray = field(default_factory=lambda: np.zeros(0))


class Pattern:
    """Cluster → (desired inputs, desired outputs)."""

    def __init__(self):
        self._info: Dict[Cluster, PatternInfo] = {}

    def set_inputs_of(self, c: Cluster, inputs: Sequence[float]):
        self[c].inputs = algebra.vector(inputs)

    def set_outputs_of(self, c: Cluster, outputs: Sequence[float]):
        self[c].outputs = algebra.vector(outputs)

    def set_inputs_outputs_of(self, c: Cluster, inputs: Sequence[float], outputs: Sequence[float]):
        self.set_inputs_of(c, inputs)
        self.set_outputs_of(c, outputs)

    def inputs_of(self, c: Cluster) -> np.ndarray:
        info = self._info.get(c)
        return info.inputs if info is not None else np.zeros(0)

    def outputs_of(self, c: Cluster) -> np.ndarray:
        info = self._info.get(c)
        return info.outputs if info is not None else np.zeros(0)

    def __getitem__(self, c: Cluster) -> PatternInfo:
        return self._info.setdefault(c, PatternInfo())

    def __contains__(self, c: Cluster) -> bool:
        return c in self._info

    def clusters(self) -> List[Cluster]:
        return list(self._info)


PatternSet = List[Pattern]


# ---------------------------------------------------------------------------
# Learning algorithms
# ---------------------------------------------------------------------------

class LearningAlgorithm:
    """Base for supervised algorithms driving one NeuralNet."""

    def __init__(self, net: NeuralNet):
        self.net = net

    def learn(self, pattern: Optional[Pattern] = None):
        raise NotImplementedError

    def calculate_mse(self, pattern: Pattern) -> float:
        raise NotImplementedError

    def learn_on_set(self, patterns: PatternSet):
        for p in patterns:
            self.learn(p)

    def calculate_mse_on_set(self, patterns: PatternSet) -> float:
        if not patterns:
            return 0.0
        return sum(self.calculate_mse(p) for p in patterns) / len(patterns)

    def calculate_rmsd(self, pattern: Pattern) -> float:
        return float(np.sqrt(self.calculate_mse(pattern)))

    def calculate_rmsd_on_set(self, patterns: PatternSet) -> float:
        return float(np.sqrt(self.calculate_mse_on_set(patterns)))

    def _load_inputs(self, pattern: Pattern):
        for c in self.net.input_clusters:
            if c in pattern:
                c.set_inputs(pattern.inputs_of(c))

    def _targets(self, pattern: Pattern):
        """(cluster, desired outputs) for every output cluster `pattern` gives outputs for."""
        return [(c, pattern.outputs_of(c)) for c in self.net.output_clusters
                if len(pattern.outputs_of(c)) > 0]


@dataclass(eq=False)
class _ClusterDeltas:
    """Per tracked cluster: deltas, modifiers, and momentum history."""
    cluster: Cluster
    modifier: Modifier
    is_output: bool
    delta_out: np.ndarray
    delta_in: np.ndarray
    last_delta_in: np.ndarray
    slope: np.ndarray
    incoming: List[Linker] = field(default_factory=list)
    incoming_modifiers: List[Modifier] = field(default_factory=list)
    last_outputs: List[np.ndarray] = field(default_factory=list)


class BackPropagationAlgo(LearningAlgorithm):
    """
    Gradient descent through the caller-ordered graph.

    `update_order` is the backprop order, normally the forward order
    reversed.  Linkers whose kind has no registered Modifier (NORM, COPY by
    default) are not tracked: deltas stop flowing at them.
    """

    def __init__(self, net: NeuralNet, update_order: Sequence[Updatable],
                 learn_rate: float = 0.2, modifiers: Optional[ModifierRegistry] = None):
        super().__init__(net)
        self.learn_rate = learn_rate
        self._modifiers = modifiers if modifiers is not None else default_modifiers()
        self._order: List[Updatable] = list(update_order)
        self._use_momentum = False
        self._momentum = 0.0
        self._records: List[_ClusterDeltas] = []
        self._index: Dict[int, int] = {}
        self._no_derivative: set = set()
        self._build()

    # ── Tracked set ───────────────────────────────────────────────────────────

    def _build(self):
        self._records = []
        self._index = {}
        for c in self.net.output_clusters:
            self._track_cluster(c, True)
        for u in self._order:
            if isinstance(u, Cluster):
                self._track_cluster(u, False)
            elif isinstance(u, Linker):
                self._track_linker(u)
        logger.debug("backprop tracks %d clusters, %d linkers",
                     len(self._records), sum(len(r.incoming) for r in self._records))

    def _track_cluster(self, c: Cluster, is_output: bool) -> _ClusterDeltas:
        idx = self._index.get(id(c))
        if idx is not None:
            return self._records[idx]
        mod = self._modifiers.create_for(c)
        if mod is None:
            logger.debug("no modifier for cluster %r, parameters stay fixed", c.name)
            mod = NullModifier(c)
        n = c.num_neurons
        rec = _ClusterDeltas(
            cluster=c, modifier=mod, is_output=is_output,
            delta_out=algebra.vector(n), delta_in=algebra.vector(n),
            last_delta_in=algebra.vector(n), slope=algebra.vector(n),
        )
        self._index[id(c)] = len(self._records)
        self._records.append(rec)
        return rec

    def _track_linker(self, ln: Linker):
        mod = self._modifiers.create_for(ln)
        if mod is None:
            logger.debug("linker %r (%s) has no modifier, not trained",
                         ln.name, ln.kind.value)
            return
        rec = self._track_cluster(ln.to_cluster, False)
        rec.incoming.append(ln)
        rec.incoming_modifiers.append(mod)
        rec.last_outputs.append(algebra.vector(ln.from_cluster.num_neurons))

    def neural_net_changed(self):
        """Rebuild the tracked set after the net or its partitions changed."""
        self._build()

    def set_update_order(self, update_order: Sequence[Updatable]):
        self._order = list(update_order)
        self._build()

    @property
    def update_order(self) -> List[Updatable]:
        return list(self._order)

    def is_tracked(self, c: Cluster) -> bool:
        return id(c) in self._index

    # ── Hyperparameters ───────────────────────────────────────────────────────

    def set_learn_rate(self, rate: float):
        self.learn_rate = rate

    @property
    def momentum(self) -> float:
        return self._momentum

    def set_momentum(self, momentum: float):
        self._momentum = momentum

    @property
    def momentum_enabled(self) -> bool:
        return self._use_momentum

    def enable_momentum(self):
        """Turn momentum on with an empty history."""
        for rec in self._records:
            rec.last_delta_in.fill(0.0)
            for buf in rec.last_outputs:
                buf.fill(0.0)
        self._use_momentum = True

    def disable_momentum(self):
        self._use_momentum = False

    # ── Errors ────────────────────────────────────────────────────────────────

    def set_teaching_input(self, output: Cluster, desired: Sequence[float]):
        """
        Set the output delta of `output` to outputs − desired.  An untracked
        cluster is skipped with a warning; a target of the wrong size raises
        DimensionError.
        """
        idx = self._index.get(id(output))
        if idx is None:
            logger.warning("set_teaching_input: cluster %r is not tracked", output.name)
            return
        desired = algebra.vector(desired)
        if len(desired) != output.num_neurons:
            raise DimensionError(
                f"teaching input for {output.name!r}: {len(desired)} values, "
                f"{output.num_neurons} neurons")
        np.subtract(output.outputs, desired, out=self._records[idx].delta_out)

    def get_error(self, c: Cluster) -> np.ndarray:
        """Copy of the output delta of `c`; empty if `c` is not tracked."""
        idx = self._index.get(id(c))
        if idx is None:
            logger.warning("get_error: cluster %r is not tracked", c.name)
            return np.zeros(0)
        return self._records[idx].delta_out.copy()

    # ── Phases ────────────────────────────────────────────────────────────────

    def _propagate(self):
        for rec in self._records:
            c = rec.cluster
            f = c.function
            if isinstance(f, DerivableFunction):
                f.derivate(c.net_inputs(), c.outputs, rec.slope)
                np.multiply(rec.delta_out, rec.slope, out=rec.delta_in)
            else:
                if id(c) not in self._no_derivative:
                    self._no_derivative.add(id(c))
                    logger.debug("%s on %r has no derivative, using identity",
                                 f.type_name, c.name)
                rec.delta_in[...] = rec.delta_out
            for ln in rec.incoming:
                src = self._index.get(id(ln.from_cluster))
                if src is None:
                    continue
                algebra.mul_mx(self._records[src].delta_out, ln.weights, rec.delta_in)

    def _apply(self):
        rate = -self.learn_rate
        for rec in self._records:
            minus_ones = np.full(rec.cluster.num_neurons, -1.0)
            rec.modifier.rule(rate, minus_ones, rec.delta_in)
            for j, (ln, mod) in enumerate(zip(rec.incoming, rec.incoming_modifiers)):
                mod.rule(rate, ln.from_cluster.outputs, rec.delta_in)
                if self._use_momentum:
                    mod.rule(rate * self._momentum, rec.last_outputs[j], rec.last_delta_in)
                    rec.last_outputs[j][...] = ln.from_cluster.outputs
            if self._use_momentum:
                rec.last_delta_in[...] = rec.delta_in

    def learn(self, pattern: Optional[Pattern] = None):
        """
        One gradient step.  Without a pattern, uses the teaching inputs already
        set; with one, loads its inputs, steps the net, sets the teaching
        inputs of the output clusters and then learns.
        """
        if pattern is not None:
            self._load_inputs(pattern)
            self.net.step()
            # outputs without a target in this pattern only receive propagated deltas
            for rec in self._records:
                if rec.is_output:
                    rec.delta_out.fill(0.0)
            for c, desired in self._targets(pattern):
                self.set_teaching_input(c, desired)
        for rec in self._records:
            if not rec.is_output:
                rec.delta_out.fill(0.0)
        self._propagate()
        self._apply()

    def calculate_mse(self, pattern: Pattern) -> float:
        """Forward pass on `pattern`, then MSE averaged over output clusters."""
        self._load_inputs(pattern)
        self.net.step()
        targets = self._targets(pattern)
        if not targets:
            return 0.0
        return sum(algebra.mse(t, c.outputs) for c, t in targets) / len(targets)
