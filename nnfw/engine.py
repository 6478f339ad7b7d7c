"""
NNFW Engine: Top-Level API

Builds layered feed-forward nets and trains them with backpropagation.

Example:
    ff = build_feed_forward([2, 4, 1])
    trainer = Trainer(ff, NNFWConfig(learn_rate=0.2, epochs=20000, seed=0))
    trainer.initialize()
    metrics = trainer.train(patterns)
"""

from __future__ import annotations
import numpy as np
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .clusters import BiasedCluster, Cluster, FakeCluster, SimpleCluster, Updatable
from .config import NNFWConfig
from .functions import SigmoidFunction, TransferFunction
from .learning import BackPropagationAlgo, Pattern, PatternSet
from .linkers import DotLinker, Linker
from .log import get_logger
from .modifiers import ModifierRegistry
from .net import NeuralNet

logger = get_logger(__name__)


@dataclass
class FeedForward:
    net: NeuralNet
    layers: List[Cluster]
    linkers: List[Linker]

    @property
    def spread_order(self) -> List[Updatable]:
        order: List[Updatable] = [self.layers[0]]
        for ln, layer in zip(self.linkers, self.layers[1:]):
            order += [ln, layer]
        return order

    @property
    def backprop_order(self) -> List[Updatable]:
        return list(reversed(self.spread_order))

    @property
    def input(self) -> Cluster:
        return self.layers[0]

    @property
    def output(self) -> Cluster:
        return self.layers[-1]

    def pattern(self, inputs: Sequence[float], outputs: Sequence[float]) -> Pattern:
        p = Pattern()
        p.set_inputs_of(self.input, inputs)
        p.set_outputs_of(self.output, outputs)
        return p

    def patterns(self, X: np.ndarray, Y: np.ndarray) -> PatternSet:
        return [self.pattern(x, y) for x, y in zip(X, Y)]

    def predict(self, x: Sequence[float]) -> np.ndarray:
        self.input.set_inputs(x)
        self.net.step()
        return self.output.outputs.copy()


def build_feed_forward(sizes: Sequence[int],
                       function: Optional[TransferFunction] = None,
                       biased: bool = True,
                       fake_input: bool = False,
                       name: str = "ff") -> FeedForward:
    """
    Layered net  sizes[0] → sizes[1] → … → sizes[-1]  joined by DotLinkers.

    Every layer gets `function` (sigmoid by default).  With `fake_input` the
    first layer is a FakeCluster that relays its inputs unchanged.
    """
    assert len(sizes) >= 2, "need at least an input and an output layer"
    function = function or SigmoidFunction(1.0)
    net = NeuralNet(name)
    layers: List[Cluster] = []
    for i, n in enumerate(sizes):
        if i == 0 and fake_input:
            c = FakeCluster(n, "in")
        else:
            cname = "in" if i == 0 else "out" if i == len(sizes) - 1 else f"hid{i}"
            c = BiasedCluster(n, cname) if biased else SimpleCluster(n, cname)
            c.function = function
        net.add_cluster(c, is_input=(i == 0), is_output=(i == len(sizes) - 1))
        layers.append(c)
    linkers: List[Linker] = []
    for i, (a, b) in enumerate(zip(layers, layers[1:])):
        ln = DotLinker(a, b, f"l{i + 1}")
        net.add_linker(ln)
        linkers.append(ln)
    ff = FeedForward(net, layers, linkers)
    net.set_order(ff.spread_order)
    return ff


@dataclass
class TrainingMetrics:
    mse_history: List[float] = field(default_factory=list)
    epochs_run: int = 0
    converged: bool = False

    @property
    def final_mse(self) -> float:
        return self.mse_history[-1] if self.mse_history else float("nan")


class Trainer:
    """
    Epoch loop around BackPropagationAlgo: one learn_on_set per epoch,
    followed by calculate_mse_on_set.
    """

    def __init__(self, net, config: Optional[NNFWConfig] = None,
                 backprop_order: Optional[Sequence[Updatable]] = None,
                 modifiers: Optional[ModifierRegistry] = None):
        self.cfg = config or NNFWConfig()
        if isinstance(net, FeedForward):
            self.net = net.net
            order = backprop_order if backprop_order is not None else net.backprop_order
        else:
            self.net = net
            order = backprop_order if backprop_order is not None else list(reversed(net.order))
        self.net.set_order(self.net.order, strict=self.cfg.strict_order)
        self.modifiers = modifiers
        self.algo = BackPropagationAlgo(self.net, order, self.cfg.learn_rate, modifiers)
        self.algo.set_momentum(self.cfg.momentum)
        if self.cfg.use_momentum:
            self.algo.enable_momentum()
        self.metrics = TrainingMetrics()

    def initialize(self):
        """Seed (if configured) and randomize every learnable parameter."""
        if self.cfg.seed is not None:
            np.random.seed(self.cfg.seed)
        self.net.randomize(self.cfg.randomize_min, self.cfg.randomize_max)

    def train_epoch(self, patterns: PatternSet) -> float:
        self.algo.learn_on_set(patterns)
        mse = self.algo.calculate_mse_on_set(patterns)
        self.metrics.mse_history.append(mse)
        self.metrics.epochs_run += 1
        return mse

    def train(self, patterns: PatternSet, epochs: Optional[int] = None) -> TrainingMetrics:
        epochs = self.cfg.epochs if epochs is None else epochs
        for epoch in range(1, epochs + 1):
            mse = self.train_epoch(patterns)
            if self.cfg.log_every and epoch % self.cfg.log_every == 0:
                logger.info("epoch %d  mse=%.6f", epoch, mse)
            if self.cfg.target_mse is not None and mse < self.cfg.target_mse:
                self.metrics.converged = True
                logger.info("target mse %.4g reached at epoch %d", self.cfg.target_mse, epoch)
                break
        return self.metrics

    def evaluate(self, patterns: PatternSet) -> float:
        return self.algo.calculate_mse_on_set(patterns)

    def save(self, path: str):
        import pickle
        with open(path, 'wb') as f:
            pickle.dump({
                'cfg': self.cfg,
                'net': self.net,
                'order': self.algo.update_order,
                'metrics': self.metrics,
            }, f)

    def load(self, path: str):
        import pickle
        with open(path, 'rb') as f:
            d = pickle.load(f)
        self.cfg = d['cfg']
        self.net = d['net']
        self.algo = BackPropagationAlgo(self.net, d['order'], self.cfg.learn_rate, self.modifiers)
        self.algo.set_momentum(self.cfg.momentum)
        if self.cfg.use_momentum:
            self.algo.enable_momentum()
        self.metrics = d.get('metrics', TrainingMetrics())
