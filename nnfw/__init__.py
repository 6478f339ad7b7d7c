"""
NNFW: Neural Network Framework

A neural-network computation graph with hand-written backpropagation:
- numpy vector/matrix algebra with zero-copy views
- Clusters (Simple, Biased, Fake, DDE) joined by Linkers (Dot, Norm, Sparse, Copy)
- Explicit, caller-supplied update order
- Kind-keyed Modifier registry driving one generic learning loop
- INI persistence of the named-property schema
"""

from .config import NNFWConfig
from .errors import (
    NNFWError, DimensionError, MembershipError, UpdateOrderError, ConfigurationError,
)
from .functions import (
    TransferFunction, DerivableFunction,
    IdentityFunction, ScaleFunction, GainFunction, LinearFunction,
    SigmoidFunction, FakeSigmoidFunction, ScaledSigmoidFunction,
    StepFunction, RampFunction, LeakyIntegratorFunction, LogLikeFunction,
    CompositeFunction, LinearComboFunction, GaussFunction,
    SawtoothFunction, TriangleFunction, SinFunction, PseudoGaussFunction,
    WinnerTakeAllFunction,
)
from .clusters import (
    Updatable, Cluster, ClusterKind, SimpleCluster, BiasedCluster, FakeCluster, DDECluster,
)
from .linkers import (
    Linker, LinkerKind, CopyMode, MatrixLinker, DotLinker, NormLinker,
    SparseMatrixLinker, CopyLinker,
)
from .net import NeuralNet
from .modifiers import (
    Modifier, NullModifier, BiasModifier, MatrixModifier, SparseMatrixModifier,
    ModifierRegistry, default_modifiers,
)
from .learning import PatternInfo, Pattern, PatternSet, LearningAlgorithm, BackPropagationAlgo
from .factory import Factory, default_factory
from .persistence import dumps, loads, save_net, load_net, net_properties
from .engine import FeedForward, build_feed_forward, TrainingMetrics, Trainer

__version__ = "2.0.0"
__all__ = [
    "NNFWConfig",
    "NNFWError",
    "DimensionError",
    "MembershipError",
    "UpdateOrderError",
    "ConfigurationError",
    "TransferFunction",
    "DerivableFunction",
    "IdentityFunction",
    "ScaleFunction",
    "GainFunction",
    "LinearFunction",
    "SigmoidFunction",
    "FakeSigmoidFunction",
    "ScaledSigmoidFunction",
    "StepFunction",
    "RampFunction",
    "LeakyIntegratorFunction",
    "LogLikeFunction",
    "CompositeFunction",
    "LinearComboFunction",
    "GaussFunction",
    "SawtoothFunction",
    "TriangleFunction",
    "SinFunction",
    "PseudoGaussFunction",
    "WinnerTakeAllFunction",
    "Updatable",
    "Cluster",
    "ClusterKind",
    "SimpleCluster",
    "BiasedCluster",
    "FakeCluster",
    "DDECluster",
    "Linker",
    "LinkerKind",
    "CopyMode",
    "MatrixLinker",
    "DotLinker",
    "NormLinker",
    "SparseMatrixLinker",
    "CopyLinker",
    "NeuralNet",
    "Modifier",
    "NullModifier",
    "BiasModifier",
    "MatrixModifier",
    "SparseMatrixModifier",
    "ModifierRegistry",
    "default_modifiers",
    "PatternInfo",
    "Pattern",
    "PatternSet",
    "LearningAlgorithm",
    "BackPropagationAlgo",
    "Factory",
    "default_factory",
    "dumps",
    "loads",
    "save_net",
    "load_net",
    "net_properties",
    "FeedForward",
    "build_feed_forward",
    "TrainingMetrics",
    "Trainer",
]
