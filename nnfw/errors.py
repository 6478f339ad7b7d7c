"""
NNFW Exceptions

Programmer errors (wrong sizes, unknown members, bad update orders) raise.
Soft failures (duplicate registration, removal of an absent entity, name
lookup misses) are reported through return values instead.
"""


class NNFWError(Exception):
    """Base class for every error raised by nnfw."""


class DimensionError(NNFWError, ValueError):
    """Operands of an algebra operation do not have compatible sizes."""


class MembershipError(NNFWError, KeyError):
    """An entity refers to a Cluster that is not part of the NeuralNet."""


class UpdateOrderError(NNFWError):
    """The update order does not respect the linker endpoints."""


class ConfigurationError(NNFWError):
    """A saved network description cannot be turned back into a NeuralNet."""
