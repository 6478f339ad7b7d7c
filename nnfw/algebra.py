"""
NNFW Vector / Matrix Algebra

All signals and parameters are float64 numpy arrays.  Vectors are 1-D,
matrices 2-D.  A *view* is a basic slice of another array: it owns no storage
and every read/write goes through to the backing buffer.  This is what lets a
FakeCluster's outputs *be* its inputs, and lets linkers write straight into
live cluster buffers without copying.

Every operation here works in place on its first argument, so views stay
attached to the storage they alias.  Never rebind a cluster buffer; assign
into it.

Linear algebra conventions (rows = source units, cols = destination units):
    mul_xm(y, x, M)        y += xᵀ M         (forward through a linker)
    mul_mx(y, M, x)        y += M x          (adjoint, used by backprop)
    delta_rule(M, r, x, y) M += r · x ⊗ y    (matrices)
    delta_rule(v, r, x, y) v += r · x ⊙ y    (vectors)
"""

from __future__ import annotations
import numpy as np
from typing import Optional, Sequence, Union

from .errors import DimensionError

Scalar = Union[int, float]
Operand = Union[np.ndarray, Scalar]


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

def vector(data: Union[int, Sequence[float], np.ndarray] = 0,
           fill: float = 0.0) -> np.ndarray:
    """Owned vector: `vector(n)` gives n copies of `fill`, otherwise copies `data`."""
    if isinstance(data, (int, np.integer)):
        return np.full(int(data), fill, dtype=float)
    return np.array(data, dtype=float).flatten()


def matrix(rows: int, cols: int, fill: float = 0.0) -> np.ndarray:
    """Owned rows × cols matrix."""
    return np.full((rows, cols), fill, dtype=float)


def view(v: np.ndarray, start: int = 0, end: Optional[int] = None) -> np.ndarray:
    """Alias v[start:end] without copying."""
    end = len(v) if end is None else end
    if not 0 <= start <= end <= len(v):
        raise DimensionError(f"view [{start}:{end}] outside vector of size {len(v)}")
    return v[start:end]


def row_view(m: np.ndarray, start: int = 0, end: Optional[int] = None) -> np.ndarray:
    """Alias rows [start:end] of m without copying."""
    end = m.shape[0] if end is None else end
    if not 0 <= start <= end <= m.shape[0]:
        raise DimensionError(f"row view [{start}:{end}] outside matrix of {m.shape[0]} rows")
    return m[start:end]


def is_view(a: np.ndarray) -> bool:
    """True if `a` aliases another array's storage."""
    return a.base is not None


def resize(v: np.ndarray, size: int) -> np.ndarray:
    """New owned vector of `size`, keeping the common prefix of `v`."""
    out = np.zeros(size, dtype=float)
    n = min(size, len(v))
    out[:n] = v[:n]
    return out


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------

def _check_same(a: np.ndarray, b: Operand, op: str):
    if np.ndim(b) == 0:
        return
    if np.shape(a) != np.shape(b):
        raise DimensionError(f"{op}: shape {np.shape(a)} does not match {np.shape(b)}")


# ---------------------------------------------------------------------------
# Elementwise, in place
# ---------------------------------------------------------------------------

def assign(dst: np.ndarray, src: Operand) -> np.ndarray:
    """Copy src into dst's storage (scalar fills)."""
    _check_same(dst, src, "assign")
    dst[...] = src
    return dst


def zeroing(dst: np.ndarray) -> np.ndarray:
    dst.fill(0.0)
    return dst


def add(dst: np.ndarray, x: Operand) -> np.ndarray:
    _check_same(dst, x, "add")
    dst += x
    return dst


def sub(dst: np.ndarray, x: Operand) -> np.ndarray:
    _check_same(dst, x, "sub")
    dst -= x
    return dst


def mul(dst: np.ndarray, x: Operand) -> np.ndarray:
    _check_same(dst, x, "mul")
    dst *= x
    return dst


def div(dst: np.ndarray, x: Operand) -> np.ndarray:
    _check_same(dst, x, "div")
    dst /= x
    return dst


def exp_(dst: np.ndarray) -> np.ndarray:
    np.exp(dst, out=dst)
    return dst


def inv_(dst: np.ndarray) -> np.ndarray:
    """dst ← 1 / dst"""
    np.reciprocal(dst, out=dst)
    return dst


def square_(dst: np.ndarray) -> np.ndarray:
    np.square(dst, out=dst)
    return dst


# ---------------------------------------------------------------------------
# Reductions
# ---------------------------------------------------------------------------

def dot(x: np.ndarray, y: np.ndarray) -> float:
    _check_same(x, y, "dot")
    return float(np.dot(x, y))


def norm(x: np.ndarray) -> float:
    return float(np.linalg.norm(x))


def normalize(dst: np.ndarray) -> np.ndarray:
    """Scale dst to unit Euclidean norm (zero vectors are left alone)."""
    n = norm(dst)
    if n > 0.0:
        dst /= n
    return dst


def max_index(x: np.ndarray) -> int:
    return int(np.argmax(x))


def min_index(x: np.ndarray) -> int:
    return int(np.argmin(x))


def max_value(x: np.ndarray) -> float:
    return float(np.max(x))


def min_value(x: np.ndarray) -> float:
    return float(np.min(x))


def mse(target: np.ndarray, actual: np.ndarray) -> float:
    """Mean squared error between two vectors of equal size."""
    _check_same(target, actual, "mse")
    if len(target) == 0:
        return 0.0
    d = target - actual
    return float(np.dot(d, d) / len(d))


# ---------------------------------------------------------------------------
# Linear algebra
# ---------------------------------------------------------------------------

def outer_add(m: np.ndarray, x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """m += x ⊗ y"""
    if m.shape != (len(x), len(y)):
        raise DimensionError(f"outer_add: {m.shape} vs ({len(x)}, {len(y)})")
    m += np.outer(x, y)
    return m


def mul_xm(y: np.ndarray, x: np.ndarray, m: np.ndarray) -> np.ndarray:
    """y += xᵀ M   (x indexes rows, y indexes cols)"""
    if m.shape != (len(x), len(y)):
        raise DimensionError(f"mul_xm: x{len(x)}·M{m.shape} into y{len(y)}")
    y += x @ m
    return y


def mul_mx(y: np.ndarray, m: np.ndarray, x: np.ndarray) -> np.ndarray:
    """y += M x   (y indexes rows, x indexes cols)"""
    if m.shape != (len(y), len(x)):
        raise DimensionError(f"mul_mx: M{m.shape}·x{len(x)} into y{len(y)}")
    y += m @ x
    return y


def delta_rule(p: np.ndarray, rate: float, x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """
    Fused delta rule.

    Matrix p:  p += rate · x ⊗ y
    Vector p:  p += rate · x ⊙ y
    """
    if p.ndim == 2:
        if p.shape != (len(x), len(y)):
            raise DimensionError(f"delta_rule: M{p.shape} vs ({len(x)}, {len(y)})")
        p += rate * np.outer(x, y)
    else:
        if not len(p) == len(x) == len(y):
            raise DimensionError(f"delta_rule: sizes {len(p)}, {len(x)}, {len(y)}")
        p += rate * x * y
    return p


def cover(m: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """Zero every entry of m where mask is False."""
    _check_same(m, mask, "cover")
    m[~mask] = 0.0
    return m
