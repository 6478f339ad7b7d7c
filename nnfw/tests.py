"""
NNFW Test Suite

Unit tests for all components + integration tests.

Run with:
    python -m nnfw.tests
or
    pytest
"""

from __future__ import annotations
import os
import sys
import tempfile
import numpy as np
import torch

from nnfw import algebra
from nnfw import (
    NNFWConfig, DimensionError, MembershipError, UpdateOrderError, ConfigurationError,
    IdentityFunction, ScaleFunction, GainFunction, LinearFunction, SigmoidFunction,
    FakeSigmoidFunction, ScaledSigmoidFunction, StepFunction, RampFunction,
    LeakyIntegratorFunction, CompositeFunction, LinearComboFunction, GaussFunction,
    SawtoothFunction, TriangleFunction, SinFunction, PseudoGaussFunction,
    WinnerTakeAllFunction,
    SimpleCluster, BiasedCluster, FakeCluster, DDECluster,
    DotLinker, NormLinker, SparseMatrixLinker, CopyLinker, CopyMode, LinkerKind,
    NeuralNet, BiasModifier, MatrixModifier, NullModifier, SparseMatrixModifier,
    ModifierRegistry, default_modifiers,
    Pattern, BackPropagationAlgo,
    dumps, loads, save_net, load_net,
    build_feed_forward, Trainer,
)


PASS = "✓"
FAIL = "✗"


def _xor_patterns(inp, out):
    pats = []
    for x, t in (([0, 0], [0]), ([0, 1], [1]), ([1, 0], [1]), ([1, 1], [0])):
        p = Pattern()
        p.set_inputs_of(inp, x)
        p.set_outputs_of(out, t)
        pats.append(p)
    return pats


def test_algebra():
    print("── Algebra ─────────────────────────────────────────────────────")
    v = algebra.vector([1, 2, 3, 4])
    w = algebra.view(v, 1, 3)
    w[...] = [9, 9]
    assert np.array_equal(v, [1, 9, 9, 4]), "view write must reach the backing vector"
    assert algebra.is_view(w) and not algebra.is_view(v)
    print(f"  {PASS} view aliases backing storage")

    algebra.add(v, 1.0)
    assert np.array_equal(v, [2, 10, 10, 5])
    try:
        algebra.add(algebra.vector(3), algebra.vector(2))
        assert False, "size mismatch should raise"
    except DimensionError:
        pass
    print(f"  {PASS} elementwise ops + DimensionError")

    M = np.arange(6, dtype=float).reshape(2, 3)
    x = np.array([1.0, 2.0])
    y = algebra.vector(3)
    algebra.mul_xm(y, x, M)
    assert np.allclose(y, x @ M)
    z = algebra.vector(2)
    algebra.mul_mx(z, M, np.ones(3))
    assert np.allclose(z, [3.0, 12.0])
    print(f"  {PASS} mul_xm / mul_mx  (y={y}, z={z})")

    P = algebra.matrix(2, 3)
    algebra.delta_rule(P, 0.5, x, np.ones(3))
    assert np.allclose(P, 0.5 * np.outer(x, np.ones(3)))
    b = algebra.vector([1.0, 1.0])
    algebra.delta_rule(b, -1.0, x, x)
    assert np.allclose(b, [0.0, -3.0])
    print(f"  {PASS} delta_rule (matrix outer, vector elementwise)")

    mask = np.array([[True, False, True], [False, True, False]])
    algebra.cover(P, mask)
    assert np.all(P[~mask] == 0.0) and np.all(P[mask] != 0.0)
    rows = algebra.row_view(P, 1, 2)
    rows[...] = 7.0
    assert np.all(P[1] == 7.0)
    print(f"  {PASS} cover + row_view")

    assert algebra.mse(np.array([1.0, 2.0]), np.array([1.0, 4.0])) == 2.0
    n = algebra.normalize(algebra.vector([3.0, 4.0]))
    assert np.isclose(algebra.norm(n), 1.0)
    assert algebra.max_index(np.array([1.0, 5.0, 2.0])) == 1
    assert algebra.min_value(np.array([1.0, 5.0, -2.0])) == -2.0
    r = algebra.resize(algebra.vector([1.0, 2.0, 3.0]), 5)
    assert np.array_equal(r, [1, 2, 3, 0, 0])
    print(f"  {PASS} reductions, normalize, resize")


def test_function_derivatives():
    print("── Transfer Function Derivatives ───────────────────────────────")
    np.random.seed(0)
    eps = 1e-6
    smooth = [
        IdentityFunction(),
        LinearFunction(2.0, 0.5),
        SigmoidFunction(1.5),
        ScaledSigmoidFunction(0.7, -2.0, 3.0),
        GaussFunction(0.3, 1.2, 2.0),
        RampFunction(-1.0, 1.0, -2.0, 2.0),
    ]
    for f in smooth:
        # Ramp is only checked inside its linear region
        x = np.random.uniform(-0.9, 0.9, 16)
        y = np.empty_like(x)
        f.apply(x, y)
        d = np.empty_like(x)
        f.derivate(x, y, d)
        yp, ym = np.empty_like(x), np.empty_like(x)
        f.apply(x + eps, yp)
        f.apply(x - eps, ym)
        fd = (yp - ym) / (2 * eps)
        err = np.max(np.abs(d - fd))
        assert err < 1e-5, f"{f.type_name} derivative mismatch: {err:.2e}"
        print(f"  {PASS} {f.type_name:24s} FD check  (max_err={err:.1e})")


def test_function_values():
    print("── Transfer Function Values ────────────────────────────────────")
    x = np.array([-1.0, 0.0, 2.0])
    out = np.empty(3)

    ScaleFunction(3.0).apply(x, out)
    assert np.allclose(out, 3 * x)
    GainFunction(1.5).apply(x, out)
    assert np.allclose(out, x + 1.5)
    StepFunction(-1.0, 1.0, 0.5).apply(x, out)
    assert np.array_equal(out, [-1.0, -1.0, 1.0])
    FakeSigmoidFunction(1.0).apply(np.array([-10.0, 0.0, 10.0]), out)
    assert np.allclose(out, [0.0, 0.5, 1.0])
    CompositeFunction(LinearFunction(2.0, 0.0), GainFunction(1.0)).apply(x, out)
    assert np.allclose(out, 2 * x + 1)
    LinearComboFunction(2.0, IdentityFunction(), 3.0, ScaleFunction(2.0)).apply(x, out)
    assert np.allclose(out, 8 * x)
    WinnerTakeAllFunction(0.7).apply(x, out)
    assert np.array_equal(out, [0.0, 0.0, 0.7])
    print(f"  {PASS} Scale, Gain, Step, FakeSigmoid, Composite, LinearCombo, WinnerTakeAll")

    p = np.array([0.3])
    one = np.empty(1)
    SawtoothFunction(0.3, 1.0, 2.0).apply(p, one)
    assert np.isclose(one[0], 0.0)
    TriangleFunction(0.3, 1.0, 2.0).apply(p, one)
    assert np.isclose(one[0], 2.0)
    PseudoGaussFunction(0.3, 1.0, 1.0).apply(p, one)
    assert np.isclose(one[0], 1.0)
    SinFunction(0.0, 1.0, 1.0).apply(np.array([0.25]), one)
    assert np.isclose(one[0], 1.0)
    print(f"  {PASS} periodic family")

    leaky = LeakyIntegratorFunction(np.full(2, 0.5))
    o = np.empty(2)
    leaky.apply(np.array([2.0, 2.0]), o)
    assert np.allclose(o, 1.0)
    leaky.apply(np.array([2.0, 2.0]), o)
    assert np.allclose(o, 1.5)
    leaky.zeroing_status()
    leaky.apply(np.array([2.0, 2.0]), o)
    assert np.allclose(o, 1.0)
    print(f"  {PASS} LeakyIntegrator keeps and forgets its state")


def test_clusters():
    print("── Clusters ────────────────────────────────────────────────────")
    c = SimpleCluster(3, "c")
    assert isinstance(c.function, SigmoidFunction)
    try:
        c.set_input(3, 1.0)
        assert False, "out-of-range neuron should raise"
    except IndexError:
        pass

    f = LinearFunction(2.0, 0.0)
    c.function = f
    f.m = 5.0
    assert c.function.m == 2.0, "cluster must own a copy of its function"
    c.set_inputs([1.0, 2.0, 3.0])
    c.update()
    assert np.allclose(c.outputs, [2.0, 4.0, 6.0]) and c.need_reset
    print(f"  {PASS} SimpleCluster  (owned function, need_reset after update)")

    b = BiasedCluster(2, "b")
    b.function = IdentityFunction()
    b.set_biases([0.5, -1.0])
    b.set_inputs([1.0, 1.0])
    b.update()
    assert np.allclose(b.outputs, [0.5, 2.0])
    assert np.allclose(b.net_inputs(), [0.5, 2.0])
    b2 = b.clone()
    b2.set_bias(0, 9.0)
    assert b.get_bias(0) == 0.5 and np.allclose(b2.outputs, b.outputs)
    np.random.seed(1)
    b.randomize(-0.1, 0.1)
    assert np.all(np.abs(b.biases) <= 0.1)
    print(f"  {PASS} BiasedCluster  f(x − b), clone, randomize")

    d = DDECluster([0.0, 0.0, 1.0, 0.5], 1, "d")
    d.set_inputs([2.0])
    seq = []
    for _ in range(3):
        d.update()
        seq.append(d.get_output(0))
    assert np.allclose(seq, [2.0, 3.0, 3.5]), seq
    d0 = DDECluster([1.0, 0.0, 2.0], 2, "d0")
    d0.set_inputs([1.0, 2.0])
    d0.update()
    assert np.allclose(d0.outputs, [3.0, 5.0])
    empty = DDECluster([], 2, "e")
    empty.set_inputs([4.0, 4.0])
    empty.update()
    assert np.all(empty.outputs == 0.0)
    print(f"  {PASS} DDECluster  y(t) sequence {seq}")


def test_zero_input_forward():
    print("── Zero-input Forward Pass ─────────────────────────────────────")
    net = NeuralNet("zero")
    a = SimpleCluster(3, "a")
    h = SimpleCluster(4, "h")
    h.function = LinearFunction(1.0, 0.5)
    o = SimpleCluster(2, "o")
    o.function = GaussFunction(0.0, 1.0, 1.0)
    for c, i, out in ((a, True, False), (h, False, False), (o, False, True)):
        net.add_cluster(c, i, out)
    l1, l2 = DotLinker(a, h, "l1"), DotLinker(h, o, "l2")
    net.add_linker(l1)
    net.add_linker(l2)
    net.set_order([a, l1, h, l2, o])
    net.step()
    for c in (a, h, o):
        expected = np.empty(c.num_neurons)
        c.function.apply(np.zeros(c.num_neurons), expected)
        assert np.allclose(c.outputs, expected), f"{c.name}: {c.outputs} vs {expected}"
    print(f"  {PASS} outputs equal f(0) for every cluster  (o={o.outputs})")


def test_fake_aliasing():
    print("── Fake Cluster Aliasing ───────────────────────────────────────")
    f = FakeCluster(3, "f")
    f.set_inputs([1.0, 2.0, 3.0])
    assert np.array_equal(f.outputs, [1.0, 2.0, 3.0])
    f.set_input(0, 7.0)
    assert f.get_output(0) == 7.0
    assert algebra.is_view(f.outputs)
    f.update()
    assert not f.need_reset
    print(f"  {PASS} writes to inputs visible through outputs without update()")

    src = FakeCluster(2, "src")
    src.set_inputs([1.0, 1.0])
    dst = FakeCluster(2, "dst")
    ln = DotLinker(src, dst, "ln")
    ln.set_matrix(np.ones((2, 2)))
    ln.update()
    dst.update()
    ln.update()
    assert np.allclose(dst.inputs, [4.0, 4.0]), "Fake never asks its feeders to reset"
    print(f"  {PASS} Fake target is never reset  (inputs={dst.inputs})")


def test_accumulate_contract():
    print("── Accumulate Contract ─────────────────────────────────────────")
    a, b = FakeCluster(2, "a"), FakeCluster(2, "b")
    a.set_inputs([1.0, 2.0])
    b.set_inputs([3.0, 4.0])
    t = SimpleCluster(2, "t")
    l1, l2 = DotLinker(a, t, "l1"), DotLinker(b, t, "l2")
    l1.set_matrix(np.eye(2))
    l2.set_matrix(np.eye(2))

    t.set_inputs([10.0, 10.0])
    t.update()
    l1.update()
    assert np.allclose(t.inputs, [1.0, 2.0]), "first linker must reset stale inputs"
    l2.update()
    assert np.allclose(t.inputs, [4.0, 6.0])
    print(f"  {PASS} accumulate off: reset then sum  ({t.inputs})")

    t.accumulate = True
    t.set_inputs([10.0, 10.0])
    t.update()
    l1.update()
    l2.update()
    assert np.allclose(t.inputs, [14.0, 16.0])
    print(f"  {PASS} accumulate on: sum over pre-existing input  ({t.inputs})")


def test_sparse_masking():
    print("── Sparse Masking ──────────────────────────────────────────────")
    np.random.seed(3)
    a, b = SimpleCluster(3, "a"), SimpleCluster(4, "b")
    s = SparseMatrixLinker(a, b, "s", prob=0.5)

    def masked_zero():
        return np.all(s.weights[~s.mask] == 0.0)

    s.randomize(-1.0, 1.0)
    assert masked_zero()
    s.disconnect(0, 0)
    s.set_weight(0, 0, 5.0)
    assert s.get_weight(0, 0) == 0.0
    s.connect(0, 0)
    s.set_weight(0, 0, 5.0)
    assert s.get_weight(0, 0) == 5.0
    new_mask = np.ones((3, 4), dtype=bool)
    new_mask[:, 1] = False
    s.set_mask(new_mask)
    assert masked_zero() and np.all(s.weights[:, 1] == 0.0)
    s.set_matrix(np.ones((3, 4)))
    assert masked_zero()
    SparseMatrixModifier(s).rule(1.0, np.ones(3), np.ones(4))
    assert masked_zero()
    s.connect_random(0.3)
    s.randomize(-1.0, 1.0)
    assert masked_zero()
    s.disconnect_all()
    assert np.all(s.weights == 0.0)
    s.connect_all()
    s.randomize(-1.0, 1.0)
    assert np.all(s.mask)
    print(f"  {PASS} weights outside the mask stay exactly zero")

    r = SimpleCluster(5, "r")
    rec = SparseMatrixLinker(r, r, "rec", prob=0.6, zero_diagonal=True, symmetric=True)
    assert not np.any(np.diag(rec.mask)) and np.array_equal(rec.mask, rec.mask.T)
    try:
        SparseMatrixLinker(a, b, "bad", zero_diagonal=True)
        assert False, "zero_diagonal on a non-square linker should raise"
    except DimensionError:
        pass
    print(f"  {PASS} zero-diagonal symmetric recurrent mask")


def test_copy_and_norm_linkers():
    print("── Copy / Norm Linkers ─────────────────────────────────────────")
    a = FakeCluster(3, "a")
    a.set_inputs([1.0, 2.0, 3.0])
    b = SimpleCluster(2, "b")
    cp = CopyLinker(a, b, "cp")
    assert cp.mode is CopyMode.OUT2IN and cp.size() == 2
    b.update()
    cp.update()
    assert np.allclose(b.inputs, [1.0, 2.0])
    cp.update()
    assert np.allclose(b.inputs, [2.0, 4.0])
    print(f"  {PASS} Out2In adds the common prefix")

    c = SimpleCluster(2, "c")
    c.set_outputs([1.0, 1.0])
    CopyLinker(a, c, "cp2", CopyMode.IN2OUT).update()
    assert np.allclose(c.outputs, [2.0, 3.0])
    print(f"  {PASS} In2Out writes into the target outputs")

    d = SimpleCluster(3, "d")
    d.set_inputs([1.0, 1.0, 1.0])
    ii = CopyLinker(a, d, "cp3", CopyMode.IN2IN)
    ii.update()
    assert np.allclose(d.inputs, [2.0, 3.0, 4.0])
    d.update()
    ii.update()
    assert np.allclose(d.inputs, [1.0, 2.0, 3.0]), "stale inputs are reset first"
    print(f"  {PASS} In2In adds into the target inputs, honouring need_reset")

    e = SimpleCluster(4, "e")
    e.set_outputs([0.5, 0.5, 0.5, 0.5])
    oo = CopyLinker(a, e, "cp4", CopyMode.OUT2OUT)
    assert oo.size() == 3
    oo.update()
    assert np.allclose(e.outputs, [1.5, 2.5, 3.5, 0.5])
    print(f"  {PASS} Out2Out adds into the target outputs  ({e.outputs})")

    net = NeuralNet("copy")
    x, h, o = FakeCluster(2, "x"), BiasedCluster(2, "h"), BiasedCluster(1, "o")
    net.add_cluster(x, is_input=True)
    net.add_cluster(h)
    net.add_cluster(o, is_output=True)
    xh, ho = CopyLinker(x, h, "xh"), DotLinker(h, o, "ho")
    net.add_linker(xh)
    net.add_linker(ho)
    net.set_order([x, xh, h, ho, o])
    ho.set_matrix([[1.0], [-1.0]])
    algo = BackPropagationAlgo(net, [o, ho, h, xh, x], 0.5)
    p = Pattern()
    p.set_inputs_of(x, [1.0, 0.0])
    p.set_outputs_of(o, [1.0])
    h_biases = h.biases.copy()
    algo.learn(p)
    assert algo.is_tracked(h) and algo.is_tracked(x)
    assert not np.allclose(h.biases, h_biases), "h is trained through ho"
    assert np.allclose(algo.get_error(x), 0.0), "no delta crosses the copy linker"
    print(f"  {PASS} CopyLinker is not tracked by backpropagation")

    src = FakeCluster(2, "src")
    src.set_inputs([3.0, 4.0])
    dst = SimpleCluster(2, "dst")
    nl = NormLinker(src, dst, "nl")
    nl.set_matrix(np.array([[0.0, 3.0], [0.0, 0.0]]))
    nl.update()
    assert np.allclose(dst.inputs, [5.0, 4.0])
    print(f"  {PASS} Norm adds ‖y − W[:, j]‖  ({dst.inputs})")


def test_net_graph():
    print("── NeuralNet Graph ─────────────────────────────────────────────")
    net = NeuralNet("g")
    a, h, o = BiasedCluster(2, "a"), BiasedCluster(3, "h"), BiasedCluster(1, "o")
    assert net.add_cluster(a, is_input=True)
    assert net.add_cluster(h)
    assert net.add_cluster(o, is_output=True)
    assert not net.add_cluster(h), "duplicates are ignored"
    assert net.hidden_clusters == [h]

    stray = SimpleCluster(2, "stray")
    try:
        net.add_linker(DotLinker(stray, h, "bad"))
        assert False, "linker to a non-member should raise"
    except MembershipError:
        pass

    l1, l2 = DotLinker(a, h, "l1"), DotLinker(h, o, "l2")
    assert net.add_linker(l1) and net.add_linker(l2)
    assert not net.add_linker(l1)
    assert net.linkers_of(h, out=False) == [l1]
    assert net.linkers_of(h, out=True) == [l2]
    assert not net.is_isolated(h)
    assert net.get_by_name("l2") is l2 and net.get_by_name("nope") is None
    print(f"  {PASS} add/duplicates/membership/adjacency/name lookup")

    net.mark_as_output(h)
    assert net.output_clusters == [o, h] and net.hidden_clusters == []
    net.unmark(h)
    assert net.hidden_clusters == [h]
    net.unmark_all()
    assert net.input_clusters == [] and len(net.hidden_clusters) == 3
    net.mark_as_input(a)
    net.mark_as_output(o)
    print(f"  {PASS} mark / unmark")

    net.set_order([a, l1, h, l2, o, stray])
    assert net.order == [a, l1, h, l2, o], "non-members are dropped from the order"
    np.random.seed(5)
    net.randomize(-1.0, 1.0)
    assert np.any(a.biases != 0.0) and np.any(l2.weights != 0.0)

    assert net.remove_linker(l2)
    assert not net.remove_linker(l2)
    assert net.linkers_of(h, out=True) == [] and net.linkers_of(o) == []
    assert net.is_isolated(o)
    assert net.order == [a, l1, h, o]
    assert net.remove_cluster(h)
    assert not net.remove_cluster(h)
    assert net.linkers == [] and net.is_isolated(a)
    assert net.get_by_name("h") is None
    print(f"  {PASS} removal reverses adjacency bookkeeping")


def test_check_order():
    print("── Update Order Check ──────────────────────────────────────────")
    ff = build_feed_forward([2, 3, 1])
    assert ff.net.check_order(ff.spread_order) == []
    issues = ff.net.check_order(ff.backprop_order)
    assert len(issues) == 4, issues
    try:
        ff.net.set_order(ff.backprop_order, strict=True)
        assert False, "strict order check should raise"
    except UpdateOrderError:
        pass
    assert ff.net.order == ff.spread_order, "a rejected order leaves the old one"
    print(f"  {PASS} {len(issues)} issues found in the reversed order")


def test_modifier_registry():
    print("── Modifier Registry ───────────────────────────────────────────")
    reg = default_modifiers()
    a, b = BiasedCluster(2, "a"), SimpleCluster(2, "b")
    assert isinstance(reg.create_for(a), BiasModifier)
    assert isinstance(reg.create_for(b), NullModifier)
    assert isinstance(reg.create_for(DotLinker(a, b)), MatrixModifier)
    assert isinstance(reg.create_for(SparseMatrixLinker(a, b)), SparseMatrixModifier)
    assert reg.create_for(NormLinker(a, b)) is None
    assert reg.create_for(CopyLinker(a, b)) is None

    m = reg.create_for(a)
    m.rule(0.5, -np.ones(2), np.array([1.0, 2.0]))
    assert np.allclose(a.biases, [-0.5, -1.0])
    print(f"  {PASS} default kinds map to their rules")

    custom = ModifierRegistry()
    custom.register(LinkerKind.NORM, MatrixModifier)
    assert isinstance(custom.create_for(NormLinker(a, b)), MatrixModifier)
    assert custom.create_for(a) is None
    assert LinkerKind.NORM in custom and LinkerKind.DOT not in custom
    print(f"  {PASS} registries are independent values")


def _mlp(seed):
    np.random.seed(seed)
    ff = build_feed_forward([3, 4, 2], fake_input=True)
    ff.net.randomize(-1.0, 1.0)
    return ff


def test_backprop_vs_torch():
    print("── Backprop vs torch autograd ──────────────────────────────────")
    ff = _mlp(11)
    hid, out = ff.layers[1], ff.layers[2]
    l1, l2 = ff.linkers
    x = np.array([0.2, -0.7, 1.1])
    t = np.array([1.0, 0.0])
    lr = 0.3

    W1 = torch.tensor(l1.weights.copy(), requires_grad=True)
    b1 = torch.tensor(hid.biases.copy(), requires_grad=True)
    W2 = torch.tensor(l2.weights.copy(), requires_grad=True)
    b2 = torch.tensor(out.biases.copy(), requires_grad=True)
    xt = torch.tensor(x)
    h = torch.sigmoid(xt @ W1 - b1)
    y = torch.sigmoid(h @ W2 - b2)
    loss = 0.5 * ((y - torch.tensor(t)) ** 2).sum()
    loss.backward()

    algo = BackPropagationAlgo(ff.net, ff.backprop_order, learn_rate=lr)
    algo.learn(ff.pattern(x, t))
    assert np.allclose(algo.get_error(out), y.detach().numpy() - t)

    for name, got, p in (("W1", l1.weights, W1), ("b1", hid.biases, b1),
                         ("W2", l2.weights, W2), ("b2", out.biases, b2)):
        expected = (p - lr * p.grad).detach().numpy()
        err = np.max(np.abs(got - expected))
        assert err < 1e-10, f"{name} differs from SGD step: {err:.2e}"
        print(f"  {PASS} {name} matches one SGD step on ½‖y − t‖²  (max_err={err:.1e})")


def test_tracked_frontier():
    print("── Backprop Tracked Frontier ───────────────────────────────────")
    np.random.seed(3)
    ff = build_feed_forward([2, 3, 1])
    ff.net.randomize(-1.0, 1.0)
    inp, hid, out = ff.layers
    l1, l2 = ff.linkers
    algo = BackPropagationAlgo(ff.net, [out, l2, hid], learn_rate=0.5)
    assert not algo.is_tracked(inp)

    w1, w2 = l1.weights.copy(), l2.weights.copy()
    b_in, b_hid = inp.biases.copy(), hid.biases.copy()
    algo.learn(ff.pattern([1.0, 0.0], [1.0]))
    assert np.array_equal(l1.weights, w1), "l1 is outside the backprop order"
    assert np.array_equal(inp.biases, b_in)
    assert not np.allclose(l2.weights, w2) and not np.allclose(hid.biases, b_hid)
    assert np.any(algo.get_error(hid) != 0.0)
    assert algo.get_error(inp).size == 0, "deltas stop at the frontier"
    print(f"  {PASS} only the ordered part of the net learns")


def test_tracked_set_rebuild():
    print("── Backprop Tracked Set Rebuild ────────────────────────────────")
    np.random.seed(8)
    ff = build_feed_forward([2, 3, 1])
    inp, hid, out = ff.layers
    l1, l2 = ff.linkers
    side = BiasedCluster(1, "side")
    ff.net.add_cluster(side)
    hs = DotLinker(hid, side, "hs")
    ff.net.add_linker(hs)
    ff.net.set_order(ff.spread_order + [hs, side])
    ff.net.randomize(-1.0, 1.0)

    algo = BackPropagationAlgo(ff.net, ff.backprop_order, learn_rate=0.5)
    assert not algo.is_tracked(side)
    algo.set_teaching_input(side, [0.0])
    assert algo.get_error(side).size == 0

    p = ff.pattern([0.0, 1.0], [1.0])
    p.set_outputs_of(side, [0.0])
    ff.net.mark_as_output(side)
    algo.neural_net_changed()
    assert algo.is_tracked(side)
    ws, b_side = hs.weights.copy(), side.biases.copy()
    algo.learn(p)
    assert np.array_equal(hs.weights, ws), "hs is still outside the backprop order"
    assert not np.allclose(side.biases, b_side), "side learns once it is an output"
    print(f"  {PASS} neural_net_changed tracks a newly marked output")

    algo.set_update_order([side, hs] + ff.backprop_order)
    assert algo.update_order[:2] == [side, hs]
    ws = hs.weights.copy()
    algo.learn(p)
    assert not np.allclose(hs.weights, ws)
    print(f"  {PASS} set_update_order tracks the new linker")


def test_non_derivable_identity_jacobian():
    print("── Non-derivable Functions ─────────────────────────────────────")
    results = []
    for f in (IdentityFunction(), ScaleFunction(1.0)):
        net = NeuralNet()
        a = FakeCluster(2, "a")
        o = SimpleCluster(1, "o")
        o.function = f
        net.add_cluster(a, is_input=True)
        net.add_cluster(o, is_output=True)
        ln = DotLinker(a, o, "ln")
        ln.set_matrix([[0.5], [-0.25]])
        net.add_linker(ln)
        net.set_order([a, ln, o])
        p = Pattern()
        p.set_inputs_outputs_of(a, [1.0, 2.0], [0.0])
        p.set_outputs_of(o, [1.0])
        BackPropagationAlgo(net, [o, ln, a], 0.1).learn(p)
        results.append(ln.weights.copy())
    assert np.allclose(results[0], results[1])
    print(f"  {PASS} missing derivative behaves as identity Jacobian")


def test_xor_convergence():
    print("── XOR Convergence ─────────────────────────────────────────────")
    np.random.seed(2024)
    ff = build_feed_forward([2, 8, 1], fake_input=True, name="xor")
    ff.net.randomize(-1.0, 1.0)
    pats = _xor_patterns(ff.input, ff.output)
    algo = BackPropagationAlgo(ff.net, ff.backprop_order, learn_rate=0.2)
    mse0 = algo.calculate_mse_on_set(pats)
    for _ in range(50000):
        algo.learn_on_set(pats)
    mse = algo.calculate_mse_on_set(pats)
    assert mse < 0.05, f"XOR did not converge: mse={mse:.4f}"
    outs = [float(ff.predict(x)[0]) for x in ([0, 0], [0, 1], [1, 0], [1, 1])]
    print(f"  {PASS} mse {mse0:.4f} → {mse:.5f}  outputs={np.round(outs, 3)}")


def test_momentum_toggling():
    print("── Momentum Toggling ───────────────────────────────────────────")
    ff = _mlp(4)
    p = ff.pattern([0.5, -0.5, 1.0], [0.0, 1.0])
    algo = BackPropagationAlgo(ff.net, ff.backprop_order, learn_rate=0.25)
    algo.set_momentum(0.9)
    algo.enable_momentum()
    for _ in range(5):
        algo.learn(p)

    snapshot = [ln.weights.copy() for ln in ff.linkers]
    algo.disable_momentum()
    assert all(np.array_equal(s, ln.weights) for s, ln in zip(snapshot, ff.linkers))
    print(f"  {PASS} disabling momentum leaves past updates untouched")

    algo.enable_momentum()
    twin = _mlp(4)
    for src, dst in zip(ff.linkers, twin.linkers):
        dst.set_matrix(src.weights)
    for src, dst in zip(ff.layers, twin.layers):
        if isinstance(src, BiasedCluster):
            dst.set_biases(src.biases)
    plain = BackPropagationAlgo(twin.net, twin.backprop_order, learn_rate=0.25)
    algo.learn(p)
    plain.learn(twin.pattern([0.5, -0.5, 1.0], [0.0, 1.0]))
    for a, b in zip(ff.linkers, twin.linkers):
        assert np.allclose(a.weights, b.weights), "re-enabled momentum must start from zero history"
    print(f"  {PASS} re-enabling momentum zeroes its history")

    algo.learn(p)
    plain.learn(twin.pattern([0.5, -0.5, 1.0], [0.0, 1.0]))
    assert not np.allclose(ff.linkers[1].weights, twin.linkers[1].weights)
    print(f"  {PASS} momentum term acts once history exists")


def _all_kinds_net():
    np.random.seed(9)
    net = NeuralNet("kinds")
    inp = FakeCluster(3, "in")
    a = BiasedCluster(4, "a")
    a.function = ScaledSigmoidFunction(0.8, -1.0, 2.0)
    b = SimpleCluster(4, "b")
    b.function = CompositeFunction(LinearFunction(2.0, 0.1), SigmoidFunction(0.5))
    d = DDECluster([0.1, 0.5, 0.2, 0.3], 4, "d")
    d.function = LinearComboFunction(0.4, GaussFunction(0.2, 1.5, 1.0), 0.6, SinFunction(0.1, 2.0, 1.0))
    e = SimpleCluster(4, "e")
    e.function = LeakyIntegratorFunction(np.array([0.3, 0.1, 0.5, 0.9]))
    e.accumulate = True
    out = SimpleCluster(2, "out")
    out.function = LinearFunction(1.5, -0.2)
    net.add_cluster(inp, is_input=True)
    for c in (a, b, d, e):
        net.add_cluster(c)
    net.add_cluster(out, is_input=True, is_output=True)
    links = [
        DotLinker(inp, a, "ia"),
        SparseMatrixLinker(inp, b, "ib", prob=0.5),
        NormLinker(a, d, "ad"),
        CopyLinker(b, d, "bd", CopyMode.OUT2IN),
        DotLinker(d, e, "de"),
        SparseMatrixLinker(e, out, "eo", prob=0.7),
        CopyLinker(b, out, "bo", CopyMode.OUT2IN),
    ]
    for ln in links:
        net.add_linker(ln)
    ia, ib, ad, bd, de, eo, bo = links
    net.set_order([inp, ia, ib, a, b, ad, bd, d, de, e, eo, bo, out])
    net.randomize(-1.0, 1.0)
    return net


def test_persistence_roundtrip():
    print("── Persistence Round-trip ──────────────────────────────────────")
    net = _all_kinds_net()
    text = dumps(net)
    net2 = loads(text)

    assert [c.name for c in net2.clusters] == [c.name for c in net.clusters]
    assert [ln.name for ln in net2.linkers] == [ln.name for ln in net.linkers]
    assert [c.name for c in net2.input_clusters] == ["in", "out"]
    assert [c.name for c in net2.output_clusters] == ["out"]
    assert [u.name for u in net2.order] == [u.name for u in net.order]
    for c, c2 in zip(net.clusters, net2.clusters):
        assert type(c) is type(c2), c.name
        if not isinstance(c.function, LeakyIntegratorFunction):
            assert c.function == c2.function, c.name
        assert c.accumulate == c2.accumulate
    assert np.array_equal(net.get_by_name("ib").mask, net2.get_by_name("ib").mask)
    assert np.array_equal(net.get_by_name("a").biases, net2.get_by_name("a").biases)
    assert net2.get_by_name("bd").mode is CopyMode.OUT2IN
    assert dumps(net2) == text, "dumps(loads(text)) must reproduce the text"
    print(f"  {PASS} names, partitions, order, parameters preserved")

    x = np.array([0.3, -0.6, 0.9])
    for _ in range(3):
        for n in (net, net2):
            n.get_by_name("in").set_inputs(x)
            n.step()
    for c, c2 in zip(net.clusters, net2.clusters):
        assert np.allclose(c.outputs, c2.outputs, rtol=0, atol=1e-12), c.name
    print(f"  {PASS} identical forward passes  (out={net2.get_by_name('out').outputs})")

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "net.ini")
        save_net(net, path)
        net3 = load_net(path)
    assert dumps(net3) == dumps(net)
    print(f"  {PASS} save_net / load_net")

    for bad in ("[foo]\nx = 1\n", "[NET]\nclustersList = c\n\n[c]\ntype = NoSuchCluster\nnumNeurons = 2\n",
                "[NET]\nclustersList = c\nspreadOrder = zz\n\n[c]\ntype = SimpleCluster\nnumNeurons = 2\n"):
        try:
            loads(bad)
            assert False, "bad description should raise"
        except ConfigurationError:
            pass
    print(f"  {PASS} unreadable descriptions raise ConfigurationError")

    odd = NeuralNet("odd")
    dflt, b = SimpleCluster(2, "DEFAULT"), SimpleCluster(1, "b")
    odd.add_cluster(dflt, is_input=True)
    odd.add_cluster(b, is_output=True)
    ln = DotLinker(dflt, b, "l")
    ln.set_matrix([[0.25], [-0.75]])
    odd.add_linker(ln)
    odd.set_order([dflt, ln, b])
    text = dumps(odd)
    assert not text.startswith("[DEFAULT]")
    odd2 = loads(text)
    assert [c.name for c in odd2.clusters] == ["DEFAULT", "b"]
    assert [c.name for c in odd2.input_clusters] == ["DEFAULT"]
    assert np.array_equal(odd2.get_by_name("l").weights, ln.weights)
    assert dumps(odd2) == text
    print(f"  {PASS} an entity named DEFAULT round-trips")


def test_patterns_and_errors():
    print("── Patterns / Teaching Input ───────────────────────────────────")
    ff = build_feed_forward([2, 2, 1])
    p = Pattern()
    assert p.inputs_of(ff.input).size == 0
    p[ff.input].inputs = np.array([1.0, 0.0])
    assert ff.input in p and np.array_equal(p.inputs_of(ff.input), [1.0, 0.0])

    algo = BackPropagationAlgo(ff.net, ff.backprop_order)
    stray = SimpleCluster(1, "stray")
    algo.set_teaching_input(stray, [0.0])
    assert algo.get_error(stray).size == 0, "untracked clusters are skipped"
    ff.net.step()
    algo.set_teaching_input(ff.output, [1.0])
    assert np.allclose(algo.get_error(ff.output), ff.output.outputs - 1.0)
    assert np.isclose(algo.calculate_rmsd(ff.pattern([0, 0], [0])) ** 2,
                      algo.calculate_mse(ff.pattern([0, 0], [0])))
    print(f"  {PASS} pattern access, teaching input = outputs − desired, rmsd")

    wide = build_feed_forward([2, 3, 3])
    wide_algo = BackPropagationAlgo(wide.net, wide.backprop_order)
    for attempt in (lambda: wide_algo.set_teaching_input(wide.output, [1.0]),
                    lambda: wide_algo.learn(wide.pattern([0, 1], [1.0]))):
        try:
            attempt()
            assert False, "a 1-value target for 3 output neurons should raise"
        except DimensionError:
            pass
    print(f"  {PASS} wrong-size teaching input raises DimensionError")

    net = NeuralNet("io")
    io, o = FakeCluster(2, "io"), SimpleCluster(1, "o")
    net.add_cluster(io, is_input=True, is_output=True)
    net.add_cluster(o, is_output=True)
    ln = DotLinker(io, o, "ln")
    ln.set_matrix([[0.5], [0.5]])
    net.add_linker(ln)
    net.set_order([io, ln, o])
    p = Pattern()
    p.set_inputs_of(io, [1.0, -1.0])
    p.set_outputs_of(o, [1.0])
    io_algo = BackPropagationAlgo(net, [o, ln, io], 0.1)
    mse = io_algo.calculate_mse(p)
    assert np.isclose(mse, (0.5 - 1.0) ** 2), "only o has a target"
    io_algo.learn(p)
    assert not np.allclose(ln.weights, 0.5)
    print(f"  {PASS} input+output cluster without target outputs is skipped  (mse={mse:.3f})")


def test_trainer():
    print("── Trainer ─────────────────────────────────────────────────────")
    ff = build_feed_forward([2, 3, 1])
    pats = [ff.pattern(x, [float(x[0] and x[1])]) for x in ([0, 0], [0, 1], [1, 0], [1, 1])]
    trainer = Trainer(ff, NNFWConfig(learn_rate=0.5, epochs=300, seed=7, log_every=100))
    trainer.initialize()
    m = trainer.train(pats)
    assert m.epochs_run == 300 and len(m.mse_history) == 300
    assert m.final_mse < m.mse_history[0]
    print(f"  {PASS} AND: mse {m.mse_history[0]:.4f} → {m.final_mse:.4f}")

    eff = build_feed_forward([2, 2, 1])
    early = Trainer(eff, NNFWConfig(epochs=50, target_mse=1.0, seed=0))
    early.initialize()
    em = early.train([eff.pattern([0, 0], [0])])
    assert em.converged and em.epochs_run == 1
    print(f"  {PASS} stops early at target_mse")

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "trainer.pkl")
        trainer.save(path)
        other = Trainer(build_feed_forward([2, 3, 1]))
        other.load(path)
    assert other.metrics.epochs_run == 300
    assert np.isclose(other.evaluate(pats), trainer.evaluate(pats))
    print(f"  {PASS} save/load preserves net and metrics")


def run_all():
    print("\n" + "=" * 65)
    print("  NNFW Test Suite")
    print("=" * 65 + "\n")

    tests = [
        test_algebra,
        test_function_derivatives,
        test_function_values,
        test_clusters,
        test_zero_input_forward,
        test_fake_aliasing,
        test_accumulate_contract,
        test_sparse_masking,
        test_copy_and_norm_linkers,
        test_net_graph,
        test_check_order,
        test_modifier_registry,
        test_backprop_vs_torch,
        test_tracked_frontier,
        test_tracked_set_rebuild,
        test_non_derivable_identity_jacobian,
        test_xor_convergence,
        test_momentum_toggling,
        test_persistence_roundtrip,
        test_patterns_and_errors,
        test_trainer,
    ]

    passed = 0
    failed = 0
    for t in tests:
        print()
        try:
            t()
            passed += 1
        except Exception as e:
            print(f"  {FAIL} EXCEPTION: {e}")
            import traceback; traceback.print_exc()
            failed += 1

    print("\n" + "=" * 65)
    print(f"  {passed}/{passed+failed} tests passed")
    if failed == 0:
        print("  All tests PASSED ✓")
    print("=" * 65)
    return failed == 0


if __name__ == "__main__":
    ok = run_all()
    sys.exit(0 if ok else 1)
