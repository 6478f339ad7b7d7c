"""
NNFW Benchmark Suite

Classification tasks compared across:
  - nnfw feed-forward net trained with BackPropagationAlgo (this package)
  - torch MLP of the same shape, plain SGD (reference)
  - Logistic regression (linear baseline)

Run with:
    python -m nnfw.benchmark

Needs the `benchmark` extra (scikit-learn, torch).
"""

from __future__ import annotations
import time
import numpy as np
import torch
import torch.nn as nn
from sklearn.datasets import make_circles, make_classification, make_moons
from sklearn.model_selection import train_test_split
from sklearn.preprocessing import StandardScaler

from .config import NNFWConfig
from .engine import Trainer, build_feed_forward


# ── Baselines ─────────────────────────────────────────────────────────────────

class LogisticBaseline:
    """Softmax regression via per-sample gradient descent."""
    def __init__(self, input_dim, n_classes, lr=0.1):
        self.W = np.zeros((n_classes, input_dim))
        self.b = np.zeros(n_classes)
        self.lr = lr

    def _softmax(self, z):
        z = z - z.max()
        e = np.exp(z)
        return e / e.sum()

    def train(self, X, y, epochs=100):
        for _ in range(epochs):
            for i in np.random.permutation(len(X)):
                xi, yi = X[i], int(y[i])
                probs = self._softmax(self.W @ xi + self.b)
                probs[yi] -= 1
                self.W -= self.lr * np.outer(probs, xi)
                self.b -= self.lr * probs

    def predict(self, X):
        return np.argmax(X @ self.W.T + self.b, axis=1)

    def score(self, X, y):
        return (self.predict(X) == y).mean()


class TorchMLP(nn.Module):
    """Sigmoid MLP mirroring the nnfw layout, trained on ½‖y − t‖² with SGD."""
    def __init__(self, input_dim, hidden, n_classes):
        super().__init__()
        self.net = nn.Sequential(
            nn.Linear(input_dim, hidden), nn.Sigmoid(),
            nn.Linear(hidden, n_classes), nn.Sigmoid(),
        )

    def forward(self, x):
        return self.net(x)


# ── Dataset generators ────────────────────────────────────────────────────────

def make_xor(n=200, seed=42):
    rng = np.random.RandomState(seed)
    X = rng.randn(n, 2) * 0.5
    y = ((X[:, 0] > 0) != (X[:, 1] > 0)).astype(int)
    return X, y

def make_moons_task(n=200, seed=42):
    return make_moons(n_samples=n, noise=0.15, random_state=seed)

def make_circles_task(n=200, seed=42):
    return make_circles(n_samples=n, noise=0.08, factor=0.5, random_state=seed)

def make_blobs_task(n=300, seed=42):
    return make_classification(n_samples=n, n_features=8, n_informative=6,
                               n_redundant=2, n_classes=4, n_clusters_per_class=1,
                               random_state=seed)


def one_hot(y, n_classes):
    T = np.zeros((len(y), n_classes))
    T[np.arange(len(y)), y] = 1.0
    return T


# ── Runners ───────────────────────────────────────────────────────────────────

def run_nnfw(X_tr, y_tr, X_te, y_te, n_classes, hidden=8, epochs=200, lr=0.2, seed=0) -> float:
    ff = build_feed_forward([X_tr.shape[1], hidden, n_classes])
    trainer = Trainer(ff, NNFWConfig(learn_rate=lr, epochs=epochs, seed=seed, log_every=0))
    trainer.initialize()
    trainer.train(ff.patterns(X_tr, one_hot(y_tr, n_classes)))
    preds = np.array([np.argmax(ff.predict(x)) for x in X_te])
    return (preds == y_te).mean()


def run_torch(X_tr, y_tr, X_te, y_te, n_classes, hidden=8, epochs=200, lr=0.2, seed=0) -> float:
    torch.manual_seed(seed)
    model = TorchMLP(X_tr.shape[1], hidden, n_classes).double()
    opt = torch.optim.SGD(model.parameters(), lr=lr)
    X_t = torch.tensor(X_tr, dtype=torch.float64)
    T_t = torch.tensor(one_hot(y_tr, n_classes), dtype=torch.float64)
    for _ in range(epochs):
        for i in range(len(X_t)):
            opt.zero_grad()
            loss = 0.5 * ((model(X_t[i]) - T_t[i]) ** 2).sum()
            loss.backward()
            opt.step()
    with torch.no_grad():
        preds = model(torch.tensor(X_te, dtype=torch.float64)).argmax(dim=1).numpy()
    return (preds == y_te).mean()


def run_logistic(X_tr, y_tr, X_te, y_te, n_classes, epochs=100) -> float:
    m = LogisticBaseline(X_tr.shape[1], n_classes, lr=0.05)
    m.train(X_tr, y_tr, epochs=epochs)
    return m.score(X_te, y_te)


# ── Main benchmark ────────────────────────────────────────────────────────────

TASKS = [
    ("XOR",     make_xor,          2, {'hidden': 8,  'epochs': 200}),
    ("Moons",   make_moons_task,   2, {'hidden': 8,  'epochs': 150}),
    ("Circles", make_circles_task, 2, {'hidden': 12, 'epochs': 200}),
    ("Blobs",   make_blobs_task,   4, {'hidden': 12, 'epochs': 100}),
]


def main():
    print("\n" + "=" * 72)
    print("  NNFW Benchmark: backprop through a caller-ordered graph")
    print("=" * 72)

    results = {}
    total_start = time.time()

    for task_name, gen_fn, n_classes, kw in TASKS:
        X, y = gen_fn()
        X = StandardScaler().fit_transform(X)
        X_tr, X_te, y_tr, y_te = train_test_split(X, y, test_size=0.25, random_state=0)
        print(f"\n  {task_name} (n={len(X)}, dim={X.shape[1]}, classes={n_classes})")

        t0 = time.time()
        nnfw_acc = run_nnfw(X_tr, y_tr, X_te, y_te, n_classes, **kw)
        t_nnfw = time.time() - t0

        t0 = time.time()
        torch_acc = run_torch(X_tr, y_tr, X_te, y_te, n_classes, **kw)
        t_torch = time.time() - t0

        np.random.seed(0)
        logit_acc = run_logistic(X_tr, y_tr, X_te, y_te, n_classes)

        results[task_name] = {'nnfw': nnfw_acc, 'torch': torch_acc, 'logistic': logit_acc}
        print(f"    nnfw: {nnfw_acc:.1%} ({t_nnfw:.1f}s)  |  "
              f"torch: {torch_acc:.1%} ({t_torch:.1f}s)  |  "
              f"Logistic: {logit_acc:.1%}")

    total_time = time.time() - total_start

    # ── Summary table ─────────────────────────────────────────────────────────
    print("\n" + "=" * 72)
    print("  RESULTS SUMMARY")
    print("=" * 72)
    print(f"  {'Task':<12}  {'nnfw':>8}  {'torch':>8}  {'Logistic':>10}  {'vs torch':>9}")
    print("  " + "-" * 56)
    for task_name, *_ in TASKS:
        r = results[task_name]
        print(f"  {task_name:<12}  {r['nnfw']:>8.1%}  {r['torch']:>8.1%}  "
              f"{r['logistic']:>10.1%}  {r['nnfw'] - r['torch']:>+9.1%}")
    avg_nnfw = np.mean([r['nnfw'] for r in results.values()])
    avg_torch = np.mean([r['torch'] for r in results.values()])
    print("  " + "-" * 56)
    print(f"  {'AVERAGE':<12}  {avg_nnfw:>8.1%}  {avg_torch:>8.1%}")
    print(f"\n  Total time: {total_time:.1f}s")


if __name__ == "__main__":
    main()
