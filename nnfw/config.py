"""
NNFW Configuration

Centralised training hyperparameter dataclass.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class NNFWConfig:
    # ── Gradient descent ──────────────────────────────────────────────────────
    learn_rate: float = 0.2     # Step size; modifiers receive rate = -learn_rate
    momentum: float = 0.0       # Momentum factor (applied only if use_momentum)
    use_momentum: bool = False

    # ── Initialisation ────────────────────────────────────────────────────────
    randomize_min: float = -1.0  # Uniform range for NeuralNet.randomize
    randomize_max: float = 1.0
    seed: Optional[int] = None   # Seeds np.random before randomising, if set

    # ── Training loop ─────────────────────────────────────────────────────────
    epochs: int = 1000            # learn_on_set passes
    target_mse: Optional[float] = None  # Early stop once MSE on the set < target
    log_every: int = 1000         # Epochs between progress log lines (0 = never)

    # ── Graph checks ──────────────────────────────────────────────────────────
    strict_order: bool = False  # Raise instead of warn on update-order problems

    def __post_init__(self):
        assert self.learn_rate > 0.0, "learn_rate must be positive"
        assert self.momentum >= 0.0, "momentum must be non-negative"
        assert self.randomize_min <= self.randomize_max, \
            "randomize_min must not exceed randomize_max"
        assert self.epochs >= 0, "epochs must be non-negative"
        assert self.log_every >= 0, "log_every must be non-negative"
