"""Convergence control for Anderson-accelerated fixed-point iteration.

Provides option validation, the mixed relative/absolute tolerance rule,
the non-convergence warning category, and contraction diagnostics computed
from a residual history.

Tolerance rule:
  tau = max(rtol * ||leq_0||, atol)

The iteration stops as soon as ||leq_k|| <= tau. Reaching maxit first is
not an error: the solver emits AndersonConvergenceWarning and returns the
last iterate.
"""

from typing import List, Sequence

import numpy as np


DEFAULT_DEPTH = 2
DEFAULT_RTOL = 1e-4
DEFAULT_ATOL = 1e-8


class AndersonConvergenceWarning(RuntimeWarning):
    """Emitted when maxit is exhausted before the tolerance is met."""


def validate_options(m: int, rtol: float, atol: float, maxit: int) -> None:
    """Check the scalar solver options.

    Raises:
        ValueError: If any option is negative or NaN.
    """
    # Written as "not >= 0" so that NaN is rejected too.
    if not m >= 0:
        raise ValueError(f"m = {m} must be >= 0.")
    if not rtol >= 0:
        raise ValueError(f"rtol = {rtol} must be >= 0.")
    if not atol >= 0:
        raise ValueError(f"atol = {atol} must be >= 0.")
    if not maxit >= 0:
        raise ValueError(f"maxit = {maxit} must be >= 0.")


def validate_depth(m: int, n: int) -> None:
    """Check the history depth against the flattened state dimension."""
    if m > n:
        raise ValueError(
            f"m = {m} must be <= the flattened state dimension n = {n}."
        )


def residual_tolerance(initial_norm: float, rtol: float, atol: float) -> float:
    """Return the stopping threshold max(rtol * ||leq_0||, atol)."""
    return max(rtol * initial_norm, atol)


def contraction_factors(residual_history: Sequence[float]) -> List[float]:
    """Ratios ||leq_k|| / ||leq_{k-1}|| along a residual history.

    A ratio is inf when the previous norm is zero.
    """
    factors = []
    for prev, curr in zip(residual_history[:-1], residual_history[1:]):
        factors.append(curr / prev if prev > 0 else np.inf)
    return factors


def mean_contraction(residual_history: Sequence[float]) -> float:
    """Geometric-mean contraction rate over the whole history.

    Returns nan for histories shorter than two entries or with a zero
    initial norm.
    """
    if len(residual_history) < 2 or residual_history[0] <= 0:
        return np.nan
    ratio = residual_history[-1] / residual_history[0]
    if ratio <= 0:
        return 0.0
    return float(ratio ** (1.0 / (len(residual_history) - 1)))
