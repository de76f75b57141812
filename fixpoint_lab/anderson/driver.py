"""Anderson-accelerated fixed-point iteration.

Solves g(x) = x to given relative and absolute tolerances by Anderson
acceleration of the fixed-point iteration x <- g(x), starting from the
state passed in. The state is updated in place and holds the final iterate
on return.

With history depth m = 0 this is plain fixed-point iteration. With m > 0,
each step after the first evaluates g(x_k), forms

  f(x_k)      = g(x_k) - x_k
  delta_f_{k-1} = f(x_k) - f(x_{k-1})

and combines the last min(m, k) pairs (delta_x, delta_f) as

  x_{k+1} = g(x_k) - (delta_X' + delta_F') @ beta,
  beta    = argmin || delta_F' @ beta - f(x_k) ||_2.

Note that x_{k+1} is not g(x_k) in general, so delta_x_k = x_{k+1} - x_k is
not f(x_k).
"""

from __future__ import annotations

import sys
import warnings
from typing import Callable, Optional, Tuple

import numpy as np

from .adapter import StateAdapter
from .convergence import (
    AndersonConvergenceWarning,
    DEFAULT_ATOL,
    DEFAULT_DEPTH,
    DEFAULT_RTOL,
    residual_tolerance,
    validate_depth,
    validate_options,
)
from .history import HistoryBuffer
from .mixing import MixingSolver, anderson_update


def anderson_solve(
    state,
    adapter: StateAdapter,
    *,
    m: int = DEFAULT_DEPTH,
    rtol: float = DEFAULT_RTOL,
    atol: float = DEFAULT_ATOL,
    maxit: int = sys.maxsize,
    verbose: bool = False,
    msgprefix: str = "    ",
    callback: Optional[Callable[[int, float], None]] = None,
) -> Tuple[int, float, float]:
    """Run Anderson(m) iteration on ``state`` until ||leq|| <= tau.

    Args:
        state: Model state; mutated in place to hold the final iterate.
        adapter: StateAdapter giving access to g, the residual norm and the
            flat working vector.
        m: History depth; 0 means unaccelerated iteration. Must not exceed
            the flattened state dimension.
        rtol: Relative tolerance on the residual norm.
        atol: Absolute tolerance on the residual norm.
        maxit: Maximum number of iteration steps.
        verbose: Print one progress line per step.
        msgprefix: Prefix of every progress line.
        callback: Called as ``callback(k, norm)`` for k = 0 and after each step.

    Returns:
        Tuple ``(k, norm, norm_0)`` of steps taken, final residual norm and
        initial residual norm.

    Raises:
        ValueError: If an option is out of range.
    """
    validate_options(m, rtol, atol, maxit)
    x = adapter.flatten(state)
    n = x.size
    validate_depth(m, n)

    k = 0
    adapter.refresh(state)
    lleq0 = float(adapter.residual_norm(state))
    if verbose:
        print(msgprefix + f"Initial residual norm: ‖leq₀‖ = {lleq0}")
    if callback is not None:
        callback(k, lleq0)
    if lleq0 <= atol:
        # An empty state (n = 0) also ends here.
        return k, lleq0, lleq0

    tau = residual_tolerance(lleq0, rtol, atol)
    lleq = lleq0

    xold = np.empty_like(x)
    if m > 0:
        # Allocated once; reused in place on every step.
        f = np.empty_like(x)
        history = HistoryBuffer(n, m, dtype=x.dtype)
        mixer = MixingSolver(n, m, dtype=x.dtype)

    while k < maxit:
        xold[...] = x  # xold = x_k
        adapter.apply_map(state)  # x = g(x_k)

        if m > 0:
            if k == 0:
                # f(x_0) = g(x_0) - x_0, delta_x_0 = x_1 - x_0
                np.subtract(x, xold, out=f)
                history.record_first_delta(x, xold)
            else:
                _anderson_step(x, xold, f, history, mixer)

        k += 1
        adapter.refresh(state)
        lleq = float(adapter.residual_norm(state))
        if verbose:
            print(msgprefix + f"k = {k}: ‖leq‖/‖leq₀‖ = {lleq / lleq0}")
        if callback is not None:
            callback(k, lleq)
        if lleq <= tau:
            break

    if lleq > tau:
        warnings.warn(
            f"Anderson reached maxit = {maxit} and didn't converge "
            f"(‖leq‖ = {lleq:.3e} > tau = {tau:.3e}).",
            AndersonConvergenceWarning,
            stacklevel=2,
        )

    return k, lleq, lleq0


def _anderson_step(
    x: np.ndarray,
    xold: np.ndarray,
    f: np.ndarray,
    history: HistoryBuffer,
    mixer: MixingSolver,
) -> None:
    """Turn x = g(x_k) into the accelerated iterate x_{k+1}.

    On entry ``f`` holds f(x_{k-1}) and the current history column holds
    delta_x_{k-1}. On exit ``f`` holds f(x_k) and the next column holds
    delta_x_k.
    """
    f_k = x - xold
    history.write_residual_delta(f_k - f)  # delta_f_{k-1}
    f[...] = f_k

    delta_x, delta_f = history.columns()
    beta = mixer.solve(f, delta_f)
    anderson_update(x, beta, delta_x, delta_f)

    history.advance()
    history.write_iterate_delta(x - xold)  # delta_x_k = x_{k+1} - x_k
