"""Least-squares mixing step of Anderson acceleration.

Finds coefficients beta minimizing

    || delta_F' @ beta - f(x_k) ||_2

over the populated history columns delta_F', using a QR factorization with
column pivoting. Pivoting orders the columns by decreasing contribution,
so a collinear history shows up as trailing diagonal entries of R that are
small relative to R[0, 0]; those columns are dropped from the solve and
their coefficients set to zero (basic solution).

The solver owns its scratch storage. Each call reads the history into Q and
the residual into beta before either is overwritten, so the same buffers
are reused on every iteration.
"""

from typing import Optional

import numpy as np
from scipy.linalg import qr, solve_triangular


# Columns with |R_jj| <= DEFAULT_RCOND * |R_00| are treated as dependent.
DEFAULT_RCOND = 1e-10


class MixingSolver:
    """Pivoted-QR least-squares solver with a preallocated workspace.

    Args:
        n: Flattened state dimension.
        m: Maximum number of history columns.
        dtype: Element type (real or complex).
        rcond: Relative cutoff on the diagonal of R for the numerical rank.
            Defaults to DEFAULT_RCOND, and is never below
            ``min(n, m) * eps``.
    """

    def __init__(
        self,
        n: int,
        m: int,
        dtype=np.float64,
        rcond: Optional[float] = None,
    ):
        self.n = n
        self.m = m
        self.Q = np.empty((n, m), dtype=dtype, order="F")
        # Holds the length-n right-hand side on entry and the length-p
        # solution on exit.
        self.beta = np.empty(max(n, m), dtype=dtype)
        eps_floor = max(min(n, m), 1) * np.finfo(self.beta.dtype).eps
        self.rcond = max(DEFAULT_RCOND if rcond is None else rcond, eps_floor)
        self.rank = 0

    def solve(self, f: np.ndarray, delta_f: np.ndarray) -> np.ndarray:
        """Solve for the mixing coefficients.

        Args:
            f: Current residual f(x_k), length n.
            delta_f: Populated residual-delta columns, shape (n, p), p <= m.

        Returns:
            View of the first p entries of the coefficient buffer. Entries
            of columns dropped as dependent are zero.
        """
        n = self.n
        p = delta_f.shape[1]
        beta = self.beta

        Q = self.Q[:, :p]
        np.copyto(Q, delta_f)
        beta[:n] = f

        if p == 0:
            self.rank = 0
            return beta[:0]

        Q_fac, R, perm = qr(Q, overwrite_a=True, mode="economic", pivoting=True)
        rhs = Q_fac.conj().T @ beta[:n]

        diag = np.abs(np.diag(R))
        if diag[0] > 0:
            rank = int(np.count_nonzero(diag > self.rcond * diag[0]))
        else:
            rank = 0
        self.rank = rank

        beta[:p] = 0
        if rank > 0:
            z = solve_triangular(R[:rank, :rank], rhs[:rank])
            beta[perm[:rank]] = z
        return beta[:p]


def anderson_update(
    x: np.ndarray,
    beta: np.ndarray,
    delta_x: np.ndarray,
    delta_f: np.ndarray,
) -> None:
    """Apply x <- x - (delta_x + delta_f) @ beta in place.

    On entry ``x`` holds the unaccelerated update g(x_k).
    """
    if beta.size == 0:
        return
    x -= (delta_x + delta_f) @ beta
